from __future__ import annotations

import logging
import os
from concurrent.futures import ThreadPoolExecutor
from contextlib import suppress
from functools import partial
from pathlib import Path
from typing import TYPE_CHECKING, Final

from ._cache import NoOpCache
from ._cached_ruby_info import lookup, store
from ._errors import CacheMiss, InvalidInstallation
from ._ruby_info import RubyInfo
from ._version import DEFAULT_ORDERING

if TYPE_CHECKING:
    from collections.abc import Generator, Iterable, Mapping, Sequence

    from ._cache import RubyCache
    from ._version import RubyRequest, VersionOrdering

_LOGGER: Final[logging.Logger] = logging.getLogger(__name__)


def get_ruby(
    key: str | RubyRequest,
    ruby_dirs: Iterable[str | Path],
    cache: RubyCache | None = None,
    env: Mapping[str, str] | None = None,
    ordering: VersionOrdering | None = None,
) -> RubyInfo | None:
    """Find the installation under *ruby_dirs* that best satisfies *key* (e.g. ``3.3`` or ``jruby-9.4``)."""
    ordering = DEFAULT_ORDERING if ordering is None else ordering
    request = ordering.parse_request(key) if isinstance(key, str) else key
    _LOGGER.info("find ruby for request %s", request)
    return matching_ruby(request, discover_rubies(ruby_dirs, cache, env), ordering)


def matching_ruby(
    request: RubyRequest,
    rubies: Sequence[RubyInfo],
    ordering: VersionOrdering | None = None,
) -> RubyInfo | None:
    """Return the last of the sorted *rubies* satisfying *request*, so the newest match wins."""
    ordering = DEFAULT_ORDERING if ordering is None else ordering
    for ruby in reversed(rubies):
        if ordering.satisfied_by(request, ruby.version):
            _LOGGER.debug("accepted %s for %s", ruby, request)
            return ruby
    _LOGGER.info("no installed ruby satisfies %s", request)
    return None


def discover_rubies(
    ruby_dirs: Iterable[str | Path],
    cache: RubyCache | None = None,
    env: Mapping[str, str] | None = None,
    *,
    max_workers: int | None = None,
) -> list[RubyInfo]:
    """Discover every valid installation directly below *ruby_dirs*, sorted by engine, version and path."""
    candidates = list(candidate_dirs(ruby_dirs))
    if not candidates:
        return []
    resolved_cache = cache if cache is not None else NoOpCache()
    env = os.environ if env is None else env
    with ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="ruby-discovery") as pool:
        found = [ruby for ruby in pool.map(partial(_discover_one, resolved_cache, env), candidates) if ruby]
    found.sort()
    _LOGGER.debug("discovered %d rubies in %d candidate directories", len(found), len(candidates))
    return found


def candidate_dirs(ruby_dirs: Iterable[str | Path]) -> Generator[Path, None, None]:
    """Immediate subdirectories of every existing root, each root visited once."""
    seen: set[str] = set()
    for ruby_dir in map(Path, ruby_dirs):
        try:
            root_id = os.path.normcase(str(ruby_dir.resolve()))
        except OSError:
            continue
        if root_id in seen:
            continue
        seen.add(root_id)
        if not ruby_dir.is_dir():
            continue
        try:
            entries = sorted(ruby_dir.iterdir())
        except OSError:
            _LOGGER.debug("cannot list %s", ruby_dir, exc_info=True)
            continue
        for entry in entries:
            with suppress(OSError):
                if entry.is_dir():
                    yield entry


def _discover_one(cache: RubyCache, env: Mapping[str, str], ruby_path: Path) -> RubyInfo | None:
    try:
        return lookup(cache, ruby_path)
    except CacheMiss:
        _LOGGER.debug("cache miss for %s", ruby_path)
    except OSError as exc:
        _LOGGER.debug("cannot read cache for %s: %s", ruby_path, exc)
    try:
        ruby = RubyInfo.from_dir(ruby_path, env)
    except (InvalidInstallation, OSError) as exc:
        _LOGGER.debug("failed to get ruby from %s: %s", ruby_path, exc)
        return None
    if not ruby.is_valid():
        _LOGGER.debug("ruby at %s is invalid", ruby_path)
        return None
    try:
        store(cache, ruby)
    except (CacheMiss, OSError, TypeError, ValueError) as exc:
        _LOGGER.debug("failed to cache ruby at %s: %s", ruby.path, exc)
    return ruby


__all__ = [
    "candidate_dirs",
    "discover_rubies",
    "get_ruby",
    "matching_ruby",
]
