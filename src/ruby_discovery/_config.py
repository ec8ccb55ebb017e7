from __future__ import annotations

import logging
import os
from contextlib import suppress
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING, Final

from platformdirs import user_cache_path

from ._cache import DiskCache, NoOpCache
from ._discovery import discover_rubies, matching_ruby
from ._version import DEFAULT_ORDERING, RubyRequest

if TYPE_CHECKING:
    from collections.abc import Mapping, Sequence

    from ._cache import RubyCache
    from ._ruby_info import RubyInfo
    from ._version import VersionOrdering

_LOGGER: Final[logging.Logger] = logging.getLogger(__name__)

APP_NAME: Final[str] = "rv"
VERSION_FILE: Final[str] = ".ruby-version"
_SYSTEM_RUBY_DIRS: Final[tuple[str, ...]] = ("/opt/rubies", "/usr/local/rubies")


def _under_root(root: Path, path: Path) -> Path:
    return root / path.relative_to(path.anchor)


def default_ruby_dirs(root: Path, home: Path | None = None) -> list[Path]:
    """``~/.rubies`` (kept even when missing, it is where new rubies go) plus the system directories that exist."""
    home = Path.home() if home is None else home
    ruby_dirs = [_under_root(root, home / ".rubies")]
    for system_dir in _SYSTEM_RUBY_DIRS:
        joined = _under_root(root, Path(system_dir))
        with suppress(OSError):
            if joined.is_dir():
                ruby_dirs.append(joined.resolve())
    return ruby_dirs


def find_project_dir(current_dir: Path, root: Path) -> Path | None:
    """Closest directory from *current_dir* up to *root* holding a ``.ruby-version`` file."""
    _LOGGER.debug("searching for project directory in %s", current_dir)
    project_dir = current_dir
    while True:
        if (project_dir / VERSION_FILE).exists():
            _LOGGER.debug("found project directory %s", project_dir)
            return project_dir
        if project_dir == root:
            _LOGGER.debug("reached root %s without finding a project directory", root)
            return None
        parent = project_dir.parent
        if parent == project_dir:
            _LOGGER.debug("ran out of parents of %s without finding a project directory", current_dir)
            return None
        project_dir = parent


@dataclass
class Config:
    """Where to look for rubies, where to cache, and which project the invocation runs in."""

    ruby_dirs: list[Path]
    cache: RubyCache
    current_dir: Path
    root: Path = Path("/")
    project_dir: Path | None = None
    env: Mapping[str, str] = field(default_factory=lambda: os.environ)
    ordering: VersionOrdering = DEFAULT_ORDERING

    @classmethod
    def from_env(cls, env: Mapping[str, str] | None = None, current_dir: Path | None = None) -> Config:
        """Build the configuration from ``RUBIES_PATH``, ``RV_ROOT_DIR``, ``RV_CACHE_DIR`` and ``RV_NO_CACHE``."""
        env = os.environ if env is None else env
        current_dir = Path.cwd() if current_dir is None else current_dir
        root = Path(env.get("RV_ROOT_DIR") or "/")
        if rubies_path := env.get("RUBIES_PATH"):
            ruby_dirs = [Path(i).expanduser() for i in rubies_path.split(os.pathsep) if i]
        else:
            ruby_dirs = default_ruby_dirs(root)
        if env.get("RV_NO_CACHE"):
            cache: RubyCache = NoOpCache()
        else:
            cache_dir = env.get("RV_CACHE_DIR")
            cache = DiskCache(Path(cache_dir) if cache_dir else user_cache_path(APP_NAME))
        return cls(
            ruby_dirs=list(dict.fromkeys(ruby_dirs)),
            cache=cache,
            current_dir=current_dir,
            root=root,
            project_dir=find_project_dir(current_dir, root),
            env=env,
        )

    def rubies(self) -> list[RubyInfo]:
        return discover_rubies(self.ruby_dirs, self.cache, self.env)

    def matching_ruby(self, request: RubyRequest, rubies: Sequence[RubyInfo] | None = None) -> RubyInfo | None:
        return matching_ruby(request, self.rubies() if rubies is None else rubies, self.ordering)

    def ruby_request(self) -> RubyRequest:
        """The project's ``.ruby-version`` request; any CRuby when there is no project."""
        if self.project_dir is None:
            return RubyRequest()
        text = (self.project_dir / VERSION_FILE).read_text(encoding="utf-8")
        return self.ordering.parse_request(text)

    def project_ruby(self, rubies: Sequence[RubyInfo] | None = None) -> RubyInfo | None:
        """The installation the project is pinned to, if the pin is readable and installed."""
        try:
            request = self.ruby_request()
        except (OSError, ValueError) as exc:
            _LOGGER.debug("cannot determine ruby request: %s", exc)
            return None
        return self.matching_ruby(request, rubies)


__all__ = [
    "VERSION_FILE",
    "Config",
    "default_ruby_dirs",
    "find_project_dir",
]
