"""List installed and installable rubies as text columns or JSON."""

from __future__ import annotations

import json
import logging
import sys
from concurrent.futures import ThreadPoolExecutor
from typing import TYPE_CHECKING, Final, Literal

from ._catalog import Release, fetch_available_rubies, read_stale_release
from ._errors import FetchError, ProtocolViolation
from ._merge import RubyEntry, current_platform_arch_str, rubies_to_show

if TYPE_CHECKING:
    from collections.abc import Sequence
    from concurrent.futures import Future
    from typing import TextIO

    import httpx

    from ._cache import RubyCache
    from ._config import Config

_LOGGER: Final[logging.Logger] = logging.getLogger(__name__)

OutputFormat = Literal["text", "json"]


def list_rubies(
    config: Config,
    output_format: OutputFormat = "text",
    *,
    installed_only: bool = False,
    stream: TextIO | None = None,
    client: httpx.Client | None = None,
) -> list[RubyEntry]:
    """Print the installed rubies, merged with the installable ones unless *installed_only*, and return them."""
    stream = sys.stdout if stream is None else stream
    if installed_only:
        installed = config.rubies()
        if not installed and output_format == "text":
            _LOGGER.warning("No Ruby installations found.")
            _LOGGER.info("Try installing Ruby with 'rv ruby install <version>'")
            return []
        active = config.project_ruby(installed)
        entries = [RubyEntry(details=ruby, installed=True, active=ruby == active) for ruby in installed]
        print_entries(entries, output_format, stream)
        return entries

    # fetch the catalog while the installations are scanned
    with ThreadPoolExecutor(max_workers=1, thread_name_prefix="ruby-catalog") as pool:
        fetched = pool.submit(fetch_available_rubies, config.cache, config.env, client)
        installed = config.rubies()
        release = _release_or_fallback(fetched, config.cache)
    active = config.project_ruby(installed)
    entries = rubies_to_show(release, installed, active, current_platform_arch_str(config.env), config.ordering)
    if not entries and output_format == "text":
        _LOGGER.warning("No rubies found for your platform.")
        return entries
    print_entries(entries, output_format, stream)
    return entries


def _release_or_fallback(fetched: Future[Release], cache: RubyCache) -> Release:
    try:
        return fetched.result()
    except ProtocolViolation as exc:
        _LOGGER.error("Release cache is inconsistent with the server: %s", exc)  # noqa: TRY400
    except FetchError as exc:
        _LOGGER.warning("Could not fetch or re-validate available Ruby versions: %s", exc)
    if (stale := read_stale_release(cache)) is not None:
        _LOGGER.warning("Displaying stale list of available rubies from cache.")
        return stale
    return Release.empty()


def print_entries(entries: Sequence[RubyEntry], output_format: OutputFormat, stream: TextIO) -> None:
    if output_format == "text":
        width = max((len(entry.details.display_name) for entry in entries), default=0)
        for entry in entries:
            stream.write(f"{format_ruby_entry(entry, width)}\n")
    elif output_format == "json":
        json.dump([entry.to_dict() for entry in entries], stream, indent=2)
        stream.write("\n")
    else:
        msg = f"unknown output format {output_format!r}"
        raise ValueError(msg)


def format_ruby_entry(entry: RubyEntry, width: int) -> str:
    marker = "*" if entry.active else " "
    name = entry.details.display_name
    if entry.installed:
        return f"{marker} {name:<{width}} [installed] {entry.details.executable_path}"
    return f"{marker} {name:<{width}} [available]"


__all__ = [
    "OutputFormat",
    "format_ruby_entry",
    "list_rubies",
    "print_entries",
]
