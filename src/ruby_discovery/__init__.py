"""Discover installed Ruby runtimes and merge them with the installable ones from the release catalog."""

from __future__ import annotations

from importlib.metadata import version

from ._cache import ContentStore, DiskCache, NoOpCache, RubyCache
from ._cached_ruby_info import lookup, store
from ._catalog import Asset, CachedRelease, Release, fetch_available_rubies, parse_max_age, read_stale_release
from ._config import Config, default_ruby_dirs, find_project_dir
from ._discovery import discover_rubies, get_ruby, matching_ruby
from ._errors import (
    CacheMiss,
    ConfigError,
    FetchError,
    InvalidInstallation,
    ParseError,
    ProtocolViolation,
    RubyDiscoveryError,
)
from ._listing import list_rubies
from ._merge import RubyEntry, current_platform_arch_str, latest_patch_version, ruby_from_asset, rubies_to_show
from ._pin import pin
from ._ruby_info import RubyInfo
from ._version import RubyRequest, RubyVersion, RubyVersionOrdering, VersionOrdering

__version__ = version("ruby-discovery")

__all__ = [
    "Asset",
    "CacheMiss",
    "CachedRelease",
    "Config",
    "ConfigError",
    "ContentStore",
    "DiskCache",
    "FetchError",
    "InvalidInstallation",
    "NoOpCache",
    "ParseError",
    "ProtocolViolation",
    "Release",
    "RubyCache",
    "RubyDiscoveryError",
    "RubyEntry",
    "RubyInfo",
    "RubyRequest",
    "RubyVersion",
    "RubyVersionOrdering",
    "VersionOrdering",
    "__version__",
    "current_platform_arch_str",
    "default_ruby_dirs",
    "discover_rubies",
    "fetch_available_rubies",
    "find_project_dir",
    "get_ruby",
    "latest_patch_version",
    "list_rubies",
    "lookup",
    "matching_ruby",
    "parse_max_age",
    "pin",
    "read_stale_release",
    "ruby_from_asset",
    "rubies_to_show",
    "store",
]
