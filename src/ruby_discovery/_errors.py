"""Errors raised while discovering, caching and resolving Ruby installations."""

from __future__ import annotations


class RubyDiscoveryError(Exception):
    """Base class of all errors raised by this package."""


class CacheMiss(RubyDiscoveryError):  # noqa: N818
    """No trusted cache entry exists for an installation path."""

    def __init__(self, ruby_path: object) -> None:
        self.ruby_path = ruby_path
        super().__init__(f"ruby cache miss or invalid cache for {ruby_path}")


class InvalidInstallation(RubyDiscoveryError):  # noqa: N818
    """A candidate directory is not a usable Ruby installation."""


class ParseError(RubyDiscoveryError, ValueError):
    """A version, request or cached payload could not be parsed."""


class FetchError(RubyDiscoveryError):
    """The remote release catalog could not be fetched."""


class ProtocolViolation(FetchError):  # noqa: N818
    """The server answered in a way the cache state cannot explain."""


class ConfigError(RubyDiscoveryError):
    """The configuration cannot satisfy the requested operation."""


__all__ = [
    "CacheMiss",
    "ConfigError",
    "FetchError",
    "InvalidInstallation",
    "ParseError",
    "ProtocolViolation",
    "RubyDiscoveryError",
]
