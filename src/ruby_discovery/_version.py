"""Ruby version identifiers, version requests and their ordering."""

from __future__ import annotations

import re
import sys
from dataclasses import dataclass
from typing import Final, Protocol, runtime_checkable

from ._errors import ParseError

_DC_KW = {"frozen": True, "kw_only": True, "slots": True} if sys.version_info >= (3, 10) else {"frozen": True}

_PATTERN: Final[re.Pattern[str]] = re.compile(
    r"""
    ^
    (?:(?P<engine>[a-zA-Z]+)-?)?                      # engine (e.g. ruby, jruby)
    (?P<version>\d+(?:\.\d+){0,3})?                   # up to four numeric parts
    (?:(?<=\d)-?(?P<pre>[a-zA-Z][a-zA-Z0-9]*))?       # prerelease tag, only after a number
    $
    """,
    re.VERBOSE,
)
_PRE_PATTERN: Final[re.Pattern[str]] = re.compile(r"^(?P<tag>[a-zA-Z]+)(?P<num>\d*)$")

DEFAULT_ENGINE: Final[str] = "ruby"
KNOWN_ENGINES: Final[tuple[str, ...]] = ("ruby", "jruby", "truffleruby", "mruby", "artichoke")
_PRE_ORDER: Final[dict[str, int]] = {"dev": 0, "preview": 1, "rc": 2}
# ``p<N>`` is a patch level of a final release, not a prerelease
_PATCH_LEVEL_TAG: Final[str] = "p"
_NUMERIC_PARTS: Final[tuple[str, ...]] = ("major", "minor", "patch", "tiny")


def engine_sort_key(engine: str) -> tuple[int, str]:
    """Known engines in their canonical order, unknown ones after them by name."""
    try:
        return KNOWN_ENGINES.index(engine), engine
    except ValueError:
        return len(KNOWN_ENGINES), engine


def prerelease_sort_key(prerelease: str | None) -> tuple[int, int, int, str]:
    if prerelease is None:
        return 1, 0, 0, ""
    match = _PRE_PATTERN.match(prerelease)
    tag, num = (match["tag"].lower(), int(match["num"] or 0)) if match else (prerelease.lower(), 0)
    if tag == _PATCH_LEVEL_TAG:
        return 2, 0, num, tag
    return 0, _PRE_ORDER.get(tag, len(_PRE_ORDER)), num, tag


def _split(text: str) -> tuple[str, list[int], str | None]:
    stripped = text.strip()
    if not (match := _PATTERN.match(stripped)):
        msg = f"Invalid ruby version: {text!r}"
        raise ParseError(msg)
    engine = (match["engine"] or DEFAULT_ENGINE).lower()
    parts = [int(i) for i in match["version"].split(".")] if match["version"] else []
    return engine, parts, match["pre"]


@dataclass(**_DC_KW)
class RubyVersion:
    """A fully specified Ruby version such as ``ruby-3.3.0`` or ``jruby-9.4.12.0``."""

    engine: str
    major: int
    minor: int
    patch: int
    tiny: int | None = None
    prerelease: str | None = None

    @classmethod
    def from_string(cls, text: str) -> RubyVersion:
        engine, parts, prerelease = _split(text)
        if len(parts) < 3:  # noqa: PLR2004
            msg = f"Invalid ruby version: {text!r} needs major, minor and patch"
            raise ParseError(msg)
        return cls(
            engine=engine,
            major=parts[0],
            minor=parts[1],
            patch=parts[2],
            tiny=parts[3] if len(parts) > 3 else None,  # noqa: PLR2004
            prerelease=prerelease,
        )

    @property
    def release(self) -> tuple[int, ...]:
        release = self.major, self.minor, self.patch
        return release if self.tiny is None else (*release, self.tiny)

    @property
    def group_key(self) -> tuple[str, int | None, int | None]:
        """Engine, major and minor; versions sharing it differ only by patch level or prerelease."""
        return self.engine, self.major, self.minor

    def number(self) -> str:
        """The version without its engine (e.g. ``3.2.0-rc1``)."""
        text = ".".join(str(i) for i in self.release)
        return text if self.prerelease is None else f"{text}-{self.prerelease}"

    def _sort_key(self) -> tuple[object, ...]:
        tiny = -1 if self.tiny is None else self.tiny
        return (
            engine_sort_key(self.engine),
            (self.major, self.minor, self.patch, tiny),
            prerelease_sort_key(self.prerelease),
        )

    def __lt__(self, other: object) -> bool:
        if not isinstance(other, RubyVersion):
            return NotImplemented
        return self._sort_key() < other._sort_key()

    def __le__(self, other: object) -> bool:
        if not isinstance(other, RubyVersion):
            return NotImplemented
        return self._sort_key() <= other._sort_key()

    def __gt__(self, other: object) -> bool:
        if not isinstance(other, RubyVersion):
            return NotImplemented
        return self._sort_key() > other._sort_key()

    def __ge__(self, other: object) -> bool:
        if not isinstance(other, RubyVersion):
            return NotImplemented
        return self._sort_key() >= other._sort_key()

    def __str__(self) -> str:
        return f"{self.engine}-{self.number()}"


@dataclass(**_DC_KW)
class RubyRequest:
    """A possibly partial version requirement, as written in a ``.ruby-version`` file."""

    engine: str = DEFAULT_ENGINE
    major: int | None = None
    minor: int | None = None
    patch: int | None = None
    tiny: int | None = None
    prerelease: str | None = None

    @classmethod
    def from_string(cls, text: str) -> RubyRequest:
        engine, parts, prerelease = _split(text)
        padded = [*parts, *([None] * (4 - len(parts)))]
        return cls(
            engine=engine,
            major=padded[0],
            minor=padded[1],
            patch=padded[2],
            tiny=padded[3],
            prerelease=prerelease,
        )

    def satisfied_by(self, version: RubyVersion) -> bool:
        """Check that every part given in this request matches *version*.

        A request without a prerelease tag only accepts final releases (patch levels count as final).
        """
        if self.engine != version.engine:
            return False
        for name in _NUMERIC_PARTS:
            requested = getattr(self, name)
            if requested is not None and requested != getattr(version, name):
                return False
        if self.prerelease is None:
            return prerelease_sort_key(version.prerelease)[0] != 0
        return self.prerelease == version.prerelease

    def __str__(self) -> str:
        numbers = [str(i) for i in (self.major, self.minor, self.patch, self.tiny) if i is not None]
        if not numbers:
            return self.engine
        text = f"{self.engine}-{'.'.join(numbers)}"
        return text if self.prerelease is None else f"{text}-{self.prerelease}"


@runtime_checkable
class VersionOrdering(Protocol):
    """Parses versions and decides whether a request accepts a version.

    Parsed versions must be totally ordered, render their display name via ``str`` and expose a ``group_key``.
    """

    def parse(self, text: str) -> RubyVersion: ...

    def parse_request(self, text: str) -> RubyRequest: ...

    def compare(self, left: RubyVersion, right: RubyVersion) -> int: ...

    def satisfied_by(self, request: RubyRequest, candidate: RubyVersion) -> bool: ...


class RubyVersionOrdering:
    """The Ruby version grammar used by the installation and release layouts."""

    def parse(self, text: str) -> RubyVersion:  # noqa: PLR6301
        return RubyVersion.from_string(text)

    def parse_request(self, text: str) -> RubyRequest:  # noqa: PLR6301
        return RubyRequest.from_string(text)

    def compare(self, left: RubyVersion, right: RubyVersion) -> int:  # noqa: PLR6301
        """Negative, zero or positive as *left* sorts before, equal to or after *right*."""
        return (left > right) - (left < right)

    def satisfied_by(self, request: RubyRequest, candidate: RubyVersion) -> bool:  # noqa: PLR6301
        return request.satisfied_by(candidate)


DEFAULT_ORDERING: Final[RubyVersionOrdering] = RubyVersionOrdering()


__all__ = [
    "DEFAULT_ENGINE",
    "DEFAULT_ORDERING",
    "KNOWN_ENGINES",
    "RubyRequest",
    "RubyVersion",
    "RubyVersionOrdering",
    "VersionOrdering",
    "engine_sort_key",
    "prerelease_sort_key",
]
