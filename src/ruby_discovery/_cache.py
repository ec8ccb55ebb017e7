"""Cache Protocol and built-in implementations for Ruby installation and release catalog data."""

from __future__ import annotations

import json
import logging
from contextlib import contextmanager, suppress
from hashlib import sha256
from typing import TYPE_CHECKING, Final, Protocol, runtime_checkable

if TYPE_CHECKING:
    from collections.abc import Generator
    from pathlib import Path

_LOGGER: Final[logging.Logger] = logging.getLogger(__name__)

RELEASES_KEY: Final[str] = "available_rubies"
_INTERPRETERS: Final[str] = "interpreters"
_RELEASES: Final[str] = "releases"


def cache_digest(*parts: object) -> str:
    """Deterministic fingerprint of *parts*, used to address a cache entry."""
    payload = json.dumps([str(part) for part in parts], separators=(",", ":"))
    return sha256(payload.encode("utf-8")).hexdigest()


@runtime_checkable
class ContentStore(Protocol):
    """One cache entry: a JSON object that can be read, replaced, dropped and locked."""

    def exists(self) -> bool: ...

    def read(self) -> dict | None: ...

    def write(self, content: dict) -> None: ...

    def remove(self) -> None: ...

    @contextmanager
    def locked(self) -> Generator[None]: ...


@runtime_checkable
class RubyCache(Protocol):
    """Cache interface with one bucket for installations and one slot for the release catalog."""

    def interpreter(self, key: str) -> ContentStore: ...

    def releases(self) -> ContentStore: ...

    def clear(self) -> None: ...


class DiskContentStore:
    """A ``<key>.json`` file in *folder*, guarded by an advisory ``<key>.lock`` next to it."""

    def __init__(self, folder: Path, key: str) -> None:
        self.path = folder / f"{key}.json"
        self._lock_path = folder / f"{key}.lock"

    def exists(self) -> bool:
        return self.path.exists()

    def read(self) -> dict | None:
        """The stored object; a file that is not a JSON object is deleted and reads as missing."""
        try:
            text = self.path.read_text(encoding="utf-8")
        except OSError:
            _LOGGER.debug("no cached content at %s", self.path, exc_info=True)
            return None
        try:
            data = json.loads(text)
        except ValueError:
            data = None
        if not isinstance(data, dict):
            _LOGGER.debug("removing malformed cache entry %s", self.path)
            self.remove()
            return None
        _LOGGER.debug("got cached content from %s", self.path)
        return data

    def write(self, content: dict) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.path.write_text(json.dumps(content, sort_keys=True, indent=2), encoding="utf-8")
        _LOGGER.debug("wrote cached content at %s", self.path)

    def remove(self) -> None:
        with suppress(OSError):
            self.path.unlink()
            _LOGGER.debug("removed cached content at %s", self.path)

    @contextmanager
    def locked(self) -> Generator[None]:
        from filelock import FileLock  # noqa: PLC0415

        self._lock_path.parent.mkdir(parents=True, exist_ok=True)
        with FileLock(str(self._lock_path)):
            yield


class DiskCache:
    """File-system cache laid out as ``<root>/ruby/interpreters/<digest>.json`` and
    ``<root>/ruby/releases/available_rubies.json``.
    """

    def __init__(self, root: Path) -> None:
        self.root = root

    def _bucket(self, name: str) -> Path:
        return self.root / "ruby" / name

    def interpreter(self, key: str) -> DiskContentStore:
        return DiskContentStore(self._bucket(_INTERPRETERS), key)

    def releases(self) -> DiskContentStore:
        return DiskContentStore(self._bucket(_RELEASES), RELEASES_KEY)

    def clear(self) -> None:
        """Drop every cached installation and the cached catalog; lock files stay."""
        for name in (_INTERPRETERS, _RELEASES):
            for entry in self._bucket(name).glob("*.json"):
                with suppress(OSError):
                    entry.unlink()

    def __repr__(self) -> str:
        return f"{type(self).__name__}(root={self.root!r})"


class NoOpContentStore(ContentStore):
    """Entry of a disabled cache (``RV_NO_CACHE``): always empty, writes are discarded."""

    def exists(self) -> bool:  # noqa: PLR6301
        return False

    def read(self) -> dict | None:  # noqa: PLR6301
        return None

    def write(self, content: dict) -> None:
        pass

    def remove(self) -> None:
        pass

    @contextmanager
    def locked(self) -> Generator[None]:  # noqa: PLR6301
        yield


class NoOpCache(RubyCache):
    """Cache used when caching is disabled; every lookup misses."""

    def interpreter(self, key: str) -> NoOpContentStore:  # noqa: ARG002, PLR6301
        return NoOpContentStore()

    def releases(self) -> NoOpContentStore:  # noqa: PLR6301
        return NoOpContentStore()

    def clear(self) -> None:
        pass


__all__ = [
    "RELEASES_KEY",
    "ContentStore",
    "DiskCache",
    "DiskContentStore",
    "NoOpCache",
    "NoOpContentStore",
    "RubyCache",
    "cache_digest",
]
