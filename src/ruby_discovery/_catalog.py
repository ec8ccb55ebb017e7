"""Remote release catalog with an ETag / Cache-Control aware disk cache."""

from __future__ import annotations

import logging
import os
import re
import time
from dataclasses import dataclass, replace
from typing import TYPE_CHECKING, Final

import httpx

from ._errors import FetchError, ProtocolViolation

if TYPE_CHECKING:
    from collections.abc import Mapping

    from ._cache import ContentStore, RubyCache

_LOGGER: Final[logging.Logger] = logging.getLogger(__name__)

DEFAULT_API_BASE: Final[str] = "https://api.github.com"
RELEASES_PATH: Final[str] = "/repos/spinel-coop/rv-ruby/releases/latest"
#: ``RV_RELEASES_URL`` value that disables the network and yields an empty catalog
NO_NETWORK_SENTINEL: Final[str] = "-"
USER_AGENT: Final[str] = "rv-cli"
ACCEPT: Final[str] = "application/vnd.github+json"
DEFAULT_MAX_AGE: Final[int] = 60
# use the server's TTL, but never re-check more than once a minute
MINIMUM_CACHE_TTL: Final[int] = 60
_MAX_AGE_RE: Final[re.Pattern[str]] = re.compile(r"max-age=(\d+)")


@dataclass(frozen=True)
class Asset:
    name: str
    browser_download_url: str


@dataclass(frozen=True)
class Release:
    """A published release: a name and its downloadable archives."""

    name: str
    assets: tuple[Asset, ...] = ()

    @classmethod
    def empty(cls, name: str = "Empty") -> Release:
        return cls(name=name)

    def to_dict(self) -> dict[str, object]:
        return {
            "name": self.name,
            "assets": [{"name": a.name, "browser_download_url": a.browser_download_url} for a in self.assets],
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, object]) -> Release:
        assets = data["assets"]
        if not isinstance(assets, list):
            msg = f"assets must be a list, got {type(assets).__name__}"
            raise TypeError(msg)
        return cls(
            name=str(data.get("name") or ""),
            assets=tuple(
                Asset(name=str(asset["name"]), browser_download_url=str(asset["browser_download_url"]))
                for asset in assets
            ),
        )


@dataclass(frozen=True)
class CachedRelease:
    """A release as cached on disk, with its validator and the time it stops being fresh."""

    expires_at: float
    etag: str | None
    release: Release

    def to_dict(self) -> dict[str, object]:
        return {"expires_at": self.expires_at, "etag": self.etag, "release": self.release.to_dict()}

    @classmethod
    def from_dict(cls, data: Mapping[str, object]) -> CachedRelease:
        expires_at, etag, release = data["expires_at"], data.get("etag"), data["release"]
        if not isinstance(expires_at, (int, float)) or not isinstance(release, dict):
            msg = "malformed cached release"
            raise TypeError(msg)
        return cls(
            expires_at=float(expires_at),
            etag=None if etag is None else str(etag),
            release=Release.from_dict(release),
        )


def parse_max_age(header: str | None) -> int | None:
    """Return the first ``max-age`` of a ``Cache-Control`` header in seconds, if any."""
    if header is None or not (match := _MAX_AGE_RE.search(header)):
        return None
    return int(match.group(1))


def _expires_at(response: httpx.Response, now: float) -> float:
    max_age = parse_max_age(response.headers.get("Cache-Control"))
    ttl = DEFAULT_MAX_AGE if max_age is None else max_age
    return now + max(ttl, MINIMUM_CACHE_TTL)


def _read_cached(content_store: ContentStore) -> CachedRelease | None:
    data = content_store.read()
    if data is None:
        return None
    try:
        return CachedRelease.from_dict(data)
    except (KeyError, TypeError, ValueError):
        _LOGGER.debug("ignoring malformed cached release", exc_info=True)
        return None


def read_stale_release(cache: RubyCache) -> Release | None:
    """The cached release regardless of its expiry, used when the server cannot be reached."""
    cached = _read_cached(cache.releases())
    return None if cached is None else cached.release


def releases_url(env: Mapping[str, str]) -> str | None:
    """Endpoint of the latest release, or ``None`` when the network is disabled.

    An empty ``RV_RELEASES_URL`` counts as unset and selects the GitHub API.
    """
    api_base = env.get("RV_RELEASES_URL") or DEFAULT_API_BASE
    if api_base == NO_NETWORK_SENTINEL:
        return None
    return f"{api_base.rstrip('/')}{RELEASES_PATH}"


def fetch_available_rubies(
    cache: RubyCache,
    env: Mapping[str, str] | None = None,
    client: httpx.Client | None = None,
) -> Release:
    """Return the current release catalog, asking the server only once the cached copy expired.

    Raises :class:`FetchError` on transport failures or unexpected statuses and :class:`ProtocolViolation` for a
    ``304 Not Modified`` when nothing was cached.
    """
    env = os.environ if env is None else env
    if (url := releases_url(env)) is None:
        _LOGGER.debug("RV_RELEASES_URL is %r, returning empty list without network request", NO_NETWORK_SENTINEL)
        return Release.empty("Empty release")

    content_store = cache.releases()
    cached = _read_cached(content_store)
    if cached is not None:
        if time.time() < cached.expires_at:
            _LOGGER.debug("using cached list of available rubies")
            return cached.release
        _LOGGER.debug("cached ruby list is stale, re-validating with server")

    headers = {"User-Agent": USER_AGENT, "Accept": ACCEPT}
    if cached is not None and cached.etag is not None:
        _LOGGER.debug("using ETag to make a conditional request: %s", cached.etag)
        headers["If-None-Match"] = cached.etag
    response = _get(client, url, headers)

    if response.status_code == httpx.codes.NOT_MODIFIED:
        _LOGGER.debug("server confirmed releases list is unchanged (304 Not Modified)")
        if cached is None:
            msg = "304 response without prior cache"
            raise ProtocolViolation(msg)
        refreshed = replace(cached, expires_at=max(cached.expires_at, _expires_at(response, time.time())))
        _store(content_store, refreshed)
        return refreshed.release

    if response.status_code == httpx.codes.OK:
        _LOGGER.debug("received new releases list (200 OK)")
        try:
            release = Release.from_dict(response.json())
        except (KeyError, TypeError, ValueError) as exc:
            msg = f"malformed release document from {url}"
            raise FetchError(msg) from exc
        _LOGGER.debug("fetched latest release %s", release.name)
        entry = CachedRelease(
            expires_at=_expires_at(response, time.time()),
            etag=response.headers.get("ETag"),
            release=release,
        )
        _store(content_store, entry)
        return release

    _LOGGER.warning("failed to fetch releases, status: %s", response.status_code)
    msg = f"failed to fetch available ruby versions from {url}: HTTP {response.status_code}"
    raise FetchError(msg)


def _store(content_store: ContentStore, entry: CachedRelease) -> None:
    try:
        with content_store.locked():
            content_store.write(entry.to_dict())
    except OSError as exc:
        _LOGGER.warning("failed to cache list of available rubies: %s", exc)


def _get(client: httpx.Client | None, url: str, headers: Mapping[str, str]) -> httpx.Response:
    try:
        if client is not None:
            return client.get(url, headers=headers)
        with httpx.Client(follow_redirects=True) as http:
            return http.get(url, headers=headers)
    except httpx.HTTPError as exc:
        msg = f"failed to fetch available ruby versions from {url}: {exc}"
        raise FetchError(msg) from exc


__all__ = [
    "DEFAULT_API_BASE",
    "MINIMUM_CACHE_TTL",
    "NO_NETWORK_SENTINEL",
    "Asset",
    "CachedRelease",
    "Release",
    "fetch_available_rubies",
    "parse_max_age",
    "read_stale_release",
    "releases_url",
]
