"""Acquire Ruby installation information via subprocess interrogation, cached per installation on disk."""

from __future__ import annotations

import json
import logging
import secrets
import subprocess  # noqa: S404
from pathlib import Path
from shlex import quote
from subprocess import Popen  # noqa: S404
from typing import TYPE_CHECKING, Final

from ._cache import cache_digest
from ._errors import CacheMiss, InvalidInstallation, ParseError
from ._ruby_info import INTERROGATE_SCRIPT, RUBY_EXE, RubyInfo

if TYPE_CHECKING:
    from collections.abc import Mapping

    from ._cache import ContentStore, RubyCache

_LOGGER: Final[logging.Logger] = logging.getLogger(__name__)

COOKIE_LENGTH: Final[int] = 32


def path_cache_key(ruby_path: Path) -> tuple[str, int]:
    """Digest of the installation path and its ``bin/ruby`` modification time, plus that time."""
    ruby_bin = ruby_path / "bin" / RUBY_EXE
    try:
        modified = ruby_bin.stat().st_mtime_ns
    except OSError as exc:
        raise CacheMiss(ruby_path) from exc
    return cache_digest(ruby_path, modified), modified


def lookup(cache: RubyCache, path: str | Path) -> RubyInfo:
    """Return the cached installation at *path*, or raise :class:`CacheMiss`.

    Entries that no longer deserialize or describe an installation that no longer validates are removed first.
    """
    ruby_path = Path(path)
    key, modified = path_cache_key(ruby_path)
    content_store = cache.interpreter(key)
    with content_store.locked():
        data = content_store.read() if content_store.exists() else None
        if data is None:
            raise CacheMiss(ruby_path)
        of_path, of_st_mtime, of_content = data.get("path"), data.get("st_mtime"), data.get("content")
        if of_path != str(ruby_path) or of_st_mtime != modified or not isinstance(of_content, dict):
            content_store.remove()
            raise CacheMiss(ruby_path)
        info = _load_cached_ruby_info(content_store, of_content)
    if info is None:
        raise CacheMiss(ruby_path)
    return info


def _load_cached_ruby_info(store: ContentStore, content: dict) -> RubyInfo | None:
    try:
        info = RubyInfo.from_dict(content)
    except (KeyError, TypeError, ParseError):
        _LOGGER.debug("cached ruby info does not deserialize, evicting", exc_info=True)
        store.remove()
        return None
    if not info.is_valid():
        _LOGGER.debug("cached ruby at %s no longer validates, evicting", info.path)
        store.remove()
        return None
    return info


def store(cache: RubyCache, info: RubyInfo) -> None:
    """Persist *info*, overwriting whatever is cached for its path and executable timestamp."""
    ruby_path = Path(info.path)
    key, modified = path_cache_key(ruby_path)
    content_store = cache.interpreter(key)
    with content_store.locked():
        content_store.write({"st_mtime": modified, "path": str(ruby_path), "content": info.to_dict()})


def gen_cookie() -> str:
    return secrets.token_hex(COOKIE_LENGTH // 2)


def _extract_between_cookies(out: str, start_cookie: str, end_cookie: str) -> str:
    """Extract payload between reversed cookie markers, logging any surrounding output."""
    out_starts = out.find(start_cookie[::-1])
    if out_starts > -1:
        if pre_cookie := out[:out_starts]:
            _LOGGER.debug("output before interrogation payload: %r", pre_cookie)
        out = out[out_starts + COOKIE_LENGTH :]
    out_ends = out.find(end_cookie[::-1])
    if out_ends > -1:
        if post_cookie := out[out_ends + COOKIE_LENGTH :]:
            _LOGGER.debug("output after interrogation payload: %r", post_cookie)
        out = out[:out_ends]
    return out


def interrogate(exe: Path, env: Mapping[str, str]) -> dict:
    """Run the interrogation script with *exe*; raises :class:`InvalidInstallation` on any failure."""
    start_cookie = gen_cookie()
    end_cookie = gen_cookie()
    cmd = [str(exe), "-e", INTERROGATE_SCRIPT, start_cookie, end_cookie]
    env = dict(env)
    env.pop("RUBYOPT", None)
    env.pop("RUBYLIB", None)
    _LOGGER.debug("get ruby info via cmd: %s", LogCmd(cmd))
    try:
        process = Popen(  # noqa: S603
            cmd,
            stdin=subprocess.DEVNULL,
            stderr=subprocess.PIPE,
            stdout=subprocess.PIPE,
            env=env,
            encoding="utf-8",
            errors="backslashreplace",
        )
        out, err = process.communicate()
        code = process.returncode
    except OSError as os_error:
        out, err, code = "", os_error.strerror, os_error.errno
    if code != 0:
        msg = f"failed to query {exe} with code {code}"
        msg += f" out: {out!r}" if out else ""
        msg += f" err: {err!r}" if err else ""
        raise InvalidInstallation(msg)
    payload = _extract_between_cookies(out, start_cookie, end_cookie)
    try:
        report = json.loads(payload)
    except json.JSONDecodeError as exc:
        msg = f"{exe} returned invalid JSON{f', stderr: {err!r}' if err else ''}"
        raise InvalidInstallation(msg) from exc
    if not isinstance(report, dict):
        msg = f"{exe} returned {type(report).__name__} instead of an object"
        raise InvalidInstallation(msg)
    return report


class LogCmd:
    def __init__(self, cmd: list[str]) -> None:
        self.cmd = cmd

    def __repr__(self) -> str:
        return " ".join(quote(str(c)) for c in self.cmd)


__all__ = [
    "LogCmd",
    "interrogate",
    "lookup",
    "path_cache_key",
    "store",
]
