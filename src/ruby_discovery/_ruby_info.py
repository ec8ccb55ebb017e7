"""Concrete Ruby installation information."""

from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING, Final

from ._errors import InvalidInstallation, ParseError
from ._version import RubyVersion

if TYPE_CHECKING:
    from collections.abc import Mapping

_LOGGER: Final[logging.Logger] = logging.getLogger(__name__)

RUBY_EXE: Final[str] = "ruby"

#: executed by the installation's own ``ruby`` with the start and end cookies as arguments
INTERROGATE_SCRIPT: Final[str] = """\
require "json"
require "rbconfig"
start_cookie, end_cookie = ARGV
gem_root = begin
  Gem.default_dir
rescue StandardError
  nil
end
payload = {
  "engine" => (defined?(RUBY_ENGINE) ? RUBY_ENGINE : "ruby"),
  "version" => (defined?(RUBY_ENGINE_VERSION) ? RUBY_ENGINE_VERSION : RUBY_VERSION),
  "host_os" => RbConfig::CONFIG["host_os"],
  "host_cpu" => RbConfig::CONFIG["host_cpu"],
  "gem_root" => gem_root,
}
$stdout.write(start_cookie.to_s.reverse, JSON.generate(payload), end_cookie.to_s.reverse)
"""


def normalize_os(host_os: str) -> str:
    low = host_os.lower()
    if "darwin" in low:
        return "macos"
    if "linux" in low:
        return "linux"
    if any(i in low for i in ("mingw", "mswin", "cygwin")):
        return "windows"
    return low or "unknown"


def normalize_arch(host_cpu: str) -> str:
    low = host_cpu.lower()
    return {"arm64": "aarch64", "amd64": "x86_64", "x64": "x86_64"}.get(low, low or "unknown")


@dataclass(frozen=True)
class RubyInfo:
    """A Ruby runtime: either installed at *path* or downloadable from it."""

    key: str
    version: RubyVersion
    path: str
    symlink: str | None
    os: str
    arch: str
    gem_root: str | None = None

    @property
    def display_name(self) -> str:
        """Version and engine without the platform suffix (e.g. ``ruby-3.3.0``)."""
        return str(self.version)

    @property
    def is_remote(self) -> bool:
        return self.path.startswith(("http://", "https://"))

    @property
    def bin_path(self) -> Path:
        return Path(self.path) / "bin"

    @property
    def executable_path(self) -> Path:
        return self.bin_path / RUBY_EXE

    def is_valid(self) -> bool:
        """``True`` if the installation directory is still in place with an executable ``bin/ruby``."""
        if self.is_remote:
            return False
        exe = self.executable_path
        return Path(self.path).is_dir() and exe.is_file() and os.access(exe, os.X_OK)

    def _sort_key(self) -> tuple[object, ...]:
        return self.version, self.path

    def __lt__(self, other: object) -> bool:
        if not isinstance(other, RubyInfo):
            return NotImplemented
        return self._sort_key() < other._sort_key()

    def __le__(self, other: object) -> bool:
        if not isinstance(other, RubyInfo):
            return NotImplemented
        return self._sort_key() <= other._sort_key()

    def __gt__(self, other: object) -> bool:
        if not isinstance(other, RubyInfo):
            return NotImplemented
        return self._sort_key() > other._sort_key()

    def __ge__(self, other: object) -> bool:
        if not isinstance(other, RubyInfo):
            return NotImplemented
        return self._sort_key() >= other._sort_key()

    def to_dict(self) -> dict[str, object]:
        return {
            "key": self.key,
            "version": str(self.version),
            "path": self.path,
            "symlink": self.symlink,
            "os": self.os,
            "arch": self.arch,
            "gem_root": self.gem_root,
        }

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), indent=2)

    @classmethod
    def from_dict(cls, data: Mapping[str, object]) -> RubyInfo:
        """Restore from :meth:`to_dict` output; raises ``KeyError``, ``TypeError`` or ``ParseError`` on bad data."""
        version = data["version"]
        if not isinstance(version, str):
            msg = f"version must be a string, got {type(version).__name__}"
            raise TypeError(msg)
        return cls(
            key=str(data["key"]),
            version=RubyVersion.from_string(version),
            path=str(data["path"]),
            symlink=None if data.get("symlink") is None else str(data["symlink"]),
            os=str(data["os"]),
            arch=str(data["arch"]),
            gem_root=None if data.get("gem_root") is None else str(data["gem_root"]),
        )

    @classmethod
    def from_report(cls, path: str | Path, report: Mapping[str, object]) -> RubyInfo:
        """Build from the JSON the interrogation script printed for the installation at *path*."""
        install_dir = Path(path)
        try:
            version = RubyVersion.from_string(install_dir.name)
        except ParseError:
            reported = f"{report.get('engine') or 'ruby'}-{report.get('version') or ''}"
            try:
                version = RubyVersion.from_string(reported)
            except ParseError as exc:
                msg = f"cannot determine ruby version of {install_dir} (reported {reported!r})"
                raise InvalidInstallation(msg) from exc
        os_name = normalize_os(str(report.get("host_os") or ""))
        arch = normalize_arch(str(report.get("host_cpu") or ""))
        symlink = str(install_dir.resolve()) if install_dir.is_symlink() else None
        gem_root = report.get("gem_root")
        return cls(
            key=f"{version}-{os_name}-{arch}",
            version=version,
            path=str(install_dir),
            symlink=symlink,
            os=os_name,
            arch=arch,
            gem_root=None if gem_root is None else str(gem_root),
        )

    @classmethod
    def from_dir(cls, path: str | Path, env: Mapping[str, str] | None = None) -> RubyInfo:
        """Interrogate the installation at *path*; raises :class:`InvalidInstallation` when it is not one."""
        from ._cached_ruby_info import interrogate  # noqa: PLC0415

        install_dir = Path(path)
        exe = install_dir / "bin" / RUBY_EXE
        if not exe.is_file():
            msg = f"{install_dir} has no bin/{RUBY_EXE}"
            raise InvalidInstallation(msg)
        report = interrogate(exe, os.environ if env is None else env)
        info = cls.from_report(install_dir, report)
        _LOGGER.debug("probed %s as %s", install_dir, info.key)
        return info

    def __str__(self) -> str:
        return f"{type(self).__name__}(key={self.key}, path={self.path})"


__all__ = [
    "INTERROGATE_SCRIPT",
    "RUBY_EXE",
    "RubyInfo",
    "normalize_arch",
    "normalize_os",
]
