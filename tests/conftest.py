from __future__ import annotations

import json
import shlex
from typing import TYPE_CHECKING, Protocol

import pytest

from ruby_discovery import DiskCache

if TYPE_CHECKING:
    from collections.abc import Callable
    from pathlib import Path


class MakeRuby(Protocol):
    def __call__(
        self,
        install_dir: Path,
        *,
        version: str = ...,
        engine: str = ...,
        host_os: str = ...,
        host_cpu: str = ...,
        exit_code: int = ...,
        output: str | None = ...,
    ) -> Path: ...


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch: pytest.MonkeyPatch) -> None:
    for name in ("RUBIES_PATH", "RV_ROOT_DIR", "RV_CACHE_DIR", "RV_NO_CACHE", "RV_RELEASES_URL", "RV_TEST_PLATFORM"):
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def disk_cache(tmp_path: Path) -> DiskCache:
    return DiskCache(tmp_path / "cache")


@pytest.fixture
def make_ruby() -> MakeRuby:
    """Create an installation whose ``bin/ruby`` is a shell script printing a canned interrogation report.

    Every run of the script appends a line to ``probes.log`` in the installation directory.
    """

    def _make(  # noqa: PLR0913
        install_dir: Path,
        *,
        version: str = "3.3.0",
        engine: str = "ruby",
        host_os: str = "linux-gnu",
        host_cpu: str = "x86_64",
        exit_code: int = 0,
        output: str | None = None,
    ) -> Path:
        if output is None:
            report = {
                "engine": engine,
                "version": version,
                "host_os": host_os,
                "host_cpu": host_cpu,
                "gem_root": str(install_dir / "lib" / "ruby" / "gems"),
            }
            output = json.dumps(report)
        exe = install_dir / "bin" / "ruby"
        exe.parent.mkdir(parents=True, exist_ok=True)
        exe.write_text(
            "#!/bin/sh\n"
            f"echo probed >> {shlex.quote(str(install_dir / 'probes.log'))}\n"
            f"printf '%s' {shlex.quote(output)}\n"
            f"exit {exit_code}\n",
            encoding="utf-8",
        )
        exe.chmod(0o755)
        return install_dir

    return _make


@pytest.fixture
def probe_count() -> Callable[[Path], int]:
    def _count(install_dir: Path) -> int:
        log = install_dir / "probes.log"
        return len(log.read_text(encoding="utf-8").splitlines()) if log.exists() else 0

    return _count
