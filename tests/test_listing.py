from __future__ import annotations

import io
import json
from typing import TYPE_CHECKING

import httpx
import pytest

from ruby_discovery import Asset, CachedRelease, Config, NoOpCache, Release, list_rubies
from ruby_discovery._listing import format_ruby_entry, print_entries

if TYPE_CHECKING:
    from pathlib import Path

    from conftest import MakeRuby
    from ruby_discovery import DiskCache

DOWNLOAD_URL = "https://github.com/spinel-coop/rv-ruby/releases/download/20250913"
LINUX = {"RV_TEST_PLATFORM": "x86_64-unknown-linux-gnu"}


def _asset(version: str) -> Asset:
    name = f"ruby-{version}.x86_64_linux.tar.gz"
    return Asset(name=name, browser_download_url=f"{DOWNLOAD_URL}/{name}")


def _release_body(*versions: str) -> dict[str, object]:
    return Release(name="20250913", assets=tuple(_asset(v) for v in versions)).to_dict()


def _client(response: httpx.Response) -> httpx.Client:
    return httpx.Client(transport=httpx.MockTransport(lambda _: response))


@pytest.fixture
def config(tmp_path: Path, make_ruby: MakeRuby, disk_cache: DiskCache) -> Config:
    make_ruby(tmp_path / "rubies" / "ruby-3.3.0")
    make_ruby(tmp_path / "rubies" / "ruby-3.4.1")
    project = tmp_path / "project"
    project.mkdir()
    (project / ".ruby-version").write_text("3.3.0\n", encoding="utf-8")
    return Config(
        ruby_dirs=[tmp_path / "rubies"],
        cache=disk_cache,
        current_dir=project,
        project_dir=project,
        env=LINUX,
    )


def test_list_text(config: Config, tmp_path: Path) -> None:
    stream = io.StringIO()
    client = _client(httpx.Response(200, json=_release_body("3.4.1", "3.5.0", "3.2.9")))

    entries = list_rubies(config, stream=stream, client=client)

    assert [entry.details.display_name for entry in entries] == ["ruby-3.2.9", "ruby-3.3.0", "ruby-3.4.1", "ruby-3.5.0"]
    rubies = tmp_path / "rubies"
    assert stream.getvalue().splitlines() == [
        "  ruby-3.2.9 [available]",
        f"* ruby-3.3.0 [installed] {rubies / 'ruby-3.3.0' / 'bin' / 'ruby'}",
        f"  ruby-3.4.1 [installed] {rubies / 'ruby-3.4.1' / 'bin' / 'ruby'}",
        "  ruby-3.5.0 [available]",
    ]


def test_list_json(config: Config) -> None:
    stream = io.StringIO()
    client = _client(httpx.Response(200, json=_release_body("3.5.0")))

    list_rubies(config, "json", stream=stream, client=client)

    listed = json.loads(stream.getvalue())
    assert [(i["version"], i["installed"], i["active"]) for i in listed] == [
        ("ruby-3.3.0", True, True),
        ("ruby-3.4.1", True, False),
        ("ruby-3.5.0", False, False),
    ]
    assert listed[2]["path"] == f"{DOWNLOAD_URL}/ruby-3.5.0.x86_64_linux.tar.gz"
    assert listed[2]["key"] == "ruby-3.5.0-linux-x86_64"


def test_list_installed_only(config: Config) -> None:
    stream = io.StringIO()
    client = _client(httpx.Response(500))

    entries = list_rubies(config, installed_only=True, stream=stream, client=client)

    assert [(entry.details.display_name, entry.active) for entry in entries] == [
        ("ruby-3.3.0", True),
        ("ruby-3.4.1", False),
    ]
    assert "[available]" not in stream.getvalue()


def test_list_installed_only_none_found(tmp_path: Path, caplog: pytest.LogCaptureFixture) -> None:
    stream = io.StringIO()
    config = Config(ruby_dirs=[tmp_path / "missing"], cache=NoOpCache(), current_dir=tmp_path, env=LINUX)

    assert list_rubies(config, installed_only=True, stream=stream) == []

    assert stream.getvalue() == ""
    assert "No Ruby installations found." in caplog.text


def test_list_installed_only_none_found_json(tmp_path: Path) -> None:
    stream = io.StringIO()
    config = Config(ruby_dirs=[tmp_path / "missing"], cache=NoOpCache(), current_dir=tmp_path, env=LINUX)

    assert list_rubies(config, "json", installed_only=True, stream=stream) == []

    assert json.loads(stream.getvalue()) == []


def test_list_falls_back_to_stale_cache(
    config: Config,
    disk_cache: DiskCache,
    caplog: pytest.LogCaptureFixture,
) -> None:
    stale = Release(name="old", assets=(_asset("3.5.0"),))
    disk_cache.releases().write(CachedRelease(expires_at=0, etag='"old"', release=stale).to_dict())
    stream = io.StringIO()

    entries = list_rubies(config, stream=stream, client=_client(httpx.Response(500)))

    assert [(entry.details.display_name, entry.installed) for entry in entries] == [
        ("ruby-3.3.0", True),
        ("ruby-3.4.1", True),
        ("ruby-3.5.0", False),
    ]
    assert "Could not fetch or re-validate available Ruby versions" in caplog.text
    assert "Displaying stale list of available rubies from cache." in caplog.text


def test_list_with_unwritable_release_cache(config: Config, disk_cache: DiskCache) -> None:
    bucket = disk_cache.root / "ruby" / "releases"
    bucket.parent.mkdir(parents=True)
    bucket.write_text("", encoding="utf-8")
    stream = io.StringIO()

    list_rubies(config, "json", stream=stream, client=_client(httpx.Response(200, json=_release_body("3.5.0"))))

    listed = json.loads(stream.getvalue())
    assert [(i["version"], i["installed"]) for i in listed] == [
        ("ruby-3.3.0", True),
        ("ruby-3.4.1", True),
        ("ruby-3.5.0", False),
    ]


def test_list_without_catalog_shows_installed(config: Config, caplog: pytest.LogCaptureFixture) -> None:
    stream = io.StringIO()

    entries = list_rubies(config, stream=stream, client=_client(httpx.Response(503)))

    assert [entry.installed for entry in entries] == [True, True]
    assert "Displaying stale list" not in caplog.text


def test_list_protocol_violation_is_logged(config: Config, caplog: pytest.LogCaptureFixture) -> None:
    entries = list_rubies(config, stream=io.StringIO(), client=_client(httpx.Response(304)))

    assert [entry.installed for entry in entries] == [True, True]
    assert any(
        record.levelname == "ERROR" and "304 response without prior cache" in record.getMessage()
        for record in caplog.records
    )


def test_list_nothing_for_platform(tmp_path: Path, caplog: pytest.LogCaptureFixture) -> None:
    stream = io.StringIO()
    env = {"RV_TEST_PLATFORM": "x86_64-pc-windows-msvc"}
    config = Config(ruby_dirs=[tmp_path / "missing"], cache=NoOpCache(), current_dir=tmp_path, env=env)

    entries = list_rubies(config, stream=stream, client=_client(httpx.Response(200, json=_release_body("3.5.0"))))

    assert entries == []
    assert stream.getvalue() == ""
    assert "No rubies found for your platform." in caplog.text


def test_list_no_network(config: Config) -> None:
    config.env = {**LINUX, "RV_RELEASES_URL": "-"}
    entries = list_rubies(config, stream=io.StringIO())
    assert [entry.details.display_name for entry in entries] == ["ruby-3.3.0", "ruby-3.4.1"]


def test_print_entries_unknown_format() -> None:
    with pytest.raises(ValueError, match="unknown output format 'yaml'"):
        print_entries([], "yaml", io.StringIO())  # type: ignore[arg-type]


def test_format_ruby_entry_pads_name(config: Config) -> None:
    entries = list_rubies(config, installed_only=True, stream=io.StringIO())
    assert format_ruby_entry(entries[1], 16).startswith("  ruby-3.4.1" + " " * 7 + "[installed] ")
