"""Merge installed rubies with the release catalog into the list shown to users."""

from __future__ import annotations

import logging
import os
import platform
import re
from dataclasses import dataclass
from functools import cmp_to_key
from typing import TYPE_CHECKING, Final

from ._errors import ParseError
from ._ruby_info import RubyInfo
from ._version import DEFAULT_ORDERING, engine_sort_key

if TYPE_CHECKING:
    from collections.abc import Iterable, Mapping, Sequence

    from ._catalog import Asset, Release
    from ._version import VersionOrdering

_LOGGER: Final[logging.Logger] = logging.getLogger(__name__)

_ARCH_RE: Final[re.Pattern[str]] = re.compile(r"\.(?P<arch>[a-zA-Z0-9_]+)\.tar\.gz$")
ASSET_SUFFIXES: Final[tuple[str, ...]] = (
    ".arm64_linux.tar.gz",
    ".arm64_sonoma.tar.gz",
    ".x86_64_linux.tar.gz",
    ".ventura.tar.gz",
)
_ARCH_PLATFORMS: Final[dict[str, tuple[str, str]]] = {
    "arm64_sonoma": ("macos", "aarch64"),
    "x86_64_linux": ("linux", "x86_64"),
    "arm64_linux": ("linux", "aarch64"),
}
_TARGET_ARCH: Final[dict[str, str]] = {
    "aarch64-apple-darwin": "arm64_sonoma",
    "x86_64-unknown-linux-gnu": "x86_64_linux",
    "aarch64-unknown-linux-gnu": "arm64_linux",
}
UNSUPPORTED_PLATFORM: Final[str] = "unsupported"


@dataclass(frozen=True)
class RubyEntry:
    """A ruby as presented to the user: where it comes from and whether the project uses it."""

    details: RubyInfo
    installed: bool
    active: bool

    def to_dict(self) -> dict[str, object]:
        return {**self.details.to_dict(), "installed": self.installed, "active": self.active}


def parse_arch_str(arch_str: str) -> tuple[str, str]:
    """OS and architecture of an archive's architecture token (e.g. ``arm64_linux``)."""
    return _ARCH_PLATFORMS.get(arch_str, ("unknown", "unknown"))


def host_target() -> str:
    """Target triple of the running host in the form release archives are published for."""
    system, machine = platform.system().lower(), platform.machine().lower()
    machine = {"arm64": "aarch64", "amd64": "x86_64"}.get(machine, machine)
    if system == "darwin":
        return f"{machine}-apple-darwin"
    if system == "linux":
        return f"{machine}-unknown-linux-gnu"
    return f"{machine}-{system}"


def current_platform_arch_str(env: Mapping[str, str] | None = None) -> str:
    env = os.environ if env is None else env
    target = env.get("RV_TEST_PLATFORM") or host_target()
    return _TARGET_ARCH.get(target, UNSUPPORTED_PLATFORM)


def ruby_from_asset(asset: Asset, ordering: VersionOrdering | None = None) -> RubyInfo:
    """Describe a release archive as a (not installed) ruby; raises :class:`ParseError` for unknown names."""
    ordering = DEFAULT_ORDERING if ordering is None else ordering
    name = asset.name
    for suffix in ASSET_SUFFIXES:
        name = name.removesuffix(suffix)
    version = ordering.parse(name)
    match = _ARCH_RE.search(asset.name)
    os_name, arch = parse_arch_str(match["arch"] if match else "unknown")
    return RubyInfo(
        key=f"{version}-{os_name}-{arch}",
        version=version,
        path=asset.browser_download_url,
        symlink=None,
        os=os_name,
        arch=arch,
        gem_root=None,
    )


def _group_order(key: tuple[str, int | None, int | None]) -> tuple[object, ...]:
    engine, major, minor = key
    return engine_sort_key(engine), -1 if major is None else major, -1 if minor is None else minor


def latest_patch_version(rubies: Iterable[RubyInfo], ordering: VersionOrdering | None = None) -> list[RubyInfo]:
    """Keep only the newest ruby of every engine, major and minor combination."""
    ordering = DEFAULT_ORDERING if ordering is None else ordering
    available: dict[tuple[str, int | None, int | None], RubyInfo] = {}
    for ruby in rubies:
        key = ruby.version.group_key
        other = available.get(key)
        if other is None or ordering.compare(other.version, ruby.version) <= 0:
            available[key] = ruby
    return [available[key] for key in sorted(available, key=_group_order)]


def _superseded(candidate: RubyInfo, installed_rubies: Sequence[RubyInfo], ordering: VersionOrdering) -> bool:
    """Whether an installed ruby of the same engine, major and minor is at least as new as *candidate*.

    Hides an older catalog patch such as 3.4.0 once 3.4.1 is installed; a newer catalog patch is still listed.
    """
    key = candidate.version.group_key
    return any(
        ruby.version.group_key == key and ordering.compare(ruby.version, candidate.version) >= 0
        for ruby in installed_rubies
    )


def rubies_to_show(
    release: Release,
    installed_rubies: Sequence[RubyInfo],
    active_ruby: RubyInfo | None,
    current_platform: str,
    ordering: VersionOrdering | None = None,
) -> list[RubyEntry]:
    """Merge installed rubies with the catalog's newest patch releases for *current_platform*.

    Installed rubies are always listed. A catalog ruby is added only when no installed ruby has its display name and
    no installed ruby of the same engine, major and minor is at least as new.
    """
    ordering = DEFAULT_ORDERING if ordering is None else ordering
    by_version = cmp_to_key(ordering.compare)
    # several installations may share a display name, e.g. the same version at two paths
    groups: dict[str, list[RubyInfo]] = {}
    for ruby in installed_rubies:
        groups.setdefault(ruby.display_name, []).append(ruby)

    desired = _ARCH_PLATFORMS.get(current_platform)
    for_platform: list[RubyInfo] = []
    for asset in release.assets:
        try:
            ruby = ruby_from_asset(asset, ordering)
        except ParseError:
            _LOGGER.debug("skipping release asset %s", asset.name)
            continue
        if desired is not None and (ruby.os, ruby.arch) == desired:
            for_platform.append(ruby)
    available = latest_patch_version(for_platform, ordering)
    _LOGGER.debug("found %d available rubies for platform %s", len(available), current_platform)

    for ruby in available:
        if ruby.display_name in groups or _superseded(ruby, installed_rubies, ordering):
            continue
        groups[ruby.display_name] = [ruby]

    return [
        RubyEntry(details=ruby, installed=not ruby.is_remote, active=active_ruby is not None and active_ruby == ruby)
        for group in sorted(groups.values(), key=lambda rubies: by_version(rubies[0].version))
        for ruby in group
    ]


__all__ = [
    "ASSET_SUFFIXES",
    "UNSUPPORTED_PLATFORM",
    "RubyEntry",
    "current_platform_arch_str",
    "host_target",
    "latest_patch_version",
    "parse_arch_str",
    "ruby_from_asset",
    "rubies_to_show",
]
