"""Shared fixtures for the rbox test suite."""

from __future__ import annotations

import textwrap
from pathlib import Path
from typing import TYPE_CHECKING, Any

import pytest

from rbox.capabilities import Capabilities, PartitionRecord, RootedFilesystem
from rbox.interpreter import MappingResolver, Script, ScriptOptions

if TYPE_CHECKING:
    from collections.abc import Callable

# Partition layout of a stock Raspberry Pi OS image.
PI_PARTITIONS = [
    PartitionRecord.from_entry(0, 0x0C, bootable=False, lba_start=8192, lba_length=89854),
    PartitionRecord.from_entry(1, 0x83, bootable=False, lba_start=98304, lba_length=3530752),
    PartitionRecord.from_entry(2, 0x00, bootable=False, lba_start=0, lba_length=0),
    PartitionRecord.from_entry(3, 0x00, bootable=False, lba_start=0, lba_length=0),
]


class FakeMounter:
    """Mounter that hands out directories instead of loop-mounting partitions."""

    def __init__(self, roots: dict[str, Path]) -> None:
        self.roots = roots
        self.calls: list[tuple[str, str, int, int, bool]] = []
        self.mounted: list[RootedFilesystem] = []

    def mount(self, image: str, fs_type: str, offset: int, size: int, *, resize: bool = False) -> RootedFilesystem:
        self.calls.append((image, fs_type, offset, size, resize))
        fs = RootedFilesystem(self.roots[fs_type])
        self.mounted.append(fs)
        return fs


@pytest.fixture()
def repo_root() -> Path:
    """Return the repository root directory."""
    return Path(__file__).resolve().parent.parent


@pytest.fixture()
def image_dirs(tmp_path: Path) -> dict[str, Path]:
    """Directory trees standing in for the partitions of a Pi image."""
    ext4 = tmp_path / "ext4"
    fat = tmp_path / "fat"
    for d in (
        ext4 / "etc" / "systemd" / "system",
        ext4 / "lib" / "systemd" / "system",
        ext4 / "etc" / "wpa_supplicant",
        ext4 / "etc" / "init.d",
        fat,
    ):
        d.mkdir(parents=True, exist_ok=True)
    (ext4 / "etc" / "hostname").write_text("raspberrypi\n")
    (ext4 / "etc" / "hosts").write_text("127.0.0.1\tlocalhost\n127.0.1.1\traspberrypi\n")
    (fat / "cmdline.txt").write_text(
        "console=tty1 root=PARTUUID=1 rootwait init=/usr/lib/raspi-config/init_resize.sh\n"
    )
    return {"ext4": ext4, "vfat": fat}


@pytest.fixture()
def pi_partitions() -> list[PartitionRecord]:
    return list(PI_PARTITIONS)


@pytest.fixture()
def mounter(image_dirs: dict[str, Path]) -> FakeMounter:
    return FakeMounter(image_dirs)


@pytest.fixture()
def host_dir(tmp_path: Path) -> Path:
    host = tmp_path / "host"
    host.mkdir()
    return host


@pytest.fixture()
def capabilities(host_dir: Path, mounter: FakeMounter) -> Capabilities:
    return Capabilities(
        host_fs=RootedFilesystem(host_dir),
        mounter=mounter,
        partition_reader=lambda image: PI_PARTITIONS,
    )


@pytest.fixture()
def printed() -> list[str]:
    """Lines printed by scripts built with :func:`make_script`."""
    return []


@pytest.fixture()
def make_script(capabilities: Capabilities, printed: list[str]) -> Callable[..., Script]:
    """Build a Script from dedented source, with in-memory user modules."""

    def _make(
        source: str,
        *,
        identity: str = "test.box",
        modules: dict[str, str] | None = None,
        arguments: tuple[str, ...] = (),
        **options: Any,
    ) -> Script:
        opts = ScriptOptions(capabilities=capabilities, print_sink=printed.append, **options)
        resolver = MappingResolver({k: textwrap.dedent(v) for k, v in (modules or {}).items()})
        return Script(textwrap.dedent(source), identity, resolver, arguments, opts)

    return _make
