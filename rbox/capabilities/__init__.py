"""Host capabilities consumed by script builtins."""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field

from rbox.capabilities.filesystem import (
    PARTITION_TYPE_NAMES,
    Filesystem,
    Mounter,
    PartitionReader,
    PartitionRecord,
    RootedFilesystem,
    UnavailableMounter,
    unavailable_partition_reader,
)
from rbox.capabilities.initsys import InitSystem, SystemdInstaller, UnitNotInstalledError

__all__ = [
    "PARTITION_TYPE_NAMES",
    "Capabilities",
    "Filesystem",
    "InitSystem",
    "Mounter",
    "PartitionReader",
    "PartitionRecord",
    "RootedFilesystem",
    "SystemdInstaller",
    "UnavailableMounter",
    "UnitNotInstalledError",
    "unavailable_partition_reader",
]


@dataclass(slots=True)
class Capabilities:
    """Everything a script can reach outside its own memory.

    Attributes:
        host_fs: Filesystem behind the top-level ``fs.exists``/``cat``/``stat``.
        mounter: Mounts image partitions for ``fs.mnt_ext4``/``fs.mnt_vfat``.
        partition_reader: Backs ``fs.read_partitions``.
        init_system: Builds the installer bound to a mounted filesystem.
        sector_size: Bytes per LBA sector.
    """

    host_fs: Filesystem = field(default_factory=lambda: RootedFilesystem("/"))
    mounter: Mounter = field(default_factory=UnavailableMounter)
    partition_reader: PartitionReader = unavailable_partition_reader
    init_system: Callable[[Filesystem], InitSystem] = SystemdInstaller
    sector_size: int = 512
