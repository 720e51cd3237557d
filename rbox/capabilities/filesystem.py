"""Filesystem, mount and partition-table capabilities.

The runtime never mounts block devices or parses partition tables itself.
Hosts inject a :class:`Mounter` and a :data:`PartitionReader`; the defaults
shipped here refuse with :class:`~rbox.exceptions.ResourceError` so a script
that needs them fails loudly instead of silently touching the host.

:class:`RootedFilesystem` is the filesystem view used for both the host
(root ``/``) and for mounted images (root = mountpoint).  All paths handed
to it are interpreted relative to its root and may not escape it.
"""

from __future__ import annotations

import errno
import logging
import os
import shutil
import stat
from collections.abc import Callable, Sequence
from pathlib import Path
from typing import Protocol, runtime_checkable

from pydantic import BaseModel, Field

from rbox.exceptions import ResourceError

__all__ = [
    "PARTITION_TYPE_NAMES",
    "Filesystem",
    "Mounter",
    "PartitionReader",
    "PartitionRecord",
    "RootedFilesystem",
    "UnavailableMounter",
    "unavailable_partition_reader",
]

logger = logging.getLogger(__name__)

PARTITION_TYPE_NAMES: dict[int, str] = {
    0x0C: "FAT32-LBA",
    0x83: "Native Linux",
}


class PartitionRecord(BaseModel):
    """One primary partition entry of a disk image."""

    model_config = {"frozen": True}

    index: int = Field(ge=0)
    type: int = Field(ge=0, le=0xFF)
    type_name: str = ""
    bootable: bool = False
    empty: bool = False
    lba_start: int = Field(default=0, ge=0)
    lba_length: int = Field(default=0, ge=0)

    @classmethod
    def from_entry(
        cls, index: int, type_code: int, *, bootable: bool, lba_start: int, lba_length: int
    ) -> PartitionRecord:
        return cls(
            index=index,
            type=type_code,
            type_name=PARTITION_TYPE_NAMES.get(type_code, ""),
            bootable=bootable,
            empty=type_code == 0,
            lba_start=lba_start,
            lba_length=lba_length,
        )


@runtime_checkable
class Filesystem(Protocol):
    """File operations on a rooted tree, released by :meth:`close`."""

    @property
    def root(self) -> Path: ...

    def stat(self, path: str) -> os.stat_result: ...

    def lstat(self, path: str) -> os.stat_result: ...

    def read(self, path: str) -> bytes: ...

    def write(self, path: str, data: bytes, mode: int) -> None: ...

    def mkdir(self, path: str, mode: int = 0o755) -> None: ...

    def remove(self, path: str) -> None: ...

    def remove_all(self, path: str) -> None: ...

    def chmod(self, path: str, mode: int) -> None: ...

    def chown(self, path: str, uid: int, gid: int) -> None: ...

    def symlink(self, target: str, path: str) -> None: ...

    def copy_into(self, system_path: str, path: str) -> None: ...

    def close(self) -> None: ...


class Mounter(Protocol):
    def mount(
        self, image: str, fs_type: str, offset: int, size: int, *, resize: bool = False
    ) -> Filesystem: ...


PartitionReader = Callable[[str], Sequence[PartitionRecord]]

# Same limit as Linux path resolution.
_MAX_SYMLINK_HOPS = 40


def _components(path: str) -> list[str]:
    return [part for part in path.split("/") if part not in ("", ".")]


class RootedFilesystem:
    """A :class:`Filesystem` over a host directory.

    Parameters
    ----------
    root:
        Directory that script paths are resolved against.
    on_close:
        Called once by :meth:`close`, typically to unmount *root*.
    """

    __slots__ = ("_closed", "_on_close", "_root")

    def __init__(self, root: Path | str, on_close: Callable[[], None] | None = None) -> None:
        self._root = Path(root)
        self._on_close = on_close
        self._closed = False

    @property
    def root(self) -> Path:
        return self._root

    @property
    def closed(self) -> bool:
        return self._closed

    def resolve(self, path: str, *, follow: bool = True) -> Path:
        """Map a script path onto the host as if *root* were ``/``.

        Symlinks met on the way are resolved inside the root, so an absolute
        link target names a file in the image rather than on the host.  The
        last component is left as-is when *follow* is false.

        Raises
        ------
        PermissionError
            If ``..`` would climb above the root.
        OSError
            With ``ELOOP`` after too many symlink hops.
        """
        pending = _components(path)
        resolved: list[str] = []
        hops = 0
        while pending:
            name = pending.pop(0)
            if name == "..":
                if not resolved:
                    msg = f"path {path!r} escapes {self._root}"
                    raise PermissionError(msg)
                resolved.pop()
                continue
            candidate = self._root.joinpath(*resolved, name)
            if (pending or follow) and candidate.is_symlink():
                hops += 1
                if hops > _MAX_SYMLINK_HOPS:
                    raise OSError(errno.ELOOP, os.strerror(errno.ELOOP), path)
                target = os.readlink(candidate)
                if target.startswith("/"):
                    resolved = []
                pending = _components(target) + pending
                continue
            resolved.append(name)
        return self._root.joinpath(*resolved)

    def stat(self, path: str) -> os.stat_result:
        return os.stat(self.resolve(path))

    def lstat(self, path: str) -> os.stat_result:
        return os.lstat(self.resolve(path, follow=False))

    def read(self, path: str) -> bytes:
        return self.resolve(path).read_bytes()

    def write(self, path: str, data: bytes, mode: int) -> None:
        target = self.resolve(path)
        fd = os.open(target, os.O_WRONLY | os.O_CREAT | os.O_TRUNC | os.O_NOFOLLOW, mode)
        with os.fdopen(fd, "wb") as fh:
            fh.write(data)
        os.chmod(target, mode)

    def mkdir(self, path: str, mode: int = 0o755) -> None:
        os.mkdir(self.resolve(path), mode)

    def remove(self, path: str) -> None:
        target = self.resolve(path, follow=False)
        if target.is_dir() and not target.is_symlink():
            target.rmdir()
        else:
            target.unlink()

    def remove_all(self, path: str) -> None:
        target = self.resolve(path, follow=False)
        if target.is_dir() and not target.is_symlink():
            shutil.rmtree(target)
        elif target.exists() or target.is_symlink():
            target.unlink()

    def chmod(self, path: str, mode: int) -> None:
        os.chmod(self.resolve(path), mode)

    def chown(self, path: str, uid: int, gid: int) -> None:
        os.chown(self.resolve(path), uid, gid)

    def symlink(self, target: str, path: str) -> None:
        os.symlink(target, self.resolve(path, follow=False))

    def copy_into(self, system_path: str, path: str) -> None:
        target = self.resolve(path)
        shutil.copyfile(system_path, target)
        os.chmod(target, stat.S_IMODE(os.stat(system_path).st_mode))

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        if self._on_close is not None:
            self._on_close()
        logger.debug("Released filesystem rooted at %s", self._root)

    def __repr__(self) -> str:
        return f"RootedFilesystem(root={str(self._root)!r}, closed={self._closed})"


class UnavailableMounter:
    """Mounter used when the host did not inject one."""

    def mount(
        self, image: str, fs_type: str, offset: int, size: int, *, resize: bool = False
    ) -> Filesystem:
        raise ResourceError(f"mount {fs_type}", f"no mount capability configured for {image}")


def unavailable_partition_reader(image: str) -> Sequence[PartitionRecord]:
    raise ResourceError("read partitions", f"no partition reader configured for {image}")
