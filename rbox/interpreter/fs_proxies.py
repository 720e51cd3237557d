"""Mounted-filesystem proxy and the ``fs`` namespace."""

from __future__ import annotations

import logging
import os
import stat as stat_mod
from enum import Enum
from typing import TYPE_CHECKING, Any

from rbox.capabilities.filesystem import PartitionRecord
from rbox.exceptions import ResourceError, TypeMismatchError
from rbox.interpreter.proxy import Proxy
from rbox.interpreter.values import (
    Builtin,
    Struct,
    expect_bool,
    expect_int,
    expect_str,
    expect_uint,
    kind_of,
)

if TYPE_CHECKING:
    from collections.abc import Callable

    from rbox.capabilities import Capabilities, Filesystem
    from rbox.interpreter.resources import ResourceRegistry

__all__ = ["FSMountProxy", "MountKind", "fs_namespace", "stat_struct"]

logger = logging.getLogger(__name__)

PERMISSIONS = {
    "set_uid": stat_mod.S_ISUID,
    "set_gid": stat_mod.S_ISGID,
    "sticky": stat_mod.S_ISVTX,
    "user_r": stat_mod.S_IRUSR,
    "user_w": stat_mod.S_IWUSR,
    "user_x": stat_mod.S_IXUSR,
    "group_r": stat_mod.S_IRGRP,
    "group_w": stat_mod.S_IWGRP,
    "group_x": stat_mod.S_IXGRP,
    "other_r": stat_mod.S_IROTH,
    "other_w": stat_mod.S_IWOTH,
    "other_x": stat_mod.S_IXOTH,
    "default": 0o755,
}


class MountKind(Enum):
    EXT4 = "Ext4"
    VFAT = "VFAT"


def stat_struct(lookup: Callable[[str], os.stat_result], path: str) -> Struct:
    """Stat *path*, reporting failure in the result rather than raising."""
    try:
        st = lookup(path)
    except OSError as exc:
        return Struct(
            {
                "success": False,
                "error": str(exc),
                "not_exists": isinstance(exc, FileNotFoundError),
            }
        )
    return Struct(
        {
            "success": True,
            "error": False,
            "not_exists": False,
            "name": os.path.basename(path.rstrip("/")) or "/",
            "size": st.st_size,
            "dir": stat_mod.S_ISDIR(st.st_mode),
            "symlink": stat_mod.S_ISLNK(st.st_mode),
            "mode": stat_mod.S_IMODE(st.st_mode),
            "uid": st.st_uid,
            "gid": st.st_gid,
        }
    )


def partition_struct(record: PartitionRecord) -> Struct:
    return Struct(
        {
            "index": record.index,
            "type": record.type,
            "type_name": record.type_name,
            "bootable": record.bootable,
            "empty": record.empty,
            "lba": Struct({"start": record.lba_start, "length": record.lba_length}),
        }
    )


class FSMountProxy(Proxy):
    """A mounted partition of an image, closed by the script's resource registry."""

    __slots__ = ("_image", "kind")

    READABLE = ("base",)
    METHODS = (
        "cat",
        "exists",
        "stat",
        "lstat",
        "mkdir",
        "write",
        "remove",
        "remove_all",
        "chmod",
        "chown",
        "symlink",
        "copy_into",
    )

    native: Filesystem

    def __init__(self, filesystem: Filesystem, kind: MountKind, image: str = "") -> None:
        super().__init__(filesystem)
        self.kind = kind
        self._image = image

    @property
    def type_name(self) -> str:
        return f"fs.{self.kind.value}Mount"

    @property
    def filesystem(self) -> Filesystem:
        return self.native

    @property
    def closed(self) -> bool:
        return bool(getattr(self.native, "closed", False))

    def render(self) -> str:
        return f"{self.type_name}{{{self._image}@{self.native.root}}}"

    def get_field(self, name: str) -> Any:
        if name == "base":
            return str(self.native.root)
        return super().get_field(name)

    def _call(self, op: str, path: str, fn: Callable[[], Any]) -> Any:
        if self.closed:
            raise ResourceError(f"{self.type_name}.{op} {path}", "filesystem is closed")
        try:
            return fn()
        except OSError as exc:
            raise ResourceError(f"{self.type_name}.{op} {path}", exc) from exc

    def _path(self, op: str, value: Any, label: str = "path") -> str:
        return expect_str(value, f"{self.type_name}.{op}: {label}")

    # -- script methods ------------------------------------------------------

    def cat(self, path: Any) -> str:
        path = self._path("cat", path)
        data = self._call("cat", path, lambda: self.native.read(path))
        return data.decode("utf-8", errors="surrogateescape")

    def exists(self, path: Any) -> bool:
        path = self._path("exists", path)

        def check() -> bool:
            try:
                self.native.lstat(path)
            except FileNotFoundError:
                return False
            return True

        return self._call("exists", path, check)

    def stat(self, path: Any) -> Struct:
        return stat_struct(self.native.stat, self._path("stat", path))

    def lstat(self, path: Any) -> Struct:
        return stat_struct(self.native.lstat, self._path("lstat", path))

    def mkdir(self, path: Any, mode: Any = 0o755) -> None:
        path = self._path("mkdir", path)
        mode = expect_uint(mode, f"{self.type_name}.mkdir: mode", 0o7777)
        self._call("mkdir", path, lambda: self.native.mkdir(path, mode))

    def write(self, path: Any, data: Any, mode: Any = 0o644) -> None:
        path = self._path("write", path)
        if isinstance(data, str):
            payload = data.encode("utf-8", errors="surrogateescape")
        elif isinstance(data, bytes):
            payload = data
        else:
            raise TypeMismatchError(f"{self.type_name}.write: data", "string or bytes", kind_of(data))
        mode = expect_uint(mode, f"{self.type_name}.write: mode", 0o7777)
        self._call("write", path, lambda: self.native.write(path, payload, mode))

    def remove(self, path: Any) -> None:
        path = self._path("remove", path)
        self._call("remove", path, lambda: self.native.remove(path))

    def remove_all(self, path: Any) -> None:
        path = self._path("remove_all", path)
        self._call("remove_all", path, lambda: self.native.remove_all(path))

    def chmod(self, path: Any, mode: Any) -> None:
        path = self._path("chmod", path)
        mode = expect_uint(mode, f"{self.type_name}.chmod: mode", 0o7777)
        self._call("chmod", path, lambda: self.native.chmod(path, mode))

    def chown(self, path: Any, uid: Any, gid: Any) -> None:
        path = self._path("chown", path)
        uid = expect_int(uid, f"{self.type_name}.chown: uid")
        gid = expect_int(gid, f"{self.type_name}.chown: gid")
        self._call("chown", path, lambda: self.native.chown(path, uid, gid))

    def symlink(self, target: Any, path: Any) -> None:
        target = self._path("symlink", target, "target")
        path = self._path("symlink", path)
        self._call("symlink", path, lambda: self.native.symlink(target, path))

    def copy_into(self, system_path: Any, path: Any) -> None:
        system_path = self._path("copy_into", system_path, "system_path")
        path = self._path("copy_into", path)
        self._call("copy_into", path, lambda: self.native.copy_into(system_path, path))

    # -- resource ------------------------------------------------------------

    def close(self) -> None:
        if self.closed:
            return
        try:
            self.native.close()
        except OSError as exc:
            raise ResourceError(f"close {self.type_name}", exc) from exc


# ---------------------------------------------------------------------------
# Namespace
# ---------------------------------------------------------------------------


def fs_namespace(capabilities: Capabilities, registry: ResourceRegistry) -> Struct:
    """Build the ``fs`` namespace.

    Mount constructors register the new proxy with *registry* before handing
    it to the script, so it is released even if the script fails right after.
    """
    host = capabilities.host_fs
    sector = capabilities.sector_size

    def exists(path: Any) -> bool:
        path = expect_str(path, "fs.exists: path")
        try:
            host.stat(path)
        except FileNotFoundError:
            return False
        except OSError as exc:
            raise ResourceError(f"fs.exists {path}", exc) from exc
        return True

    def cat(path: Any) -> str:
        path = expect_str(path, "fs.cat: path")
        try:
            return host.read(path).decode("utf-8", errors="surrogateescape")
        except OSError as exc:
            raise ResourceError(f"fs.cat {path}", exc) from exc

    def stat(path: Any) -> Struct:
        return stat_struct(host.stat, expect_str(path, "fs.stat: path"))

    def read_partitions(image: Any) -> list[Struct]:
        image = expect_str(image, "fs.read_partitions: image")
        try:
            records = capabilities.partition_reader(image)
        except ResourceError:
            raise
        except OSError as exc:
            raise ResourceError(f"read partitions of {image}", exc) from exc
        return [partition_struct(r) for r in records]

    def mount(kind: MountKind, fs_type: str, image: Any, partition: Any, resize: Any) -> FSMountProxy:
        fn = f"fs.mnt_{fs_type}"
        image = expect_str(image, f"{fn}: image")
        if not isinstance(partition, Struct):
            raise TypeMismatchError(f"{fn}: partition", "struct", kind_of(partition))
        lba = partition.attr("lba")
        if not isinstance(lba, Struct):
            raise TypeMismatchError(f"{fn}: partition.lba", "struct", kind_of(lba))
        offset = expect_uint(lba.attr("start"), f"{fn}: partition.lba.start") * sector
        size = expect_uint(lba.attr("length"), f"{fn}: partition.lba.length") * sector
        resize = expect_bool(resize, f"{fn}: resize")
        try:
            filesystem = capabilities.mounter.mount(image, fs_type, offset, size, resize=resize)
        except ResourceError:
            raise
        except OSError as exc:
            raise ResourceError(f"mount {fs_type} from {image}", exc) from exc
        proxy = registry.register(FSMountProxy(filesystem, kind, image))
        logger.debug("Mounted %s partition of %s at offset %d", fs_type, image, offset)
        return proxy

    def mnt_ext4(image: Any, partition: Any, resize: Any = False) -> FSMountProxy:
        return mount(MountKind.EXT4, "ext4", image, partition, resize)

    def mnt_vfat(image: Any, partition: Any) -> FSMountProxy:
        return mount(MountKind.VFAT, "vfat", image, partition, False)

    return Struct(
        {
            "exists": Builtin("exists", exists),
            "cat": Builtin("cat", cat),
            "stat": Builtin("stat", stat),
            "read_partitions": Builtin("read_partitions", read_partitions),
            "mnt_ext4": Builtin("mnt_ext4", mnt_ext4),
            "mnt_vfat": Builtin("mnt_vfat", mnt_vfat),
            "enums": Struct(
                {"partitions": Struct({"FAT32_LBA": 0x0C, "NATIVE_LINUX": 0x83}, "fs.enums.partitions")},
                "fs.enums",
            ),
            "perms": Struct(PERMISSIONS, "fs.perms"),
        },
        "fs",
    )
