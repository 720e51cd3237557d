"""Init-system capability: installing and enabling systemd units on an image."""

from __future__ import annotations

import logging
import posixpath
import stat
from typing import TYPE_CHECKING, Protocol

if TYPE_CHECKING:
    from rbox.capabilities.filesystem import Filesystem
    from rbox.conf.sysd import Unit

__all__ = [
    "SYSTEM_UNIT_DIR",
    "LOCAL_UNIT_DIR",
    "InitSystem",
    "SystemdInstaller",
    "UnitNotInstalledError",
]

logger = logging.getLogger(__name__)

SYSTEM_UNIT_DIR = "/lib/systemd/system"
LOCAL_UNIT_DIR = "/etc/systemd/system"


class UnitNotInstalledError(FileNotFoundError):
    def __init__(self, unit: str) -> None:
        super().__init__(f"cannot perform action on uninstalled unit {unit}")
        self.unit = unit


class InitSystem(Protocol):
    def exists(self, name: str) -> bool: ...

    def install(self, name: str, unit: Unit, overwrite: bool = False) -> None: ...

    def is_enabled_on_target(self, name: str, target: str) -> bool: ...

    def enable_on_target(self, name: str, target: str) -> None: ...


class SystemdInstaller:
    """systemd unit layout over a mounted image.

    Units live in ``/lib/systemd/system``; a unit is enabled on a target when
    ``<target>.wants/<unit>`` is a symlink under either ``/etc/systemd/system``
    or ``/lib/systemd/system``.  All methods raise ``OSError`` subclasses.
    """

    __slots__ = ("_fs",)

    def __init__(self, fs: Filesystem) -> None:
        self._fs = fs

    def exists(self, name: str) -> bool:
        try:
            self._fs.stat(posixpath.join(SYSTEM_UNIT_DIR, name))
        except FileNotFoundError:
            return False
        return True

    def install(self, name: str, unit: Unit, overwrite: bool = False) -> None:
        path = posixpath.join(SYSTEM_UNIT_DIR, name)
        if self.exists(name) and not overwrite:
            raise FileExistsError(f"unit already installed: {path}")
        self._fs.write(path, unit.render().encode(), 0o644)
        logger.info("Installed unit %s", path)

    def is_enabled_on_target(self, name: str, target: str) -> bool:
        for base in (LOCAL_UNIT_DIR, SYSTEM_UNIT_DIR):
            wants = posixpath.join(base, f"{target}.wants")
            try:
                st = self._fs.lstat(posixpath.join(wants, name))
            except FileNotFoundError:
                continue
            if not stat.S_ISLNK(st.st_mode):
                raise OSError(f"expected symlink on {wants}")
            return True
        return False

    def enable_on_target(self, name: str, target: str) -> None:
        if self.is_enabled_on_target(name, target):
            return
        if not self.exists(name):
            raise UnitNotInstalledError(name)

        wants = posixpath.join(LOCAL_UNIT_DIR, f"{target}.wants")
        try:
            self._fs.lstat(wants)
        except FileNotFoundError:
            self._fs.mkdir(wants, 0o755)
        self._fs.symlink(posixpath.join(SYSTEM_UNIT_DIR, name), posixpath.join(wants, name))
        logger.info("Enabled unit %s on %s", name, target)
