"""Tests for rbox.capabilities.initsys — systemd install/enable layout.

Test taxonomy
-------------
Install      unit written under /lib/systemd/system; overwrite guard
Enable       wants symlink created under /etc/systemd/system; idempotent
Query        enabled via local or system wants dir; non-symlink is an error
Errors       enabling an uninstalled unit
"""

from __future__ import annotations

import os
from pathlib import Path

import pytest

from rbox.capabilities import RootedFilesystem, SystemdInstaller, UnitNotInstalledError
from rbox.conf.sysd import Service, Unit

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


@pytest.fixture()
def root(tmp_path: Path) -> Path:
    (tmp_path / "lib" / "systemd" / "system").mkdir(parents=True)
    (tmp_path / "etc" / "systemd" / "system").mkdir(parents=True)
    return tmp_path


@pytest.fixture()
def installer(root: Path) -> SystemdInstaller:
    return SystemdInstaller(RootedFilesystem(root))


def _unit() -> Unit:
    unit = Unit(description="demo", wanted_by=["multi-user.target"])
    unit.adopt_service(Service(exec_start="/bin/true"))
    return unit


# ---------------------------------------------------------------------------
# Install
# ---------------------------------------------------------------------------


class TestInstall:
    def test_writes_rendered_unit(self, installer: SystemdInstaller, root: Path) -> None:
        installer.install("demo.service", _unit())
        path = root / "lib" / "systemd" / "system" / "demo.service"
        assert path.read_text() == _unit().render()
        assert path.stat().st_mode & 0o777 == 0o644
        assert installer.exists("demo.service")

    def test_refuses_overwrite(self, installer: SystemdInstaller) -> None:
        installer.install("demo.service", _unit())
        with pytest.raises(FileExistsError):
            installer.install("demo.service", _unit())

    def test_overwrite(self, installer: SystemdInstaller, root: Path) -> None:
        installer.install("demo.service", _unit())
        installer.install("demo.service", Unit(description="v2"), overwrite=True)
        assert "Description=v2" in (root / "lib" / "systemd" / "system" / "demo.service").read_text()

    def test_missing_unit(self, installer: SystemdInstaller) -> None:
        assert installer.exists("nope.service") is False


# ---------------------------------------------------------------------------
# Enable / query
# ---------------------------------------------------------------------------


class TestEnable:
    def test_creates_wants_symlink(self, installer: SystemdInstaller, root: Path) -> None:
        installer.install("demo.service", _unit())
        installer.enable_on_target("demo.service", "multi-user.target")
        link = root / "etc" / "systemd" / "system" / "multi-user.target.wants" / "demo.service"
        assert link.is_symlink()
        assert os.readlink(link) == "/lib/systemd/system/demo.service"
        assert installer.is_enabled_on_target("demo.service", "multi-user.target")

    def test_idempotent(self, installer: SystemdInstaller) -> None:
        installer.install("demo.service", _unit())
        installer.enable_on_target("demo.service", "multi-user.target")
        installer.enable_on_target("demo.service", "multi-user.target")
        assert installer.is_enabled_on_target("demo.service", "multi-user.target")

    def test_uninstalled_unit(self, installer: SystemdInstaller) -> None:
        with pytest.raises(UnitNotInstalledError, match="uninstalled unit ghost.service"):
            installer.enable_on_target("ghost.service", "multi-user.target")


class TestQuery:
    def test_not_enabled(self, installer: SystemdInstaller) -> None:
        assert installer.is_enabled_on_target("demo.service", "multi-user.target") is False

    def test_enabled_via_system_dir(self, installer: SystemdInstaller, root: Path) -> None:
        wants = root / "lib" / "systemd" / "system" / "sysinit.target.wants"
        wants.mkdir()
        (wants / "demo.service").symlink_to("/lib/systemd/system/demo.service")
        assert installer.is_enabled_on_target("demo.service", "sysinit.target")

    def test_regular_file_is_error(self, installer: SystemdInstaller, root: Path) -> None:
        wants = root / "etc" / "systemd" / "system" / "multi-user.target.wants"
        wants.mkdir()
        (wants / "demo.service").write_text("not a link")
        with pytest.raises(OSError, match="expected symlink"):
            installer.is_enabled_on_target("demo.service", "multi-user.target")
