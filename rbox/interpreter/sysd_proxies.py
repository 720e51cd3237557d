"""Proxies and builtins for the ``systemd`` namespace."""

from __future__ import annotations

import logging
from typing import Any

from rbox.capabilities import Capabilities
from rbox.conf.sysd import (
    Condition,
    ConditionKind,
    KillMode,
    Mount,
    NotifyAccess,
    OutputSink,
    RestartMode,
    Service,
    ServiceType,
    Unit,
    parse_duration,
)
from rbox.exceptions import ArgumentError, ResourceError, TypeMismatchError
from rbox.interpreter.fs_proxies import FSMountProxy
from rbox.interpreter.proxy import Proxy, populate
from rbox.interpreter.values import (
    Builtin,
    Struct,
    expect_bool,
    expect_list_of,
    expect_str,
    expect_str_list,
    expect_uint,
    flatten_strs,
    kind_of,
)

__all__ = [
    "ConditionProxy",
    "MountProxy",
    "ServiceProxy",
    "UnitProxy",
    "systemd_namespace",
]

logger = logging.getLogger(__name__)


def unpack_duration(value: Any, what: str) -> int:
    """Accept nanoseconds as an int, or a duration string such as ``"10m15s"``."""
    if isinstance(value, str):
        try:
            ns = parse_duration(value)
        except ValueError as exc:
            raise ArgumentError(f"{what}: {exc}") from None
    elif isinstance(value, int) and not isinstance(value, bool):
        ns = value
    else:
        raise TypeMismatchError(what, "int or duration string", kind_of(value))
    if ns < 0:
        raise ArgumentError(f"{what}: duration must not be negative")
    return ns


class ConditionProxy(Proxy):
    """Read-only view of a ``Condition*=`` directive."""

    __slots__ = ()

    READABLE = ("kind", "arg")

    native: Condition

    @property
    def type_name(self) -> str:
        return f"systemd.Condition{self.native.kind.value}"

    def get_field(self, name: str) -> Any:
        match name:
            case "kind":
                return self.native.kind.value
            case "arg":
                return self.native.arg
        return super().get_field(name)


class MountProxy(Proxy):
    __slots__ = ()

    type_name = "systemd.Mount"
    READABLE = ("what_path", "where_path", "fs_type", "options")
    ASSIGNABLE = frozenset(READABLE)

    native: Mount

    def get_field(self, name: str) -> Any:
        match name:
            case "what_path" | "where_path" | "fs_type":
                return getattr(self.native, name)
            case "options":
                return list(self.native.options)
        return super().get_field(name)

    def set_field(self, name: str, value: Any) -> None:
        what = f"{self.type_name}.{name}"
        match name:
            case "what_path" | "where_path" | "fs_type":
                setattr(self.native, name, expect_str(value, what))
            case "options":
                self.native.options = expect_str_list(value, what)
            case _:
                super().set_field(name, value)


class ServiceProxy(Proxy):
    """The ``[Service]`` section.  Durations read back as int nanoseconds."""

    __slots__ = ()

    type_name = "systemd.Service"
    READABLE = (
        "type",
        "exec_start_pre",
        "exec_start",
        "exec_reload",
        "exec_stop",
        "exec_stop_post",
        "working_dir",
        "root_dir",
        "user",
        "group",
        "restart",
        "kill_mode",
        "notify_access",
        "restart_sec",
        "timeout_stop_sec",
        "watchdog_sec",
        "ignore_sigpipe",
        "stdout",
        "stderr",
        "conditions",
    )
    ASSIGNABLE = frozenset(READABLE)

    native: Service

    def get_field(self, name: str) -> Any:
        svc = self.native
        match name:
            case (
                "type"
                | "exec_start_pre"
                | "exec_start"
                | "exec_reload"
                | "exec_stop"
                | "exec_stop_post"
                | "working_dir"
                | "root_dir"
                | "user"
                | "group"
                | "restart"
                | "kill_mode"
                | "notify_access"
            ):
                return getattr(svc, name)
            case "restart_sec" | "timeout_stop_sec" | "watchdog_sec":
                return getattr(svc, name)
            case "ignore_sigpipe":
                return svc.ignore_sigpipe
            case "stdout" | "stderr":
                return getattr(svc, name)
            case "conditions":
                return [self.child(c, ConditionProxy) for c in svc.conditions]
        return super().get_field(name)

    def set_field(self, name: str, value: Any) -> None:
        svc = self.native
        what = f"{self.type_name}.{name}"
        match name:
            case (
                "type"
                | "exec_start_pre"
                | "exec_start"
                | "exec_reload"
                | "exec_stop"
                | "exec_stop_post"
                | "working_dir"
                | "root_dir"
                | "user"
                | "group"
                | "restart"
                | "kill_mode"
                | "notify_access"
            ):
                setattr(svc, name, expect_str(value, what))
            case "restart_sec" | "timeout_stop_sec" | "watchdog_sec":
                setattr(svc, name, unpack_duration(value, what))
            case "ignore_sigpipe":
                svc.ignore_sigpipe = expect_bool(value, what)
            case "stdout" | "stderr":
                setattr(svc, name, expect_uint(value, what, 0xFF))
            case "conditions":
                proxies = expect_list_of(value, ConditionProxy, what, "systemd.Condition")
                svc.conditions = [p.native for p in proxies]
                self.forget_children(svc.conditions)
                for p in proxies:
                    self.adopt(p)
            case _:
                super().set_field(name, value)


class UnitProxy(Proxy):
    """A unit file.  ``after``, ``wanted_by`` and ``required_by`` are append-only."""

    __slots__ = ()

    type_name = "systemd.Unit"
    READABLE = ("description", "after", "wanted_by", "required_by", "service", "mount")
    ASSIGNABLE = frozenset({"description", "service", "mount"})
    METHODS = ("append_after", "append_wanted_by", "append_required_by")

    native: Unit

    def get_field(self, name: str) -> Any:
        unit = self.native
        match name:
            case "description":
                return unit.description
            case "after" | "wanted_by" | "required_by":
                return list(getattr(unit, name))
            case "service":
                return None if unit.service is None else self.child(unit.service, ServiceProxy)
            case "mount":
                return None if unit.mount is None else self.child(unit.mount, MountProxy)
        return super().get_field(name)

    def set_field(self, name: str, value: Any) -> None:
        unit = self.native
        what = f"{self.type_name}.{name}"
        match name:
            case "description":
                unit.description = expect_str(value, what)
            case "after" | "wanted_by" | "required_by":
                # Only reachable from the constructor; scripts append instead.
                setattr(unit, name, expect_str_list(value, what))
            case "service":
                if value is not None and not isinstance(value, ServiceProxy):
                    raise TypeMismatchError(what, "systemd.Service", kind_of(value))
                unit.adopt_service(None if value is None else value.native)
                self.forget_children([c for c in (unit.service, unit.mount) if c is not None])
                if value is not None:
                    self.adopt(value)
            case "mount":
                if value is not None and not isinstance(value, MountProxy):
                    raise TypeMismatchError(what, "systemd.Mount", kind_of(value))
                unit.mount = None if value is None else value.native
                self.forget_children([c for c in (unit.service, unit.mount) if c is not None])
                if value is not None:
                    self.adopt(value)
            case _:
                super().set_field(name, value)

    def append_after(self, *values: Any) -> None:
        self.native.after.extend(flatten_strs(values, f"{self.type_name}.append_after"))

    def append_wanted_by(self, *values: Any) -> None:
        self.native.wanted_by.extend(flatten_strs(values, f"{self.type_name}.append_wanted_by"))

    def append_required_by(self, *values: Any) -> None:
        self.native.required_by.extend(flatten_strs(values, f"{self.type_name}.append_required_by"))


# ---------------------------------------------------------------------------
# Namespace
# ---------------------------------------------------------------------------

_UNIT_PARAMS = ("description", "after", "wanted_by", "required_by", "service", "mount")
_MOUNT_PARAMS = ("what_path", "where_path", "fs_type", "options")


def _condition(kind: ConditionKind):
    def construct(arg: Any) -> ConditionProxy:
        return ConditionProxy(Condition(kind, expect_str(arg, f"systemd.Condition{kind.value}: arg")))

    return Builtin(f"Condition{kind.value}", construct)


def _const_table() -> Struct:
    table: dict[str, Any] = {
        f"restart_{m.name.lower().removeprefix('on_')}": m.value for m in RestartMode
    }
    table.update({f"killmode_{m.name.lower().replace('_', '')}": m.value for m in KillMode})
    table.update({f"service_{t.name.lower()}": t.value for t in ServiceType})
    table.update({f"notifymode_{n.name.lower()}": n.value for n in NotifyAccess})
    return Struct(table, "systemd.const")


def _mounted_fs(value: Any, what: str) -> FSMountProxy:
    if not isinstance(value, FSMountProxy):
        raise TypeMismatchError(what, "fs.Ext4Mount or fs.VFATMount", kind_of(value))
    return value


def systemd_namespace(capabilities: Capabilities) -> Struct:
    """Build the ``systemd`` namespace bound to *capabilities*."""

    def init_system(fs: Any, what: str):
        return capabilities.init_system(_mounted_fs(fs, what).filesystem)

    def install(fs: Any, name: Any, unit: Any, overwrite: Any = False) -> None:
        installer = init_system(fs, "systemd.install: fs")
        name = expect_str(name, "systemd.install: name")
        if not isinstance(unit, UnitProxy):
            raise TypeMismatchError("systemd.install: unit", "systemd.Unit", kind_of(unit))
        overwrite = expect_bool(overwrite, "systemd.install: overwrite")
        try:
            unit.native.validate()
        except ValueError as exc:
            raise ArgumentError(f"systemd.install: {exc}") from None
        try:
            installer.install(name, unit.native, overwrite)
        except OSError as exc:
            raise ResourceError(f"install {name}", exc) from exc

    def exists(fs: Any, name: Any) -> bool:
        installer = init_system(fs, "systemd.exists: fs")
        name = expect_str(name, "systemd.exists: name")
        try:
            return installer.exists(name)
        except OSError as exc:
            raise ResourceError(f"stat unit {name}", exc) from exc

    def is_enabled(fs: Any, name: Any, target: Any) -> bool:
        installer = init_system(fs, "systemd.is_enabled: fs")
        name = expect_str(name, "systemd.is_enabled: name")
        target = expect_str(target, "systemd.is_enabled: target")
        try:
            return installer.is_enabled_on_target(name, target)
        except OSError as exc:
            raise ResourceError(f"query {name} on {target}", exc) from exc

    def enable(fs: Any, name: Any, target: Any) -> None:
        installer = init_system(fs, "systemd.enable: fs")
        name = expect_str(name, "systemd.enable: name")
        target = expect_str(target, "systemd.enable: target")
        try:
            installer.enable_on_target(name, target)
        except OSError as exc:
            raise ResourceError(f"enable {name} on {target}", exc) from exc

    def new_unit(*args: Any, **kwargs: Any) -> UnitProxy:
        return populate(UnitProxy(Unit()), "systemd.Unit", _UNIT_PARAMS, args, kwargs)

    def new_service(*args: Any, **kwargs: Any) -> ServiceProxy:
        return populate(ServiceProxy(Service()), "systemd.Service", ServiceProxy.READABLE, args, kwargs)

    def new_mount(*args: Any, **kwargs: Any) -> MountProxy:
        return populate(MountProxy(Mount()), "systemd.Mount", _MOUNT_PARAMS, args, kwargs)

    return Struct(
        {
            "const": _const_table(),
            "out": Struct({s.name.lower(): int(s) for s in OutputSink}, "systemd.out"),
            "Unit": Builtin("Unit", new_unit),
            "Service": Builtin("Service", new_service),
            "Mount": Builtin("Mount", new_mount),
            "ConditionExists": _condition(ConditionKind.EXISTS),
            "ConditionNotExists": _condition(ConditionKind.NOT_EXISTS),
            "ConditionHost": _condition(ConditionKind.HOST),
            "ConditionFirstBoot": _condition(ConditionKind.FIRST_BOOT),
            "install": Builtin("install", install),
            "exists": Builtin("exists", exists),
            "is_enabled": Builtin("is_enabled", is_enabled),
            "enable": Builtin("enable", enable),
        },
        "systemd",
    )
