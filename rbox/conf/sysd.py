"""systemd unit records and their unit-file rendering.

These are plain mutable records.  Identity is the object reference
(``eq=False``), so two units with equal fields are still distinct entities.
A :class:`Service` may hold a non-owning back-reference to the
:class:`Unit` that owns it.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field, fields
from decimal import Decimal, InvalidOperation
from enum import Enum, IntFlag

__all__ = [
    "Condition",
    "ConditionKind",
    "KillMode",
    "Mount",
    "NotifyAccess",
    "OutputSink",
    "RestartMode",
    "Service",
    "ServiceType",
    "Unit",
    "format_duration",
    "parse_duration",
]


# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------


class RestartMode(str, Enum):  # noqa: UP042
    ALWAYS = "always"
    NEVER = "no"
    ON_SUCCESS = "on-success"
    ON_FAILURE = "on-failure"
    ON_ABNORMAL = "on-abnormal"
    ON_WATCHDOG = "on-watchdog"
    ON_ABORT = "on-abort"


class KillMode(str, Enum):  # noqa: UP042
    CONTROL_GROUP = "control-group"
    MIXED = "mixed"
    PROCESS = "process"
    NONE = "none"


class ServiceType(str, Enum):  # noqa: UP042
    SIMPLE = "simple"
    EXEC = "exec"
    FORKING = "forking"
    ONESHOT = "oneshot"
    NOTIFY = "notify"
    IDLE = "idle"


class NotifyAccess(str, Enum):  # noqa: UP042
    NONE = "none"
    MAIN = "main"
    EXEC = "exec"
    ALL = "all"


class OutputSink(IntFlag):
    """Bitmask of StandardOutput/StandardError destinations."""

    CONSOLE = 1
    JOURNAL = 2
    INHERIT = 4
    SYSLOG = 8
    KMSG = 16

    def render(self) -> str:
        order = (
            (OutputSink.SYSLOG, "syslog"),
            (OutputSink.KMSG, "kmsg"),
            (OutputSink.JOURNAL, "journal"),
            (OutputSink.CONSOLE, "console"),
            (OutputSink.INHERIT, "inherit"),
        )
        return "+".join(ident for mask, ident in order if self & mask)


# ---------------------------------------------------------------------------
# Durations
# ---------------------------------------------------------------------------

_UNITS = {
    "ns": 1,
    "us": 1_000,
    "µs": 1_000,
    "μs": 1_000,
    "ms": 1_000_000,
    "s": 1_000_000_000,
    "m": 60 * 1_000_000_000,
    "h": 3600 * 1_000_000_000,
}
_COMPONENT = re.compile(r"(\d+\.?\d*|\.\d+)(ns|us|µs|μs|ms|s|m|h)")


def parse_duration(text: str) -> int:
    """Parse a duration such as ``"1h15m"`` or ``"1.5s"`` into nanoseconds.

    Raises
    ------
    ValueError
        If *text* is not a sequence of ``<number><unit>`` components.
    """
    s = text
    sign = 1
    if s[:1] in ("+", "-"):
        sign = -1 if s[0] == "-" else 1
        s = s[1:]
    if s == "0":
        return 0
    if not s:
        msg = f"invalid duration {text!r}"
        raise ValueError(msg)

    total = Decimal(0)
    pos = 0
    while pos < len(s):
        m = _COMPONENT.match(s, pos)
        if m is None:
            msg = f"invalid duration {text!r}"
            raise ValueError(msg)
        try:
            total += Decimal(m.group(1)) * _UNITS[m.group(2)]
        except InvalidOperation as exc:
            msg = f"invalid duration {text!r}"
            raise ValueError(msg) from exc
        pos = m.end()
    return sign * int(total)


def _decimal(value: int, unit: int) -> str:
    whole, rest = divmod(value, unit)
    if not rest:
        return str(whole)
    width = len(str(unit)) - 1
    return f"{whole}.{rest:0{width}d}".rstrip("0")


def format_duration(ns: int) -> str:
    """Format nanoseconds in the compact h/m/s duration form (``"2h0m0s"``)."""
    if ns == 0:
        return "0s"
    sign = "-" if ns < 0 else ""
    ns = abs(ns)
    if ns < 1_000:
        return f"{sign}{ns}ns"
    if ns < 1_000_000:
        return f"{sign}{_decimal(ns, 1_000)}µs"
    if ns < 1_000_000_000:
        return f"{sign}{_decimal(ns, 1_000_000)}ms"

    minutes, rest = divmod(ns, _UNITS["m"])
    hours, minutes = divmod(minutes, 60)
    seconds = f"{_decimal(rest, _UNITS['s'])}s"
    if hours:
        return f"{sign}{hours}h{minutes}m{seconds}"
    if minutes:
        return f"{sign}{minutes}m{seconds}"
    return f"{sign}{seconds}"


def _check_single_line(record: object) -> None:
    for f in fields(record):
        value = getattr(record, f.name)
        values = value if isinstance(value, list) else [value]
        for v in values:
            if isinstance(v, str) and "\n" in v:
                msg = f"{type(record).__name__}.{f.name} must not contain a newline"
                raise ValueError(msg)


# ---------------------------------------------------------------------------
# Records
# ---------------------------------------------------------------------------


class ConditionKind(str, Enum):  # noqa: UP042
    EXISTS = "Exists"
    NOT_EXISTS = "NotExists"
    HOST = "Host"
    FIRST_BOOT = "FirstBoot"


@dataclass(eq=False)
class Condition:
    """A single ``Condition*=`` directive gating unit start."""

    kind: ConditionKind
    arg: str

    def render(self) -> str:
        match self.kind:
            case ConditionKind.EXISTS:
                return f"ConditionPathExists={self.arg}\n"
            case ConditionKind.NOT_EXISTS:
                return f"ConditionPathExists=!{self.arg}\n"
            case ConditionKind.HOST:
                return f"ConditionHost={self.arg}\n"
            case ConditionKind.FIRST_BOOT:
                return f"ConditionFirstBoot={self.arg}\n"
        msg = f"unknown condition kind {self.kind!r}"
        raise ValueError(msg)


@dataclass(eq=False)
class Service:
    """The ``[Service]`` section of a unit.  Durations are in nanoseconds."""

    type: str = ""
    exec_start_pre: str = ""
    exec_start: str = ""
    exec_reload: str = ""
    exec_stop: str = ""
    exec_stop_post: str = ""
    working_dir: str = ""
    root_dir: str = ""
    kill_mode: str = ""
    user: str = ""
    group: str = ""
    timeout_stop_sec: int = 0
    restart: str = ""
    restart_sec: int = 0
    watchdog_sec: int = 0
    notify_access: str = ""
    ignore_sigpipe: bool = False
    stdout: int = 0
    stderr: int = 0
    conditions: list[Condition] = field(default_factory=list)
    # Non-owning back-reference, set when a Unit adopts this service.
    unit: Unit | None = field(default=None, repr=False, compare=False)

    def render_conditions(self) -> str:
        return "".join(c.render() for c in self.conditions)

    def render(self, *, include_conditions: bool = True) -> str:
        out = ["[Service]\n"]
        for key, value in (
            ("Type", self.type),
            ("ExecStartPre", self.exec_start_pre),
            ("ExecStart", self.exec_start),
            ("ExecReload", self.exec_reload),
            ("ExecStop", self.exec_stop),
            ("ExecStopPost", self.exec_stop_post),
            ("WorkingDirectory", self.working_dir),
            ("RootDirectory", self.root_dir),
            ("KillMode", self.kill_mode),
            ("User", self.user),
            ("Group", self.group),
        ):
            if value:
                out.append(f"{key}={value}\n")
        if self.timeout_stop_sec > 0:
            out.append(f"TimeoutStopSec={format_duration(self.timeout_stop_sec)}\n")
        if self.restart:
            out.append(f"Restart={self.restart}\n")
        if self.restart_sec > 0:
            out.append(f"RestartSec={format_duration(self.restart_sec)}\n")
        if self.watchdog_sec > 0:
            out.append(f"WatchdogSec={format_duration(self.watchdog_sec)}\n")
        if self.notify_access:
            out.append(f"NotifyAccess={self.notify_access}\n")
        out.append(f"IgnoreSIGPIPE={'yes' if self.ignore_sigpipe else 'no'}\n")
        if self.stdout:
            out.append(f"StandardOutput={OutputSink(self.stdout).render()}\n")
        if self.stderr:
            out.append(f"StandardError={OutputSink(self.stderr).render()}\n")
        if include_conditions:
            out.append(self.render_conditions())
        return "".join(out)

    def validate(self) -> None:
        _check_single_line(self)
        for name in ("timeout_stop_sec", "restart_sec", "watchdog_sec"):
            if getattr(self, name) < 0:
                msg = f"Service.{name} must not be negative"
                raise ValueError(msg)
        for c in self.conditions:
            _check_single_line(c)


@dataclass(eq=False)
class Mount:
    """The ``[Mount]`` section of a ``.mount`` unit."""

    what_path: str = ""
    where_path: str = ""
    fs_type: str = ""
    options: list[str] = field(default_factory=list)

    def render(self) -> str:
        out = ["[Mount]\n"]
        if self.what_path:
            out.append(f"What={self.what_path}\n")
        if self.where_path:
            out.append(f"Where={self.where_path}\n")
        if self.fs_type:
            out.append(f"Type={self.fs_type}\n")
        if self.options:
            out.append(f"Options={','.join(self.options)}\n")
        return "".join(out)

    def validate(self) -> None:
        _check_single_line(self)


@dataclass(eq=False)
class Unit:
    """A systemd unit file: ``[Unit]``, an optional body section, ``[Install]``."""

    description: str = ""
    after: list[str] = field(default_factory=list)
    wanted_by: list[str] = field(default_factory=list)
    required_by: list[str] = field(default_factory=list)
    service: Service | None = None
    mount: Mount | None = None

    def adopt_service(self, service: Service | None) -> None:
        if self.service is not None and self.service.unit is self:
            self.service.unit = None
        self.service = service
        if service is not None:
            service.unit = self

    def render(self) -> str:
        out = ["[Unit]\n"]
        if self.description:
            out.append(f"Description={self.description}\n")
        if self.after:
            out.append(f"After={' '.join(self.after)}\n")
        if self.service is not None:
            out.append(self.service.render_conditions())
        out.append("\n")

        if self.service is not None:
            out.append(self.service.render(include_conditions=False))
            out.append("\n")
        if self.mount is not None:
            out.append(self.mount.render())
            out.append("\n")

        if self.wanted_by or self.required_by:
            out.append("[Install]\n")
            if self.wanted_by:
                out.append(f"WantedBy={' '.join(self.wanted_by)}\n")
            if self.required_by:
                out.append(f"RequiredBy={' '.join(self.required_by)}\n")
            out.append("\n")
        return "".join(out)

    def validate(self) -> None:
        """Raise ``ValueError`` if rendering would produce a malformed unit file."""
        _check_single_line(self)
        if self.service is not None:
            self.service.validate()
        if self.mount is not None:
            self.mount.validate()
