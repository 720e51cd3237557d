"""Tests for rbox.interpreter.sysd_proxies — systemd proxies and namespace.

Test taxonomy
-------------
Dispatch     READABLE / set_<field> / METHODS resolution; unknown names fail
Assign       assignable fields accept writes; append-only lists refuse them
Validation   rejected values leave the native record untouched
Children     unit.service / service.conditions return cached proxy instances
Durations    int nanoseconds or duration strings; negatives refused
Constructor  positional and keyword arguments; arity and keyword errors
Namespace    const / out tables; condition constructors
Identity     content-based equality and hash
Property     Hypothesis: string fields read back what was written
"""

from __future__ import annotations

import pytest
from hypothesis import given
from hypothesis import strategies as st

from rbox.capabilities import Capabilities
from rbox.conf.sysd import Service
from rbox.exceptions import (
    ArgumentError,
    NoSuchAssignableFieldError,
    NoSuchAttributeError,
    TypeMismatchError,
)
from rbox.interpreter.sysd_proxies import (
    ConditionProxy,
    MountProxy,
    ServiceProxy,
    UnitProxy,
    systemd_namespace,
    unpack_duration,
)
from rbox.interpreter.values import Struct

SECOND = 1_000_000_000

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


@pytest.fixture(scope="module")
def systemd() -> Struct:
    return systemd_namespace(Capabilities())


def _unit(systemd: Struct, **kwargs) -> UnitProxy:
    return systemd.attr("Unit")(**kwargs)


def _service(systemd: Struct, **kwargs) -> ServiceProxy:
    return systemd.attr("Service")(**kwargs)


# ---------------------------------------------------------------------------
# Dispatch
# ---------------------------------------------------------------------------


class TestDispatch:
    def test_type_names(self, systemd: Struct) -> None:
        assert _unit(systemd).type_name == "systemd.Unit"
        assert _service(systemd).type_name == "systemd.Service"
        assert systemd.attr("Mount")().type_name == "systemd.Mount"

    def test_unknown_attribute(self, systemd: Struct) -> None:
        with pytest.raises(NoSuchAttributeError, match="bogus"):
            _unit(systemd).attr("bogus")

    def test_no_setter_for_append_only_field(self, systemd: Struct) -> None:
        with pytest.raises(NoSuchAttributeError):
            _unit(systemd).attr("set_after")

    def test_attr_names_order(self, systemd: Struct) -> None:
        assert _unit(systemd).attr_names() == [
            "description",
            "set_description",
            "after",
            "wanted_by",
            "required_by",
            "service",
            "set_service",
            "mount",
            "set_mount",
            "append_after",
            "append_wanted_by",
            "append_required_by",
        ]

    def test_repr_and_str(self, systemd: Struct) -> None:
        unit = _unit(systemd, description="d")
        assert repr(unit) == "<systemd.Unit>"
        assert str(unit) == "[Unit]\nDescription=d\n\n"


# ---------------------------------------------------------------------------
# Assignment
# ---------------------------------------------------------------------------


class TestAssign:
    def test_assign_description(self, systemd: Struct) -> None:
        unit = _unit(systemd)
        unit.assign("description", "new")
        assert unit.attr("description") == "new"

    def test_setter_builtin(self, systemd: Struct) -> None:
        unit = _unit(systemd)
        unit.attr("set_description")("via setter")
        assert unit.native.description == "via setter"

    def test_setter_arity(self, systemd: Struct) -> None:
        setter = _unit(systemd).attr("set_description")
        with pytest.raises(ArgumentError, match="want 1"):
            setter("a", "b")
        with pytest.raises(ArgumentError):
            setter()

    def test_append_only_field_not_assignable(self, systemd: Struct) -> None:
        with pytest.raises(NoSuchAssignableFieldError, match="after"):
            _unit(systemd).assign("after", ["x"])

    def test_append_after_flattens(self, systemd: Struct) -> None:
        unit = _unit(systemd, description="d", after=["x"])
        unit.attr("append_after")(["y", "z"])
        unit.attr("append_after")("w")
        assert unit.attr("after") == ["x", "y", "z", "w"]

    def test_append_keeps_duplicates(self, systemd: Struct) -> None:
        unit = _unit(systemd, wanted_by=["multi-user.target"])
        unit.attr("append_wanted_by")("multi-user.target")
        assert unit.attr("wanted_by") == ["multi-user.target", "multi-user.target"]

    def test_read_list_is_a_copy(self, systemd: Struct) -> None:
        unit = _unit(systemd, after=["x"])
        unit.attr("after").append("y")
        assert unit.native.after == ["x"]


class TestValidation:
    def test_wrong_type_leaves_record_untouched(self, systemd: Struct) -> None:
        unit = _unit(systemd, description="keep")
        with pytest.raises(TypeMismatchError, match="systemd.Unit.description: expected string, got int"):
            unit.assign("description", 3)
        assert unit.native.description == "keep"

    def test_bad_append_leaves_record_untouched(self, systemd: Struct) -> None:
        unit = _unit(systemd, after=["x"])
        with pytest.raises(TypeMismatchError):
            unit.attr("append_after")("y", 4)
        assert unit.native.after == ["x"]

    def test_service_field_requires_service(self, systemd: Struct) -> None:
        with pytest.raises(TypeMismatchError, match="systemd.Service"):
            _unit(systemd).assign("service", systemd.attr("Mount")())

    def test_stdout_range(self, systemd: Struct) -> None:
        svc = _service(systemd)
        svc.assign("stdout", 0xFF)
        with pytest.raises(ArgumentError):
            svc.assign("stdout", 0x100)
        assert svc.native.stdout == 0xFF

    def test_conditions_element_type(self, systemd: Struct) -> None:
        with pytest.raises(TypeMismatchError, match=r"conditions\[0\]"):
            _service(systemd).assign("conditions", ["/etc/x"])


# ---------------------------------------------------------------------------
# Children
# ---------------------------------------------------------------------------


class TestChildren:
    def test_missing_service_reads_none(self, systemd: Struct) -> None:
        assert _unit(systemd).attr("service") is None

    def test_assigned_service_is_same_proxy(self, systemd: Struct) -> None:
        unit = _unit(systemd)
        svc = _service(systemd, exec_start="/bin/true")
        unit.assign("service", svc)
        assert unit.attr("service") is svc
        assert unit.native.service.unit is unit.native

    def test_mutation_through_child_visible_in_render(self, systemd: Struct) -> None:
        unit = _unit(systemd, service=_service(systemd))
        unit.attr("service").assign("exec_start", "/usr/bin/app")
        assert "ExecStart=/usr/bin/app\n" in unit.render()

    def test_repeated_reads_are_cached(self, systemd: Struct) -> None:
        svc = _service(systemd, conditions=[systemd.attr("ConditionExists")("/x")])
        first = svc.attr("conditions")
        second = svc.attr("conditions")
        assert first[0] is second[0]

    def test_unset_service(self, systemd: Struct) -> None:
        unit = _unit(systemd, service=_service(systemd))
        unit.assign("service", None)
        assert unit.attr("service") is None
        assert unit.render() == "[Unit]\n\n"

    def test_mount_child(self, systemd: Struct) -> None:
        mount = systemd.attr("Mount")("/dev/sda1", "/mnt", "ext4", ["rw"])
        unit = _unit(systemd, mount=mount)
        assert isinstance(unit.attr("mount"), MountProxy)
        assert unit.attr("mount").attr("options") == ["rw"]


# ---------------------------------------------------------------------------
# Durations
# ---------------------------------------------------------------------------


class TestDurations:
    def test_string(self, systemd: Struct) -> None:
        svc = _service(systemd, restart_sec="5s")
        assert svc.attr("restart_sec") == 5 * SECOND
        assert "RestartSec=5s\n" in svc.render()

    def test_int_nanoseconds(self, systemd: Struct) -> None:
        svc = _service(systemd, timeout_stop_sec=90 * SECOND)
        assert "TimeoutStopSec=1m30s\n" in svc.render()

    def test_negative_rejected(self) -> None:
        with pytest.raises(ArgumentError, match="negative"):
            unpack_duration("-1s", "d")
        with pytest.raises(ArgumentError):
            unpack_duration(-1, "d")

    def test_invalid_string(self) -> None:
        with pytest.raises(ArgumentError, match="invalid duration"):
            unpack_duration("soon", "d")

    def test_wrong_kind(self) -> None:
        with pytest.raises(TypeMismatchError, match="int or duration string"):
            unpack_duration(True, "d")


# ---------------------------------------------------------------------------
# Constructors
# ---------------------------------------------------------------------------


class TestConstructors:
    def test_unit_positional(self, systemd: Struct) -> None:
        unit = systemd.attr("Unit")("desc", ["network.target"])
        assert unit.attr("description") == "desc"
        assert unit.attr("after") == ["network.target"]

    def test_too_many_positionals(self, systemd: Struct) -> None:
        with pytest.raises(ArgumentError, match="positional"):
            systemd.attr("Mount")("a", "b", "c", [], "extra")

    def test_unknown_keyword(self, systemd: Struct) -> None:
        with pytest.raises(ArgumentError, match="unexpected keyword argument 'bogus'"):
            systemd.attr("Unit")(bogus=1)

    def test_duplicate_argument(self, systemd: Struct) -> None:
        with pytest.raises(ArgumentError, match="multiple values"):
            systemd.attr("Unit")("a", description="b")

    def test_service_all_keywords(self, systemd: Struct) -> None:
        svc = _service(
            systemd,
            type="notify",
            exec_start="/bin/app",
            restart="always",
            watchdog_sec="30s",
            notify_access="main",
            ignore_sigpipe=True,
            stderr=2,
        )
        assert svc.attr("type") == "notify"
        assert svc.attr("watchdog_sec") == 30 * SECOND
        assert svc.attr("ignore_sigpipe") is True
        assert svc.attr("stderr") == 2


# ---------------------------------------------------------------------------
# Namespace tables
# ---------------------------------------------------------------------------


class TestNamespace:
    def test_const(self, systemd: Struct) -> None:
        const = systemd.attr("const")
        assert const.attr("restart_always") == "always"
        assert const.attr("restart_never") == "no"
        assert const.attr("restart_failure") == "on-failure"
        assert const.attr("killmode_controlgroup") == "control-group"
        assert const.attr("service_oneshot") == "oneshot"
        assert const.attr("notifymode_all") == "all"

    def test_out(self, systemd: Struct) -> None:
        out = systemd.attr("out")
        assert [out.attr(n) for n in ("console", "journal", "inherit", "syslog", "kmsg")] == [1, 2, 4, 8, 16]

    @pytest.mark.parametrize(
        ("ctor", "type_name"),
        [
            ("ConditionExists", "systemd.ConditionExists"),
            ("ConditionNotExists", "systemd.ConditionNotExists"),
            ("ConditionHost", "systemd.ConditionHost"),
            ("ConditionFirstBoot", "systemd.ConditionFirstBoot"),
        ],
    )
    def test_condition_constructors(self, systemd: Struct, ctor: str, type_name: str) -> None:
        cond = systemd.attr(ctor)("arg")
        assert isinstance(cond, ConditionProxy)
        assert cond.type_name == type_name
        assert cond.attr("arg") == "arg"

    def test_condition_is_read_only(self, systemd: Struct) -> None:
        with pytest.raises(NoSuchAssignableFieldError):
            systemd.attr("ConditionExists")("/x").assign("arg", "/y")

    def test_install_requires_mounted_filesystem(self, systemd: Struct) -> None:
        with pytest.raises(TypeMismatchError, match="systemd.install: fs"):
            systemd.attr("install")("/", "a.service", _unit(systemd))


# ---------------------------------------------------------------------------
# Identity
# ---------------------------------------------------------------------------


class TestIdentity:
    def test_equal_content_equal_proxies(self, systemd: Struct) -> None:
        a = _unit(systemd, description="same")
        b = _unit(systemd, description="same")
        assert a == b
        assert hash(a) == hash(b)
        assert a.native is not b.native

    def test_different_content(self, systemd: Struct) -> None:
        assert _unit(systemd, description="a") != _unit(systemd, description="b")

    def test_different_types_never_equal(self, systemd: Struct) -> None:
        assert _service(systemd) != systemd.attr("Mount")()

    def test_always_truthy(self, systemd: Struct) -> None:
        assert bool(_unit(systemd))


# ---------------------------------------------------------------------------
# Property-based
# ---------------------------------------------------------------------------

_STRING_FIELDS = [f for f in ServiceProxy.READABLE if f not in {
    "restart_sec", "timeout_stop_sec", "watchdog_sec", "ignore_sigpipe", "stdout", "stderr", "conditions",
}]


class TestProperties:
    @given(field=st.sampled_from(_STRING_FIELDS), value=st.text())
    def test_service_string_fields_round_trip(self, field: str, value: str) -> None:
        svc = ServiceProxy(Service())
        svc.assign(field, value)
        assert svc.attr(field) == value

    @given(st.integers(min_value=0, max_value=10**15))
    def test_duration_round_trip(self, ns: int) -> None:
        svc = ServiceProxy(Service())
        svc.assign("restart_sec", ns)
        assert svc.attr("restart_sec") == ns
