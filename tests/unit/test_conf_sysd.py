"""Tests for rbox.conf.sysd — unit records, rendering and durations.

Test taxonomy
-------------
Durations    compact h/m/s parse/format; invalid input rejected; round trip property
Output       OutputSink bitmask rendering order
Conditions   each condition kind renders its directive
Service      field order, omitted zero values, IgnoreSIGPIPE always present
Unit         section layout, conditions in [Unit], [Install] only when needed
Validation   newlines and negative durations rejected
Ownership    adopt_service keeps the back-reference consistent
"""

from __future__ import annotations

import pytest
from hypothesis import given
from hypothesis import strategies as st

from rbox.conf.sysd import (
    Condition,
    ConditionKind,
    Mount,
    OutputSink,
    Service,
    Unit,
    format_duration,
    parse_duration,
)

SECOND = 1_000_000_000

# ---------------------------------------------------------------------------
# Durations
# ---------------------------------------------------------------------------


class TestDurations:
    @pytest.mark.parametrize(
        ("text", "ns"),
        [
            ("0", 0),
            ("5s", 5 * SECOND),
            ("1h15m", 75 * 60 * SECOND),
            ("1.5s", 1_500_000_000),
            ("300ms", 300_000_000),
            ("10us", 10_000),
            ("10µs", 10_000),
            ("42ns", 42),
            ("-5s", -5 * SECOND),
            ("1m30s", 90 * SECOND),
        ],
    )
    def test_parse(self, text: str, ns: int) -> None:
        assert parse_duration(text) == ns

    @pytest.mark.parametrize("text", ["", "5", "abc", "1x", "s", "1h 5m"])
    def test_parse_rejects(self, text: str) -> None:
        with pytest.raises(ValueError, match="invalid duration"):
            parse_duration(text)

    @pytest.mark.parametrize(
        ("ns", "text"),
        [
            (0, "0s"),
            (500, "500ns"),
            (1_500, "1.5µs"),
            (1_500_000, "1.5ms"),
            (5 * SECOND, "5s"),
            (90 * SECOND, "1m30s"),
            (15 * 60 * SECOND, "15m0s"),
            (2 * 3600 * SECOND, "2h0m0s"),
            (-5 * SECOND, "-5s"),
        ],
    )
    def test_format(self, ns: int, text: str) -> None:
        assert format_duration(ns) == text

    @given(st.integers(min_value=0, max_value=10**15))
    def test_format_then_parse_is_identity(self, ns: int) -> None:
        assert parse_duration(format_duration(ns)) == ns


# ---------------------------------------------------------------------------
# Output sinks
# ---------------------------------------------------------------------------


class TestOutputSink:
    def test_single(self) -> None:
        assert OutputSink.JOURNAL.render() == "journal"

    def test_combined_order(self) -> None:
        assert (OutputSink.CONSOLE | OutputSink.JOURNAL).render() == "journal+console"

    def test_all(self) -> None:
        assert OutputSink(31).render() == "syslog+kmsg+journal+console+inherit"

    def test_none(self) -> None:
        assert OutputSink(0).render() == ""


# ---------------------------------------------------------------------------
# Conditions
# ---------------------------------------------------------------------------


class TestConditions:
    @pytest.mark.parametrize(
        ("kind", "line"),
        [
            (ConditionKind.EXISTS, "ConditionPathExists=/etc/x\n"),
            (ConditionKind.NOT_EXISTS, "ConditionPathExists=!/etc/x\n"),
            (ConditionKind.HOST, "ConditionHost=/etc/x\n"),
            (ConditionKind.FIRST_BOOT, "ConditionFirstBoot=/etc/x\n"),
        ],
    )
    def test_render(self, kind: ConditionKind, line: str) -> None:
        assert Condition(kind, "/etc/x").render() == line


# ---------------------------------------------------------------------------
# Service / Mount / Unit rendering
# ---------------------------------------------------------------------------


class TestServiceRender:
    def test_empty(self) -> None:
        assert Service().render() == "[Service]\nIgnoreSIGPIPE=no\n"

    def test_field_order(self) -> None:
        svc = Service(
            type="simple",
            exec_start="/usr/bin/app",
            kill_mode="mixed",
            user="pi",
            timeout_stop_sec=90 * SECOND,
            restart="on-failure",
            restart_sec=5 * SECOND,
            notify_access="main",
            ignore_sigpipe=True,
            stdout=int(OutputSink.JOURNAL),
            stderr=int(OutputSink.SYSLOG | OutputSink.CONSOLE),
        )
        assert svc.render() == (
            "[Service]\n"
            "Type=simple\n"
            "ExecStart=/usr/bin/app\n"
            "KillMode=mixed\n"
            "User=pi\n"
            "TimeoutStopSec=1m30s\n"
            "Restart=on-failure\n"
            "RestartSec=5s\n"
            "NotifyAccess=main\n"
            "IgnoreSIGPIPE=yes\n"
            "StandardOutput=journal\n"
            "StandardError=syslog+console\n"
        )

    def test_conditions_appended_standalone(self) -> None:
        svc = Service(conditions=[Condition(ConditionKind.FIRST_BOOT, "yes")])
        assert svc.render().endswith("ConditionFirstBoot=yes\n")
        assert "Condition" not in svc.render(include_conditions=False)


class TestMountRender:
    def test_full(self) -> None:
        mount = Mount("/dev/sda1", "/mnt/data", "ext4", ["rw", "noatime"])
        assert mount.render() == (
            "[Mount]\nWhat=/dev/sda1\nWhere=/mnt/data\nType=ext4\nOptions=rw,noatime\n"
        )

    def test_empty(self) -> None:
        assert Mount().render() == "[Mount]\n"


class TestUnitRender:
    def test_empty(self) -> None:
        assert Unit().render() == "[Unit]\n\n"

    def test_service_unit(self) -> None:
        unit = Unit(description="Hello", after=["network.target"], wanted_by=["multi-user.target"])
        unit.adopt_service(
            Service(
                type="simple",
                exec_start="/bin/true",
                restart="always",
                restart_sec=5 * SECOND,
                stdout=int(OutputSink.JOURNAL | OutputSink.CONSOLE),
                conditions=[Condition(ConditionKind.EXISTS, "/etc/x")],
            )
        )
        assert unit.render() == (
            "[Unit]\n"
            "Description=Hello\n"
            "After=network.target\n"
            "ConditionPathExists=/etc/x\n"
            "\n"
            "[Service]\n"
            "Type=simple\n"
            "ExecStart=/bin/true\n"
            "Restart=always\n"
            "RestartSec=5s\n"
            "IgnoreSIGPIPE=no\n"
            "StandardOutput=journal+console\n"
            "\n"
            "[Install]\n"
            "WantedBy=multi-user.target\n"
            "\n"
        )

    def test_mount_unit_with_required_by(self) -> None:
        unit = Unit(description="Data", required_by=["local-fs.target"], mount=Mount("/dev/sdb1", "/data"))
        assert unit.render() == (
            "[Unit]\n"
            "Description=Data\n"
            "\n"
            "[Mount]\n"
            "What=/dev/sdb1\n"
            "Where=/data\n"
            "\n"
            "[Install]\n"
            "RequiredBy=local-fs.target\n"
            "\n"
        )

    def test_multiple_after_space_separated(self) -> None:
        unit = Unit(after=["a.service", "b.service"])
        assert "After=a.service b.service\n" in unit.render()


# ---------------------------------------------------------------------------
# Validation and ownership
# ---------------------------------------------------------------------------


class TestValidation:
    def test_newline_in_description(self) -> None:
        with pytest.raises(ValueError, match="newline"):
            Unit(description="a\nb").validate()

    def test_newline_in_list_field(self) -> None:
        with pytest.raises(ValueError, match="newline"):
            Unit(after=["ok", "bad\n"]).validate()

    def test_newline_in_nested_service(self) -> None:
        unit = Unit()
        unit.adopt_service(Service(exec_start="/bin/a\n/bin/b"))
        with pytest.raises(ValueError, match="newline"):
            unit.validate()

    def test_negative_duration(self) -> None:
        with pytest.raises(ValueError, match="negative"):
            Service(restart_sec=-1).validate()

    def test_valid_unit_passes(self) -> None:
        unit = Unit(description="ok", mount=Mount("/a", "/b"))
        unit.adopt_service(Service(exec_start="/bin/true"))
        unit.validate()


class TestOwnership:
    def test_adopt_sets_back_reference(self) -> None:
        unit, svc = Unit(), Service()
        unit.adopt_service(svc)
        assert svc.unit is unit

    def test_replacing_service_clears_old_back_reference(self) -> None:
        unit, first, second = Unit(), Service(), Service()
        unit.adopt_service(first)
        unit.adopt_service(second)
        assert first.unit is None
        assert second.unit is unit

    def test_identity_equality(self) -> None:
        assert Unit() != Unit()
