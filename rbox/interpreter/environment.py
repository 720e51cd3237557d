"""Predeclared namespace shared by every module of a script.

:func:`build_environment` is pure construction: given the same inputs it
produces an equivalent namespace, except for the ``time`` group, which reads
the injected clock.
"""

from __future__ import annotations

import time
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from importlib import metadata
from types import MappingProxyType
from typing import Any

from rbox.capabilities import Capabilities
from rbox.exceptions import ArgumentError, CrashError
from rbox.interpreter.fs_proxies import fs_namespace
from rbox.interpreter.net_proxies import net_namespace
from rbox.interpreter.resources import ResourceRegistry
from rbox.interpreter.sysd_proxies import systemd_namespace
from rbox.interpreter.values import UINT64_MAX, Builtin, Struct, expect_int, expect_uint

__all__ = ["DIALECT_VERSION", "EnvironmentInputs", "build_environment"]

# Bumped whenever the predeclared namespace changes incompatibly.
DIALECT_VERSION = 3


@dataclass(slots=True)
class EnvironmentInputs:
    """Everything the namespace is built from.

    Attributes:
        arguments: Positional script arguments, after flag parsing.
        verbose: Exposed as ``args.verbose``.
        capabilities: Host filesystem, mount, partition and init-system access.
        registry: Receives resources opened by builtins.
        test_hook: Exposed as ``test_hook`` when set.
        clock: Nanosecond wall clock behind ``time``.
    """

    arguments: tuple[str, ...] = ()
    verbose: bool = False
    capabilities: Capabilities = field(default_factory=Capabilities)
    registry: ResourceRegistry = field(default_factory=ResourceRegistry)
    test_hook: Callable[..., Any] | None = None
    clock: Callable[[], int] = time.time_ns


def _args_namespace(arguments: tuple[str, ...], verbose: bool) -> Struct:
    def arg(position: Any) -> str:
        position = expect_int(position, "args.arg: position")
        if 0 <= position < len(arguments):
            return arguments[position]
        return ""

    return Struct(
        {
            "verbose": verbose,
            "num_args": Builtin("num_args", lambda: len(arguments)),
            "args": Builtin("args", lambda: list(arguments)),
            "arg": Builtin("arg", arg),
        },
        "args",
    )


def _math_namespace() -> Struct:
    """Unsigned 64-bit helpers with two's-complement wraparound."""

    def shl(base: Any, shift: Any) -> int:
        base = expect_uint(base, "math.shl: base")
        shift = expect_uint(shift, "math.shl: shift")
        return (base << shift) & UINT64_MAX if shift < 64 else 0

    def shr(base: Any, shift: Any) -> int:
        base = expect_uint(base, "math.shr: base")
        shift = expect_uint(shift, "math.shr: shift")
        return base >> shift if shift < 64 else 0

    def not_(value: Any) -> int:
        return ~expect_uint(value, "math.not_: value") & UINT64_MAX

    def and_(a: Any, b: Any) -> int:
        return expect_uint(a, "math.and_: a") & expect_uint(b, "math.and_: b")

    return Struct(
        {
            "shl": Builtin("shl", shl),
            "shr": Builtin("shr", shr),
            "not_": Builtin("not_", not_),
            "and_": Builtin("and_", and_),
        },
        "math",
    )


def _crash(*detail: Any) -> None:
    raise CrashError(" ".join(str(d) for d in detail))


def _struct(*args: Any, **fields: Any) -> Struct:
    if args:
        raise ArgumentError(f"struct: unexpected {len(args)} positional arguments")
    return Struct(fields)


def build_environment(inputs: EnvironmentInputs) -> Mapping[str, Any]:
    """Return the read-only predeclared namespace for one script."""
    clock = inputs.clock
    env: dict[str, Any] = {
        "crash": Builtin("crash", _crash),
        "struct": Builtin("struct", _struct),
        "args": _args_namespace(tuple(inputs.arguments), inputs.verbose),
        "time": Struct({"start": clock(), "now": Builtin("now", clock)}, "time"),
        "math": _math_namespace(),
        "fs": fs_namespace(inputs.capabilities, inputs.registry),
        "systemd": systemd_namespace(inputs.capabilities),
        "net": net_namespace(),
        "compiler": Struct(
            {
                "version": DIALECT_VERSION,
                "restricted_python": metadata.version("RestrictedPython"),
            },
            "compiler",
        ),
    }
    if inputs.test_hook is not None:
        env["test_hook"] = Builtin("test_hook", inputs.test_hook)
    return MappingProxyType(env)
