"""Restricted compilation and guarded globals for script modules.

Scripts are Python source compiled with RestrictedPython.  The compiler
rewrites attribute access, item access, iteration and ``print`` into calls
to the guard functions installed here, which is how host objects are kept
behind their :class:`~rbox.interpreter.values.ScriptValue` dispatch:

* ``obj.name`` on a script value calls ``obj.attr(name)``;
* ``obj.name = v`` calls ``obj.assign(name, v)``;
* names starting with ``_`` are rejected at compile time and at runtime;
* ``try`` statements are rejected, so every error aborts the script and
  reaches the host.
"""

from __future__ import annotations

import ast
import logging
import operator
from collections.abc import Callable, Mapping
from types import CodeType
from typing import Any

from RestrictedPython import compile_restricted_exec, safe_builtins
from RestrictedPython.Eval import default_guarded_getitem, default_guarded_getiter
from RestrictedPython.Guards import guarded_iter_unpack_sequence, guarded_unpack_sequence
from RestrictedPython.PrintCollector import PrintCollector
from RestrictedPython.transformer import RestrictingNodeTransformer

from rbox.exceptions import NoSuchAssignableFieldError, NoSuchAttributeError, ScriptSyntaxError, TypeMismatchError
from rbox.interpreter.values import ScriptValue, kind_of

__all__ = [
    "ScriptPolicy",
    "ScriptPrinter",
    "build_restricted_globals",
    "build_script_builtins",
    "compile_script",
    "guarded_getattr",
    "guarded_write",
]

logger = logging.getLogger(__name__)

_MISSING = object()

_INPLACE_OPS: dict[str, Callable[[Any, Any], Any]] = {
    "+=": operator.iadd,
    "-=": operator.isub,
    "*=": operator.imul,
    "/=": operator.itruediv,
    "//=": operator.ifloordiv,
    "%=": operator.imod,
    "**=": operator.ipow,
    "<<=": operator.ilshift,
    ">>=": operator.irshift,
    "&=": operator.iand,
    "|=": operator.ior,
    "^=": operator.ixor,
}


class ScriptPolicy(RestrictingNodeTransformer):
    """RestrictedPython's policy without exception handling."""

    def visit_Try(self, node: ast.Try) -> ast.AST:
        self.error(node, "try statements are not allowed")
        return node

    visit_TryStar = visit_Try


def compile_script(source: str, identity: str) -> CodeType:
    """Compile *source* under the restricted policy.

    Raises
    ------
    ScriptSyntaxError
        If the source is not valid Python or uses a construct the policy forbids.
    """
    result = compile_restricted_exec(source, filename=identity, policy=ScriptPolicy)
    if result.errors:
        raise ScriptSyntaxError(identity, result.errors)
    for warning in result.warnings:
        logger.debug("%s: %s", identity, warning)
    return result.code


# ---------------------------------------------------------------------------
# Guards
# ---------------------------------------------------------------------------


# Plain data types whose public attributes scripts may read.
_READABLE_TYPES = (str, bytes, int, float, list, tuple, dict, set, frozenset)


def guarded_getattr(obj: Any, name: str) -> Any:
    if not isinstance(name, str):
        raise TypeMismatchError("attribute name", "string", kind_of(name))
    if name.startswith("_"):
        raise NoSuchAttributeError(kind_of(obj), name)
    if isinstance(obj, ScriptValue):
        return obj.attr(name)
    if not isinstance(obj, _READABLE_TYPES):
        raise NoSuchAttributeError(kind_of(obj), name)
    # str.format can reach attributes of its arguments without the guard.
    if isinstance(obj, str) and name in ("format", "format_map"):
        raise NoSuchAttributeError("string", name)
    try:
        return getattr(obj, name)
    except AttributeError:
        raise NoSuchAttributeError(kind_of(obj), name) from None


class _FieldWriter:
    """Write target handed to the compiler for ``obj.name = value``."""

    __slots__ = ("_target",)

    def __init__(self, target: ScriptValue) -> None:
        object.__setattr__(self, "_target", target)

    def __setattr__(self, name: str, value: Any) -> None:
        self._target.assign(name, value)

    def __delattr__(self, name: str) -> None:
        raise NoSuchAssignableFieldError(self._target.type_name, name)


def guarded_write(obj: Any) -> Any:
    if isinstance(obj, ScriptValue):
        return _FieldWriter(obj)
    if isinstance(obj, (list, dict)):
        return obj
    raise TypeMismatchError("assignment target", "list, dict or record", kind_of(obj))


def _apply(fn: Callable[..., Any], *args: Any, **kwargs: Any) -> Any:
    return fn(*args, **kwargs)


def _inplacevar(op: str, x: Any, y: Any) -> Any:
    return _INPLACE_OPS[op](x, y)


class ScriptPrinter(PrintCollector):
    """Collects ``print()`` output and forwards each completed line to *sink*."""

    def __init__(self, sink: Callable[[str], None], _getattr_: Callable[..., Any] | None = None) -> None:
        super().__init__(_getattr_)
        self._sink = sink
        self._pending = ""

    def write(self, text: str) -> None:
        super().write(text)
        self._pending += text
        while "\n" in self._pending:
            line, self._pending = self._pending.split("\n", 1)
            self._sink(line)


# ---------------------------------------------------------------------------
# Script builtins
# ---------------------------------------------------------------------------


def _script_getattr(obj: Any, name: Any, default: Any = _MISSING) -> Any:
    try:
        return guarded_getattr(obj, name)
    except NoSuchAttributeError:
        if default is _MISSING:
            raise
        return default


def _script_hasattr(obj: Any, name: Any) -> bool:
    try:
        guarded_getattr(obj, name)
    except NoSuchAttributeError:
        return False
    return True


def _script_setattr(obj: Any, name: Any, value: Any) -> None:
    if not isinstance(name, str):
        raise TypeMismatchError("setattr: name", "string", kind_of(name))
    setattr(guarded_write(obj), name, value)


def _script_dir(obj: Any) -> list[str]:
    if isinstance(obj, ScriptValue):
        return sorted(obj.attr_names())
    if not isinstance(obj, _READABLE_TYPES):
        return []
    return sorted(n for n in dir(obj) if not n.startswith("_"))


def build_script_builtins(extra: Mapping[str, Any] | None = None) -> dict[str, Any]:
    """Builtins visible to every module: RestrictedPython's safe set plus a few."""
    builtins = dict(safe_builtins)
    builtins.pop("__build_class__", None)
    builtins.update(
        {
            "all": all,
            "any": any,
            "dict": dict,
            "enumerate": enumerate,
            "list": list,
            "max": max,
            "min": min,
            "reversed": reversed,
            "set": set,
            "sum": sum,
            "dir": _script_dir,
            "getattr": _script_getattr,
            "hasattr": _script_hasattr,
            "setattr": _script_setattr,
            "type": kind_of,
        }
    )
    if extra:
        builtins.update(extra)
    return builtins


def build_restricted_globals(
    predeclared: Mapping[str, Any],
    identity: str,
    builtins: Mapping[str, Any],
    print_sink: Callable[[str], None],
) -> dict[str, Any]:
    """Fresh globals for one module execution."""
    globals_: dict[str, Any] = {
        "__builtins__": builtins,
        "__name__": identity,
        "_getattr_": guarded_getattr,
        "_write_": guarded_write,
        "_getitem_": default_guarded_getitem,
        "_getiter_": default_guarded_getiter,
        "_iter_unpack_sequence_": guarded_iter_unpack_sequence,
        "_unpack_sequence_": guarded_unpack_sequence,
        "_apply_": _apply,
        "_inplacevar_": _inplacevar,
        "_print_": lambda getattr_=None: ScriptPrinter(print_sink, getattr_),
    }
    globals_.update(predeclared)
    return globals_
