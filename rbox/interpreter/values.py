"""Script-visible values and argument unpacking helpers.

:class:`ScriptValue` is the contract the sandbox's attribute guard dispatches
through: scripts never see Python attributes of host objects directly, only
the names a value chooses to expose via :meth:`ScriptValue.attr`.
"""

from __future__ import annotations

import json
from abc import ABC, abstractmethod
from collections.abc import Callable, Iterable, Mapping
from typing import Any

from rbox.exceptions import ArgumentError, NoSuchAssignableFieldError, NoSuchAttributeError, TypeMismatchError

__all__ = [
    "Builtin",
    "ScriptValue",
    "Struct",
    "expect_bool",
    "expect_int",
    "expect_list_of",
    "expect_str",
    "expect_str_list",
    "expect_uint",
    "flatten_strs",
    "kind_of",
    "script_repr",
]

UINT64_MAX = (1 << 64) - 1


class ScriptValue(ABC):
    """A host object exposed to scripts through explicit attribute dispatch."""

    __slots__ = ()

    @property
    @abstractmethod
    def type_name(self) -> str:
        """Name reported in errors and by ``type()`` in scripts."""

    @abstractmethod
    def attr(self, name: str) -> Any:
        """Return the script-visible attribute *name*.

        Raises
        ------
        NoSuchAttributeError
            If *name* is not one of :meth:`attr_names`.
        """

    @abstractmethod
    def attr_names(self) -> list[str]:
        """All names :meth:`attr` accepts, in declaration order."""

    def assign(self, name: str, value: Any) -> None:
        raise NoSuchAssignableFieldError(self.type_name, name)


class Builtin:
    """A named host callable, the script-side equivalent of a bound builtin."""

    __slots__ = ("_fn", "name")

    def __init__(self, name: str, fn: Callable[..., Any]) -> None:
        self.name = name
        self._fn = fn

    def __call__(self, *args: Any, **kwargs: Any) -> Any:
        return self._fn(*args, **kwargs)

    def __repr__(self) -> str:
        return f"<built-in function {self.name}>"


class Struct(ScriptValue):
    """Immutable record of named values; also used for builtin namespaces.

    Host code may read fields as Python attributes, but a field named like a
    method (``type_name``, ``attr``, ``to_dict``, ``assign``) is only
    reachable through :meth:`attr`, which is what scripts always use.
    """

    __slots__ = ("_fields", "_type_name")

    def __init__(self, fields: Mapping[str, Any] | None = None, type_name: str = "struct") -> None:
        self._fields = dict(fields or {})
        self._type_name = type_name

    @property
    def type_name(self) -> str:
        return self._type_name

    def attr(self, name: str) -> Any:
        try:
            return self._fields[name]
        except KeyError:
            raise NoSuchAttributeError(self._type_name, name) from None

    def attr_names(self) -> list[str]:
        return sorted(self._fields)

    def to_dict(self) -> dict[str, Any]:
        return dict(self._fields)

    def __getattr__(self, name: str) -> Any:
        if name.startswith("_"):
            raise AttributeError(name)
        return self.attr(name)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Struct):
            return NotImplemented
        return self._type_name == other._type_name and self._fields == other._fields

    def __hash__(self) -> int:
        return hash((self._type_name, tuple(sorted(self._fields.items()))))

    def __repr__(self) -> str:
        body = ", ".join(f"{k} = {script_repr(self._fields[k])}" for k in sorted(self._fields))
        return f"{self._type_name}({body})"


def script_repr(value: Any) -> str:
    """Render *value* the way scripts print it (strings double-quoted)."""
    if isinstance(value, str):
        return json.dumps(value, ensure_ascii=False)
    if isinstance(value, list):
        return "[" + ", ".join(script_repr(v) for v in value) + "]"
    if isinstance(value, tuple):
        inner = ", ".join(script_repr(v) for v in value)
        return f"({inner},)" if len(value) == 1 else f"({inner})"
    if isinstance(value, dict):
        return "{" + ", ".join(f"{script_repr(k)}: {script_repr(v)}" for k, v in value.items()) + "}"
    return repr(value)


def kind_of(value: Any) -> str:
    """Script-facing kind name of *value*, used in type-mismatch errors."""
    if isinstance(value, ScriptValue):
        return value.type_name
    if value is None:
        return "NoneType"
    if isinstance(value, bool):
        return "bool"
    if isinstance(value, int):
        return "int"
    if isinstance(value, str):
        return "string"
    if isinstance(value, Builtin):
        return "builtin_function_or_method"
    if callable(value):
        return "function"
    return type(value).__name__


# ---------------------------------------------------------------------------
# Unpacking
# ---------------------------------------------------------------------------


def expect_str(value: Any, what: str) -> str:
    if not isinstance(value, str):
        raise TypeMismatchError(what, "string", kind_of(value))
    return value


def expect_bool(value: Any, what: str) -> bool:
    if not isinstance(value, bool):
        raise TypeMismatchError(what, "bool", kind_of(value))
    return value


def expect_int(value: Any, what: str) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise TypeMismatchError(what, "int", kind_of(value))
    return value


def expect_uint(value: Any, what: str, maximum: int = UINT64_MAX) -> int:
    value = expect_int(value, what)
    if not 0 <= value <= maximum:
        msg = f"{what}: {value} out of range [0, {maximum}]"
        raise ArgumentError(msg)
    return value


def expect_str_list(value: Any, what: str) -> list[str]:
    if not isinstance(value, (list, tuple)):
        raise TypeMismatchError(what, "list of string", kind_of(value))
    return [expect_str(v, f"{what}[{i}]") for i, v in enumerate(value)]


def expect_list_of(value: Any, cls: type, what: str, expected: str) -> list[Any]:
    if not isinstance(value, (list, tuple)):
        raise TypeMismatchError(what, f"list of {expected}", kind_of(value))
    out = []
    for i, v in enumerate(value):
        if not isinstance(v, cls):
            raise TypeMismatchError(f"{what}[{i}]", expected, kind_of(v))
        out.append(v)
    return out


def flatten_strs(args: Iterable[Any], what: str) -> list[str]:
    """Flatten bare strings and lists of strings, preserving argument order."""
    out: list[str] = []
    for i, arg in enumerate(args):
        if isinstance(arg, str):
            out.append(arg)
        elif isinstance(arg, (list, tuple)):
            out.extend(expect_str(v, f"{what}: argument {i} index {x}") for x, v in enumerate(arg))
        else:
            raise TypeMismatchError(f"{what}: argument {i}", "string or list of string", kind_of(arg))
    return out
