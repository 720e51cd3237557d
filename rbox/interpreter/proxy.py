"""Proxy base class: native config records exposed as script values.

Each concrete proxy declares three explicit tables:

``READABLE``
    field names served by :meth:`Proxy.get_field`, in display order.
``ASSIGNABLE``
    the subset of ``READABLE`` that accepts writes.  Every assignable field is
    reachable both as ``obj.field = v`` and as ``obj.set_field(v)``.
``METHODS``
    names of bound methods exposed as builtins (``append_after``, ...).

Subclasses implement :meth:`get_field` and :meth:`set_field` as a single
``match`` over the field name.  Setters validate the value completely before
touching the native record, so a rejected value never leaves partial state.

Identity-sensitive operations are content based: two proxies compare equal
when they have the same ``type_name`` and render the same text, and hash
accordingly.  Mutating a proxy after using it as a dict key or set member
therefore changes its hash, exactly like any other content-hashed value.

Child proxies are cached on the parent, keyed by the child native object, so
repeated reads of ``unit.service`` return the same proxy instance.
"""

from __future__ import annotations

import hashlib
from collections.abc import Mapping
from typing import Any, ClassVar, TypeVar

from rbox.exceptions import ArgumentError, NoSuchAssignableFieldError, NoSuchAttributeError
from rbox.interpreter.values import Builtin, ScriptValue

__all__ = ["Proxy", "populate"]


class Proxy(ScriptValue):
    """Script-value adapter over one native record."""

    __slots__ = ("_children", "native")

    READABLE: ClassVar[tuple[str, ...]] = ()
    ASSIGNABLE: ClassVar[frozenset[str]] = frozenset()
    METHODS: ClassVar[tuple[str, ...]] = ()

    def __init__(self, native: Any) -> None:
        self.native = native
        self._children: dict[Any, Proxy] = {}

    # -- dispatch ------------------------------------------------------------

    def get_field(self, name: str) -> Any:
        raise NoSuchAttributeError(self.type_name, name)

    def set_field(self, name: str, value: Any) -> None:
        raise NoSuchAssignableFieldError(self.type_name, name)

    def render(self) -> str:
        return self.native.render()

    def attr(self, name: str) -> Any:
        if name in self.READABLE:
            return self.get_field(name)
        if name.startswith("set_") and name[4:] in self.ASSIGNABLE:
            return Builtin(name, self._setter(name[4:]))
        if name in self.METHODS:
            return Builtin(name, getattr(self, name))
        raise NoSuchAttributeError(self.type_name, name)

    def assign(self, name: str, value: Any) -> None:
        if name not in self.ASSIGNABLE:
            raise NoSuchAssignableFieldError(self.type_name, name)
        self.set_field(name, value)

    def attr_names(self) -> list[str]:
        names: list[str] = []
        for field in self.READABLE:
            names.append(field)
            if field in self.ASSIGNABLE:
                names.append(f"set_{field}")
        names.extend(self.METHODS)
        return names

    def _setter(self, field: str):
        qualified = f"{self.type_name}.set_{field}"

        def setter(*args: Any, **kwargs: Any) -> None:
            if kwargs or len(args) != 1:
                msg = f"{qualified}: got {len(args) + len(kwargs)} arguments, want 1"
                raise ArgumentError(msg)
            self.set_field(field, args[0])

        return setter

    # -- children ------------------------------------------------------------

    def child(self, native: Any, factory: type[Proxy], *args: Any) -> Proxy:
        """Return the cached proxy for *native*, creating it on first use."""
        proxy = self._children.get(native)
        if proxy is None:
            proxy = factory(native, *args)
            self._children[native] = proxy
        return proxy

    def adopt(self, proxy: Proxy) -> Proxy:
        """Cache an existing proxy as the child view of its native record."""
        self._children[proxy.native] = proxy
        return proxy

    def forget_children(self, keep: list[Any] | tuple[Any, ...] = ()) -> None:
        """Drop cached children whose natives are no longer referenced."""
        keep_ids = {id(n) for n in keep}
        for native in [n for n in self._children if id(n) not in keep_ids]:
            del self._children[native]

    # -- value protocol ------------------------------------------------------

    def __bool__(self) -> bool:
        return True

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Proxy):
            return NotImplemented
        return self.type_name == other.type_name and self.render() == other.render()

    def __hash__(self) -> int:
        digest = hashlib.sha256(f"{self.type_name}\0{self.render()}".encode()).digest()
        return int.from_bytes(digest[:8], "little")

    def __str__(self) -> str:
        return self.render()

    def __repr__(self) -> str:
        return f"<{self.type_name}>"


P = TypeVar("P", bound=Proxy)


def populate(
    proxy: P,
    fn: str,
    params: tuple[str, ...],
    args: tuple[Any, ...],
    kwargs: dict[str, Any],
    aliases: Mapping[str, str] | None = None,
) -> P:
    """Apply constructor arguments to a fresh proxy through its setters.

    *params* gives the accepted parameter names in positional order;
    *aliases* maps a parameter name to a differently named field.
    """
    if len(args) > len(params):
        msg = f"{fn}: got {len(args)} positional arguments, want at most {len(params)}"
        raise ArgumentError(msg)
    values = dict(zip(params, args))
    for key, value in kwargs.items():
        if key not in params:
            msg = f"{fn}: unexpected keyword argument {key!r}"
            raise ArgumentError(msg)
        if key in values:
            msg = f"{fn}: got multiple values for argument {key!r}"
            raise ArgumentError(msg)
        values[key] = value

    aliases = aliases or {}
    for key in params:
        if key in values:
            proxy.set_field(aliases.get(key, key), values[key])
    return proxy
