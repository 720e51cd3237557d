"""Module loader: executes each script module at most once per script.

Cache entries move through an explicit three-state lifecycle::

    UNSEEN ──begin──► LOADING ──complete──► LOADED
                         │
                         └──abandon──► UNSEEN   (resolve or execution failed)

Seeing LOADING on lookup means the module is being loaded further up the
current call stack, which is a dependency cycle and fails immediately.  A
failed load returns the entry to UNSEEN, so a later independent ``load()``
can retry it.

Modules run in fresh globals built from the script's shared predeclared
namespace.  ``load()`` is installed per module, bound to that module's
globals, and merges the requested symbols into them.  Symbols bound by
``load()`` stay private to the module that loaded them.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from enum import Enum
from types import MappingProxyType
from typing import Any

from rbox.exceptions import (
    ArgumentError,
    CycleError,
    ModuleImportError,
    RboxError,
    ScriptRuntimeError,
)
from rbox.interpreter.resolvers import ModuleResolver
from rbox.interpreter.sandbox import build_restricted_globals, compile_script
from rbox.interpreter.values import Builtin, expect_str

__all__ = ["ModuleCache", "ModuleLoader", "ModuleState"]

logger = logging.getLogger(__name__)


class ModuleState(Enum):
    UNSEEN = "unseen"
    LOADING = "loading"
    LOADED = "loaded"


@dataclass(slots=True)
class _CacheEntry:
    state: ModuleState
    bindings: Mapping[str, Any] | None = None


class ModuleCache:
    """Per-script module cache keyed by module identifier."""

    __slots__ = ("_entries",)

    def __init__(self) -> None:
        self._entries: dict[str, _CacheEntry] = {}

    def state(self, name: str) -> ModuleState:
        entry = self._entries.get(name)
        return ModuleState.UNSEEN if entry is None else entry.state

    def bindings(self, name: str) -> Mapping[str, Any]:
        entry = self._entries.get(name)
        if entry is None or entry.state is not ModuleState.LOADED:
            msg = f"module {name} is not loaded"
            raise KeyError(msg)
        return entry.bindings

    def begin(self, name: str) -> None:
        if self.state(name) is not ModuleState.UNSEEN:
            raise CycleError(name)
        self._entries[name] = _CacheEntry(ModuleState.LOADING)

    def complete(self, name: str, bindings: Mapping[str, Any]) -> None:
        entry = self._entries.get(name)
        if entry is None or entry.state is not ModuleState.LOADING:
            msg = f"module {name} completed without being loaded"
            raise RuntimeError(msg)
        entry.state = ModuleState.LOADED
        entry.bindings = bindings

    def abandon(self, name: str) -> None:
        entry = self._entries.get(name)
        if entry is not None and entry.state is ModuleState.LOADING:
            del self._entries[name]

    def loaded(self) -> list[str]:
        return [n for n, e in self._entries.items() if e.state is ModuleState.LOADED]

    def __contains__(self, name: object) -> bool:
        return name in self._entries

    def __len__(self) -> int:
        return len(self._entries)


class ModuleLoader:
    """Resolves, executes and caches script modules for one script.

    Parameters
    ----------
    resolver:
        Source of module text, consulted on cache misses.
    predeclared:
        Namespace shared by every module of the script.
    builtins:
        ``__builtins__`` mapping for module globals.
    print_sink:
        Receives each line a module prints.
    max_source_bytes:
        Modules larger than this are refused.
    """

    __slots__ = ("_builtins", "_cache", "_max_source_bytes", "_predeclared", "_print_sink", "_resolver")

    def __init__(
        self,
        resolver: ModuleResolver,
        predeclared: Mapping[str, Any],
        builtins: Mapping[str, Any],
        print_sink: Callable[[str], None],
        max_source_bytes: int = 1 << 20,
    ) -> None:
        self._resolver = resolver
        self._predeclared = predeclared
        self._builtins = builtins
        self._print_sink = print_sink
        self._max_source_bytes = max_source_bytes
        self._cache = ModuleCache()

    @property
    def cache(self) -> ModuleCache:
        return self._cache

    def load(self, name: str) -> Mapping[str, Any]:
        """Return the exported bindings of module *name*, executing it on first use.

        Raises
        ------
        CycleError
            If *name* is already being loaded further up the stack.
        ModuleImportError
            If no resolver has *name*, or the resolver failed.
        """
        state = self._cache.state(name)
        if state is ModuleState.LOADED:
            return self._cache.bindings(name)
        if state is ModuleState.LOADING:
            raise CycleError(name)

        self._cache.begin(name)
        try:
            source = self._resolve(name)
            _, exports = self._execute(source, name)
        except BaseException:
            self._cache.abandon(name)
            raise
        self._cache.complete(name, exports)
        logger.debug("Loaded module %s (%d exports)", name, len(exports))
        return exports

    def run_main(self, source: str | bytes, identity: str) -> dict[str, Any]:
        """Execute the top-level script and return its full globals.

        The main module occupies a cache slot under *identity* so that a
        module loading it back is reported as a cycle.
        """
        self._cache.begin(identity)
        try:
            globals_, exports = self._execute(self._decode(source, identity), identity)
        except BaseException:
            self._cache.abandon(identity)
            raise
        self._cache.complete(identity, exports)
        return globals_

    # -- internals -----------------------------------------------------------

    def _resolve(self, name: str) -> str:
        try:
            raw = self._resolver.resolve(name)
        except ModuleNotFoundError:
            raise ModuleImportError(name, not_found=True) from None
        except RboxError:
            raise
        except Exception as exc:
            raise ModuleImportError(name, f"resolving {name}: {exc}") from exc
        return self._decode(raw, name)

    def _decode(self, raw: str | bytes, name: str) -> str:
        if len(raw) > self._max_source_bytes:
            raise ModuleImportError(name, f"{name}: source exceeds {self._max_source_bytes} bytes")
        if isinstance(raw, bytes):
            try:
                return raw.decode("utf-8")
            except UnicodeDecodeError as exc:
                raise ModuleImportError(name, f"{name}: source is not UTF-8: {exc}") from exc
        return raw

    def _execute(self, source: str, identity: str) -> tuple[dict[str, Any], Mapping[str, Any]]:
        code = compile_script(source, identity)
        globals_ = build_restricted_globals(self._predeclared, identity, self._builtins, self._print_sink)
        imported: set[str] = set()
        globals_["load"] = Builtin("load", self._binder(identity, globals_, imported))
        initial = dict(globals_)

        try:
            exec(code, globals_)  # noqa: S102
        except RboxError:
            raise
        except Exception as exc:
            raise ScriptRuntimeError(f"{identity}: {type(exc).__name__}: {exc}") from exc

        exports = {
            k: v
            for k, v in globals_.items()
            if not k.startswith("_") and k not in imported and (k not in initial or initial[k] is not v)
        }
        return globals_, MappingProxyType(exports)

    def _binder(self, identity: str, globals_: dict[str, Any], imported: set[str]):
        def load(module: Any, *symbols: Any, **aliases: Any) -> None:
            module = expect_str(module, "load: module")
            if not symbols and not aliases:
                raise ArgumentError(f"load: no symbols requested from {module}")
            wanted = {expect_str(s, f"load: symbol {i}"): s for i, s in enumerate(symbols)}
            for local, remote in aliases.items():
                wanted[local] = expect_str(remote, f"load: alias {local}")

            bindings = self.load(module)
            for local, remote in wanted.items():
                if remote not in bindings:
                    raise ModuleImportError(module, f"load: name {remote} not found in module {module}")
            for local, remote in wanted.items():
                globals_[local] = bindings[remote]
                imported.add(local)
            logger.debug("%s loaded %s from %s", identity, sorted(wanted), module)

        return load
