"""Script: top-level orchestration of one configuration script run.

Lifecycle::

    CONSTRUCTING ──load──► LOADED ◄──exit── EXECUTING
         │                  │  └───enter────►
         │                  │
         └──close──► CLOSED ◄┘close

Construction parses the argument vector, builds the predeclared namespace and
executes the top-level module.  If any of that fails, resources already
opened are released and the error propagates: there is no half-built script.
Entrypoints run one at a time.  ``close()`` is idempotent and releases every
registered resource even when some of them fail to close.
"""

from __future__ import annotations

import argparse
import logging
import sys
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Any, ClassVar

from rbox.capabilities import Capabilities
from rbox.config import RboxSettings
from rbox.exceptions import (
    ArgumentError,
    EntrypointMissingError,
    RboxError,
    ResourceError,
    ScriptRuntimeError,
    ScriptStateError,
    TypeMismatchError,
)
from rbox.interpreter.environment import EnvironmentInputs, build_environment
from rbox.interpreter.loader import ModuleLoader
from rbox.interpreter.resolvers import ChainResolver, DirectoryResolver, ModuleResolver, StdlibResolver
from rbox.interpreter.resources import ResourceRegistry
from rbox.interpreter.sandbox import build_script_builtins
from rbox.interpreter.values import kind_of

__all__ = ["FALLBACK_TEMPLATE", "Script", "ScriptOptions", "ScriptState"]

logger = logging.getLogger(__name__)
script_output = logging.getLogger("rbox.script")

# Entrypoint a host may invoke to obtain a template path when none was given.
FALLBACK_TEMPLATE = "fallback_template"


class ScriptState(Enum):
    CONSTRUCTING = "constructing"
    LOADED = "loaded"
    EXECUTING = "executing"
    CLOSED = "closed"


@dataclass(slots=True)
class ScriptOptions:
    """Host-side knobs for a :class:`Script`.

    Attributes:
        settings: Runtime settings; defaults to ``RboxSettings()``.
        capabilities: Injected host capabilities.
        verbose: Overrides ``settings.verbose`` when not None.
        test_hook: Exposed to the script as ``test_hook``.
        print_sink: Receives each line the script prints.
    """

    settings: RboxSettings | None = None
    capabilities: Capabilities | None = None
    verbose: bool | None = None
    test_hook: Callable[..., Any] | None = None
    print_sink: Callable[[str], None] | None = None
    extra_builtins: dict[str, Any] = field(default_factory=dict)


def _parse_arguments(arguments: Sequence[str]) -> tuple[str, ...]:
    # Flags are only recognized before the first positional argument, and no
    # script-visible flags are declared, so any flag there is an error.
    args = list(arguments)
    if args[:1] == ["--"]:
        return tuple(args[1:])
    parser = argparse.ArgumentParser(prog="script", add_help=False)
    parser.add_argument("positional", nargs=argparse.REMAINDER)
    namespace, unknown = parser.parse_known_args(args)
    if unknown:
        raise ArgumentError(f"flag provided but not defined: {unknown[0]}")
    return tuple(namespace.positional)


class Script:
    """One loaded configuration script and the resources it opened.

    Parameters
    ----------
    source:
        Script text of the top-level module.
    identity:
        Name of the top-level module, used in errors and for cycle detection.
    resolver:
        Source of user modules for ``load()``; the in-tree library is always
        consulted first.  Defaults to the settings' ``library_path``.
    arguments:
        Argument vector exposed through ``args``.
    options:
        See :class:`ScriptOptions`.

    Raises
    ------
    RboxError
        Any failure while parsing arguments or executing the top-level module.
    """

    _TRANSITIONS: ClassVar[dict[tuple[ScriptState, str], ScriptState]] = {
        (ScriptState.CONSTRUCTING, "load"): ScriptState.LOADED,
        (ScriptState.CONSTRUCTING, "close"): ScriptState.CLOSED,
        (ScriptState.LOADED, "enter"): ScriptState.EXECUTING,
        (ScriptState.EXECUTING, "exit"): ScriptState.LOADED,
        (ScriptState.LOADED, "close"): ScriptState.CLOSED,
    }

    __slots__ = ("_arguments", "_globals", "_identity", "_loader", "_registry", "_setup_value", "_state")

    def __init__(
        self,
        source: str | bytes,
        identity: str = "main.box",
        resolver: ModuleResolver | None = None,
        arguments: Sequence[str] = (),
        options: ScriptOptions | None = None,
    ) -> None:
        opts = options or ScriptOptions()
        settings = opts.settings or RboxSettings()
        verbose = settings.verbose if opts.verbose is None else opts.verbose

        self._state = ScriptState.CONSTRUCTING
        self._identity = identity
        self._registry = ResourceRegistry()
        self._setup_value: Any = None
        self._globals: dict[str, Any] = {}

        if resolver is None:
            resolver = ChainResolver(*(DirectoryResolver(p) for p in settings.library_path))
        capabilities = opts.capabilities or Capabilities(sector_size=settings.sector_size)
        sink = opts.print_sink or (_stdout_sink if verbose else script_output.info)

        try:
            self._arguments = _parse_arguments(arguments)
            env = build_environment(
                EnvironmentInputs(
                    arguments=self._arguments,
                    verbose=verbose,
                    capabilities=capabilities,
                    registry=self._registry,
                    test_hook=opts.test_hook,
                )
            )
            self._loader = ModuleLoader(
                ChainResolver(StdlibResolver(), resolver),
                env,
                build_script_builtins(opts.extra_builtins),
                sink,
                settings.max_source_bytes,
            )
            self._globals = self._loader.run_main(source, identity)
        except BaseException:
            self._advance("close")
            for failure in self._registry.close_all():
                logger.warning("Failed to release resource after aborted load: %s", failure)
            raise
        self._advance("load")
        logger.debug("Loaded script %s", identity)

    # -- state ---------------------------------------------------------------

    @property
    def state(self) -> ScriptState:
        return self._state

    @property
    def identity(self) -> str:
        return self._identity

    @property
    def arguments(self) -> tuple[str, ...]:
        return self._arguments

    @property
    def registry(self) -> ResourceRegistry:
        return self._registry

    @property
    def loader(self) -> ModuleLoader:
        return self._loader

    @property
    def globals(self) -> MappingProxyType[str, Any]:
        return MappingProxyType(self._globals)

    @property
    def setup_value(self) -> Any:
        return self._setup_value

    def _advance(self, event: str) -> None:
        nxt = self._TRANSITIONS.get((self._state, event))
        if nxt is None:
            raise ScriptStateError(self._state.value, event)
        self._state = nxt

    # -- entrypoints ---------------------------------------------------------

    def has_entrypoint(self, name: str) -> bool:
        return callable(self._globals.get(name))

    def _entrypoint(self, name: str) -> Callable[..., Any]:
        if name.startswith("_") or name not in self._globals:
            raise EntrypointMissingError(name)
        fn = self._globals[name]
        if not callable(fn):
            raise TypeMismatchError(f"entrypoint {name}", "function", kind_of(fn)).with_entrypoint(name)
        return fn

    def _call(self, name: str, *args: Any) -> Any:
        fn = self._entrypoint(name)
        self._advance("enter")
        logger.debug("Invoking %s() in %s", name, self._identity)
        try:
            return fn(*args)
        except RboxError as exc:
            raise exc.with_entrypoint(name)
        except Exception as exc:
            raise ScriptRuntimeError(f"{type(exc).__name__}: {exc}", entrypoint=name) from exc
        finally:
            self._advance("exit")

    def invoke_setup(self, template: str | None) -> Any:
        """Call ``setup(template)`` if the script defines it; keep the result for build."""
        if "setup" not in self._globals:
            if self._state is not ScriptState.LOADED:
                raise ScriptStateError(self._state.value, "invoke setup")
            self._setup_value = None
            return None
        self._setup_value = self._call("setup", template)
        return self._setup_value

    def invoke_build(self) -> None:
        """Call ``build(setup_value)``.

        Raises
        ------
        EntrypointMissingError
            If the script does not define ``build``.
        """
        self._call("build", self._setup_value)

    def invoke_named(self, name: str) -> str:
        """Call a zero-argument entrypoint that must return a string."""
        result = self._call(name)
        if not isinstance(result, str):
            raise TypeMismatchError(f"{name}() return value", "string", kind_of(result)).with_entrypoint(name)
        return result

    # -- teardown ------------------------------------------------------------

    def close(self) -> None:
        """Release every registered resource; the first failure is raised.

        Raises
        ------
        ResourceError
            If any resource failed to close.  Remaining failures are logged.
        """
        if self._state is ScriptState.CLOSED:
            return
        self._advance("close")
        failures = self._registry.close_all()
        for extra in failures[1:]:
            logger.warning("Additional failure closing resources of %s: %s", self._identity, extra)
        if failures:
            first = failures[0]
            if isinstance(first, ResourceError):
                raise first
            raise ResourceError("close", first) from first

    def __enter__(self) -> Script:
        return self

    def __exit__(self, *exc_info: object) -> bool:
        self.close()
        return False

    def __repr__(self) -> str:
        return f"Script(identity={self._identity!r}, state={self._state.value}, resources={len(self._registry)})"


def _stdout_sink(line: str) -> None:
    sys.stdout.write(line + "\n")
