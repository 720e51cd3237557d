"""Script interpreter: environment, module loader, proxies and lifecycle.

Public API:
    - Script              — one loaded script with setup/build/named entrypoints
    - ScriptOptions       — host knobs (settings, capabilities, print sink)
    - ScriptState         — constructing / loaded / executing / closed
    - ModuleLoader        — at-most-once module execution with cycle detection
    - ModuleCache         — per-script tri-state module cache
    - ModuleState         — unseen / loading / loaded
    - ResourceRegistry    — closable handles opened by builtins
    - build_environment   — predeclared namespace construction
    - StdlibResolver      — bundled ``*.lib`` modules
    - DirectoryResolver   — user modules under a directory
    - MappingResolver     — user modules held in memory
    - ChainResolver       — ordered resolver fallback
    - Proxy               — base class of native record proxies
    - Struct              — immutable script record
"""

from rbox.interpreter.environment import DIALECT_VERSION, EnvironmentInputs, build_environment
from rbox.interpreter.loader import ModuleCache, ModuleLoader, ModuleState
from rbox.interpreter.proxy import Proxy
from rbox.interpreter.resolvers import ChainResolver, DirectoryResolver, MappingResolver, ModuleResolver, StdlibResolver
from rbox.interpreter.resources import ResourceRegistry
from rbox.interpreter.script import FALLBACK_TEMPLATE, Script, ScriptOptions, ScriptState
from rbox.interpreter.values import Builtin, ScriptValue, Struct

__all__ = [
    "DIALECT_VERSION",
    "FALLBACK_TEMPLATE",
    "Builtin",
    "ChainResolver",
    "DirectoryResolver",
    "EnvironmentInputs",
    "MappingResolver",
    "ModuleCache",
    "ModuleLoader",
    "ModuleResolver",
    "ModuleState",
    "Proxy",
    "ResourceRegistry",
    "Script",
    "ScriptOptions",
    "ScriptState",
    "ScriptValue",
    "StdlibResolver",
    "Struct",
    "build_environment",
]
