"""rbox — scripted customization of filesystem images.

A script describes network, service and mount configuration for an image;
:class:`~rbox.interpreter.Script` runs it against host capabilities::

    with Script(source, "build.box", options=ScriptOptions(capabilities=caps)) as script:
        script.invoke_setup(template)
        script.invoke_build()
"""

from rbox.capabilities import Capabilities, RootedFilesystem
from rbox.config import RboxSettings, load_settings
from rbox.exceptions import (
    ArgumentError,
    CrashError,
    CycleError,
    EntrypointMissingError,
    ErrorKind,
    ModuleImportError,
    NoSuchAssignableFieldError,
    NoSuchAttributeError,
    RboxError,
    ResourceError,
    ScriptRuntimeError,
    ScriptStateError,
    ScriptSyntaxError,
    TypeMismatchError,
)
from rbox.interpreter import Script, ScriptOptions, ScriptState

__all__ = [
    "ArgumentError",
    "Capabilities",
    "CrashError",
    "CycleError",
    "EntrypointMissingError",
    "ErrorKind",
    "ModuleImportError",
    "NoSuchAssignableFieldError",
    "NoSuchAttributeError",
    "RboxError",
    "RboxSettings",
    "ResourceError",
    "RootedFilesystem",
    "Script",
    "ScriptOptions",
    "ScriptRuntimeError",
    "ScriptState",
    "ScriptStateError",
    "ScriptSyntaxError",
    "TypeMismatchError",
    "load_settings",
]
