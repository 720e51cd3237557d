"""Error taxonomy for the rbox scripting runtime.

Every error raised across the script/host boundary derives from
:class:`RboxError` and carries an :class:`ErrorKind`.  Subclasses also
inherit the closest builtin exception (``ImportError``, ``TypeError``,
``AttributeError``, ...) so that script code using ``hasattr`` or
``getattr(obj, name, default)`` and host code catching builtin families
keep working.

When an error escapes a named entrypoint, :class:`~rbox.interpreter.script.Script`
records the entrypoint name on :attr:`RboxError.entrypoint` before it reaches
the host driver.
"""

from __future__ import annotations

from enum import Enum

__all__ = [
    "ArgumentError",
    "CrashError",
    "CycleError",
    "EntrypointMissingError",
    "ErrorKind",
    "ModuleImportError",
    "NoSuchAssignableFieldError",
    "NoSuchAttributeError",
    "RboxError",
    "ResourceError",
    "ScriptRuntimeError",
    "ScriptStateError",
    "ScriptSyntaxError",
    "TypeMismatchError",
]


class ErrorKind(Enum):
    """Classification of runtime failures."""

    IMPORT = "import"
    CYCLE = "cycle"
    TYPE_MISMATCH = "type_mismatch"
    NO_SUCH_ATTRIBUTE = "no_such_attribute"
    NO_SUCH_ASSIGNABLE_FIELD = "no_such_assignable_field"
    ENTRYPOINT_MISSING = "entrypoint_missing"
    RESOURCE = "resource"
    ARGUMENT = "argument"
    SYNTAX = "syntax"
    RUNTIME = "runtime"
    CRASH = "crash"
    STATE = "state"


class RboxError(Exception):
    """Base exception for script runtime errors."""

    def __init__(self, message: str, kind: ErrorKind = ErrorKind.RUNTIME) -> None:
        """Initialize runtime error.

        Args:
            message: Error description
            kind: Error classification
        """
        super().__init__(message)
        self.message = message
        self.kind = kind
        self.entrypoint: str | None = None

    def with_entrypoint(self, name: str) -> RboxError:
        """Record the entrypoint the error escaped from, keeping the innermost."""
        if self.entrypoint is None:
            self.entrypoint = name
        return self

    def __str__(self) -> str:
        if self.entrypoint:
            return f"{self.entrypoint}(): {self.message}"
        return self.message


# ---------------------------------------------------------------------------
# Module loading
# ---------------------------------------------------------------------------


class ModuleImportError(RboxError, ImportError):
    """Unknown module, resolver failure or missing symbol in a load()."""

    def __init__(self, module: str, message: str | None = None, *, not_found: bool = False) -> None:
        super().__init__(message or f"no such import: {module}", ErrorKind.IMPORT)
        self.module = module
        self.not_found = not_found


class CycleError(ModuleImportError):
    """A module was referenced again while it was still loading."""

    def __init__(self, module: str) -> None:
        super().__init__(module, f"cycle in dependency graph when loading {module}")
        self.kind = ErrorKind.CYCLE


class ScriptSyntaxError(RboxError):
    """Script source was rejected by the restricted compiler."""

    def __init__(self, identity: str, errors: list[str] | tuple[str, ...]) -> None:
        super().__init__(f"{identity}: " + "; ".join(errors), ErrorKind.SYNTAX)
        self.identity = identity
        self.errors = tuple(errors)


# ---------------------------------------------------------------------------
# Proxy dispatch
# ---------------------------------------------------------------------------


class TypeMismatchError(RboxError, TypeError):
    """A script value had the wrong kind for a field or builtin argument."""

    def __init__(self, what: str, expected: str, actual: str) -> None:
        super().__init__(f"{what}: expected {expected}, got {actual}", ErrorKind.TYPE_MISMATCH)
        self.what = what
        self.expected = expected
        self.actual = actual


class NoSuchAttributeError(RboxError, AttributeError):
    """Attribute read of a name the value does not expose."""

    def __init__(self, type_name: str, name: str) -> None:
        super().__init__(f"{type_name} has no attribute {name!r}", ErrorKind.NO_SUCH_ATTRIBUTE)
        self.type_name = type_name
        self.name = name


class NoSuchAssignableFieldError(RboxError, AttributeError):
    """Attribute assignment to an unknown or read-only name."""

    def __init__(self, type_name: str, name: str) -> None:
        super().__init__(
            f"{type_name} has no assignable field {name!r}",
            ErrorKind.NO_SUCH_ASSIGNABLE_FIELD,
        )
        self.type_name = type_name
        self.name = name


class ArgumentError(RboxError, ValueError):
    """Wrong number of arguments, or a value outside the accepted range."""

    def __init__(self, message: str) -> None:
        super().__init__(message, ErrorKind.ARGUMENT)


# ---------------------------------------------------------------------------
# Lifecycle
# ---------------------------------------------------------------------------


class EntrypointMissingError(RboxError):
    """A required entrypoint is not bound in the script globals."""

    def __init__(self, name: str) -> None:
        super().__init__(f"{name}() function not present", ErrorKind.ENTRYPOINT_MISSING)
        self.name = name


class ScriptRuntimeError(RboxError):
    """Any other exception raised while script code was running."""

    def __init__(self, message: str, *, entrypoint: str | None = None) -> None:
        super().__init__(message, ErrorKind.RUNTIME)
        self.entrypoint = entrypoint


class CrashError(RboxError):
    """Raised by the ``crash()`` builtin."""

    def __init__(self, detail: str = "") -> None:
        super().__init__(f"soft crash: {detail}" if detail else "soft crash", ErrorKind.CRASH)
        self.detail = detail


class ScriptStateError(RboxError):
    """Operation is not valid in the script's current lifecycle state."""

    def __init__(self, state: str, operation: str) -> None:
        super().__init__(f"cannot {operation} while script is {state}", ErrorKind.STATE)
        self.state = state
        self.operation = operation


class ResourceError(RboxError, OSError):
    """Failure reported by a mount, install or filesystem capability."""

    def __init__(self, operation: str, detail: str | BaseException) -> None:
        RboxError.__init__(self, f"{operation}: {detail}", ErrorKind.RESOURCE)
        self.operation = operation
        self.detail = detail
