"""Module resolvers: where ``load()`` finds script source.

A resolver maps a module identifier to source text.  It raises
``ModuleNotFoundError`` when it has no such module, so that a chain can move
on to the next source; any other exception is a genuine failure and stops
the lookup.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from importlib import resources
from pathlib import Path
from typing import Protocol

__all__ = [
    "ChainResolver",
    "DirectoryResolver",
    "MappingResolver",
    "ModuleResolver",
    "StdlibResolver",
]

logger = logging.getLogger(__name__)


class ModuleResolver(Protocol):
    def resolve(self, identifier: str) -> bytes | str: ...


def _not_found(identifier: str) -> ModuleNotFoundError:
    return ModuleNotFoundError(f"no such import: {identifier}", name=identifier)


class StdlibResolver:
    """Library modules shipped inside the ``rbox.interpreter.lib`` package."""

    PACKAGE = "rbox.interpreter.lib"
    SUFFIX = ".lib"

    def resolve(self, identifier: str) -> bytes:
        if not identifier.endswith(self.SUFFIX) or "/" in identifier or identifier.startswith("."):
            raise _not_found(identifier)
        resource = resources.files(self.PACKAGE) / identifier
        if not resource.is_file():
            raise _not_found(identifier)
        return resource.read_bytes()

    def names(self) -> list[str]:
        return sorted(
            r.name for r in resources.files(self.PACKAGE).iterdir() if r.name.endswith(self.SUFFIX)
        )


class DirectoryResolver:
    """User modules stored under a directory, addressed by relative path."""

    __slots__ = ("_root",)

    def __init__(self, root: Path | str) -> None:
        self._root = Path(root).resolve()

    @property
    def root(self) -> Path:
        return self._root

    def resolve(self, identifier: str) -> bytes:
        path = (self._root / identifier).resolve()
        if not path.is_relative_to(self._root) or not path.is_file():
            raise _not_found(identifier)
        return path.read_bytes()


class MappingResolver:
    """In-memory modules, for hosts that embed their scripts."""

    __slots__ = ("_modules",)

    def __init__(self, modules: Mapping[str, bytes | str]) -> None:
        self._modules = dict(modules)

    def resolve(self, identifier: str) -> bytes | str:
        try:
            return self._modules[identifier]
        except KeyError:
            raise _not_found(identifier) from None


class ChainResolver:
    """Try each resolver in order; the first one that has the module wins."""

    __slots__ = ("_resolvers",)

    def __init__(self, *resolvers: ModuleResolver) -> None:
        self._resolvers = resolvers

    def resolve(self, identifier: str) -> bytes | str:
        for resolver in self._resolvers:
            try:
                source = resolver.resolve(identifier)
            except ModuleNotFoundError:
                continue
            logger.debug("Resolved %s via %s", identifier, type(resolver).__name__)
            return source
        raise _not_found(identifier)
