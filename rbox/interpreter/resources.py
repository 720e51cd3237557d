"""Per-script registry of closable handles opened by builtins."""

from __future__ import annotations

import logging
from collections.abc import Iterator
from dataclasses import dataclass
from typing import Protocol, TypeVar

__all__ = ["Closeable", "ResourceRegistry"]

logger = logging.getLogger(__name__)


class Closeable(Protocol):
    def close(self) -> None: ...


C = TypeVar("C", bound=Closeable)


@dataclass(slots=True)
class _Entry:
    resource: Closeable
    closed: bool = False


class ResourceRegistry:
    """Tracks resources so the owning script can release them deterministically.

    Every registered resource is closed exactly once by :meth:`close_all`,
    newest first.  A failing close does not stop the remaining ones; failures
    are returned in the order they happened.
    """

    __slots__ = ("_entries",)

    def __init__(self) -> None:
        self._entries: list[_Entry] = []

    def register(self, resource: C) -> C:
        self._entries.append(_Entry(resource))
        logger.debug("Registered resource %r (%d open)", resource, self.open_count)
        return resource

    @property
    def open_count(self) -> int:
        return sum(1 for e in self._entries if not e.closed)

    def close_all(self) -> list[Exception]:
        failures: list[Exception] = []
        for entry in reversed(self._entries):
            if entry.closed:
                continue
            entry.closed = True
            try:
                entry.resource.close()
            except Exception as exc:
                logger.debug("Closing %r failed: %s", entry.resource, exc)
                failures.append(exc)
        return failures

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self) -> Iterator[Closeable]:
        return (e.resource for e in self._entries)

    def __repr__(self) -> str:
        return f"ResourceRegistry(entries={len(self._entries)}, open={self.open_count})"
