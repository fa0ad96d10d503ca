"""Name-keyed method registry backing a module's public surface."""

from __future__ import annotations

from collections.abc import Iterator, Mapping
from typing import TYPE_CHECKING, Any

from modweave.exceptions import CompositionError

if TYPE_CHECKING:
    from modweave.lazy import LazyHandle

_MISSING: Any = object()


class MethodRegistry:
    """Entries registered on one module plus forwarding links.

    Own entries are stored by name; a later registration under the same
    name replaces the earlier one.  Links are lazy handles installed by
    ``use()``: they are consulted at read time, after own entries, so a
    linked module's entries show up as soon as that module registers them.
    """

    def __init__(self, *, owner: str = "", reserved: frozenset[str] = frozenset()) -> None:
        self._owner = owner
        self._reserved = reserved
        self._entries: dict[str, Any] = {}
        self._links: list[LazyHandle] = []

    def __contains__(self, name: object) -> bool:
        return isinstance(name, str) and self.lookup(name, _MISSING) is not _MISSING

    def __iter__(self) -> Iterator[str]:
        return iter(self.visible())

    def __len__(self) -> int:
        return len(self.visible())

    @property
    def links(self) -> tuple[LazyHandle, ...]:
        return tuple(self._links)

    def _check_name(self, name: Any) -> None:
        if not isinstance(name, str) or not name:
            raise CompositionError(
                f"entry name on module {self._owner!r} must be a non-empty string, got {name!r}",
                name=str(name),
                module=self._owner,
            )
        if name in self._reserved:
            raise CompositionError(
                f"entry name {name!r} is reserved on module {self._owner!r}",
                name=name,
                module=self._owner,
            )

    def register(self, name: str, value: Any) -> None:
        self._check_name(name)
        self._entries[name] = value

    def merge(self, entries: Mapping[str, Any]) -> None:
        """Register every entry, or none if any name is invalid."""
        for name in entries:
            self._check_name(name)
        self._entries.update(entries)

    def link(self, handle: LazyHandle) -> bool:
        """Forward reads to *handle*; returns False if it was already linked."""
        if handle in self._links:
            return False
        self._links.append(handle)
        return True

    def own(self) -> dict[str, Any]:
        """Entries registered directly on this registry."""
        return dict(self._entries)

    def lookup(self, name: str, default: Any = None, *, _seen: set[int] | None = None) -> Any:
        seen = _seen if _seen is not None else set()
        if id(self) in seen:
            return default
        seen.add(id(self))

        if name in self._entries:
            return self._entries[name]
        for handle in reversed(self._links):
            value = handle.lookup(name, _MISSING, _seen=seen)
            if value is not _MISSING:
                return value
        return default

    def visible(self, *, _seen: set[int] | None = None) -> dict[str, Any]:
        """Everything reachable by name: linked entries overlaid by own entries.

        Mutually linked registries are walked once each.
        """
        seen = _seen if _seen is not None else set()
        if id(self) in seen:
            return {}
        seen.add(id(self))

        merged: dict[str, Any] = {}
        for handle in self._links:
            merged.update(handle.entries(_seen=seen))
        merged.update(self._entries)
        return merged
