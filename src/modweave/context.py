"""Context objects handed to derive/pipe/chain factories and hooks."""

from __future__ import annotations

from collections.abc import Iterator, Mapping
from types import MappingProxyType
from typing import TYPE_CHECKING, Any

from pydantic import BaseModel

from modweave import result
from modweave.registry import MethodRegistry

if TYPE_CHECKING:
    from modweave.state.store import StateStore

_MISSING: Any = object()

#: Attribute names a context always owns; entries with these names are
#: only reachable by key.
CONTEXT_ATTRIBUTES: frozenset[str] = frozenset(
    {"name", "state", "config", "flow", "pipe", "Success", "Failure"}
)


class ModuleContext:
    """Read-only view of a module at the moment a factory or hook runs.

    Attributes ``state``, ``config`` and ``name`` plus the ``flow``/``pipe``
    helpers and the ``Success``/``Failure`` constructors are always present.
    Every registered entry is reachable as an attribute or by key; an entry
    whose name is one of those fixed attributes, or starts with an
    underscore, is only reachable by key.

    Entries are captured when the context is built.  Names that were not
    registered yet are looked up again on access, which is how entries
    forwarded from a lazily linked module become visible later.
    """

    __slots__ = ("name", "state", "config", "_entries", "_registry")

    flow = staticmethod(result.flow)
    pipe = staticmethod(result.pipe)
    Success = result.Success
    Failure = result.Failure

    def __init__(
        self,
        *,
        name: str,
        state: StateStore,
        config: Mapping[str, Any] | BaseModel,
        registry: MethodRegistry,
    ) -> None:
        self.name = name
        self.state = state
        self.config = config
        self._registry = registry
        self._entries: Mapping[str, Any] = MappingProxyType(registry.visible())

    def __repr__(self) -> str:
        return f"ModuleContext(name={self.name!r}, entries={sorted(self._entries)!r})"

    def _find(self, key: str) -> Any:
        if key in self._entries:
            return self._entries[key]
        return self._registry.lookup(key, _MISSING)

    def __getattr__(self, item: str) -> Any:
        if item.startswith("_"):
            raise AttributeError(item)
        value = self._find(item)
        if value is _MISSING:
            raise AttributeError(f"module {self.name!r} has no entry {item!r}")
        return value

    def __getitem__(self, key: str) -> Any:
        value = self._find(key)
        if value is _MISSING:
            raise KeyError(key)
        return value

    def __contains__(self, key: object) -> bool:
        return isinstance(key, str) and self._find(key) is not _MISSING

    def __iter__(self) -> Iterator[str]:
        return iter(self._entries)

    def __len__(self) -> int:
        return len(self._entries)
