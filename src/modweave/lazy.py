"""Deferred resolution of modules that are still under construction.

A :class:`ModuleTable` is an arena of modules keyed by an integer id
assigned at registration.  A :class:`LazyHandle` is a typed index into a
table: every read goes back to the table and the module's *current*
registry, so code holding a handle sees entries registered after the
handle was created.

There is no cycle detection for calls.  Two modules whose methods call
each other unconditionally recurse until Python raises ``RecursionError``.
"""

from __future__ import annotations

import itertools
import logging
from collections.abc import Iterator
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from modweave.exceptions import CompositionError

if TYPE_CHECKING:
    from modweave.module import Module

_logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class LazyHandle:
    """Forward reference to a module in a :class:`ModuleTable`.

    Handles compare equal when they point at the same table slot, so a
    handle rebuilt after :meth:`ModuleTable.clear_handles` still matches
    the first one.
    """

    table: ModuleTable = field(compare=False, repr=False)
    table_id: int
    key: int
    name: str = field(compare=False)

    @property
    def alive(self) -> bool:
        return self.table.get(self.key) is not None

    def resolve(self) -> Module:
        module = self.table.get(self.key)
        if module is None:
            raise CompositionError(
                f"module {self.name!r} is no longer registered",
                module=self.name,
            )
        return module

    def get(self, name: str, default: Any = None) -> Any:
        """Read entry *name* from the module as it is right now."""
        return self.lookup(name, default)

    def lookup(self, name: str, default: Any = None, *, _seen: set[int] | None = None) -> Any:
        module = self.table.get(self.key)
        if module is None:
            return default
        return module.registry.lookup(name, default, _seen=_seen)

    def entries(self, *, _seen: set[int] | None = None) -> dict[str, Any]:
        module = self.table.get(self.key)
        if module is None:
            return {}
        return module.registry.visible(_seen=_seen)

    def call(self, name: str, /, *args: Any, **kwargs: Any) -> Any:
        target = self.get(name)
        if target is None:
            raise CompositionError(
                f"module {self.name!r} has no entry {name!r} yet",
                name=name,
                module=self.name,
            )
        return target(*args, **kwargs)


class ModuleTable:
    """Arena of live modules plus the memo of their lazy handles.

    Tables are plain objects handed to :func:`modweave.create`; nothing is
    cached process-wide.  A module leaves its table when it stops.
    """

    def __init__(self) -> None:
        self._modules: dict[int, Module] = {}
        self._handles: dict[int, LazyHandle] = {}
        self._keys = itertools.count(1)

    def __len__(self) -> int:
        return len(self._modules)

    def __iter__(self) -> Iterator[Module]:
        return iter(list(self._modules.values()))

    def __contains__(self, module: object) -> bool:
        key = getattr(module, "id", None)
        return isinstance(key, int) and self._modules.get(key) is module

    def register(self, module: Module) -> int:
        key = next(self._keys)
        self._modules[key] = module
        return key

    def get(self, key: int) -> Module | None:
        return self._modules.get(key)

    def handle(self, module: Module) -> LazyHandle:
        """Return the memoized handle for *module*."""
        if module not in self:
            raise CompositionError(
                f"module {module.name!r} is not registered in this table",
                module=module.name,
            )
        cached = self._handles.get(module.id)
        if cached is None:
            cached = LazyHandle(table=self, table_id=id(self), key=module.id, name=module.name)
            self._handles[module.id] = cached
        return cached

    def discard(self, module: Module) -> None:
        """Tear down *module*'s slot and its cached handle."""
        if self._modules.get(module.id) is module:
            del self._modules[module.id]
        self._handles.pop(module.id, None)
        _logger.debug("Discarded module=%s from table (remaining=%d)", module.name, len(self._modules))

    def clear_handles(self) -> None:
        """Forget memoized handles; always safe, never needed for correctness."""
        self._handles.clear()


def lazy(module: Module) -> LazyHandle:
    """Wrap *module* in its table's memoized :class:`LazyHandle`."""
    return module.table.handle(module)


def is_lazy(value: object) -> bool:
    return isinstance(value, LazyHandle)
