"""The module builder: fluent composition surface over state, registry and hooks."""

from __future__ import annotations

import functools
import logging
from collections.abc import Callable, Mapping
from types import MappingProxyType
from typing import Any

from pydantic import BaseModel

from modweave.config import ModuleOptions, RuntimeConfig, freeze_config
from modweave.context import ModuleContext
from modweave.exceptions import CompositionError
from modweave.hooks import HookManager, HookState
from modweave.lazy import LazyHandle, ModuleTable
from modweave.registry import MethodRegistry
from modweave.result import Result, is_result
from modweave.state.store import StateStore

_logger = logging.getLogger(__name__)

_MISSING: Any = object()

Factory = Callable[[ModuleContext], Any]


class Module:
    """A named unit of state, methods and lifecycle hooks.

    Every builder method registers into the module and returns it, so
    calls chain fluently.  Registered entries are readable as attributes
    (``module.double(2)``); :attr:`api` returns a read-only snapshot of
    all of them that does not change when the module does.  Entry names
    may not reuse a builder attribute (see :data:`RESERVED_NAMES`).
    """

    def __init__(
        self,
        options: ModuleOptions,
        *,
        table: ModuleTable | None = None,
        runtime: RuntimeConfig | None = None,
    ) -> None:
        self._name = options.name
        self._runtime = runtime or RuntimeConfig()
        self._config = freeze_config(options.config)
        self._state = StateStore(options.state, runtime=self._runtime, owner=self._name)
        self._registry = MethodRegistry(owner=self._name, reserved=RESERVED_NAMES)
        self._hooks = HookManager(auto_start=self._runtime.auto_start, owner=self._name)
        self._chains: dict[str, Callable[..., Any]] = {}
        self._table = table if table is not None else ModuleTable()
        self._id = self._table.register(self)

    def __repr__(self) -> str:
        return f"Module(name={self._name!r}, id={self._id}, state={self._hooks.state.value})"

    def __getattr__(self, item: str) -> Any:
        if item.startswith("_"):
            raise AttributeError(item)
        value = self._registry.lookup(item, _MISSING)
        if value is _MISSING:
            raise AttributeError(f"module {self._name!r} has no entry {item!r}")
        return value

    def __dir__(self) -> list[str]:
        return sorted(set(super().__dir__()) | set(self._registry.visible()))

    def __contains__(self, name: object) -> bool:
        return name in self._registry

    @property
    def name(self) -> str:
        return self._name

    @property
    def id(self) -> int:
        """Slot of this module in its :class:`ModuleTable`."""
        return self._id

    @property
    def table(self) -> ModuleTable:
        return self._table

    @property
    def state(self) -> StateStore:
        return self._state

    @property
    def config(self) -> Mapping[str, Any] | BaseModel:
        return self._config

    @property
    def runtime(self) -> RuntimeConfig:
        return self._runtime

    @property
    def registry(self) -> MethodRegistry:
        return self._registry

    @property
    def hooks(self) -> HookManager:
        return self._hooks

    @property
    def api(self) -> Mapping[str, Any]:
        return MappingProxyType(self._registry.visible())

    def context(self) -> ModuleContext:
        """Build the context factories and hooks receive."""
        return ModuleContext(
            name=self._name,
            state=self._state,
            config=self._config,
            registry=self._registry,
        )

    # ------------------------------------------------------------------
    # Composition
    # ------------------------------------------------------------------

    def use(self, dep: Any) -> Module:
        """Pull in *dep*'s public entries.

        *dep* may be another module (its entries are copied now), a
        :class:`LazyHandle` (reads are forwarded to the target at read
        time), a mapping, or any object whose public attributes become
        entries.
        """
        if isinstance(dep, LazyHandle):
            if self._registry.link(dep):
                _logger.debug("Module=%s linked lazily to module=%s", self._name, dep.name)
            return self
        if dep is None:
            raise CompositionError(f"module {self._name!r} cannot use None", module=self._name)

        entries = _public_entries(dep)
        _logger.debug("Module=%s uses %d entries from %r", self._name, len(entries), dep)
        return self.inject(entries)

    def inject(self, entries: Mapping[str, Any]) -> Module:
        self._registry.merge(entries)
        for name in entries:
            self._chains.pop(name, None)
        return self

    def derive(self, fn: Factory) -> Module:
        """Call ``fn(context)`` once and merge the mapping it returns."""
        produced = fn(self.context())
        if not isinstance(produced, Mapping):
            raise CompositionError(
                f"derive on module {self._name!r} must return a mapping, got {type(produced).__name__}",
                module=self._name,
            )
        return self.inject(produced)

    def decorate(self, key: str, value: Any) -> Module:
        return self.inject({key: value})

    def pipe(self, name: str, fn: Factory) -> Module:
        """Register the callable ``fn(context)`` under *name*."""
        target = self._build_callable(name, fn, kind="pipe")
        return self.inject({name: target})

    def chain(self, name: str, fn: Factory) -> Module:
        """Register or extend a result-returning pipeline under *name*.

        ``fn(context)`` must return a callable producing a ``Success`` or
        ``Failure``.  Chaining onto an existing chained *name* appends the
        step: it runs on the previous step's success value and is skipped
        when the previous step fails.
        """
        step = _expect_results(name, self._build_callable(name, fn, kind="chain"))
        previous = self._chains.get(name)

        if previous is None:
            composed = step
        else:

            @functools.wraps(step)
            def composed(*args: Any, **kwargs: Any) -> Result[Any, Any]:
                return previous(*args, **kwargs).bind(step)

        self.inject({name: composed})
        self._chains[name] = composed
        return self

    def _build_callable(self, name: str, fn: Factory, *, kind: str) -> Callable[..., Any]:
        target = fn(self.context())
        if not callable(target):
            raise CompositionError(
                f"{kind} {name!r} on module {self._name!r} must produce a callable, got {type(target).__name__}",
                name=name,
                module=self._name,
            )
        return target

    # ------------------------------------------------------------------
    # State and lifecycle
    # ------------------------------------------------------------------

    def watch(self, key: str, handler: Callable[[Any, Any], None]) -> Module:
        self._state.watch(key, handler)
        return self

    def on_start(self, hook: Callable[[ModuleContext], Any]) -> Module:
        self._hooks.add_start_hook(hook, self.context)
        return self

    def on_stop(self, hook: Callable[[ModuleContext], Any]) -> Module:
        self._hooks.add_stop_hook(hook)
        return self

    def start(self) -> Module:
        """Run queued start hooks when auto-start is disabled; idempotent."""
        self._hooks.start(self.context)
        return self

    def stop(self) -> None:
        """Run stop hooks once and release this module's table slot.

        The slot is released even when a stop hook raises; the first hook
        error is re-raised afterwards.
        """
        try:
            self._hooks.stop(self.context)
        finally:
            if self._hooks.state is HookState.STOPPED:
                self._table.discard(self)


#: Builder attributes of :class:`Module`; entries may not use these names.
RESERVED_NAMES: frozenset[str] = frozenset(name for name in dir(Module) if not name.startswith("_"))


def _public_entries(dep: Any) -> dict[str, Any]:
    if isinstance(dep, Module):
        return dep.registry.visible()
    if isinstance(dep, Mapping):
        return dict(dep)
    if isinstance(dep, BaseModel):
        return {name: getattr(dep, name) for name in type(dep).model_fields}
    return {name: getattr(dep, name) for name in dir(dep) if not name.startswith("_")}


def _expect_results(name: str, step: Callable[..., Any]) -> Callable[..., Result[Any, Any]]:
    @functools.wraps(step)
    def checked(*args: Any, **kwargs: Any) -> Result[Any, Any]:
        outcome = step(*args, **kwargs)
        if not is_result(outcome):
            raise CompositionError(
                f"chain step {name!r} must return Success or Failure, got {type(outcome).__name__}",
                name=name,
            )
        return outcome

    return checked


def create(
    name: str | None = None,
    state: Mapping[str, Any] | BaseModel | None = None,
    config: Mapping[str, Any] | BaseModel | None = None,
    *,
    table: ModuleTable | None = None,
    runtime: RuntimeConfig | None = None,
) -> Module:
    """Create a module; raises :class:`ConfigurationError` for a missing name.

    Options are validated before any state, registry or table slot is
    allocated.
    """
    options = ModuleOptions.parse(name, state, config)
    return Module(options, table=table, runtime=runtime)
