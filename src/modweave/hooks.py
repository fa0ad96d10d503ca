"""Start/stop lifecycle registries for a module."""

from __future__ import annotations

import logging
from collections.abc import Callable
from enum import StrEnum
from typing import Any, NamedTuple

_logger = logging.getLogger(__name__)

Hook = Callable[[Any], Any]
ContextFactory = Callable[[], Any]


class HookState(StrEnum):
    NOT_STARTED = "not_started"
    STARTED = "started"
    STOPPED = "stopped"


class HookCounts(NamedTuple):
    start: int
    stop: int


class HookManager:
    """Ordered start/stop hooks with a one-way state machine.

    With ``auto_start`` (the default) registering the first start hook
    activates the manager immediately, running every queued hook once in
    registration order.  Hooks registered after activation run on their
    own at registration time.  ``stop()`` runs stop hooks exactly once.

    Hooks receive a context built by the caller-supplied factory at the
    moment they run, so they see everything registered up to that point.
    """

    def __init__(self, *, auto_start: bool = True, owner: str = "") -> None:
        self._auto_start = auto_start
        self._owner = owner
        self._start_hooks: list[Hook] = []
        self._stop_hooks: list[Hook] = []
        self._executed: set[int] = set()
        self._state = HookState.NOT_STARTED

    @property
    def state(self) -> HookState:
        return self._state

    @property
    def counts(self) -> HookCounts:
        return HookCounts(start=len(self._start_hooks), stop=len(self._stop_hooks))

    def add_start_hook(self, hook: Hook, context: ContextFactory) -> None:
        if self._state is HookState.STOPPED:
            _logger.warning("Ignoring start hook %r registered after module=%s stopped", hook, self._owner)
            return

        self._start_hooks.append(hook)
        if self._state is HookState.STARTED:
            self._run_start_hook(len(self._start_hooks) - 1, hook, context())
            return

        if self._auto_start:
            self.start(context)

    def add_stop_hook(self, hook: Hook) -> None:
        if self._state is HookState.STOPPED:
            _logger.debug("Stop hook %r registered after module=%s stopped; it will not run", hook, self._owner)
        self._stop_hooks.append(hook)

    def start(self, context: ContextFactory) -> bool:
        """Activate and run queued start hooks; returns False if already active.

        Every queued hook runs even if an earlier one raises; the first
        error is re-raised once the batch is done.
        """
        if self._state is not HookState.NOT_STARTED:
            return False
        self._state = HookState.STARTED
        _logger.debug("Starting module=%s with %d start hook(s)", self._owner, len(self._start_hooks))

        ctx = context()
        self._run_batch(
            [(lambda i=index, h=hook: self._run_start_hook(i, h, ctx)) for index, hook in enumerate(self._start_hooks)],
            phase="start",
        )
        return True

    def _run_start_hook(self, index: int, hook: Hook, ctx: Any) -> None:
        # Indices, not hook identity: the same callable may be registered twice.
        if index in self._executed:
            return
        self._executed.add(index)
        hook(ctx)

    def stop(self, context: ContextFactory) -> bool:
        """Run stop hooks once; later calls are no-ops returning False.

        As with ``start()``, a raising hook does not keep later hooks from
        running; the first error is re-raised at the end.
        """
        if self._state is HookState.STOPPED:
            return False
        self._state = HookState.STOPPED
        _logger.debug("Stopping module=%s with %d stop hook(s)", self._owner, len(self._stop_hooks))

        ctx = context()
        self._run_batch([(lambda h=hook: h(ctx)) for hook in self._stop_hooks], phase="stop")
        return True

    def _run_batch(self, calls: list[Callable[[], Any]], *, phase: str) -> None:
        first_error: Exception | None = None
        for call in calls:
            try:
                call()
            except Exception as exc:
                if first_error is not None:
                    _logger.exception("Additional %s hook failure in module=%s", phase, self._owner)
                    continue
                first_error = exc
        if first_error is not None:
            raise first_error

    def clear(self) -> None:
        """Drop every hook and return to NOT_STARTED."""
        self._start_hooks.clear()
        self._stop_hooks.clear()
        self._executed.clear()
        self._state = HookState.NOT_STARTED
