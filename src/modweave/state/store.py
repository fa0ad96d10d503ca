"""Batched, equality-gated state store.

This is the only component allowed to replace a module's snapshot.
"""

from __future__ import annotations

import asyncio
import copy
import logging
from collections.abc import Callable, Mapping
from typing import Any

from pydantic import BaseModel, ValidationError

from modweave._redact import redact_for_log
from modweave.config import RuntimeConfig
from modweave.exceptions import StateError
from modweave.state.snapshot import (
    Snapshot,
    changed_keys,
    freeze_state,
    merge_patches,
    patch_as_dict,
    read_field,
    snapshot_changed,
    unknown_fields,
)

_logger = logging.getLogger(__name__)

Watcher = Callable[[Any, Any], None]
Listener = Callable[[Snapshot, Snapshot], None]
Scheduler = Callable[[Callable[[], None]], bool]


def call_soon_on_running_loop(callback: Callable[[], None]) -> bool:
    """Schedule *callback* on the running asyncio loop.

    Returns ``False`` when no loop is running in this thread; the caller
    keeps its work queued until someone flushes explicitly.
    """
    try:
        loop = asyncio.get_running_loop()
    except RuntimeError:
        return False
    loop.call_soon(callback)
    return True


class StateStore:
    """In-memory snapshot holder for a single module.

    ``set()`` never applies a patch synchronously.  The first ``set()``
    after a flush schedules exactly one flush for the next scheduler turn;
    every patch queued before it runs is merged into that flush.  Watchers
    see only the final merged value of their key, and only when it differs
    from the value before the flush.
    """

    def __init__(
        self,
        initial: Mapping[str, Any] | BaseModel | None = None,
        *,
        runtime: RuntimeConfig | None = None,
        owner: str = "",
        scheduler: Scheduler = call_soon_on_running_loop,
    ) -> None:
        self._runtime = runtime or RuntimeConfig()
        self._owner = owner
        self._scheduler = scheduler
        self._current: Snapshot = freeze_state(initial)
        self._pending: list[dict[str, Any]] = []
        self._scheduled: object | None = None
        self._watchers: dict[str, list[Watcher]] = {}
        self._listeners: list[Listener] = []

    @property
    def pending(self) -> int:
        """Number of patches waiting for the next flush."""
        return len(self._pending)

    @property
    def flush_scheduled(self) -> bool:
        return self._scheduled is not None

    def get(self) -> Snapshot:
        """Return the current immutable snapshot."""
        return self._current

    def set(self, partial: Mapping[str, Any] | BaseModel | None) -> None:
        """Queue *partial* for the next flush."""
        patch = patch_as_dict(partial)
        if self._runtime.copy_patches:
            patch = copy.deepcopy(patch)
        self._pending.append(patch)

        if self._scheduled is not None:
            return

        token = object()
        if self._scheduler(lambda: self._run_scheduled(token)):
            self._scheduled = token
        else:
            _logger.debug(
                "No running event loop; state patch for module=%s stays queued until flush()",
                self._owner,
            )

    def _run_scheduled(self, token: object) -> None:
        # A newer schedule or an explicit flush() supersedes this callback.
        if token is not self._scheduled:
            return
        try:
            self.flush()
        except StateError:
            _logger.exception("Scheduled state flush failed for module=%s", self._owner)

    def flush(self) -> list[str]:
        """Apply every queued patch now and notify watchers.

        Returns the keys whose value changed, in first-seen order.
        """
        self._scheduled = None
        if not self._pending:
            return []

        patches, self._pending = self._pending, []
        prev = self._current
        unknown = unknown_fields(prev, patches)
        if unknown:
            raise StateError(
                f"state patch for module {self._owner!r} has unknown field(s): {', '.join(unknown)}",
                module=self._owner,
            )
        try:
            current = merge_patches(prev, patches)
        except ValidationError as exc:
            raise StateError(
                f"state patch rejected for module {self._owner!r}: {exc.error_count()} validation error(s)",
                module=self._owner,
            ) from exc
        self._current = current

        # Watched keys are compared even when no patch named them: model
        # validators may derive one field from another.
        touched = [key for patch in patches for key in patch]
        changed = changed_keys(prev, current, [*touched, *self._watchers])
        if self._runtime.trace_enabled and changed:
            _logger.debug(
                "Flushed module=%s patches=%d changed=%s",
                self._owner,
                len(patches),
                redact_for_log({key: read_field(current, key) for key in changed}),
            )

        changed_set = set(changed)
        for key, handlers in list(self._watchers.items()):
            if key not in changed_set:
                continue
            new_value = read_field(current, key)
            old_value = read_field(prev, key)
            for handler in list(handlers):
                self._notify(handler, new_value, old_value, key=key)

        if self._listeners and snapshot_changed(prev, current):
            for listener in list(self._listeners):
                self._notify(listener, current, prev, key="*")

        return changed

    def _notify(self, handler: Callable[[Any, Any], None], new: Any, old: Any, *, key: str) -> None:
        try:
            handler(new, old)
        except Exception:
            _logger.exception(
                "State watcher %r failed for module=%s key=%s",
                handler,
                self._owner,
                key,
            )

    def watch(self, key: str, handler: Watcher) -> None:
        """Call ``handler(new, old)`` after each flush that changes *key*."""
        self._watchers.setdefault(key, []).append(handler)

    def unwatch(self, key: str, handler: Watcher) -> int:
        """Remove *handler* from *key*; returns how many registrations were removed."""
        handlers = self._watchers.get(key, [])
        if not handlers:
            return 0

        before = len(handlers)
        handlers = [h for h in handlers if h is not handler]
        removed = before - len(handlers)

        if handlers:
            self._watchers[key] = handlers
        else:
            self._watchers.pop(key, None)

        return removed

    def subscribe(self, listener: Listener) -> None:
        """Call ``listener(next, prev)`` after each flush that changes the snapshot."""
        self._listeners.append(listener)

    def unsubscribe(self, listener: Listener) -> None:
        self._listeners = [fn for fn in self._listeners if fn is not listener]
