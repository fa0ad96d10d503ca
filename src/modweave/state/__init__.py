"""State/store layer.

Each module owns exactly one :class:`~modweave.state.store.StateStore`.
It is the only component allowed to replace a module's snapshot; patches
queued through ``set()`` are merged in one batched flush per scheduler turn.
"""

from modweave.state.snapshot import Snapshot, freeze_state, read_field
from modweave.state.store import StateStore

__all__ = ["Snapshot", "StateStore", "freeze_state", "read_field"]
