"""Immutable state snapshots.

A snapshot is either a read-only mapping (``MappingProxyType`` over a
private dict) or a pydantic model instance.  Snapshots are replaced
wholesale on every flush and never mutated in place.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from types import MappingProxyType
from typing import Any, TypeAlias

from pydantic import BaseModel

Snapshot: TypeAlias = Mapping[str, Any] | BaseModel

_MISSING: Any = object()


def freeze_state(initial: Mapping[str, Any] | BaseModel | None) -> Snapshot:
    """Build the first snapshot of a store."""
    if initial is None:
        return MappingProxyType({})
    if isinstance(initial, BaseModel):
        return initial
    return MappingProxyType(dict(initial))


def read_field(snapshot: Snapshot, key: str, default: Any = None) -> Any:
    """Read one top-level field from either snapshot flavour."""
    if isinstance(snapshot, BaseModel):
        return getattr(snapshot, key, default)
    return snapshot.get(key, default)


def patch_as_dict(patch: Mapping[str, Any] | BaseModel | None) -> dict[str, Any]:
    """Normalize a partial update into a plain dict.

    Model patches contribute only the fields that were explicitly set.
    """
    if patch is None:
        return {}
    if isinstance(patch, BaseModel):
        return patch.model_dump(exclude_unset=True)
    if not isinstance(patch, Mapping):
        raise TypeError(f"state patch must be a mapping, got {type(patch).__name__}")
    return dict(patch)


def unknown_fields(current: Snapshot, patches: Iterable[Mapping[str, Any]]) -> list[str]:
    """Patch keys a model snapshot has no field for, in first-seen order.

    Mapping snapshots accept any key, as do models configured with
    ``extra="allow"``.
    """
    if not isinstance(current, BaseModel) or current.model_config.get("extra") == "allow":
        return []
    fields = type(current).model_fields
    seen: dict[str, None] = {}
    for patch in patches:
        for key in patch:
            if key not in fields:
                seen[key] = None
    return list(seen)


def merge_patches(current: Snapshot, patches: Iterable[Mapping[str, Any]]) -> Snapshot:
    """Merge *patches* left-to-right over *current* and freeze the result.

    Model snapshots are re-validated as a new instance of the same model
    class, so field validators run once per flush on the final draft.
    Extra fields already held by the model are carried over.
    """
    if isinstance(current, BaseModel):
        model_cls = type(current)
        draft: dict[str, Any] = {name: getattr(current, name) for name in model_cls.model_fields}
        draft.update(current.model_extra or {})
        for patch in patches:
            draft.update(patch)
        return model_cls.model_validate(draft)

    merged = dict(current)
    for patch in patches:
        merged.update(patch)
    return MappingProxyType(merged)


def field_changed(prev: Snapshot, current: Snapshot, key: str) -> bool:
    return read_field(prev, key, _MISSING) != read_field(current, key, _MISSING)


def snapshot_changed(prev: Snapshot, current: Snapshot) -> bool:
    if isinstance(prev, BaseModel) or isinstance(current, BaseModel):
        return prev != current
    return dict(prev) != dict(current)


def changed_keys(prev: Snapshot, current: Snapshot, candidates: Iterable[str]) -> list[str]:
    """Return the candidate keys whose value differs, in first-seen order."""
    seen: dict[str, None] = {}
    for key in candidates:
        if key not in seen and field_changed(prev, current, key):
            seen[key] = None
    return list(seen)
