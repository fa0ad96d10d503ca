"""Runtime configuration and module options for modweave."""

from __future__ import annotations

import dataclasses
import os
from collections.abc import Mapping
from types import MappingProxyType
from typing import Any

from pydantic import BaseModel, ConfigDict, ValidationError, field_validator

from modweave.exceptions import ConfigurationError

#: Error message used when a module is created without a usable name.
MODULE_NAME_REQUIRED = "modweave module must have a name"


def _env_bool(value: str | None, default: bool) -> bool:
    if value is None:
        return default
    normalized = value.strip().lower()
    if normalized in {"1", "true", "yes", "y", "on"}:
        return True
    if normalized in {"0", "false", "no", "n", "off"}:
        return False
    return default


@dataclasses.dataclass(frozen=True)
class RuntimeConfig:
    """Behaviour switches shared by every module created with it.

    Parameters
    ----------
    auto_start : bool
        Activate a module the moment its first start hook is registered.
        When disabled, start hooks queue until ``Module.start()``.
    copy_patches : bool
        Deep-copy state patches when they are queued so later mutation
        of the caller's objects cannot leak into a snapshot.
    trace_enabled : bool
        Log each flush's changed keys (redacted) at DEBUG level.
    """

    auto_start: bool = True
    copy_patches: bool = True
    trace_enabled: bool = False

    @classmethod
    def from_env(cls, **overrides: Any) -> RuntimeConfig:
        """Create configuration from ``MODWEAVE_*`` environment variables.

        Explicit keyword arguments override environment values.
        """
        env = os.environ

        _ENV_CONFIG_MAP = {
            "MODWEAVE_AUTO_START": ("auto_start", True),
            "MODWEAVE_COPY_PATCHES": ("copy_patches", True),
            "MODWEAVE_TRACE": ("trace_enabled", False),
        }
        config_kwargs: dict[str, Any] = {}
        for env_key, (field_name, default) in _ENV_CONFIG_MAP.items():
            if field_name not in overrides:
                config_kwargs[field_name] = _env_bool(env.get(env_key), default)

        config_kwargs.update(overrides)

        return cls(**config_kwargs)


class ModuleOptions(BaseModel):
    """Validated arguments of :func:`modweave.create`."""

    model_config = ConfigDict(
        frozen=True,
        extra="forbid",
        arbitrary_types_allowed=True,
    )

    name: str
    state: Mapping[str, Any] | BaseModel | None = None
    config: Mapping[str, Any] | BaseModel | None = None

    @field_validator("name", mode="before")
    @classmethod
    def _normalize_name(cls, value: Any) -> str:
        if not isinstance(value, str) or not value.strip():
            raise ValueError(MODULE_NAME_REQUIRED)
        return value.strip()

    @classmethod
    def parse(cls, name: Any, state: Any = None, config: Any = None) -> ModuleOptions:
        """Validate options, converting failures into :class:`ConfigurationError`."""
        try:
            return cls(name=name, state=state, config=config)
        except ValidationError as exc:
            raise ConfigurationError(_first_message(exc)) from exc


def _first_message(exc: ValidationError) -> str:
    errors = exc.errors()
    if not errors:
        return str(exc)
    first = errors[0]
    loc = first.get("loc", ())
    location = str(loc[0]) if loc else ""
    if location == "name":
        return MODULE_NAME_REQUIRED
    return f"invalid module option {location!r}: {first.get('msg', '')}"


def freeze_config(config: Mapping[str, Any] | BaseModel | None) -> Mapping[str, Any] | BaseModel:
    """Return a read-only view of a module's user config."""
    if config is None:
        return MappingProxyType({})
    if isinstance(config, BaseModel):
        return config
    return MappingProxyType(dict(config))
