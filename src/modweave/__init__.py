"""modweave - compose independently written modules into one application object."""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("modweave")
except PackageNotFoundError:
    __version__ = "0+local"
from modweave.config import MODULE_NAME_REQUIRED, ModuleOptions, RuntimeConfig
from modweave.context import ModuleContext
from modweave.exceptions import (
    CompositionError,
    ConfigurationError,
    ModweaveError,
    StateError,
)
from modweave.hooks import HookManager, HookState
from modweave.lazy import LazyHandle, ModuleTable, is_lazy, lazy
from modweave.module import Module, create
from modweave.registry import MethodRegistry
from modweave.result import Failure, Result, Success, flow, is_result, pipe
from modweave.state import StateStore

__all__ = [
    "__version__",
    "MODULE_NAME_REQUIRED",
    "CompositionError",
    "ConfigurationError",
    "Failure",
    "HookManager",
    "HookState",
    "LazyHandle",
    "MethodRegistry",
    "Module",
    "ModuleContext",
    "ModuleOptions",
    "ModuleTable",
    "ModweaveError",
    "Result",
    "RuntimeConfig",
    "StateError",
    "StateStore",
    "Success",
    "create",
    "flow",
    "is_lazy",
    "is_result",
    "lazy",
    "pipe",
]
