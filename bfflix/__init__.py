"""BFFlix client-side data synchronization package."""

from __future__ import annotations

from importlib import import_module
from typing import Any

__all__ = ["Runtime", "open_runtime"]


def __getattr__(name: str) -> Any:
    if name in __all__:
        module = import_module("bfflix.runtime")
        return getattr(module, name)
    raise AttributeError(f"module 'bfflix' has no attribute {name}")
