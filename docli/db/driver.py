"""Driver import helpers."""

from __future__ import annotations

import importlib
from typing import Any

from ..core.errors import MissingDriverError


def import_driver_module(module_name: str, *, driver_name: str, package_name: str) -> Any:
    """Import a driver module, raising MissingDriverError with detail if it fails."""
    try:
        return importlib.import_module(module_name)
    except ImportError as e:
        raise MissingDriverError(driver_name, package_name, import_error=str(e)) from e
