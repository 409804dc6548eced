"""Episode and movie watch tracking served over FastAPI.

Importing the package stays cheap: the application object and its factories
are only loaded from :mod:`app.main` on first attribute access.
"""

from __future__ import annotations

from importlib import import_module
from typing import Any

__version__ = "1.0.0"

_LAZY_ATTRIBUTES = {
    "app": "app.main",
    "create_app": "app.main",
    "build_services": "app.main",
    "Settings": "app.config",
}

__all__ = ["__version__", *_LAZY_ATTRIBUTES]


def __getattr__(name: str) -> Any:
    module_name = _LAZY_ATTRIBUTES.get(name)
    if module_name is None:
        raise AttributeError(f"module 'app' has no attribute {name}")
    return getattr(import_module(module_name), name)
