# config/__init__.py
"""
DriftFix PRO - Configuration package.

```
    config/
    ├── __init__.py          # Lazy exports (this file)
    ├── settings.py          # Environment-backed settings
    └── logging_config.py    # Loguru setup
```

Usage:
    from config import get_settings, setup_logging
"""

from __future__ import annotations

from importlib import import_module
from typing import Any, Dict, List, Tuple

__version__ = "1.0.0"

_LAZY_EXPORTS: Dict[str, Tuple[str, str]] = {
    "Settings": ("config.settings", "Settings"),
    "get_settings": ("config.settings", "get_settings"),
    "setup_logging": ("config.logging_config", "setup_logging"),
    "get_logger": ("config.logging_config", "get_logger"),
    "LogContext": ("config.logging_config", "LogContext"),
}

__all__ = tuple(_LAZY_EXPORTS.keys())


def __getattr__(name: str) -> Any:
    if name not in _LAZY_EXPORTS:
        raise AttributeError(f"module 'config' has no attribute '{name}'")
    module_name, symbol = _LAZY_EXPORTS[name]
    obj = getattr(import_module(module_name), symbol)
    globals()[name] = obj
    return obj


def __dir__() -> List[str]:
    return sorted(set(globals().keys()) | set(__all__))
