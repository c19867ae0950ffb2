# core/__init__.py
"""
╔════════════════════════════════════════════════════════════════════════════╗
║  DriftFix PRO - Core Package v1.0                                         ║
║  ─────────────────────────────────────────────────────────────────────────  ║
║  ✓ Lazy Module Loading                                                   ║
║  ✓ Clean Public API                                                      ║
╚════════════════════════════════════════════════════════════════════════════╝

Core Package Structure:
```
    core/
    ├── __init__.py          # Lazy exports (this file)
    ├── base_agent.py        # Agent framework
    ├── dataset.py           # Dataset boundary
    ├── exceptions.py        # Exception hierarchy
    └── models.py            # Pydantic records
```
"""

from __future__ import annotations

from importlib import import_module
from typing import Any, Dict, Final, List, Tuple

__version__: Final[str] = "1.0.0"
__author__: Final[str] = "DriftFix Team"

_LAZY_EXPORTS: Final[Dict[str, Tuple[str, str]]] = {
    # Agent framework
    "BaseAgent": ("core.base_agent", "BaseAgent"),
    "AgentResult": ("core.base_agent", "AgentResult"),
    # Dataset
    "Dataset": ("core.dataset", "Dataset"),
    "ModelMetadata": ("core.dataset", "ModelMetadata"),
    # Exceptions
    "DriftFixError": ("core.exceptions", "DriftFixError"),
    "InsufficientSamplesError": ("core.exceptions", "InsufficientSamplesError"),
    "DimensionMismatchError": ("core.exceptions", "DimensionMismatchError"),
    "PatchApplicationError": ("core.exceptions", "PatchApplicationError"),
    "RollbackInconsistencyError": ("core.exceptions", "RollbackInconsistencyError"),
    "DataValidationError": ("core.exceptions", "DataValidationError"),
    "ConfigurationError": ("core.exceptions", "ConfigurationError"),
    "PipelineCancelledError": ("core.exceptions", "PipelineCancelledError"),
    # Records
    "DriftResult": ("core.models", "DriftResult"),
    "PatchCandidate": ("core.models", "PatchCandidate"),
    "Patch": ("core.models", "Patch"),
    "PipelineReport": ("core.models", "PipelineReport"),
}

__all__: Final[Tuple[str, ...]] = tuple(_LAZY_EXPORTS.keys())


def __getattr__(name: str) -> Any:
    """Lazy load on first access, cached in globals()."""
    if name not in _LAZY_EXPORTS:
        raise AttributeError(f"module 'core' has no attribute '{name}'")
    module_name, symbol = _LAZY_EXPORTS[name]
    obj = getattr(import_module(module_name), symbol)
    globals()[name] = obj
    return obj


def __dir__() -> List[str]:
    return sorted(set(globals().keys()) | set(__all__))
