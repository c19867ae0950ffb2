# agents/__init__.py
"""
DriftFix PRO - Agents package.

Subpackages:
    monitoring/   drift detection, statistical tests, attribution
    patching/     patch generation, validation, application, orchestration

Top-level lazy exports cover the two pipeline entry points.
"""

from __future__ import annotations

from importlib import import_module
from typing import Dict, List, Tuple

__version__ = "1.0.0"

_LAZY_EXPORTS: Dict[str, Tuple[str, str]] = {
    "DriftDetector": ("agents.monitoring.drift_detector", "DriftDetector"),
    "DriftFixOrchestrator": ("agents.patching.drift_fix_orchestrator", "DriftFixOrchestrator"),
}

__all__ = tuple(_LAZY_EXPORTS.keys())


def __getattr__(name: str):
    if name not in _LAZY_EXPORTS:
        raise AttributeError(f"module 'agents' has no attribute '{name}'")
    mod_name, symbol = _LAZY_EXPORTS[name]
    obj = getattr(import_module(mod_name), symbol)
    globals()[name] = obj
    return obj


def __dir__() -> List[str]:
    return sorted(list(globals().keys()) + list(__all__))
