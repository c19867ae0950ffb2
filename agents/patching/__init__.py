# agents/patching/__init__.py
"""
DriftFix PRO - Patching package (lazy exports)

Exports:
- PatchGenerator / PatchGeneratorConfig   (agents.patching.patch_generator)
- PatchValidator / ValidationConfig       (agents.patching.patch_validator)
- classify_acceptance                     (agents.patching.patch_validator)
- PatchEngine / LiveConfiguration         (agents.patching.patch_engine)
- DriftFixOrchestrator / OrchestratorConfig (agents.patching.drift_fix_orchestrator)
- export_patched_dataset                  (agents.patching.patch_export)

Usage:
    from agents.patching import DriftFixOrchestrator
"""

from __future__ import annotations

from importlib import import_module
from types import ModuleType
from typing import Dict, List, Tuple

_LAZY_EXPORTS: Dict[str, Tuple[str, str]] = {
    "PatchGenerator": ("agents.patching.patch_generator", "PatchGenerator"),
    "PatchGeneratorConfig": ("agents.patching.patch_generator", "PatchGeneratorConfig"),
    "PatchValidator": ("agents.patching.patch_validator", "PatchValidator"),
    "ValidationConfig": ("agents.patching.patch_validator", "ValidationConfig"),
    "AcceptanceThresholds": ("agents.patching.patch_validator", "AcceptanceThresholds"),
    "classify_acceptance": ("agents.patching.patch_validator", "classify_acceptance"),
    "PatchEngine": ("agents.patching.patch_engine", "PatchEngine"),
    "LiveConfiguration": ("agents.patching.patch_engine", "LiveConfiguration"),
    "DriftFixOrchestrator": ("agents.patching.drift_fix_orchestrator", "DriftFixOrchestrator"),
    "OrchestratorConfig": ("agents.patching.drift_fix_orchestrator", "OrchestratorConfig"),
    "export_patched_dataset": ("agents.patching.patch_export", "export_patched_dataset"),
    "write_dataset_csv": ("agents.patching.patch_export", "write_dataset_csv"),
    "export_patches_json": ("agents.patching.patch_export", "export_patches_json"),
}

__all__ = tuple(_LAZY_EXPORTS.keys())


def __getattr__(name: str):
    """Lazy symbol resolution, cached in module globals()."""
    if name not in _LAZY_EXPORTS:
        raise AttributeError(f"module 'agents.patching' has no attribute '{name}'")

    mod_name, symbol = _LAZY_EXPORTS[name]
    module: ModuleType = import_module(mod_name)
    obj = getattr(module, symbol)
    globals()[name] = obj
    return obj


def __dir__() -> List[str]:
    return sorted(list(globals().keys()) + list(__all__))
