# agents/monitoring/__init__.py
"""
╔════════════════════════════════════════════════════════════════════════════╗
║  DriftFix PRO - Monitoring Package v1.0                                   ║
║  ─────────────────────────────────────────────────────────────────────────  ║
║  ✓ Lazy Module Loading (PEP 562)                                         ║
║  ✓ Cached Symbol Resolution                                              ║
║  ✓ IDE Autocomplete Support                                              ║
╚════════════════════════════════════════════════════════════════════════════╝

Package Structure:
    monitoring/
    ├── __init__.py            ← Lazy export table
    ├── statistical_tests.py   ← PSI / KS / distribution summaries
    ├── drift_detector.py      ← Drift detection and classification
    └── attribution_engine.py  ← Per-feature drift attribution

Usage:
```python
    from agents.monitoring import DriftDetector, calculate_psi

    detector = DriftDetector()
    drift = detector.detect(reference, current, model_id="churn-v2")
```
"""

from __future__ import annotations

from dataclasses import dataclass
from importlib import import_module
from typing import Any, Dict, Final, List, Tuple

# ═══════════════════════════════════════════════════════════════════════════
# Module Metadata
# ═══════════════════════════════════════════════════════════════════════════

__version__: Final[str] = "1.0.0"
__author__: Final[str] = "DriftFix Team"


# ═══════════════════════════════════════════════════════════════════════════
# SECTION: Lazy Export Table
# ═══════════════════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class _LazySpec:
    """Public symbol → defining module."""

    module: str
    symbol: str
    description: str = ""


_LAZY_EXPORTS: Final[Dict[str, _LazySpec]] = {
    # ─────────────────────────────────────────────────────────────────
    # Drift Detection
    # ─────────────────────────────────────────────────────────────────
    "DriftDetector": _LazySpec(
        module="agents.monitoring.drift_detector",
        symbol="DriftDetector",
        description="PSI / KS drift detection with drift-type classification"
    ),
    "DriftConfig": _LazySpec(
        module="agents.monitoring.drift_detector",
        symbol="DriftConfig",
        description="Configuration for drift detection"
    ),
    "detect_drift": _LazySpec(
        module="agents.monitoring.drift_detector",
        symbol="detect_drift",
        description="Convenience function for drift detection"
    ),

    # ─────────────────────────────────────────────────────────────────
    # Statistical Tests
    # ─────────────────────────────────────────────────────────────────
    "calculate_psi": _LazySpec(
        module="agents.monitoring.statistical_tests",
        symbol="calculate_psi",
        description="Population Stability Index"
    ),
    "categorical_psi": _LazySpec(
        module="agents.monitoring.statistical_tests",
        symbol="categorical_psi",
        description="PSI over class labels"
    ),
    "ks_test": _LazySpec(
        module="agents.monitoring.statistical_tests",
        symbol="ks_test",
        description="Two-sample Kolmogorov-Smirnov test"
    ),
    "StatTestFailure": _LazySpec(
        module="agents.monitoring.statistical_tests",
        symbol="StatTestFailure",
        description="Degenerate-input result of a statistical test"
    ),

    # ─────────────────────────────────────────────────────────────────
    # Attribution
    # ─────────────────────────────────────────────────────────────────
    "AttributionEngine": _LazySpec(
        module="agents.monitoring.attribution_engine",
        symbol="AttributionEngine",
        description="Per-feature drift attribution"
    ),
    "AttributionConfig": _LazySpec(
        module="agents.monitoring.attribution_engine",
        symbol="AttributionConfig",
        description="Configuration for attribution"
    ),
}

__all__: Final[Tuple[str, ...]] = tuple(_LAZY_EXPORTS.keys())


# ═══════════════════════════════════════════════════════════════════════════
# SECTION: Resolution
# ═══════════════════════════════════════════════════════════════════════════

def __getattr__(name: str) -> Any:
    """Resolve a lazy export on first access and cache it in globals()."""
    entry = _LAZY_EXPORTS.get(name)
    if entry is None:
        raise AttributeError(f"module 'agents.monitoring' has no attribute '{name}'")

    module = import_module(entry.module)
    try:
        obj = getattr(module, entry.symbol)
    except AttributeError as e:
        raise AttributeError(
            f"Symbol '{entry.symbol}' not found in {entry.module}"
        ) from e

    globals()[name] = obj
    return obj


def __dir__() -> List[str]:
    return sorted(set(globals().keys()) | set(__all__))
