# agents/patching/transforms.py
"""
DriftFix PRO - Patch value transforms.

Dispatch table mapping each value-changing ``PatchType`` to a column
transform, shared by the validator (trial application on the validation
slice) and the engine (live configuration / export). Reweighting and
threshold tuning act on the decision side and leave values untouched.

Every transform keeps NaN in place and computes batch moments over finite
values only.
"""

from __future__ import annotations

from typing import Callable, Dict, Mapping

import numpy as np

from core.models import (
    Clipping,
    DistributionMatch,
    NormalizationReset,
    OutlierElimination,
    PatchConfiguration,
    PatchType,
    Reweighting,
    Standardization,
)

__all__ = [
    "ValueTransform",
    "VALUE_TRANSFORMS",
    "DECISION_PATCH_TYPES",
    "feature_params",
    "apply_step",
    "apply_configuration",
    "influence_weights",
]

Params = Mapping[str, float]
ValueTransform = Callable[[np.ndarray, Params], np.ndarray]

DECISION_PATCH_TYPES = frozenset({PatchType.REWEIGHTING, PatchType.THRESHOLD_TUNING})


def _batch_moments(values: np.ndarray):
    finite = values[np.isfinite(values)]
    if finite.size == 0:
        return 0.0, 1.0
    std = float(np.std(finite))
    return float(np.mean(finite)), (std if std > 0 else 1.0)


def _safe_std(std: float) -> float:
    return std if std > 0 else 1.0


# ═══════════════════════════════════════════════════════════════════════════
# Column Transforms
# ═══════════════════════════════════════════════════════════════════════════

def _clip(values: np.ndarray, params: Params) -> np.ndarray:
    return np.clip(values, params["low"], params["high"])


def _renormalize(values: np.ndarray, params: Params) -> np.ndarray:
    if "source_mean" in params:
        src_mean, src_std = params["source_mean"], _safe_std(params["source_std"])
    else:
        src_mean, src_std = _batch_moments(values)
    return (values - src_mean) / src_std * params["target_std"] + params["target_mean"]


def _match_moments(values: np.ndarray, params: Params) -> np.ndarray:
    mean, std = _batch_moments(values)
    return (values - mean) / std * params["target_std"] + params["target_mean"]


def _standardize(values: np.ndarray, params: Params) -> np.ndarray:
    mean, std = _batch_moments(values)
    return (values - mean) / std


VALUE_TRANSFORMS: Dict[PatchType, ValueTransform] = {
    PatchType.CLIPPING: _clip,
    PatchType.OUTLIER_ELIMINATION: _clip,
    PatchType.NORMALIZATION_RESET: _renormalize,
    PatchType.DISTRIBUTION_MATCH: _match_moments,
    PatchType.STANDARDIZATION: _standardize,
}


# ═══════════════════════════════════════════════════════════════════════════
# Configuration → per-feature parameters
# ═══════════════════════════════════════════════════════════════════════════

def feature_params(config: PatchConfiguration) -> Dict[int, Dict[str, float]]:
    """Per-feature parameters of a value-changing configuration ({} otherwise)."""
    if isinstance(config, (Clipping, OutlierElimination)):
        return {
            idx: {"low": float(low), "high": float(high)}
            for idx, (low, high) in config.per_feature_bounds.items()
        }

    if isinstance(config, NormalizationReset):
        out: Dict[int, Dict[str, float]] = {}
        for idx, (mean, std) in config.per_feature_mean_std.items():
            params = {"target_mean": float(mean), "target_std": float(std)}
            if idx in config.source_mean_std:
                src_mean, src_std = config.source_mean_std[idx]
                params.update(source_mean=float(src_mean), source_std=float(src_std))
            out[idx] = params
        return out

    if isinstance(config, DistributionMatch):
        return {
            idx: {"target_mean": float(mean), "target_std": float(std)}
            for idx, (mean, std) in config.per_feature_mean_std.items()
        }

    if isinstance(config, Standardization):
        return {idx: {} for idx in config.features}

    return {}


def apply_step(values: np.ndarray, patch_type: PatchType, params: Params) -> np.ndarray:
    """Apply one column transform through the dispatch table."""
    transform = VALUE_TRANSFORMS.get(patch_type)
    if transform is None:
        return np.array(values, dtype=np.float64, copy=True)
    return transform(np.asarray(values, dtype=np.float64), params)


def apply_configuration(matrix: np.ndarray, config: PatchConfiguration) -> np.ndarray:
    """Return a transformed copy of ``matrix``; untouched columns are copied as-is."""
    out = np.array(matrix, dtype=np.float64, copy=True)
    for idx, params in feature_params(config).items():
        if 0 <= idx < out.shape[1]:
            out[:, idx] = apply_step(out[:, idx], config.patch_type, params)
    return out


def influence_weights(config: PatchConfiguration, n_features: int) -> np.ndarray:
    """Per-feature decision influence implied by a configuration (1 = unchanged)."""
    weights = np.ones(n_features, dtype=np.float64)
    if isinstance(config, Reweighting):
        for idx, w in config.per_feature_weight.items():
            if 0 <= idx < n_features:
                weights[idx] = float(w)
    return weights
