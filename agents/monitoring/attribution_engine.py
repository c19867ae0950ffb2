# agents/monitoring/attribution_engine.py
"""
╔════════════════════════════════════════════════════════════════════════════╗
║  DriftFix PRO - Attribution Engine v1.0                                   ║
║  ─────────────────────────────────────────────────────────────────────────  ║
║  ✓ Marginal-contribution drift ranking                                   ║
║  ✓ Optional output-sensitivity weighting (reference resampling)          ║
║  ✓ Feature-importance ranking shift (concept drift signal)               ║
║  ✓ Local (single-row) drift explanation                                  ║
╚════════════════════════════════════════════════════════════════════════════╝

Contribution of feature f:

    contribution(f) ≈ |drift_score(f)| × sensitivity(f)

``sensitivity(f)`` is only used when an ``output_fn`` is given. It is the
mean absolute change of the model output when column f of the current data
is replaced by values resampled from the reference, rescaled to mean 1.
A missing or failing ``output_fn`` leaves every sensitivity at 1.

Contributions are normalized to sum to 1 and sorted descending.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass
from typing import Any, Callable, Dict, List, Optional, Sequence

import numpy as np
import pandas as pd
from loguru import logger

from core.exceptions import ConfigurationError
from core.models import DriftResult, FeatureAttribution, FeatureDrift

__all__ = ["AttributionConfig", "AttributionEngine", "OutputFn"]
__version__ = "1.0.0"
__author__ = "DriftFix Team"

OutputFn = Callable[[np.ndarray], Any]


def _as_matrix(data: Any) -> np.ndarray:
    arr = np.asarray(getattr(data, "values", data), dtype=np.float64)
    return arr.reshape(-1, 1) if arr.ndim == 1 else arr


# ═══════════════════════════════════════════════════════════════════════════
# SECTION: Configuration
# ═══════════════════════════════════════════════════════════════════════════

@dataclass
class AttributionConfig:
    """
    Attribution settings.

    sensitivity_samples: rows of current data used for output probing
    random_state: seed of the reference resampling
    min_rows_for_importance: rows needed on each side for the importance shift
    local_top_k: features returned by ``explain_local``
    """

    sensitivity_samples: int = 200
    random_state: int = 42
    min_rows_for_importance: int = 5
    local_top_k: int = 5

    def __post_init__(self):
        if self.sensitivity_samples < 1:
            raise ConfigurationError(f"sensitivity_samples must be >= 1, got {self.sensitivity_samples}")
        if self.min_rows_for_importance < 3:
            raise ConfigurationError("min_rows_for_importance must be >= 3")

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


# ═══════════════════════════════════════════════════════════════════════════
# SECTION: Engine
# ═══════════════════════════════════════════════════════════════════════════

class AttributionEngine:
    """
    🧭 **Drift Attribution**

    Usage:
```python
        engine = AttributionEngine()
        ranking = engine.rank(drift_result.feature_drifts)

        # Weighted by how much the model output reacts to each feature
        ranking = engine.rank(
            drift_result.feature_drifts,
            reference=reference.values,
            current=current.values,
            output_fn=model.predict_proba_positive
        )
```
    """

    def __init__(self, config: Optional[AttributionConfig] = None):
        self.config = config or AttributionConfig()
        self._log = logger.bind(agent="AttributionEngine", version=__version__)

    # ───────────────────────────────────────────────────────────────────
    # Ranking
    # ───────────────────────────────────────────────────────────────────

    def rank(
        self,
        feature_drifts: Sequence[FeatureDrift],
        *,
        reference: Any = None,
        current: Any = None,
        output_fn: Optional[OutputFn] = None
    ) -> List[FeatureAttribution]:
        """Rank features by contribution to drift, largest first."""
        if not feature_drifts:
            return []

        weights: Optional[np.ndarray] = None
        if output_fn is not None and reference is not None and current is not None:
            weights = self.output_sensitivity(reference, current, output_fn)

        raw: List[float] = []
        for fd in feature_drifts:
            w = 1.0
            if weights is not None and 0 <= fd.feature_index < weights.size:
                w = float(weights[fd.feature_index])
            raw.append(abs(fd.drift_score) * w)

        total = float(np.sum(raw))
        if total > 0:
            raw = [r / total for r in raw]

        ranking = [
            FeatureAttribution(
                feature_name=fd.feature_name,
                feature_index=fd.feature_index,
                contribution=float(c)
            )
            for fd, c in zip(feature_drifts, raw)
        ]
        ranking.sort(key=lambda a: (-a.contribution, a.feature_index))
        return ranking

    def output_sensitivity(
        self,
        reference: Any,
        current: Any,
        output_fn: OutputFn
    ) -> Optional[np.ndarray]:
        """
        Per-feature output sensitivity rescaled to mean 1.

        Returns None (no weighting) when the callback fails or the model
        output does not react to any feature.
        """
        try:
            ref = _as_matrix(reference)
            cur = _as_matrix(current)
            rng = np.random.default_rng(self.config.random_state)

            if cur.shape[0] > self.config.sensitivity_samples:
                rows = rng.choice(cur.shape[0], self.config.sensitivity_samples, replace=False)
                cur = cur[np.sort(rows)]

            base = np.asarray(output_fn(cur), dtype=np.float64).ravel()
            sensitivity = np.zeros(cur.shape[1], dtype=np.float64)

            for j in range(cur.shape[1]):
                pool = ref[:, j][np.isfinite(ref[:, j])]
                if pool.size == 0:
                    continue
                swapped = cur.copy()
                swapped[:, j] = rng.choice(pool, size=cur.shape[0], replace=True)
                out = np.asarray(output_fn(swapped), dtype=np.float64).ravel()
                delta = np.abs(out - base)
                sensitivity[j] = float(np.nanmean(delta)) if delta.size else 0.0

        except Exception as e:
            self._log.warning(f"⚠ Output sensitivity unavailable, ranking unweighted: {e}")
            return None

        mean = float(np.mean(sensitivity)) if sensitivity.size else 0.0
        if not np.isfinite(mean) or mean <= 0:
            self._log.warning("⚠ Model output insensitive to all features, ranking unweighted")
            return None

        return sensitivity / mean

    # ───────────────────────────────────────────────────────────────────
    # Concept Drift Signal
    # ───────────────────────────────────────────────────────────────────

    def importance_shift(
        self,
        reference: Any,
        current: Any,
        reference_target: Sequence[Any],
        current_target: Sequence[Any]
    ) -> Optional[float]:
        """
        Total-variation distance between the feature-importance profiles of
        both sides, in [0, 1]. Importance is |Pearson r| with the target,
        normalized to sum 1.

        Returns None when either side is too small to estimate importances.
        """
        ref = _as_matrix(reference)
        cur = _as_matrix(current)
        y_ref, y_cur = self._numeric_targets(reference_target, current_target)

        min_rows = self.config.min_rows_for_importance
        if (
            y_ref.size != ref.shape[0] or y_cur.size != cur.shape[0]
            or ref.shape[0] < min_rows or cur.shape[0] < min_rows
        ):
            self._log.debug("Importance shift skipped: targets misaligned or too few rows")
            return None

        imp_ref = self._importance_profile(ref, y_ref)
        imp_cur = self._importance_profile(cur, y_cur)

        return float(np.clip(0.5 * np.sum(np.abs(imp_ref - imp_cur)), 0.0, 1.0))

    @staticmethod
    def _numeric_targets(
        reference_target: Sequence[Any],
        current_target: Sequence[Any]
    ):
        ref_s = pd.Series(np.asarray(reference_target, dtype=object).ravel())
        cur_s = pd.Series(np.asarray(current_target, dtype=object).ravel())

        ref_num = pd.to_numeric(ref_s, errors="coerce")
        cur_num = pd.to_numeric(cur_s, errors="coerce")

        if ref_num.notna().all() and cur_num.notna().all():
            return ref_num.to_numpy(dtype=np.float64), cur_num.to_numpy(dtype=np.float64)

        # Non-numeric labels: shared integer coding over both sides
        codes, _ = pd.factorize(pd.concat([ref_s, cur_s], ignore_index=True).astype(str), sort=True)
        codes = codes.astype(np.float64)
        return codes[:ref_s.size], codes[ref_s.size:]

    @staticmethod
    def _importance_profile(values: np.ndarray, target: np.ndarray) -> np.ndarray:
        n_features = values.shape[1]
        imp = np.zeros(n_features, dtype=np.float64)

        for j in range(n_features):
            col = values[:, j]
            mask = np.isfinite(col) & np.isfinite(target)
            if mask.sum() < 3:
                continue
            x, y = col[mask], target[mask]
            if np.std(x) == 0 or np.std(y) == 0:
                continue
            r = np.corrcoef(x, y)[0, 1]
            # |r| below ~2 standard errors is treated as no relationship
            if np.isfinite(r) and abs(r) >= 2.0 / np.sqrt(mask.sum()):
                imp[j] = abs(r)

        total = imp.sum()
        if total <= 0:
            return np.full(n_features, 1.0 / max(1, n_features))
        return imp / total

    # ───────────────────────────────────────────────────────────────────
    # Local Explanation
    # ───────────────────────────────────────────────────────────────────

    def explain_local(
        self,
        drift_result: DriftResult,
        reference: Any,
        current: Any,
        row_index: int,
        top_k: Optional[int] = None
    ) -> List[FeatureAttribution]:
        """
        Explain one current row: per-feature distance from the reference
        mean in reference standard deviations, weighted by the feature's
        drift contribution.
        """
        ref = _as_matrix(reference)
        cur = _as_matrix(current)

        if not 0 <= row_index < cur.shape[0]:
            raise IndexError(f"row_index {row_index} out of range for {cur.shape[0]} rows")

        contribution: Dict[int, float] = {
            fd.feature_index: fd.drift_score for fd in drift_result.feature_drifts
        }
        for att in drift_result.attribution or []:
            contribution[att.feature_index] = att.contribution

        row = cur[row_index]
        scores: List[FeatureAttribution] = []

        for fd in drift_result.feature_drifts:
            j = fd.feature_index
            pool = ref[:, j][np.isfinite(ref[:, j])]
            if pool.size == 0 or not np.isfinite(row[j]):
                continue
            std = float(np.std(pool)) or 1.0
            z = abs(row[j] - float(np.mean(pool))) / std
            scores.append(
                FeatureAttribution(
                    feature_name=fd.feature_name,
                    feature_index=j,
                    contribution=float(z * contribution.get(j, 0.0))
                )
            )

        total = sum(s.contribution for s in scores)
        if total > 0:
            scores = [
                s.model_copy(update={"contribution": s.contribution / total}) for s in scores
            ]

        scores.sort(key=lambda a: (-a.contribution, a.feature_index))
        return scores[: (top_k or self.config.local_top_k)]
