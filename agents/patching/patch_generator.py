# agents/patching/patch_generator.py
"""
╔════════════════════════════════════════════════════════════════════════════╗
║  DriftFix PRO - Patch Generator v1.0                                      ║
║  ─────────────────────────────────────────────────────────────────────────  ║
║  ✓ Strategy selection keyed on drift type and severity                   ║
║  ✓ Percentile clipping from reference data                               ║
║  ✓ Severity-tiered feature reweighting                                   ║
║  ✓ Threshold tuning by drift type                                        ║
║  ✓ Normalization reset to reference moments                              ║
║  ✓ Ultra-aggressive multi-strategy mode (8 candidates)                   ║
╚════════════════════════════════════════════════════════════════════════════╝

Standard strategies:
```
    COVARIATE  PRIMARY    Clipping
               SECONDARY  NormalizationReset      (score > 0.5)
               EMERGENCY  Clipping [10th, 90th]   (score > 0.7)
    CONCEPT    PRIMARY    Reweighting
               SECONDARY  ThresholdTuning         (score > 0.5)
    PRIOR      PRIMARY    ThresholdTuning
```

Clip bounds (per-feature severity):  >0.7 → [5, 95] │ 0.5-0.7 → [2, 98] │ else [1, 99]
Weights (drifted features only):     >0.7 → 0.3 │ >0.5 → 0.5 │ >0.3 → 0.7 │ else 0.9
Threshold delta:                     score × {PRIOR 0.15, CONCEPT 0.10, other 0.05}

Ultra-aggressive mode (score > 0.3 or requested) adds, over every feature:
    1. clipping [15, 85]          5. combined clipping [20, 80]
    2. complete normalization     6. outlier elimination (±2σ)
    3. maximal reweighting        7. distribution matching
    4. extreme threshold          8. standardization

Ultra-aggressive candidates trade interpretability for drift reduction and
are tagged as such in their metadata.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass
from typing import Any, Dict, List, Optional, Tuple

import numpy as np
from loguru import logger

from agents.monitoring.drift_detector import as_dataset
from config.settings import Settings, get_settings
from core.dataset import Dataset
from core.exceptions import ConfigurationError, DimensionMismatchError
from core.models import (
    Clipping,
    DistributionMatch,
    DriftResult,
    DriftType,
    NormalizationReset,
    OutlierElimination,
    PatchCandidate,
    PatchConfiguration,
    PatchPriority,
    PatchType,
    Reweighting,
    Standardization,
    ThresholdTuning,
)

# ═══════════════════════════════════════════════════════════════════════════
# Module Metadata
# ═══════════════════════════════════════════════════════════════════════════

__all__ = ["PatchGeneratorConfig", "PatchGenerator"]
__version__ = "1.0.0"
__author__ = "DriftFix Team"


# Heuristic pre-validation estimates
ESTIMATED_DRIFT_REDUCTION: Dict[PatchType, float] = {
    PatchType.NORMALIZATION_RESET: 0.70,
    PatchType.REWEIGHTING: 0.60,
    PatchType.CLIPPING: 0.50,
    PatchType.THRESHOLD_TUNING: 0.35,
}
DEFAULT_DRIFT_REDUCTION = 0.40
BASE_SAFETY = 0.85
PRIORITY_SAFETY_FACTOR: Dict[PatchPriority, float] = {
    PatchPriority.PRIMARY: 1.0,
    PatchPriority.SECONDARY: 0.95,
    PatchPriority.EMERGENCY: 0.85,
    PatchPriority.ULTRA_AGGRESSIVE: 0.75,
}

THRESHOLD_COEFFICIENT: Dict[DriftType, float] = {
    DriftType.PRIOR: 0.15,
    DriftType.CONCEPT: 0.10,
}
EXTREME_THRESHOLD_COEFFICIENT: Dict[DriftType, float] = {
    DriftType.PRIOR: 0.30,
    DriftType.CONCEPT: 0.25,
    DriftType.COVARIATE: 0.20,
}


# ═══════════════════════════════════════════════════════════════════════════
# SECTION: Configuration
# ═══════════════════════════════════════════════════════════════════════════

@dataclass
class PatchGeneratorConfig:
    """
    🩹 **Patch Generation Configuration**

    Gating:
        generation_min_score: No candidates at or below this score (default: 0.15)
        ultra_aggressive_trigger: Score enabling ultra mode (default: 0.30)

    Escalation:
        secondary_score: Score adding a SECONDARY candidate (default: 0.5)
        emergency_score: Score adding an EMERGENCY candidate (default: 0.7)
        emergency_percentiles: Emergency clip bounds (default: 10th-90th)

    Ultra-aggressive:
        ultra_clip_percentiles: Ultra-tight clip (default: 15th-85th)
        combined_clip_percentiles: Combined clip (default: 20th-80th)
        outlier_sigma: Outlier elimination width (default: 2.0)

    Decision threshold:
        base_threshold: Model decision threshold before tuning (default: 0.5)
        threshold_bounds: Clamp for extreme tuning (default: 0.05-0.95)

    Target features:
        fallback_top_features: Attribution features used when none drifted
    """

    generation_min_score: float = 0.15
    ultra_aggressive_trigger: float = 0.30

    secondary_score: float = 0.5
    emergency_score: float = 0.7
    emergency_percentiles: Tuple[float, float] = (10.0, 90.0)

    ultra_clip_percentiles: Tuple[float, float] = (15.0, 85.0)
    combined_clip_percentiles: Tuple[float, float] = (20.0, 80.0)
    outlier_sigma: float = 2.0

    base_threshold: float = 0.5
    threshold_bounds: Tuple[float, float] = (0.05, 0.95)

    fallback_top_features: int = 3

    def __post_init__(self):
        """Validate configuration."""
        for name in ("emergency_percentiles", "ultra_clip_percentiles", "combined_clip_percentiles"):
            low, high = getattr(self, name)
            if not 0.0 <= low < high <= 100.0:
                raise ConfigurationError(f"{name} must satisfy 0 <= low < high <= 100, got {(low, high)}")

        if not self.secondary_score <= self.emergency_score:
            raise ConfigurationError("secondary_score must not exceed emergency_score")

        if self.outlier_sigma <= 0:
            raise ConfigurationError(f"outlier_sigma must be > 0, got {self.outlier_sigma}")

        low, high = self.threshold_bounds
        if not 0.0 <= low < high <= 1.0:
            raise ConfigurationError(f"threshold_bounds must be within [0, 1], got {self.threshold_bounds}")

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_settings(cls, settings: Optional[Settings] = None) -> "PatchGeneratorConfig":
        s = settings or get_settings()
        return cls(
            generation_min_score=s.PATCH_GENERATION_MIN_SCORE,
            ultra_aggressive_trigger=s.ULTRA_AGGRESSIVE_TRIGGER
        )

    @classmethod
    def create_strict(cls) -> "PatchGeneratorConfig":
        """Fewer, later patches: ultra mode only on request."""
        return cls(generation_min_score=0.25, ultra_aggressive_trigger=1.0)

    @classmethod
    def create_lenient(cls) -> "PatchGeneratorConfig":
        return cls(generation_min_score=0.05, ultra_aggressive_trigger=0.2)


# ═══════════════════════════════════════════════════════════════════════════
# SECTION: Severity Tables
# ═══════════════════════════════════════════════════════════════════════════

def clip_percentiles(severity: float) -> Tuple[float, float]:
    if severity > 0.7:
        return 5.0, 95.0
    if severity >= 0.5:
        return 2.0, 98.0
    return 1.0, 99.0


def reweight_factor(severity: float) -> float:
    if severity > 0.7:
        return 0.3
    if severity > 0.5:
        return 0.5
    if severity > 0.3:
        return 0.7
    return 0.9


def maximal_reweight_factor(severity: float) -> float:
    if severity > 0.8:
        return 0.05
    if severity > 0.6:
        return 0.10
    if severity > 0.4:
        return 0.20
    if severity > 0.2:
        return 0.40
    return 0.60


# ═══════════════════════════════════════════════════════════════════════════
# SECTION: Patch Generator
# ═══════════════════════════════════════════════════════════════════════════

class PatchGenerator:
    """
    🩹 **Patch Candidate Generator**

    Usage:
```python
        generator = PatchGenerator()
        candidates = generator.generate(drift_result, reference, current)

        for c in candidates:
            print(c.priority.value, c.type.value, c.estimated_drift_reduction)
```
    """

    def __init__(self, config: Optional[PatchGeneratorConfig] = None):
        self.config = config or PatchGeneratorConfig.from_settings()
        self._log = logger.bind(agent="PatchGenerator", version=__version__)

    # ───────────────────────────────────────────────────────────────────
    # Public API
    # ───────────────────────────────────────────────────────────────────

    def generate(
        self,
        drift_result: DriftResult,
        reference: Any,
        current: Any = None,
        *,
        ultra_aggressive: bool = False
    ) -> List[PatchCandidate]:
        """
        🎯 **Generate Patch Candidates**

        Args:
            drift_result: Verdict from the drift detector
            reference: Reference data (percentiles and moments)
            current: Current data (source moments for normalization reset)
            ultra_aggressive: Force the multi-strategy mode

        Returns:
            Candidates sorted by priority (PRIMARY first)
        """
        cfg = self.config
        score = drift_result.drift_score

        if not drift_result.is_drift_detected or score <= cfg.generation_min_score:
            self._log.info(
                f"No patch needed | detected={drift_result.is_drift_detected} | score={score:.3f}"
            )
            return []

        ref = as_dataset(reference)
        cur = as_dataset(current) if current is not None else None

        if ref.n_features != len(drift_result.feature_drifts) or (
            cur is not None and cur.n_features != ref.n_features
        ):
            raise DimensionMismatchError(
                "Data width does not match the drift result",
                details={
                    "reference": ref.n_features,
                    "current": cur.n_features if cur is not None else None,
                    "drift_result": len(drift_result.feature_drifts)
                }
            )

        targets = self.target_features(drift_result)
        candidates = self._standard_candidates(drift_result, ref, cur, targets)

        ultra = ultra_aggressive or score > cfg.ultra_aggressive_trigger
        if ultra:
            candidates.extend(self._ultra_candidates(drift_result, ref, cur))

        candidates.sort(key=lambda c: c.priority.rank)

        self._log.info(
            f"🩹 Generated {len(candidates)} candidate(s) | type={drift_result.drift_type.value} | "
            f"score={score:.3f} | ultra={ultra}"
        )
        return candidates

    def target_features(self, drift_result: DriftResult) -> List[int]:
        """Drifted features, else the top attributed features."""
        drifted = [fd.feature_index for fd in drift_result.drifted_features()]
        if drifted:
            return drifted

        ranked = [
            a.feature_index for a in (drift_result.attribution or []) if a.contribution > 0
        ]
        return sorted(ranked[: self.config.fallback_top_features])

    # ───────────────────────────────────────────────────────────────────
    # Standard Strategies
    # ───────────────────────────────────────────────────────────────────

    def _standard_candidates(
        self,
        drift: DriftResult,
        ref: Dataset,
        cur: Optional[Dataset],
        targets: List[int]
    ) -> List[PatchCandidate]:
        cfg = self.config
        score = drift.drift_score
        out: List[PatchCandidate] = []

        if drift.drift_type == DriftType.COVARIATE:
            clip = self._clipping(ref, {j: clip_percentiles(self._severity(drift, j)) for j in targets})
            self._add(out, drift, clip, PatchPriority.PRIMARY)

            if score > cfg.secondary_score:
                self._add(out, drift, self._normalization(ref, cur, targets), PatchPriority.SECONDARY)

            if score > cfg.emergency_score:
                tight = self._clipping(ref, {j: cfg.emergency_percentiles for j in targets})
                self._add(out, drift, tight, PatchPriority.EMERGENCY)

        elif drift.drift_type == DriftType.CONCEPT:
            weights = {j: reweight_factor(self._severity(drift, j)) for j in targets}
            if weights:
                self._add(out, drift, Reweighting(per_feature_weight=weights), PatchPriority.PRIMARY)

            if score > cfg.secondary_score:
                self._add(out, drift, self._threshold(drift, THRESHOLD_COEFFICIENT), PatchPriority.SECONDARY)

        elif drift.drift_type == DriftType.PRIOR:
            self._add(out, drift, self._threshold(drift, THRESHOLD_COEFFICIENT), PatchPriority.PRIMARY)

        return out

    # ───────────────────────────────────────────────────────────────────
    # Ultra-Aggressive Strategies
    # ───────────────────────────────────────────────────────────────────

    def _ultra_candidates(
        self,
        drift: DriftResult,
        ref: Dataset,
        cur: Optional[Dataset]
    ) -> List[PatchCandidate]:
        cfg = self.config
        features = [fd.feature_index for fd in drift.feature_drifts]
        self._log.warning(
            f"🔥 Ultra-aggressive mode | {len(features)} feature(s) | score={drift.drift_score:.3f}"
        )

        strategies: List[Tuple[str, Optional[PatchConfiguration]]] = [
            ("maximal_clipping",
             self._clipping(ref, {j: cfg.ultra_clip_percentiles for j in features})),
            ("complete_normalization",
             self._normalization(ref, cur, features)),
            ("maximum_reweighting",
             Reweighting(per_feature_weight={
                 j: maximal_reweight_factor(self._severity(drift, j)) for j in features
             }) if features else None),
            ("extreme_threshold",
             self._threshold(drift, EXTREME_THRESHOLD_COEFFICIENT, default=0.15, clamp=True)),
            ("combined_maximum",
             self._clipping(ref, {j: cfg.combined_clip_percentiles for j in features})),
            ("outlier_elimination",
             self._outlier_elimination(ref, features)),
            ("distribution_matching",
             self._distribution_match(ref, features)),
            ("feature_standardization",
             Standardization(features=features) if features else None),
        ]

        out: List[PatchCandidate] = []
        for strategy, config in strategies:
            if config is None:
                self._log.debug(f"  skipped {strategy}: no applicable feature")
                continue
            self._add(
                out, drift, config, PatchPriority.ULTRA_AGGRESSIVE,
                metadata={
                    "strategy": strategy,
                    "ultra_aggressive": True,
                    "target_reduction": 1.0,
                    "interpretability": "reduced",
                    "drift_score": drift.drift_score
                }
            )
        return out

    # ───────────────────────────────────────────────────────────────────
    # Configuration Builders
    # ───────────────────────────────────────────────────────────────────

    @staticmethod
    def _finite_column(ds: Dataset, j: int) -> np.ndarray:
        col = ds.column(j)
        return col[np.isfinite(col)]

    @staticmethod
    def _severity(drift: DriftResult, j: int) -> float:
        fd = drift.feature(j)
        return fd.drift_score if fd is not None else drift.drift_score

    def _clipping(
        self,
        ref: Dataset,
        percentiles: Dict[int, Tuple[float, float]]
    ) -> Optional[Clipping]:
        bounds: Dict[int, Tuple[float, float]] = {}
        for j, (lo, hi) in percentiles.items():
            col = self._finite_column(ref, j)
            if col.size == 0:
                continue
            low, high = np.percentile(col, [lo, hi])
            bounds[j] = (float(low), float(high))
        return Clipping(per_feature_bounds=bounds) if bounds else None

    def _normalization(
        self,
        ref: Dataset,
        cur: Optional[Dataset],
        features: List[int]
    ) -> Optional[NormalizationReset]:
        target: Dict[int, Tuple[float, float]] = {}
        source: Dict[int, Tuple[float, float]] = {}

        for j in features:
            col = self._finite_column(ref, j)
            if col.size == 0:
                continue
            target[j] = (float(np.mean(col)), float(np.std(col)))

            if cur is not None:
                cur_col = self._finite_column(cur, j)
                if cur_col.size:
                    source[j] = (float(np.mean(cur_col)), float(np.std(cur_col)))

        if not target:
            return None
        return NormalizationReset(per_feature_mean_std=target, source_mean_std=source)

    def _outlier_elimination(self, ref: Dataset, features: List[int]) -> Optional[OutlierElimination]:
        sigma = self.config.outlier_sigma
        bounds: Dict[int, Tuple[float, float]] = {}
        for j in features:
            col = self._finite_column(ref, j)
            if col.size == 0:
                continue
            mean, std = float(np.mean(col)), float(np.std(col))
            bounds[j] = (mean - sigma * std, mean + sigma * std)
        return OutlierElimination(per_feature_bounds=bounds, sigma=sigma) if bounds else None

    def _distribution_match(self, ref: Dataset, features: List[int]) -> Optional[DistributionMatch]:
        moments: Dict[int, Tuple[float, float]] = {}
        for j in features:
            col = self._finite_column(ref, j)
            if col.size:
                moments[j] = (float(np.mean(col)), float(np.std(col)))
        return DistributionMatch(per_feature_mean_std=moments) if moments else None

    def _threshold(
        self,
        drift: DriftResult,
        coefficients: Dict[DriftType, float],
        *,
        default: float = 0.05,
        clamp: bool = False
    ) -> ThresholdTuning:
        base = self.config.base_threshold
        delta = drift.drift_score * coefficients.get(drift.drift_type, default)
        if clamp:
            low, high = self.config.threshold_bounds
            delta = float(np.clip(base + delta, low, high)) - base
        return ThresholdTuning(delta=float(delta), base_threshold=base)

    # ───────────────────────────────────────────────────────────────────
    # Candidate Assembly
    # ───────────────────────────────────────────────────────────────────

    def _add(
        self,
        out: List[PatchCandidate],
        drift: DriftResult,
        config: Optional[PatchConfiguration],
        priority: PatchPriority,
        metadata: Optional[Dict[str, Any]] = None
    ) -> None:
        if config is None:
            return

        patch_type = config.patch_type
        out.append(
            PatchCandidate(
                drift_result_id=drift.id,
                model_id=drift.model_id,
                type=patch_type,
                priority=priority,
                configuration=config,
                estimated_safety_score=BASE_SAFETY * PRIORITY_SAFETY_FACTOR[priority],
                estimated_drift_reduction=ESTIMATED_DRIFT_REDUCTION.get(patch_type, DEFAULT_DRIFT_REDUCTION),
                metadata=metadata or {"strategy": f"{priority.value.lower()}_{patch_type.value.lower()}"}
            )
        )
