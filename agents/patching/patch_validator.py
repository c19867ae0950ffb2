# agents/patching/patch_validator.py
"""
╔════════════════════════════════════════════════════════════════════════════╗
║  DriftFix PRO - Patch Validator v1.0                                      ║
║  ─────────────────────────────────────────────────────────────────────────  ║
║  ✓ Adaptive validation slice (10% small / 20% large datasets)            ║
║  ✓ Fast-track defaults for tiny slices                                   ║
║  ✓ Trial application through the shared transform table                 ║
║  ✓ Drift reduction, safety, F1, Wilson confidence interval               ║
║  ✓ Four acceptance tiers                                                 ║
║  ✓ Parallel validation of candidate batches                              ║
╚════════════════════════════════════════════════════════════════════════════╝

Validation slice:
```
    n < 100   →  k = max(5,  ⌈0.10 · n⌉)
    n ≥ 100   →  k = max(20, ⌈0.20 · n⌉)          (k ≤ n, first k rows)
```

Fast track (k < 30):
    accuracy 0.80 │ safety max(est, 0.70) │ reduction max(est, 0.30) │ f1 0.75

Standard mode:
    pre / post   = Σ wᶠ · scoreᶠ / n_features   (scores against the reference)
    reduction    = (pre − post) / pre
    safety       = 0.5 · (1 − input post) + 0.3 · accuracy + 0.2 · fidelity
    fidelity     = 1 − min(1, mean|Δx| / (3 · σ_ref))        value patches
                 = 1 − mean|1 − wᶠ| over reweighted features
                 = 1 − min(1, |δ| / 0.30)                threshold tuning

    Decision-side patches leave the inputs untouched, so the stability term
    uses the unweighted post score.

Tiers (first match wins):
    STANDARD             safety > 0.25 and reduction > 0.05
    MINIMAL_IMPROVEMENT  safety > 0.15 or  reduction > 0.02
    REJECTED             safety < 0.10 and reduction < 0
    NO_EFFECT            otherwise
"""

from __future__ import annotations

import math
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import asdict, dataclass, field, replace
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

import numpy as np
import pandas as pd
from loguru import logger
from scipy.stats import norm

from agents.monitoring.drift_detector import DriftConfig, DriftDetector, as_dataset
from agents.patching.transforms import apply_configuration, influence_weights
from config.settings import Settings, get_settings
from core.dataset import Dataset
from core.exceptions import ConfigurationError, DimensionMismatchError
from core.models import (
    AcceptanceTier,
    Clipping,
    DistributionMatch,
    NormalizationReset,
    PatchCandidate,
    Reweighting,
    Standardization,
    ThresholdTuning,
    ValidationMetrics,
    ValidationResult,
)

# ═══════════════════════════════════════════════════════════════════════════
# Module Metadata
# ═══════════════════════════════════════════════════════════════════════════

__all__ = [
    "AcceptanceThresholds",
    "ValidationConfig",
    "PatchValidator",
    "classify_acceptance",
    "validation_sample_size",
    "wilson_interval",
]
__version__ = "1.0.0"
__author__ = "DriftFix Team"

PredictFn = Callable[[np.ndarray], Any]

_NORMALIZATION_FAMILY = (NormalizationReset, DistributionMatch, Standardization)


# ═══════════════════════════════════════════════════════════════════════════
# SECTION: Configuration
# ═══════════════════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class AcceptanceThresholds:
    """Tier cut-offs on (safety, drift reduction)."""

    standard_safety: float = 0.25
    standard_reduction: float = 0.05
    minimal_safety: float = 0.15
    minimal_reduction: float = 0.02
    reject_safety: float = 0.10
    reject_reduction: float = 0.0

    def __post_init__(self):
        if not self.reject_safety <= self.minimal_safety <= self.standard_safety:
            raise ConfigurationError("safety cut-offs must satisfy reject <= minimal <= standard")
        if not self.reject_reduction <= self.minimal_reduction <= self.standard_reduction:
            raise ConfigurationError("reduction cut-offs must satisfy reject <= minimal <= standard")

    @classmethod
    def from_settings(cls, settings: Optional[Settings] = None) -> "AcceptanceThresholds":
        s = settings or get_settings()
        return cls(
            standard_safety=s.TIER_STANDARD_SAFETY,
            standard_reduction=s.TIER_STANDARD_REDUCTION,
            minimal_safety=s.TIER_MINIMAL_SAFETY,
            minimal_reduction=s.TIER_MINIMAL_REDUCTION,
            reject_safety=s.TIER_REJECT_SAFETY
        )


@dataclass
class ValidationConfig:
    """
    ✅ **Patch Validation Configuration**

    Slice sizing:
        small_dataset_threshold: Rows below which the 10% rule applies (default: 100)
        fast_track_max_samples: Slices smaller than this are fast-tracked (default: 30)

    Fast-track defaults:
        fast_track_accuracy / fast_track_f1
        fast_track_min_safety / fast_track_min_reduction: floors over the estimates

    Scoring:
        fidelity_scale: Reference std multiples of mean |Δx| for zero fidelity
        threshold_fidelity_scale: Threshold shift with zero fidelity (default: 0.30)
        confidence_level: Wilson interval level (default: 0.95)

    Penalties (multiplicative on safety):
        narrow_clip_coverage / narrow_clip_penalty
        low_weight / low_weight_penalty
        large_threshold_delta / large_threshold_penalty
        normalization_penalty

    Execution:
        max_workers: Thread pool size for ``validate_many``
    """

    thresholds: AcceptanceThresholds = field(default_factory=AcceptanceThresholds)

    small_dataset_threshold: int = 100
    fast_track_max_samples: int = 30

    fast_track_accuracy: float = 0.80
    fast_track_f1: float = 0.75
    fast_track_min_safety: float = 0.70
    fast_track_min_reduction: float = 0.30

    fidelity_scale: float = 3.0
    threshold_fidelity_scale: float = 0.30
    confidence_level: float = 0.95

    narrow_clip_coverage: float = 0.60
    narrow_clip_penalty: float = 0.90
    low_weight: float = 0.5
    low_weight_penalty: float = 0.85
    large_threshold_delta: float = 0.2
    large_threshold_penalty: float = 0.90
    normalization_penalty: float = 0.95

    max_workers: int = 4

    def __post_init__(self):
        """Validate configuration."""
        if self.small_dataset_threshold < 1:
            raise ConfigurationError("small_dataset_threshold must be >= 1")

        if self.fast_track_max_samples < 1:
            raise ConfigurationError("fast_track_max_samples must be >= 1")

        if not 0 < self.confidence_level < 1:
            raise ConfigurationError(f"confidence_level must be in (0, 1), got {self.confidence_level}")

        if self.fidelity_scale <= 0 or self.threshold_fidelity_scale <= 0:
            raise ConfigurationError("fidelity scales must be > 0")

        if self.max_workers < 1:
            raise ConfigurationError(f"max_workers must be >= 1, got {self.max_workers}")

        for name in (
            "narrow_clip_penalty", "low_weight_penalty",
            "large_threshold_penalty", "normalization_penalty"
        ):
            value = getattr(self, name)
            if not 0 < value <= 1:
                raise ConfigurationError(f"{name} must be in (0, 1], got {value}")

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_settings(cls, settings: Optional[Settings] = None) -> "ValidationConfig":
        s = settings or get_settings()
        return cls(
            thresholds=AcceptanceThresholds.from_settings(s),
            small_dataset_threshold=s.SMALL_DATASET_THRESHOLD,
            fast_track_max_samples=s.FAST_TRACK_MAX_SAMPLES,
            max_workers=s.VALIDATION_WORKERS
        )

    @classmethod
    def create_strict(cls) -> "ValidationConfig":
        """Higher tier cut-offs, fast track only for slices under 10 rows."""
        return cls(
            thresholds=AcceptanceThresholds(
                standard_safety=0.40,
                standard_reduction=0.10,
                minimal_safety=0.25,
                minimal_reduction=0.05,
                reject_safety=0.15
            ),
            fast_track_max_samples=10
        )

    @classmethod
    def create_lenient(cls) -> "ValidationConfig":
        return cls(
            thresholds=AcceptanceThresholds(
                standard_safety=0.20,
                standard_reduction=0.02,
                minimal_safety=0.10,
                minimal_reduction=0.01,
                reject_safety=0.05
            ),
            fast_track_max_samples=50
        )


# ═══════════════════════════════════════════════════════════════════════════
# SECTION: Pure Helpers
# ═══════════════════════════════════════════════════════════════════════════

def classify_acceptance(
    safety: float,
    reduction: float,
    thresholds: Optional[AcceptanceThresholds] = None
) -> AcceptanceTier:
    """
    Map (safety, drift reduction) onto an acceptance tier.

    Example:
```python
        classify_acceptance(0.05, -0.1)   # AcceptanceTier.REJECTED
        classify_acceptance(0.60, 0.40)   # AcceptanceTier.STANDARD
```
    """
    t = thresholds or AcceptanceThresholds()

    if safety > t.standard_safety and reduction > t.standard_reduction:
        return AcceptanceTier.STANDARD
    if safety > t.minimal_safety or reduction > t.minimal_reduction:
        return AcceptanceTier.MINIMAL_IMPROVEMENT
    if safety < t.reject_safety and reduction < t.reject_reduction:
        return AcceptanceTier.REJECTED
    return AcceptanceTier.NO_EFFECT


def validation_sample_size(n: int, small_dataset_threshold: int = 100) -> int:
    """Rows of the validation slice for a dataset of ``n`` rows."""
    if n <= 0:
        return 0
    if n < small_dataset_threshold:
        k = max(5, math.ceil(0.1 * n))
    else:
        k = max(20, math.ceil(0.2 * n))
    return min(k, n)


def wilson_interval(p: float, n: int, confidence: float = 0.95) -> Optional[Tuple[float, float]]:
    """Wilson score interval of a proportion ``p`` over ``n`` trials."""
    if n <= 0:
        return None
    z = float(norm.ppf(0.5 + confidence / 2.0))
    denom = 1.0 + z * z / n
    center = (p + z * z / (2.0 * n)) / denom
    half = z * math.sqrt(p * (1.0 - p) / n + z * z / (4.0 * n * n)) / denom
    return max(0.0, center - half), min(1.0, center + half)


def _binary_f1(y_true: np.ndarray, y_pred: np.ndarray) -> float:
    tp = float(np.sum((y_pred == 1) & (y_true == 1)))
    fp = float(np.sum((y_pred == 1) & (y_true == 0)))
    fn = float(np.sum((y_pred == 0) & (y_true == 1)))
    if tp == 0:
        return 0.0
    precision = tp / (tp + fp)
    recall = tp / (tp + fn)
    return 2.0 * precision * recall / (precision + recall)


# ═══════════════════════════════════════════════════════════════════════════
# SECTION: Patch Validator
# ═══════════════════════════════════════════════════════════════════════════

class PatchValidator:
    """
    ✅ **Patch Validator**

    Usage:
```python
        validator = PatchValidator()
        result = validator.validate(candidate, reference, current)

        # Whole batch, order preserved
        results = validator.validate_many(candidates, reference, current)
```
    """

    def __init__(
        self,
        config: Optional[ValidationConfig] = None,
        drift_config: Optional[DriftConfig] = None
    ):
        self.config = config or ValidationConfig.from_settings()
        drift_config = drift_config or DriftConfig.from_settings()
        self._scorer = DriftDetector(replace(drift_config, compute_attribution=False))
        self._log = logger.bind(agent="PatchValidator", version=__version__)

    # ───────────────────────────────────────────────────────────────────
    # Public API
    # ───────────────────────────────────────────────────────────────────

    def validate(
        self,
        candidate: PatchCandidate,
        reference: Any,
        current: Any,
        *,
        current_labels: Optional[Sequence[Any]] = None,
        predict_fn: Optional[PredictFn] = None
    ) -> ValidationResult:
        """
        🎯 **Validate one candidate on the validation slice**

        Args:
            candidate: Patch candidate
            reference: Reference data
            current: Current data; its first k rows form the validation slice
            current_labels: Optional labels aligned with ``current``
            predict_fn: Optional scoring callable (2-D array → scores)

        Raises:
            DimensionMismatchError: reference / current widths differ
        """
        t_start = time.perf_counter()
        ref = as_dataset(reference)
        cur = as_dataset(current)

        if ref.n_features != cur.n_features:
            raise DimensionMismatchError(
                "Reference and current feature counts differ",
                details={"reference": ref.n_features, "current": cur.n_features},
                context={"patch_id": candidate.id}
            )

        k = validation_sample_size(cur.n_rows, self.config.small_dataset_threshold)
        slice_, _ = cur.split(k)
        labels = None
        if current_labels is not None:
            labels = np.asarray(current_labels, dtype=object).ravel()[:k]

        if k < self.config.fast_track_max_samples:
            result = self._fast_track(
                candidate, k,
                f"Fast-track validation: {k} sample(s) < {self.config.fast_track_max_samples}"
            )
        else:
            result = self._standard(candidate, ref, slice_, labels, predict_fn)

        self._log.info(
            f"✓ Validated {candidate.type.value} ({candidate.priority.value}) | "
            f"tier={result.acceptance_tier.value} | safety={result.metrics.safety_score:.3f} | "
            f"reduction={result.metrics.drift_reduction:.3f} | k={k} | "
            f"{time.perf_counter() - t_start:.2f}s"
        )
        return result

    def validate_many(
        self,
        candidates: Sequence[PatchCandidate],
        reference: Any,
        current: Any,
        *,
        current_labels: Optional[Sequence[Any]] = None,
        predict_fn: Optional[PredictFn] = None
    ) -> List[ValidationResult]:
        """Validate candidates in parallel; results follow candidate order."""
        if not candidates:
            return []

        ref = as_dataset(reference)
        cur = as_dataset(current)
        workers = min(self.config.max_workers, len(candidates))

        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="patch-validate") as pool:
            futures = [
                pool.submit(
                    self.validate, c, ref, cur,
                    current_labels=current_labels, predict_fn=predict_fn
                )
                for c in candidates
            ]
            return [f.result() for f in futures]

    # ───────────────────────────────────────────────────────────────────
    # Fast Track
    # ───────────────────────────────────────────────────────────────────

    def _fast_track(self, candidate: PatchCandidate, k: int, warning: str) -> ValidationResult:
        cfg = self.config
        self._log.warning(f"⚠ {warning}")

        safety = max(candidate.estimated_safety_score, cfg.fast_track_min_safety)
        reduction = max(candidate.estimated_drift_reduction, cfg.fast_track_min_reduction)

        metrics = ValidationMetrics(
            accuracy=cfg.fast_track_accuracy,
            safety_score=safety,
            f1=cfg.fast_track_f1,
            drift_reduction=reduction,
            performance_delta=0.0,
            sample_size=k
        )
        return self._result(candidate, metrics, [warning], fast_tracked=True)

    # ───────────────────────────────────────────────────────────────────
    # Standard Mode
    # ───────────────────────────────────────────────────────────────────

    def _standard(
        self,
        candidate: PatchCandidate,
        ref: Dataset,
        slice_: Dataset,
        labels: Optional[np.ndarray],
        predict_fn: Optional[PredictFn]
    ) -> ValidationResult:
        cfg = self.config
        config = candidate.configuration
        k = slice_.n_rows
        warnings: List[str] = []

        patched_values = apply_configuration(slice_.values, config)
        ref_values = ref.values
        if isinstance(config, Standardization) and config.pipeline_wide:
            ref_values = apply_configuration(ref_values, config)

        pre_scores, pre_ok = self._feature_scores(ref.values, slice_.values, ref.column_names)
        post_scores, post_ok = self._feature_scores(ref_values, patched_values, ref.column_names)

        if not (pre_ok and post_ok):
            return self._fast_track(
                candidate, k,
                "Statistical tests failed on the validation slice - fast-track defaults used"
            )

        n = max(1, ref.n_features)
        weights = influence_weights(config, ref.n_features)
        pre = float(np.sum(pre_scores) / n)
        post = float(np.clip(np.sum(weights * post_scores) / n, 0.0, 1.0))
        input_post = float(np.clip(np.sum(post_scores) / n, 0.0, 1.0))
        reduction = (pre - post) / pre if pre > 0 else 0.0

        # Accuracy
        accuracy, f1, performance_delta = self._labelled_metrics(
            config, slice_.values, patched_values, labels, predict_fn
        )
        if accuracy is None:
            accuracy = 1.0 - 0.5 * post
            f1 = accuracy
            performance_delta = 0.0

        fidelity = self._decision_fidelity(config)
        if fidelity is None:
            fidelity = self._fidelity(ref.values, slice_.values, patched_values)
        safety = 0.5 * (1.0 - input_post) + 0.3 * accuracy + 0.2 * fidelity
        safety = float(np.clip(safety * self._penalty(candidate, ref, warnings), 0.0, 1.0))

        metrics = ValidationMetrics(
            accuracy=float(accuracy),
            safety_score=safety,
            f1=float(f1),
            drift_reduction=float(reduction),
            performance_delta=float(performance_delta),
            pre_drift_score=pre,
            post_drift_score=post,
            confidence_interval=wilson_interval(accuracy, k, cfg.confidence_level),
            sample_size=k
        )
        return self._result(candidate, metrics, warnings)

    def _feature_scores(
        self,
        ref_values: np.ndarray,
        cur_values: np.ndarray,
        names: List[str]
    ) -> Tuple[np.ndarray, bool]:
        """Per-feature drift scores; ok is False when no feature was evaluable."""
        scores = np.zeros(len(names), dtype=np.float64)
        any_evaluated = False

        for j, name in enumerate(names):
            fd, evaluated = self._scorer.evaluate_feature(
                name, j, ref_values[:, j], cur_values[:, j]
            )
            scores[j] = fd.drift_score
            any_evaluated = any_evaluated or evaluated

        return scores, any_evaluated

    def _labelled_metrics(
        self,
        config,
        original: np.ndarray,
        patched: np.ndarray,
        labels: Optional[np.ndarray],
        predict_fn: Optional[PredictFn]
    ) -> Tuple[Optional[float], Optional[float], Optional[float]]:
        """(accuracy, f1, performance delta) with labels, else (None, None, None)."""
        if labels is None or predict_fn is None or labels.size != original.shape[0]:
            return None, None, None

        y = pd.to_numeric(pd.Series(labels), errors="coerce").to_numpy(dtype=np.float64)
        if not np.all(np.isfinite(y)):
            self._log.warning("⚠ Non-numeric labels, falling back to the accuracy proxy")
            return None, None, None

        base_threshold = 0.5
        threshold = base_threshold
        if isinstance(config, ThresholdTuning):
            base_threshold = config.base_threshold
            threshold = float(np.clip(config.target_threshold, 0.0, 1.0))

        try:
            before = np.asarray(predict_fn(original), dtype=np.float64).ravel()
            after = np.asarray(predict_fn(patched), dtype=np.float64).ravel()
        except Exception as e:
            self._log.warning(f"⚠ predict_fn failed, falling back to the accuracy proxy: {e}")
            return None, None, None

        y_bin = (y >= 0.5).astype(int)
        pred_before = (before >= base_threshold).astype(int)
        pred_after = (after >= threshold).astype(int)

        acc_before = float(np.mean(pred_before == y_bin))
        acc_after = float(np.mean(pred_after == y_bin))
        return acc_after, _binary_f1(y_bin, pred_after), acc_after - acc_before

    def _decision_fidelity(self, config) -> Optional[float]:
        """Fidelity of patches that act on the decision, None for value patches."""
        if isinstance(config, Reweighting):
            if not config.per_feature_weight:
                return 1.0
            shift = np.mean([abs(1.0 - w) for w in config.per_feature_weight.values()])
            return float(1.0 - min(1.0, float(shift)))
        if isinstance(config, ThresholdTuning):
            return float(1.0 - min(1.0, abs(config.delta) / self.config.threshold_fidelity_scale))
        return None

    def _fidelity(self, ref: np.ndarray, original: np.ndarray, patched: np.ndarray) -> float:
        delta = np.abs(patched - original)
        finite = np.isfinite(delta)
        if not finite.any():
            return 1.0

        ref_std = np.nanstd(np.where(np.isfinite(ref), ref, np.nan), axis=0)
        ref_std = np.where(np.isfinite(ref_std) & (ref_std > 0), ref_std, 1.0)
        scaled = np.where(finite, delta / (self.config.fidelity_scale * ref_std), np.nan)
        return float(1.0 - min(1.0, float(np.nanmean(scaled))))

    def _penalty(self, candidate: PatchCandidate, ref: Dataset, warnings: List[str]) -> float:
        cfg = self.config
        config = candidate.configuration
        factor = 1.0

        if isinstance(config, Clipping) and config.per_feature_bounds:
            coverage = []
            for j, (low, high) in config.per_feature_bounds.items():
                col = ref.column(j)
                col = col[np.isfinite(col)]
                if col.size:
                    coverage.append(float(np.mean((col >= low) & (col <= high))))
            if coverage and float(np.mean(coverage)) < cfg.narrow_clip_coverage:
                factor *= cfg.narrow_clip_penalty
                warnings.append("Narrow clipping bounds cut most of the reference range")

        if isinstance(config, Reweighting) and any(
            w < cfg.low_weight for w in config.per_feature_weight.values()
        ):
            factor *= cfg.low_weight_penalty
            warnings.append(f"Feature weights below {cfg.low_weight} reduce interpretability")

        if isinstance(config, ThresholdTuning) and abs(config.delta) > cfg.large_threshold_delta:
            factor *= cfg.large_threshold_penalty
            warnings.append(f"Threshold shift {config.delta:+.3f} exceeds {cfg.large_threshold_delta}")

        if isinstance(config, _NORMALIZATION_FAMILY):
            factor *= cfg.normalization_penalty

        return factor

    # ───────────────────────────────────────────────────────────────────
    # Result Assembly
    # ───────────────────────────────────────────────────────────────────

    def _result(
        self,
        candidate: PatchCandidate,
        metrics: ValidationMetrics,
        warnings: List[str],
        fast_tracked: bool = False
    ) -> ValidationResult:
        tier = classify_acceptance(
            metrics.safety_score, metrics.drift_reduction, self.config.thresholds
        )
        errors: List[str] = []
        warnings = list(warnings)

        if tier == AcceptanceTier.MINIMAL_IMPROVEMENT:
            warnings.append("Minimal improvement - patch accepted with reduced confidence")
        elif tier == AcceptanceTier.NO_EFFECT:
            warnings.append("Patch has no measurable effect")
        elif tier == AcceptanceTier.REJECTED:
            errors.append(
                f"Rejected: safety {metrics.safety_score:.3f}, "
                f"drift reduction {metrics.drift_reduction:.3f}"
            )
            self._log.warning(f"❌ Patch {candidate.id[:8]} rejected")

        return ValidationResult(
            patch_id=candidate.id,
            is_valid=tier != AcceptanceTier.REJECTED,
            metrics=metrics,
            acceptance_tier=tier,
            errors=errors,
            warnings=warnings,
            fast_tracked=fast_tracked
        )
