# agents/monitoring/drift_detector.py
"""
╔════════════════════════════════════════════════════════════════════════════╗
║  DriftFix PRO - Drift Detector v1.0                                       ║
║  ─────────────────────────────────────────────────────────────────────────  ║
║  ✓ Per-feature PSI + KS with typed degenerate-case handling              ║
║  ✓ Normalized composite drift score in [0, 1]                            ║
║  ✓ Drift type classification (PRIOR → COVARIATE → CONCEPT → NONE)        ║
║  ✓ Attribution ranking attached to every result                          ║
║  ✓ Distribution shift summaries per feature                              ║
║  ✓ AgentResult integration via BaseAgent lifecycle                       ║
╚════════════════════════════════════════════════════════════════════════════╝

Per feature:
    is_drifted   = psi > 0.25  or  p < 0.05
    drift_score  = 0.5 · min(psi / 0.25, 1) + 0.5 · (1 − p)

Overall:
    drift_score  = mean of per-feature scores over evaluated features

Classification (first match wins):
    PRIOR      label PSI > 0.25                       (labels given)
    COVARIATE  mean score > 0.25 and ≥1 drifted feature
    CONCEPT    feature-importance shift > concept delta
    NONE       otherwise

Degenerate columns (all NaN, too few values) are kept in the result with
score 0, not drifted, and a warning. A feature-count mismatch raises
``DimensionMismatchError``.

Usage:
```python
    from agents.monitoring import DriftDetector

    detector = DriftDetector()
    drift = detector.detect(reference, current, model_id="churn-v2")

    # Through the agent lifecycle (never raises)
    result = detector.run(reference=reference, current=current, model_id="churn-v2")
    drift = result.data["drift_result"]
```
"""

from __future__ import annotations

import time
from dataclasses import asdict, dataclass
from typing import Any, Dict, List, Optional, Sequence, Tuple

import numpy as np
import pandas as pd
from loguru import logger

from agents.monitoring.attribution_engine import AttributionEngine, OutputFn
from agents.monitoring.statistical_tests import (
    StatTestFailure,
    calculate_psi,
    categorical_psi,
    distribution_shift,
    ks_test,
    psi_severity,
)
from config.settings import Settings, get_settings
from core.base_agent import AgentResult, BaseAgent
from core.dataset import Dataset
from core.exceptions import ConfigurationError, DimensionMismatchError, InsufficientSamplesError
from core.models import DriftResult, DriftType, FeatureDrift

# ═══════════════════════════════════════════════════════════════════════════
# Module Metadata
# ═══════════════════════════════════════════════════════════════════════════

__all__ = ["DriftConfig", "DriftDetector", "detect_drift", "as_dataset"]
__version__ = "1.0.0"
__author__ = "DriftFix Team"

# Numeric labels with more distinct values than this are binned like features
_MAX_LABEL_CLASSES = 20


def as_dataset(data: Any) -> Dataset:
    """Accept a Dataset, DataFrame or 2-D array."""
    if isinstance(data, Dataset):
        return data
    if isinstance(data, pd.DataFrame):
        return Dataset.from_frame(data)
    return Dataset.from_array(np.asarray(data, dtype=np.float64))


# ═══════════════════════════════════════════════════════════════════════════
# SECTION: Configuration
# ═══════════════════════════════════════════════════════════════════════════

@dataclass
class DriftConfig:
    """
    🎯 **Drift Detection Configuration**

    Statistical Testing:
        psi_bins: Reference-quantile bins for PSI (default: 10)
        psi_epsilon: Per-bin smoothing mass (default: 1e-4)
        alpha: KS significance level (default: 0.05)
        min_samples: Minimum finite values per side (default: 5)

    Thresholds:
        psi_moderate_threshold: Moderate PSI band (default: 0.10)
        psi_significant_threshold: Significant PSI band, feature drift flag
            and score normalizer (default: 0.25)
        covariate_score_threshold: Mean score for COVARIATE (default: 0.25)
        prior_psi_threshold: Label PSI for PRIOR (default: 0.25)
        concept_shift_delta: Importance shift for CONCEPT (default: 0.20)

    Behaviour:
        require_drifted_feature: COVARIATE also needs one drifted feature
        compute_attribution: Attach attribution ranking to results
    """

    # Statistical testing
    psi_bins: int = 10
    psi_epsilon: float = 1e-4
    alpha: float = 0.05
    min_samples: int = 5

    # Thresholds
    psi_moderate_threshold: float = 0.10
    psi_significant_threshold: float = 0.25
    covariate_score_threshold: float = 0.25
    prior_psi_threshold: float = 0.25
    concept_shift_delta: float = 0.20

    # Behaviour
    require_drifted_feature: bool = True
    compute_attribution: bool = True

    def __post_init__(self):
        """Validate configuration."""
        if not 0 < self.alpha < 1:
            raise ConfigurationError(f"alpha must be in (0, 1), got {self.alpha}")

        if self.psi_bins < 2:
            raise ConfigurationError(f"psi_bins must be >= 2, got {self.psi_bins}")

        if self.min_samples < 1:
            raise ConfigurationError(f"min_samples must be >= 1, got {self.min_samples}")

        if self.psi_significant_threshold <= 0:
            raise ConfigurationError("psi_significant_threshold must be > 0")

        if self.psi_moderate_threshold > self.psi_significant_threshold:
            raise ConfigurationError("psi_moderate_threshold must not exceed psi_significant_threshold")

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return asdict(self)

    @classmethod
    def from_settings(cls, settings: Optional[Settings] = None) -> "DriftConfig":
        """Build from environment-backed settings."""
        s = settings or get_settings()
        return cls(
            psi_bins=s.PSI_BINS,
            psi_epsilon=s.PSI_EPSILON,
            alpha=s.KS_ALPHA,
            min_samples=s.MIN_SAMPLES,
            psi_moderate_threshold=s.PSI_MODERATE_THRESHOLD,
            psi_significant_threshold=s.PSI_SIGNIFICANT_THRESHOLD,
            covariate_score_threshold=s.COVARIATE_SCORE_THRESHOLD,
            prior_psi_threshold=s.PRIOR_PSI_THRESHOLD,
            concept_shift_delta=s.CONCEPT_SHIFT_DELTA
        )

    @classmethod
    def create_strict(cls) -> "DriftConfig":
        """Create strict configuration (lower thresholds)."""
        return cls(
            psi_significant_threshold=0.20,
            covariate_score_threshold=0.20,
            prior_psi_threshold=0.20,
            concept_shift_delta=0.15
        )

    @classmethod
    def create_lenient(cls) -> "DriftConfig":
        """Create lenient configuration (higher thresholds)."""
        return cls(
            alpha=0.01,
            psi_significant_threshold=0.30,
            covariate_score_threshold=0.35,
            prior_psi_threshold=0.30,
            concept_shift_delta=0.30
        )


# ═══════════════════════════════════════════════════════════════════════════
# SECTION: Drift Detector
# ═══════════════════════════════════════════════════════════════════════════

class DriftDetector(BaseAgent):
    """
    🔍 **Statistical Drift Detector**

    Compares a reference dataset with current data feature by feature and
    classifies the drift event.
    """

    def __init__(
        self,
        config: Optional[DriftConfig] = None,
        attribution_engine: Optional[AttributionEngine] = None
    ):
        super().__init__(
            name="DriftDetector",
            description="PSI / KS drift detection with drift-type classification",
            version=__version__
        )
        self.config = config or DriftConfig.from_settings()
        self.attribution = attribution_engine or AttributionEngine()
        self._log = logger.bind(agent="DriftDetector", version=__version__)

    # ───────────────────────────────────────────────────────────────────
    # Agent Interface
    # ───────────────────────────────────────────────────────────────────

    def validate_input(self, **kwargs) -> bool:
        if kwargs.get("reference") is None or kwargs.get("current") is None:
            raise ValueError("'reference' and 'current' are required")
        return True

    def execute(
        self,
        reference: Any,
        current: Any,
        *,
        model_id: str = "default",
        reference_labels: Optional[Sequence[Any]] = None,
        current_labels: Optional[Sequence[Any]] = None,
        output_fn: Optional[OutputFn] = None,
        **kwargs: Any
    ) -> AgentResult:
        """Run ``detect`` and wrap the verdict into an AgentResult."""
        result = AgentResult(agent_name=self.name)

        drift = self.detect(
            reference,
            current,
            model_id=model_id,
            reference_labels=reference_labels,
            current_labels=current_labels,
            output_fn=output_fn
        )

        result.add_data(drift_result=drift)
        result.add_metadata(
            model_id=model_id,
            n_features=len(drift.feature_drifts),
            drift_type=drift.drift_type.value
        )
        for warning in drift.warnings:
            result.add_warning(warning)

        return result

    # ───────────────────────────────────────────────────────────────────
    # Main Detection
    # ───────────────────────────────────────────────────────────────────

    def detect(
        self,
        reference: Any,
        current: Any,
        *,
        model_id: str = "default",
        reference_labels: Optional[Sequence[Any]] = None,
        current_labels: Optional[Sequence[Any]] = None,
        output_fn: Optional[OutputFn] = None
    ) -> DriftResult:
        """
        🎯 **Detect Drift**

        Args:
            reference: Reference data (Dataset, DataFrame or 2-D array)
            current: Current data with the same feature order
            model_id: Identifier of the monitored model
            reference_labels: Optional reference labels (prior drift)
            current_labels: Optional current labels (prior drift)
            output_fn: Optional model scoring callable over a 2-D array

        Returns:
            DriftResult

        Raises:
            DimensionMismatchError: feature counts differ
        """
        t_start = time.perf_counter()
        ref = as_dataset(reference)
        cur = as_dataset(current)

        if ref.n_features != cur.n_features:
            raise DimensionMismatchError(
                "Reference and current feature counts differ",
                details={"reference": ref.n_features, "current": cur.n_features},
                context={"model_id": model_id}
            )

        self._log.info(
            f"🔍 Starting drift analysis | model={model_id} | "
            f"ref={ref.n_rows:,} rows | cur={cur.n_rows:,} rows | "
            f"features={ref.n_features}"
        )

        warnings: List[str] = []

        # ═══════════════════════════════════════════════════════════
        # STAGE 1: Per-Feature Drift
        # ═══════════════════════════════════════════════════════════

        feature_drifts: List[FeatureDrift] = []
        evaluated_scores: List[float] = []

        for j, name in enumerate(ref.column_names):
            fd, evaluated = self.evaluate_feature(name, j, ref.column(j), cur.column(j))
            feature_drifts.append(fd)
            if evaluated:
                evaluated_scores.append(fd.drift_score)
            elif fd.warning:
                warnings.append(fd.warning)

        # ═══════════════════════════════════════════════════════════
        # STAGE 2: Aggregate Score
        # ═══════════════════════════════════════════════════════════

        if evaluated_scores:
            drift_score = float(np.clip(np.mean(evaluated_scores), 0.0, 1.0))
        else:
            drift_score = 0.0
            warnings.append("No feature could be evaluated - overall drift score set to 0")

        # ═══════════════════════════════════════════════════════════
        # STAGE 3: Label (Prior) Drift
        # ═══════════════════════════════════════════════════════════

        label_psi: Optional[float] = None
        if reference_labels is not None and current_labels is not None:
            label_psi = self._label_psi(reference_labels, current_labels, warnings)

        # ═══════════════════════════════════════════════════════════
        # STAGE 4: Attribution
        # ═══════════════════════════════════════════════════════════

        attribution = None
        if self.config.compute_attribution:
            attribution = self.attribution.rank(
                feature_drifts,
                reference=ref.values if output_fn is not None else None,
                current=cur.values if output_fn is not None else None,
                output_fn=output_fn
            )

        # ═══════════════════════════════════════════════════════════
        # STAGE 5: Concept Signal (importance ranking shift)
        # ═══════════════════════════════════════════════════════════

        importance_shift = self._importance_shift(
            ref, cur, reference_labels, current_labels, output_fn, warnings
        )

        # ═══════════════════════════════════════════════════════════
        # STAGE 6: Classification
        # ═══════════════════════════════════════════════════════════

        drift_type = self.classify(
            drift_score=drift_score,
            any_feature_drifted=any(fd.is_drifted for fd in feature_drifts),
            label_psi=label_psi,
            importance_shift=importance_shift
        )

        result = DriftResult(
            model_id=model_id,
            drift_type=drift_type,
            drift_score=drift_score,
            is_drift_detected=drift_type != DriftType.NONE,
            feature_drifts=feature_drifts,
            attribution=attribution,
            label_psi=label_psi,
            importance_shift=importance_shift,
            warnings=warnings
        )

        elapsed = time.perf_counter() - t_start
        n_drifted = len(result.drifted_features())
        if result.is_drift_detected:
            self._log.warning(
                f"⚠ Drift detected | type={drift_type.value} | score={drift_score:.3f} | "
                f"drifted={n_drifted}/{len(feature_drifts)} | {elapsed:.2f}s"
            )
        else:
            self._log.success(
                f"✓ No drift | score={drift_score:.3f} | "
                f"drifted={n_drifted}/{len(feature_drifts)} | {elapsed:.2f}s"
            )

        return result

    # ───────────────────────────────────────────────────────────────────
    # Feature Level
    # ───────────────────────────────────────────────────────────────────

    def evaluate_feature(
        self,
        name: str,
        index: int,
        reference: np.ndarray,
        current: np.ndarray
    ) -> Tuple[FeatureDrift, bool]:
        """
        PSI + KS for one feature.

        Returns:
            (FeatureDrift, evaluated) - ``evaluated`` is False for degenerate
            columns, which carry a warning instead of statistics.
        """
        cfg = self.config

        try:
            psi = calculate_psi(
                reference, current,
                bins=cfg.psi_bins,
                epsilon=cfg.psi_epsilon,
                min_samples=cfg.min_samples
            )
            ks = ks_test(reference, current, min_samples=cfg.min_samples)
        except InsufficientSamplesError as e:
            return self._degraded(name, index, f"{name}: {e.message} ({e.details})"), False

        failure = psi if isinstance(psi, StatTestFailure) else ks
        if isinstance(failure, StatTestFailure):
            return self._degraded(name, index, f"{name}: {failure}"), False

        is_drifted = psi.psi > cfg.psi_significant_threshold or ks.p_value < cfg.alpha

        fd = FeatureDrift(
            feature_name=name,
            feature_index=index,
            psi_score=psi.psi,
            ks_statistic=ks.statistic,
            p_value=ks.p_value,
            drift_score=self.normalized_score(psi.psi, ks.p_value),
            is_drifted=is_drifted,
            severity=psi_severity(
                psi.psi,
                moderate=cfg.psi_moderate_threshold,
                significant=cfg.psi_significant_threshold
            ),
            distribution_shift=distribution_shift(reference, current)
        )

        if is_drifted:
            self._log.debug(
                f"  {name}: psi={psi.psi:.3f} D={ks.statistic:.3f} p={ks.p_value:.4f} "
                f"score={fd.drift_score:.3f}"
            )

        return fd, True

    def normalized_score(self, psi: float, p_value: float) -> float:
        """0.5 · min(psi / psi_significant, 1) + 0.5 · (1 − p), in [0, 1]."""
        psi_part = min(psi / self.config.psi_significant_threshold, 1.0)
        score = 0.5 * psi_part + 0.5 * (1.0 - p_value)
        return float(np.clip(score, 0.0, 1.0))

    def _degraded(self, name: str, index: int, warning: str) -> FeatureDrift:
        self._log.warning(f"⚠ Feature skipped | {warning}")
        return FeatureDrift(
            feature_name=name,
            feature_index=index,
            psi_score=0.0,
            ks_statistic=0.0,
            p_value=1.0,
            drift_score=0.0,
            is_drifted=False,
            warning=warning
        )

    # ───────────────────────────────────────────────────────────────────
    # Classification
    # ───────────────────────────────────────────────────────────────────

    def classify(
        self,
        *,
        drift_score: float,
        any_feature_drifted: bool,
        label_psi: Optional[float] = None,
        importance_shift: Optional[float] = None
    ) -> DriftType:
        cfg = self.config

        if label_psi is not None and label_psi > cfg.prior_psi_threshold:
            return DriftType.PRIOR

        if drift_score > cfg.covariate_score_threshold and (
            any_feature_drifted or not cfg.require_drifted_feature
        ):
            return DriftType.COVARIATE

        if importance_shift is not None and importance_shift > cfg.concept_shift_delta:
            return DriftType.CONCEPT

        return DriftType.NONE

    def _label_psi(
        self,
        reference_labels: Sequence[Any],
        current_labels: Sequence[Any],
        warnings: List[str]
    ) -> Optional[float]:
        ref = pd.Series(np.asarray(reference_labels, dtype=object).ravel())
        cur = pd.Series(np.asarray(current_labels, dtype=object).ravel())

        ref_num = pd.to_numeric(ref, errors="coerce")
        cur_num = pd.to_numeric(cur, errors="coerce")
        continuous = (
            ref_num.notna().all() and cur_num.notna().all()
            and pd.concat([ref_num, cur_num]).nunique() > _MAX_LABEL_CLASSES
        )

        try:
            if continuous:
                res = calculate_psi(
                    ref_num.to_numpy(), cur_num.to_numpy(),
                    bins=self.config.psi_bins,
                    epsilon=self.config.psi_epsilon,
                    min_samples=self.config.min_samples
                )
            else:
                res = categorical_psi(ref, cur, epsilon=self.config.psi_epsilon)
        except InsufficientSamplesError as e:
            warnings.append(f"labels: {e.message}")
            return None

        if isinstance(res, StatTestFailure):
            warnings.append(f"labels: {res}")
            return None

        self._log.info(f"🏷 Label PSI = {res.psi:.4f}")
        return res.psi

    def _importance_shift(
        self,
        ref: Dataset,
        cur: Dataset,
        reference_labels: Optional[Sequence[Any]],
        current_labels: Optional[Sequence[Any]],
        output_fn: Optional[OutputFn],
        warnings: List[str]
    ) -> Optional[float]:
        ref_target: Optional[Sequence[Any]] = None
        cur_target: Optional[Sequence[Any]] = None

        if reference_labels is not None and current_labels is not None:
            ref_target, cur_target = reference_labels, current_labels
        elif output_fn is not None:
            try:
                ref_target = np.asarray(output_fn(ref.values), dtype=np.float64).ravel()
                cur_target = np.asarray(output_fn(cur.values), dtype=np.float64).ravel()
            except Exception as e:
                warnings.append(f"Concept check skipped, output_fn failed: {e}")
                return None

        if ref_target is None or cur_target is None:
            return None

        shift = self.attribution.importance_shift(ref.values, cur.values, ref_target, cur_target)
        if shift is not None:
            self._log.debug(f"Importance ranking shift = {shift:.4f}")
        return shift


# ═══════════════════════════════════════════════════════════════════════════
# SECTION: Convenience Function
# ═══════════════════════════════════════════════════════════════════════════

def detect_drift(
    reference: Any,
    current: Any,
    *,
    config: Optional[DriftConfig] = None,
    **kwargs: Any
) -> DriftResult:
    """
    🚀 **Convenience Function: Detect Drift**

    Example:
```python
        drift = detect_drift(train_df, live_df, model_id="churn-v2")
        print(drift.drift_type, drift.drift_score)
```
    """
    return DriftDetector(config).detect(reference, current, **kwargs)
