# core/models.py
"""
╔════════════════════════════════════════════════════════════════════════════╗
║  DriftFix PRO - Records v1.0                                              ║
║  ─────────────────────────────────────────────────────────────────────────  ║
║  ✓ Drift Records (FeatureDrift, DriftResult, FeatureAttribution)         ║
║  ✓ Patch Configuration Tagged Union (7 variants)                         ║
║  ✓ Patch Candidate / Validation Result / Patch / Snapshot                ║
║  ✓ Pipeline Report                                                       ║
╚════════════════════════════════════════════════════════════════════════════╝

Every record is a plain pydantic model: serializable with ``model_dump()`` /
``model_dump_json()`` and free of behavior beyond read-only helpers. Records
produced by the engine are frozen; ``Patch`` is the single mutable record and
is only mutated by ``PatchEngine`` and the orchestrator.

Patch lifecycle:
```
    CREATED ──validate──► VALIDATED ──apply──► APPLIED ──rollback──► ROLLED_BACK
        │                     │
        └──────► FAILED ◄─────┘   (FAILED / ROLLED_BACK are terminal)
```
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from datetime import datetime, timezone
from enum import Enum
from typing import Annotated, Any, ClassVar, Dict, List, Literal, Optional, Tuple, Union
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

# ═══════════════════════════════════════════════════════════════════════════
# Module Metadata
# ═══════════════════════════════════════════════════════════════════════════

__version__ = "1.0.0"
__author__ = "DriftFix Team"

__all__ = [
    # Enums
    "DriftType",
    "PsiSeverity",
    "PatchType",
    "PatchPriority",
    "PatchStatus",
    "AcceptanceTier",
    # Drift records
    "DistributionShift",
    "FeatureDrift",
    "FeatureAttribution",
    "DriftResult",
    # Patch configuration
    "Clipping",
    "Reweighting",
    "ThresholdTuning",
    "NormalizationReset",
    "OutlierElimination",
    "DistributionMatch",
    "Standardization",
    "PatchConfiguration",
    # Patch records
    "PatchCandidate",
    "ValidationMetrics",
    "ValidationResult",
    "Patch",
    "PatchSnapshot",
    "PipelineReport",
]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _new_id() -> str:
    return str(uuid4())


Bounds = Tuple[float, float]
MeanStd = Tuple[float, float]


# ═══════════════════════════════════════════════════════════════════════════
# Enums
# ═══════════════════════════════════════════════════════════════════════════

class DriftType(str, Enum):
    NONE = "NONE"
    COVARIATE = "COVARIATE"
    CONCEPT = "CONCEPT"
    PRIOR = "PRIOR"


class PsiSeverity(str, Enum):
    """PSI interpretation bands."""
    NONE = "none"
    MODERATE = "moderate"
    SIGNIFICANT = "significant"


class PatchType(str, Enum):
    CLIPPING = "CLIPPING"
    REWEIGHTING = "REWEIGHTING"
    THRESHOLD_TUNING = "THRESHOLD_TUNING"
    NORMALIZATION_RESET = "NORMALIZATION_RESET"
    OUTLIER_ELIMINATION = "OUTLIER_ELIMINATION"
    DISTRIBUTION_MATCH = "DISTRIBUTION_MATCH"
    STANDARDIZATION = "STANDARDIZATION"


class PatchPriority(str, Enum):
    """Apply order: PRIMARY → SECONDARY → EMERGENCY → ULTRA_AGGRESSIVE."""
    PRIMARY = "PRIMARY"
    SECONDARY = "SECONDARY"
    EMERGENCY = "EMERGENCY"
    ULTRA_AGGRESSIVE = "ULTRA_AGGRESSIVE"

    @property
    def rank(self) -> int:
        return _PRIORITY_RANK[self]


_PRIORITY_RANK = {
    PatchPriority.PRIMARY: 0,
    PatchPriority.SECONDARY: 1,
    PatchPriority.EMERGENCY: 2,
    PatchPriority.ULTRA_AGGRESSIVE: 3,
}


class PatchStatus(str, Enum):
    CREATED = "CREATED"
    VALIDATED = "VALIDATED"
    FAILED = "FAILED"
    APPLIED = "APPLIED"
    ROLLED_BACK = "ROLLED_BACK"


class AcceptanceTier(str, Enum):
    """Acceptance tiers, best first."""
    STANDARD = "STANDARD"
    MINIMAL_IMPROVEMENT = "MINIMAL_IMPROVEMENT"
    NO_EFFECT = "NO_EFFECT"
    REJECTED = "REJECTED"

    @property
    def rank(self) -> int:
        """0 is best."""
        return _TIER_RANK[self]


_TIER_RANK = {
    AcceptanceTier.STANDARD: 0,
    AcceptanceTier.MINIMAL_IMPROVEMENT: 1,
    AcceptanceTier.NO_EFFECT: 2,
    AcceptanceTier.REJECTED: 3,
}


class _Record(BaseModel):
    model_config = ConfigDict(frozen=True, protected_namespaces=())


# ═══════════════════════════════════════════════════════════════════════════
# Drift Records
# ═══════════════════════════════════════════════════════════════════════════

class DistributionShift(_Record):
    """Summary moments of one feature on both sides."""
    reference_mean: float
    current_mean: float
    reference_std: float
    current_std: float
    reference_min: float
    current_min: float
    reference_max: float
    current_max: float
    reference_median: float
    current_median: float

    @property
    def mean_shift(self) -> float:
        return self.current_mean - self.reference_mean


class FeatureDrift(_Record):
    feature_name: str
    feature_index: int
    psi_score: float = Field(ge=0.0)
    ks_statistic: float = Field(ge=0.0, le=1.0)
    p_value: float = Field(ge=0.0, le=1.0)
    drift_score: float = Field(ge=0.0, le=1.0)
    is_drifted: bool
    severity: PsiSeverity = PsiSeverity.NONE
    distribution_shift: Optional[DistributionShift] = None
    warning: Optional[str] = None


class FeatureAttribution(_Record):
    feature_name: str
    feature_index: int
    contribution: float = Field(ge=0.0)


class DriftResult(_Record):
    """
    🎯 **Drift verdict for one (reference, current) comparison.**

    ``is_drift_detected`` always equals ``drift_type != NONE``.
    """

    id: str = Field(default_factory=_new_id)
    model_id: str
    timestamp: datetime = Field(default_factory=_utcnow)
    drift_type: DriftType
    drift_score: float = Field(ge=0.0, le=1.0)
    is_drift_detected: bool
    feature_drifts: List[FeatureDrift] = Field(default_factory=list)
    attribution: Optional[List[FeatureAttribution]] = None
    label_psi: Optional[float] = None
    importance_shift: Optional[float] = None
    warnings: List[str] = Field(default_factory=list)

    @model_validator(mode="after")
    def _check_detection_flag(self) -> "DriftResult":
        if self.is_drift_detected != (self.drift_type != DriftType.NONE):
            raise ValueError("is_drift_detected must equal (drift_type != NONE)")
        return self

    def drifted_features(self) -> List[FeatureDrift]:
        return [fd for fd in self.feature_drifts if fd.is_drifted]

    def feature(self, index: int) -> Optional[FeatureDrift]:
        for fd in self.feature_drifts:
            if fd.feature_index == index:
                return fd
        return None


# ═══════════════════════════════════════════════════════════════════════════
# Patch Configuration (tagged union)
# ═══════════════════════════════════════════════════════════════════════════

class _ConfigBase(_Record, ABC):
    patch_type: ClassVar[PatchType]

    @abstractmethod
    def touched_features(self) -> List[int]:
        """Feature indices whose live configuration this patch mutates."""

    @property
    def touches_threshold(self) -> bool:
        return False


class Clipping(_ConfigBase):
    """Clamp each listed feature into ``[low, high]``."""
    patch_type: ClassVar[PatchType] = PatchType.CLIPPING
    kind: Literal["clipping"] = "clipping"
    per_feature_bounds: Dict[int, Bounds]

    @field_validator("per_feature_bounds")
    @classmethod
    def _ordered(cls, v: Dict[int, Bounds]) -> Dict[int, Bounds]:
        for idx, (low, high) in v.items():
            if low > high:
                raise ValueError(f"feature {idx}: low {low} > high {high}")
        return v

    def touched_features(self) -> List[int]:
        return sorted(self.per_feature_bounds)


class Reweighting(_ConfigBase):
    """Multiplicative down-weight of a feature's influence on the decision."""
    patch_type: ClassVar[PatchType] = PatchType.REWEIGHTING
    kind: Literal["reweighting"] = "reweighting"
    per_feature_weight: Dict[int, float]

    @field_validator("per_feature_weight")
    @classmethod
    def _positive(cls, v: Dict[int, float]) -> Dict[int, float]:
        for idx, w in v.items():
            if w <= 0:
                raise ValueError(f"feature {idx}: weight must be > 0, got {w}")
        return v

    def touched_features(self) -> List[int]:
        return sorted(self.per_feature_weight)


class ThresholdTuning(_ConfigBase):
    """Shift of the decision threshold by ``delta``."""
    patch_type: ClassVar[PatchType] = PatchType.THRESHOLD_TUNING
    kind: Literal["threshold_tuning"] = "threshold_tuning"
    delta: float
    base_threshold: float = 0.5

    def touched_features(self) -> List[int]:
        return []

    @property
    def touches_threshold(self) -> bool:
        return True

    @property
    def target_threshold(self) -> float:
        return self.base_threshold + self.delta


class NormalizationReset(_ConfigBase):
    """
    Re-map each feature from its observed (source) moments onto the
    reference (target) moments: ``(x - μ_src) / σ_src · σ_tgt + μ_tgt``.
    """
    patch_type: ClassVar[PatchType] = PatchType.NORMALIZATION_RESET
    kind: Literal["normalization_reset"] = "normalization_reset"
    per_feature_mean_std: Dict[int, MeanStd]
    source_mean_std: Dict[int, MeanStd] = Field(default_factory=dict)

    def touched_features(self) -> List[int]:
        return sorted(self.per_feature_mean_std)


class OutlierElimination(_ConfigBase):
    """Clamp values beyond reference ``mean ± sigma·std``."""
    patch_type: ClassVar[PatchType] = PatchType.OUTLIER_ELIMINATION
    kind: Literal["outlier_elimination"] = "outlier_elimination"
    per_feature_bounds: Dict[int, Bounds]
    sigma: float = 2.0

    def touched_features(self) -> List[int]:
        return sorted(self.per_feature_bounds)


class DistributionMatch(_ConfigBase):
    """Force the transformed batch's per-feature mean/std onto the targets."""
    patch_type: ClassVar[PatchType] = PatchType.DISTRIBUTION_MATCH
    kind: Literal["distribution_match"] = "distribution_match"
    per_feature_mean_std: Dict[int, MeanStd]

    def touched_features(self) -> List[int]:
        return sorted(self.per_feature_mean_std)


class Standardization(_ConfigBase):
    """
    Zero-mean / unit-variance per batch. ``pipeline_wide`` means the step is
    installed for every input of the model, reference included.
    """
    patch_type: ClassVar[PatchType] = PatchType.STANDARDIZATION
    kind: Literal["standardization"] = "standardization"
    features: List[int]
    pipeline_wide: bool = True

    def touched_features(self) -> List[int]:
        return sorted(self.features)


PatchConfiguration = Annotated[
    Union[
        Clipping,
        Reweighting,
        ThresholdTuning,
        NormalizationReset,
        OutlierElimination,
        DistributionMatch,
        Standardization,
    ],
    Field(discriminator="kind"),
]


# ═══════════════════════════════════════════════════════════════════════════
# Patch Records
# ═══════════════════════════════════════════════════════════════════════════

class PatchCandidate(_Record):
    id: str = Field(default_factory=_new_id)
    drift_result_id: str
    model_id: str
    type: PatchType
    priority: PatchPriority
    configuration: PatchConfiguration
    estimated_safety_score: float = Field(ge=0.0, le=1.0)
    estimated_drift_reduction: float = Field(ge=0.0, le=1.0)
    metadata: Dict[str, Any] = Field(default_factory=dict)
    created_at: datetime = Field(default_factory=_utcnow)

    @model_validator(mode="after")
    def _type_matches_configuration(self) -> "PatchCandidate":
        if self.configuration.patch_type != self.type:
            raise ValueError(
                f"type {self.type.value} does not match configuration "
                f"{self.configuration.patch_type.value}"
            )
        return self

    @property
    def is_ultra_aggressive(self) -> bool:
        return self.priority == PatchPriority.ULTRA_AGGRESSIVE


class ValidationMetrics(_Record):
    accuracy: float
    safety_score: float
    f1: float
    drift_reduction: float
    performance_delta: float = 0.0
    pre_drift_score: Optional[float] = None
    post_drift_score: Optional[float] = None
    confidence_interval: Optional[Tuple[float, float]] = None
    sample_size: int = 0


class ValidationResult(_Record):
    patch_id: str
    is_valid: bool
    metrics: ValidationMetrics
    acceptance_tier: AcceptanceTier
    errors: List[str] = Field(default_factory=list)
    warnings: List[str] = Field(default_factory=list)
    fast_tracked: bool = False
    validated_at: datetime = Field(default_factory=_utcnow)

    @model_validator(mode="after")
    def _validity_follows_tier(self) -> "ValidationResult":
        if self.is_valid != (self.acceptance_tier != AcceptanceTier.REJECTED):
            raise ValueError("is_valid must equal (acceptance_tier != REJECTED)")
        return self


class Patch(BaseModel):
    """
    🩹 **Patch**

    Mutable lifecycle record built from a ``PatchCandidate``. Only the
    engine and the orchestrator change ``status`` and the timestamps.
    """

    model_config = ConfigDict(validate_assignment=True, protected_namespaces=())

    id: str
    model_id: str
    drift_result_id: str
    type: PatchType
    priority: PatchPriority
    configuration: PatchConfiguration
    validation_result: Optional[ValidationResult] = None
    status: PatchStatus = PatchStatus.CREATED
    created_at: datetime = Field(default_factory=_utcnow)
    applied_at: Optional[datetime] = None
    rolled_back_at: Optional[datetime] = None
    failure_reason: Optional[str] = None

    @classmethod
    def from_candidate(cls, candidate: PatchCandidate) -> "Patch":
        return cls(
            id=candidate.id,
            model_id=candidate.model_id,
            drift_result_id=candidate.drift_result_id,
            type=candidate.type,
            priority=candidate.priority,
            configuration=candidate.configuration,
        )


class PatchSnapshot(_Record):
    """Copy of the live-configuration entries a patch is about to mutate."""
    patch_id: str
    pre_apply_state: Dict[str, Any]
    timestamp: datetime = Field(default_factory=_utcnow)


class PipelineReport(BaseModel):
    """Structured outcome of one drift-event pipeline run."""

    model_config = ConfigDict(protected_namespaces=())

    run_id: str = Field(default_factory=lambda: uuid4().hex)
    model_id: str
    status: Literal["success", "partial", "failed", "cancelled"] = "success"
    drift_result: Optional[DriftResult] = None
    candidates: List[PatchCandidate] = Field(default_factory=list)
    validation_results: List[ValidationResult] = Field(default_factory=list)
    patches: List[Patch] = Field(default_factory=list)
    applied_patch_ids: List[str] = Field(default_factory=list)
    warnings: List[str] = Field(default_factory=list)
    errors: List[str] = Field(default_factory=list)
    started_at: datetime = Field(default_factory=_utcnow)
    finished_at: Optional[datetime] = None
