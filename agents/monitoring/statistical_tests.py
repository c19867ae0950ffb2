# agents/monitoring/statistical_tests.py
"""
╔════════════════════════════════════════════════════════════════════════════╗
║  DriftFix PRO - Statistical Tests v1.0                                    ║
║  ─────────────────────────────────────────────────────────────────────────  ║
║  ✓ PSI (Population Stability Index) on reference deciles                 ║
║  ✓ Categorical PSI for label / prior drift                               ║
║  ✓ Two-sample KS with Kolmogorov asymptotic p-value                      ║
║  ✓ Distribution shift summary (mean / std / min / max / median)          ║
║  ✓ Typed failures for degenerate samples                                 ║
╚════════════════════════════════════════════════════════════════════════════╝

PSI:
    1. Bin edges are the reference quantiles (deciles by default). When the
       reference has fewer distinct values than bins, the bin count drops to
       the number of distinct values (never below 2). The outer bins are
       open so current values outside the reference range are counted.
    2. Bin fractions are smoothed with ε (1e-4) and renormalized.
    3. PSI = Σ (cur − ref) · ln(cur / ref)

    Bands: < 0.10 none │ 0.10 – 0.25 moderate │ > 0.25 significant

KS:
    D  = max |ECDF_ref − ECDF_cur| over the pooled support
    nₑ = n_ref · n_cur / (n_ref + n_cur)
    λ  = (√nₑ + 0.12 + 0.11 / √nₑ) · D
    p  = Q_KS(λ)      (Kolmogorov survival function)

Failure semantics:
    • NaN / ±inf are filtered first
    • an empty sample after filtering → ``StatTestFailure`` (returned)
    • a sample smaller than ``min_samples`` → ``InsufficientSamplesError`` (raised)

Usage:
```python
    from agents.monitoring.statistical_tests import calculate_psi, ks_test

    psi = calculate_psi(reference, current)
    if isinstance(psi, StatTestFailure):
        ...
    ks = ks_test(reference, current)
    print(psi.psi, ks.p_value)
```
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Optional, Sequence, Union

import numpy as np
import pandas as pd
from scipy.special import kolmogorov
from scipy.stats import ks_2samp

from core.exceptions import InsufficientSamplesError, safe_execute
from core.models import DistributionShift, PsiSeverity

# ═══════════════════════════════════════════════════════════════════════════
# Module Metadata
# ═══════════════════════════════════════════════════════════════════════════

__all__ = [
    "StatTestFailure",
    "PSIResult",
    "KSResult",
    "finite_values",
    "calculate_psi",
    "categorical_psi",
    "ks_test",
    "kolmogorov_pvalue",
    "psi_severity",
    "distribution_shift",
]
__version__ = "1.0.0"
__author__ = "DriftFix Team"

DEFAULT_BINS = 10
DEFAULT_EPSILON = 1e-4
DEFAULT_MIN_SAMPLES = 5


# ═══════════════════════════════════════════════════════════════════════════
# SECTION: Result Types
# ═══════════════════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class StatTestFailure:
    """Degenerate input for a statistical test. Returned, never raised."""

    test: str
    reason: str
    n_reference: int
    n_current: int

    def __str__(self) -> str:
        return (
            f"{self.test} failed: {self.reason} "
            f"(n_ref={self.n_reference}, n_cur={self.n_current})"
        )


@dataclass(frozen=True)
class PSIResult:
    psi: float
    bins: int
    reference_pct: np.ndarray
    current_pct: np.ndarray
    edges: np.ndarray

    @property
    def severity(self) -> PsiSeverity:
        return psi_severity(self.psi)


@dataclass(frozen=True)
class KSResult:
    statistic: float
    p_value: float
    n_effective: float

    def is_significant(self, alpha: float = 0.05) -> bool:
        return self.p_value < alpha


# ═══════════════════════════════════════════════════════════════════════════
# SECTION: Sample Screening
# ═══════════════════════════════════════════════════════════════════════════

def finite_values(sample: Union[Sequence[float], np.ndarray, pd.Series]) -> np.ndarray:
    """Return the sample as float64 with NaN / ±inf removed."""
    arr = np.asarray(sample, dtype=np.float64).ravel()
    return arr[np.isfinite(arr)]


def _screen(
    test: str,
    ref: np.ndarray,
    cur: np.ndarray,
    min_samples: int
) -> Optional[StatTestFailure]:
    if ref.size == 0 or cur.size == 0:
        side = "reference" if ref.size == 0 else "current"
        return StatTestFailure(
            test=test,
            reason=f"{side} sample is empty after NaN/inf filtering",
            n_reference=int(ref.size),
            n_current=int(cur.size)
        )

    if ref.size < min_samples or cur.size < min_samples:
        raise InsufficientSamplesError(
            f"{test} needs at least {min_samples} samples per side",
            details={
                "n_reference": int(ref.size),
                "n_current": int(cur.size),
                "min_samples": min_samples
            }
        )

    return None


def _smoothed(counts: np.ndarray, epsilon: float) -> np.ndarray:
    pct = counts / max(1, counts.sum())
    pct = pct + epsilon
    return pct / pct.sum()


def _psi_from_pct(ref_pct: np.ndarray, cur_pct: np.ndarray) -> float:
    return max(0.0, float(np.sum((cur_pct - ref_pct) * np.log(cur_pct / ref_pct))))


# ═══════════════════════════════════════════════════════════════════════════
# SECTION: PSI
# ═══════════════════════════════════════════════════════════════════════════

def calculate_psi(
    reference: Union[Sequence[float], np.ndarray],
    current: Union[Sequence[float], np.ndarray],
    *,
    bins: int = DEFAULT_BINS,
    epsilon: float = DEFAULT_EPSILON,
    min_samples: int = DEFAULT_MIN_SAMPLES
) -> Union[PSIResult, StatTestFailure]:
    """
    Population Stability Index of ``current`` against ``reference``.

    Args:
        reference: Reference sample (defines the bins)
        current: Current sample
        bins: Target bin count (deciles by default)
        epsilon: Per-bin smoothing mass
        min_samples: Minimum finite values per side

    Returns:
        PSIResult, or StatTestFailure for an empty side

    Raises:
        InsufficientSamplesError: a side has fewer than ``min_samples`` values
    """
    ref = finite_values(reference)
    cur = finite_values(current)

    failure = _screen("psi", ref, cur, min_samples)
    if failure is not None:
        return failure

    n_distinct = int(np.unique(ref).size)
    n_bins = bins if n_distinct >= bins else max(2, n_distinct)

    # Interior edges only; outer bins are open-ended
    quantiles = np.linspace(0.0, 1.0, n_bins + 1)[1:-1]
    interior = np.unique(np.quantile(ref, quantiles))
    total_bins = interior.size + 1

    ref_counts = np.bincount(np.searchsorted(interior, ref, side="right"), minlength=total_bins)
    cur_counts = np.bincount(np.searchsorted(interior, cur, side="right"), minlength=total_bins)

    ref_pct = _smoothed(ref_counts.astype(np.float64), epsilon)
    cur_pct = _smoothed(cur_counts.astype(np.float64), epsilon)

    return PSIResult(
        psi=_psi_from_pct(ref_pct, cur_pct),
        bins=total_bins,
        reference_pct=ref_pct,
        current_pct=cur_pct,
        edges=interior
    )


def categorical_psi(
    reference: Sequence[Any],
    current: Sequence[Any],
    *,
    epsilon: float = DEFAULT_EPSILON,
    min_samples: int = 1
) -> Union[PSIResult, StatTestFailure]:
    """
    PSI over discrete values (class labels). Bins are the union of the
    classes observed on either side.
    """
    ref = pd.Series(np.asarray(reference, dtype=object).ravel()).dropna()
    cur = pd.Series(np.asarray(current, dtype=object).ravel()).dropna()

    if ref.empty or cur.empty:
        side = "reference" if ref.empty else "current"
        return StatTestFailure(
            test="categorical_psi",
            reason=f"{side} labels are empty",
            n_reference=int(ref.size),
            n_current=int(cur.size)
        )

    if ref.size < min_samples or cur.size < min_samples:
        raise InsufficientSamplesError(
            f"categorical_psi needs at least {min_samples} labels per side",
            details={"n_reference": int(ref.size), "n_current": int(cur.size)}
        )

    classes = pd.Index(pd.concat([ref, cur]).unique())
    ref_counts = ref.value_counts().reindex(classes, fill_value=0).to_numpy(dtype=np.float64)
    cur_counts = cur.value_counts().reindex(classes, fill_value=0).to_numpy(dtype=np.float64)

    ref_pct = _smoothed(ref_counts, epsilon)
    cur_pct = _smoothed(cur_counts, epsilon)

    return PSIResult(
        psi=_psi_from_pct(ref_pct, cur_pct),
        bins=int(classes.size),
        reference_pct=ref_pct,
        current_pct=cur_pct,
        edges=np.asarray(classes, dtype=object)
    )


def psi_severity(
    psi: float,
    *,
    moderate: float = 0.10,
    significant: float = 0.25
) -> PsiSeverity:
    """Map a PSI value onto its interpretation band."""
    if psi > significant:
        return PsiSeverity.SIGNIFICANT
    if psi >= moderate:
        return PsiSeverity.MODERATE
    return PsiSeverity.NONE


# ═══════════════════════════════════════════════════════════════════════════
# SECTION: Kolmogorov-Smirnov
# ═══════════════════════════════════════════════════════════════════════════

def kolmogorov_pvalue(statistic: float, n_reference: int, n_current: int) -> float:
    """Asymptotic two-sample p-value with Stephens' small-sample correction."""
    n_eff = n_reference * n_current / float(n_reference + n_current)
    root = np.sqrt(n_eff)
    lam = (root + 0.12 + 0.11 / root) * statistic
    return float(np.clip(kolmogorov(lam), 0.0, 1.0))


def ks_test(
    reference: Union[Sequence[float], np.ndarray],
    current: Union[Sequence[float], np.ndarray],
    *,
    min_samples: int = DEFAULT_MIN_SAMPLES
) -> Union[KSResult, StatTestFailure]:
    """
    Two-sample Kolmogorov-Smirnov test.

    Returns:
        KSResult, or StatTestFailure for an empty side

    Raises:
        InsufficientSamplesError: a side has fewer than ``min_samples`` values
    """
    ref = finite_values(reference)
    cur = finite_values(current)

    failure = _screen("ks", ref, cur, min_samples)
    if failure is not None:
        return failure

    ks = safe_execute(ks_2samp, ref, cur, error_message="KS statistic computation failed")
    statistic = float(np.clip(ks.statistic, 0.0, 1.0))
    n_eff = ref.size * cur.size / float(ref.size + cur.size)

    return KSResult(
        statistic=statistic,
        p_value=kolmogorov_pvalue(statistic, ref.size, cur.size),
        n_effective=n_eff
    )


# ═══════════════════════════════════════════════════════════════════════════
# SECTION: Distribution Summary
# ═══════════════════════════════════════════════════════════════════════════

def distribution_shift(
    reference: Union[Sequence[float], np.ndarray],
    current: Union[Sequence[float], np.ndarray]
) -> Optional[DistributionShift]:
    """Moments of both samples, or None when either side has no finite values."""
    ref = finite_values(reference)
    cur = finite_values(current)

    if ref.size == 0 or cur.size == 0:
        return None

    return DistributionShift(
        reference_mean=float(np.mean(ref)),
        current_mean=float(np.mean(cur)),
        reference_std=float(np.std(ref)),
        current_std=float(np.std(cur)),
        reference_min=float(np.min(ref)),
        current_min=float(np.min(cur)),
        reference_max=float(np.max(ref)),
        current_max=float(np.max(cur)),
        reference_median=float(np.median(ref)),
        current_median=float(np.median(cur)),
    )
