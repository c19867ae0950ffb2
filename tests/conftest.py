"""
DriftFix PRO - Pytest Configuration
Shared fixtures and configuration for all tests
"""

import os
import sys
from pathlib import Path

import numpy as np
import pandas as pd
import pytest
from scipy.stats import norm

# Add project root to path
ROOT_DIR = Path(__file__).parent.parent
sys.path.insert(0, str(ROOT_DIR))

os.environ.setdefault("TEST_MODE", "true")

from core.dataset import Dataset  # noqa: E402
from core.models import (  # noqa: E402
    AcceptanceTier,
    DriftResult,
    DriftType,
    FeatureAttribution,
    FeatureDrift,
    Patch,
    PatchCandidate,
    PatchPriority,
    PatchStatus,
    ValidationMetrics,
    ValidationResult,
)


# ==================== DATA HELPERS ====================

def stratified_normal(rng, n, n_features=1, loc=0.0, scale=1.0):
    """
    Normal sample with one draw per probability stratum, rows shuffled.

    Two such samples from the same distribution have near-identical ECDFs,
    which keeps same-distribution checks free of sampling luck.
    """
    cols = []
    for _ in range(n_features):
        u = (np.arange(n) + rng.uniform(size=n)) / n
        cols.append(rng.permutation(norm.ppf(u) * scale + loc))
    return np.column_stack(cols)


def make_drift_result(
    drift_type=DriftType.COVARIATE,
    score=0.8,
    feature_scores=(0.8,),
    drifted=None,
    attribution=None,
    model_id="model-a",
):
    """DriftResult with hand-picked per-feature scores."""
    if drifted is None:
        drifted = [s > 0.5 for s in feature_scores]
    feature_drifts = [
        FeatureDrift(
            feature_name=f"feature_{i}",
            feature_index=i,
            psi_score=s,
            ks_statistic=min(1.0, s),
            p_value=1.0 - s,
            drift_score=s,
            is_drifted=d,
        )
        for i, (s, d) in enumerate(zip(feature_scores, drifted))
    ]
    if attribution is not None:
        attribution = [
            FeatureAttribution(feature_name=f"feature_{i}", feature_index=i, contribution=c)
            for i, c in attribution
        ]
    return DriftResult(
        model_id=model_id,
        drift_type=drift_type,
        drift_score=score,
        is_drift_detected=drift_type != DriftType.NONE,
        feature_drifts=feature_drifts,
        attribution=attribution,
    )


def make_validated_patch(configuration, model_id="model-a", priority=PatchPriority.PRIMARY):
    """VALIDATED patch with a passing STANDARD validation result."""
    candidate = PatchCandidate(
        drift_result_id="drift-1",
        model_id=model_id,
        type=configuration.patch_type,
        priority=priority,
        configuration=configuration,
        estimated_safety_score=0.85,
        estimated_drift_reduction=0.5,
    )
    patch = Patch.from_candidate(candidate)
    patch.validation_result = ValidationResult(
        patch_id=patch.id,
        is_valid=True,
        metrics=ValidationMetrics(accuracy=0.9, safety_score=0.9, f1=0.9, drift_reduction=0.5),
        acceptance_tier=AcceptanceTier.STANDARD,
    )
    patch.status = PatchStatus.VALIDATED
    return patch


# ==================== DATA FIXTURES ====================

@pytest.fixture
def rng():
    """Seeded generator"""
    return np.random.default_rng(42)


SCENARIO_SEED = 0


@pytest.fixture
def scenario_a():
    """Scenario A: iid 1000 vs 1000 draws of N(0, 1), seed SCENARIO_SEED"""
    rng = np.random.default_rng(SCENARIO_SEED)
    reference = rng.normal(0.0, 1.0, size=(1000, 1))
    current = rng.normal(0.0, 1.0, size=(1000, 1))
    return reference, current


@pytest.fixture
def scenario_b():
    """Scenario B: iid 1000 draws of N(0, 1) vs 1000 of N(3, 1), seed SCENARIO_SEED"""
    rng = np.random.default_rng(SCENARIO_SEED)
    reference = rng.normal(0.0, 1.0, size=(1000, 1))
    current = rng.normal(3.0, 1.0, size=(1000, 1))
    return reference, current


@pytest.fixture
def same_distribution(rng):
    """Stratified 1000 vs 1000 samples of N(0, 1)"""
    reference = stratified_normal(rng, 1000)
    current = stratified_normal(rng, 1000)
    return reference, current


@pytest.fixture
def mean_shifted(rng):
    """Stratified N(0, 1) reference vs N(3, 1) current, 4 features"""
    reference = stratified_normal(rng, 2000, n_features=4)
    current = stratified_normal(rng, 2000, n_features=4, loc=3.0)
    return reference, current


@pytest.fixture
def tiny_current(rng):
    """Scenario C: 10 current samples"""
    reference = stratified_normal(rng, 200, n_features=2)
    current = stratified_normal(rng, 10, n_features=2, loc=3.0)
    return reference, current


@pytest.fixture
def sample_dataset(rng):
    """Small named dataset"""
    frame = pd.DataFrame(
        rng.normal(size=(50, 3)),
        columns=["age", "income", "tenure"]
    )
    return Dataset.from_frame(frame)


# ==================== PYTEST CONFIGURATION ====================

def pytest_configure(config):
    """Configure pytest"""
    config.addinivalue_line(
        "markers", "slow: marks tests as slow (deselect with '-m \"not slow\"')"
    )
    config.addinivalue_line(
        "markers", "integration: marks tests as integration tests"
    )
