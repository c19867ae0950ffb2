"""
DriftFix PRO - Unit Tests for Attribution Engine
"""

import numpy as np
import pytest

from agents.monitoring.attribution_engine import AttributionConfig, AttributionEngine
from conftest import make_drift_result, stratified_normal
from core.models import DriftType


@pytest.fixture
def engine():
    return AttributionEngine(AttributionConfig(sensitivity_samples=100))


class TestRank:
    """Tests for rank"""

    def test_normalized_and_sorted(self, engine):
        """Contributions sum to 1, largest first"""
        drift = make_drift_result(feature_scores=(0.2, 0.6, 0.2))
        ranking = engine.rank(drift.feature_drifts)

        assert [a.feature_index for a in ranking] == [1, 0, 2]
        assert sum(a.contribution for a in ranking) == pytest.approx(1.0)
        assert ranking[0].contribution == pytest.approx(0.6)

    def test_empty(self, engine):
        """No features → empty ranking"""
        assert engine.rank([]) == []

    def test_output_sensitivity_weights(self, engine, rng):
        """A model reading only feature 0 concentrates attribution there"""
        reference = rng.normal(size=(200, 2))
        current = rng.normal(loc=1.0, size=(200, 2))
        drift = make_drift_result(feature_scores=(0.5, 0.5))

        ranking = engine.rank(
            drift.feature_drifts,
            reference=reference,
            current=current,
            output_fn=lambda x: x[:, 0]
        )

        assert ranking[0].feature_index == 0
        assert ranking[0].contribution == pytest.approx(1.0)

    def test_failing_output_fn_falls_back(self, engine, rng):
        """A raising callback leaves the ranking unweighted"""
        def broken(_):
            raise RuntimeError("model offline")

        drift = make_drift_result(feature_scores=(0.3, 0.7))
        ranking = engine.rank(
            drift.feature_drifts,
            reference=rng.normal(size=(20, 2)),
            current=rng.normal(size=(20, 2)),
            output_fn=broken
        )

        assert ranking[0].contribution == pytest.approx(0.7)

    def test_constant_output_falls_back(self, engine, rng):
        """An output insensitive to all features gives no weighting"""
        assert engine.output_sensitivity(
            rng.normal(size=(30, 2)), rng.normal(size=(30, 2)), lambda x: np.zeros(len(x))
        ) is None


class TestImportanceShift:
    """Tests for importance_shift"""

    def test_stable_relationship(self, engine, rng):
        """Same input → label mapping gives a small shift"""
        reference = stratified_normal(rng, 800, n_features=3)
        current = stratified_normal(rng, 800, n_features=3)

        shift = engine.importance_shift(
            reference, current,
            (reference[:, 0] > 0).astype(int),
            (current[:, 0] > 0).astype(int)
        )
        assert shift < 0.2

    def test_moved_relationship(self, engine, rng):
        """Label driven by another feature gives a large shift"""
        reference = stratified_normal(rng, 800, n_features=3)
        current = stratified_normal(rng, 800, n_features=3)

        shift = engine.importance_shift(
            reference, current,
            (reference[:, 0] > 0).astype(int),
            (current[:, 2] > 0).astype(int)
        )
        assert shift > 0.8

    def test_string_labels(self, engine, rng):
        """Non-numeric labels are coded consistently across sides"""
        reference = rng.normal(size=(100, 2))
        labels = np.where(reference[:, 0] > 0, "yes", "no")
        assert engine.importance_shift(reference, reference, labels, labels) == pytest.approx(0.0)

    def test_too_few_rows(self, engine):
        """Below min rows → None"""
        values = np.ones((3, 2))
        assert engine.importance_shift(values, values, [0, 1, 0], [0, 1, 0]) is None

    def test_misaligned_targets(self, engine, rng):
        """Target length must match row count"""
        values = rng.normal(size=(10, 2))
        assert engine.importance_shift(values, values, [0, 1], [0, 1]) is None


class TestExplainLocal:
    """Tests for explain_local"""

    def test_outlying_feature_ranks_first(self, engine, rng):
        """The feature furthest from the reference mean leads"""
        reference = rng.normal(size=(200, 3))
        current = np.zeros((5, 3))
        current[2, 1] = 6.0
        current[2, 0] = 0.5
        drift = make_drift_result(
            drift_type=DriftType.COVARIATE, feature_scores=(0.5, 0.5, 0.5)
        )

        explanation = engine.explain_local(drift, reference, current, row_index=2, top_k=2)

        assert len(explanation) == 2
        assert explanation[0].feature_index == 1
        assert sum(a.contribution for a in explanation) <= 1.0 + 1e-9

    def test_row_out_of_range(self, engine, rng):
        """Invalid row index raises IndexError"""
        drift = make_drift_result(feature_scores=(0.5,))
        with pytest.raises(IndexError):
            engine.explain_local(drift, rng.normal(size=(10, 1)), rng.normal(size=(3, 1)), row_index=5)
