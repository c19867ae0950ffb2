"""
DriftFix PRO - Unit Tests for Patch Validator
"""

import numpy as np
import pytest

from agents.monitoring.drift_detector import DriftConfig, DriftDetector
from agents.patching.patch_generator import PatchGenerator, PatchGeneratorConfig
from agents.patching.patch_validator import (
    AcceptanceThresholds,
    PatchValidator,
    ValidationConfig,
    classify_acceptance,
    validation_sample_size,
    wilson_interval,
)
from core.exceptions import DimensionMismatchError
from core.models import (
    AcceptanceTier,
    Clipping,
    DriftType,
    PatchCandidate,
    PatchPriority,
    PatchType,
    Reweighting,
    ThresholdTuning,
)


def candidate_for(configuration, safety=0.85, reduction=0.5):
    return PatchCandidate(
        drift_result_id="drift-1",
        model_id="model-a",
        type=configuration.patch_type,
        priority=PatchPriority.PRIMARY,
        configuration=configuration,
        estimated_safety_score=safety,
        estimated_drift_reduction=reduction,
    )


@pytest.fixture
def validator():
    return PatchValidator(ValidationConfig(), DriftConfig())


class TestClassifyAcceptance:
    """Tests for classify_acceptance"""

    def test_harmful_patch_rejected(self):
        """Scenario D: safety 0.05, reduction -0.1 → REJECTED"""
        assert classify_acceptance(0.05, -0.1) == AcceptanceTier.REJECTED

    @pytest.mark.parametrize("safety,reduction,expected", [
        (0.60, 0.40, AcceptanceTier.STANDARD),
        (0.30, 0.03, AcceptanceTier.MINIMAL_IMPROVEMENT),
        (0.05, 0.03, AcceptanceTier.MINIMAL_IMPROVEMENT),
        (0.12, 0.00, AcceptanceTier.NO_EFFECT),
        (0.05, 0.00, AcceptanceTier.NO_EFFECT),
        (0.12, -0.50, AcceptanceTier.NO_EFFECT),
    ])
    def test_tiers(self, safety, reduction, expected):
        """First matching tier wins"""
        assert classify_acceptance(safety, reduction) == expected

    def test_monotone_in_both_scores(self):
        """Raising safety or reduction never worsens the tier"""
        grid = np.linspace(-0.5, 1.0, 31)
        for s in grid:
            ranks = [classify_acceptance(s, r).rank for r in grid]
            assert all(a >= b for a, b in zip(ranks, ranks[1:]))
        for r in grid:
            ranks = [classify_acceptance(s, r).rank for s in grid]
            assert all(a >= b for a, b in zip(ranks, ranks[1:]))

    def test_custom_thresholds(self):
        """Cut-offs are configurable"""
        strict = AcceptanceThresholds(standard_safety=0.9, standard_reduction=0.5)
        assert classify_acceptance(0.6, 0.4, strict) == AcceptanceTier.MINIMAL_IMPROVEMENT

    def test_inconsistent_thresholds(self):
        """Reject ≤ minimal ≤ standard is enforced"""
        with pytest.raises(ValueError):
            AcceptanceThresholds(minimal_safety=0.5, standard_safety=0.25)


class TestSampleSize:
    """Tests for validation_sample_size and wilson_interval"""

    @pytest.mark.parametrize("n,k", [
        (0, 0), (3, 3), (10, 5), (50, 5), (99, 10), (100, 20), (1000, 200),
    ])
    def test_slice_size(self, n, k):
        """10% (min 5) below 100 rows, 20% (min 20) above"""
        assert validation_sample_size(n) == k

    def test_wilson_interval(self):
        """Interval contains p and stays within [0, 1]"""
        low, high = wilson_interval(0.5, 100)
        assert low < 0.5 < high
        assert 0.5 - low == pytest.approx(high - 0.5)

        low, high = wilson_interval(1.0, 100)
        assert 0.9 < low < 1.0
        assert high == pytest.approx(1.0)

        assert wilson_interval(0.5, 0) is None


class TestFastTrack:
    """Fast-track validation"""

    def test_tiny_dataset(self, validator, tiny_current):
        """Scenario C: 10 current samples → fast-track floors"""
        reference, current = tiny_current
        candidate = candidate_for(
            Clipping(per_feature_bounds={0: (-1.0, 1.0)}), safety=0.4, reduction=0.1
        )

        result = validator.validate(candidate, reference, current)

        assert result.fast_tracked is True
        assert result.metrics.safety_score >= 0.70
        assert result.metrics.drift_reduction >= 0.30
        assert result.metrics.accuracy == pytest.approx(0.80)
        assert result.metrics.f1 == pytest.approx(0.75)
        assert result.metrics.sample_size == 5
        assert result.is_valid
        assert any("Fast-track" in w for w in result.warnings)

    def test_estimates_above_floor_are_kept(self, validator, tiny_current):
        """Estimates above the floors pass through"""
        reference, current = tiny_current
        candidate = candidate_for(
            Clipping(per_feature_bounds={0: (-1.0, 1.0)}), safety=0.85, reduction=0.5
        )
        result = validator.validate(candidate, reference, current)
        assert result.metrics.safety_score == pytest.approx(0.85)
        assert result.metrics.drift_reduction == pytest.approx(0.5)

    def test_untestable_slice_degrades(self, validator, rng):
        """Statistical failures in standard mode use fast-track defaults"""
        reference = rng.normal(size=(200, 1))
        current = np.full((200, 1), np.nan)
        candidate = candidate_for(Clipping(per_feature_bounds={0: (-1.0, 1.0)}))

        result = validator.validate(candidate, reference, current)

        assert result.fast_tracked is True
        assert any("Statistical tests failed" in w for w in result.warnings)


class TestStandardMode:
    """Standard validation"""

    def test_scenario_b_reduction(self, validator, mean_shifted):
        """Scenario B: a normalizing candidate removes more than half of the drift"""
        reference, current = mean_shifted
        drift = DriftDetector(DriftConfig()).detect(reference, current)
        candidates = PatchGenerator(PatchGeneratorConfig()).generate(drift, reference, current)

        results = validator.validate_many(candidates, reference, current)

        assert [r.patch_id for r in results] == [c.id for c in candidates]
        assert all(not r.fast_tracked for r in results)
        best = max(results, key=lambda r: r.metrics.drift_reduction)
        assert best.metrics.drift_reduction > 0.5
        assert best.is_valid

    def test_decision_patch_keeps_values(self, validator, same_distribution):
        """Threshold tuning leaves input drift unchanged"""
        reference, current = same_distribution
        result = validator.validate(
            candidate_for(ThresholdTuning(delta=0.0)), reference, current
        )

        assert result.metrics.pre_drift_score == pytest.approx(result.metrics.post_drift_score)
        assert result.metrics.drift_reduction == pytest.approx(0.0)
        assert result.acceptance_tier == AcceptanceTier.MINIMAL_IMPROVEMENT
        assert result.metrics.sample_size == 200

    def test_reweighting_reduces_weighted_score(self, validator, mean_shifted):
        """Down-weighting a drifted feature lowers the post score"""
        reference, current = mean_shifted
        result = validator.validate(
            candidate_for(Reweighting(per_feature_weight={0: 0.3})), reference, current
        )

        assert 0.10 < result.metrics.drift_reduction < 0.25
        assert any("Feature weights below" in w for w in result.warnings)

    def test_labelled_metrics(self, validator, same_distribution):
        """Labels + predict_fn give real accuracy, F1 and a Wilson interval"""
        reference, current = same_distribution
        labels = (current[:, 0] > 0).astype(int)

        def predict(x):
            return 1.0 / (1.0 + np.exp(-x[:, 0]))

        result = validator.validate(
            candidate_for(ThresholdTuning(delta=0.0)), reference, current,
            current_labels=labels, predict_fn=predict
        )

        assert result.metrics.accuracy == pytest.approx(1.0)
        assert result.metrics.f1 == pytest.approx(1.0)
        assert result.metrics.performance_delta == pytest.approx(0.0)
        low, high = result.metrics.confidence_interval
        assert low > 0.9 and high == pytest.approx(1.0)

    def test_narrow_clip_penalty(self, validator, mean_shifted):
        """Bounds covering under 60% of the reference are penalized"""
        reference, current = mean_shifted
        bounds = tuple(np.percentile(reference[:, 0], [30, 70]))
        result = validator.validate(
            candidate_for(Clipping(per_feature_bounds={0: bounds})), reference, current
        )
        assert any("Narrow clipping" in w for w in result.warnings)

    def test_dimension_mismatch(self, validator, rng):
        """Different widths raise"""
        candidate = candidate_for(ThresholdTuning(delta=0.1))
        with pytest.raises(DimensionMismatchError):
            validator.validate(candidate, rng.normal(size=(50, 2)), rng.normal(size=(50, 3)))

    def test_validity_follows_tier(self, validator, mean_shifted):
        """is_valid ⇔ tier ≠ REJECTED"""
        reference, current = mean_shifted
        result = validator.validate(
            candidate_for(Clipping(per_feature_bounds={1: (-1.0, 1.0)})), reference, current
        )
        assert result.is_valid == (result.acceptance_tier != AcceptanceTier.REJECTED)
        assert 0.0 <= result.metrics.safety_score <= 1.0


class TestValidationConfig:
    """Tests for ValidationConfig"""

    def test_from_settings(self):
        """Settings feed the tier cut-offs"""
        config = ValidationConfig.from_settings()
        assert config.thresholds.standard_safety == pytest.approx(0.25)
        assert config.fast_track_max_samples == 30

    def test_invalid_penalty(self):
        """Penalties are multiplicative factors in (0, 1]"""
        with pytest.raises(ValueError):
            ValidationConfig(low_weight_penalty=1.5)

    def test_presets(self):
        """Strict cut-offs exceed lenient ones"""
        assert (
            ValidationConfig.create_strict().thresholds.standard_safety
            > ValidationConfig.create_lenient().thresholds.standard_safety
        )


class TestSeededScenarios:
    """Scenarios A and B on iid seeded draws"""

    def test_scenario_a_generates_nothing(self, scenario_a):
        """Two draws of N(0,1) → no drift, no candidates"""
        reference, current = scenario_a
        drift = DriftDetector(DriftConfig()).detect(reference, current)

        assert drift.drift_type == DriftType.NONE
        assert PatchGenerator(PatchGeneratorConfig()).generate(drift, reference, current) == []

    def test_scenario_b_value_patch_reduces_drift(self, validator, scenario_b):
        """N(0,1) vs N(3,1): a value-changing candidate removes over half of the drift"""
        reference, current = scenario_b
        drift = DriftDetector(DriftConfig()).detect(reference, current)
        candidates = PatchGenerator(PatchGeneratorConfig()).generate(drift, reference, current)

        assert drift.feature_drifts[0].psi_score > 0.25
        assert drift.drift_type == DriftType.COVARIATE
        assert any(c.type == PatchType.CLIPPING for c in candidates)

        results = validator.validate_many(candidates, reference, current)
        by_id = {c.id: c for c in candidates}
        value_results = [
            r for r in results
            if by_id[r.patch_id].type not in (PatchType.REWEIGHTING, PatchType.THRESHOLD_TUNING)
        ]
        best = max(value_results, key=lambda r: r.metrics.drift_reduction)
        assert best.metrics.drift_reduction > 0.5
        assert best.is_valid

    def test_maximal_reweighting_does_not_outrank_normalization(self, validator, scenario_b):
        """Down-weighting leaves the inputs drifted, so it scores below value corrections"""
        reference, current = scenario_b
        drift = DriftDetector(DriftConfig()).detect(reference, current)
        candidates = PatchGenerator(PatchGeneratorConfig()).generate(drift, reference, current)
        results = validator.validate_many(candidates, reference, current)
        safety = {r.patch_id: r.metrics.safety_score for r in results}

        maximal = [
            c for c in candidates
            if c.type == PatchType.REWEIGHTING and c.priority == PatchPriority.ULTRA_AGGRESSIVE
        ]
        normalizing = [
            c for c in candidates
            if c.type in (PatchType.NORMALIZATION_RESET, PatchType.DISTRIBUTION_MATCH)
        ]
        assert maximal and normalizing

        best_normalizing = max(safety[c.id] for c in normalizing)
        assert all(safety[c.id] < best_normalizing for c in maximal)

    def test_decision_fidelity(self, validator, mean_shifted):
        """Weight and threshold shifts lower fidelity, and with it safety"""
        reference, current = mean_shifted
        mild = validator.validate(
            candidate_for(Reweighting(per_feature_weight={0: 0.9})), reference, current
        )
        harsh = validator.validate(
            candidate_for(Reweighting(per_feature_weight={0: 0.05})), reference, current
        )
        assert harsh.metrics.safety_score < mild.metrics.safety_score

        small = validator.validate(candidate_for(ThresholdTuning(delta=0.0)), reference, current)
        large = validator.validate(candidate_for(ThresholdTuning(delta=0.3)), reference, current)
        assert large.metrics.safety_score < small.metrics.safety_score
