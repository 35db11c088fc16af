from datetime import datetime, timezone

import pytest

from backend.pestalert.config import RiskModelConfig, StepTable, Step
from backend.pestalert.risk_model import (
    DRY, RAINY, TRANSITION, assess, classify, compute_factors, score_factors, season_for,
)
from backend.pestalert.schemas import ConsensusResult, RiskLevel, SourceLabel

from .conftest import DRY_CONDITIONS, WET_CONDITIONS, make_sample

EVALUATED_AT = datetime(2024, 7, 15, 9, 0, tzinfo=timezone.utc)


def _score(season=RAINY, history=60, **weather):
    return score_factors(compute_factors(make_sample(**weather), season, history))


class TestScenarios:
    def test_ideal_dry_season_is_low(self):
        factors = compute_factors(make_sample(**DRY_CONDITIONS), DRY, 120)
        score = score_factors(factors)
        assert score < 0.45
        assert score == pytest.approx(0.32)
        assert classify(score) == RiskLevel.LOW

    def test_extreme_wet_season_is_critical(self):
        factors = compute_factors(make_sample(**WET_CONDITIONS), RAINY, 10)
        assert factors.temperature == 0.25
        assert factors.humidity == 0.30
        assert factors.rainfall == 0.15
        assert factors.season == 0.20
        assert factors.history == 0.25
        assert factors.wind_speed == 0.15
        assert factors.pressure == 0.10
        score = score_factors(factors)
        assert score >= 0.85
        assert classify(score) == RiskLevel.CRITICAL


class TestStepBoundaries:
    @pytest.mark.parametrize("temp,expected", [(28.0, 0.15), (28.01, 0.25), (25.0, 0.05), (25.5, 0.15)])
    def test_temperature_thresholds_are_strict(self, temp, expected):
        factors = compute_factors(make_sample(temperature_c=temp), RAINY, 60)
        assert factors.temperature == expected

    @pytest.mark.parametrize("days,expected", [(14, 0.25), (15, 0.15), (29, 0.15), (30, 0.10), (60, 0.05), (365, 0.05)])
    def test_history_thresholds(self, days, expected):
        assert compute_factors(make_sample(), DRY, days).history == expected

    @pytest.mark.parametrize("rain,expected", [(0.0, 0.05), (20.0, 0.05), (20.5, 0.10), (50.5, 0.15), (100.5, 0.20)])
    def test_rainfall_thresholds(self, rain, expected):
        assert compute_factors(make_sample(rainfall_mm=rain), DRY, 60).rainfall == expected

    def test_season_contributions(self):
        sample = make_sample()
        assert compute_factors(sample, RAINY, 60).season == 0.20
        assert compute_factors(sample, TRANSITION, 60).season == 0.10
        assert compute_factors(sample, DRY, 60).season == 0.05


class TestMonotonicity:
    @pytest.mark.parametrize("field,values", [
        ("temperature_c", [10, 24, 25.5, 27, 28.5, 35]),
        ("humidity_pct", [20, 60, 66, 70, 76, 86, 99]),
        ("rainfall_mm", [0, 10, 21, 49, 51, 99, 150]),
    ])
    def test_score_never_drops_as_driver_rises(self, field, values):
        scores = [_score(**{field: v}) for v in values]
        assert scores == sorted(scores)

    @pytest.mark.parametrize("field,values", [
        ("wind_speed_mps", [20, 6, 4.9, 4, 2.9, 0.5]),
        ("pressure_hpa", [1030, 1006, 1004, 996, 994, 980]),
    ])
    def test_score_never_drops_as_calming_driver_falls(self, field, values):
        scores = [_score(**{field: v}) for v in values]
        assert scores == sorted(scores)

    def test_more_recent_attack_never_lowers_score(self):
        scores = [_score(history=d) for d in (400, 61, 59, 31, 29, 16, 14, 0)]
        assert scores == sorted(scores)


class TestClassify:
    @pytest.mark.parametrize("score,level", [
        (0.0, RiskLevel.LOW),
        (0.4499, RiskLevel.LOW),
        (0.45, RiskLevel.MODERATE),
        (0.65, RiskLevel.HIGH),
        (0.85, RiskLevel.CRITICAL),
        (1.4, RiskLevel.CRITICAL),
    ])
    def test_levels(self, score, level):
        assert classify(score) == level

    def test_score_within_eps_of_boundary_reaches_level(self):
        assert classify(0.45 - 1e-12) == RiskLevel.MODERATE
        assert classify(0.85 - 1e-12) == RiskLevel.CRITICAL

    def test_thresholds_are_configurable(self):
        config = RiskModelConfig(critical_threshold=0.95, high_threshold=0.7, moderate_threshold=0.5)
        assert classify(0.9, config) == RiskLevel.HIGH

    def test_thresholds_must_be_ordered(self):
        with pytest.raises(ValueError):
            RiskModelConfig(critical_threshold=0.5, high_threshold=0.7)


class TestStepTable:
    def test_rejects_contributions_growing_away_from_risky_end(self):
        with pytest.raises(ValueError):
            StepTable(direction="above", steps=[Step(threshold=30, contribution=0.1), Step(threshold=20, contribution=0.2)], base=0.05)

    def test_contribution_capped(self):
        with pytest.raises(ValueError):
            Step(threshold=10, contribution=0.31)


class TestSeasons:
    @pytest.mark.parametrize("month,season", [
        (1, DRY), (2, DRY), (3, TRANSITION), (5, TRANSITION), (6, RAINY), (9, RAINY), (10, DRY), (12, DRY),
    ])
    def test_northern_hemisphere(self, month, season):
        assert season_for(month, 12.6) == season

    @pytest.mark.parametrize("month,season", [
        (12, RAINY), (1, RAINY), (3, RAINY), (4, DRY), (8, DRY), (9, DRY), (10, DRY), (11, DRY),
    ])
    def test_southern_hemisphere_rainy_or_dry(self, month, season):
        assert season_for(month, -15.4) == season

    def test_equator_uses_northern_calendar(self):
        assert season_for(7, 0.0) == RAINY

    def test_bad_month(self):
        with pytest.raises(ValueError):
            season_for(13, 5.0)


class TestAssess:
    def test_assessment_carries_consensus_metadata(self):
        consensus = ConsensusResult(
            sample=make_sample(**WET_CONDITIONS), confidence=0.9,
            source_label=SourceLabel.VALIDATED, providers_used=["openepi", "weatherapi"],
        )
        result = assess(consensus, RAINY, 10, evaluated_at=EVALUATED_AT)
        assert result.level == RiskLevel.CRITICAL
        assert result.confidence == 0.9
        assert result.source_label == SourceLabel.VALIDATED
        assert result.season == RAINY
        assert result.evaluated_at == EVALUATED_AT
        assert result.recommendations[0].startswith("URGENT")
        assert "confidence 90%" in result.message

    def test_deterministic(self):
        consensus = ConsensusResult(sample=make_sample(), confidence=0.8, source_label=SourceLabel.PRIMARY_ONLY)
        assert assess(consensus, DRY, 45, EVALUATED_AT) == assess(consensus, DRY, 45, EVALUATED_AT)
