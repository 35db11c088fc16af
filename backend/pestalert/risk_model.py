# backend/pestalert/risk_model.py
"""
Pest-risk scoring: additive step-function factors over one weather reading,
the season and the subscriber's pest history, graded into four levels.
Used by the pipeline for every evaluation; nothing here is cached.
"""

from datetime import datetime

from .advisory import DEFAULT_ADVISORY, recommendations_for, render_message
from .config import AdvisoryConfig, RiskModelConfig
from .schemas import ConsensusResult, RiskAssessment, RiskFactors, RiskLevel, WeatherSample

DEFAULT_RISK_MODEL = RiskModelConfig()

RAINY, DRY, TRANSITION = "rainy", "dry", "transition"
NORTHERN_RAINY_MONTHS = (6, 7, 8, 9)
NORTHERN_DRY_MONTHS = (10, 11, 12, 1, 2)
SOUTHERN_RAINY_MONTHS = (12, 1, 2, 3)


# --- 1. Season from calendar month and hemisphere ---
def season_for(month: int, lat: float) -> str:
    """
    West African convention: June-September rainy, October-February dry,
    March-May transition. South of the equator only two seasons are told
    apart: December-March rainy, every other month dry.
    """
    if not 1 <= month <= 12:
        raise ValueError(f"month out of range: {month}")
    if lat < 0:
        return RAINY if month in SOUTHERN_RAINY_MONTHS else DRY
    if month in NORTHERN_RAINY_MONTHS:
        return RAINY
    if month in NORTHERN_DRY_MONTHS:
        return DRY
    return TRANSITION


# --- 2. Factor contributions ---
def compute_factors(
    sample: WeatherSample,
    season: str,
    history_days: int,
    config: RiskModelConfig = DEFAULT_RISK_MODEL,
) -> RiskFactors:
    return RiskFactors(
        temperature=config.temperature.evaluate(sample.temperature_c),
        humidity=config.humidity.evaluate(sample.humidity_pct),
        rainfall=config.rainfall.evaluate(sample.rainfall_mm),
        season=config.season_weights.get(season, config.season_base),
        history=config.history.evaluate(history_days),
        wind_speed=config.wind_speed.evaluate(sample.wind_speed_mps),
        pressure=config.pressure.evaluate(sample.pressure_hpa),
    )


# --- 3. Score and level ---
def score_factors(factors: RiskFactors) -> float:
    return factors.total()


def classify(score: float, config: RiskModelConfig = DEFAULT_RISK_MODEL) -> RiskLevel:
    # factor sums carry float error; a score within eps of a boundary reaches it
    eps = 1e-9
    if score + eps >= config.critical_threshold:
        return RiskLevel.CRITICAL
    if score + eps >= config.high_threshold:
        return RiskLevel.HIGH
    if score + eps >= config.moderate_threshold:
        return RiskLevel.MODERATE
    return RiskLevel.LOW


# --- 4. Full assessment ---
def assess(
    consensus: ConsensusResult,
    season: str,
    history_days: int,
    evaluated_at: datetime,
    config: RiskModelConfig = DEFAULT_RISK_MODEL,
    advisory: AdvisoryConfig = DEFAULT_ADVISORY,
) -> RiskAssessment:
    factors = compute_factors(consensus.sample, season, history_days, config)
    score = score_factors(factors)
    level = classify(score, config)
    return RiskAssessment(
        score=score,
        level=level,
        confidence=consensus.confidence,
        source_label=consensus.source_label,
        season=season,
        factors=factors,
        recommendations=recommendations_for(level, factors, advisory),
        message=render_message(level, score, factors, consensus.confidence, consensus.source_label, advisory),
        weather=consensus.sample,
        evaluated_at=evaluated_at,
    )
