# backend/pestalert/advisory.py
"""
Turns a risk level and its factor breakdown into recommended actions and
human-readable alert text. No side effects.
"""

from typing import List

from .config import AdvisoryConfig
from .schemas import RiskAssessment, RiskFactors, RiskLevel, SourceLabel

DEFAULT_ADVISORY = AdvisoryConfig()

LEVEL_MARKERS = {
    RiskLevel.LOW: "🟢",
    RiskLevel.MODERATE: "🟡",
    RiskLevel.HIGH: "🟠",
    RiskLevel.CRITICAL: "🔴",
}

BASE_ACTIONS = {
    RiskLevel.CRITICAL: [
        "URGENT: inspect your crops immediately",
        "Apply a preventive treatment now",
        "Contact a local agricultural expert",
    ],
    RiskLevel.HIGH: [
        "Monitor your crops closely",
        "Inspect leaves daily",
        "Prepare a preventive treatment",
    ],
    RiskLevel.MODERATE: [
        "Monitor your crops regularly",
        "Strengthen plant nutrition",
    ],
    RiskLevel.LOW: [
        "Continue your current practices",
        "Routine surveillance is sufficient",
    ],
}

FACTOR_LABELS = {
    "temperature": "High temperature",
    "humidity": "High humidity",
    "rainfall": "Heavy rainfall",
    "season": "Pest-favourable season",
    "history": "Recent pest attacks nearby",
    "wind_speed": "Low wind",
    "pressure": "Low pressure",
}

OUTLOOKS = {
    RiskLevel.LOW: "Outlook: conditions unfavourable to pests, routine field checks are enough",
    RiskLevel.MODERATE: "Outlook: conditions may favour pests over the next 24-48h",
    RiskLevel.HIGH: "Outlook: conditions favourable to pests over the next 24-48h",
    RiskLevel.CRITICAL: "Outlook: conditions favourable to pests over the next 24-48h",
}

SOURCE_DESCRIPTIONS = {
    SourceLabel.PRIMARY_ONLY: "primary provider only",
    SourceLabel.VALIDATED: "cross-validated providers",
    SourceLabel.FALLBACK: "fallback estimate, live weather unavailable",
}


def recommendations_for(level: RiskLevel, factors: RiskFactors, config: AdvisoryConfig = DEFAULT_ADVISORY) -> List[str]:
    recs = list(BASE_ACTIONS[RiskLevel(level)])
    if level == RiskLevel.MODERATE and factors.humidity >= config.humidity_ventilation_at:
        recs.append("Improve ventilation where possible")
    if factors.rainfall > config.rainfall_caution_at:
        recs.append("Watch for fungal diseases after the rain")
    if factors.temperature >= config.temperature_caution_at:
        recs.append("Make sure irrigation is sufficient")
    return recs


def top_factors(factors: RiskFactors, n: int) -> List[tuple]:
    # sorted() is stable, so ties keep the canonical factor order
    ranked = sorted(factors.as_dict().items(), key=lambda kv: kv[1], reverse=True)
    return ranked[:n]


def render_message(
    level: RiskLevel,
    score: float,
    factors: RiskFactors,
    confidence: float,
    source_label: SourceLabel,
    config: AdvisoryConfig = DEFAULT_ADVISORY,
) -> str:
    level = RiskLevel(level)
    lines = [
        f"{LEVEL_MARKERS[level]} {config.product_name.upper()} PREDICTIVE ALERT",
        "",
        f"Risk level: {level.value}",
        f"Score: {round(score * 100)}%",
        "",
        "Main contributing factors:",
    ]
    for name, value in top_factors(factors, config.top_factors):
        lines.append(f"- {FACTOR_LABELS[name]} (+{round(value * 100)}%)")
    lines += [
        "",
        OUTLOOKS[level],
        f"Data: {SOURCE_DESCRIPTIONS[SourceLabel(source_label)]}, confidence {round(confidence * 100)}%",
    ]
    return "\n".join(lines)


def render_dispatch_text(assessment: RiskAssessment, critical: bool = False, config: AdvisoryConfig = DEFAULT_ADVISORY) -> str:
    """Full outbound text: alert message, numbered actions, footer."""
    parts = []
    if critical:
        parts += ["🚨 IMMEDIATE CRITICAL ALERT 🚨", ""]
    parts.append(assessment.message)
    if assessment.recommendations:
        parts += ["", "RECOMMENDED ACTIONS:"]
        parts += [f"{i}. {rec}" for i, rec in enumerate(assessment.recommendations, start=1)]
    parts += ["", f"{config.product_name} - predictive alert service"]
    return "\n".join(parts)
