# backend/pestalert/consensus.py
"""
Weather consensus: reconcile one primary reading with optional secondary
readings into a single sample plus a confidence in [0, 1].

Pure and deterministic: no clock, no randomness, no I/O.
"""

from typing import List, Optional, Sequence

import numpy as np

from .config import ConsensusConfig, PlausibilityBounds
from .plausibility import DEFAULT_BOUNDS, is_suspicious
from .schemas import ConsensusResult, Location, ProviderFailure, SourceLabel, WeatherSample

DEFAULT_CONSENSUS = ConsensusConfig()

AVERAGED_FIELDS = ("temperature_c", "humidity_pct", "rainfall_mm", "wind_speed_mps", "pressure_hpa")


def consensus_weights(has_primary: bool, n_secondaries: int, config: ConsensusConfig = DEFAULT_CONSENSUS) -> List[float]:
    """
    Primary first (if any), then one weight per secondary. The primary keeps a
    fixed share and the secondaries split the rest evenly; weights sum to 1.
    """
    if n_secondaries <= 0:
        return [1.0] if has_primary else []
    if not has_primary:
        return [1.0 / n_secondaries] * n_secondaries
    share = (1.0 - config.primary_weight) / n_secondaries
    return [config.primary_weight] + [share] * n_secondaries


def fallback_sample(location: Location, config: ConsensusConfig = DEFAULT_CONSENSUS) -> WeatherSample:
    fb = config.fallback
    return WeatherSample(
        temperature_c=fb.temperature_c,
        humidity_pct=fb.humidity_pct,
        rainfall_mm=fb.rainfall_mm,
        wind_speed_mps=fb.wind_speed_mps,
        pressure_hpa=fb.pressure_hpa,
        location=location,
        provider_name="fallback",
    )


def validated_confidence(n_secondaries: int, config: ConsensusConfig = DEFAULT_CONSENSUS) -> float:
    return min(config.max_confidence, config.validated_base_confidence + config.confidence_per_secondary * n_secondaries)


def build_consensus(
    primary: Optional[WeatherSample],
    secondaries: Sequence[WeatherSample],
    location: Location,
    config: ConsensusConfig = DEFAULT_CONSENSUS,
    bounds: PlausibilityBounds = DEFAULT_BOUNDS,
    errors: Sequence[ProviderFailure] = (),
) -> ConsensusResult:
    """
    Implausible readings never enter the average: a suspicious primary is
    treated as absent and suspicious secondaries are dropped.
    """
    usable_primary = primary if (primary is not None and not is_suspicious(primary, bounds)) else None
    usable_secondaries = [s for s in secondaries if not is_suspicious(s, bounds)]

    if usable_primary is not None and not usable_secondaries:
        return ConsensusResult(
            sample=usable_primary,
            confidence=config.primary_only_confidence,
            source_label=SourceLabel.PRIMARY_ONLY,
            providers_used=[usable_primary.provider_name],
            errors=list(errors),
        )

    if usable_primary is None and not usable_secondaries:
        return ConsensusResult(
            sample=fallback_sample(location, config),
            confidence=config.fallback_confidence,
            source_label=SourceLabel.FALLBACK,
            providers_used=[],
            errors=list(errors),
        )

    samples = ([usable_primary] if usable_primary is not None else []) + usable_secondaries
    weights = np.asarray(consensus_weights(usable_primary is not None, len(usable_secondaries), config))
    values = np.asarray([[getattr(s, f) for f in AVERAGED_FIELDS] for s in samples], dtype=float)
    averaged = np.average(values, axis=0, weights=weights)

    merged = WeatherSample(
        **{f: float(v) for f, v in zip(AVERAGED_FIELDS, averaged)},
        location=samples[0].location,
        provider_name="consensus",
    )
    return ConsensusResult(
        sample=merged,
        confidence=validated_confidence(len(usable_secondaries), config),
        source_label=SourceLabel.VALIDATED,
        providers_used=[s.provider_name for s in samples],
        errors=list(errors),
    )
