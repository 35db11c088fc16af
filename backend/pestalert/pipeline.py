# backend/pestalert/pipeline.py
"""
One evaluation for one coordinate: primary fetch, plausibility check,
optional secondary fan-out, consensus, scoring, advisory.
"""

from typing import Optional

from .clock import SYSTEM_CLOCK, Clock
from .config import Settings
from .consensus import build_consensus
from .errors import NoDataAvailable
from .history import PestHistoryLookup
from .logging_setup import logger
from .plausibility import implausible_fields
from .providers import WeatherGateway
from .risk_model import assess, season_for
from .schemas import ConsensusResult, Location, RiskAssessment, SourceLabel

log = logger.getChild("pipeline")


class PestRiskEngine:
    def __init__(self, gateway: WeatherGateway, history: PestHistoryLookup, settings: Settings,
                 clock: Clock = SYSTEM_CLOCK):
        self.gateway = gateway
        self.history = history
        self.settings = settings
        self.clock = clock

    def reconcile(self, location: Location, validate: bool = False) -> ConsensusResult:
        primary = self.gateway.fetch_primary(location.lat, location.lon)
        errors = [primary.failure] if primary.failure else []

        needs_validation = validate
        if primary.sample is None:
            needs_validation = True
        else:
            bad = implausible_fields(primary.sample, self.settings.plausibility)
            if bad:
                log.warning(f"[pipeline] suspicious {primary.provider} reading at ({location.lat}, {location.lon}): {bad}")
                needs_validation = True

        secondaries = []
        if needs_validation and self.gateway.secondary_names:
            for outcome in self.gateway.fetch_secondaries(location.lat, location.lon):
                if outcome.ok:
                    secondaries.append(outcome.sample)
                else:
                    errors.append(outcome.failure)

        result = build_consensus(
            primary.sample,
            secondaries,
            location,
            config=self.settings.consensus,
            bounds=self.settings.plausibility,
            errors=errors,
        )
        if result.source_label == SourceLabel.FALLBACK:
            log.warning(f"[pipeline] {NoDataAvailable(location.lat, location.lon)}; using fallback weather")
        return result

    def history_days(self, subscriber_id: str) -> int:
        try:
            return self.history.lookup(subscriber_id).days_since_last_confirmed_attack
        except Exception as e:
            log.warning(f"[pipeline] pest history unavailable for {subscriber_id}: {e}")
            return self.settings.default_history_days

    def evaluate(self, location: Location, subscriber_id: str, validate: bool = False) -> RiskAssessment:
        now = self.clock.now()
        consensus = self.reconcile(location, validate=validate)
        season = season_for(now.month, location.lat)
        assessment = assess(
            consensus,
            season,
            self.history_days(subscriber_id),
            evaluated_at=now,
            config=self.settings.risk,
            advisory=self.settings.advisory,
        )
        log.info(
            f"[pipeline] {subscriber_id}: level={assessment.level.value} score={assessment.score:.2f} "
            f"source={assessment.source_label.value} confidence={assessment.confidence:.2f}"
        )
        return assessment

    def force_evaluate(self, lat: float, lon: float, subscriber_id: str,
                       validate: bool = False, location: Optional[Location] = None) -> RiskAssessment:
        return self.evaluate(location or Location(lat=lat, lon=lon), subscriber_id, validate=validate)
