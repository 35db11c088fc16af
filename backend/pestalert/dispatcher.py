# backend/pestalert/dispatcher.py
"""
The three recurring jobs: general sweep, critical-only sweep and the daily
digest. Each is idempotent and safe to run alongside the others; the
subscription registry is the only state they share.
"""

import threading
import time
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable, Dict, List, Optional

import pandas as pd
from pydantic import BaseModel

from .advisory import render_dispatch_text
from .clock import SYSTEM_CLOCK, Clock
from .config import Settings
from .errors import DispatchFailed, RegistryUnavailable, SubscriptionNotFound
from .healthcheck import HealthState
from .logging_setup import logger
from .pipeline import PestRiskEngine
from .registry import SubscriptionRepository
from .schemas import AlertSubscription, DigestReport, RiskAssessment, RiskLevel, Severity
from .transport import MessageTransport

log = logger.getChild("dispatcher")

GENERAL_SWEEP = "general_sweep"
CRITICAL_SWEEP = "critical_sweep"
DAILY_DIGEST = "daily_digest"


def should_alert(subscription: AlertSubscription, assessment: RiskAssessment, now: datetime,
                 cooldown: timedelta = timedelta(hours=6)) -> bool:
    """
    False below the subscriber's minimum severity; false for a non-critical
    level inside the cooldown window; true otherwise. CRITICAL ignores the
    cooldown.
    """
    level = RiskLevel(assessment.level)
    if not level.at_least(Severity(subscription.min_severity).as_level()):
        return False
    last = subscription.last_alert_sent_at
    if level != RiskLevel.CRITICAL and last is not None and now - last < cooldown:
        return False
    return True


@dataclass(frozen=True)
class DispatchOutcome:
    subscriber_id: str
    status: str  # sent | skipped | failed | error
    level: Optional[RiskLevel] = None
    detail: str = ""


class SweepReport(BaseModel):
    job: str
    started_at: datetime
    finished_at: Optional[datetime] = None
    visited: int = 0
    sent: int = 0
    skipped: int = 0
    failed: int = 0
    errors: int = 0
    aborted: bool = False
    stopped_early: bool = False
    levels: Dict[str, int] = {}


class AlertDispatcher:
    def __init__(
        self,
        registry: SubscriptionRepository,
        engine: PestRiskEngine,
        transport: MessageTransport,
        settings: Settings,
        clock: Clock = SYSTEM_CLOCK,
        pause: Callable[[float], None] = time.sleep,
        health: Optional[HealthState] = None,
    ):
        self.registry = registry
        self.engine = engine
        self.transport = transport
        self.settings = settings
        self.clock = clock
        self._pause = pause
        self.health = health

    @property
    def cooldown(self) -> timedelta:
        return timedelta(hours=self.settings.scheduler.cooldown_hours)

    # ----- jobs -----
    def run_general_sweep(self, stop_event: Optional[threading.Event] = None) -> SweepReport:
        return self._sweep(GENERAL_SWEEP, critical_only=False,
                           pause_s=self.settings.scheduler.general_pause_s, stop_event=stop_event)

    def run_critical_sweep(self, stop_event: Optional[threading.Event] = None) -> SweepReport:
        return self._sweep(CRITICAL_SWEEP, critical_only=True,
                           pause_s=self.settings.scheduler.critical_pause_s, stop_event=stop_event)

    def run_daily_digest(self, stop_event: Optional[threading.Event] = None) -> Optional[DigestReport]:
        try:
            subs = self.registry.list_all()
        except RegistryUnavailable as e:
            log.error(f"[dispatcher] daily digest skipped, registry unavailable: {e}")
            return None
        report = build_digest(subs, self.clock.now())
        log.info(
            f"[dispatcher] daily digest | active={report.active}/{report.total} "
            f"by_severity={report.by_severity} alerted_24h={report.alerted_last_24h}"
        )
        if self.health is not None:
            self.health.record_run(DAILY_DIGEST, report.generated_at)
        return report

    # ----- internals -----
    def _sweep(self, job: str, critical_only: bool, pause_s: float,
               stop_event: Optional[threading.Event]) -> SweepReport:
        report = SweepReport(job=job, started_at=self.clock.now())
        try:
            subs = self.registry.list_active()
        except RegistryUnavailable as e:
            # no partial sweeps: skip the whole run
            log.error(f"[dispatcher] {job} skipped, registry unavailable: {e}")
            report.aborted = True
            report.finished_at = self.clock.now()
            return report

        log.info(f"[dispatcher] {job} started | {len(subs)} active subscriptions")
        levels: Dict[str, int] = {}
        for i, sub in enumerate(subs):
            if stop_event is not None and stop_event.is_set():
                log.info(f"[dispatcher] {job} stopping early after {report.visited} subscriptions")
                report.stopped_early = True
                break
            if i > 0 and pause_s > 0:
                self._pause(pause_s)

            outcome = self._process(sub, critical_only)
            report.visited += 1
            if outcome.level is not None:
                levels[outcome.level.value] = levels.get(outcome.level.value, 0) + 1
            if outcome.status == "sent":
                report.sent += 1
            elif outcome.status == "skipped":
                report.skipped += 1
            elif outcome.status == "failed":
                report.failed += 1
            else:
                report.errors += 1

        report.levels = levels
        report.finished_at = self.clock.now()
        log.info(
            f"[dispatcher] {job} done | visited={report.visited} sent={report.sent} "
            f"skipped={report.skipped} failed={report.failed} errors={report.errors}"
        )
        if self.health is not None:
            self.health.record_run(job, report.finished_at)
        return report

    def _process(self, sub: AlertSubscription, critical_only: bool) -> DispatchOutcome:
        try:
            assessment = self.engine.evaluate(sub.location, sub.subscriber_id)
        except Exception as e:
            log.error(f"[dispatcher] evaluation failed for {sub.subscriber_id}: {e}", exc_info=True)
            return DispatchOutcome(sub.subscriber_id, "error", detail=str(e))

        now = self.clock.now()
        if critical_only:
            send = assessment.level == RiskLevel.CRITICAL
        else:
            send = should_alert(sub, assessment, now, self.cooldown)
        if not send:
            return DispatchOutcome(sub.subscriber_id, "skipped", assessment.level)

        text = render_dispatch_text(assessment, critical=critical_only, config=self.settings.advisory)
        try:
            self.transport.send(sub.contact_address, text)
        except DispatchFailed as e:
            log.error(f"[dispatcher] dispatch failed for {sub.subscriber_id} ({assessment.level.value}): {e}")
            return DispatchOutcome(sub.subscriber_id, "failed", assessment.level, str(e))
        except Exception as e:
            log.error(f"[dispatcher] transport error for {sub.subscriber_id}: {e}", exc_info=True)
            return DispatchOutcome(sub.subscriber_id, "failed", assessment.level, str(e))

        try:
            self.registry.mark_alerted(sub.subscriber_id, self.clock.now())
        except (RegistryUnavailable, SubscriptionNotFound) as e:
            log.error(f"[dispatcher] alert sent to {sub.subscriber_id} but timestamp not stored: {e}")
        log.info(
            f"[dispatcher] {assessment.level.value} alert sent to {sub.subscriber_id} "
            f"(score={assessment.score:.2f}, source={assessment.source_label.value})"
        )
        return DispatchOutcome(sub.subscriber_id, "sent", assessment.level)


def build_digest(subscriptions: List[AlertSubscription], now: datetime) -> DigestReport:
    df = pd.DataFrame(
        [
            {
                "active": s.active,
                "min_severity": Severity(s.min_severity).value,
                "last_alert_sent_at": s.last_alert_sent_at,
            }
            for s in subscriptions
        ],
        columns=["active", "min_severity", "last_alert_sent_at"],
    )
    active = df[df["active"].astype(bool)]
    by_severity = (
        active.groupby("min_severity").size()
        .reindex([s.value for s in Severity], fill_value=0)
    )
    last_sent = pd.to_datetime(active["last_alert_sent_at"], utc=True)
    recent = last_sent >= pd.Timestamp(now - timedelta(hours=24))

    return DigestReport(
        generated_at=now,
        total=int(len(df)),
        active=int(len(active)),
        inactive=int(len(df) - len(active)),
        by_severity={k: int(v) for k, v in by_severity.items()},
        alerted_last_24h=int(recent.sum()),
        never_alerted=int(last_sent.isna().sum()),
    )
