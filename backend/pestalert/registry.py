# backend/pestalert/registry.py
"""
Subscription registry: who wants alerts, where, at what minimum severity, and
when they were last notified.

Readers never block each other. Writes to one subscriber are serialized by a
per-subscriber lock and land as single-statement updates, so two sweeps can
race on the same record without losing a timestamp write.
"""

import threading
from abc import ABC, abstractmethod
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Dict, List, Optional

from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError

from .db_models import AlertSubscriptionRow
from .errors import RegistryUnavailable, SubscriptionNotFound
from .logging_setup import logger
from .schemas import AlertSubscription, Location, Severity, SubscriptionStats

log = logger.getChild("registry")


def _as_utc(value: Optional[datetime]) -> Optional[datetime]:
    if value is None:
        return None
    # SQLite hands back naive datetimes even for timezone-aware columns
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def _to_model(row: AlertSubscriptionRow) -> AlertSubscription:
    return AlertSubscription(
        subscriber_id=row.subscriber_id,
        contact_address=row.contact_address,
        location=Location(lat=row.lat, lon=row.lon, country=row.country or "Unknown", region=row.region or "Unknown"),
        min_severity=Severity(row.min_severity),
        last_alert_sent_at=_as_utc(row.last_alert_sent_at),
        active=bool(row.active),
        created_at=_as_utc(row.created_at),
    )


class SubscriptionRepository(ABC):
    @abstractmethod
    def subscribe(self, subscriber_id: str, contact: str, location: Location,
                  min_severity: Severity = Severity.MODERATE) -> AlertSubscription:
        ...

    @abstractmethod
    def unsubscribe(self, subscriber_id: str) -> bool:
        ...

    @abstractmethod
    def list_active(self) -> List[AlertSubscription]:
        ...

    @abstractmethod
    def list_all(self) -> List[AlertSubscription]:
        ...

    @abstractmethod
    def get(self, subscriber_id: str) -> AlertSubscription:
        ...

    @abstractmethod
    def mark_alerted(self, subscriber_id: str, at: datetime) -> None:
        ...

    def stats(self) -> SubscriptionStats:
        subs = self.list_all()
        by_severity = {s.value: 0 for s in Severity}
        for sub in subs:
            if sub.active:
                by_severity[Severity(sub.min_severity).value] += 1
        return SubscriptionStats(
            total=len(subs),
            active=sum(1 for s in subs if s.active),
            by_severity=by_severity,
        )


class SqlSubscriptionRepository(SubscriptionRepository):
    def __init__(self, session_factory):
        self._session_factory = session_factory
        self._locks: Dict[str, threading.Lock] = {}
        self._locks_guard = threading.Lock()

    def _lock_for(self, subscriber_id: str) -> threading.Lock:
        with self._locks_guard:
            lock = self._locks.get(subscriber_id)
            if lock is None:
                lock = self._locks[subscriber_id] = threading.Lock()
            return lock

    @contextmanager
    def _session(self, action: str):
        db = self._session_factory()
        try:
            yield db
            db.commit()
        except SQLAlchemyError as e:
            db.rollback()
            log.error(f"[registry] {action} failed: {e}", exc_info=True)
            raise RegistryUnavailable(f"{action} failed: {e}") from e
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()

    def subscribe(self, subscriber_id, contact, location, min_severity=Severity.MODERATE):
        severity = Severity(min_severity)
        with self._lock_for(subscriber_id), self._session("subscribe") as db:
            row = db.get(AlertSubscriptionRow, subscriber_id)
            if row is None:
                row = AlertSubscriptionRow(subscriber_id=subscriber_id, created_at=datetime.now(timezone.utc))
                db.add(row)
            row.contact_address = contact
            row.lat = location.lat
            row.lon = location.lon
            row.country = location.country
            row.region = location.region
            row.min_severity = severity.value
            row.active = True
            db.flush()
            sub = _to_model(row)
        log.info(f"[registry] {subscriber_id} subscribed (min_severity={severity.value})")
        return sub

    def unsubscribe(self, subscriber_id):
        with self._lock_for(subscriber_id), self._session("unsubscribe") as db:
            row = db.get(AlertSubscriptionRow, subscriber_id)
            if row is None or not row.active:
                log.info(f"[registry] unsubscribe ignored for {subscriber_id}: no active subscription")
                return False
            row.active = False
        log.info(f"[registry] {subscriber_id} unsubscribed")
        return True

    def list_active(self):
        with self._session("list_active") as db:
            rows = db.execute(
                select(AlertSubscriptionRow)
                .where(AlertSubscriptionRow.active.is_(True))
                .order_by(AlertSubscriptionRow.subscriber_id)
            ).scalars().all()
            return [_to_model(r) for r in rows]

    def list_all(self):
        with self._session("list_all") as db:
            rows = db.execute(select(AlertSubscriptionRow).order_by(AlertSubscriptionRow.subscriber_id)).scalars().all()
            return [_to_model(r) for r in rows]

    def get(self, subscriber_id):
        with self._session("get") as db:
            row = db.get(AlertSubscriptionRow, subscriber_id)
            if row is None:
                raise SubscriptionNotFound(subscriber_id)
            return _to_model(row)

    def mark_alerted(self, subscriber_id, at):
        with self._lock_for(subscriber_id), self._session("mark_alerted") as db:
            result = db.execute(
                update(AlertSubscriptionRow)
                .where(AlertSubscriptionRow.subscriber_id == subscriber_id)
                .values(last_alert_sent_at=at)
            )
            if result.rowcount == 0:
                raise SubscriptionNotFound(subscriber_id)
