"""
Subscription registry against an in-memory SQLite store.
"""

import threading
from datetime import datetime, timedelta, timezone
import unittest.mock as mock

import pytest
from sqlalchemy.exc import OperationalError

from backend.pestalert.db_models import make_session_factory
from backend.pestalert.errors import RegistryUnavailable, SubscriptionNotFound
from backend.pestalert.registry import SqlSubscriptionRepository
from backend.pestalert.schemas import Location, Severity

BAMAKO = Location(lat=12.6392, lon=-8.0029, country="Mali", region="Bamako")
LOME = Location(lat=6.1375, lon=1.2123, country="Togo", region="Maritime")


@pytest.fixture
def registry():
    return SqlSubscriptionRepository(make_session_factory("sqlite://"))


class TestSubscribe:
    def test_subscribe_and_get(self, registry):
        sub = registry.subscribe("farmer-1", "+22370000000", BAMAKO, Severity.HIGH)
        assert sub.active
        assert sub.min_severity == Severity.HIGH
        assert sub.last_alert_sent_at is None
        fetched = registry.get("farmer-1")
        assert fetched.location == BAMAKO
        assert fetched.contact_address == "+22370000000"

    def test_resubscribe_updates_same_record(self, registry):
        registry.subscribe("farmer-1", "+22370000000", BAMAKO)
        registry.unsubscribe("farmer-1")
        sub = registry.subscribe("farmer-1", "+22890000000", LOME, Severity.CRITICAL)
        assert sub.active
        assert sub.location == LOME
        assert len(registry.list_all()) == 1

    def test_get_unknown(self, registry):
        with pytest.raises(SubscriptionNotFound):
            registry.get("ghost")


class TestUnsubscribe:
    def test_idempotent(self, registry):
        registry.subscribe("farmer-1", "+22370000000", BAMAKO)
        assert registry.unsubscribe("farmer-1") is True
        assert registry.unsubscribe("farmer-1") is False
        assert registry.list_active() == []
        assert not registry.get("farmer-1").active

    def test_unknown_subscriber(self, registry):
        assert registry.unsubscribe("ghost") is False


class TestListing:
    def test_list_active_excludes_inactive(self, registry):
        registry.subscribe("b", "+2", BAMAKO)
        registry.subscribe("a", "+1", LOME)
        registry.subscribe("c", "+3", LOME)
        registry.unsubscribe("c")
        assert [s.subscriber_id for s in registry.list_active()] == ["a", "b"]
        assert [s.subscriber_id for s in registry.list_all()] == ["a", "b", "c"]

    def test_stats(self, registry):
        registry.subscribe("a", "+1", LOME, Severity.MODERATE)
        registry.subscribe("b", "+2", LOME, Severity.CRITICAL)
        registry.subscribe("c", "+3", LOME, Severity.CRITICAL)
        registry.unsubscribe("c")
        stats = registry.stats()
        assert stats.total == 3
        assert stats.active == 2
        assert stats.by_severity == {"MODERATE": 1, "HIGH": 0, "CRITICAL": 1}


class TestMarkAlerted:
    def test_timestamp_round_trips_as_utc(self, registry):
        registry.subscribe("farmer-1", "+22370000000", BAMAKO)
        at = datetime(2024, 7, 15, 9, 30, tzinfo=timezone.utc)
        registry.mark_alerted("farmer-1", at)
        assert registry.get("farmer-1").last_alert_sent_at == at

    def test_unknown_subscriber(self, registry):
        with pytest.raises(SubscriptionNotFound):
            registry.mark_alerted("ghost", datetime.now(timezone.utc))

    def test_concurrent_writes_keep_one_of_them(self, registry):
        registry.subscribe("farmer-1", "+22370000000", BAMAKO)
        base = datetime(2024, 7, 15, tzinfo=timezone.utc)
        stamps = [base + timedelta(minutes=i) for i in range(8)]
        threads = [threading.Thread(target=registry.mark_alerted, args=("farmer-1", s)) for s in stamps]
        for t in threads:
            t.start()
        for t in threads:
            t.join()
        assert registry.get("farmer-1").last_alert_sent_at in stamps


class TestStoreFailure:
    def test_database_errors_become_registry_unavailable(self):
        session = mock.Mock()
        session.execute.side_effect = OperationalError("SELECT", {}, Exception("disk I/O error"))
        registry = SqlSubscriptionRepository(lambda: session)
        with pytest.raises(RegistryUnavailable):
            registry.list_active()
        session.rollback.assert_called_once()
        session.close.assert_called_once()
