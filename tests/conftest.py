"""
Shared fixtures: a fake clock, weather samples and a stub gateway.
"""

import asyncio
from datetime import datetime, timedelta, timezone

import pytest

from backend.pestalert.clock import Clock
from backend.pestalert.config import Settings
from backend.pestalert.providers import ProviderOutcome
from backend.pestalert.schemas import Location, ProviderFailure, WeatherSample

ABIDJAN = Location(lat=5.36, lon=-4.0083, country="Côte d'Ivoire", region="Abidjan")


class FakeClock(Clock):
    """Time only moves when a test (or a sleeping job) moves it."""

    def __init__(self, start: datetime):
        self.current = start
        self.sleeps = []

    def now(self):
        return self.current

    def advance(self, **kwargs):
        self.current += timedelta(**kwargs)

    async def sleep(self, seconds):
        self.sleeps.append(seconds)
        self.current += timedelta(seconds=seconds)
        # yield to the loop so other tasks (and stop()) get a turn
        await asyncio.sleep(0)


class StubGateway:
    """Stands in for WeatherGateway with canned provider outcomes."""

    def __init__(self, primary, secondaries=None, primary_name="openepi"):
        self.primary = primary
        self.secondaries = list(secondaries or [])
        self.primary_name = primary_name
        self.secondary_calls = 0
        self.closed = False

    @property
    def secondary_names(self):
        return [o.provider for o in self.secondaries]

    def fetch_primary(self, lat, lon):
        return self.primary

    def fetch_secondaries(self, lat, lon):
        self.secondary_calls += 1
        return list(self.secondaries)

    def close(self):
        self.closed = True


def make_sample(provider="openepi", location=ABIDJAN, **overrides):
    values = dict(temperature_c=27.0, humidity_pct=70.0, rainfall_mm=10.0, wind_speed_mps=6.0, pressure_hpa=1010.0)
    values.update(overrides)
    return WeatherSample(location=location, provider_name=provider, **values)


def ok_outcome(sample):
    return ProviderOutcome(provider=sample.provider_name, sample=sample)


def failed_outcome(provider, reason="timed out after 30s"):
    return ProviderOutcome(provider=provider, failure=ProviderFailure(provider=provider, reason=reason))


DRY_CONDITIONS = dict(temperature_c=20.0, humidity_pct=40.0, rainfall_mm=0.0, wind_speed_mps=15.0, pressure_hpa=1025.0)
WET_CONDITIONS = dict(temperature_c=32.0, humidity_pct=90.0, rainfall_mm=80.0, wind_speed_mps=2.0, pressure_hpa=990.0)


@pytest.fixture
def rainy_now():
    return datetime(2024, 7, 15, 9, 0, tzinfo=timezone.utc)


@pytest.fixture
def fake_clock(rainy_now):
    return FakeClock(rainy_now)


@pytest.fixture
def settings(tmp_path):
    return Settings(database_url="sqlite://", outbox_dir=str(tmp_path / "outbox"))
