# backend/pestalert/providers.py
"""
Weather providers adapter.

Each provider turns its own payload shape and units into a WeatherSample.
Incomplete or malformed payloads raise ProviderUnavailable; nothing is filled
in with made-up values. The gateway runs every call on a shared thread pool
with a per-provider deadline so a slow source cannot hold up the others.
"""

import math
import time
from concurrent.futures import ThreadPoolExecutor, TimeoutError as FutureTimeout
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

import requests

from .config import ProviderSettings, Settings
from .errors import ProviderError, ProviderUnavailable
from .http_utils import get_json
from .logging_setup import logger
from .schemas import Location, ProviderFailure, WeatherSample

log = logger.getChild("providers")

KPH_TO_MPS = 1 / 3.6
USER_AGENT = "PestAlert-Predictive/1.0"


def _number(value: Any, field: str) -> float:
    if value is None or isinstance(value, bool):
        raise ValueError(f"missing numeric field '{field}'")
    try:
        out = float(value)
    except (TypeError, ValueError):
        raise ValueError(f"non-numeric field '{field}': {value!r}")
    if not math.isfinite(out):
        raise ValueError(f"non-finite field '{field}': {value!r}")
    return out


def _text(value: Any, default: str = "Unknown") -> str:
    if value is None or str(value).strip() == "":
        return default
    return str(value)


class WeatherProvider:
    """Base adapter: subclasses implement `_request` and `_parse`."""

    def __init__(self, settings: ProviderSettings, session: Optional[requests.Session] = None):
        self.settings = settings
        self.session = session or requests.Session()
        self.session.headers.setdefault("User-Agent", USER_AGENT)

    @property
    def name(self) -> str:
        return self.settings.name

    def fetch(self, lat: float, lon: float) -> WeatherSample:
        try:
            payload = self._request(lat, lon)
        except (requests.RequestException, TypeError, ValueError) as e:
            raise ProviderUnavailable(self.name, f"request failed: {e}") from e
        try:
            return self._parse(payload, lat, lon)
        except (KeyError, TypeError, ValueError) as e:
            raise ProviderUnavailable(self.name, f"malformed payload: {e}") from e

    def _get(self, path: str, params: Dict[str, object]) -> Dict[str, Any]:
        return get_json(
            self.session,
            self.settings.base_url.rstrip("/") + path,
            params=params,
            headers={"Accept": "application/json"},
            timeout_s=self.settings.timeout_s,
            max_retries=self.settings.max_retries,
        )

    def _request(self, lat: float, lon: float) -> Dict[str, Any]:
        raise NotImplementedError

    def _parse(self, payload: Dict[str, Any], lat: float, lon: float) -> WeatherSample:
        raise NotImplementedError


class OpenEPIProvider(WeatherProvider):
    def _request(self, lat, lon):
        return self._get("/weather/current", {"lat": lat, "lon": lon})

    def _parse(self, payload, lat, lon):
        if not payload.get("success"):
            raise ValueError("response not marked successful")
        data = payload["data"]
        return WeatherSample(
            temperature_c=_number(data.get("temperature"), "temperature"),
            humidity_pct=_number(data.get("humidity"), "humidity"),
            rainfall_mm=_number(data.get("rainfall"), "rainfall"),
            wind_speed_mps=_number(data.get("windSpeed"), "windSpeed"),
            pressure_hpa=_number(data.get("pressure"), "pressure"),
            location=Location(lat=lat, lon=lon, country=_text(data.get("country")), region=_text(data.get("region"))),
            provider_name=self.name,
        )


class OpenWeatherMapProvider(WeatherProvider):
    def _request(self, lat, lon):
        return self._get("/weather", {"lat": lat, "lon": lon, "appid": self.settings.api_key, "units": "metric"})

    def _parse(self, payload, lat, lon):
        main = payload["main"]
        # OpenWeatherMap omits the "rain" block entirely when it is dry
        rain = payload.get("rain") or {}
        return WeatherSample(
            temperature_c=_number(main.get("temp"), "main.temp"),
            humidity_pct=_number(main.get("humidity"), "main.humidity"),
            rainfall_mm=_number(rain.get("1h", 0.0), "rain.1h"),
            wind_speed_mps=_number(payload["wind"].get("speed"), "wind.speed"),
            pressure_hpa=_number(main.get("pressure"), "main.pressure"),
            location=Location(
                lat=lat, lon=lon,
                country=_text((payload.get("sys") or {}).get("country")),
                region=_text(payload.get("name")),
            ),
            provider_name=self.name,
        )


class WeatherAPIProvider(WeatherProvider):
    def _request(self, lat, lon):
        return self._get("/current.json", {"key": self.settings.api_key, "q": f"{lat},{lon}"})

    def _parse(self, payload, lat, lon):
        current = payload["current"]
        place = payload.get("location") or {}
        return WeatherSample(
            temperature_c=_number(current.get("temp_c"), "current.temp_c"),
            humidity_pct=_number(current.get("humidity"), "current.humidity"),
            rainfall_mm=_number(current.get("precip_mm"), "current.precip_mm"),
            wind_speed_mps=_number(current.get("wind_kph"), "current.wind_kph") * KPH_TO_MPS,
            pressure_hpa=_number(current.get("pressure_mb"), "current.pressure_mb"),
            location=Location(lat=lat, lon=lon, country=_text(place.get("country")), region=_text(place.get("region"))),
            provider_name=self.name,
        )


PROVIDER_CLASSES = {
    "openepi": OpenEPIProvider,
    "openweathermap": OpenWeatherMapProvider,
    "weatherapi": WeatherAPIProvider,
}


@dataclass(frozen=True)
class ProviderOutcome:
    provider: str
    sample: Optional[WeatherSample] = None
    failure: Optional[ProviderFailure] = None

    @property
    def ok(self) -> bool:
        return self.sample is not None


class WeatherGateway:
    """
    Holds one primary provider plus any secondaries whose credentials are
    configured. Calls are bounded by each provider's own timeout.
    """

    def __init__(self, providers: List[WeatherProvider], max_workers: int = 4):
        primaries = [p for p in providers if p.settings.primary]
        if len(primaries) != 1:
            raise ValueError("exactly one primary provider is required")
        self._primary = primaries[0]
        self._secondaries = [p for p in providers if not p.settings.primary and p.settings.enabled]
        for p in providers:
            if not p.settings.enabled:
                log.info(f"[providers] {p.name} disabled (no credentials configured)")
        self._by_name = {p.name: p for p in [self._primary] + self._secondaries}
        self._executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="weather")

    @classmethod
    def from_settings(cls, settings: Settings, session: Optional[requests.Session] = None) -> "WeatherGateway":
        providers = []
        for ps in settings.providers:
            klass = PROVIDER_CLASSES.get(ps.name)
            if klass is None:
                raise ValueError(f"unknown weather provider '{ps.name}'")
            providers.append(klass(ps, session=session))
        return cls(providers)

    @property
    def primary_name(self) -> str:
        return self._primary.name

    @property
    def secondary_names(self) -> List[str]:
        return [p.name for p in self._secondaries]

    def fetch(self, provider_id: str, lat: float, lon: float) -> WeatherSample:
        provider = self._by_name.get(provider_id)
        if provider is None:
            raise ProviderUnavailable(provider_id, "provider not configured")
        outcome = self._collect([provider], lat, lon)[0]
        if outcome.sample is None:
            raise ProviderUnavailable(provider_id, outcome.failure.reason)
        return outcome.sample

    def fetch_primary(self, lat: float, lon: float) -> ProviderOutcome:
        return self._collect([self._primary], lat, lon)[0]

    def fetch_secondaries(self, lat: float, lon: float) -> List[ProviderOutcome]:
        return self._collect(self._secondaries, lat, lon)

    def _collect(self, providers: List[WeatherProvider], lat: float, lon: float) -> List[ProviderOutcome]:
        started = time.monotonic()
        pending = [(p, self._executor.submit(p.fetch, lat, lon)) for p in providers]
        outcomes = []
        for provider, future in pending:
            remaining = max(0.0, started + provider.settings.timeout_s - time.monotonic())
            try:
                sample = future.result(timeout=remaining)
            except FutureTimeout:
                future.cancel()
                reason = f"timed out after {provider.settings.timeout_s:.0f}s"
            except ProviderError as e:
                reason = e.reason
            except Exception as e:
                log.error(f"[providers] unexpected error from {provider.name}: {e}", exc_info=True)
                reason = f"unexpected error: {e}"
            else:
                outcomes.append(ProviderOutcome(provider=provider.name, sample=sample))
                continue
            log.warning(f"[providers] {provider.name} unavailable for ({lat}, {lon}): {reason}")
            outcomes.append(ProviderOutcome(provider=provider.name, failure=ProviderFailure(provider=provider.name, reason=reason)))
        return outcomes

    def close(self):
        self._executor.shutdown(wait=False, cancel_futures=True)
        for p in self._by_name.values():
            p.session.close()
