# backend/pestalert/config.py
"""
Engine configuration.

Every threshold used by the plausibility filter, consensus engine, risk model,
advisory generator and scheduler lives here as a named field with a default.
Values are layered: built-in defaults, then an optional JSON file
(PESTALERT_CONFIG_PATH), then environment variables.
"""

import json
import os
from pathlib import Path
from typing import Any, Dict, List, Literal, Optional, Tuple

from pydantic import BaseModel, Field, model_validator

ROOT = Path(__file__).resolve().parents[2]
DEFAULT_DB_PATH = ROOT / "data" / "pestalert.sqlite3"
DEFAULT_OUTBOX_DIR = ROOT / "data" / "outbox"


class ProviderSettings(BaseModel):
    name: str
    base_url: str
    api_key: Optional[str] = None
    timeout_s: float = Field(default=15.0, gt=0)
    max_retries: int = Field(default=1, ge=0)
    primary: bool = False

    @property
    def enabled(self) -> bool:
        # secondaries without credentials are switched off, the primary always runs
        return self.primary or bool(self.api_key)


def _default_providers() -> List[ProviderSettings]:
    return [
        ProviderSettings(name="openepi", base_url="https://api.openepi.io", timeout_s=30.0, primary=True),
        ProviderSettings(name="openweathermap", base_url="https://api.openweathermap.org/data/2.5"),
        ProviderSettings(name="weatherapi", base_url="https://api.weatherapi.com/v1"),
    ]


class PlausibilityBounds(BaseModel):
    temperature_c: Tuple[float, float] = (-10.0, 60.0)
    humidity_pct: Tuple[float, float] = (0.0, 100.0)
    rainfall_mm: Tuple[float, float] = (0.0, 500.0)
    wind_speed_mps: Tuple[float, float] = (0.0, 200.0)


class FallbackWeather(BaseModel):
    temperature_c: float = 27.0
    humidity_pct: float = 65.0
    rainfall_mm: float = 5.0
    wind_speed_mps: float = 8.0
    pressure_hpa: float = 1013.0


class ConsensusConfig(BaseModel):
    primary_weight: float = Field(default=0.4, gt=0, lt=1)
    primary_only_confidence: float = 0.8
    fallback_confidence: float = 0.2
    validated_base_confidence: float = 0.6
    confidence_per_secondary: float = 0.15
    max_confidence: float = 0.95
    fallback: FallbackWeather = FallbackWeather()


class Step(BaseModel):
    threshold: float
    contribution: float = Field(ge=0.0, le=0.3)


class StepTable(BaseModel):
    """
    Step function over one input. With direction "above" the first step whose
    threshold the value strictly exceeds wins (highest threshold first); with
    "below" the first step whose threshold the value is strictly under wins
    (lowest threshold first). Anything else gets `base`.
    """
    direction: Literal["above", "below"]
    steps: List[Step]
    base: float = Field(ge=0.0, le=0.3)

    @model_validator(mode="after")
    def _check_order(self):
        ordered = self.ordered_steps()
        contributions = [s.contribution for s in ordered] + [self.base]
        if any(a < b for a, b in zip(contributions, contributions[1:])):
            raise ValueError("step contributions must not grow away from the risky end")
        return self

    def ordered_steps(self) -> List[Step]:
        return sorted(self.steps, key=lambda s: s.threshold, reverse=(self.direction == "above"))

    def evaluate(self, value: float) -> float:
        for step in self.ordered_steps():
            if self.direction == "above" and value > step.threshold:
                return step.contribution
            if self.direction == "below" and value < step.threshold:
                return step.contribution
        return self.base


def _above(*pairs, base):
    return StepTable(direction="above", steps=[Step(threshold=t, contribution=c) for t, c in pairs], base=base)


def _below(*pairs, base):
    return StepTable(direction="below", steps=[Step(threshold=t, contribution=c) for t, c in pairs], base=base)


class RiskModelConfig(BaseModel):
    temperature: StepTable = _above((28.0, 0.25), (25.0, 0.15), base=0.05)
    humidity: StepTable = _above((85.0, 0.30), (75.0, 0.20), (65.0, 0.10), base=0.05)
    rainfall: StepTable = _above((100.0, 0.20), (50.0, 0.15), (20.0, 0.10), base=0.05)
    history: StepTable = _below((15, 0.25), (30, 0.15), (60, 0.10), base=0.05)
    wind_speed: StepTable = _below((3.0, 0.15), (5.0, 0.10), base=0.05)
    pressure: StepTable = _below((995.0, 0.10), (1005.0, 0.05), base=0.02)
    season_weights: Dict[str, float] = {"rainy": 0.20, "transition": 0.10}
    season_base: float = 0.05

    critical_threshold: float = 0.85
    high_threshold: float = 0.65
    moderate_threshold: float = 0.45

    @model_validator(mode="after")
    def _check_levels(self):
        if not (self.moderate_threshold <= self.high_threshold <= self.critical_threshold):
            raise ValueError("level thresholds must satisfy moderate <= high <= critical")
        return self


class AdvisoryConfig(BaseModel):
    rainfall_caution_at: float = 0.15
    temperature_caution_at: float = 0.25
    humidity_ventilation_at: float = 0.30
    top_factors: int = Field(default=3, ge=1)
    product_name: str = "PestAlert"


class SchedulerConfig(BaseModel):
    general_interval_hours: float = Field(default=6.0, gt=0)
    critical_interval_hours: float = Field(default=2.0, gt=0)
    digest_hour_utc: int = Field(default=7, ge=0, le=23)
    cooldown_hours: float = Field(default=6.0, ge=0)
    general_pause_s: float = Field(default=1.0, ge=0)
    critical_pause_s: float = Field(default=0.5, ge=0)
    run_on_start: bool = False


class Settings(BaseModel):
    database_url: str = f"sqlite:///{DEFAULT_DB_PATH}"
    outbox_dir: str = str(DEFAULT_OUTBOX_DIR)
    webhook_url: Optional[str] = None
    webhook_timeout_s: float = 15.0
    default_history_days: int = Field(default=60, ge=0)
    providers: List[ProviderSettings] = Field(default_factory=_default_providers)
    plausibility: PlausibilityBounds = PlausibilityBounds()
    consensus: ConsensusConfig = ConsensusConfig()
    risk: RiskModelConfig = RiskModelConfig()
    advisory: AdvisoryConfig = AdvisoryConfig()
    scheduler: SchedulerConfig = SchedulerConfig()

    @model_validator(mode="after")
    def _one_primary(self):
        primaries = [p.name for p in self.providers if p.primary]
        if len(primaries) != 1:
            raise ValueError(f"exactly one primary provider is required, got {primaries}")
        return self

    def provider(self, name: str) -> ProviderSettings:
        for p in self.providers:
            if p.name == name:
                return p
        raise KeyError(name)


def _deep_merge(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    out = dict(base)
    for k, v in override.items():
        if isinstance(v, dict) and isinstance(out.get(k), dict):
            out[k] = _deep_merge(out[k], v)
        else:
            out[k] = v
    return out


def _env_overrides(data: Dict[str, Any]) -> Dict[str, Any]:
    env = os.environ
    providers = {p["name"]: p for p in data["providers"]}

    if env.get("OPENEPI_BASE_URL") and "openepi" in providers:
        providers["openepi"]["base_url"] = env["OPENEPI_BASE_URL"]
    if env.get("OPENEPI_TIMEOUT") and "openepi" in providers:
        # milliseconds, matching the OpenEPI client convention
        providers["openepi"]["timeout_s"] = int(env["OPENEPI_TIMEOUT"]) / 1000.0
    if env.get("OPENWEATHERMAP_API_KEY") and "openweathermap" in providers:
        providers["openweathermap"]["api_key"] = env["OPENWEATHERMAP_API_KEY"]
    if env.get("WEATHERAPI_KEY") and "weatherapi" in providers:
        providers["weatherapi"]["api_key"] = env["WEATHERAPI_KEY"]

    if env.get("PESTALERT_DATABASE_URL"):
        data["database_url"] = env["PESTALERT_DATABASE_URL"]
    if env.get("PESTALERT_OUTBOX_DIR"):
        data["outbox_dir"] = env["PESTALERT_OUTBOX_DIR"]
    if env.get("PESTALERT_WEBHOOK_URL"):
        data["webhook_url"] = env["PESTALERT_WEBHOOK_URL"]

    sched = data["scheduler"]
    if env.get("PESTALERT_GENERAL_SWEEP_HOURS"):
        sched["general_interval_hours"] = float(env["PESTALERT_GENERAL_SWEEP_HOURS"])
    if env.get("PESTALERT_CRITICAL_SWEEP_HOURS"):
        sched["critical_interval_hours"] = float(env["PESTALERT_CRITICAL_SWEEP_HOURS"])
    if env.get("PESTALERT_DIGEST_HOUR_UTC"):
        sched["digest_hour_utc"] = int(env["PESTALERT_DIGEST_HOUR_UTC"])
    if env.get("PESTALERT_COOLDOWN_HOURS"):
        sched["cooldown_hours"] = float(env["PESTALERT_COOLDOWN_HOURS"])
    if env.get("PESTALERT_RUN_ON_START"):
        sched["run_on_start"] = env["PESTALERT_RUN_ON_START"].lower() in ("1", "true", "yes")

    data["providers"] = list(providers.values())
    return data


def load_settings(path: Optional[Path] = None) -> Settings:
    data = Settings().model_dump()
    path = path or (Path(os.environ["PESTALERT_CONFIG_PATH"]) if os.getenv("PESTALERT_CONFIG_PATH") else None)
    if path is not None:
        with open(path, "r", encoding="utf-8") as f:
            file_data = json.load(f)
        # a provider list in the file replaces the defaults wholesale
        data = _deep_merge(data, file_data)
    return Settings.model_validate(_env_overrides(data))
