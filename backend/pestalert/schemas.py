from datetime import datetime
from enum import Enum
from pydantic import BaseModel, ConfigDict, Field
from typing import Dict, List, Optional


class RiskLevel(str, Enum):
    LOW = "LOW"
    MODERATE = "MODERATE"
    HIGH = "HIGH"
    CRITICAL = "CRITICAL"

    @property
    def rank(self) -> int:
        return _LEVEL_ORDER.index(self)

    def at_least(self, other: "RiskLevel") -> bool:
        return self.rank >= RiskLevel(other).rank


_LEVEL_ORDER = [RiskLevel.LOW, RiskLevel.MODERATE, RiskLevel.HIGH, RiskLevel.CRITICAL]


class Severity(str, Enum):
    """Minimum level a subscriber wants to hear about."""
    MODERATE = "MODERATE"
    HIGH = "HIGH"
    CRITICAL = "CRITICAL"

    def as_level(self) -> RiskLevel:
        return RiskLevel(self.value)


class SourceLabel(str, Enum):
    PRIMARY_ONLY = "PrimaryOnly"
    VALIDATED = "Validated"
    FALLBACK = "Fallback"


class Location(BaseModel):
    model_config = ConfigDict(frozen=True)

    lat: float = Field(ge=-90, le=90)
    lon: float = Field(ge=-180, le=180)
    country: str = "Unknown"
    region: str = "Unknown"


class WeatherSample(BaseModel):
    model_config = ConfigDict(frozen=True)

    temperature_c: float
    humidity_pct: float
    rainfall_mm: float
    wind_speed_mps: float
    pressure_hpa: float
    location: Location
    provider_name: str


class ProviderFailure(BaseModel):
    model_config = ConfigDict(frozen=True)

    provider: str
    reason: str


class ConsensusResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    sample: WeatherSample
    confidence: float = Field(ge=0.0, le=1.0)
    source_label: SourceLabel
    providers_used: List[str] = []
    errors: List[ProviderFailure] = []


class RiskFactors(BaseModel):
    model_config = ConfigDict(frozen=True)

    temperature: float
    humidity: float
    rainfall: float
    season: float
    history: float
    wind_speed: float
    pressure: float

    def total(self) -> float:
        return sum(self.as_dict().values())

    def as_dict(self) -> Dict[str, float]:
        return {
            "temperature": self.temperature,
            "humidity": self.humidity,
            "rainfall": self.rainfall,
            "season": self.season,
            "history": self.history,
            "wind_speed": self.wind_speed,
            "pressure": self.pressure,
        }


class RiskAssessment(BaseModel):
    model_config = ConfigDict(frozen=True)

    score: float
    level: RiskLevel
    confidence: float
    source_label: SourceLabel
    season: str
    factors: RiskFactors
    recommendations: List[str]
    message: str
    weather: WeatherSample
    evaluated_at: datetime


class AlertSubscription(BaseModel):
    model_config = ConfigDict(frozen=True)

    subscriber_id: str
    contact_address: str
    location: Location
    min_severity: Severity = Severity.MODERATE
    last_alert_sent_at: Optional[datetime] = None
    active: bool = True
    created_at: Optional[datetime] = None


class PestHistory(BaseModel):
    model_config = ConfigDict(frozen=True)

    subscriber_id: str
    days_since_last_confirmed_attack: int = Field(ge=0)


# ----- API payloads -----

class SubscribeRequest(BaseModel):
    subscriber_id: str = Field(min_length=1)
    contact_address: str = Field(min_length=1)
    lat: float = Field(ge=-90, le=90)
    lon: float = Field(ge=-180, le=180)
    country: str = "Unknown"
    region: str = "Unknown"
    min_severity: Severity = Severity.MODERATE


class ForceEvaluateRequest(BaseModel):
    subscriber_id: str = Field(min_length=1)
    lat: float = Field(ge=-90, le=90)
    lon: float = Field(ge=-180, le=180)
    validate_sources: bool = False


class UnsubscribeResponse(BaseModel):
    subscriber_id: str
    unsubscribed: bool


class SubscriptionStats(BaseModel):
    total: int
    active: int
    by_severity: Dict[str, int]


class DigestReport(BaseModel):
    generated_at: datetime
    total: int
    active: int
    inactive: int
    by_severity: Dict[str, int]
    alerted_last_24h: int
    never_alerted: int
