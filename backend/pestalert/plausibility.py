# backend/pestalert/plausibility.py
"""
Physical bounds check for weather readings. A suspicious primary reading is
what justifies paying for the secondary-provider fan-out.
"""

from typing import List, Optional

from .config import PlausibilityBounds
from .schemas import WeatherSample

DEFAULT_BOUNDS = PlausibilityBounds()

_CHECKED_FIELDS = ("temperature_c", "humidity_pct", "rainfall_mm", "wind_speed_mps")


def implausible_fields(sample: WeatherSample, bounds: PlausibilityBounds = DEFAULT_BOUNDS) -> List[str]:
    out = []
    for field in _CHECKED_FIELDS:
        low, high = getattr(bounds, field)
        value = getattr(sample, field)
        # NaN fails both comparisons, so test for the inside instead
        if not (low <= value <= high):
            out.append(field)
    return out


def is_suspicious(sample: Optional[WeatherSample], bounds: PlausibilityBounds = DEFAULT_BOUNDS) -> bool:
    if sample is None:
        return True
    return bool(implausible_fields(sample, bounds))
