# backend/pestalert/history.py
"""
Pest-attack history lookup. The incident store belongs to another system;
the engine only reads days-since-last-confirmed-attack per subscriber.
"""

from abc import ABC, abstractmethod
from typing import Dict, Optional

from .schemas import PestHistory


class PestHistoryLookup(ABC):
    @abstractmethod
    def lookup(self, subscriber_id: str) -> PestHistory:
        ...


class StaticPestHistory(PestHistoryLookup):
    """Known values per subscriber, `default_days` for everyone else."""

    def __init__(self, default_days: int = 60, known: Optional[Dict[str, int]] = None):
        self.default_days = default_days
        self.known = dict(known or {})

    def lookup(self, subscriber_id: str) -> PestHistory:
        return PestHistory(
            subscriber_id=subscriber_id,
            days_since_last_confirmed_attack=self.known.get(subscriber_id, self.default_days),
        )
