# backend/pestalert/transport.py
"""
Boundary to the outbound messaging transport. Delivery itself is the
transport's job; `send` either hands the message over or raises
DispatchFailed.
"""

import json
import uuid
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

import requests

from .errors import DispatchFailed
from .http_utils import post_json
from .logging_setup import logger

log = logger.getChild("transport")


class MessageTransport(ABC):
    @abstractmethod
    def send(self, contact_address: str, message: str) -> None:
        ...


class WebhookTransport(MessageTransport):
    """POSTs {"to", "message"} to a messaging gateway."""

    def __init__(self, url: str, timeout_s: float = 15.0, session: Optional[requests.Session] = None):
        self.url = url
        self.timeout_s = timeout_s
        self.session = session or requests.Session()

    def send(self, contact_address, message):
        try:
            post_json(self.session, self.url, {"to": contact_address, "message": message}, timeout_s=self.timeout_s)
        except requests.RequestException as e:
            raise DispatchFailed(contact_address, str(e)) from e


class OutboxTransport(MessageTransport):
    """Writes each alert as a JSON file for a separate sender to pick up."""

    def __init__(self, out_dir: str):
        self.out_dir = Path(out_dir)

    def send(self, contact_address, message):
        alert_id = uuid.uuid4().hex[:12]
        out_path = self.out_dir / f"alert_{alert_id}.json"
        payload = {
            "alert_id": alert_id,
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "to": contact_address,
            "message": message,
        }
        try:
            self.out_dir.mkdir(parents=True, exist_ok=True)
            with open(out_path, "w", encoding="utf-8") as f:
                json.dump(payload, f, ensure_ascii=False, indent=2)
        except OSError as e:
            raise DispatchFailed(contact_address, str(e)) from e
        log.info(f"[transport] alert saved {out_path}")
