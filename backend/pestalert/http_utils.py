from __future__ import annotations

import random
import time
from typing import Any, Dict, Optional

import requests


RETRY_STATUSES = {429, 500, 502, 503, 504}


def _retry_delay_seconds(*, attempt: int, retry_after_header: str, max_sleep_s: float) -> float:
    raw = str(retry_after_header or "").strip()
    if raw:
        try:
            return max(0.0, min(max_sleep_s, float(raw)))
        except ValueError:
            pass
    backoff = min(max_sleep_s, 0.5 * (2 ** max(0, int(attempt))))
    return backoff + random.uniform(0.0, 0.25)


def get_json(
    session: requests.Session,
    url: str,
    *,
    params: Optional[Dict[str, object]] = None,
    headers: Optional[Dict[str, str]] = None,
    timeout_s: float = 15.0,
    max_retries: int = 1,
    max_sleep_s: float = 4.0,
) -> Dict[str, Any]:
    """
    GET a JSON object. Retries connection errors and 429/5xx up to
    `max_retries` times; any other non-2xx raises requests.HTTPError.
    """
    attempt = 0
    while True:
        try:
            resp = session.get(url, params=params, headers=headers, timeout=float(timeout_s))
        except requests.RequestException:
            if attempt >= int(max_retries):
                raise
            time.sleep(_retry_delay_seconds(attempt=attempt, retry_after_header="", max_sleep_s=max_sleep_s))
            attempt += 1
            continue

        if int(resp.status_code) in RETRY_STATUSES and attempt < int(max_retries):
            delay_s = _retry_delay_seconds(
                attempt=attempt,
                retry_after_header=str(resp.headers.get("Retry-After") or ""),
                max_sleep_s=max_sleep_s,
            )
            time.sleep(delay_s)
            attempt += 1
            continue

        resp.raise_for_status()
        data = resp.json()
        if not isinstance(data, dict):
            raise TypeError(f"expected JSON object from {url}, got {type(data).__name__}")
        return data


def post_json(
    session: requests.Session,
    url: str,
    payload: Dict[str, Any],
    *,
    timeout_s: float = 15.0,
) -> requests.Response:
    resp = session.post(url, json=payload, timeout=float(timeout_s))
    resp.raise_for_status()
    return resp
