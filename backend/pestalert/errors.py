# backend/pestalert/errors.py
"""
Error taxonomy for the alerting engine.

Provider and dispatch errors are recovered where they happen and reported as
typed outcomes; only RegistryUnavailable stops a sweep.
"""


class PestAlertError(Exception):
    """Base class for every error raised by the engine."""


class ProviderError(PestAlertError):
    def __init__(self, provider: str, reason: str):
        super().__init__(f"{provider}: {reason}")
        self.provider = provider
        self.reason = reason


class ProviderUnavailable(ProviderError):
    """Network failure, timeout, non-2xx status or malformed payload."""


class NoDataAvailable(PestAlertError):
    """Every provider failed for a coordinate."""

    def __init__(self, lat: float, lon: float):
        super().__init__(f"no weather data available for ({lat}, {lon})")
        self.lat = lat
        self.lon = lon


class SubscriptionNotFound(PestAlertError):
    def __init__(self, subscriber_id: str):
        super().__init__(f"subscription not found: {subscriber_id}")
        self.subscriber_id = subscriber_id


class RegistryUnavailable(PestAlertError):
    """The subscription store could not be read or written."""


class DispatchFailed(PestAlertError):
    def __init__(self, contact: str, reason: str):
        super().__init__(f"dispatch to {contact} failed: {reason}")
        self.contact = contact
        self.reason = reason
