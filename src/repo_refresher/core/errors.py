"""Error taxonomy for record refresh."""

from typing import Optional


class RefreshError(Exception):
    """Base error for the refresh pipeline."""


class FatalFetchError(RefreshError):
    """Primary metadata could not be fetched; the record cannot be updated."""

    def __init__(self, full_name: str, reason: str) -> None:
        super().__init__(f"Failed to fetch primary metadata for {full_name}: {reason}")
        self.full_name = full_name
        self.reason = reason


class StepFailure(RefreshError):
    """An optional enrichment step failed."""

    def __init__(self, step: str, reason: str) -> None:
        super().__init__(f"Step '{step}' failed: {reason}")
        self.step = step
        self.reason = reason


class PersistenceError(RefreshError):
    """Writing or re-reading the merged record failed."""


class DispatchError(RefreshError):
    """Webhook delivery to one destination failed."""

    def __init__(self, destination: str, reason: str, status_code: Optional[int] = None) -> None:
        super().__init__(f"Delivery to {destination} failed: {reason}")
        self.destination = destination
        self.reason = reason
        self.status_code = status_code
