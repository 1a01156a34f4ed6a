"""
TCG Price Tracker: Error Taxonomy

Low-level components raise these; orchestration loops decide per call site
whether to catch-and-continue (per-group fan-out) or let them propagate.
"""

from __future__ import annotations

from datetime import date


class TCGPriceError(Exception):
    """Base class for every error raised by this package."""


class ConfigurationError(TCGPriceError):
    """A required setting is missing."""


# ---------------------------------------------------------------------------
# Upstream errors
# ---------------------------------------------------------------------------

class UpstreamError(TCGPriceError):
    """Any failure talking to tcgcsv.com."""


class FetchError(UpstreamError):
    """Non-2xx HTTP status or transport failure."""

    def __init__(
        self,
        url: str,
        status_code: int | None = None,
        reason: str = "",
    ) -> None:
        self.url = url
        self.status_code = status_code
        self.reason = reason
        if status_code is None:
            message = f"Request to {url} failed: {reason}"
        else:
            message = f"Failed to fetch {url}: {status_code} {reason}".rstrip()
        super().__init__(message)


class ApiError(UpstreamError):
    """The response envelope reported success=false."""

    def __init__(self, errors: list[str]) -> None:
        self.errors = list(errors)
        super().__init__(f"API returned errors: {', '.join(self.errors)}")


class ArchiveNotFoundError(UpstreamError):
    """No price archive published for the requested day (HTTP 404)."""

    def __init__(self, day: date) -> None:
        self.day = day
        super().__init__(f"Archive not found for {day.isoformat()}")


class ExtractionError(TCGPriceError):
    """A downloaded archive could not be unpacked."""


# ---------------------------------------------------------------------------
# Input / query errors
# ---------------------------------------------------------------------------

class InvalidDateError(TCGPriceError, ValueError):
    """Malformed or out-of-range date argument."""


class NotFoundError(TCGPriceError):
    """A requested record does not exist."""


class InvalidRangeError(TCGPriceError, ValueError):
    """Query start is not strictly before its end."""


class SyncStepError(TCGPriceError):
    """A nightly sync step failed; later steps were not run."""
