"""Exception types shared across the ingestion and catalog layers."""

from typing import Any, Optional

__all__ = [
    "CottonFinderError",
    "ExtractionFailure",
    "FetchFailure",
    "StoreUnavailable",
    "ConfigurationError",
    "IngestionError",
]


class CottonFinderError(Exception):
    """Base class for all cotton finder errors."""
    pass


class ExtractionFailure(CottonFinderError):
    """A product page yielded no usable product name.

    Recoverable: the batch skips the URL and continues.
    """

    def __init__(self, url: str, reason: str = "no usable product name"):
        super().__init__(f"Extraction failed for {url}: {reason}")
        self.url = url
        self.reason = reason


class FetchFailure(CottonFinderError):
    """A page could not be fetched (network error, bad status, bad URL)."""

    def __init__(self, url: str, reason: str):
        super().__init__(f"Failed to fetch {url}: {reason}")
        self.url = url
        self.reason = reason


class StoreUnavailable(CottonFinderError):
    """The document store could not be reached or rejected the operation."""
    pass


class ConfigurationError(CottonFinderError):
    """Required configuration (e.g. API credentials) is missing."""
    pass


class IngestionError(CottonFinderError):
    """Every URL attempted in an ingestion run failed.

    The (empty-handed) result is attached so callers can still report counts.
    """

    def __init__(self, message: str, result: Optional[Any] = None):
        super().__init__(message)
        self.result = result
