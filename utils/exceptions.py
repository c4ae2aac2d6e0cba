"""Custom exception hierarchy for ani-harvest.

Provides specific exception types for different failure scenarios,
making error handling more precise and testable.
"""


class AniHarvestError(Exception):
    """Base exception for all ani-harvest errors."""

    pass


class ScraperError(AniHarvestError):
    """Raised when a scrape stage fails to execute."""

    pass


class SearchError(ScraperError):
    """Raised when the episode page of an anime cannot be located."""

    pass


class ExtractionError(ScraperError):
    """Raised when the browser stage fails to produce a stream URL."""

    pass


class StreamNotFoundError(ExtractionError):
    """Raised when no selector or pattern matched a stream URL on the page."""

    pass


class BrowserError(AniHarvestError):
    """Raised when the headless browser cannot be launched or used."""

    pass


class CircuitOpenError(AniHarvestError):
    """Raised when the admission circuit breaker rejects new work.

    Callers should treat this as "retry later", not as missing content.
    """

    def __init__(self, message: str = "Scraper temporarily unavailable (circuit open)") -> None:
        super().__init__(message)


class ExtractorNotFoundError(ScraperError):
    """Raised when a requested extractor plugin is not available."""

    pass


class PersistenceError(AniHarvestError):
    """Raised when the row store fails to read or write."""

    pass


class JobNotFoundError(AniHarvestError):
    """Raised when a bulk job id has no stored progress record."""

    pass
