"""Custom exception hierarchy for the Preço da Hora acquisition service.

Exceptions fall into three groups by how far they travel:
    - Fatal: BrowserInitializationError and LoggingInitializationError stop
      the process.
    - Reported: QueryValidationError becomes a client error, NavigationError
      becomes a failure envelope.
    - Soft: SelectorNotFoundError, EmptyResultError and GeocodingError never
      leave the component that raised them; they advance a fallback instead.
"""

from datetime import UTC, datetime
from typing import Any


class PrecoHoraError(Exception):
    """Base exception for all application errors.

    Attributes:
        message: Human-readable error description.
        context: Optional dictionary with additional debugging information.
        timestamp: UTC timestamp when the exception was raised.
    """

    def __init__(self, message: str, context: dict[str, Any] | None = None) -> None:
        self.message = message
        self.context = context or {}
        self.timestamp = datetime.now(UTC)
        super().__init__(self._format_message())

    def _format_message(self) -> str:
        """Format exception message with context for logging."""
        base = f"[{self.timestamp.isoformat()}] {self.message}"
        if self.context:
            context_str = ", ".join(f"{k}={v}" for k, v in self.context.items())
            return f"{base} | Context: {context_str}"
        return base


class QueryValidationError(PrecoHoraError):
    """Raised when caller input is malformed.

    Raised before any browser work starts and surfaced as a client error.
    """

    def __init__(self, field: str, value: Any, reason: str) -> None:
        super().__init__(message=reason, context={"field": field, "value": value})
        self.field = field


class BrowserInitializationError(PrecoHoraError):
    """Raised when the browser instance fails to launch.

    Common causes include missing Playwright browsers, resource constraints,
    or conflicting browser processes. The service cannot run without one.
    """

    def __init__(self, reason: str, browser_type: str = "chromium") -> None:
        super().__init__(
            message=f"Failed to initialize {browser_type} browser: {reason}",
            context={"browser_type": browser_type, "reason": reason},
        )


class NavigationError(PrecoHoraError):
    """Raised when page navigation fails.

    This may indicate network issues, invalid URLs, or blocked requests.
    Aborts the extraction for one request; it is not retried.
    """

    def __init__(self, url: str, reason: str, status_code: int | None = None) -> None:
        super().__init__(
            message=f"Navigation to '{url}' failed: {reason}",
            context={"url": url, "reason": reason, "status_code": status_code},
        )


class ExtractionError(PrecoHoraError):
    """Raised when data extraction from the page fails."""

    def __init__(self, selector: str, url: str, reason: str) -> None:
        super().__init__(
            message=f"Extraction failed for selector '{selector}': {reason}",
            context={"selector": selector, "url": url, "reason": reason},
        )


class SelectorNotFoundError(ExtractionError):
    """Raised when a selector strategy matches no elements.

    Never surfaced to callers: the strategy cascade moves on to the next rung.
    """

    def __init__(self, selector: str, url: str) -> None:
        super().__init__(
            selector=selector,
            url=url,
            reason="Selector matched zero elements",
        )


class EmptyResultError(ExtractionError):
    """Raised when a results page yields no qualifying station cards.

    Triggers the fallback extraction rung; not an error to the caller.
    """

    def __init__(self, selector: str, url: str, search_term: str) -> None:
        super().__init__(
            selector=selector,
            url=url,
            reason=f"No station cards found for '{search_term}'",
        )
        self.search_term = search_term


class GeocodingError(PrecoHoraError):
    """Raised when a postal code cannot be resolved.

    Absorbed by the geocoding service, which degrades to default coordinates.
    """

    def __init__(self, query: str, reason: str) -> None:
        super().__init__(
            message=f"Could not resolve '{query}': {reason}",
            context={"query": query, "reason": reason},
        )


class LoggingInitializationError(PrecoHoraError):
    """Raised when the logging system fails to initialize.

    This is a startup-blocking error - the application cannot proceed
    without a functioning logging infrastructure.
    """

    def __init__(self, log_dir: str, reason: str) -> None:
        super().__init__(
            message=f"Failed to initialize logging at '{log_dir}': {reason}",
            context={"log_dir": log_dir, "reason": reason},
        )
