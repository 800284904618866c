from typing import Any, Dict, Optional


# Custom Exception Classes
class ScraperError(Exception):
    """Base exception for all scraper errors"""

    def __init__(self, message: str, context: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.context = context or {}


class ParsingError(ScraperError):
    """Errors during HTML/data parsing"""

    pass


class InvalidURLError(ParsingError):
    """A link or checkpoint line that is not an absolute http(s) URL"""

    def __init__(self, url: str, reason: str = "not an absolute http(s) URL"):
        super().__init__(f"Invalid URL {url!r}: {reason}", {"url": url})
        self.url = url


class ExtractionError(ScraperError):
    """Errors during data extraction"""

    pass


class ConfigurationError(ScraperError):
    """Configuration-related errors"""

    pass


class AlreadyVisitedError(ScraperError):
    """Raised by the collector when a URL was already scheduled"""

    def __init__(self, url: str):
        super().__init__(f"URL already visited: {url}", {"url": url})
        self.url = url


class NetworkError(ScraperError):
    """Network and connectivity issues"""

    pass


class VisitError(NetworkError):
    """A fetched page failed at the transport or HTTP level.

    ``status_code`` is 0 when no HTTP response was received.
    """

    def __init__(self, url: str, status_code: int, cause: Optional[BaseException] = None):
        message = f"Visiting {url} failed (status {status_code})"
        if cause is not None:
            message = f"{message}: {cause}"
        super().__init__(message, {"url": url, "status_code": status_code})
        self.url = url
        self.status_code = status_code
        self.cause = cause


class StallError(NetworkError):
    """Connection-level failure (timeout, DNS, refused). Recoverable by retry."""

    def __init__(self, url: str, cause: Optional[BaseException] = None):
        message = f"Connection stalled while visiting {url}"
        if cause is not None:
            message = f"{message}: {cause}"
        super().__init__(message, {"url": url, "status_code": 0})
        self.url = url
        self.cause = cause
