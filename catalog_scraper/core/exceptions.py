"""Custom exception classes for the crawler."""

from typing import Optional


class CatalogScraperException(Exception):
    """Base exception for all crawler errors."""

    def __init__(self, message: str = "An unexpected error occurred"):
        self.message = message
        super().__init__(self.message)


class ConfigurationError(CatalogScraperException):
    """Raised when the crawl cannot be started at all (no seed task)."""

    def __init__(self, message: str):
        super().__init__(f"Invalid crawl configuration: {message}")


class FetchError(CatalogScraperException):
    """Raised when a single page or API request fails."""

    def __init__(self, url: str, message: str, status_code: Optional[int] = None):
        self.url = url
        self.status_code = status_code
        super().__init__(f"Fetch failed for {url}: {message}")


class BlockedResponseError(FetchError):
    """Raised on 403/429 responses. The session that got it is burned."""

    def __init__(self, url: str, status_code: int):
        super().__init__(url, f"blocked with HTTP {status_code}", status_code=status_code)


class ProxyAuthError(FetchError):
    """Raised when the proxy rejects our credentials (407/597)."""

    def __init__(self, url: str, message: str, status_code: Optional[int] = None):
        super().__init__(url, f"proxy authentication failed: {message}", status_code=status_code)


class TransientFetchError(FetchError):
    """Raised on timeouts, connection errors and 5xx responses."""
