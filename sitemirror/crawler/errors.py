"""
Exception hierarchy for the crawler.
"""


class CrawlerError(Exception):
    """Base class for crawler errors."""
    pass


class NavigationError(CrawlerError):
    """Page could not be reached or was blocked."""

    def __init__(self, url: str, message: str = ""):
        self.url = url
        super().__init__(message or f"Navigation failed: {url}")


class PersistenceError(CrawlerError):
    """Storage write failed."""
    pass


class AuthenticationError(CrawlerError):
    """Login through the configured form failed."""
    pass


class FrontierError(CrawlerError):
    """Frontier state could not be loaded or persisted."""
    pass


class ConfigError(CrawlerError):
    """Invalid or missing configuration."""
    pass


class UnexpectedError(CrawlerError):
    """Anything else escaping the crawl loop."""

    def __init__(self, cause: BaseException):
        self.cause = cause
        super().__init__(f"{type(cause).__name__}: {cause}")
