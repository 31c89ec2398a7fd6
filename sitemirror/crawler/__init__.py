"""
Crawler core components.
"""

from .errors import (
    AuthenticationError, ConfigError, CrawlerError, FrontierError,
    NavigationError, PersistenceError, UnexpectedError
)
from .frontier import Frontier, FrontierEntry, RedisFrontier
from .driver import (
    InteractiveElement, LoginCredentials, PageDriver, PlaywrightPageDriver,
    ProxySettings, RenderedPage
)

__all__ = [
    'CrawlerError', 'NavigationError', 'PersistenceError', 'AuthenticationError',
    'FrontierError', 'ConfigError', 'UnexpectedError',
    'Frontier', 'FrontierEntry', 'RedisFrontier',
    'PageDriver', 'PlaywrightPageDriver', 'RenderedPage', 'InteractiveElement',
    'LoginCredentials', 'ProxySettings'
]
