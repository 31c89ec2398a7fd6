"""
Configuration management for the site mirror crawler.
"""

import logging
import os
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any, Dict, Optional

import yaml

from ..crawler.errors import ConfigError

DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/124.0.0.0 Safari/537.36"
)


@dataclass
class CrawlerConfig:
    """Configuration for crawler behavior."""
    seed_url: Optional[str] = None
    max_depth: int = 3
    max_pages: int = 100
    wait_time: float = 5.0
    workers: int = 1
    capture_interactive_elements: bool = True


@dataclass
class BrowserConfig:
    """Configuration for the headless browser."""
    headless: bool = True
    user_agent: str = DEFAULT_USER_AGENT
    navigation_timeout: float = 60.0
    profile_path: Optional[str] = None
    viewport_width: int = 1280
    viewport_height: int = 800


@dataclass
class ProxyConfig:
    """Proxy server used by the browser."""
    host: str = ''
    port: Optional[int] = None
    username: Optional[str] = None
    password: Optional[str] = None

    @property
    def enabled(self) -> bool:
        return bool(self.host and self.port)


@dataclass
class LoginConfig:
    """Form login performed once before crawling."""
    login_url: Optional[str] = None
    username: Optional[str] = None
    password: Optional[str] = None
    username_selector: str = 'input[name="username"]'
    password_selector: str = 'input[name="password"]'
    submit_selector: str = 'button[type="submit"]'

    @property
    def enabled(self) -> bool:
        return bool(self.login_url and self.username and self.password)


@dataclass
class StorageConfig:
    """Configuration for mirrored content."""
    output_directory: str = 'downloads'
    download_resources: bool = True
    resource_timeout: float = 30.0


@dataclass
class FrontierConfig:
    """Frontier backend: in-memory or mirrored into Redis."""
    backend: str = 'memory'
    key_prefix: str = 'sitemirror'
    keep_on_complete: bool = False


@dataclass
class RedisConfig:
    """Configuration for Redis."""
    host: str = 'localhost'
    port: int = 6379
    db: int = 0
    password: Optional[str] = None


@dataclass
class LoggingConfig:
    """Configuration for logging."""
    level: str = 'INFO'
    file: str = 'logs/crawler.log'
    format: str = '%(asctime)s [%(levelname)s] %(name)s: %(message)s'
    json: bool = False


@dataclass
class MonitoringConfig:
    """Configuration for monitoring."""
    metrics_enabled: bool = False
    prometheus_port: int = 8000


@dataclass
class Config:
    """Main configuration class."""
    crawler: CrawlerConfig = field(default_factory=CrawlerConfig)
    browser: BrowserConfig = field(default_factory=BrowserConfig)
    proxy: ProxyConfig = field(default_factory=ProxyConfig)
    login: LoginConfig = field(default_factory=LoginConfig)
    storage: StorageConfig = field(default_factory=StorageConfig)
    frontier: FrontierConfig = field(default_factory=FrontierConfig)
    redis: RedisConfig = field(default_factory=RedisConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)
    monitoring: MonitoringConfig = field(default_factory=MonitoringConfig)


SECTION_CLASSES = {
    'crawler': CrawlerConfig,
    'browser': BrowserConfig,
    'proxy': ProxyConfig,
    'login': LoginConfig,
    'storage': StorageConfig,
    'frontier': FrontierConfig,
    'redis': RedisConfig,
    'logging': LoggingConfig,
    'monitoring': MonitoringConfig,
}


def _build_section(section_cls, data: Optional[Dict[str, Any]], name: str):
    if data is None:
        return section_cls()
    if not isinstance(data, dict):
        raise ConfigError(f"Section '{name}' must be a mapping")

    known = {f.name for f in fields(section_cls)}
    unknown = set(data) - known
    if unknown:
        raise ConfigError(f"Unknown keys in section '{name}': {', '.join(sorted(unknown))}")
    return section_cls(**data)


class ConfigManager:
    """Manages configuration loading and validation."""

    def __init__(self, config_path: Optional[str] = "config.yaml"):
        self.config_path = Path(config_path) if config_path else None
        self._config: Optional[Config] = None

    def load_config(self) -> Config:
        """Load configuration from YAML file, falling back to defaults per section."""
        config_data: Dict[str, Any] = {}
        if self.config_path is not None:
            if not self.config_path.exists():
                raise ConfigError(f"Configuration file not found: {self.config_path}")
            try:
                with open(self.config_path, 'r') as file:
                    config_data = yaml.safe_load(file) or {}
            except yaml.YAMLError as e:
                raise ConfigError(f"Invalid YAML in {self.config_path}: {e}") from e

        if not isinstance(config_data, dict):
            raise ConfigError("Configuration root must be a mapping")

        unknown = set(config_data) - set(SECTION_CLASSES)
        if unknown:
            raise ConfigError(f"Unknown configuration sections: {', '.join(sorted(unknown))}")

        try:
            self._config = Config(**{
                name: _build_section(cls, config_data.get(name), name)
                for name, cls in SECTION_CLASSES.items()
            })
        except TypeError as e:
            raise ConfigError(f"Invalid configuration: {e}") from e

        self._apply_environment()
        self.validate()
        return self._config

    def _apply_environment(self):
        """Proxy settings may come from the environment."""
        proxy = self._config.proxy
        proxy.host = proxy.host or os.environ.get('PROXY_HOST', '')
        if proxy.port is None and os.environ.get('PROXY_PORT'):
            try:
                proxy.port = int(os.environ['PROXY_PORT'])
            except ValueError:
                raise ConfigError("PROXY_PORT must be an integer")
        proxy.username = proxy.username or os.environ.get('PROXY_USERNAME') or None
        proxy.password = proxy.password or os.environ.get('PROXY_PASSWORD') or None

    def validate(self):
        """Validate configuration values."""
        if not self._config:
            raise ConfigError("Configuration not loaded")
        validate_config(self._config)

    @property
    def config(self) -> Config:
        """Get the loaded configuration."""
        if not self._config:
            raise ConfigError("Configuration not loaded. Call load_config() first.")
        return self._config


def validate_config(config: Config):
    """Raise ConfigError for out-of-range values."""
    crawler = config.crawler
    if crawler.max_depth < 0:
        raise ConfigError("max_depth must be non-negative")

    if crawler.max_pages < 1:
        raise ConfigError("max_pages must be at least 1")

    if crawler.wait_time < 0:
        raise ConfigError("wait_time must be non-negative")

    if crawler.workers < 1:
        raise ConfigError("workers must be at least 1")

    if config.browser.navigation_timeout <= 0:
        raise ConfigError("navigation_timeout must be positive")

    if config.frontier.backend not in ('memory', 'redis'):
        raise ConfigError("Frontier backend must be 'memory' or 'redis'")

    login = config.login
    if any((login.login_url, login.username, login.password)) and not login.enabled:
        raise ConfigError("login requires login_url, username and password")

    logging.getLogger(__name__).debug("Configuration validation passed")


def load_config(config_path: Optional[str] = "config.yaml") -> Config:
    """Load configuration from file. None loads the defaults."""
    return ConfigManager(config_path).load_config()
