"""
Configuration management for the crawl engine.
"""

import yaml
import logging
from dataclasses import dataclass, field, fields, replace
from pathlib import Path
from typing import Any, Dict, FrozenSet, Optional, Tuple
from urllib.parse import urlparse


DEFAULT_USER_AGENT = "HydraCrawl/1.0 (+https://github.com/hydracrawl/hydracrawl)"

DEFAULT_SKIP_EXTENSIONS = (
    '.jpg', '.jpeg', '.png', '.gif', '.bmp', '.svg', '.webp',
    '.pdf', '.doc', '.docx', '.xls', '.xlsx', '.ppt', '.pptx',
    '.zip', '.rar', '.tar', '.gz', '.exe', '.dmg', '.iso',
    '.mp3', '.mp4', '.avi', '.mov', '.wmv', '.flv',
    '.css', '.js', '.ico', '.woff', '.woff2', '.ttf', '.eot'
)

EXCLUSION_MATCH_MODES = ('host', 'url')


@dataclass(frozen=True)
class CrawlerConfig:
    """Immutable settings for one crawl run."""
    seed_url: str
    max_depth: int = 3
    max_pages_per_domain: int = 1000
    min_workers: int = 5
    max_workers: int = 50
    error_threshold: int = 10
    fatal_error_threshold: int = 100
    excluded_domains: FrozenSet[str] = frozenset()
    request_timeout: float = 10.0
    retry_limit: int = 2
    retry_backoff: float = 0.5
    retry_backoff_max: float = 30.0
    round_budget: int = 20
    idle_wait: float = 0.1
    politeness_delay: float = 1.0
    user_agent: str = DEFAULT_USER_AGENT
    include_subdomains: bool = False
    exclusion_match: str = 'host'
    retryable_statuses: FrozenSet[int] = frozenset({429, 502, 503, 504})
    skip_extensions: Tuple[str, ...] = DEFAULT_SKIP_EXTENSIONS
    respect_robots_txt: bool = False
    max_content_size: int = 10 * 1024 * 1024

    def __post_init__(self):
        # YAML hands us lists; keep the run configuration hashable and immutable
        object.__setattr__(self, 'excluded_domains',
                           frozenset(d.strip().lower() for d in self.excluded_domains if d.strip()))
        object.__setattr__(self, 'retryable_statuses',
                           frozenset(int(s) for s in self.retryable_statuses))
        object.__setattr__(self, 'skip_extensions',
                           tuple(e.lower() for e in self.skip_extensions))


@dataclass
class OutputConfig:
    """Where visited URLs are recorded."""
    file: Optional[str] = None

    def resolve_path(self, seed_url: str) -> Path:
        """Explicit file, or crawled_urls_<host>.txt in the working directory."""
        if self.file:
            return Path(self.file)
        host = urlparse(seed_url if '://' in seed_url else f"https://{seed_url}").hostname
        return Path(f"crawled_urls_{host or 'output'}.txt")


@dataclass
class DedupConfig:
    """Dedup set backend selection."""
    backend: str = 'memory'
    key_prefix: str = 'hydracrawl:claimed'


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
    format: str = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    json: bool = False


@dataclass
class MonitoringConfig:
    """Configuration for monitoring."""
    prometheus_port: int = 8000
    metrics_enabled: bool = False


@dataclass
class Config:
    """Main configuration class."""
    crawler: CrawlerConfig
    output: OutputConfig = field(default_factory=OutputConfig)
    dedup: DedupConfig = field(default_factory=DedupConfig)
    redis: RedisConfig = field(default_factory=RedisConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)
    monitoring: MonitoringConfig = field(default_factory=MonitoringConfig)


_SECTIONS = {
    'crawler': CrawlerConfig,
    'output': OutputConfig,
    'dedup': DedupConfig,
    'redis': RedisConfig,
    'logging': LoggingConfig,
    'monitoring': MonitoringConfig,
}


def _build_section(name: str, cls, data: Optional[Dict[str, Any]]):
    data = data or {}
    if not isinstance(data, dict):
        raise ValueError(f"Configuration section '{name}' must be a mapping")
    known = {f.name for f in fields(cls)}
    unknown = set(data) - known
    if unknown:
        raise ValueError(f"Unknown keys in '{name}' section: {', '.join(sorted(unknown))}")
    return cls(**data)


def validate_config(config: Config):
    """Validate configuration values."""
    crawler = config.crawler

    if not crawler.seed_url or not crawler.seed_url.strip():
        raise ValueError("A seed URL must be provided")

    if crawler.max_depth < 0:
        raise ValueError("max_depth must be non-negative")

    if crawler.max_pages_per_domain < 1:
        raise ValueError("max_pages_per_domain must be at least 1")

    if crawler.min_workers < 1:
        raise ValueError("min_workers must be at least 1")

    if crawler.max_workers < crawler.min_workers:
        raise ValueError("max_workers must be greater than or equal to min_workers")

    if crawler.error_threshold < 1:
        raise ValueError("error_threshold must be at least 1")

    if crawler.fatal_error_threshold < crawler.error_threshold:
        raise ValueError("fatal_error_threshold must be greater than or equal to error_threshold")

    if crawler.request_timeout <= 0:
        raise ValueError("request_timeout must be positive")

    if crawler.retry_limit < 0:
        raise ValueError("retry_limit must be non-negative")

    if crawler.retry_backoff < 0 or crawler.retry_backoff_max < 0:
        raise ValueError("retry backoff values must be non-negative")

    if crawler.round_budget < 1:
        raise ValueError("round_budget must be at least 1")

    if crawler.politeness_delay < 0:
        raise ValueError("politeness_delay must be non-negative")

    if crawler.idle_wait <= 0:
        raise ValueError("idle_wait must be positive")

    if crawler.exclusion_match not in EXCLUSION_MATCH_MODES:
        raise ValueError(f"exclusion_match must be one of {', '.join(EXCLUSION_MATCH_MODES)}")

    if config.dedup.backend not in ['memory', 'redis']:
        raise ValueError("Dedup backend must be 'memory' or 'redis'")


def config_from_dict(config_data: Dict[str, Any]) -> Config:
    """Build and validate a Config from parsed YAML data."""
    if not isinstance(config_data, dict):
        raise ValueError("Configuration root must be a mapping")

    unknown = set(config_data) - set(_SECTIONS)
    if unknown:
        raise ValueError(f"Unknown configuration sections: {', '.join(sorted(unknown))}")

    if not config_data.get('crawler'):
        raise ValueError("Configuration must contain a 'crawler' section")

    sections = {
        name: _build_section(name, cls, config_data.get(name))
        for name, cls in _SECTIONS.items()
    }
    config = Config(**sections)
    validate_config(config)
    return config


def override_crawler(config: Config, **overrides) -> Config:
    """Return a copy of config with the given crawler keys replaced (None values ignored)."""
    changes = {k: v for k, v in overrides.items() if v is not None}
    if not changes:
        return config
    new_config = replace(config, crawler=replace(config.crawler, **changes))
    validate_config(new_config)
    return new_config


class ConfigManager:
    """Manages configuration loading and validation."""

    def __init__(self, config_path: str = "config.yaml"):
        self.config_path = Path(config_path)
        self._config: Optional[Config] = None

    def load_config(self) -> Config:
        """Load configuration from YAML file."""
        if not self.config_path.exists():
            raise FileNotFoundError(f"Configuration file not found: {self.config_path}")

        with open(self.config_path, 'r') as file:
            config_data = yaml.safe_load(file) or {}

        self._config = config_from_dict(config_data)
        logging.getLogger(__name__).info("Configuration validation passed")
        return self._config

    @property
    def config(self) -> Config:
        """Get the loaded configuration."""
        if not self._config:
            raise ValueError("Configuration not loaded. Call load_config() first.")
        return self._config


# Global config manager instance
config_manager = ConfigManager()


def get_config() -> Config:
    """Get the global configuration instance."""
    return config_manager.config


def load_config(config_path: str = "config.yaml") -> Config:
    """Load configuration from file."""
    global config_manager
    config_manager = ConfigManager(config_path)
    return config_manager.load_config()
