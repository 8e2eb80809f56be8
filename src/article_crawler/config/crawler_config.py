"""
Crawler Configuration Management - Centralized configuration loading and validation.
Supports loading from YAML files with validation and defaults.
"""

import logging
import os
import yaml
from typing import Dict, Any, Optional, Tuple
from pathlib import Path
from dataclasses import asdict, dataclass, field, fields, replace
from urllib.parse import urlsplit

from ..errors import InvalidUrlError


class ConfigurationError(Exception):
    """Raised when configuration is invalid."""
    pass


def default_workers() -> int:
    """Worker count derived from host parallelism, as the stdlib thread pool does."""
    return min(32, (os.cpu_count() or 1) + 4)


@dataclass(frozen=True)
class ProxyConfig:
    """A validated proxy descriptor: ``scheme://[user:pass@]host:port``."""
    scheme: str
    host: str
    port: int
    username: Optional[str] = None
    password: Optional[str] = None

    SUPPORTED_SCHEMES = ('http', 'https', 'socks5')

    @classmethod
    def parse(cls, descriptor: str) -> 'ProxyConfig':
        """
        Parse and validate a proxy descriptor.

        Raises:
            InvalidUrlError: If the scheme is unsupported or host/port are missing
        """
        if not descriptor or not isinstance(descriptor, str):
            raise InvalidUrlError(f"Invalid proxy descriptor: {descriptor!r}", descriptor or None)

        try:
            parts = urlsplit(descriptor.strip())
            port = parts.port
        except ValueError as e:
            raise InvalidUrlError(f"Invalid proxy descriptor {descriptor!r}: {e}", descriptor)

        scheme = parts.scheme.lower()
        if scheme not in cls.SUPPORTED_SCHEMES:
            raise InvalidUrlError(
                f"Unsupported proxy scheme {scheme or '(none)'!r}, "
                f"expected one of {', '.join(cls.SUPPORTED_SCHEMES)}",
                descriptor
            )
        if not parts.hostname:
            raise InvalidUrlError(f"Proxy descriptor has no host: {descriptor!r}", descriptor)
        if port is None:
            raise InvalidUrlError(f"Proxy descriptor has no port: {descriptor!r}", descriptor)

        return cls(
            scheme=scheme,
            host=parts.hostname,
            port=port,
            username=parts.username,
            password=parts.password,
        )

    @property
    def url(self) -> str:
        auth = ''
        if self.username:
            auth = self.username
            if self.password:
                auth += f":{self.password}"
            auth += '@'
        return f"{self.scheme}://{auth}{self.host}:{self.port}"

    def as_requests_proxies(self) -> Dict[str, str]:
        """Proxy mapping in the shape ``requests.Session.proxies`` expects."""
        return {'http': self.url, 'https': self.url}

    def __str__(self) -> str:
        # Never print credentials
        return f"{self.scheme}://{self.host}:{self.port}"


@dataclass(frozen=True)
class ClassifierConfig:
    """Tuning for the link classifier."""
    min_path_segments: int = 3
    min_slug_words: int = 3
    min_anchor_length: int = 3
    article_threshold: float = 2.0
    date_score: float = 3.0
    slug_score: float = 2.0
    weak_anchor_penalty: float = 2.0
    allow_cross_domain: bool = False
    allowed_domains: Tuple[str, ...] = ()
    navigation_labels: Tuple[str, ...] = (
        'home', 'more', 'next', 'previous', 'prev', 'back', 'menu',
        'read more', 'see more', 'load more', 'older', 'newer', 'top',
        'login', 'log in', 'sign in', 'subscribe', 'search', 'contact',
    )


@dataclass(frozen=True)
class ExtractionConfig:
    """Tuning for the body-scoring heuristics and keyword extraction."""
    propagation_fraction: float = 0.5
    max_link_density: float = 0.5
    min_container_length: int = 25
    comma_weight: float = 1.0
    length_weight: float = 0.01
    positive_hint_boost: float = 1.25
    max_keywords: int = 10
    min_keyword_length: int = 3


@dataclass(frozen=True)
class CrawlConfig:
    """Master configuration, shared read-only by every pipeline stage."""
    workers: int = field(default_factory=default_workers)
    timeout_seconds: float = 30.0
    max_retries: int = 2
    proxy: Optional[ProxyConfig] = None
    user_agent: str = "article-crawler/1.0"
    min_body_length: int = 200

    # HTTP
    retry_backoff_factor: float = 0.5
    max_redirects: int = 5
    verify_ssl: bool = True
    accept_language: str = "en-US,en;q=0.9"
    max_content_size_mb: int = 10
    default_charset: str = "utf-8"

    # Parsing
    parser: str = "html.parser"
    max_html_size_mb: int = 10

    # Pipeline
    queue_size: int = 100
    follow_categories: bool = False
    max_category_pages: int = 20

    classifier: ClassifierConfig = field(default_factory=ClassifierConfig)
    extraction: ExtractionConfig = field(default_factory=ExtractionConfig)

    def with_options(self, **changes) -> 'CrawlConfig':
        """Copy with some top-level fields replaced."""
        return replace(self, **changes)


_CRAWL_KEYS = {f.name for f in fields(CrawlConfig)} - {'classifier', 'extraction', 'proxy'}


class ConfigLoader:
    """Loads and saves crawler configuration from/to YAML files."""

    @staticmethod
    def load_from_yaml(config_path: str) -> CrawlConfig:
        """
        Load configuration from YAML file.

        Args:
            config_path: Path to YAML configuration file

        Returns:
            CrawlConfig object

        Raises:
            ConfigurationError: If configuration is invalid
        """
        logger = logging.getLogger(__name__)

        path = Path(config_path)
        if not path.exists():
            raise ConfigurationError(f"Configuration file not found: {config_path}")

        try:
            with open(path, 'r') as f:
                config_dict = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise ConfigurationError(f"Invalid YAML in {config_path}: {e}")
        except OSError as e:
            raise ConfigurationError(f"Failed to read {config_path}: {e}")

        if not config_dict:
            raise ConfigurationError(f"Empty configuration file: {config_path}")

        logger.info(f"Loaded configuration from {config_path}")

        config = ConfigLoader.from_dict(config_dict)
        validate_config(config)
        return config

    @staticmethod
    def from_dict(config_dict: Dict[str, Any]) -> CrawlConfig:
        """Parse configuration dictionary into a CrawlConfig object."""
        if not isinstance(config_dict, dict):
            raise ConfigurationError("Configuration must be a mapping")

        crawl = config_dict.get('crawl') or {}
        classifier_cfg = config_dict.get('classifier') or {}
        extraction_cfg = config_dict.get('extraction') or {}

        unknown = set(crawl) - _CRAWL_KEYS - {'proxy'}
        if unknown:
            raise ConfigurationError(f"Unknown crawl options: {', '.join(sorted(unknown))}")

        try:
            classifier = ClassifierConfig(**{
                k: tuple(v) if isinstance(v, list) else v
                for k, v in classifier_cfg.items()
            })
            extraction = ExtractionConfig(**extraction_cfg)
        except TypeError as e:
            raise ConfigurationError(f"Failed to parse configuration: {e}")

        proxy = None
        if crawl.get('proxy'):
            try:
                proxy = ProxyConfig.parse(crawl['proxy'])
            except InvalidUrlError as e:
                raise ConfigurationError(str(e))

        options = {k: v for k, v in crawl.items() if k in _CRAWL_KEYS}
        return CrawlConfig(proxy=proxy, classifier=classifier, extraction=extraction, **options)

    @staticmethod
    def to_dict(config: CrawlConfig) -> Dict[str, Any]:
        crawl = {k: getattr(config, k) for k in sorted(_CRAWL_KEYS)}
        crawl['proxy'] = config.proxy.url if config.proxy else None
        classifier = asdict(config.classifier)
        classifier = {k: list(v) if isinstance(v, tuple) else v for k, v in classifier.items()}
        return {
            'crawl': crawl,
            'classifier': classifier,
            'extraction': asdict(config.extraction),
        }

    @staticmethod
    def save_to_yaml(config: CrawlConfig, output_path: str):
        """Save configuration to YAML file."""
        logger = logging.getLogger(__name__)

        path = Path(output_path)
        path.parent.mkdir(parents=True, exist_ok=True)

        try:
            with open(path, 'w') as f:
                yaml.dump(ConfigLoader.to_dict(config), f,
                          default_flow_style=False, indent=2, sort_keys=False)
            logger.info(f"Configuration saved to {output_path}")
        except OSError as e:
            raise ConfigurationError(f"Failed to save configuration: {e}")

    @staticmethod
    def create_default_config() -> CrawlConfig:
        """Create a default configuration."""
        return CrawlConfig()


def validate_config(config: CrawlConfig) -> bool:
    """Validate crawler configuration."""
    logger = logging.getLogger(__name__)

    if not isinstance(config.workers, int) or config.workers < 1:
        raise ConfigurationError("workers must be at least 1")

    if config.timeout_seconds <= 0:
        raise ConfigurationError("timeout_seconds must be positive")

    if not isinstance(config.max_retries, int) or config.max_retries < 0:
        raise ConfigurationError("max_retries cannot be negative")

    if config.min_body_length < 0:
        raise ConfigurationError("min_body_length cannot be negative")

    if config.queue_size < 1:
        raise ConfigurationError("queue_size must be at least 1")

    if not config.user_agent:
        raise ConfigurationError("user_agent cannot be empty")

    if config.proxy is not None and not isinstance(config.proxy, ProxyConfig):
        raise ConfigurationError("proxy must be a ProxyConfig (use ProxyConfig.parse)")

    extraction = config.extraction
    if not 0 < extraction.propagation_fraction <= 1:
        raise ConfigurationError("propagation_fraction must be in (0, 1]")

    if not 0 <= extraction.max_link_density <= 1:
        raise ConfigurationError("max_link_density must be in [0, 1]")

    if extraction.max_keywords < 0:
        raise ConfigurationError("max_keywords cannot be negative")

    if config.classifier.min_path_segments < 1:
        raise ConfigurationError("min_path_segments must be at least 1")

    logger.debug("Configuration validated successfully")
    return True
