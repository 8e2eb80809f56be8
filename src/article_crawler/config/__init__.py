"""
Configuration Module - Configuration management and loading.

This module handles loading, saving, and validating crawler configurations.
It supports YAML-based configuration files with validation.

Components:
-----------
- CrawlConfig: Frozen master configuration shared by every stage
- ProxyConfig: Validated HTTP/HTTPS/SOCKS5 proxy descriptor
- ClassifierConfig, ExtractionConfig: Heuristic tuning
- ConfigLoader: Loads and saves configurations from/to YAML files
- validate_config: Validates configuration objects
- ConfigurationError: Exception raised for invalid configurations

Usage:
------
from article_crawler.config import ConfigLoader, validate_config

# Load from YAML file
config = ConfigLoader.load_from_yaml('config/default.yaml')

# Derive a variant
config = config.with_options(workers=16, follow_categories=True)
validate_config(config)

# Save to YAML file
ConfigLoader.save_to_yaml(config, 'config/my_config.yaml')

Configuration File Format:
-------------------------
crawl:
  workers: 8
  timeout_seconds: 30
  max_retries: 2
  proxy: socks5://127.0.0.1:1080
  min_body_length: 200

classifier:
  article_threshold: 2.0

extraction:
  propagation_fraction: 0.5
  max_keywords: 10
"""

from .crawler_config import (
    CrawlConfig,
    ProxyConfig,
    ClassifierConfig,
    ExtractionConfig,
    ConfigLoader,
    validate_config,
    ConfigurationError
)

__all__ = [
    'CrawlConfig',
    'ProxyConfig',
    'ClassifierConfig',
    'ExtractionConfig',
    'ConfigLoader',
    'validate_config',
    'ConfigurationError',
]
