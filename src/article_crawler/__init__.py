"""
Article Crawler - A pipeline-based news article crawler built with Python.

Features:
- Heuristic extraction of title, body, authors, dates, images and keywords
- Link classification into articles and category pages
- Concurrent fetching with a bounded worker pool
- HTTP, HTTPS and SOCKS5 proxy support
- Lazy, cancellable result streams
- Configurable via YAML
"""

__version__ = "1.0.0"

from .core.site import Site, SiteBuilder
from .core.crawl_pipeline import CrawlPipeline, stream_articles
from .config.crawler_config import (
    CrawlConfig, ProxyConfig, ClassifierConfig, ExtractionConfig,
    ConfigLoader, ConfigurationError, validate_config
)
from .errors import (
    CrawlError, InvalidUrlError, NetworkError, NetworkErrorKind,
    ParseError, InsufficientContentError
)
from .pipeline.pipeline_data import (
    ArticleContent, CrawlResult, CandidateLink, LinkLabel,
    PublishDate, DateConfidence, Keyword
)
from .pipeline.stages.content_extraction_stage import (
    Extractor, DefaultExtractor, SiteExtractor, extract_article
)
from .pipeline.stages.fetch_stage import Fetcher
from .pipeline.stages.link_classification_stage import LinkClassifier
from .pipeline.stages.parse_stage import DomIndex, HTMLParser

__all__ = [
    'Site',
    'SiteBuilder',
    'CrawlPipeline',
    'stream_articles',
    'CrawlConfig',
    'ProxyConfig',
    'ClassifierConfig',
    'ExtractionConfig',
    'ConfigLoader',
    'ConfigurationError',
    'validate_config',
    'CrawlError',
    'InvalidUrlError',
    'NetworkError',
    'NetworkErrorKind',
    'ParseError',
    'InsufficientContentError',
    'ArticleContent',
    'CrawlResult',
    'CandidateLink',
    'LinkLabel',
    'PublishDate',
    'DateConfidence',
    'Keyword',
    'Extractor',
    'DefaultExtractor',
    'SiteExtractor',
    'extract_article',
    'Fetcher',
    'LinkClassifier',
    'DomIndex',
    'HTMLParser',
]
