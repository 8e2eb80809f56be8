"""
Pipeline Stages Module

Building blocks of a crawl, in the order a URL meets them:

1. LinkClassifier      - Labels links as article, category or ignored
2. DuplicateDetector   - Admits each normalized URL once per crawl
3. Fetcher             - Downloads pages (HTTP, HTTPS, SOCKS5 proxies)
4. HTMLParser/DomIndex - Parses HTML and answers queries over it
5. Extractor           - Pulls article fields out of the document
6. ArticleStage        - Worker pool running 3-5 for each URL
"""

from .link_classification_stage import LinkClassifier, URLNormalizer
from .duplicate_detection_stage import DuplicateDetector
from .fetch_stage import Fetcher, SessionManager
from .parse_stage import HTMLParser, DomIndex, Anchor, Image
from .content_extraction_stage import (
    Extractor,
    DefaultExtractor,
    SiteExtractor,
    BodyScorer,
    ArticleBody,
    extract_article
)
from .date_extraction import DateExtractor
from .article_stage import ArticleStage


__all__ = [
    'LinkClassifier',
    'URLNormalizer',
    'DuplicateDetector',
    'Fetcher',
    'SessionManager',
    'HTMLParser',
    'DomIndex',
    'Anchor',
    'Image',
    'Extractor',
    'DefaultExtractor',
    'SiteExtractor',
    'BodyScorer',
    'ArticleBody',
    'extract_article',
    'DateExtractor',
    'ArticleStage',
]
