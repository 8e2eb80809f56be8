"""
Article Stage - The worker pool of the crawl.

One unit of work is one URL: the worker fetches it, parses it and either
extracts the article (ARTICLE units) or classifies its links (CATEGORY
units), all on the same thread.
"""

import logging
import threading
import time
from queue import Queue
from typing import Optional, Union

from ...config.crawler_config import CrawlConfig
from ...errors import CrawlError, InsufficientContentError
from ..stage import PipelineStage
from ..pipeline_data import CrawlResult, DiscoveredLinks, PipelineData, UnitKind, UrlState
from .content_extraction_stage import Extractor, DefaultExtractor, extract_article
from .fetch_stage import Fetcher
from .link_classification_stage import LinkClassifier
from .parse_stage import HTMLParser


class ArticleStage(PipelineStage):
    """
    Fetch, parse and extract.

    Responsibilities:
    - Fetch each unit's URL through the shared Fetcher
    - Parse the page and run the extractor on it
    - Enforce the minimum body length
    - Turn every failure into a CrawlResult carrying the error
    - For category units, report the article links found on the page
    """

    def __init__(self, input_queue: Queue, output_queue: Queue, config: CrawlConfig,
                 fetcher: Optional[Fetcher] = None, extractor: Optional[Extractor] = None,
                 classifier: Optional[LinkClassifier] = None):
        super().__init__(
            name="ArticleExtraction",
            input_queue=input_queue,
            output_queue=output_queue,
            num_workers=config.workers
        )
        self.config = config
        self.fetcher = fetcher or Fetcher(config)
        self.extractor = extractor or DefaultExtractor(config.extraction)
        self.classifier = classifier or LinkClassifier(config.classifier)
        self.html_parser = HTMLParser(config)
        self.logger = logging.getLogger(self.__class__.__name__)

        self.stats = {
            'articles': 0,
            'failures': {},
            'categories_fetched': 0,
            'links_discovered': 0,
        }
        self.article_stats_lock = threading.Lock()

    def process(self, data: PipelineData) -> Union[CrawlResult, DiscoveredLinks, None]:
        if data.kind is UnitKind.CATEGORY:
            return self._discover(data)
        return self._extract(data)

    def _extract(self, data: PipelineData) -> Optional[CrawlResult]:
        data.advance(UrlState.FETCHING)
        start = time.time()
        try:
            fetched = self.fetcher.fetch(data.url)
        except CrawlError as e:
            data.add_timing('fetch', time.time() - start)
            return self._failure(data, e)
        data.add_timing('fetch', time.time() - start)
        data.advance(UrlState.FETCHED)

        if self.stopped:
            return None

        data.advance(UrlState.EXTRACTING)
        start = time.time()
        try:
            doc = self.html_parser.parse_document(fetched.text, fetched.final_url)
        except CrawlError as e:
            return self._failure(data, e)

        article = extract_article(self.extractor, doc)
        data.add_timing('extract', time.time() - start)

        if len(article.body_text) < self.config.min_body_length:
            return self._failure(
                data, InsufficientContentError(len(article.body_text), self.config.min_body_length)
            )

        data.advance(UrlState.EMITTED)
        with self.article_stats_lock:
            self.stats['articles'] += 1

        self.logger.info(f"Extracted article from {data.url} "
                         f"({len(article.body_text)} chars, {data.get_total_processing_time():.2f}s)")
        return CrawlResult(url=data.url, article=article)

    def _discover(self, data: PipelineData) -> DiscoveredLinks:
        try:
            fetched = self.fetcher.fetch(data.url)
            doc = self.html_parser.parse_document(fetched.text, fetched.final_url)
        except CrawlError as e:
            self.logger.warning(f"Skipping category page {data.url}: {e}")
            data.advance(UrlState.SKIPPED)
            return DiscoveredLinks(data.url)

        links = [link for link in self.classifier.classify_document(doc) if link.is_article]
        with self.article_stats_lock:
            self.stats['categories_fetched'] += 1
            self.stats['links_discovered'] += len(links)

        data.advance(UrlState.EMITTED)
        return DiscoveredLinks(data.url, links)

    def _failure(self, data: PipelineData, error: CrawlError) -> CrawlResult:
        data.advance(UrlState.EMITTED)
        with self.article_stats_lock:
            name = type(error).__name__
            self.stats['failures'][name] = self.stats['failures'].get(name, 0) + 1
        self.logger.warning(f"No article from {data.url}: {error.message}")
        return CrawlResult.failure(data.url, error)

    def handle_error(self, data: PipelineData, error: Exception):
        if data.kind is UnitKind.CATEGORY:
            return DiscoveredLinks(data.url)
        return self._failure(data, CrawlError(f"Unexpected error: {error}"))

    def on_stop(self):
        self.fetcher.close()

    def get_stats(self) -> dict:
        base_stats = super().get_stats()

        with self.article_stats_lock:
            article_stats = dict(self.stats)
            article_stats['failures'] = dict(self.stats['failures'])
        base_stats['article_stats'] = article_stats
        base_stats['fetch_stats'] = self.fetcher.get_stats()

        return base_stats
