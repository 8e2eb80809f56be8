"""
Crawl Pipeline - Connects discovery, dedup and the worker stage into a
lazy stream of CrawlResult values.
"""

import logging
import time
from queue import Queue, Empty
from typing import Callable, Iterable, Iterator, List, Optional

from ..config.crawler_config import CrawlConfig, validate_config
from ..errors import InvalidUrlError
from ..pipeline.pipeline_data import (
    CandidateLink, CrawlResult, DiscoveredLinks, PipelineData, UnitKind, UrlState
)
from ..pipeline.stages.article_stage import ArticleStage
from ..pipeline.stages.content_extraction_stage import Extractor
from ..pipeline.stages.duplicate_detection_stage import DuplicateDetector
from ..pipeline.stages.fetch_stage import Fetcher


class CrawlPipeline:
    """
    Main crawl orchestrator.

    Each call to ``run`` is an independent crawl with its own dedup set and
    worker pool. Nothing starts until the first item is requested; closing
    the returned generator (or letting it be garbage collected) stops the
    workers and drops the work still queued.

    Usage:
        pipeline = CrawlPipeline(config)
        for result in pipeline.run(urls):
            ...
    """

    def __init__(self, config: Optional[CrawlConfig] = None,
                 fetcher: Optional[Fetcher] = None,
                 extractor: Optional[Extractor] = None):
        self.config = config or CrawlConfig()
        validate_config(self.config)
        self.fetcher = fetcher
        self.extractor = extractor
        self.logger = logging.getLogger(self.__class__.__name__)

        self.last_stats: dict = {}

    def run(self, article_urls: Iterable[str], category_urls: Iterable[str] = (),
            on_links: Optional[Callable[[List[CandidateLink]], None]] = None) -> Iterator[CrawlResult]:
        """
        Crawl ``article_urls`` and yield one result per distinct URL, in
        completion order.

        URLs that cannot be normalized yield an InvalidUrlError result;
        repeats of an already admitted URL are skipped. When
        ``follow_categories`` is on, up to ``max_category_pages`` of
        ``category_urls`` are fetched as well and the article links found
        there join the crawl; ``on_links`` is told about each such batch.
        """
        detector = DuplicateDetector()
        input_queue: Queue = Queue()
        output_queue: Queue = Queue(maxsize=self.config.queue_size)
        stage = ArticleStage(input_queue, output_queue, self.config,
                             fetcher=self.fetcher, extractor=self.extractor)

        pending = 0
        emitted = 0
        start_time = time.time()

        def admit(url: str, kind: UnitKind, parent_url: Optional[str] = None) -> bool:
            if not detector.mark_seen(url):
                return False
            unit = PipelineData(url=url, kind=kind, parent_url=parent_url)
            unit.advance(UrlState.CLASSIFIED)
            input_queue.put(unit)
            return True

        try:
            stage.start()

            for url in article_urls:
                try:
                    if admit(url, UnitKind.ARTICLE):
                        pending += 1
                except InvalidUrlError as e:
                    self.logger.warning(f"Rejected URL {url!r}: {e.message}")
                    emitted += 1
                    yield CrawlResult.failure(url, e)

            if self.config.follow_categories:
                for index, url in enumerate(category_urls):
                    if index >= self.config.max_category_pages:
                        break
                    try:
                        if admit(url, UnitKind.CATEGORY):
                            pending += 1
                    except InvalidUrlError as e:
                        self.logger.debug(f"Skipping category URL {url!r}: {e.message}")

            self.logger.info(f"Crawl started with {pending} units on {self.config.workers} workers")

            while pending:
                try:
                    item = output_queue.get(timeout=stage.POLL_INTERVAL)
                except Empty:
                    continue
                pending -= 1

                if isinstance(item, DiscoveredLinks):
                    admitted = []
                    for link in item.links:
                        if admit(link.url, UnitKind.ARTICLE, parent_url=item.source_url):
                            admitted.append(link)
                    pending += len(admitted)
                    self.logger.debug(f"{len(admitted)} new article links from {item.source_url}")
                    if admitted and on_links is not None:
                        on_links(admitted)
                    continue

                emitted += 1
                yield item

        finally:
            stage.stop()
            self.last_stats = stage.get_stats()
            self.last_stats['dedup'] = detector.get_stats()
            elapsed = time.time() - start_time
            if pending:
                self.logger.info(f"Crawl cancelled after {emitted} results, "
                                 f"{pending} units abandoned ({elapsed:.2f}s)")
            else:
                self.logger.info(f"Crawl finished: {emitted} results in {elapsed:.2f}s")


def stream_articles(urls: Iterable[str], config: Optional[CrawlConfig] = None,
                    extractor: Optional[Extractor] = None,
                    fetcher: Optional[Fetcher] = None) -> Iterator[CrawlResult]:
    """Fetch and extract a known list of article URLs, skipping classification."""
    return CrawlPipeline(config, fetcher=fetcher, extractor=extractor).run(urls)
