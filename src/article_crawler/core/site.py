"""
Site - Entry point for crawling a news site from its front page.

    site = Site.builder("https://news.example.com").threads(8).timeout(10).build()
    for result in site.into_stream():
        if result.ok:
            print(result.article.title)
"""

import logging
import threading
from dataclasses import replace
from datetime import timedelta
from typing import Iterator, List, Optional, Tuple, Union

from ..config.crawler_config import CrawlConfig, ProxyConfig, validate_config
from ..pipeline.pipeline_data import CandidateLink, CrawlResult, LinkLabel
from ..pipeline.stages.content_extraction_stage import Extractor
from ..pipeline.stages.fetch_stage import Fetcher
from ..pipeline.stages.link_classification_stage import LinkClassifier, URLNormalizer
from ..pipeline.stages.parse_stage import HTMLParser
from .crawl_pipeline import CrawlPipeline


class Site:
    """
    A crawled site: its seed URL, configuration and the links found so far.

    Built by SiteBuilder, which fetches the seed page and classifies its
    links. The discovered link set only grows: category following during a
    stream adds the article links it finds.
    """

    def __init__(self, url: str, config: CrawlConfig, fetcher: Fetcher,
                 extractor: Optional[Extractor] = None,
                 category_urls: Tuple[str, ...] = (),
                 article_links: Tuple[CandidateLink, ...] = ()):
        self.url = url
        self.config = config
        self.fetcher = fetcher
        self.extractor = extractor
        self._category_urls = tuple(category_urls)
        self._article_links: List[CandidateLink] = list(article_links)
        self._normalizer = URLNormalizer()
        self._known = {self._normalizer.dedup_key(link.url) for link in self._article_links}
        self._links_lock = threading.Lock()
        self.logger = logging.getLogger(self.__class__.__name__)

    @staticmethod
    def builder(url: str) -> 'SiteBuilder':
        return SiteBuilder(url)

    @property
    def article_links(self) -> Tuple[CandidateLink, ...]:
        with self._links_lock:
            return tuple(self._article_links)

    @property
    def category_urls(self) -> Tuple[str, ...]:
        return self._category_urls

    def add_links(self, links: List[CandidateLink]) -> int:
        """Record newly discovered article links; returns how many were new."""
        added = 0
        with self._links_lock:
            for link in links:
                key = self._normalizer.dedup_key(link.url)
                if key not in self._known:
                    self._known.add(key)
                    self._article_links.append(link)
                    added += 1
        return added

    def into_stream(self) -> Iterator[CrawlResult]:
        """A fresh, lazy stream over the site's article links."""
        pipeline = CrawlPipeline(self.config, fetcher=self.fetcher, extractor=self.extractor)
        return pipeline.run(
            [link.url for link in self.article_links],
            self.category_urls,
            on_links=self.add_links,
        )

    def __repr__(self) -> str:
        return (f"Site(url='{self.url}', articles={len(self.article_links)}, "
                f"categories={len(self.category_urls)})")


class SiteBuilder:
    """Collects options for a Site; ``build`` fetches and classifies the seed page."""

    def __init__(self, url: str):
        # Raises InvalidUrlError for anything but an absolute http(s) URL
        URLNormalizer().normalize(url)

        self.url = url.strip()
        self._config = CrawlConfig()
        self._options = {}
        self._classifier_options = {}
        self._extractor: Optional[Extractor] = None
        self._fetcher: Optional[Fetcher] = None
        self.logger = logging.getLogger(self.__class__.__name__)

    def config(self, config: CrawlConfig) -> 'SiteBuilder':
        """Start from an existing configuration; later options still apply."""
        self._config = config
        return self

    def proxy(self, descriptor: str) -> 'SiteBuilder':
        self._options['proxy'] = ProxyConfig.parse(descriptor)
        return self

    def threads(self, count: int) -> 'SiteBuilder':
        self._options['workers'] = count
        return self

    def timeout(self, value: Union[float, timedelta]) -> 'SiteBuilder':
        if isinstance(value, timedelta):
            value = value.total_seconds()
        self._options['timeout_seconds'] = value
        return self

    def retries(self, count: int) -> 'SiteBuilder':
        self._options['max_retries'] = count
        return self

    def min_body_length(self, length: int) -> 'SiteBuilder':
        self._options['min_body_length'] = length
        return self

    def user_agent(self, user_agent: str) -> 'SiteBuilder':
        self._options['user_agent'] = user_agent
        return self

    def follow_categories(self, enabled: bool = True) -> 'SiteBuilder':
        self._options['follow_categories'] = enabled
        return self

    def allow_cross_domain(self, enabled: bool = True) -> 'SiteBuilder':
        self._classifier_options['allow_cross_domain'] = enabled
        return self

    def extractor(self, extractor: Extractor) -> 'SiteBuilder':
        self._extractor = extractor
        return self

    def fetcher(self, fetcher: Fetcher) -> 'SiteBuilder':
        self._fetcher = fetcher
        return self

    def build_config(self) -> CrawlConfig:
        config = replace(self._config, **self._options)
        if self._classifier_options:
            config = replace(config, classifier=replace(config.classifier, **self._classifier_options))
        validate_config(config)
        return config

    def build(self) -> Site:
        """
        Fetch the seed page and classify its links.

        Raises:
            ConfigurationError: If an option value is invalid
            NetworkError: If the seed page cannot be fetched
            ParseError: If the seed page cannot be parsed
        """
        config = self.build_config()
        fetcher = self._fetcher or Fetcher(config)

        self.logger.info(f"Fetching seed page {self.url}")
        try:
            fetched = fetcher.fetch(self.url)
            doc = HTMLParser(config).parse_document(fetched.text, fetched.final_url)
        finally:
            # Sessions are reopened per worker once streaming starts
            fetcher.close()

        links = LinkClassifier(config.classifier).classify_document(doc)
        articles = tuple(link for link in links if link.label is LinkLabel.ARTICLE)
        categories = tuple(link.url for link in links if link.label is LinkLabel.CATEGORY)

        self.logger.info(f"Seed {self.url}: {len(articles)} article links, "
                         f"{len(categories)} category pages")

        return Site(self.url, config, fetcher, self._extractor, categories, articles)
