"""End-to-end tests for the crawl: Site building, the result stream, dedup,
the worker bound, cancellation and category following.

All network access goes through ``StubFetcher``.
"""

from datetime import timedelta
from queue import Queue

import pytest

from article_crawler import Site, stream_articles
from article_crawler.config import ConfigurationError, CrawlConfig
from article_crawler.core import CrawlPipeline
from article_crawler.errors import (
    CrawlError,
    InsufficientContentError,
    InvalidUrlError,
    NetworkError,
    NetworkErrorKind,
)
from article_crawler.pipeline import PipelineStage
from article_crawler.pipeline.stages.content_extraction_stage import SiteExtractor

from conftest import SEED_HTML, SEED_URL, StubFetcher, article_html, server_error, timeout_error


COUNCIL = "https://planet.example.com/2024/05/01/council-approves-transit-budget"
STORM = "https://planet.example.com/2024/05/02/storm-knocks-out-power"
LIBRARY = "https://planet.example.com/2024/05/03/library-reopens-after-renovation"
POLITICS = "https://planet.example.com/tag/politics"
SPORTS = "https://planet.example.com/category/sports"
MAYOR = "https://planet.example.com/2024/05/04/new-mayor-sworn-in-today"

POLITICS_HTML = f"""\
<html><body>
  <a href="/2024/05/04/new-mayor-sworn-in-today">New mayor sworn in today</a>
  <a href="{COUNCIL}">Council approves transit budget</a>
</body></html>
"""


def article_urls(count):
    return [f"https://planet.example.com/2024/05/{day:02d}/story-number-{day}-today" for day in range(1, count + 1)]


def site_pages(**overrides):
    pages = {
        SEED_URL: SEED_HTML,
        COUNCIL: article_html("Council Approves Transit Budget"),
        STORM: article_html("Storm Knocks Out Power"),
        LIBRARY: article_html("Library Reopens After Renovation"),
    }
    pages.update(overrides)
    return pages


class TestSiteStream:
    def test_two_server_errors_and_one_article(self):
        fetcher = StubFetcher(site_pages(**{STORM: server_error(STORM), LIBRARY: server_error(LIBRARY)}))
        site = Site.builder(SEED_URL).fetcher(fetcher).threads(2).build()

        results = list(site.into_stream())

        assert len(results) == 3
        failures = [result for result in results if not result.ok]
        successes = [result for result in results if result.ok]
        assert len(failures) == 2
        assert all(isinstance(result.error, NetworkError) for result in failures)
        assert all(result.error.kind is NetworkErrorKind.HTTP_STATUS for result in failures)
        assert {result.url for result in failures} == {STORM, LIBRARY}
        assert len(successes) == 1
        assert successes[0].url == COUNCIL
        assert successes[0].article.title == "Council Approves Transit Budget"

    def test_site_knows_its_links(self):
        site = Site.builder(SEED_URL).fetcher(StubFetcher(site_pages())).build()

        assert [link.url for link in site.article_links] == [COUNCIL, STORM, LIBRARY]
        assert site.category_urls == (POLITICS, SPORTS)
        assert "articles=3" in repr(site)

    def test_links_are_fetched_as_written(self):
        slashed = "https://planet.example.com/2024/05/05/harbor-festival-draws-crowds/"
        seed = '<html><body><a href="/2024/05/05/harbor-festival-draws-crowds/">Harbor festival draws crowds</a></body></html>'
        fetcher = StubFetcher({SEED_URL: seed, slashed: article_html("Harbor Festival Draws Crowds")})
        site = Site.builder(SEED_URL).fetcher(fetcher).build()

        results = list(site.into_stream())

        assert [link.url for link in site.article_links] == [slashed]
        assert slashed in fetcher.calls
        assert len(results) == 1
        assert results[0].ok
        assert results[0].url == slashed

    def test_stream_is_restartable(self):
        fetcher = StubFetcher(site_pages())
        site = Site.builder(SEED_URL).fetcher(fetcher).threads(2).build()

        first = list(site.into_stream())
        second = list(site.into_stream())

        assert len(first) == len(second) == 3
        assert all(result.ok for result in first + second)
        assert fetcher.calls.count(COUNCIL) == 2

    def test_categories_are_not_followed_by_default(self):
        fetcher = StubFetcher(site_pages(**{POLITICS: POLITICS_HTML}))
        site = Site.builder(SEED_URL).fetcher(fetcher).build()

        list(site.into_stream())

        assert POLITICS not in fetcher.calls

    def test_follow_categories(self):
        fetcher = StubFetcher(site_pages(**{POLITICS: POLITICS_HTML, MAYOR: article_html("New Mayor")}))
        site = Site.builder(SEED_URL).fetcher(fetcher).threads(2).follow_categories().build()

        results = list(site.into_stream())

        assert sorted(result.url for result in results) == sorted([COUNCIL, STORM, LIBRARY, MAYOR])
        assert all(result.ok for result in results)
        # The failed sports page is fetched but yields nothing
        assert SPORTS in fetcher.calls
        # Already admitted URLs are not fetched twice
        assert fetcher.calls.count(COUNCIL) == 1
        assert MAYOR in [link.url for link in site.article_links]

    def test_category_page_limit(self):
        fetcher = StubFetcher(site_pages(**{POLITICS: POLITICS_HTML, MAYOR: article_html("New Mayor")}))
        config = CrawlConfig(workers=2, follow_categories=True, max_category_pages=1)
        site = Site.builder(SEED_URL).config(config).fetcher(fetcher).build()

        list(site.into_stream())

        assert POLITICS in fetcher.calls
        assert SPORTS not in fetcher.calls


class TestSiteBuilder:
    def test_invalid_seed_url(self):
        with pytest.raises(InvalidUrlError):
            Site.builder("not a url")

    def test_invalid_proxy(self):
        with pytest.raises(InvalidUrlError):
            Site.builder(SEED_URL).proxy("ftp://proxy.local:21")

    def test_options_reach_config(self):
        config = (Site.builder(SEED_URL)
                  .proxy("socks5://127.0.0.1:1080")
                  .threads(3)
                  .timeout(timedelta(seconds=12))
                  .retries(0)
                  .min_body_length(50)
                  .user_agent("test-agent/2.0")
                  .allow_cross_domain()
                  .build_config())

        assert config.proxy.scheme == "socks5"
        assert config.workers == 3
        assert config.timeout_seconds == 12.0
        assert config.max_retries == 0
        assert config.min_body_length == 50
        assert config.user_agent == "test-agent/2.0"
        assert config.classifier.allow_cross_domain is True

    def test_invalid_option(self):
        with pytest.raises(ConfigurationError):
            Site.builder(SEED_URL).threads(0).build()

    def test_seed_fetch_failure_is_raised(self):
        fetcher = StubFetcher({SEED_URL: timeout_error(SEED_URL)})
        with pytest.raises(NetworkError) as info:
            Site.builder(SEED_URL).fetcher(fetcher).build()
        assert info.value.kind is NetworkErrorKind.TIMEOUT
        assert fetcher.closed == 1


class TestStreamArticles:
    def test_stream_is_lazy(self, config):
        fetcher = StubFetcher({COUNCIL: article_html()})
        stream = stream_articles([COUNCIL], config, fetcher=fetcher)

        assert fetcher.calls == []
        results = list(stream)
        assert len(results) == 1
        assert results[0].ok

    def test_duplicates_are_fetched_once(self, config):
        fetcher = StubFetcher({COUNCIL: article_html()})
        urls = [
            COUNCIL,
            COUNCIL + "/",
            "HTTPS://Planet.Example.com:443/2024/05/01/council-approves-transit-budget#top",
        ]

        results = list(stream_articles(urls, config, fetcher=fetcher))

        assert len(results) == 1
        assert fetcher.calls == [COUNCIL]

    def test_invalid_urls_yield_errors(self, config):
        fetcher = StubFetcher({COUNCIL: article_html()})
        results = list(stream_articles(["mailto:desk@planet.example.com", COUNCIL], config, fetcher=fetcher))

        assert len(results) == 2
        invalid = [result for result in results if not result.ok]
        assert len(invalid) == 1
        assert isinstance(invalid[0].error, InvalidUrlError)
        assert invalid[0].url == "mailto:desk@planet.example.com"

    def test_short_body_is_insufficient_content(self, config):
        fetcher = StubFetcher({COUNCIL: article_html(paragraphs=1)})
        results = list(stream_articles([COUNCIL], config.with_options(min_body_length=10000), fetcher=fetcher))

        assert not results[0].ok
        assert isinstance(results[0].error, InsufficientContentError)
        assert results[0].error.minimum == 10000
        assert results[0].error.url == COUNCIL

    def test_unexpected_errors_become_results(self, config):
        fetcher = StubFetcher({COUNCIL: RuntimeError("socket exploded"), STORM: article_html()})
        results = list(stream_articles([COUNCIL, STORM], config, fetcher=fetcher))

        by_url = {result.url: result for result in results}
        assert by_url[STORM].ok
        assert type(by_url[COUNCIL].error) is CrawlError
        assert "socket exploded" in by_url[COUNCIL].error.message

    def test_custom_extractor(self, config):
        fetcher = StubFetcher({COUNCIL: article_html()})
        extractor = SiteExtractor(title=lambda doc: "Fixed")
        results = list(stream_articles([COUNCIL], config, extractor=extractor, fetcher=fetcher))

        assert results[0].article.title == "Fixed"

    def test_result_serializes(self, config):
        fetcher = StubFetcher({COUNCIL: article_html(), STORM: server_error(STORM)})
        results = {result.url: result.to_dict() for result in stream_articles([COUNCIL, STORM], config, fetcher=fetcher)}

        assert results[COUNCIL]['ok'] is True
        assert results[COUNCIL]['article']['url'] == COUNCIL
        assert results[STORM]['error']['type'] == "NetworkError"
        assert results[STORM]['error']['status_code'] == 500


class TestConcurrency:
    def test_in_flight_never_exceeds_workers(self):
        urls = article_urls(8)
        fetcher = StubFetcher({url: article_html() for url in urls}, delay=0.05)
        pipeline = CrawlPipeline(CrawlConfig(workers=2), fetcher=fetcher)

        results = list(pipeline.run(urls))

        assert len(results) == 8
        assert fetcher.max_active <= 2
        assert pipeline.last_stats['max_in_flight'] <= 2
        assert pipeline.last_stats['dedup']['unique_urls'] == 8

    def test_closing_the_stream_cancels_the_crawl(self):
        urls = article_urls(20)
        fetcher = StubFetcher({url: article_html() for url in urls}, delay=0.05)
        pipeline = CrawlPipeline(CrawlConfig(workers=2), fetcher=fetcher)

        stream = pipeline.run(urls)
        first = next(stream)
        stream.close()

        assert first.ok
        assert len(fetcher.calls) < len(urls)
        assert fetcher.closed >= 1
        assert pipeline.last_stats['is_running'] is False

    def test_stage_requires_a_worker(self):
        class Noop(PipelineStage):
            def process(self, data):
                return data

        with pytest.raises(ValueError):
            Noop("noop", Queue(), Queue(), num_workers=0)

    def test_unparsed_proxy_is_rejected_up_front(self):
        with pytest.raises(ConfigurationError):
            CrawlPipeline(CrawlConfig(proxy="socks5://127.0.0.1:1080"))
