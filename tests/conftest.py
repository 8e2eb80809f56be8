"""Shared fixtures: HTML pages and a scripted in-memory fetcher.

No test touches the network. Pipeline tests hand ``StubFetcher`` to the
crawl in place of the requests-backed ``Fetcher``; it serves canned pages
or raises canned errors per URL and records how many fetches overlap.
"""

import threading
import time

import pytest

from article_crawler.config import CrawlConfig
from article_crawler.errors import NetworkError, NetworkErrorKind
from article_crawler.pipeline.pipeline_data import FetchResult
from article_crawler.pipeline.stages.parse_stage import HTMLParser


PARAGRAPH = (
    "The city council met on Tuesday evening, and after a long debate, "
    "members approved the new transit budget by a narrow margin."
)


def article_html(title="Council Approves Transit Budget", paragraphs=5, extra_head="", extra_body=""):
    body = "\n".join(f"<p>{PARAGRAPH} Paragraph {i}.</p>" for i in range(paragraphs))
    return f"""\
<!DOCTYPE html>
<html lang="en-US">
<head>
  <title>{title} | Daily Planet</title>
  {extra_head}
</head>
<body>
  <nav><a href="/">Home</a> <a href="/world">World</a></nav>
  <h1>{title}</h1>
  <div class="story">
    {body}
  </div>
  {extra_body}
  <footer><a href="/about">About</a></footer>
</body>
</html>
"""


SEED_HTML = """\
<!DOCTYPE html>
<html>
<head><title>Daily Planet</title></head>
<body>
  <nav>
    <a href="/">Home</a>
    <a href="/tag/politics">Politics</a>
    <a href="/category/sports">Sports</a>
  </nav>
  <ul class="headlines">
    <li><a href="/2024/05/01/council-approves-transit-budget">Council approves transit budget</a></li>
    <li><a href="/2024/05/02/storm-knocks-out-power">Storm knocks out power across the valley</a></li>
    <li><a href="/2024/05/03/library-reopens-after-renovation">Library reopens after renovation</a></li>
    <li><a href="/2024/05/03/library-reopens-after-renovation#comments">Comments</a></li>
  </ul>
  <a href="/static/logo.png">Logo</a>
  <a href="https://other.example.org/2024/05/01/something-else-entirely">Elsewhere</a>
  <a href="mailto:desk@planet.example.com">Contact the desk</a>
</body>
</html>
"""

SEED_URL = "https://planet.example.com/"


class StubFetcher:
    """
    Fetcher stand-in serving ``pages`` (url -> html or exception).

    Unknown URLs raise a 404 NetworkError. Tracks calls and the highest
    number of fetches running at the same time.
    """

    def __init__(self, pages=None, delay=0.0):
        self.pages = dict(pages or {})
        self.delay = delay
        self.calls = []
        self.closed = 0
        self.active = 0
        self.max_active = 0
        self.lock = threading.Lock()

    def fetch(self, url):
        with self.lock:
            self.calls.append(url)
            self.active += 1
            self.max_active = max(self.max_active, self.active)
        try:
            if self.delay:
                time.sleep(self.delay)
            page = self.pages.get(url)
            if page is None:
                raise NetworkError.http_status(404, url)
            if isinstance(page, Exception):
                raise page
            return FetchResult(
                url=url,
                final_url=url,
                content=page.encode('utf-8'),
                text=page,
                charset='utf-8',
                status_code=200,
                content_type='text/html; charset=utf-8',
            )
        finally:
            with self.lock:
                self.active -= 1

    def close(self):
        self.closed += 1

    def get_stats(self):
        return {'total_fetched': len(self.calls)}


def server_error(url):
    return NetworkError.http_status(500, url)


def timeout_error(url):
    return NetworkError(NetworkErrorKind.TIMEOUT, "Read timed out", url=url)


@pytest.fixture
def config():
    return CrawlConfig(workers=2, min_body_length=100)


@pytest.fixture
def parse():
    """Parse HTML into a DomIndex for a given URL."""
    parser = HTMLParser(CrawlConfig())

    def _parse(html, url="https://planet.example.com/2024/05/01/council-approves-transit-budget"):
        return parser.parse_document(html, url)

    return _parse
