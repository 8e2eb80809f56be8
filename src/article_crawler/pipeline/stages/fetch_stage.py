"""
HTTP Fetch - Downloads pages over plain HTTP(S) or through an HTTP/HTTPS/SOCKS5
proxy, retrying transport failures and decoding the body to text.
"""

import codecs
import logging
import re
import threading
import time
from typing import Optional, Dict
from urllib.parse import urlsplit

import requests
from requests.adapters import HTTPAdapter
from requests.compat import chardet
from requests.exceptions import (
    RequestException, Timeout, ProxyError, InvalidURL, MissingSchema, InvalidSchema
)
from urllib3.exceptions import MaxRetryError, ReadTimeoutError, ConnectTimeoutError
from urllib3.util.retry import Retry

from ...config.crawler_config import CrawlConfig
from ...errors import InvalidUrlError, NetworkError, NetworkErrorKind
from ..pipeline_data import FetchResult


CONTENT_TYPE_CHARSET_RE = re.compile(r'charset\s*=\s*["\']?([^"\';\s]+)', re.I)
META_CHARSET_RE = re.compile(rb'<meta[^>]+charset\s*=\s*["\']?\s*([a-zA-Z0-9_\-:.]+)', re.I)

# Bytes inspected for a <meta charset> declaration
CHARSET_SNIFF_BYTES = 4096


def valid_codec(name: Optional[str]) -> Optional[str]:
    """Canonical codec name, or None when Python has no such codec."""
    if not name:
        return None
    try:
        return codecs.lookup(name.strip()).name
    except LookupError:
        return None


class SessionManager:
    """One requests session per worker thread, all sharing the same policy."""

    def __init__(self, config: CrawlConfig):
        self.config = config
        self.sessions: Dict[int, requests.Session] = {}
        self.lock = threading.Lock()
        self.logger = logging.getLogger(self.__class__.__name__)

    def get_session(self) -> requests.Session:
        thread_id = threading.get_ident()
        with self.lock:
            if thread_id not in self.sessions:
                self.sessions[thread_id] = self._create_session()
            return self.sessions[thread_id]

    def _create_session(self) -> requests.Session:
        session = requests.Session()
        # Transport failures only; HTTP statuses are reported, never retried
        retry_strategy = Retry(
            total=self.config.max_retries,
            connect=self.config.max_retries,
            read=self.config.max_retries,
            status=0,
            redirect=self.config.max_redirects,
            status_forcelist=(),
            backoff_factor=self.config.retry_backoff_factor,
            allowed_methods=["GET", "HEAD"],
            raise_on_status=False
        )
        adapter = HTTPAdapter(max_retries=retry_strategy,
                              pool_connections=self.config.workers,
                              pool_maxsize=self.config.workers)
        session.mount("http://", adapter)
        session.mount("https://", adapter)
        session.max_redirects = self.config.max_redirects
        session.headers.update({
            'User-Agent': self.config.user_agent,
            'Accept': 'text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8',
            'Accept-Language': self.config.accept_language,
            'Accept-Encoding': 'gzip, deflate',
            'Connection': 'keep-alive',
        })
        if self.config.proxy is not None:
            session.proxies.update(self.config.proxy.as_requests_proxies())
        return session

    def close_all(self):
        with self.lock:
            for session in self.sessions.values():
                session.close()
            self.sessions.clear()


class Fetcher:
    """
    Performs a single GET per call and returns the decoded page.

    Raises ``NetworkError`` (after the retry policy is exhausted for
    transport failures, immediately for a non-2xx status) or
    ``InvalidUrlError``. Safe to share between worker threads.
    """

    def __init__(self, config: Optional[CrawlConfig] = None,
                 session_manager: Optional[SessionManager] = None):
        self.config = config or CrawlConfig()
        self.session_manager = session_manager or SessionManager(self.config)
        self.proxies = self.config.proxy.as_requests_proxies() if self.config.proxy else None
        self.max_bytes = self.config.max_content_size_mb * 1024 * 1024
        self.logger = logging.getLogger(self.__class__.__name__)

        self.stats = {
            'total_fetched': 0, 'successful': 0, 'failed': 0,
            'timeouts': 0, 'http_errors': {},
            'total_bytes': 0, 'total_response_time': 0.0,
        }
        self.stats_lock = threading.Lock()

        if self.config.proxy is not None:
            self.logger.info(f"Routing requests through proxy {self.config.proxy}")

    def fetch(self, url: str) -> FetchResult:
        self._check_url(url)
        start_time = time.time()

        try:
            result = self._fetch_with_requests(url, start_time)
        except NetworkError as e:
            self._record_failure(e, time.time() - start_time)
            raise

        with self.stats_lock:
            self.stats['total_fetched'] += 1
            self.stats['successful'] += 1
            self.stats['total_bytes'] += len(result.content)
            self.stats['total_response_time'] += result.response_time

        self.logger.debug(f"Fetched: {url} ({len(result.content)}b, {result.response_time:.2f}s)")
        return result

    def _check_url(self, url: str):
        try:
            parts = urlsplit(url)
        except (ValueError, TypeError, AttributeError) as e:
            raise InvalidUrlError(f"Invalid URL {url!r}: {e}", url if isinstance(url, str) else None)
        if parts.scheme not in ('http', 'https') or not parts.netloc:
            raise InvalidUrlError(f"Not an absolute http(s) URL: {url!r}", url)

    def _fetch_with_requests(self, url: str, start_time: float) -> FetchResult:
        session = self.session_manager.get_session()

        try:
            response = session.get(
                url, timeout=self.config.timeout_seconds, proxies=self.proxies,
                allow_redirects=True, verify=self.config.verify_ssl, stream=True
            )
        except (InvalidURL, MissingSchema, InvalidSchema) as e:
            raise InvalidUrlError(f"Invalid URL: {e}", url)
        except RequestException as e:
            raise self._map_exception(e, url)

        try:
            if not 200 <= response.status_code < 300:
                raise NetworkError.http_status(response.status_code, url)

            content_length = response.headers.get('Content-Length')
            if content_length and content_length.isdigit() and int(content_length) > self.max_bytes:
                raise NetworkError(NetworkErrorKind.CONNECTION_FAILED, "Content too large", url=url)

            content = bytearray()
            try:
                for chunk in response.iter_content(chunk_size=8192):
                    content.extend(chunk)
                    if len(content) > self.max_bytes:
                        raise NetworkError(NetworkErrorKind.CONNECTION_FAILED,
                                           "Content exceeded size limit", url=url)
            except RequestException as e:
                raise self._map_exception(e, url)
        finally:
            response.close()

        content = bytes(content)
        charset = self._detect_charset(response.headers.get('Content-Type', ''), content)

        return FetchResult(
            url=url,
            final_url=response.url or url,
            content=content,
            text=content.decode(charset, errors='replace'),
            charset=charset,
            status_code=response.status_code,
            content_type=response.headers.get('Content-Type', ''),
            headers=dict(response.headers),
            response_time=time.time() - start_time,
        )

    def _detect_charset(self, content_type: str, content: bytes) -> str:
        """Header charset, then a declared <meta> charset, then a guess, then the default."""
        match = CONTENT_TYPE_CHARSET_RE.search(content_type or '')
        charset = valid_codec(match.group(1)) if match else None
        if charset:
            return charset

        match = META_CHARSET_RE.search(content[:CHARSET_SNIFF_BYTES])
        if match:
            charset = valid_codec(match.group(1).decode('ascii', errors='ignore'))
            if charset:
                return charset

        if content and chardet is not None:
            guess = chardet.detect(content).get('encoding')
            charset = valid_codec(guess)
            if charset:
                return charset

        return valid_codec(self.config.default_charset) or 'utf-8'

    def _map_exception(self, error: RequestException, url: str) -> NetworkError:
        if isinstance(error, ProxyError):
            kind = NetworkErrorKind.PROXY_FAILURE
        elif isinstance(error, Timeout) or self._caused_by_timeout(error):
            kind = NetworkErrorKind.TIMEOUT
        else:
            # ConnectionError, TooManyRedirects, SSL failures and the rest
            kind = NetworkErrorKind.CONNECTION_FAILED
        return NetworkError(kind, f"{type(error).__name__}: {error}", url=url)

    @staticmethod
    def _caused_by_timeout(error: RequestException) -> bool:
        # requests reports exhausted read retries as a plain ConnectionError
        for arg in error.args:
            if isinstance(arg, MaxRetryError) and isinstance(arg.reason, (ReadTimeoutError, ConnectTimeoutError)):
                return True
            if isinstance(arg, (ReadTimeoutError, ConnectTimeoutError)):
                return True
        return False

    def _record_failure(self, error: NetworkError, elapsed: float):
        with self.stats_lock:
            self.stats['total_fetched'] += 1
            self.stats['failed'] += 1
            self.stats['total_response_time'] += elapsed
            if error.kind is NetworkErrorKind.TIMEOUT:
                self.stats['timeouts'] += 1
            if error.status_code:
                self.stats['http_errors'][error.status_code] = \
                    self.stats['http_errors'].get(error.status_code, 0) + 1
        self.logger.warning(f"Failed to fetch {error.url}: {error.message}")

    def get_stats(self) -> dict:
        with self.stats_lock:
            stats = dict(self.stats)
            stats['http_errors'] = dict(self.stats['http_errors'])
        return stats

    def close(self):
        """Close every per-thread session."""
        self.session_manager.close_all()
