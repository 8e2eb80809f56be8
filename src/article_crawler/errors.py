"""
Crawl Errors - Error kinds produced while building a site or crawling it.

Construction-time errors (bad seed URL, bad proxy descriptor, failed seed
fetch) are raised directly. Once a crawl is running, every per-URL failure
is captured and delivered as the ``error`` of a ``CrawlResult`` instead of
being raised, so one bad page never stops the crawl.
"""

from enum import Enum
from typing import Optional


class CrawlError(Exception):
    """Base class for all errors attached to a URL."""

    def __init__(self, message: str, url: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.url = url

    def to_dict(self) -> dict:
        return {
            'type': self.__class__.__name__,
            'message': self.message,
            'url': self.url,
        }

    def __str__(self) -> str:
        if self.url:
            return f"{self.message} ({self.url})"
        return self.message


class InvalidUrlError(CrawlError, ValueError):
    """Raised for an unparsable seed URL or a malformed proxy descriptor."""
    pass


class NetworkErrorKind(Enum):
    """What went wrong on the wire."""
    TIMEOUT = "timeout"
    CONNECTION_FAILED = "connection_failed"
    PROXY_FAILURE = "proxy_failure"
    HTTP_STATUS = "http_status"


class NetworkError(CrawlError):
    """A fetch failed after the fetcher exhausted its retries."""

    def __init__(self, kind: NetworkErrorKind, message: str,
                 url: Optional[str] = None, status_code: Optional[int] = None):
        super().__init__(message, url)
        self.kind = kind
        self.status_code = status_code

    @classmethod
    def http_status(cls, status_code: int, url: Optional[str] = None) -> 'NetworkError':
        return cls(NetworkErrorKind.HTTP_STATUS,
                   f"Expected a 2xx response but got HTTP {status_code}",
                   url=url, status_code=status_code)

    def to_dict(self) -> dict:
        data = super().to_dict()
        data['kind'] = self.kind.value
        data['status_code'] = self.status_code
        return data


class ParseError(CrawlError):
    """The fetched document could not be parsed at all."""
    pass


class InsufficientContentError(CrawlError):
    """Extraction ran, but the body text is shorter than the configured minimum."""

    def __init__(self, length: int, minimum: int, url: Optional[str] = None):
        super().__init__(
            f"Body text has {length} characters, at least {minimum} required", url
        )
        self.length = length
        self.minimum = minimum

    def to_dict(self) -> dict:
        data = super().to_dict()
        data['length'] = self.length
        data['minimum'] = self.minimum
        return data
