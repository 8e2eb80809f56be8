"""
Link Classification - Labels the links of a page as Article, Category or Ignored.
Normalizes URLs so they can serve as dedup keys.
"""

import logging
import re
from typing import Optional, List, Dict
from urllib.parse import urlsplit, urlunsplit, urldefrag

from ...config.crawler_config import ClassifierConfig
from ...errors import InvalidUrlError
from ..pipeline_data import CandidateLink, LinkLabel
from .parse_stage import DomIndex


DEFAULT_PORTS = {'http': 80, 'https': 443}

ASSET_EXTENSIONS = frozenset({
    # images
    '.jpg', '.jpeg', '.png', '.gif', '.webp', '.svg', '.ico', '.bmp', '.tif', '.tiff',
    # styles, scripts, fonts
    '.css', '.js', '.json', '.woff', '.woff2', '.ttf', '.eot',
    # documents
    '.pdf', '.doc', '.docx', '.xls', '.xlsx', '.ppt', '.pptx',
    # archives
    '.zip', '.gz', '.tgz', '.tar', '.rar', '.7z',
    # media
    '.mp3', '.mp4', '.m4a', '.avi', '.mov', '.wav', '.webm', '.ogg', '.flac',
    # feeds
    '.rss', '.xml', '.atom',
})

FEED_PATH_RE = re.compile(r'/(feed|rss)/?$', re.I)

CATEGORY_PATH_RE = re.compile(
    r'/(category|categories|tag|tags|topic|topics|section|author|authors|archive)(/|$)',
    re.I
)
PAGINATION_PATH_RE = re.compile(r'/page/\d+/?$', re.I)
PAGINATION_QUERY_RE = re.compile(r'(^|&)page=\d+(&|$)', re.I)

DATE_PATH_RES = (
    re.compile(r'/(19|20)\d{2}/(0?[1-9]|1[0-2])/(0?[1-9]|[12]\d|3[01])/'),
    re.compile(r'/(19|20)\d{2}-(0[1-9]|1[0-2])-(0[1-9]|[12]\d|3[01])(-|/)'),
    re.compile(r'/(19|20)\d{2}/(0[1-9]|1[0-2])/'),
)

SLUG_SPLIT_RE = re.compile(r'[-_]+')


def strip_www(host: str) -> str:
    host = (host or '').lower()
    return host[4:] if host.startswith('www.') else host


class URLNormalizer:
    """Normalizes URLs into the form used as a dedup key."""

    def __init__(self):
        self.logger = logging.getLogger(self.__class__.__name__)

    def normalize(self, url: str) -> str:
        """
        Lowercase scheme and host, drop default ports, strip the fragment and
        any trailing slash of the path.

        Raises:
            InvalidUrlError: If the URL is not an absolute http(s) URL
        """
        if not url or not isinstance(url, str):
            raise InvalidUrlError(f"Invalid URL: {url!r}", url or None)

        try:
            parsed = urlsplit(url.strip())
            port = parsed.port
        except ValueError as e:
            raise InvalidUrlError(f"Invalid URL {url!r}: {e}", url)

        scheme = parsed.scheme.lower()
        if scheme not in DEFAULT_PORTS:
            raise InvalidUrlError(f"Not an http(s) URL: {url!r}", url)

        host = (parsed.hostname or '').lower()
        if not host:
            raise InvalidUrlError(f"URL has no host: {url!r}", url)

        netloc = host
        if ':' in host:
            # IPv6 literal
            netloc = f"[{host}]"
        if port is not None and port != DEFAULT_PORTS[scheme]:
            netloc = f"{netloc}:{port}"

        path = parsed.path.rstrip('/')
        return urlunsplit((scheme, netloc, path, parsed.query, ''))

    def dedup_key(self, url: str) -> str:
        """Normalized form of ``url``, or ``url`` itself when it cannot be normalized."""
        try:
            return self.normalize(url)
        except InvalidUrlError:
            return url

    def is_same_domain(self, url: str, base_url: str) -> bool:
        """Check if URL is on the same domain as base URL, ignoring a leading www."""
        try:
            return strip_www(urlsplit(url).hostname) == strip_www(urlsplit(base_url).hostname)
        except ValueError:
            return False


class LinkClassifier:
    """
    Labels candidate links with a point-based heuristic.

    A link is Ignored when it cannot be an in-scope page (non-http scheme,
    fragment of the page itself, static asset, foreign domain). Category
    vocabulary in the path forces Category. Otherwise the URL shape is
    scored and links reaching ``article_threshold`` become Articles.
    """

    def __init__(self, config: Optional[ClassifierConfig] = None):
        self.config = config or ClassifierConfig()
        self.url_normalizer = URLNormalizer()
        self.navigation_labels = frozenset(label.lower() for label in self.config.navigation_labels)
        self.logger = logging.getLogger(self.__class__.__name__)

    def classify(self, url: str, anchor_text: str, page_url: str) -> CandidateLink:
        """Classify one absolute link found on ``page_url``."""
        anchor_text = anchor_text or ''

        try:
            normalized = self.url_normalizer.normalize(url)
        except InvalidUrlError:
            return self._ignore(url, anchor_text, "not an http(s) URL")

        # The link keeps its own form; the normalized URL is only a dedup key
        link_url = urldefrag(url.strip())[0]

        if link_url.rstrip('/') == urldefrag(page_url)[0].rstrip('/'):
            return self._ignore(link_url, anchor_text, "points at the page itself")

        parts = urlsplit(normalized)
        path = parts.path

        if self._is_asset(path):
            return self._ignore(link_url, anchor_text, "static asset")

        if not self._in_scope(parts.hostname, page_url):
            return self._ignore(link_url, anchor_text, "cross-domain")

        score = self._score(path, anchor_text)

        if self._is_category(path, parts.query):
            return CandidateLink(link_url, anchor_text, LinkLabel.CATEGORY, score)

        if score >= self.config.article_threshold:
            return CandidateLink(link_url, anchor_text, LinkLabel.ARTICLE, score)

        return self._ignore(link_url, anchor_text, f"score {score} below threshold", score)

    def classify_document(self, doc: DomIndex) -> List[CandidateLink]:
        """
        Classify every anchor of a document.

        Anchors whose URLs share a normalized form count as one link, which
        keeps the first spelling seen and its best score; anchors
        that disagree on the label at the same score make it Ignored. Output
        follows document order of first appearance.
        """
        best: Dict[str, CandidateLink] = {}

        for anchor in doc.links():
            candidate = self.classify(anchor.url, anchor.text, doc.url)
            key = self.url_normalizer.dedup_key(candidate.url)
            current = best.get(key)

            if current is None:
                best[key] = candidate
            elif candidate.score > current.score:
                # Keep the first spelling of the URL, take the better label
                best[key] = CandidateLink(
                    current.url, candidate.anchor_text, candidate.label, candidate.score
                )
            elif candidate.score == current.score and candidate.label is not current.label:
                best[key] = CandidateLink(
                    current.url, current.anchor_text, LinkLabel.IGNORED, current.score
                )

        links = list(best.values())
        articles = sum(1 for link in links if link.label is LinkLabel.ARTICLE)
        categories = sum(1 for link in links if link.label is LinkLabel.CATEGORY)
        self.logger.info(f"Classified {len(links)} links on {doc.url}: "
                         f"{articles} articles, {categories} categories")
        return links

    def _ignore(self, url: str, anchor_text: str, reason: str, score: float = 0.0) -> CandidateLink:
        self.logger.debug(f"Ignoring {url}: {reason}")
        return CandidateLink(url, anchor_text, LinkLabel.IGNORED, score)

    def _is_asset(self, path: str) -> bool:
        last = path.rsplit('/', 1)[-1].lower()
        if '.' in last and last[last.rindex('.'):] in ASSET_EXTENSIONS:
            return True
        return bool(FEED_PATH_RE.search(path))

    def _in_scope(self, host: Optional[str], page_url: str) -> bool:
        if self.config.allow_cross_domain:
            return True

        host = strip_www(host)
        page_host = strip_www(urlsplit(page_url).hostname)
        if host == page_host:
            return True

        for domain in self.config.allowed_domains:
            domain = strip_www(domain)
            if host == domain or host.endswith('.' + domain):
                return True
        return False

    def _is_category(self, path: str, query: str) -> bool:
        return bool(
            CATEGORY_PATH_RE.search(path)
            or PAGINATION_PATH_RE.search(path)
            or PAGINATION_QUERY_RE.search(query)
        )

    def _score(self, path: str, anchor_text: str) -> float:
        cfg = self.config
        score = 0.0

        if any(pattern.search(path + '/') for pattern in DATE_PATH_RES):
            score += cfg.date_score

        segments = [segment for segment in path.split('/') if segment]
        if len(segments) >= cfg.min_path_segments and self._is_slug(segments[-1]):
            score += cfg.slug_score

        anchor = anchor_text.strip().lower()
        if len(anchor) < cfg.min_anchor_length or anchor in self.navigation_labels:
            score -= cfg.weak_anchor_penalty

        return score

    def _is_slug(self, segment: str) -> bool:
        stem = segment.rsplit('.', 1)[0] if '.' in segment else segment
        words = [word for word in SLUG_SPLIT_RE.split(stem) if word]
        return len(words) >= self.config.min_slug_words
