"""
HTML Parsing - Parses HTML into a BeautifulSoup tree and exposes read-only
queries over it (DomIndex) for the classifier and the extractors.
"""

import json
import logging
import re
from collections import namedtuple
from typing import Any, Callable, Dict, List, Optional
from urllib.parse import urljoin, urlsplit

from bs4 import BeautifulSoup, FeatureNotFound
from bs4.element import NavigableString, PreformattedString, Tag

from ...config.crawler_config import CrawlConfig
from ...errors import ParseError


Anchor = namedtuple('Anchor', ['url', 'text', 'node'])
Image = namedtuple('Image', ['url', 'node'])

WHITESPACE_RE = re.compile(r'\s+')

# Elements whose text never reaches the reader
INVISIBLE_TAGS = frozenset({'script', 'style', 'noscript', 'template'})

# Elements that break words apart when their text is joined
BLOCK_TAGS = frozenset({
    'address', 'article', 'aside', 'blockquote', 'br', 'dd', 'div', 'dl',
    'dt', 'fieldset', 'figcaption', 'figure', 'footer', 'form', 'h1', 'h2',
    'h3', 'h4', 'h5', 'h6', 'header', 'hr', 'li', 'main', 'nav', 'ol', 'p',
    'pre', 'section', 'table', 'td', 'th', 'tr', 'ul',
})


def normalize_whitespace(text: str) -> str:
    return WHITESPACE_RE.sub(' ', text).strip()


def is_http_url(url: Optional[str]) -> bool:
    if not url:
        return False
    try:
        return urlsplit(url).scheme in ('http', 'https')
    except ValueError:
        return False


class DomIndex:
    """
    Read-only query surface over a parsed document.

    All URL-returning queries resolve against ``base_url``: the document's
    ``<base href>`` when present (itself resolved against the fetch URL),
    otherwise the fetch URL. The underlying tree is never modified.
    """

    def __init__(self, soup: BeautifulSoup, url: str):
        self.soup = soup
        self.url = url
        self.base_url = self._find_base_url()
        self.logger = logging.getLogger(self.__class__.__name__)

        self._meta_index: Optional[List[tuple]] = None
        self._json_ld: Optional[List[Dict[str, Any]]] = None
        self._memo: Dict[str, Any] = {}

    def _find_base_url(self) -> str:
        base = self.soup.find('base', href=True)
        if base is not None:
            try:
                resolved = urljoin(self.url, base['href'].strip())
            except ValueError:
                return self.url
            if is_http_url(resolved):
                return resolved
        return self.url

    # ---- structural queries -------------------------------------------

    def select(self, css: str, root: Optional[Tag] = None) -> List[Tag]:
        return (root or self.soup).select(css)

    def select_one(self, css: str, root: Optional[Tag] = None) -> Optional[Tag]:
        return (root or self.soup).select_one(css)

    def find_all(self, *args, **kwargs) -> List[Tag]:
        return self.soup.find_all(*args, **kwargs)

    def text(self, node=None) -> str:
        """Visible text of a node with whitespace collapsed."""
        node = self.soup if node is None else node
        if isinstance(node, PreformattedString):
            return ''
        if isinstance(node, NavigableString):
            return normalize_whitespace(str(node))
        if node.name in INVISIBLE_TAGS and node is not self.soup:
            return ''

        parts: List[str] = []
        self._collect_text(node, parts)
        return normalize_whitespace(''.join(parts))

    def _collect_text(self, node: Tag, parts: List[str]):
        for child in node.children:
            if isinstance(child, Tag):
                if child.name in INVISIBLE_TAGS:
                    continue
                block = child.name in BLOCK_TAGS
                if block:
                    parts.append(' ')
                self._collect_text(child, parts)
                if block:
                    parts.append(' ')
            elif isinstance(child, PreformattedString):
                # Comments, doctype, CDATA
                continue
            elif isinstance(child, NavigableString):
                parts.append(str(child))

    def attr(self, node: Tag, name: str) -> Optional[str]:
        """Attribute value, multi-valued attributes joined by a space."""
        value = node.get(name)
        if value is None:
            return None
        if isinstance(value, (list, tuple)):
            value = ' '.join(value)
        return value.strip()

    # ---- meta tags ----------------------------------------------------

    def _metas(self) -> List[tuple]:
        if self._meta_index is None:
            index = []
            for tag in self.soup.find_all('meta'):
                content = tag.get('content')
                if content is None:
                    continue
                content = content.strip()
                for key_attr in ('property', 'name', 'itemprop', 'http-equiv'):
                    key = tag.get(key_attr)
                    if key:
                        index.append((key_attr, key.strip().lower(), content))
            self._meta_index = index
        return self._meta_index

    def _meta_lookup(self, key_attrs, name: str) -> Optional[str]:
        name = name.lower()
        for key_attr, key, content in self._metas():
            if key_attr in key_attrs and key == name and content:
                return content
        return None

    def meta_by_name(self, name: str) -> Optional[str]:
        return self._meta_lookup(('name',), name)

    def meta_by_property(self, name: str) -> Optional[str]:
        return self._meta_lookup(('property',), name)

    def meta(self, *names: str) -> Optional[str]:
        """First non-empty meta content for any of the keys, in key order.

        Matches ``property``, ``name``, ``itemprop`` and ``http-equiv``
        since sites mix them freely (``name="og:title"`` is common).
        """
        for name in names:
            content = self._meta_lookup(('property', 'name', 'itemprop', 'http-equiv'), name)
            if content:
                return content
        return None

    def meta_all(self, name: str) -> List[str]:
        """Every non-empty meta content for ``name`` across all key attributes."""
        name = name.lower()
        return [content for key_attr, key, content in self._metas()
                if key == name and content and key_attr != 'http-equiv']

    def meta_data(self) -> Dict[str, str]:
        """All meta key/value pairs; ``property`` keys win over ``name`` keys."""
        by_property: Dict[str, str] = {}
        by_name: Dict[str, str] = {}
        for key_attr, key, content in self._metas():
            if not content:
                continue
            if key_attr == 'property':
                by_property.setdefault(key, content)
            elif key_attr in ('name', 'itemprop'):
                by_name.setdefault(key, content)
        merged = dict(by_name)
        merged.update(by_property)
        return merged

    def memo(self, key: str, factory: Callable[[], Any]) -> Any:
        """Compute a per-document value once."""
        if key not in self._memo:
            self._memo[key] = factory()
        return self._memo[key]

    # ---- links and images ---------------------------------------------

    def resolve(self, href: Optional[str]) -> Optional[str]:
        """Absolute URL for ``href``, or None when it cannot be resolved."""
        if not href:
            return None
        href = href.strip()
        if not href:
            return None
        try:
            return urljoin(self.base_url, href)
        except ValueError:
            return None

    def links(self, root: Optional[Tag] = None) -> List[Anchor]:
        anchors = []
        for node in (root or self.soup).find_all('a', href=True):
            url = self.resolve(self.attr(node, 'href'))
            if url is None:
                continue
            anchors.append(Anchor(url, self.text(node), node))
        return anchors

    def images(self, root: Optional[Tag] = None) -> List[Image]:
        images = []
        for node in (root or self.soup).find_all('img'):
            for source in ('src', 'data-src'):
                url = self.resolve(self.attr(node, source))
                if is_http_url(url):
                    images.append(Image(url, node))
                    break
        return images

    # ---- structured data ----------------------------------------------

    def json_ld(self) -> List[Dict[str, Any]]:
        """Parsed JSON-LD objects, flattened through lists and ``@graph``."""
        if self._json_ld is None:
            objects: List[Dict[str, Any]] = []
            for script in self.soup.find_all('script', type=re.compile(r'ld\+json', re.I)):
                raw = script.string if script.string is not None else script.get_text()
                if not raw or not raw.strip():
                    continue
                try:
                    data = json.loads(raw)
                except ValueError as e:
                    self.logger.debug(f"Skipping malformed JSON-LD block on {self.url}: {e}")
                    continue
                self._flatten_json_ld(data, objects)
            self._json_ld = objects
        return self._json_ld

    def _flatten_json_ld(self, data, out: List[Dict[str, Any]]):
        if isinstance(data, list):
            for item in data:
                self._flatten_json_ld(item, out)
        elif isinstance(data, dict):
            out.append(data)
            if '@graph' in data:
                self._flatten_json_ld(data['@graph'], out)


class HTMLParser:
    """Handles HTML parsing with BeautifulSoup."""

    def __init__(self, config: CrawlConfig):
        self.config = config
        self.logger = logging.getLogger(self.__class__.__name__)
        self.parser = config.parser

        # Verify parser is available
        self._verify_parser()

    def _verify_parser(self):
        """Verify the configured parser is available."""
        try:
            BeautifulSoup("<html></html>", self.parser)
            self.logger.debug(f"Using parser: {self.parser}")
        except FeatureNotFound:
            self.logger.warning(f"Parser '{self.parser}' not available, "
                                f"falling back to 'html.parser'")
            self.parser = "html.parser"

    def parse(self, html: str) -> BeautifulSoup:
        """
        Parse HTML string into BeautifulSoup object.

        Raises:
            ParseError: If the document is empty, too large or has no elements
        """
        if not html or not html.strip():
            raise ParseError("Empty document")

        html_size_mb = len(html.encode('utf-8', errors='replace')) / (1024 * 1024)
        if html_size_mb > self.config.max_html_size_mb:
            raise ParseError(f"HTML too large to parse: {html_size_mb:.2f} MB")

        soup = BeautifulSoup(html, self.parser)
        if soup.find(True) is None:
            raise ParseError("Document contains no elements")

        self.logger.debug(f"Successfully parsed HTML ({html_size_mb:.2f} MB)")
        return soup

    def parse_document(self, html: str, url: str) -> DomIndex:
        """Parse and wrap in a DomIndex; ParseError carries the URL."""
        try:
            soup = self.parse(html)
        except ParseError as e:
            if e.url is None:
                e.url = url
            raise
        return DomIndex(soup, url)
