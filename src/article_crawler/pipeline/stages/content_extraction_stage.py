"""
Content Extraction - Turns a parsed news page into an ArticleContent.

DefaultExtractor implements every field heuristic. Sites that need special
handling wrap it in a SiteExtractor and replace only the capabilities they
care about.
"""

import logging
import re
from abc import ABC, abstractmethod
from collections import defaultdict
from dataclasses import dataclass, field
from typing import Optional, List, Dict, Callable
from urllib.parse import urlsplit

from bs4.element import NavigableString, PreformattedString, Tag

from ...config.crawler_config import ExtractionConfig
from ..pipeline_data import ArticleContent, Keyword, PublishDate
from .parse_stage import DomIndex, BLOCK_TAGS, INVISIBLE_TAGS, is_http_url, normalize_whitespace
from .date_extraction import DateExtractor
from . import text_analysis


# Subtrees that never hold article text
NOISE_TAGS = frozenset({
    'nav', 'footer', 'aside', 'script', 'style', 'noscript', 'form', 'header',
    'iframe', 'figure', 'figcaption', 'button', 'template', 'svg', 'select',
})
NOISE_ROLES = frozenset({'navigation', 'complementary', 'banner', 'contentinfo'})
NOISE_HINT_RE = re.compile(
    r'sidebar|comment|footer|widget|advert|\bads?\b|related|share|sharing|social|'
    r'promo|menu|navigation|\bnav\b|breadcrumb|newsletter|cookie|popup',
    re.I
)
POSITIVE_HINT_RE = re.compile(r'article|content|story|entry|post|body|text|main', re.I)

PARAGRAPH_TAGS = frozenset({'p', 'pre', 'blockquote', 'td', 'li', 'dd'})
CONTAINER_TAGS = frozenset({'div', 'section', 'article'})

TITLE_SEPARATOR_RE = re.compile(r'\s+[|\-:–—»]\s+')

AUTHOR_META_KEYS = (
    'author', 'article:author', 'byl', 'dc.creator', 'parsely-author', 'sailthru.author',
)
AUTHOR_HINT_RE = re.compile(r'author|byline', re.I)
MAX_BYLINE_LENGTH = 120
BYLINE_SEARCH_LIMIT = 30

VIDEO_HOSTS = (
    'youtube.com', 'youtube-nocookie.com', 'youtu.be', 'vimeo.com',
    'dailymotion.com', 'twitch.tv', 'facebook.com', 'jwplayer.com', 'brightcove.net',
)

LANGUAGE_RE = re.compile(r'^[a-zA-Z]{2,3}$')


def _node_hints(node: Tag) -> str:
    classes = node.get('class') or []
    if isinstance(classes, str):
        classes = [classes]
    return ' '.join(list(classes) + [node.get('id') or ''])


@dataclass
class ArticleBody:
    """The chosen article root and the paragraphs read out of it."""
    root: Optional[Tag] = None
    paragraphs: List[str] = field(default_factory=list)
    score: float = 0.0

    @property
    def text(self) -> str:
        return '\n'.join(self.paragraphs)


class BodyScorer:
    """
    Locates the article root by scoring text containers.

    Every paragraph-like container outside noise subtrees gets a base score
    from its comma count and length, discounted by its link density. Nodes
    are visited in reverse document order and pass a fraction of their
    total to their parent, so the element that directly holds most of the
    prose ends up with the highest total.
    """

    def __init__(self, config: Optional[ExtractionConfig] = None):
        self.config = config or ExtractionConfig()
        self.logger = logging.getLogger(self.__class__.__name__)

    def score(self, doc: DomIndex) -> ArticleBody:
        explicit = doc.select_one('[itemprop~="articleBody"]')
        if explicit is not None and not self.is_noise(explicit):
            self.logger.debug(f"Using itemprop=articleBody as article root on {doc.url}")
            return ArticleBody(explicit, self.paragraphs(doc, explicit))

        start = doc.soup.body or doc.soup
        nodes = self.walk(start)
        known = {id(node) for node in nodes}

        accumulated: Dict[int, float] = defaultdict(float)
        totals: Dict[int, float] = {}

        for node in reversed(nodes):
            total = self.base_score(doc, node) + accumulated[id(node)]
            if total and self.has_positive_hint(node):
                total *= self.config.positive_hint_boost
            totals[id(node)] = total

            parent = node.parent
            if total and parent is not None and id(parent) in known:
                accumulated[id(parent)] += self.config.propagation_fraction * total

        root = None
        best = 0.0
        for node in nodes:
            # Paragraphs only feed their parents and never become the root
            if node.name in PARAGRAPH_TAGS:
                continue
            # Strictly greater: the earliest node wins a tie
            if totals[id(node)] > best:
                root, best = node, totals[id(node)]

        if root is None:
            self.logger.debug(f"No scorable content on {doc.url}")
            return ArticleBody()

        return ArticleBody(root, self.paragraphs(doc, root), best)

    # ---- tree helpers -------------------------------------------------

    def is_noise(self, node: Tag) -> bool:
        if node.name in NOISE_TAGS:
            return True
        if node.name in ('html', 'body'):
            return False
        if (node.get('role') or '').lower() in NOISE_ROLES:
            return True
        return bool(NOISE_HINT_RE.search(_node_hints(node)))

    def has_positive_hint(self, node: Tag) -> bool:
        return bool(POSITIVE_HINT_RE.search(_node_hints(node)))

    def walk(self, root: Tag) -> List[Tag]:
        """Non-noise elements under ``root`` (inclusive) in document order."""
        order = []
        stack = [root]
        while stack:
            node = stack.pop()
            order.append(node)
            children = [
                child for child in node.children
                if isinstance(child, Tag) and not self.is_noise(child)
            ]
            stack.extend(reversed(children))
        return order

    def visible_text(self, node: Tag, direct_only: bool = False) -> str:
        """Text of ``node`` without noise subtrees.

        With ``direct_only`` the text of block-level children is left out,
        which is what a ``div`` holding loose prose contributes on its own.
        """
        parts: List[str] = []
        self._collect(node, parts, direct_only)
        return normalize_whitespace(''.join(parts))

    def _collect(self, node: Tag, parts: List[str], direct_only: bool):
        for child in node.children:
            if isinstance(child, Tag):
                if child.name in INVISIBLE_TAGS or self.is_noise(child):
                    continue
                block = child.name in BLOCK_TAGS
                if block and direct_only:
                    continue
                if block:
                    parts.append(' ')
                self._collect(child, parts, False)
                if block:
                    parts.append(' ')
            elif isinstance(child, PreformattedString):
                continue
            elif isinstance(child, NavigableString):
                parts.append(str(child))

    def own_text(self, node: Tag) -> Optional[str]:
        """Text a node contributes as a container, or None if it is not one."""
        if node.name in PARAGRAPH_TAGS:
            return self.visible_text(node)
        if node.name in CONTAINER_TAGS:
            return self.visible_text(node, direct_only=True)
        return None

    def link_density(self, node: Tag, text: str, direct_only: bool = False) -> float:
        if not text:
            return 0.0
        if direct_only:
            anchors = []
            for child in node.children:
                if not isinstance(child, Tag) or child.name in BLOCK_TAGS:
                    continue
                if child.name == 'a':
                    anchors.append(child)
                else:
                    anchors.extend(child.find_all('a'))
        else:
            anchors = node.find_all('a')
        linked = sum(len(self.visible_text(anchor)) for anchor in anchors)
        return min(1.0, linked / len(text))

    def base_score(self, doc: DomIndex, node: Tag) -> float:
        text = self.own_text(node)
        if not text or len(text) < self.config.min_container_length:
            return 0.0

        density = self.link_density(node, text, direct_only=node.name in CONTAINER_TAGS)
        if density > self.config.max_link_density:
            return 0.0

        cfg = self.config
        return (1 + cfg.comma_weight * text.count(',') + cfg.length_weight * len(text)) * (1 - density)

    def is_paragraph_like(self, node: Tag) -> bool:
        if node.name in PARAGRAPH_TAGS:
            return True
        if node.name in CONTAINER_TAGS:
            text = self.visible_text(node, direct_only=True)
            return len(text) >= self.config.min_container_length
        return False

    def paragraphs(self, doc: DomIndex, root: Tag) -> List[str]:
        """Text of the leaf-most paragraph-like elements under ``root``."""
        nodes = self.walk(root)
        candidates = [node for node in nodes if self.is_paragraph_like(node)]

        # Anything with a paragraph-like descendant is not a leaf
        inner = set()
        for node in candidates:
            parent = node.parent
            while parent is not None and parent is not root.parent:
                inner.add(id(parent))
                if parent is root:
                    break
                parent = parent.parent

        paragraphs = []
        for node in candidates:
            if id(node) in inner:
                continue
            text = self.visible_text(node)
            if not text:
                continue
            if self.link_density(node, text) > self.config.max_link_density:
                continue
            paragraphs.append(text)

        if not paragraphs:
            text = self.visible_text(root)
            if text:
                paragraphs.append(text)
        return paragraphs


class Extractor(ABC):
    """
    One method per extracted field.

    Methods that depend on the article root receive the ArticleBody chosen
    by ``body``, so a replaced body capability is honoured everywhere.
    """

    @abstractmethod
    def title(self, doc: DomIndex) -> str:
        pass

    @abstractmethod
    def body(self, doc: DomIndex) -> ArticleBody:
        pass

    @abstractmethod
    def authors(self, doc: DomIndex) -> List[str]:
        pass

    @abstractmethod
    def publish_date(self, doc: DomIndex) -> Optional[PublishDate]:
        pass

    @abstractmethod
    def top_image(self, doc: DomIndex, body: ArticleBody) -> Optional[str]:
        pass

    @abstractmethod
    def images(self, doc: DomIndex) -> List[str]:
        pass

    @abstractmethod
    def keywords(self, doc: DomIndex, body: ArticleBody) -> List[Keyword]:
        pass

    @abstractmethod
    def references(self, doc: DomIndex, body: ArticleBody) -> List[str]:
        pass

    def description(self, doc: DomIndex) -> Optional[str]:
        return None

    def canonical_url(self, doc: DomIndex) -> Optional[str]:
        return None

    def language(self, doc: DomIndex) -> Optional[str]:
        return None

    def favicon(self, doc: DomIndex) -> Optional[str]:
        return None

    def thumbnail(self, doc: DomIndex) -> Optional[str]:
        return None

    def videos(self, doc: DomIndex, body: ArticleBody) -> List[str]:
        return []

    def meta_data(self, doc: DomIndex) -> Dict[str, str]:
        return {}


CAPABILITIES = (
    'title', 'body', 'authors', 'publish_date', 'top_image', 'images', 'keywords',
    'references', 'description', 'canonical_url', 'language', 'favicon',
    'thumbnail', 'videos', 'meta_data',
)


class DefaultExtractor(Extractor):
    """Heuristic extraction for generic news pages."""

    def __init__(self, config: Optional[ExtractionConfig] = None):
        self.config = config or ExtractionConfig()
        self.scorer = BodyScorer(self.config)
        self.date_extractor = DateExtractor()
        self.logger = logging.getLogger(self.__class__.__name__)

    def title(self, doc: DomIndex) -> str:
        og_title = doc.meta('og:title')
        if og_title:
            return normalize_whitespace(og_title)

        title_tag = doc.soup.find('title')
        if title_tag is not None:
            title = doc.text(title_tag)
            if title:
                return self._strip_site_name(title)

        h1 = doc.soup.find('h1')
        if h1 is not None:
            return doc.text(h1)
        return ''

    def _strip_site_name(self, title: str) -> str:
        separators = list(TITLE_SEPARATOR_RE.finditer(title))
        if separators:
            head = title[:separators[-1].start()].strip()
            if head:
                return head
        return title

    def body(self, doc: DomIndex) -> ArticleBody:
        return doc.memo('article_body', lambda: self.scorer.score(doc))

    def authors(self, doc: DomIndex) -> List[str]:
        for tier in (self._authors_from_json_ld, self._authors_from_meta,
                     self._authors_from_elements, self._authors_from_byline):
            names = text_analysis.dedupe_names(tier(doc))
            if names:
                return names
        return []

    def _authors_from_json_ld(self, doc: DomIndex) -> List[str]:
        names = []
        for obj in doc.json_ld():
            author = obj.get('author')
            if author is None:
                continue
            for entry in author if isinstance(author, list) else [author]:
                if isinstance(entry, dict):
                    entry = entry.get('name')
                if isinstance(entry, str):
                    names.extend(text_analysis.split_byline(entry))
        return names

    def _authors_from_meta(self, doc: DomIndex) -> List[str]:
        names = []
        for key in AUTHOR_META_KEYS:
            for value in doc.meta_all(key):
                if is_http_url(value) or value.startswith('/'):
                    continue
                names.extend(text_analysis.split_byline(value))
        return names

    def _authors_from_elements(self, doc: DomIndex) -> List[str]:
        names = []
        for node in doc.find_all(True):
            if node.name in ('meta', 'script', 'style', 'time', 'link', 'html', 'body'):
                continue
            markers = ' '.join(filter(None, (
                doc.attr(node, 'itemprop'), doc.attr(node, 'rel'), doc.attr(node, 'class'),
            )))
            if not markers or not AUTHOR_HINT_RE.search(markers):
                continue
            text = doc.text(node)
            if text and len(text) <= MAX_BYLINE_LENGTH:
                names.extend(text_analysis.split_byline(text))
        return names

    def _authors_from_byline(self, doc: DomIndex) -> List[str]:
        h1 = doc.soup.find('h1')
        if h1 is None:
            return []
        for node in h1.find_all_next(True, limit=BYLINE_SEARCH_LIMIT):
            if node.name in INVISIBLE_TAGS:
                continue
            names = text_analysis.find_byline(doc.text(node)[:MAX_BYLINE_LENGTH * 2])
            if names:
                return names
        return []

    def publish_date(self, doc: DomIndex) -> Optional[PublishDate]:
        return self.date_extractor.extract(doc)

    def top_image(self, doc: DomIndex, body: ArticleBody) -> Optional[str]:
        for key in ('og:image', 'og:image:url', 'og:image:secure_url', 'twitter:image', 'twitter:image:src'):
            url = doc.resolve(doc.meta(key))
            if is_http_url(url):
                return url

        link = doc.soup.find('link', rel='image_src', href=True)
        if link is not None:
            url = doc.resolve(doc.attr(link, 'href'))
            if is_http_url(url):
                return url

        if body.root is not None:
            best_url, best_area = None, 0
            for image in doc.images(body.root):
                area = self._declared_size(image.node, 'width') * self._declared_size(image.node, 'height')
                if area > best_area:
                    best_url, best_area = image.url, area
            if best_url:
                return best_url

        images = doc.images()
        return images[0].url if images else None

    @staticmethod
    def _declared_size(node: Tag, name: str) -> int:
        match = re.match(r'\s*(\d+)', str(node.get(name) or ''))
        return int(match.group(1)) if match else 0

    def images(self, doc: DomIndex) -> List[str]:
        return _unique(image.url for image in doc.images())

    def keywords(self, doc: DomIndex, body: ArticleBody) -> List[Keyword]:
        from_meta = text_analysis.keywords_from_meta(doc.meta_by_name('keywords'))
        if from_meta:
            return from_meta
        return text_analysis.keywords_from_text(
            body.text, self.config.max_keywords, self.config.min_keyword_length
        )

    def references(self, doc: DomIndex, body: ArticleBody) -> List[str]:
        if body.root is None:
            return []

        page = urlsplit(doc.url)
        page_host = (page.hostname or '').lower()
        page_path = page.path.rstrip('/')

        urls = []
        for anchor in doc.links(body.root):
            if not is_http_url(anchor.url):
                continue
            target = urlsplit(anchor.url)
            if (target.hostname or '').lower() == page_host and target.path.rstrip('/') == page_path:
                continue
            urls.append(anchor.url)
        return _unique(urls)

    def description(self, doc: DomIndex) -> Optional[str]:
        value = doc.meta('description', 'og:description', 'twitter:description')
        return normalize_whitespace(value) if value else None

    def canonical_url(self, doc: DomIndex) -> Optional[str]:
        for link in doc.soup.find_all('link', href=True):
            if 'canonical' in (doc.attr(link, 'rel') or '').lower().split():
                url = doc.resolve(doc.attr(link, 'href'))
                if is_http_url(url):
                    return url
        url = doc.resolve(doc.meta('og:url'))
        return url if is_http_url(url) else None

    def language(self, doc: DomIndex) -> Optional[str]:
        html = doc.soup.find('html')
        candidates = [doc.attr(html, 'lang') if html is not None else None]
        candidates.append(doc.meta('content-language', 'lang', 'og:locale'))

        for value in candidates:
            if not value:
                continue
            primary = re.split(r'[-_]', value.strip())[0].lower()
            if LANGUAGE_RE.match(primary):
                return primary
        return None

    def favicon(self, doc: DomIndex) -> Optional[str]:
        for link in doc.soup.find_all('link', href=True):
            if 'icon' in (doc.attr(link, 'rel') or '').lower().split():
                url = doc.resolve(doc.attr(link, 'href'))
                if url:
                    return url
        return None

    def thumbnail(self, doc: DomIndex) -> Optional[str]:
        url = doc.resolve(doc.meta('thumbnail', 'thumbnailurl'))
        return url if is_http_url(url) else None

    def videos(self, doc: DomIndex, body: ArticleBody) -> List[str]:
        if body.root is None:
            return []

        urls = []
        for node in body.root.find_all(['video', 'source', 'iframe', 'embed']):
            if node.name == 'source' and (node.parent is None or node.parent.name != 'video'):
                continue
            url = doc.resolve(doc.attr(node, 'src'))
            if not is_http_url(url):
                continue
            if node.name in ('iframe', 'embed'):
                host = (urlsplit(url).hostname or '').lower()
                if not any(host == known or host.endswith('.' + known) for known in VIDEO_HOSTS):
                    continue
            urls.append(url)
        return _unique(urls)

    def meta_data(self, doc: DomIndex) -> Dict[str, str]:
        return doc.meta_data()


class SiteExtractor(Extractor):
    """
    Per-site composition: any subset of capabilities replaced by callables,
    everything else delegated to ``base``.

        extractor = SiteExtractor(DefaultExtractor(), title=lambda doc: doc.text(doc.select_one('h1.headline')))

    Replacement callables take the same arguments as the method they replace.
    """

    def __init__(self, base: Optional[Extractor] = None, **overrides: Callable):
        unknown = set(overrides) - set(CAPABILITIES)
        if unknown:
            raise ValueError(f"Unknown extractor capabilities: {', '.join(sorted(unknown))}")
        for name, func in overrides.items():
            if not callable(func):
                raise TypeError(f"Override for '{name}' must be callable")

        self.base = base or DefaultExtractor()
        self.overrides = dict(overrides)

    def _dispatch(self, name: str, *args):
        func = self.overrides.get(name)
        if func is None:
            func = getattr(self.base, name)
        return func(*args)

    def title(self, doc):
        return self._dispatch('title', doc)

    def body(self, doc):
        return self._dispatch('body', doc)

    def authors(self, doc):
        return self._dispatch('authors', doc)

    def publish_date(self, doc):
        return self._dispatch('publish_date', doc)

    def top_image(self, doc, body):
        return self._dispatch('top_image', doc, body)

    def images(self, doc):
        return self._dispatch('images', doc)

    def keywords(self, doc, body):
        return self._dispatch('keywords', doc, body)

    def references(self, doc, body):
        return self._dispatch('references', doc, body)

    def description(self, doc):
        return self._dispatch('description', doc)

    def canonical_url(self, doc):
        return self._dispatch('canonical_url', doc)

    def language(self, doc):
        return self._dispatch('language', doc)

    def favicon(self, doc):
        return self._dispatch('favicon', doc)

    def thumbnail(self, doc):
        return self._dispatch('thumbnail', doc)

    def videos(self, doc, body):
        return self._dispatch('videos', doc, body)

    def meta_data(self, doc):
        return self._dispatch('meta_data', doc)


def _unique(urls) -> List[str]:
    seen = set()
    result = []
    for url in urls:
        if url and url not in seen:
            seen.add(url)
            result.append(url)
    return result


def extract_article(extractor: Extractor, doc: DomIndex) -> ArticleContent:
    """
    Run every capability of ``extractor`` against ``doc``.

    A capability that fails is logged and left empty; the rest of the
    article is still produced.
    """
    logger = logging.getLogger(__name__)

    def attempt(name: str, default, *args):
        try:
            value = getattr(extractor, name)(*args)
        except Exception as e:
            logger.warning(f"Extracting {name} failed for {doc.url}: {e}")
            return default
        return default if value is None else value

    body = attempt('body', None, doc)
    if not isinstance(body, ArticleBody):
        body = ArticleBody()

    return ArticleContent(
        url=doc.url,
        title=attempt('title', '', doc),
        body_text=body.text,
        paragraphs=tuple(body.paragraphs),
        authors=tuple(attempt('authors', [], doc)),
        publish_date=attempt('publish_date', None, doc),
        top_image=attempt('top_image', None, doc, body),
        images=tuple(attempt('images', [], doc)),
        keywords=tuple(attempt('keywords', [], doc, body)),
        references=tuple(attempt('references', [], doc, body)),
        description=attempt('description', None, doc),
        canonical_url=attempt('canonical_url', None, doc),
        language=attempt('language', None, doc),
        favicon=attempt('favicon', None, doc),
        thumbnail=attempt('thumbnail', None, doc),
        videos=tuple(attempt('videos', [], doc, body)),
        meta_data=dict(attempt('meta_data', {}, doc)),
    )
