"""
Pipeline Data Model - Units of work and the article records they produce
File: src/article_crawler/pipeline/pipeline_data.py
"""
from dataclasses import dataclass, field
from typing import Optional, List, Dict, Any, Tuple
from datetime import datetime
from enum import Enum

from ..errors import CrawlError


class LinkLabel(Enum):
    """Classification of a discovered link."""
    ARTICLE = "article"
    CATEGORY = "category"
    IGNORED = "ignored"


class UnitKind(Enum):
    """What a unit of work does once fetched."""
    ARTICLE = "article"    # extract and emit
    CATEGORY = "category"  # classify links, feed new articles back


class UrlState(Enum):
    """Lifecycle of a URL inside one crawl."""
    DISCOVERED = "discovered"
    CLASSIFIED = "classified"
    FETCHING = "fetching"
    FETCHED = "fetched"
    EXTRACTING = "extracting"
    EMITTED = "emitted"
    SKIPPED = "skipped"


class DateConfidence(Enum):
    """Where a publish date came from, most trustworthy first."""
    STRUCTURED_DATA = "structured_data"
    META_TAG = "meta_tag"
    TIME_ELEMENT = "time_element"
    URL_PATH = "url_path"

    @property
    def is_structured(self) -> bool:
        return self in (DateConfidence.STRUCTURED_DATA, DateConfidence.META_TAG)


@dataclass(frozen=True)
class CandidateLink:
    """A link found on a page, labelled by the LinkClassifier."""
    url: str
    anchor_text: str
    label: LinkLabel
    score: float = 0.0

    @property
    def is_article(self) -> bool:
        return self.label is LinkLabel.ARTICLE


@dataclass
class FetchResult:
    """A successful HTTP GET, decoded."""
    url: str
    final_url: str  # After redirects
    content: bytes
    text: str
    charset: str
    status_code: int
    content_type: str = ''
    headers: Dict[str, str] = field(default_factory=dict)
    response_time: float = 0.0


@dataclass(frozen=True)
class PublishDate:
    value: datetime
    confidence: DateConfidence

    def to_dict(self) -> Dict[str, Any]:
        return {
            'value': self.value.isoformat(),
            'confidence': self.confidence.value,
        }


@dataclass(frozen=True)
class Keyword:
    term: str
    score: float


@dataclass(frozen=True)
class ArticleContent:
    """
    Structured article produced by the extractor.
    Immutable once built; body_text is non-empty only for a successful extraction.
    """
    url: str
    title: str = ''
    body_text: str = ''
    paragraphs: Tuple[str, ...] = ()
    authors: Tuple[str, ...] = ()
    publish_date: Optional[PublishDate] = None
    top_image: Optional[str] = None
    images: Tuple[str, ...] = ()
    keywords: Tuple[Keyword, ...] = ()
    references: Tuple[str, ...] = ()

    # Page-level metadata
    description: Optional[str] = None
    canonical_url: Optional[str] = None
    language: Optional[str] = None
    favicon: Optional[str] = None
    thumbnail: Optional[str] = None
    videos: Tuple[str, ...] = ()
    meta_data: Dict[str, str] = field(default_factory=dict, compare=False)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for serialization"""
        return {
            'url': self.url,
            'title': self.title,
            'body_text': self.body_text,
            'paragraphs': list(self.paragraphs),
            'authors': list(self.authors),
            'publish_date': self.publish_date.to_dict() if self.publish_date else None,
            'top_image': self.top_image,
            'images': list(self.images),
            'keywords': [{'term': k.term, 'score': k.score} for k in self.keywords],
            'references': list(self.references),
            'description': self.description,
            'canonical_url': self.canonical_url,
            'language': self.language,
            'favicon': self.favicon,
            'thumbnail': self.thumbnail,
            'videos': list(self.videos),
            'meta_data': dict(self.meta_data),
        }


@dataclass(frozen=True)
class CrawlResult:
    """One stream item: either an article or the error that replaced it."""
    url: str
    article: Optional[ArticleContent] = None
    error: Optional[CrawlError] = None

    @property
    def ok(self) -> bool:
        return self.error is None and self.article is not None

    @classmethod
    def success(cls, article: ArticleContent) -> 'CrawlResult':
        return cls(url=article.url, article=article)

    @classmethod
    def failure(cls, url: str, error: CrawlError) -> 'CrawlResult':
        if error.url is None:
            error.url = url
        return cls(url=url, error=error)

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {'url': self.url, 'ok': self.ok}
        if self.ok:
            data['article'] = self.article.to_dict()
        else:
            data['error'] = self.error.to_dict() if self.error else None
        return data

    def __repr__(self) -> str:
        outcome = 'ok' if self.ok else type(self.error).__name__
        return f"CrawlResult(url='{self.url}', {outcome})"


@dataclass
class DiscoveredLinks:
    """Internal pipeline message: article links found on a category page."""
    source_url: str
    links: List[CandidateLink] = field(default_factory=list)


@dataclass
class PipelineData:
    """
    Unit of work handed to the worker stage.
    One unit covers fetch, parse and extraction of a single URL.
    """
    url: str
    kind: UnitKind = UnitKind.ARTICLE
    parent_url: Optional[str] = None
    state: UrlState = UrlState.DISCOVERED

    # Timing and performance
    timestamp: datetime = field(default_factory=datetime.now)
    stage_timings: Dict[str, float] = field(default_factory=dict)

    def advance(self, state: UrlState) -> None:
        self.state = state

    def add_timing(self, stage: str, duration: float) -> None:
        """Record processing time for a step"""
        self.stage_timings[stage] = duration

    def get_total_processing_time(self) -> float:
        return sum(self.stage_timings.values())

    def __repr__(self) -> str:
        return f"PipelineData(url='{self.url}', kind={self.kind.value}, state={self.state.value})"
