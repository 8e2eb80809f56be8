"""
Publish date extraction - structured data, meta tags, <time> elements and
finally the URL path, each tagged with how much it can be trusted.
"""

import logging
import re
from datetime import datetime
from typing import Optional
from urllib.parse import urlsplit

from dateutil.parser import parse as parse_date, isoparse

from ..pipeline_data import PublishDate, DateConfidence
from .parse_stage import DomIndex


JSON_LD_DATE_KEYS = ('datePublished', 'dateCreated')

META_DATE_KEYS = (
    'article:published_time',
    'og:published_time',
    'date',
    'pubdate',
    'publish-date',
    'dc.date.issued',
    'datepublished',
)

URL_DATE_RES = (
    re.compile(r'/(?P<year>(19|20)\d{2})/(?P<month>0?[1-9]|1[0-2])/(?P<day>0?[1-9]|[12]\d|3[01])(/|$)'),
    re.compile(r'/(?P<year>(19|20)\d{2})-(?P<month>0[1-9]|1[0-2])-(?P<day>0[1-9]|[12]\d|3[01])(-|/|$)'),
    re.compile(r'/(?P<year>(19|20)\d{2})/(?P<month>0[1-9]|1[0-2])(/|$)'),
)

YEAR_RE = re.compile(r'\d{4}')

# Fills the fields a partial date leaves out
DEFAULT_DATE = datetime(2000, 1, 1)


def parse_date_value(value) -> Optional[datetime]:
    """Parse a free-form date string; None when it holds no usable date."""
    if not value or not isinstance(value, str):
        return None
    value = value.strip()
    if not YEAR_RE.search(value):
        return None

    try:
        return isoparse(value)
    except (ValueError, OverflowError):
        pass

    try:
        return parse_date(value, default=DEFAULT_DATE)
    except (ValueError, OverflowError):
        return None


def date_from_url(url: str) -> Optional[datetime]:
    try:
        path = urlsplit(url).path
    except ValueError:
        return None

    for pattern in URL_DATE_RES:
        match = pattern.search(path)
        if not match:
            continue
        parts = match.groupdict()
        try:
            return datetime(int(parts['year']), int(parts['month']), int(parts.get('day') or 1))
        except ValueError:
            continue
    return None


class DateExtractor:
    """Finds the publish date of a document, most trustworthy source first."""

    def __init__(self):
        self.logger = logging.getLogger(self.__class__.__name__)

    def extract(self, doc: DomIndex) -> Optional[PublishDate]:
        for finder, confidence in (
            (self._from_json_ld, DateConfidence.STRUCTURED_DATA),
            (self._from_meta, DateConfidence.META_TAG),
            (self._from_time_elements, DateConfidence.TIME_ELEMENT),
            (self._from_url, DateConfidence.URL_PATH),
        ):
            value = finder(doc)
            if value is not None:
                self.logger.debug(f"Publish date {value.isoformat()} from {confidence.value} on {doc.url}")
                return PublishDate(value, confidence)
        return None

    def _from_json_ld(self, doc: DomIndex) -> Optional[datetime]:
        for obj in doc.json_ld():
            for key in JSON_LD_DATE_KEYS:
                value = obj.get(key)
                if isinstance(value, list):
                    value = value[0] if value else None
                parsed = parse_date_value(value)
                if parsed is not None:
                    return parsed
        return None

    def _from_meta(self, doc: DomIndex) -> Optional[datetime]:
        for key in META_DATE_KEYS:
            parsed = parse_date_value(doc.meta(key))
            if parsed is not None:
                return parsed
        return None

    def _from_time_elements(self, doc: DomIndex) -> Optional[datetime]:
        for node in doc.find_all('time'):
            parsed = parse_date_value(doc.attr(node, 'datetime'))
            if parsed is not None:
                return parsed
        return None

    def _from_url(self, doc: DomIndex) -> Optional[datetime]:
        return date_from_url(doc.url)
