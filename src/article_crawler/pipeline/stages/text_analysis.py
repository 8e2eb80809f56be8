"""
Text analysis helpers - tokenization, keyword scoring and byline cleanup.
"""

import re
from collections import Counter
from typing import List, Optional

from ..pipeline_data import Keyword


STOPWORDS = frozenset("""
a about above after again against all also am an and any are aren't as at be
because been before being below between both but by can can't cannot could
couldn't did didn't do does doesn't doing don't down during each few for from
further had hadn't has hasn't have haven't having he he'd he'll he's her here
here's hers herself him himself his how how's however i i'd i'll i'm i've if in
into is isn't it it's its itself just let's like made make many may me might
more most much must mustn't my myself new no nor not now of off on once one
only or other ought our ours ourselves out over own said same say says she
she'd she'll she's should shouldn't since so some still such than that that's
the their theirs them themselves then there there's these they they'd they'll
they're they've this those though through to too two under until up upon us
very was wasn't we we'd we'll we're we've were weren't what what's when
when's where where's whether which while who who's whom why why's will with
within without won't would wouldn't yet you you'd you'll you're you've your
yours yourself yourselves
""".split())

WORD_RE = re.compile(r"[^\W\d_]+(?:['\u2019][^\W\d_]+)*", re.UNICODE)

# Agency names and job titles that trail or replace a byline
AUTHOR_STOP_WORDS = (
    'Senior Reporter', 'Opinion Writer', 'Staff Writer', 'Reporter', 'Writer',
    'Reuters', 'IANS', 'AP', 'AFP', 'PTI', 'ANI', 'DPA',
)
AUTHOR_STOP_RE = re.compile(
    r'\b(' + '|'.join(re.escape(word) for word in AUTHOR_STOP_WORDS) + r')\b'
)
BYLINE_PREFIX_RE = re.compile(r'^\s*(written\s+)?by[:\s]+', re.I)
BYLINE_SPLIT_RE = re.compile(r'\s*(?:,|\||/|·|;|\band\b|&)\s*', re.I)
BYLINE_RE = re.compile(
    r"\bBy\s+([A-Z][\w.'\-]*(?:\s+[A-Z][\w.'\-]*){0,3}"
    r"(?:\s*(?:,|\band\b)\s*[A-Z][\w.'\-]*(?:\s+[A-Z][\w.'\-]*){0,3})*)"
)


def tokenize(text: str) -> List[str]:
    """Lowercase word tokens; digits and punctuation are dropped."""
    return [token.lower().replace('\u2019', "'") for token in WORD_RE.findall(text or '')]


def keywords_from_text(text: str, max_keywords: int = 10, min_length: int = 3) -> List[Keyword]:
    """
    Term-frequency keywords.

    Tokens shorter than ``min_length`` and stopwords are dropped. Terms are
    ranked by count, ties broken by first occurrence; the score is the
    term's share of the remaining tokens.
    """
    terms = [
        token for token in tokenize(text)
        if len(token) >= min_length and token not in STOPWORDS
    ]
    if not terms or max_keywords <= 0:
        return []

    counts = Counter(terms)
    first_seen = {}
    for position, term in enumerate(terms):
        first_seen.setdefault(term, position)

    total = len(terms)
    ranked = sorted(counts, key=lambda term: (-counts[term], first_seen[term]))
    return [Keyword(term, counts[term] / total) for term in ranked[:max_keywords]]


def keywords_from_meta(content: Optional[str]) -> List[Keyword]:
    """Comma-separated meta keywords, each scored 1.0, in declared order."""
    if not content:
        return []

    keywords = []
    seen = set()
    for term in content.split(','):
        term = term.strip()
        if term and term.lower() not in seen:
            seen.add(term.lower())
            keywords.append(Keyword(term, 1.0))
    return keywords


def clean_author_name(name: str) -> str:
    name = BYLINE_PREFIX_RE.sub('', name or '')
    name = AUTHOR_STOP_RE.sub('', name)
    name = re.sub(r'<[^>]+>', '', name)
    name = re.sub(r'\s+', ' ', name)
    return name.strip(' .,-/:|\t\n')


def is_valid_author_name(name: str) -> bool:
    words = name.split()
    return (
        2 <= len(words) <= 4
        and not any(c.isdigit() for c in name)
        and '<' not in name
        and '>' not in name
        and '@' not in name
    )


def split_byline(text: str) -> List[str]:
    """Split a byline into cleaned, valid author names."""
    text = BYLINE_PREFIX_RE.sub('', (text or '').replace('\xa0', ' '))
    names = []
    for token in BYLINE_SPLIT_RE.split(text):
        name = clean_author_name(token)
        if is_valid_author_name(name):
            names.append(name)
    return names


def find_byline(text: str) -> List[str]:
    """Names from the first "By Name[, Name] [and Name]" phrase in ``text``."""
    match = BYLINE_RE.search(text or '')
    if not match:
        return []
    return split_byline(match.group(1))


def dedupe_names(names) -> List[str]:
    """Case-insensitive dedup, first-seen order kept."""
    seen = set()
    result = []
    for name in names:
        key = name.lower()
        if key not in seen:
            seen.add(key)
            result.append(name)
    return result
