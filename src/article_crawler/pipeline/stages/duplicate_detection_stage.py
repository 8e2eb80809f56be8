"""
Duplicate Detection - Prevents fetching the same URL twice within one crawl.
"""

import threading
import logging
from typing import Set

from .link_classification_stage import URLNormalizer


class DuplicateDetector:
    """
    In-memory dedup set keyed by normalized URL.

    ``mark_seen`` is an atomic insert-if-absent, so two workers racing on the
    same URL can never both win it. One detector lives for one crawl.
    """

    def __init__(self):
        self.seen_urls: Set[str] = set()
        self.lock = threading.Lock()
        self.normalizer = URLNormalizer()
        self.logger = logging.getLogger(self.__class__.__name__)

        self.stats = {
            'admitted': 0,
            'duplicates': 0,
        }

    def key(self, url: str) -> str:
        """Dedup key for a URL; raises InvalidUrlError when unparsable."""
        return self.normalizer.normalize(url)

    def mark_seen(self, url: str) -> bool:
        """
        Mark URL as seen.

        Returns:
            True if URL was newly added, False if already existed
        """
        check_url = self.key(url)

        with self.lock:
            if check_url in self.seen_urls:
                self.stats['duplicates'] += 1
                self.logger.debug(f"Duplicate URL skipped: {url}")
                return False
            self.seen_urls.add(check_url)
            self.stats['admitted'] += 1
            return True

    def get_stats(self) -> dict:
        with self.lock:
            stats = self.stats.copy()
            stats['unique_urls'] = len(self.seen_urls)
        return stats
