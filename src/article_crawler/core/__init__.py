"""
Core Module - High-level crawl orchestration.

Components:
-----------
- Site / SiteBuilder: Build a site from its seed page and stream its articles
- CrawlPipeline: Dedup, worker pool and result stream for one crawl
- stream_articles: Extract a known list of article URLs

Usage:
------
from article_crawler.core import Site, stream_articles

site = Site.builder('https://news.example.com').threads(4).build()
for result in site.into_stream():
    print(result.url, result.ok)

for result in stream_articles(['https://news.example.com/2024/05/01/story-title-here']):
    print(result.article.title if result.ok else result.error)
"""

from .crawl_pipeline import CrawlPipeline, stream_articles
from .site import Site, SiteBuilder

__all__ = [
    'CrawlPipeline',
    'stream_articles',
    'Site',
    'SiteBuilder',
]
