"""
Pipeline Framework Module

This module contains the pipeline infrastructure of the crawler: the worker
stage base class and the data structures that flow through it.

Components:
-----------
- PipelineStage: Abstract base class for worker-pool stages
- PipelineData: Unit of work handed to a stage
- CrawlResult, ArticleContent: What a crawl produces
"""

from .stage import PipelineStage
from .pipeline_data import PipelineData, CrawlResult, ArticleContent

__all__ = [
    'PipelineStage',
    'PipelineData',
    'CrawlResult',
    'ArticleContent',
]
