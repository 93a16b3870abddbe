"""Crawl pipeline for a single device."""

from .crawl_pipeline import CrawlPipeline, CycleCancelled

__all__ = ["CrawlPipeline", "CycleCancelled"]
