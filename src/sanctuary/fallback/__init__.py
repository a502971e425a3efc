"""Fallback acquisition module for sanctuary.

Public API:
    FallbackService -- Scrape/download/screenshot pipeline for blocked embeds
"""

from sanctuary.fallback.service import FallbackService, is_media_candidate

__all__ = ["FallbackService", "is_media_candidate"]
