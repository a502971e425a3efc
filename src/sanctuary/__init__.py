"""sanctuary -- daily viewing-budget enforcement and content delivery.

This package implements the server side of a digital wellness product:
a shared day-by-day viewing allowance, a tick-driven session timer that
gates playback and auto-stops at zero, an embed resolver for common video
platforms, and a fallback service that fetches content through a headless
browser when direct embedding is blocked.
"""

__version__ = "0.1.0"
