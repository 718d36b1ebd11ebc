"""Models package."""

from .share import Share
