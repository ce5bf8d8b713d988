"""
API package for the batch review service.

This package contains all API route handlers.
"""

from batch_review.api import health, review

__all__ = ["health", "review"]
