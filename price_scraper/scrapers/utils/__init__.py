"""Scraper utilities for price normalization and retries."""

from .normalizer import PriceNormalizer
from .retry import RETRYABLE_EXCEPTIONS, transport_retry


__all__ = [
    # Normalization
    "PriceNormalizer",
    # Retry
    "RETRYABLE_EXCEPTIONS",
    "transport_retry",
]
