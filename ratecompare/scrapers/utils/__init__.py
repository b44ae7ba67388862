"""Adapter utilities: rate limiting, retry, request courtesy and extraction."""

from .ethics import EthicalPolicyGuard
from .extraction import PRICE_RULES, extract_from_text, html_regions
from .normalizer import PriceNormalizer, QuoteValidator
from .rate_limiter import ChannelRateLimiter, RequestLedger
from .retry import with_retry

__all__ = [
    # Rate limiting
    "ChannelRateLimiter",
    "RequestLedger",
    # Courtesy
    "EthicalPolicyGuard",
    # Extraction and validation
    "PRICE_RULES",
    "extract_from_text",
    "html_regions",
    "PriceNormalizer",
    "QuoteValidator",
    # Retry
    "with_retry",
]
