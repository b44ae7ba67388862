"""Channel adapters for fetching nightly-rental price quotes.

This package provides:
- Base adapter classes for the api, page and rendered strategies
- Utility modules for rate limiting, retry, request courtesy and extraction
- Factory for creating and managing adapter instances
"""

from .base import (
    BaseAPIAdapter,
    BaseChannelAdapter,
    BasePageAdapter,
    BaseRenderedAdapter,
)
from .factory import AdapterFactory, adapter_factory, get_adapter_factory

__all__ = [
    # Base classes
    "BaseChannelAdapter",
    "BaseAPIAdapter",
    "BasePageAdapter",
    "BaseRenderedAdapter",
    # Factory
    "AdapterFactory",
    "adapter_factory",
    "get_adapter_factory",
]
