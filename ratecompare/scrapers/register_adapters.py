"""Register all channel adapters with the factory.

Imported during application startup (API lifespan and CLI).
"""

from typing import Optional

import structlog

from ratecompare.scrapers.adapters import (
    AirbnbAdapter,
    AirbnbBrowserAdapter,
    BookingAdapter,
    ExpediaAdapter,
    VrboAdapter,
)
from ratecompare.scrapers.factory import AdapterFactory, get_adapter_factory

logger = structlog.get_logger(__name__)

ALL_ADAPTERS = [
    # Structured API
    AirbnbAdapter,
    # Rendered page
    AirbnbBrowserAdapter,
    # Page text
    VrboAdapter,
    BookingAdapter,
    ExpediaAdapter,
]


def register_all_adapters(factory: Optional[AdapterFactory] = None) -> AdapterFactory:
    """Register every available adapter and return the factory."""
    factory = factory or get_adapter_factory()

    for adapter_class in ALL_ADAPTERS:
        factory.register_adapter(adapter_class)

    logger.info(
        "all_adapters_registered",
        count=len(ALL_ADAPTERS),
        channels=[c.value for c in factory.get_registered_channels()],
    )
    return factory
