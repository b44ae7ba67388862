"""Channel-specific adapter implementations.

API adapters inherit from BaseAPIAdapter, page adapters from
BasePageAdapter and browser adapters from BaseRenderedAdapter.
"""

from .airbnb import AirbnbAdapter
from .airbnb_browser import AirbnbBrowserAdapter
from .booking import BookingAdapter
from .expedia import ExpediaAdapter
from .vrbo import VrboAdapter

__all__ = [
    # API adapters
    "AirbnbAdapter",
    # Rendered adapters
    "AirbnbBrowserAdapter",
    # Page adapters
    "VrboAdapter",
    "BookingAdapter",
    "ExpediaAdapter",
]
