"""Airbnb pricing from the rendered listing page (Playwright).

Alternative to the stayCheckout endpoint, selected with
``AIRBNB_STRATEGY=rendered``.
"""

import re
from datetime import date

from ratecompare.core.models import Channel, ChannelRequest, FetchStrategy, PartyComposition
from ratecompare.scrapers.base import BaseRenderedAdapter


class AirbnbBrowserAdapter(BaseRenderedAdapter):
    """Airbnb listing page rendered in a headless browser."""

    channel = Channel.AIRBNB
    DEFAULT_BASE_URL = "https://www.airbnb.com"
    LISTING_URL_PATTERN = re.compile(r"/rooms/(?:plus/)?(?P<listing_id>\d+)")

    WAIT_SELECTOR = ", ".join([
        "[data-section-id='BOOK_IT_SIDEBAR']",
        "[data-testid='price-breakdown']",
        "[data-testid='book-it-default']",
        "[class*='total']",
    ])

    def build_request(
        self,
        listing_id: str,
        check_in: date,
        check_out: date,
        party: PartyComposition,
    ) -> ChannelRequest:
        return ChannelRequest(
            url=f"{self.base_url}/rooms/{listing_id}",
            listing_id=listing_id,
            strategy=FetchStrategy.RENDERED,
            params={
                "check_in": check_in.isoformat(),
                "check_out": check_out.isoformat(),
                "adults": str(party.adults),
                "children": str(party.children),
                "infants": str(party.infants),
                "pets": str(party.pets),
            },
        )
