"""Booking.com adapter: hotel page fetched with stay dates."""

import re
from datetime import date

from ratecompare.core.models import Channel, ChannelRequest, FetchStrategy, PartyComposition
from ratecompare.scrapers.base import BasePageAdapter


class BookingAdapter(BasePageAdapter):
    """Booking.com hotel page adapter.

    The listing id is ``<country code>/<slug>`` taken from
    ``/hotel/<cc>/<slug>.html`` (a language suffix such as ``.en-gb`` is
    dropped).
    """

    channel = Channel.BOOKING
    DEFAULT_BASE_URL = "https://www.booking.com"
    LISTING_URL_PATTERN = re.compile(
        r"/hotel/(?P<listing_id>[a-z]{2}/[\w-]+?)(?:\.[a-z]{2}(?:-[a-z]{2})?)?\.html",
        re.IGNORECASE,
    )

    def build_request(
        self,
        listing_id: str,
        check_in: date,
        check_out: date,
        party: PartyComposition,
    ) -> ChannelRequest:
        return ChannelRequest(
            url=f"{self.base_url}/hotel/{listing_id}.html",
            listing_id=listing_id,
            strategy=FetchStrategy.PAGE,
            params={
                "checkin": check_in.isoformat(),
                "checkout": check_out.isoformat(),
                "group_adults": str(party.adults),
                "group_children": str(party.children),
                "no_rooms": "1",
                "selected_currency": self.config.currency,
            },
        )
