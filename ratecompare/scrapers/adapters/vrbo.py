"""VRBO adapter: listing page fetched with stay dates, prices matched in text."""

import re
from datetime import date

from ratecompare.core.models import Channel, ChannelRequest, FetchStrategy, PartyComposition
from ratecompare.scrapers.base import BasePageAdapter


class VrboAdapter(BasePageAdapter):
    """VRBO listing page adapter.

    Listing URLs look like ``/1234567``, ``/1234567ha`` or
    ``/property/1234567`` (optionally under a locale prefix).
    """

    channel = Channel.VRBO
    DEFAULT_BASE_URL = "https://www.vrbo.com"
    LISTING_URL_PATTERN = re.compile(
        r"vrbo\.[a-z.]+/(?:[a-z]{2}-[a-z]{2}/)?(?:property/)?(?P<listing_id>\d+)(?:ha)?(?=[/?#]|$)",
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
            url=f"{self.base_url}/{listing_id}",
            listing_id=listing_id,
            strategy=FetchStrategy.PAGE,
            params={
                "chkin": check_in.isoformat(),
                "chkout": check_out.isoformat(),
                "adults": str(party.adults),
                "children": str(party.children),
                "pets": "true" if party.pets else "false",
            },
        )
