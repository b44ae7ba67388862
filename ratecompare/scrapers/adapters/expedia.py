"""Expedia adapter: hotel information page fetched with stay dates."""

import re
from datetime import date

from ratecompare.core.models import Channel, ChannelRequest, FetchStrategy, PartyComposition
from ratecompare.scrapers.base import BasePageAdapter


class ExpediaAdapter(BasePageAdapter):
    """Expedia hotel page adapter (``...h<digits>.Hotel-Information``)."""

    channel = Channel.EXPEDIA
    DEFAULT_BASE_URL = "https://www.expedia.com"
    LISTING_URL_PATTERN = re.compile(r"[./]h(?P<listing_id>\d+)\.Hotel-Information", re.IGNORECASE)

    def build_request(
        self,
        listing_id: str,
        check_in: date,
        check_out: date,
        party: PartyComposition,
    ) -> ChannelRequest:
        # Expedia encodes children with ages (c<age>); ages are not known here.
        room = f"a{party.adults}"
        return ChannelRequest(
            url=f"{self.base_url}/h{listing_id}.Hotel-Information",
            listing_id=listing_id,
            strategy=FetchStrategy.PAGE,
            params={
                "chkin": check_in.isoformat(),
                "chkout": check_out.isoformat(),
                "rm1": room,
            },
        )
