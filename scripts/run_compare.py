"""Manual rate comparison runner for testing and debugging adapters.

Runs one comparison for a configured property and prints every channel's
quote, the cheapest channel and the savings.

Usage:
    python scripts/run_compare.py --config properties.json --property beach-house \
        --check-in 2026-07-01 --check-out 2026-07-05
    python scripts/run_compare.py --config properties.json --property beach-house \
        --check-in 2026-07-01 --check-out 2026-07-05 --channels airbnb,vrbo --adults 4
    python scripts/run_compare.py ... --json
"""

import argparse
import asyncio
import json
import sys
from datetime import date
from decimal import Decimal

from ratecompare.config import load_rate_compare_config, settings
from ratecompare.core.exceptions import AllChannelsFailedError, RateCompareError
from ratecompare.core.logging import configure_logging
from ratecompare.core.models import PartyComposition, RateComparisonResult
from ratecompare.schemas import RateComparisonResponse
from ratecompare.scrapers.register_adapters import register_all_adapters
from ratecompare.scrapers.utils.browser_manager import get_browser_manager
from ratecompare.services.cache_service import InMemoryRateCache
from ratecompare.services.rate_service import RateComparisonService


async def run_compare(args: argparse.Namespace) -> int:
    """Run one comparison and print it. Returns the process exit code."""
    config = load_rate_compare_config(args.config)
    factory = register_all_adapters()
    service = RateComparisonService(
        config,
        factory=factory,
        cache=InMemoryRateCache(ttl=settings.CACHE_TTL_SECONDS),
    )

    if args.verbose:
        service.on("channel-fetched", _print_channel_event)

    channels = [c for c in args.channels.split(",") if c.strip()] if args.channels else None
    party = PartyComposition(
        adults=args.adults, children=args.children, infants=args.infants, pets=args.pets
    )

    try:
        result = await service.fetch_rates(
            args.property,
            args.check_in,
            args.check_out,
            channels=channels,
            party=party,
            timeout=args.timeout,
        )
    except AllChannelsFailedError as e:
        print(f"\n❌ Every channel failed for '{e.property_id}':")
        for failure in e.failures:
            print(f"   - {failure.channel}: [{failure.cause_code}] {failure.cause}")
        return 2
    except RateCompareError as e:
        print(f"\n❌ {e.code}: {e.message}")
        return 1
    finally:
        await service.close()
        browser_manager = get_browser_manager()
        if browser_manager.is_running:
            await browser_manager.stop()

    if args.json:
        response = RateComparisonResponse.from_result(result)
        print(json.dumps(response.model_dump(mode="json"), indent=2))
    else:
        _print_result(result)
    return 0


def _print_channel_event(payload: dict) -> None:
    marker = "✅" if payload["outcome"] == "success" else "⚠️ "
    detail = "" if payload["outcome"] == "success" else f" ({payload['error_code']})"
    print(f"  {marker} {payload['channel']}: {payload['latency_ms']} ms{detail}")


def _print_result(result: RateComparisonResult) -> None:
    print(f"\n{'='*70}")
    print(f"  {result.property_id}: {result.check_in} → {result.check_out}")
    print(f"{'='*70}\n")

    for quote in sorted(result.quotes, key=lambda q: q.total_price):
        flags = []
        if not quote.availability:
            flags.append("unavailable")
        if quote.estimated:
            flags.append("estimated")
        suffix = f"  [{', '.join(flags)}]" if flags else ""
        print(f"[{quote.channel}] {_format_price(quote.total_price, quote.currency)}{suffix}")
        print(f"    Base:     {_format_price(quote.base_price, quote.currency)}")
        print(f"    Cleaning: {_format_price(quote.fees.cleaning, quote.currency)}")
        print(f"    Service:  {_format_price(quote.fees.service, quote.currency)}")
        print(f"    Taxes:    {_format_price(quote.fees.taxes, quote.currency)}")
        if quote.fees.other:
            print(f"    Other:    {_format_price(quote.fees.other, quote.currency)}")
        print()

    for channel, message in result.failures.items():
        print(f"[{channel}] failed: {message}\n")

    print(f"{'='*70}")
    if result.best_quote:
        best = result.best_quote
        print(f"  Best: {best.channel} at {_format_price(best.total_price, best.currency)}")
        if result.savings:
            print(
                f"  Saves {_format_price(result.savings.amount, best.currency)}"
                f" ({result.savings.percentage}%) over the next cheapest"
            )
    else:
        print("  No channel has availability for these dates")
    print(f"{'='*70}\n")


def _format_price(price: Decimal, currency: str) -> str:
    if currency == "USD":
        return f"${price:,.2f}"
    if currency == "EUR":
        return f"€{price:,.2f}"
    if currency == "GBP":
        return f"£{price:,.2f}"
    return f"{price:,.2f} {currency}"


def main():
    """Parse arguments and run the comparison."""
    parser = argparse.ArgumentParser(
        description="Compare a property's rates across booking channels",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("--config", default=None, help="Properties JSON file (default: PROPERTIES_FILE)")
    parser.add_argument("--property", required=True, help="Configured property id")
    parser.add_argument("--check-in", required=True, type=date.fromisoformat, help="Arrival date (YYYY-MM-DD)")
    parser.add_argument("--check-out", required=True, type=date.fromisoformat, help="Departure date (YYYY-MM-DD)")
    parser.add_argument("--channels", help="Comma-separated channels (default: all listed)")
    parser.add_argument("--adults", type=int, default=2)
    parser.add_argument("--children", type=int, default=0)
    parser.add_argument("--infants", type=int, default=0)
    parser.add_argument("--pets", type=int, default=0)
    parser.add_argument("--timeout", type=float, default=None, help="Per-attempt timeout in seconds")
    parser.add_argument("--json", action="store_true", help="Print the result as JSON")
    parser.add_argument("-v", "--verbose", action="store_true", help="Print per-channel events")

    args = parser.parse_args()
    configure_logging("DEBUG" if args.verbose else settings.LOG_LEVEL, json_logs=settings.LOG_JSON)

    sys.exit(asyncio.run(run_compare(args)))


if __name__ == "__main__":
    main()
