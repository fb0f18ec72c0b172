"""CLI job to search pharmacies and print the results."""

import argparse
import logging
from typing import List, Optional

from pharmafinder.core.config import ConfigurationError, get_settings
from pharmafinder.core.geo import StaticGeoProvider
from pharmafinder.jobs.search import SearchOrchestrator, ValidationError
from pharmafinder.models import Coordinates, SearchState

logger = logging.getLogger(__name__)


def run_search_job(
    *,
    query: Optional[str],
    latitude: Optional[float],
    longitude: Optional[float],
    use_pincode: bool = False,
    prescription: Optional[str] = None,
    with_hours: bool = False,
    stock: Optional[str] = None,
) -> SearchState:
    settings = get_settings()
    provider = None
    if latitude is not None and longitude is not None:
        provider = StaticGeoProvider(Coordinates(latitude=latitude, longitude=longitude))

    orchestrator = SearchOrchestrator(settings, geo_provider=provider)
    orchestrator.request_location()

    if prescription:
        scan = orchestrator.analyze_file(prescription)
        if scan.error:
            raise ValidationError(scan.error)
        logger.info("Medicines detected: %s", scan.medicines)
        state = orchestrator.search_prescription()
    elif use_pincode:
        state = orchestrator.use_current_pincode()
    else:
        state = orchestrator.search(query=query or "")

    for result in state.results:
        if with_hours:
            orchestrator.check_hours(result.id)
        if stock:
            orchestrator.check_stock(result.id, stock)
            stock_check = orchestrator.stock_check
            if stock_check is not None:
                print(f"[stock] {result.name}: {stock_check.result}")

    return orchestrator.snapshot()


def format_state(state: SearchState) -> str:
    if state.error:
        return f"Error: {state.error}"

    lines: List[str] = [f'Query: "{state.query}"', "", state.summary, ""]
    for index, result in enumerate(state.results, start=1):
        badge = " [24/7]" if result.is_open_24_7 else ""
        lines.append(f"{index}. {result.name}{badge}")
        lines.append(f"   {result.snippet}")
        if result.opening_hours:
            lines.append(f"   Hours: {result.opening_hours}")
        lines.append(f"   {result.maps_uri}")
    if not state.results:
        lines.append("No pharmacies found.")
    return "\n".join(lines)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Find pharmacies with Gemini Maps grounding")
    parser.add_argument("query", nargs="?", default="", help="Search text, pincode or medicine list")
    parser.add_argument("--lat", dest="latitude", type=float, help="Latitude used as location bias")
    parser.add_argument("--lng", dest="longitude", type=float, help="Longitude used as location bias")
    parser.add_argument("--pincode", dest="use_pincode", action="store_true", help="Search around the detected pincode")
    parser.add_argument("--prescription", dest="prescription", help="Path to a prescription image")
    parser.add_argument("--hours", dest="with_hours", action="store_true", help="Look up opening hours for each result")
    parser.add_argument("--stock", dest="stock", help="Medicine to check stock for at each result")
    return parser


def main() -> None:
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s - %(message)s")
    parser = build_parser()
    args = parser.parse_args()

    if (args.latitude is None) != (args.longitude is None):
        parser.error("--lat and --lng must be given together")

    try:
        state = run_search_job(
            query=args.query,
            latitude=args.latitude,
            longitude=args.longitude,
            use_pincode=args.use_pincode,
            prescription=args.prescription,
            with_hours=args.with_hours,
            stock=args.stock,
        )
    except ConfigurationError as exc:
        logger.error("Configuration error: %s", exc)
        raise SystemExit(2) from exc
    except ValidationError as exc:
        logger.error("%s", exc)
        raise SystemExit(1) from exc

    print(format_state(state))


if __name__ == "__main__":
    main()
