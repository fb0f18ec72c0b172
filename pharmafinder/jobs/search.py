"""Search orchestrator that owns the pharmacy search state and sequences its flows."""

import logging
import mimetypes
import threading
from dataclasses import replace
from pathlib import Path
from typing import Any, Dict, Optional, Set, Union

from pharmafinder.core.config import Settings, get_settings, require_api_key
from pharmafinder.core.geo import GeoProvider, LocationError, default_provider
from pharmafinder.etl.transform import to_pharmacy_results
from pharmafinder.models import (
    Coordinates,
    LocationStatus,
    PharmacyResult,
    PrescriptionScan,
    SearchState,
    StockCheck,
)
from pharmafinder.vendors import gemini
from pharmafinder.vendors.gemini import GatewayError

logger = logging.getLogger(__name__)

FALLBACK_QUERY = "pharmacies near me"
PRESCRIPTION_PREFIX = "Pharmacies with stock of: "

SEARCH_ERROR = "We couldn't reach the search service. Please try again."
GEO_UNAVAILABLE = "Geolocation is not available."
LOCATION_REQUIRED = "Location access is required to detect your pincode."
PINCODE_NOT_FOUND = "Could not detect pincode for your location."
PRESCRIPTION_ERROR = "Could not analyze prescription image."


class ValidationError(ValueError):
    """Raised when a flow is dispatched without its required input."""


class SearchOrchestrator:
    """Runs the search, pincode, hours, stock and prescription flows.

    State is an immutable ``SearchState`` swapped under a lock; the lock is
    never held while a network call is in flight. Readers only ever see whole
    snapshots.
    """

    def __init__(self, settings: Optional[Settings] = None, geo_provider: Optional[GeoProvider] = None) -> None:
        self._settings = settings or get_settings()
        self._geo_provider = geo_provider if geo_provider is not None else default_provider(self._settings)
        self._lock = threading.Lock()
        self._state = SearchState()
        self._search_seq = 0
        self._hours_in_flight: Set[str] = set()
        self._stock: Optional[StockCheck] = None
        self._prescription = PrescriptionScan()

    # ---------- Snapshots ----------

    def snapshot(self) -> SearchState:
        return self._state

    @property
    def stock_check(self) -> Optional[StockCheck]:
        return self._stock

    @property
    def prescription(self) -> PrescriptionScan:
        return self._prescription

    def is_loading_hours(self, pharmacy_id: str) -> bool:
        return pharmacy_id in self._hours_in_flight

    # ---------- Location ----------

    def request_location(self, provider: Optional[GeoProvider] = None) -> Optional[Coordinates]:
        provider = provider or self._geo_provider
        previous = self._state
        self._update(location_status=LocationStatus.REQUESTING)

        try:
            if provider is None:
                raise LocationError(GEO_UNAVAILABLE)
            coords = provider.request_position()
        except Exception as exc:  # noqa: BLE001
            logger.warning("Location access denied or failed: %s", exc)
            if previous.location is not None:
                self._update(location_status=LocationStatus.GRANTED)
                return previous.location
            changes: Dict[str, Any] = {"location_status": LocationStatus.DENIED}
            if provider is None:
                changes["error"] = GEO_UNAVAILABLE
            self._update(**changes)
            return None

        self._update(location=coords, location_status=LocationStatus.GRANTED)
        logger.info("Location granted: %s,%s", coords.latitude, coords.longitude)
        return coords

    # ---------- Search ----------

    def search(self, query: Optional[str] = None, override: Optional[str] = None) -> SearchState:
        """Run a pharmacy search and return the resulting snapshot.

        ``query`` replaces the current input text; ``override`` takes
        precedence over it and also becomes the new input text. An empty
        effective query falls back to ``FALLBACK_QUERY``.
        """
        gateway = self._gateway_options()

        with self._lock:
            current = self._state
            if override is not None:
                new_query = override
            elif query is not None:
                new_query = query
            else:
                new_query = current.query
            effective = new_query.strip() or FALLBACK_QUERY

            self._search_seq += 1
            seq = self._search_seq
            self._state = replace(current, query=new_query, is_loading=True, error=None, results=(), summary="")
            location = current.location

        logger.info("Dispatching search seq=%d query=%s", seq, effective)
        try:
            response = gemini.search_pharmacies(effective, location, **gateway)
        except GatewayError as exc:
            logger.error("Pharmacy search failed for query=%s: %s", effective, exc)
            return self._finish_search(seq, error=SEARCH_ERROR)

        try:
            results = to_pharmacy_results(response.chunks)
        except (AttributeError, KeyError, TypeError, ValueError) as exc:
            logger.error("Malformed grounding chunks for query=%s: %s", effective, exc)
            return self._finish_search(seq, error=SEARCH_ERROR)

        logger.info("Search seq=%d produced %d pharmacies", seq, len(results))
        return self._finish_search(seq, results=tuple(results), summary=response.summary)

    def _finish_search(self, seq: int, **changes: Any) -> SearchState:
        with self._lock:
            if seq != self._search_seq:
                logger.info("Discarding stale search response seq=%d (latest=%d)", seq, self._search_seq)
                return self._state
            self._state = replace(self._state, is_loading=False, **changes)
            return self._state

    def use_current_pincode(self) -> SearchState:
        gateway = self._gateway_options()
        self._update(error=None)

        coords = self._state.location or self.request_location()
        if coords is None:
            return self._update(error=LOCATION_REQUIRED)

        pincode = gemini.reverse_geocode_to_postal_code(coords.latitude, coords.longitude, **gateway)
        if not pincode:
            return self._update(error=PINCODE_NOT_FOUND)

        logger.info("Detected pincode %s", pincode)
        return self.search(override=pincode)

    # ---------- Hours ----------

    def check_hours(self, pharmacy_id: str) -> Optional[str]:
        """Fetch and merge opening hours; returns None when a lookup is already running."""
        gateway = self._gateway_options()

        with self._lock:
            if pharmacy_id in self._hours_in_flight:
                logger.debug("Hours lookup already in flight for %s", pharmacy_id)
                return None
            pharmacy = self._find(pharmacy_id)
            self._hours_in_flight.add(pharmacy_id)
            location = self._state.location

        try:
            hours = gemini.lookup_hours(pharmacy.name, location, **gateway)
            with self._lock:
                results = tuple(
                    replace(result, opening_hours=hours) if result.id == pharmacy_id else result
                    for result in self._state.results
                )
                self._state = replace(self._state, results=results)
        finally:
            with self._lock:
                self._hours_in_flight.discard(pharmacy_id)
        return hours

    # ---------- Stock ----------

    def open_stock_check(self, pharmacy_id: str) -> StockCheck:
        with self._lock:
            pharmacy = self._find(pharmacy_id)
            self._stock = StockCheck(pharmacy_id=pharmacy.id, pharmacy_name=pharmacy.name)
            return self._stock

    def close_stock_check(self) -> None:
        with self._lock:
            self._stock = None

    def check_stock(self, pharmacy_id: str, medicine: str) -> str:
        gateway = self._gateway_options()
        medicine = (medicine or "").strip()
        if not medicine:
            raise ValidationError("A medicine name is required to check stock.")

        with self._lock:
            pharmacy = self._find(pharmacy_id)
            self._stock = StockCheck(
                pharmacy_id=pharmacy.id,
                pharmacy_name=pharmacy.name,
                medicine=medicine,
                is_checking=True,
            )

        result = gemini.assess_stock(pharmacy.name, medicine, **gateway)

        with self._lock:
            stock = self._stock
            if stock is not None and stock.pharmacy_id == pharmacy_id and stock.medicine == medicine:
                self._stock = replace(stock, result=result, is_checking=False)
        return result

    # ---------- Prescription ----------

    def analyze_image(self, image_bytes: bytes, mime_type: str = "image/png") -> PrescriptionScan:
        gateway = self._gateway_options()
        if not image_bytes:
            raise ValidationError("An image is required to analyze a prescription.")

        with self._lock:
            self._prescription = PrescriptionScan(is_analyzing=True)
        try:
            medicines = gemini.extract_medicine_names(image_bytes, mime_type, **gateway)
        except GatewayError as exc:
            logger.error("Prescription analysis failed: %s", exc)
            scan = PrescriptionScan(error=PRESCRIPTION_ERROR)
        else:
            scan = PrescriptionScan(medicines=medicines)
        with self._lock:
            self._prescription = scan
        return scan

    def analyze_file(self, path: Union[str, Path]) -> PrescriptionScan:
        path = Path(path)
        mime_type = mimetypes.guess_type(path.name)[0] or "image/png"
        return self.analyze_image(path.read_bytes(), mime_type)

    def search_prescription(self) -> SearchState:
        medicines = self._prescription.medicines.strip()
        if not medicines or medicines == gemini.NO_MEDICINES:
            raise ValidationError("No medicine names to search for.")
        return self.search(override=f"{PRESCRIPTION_PREFIX}{medicines}")

    # ---------- Internals ----------

    def _gateway_options(self) -> Dict[str, Any]:
        return {
            "api_key": require_api_key(self._settings.gemini_api_key),
            "model": self._settings.gemini_model,
            "timeout": self._settings.gemini_timeout,
        }

    def _update(self, **changes: Any) -> SearchState:
        with self._lock:
            self._state = replace(self._state, **changes)
            return self._state

    def _find(self, pharmacy_id: str) -> PharmacyResult:
        for result in self._state.results:
            if result.id == pharmacy_id:
                return result
        raise ValidationError(f"Unknown pharmacy id: {pharmacy_id}")
