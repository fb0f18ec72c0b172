"""Utilities for transforming Gemini grounding responses into pharmacy results."""

import logging
from dataclasses import replace
from typing import Any, Dict, Iterable, List, Optional

from pharmafinder.models import PharmacyResult

logger = logging.getLogger(__name__)

UNKNOWN_NAME = "Unknown Pharmacy"
PLACEHOLDER_URI = "#"
DEFAULT_SNIPPET = "View details on Google Maps"


def _first_candidate(payload: Any) -> Dict[str, Any]:
    candidates = payload.get("candidates") if isinstance(payload, dict) else None
    if isinstance(candidates, list) and candidates and isinstance(candidates[0], dict):
        return candidates[0]
    return {}


def _as_dict(value: Any) -> Dict[str, Any]:
    return value if isinstance(value, dict) else {}


def _as_list(value: Any) -> List[Any]:
    return value if isinstance(value, list) else []


def _strip_or_none(value: Any) -> Optional[str]:
    if not isinstance(value, (str, int, float)) or isinstance(value, bool):
        return None
    value_str = str(value).strip()
    return value_str or None


def extract_text(payload: Any) -> str:
    content = _as_dict(_first_candidate(payload).get("content"))
    parts = _as_list(content.get("parts"))
    texts = [part["text"] for part in parts if isinstance(part, dict) and isinstance(part.get("text"), str)]
    return "".join(texts).strip()


def extract_grounding_chunks(payload: Any) -> List[Dict[str, Any]]:
    metadata = _as_dict(_first_candidate(payload).get("groundingMetadata"))
    chunks = metadata.get("groundingChunks") or []
    if not isinstance(chunks, list):
        logger.warning("groundingChunks is not a list: %s", str(chunks)[:200])
        return []
    return [chunk for chunk in chunks if isinstance(chunk, dict)]


def _first_review(place: Dict[str, Any]) -> Optional[str]:
    sources = _as_dict(place.get("placeAnswerSources"))
    snippets = _as_list(sources.get("reviewSnippets"))
    if snippets and isinstance(snippets[0], dict):
        return _strip_or_none(snippets[0].get("content"))
    return None


def to_pharmacy_result(place: Dict[str, Any], index: int) -> PharmacyResult:
    return PharmacyResult(
        id=_strip_or_none(place.get("placeId")) or f"pharmacy-{index}",
        name=_strip_or_none(place.get("title")) or UNKNOWN_NAME,
        snippet=_first_review(place) or DEFAULT_SNIPPET,
        maps_uri=_strip_or_none(place.get("uri")) or PLACEHOLDER_URI,
        address=_strip_or_none(place.get("address")),
    )


def to_pharmacy_results(chunks: Iterable[Dict[str, Any]]) -> List[PharmacyResult]:
    """Keep map-place chunks only and collapse duplicates by map link.

    The first chunk seen for a link wins, both its fields and its position.
    """
    places = [chunk["maps"] for chunk in chunks if isinstance(chunk, dict) and isinstance(chunk.get("maps"), dict)]

    seen = set()
    ids = set()
    results: List[PharmacyResult] = []
    for index, place in enumerate(places):
        result = to_pharmacy_result(place, index)
        if result.maps_uri in seen:
            logger.debug("Dropping duplicate place for uri=%s", result.maps_uri)
            continue
        if result.id in ids:
            result = replace(result, id=f"{result.id}-{index}")
        seen.add(result.maps_uri)
        ids.add(result.id)
        results.append(result)
    return results
