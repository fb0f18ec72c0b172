"""Client utilities for the Gemini generateContent API with Google Maps grounding."""

import base64
import logging
import re
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

import requests

from pharmafinder.core.config import DEFAULT_MODEL, require_api_key
from pharmafinder.etl.transform import extract_grounding_chunks, extract_text
from pharmafinder.models import Coordinates, SearchResponse

logger = logging.getLogger(__name__)
_SESSION = requests.Session()
_BASE_URL = "https://generativelanguage.googleapis.com/v1beta"
DEFAULT_TIMEOUT = 30.0

SEARCH_TEMPERATURE = 0.7
FACTUAL_TEMPERATURE = 0.1
STOCK_TEMPERATURE = 0.4

DEFAULT_SUMMARY = "Here are the pharmacies I found nearby."
HOURS_FALLBACK = "Hours not available"
NO_MEDICINES = "No medicines detected"
STOCK_EMPTY_FALLBACK = "Please contact the pharmacy directly to confirm availability."
STOCK_ERROR_FALLBACK = "Unable to verify stock at this time. Please call the pharmacy."

_POSTAL_CODE_RE = re.compile(r"\b\d{5,6}\b")


class GatewayError(RuntimeError):
    """Raised when the Gemini API call fails or returns a non-successful response."""


@dataclass(frozen=True)
class GenerateRequest:
    """Everything one generateContent call needs, and nothing else."""

    model: str
    prompt: str
    temperature: Optional[float] = None
    grounded: bool = False
    location: Optional[Coordinates] = None
    image: Optional[bytes] = None
    mime_type: str = "image/png"


def build_payload(request: GenerateRequest) -> Dict[str, Any]:
    """Construct the JSON body for a generateContent request."""
    parts: List[Dict[str, Any]] = []
    if request.image is not None:
        parts.append(
            {
                "inlineData": {
                    "mimeType": request.mime_type,
                    "data": base64.b64encode(request.image).decode("ascii"),
                }
            }
        )
    parts.append({"text": request.prompt})

    payload: Dict[str, Any] = {"contents": [{"role": "user", "parts": parts}]}
    if request.grounded:
        payload["tools"] = [{"googleMaps": {}}]
        if request.location is not None:
            payload["toolConfig"] = {"retrievalConfig": {"latLng": request.location.to_dict()}}
    if request.temperature is not None:
        payload["generationConfig"] = {"temperature": request.temperature}
    return payload


def generate(request: GenerateRequest, api_key: str, timeout: float = DEFAULT_TIMEOUT) -> Dict[str, Any]:
    require_api_key(api_key)
    url = f"{_BASE_URL}/models/{request.model}:generateContent"
    try:
        response = _SESSION.post(
            url,
            json=build_payload(request),
            headers={"x-goog-api-key": api_key},
            timeout=timeout,
        )
    except requests.RequestException as exc:
        logger.error("generateContent transport failure: %s", exc)
        raise GatewayError(str(exc) or "Failed to reach the Gemini API.") from exc

    try:
        payload = response.json()
    except ValueError:
        payload = {}
    if not isinstance(payload, dict):
        payload = {}

    if response.status_code >= 400:
        error = payload.get("error") or {}
        message = error.get("message") if isinstance(error, dict) else str(error)
        logger.error("generateContent failed: status=%s, error_message=%s", response.status_code, message)
        raise GatewayError(message or f"Gemini API returned HTTP {response.status_code}")
    return payload


def search_pharmacies(
    query: str,
    location: Optional[Coordinates],
    *,
    api_key: str,
    model: str = DEFAULT_MODEL,
    timeout: float = DEFAULT_TIMEOUT,
) -> SearchResponse:
    prompt = (
        f'Find pharmacies matching this query: "{query}".\n'
        "If the query is a postal code or pin code, find pharmacies in that postal code area.\n"
        "If the query is a list of medicines, find pharmacies likely to stock those medications "
        "(compounding pharmacies for specialised medicines, chain pharmacies for common ones).\n"
        "Provide a helpful summary of the options.\n"
        'If the user asks for "nearest" or a specific type of pharmacy, strictly filter for that.'
    )
    request = GenerateRequest(
        model=model,
        prompt=prompt,
        temperature=SEARCH_TEMPERATURE,
        grounded=True,
        location=location,
    )
    payload = generate(request, api_key, timeout)
    chunks = extract_grounding_chunks(payload)
    logger.info("Search for query=%s returned %d grounding chunks", query, len(chunks))
    return SearchResponse(summary=extract_text(payload) or DEFAULT_SUMMARY, chunks=tuple(chunks))


def lookup_hours(
    pharmacy_name: str,
    location: Optional[Coordinates],
    *,
    api_key: str,
    model: str = DEFAULT_MODEL,
    timeout: float = DEFAULT_TIMEOUT,
) -> str:
    near = ""
    if location is not None:
        near = f" located near latitude {location.latitude}, longitude {location.longitude}"
    prompt = (
        f'What are the opening hours for the pharmacy named "{pharmacy_name}"{near}?\n'
        'Give the hours in a concise format (e.g. "Mon-Fri: 8am-8pm, Sat: 9am-5pm, Sun: Closed" '
        'or "Open 24 hours").\n'
        f'If you cannot find the specific hours, say "{HOURS_FALLBACK}".'
    )
    request = GenerateRequest(
        model=model,
        prompt=prompt,
        temperature=FACTUAL_TEMPERATURE,
        grounded=True,
        location=location,
    )
    try:
        payload = generate(request, api_key, timeout)
    except GatewayError as exc:
        logger.warning("Failed to fetch hours for %s: %s", pharmacy_name, exc)
        return HOURS_FALLBACK
    return extract_text(payload) or HOURS_FALLBACK


def reverse_geocode_to_postal_code(
    latitude: float,
    longitude: float,
    *,
    api_key: str,
    model: str = DEFAULT_MODEL,
    timeout: float = DEFAULT_TIMEOUT,
) -> str:
    prompt = (
        f"What is the postal code (pin code) for the location at Latitude: {latitude}, Longitude: {longitude}?\n"
        "Return ONLY the numeric postal code. Do not include any other text, labels, or explanation."
    )
    request = GenerateRequest(
        model=model,
        prompt=prompt,
        temperature=FACTUAL_TEMPERATURE,
        grounded=True,
        location=Coordinates(latitude=latitude, longitude=longitude),
    )
    try:
        payload = generate(request, api_key, timeout)
    except GatewayError as exc:
        logger.warning("Failed to reverse geocode %s,%s: %s", latitude, longitude, exc)
        return ""
    return parse_postal_code(extract_text(payload))


def parse_postal_code(text: str) -> str:
    match = _POSTAL_CODE_RE.search(text or "")
    return match.group(0) if match else (text or "").strip()


def extract_medicine_names(
    image_bytes: bytes,
    mime_type: str,
    *,
    api_key: str,
    model: str = DEFAULT_MODEL,
    timeout: float = DEFAULT_TIMEOUT,
) -> str:
    prompt = (
        "Analyze this image of a medical prescription.\n"
        "Extract and list ONLY the names of the medicines found in the prescription.\n"
        "Output them as a comma-separated list.\n"
        f'If no medicines are found or the image is unclear, return "{NO_MEDICINES}".\n'
        "Do not include dosages, instructions, or doctor names."
    )
    request = GenerateRequest(model=model, prompt=prompt, image=image_bytes, mime_type=mime_type)
    try:
        payload = generate(request, api_key, timeout)
    except GatewayError as exc:
        logger.error("Prescription analysis failed: %s", exc)
        raise GatewayError("Could not analyze prescription image.") from exc
    return extract_text(payload) or NO_MEDICINES


def assess_stock(
    pharmacy_name: str,
    medicine_name: str,
    *,
    api_key: str,
    model: str = DEFAULT_MODEL,
    timeout: float = DEFAULT_TIMEOUT,
) -> str:
    # Grounding has no live inventory, so the answer is reasoned from pharmacy and medicine type.
    prompt = (
        f'A user is asking whether the pharmacy "{pharmacy_name}" has the medicine "{medicine_name}" in stock.\n'
        "Act as a helpful pharmacy assistant.\n"
        "1. Determine the category of the medicine (common, specialised, restricted, etc.).\n"
        "2. Determine the type of pharmacy (large chain, local, compounding, etc.) from its name.\n"
        "3. Give a probabilistic assessment of stock availability (High, Medium, Low).\n"
        "4. Mention whether this pharmacy typically carries this type of medication.\n"
        "5. Remind the user to call ahead to confirm.\n"
        "Keep the response under 60 words. Be polite."
    )
    request = GenerateRequest(model=model, prompt=prompt, temperature=STOCK_TEMPERATURE)
    try:
        payload = generate(request, api_key, timeout)
    except GatewayError as exc:
        logger.warning("Stock check failed for %s at %s: %s", medicine_name, pharmacy_name, exc)
        return STOCK_ERROR_FALLBACK
    return extract_text(payload) or STOCK_EMPTY_FALLBACK
