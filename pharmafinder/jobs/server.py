"""HTTP entrypoint that exposes the pharmacy search flows as a JSON API."""

from __future__ import annotations

import logging
import mimetypes
import os
import threading
from typing import Any, Dict, Optional

from flask import Flask, jsonify, request

from pharmafinder.core.config import ConfigurationError, get_settings
from pharmafinder.core.geo import StaticGeoProvider
from pharmafinder.jobs.search import SearchOrchestrator, ValidationError
from pharmafinder.models import Coordinates

# ---------- Logging ----------
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)s %(name)s - %(message)s",
)
logger = logging.getLogger(__name__)

# ---------- App & orchestrator ----------
app = Flask(__name__)
_orchestrator: Optional[SearchOrchestrator] = None
_orchestrator_lock = threading.Lock()


def get_orchestrator() -> SearchOrchestrator:
    global _orchestrator
    with _orchestrator_lock:
        if _orchestrator is None:
            _orchestrator = SearchOrchestrator()
            _orchestrator.request_location()
        return _orchestrator


def _state_payload(orchestrator: SearchOrchestrator) -> Dict[str, Any]:
    stock = orchestrator.stock_check
    return {
        "search": orchestrator.snapshot().to_dict(),
        "stockCheck": stock.to_dict() if stock else None,
        "prescription": orchestrator.prescription.to_dict(),
    }


def _json_object() -> Dict[str, Any]:
    payload = request.get_json(silent=True)
    if payload is None:
        return {}
    if not isinstance(payload, dict):
        raise ValidationError("request body must be a JSON object")
    return payload


# ---------- Error handlers ----------


@app.errorhandler(ValidationError)
def handle_validation_error(exc: ValidationError) -> Any:
    return jsonify({"error": str(exc)}), 400


@app.errorhandler(ConfigurationError)
def handle_configuration_error(exc: ConfigurationError) -> Any:
    logger.error("Configuration error: %s", exc)
    return jsonify({"error": str(exc)}), 503


# ---------- Routes ----------


@app.get("/healthz")
def healthcheck() -> Any:
    settings = get_settings()
    return (
        jsonify(
            {
                "status": "ok",
                "model": settings.gemini_model,
                "credentials_configured": bool(settings.gemini_api_key),
            }
        ),
        200,
    )


@app.get("/state")
def current_state() -> Any:
    return jsonify({"data": _state_payload(get_orchestrator())}), 200


@app.post("/search")
def search() -> Any:
    """
    Run a pharmacy search.
    Optional JSON fields: query (input text), override (takes precedence)
    """
    payload = _json_object()
    query = payload.get("query")
    override = payload.get("override")
    state = get_orchestrator().search(
        query=str(query) if query is not None else None,
        override=str(override) if override is not None else None,
    )
    return jsonify({"data": state.to_dict()}), 200


@app.post("/location")
def location() -> Any:
    """Acquire a position, from posted coordinates or the configured provider."""
    payload = _json_object()
    provider = None
    if "latitude" in payload or "longitude" in payload:
        try:
            coords = Coordinates(latitude=float(payload["latitude"]), longitude=float(payload["longitude"]))
        except (KeyError, TypeError, ValueError):
            return jsonify({"error": "latitude and longitude must both be numeric"}), 400
        provider = StaticGeoProvider(coords)

    orchestrator = get_orchestrator()
    orchestrator.request_location(provider)
    return jsonify({"data": orchestrator.snapshot().to_dict()}), 200


@app.post("/pincode")
def pincode() -> Any:
    state = get_orchestrator().use_current_pincode()
    return jsonify({"data": state.to_dict()}), 200


@app.post("/pharmacies/<pharmacy_id>/hours")
def hours(pharmacy_id: str) -> Any:
    orchestrator = get_orchestrator()
    opening_hours = orchestrator.check_hours(pharmacy_id)
    if opening_hours is None:
        return jsonify({"data": {"status": "in_progress"}}), 202
    return jsonify({"data": {"id": pharmacy_id, "openingHours": opening_hours}}), 200


@app.post("/pharmacies/<pharmacy_id>/stock")
def stock(pharmacy_id: str) -> Any:
    payload = _json_object()
    orchestrator = get_orchestrator()
    result = orchestrator.check_stock(pharmacy_id, str(payload.get("medicine") or ""))
    stock_check = orchestrator.stock_check
    if stock_check is None or stock_check.pharmacy_id != pharmacy_id:
        return jsonify({"data": {"pharmacyId": pharmacy_id, "result": result}}), 200
    return jsonify({"data": stock_check.to_dict()}), 200


@app.post("/prescription")
def prescription() -> Any:
    """Analyze an uploaded prescription image (multipart field ``file``)."""
    upload = request.files.get("file")
    if upload is None:
        return jsonify({"error": "file is required"}), 400

    image_bytes = upload.read()
    mime_type = upload.mimetype
    if not mime_type or not mime_type.startswith("image/"):
        mime_type = mimetypes.guess_type(upload.filename or "")[0] or "image/png"
    scan = get_orchestrator().analyze_image(image_bytes, mime_type)
    return jsonify({"data": scan.to_dict()}), 200


@app.post("/prescription/search")
def prescription_search() -> Any:
    state = get_orchestrator().search_prescription()
    return jsonify({"data": state.to_dict()}), 200


def main() -> None:
    port = int(os.getenv("PORT") or get_settings().port)
    logger.info("[BOOT] Binding on 0.0.0.0:%d", port)
    app.run(host="0.0.0.0", port=port)


if __name__ == "__main__":
    main()
