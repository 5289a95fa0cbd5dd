"""BAC engine Flask API.

Thin JSON adapter over the per-profile estimate coordinators.

Run from project root:
    python app.py
"""

import logging
import os
import threading
import uuid
from datetime import timedelta
from pathlib import Path
from typing import Any

from flask import Flask, jsonify, request

from bac_engine.advice import get_drive_advice, level_advice, time_until_legal_text, time_until_sober_text
from bac_engine.calculations import bac_level, possible_effects
from bac_engine.config import EngineConfig
from bac_engine.coordinator import CoordinatorRegistry, EstimateCoordinator
from bac_engine.drinks import grams_from_drink, list_drink_types
from bac_engine.errors import DataIntegrityError, DataUnavailable, DuplicateDrink, InvalidPrediction, StorageError
from bac_engine.models import BACEstimate, DrinkRecord, Gender, Profile, ThresholdCrossed
from bac_engine.stores import SqliteDrinkStore, SqliteProfileStore, SystemClock, init_db

logger = logging.getLogger("bac_engine.api")

app = Flask(__name__)

MIN_WEIGHT_KG = 35.0
MAX_WEIGHT_KG = 200.0
MIN_COUNT = 0.25
MAX_COUNT = 20.0
MAX_GRAMS = 1000.0
DEFAULT_DB_PATH = str(Path("instance") / "bac.db")

_registry_lock = threading.Lock()
_registries: dict[str, CoordinatorRegistry] = {}
# Most recent threshold events per profile, for clients that poll.
_recent_events: dict[tuple[str, str], list[dict[str, Any]]] = {}
MAX_RECENT_EVENTS = 20


def _db_path() -> str:
    return os.environ.get("APP_DB_PATH", DEFAULT_DB_PATH)


def _record_event(event: ThresholdCrossed, db_path: str) -> None:
    items = _recent_events.setdefault((db_path, event.profile_id), [])
    items.append(
        {
            "old_level": event.old_level.value,
            "new_level": event.new_level.value,
            "rising": event.rising,
            "estimate": event.estimate.to_dict(),
        }
    )
    del items[:-MAX_RECENT_EVENTS]


def _registry() -> CoordinatorRegistry:
    """One registry per database path; created on first use."""
    db_path = _db_path()
    with _registry_lock:
        registry = _registries.get(db_path)
        if registry is None:
            Path(db_path).parent.mkdir(parents=True, exist_ok=True)
            init_db(db_path)
            registry = CoordinatorRegistry(
                SqliteProfileStore(db_path),
                SqliteDrinkStore(db_path),
                clock=SystemClock(),
                config=EngineConfig.from_env(),
                start_timers=os.environ.get("BAC_REFRESH_ENABLED", "1") == "1",
                listeners=[lambda e: _record_event(e, db_path)],
            )
            _registries[db_path] = registry
        return registry


def _coordinator(profile_id: str) -> EstimateCoordinator | None:
    """Coordinator for a stored profile; None (and no timer) for unknown ids."""
    registry = _registry()
    if registry.profile_store.get(profile_id) is None:
        registry.remove(profile_id)
        return None
    return registry.get(profile_id)


def _not_found(profile_id: str):
    return jsonify({"error": f"Unknown profile {profile_id!r}"}), 404


def _clamp_float(value: Any, default: float, min_value: float, max_value: float) -> float:
    try:
        parsed = float(value)
    except (TypeError, ValueError):
        parsed = default
    return max(min_value, min(max_value, parsed))


def _parse_gender(value: Any) -> Gender | None:
    try:
        return Gender(str(value).strip().lower())
    except ValueError:
        return None


def _drink_from_payload(data: dict[str, Any], now) -> DrinkRecord | None:
    """Build a drink from explicit grams, or from a drink type with count/volume."""
    hours_ago = _clamp_float(data.get("hours_ago"), 0.0, 0.0, 24.0)
    if data.get("alcohol_grams") is not None:
        try:
            grams = float(data.get("alcohol_grams"))
        except (TypeError, ValueError):
            return None
        grams = min(grams, MAX_GRAMS)
    else:
        key = str(data.get("drink_type", "beer")).strip().lower()
        count = _clamp_float(data.get("count"), 1.0, MIN_COUNT, MAX_COUNT)
        volume_oz = data.get("volume_oz")
        try:
            volume_oz = float(volume_oz) if volume_oz is not None else None
        except (TypeError, ValueError):
            return None
        grams = grams_from_drink(key, volume_oz=volume_oz, count=count)
    drink_id = str(data.get("id", "")).strip()[:64] or uuid.uuid4().hex
    return DrinkRecord(id=drink_id, alcohol_grams=grams, timestamp=now - timedelta(hours=hours_ago))


def _estimate_payload(estimate: BACEstimate, coordinator: EstimateCoordinator) -> dict[str, Any]:
    now = coordinator.clock.now()
    config = coordinator.config
    payload = estimate.to_dict()
    payload.update(
        {
            "level": bac_level(estimate.bac, config).value,
            "minutes_until_legal": estimate.minutes_until_legal(now),
            "minutes_until_sober": estimate.minutes_until_sober(now),
            "time_until_legal": time_until_legal_text(estimate, now, config),
            "time_until_sober": time_until_sober_text(estimate, now),
            "advice": level_advice(estimate, config),
            "effects": possible_effects(estimate.bac),
            "drive_advice": get_drive_advice(estimate, now, config),
        }
    )
    return payload


def _state(coordinator: EstimateCoordinator) -> dict[str, Any]:
    error = coordinator.last_error
    return {
        "profile_id": coordinator.profile_id,
        "estimate": _estimate_payload(coordinator.current_estimate(), coordinator),
        "stale": coordinator.is_stale,
        "last_error": str(error) if error is not None else None,
    }


def _unavailable(exc: DataUnavailable, coordinator: EstimateCoordinator):
    payload = _state(coordinator)
    payload["error"] = str(exc)
    return jsonify(payload), 503


@app.errorhandler(DuplicateDrink)
def _duplicate_drink(exc):
    return jsonify({"error": str(exc)}), 409


@app.errorhandler(DataIntegrityError)
def _data_integrity_error(exc):
    logger.error("data integrity error: %s", exc)
    return jsonify({"error": str(exc)}), 422


@app.errorhandler(InvalidPrediction)
def _invalid_prediction(exc):
    return jsonify({"error": str(exc)}), 400


@app.errorhandler(StorageError)
def _storage_error(exc):
    logger.warning("storage error: %s", exc)
    return jsonify({"error": "Storage unavailable"}), 503


@app.route("/healthz")
def healthz():
    return jsonify({"ok": True})


@app.route("/api/drink-types")
def api_drink_types():
    return jsonify({"drink_types": list_drink_types()})


@app.route("/api/effects")
def api_effects():
    bac = _clamp_float(request.args.get("bac"), 0.0, 0.0, 1.0)
    return jsonify({"bac": bac, "effects": possible_effects(bac)})


@app.route("/api/profiles/<profile_id>", methods=["PUT", "POST"])
def api_profile_setup(profile_id: str):
    data = request.get_json() or {}
    gender = _parse_gender(data.get("gender", "male"))
    if gender is None:
        return jsonify({"error": "Gender must be male, female, or other"}), 400
    if data.get("weight_lb") is not None and data.get("weight_kg") is None:
        weight_kg = _clamp_float(data.get("weight_lb"), 160.0, 0.0, 1000.0) * 0.45359237
    else:
        weight_kg = _clamp_float(data.get("weight_kg"), 72.6, 0.0, 1000.0)
    weight_kg = max(MIN_WEIGHT_KG, min(MAX_WEIGHT_KG, weight_kg))

    registry = _registry()
    registry.profile_store.put(profile_id, Profile(weight_kg=weight_kg, gender=gender))
    coordinator = registry.get(profile_id)
    try:
        coordinator.on_profile_updated()
    except DataUnavailable as exc:
        return _unavailable(exc, coordinator)
    return jsonify({"ok": True, "weight_kg": round(weight_kg, 2), "gender": gender.value, **_state(coordinator)})


@app.route("/api/profiles/<profile_id>", methods=["DELETE"])
def api_profile_delete(profile_id: str):
    registry = _registry()
    registry.remove(profile_id)
    _recent_events.pop((_db_path(), profile_id), None)
    if not registry.profile_store.delete(profile_id):
        return _not_found(profile_id)
    logger.info("profile %s deleted", profile_id)
    return jsonify({"ok": True})


@app.route("/api/profiles/<profile_id>/estimate")
def api_estimate(profile_id: str):
    coordinator = _coordinator(profile_id)
    if coordinator is None:
        return _not_found(profile_id)
    if request.args.get("refresh") == "1":
        try:
            coordinator.recompute()
        except DataUnavailable as exc:
            logger.info("refresh for %s failed, serving last estimate: %s", profile_id, exc)
    return jsonify(_state(coordinator))


@app.route("/api/profiles/<profile_id>/drinks", methods=["GET"])
def api_drinks(profile_id: str):
    coordinator = _coordinator(profile_id)
    if coordinator is None:
        return _not_found(profile_id)
    now = coordinator.clock.now()
    hours = _clamp_float(request.args.get("hours"), coordinator.config.lookback_hours, 1.0, 24.0 * 31)
    drinks = coordinator.ledger.between(now - timedelta(hours=hours), now)
    return jsonify(
        {
            "items": [
                {"id": d.id, "alcohol_grams": round(d.alcohol_grams, 2), "timestamp": d.timestamp.isoformat()}
                for d in drinks
            ],
        }
    )


@app.route("/api/profiles/<profile_id>/drinks", methods=["POST"])
def api_drink_add(profile_id: str):
    coordinator = _coordinator(profile_id)
    if coordinator is None:
        return _not_found(profile_id)
    data = request.get_json() or {}
    drink = _drink_from_payload(data, coordinator.clock.now())
    if drink is None:
        return jsonify({"error": "Invalid drink"}), 400
    try:
        coordinator.on_drink_added(drink)
    except DataUnavailable as exc:
        return _unavailable(exc, coordinator)
    return jsonify({"ok": True, "drink_id": drink.id, **_state(coordinator)})


@app.route("/api/profiles/<profile_id>/drinks/<drink_id>", methods=["DELETE"])
def api_drink_remove(profile_id: str, drink_id: str):
    coordinator = _coordinator(profile_id)
    if coordinator is None:
        return _not_found(profile_id)
    try:
        coordinator.on_drink_removed(drink_id)
    except DataUnavailable as exc:
        return _unavailable(exc, coordinator)
    return jsonify({"ok": True, **_state(coordinator)})


@app.route("/api/profiles/<profile_id>/predict", methods=["POST"])
def api_predict(profile_id: str):
    coordinator = _coordinator(profile_id)
    if coordinator is None:
        return _not_found(profile_id)
    data = request.get_json() or {}
    now = coordinator.clock.now()
    drink = _drink_from_payload({**data, "hours_ago": 0}, now)
    if drink is None:
        return jsonify({"error": "Invalid drink"}), 400
    try:
        estimate = coordinator.predict(drink, now)
    except DataUnavailable as exc:
        return jsonify({"error": str(exc)}), 503
    return jsonify({"prediction": _estimate_payload(estimate, coordinator)})


@app.route("/api/profiles/<profile_id>/events")
def api_events(profile_id: str):
    if _registry().profile_store.get(profile_id) is None:
        return _not_found(profile_id)
    return jsonify({"items": list(_recent_events.get((_db_path(), profile_id), []))})


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    port = int(os.environ.get("PORT", 5000))
    app.run(host="0.0.0.0", port=port, debug=os.environ.get("FLASK_DEBUG", "0") == "1")
