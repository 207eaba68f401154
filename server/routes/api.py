from __future__ import annotations

"""API routes for the location tracker backend.

Includes registration/login, location submission and history, and a health
check.
"""

import re
from datetime import datetime
from typing import Any, Dict, Optional

from flask import Blueprint, current_app, g, jsonify, request
from sqlalchemy import text

from ..app import db
from ..models import LocationPoint, User
from ..services.auth import require_token


api_bp = Blueprint("api", __name__)

USERNAME_RE = re.compile(r"^[A-Za-z0-9_.@+-]{3,50}$")


def _json_error(message: str, status: int = 400):
    return jsonify({"error": message}), status


def _parse_coordinate(data: Dict[str, Any], key: str, bound: float) -> Optional[float]:
    value = data.get(key)
    if isinstance(value, bool):
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    if not -bound <= number <= bound:
        return None
    return number


@api_bp.post("/register")
def register():
    data = request.get_json(silent=True) or {}
    username = (data.get("username") or "").strip()
    password = (data.get("password") or "")

    if not USERNAME_RE.match(username):
        return _json_error("Invalid username (3-50 letters, digits or ._@+-)")
    if len(password) < current_app.config["MIN_PASSWORD_LENGTH"]:
        return _json_error(f"Password must be at least {current_app.config['MIN_PASSWORD_LENGTH']} characters")

    if db.session.query(User).filter_by(username=username).first():
        return _json_error("Username already exists")

    user = User(username=username)
    user.set_password(password)
    user.generate_api_key()
    db.session.add(user)
    db.session.commit()
    return (
        jsonify({
            "status": "success",
            "user_id": user.id,
            "api_key": user.api_key,
            "message": "User registered",
        }),
        201,
    )


@api_bp.post("/login")
def login():
    data = request.get_json(silent=True) or {}
    username = (data.get("username") or "").strip()
    password = (data.get("password") or "")

    user: Optional[User] = db.session.query(User).filter_by(username=username).first()
    if not user or not user.is_active or not user.check_password(password):
        return jsonify({"error": "Invalid credentials"}), 401

    if not user.api_key:
        user.generate_api_key()
        db.session.commit()

    return jsonify({
        "status": "success",
        "user_id": user.id,
        "api_key": user.api_key,
        "user": {"username": user.username},
    })


@api_bp.post("/location")
@require_token
def submit_location():
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        return _json_error("JSON object body is required")

    latitude = _parse_coordinate(data, "latitude", 90.0)
    longitude = _parse_coordinate(data, "longitude", 180.0)
    if latitude is None or longitude is None:
        return _json_error("latitude and longitude must be valid numbers")

    owner = (data.get("userName") or data.get("userEmail") or "").strip()
    if not owner or len(owner) > current_app.config["MAX_OWNER_LENGTH"]:
        return _json_error("userName is required (max %d characters)" % current_app.config["MAX_OWNER_LENGTH"])

    inserted_at = data.get("insertionTimestamp")
    if not isinstance(inserted_at, str) or not inserted_at.strip():
        return _json_error("insertionTimestamp is required")
    if len(inserted_at.strip()) > current_app.config["MAX_TIMESTAMP_LENGTH"]:
        return _json_error("insertionTimestamp is too long")

    user_id = data.get("userId")
    if user_id and user_id != g.current_user.id:
        return _json_error("userId does not match the authenticated user", 403)

    point = LocationPoint(
        user_id=g.current_user.id,
        owner_name=owner,
        latitude=latitude,
        longitude=longitude,
        inserted_at=inserted_at.strip(),
    )
    db.session.add(point)
    db.session.commit()
    current_app.logger.info("Stored location %s for %s", point.id, owner)
    return jsonify({"status": "success", "id": point.id}), 201


@api_bp.get("/location")
@require_token
def list_locations():
    user_id = request.args.get("userId")
    if not user_id:
        return _json_error("userId is required")
    if user_id != g.current_user.id:
        return _json_error("Not allowed to read another user's locations", 403)

    q = db.session.query(LocationPoint).filter(LocationPoint.user_id == user_id)
    owner = request.args.get("owner")
    if owner:
        q = q.filter(LocationPoint.owner_name == owner)

    points = q.order_by(LocationPoint.inserted_at.desc(), LocationPoint.id.desc()).all()
    return jsonify([p.to_dict() for p in points])


@api_bp.get("/health")
def health():
    try:
        db.session.execute(text("SELECT 1"))
        db_ok = True
    except Exception:
        db_ok = False
    return jsonify({
        "status": "ok",
        "db": "connected" if db_ok else "unavailable",
        "version": "1.0.0",
        "timestamp": datetime.utcnow().isoformat() + "Z",
    }), (200 if db_ok else 503)
