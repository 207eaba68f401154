"""Database models for the location tracker backend.

Users authenticate API calls with a per-user token; each stored location
point belongs to one user and carries the trackie name it was recorded for.
"""

from __future__ import annotations

import secrets
import uuid
from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy import Boolean, DateTime, Float, ForeignKey, Index, Integer, String
from sqlalchemy.orm import Mapped, mapped_column, relationship
from werkzeug.security import check_password_hash, generate_password_hash

from .app import db


def _new_id() -> str:
    return str(uuid.uuid4())


# -----------------------------
# User Model
# -----------------------------
class User(db.Model):
    """Application user.

    API tokens are generated at registration or first login and sent by the
    client in the ``Authorization`` header.
    """

    __tablename__ = "users"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    username: Mapped[str] = mapped_column(String(50), unique=True, index=True, nullable=False)
    password_hash: Mapped[str] = mapped_column(String(255), nullable=False)
    api_key: Mapped[Optional[str]] = mapped_column(String(64), unique=True, index=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    locations: Mapped[List["LocationPoint"]] = relationship(
        back_populates="user",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )

    def set_password(self, password: str) -> None:
        self.password_hash = generate_password_hash(password)

    def check_password(self, password: str) -> bool:
        return check_password_hash(self.password_hash, password)

    def generate_api_key(self) -> str:
        """Generate a unique 64-hex API key and assign it to the user."""
        # Attempt a few times to avoid rare collisions
        for _ in range(5):
            candidate = secrets.token_hex(32)
            if not db.session.query(User).filter_by(api_key=candidate).first():
                self.api_key = candidate
                return candidate
        candidate = secrets.token_hex(32)
        self.api_key = candidate
        return candidate


# -----------------------------
# LocationPoint Model
# -----------------------------
class LocationPoint(db.Model):
    """One submitted location sample.

    ``inserted_at`` is stored exactly as the device sent it so that records
    round-trip unchanged and keep their dedup keys on the client.
    """

    __tablename__ = "location_points"
    __table_args__ = (
        Index("ix_location_points_user_inserted", "user_id", "inserted_at"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    owner_name: Mapped[str] = mapped_column(String(100), nullable=False, index=True)
    latitude: Mapped[float] = mapped_column(Float, nullable=False)
    longitude: Mapped[float] = mapped_column(Float, nullable=False)
    inserted_at: Mapped[str] = mapped_column(String(40), nullable=False)
    received_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, nullable=False)

    user: Mapped[User] = relationship(back_populates="locations")

    def to_dict(self) -> Dict[str, Any]:
        return {
            "latitude": self.latitude,
            "longitude": self.longitude,
            "userName": self.owner_name,
            "insertionTimestamp": self.inserted_at,
            "userId": self.user_id,
        }
