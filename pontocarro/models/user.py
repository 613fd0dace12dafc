import re
from datetime import datetime

from sqlalchemy import Column, Integer, String, DateTime
from sqlalchemy.orm import relationship, validates

from pontocarro.core.database import Base


def normalize_phone(phone):
    if phone is None:
        return None
    return re.sub(r"\D", "", phone) or None


class User(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    username = Column(String(100), nullable=False)
    email = Column(String(150), unique=True, index=True, nullable=False)
    hashed_password = Column(String(255), nullable=False)
    phone = Column(String(20), unique=True, index=True, nullable=True)
    city = Column(String(100), nullable=True)
    state = Column(String(100), nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    # A single active refresh token: every login/refresh overwrites it
    refresh_token = Column(String(512), nullable=True)
    reset_token_hash = Column(String(128), nullable=True, index=True)
    reset_token_expires_at = Column(DateTime, nullable=True)

    vehicles = relationship(
        "Vehicle",
        back_populates="owner",
        cascade="all, delete-orphan",
    )

    @validates("email")
    def _lower_email(self, key, value):
        return value.strip().lower() if value else value

    @validates("phone")
    def _normalize_phone(self, key, value):
        return normalize_phone(value)
