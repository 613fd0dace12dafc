import uuid
from datetime import datetime

from sqlalchemy import (
    JSON,
    CheckConstraint,
    Column,
    DateTime,
    Float,
    ForeignKey,
    Integer,
    String,
    Text,
)
from sqlalchemy.orm import relationship, validates

from pontocarro.core.database import Base
from pontocarro.models.user import normalize_phone


class Vehicle(Base):
    __tablename__ = "vehicles"
    __table_args__ = (
        CheckConstraint("price >= 0", name="ck_vehicles_price_non_negative"),
        CheckConstraint("mileage >= 0", name="ck_vehicles_mileage_non_negative"),
        CheckConstraint("year >= 1900", name="ck_vehicles_year_min"),
    )

    # Column checked by the ownership gate
    owner_column = "owner_id"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    owner_id = Column(
        Integer,
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    title = Column(String(100), nullable=False)
    brand = Column(String(50), nullable=False, index=True)
    vehicle_model = Column(String(50), nullable=False)
    engine = Column(String(50), nullable=False)
    year = Column(Integer, nullable=False, index=True)
    price = Column(Float, nullable=False, index=True)
    mileage = Column(Integer, nullable=False)
    state = Column(String(100), nullable=False)
    city = Column(String(100), nullable=False)
    fuel = Column(String(50), nullable=False)
    transmission = Column(String(50), nullable=False)
    body_type = Column(String(50), nullable=False)
    color = Column(String(50), nullable=False)
    description = Column(Text, nullable=False)
    features = Column(JSON, nullable=False, default=list)

    # Listing contact, may differ from the owner's account data
    announcer_name = Column(String(100), nullable=False)
    announcer_email = Column(String(150), nullable=False)
    announcer_phone = Column(String(20), nullable=False)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False, index=True)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    owner = relationship("User", back_populates="vehicles")
    images = relationship(
        "Image",
        back_populates="vehicle",
        cascade="all, delete-orphan",
        order_by="Image.created_at",
    )

    @validates("announcer_phone")
    def _normalize_phone(self, key, value):
        return normalize_phone(value)

    @validates("announcer_email")
    def _lower_email(self, key, value):
        return value.strip().lower() if value else value

    def __repr__(self):
        return f"<Vehicle(id={self.id}, title={self.title}, owner_id={self.owner_id})>"
