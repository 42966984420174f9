from sqlalchemy import JSON, Column, DateTime, Float, String
from sqlalchemy.sql import func

from fleetmatch.database import Base


class CargoOffer(Base):
    __tablename__ = "cargo_offers"

    id = Column(String(64), primary_key=True, index=True)
    title = Column(String(255), nullable=True)
    from_city = Column(String(120), nullable=False, index=True)
    to_city = Column(String(120), nullable=False, index=True)
    from_country = Column(String(80), nullable=False, index=True)
    to_country = Column(String(80), nullable=False, index=True)
    from_postal_code = Column(String(20), nullable=True)
    to_postal_code = Column(String(20), nullable=True)
    pickup_lat = Column(Float, nullable=True)
    pickup_lng = Column(Float, nullable=True)
    delivery_lat = Column(Float, nullable=True)
    delivery_lng = Column(Float, nullable=True)
    weight = Column(Float, nullable=False)  # kg
    volume = Column(Float, nullable=True)  # m3
    cargo_type = Column(String(40), nullable=False, default="General")
    price = Column(Float, nullable=False)
    price_type = Column(String(20), nullable=False, default="fixed")  # fixed|negotiable|per_km
    loading_date = Column(DateTime(timezone=True), nullable=False)
    delivery_date = Column(DateTime(timezone=True), nullable=False)
    deadline = Column(DateTime(timezone=True), nullable=True)
    urgency = Column(String(10), nullable=False, default="medium", index=True)
    requirements = Column(JSON, nullable=True)
    status = Column(String(20), nullable=False, default="active", index=True)
    owner_id = Column(String(64), nullable=True, index=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())
