from sqlalchemy import Boolean, Column, DateTime, Float, ForeignKey, Integer, String
from sqlalchemy.sql import func

from fleetmatch.database import Base


class Vehicle(Base):
	__tablename__ = "vehicles"

	id = Column(String(64), primary_key=True, index=True)
	name = Column(String(120), nullable=False)
	license_plate = Column(String(20), nullable=False, unique=True)
	driver_name = Column(String(120), nullable=True)
	status = Column(String(20), nullable=False, default="idle", index=True)
	vehicle_type = Column(String(10), nullable=True)  # VAN|TRUCK|SEMI
	capacity_kg = Column(Float, nullable=True)
	fuel_consumption = Column(Float, nullable=True)  # L/100km
	lat = Column(Float, nullable=False)
	lng = Column(Float, nullable=False)
	current_lat = Column(Float, nullable=True)
	current_lng = Column(Float, nullable=True)
	gps_enabled = Column(Boolean, nullable=False, default=True, index=True)
	gps_provider = Column(String(40), nullable=True)
	current_route = Column(String(255), nullable=True)
	last_update = Column(DateTime(timezone=True), nullable=True)
	created_at = Column(DateTime(timezone=True), server_default=func.now())


class Assignment(Base):
	__tablename__ = "assignments"

	id = Column(Integer, primary_key=True, index=True, autoincrement=True)
	vehicle_id = Column(String(64), ForeignKey("vehicles.id", ondelete="CASCADE"), nullable=False, index=True)
	cargo_offer_id = Column(String(64), ForeignKey("cargo_offers.id", ondelete="CASCADE"), nullable=False, index=True)
	status = Column(String(20), nullable=False, default="active", index=True)  # active|completed|canceled
	created_at = Column(DateTime(timezone=True), server_default=func.now())
