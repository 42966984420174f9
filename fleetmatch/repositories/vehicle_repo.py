"""
Vehicle repository: fleet positions, live capacity and status counts.

Available capacity is max capacity minus the weight of the cargo on the
vehicle's active assignments.
"""
import logging
from datetime import datetime, timezone
from typing import Callable

from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from fleetmatch.core.config import DispatcherSettings, build_settings
from fleetmatch.domain import (
    AVAILABLE_STATUSES,
    DEFAULT_CAPACITY_KG,
    MIN_FREE_CAPACITY_KG,
    UNAVAILABLE_STATUSES,
    FleetStatus,
    Resource,
    ResourceFilter,
)
from fleetmatch.errors import UpstreamDataError
from fleetmatch.models.cargo import CargoOffer
from fleetmatch.models.vehicle import Assignment, Vehicle
from fleetmatch.services.cache import Cache, InMemoryTTLCache, cached

logger = logging.getLogger(__name__)

CACHE_PREFIX = "vehicle:"


def _default_session_factory() -> Session:
    from fleetmatch.database import SessionLocal

    return SessionLocal()


def _active_loads(db: Session, vehicle_ids: list[str]) -> dict[str, float]:
    if not vehicle_ids:
        return {}
    rows = (
        db.query(Assignment.vehicle_id, func.coalesce(func.sum(CargoOffer.weight), 0))
        .join(CargoOffer, CargoOffer.id == Assignment.cargo_offer_id)
        .filter(Assignment.status == "active", Assignment.vehicle_id.in_(vehicle_ids))
        .group_by(Assignment.vehicle_id)
        .all()
    )
    return {vehicle_id: float(load or 0) for vehicle_id, load in rows}


def row_to_resource(row: Vehicle, current_load_kg: float) -> Resource:
    capacity = float(row.capacity_kg) if row.capacity_kg else DEFAULT_CAPACITY_KG
    return Resource(
        id=str(row.id),
        name=row.name,
        license_plate=row.license_plate,
        driver_name=row.driver_name,
        status=row.status,
        vehicle_type=row.vehicle_type,
        capacity_kg=row.capacity_kg,
        fuel_consumption=row.fuel_consumption,
        lat=row.lat,
        lng=row.lng,
        current_lat=row.current_lat,
        current_lng=row.current_lng,
        gps_enabled=bool(row.gps_enabled),
        current_load_kg=current_load_kg,
        available_capacity_kg=max(0.0, capacity - current_load_kg),
        last_update=row.last_update,
        current_route=row.current_route,
    )


class SqlResourceSource:
    def __init__(
        self,
        session_factory: Callable[[], Session] = _default_session_factory,
        cache: Cache | None = None,
        settings: DispatcherSettings | None = None,
    ):
        self._session_factory = session_factory
        self._cache = cache if cache is not None else InMemoryTTLCache()
        self._settings = settings or build_settings()

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def list_available(self) -> list[Resource]:
        """Vehicles that can take new work: available status, GPS on, >100kg free."""
        return self.list_resources(
            ResourceFilter(
                statuses=AVAILABLE_STATUSES,
                gps_enabled=True,
                min_available_kg=MIN_FREE_CAPACITY_KG,
            )
        )

    def list_resources(self, resource_filter: ResourceFilter | None = None) -> list[Resource]:
        resource_filter = resource_filter or ResourceFilter()
        return cached(
            self._cache,
            resource_filter.cache_key(),
            self._settings.VEHICLE_POSITIONS_TTL,
            lambda: self._query_resources(resource_filter),
        )

    def get_resource(self, resource_id: str) -> Resource | None:
        return cached(
            self._cache,
            f"{CACHE_PREFIX}one:{resource_id}",
            self._settings.VEHICLE_POSITIONS_TTL,
            lambda: self._query_resource(resource_id),
        )

    def get_available_capacity(self, resource_id: str) -> float | None:
        resource = self.get_resource(resource_id)
        if resource is None:
            return None
        return resource.available_capacity_kg

    def fleet_status(self) -> FleetStatus:
        return cached(
            self._cache,
            f"{CACHE_PREFIX}fleet_status",
            self._settings.FLEET_STATUS_TTL,
            self._query_fleet_status,
        )

    def _query_resources(self, resource_filter: ResourceFilter) -> list[Resource]:
        try:
            with self._session_factory() as db:
                query = db.query(Vehicle)
                if resource_filter.statuses:
                    query = query.filter(Vehicle.status.in_(resource_filter.statuses))
                if resource_filter.gps_enabled is not None:
                    query = query.filter(Vehicle.gps_enabled == resource_filter.gps_enabled)
                if resource_filter.vehicle_type:
                    query = query.filter(Vehicle.vehicle_type == resource_filter.vehicle_type)
                rows = query.order_by(Vehicle.id).all()
                loads = _active_loads(db, [row.id for row in rows])
        except SQLAlchemyError as exc:
            logger.exception("vehicle_source: listing vehicles failed")
            raise UpstreamDataError("vehicle_source", str(exc)) from exc

        resources = []
        for row in rows:
            resource = row_to_resource(row, loads.get(row.id, 0.0))
            if (
                resource_filter.min_available_kg is not None
                and resource.available_capacity_kg <= resource_filter.min_available_kg
            ):
                logger.debug("vehicle_source: %s skipped, %.0fkg free", resource.id, resource.available_capacity_kg)
                continue
            resources.append(resource)

        limit = resource_filter.limit or self._settings.MAX_VEHICLES_PER_REQUEST
        resources = resources[:limit]
        logger.info("vehicle_source: %d vehicles for %s", len(resources), resource_filter.cache_key())
        return resources

    def _query_resource(self, resource_id: str) -> Resource | None:
        try:
            with self._session_factory() as db:
                row = db.query(Vehicle).filter(Vehicle.id == resource_id).first()
                if row is None:
                    logger.info("vehicle_source: vehicle not found: %s", resource_id)
                    return None
                loads = _active_loads(db, [row.id])
        except SQLAlchemyError as exc:
            logger.exception("vehicle_source: fetching vehicle %s failed", resource_id)
            raise UpstreamDataError("vehicle_source", str(exc)) from exc
        return row_to_resource(row, loads.get(row.id, 0.0))

    def _query_fleet_status(self) -> FleetStatus:
        try:
            with self._session_factory() as db:
                counts = dict(db.query(Vehicle.status, func.count(Vehicle.id)).group_by(Vehicle.status).all())
                online = (
                    db.query(func.count(Vehicle.id))
                    .filter(Vehicle.gps_enabled.is_(True), Vehicle.status.notin_(sorted(UNAVAILABLE_STATUSES)))
                    .scalar()
                )
        except SQLAlchemyError as exc:
            logger.exception("vehicle_source: fleet status failed")
            raise UpstreamDataError("vehicle_source", str(exc)) from exc

        return FleetStatus(
            total_vehicles=sum(counts.values()),
            status_counts={status: int(count) for status, count in counts.items()},
            online_vehicles=int(online or 0),
        )

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def update_position(self, resource_id: str, lat: float, lng: float) -> bool:
        if not (-90 <= lat <= 90 and -180 <= lng <= 180):
            raise ValueError(f"invalid coordinates: {lat}, {lng}")
        try:
            with self._session_factory() as db:
                row = db.query(Vehicle).filter(Vehicle.id == resource_id).first()
                if row is None:
                    return False
                row.current_lat = lat
                row.current_lng = lng
                row.last_update = datetime.now(timezone.utc)
                db.commit()
        except SQLAlchemyError as exc:
            logger.exception("vehicle_source: position update for %s failed", resource_id)
            raise UpstreamDataError("vehicle_source", str(exc)) from exc
        finally:
            self.clear_cache()

        logger.debug("vehicle_source: %s moved to %.4f, %.4f", resource_id, lat, lng)
        return True

    def clear_cache(self) -> None:
        self._cache.invalidate_prefix(CACHE_PREFIX)
