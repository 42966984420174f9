"""Plain records passed between the sources and the scoring services.

The SQL sources map ORM rows into these; tests and alternative sources can
build them directly.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Literal

Urgency = Literal["low", "medium", "high"]
PriceType = Literal["fixed", "negotiable", "per_km"]
JobStatus = Literal["active", "assigned", "inactive", "completed"]
VehicleType = Literal["VAN", "TRUCK", "SEMI"]
VehicleStatus = Literal[
    "idle", "in_transit", "en_route", "loading", "unloading", "maintenance", "assigned", "out_of_service"
]
RiskLevel = Literal["low", "medium", "high"]

URGENCY_LEVELS: frozenset[str] = frozenset({"low", "medium", "high"})
PRICE_TYPES: frozenset[str] = frozenset({"fixed", "negotiable", "per_km"})
JOB_STATUSES: frozenset[str] = frozenset({"active", "assigned", "inactive", "completed"})
VEHICLE_TYPES: frozenset[str] = frozenset({"VAN", "TRUCK", "SEMI"})
VEHICLE_STATUSES: frozenset[str] = frozenset(
    {"idle", "in_transit", "en_route", "loading", "unloading", "maintenance", "assigned", "out_of_service"}
)
# Statuses a vehicle can take new work from.
AVAILABLE_STATUSES: tuple[str, ...] = ("idle", "en_route", "assigned")
# Never offered as a candidate.
UNAVAILABLE_STATUSES: frozenset[str] = frozenset({"maintenance", "out_of_service"})

DEFAULT_CAPACITY_KG = 3500.0
DEFAULT_FUEL_CONSUMPTION = 8.0
MIN_FREE_CAPACITY_KG = 100.0


@dataclass(frozen=True)
class Job:
    id: str
    from_city: str
    to_city: str
    from_country: str
    to_country: str
    weight_kg: float
    cargo_type: str
    price: float
    price_type: PriceType
    loading_date: datetime
    delivery_date: datetime
    urgency: Urgency = "medium"
    deadline: datetime | None = None
    pickup_lat: float | None = None
    pickup_lng: float | None = None
    delivery_lat: float | None = None
    delivery_lng: float | None = None
    volume_m3: float | None = None
    requirements: tuple[str, ...] = ()
    status: JobStatus = "active"
    title: str | None = None
    from_postal_code: str | None = None
    to_postal_code: str | None = None
    owner_id: str | None = None

    @property
    def route(self) -> str:
        return f"{self.from_city} -> {self.to_city}"

    @property
    def is_international(self) -> bool:
        return self.from_country != self.to_country

    @property
    def effective_deadline(self) -> datetime:
        return self.deadline or self.delivery_date

    @property
    def has_pickup_coordinates(self) -> bool:
        return self.pickup_lat is not None and self.pickup_lng is not None

    @property
    def has_route_coordinates(self) -> bool:
        return self.has_pickup_coordinates and self.delivery_lat is not None and self.delivery_lng is not None


@dataclass(frozen=True)
class Resource:
    id: str
    name: str
    license_plate: str
    status: VehicleStatus
    lat: float
    lng: float
    driver_name: str | None = None
    capacity_kg: float | None = None
    vehicle_type: VehicleType | None = None
    fuel_consumption: float | None = None
    current_lat: float | None = None
    current_lng: float | None = None
    gps_enabled: bool = True
    current_load_kg: float = 0.0
    available_capacity_kg: float | None = None  # None: no live figure
    last_update: datetime | None = None
    current_route: str | None = None

    @property
    def position(self) -> tuple[float, float]:
        lat = self.current_lat if self.current_lat is not None else self.lat
        lng = self.current_lng if self.current_lng is not None else self.lng
        return lat, lng

    @property
    def max_capacity_kg(self) -> float:
        return self.capacity_kg or DEFAULT_CAPACITY_KG

    @property
    def fuel_l_per_100km(self) -> float:
        return self.fuel_consumption or DEFAULT_FUEL_CONSUMPTION

    @property
    def can_take_new_work(self) -> bool:
        """Available status, GPS on and more than 100kg free (when the free figure is known)."""
        if self.status not in AVAILABLE_STATUSES or not self.gps_enabled:
            return False
        return self.available_capacity_kg is None or self.available_capacity_kg > MIN_FREE_CAPACITY_KG


@dataclass(frozen=True)
class PickupLocation:
    lat: float
    lng: float
    city: str = ""
    country: str = ""
    address: str | None = None

    @classmethod
    def for_job(cls, job: Job) -> PickupLocation | None:
        if not job.has_pickup_coordinates:
            return None
        return cls(lat=job.pickup_lat, lng=job.pickup_lng, city=job.from_city, country=job.from_country)


@dataclass(frozen=True)
class JobFilter:
    """Validated query for CargoSource.list_open_jobs."""

    status: JobStatus | None = "active"
    from_country: str | None = None
    to_country: str | None = None
    max_weight_kg: float | None = None
    min_price: float | None = None
    cargo_type: str | None = None
    urgency: Urgency | None = None
    owner_id: str | None = None
    limit: int | None = None

    def __post_init__(self) -> None:
        if self.status is not None and self.status not in JOB_STATUSES:
            raise ValueError(f"unknown job status: {self.status}")
        if self.urgency is not None and self.urgency not in URGENCY_LEVELS:
            raise ValueError(f"unknown urgency: {self.urgency}")
        if self.max_weight_kg is not None and self.max_weight_kg <= 0:
            raise ValueError("max_weight_kg must be positive")
        if self.min_price is not None and self.min_price < 0:
            raise ValueError("min_price must not be negative")
        if self.limit is not None and self.limit <= 0:
            raise ValueError("limit must be positive")

    def cache_key(self) -> str:
        return (
            f"cargo:list:{self.status}:{self.from_country}:{self.to_country}:{self.max_weight_kg}:"
            f"{self.min_price}:{self.cargo_type}:{self.urgency}:{self.owner_id}:{self.limit}"
        )


@dataclass(frozen=True)
class ResourceFilter:
    """Validated query for ResourceSource.list_resources."""

    statuses: tuple[str, ...] | None = None
    gps_enabled: bool | None = None
    vehicle_type: VehicleType | None = None
    min_available_kg: float | None = None
    limit: int | None = None

    def __post_init__(self) -> None:
        unknown = set(self.statuses or ()) - VEHICLE_STATUSES
        if unknown:
            raise ValueError(f"unknown vehicle status: {', '.join(sorted(unknown))}")
        if self.vehicle_type is not None and self.vehicle_type not in VEHICLE_TYPES:
            raise ValueError(f"unknown vehicle type: {self.vehicle_type}")
        if self.limit is not None and self.limit <= 0:
            raise ValueError("limit must be positive")

    def cache_key(self) -> str:
        statuses = ",".join(sorted(self.statuses)) if self.statuses else "*"
        return f"vehicle:list:{statuses}:{self.gps_enabled}:{self.vehicle_type}:{self.min_available_kg}:{self.limit}"


@dataclass(frozen=True)
class FleetStatus:
    total_vehicles: int
    status_counts: dict[str, int] = field(default_factory=dict)
    online_vehicles: int = 0

    def count(self, *statuses: str) -> int:
        return sum(self.status_counts.get(status, 0) for status in statuses)
