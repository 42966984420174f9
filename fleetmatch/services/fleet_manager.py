"""Fleet manager: ranks vehicles against a pickup point and a required weight.

Design decisions:
- Capacity uses the live available capacity when the source knows it.  A
  vehicle without a live figure may carry up to 90% of its max capacity.
- Vehicles in maintenance or out of service are never returned as
  candidates, whatever the source hands back.
- sort_by_distance groups vehicles into 5 km distance bands anchored on the
  nearest vehicle of each band; inside a band the better total score wins.
  This keeps the ordering a proper total order.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Iterable

from fleetmatch.core.config import DispatcherSettings
from fleetmatch.domain import UNAVAILABLE_STATUSES, PickupLocation, Resource, ResourceFilter
from fleetmatch.logic.geo import haversine_km
from fleetmatch.repositories.sources import ResourceSource

logger = logging.getLogger(__name__)

NO_LIVE_CAPACITY_SHARE = 0.9
URGENT_RESOURCE_RADIUS_KM = 200.0
URGENT_TRAVEL_SHARE = 0.8  # of the deadline window
DISTANCE_BAND_KM = 5.0
FLEET_LIST_SIZE = 5

# Travel-time bands (km)
CITY_TRAVEL_MAX_KM = 30.0
HIGHWAY_TRAVEL_MIN_KM = 100.0
CITY_SHARE = 0.4
HIGHWAY_SHARE = 0.6

_AVAILABILITY_BY_STATUS: dict[str, float] = {
    "idle": 100,
    "en_route": 80,
    "assigned": 60,
    "loading": 40,
    "unloading": 40,
    "in_transit": 20,
    "maintenance": 0,
    "out_of_service": 0,
}
_UNKNOWN_STATUS_AVAILABILITY = 50.0

# Statuses that do not count as working the fleet.
_NOT_ACTIVE_STATUSES = ("idle", "maintenance", "out_of_service")


@dataclass(frozen=True)
class TravelTimeEstimate:
    distance_km: float
    minutes: int


@dataclass(frozen=True)
class ResourceMatch:
    resource: Resource
    distance_to_pickup: float
    travel_time_minutes: int
    capacity_match: bool
    available_capacity_kg: float
    availability_score: float
    efficiency_score: float
    total_score: float


@dataclass(frozen=True)
class FleetUtilization:
    total_vehicles: int
    active_vehicles: int
    utilization_rate: float
    top_performers: list[Resource] = field(default_factory=list)
    underutilized: list[Resource] = field(default_factory=list)


def availability_score(status: str) -> float:
    return float(_AVAILABILITY_BY_STATUS.get(status, _UNKNOWN_STATUS_AVAILABILITY))


def fleet_efficiency_score(resource: Resource, distance_km: float) -> float:
    score = 100
    if distance_km > 50:
        score -= 20
    elif distance_km > 20:
        score -= 10
    elif distance_km > 10:
        score -= 5

    fuel = resource.fuel_l_per_100km
    if fuel < 6:
        score += 15
    elif fuel < 8:
        score += 10
    elif fuel > 12:
        score -= 10

    if resource.vehicle_type == "VAN":
        score += 5
    elif resource.vehicle_type == "SEMI":
        score -= 5
    return float(max(0, min(100, score)))


def resource_total_score(distance_km: float, minutes: int, availability: float, efficiency: float) -> float:
    distance_score = max(0.0, 100 - (distance_km / 100) * 100)
    time_score = max(0.0, 100 - (minutes / 120) * 100)
    total = distance_score * 0.4 + time_score * 0.2 + availability * 0.25 + efficiency * 0.15
    return round(total, 1)


def sort_by_distance(matches: Iterable[ResourceMatch]) -> list[ResourceMatch]:
    """Nearest first; vehicles within 5 km of a band's nearest member rank by score."""
    by_distance = sorted(matches, key=lambda m: (m.distance_to_pickup, m.resource.id))
    ordered: list[ResourceMatch] = []
    band: list[ResourceMatch] = []
    for match in by_distance:
        if band and match.distance_to_pickup - band[0].distance_to_pickup > DISTANCE_BAND_KM:
            ordered.extend(sorted(band, key=lambda m: (-m.total_score, m.resource.id)))
            band = []
        band.append(match)
    ordered.extend(sorted(band, key=lambda m: (-m.total_score, m.resource.id)))
    return ordered


class FleetManager:
    def __init__(self, settings: DispatcherSettings, resource_source: ResourceSource):
        self.settings = settings
        self.source = resource_source

    def get_available_resources(self) -> list[Resource]:
        return self.source.list_available()

    def calculate_travel_time(
        self, from_lat: float, from_lng: float, to_lat: float, to_lng: float
    ) -> TravelTimeEstimate:
        distance = haversine_km(from_lat, from_lng, to_lat, to_lng)
        return TravelTimeEstimate(distance_km=distance, minutes=self.travel_minutes(distance))

    def travel_minutes(self, distance_km: float) -> int:
        city = self.settings.AVERAGE_SPEED_CITY
        highway = self.settings.AVERAGE_SPEED_HIGHWAY
        if distance_km < CITY_TRAVEL_MAX_KM:
            speed = city
        elif distance_km > HIGHWAY_TRAVEL_MIN_KM:
            speed = highway
        else:
            speed = CITY_SHARE * city + HIGHWAY_SHARE * highway
        return round(distance_km / speed * 60)

    def available_capacity(self, resource: Resource) -> float:
        if resource.available_capacity_kg is not None:
            return resource.available_capacity_kg
        live = self.source.get_available_capacity(resource.id)
        if live is not None:
            return live
        return resource.max_capacity_kg * NO_LIVE_CAPACITY_SHARE

    def has_capacity(self, resource: Resource, required_weight_kg: float) -> bool:
        return required_weight_kg <= self.available_capacity(resource)

    def filter_by_capacity(self, resources: Iterable[Resource], required_weight_kg: float) -> list[Resource]:
        return [r for r in resources if self.has_capacity(r, required_weight_kg)]

    def evaluate_resource(
        self, resource: Resource, pickup: PickupLocation, required_weight_kg: float
    ) -> ResourceMatch:
        """Score one vehicle for one pickup.  A capacity mismatch scores 0."""
        lat, lng = resource.position
        travel = self.calculate_travel_time(lat, lng, pickup.lat, pickup.lng)
        available = self.available_capacity(resource)
        capacity_match = required_weight_kg <= available
        availability = availability_score(resource.status)
        efficiency = fleet_efficiency_score(resource, travel.distance_km)
        total = (
            resource_total_score(travel.distance_km, travel.minutes, availability, efficiency)
            if capacity_match
            else 0.0
        )
        return ResourceMatch(
            resource=resource,
            distance_to_pickup=round(travel.distance_km, 2),
            travel_time_minutes=travel.minutes,
            capacity_match=capacity_match,
            available_capacity_kg=available,
            availability_score=availability,
            efficiency_score=efficiency,
            total_score=total,
        )

    def find_nearest_resources(
        self,
        pickup: PickupLocation,
        required_weight_kg: float,
        max_distance_km: float | None = None,
        resources: Iterable[Resource] | None = None,
    ) -> list[ResourceMatch]:
        """Rank vehicles that can carry the weight within the radius.

        `resources` lets a caller reuse a candidate set it already fetched.
        """
        if max_distance_km is None:
            max_distance_km = self.settings.DEFAULT_SEARCH_RADIUS_KM
        candidates = self.get_available_resources() if resources is None else resources

        matches = []
        for resource in candidates:
            if resource.status in UNAVAILABLE_STATUSES:
                continue
            match = self.evaluate_resource(resource, pickup, required_weight_kg)
            if not match.capacity_match:
                logger.debug(
                    "vehicle %s lacks capacity: needs %.0fkg, has %.0fkg",
                    resource.id, required_weight_kg, match.available_capacity_kg,
                )
                continue
            if match.distance_to_pickup > max_distance_km:
                continue
            matches.append(match)

        logger.debug(
            "%d vehicles within %.0fkm of %.4f, %.4f for %.0fkg",
            len(matches), max_distance_km, pickup.lat, pickup.lng, required_weight_kg,
        )
        return sort_by_distance(matches)

    def find_urgent_resource(
        self,
        pickup: PickupLocation,
        required_weight_kg: float,
        deadline_hours: float,
        resources: Iterable[Resource] | None = None,
    ) -> ResourceMatch | None:
        matches = self.find_nearest_resources(
            pickup, required_weight_kg, URGENT_RESOURCE_RADIUS_KM, resources=resources
        )
        window_minutes = deadline_hours * 60 * URGENT_TRAVEL_SHARE
        in_time = [m for m in matches if m.travel_time_minutes <= window_minutes]
        if not in_time:
            logger.info("no vehicle reaches %.4f, %.4f within %.1fh", pickup.lat, pickup.lng, deadline_hours)
            return None
        return in_time[0]

    def get_fleet_utilization(self) -> FleetUtilization:
        status = self.source.fleet_status()
        total = status.total_vehicles
        active = total - status.count(*_NOT_ACTIVE_STATUSES)
        rate = round(active / total * 100, 1) if total else 0.0

        top = self.source.list_resources(ResourceFilter(statuses=("in_transit",), limit=FLEET_LIST_SIZE))
        idle = self.source.list_resources(ResourceFilter(statuses=("idle",), limit=FLEET_LIST_SIZE))
        return FleetUtilization(
            total_vehicles=total,
            active_vehicles=active,
            utilization_rate=rate,
            top_performers=list(top)[:FLEET_LIST_SIZE],
            underutilized=list(idle)[:FLEET_LIST_SIZE],
        )
