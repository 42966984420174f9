"""Cargo analysis service.

Turns a Job into a CargoAnalysis: urgency, route distance, duration,
difficulty, profit estimate, risk and a single 0-100 total score.

Design decisions:
- Missing coordinates never raise.  Distance falls back to the city table and
  then to a flat same-country / cross-country estimate.
- The deadline is job.deadline when set, otherwise the delivery date.  Hours
  remaining are clamped at 0, so overdue cargo scores as most urgent.
- `now` is a parameter so one matching scan scores every job against the
  same instant.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Iterable

from fleetmatch.core.config import DispatcherSettings
from fleetmatch.domain import Job
from fleetmatch.logic.geo import estimate_distance_by_location, haversine_km, hours_until, utcnow

logger = logging.getLogger(__name__)

LOADING_BUFFER_HOURS = 2.0
CITY_ROUTE_MAX_KM = 50.0

# Share of city driving on a mixed domestic route.
CITY_SHARE = 0.3
HIGHWAY_SHARE = 0.7

# ── Difficulty tables ──────────────────────────────────────────────────────────
_CARGO_TYPE_DIFFICULTY: dict[str, int] = {
    "hazardous": 25,
    "refrigerated": 20,
    "fragile": 15,
    "electronics": 10,
    "food": 8,
    "general": 0,
}
_UNKNOWN_TYPE_DIFFICULTY = 5
_SPECIAL_REQUIREMENT_KEYWORDS = ("hydraulic", "crane", "temperature", "special")
_POINTS_PER_SPECIAL_REQUIREMENT = 7

HIGH_RISK_CARGO_TYPES = frozenset({"hazardous", "fragile", "electronics"})


@dataclass(frozen=True)
class CargoAnalysis:
    urgency_score: float
    distance_km: float
    estimated_duration: float  # hours, loading buffer included
    difficulty_score: float
    profit_estimate: float
    risk_score: float
    total_score: float
    hours_to_deadline: float


def urgency_from_hours(hours: float) -> float:
    if hours < 24:
        return 100.0
    if hours < 48:
        return 75.0
    if hours < 72:
        return 50.0
    return 25.0


def _difficulty_weight_points(weight_kg: float) -> int:
    if weight_kg > 20000:
        return 30
    if weight_kg > 10000:
        return 20
    if weight_kg > 5000:
        return 10
    return 0


def _difficulty_volume_points(volume_m3: float | None) -> int:
    if not volume_m3:
        return 0
    if volume_m3 > 80:
        return 15
    if volume_m3 > 50:
        return 10
    if volume_m3 > 20:
        return 5
    return 0


class CargoAnalyzer:
    def __init__(self, settings: DispatcherSettings, clock: Callable[[], datetime] = utcnow):
        self.settings = settings
        self._clock = clock

    # ── Components ────────────────────────────────────────────────────────────

    def route_distance_km(self, job: Job) -> float:
        if job.has_route_coordinates:
            return haversine_km(job.pickup_lat, job.pickup_lng, job.delivery_lat, job.delivery_lng)
        return estimate_distance_by_location(job.from_city, job.to_city, job.from_country, job.to_country)

    def average_speed(self, distance_km: float, international: bool) -> float:
        city = self.settings.AVERAGE_SPEED_CITY
        highway = self.settings.AVERAGE_SPEED_HIGHWAY
        if distance_km < CITY_ROUTE_MAX_KM:
            return city
        if international:
            return highway
        return CITY_SHARE * city + HIGHWAY_SHARE * highway

    def estimate_duration(self, job: Job, distance_km: float) -> float:
        speed = self.average_speed(distance_km, job.is_international)
        return distance_km / speed + LOADING_BUFFER_HOURS

    def difficulty_score(self, job: Job) -> float:
        score = _difficulty_weight_points(job.weight_kg)
        score += _CARGO_TYPE_DIFFICULTY.get((job.cargo_type or "").lower(), _UNKNOWN_TYPE_DIFFICULTY)
        special = [
            req for req in job.requirements
            if any(keyword in req.lower() for keyword in _SPECIAL_REQUIREMENT_KEYWORDS)
        ]
        score += len(special) * _POINTS_PER_SPECIAL_REQUIREMENT
        score += _difficulty_volume_points(job.volume_m3)
        if job.is_international:
            score += 10
        return float(min(100, score))

    def profit_estimate(self, job: Job, distance_km: float, duration_hours: float) -> float:
        revenue = job.price * distance_km if job.price_type == "per_km" else job.price
        fuel_cost = (distance_km / 100) * self.settings.ANALYZER_FUEL_CONSUMPTION * self.settings.FUEL_PRICE_PER_LITER
        driver_cost = duration_hours * self.settings.DRIVER_HOURLY_RATE
        return max(0.0, revenue - fuel_cost - driver_cost)

    def risk_score(self, job: Job, distance_km: float, hours_left: float) -> float:
        score = 0
        if distance_km > 1000:
            score += 20
        elif distance_km > 500:
            score += 10
        elif distance_km > 200:
            score += 5

        if job.urgency == "high":
            score += 15
        elif job.urgency == "medium":
            score += 5

        if (job.cargo_type or "").lower() in HIGH_RISK_CARGO_TYPES:
            score += 20
        if job.price_type == "negotiable":
            score += 10
        if job.is_international:
            score += 15

        if hours_left < 12:
            score += 25
        elif hours_left < 24:
            score += 15
        return float(min(100, score))

    # ── Public API ────────────────────────────────────────────────────────────

    def analyze_cargo(self, job: Job, now: datetime | None = None) -> CargoAnalysis:
        now = now or self._clock()
        hours_left = hours_until(job.effective_deadline, now)

        urgency = urgency_from_hours(hours_left)
        distance = self.route_distance_km(job)
        duration = self.estimate_duration(job, distance)
        difficulty = self.difficulty_score(job)
        profit = self.profit_estimate(job, distance, duration)
        risk = self.risk_score(job, distance, hours_left)

        normalized_profit = min(100.0, profit / 10)
        total = (
            urgency * 0.25
            + normalized_profit * 0.35
            + (100 - difficulty) * 0.20
            + (100 - risk) * 0.20
        )

        analysis = CargoAnalysis(
            urgency_score=urgency,
            distance_km=round(distance, 1),
            estimated_duration=round(duration, 2),
            difficulty_score=difficulty,
            profit_estimate=round(profit, 2),
            risk_score=risk,
            total_score=round(total, 1),
            hours_to_deadline=round(hours_left, 2),
        )
        logger.debug(
            "cargo %s: urgency=%s distance=%.1fkm profit=%.2f total=%.1f",
            job.id, urgency, distance, profit, analysis.total_score,
        )
        return analysis

    def analyze_multiple_cargo(
        self, jobs: Iterable[Job], now: datetime | None = None
    ) -> list[tuple[Job, CargoAnalysis]]:
        """Analyze every job against one instant, best total score first."""
        now = now or self._clock()
        analyzed = [(job, self.analyze_cargo(job, now)) for job in jobs]
        # sorted() is stable: equal scores keep input order
        return sorted(analyzed, key=lambda pair: pair[1].total_score, reverse=True)
