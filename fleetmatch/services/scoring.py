"""Pair scoring: one (job, vehicle) pair -> a 0-100 Match.

Score pipeline
--------------
1. Four 0-100 components: urgency (from the cargo analysis), proximity
   bands on distance to pickup, profit bands on the estimated profit, and a
   vehicle efficiency score.
2. Weighted base with the four configured weights (validated to sum to 1).
3. Adjustments, in this order:
     risk penalty      base *= 1 - RISK_PENALTY * risk / 100
     urgent boost      closes URGENT_PRIORITY_BOOST % of the gap to 100,
                       scaled by DEADLINE_PRESSURE_FACTOR under 12h
     capacity bonus    closes CAPACITY_UTILIZATION_BONUS * compat / 100
     efficiency bonus  closes EFFICIENCY_BONUS % when efficiency >= 90
4. Clamp to [0, 100], round to one decimal.

Risk is the mean of the cargo risk and the pair risk (route, cargo type,
load ratio, urgency tag, vehicle status).  A pair that fails the capacity
check scores 0 and is never boosted.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from fleetmatch.core.config import DispatcherSettings
from fleetmatch.domain import Job, Resource, RiskLevel
from fleetmatch.services.cargo_analyzer import HIGH_RISK_CARGO_TYPES, CargoAnalysis
from fleetmatch.services.fleet_manager import ResourceMatch

logger = logging.getLogger(__name__)

DEADLINE_PRESSURE_HOURS = 12.0
EFFICIENCY_BONUS_MIN = 90.0


@dataclass(frozen=True)
class CostBreakdown:
    fuel_cost: float
    driver_cost: float
    maintenance_cost: float
    total_cost: float
    cost_per_km: float
    revenue: float
    profit: float
    profit_margin: float  # percent of revenue


@dataclass(frozen=True)
class MatchDetails:
    urgency_score: float
    proximity_score: float
    profit_score: float
    efficiency_score: float
    capacity_compatibility: float
    time_compatibility: float
    cargo_risk: float
    pair_risk: float
    combined_risk: float
    profit_margin: float
    costs: CostBreakdown
    risk_factors: tuple[str, ...] = ()
    advantages: tuple[str, ...] = ()
    warnings: tuple[str, ...] = ()


@dataclass(frozen=True)
class Match:
    job: Job
    resource: Resource
    score: float
    estimated_profit: float
    risk_level: RiskLevel
    cargo_analysis: CargoAnalysis
    resource_match: ResourceMatch
    details: MatchDetails
    recommendation: str
    auto_assign_eligible: bool = False
    auto_accept_eligible: bool = False

    @property
    def distance_to_pickup(self) -> float:
        return self.resource_match.distance_to_pickup

    @property
    def capacity_match(self) -> bool:
        return self.resource_match.capacity_match

    def sort_key(self) -> tuple:
        return (-self.score, self.distance_to_pickup, self.job.id, self.resource.id)


# ── Component bands ────────────────────────────────────────────────────────────

def proximity_score(distance_km: float) -> float:
    if distance_km < 10:
        return 100.0
    if distance_km < 25:
        return 90.0
    if distance_km < 50:
        return 80.0
    if distance_km < 80:
        return 60.0
    if distance_km < 120:
        return 40.0
    return 20.0


def profit_score(profit: float) -> float:
    if profit < 100:
        return 20.0
    if profit < 300:
        return 40.0
    if profit < 500:
        return 60.0
    if profit < 800:
        return 80.0
    return 100.0


def pair_efficiency_score(resource: Resource, distance_to_pickup: float) -> float:
    score = 100
    fuel = resource.fuel_l_per_100km
    if fuel > 10:
        score -= 20
    elif fuel < 6:
        score += 10

    if resource.status == "idle":
        score += 15
    elif resource.status == "assigned":
        score -= 10

    if distance_to_pickup > 100:
        score -= 25
    elif distance_to_pickup < 20:
        score += 15
    return float(max(0, min(100, score)))


def capacity_compatibility(weight_kg: float, max_capacity_kg: float) -> float:
    utilization = weight_kg / max_capacity_kg * 100
    if utilization > 100:
        return 0.0
    if utilization > 90:
        return 100.0
    if utilization > 70:
        return 90.0
    if utilization > 50:
        return 80.0
    if utilization > 30:
        return 60.0
    return 40.0


def time_compatibility(hours_to_deadline: float, travel_minutes: int) -> float:
    buffer = hours_to_deadline - travel_minutes / 60
    if buffer < 12:
        return 30.0
    if buffer < 24:
        return 60.0
    if buffer < 48:
        return 80.0
    return 100.0


def pair_risk_score(job: Job, resource: Resource, route_km: float) -> float:
    score = 0
    if route_km > 1000:
        score += 25
    elif route_km > 500:
        score += 15
    elif route_km > 200:
        score += 5

    if (job.cargo_type or "").lower() in HIGH_RISK_CARGO_TYPES:
        score += 20
    if job.weight_kg / resource.max_capacity_kg > 0.9:
        score += 15
    if job.urgency == "high":
        score += 10

    if resource.status == "maintenance":
        score += 30
    elif resource.status == "assigned":
        score += 10
    return float(min(100, score))


def recommendation_text(score: float) -> str:
    if score > 85:
        return "Excellent match - highly recommended"
    if score > 75:
        return "Good match - recommended"
    if score > 65:
        return "Acceptable match - consider carefully"
    return "Poor match - not recommended"


def _close_gap(score: float, share: float) -> float:
    return score + (100 - score) * share


class ScoringSystem:
    def __init__(self, settings: DispatcherSettings):
        self.settings = settings

    def risk_level(self, risk: float) -> RiskLevel:
        if risk < self.settings.RISK_LOW_THRESHOLD:
            return "low"
        if risk < self.settings.RISK_MEDIUM_THRESHOLD:
            return "medium"
        return "high"

    def cost_breakdown(self, job: Job, resource: Resource, analysis: CargoAnalysis) -> CostBreakdown:
        s = self.settings
        distance = analysis.distance_km
        fuel = (distance / 100) * resource.fuel_l_per_100km * s.FUEL_PRICE_PER_LITER
        driver = analysis.estimated_duration * s.DRIVER_HOURLY_RATE
        maintenance = distance * s.MAINTENANCE_PER_KM
        total = fuel + driver + maintenance
        revenue = job.price * distance if job.price_type == "per_km" else job.price
        profit = revenue - total
        return CostBreakdown(
            fuel_cost=round(fuel, 2),
            driver_cost=round(driver, 2),
            maintenance_cost=round(maintenance, 2),
            total_cost=round(total, 2),
            cost_per_km=round(total / distance, 2) if distance > 0 else 0.0,
            revenue=round(revenue, 2),
            profit=round(profit, 2),
            profit_margin=round(profit / revenue * 100, 1) if revenue > 0 else 0.0,
        )

    def adjusted_score(
        self,
        base: float,
        risk: float,
        urgency: float,
        hours_to_deadline: float,
        capacity_compat: float,
        efficiency: float,
    ) -> float:
        s = self.settings
        score = base * (1 - s.RISK_PENALTY * risk / 100)

        if urgency >= 100:
            share = s.URGENT_PRIORITY_BOOST / 100
            if hours_to_deadline < DEADLINE_PRESSURE_HOURS:
                share = min(1.0, share * s.DEADLINE_PRESSURE_FACTOR)
            score = _close_gap(score, share)

        score = _close_gap(score, s.CAPACITY_UTILIZATION_BONUS * capacity_compat / 100)

        if efficiency >= EFFICIENCY_BONUS_MIN:
            score = _close_gap(score, s.EFFICIENCY_BONUS / 100)

        return round(max(0.0, min(100.0, score)), 1)

    def _describe(
        self,
        job: Job,
        resource: Resource,
        analysis: CargoAnalysis,
        resource_match: ResourceMatch,
        profit: float,
        capacity: float,
        timing: float,
        margin: float,
    ) -> tuple[tuple[str, ...], tuple[str, ...], tuple[str, ...]]:
        distance = resource_match.distance_to_pickup
        risk_factors = []
        if analysis.risk_score > 70:
            risk_factors.append("High-risk cargo")
        if distance > 80:
            risk_factors.append("Long distance to pickup")
        if job.urgency == "high":
            risk_factors.append("Urgent deadline")
        if analysis.difficulty_score > 60:
            risk_factors.append("Complex cargo requirements")
        if margin < self.settings.MIN_PROFIT_MARGIN:
            risk_factors.append(f"Profit margin below {self.settings.MIN_PROFIT_MARGIN:g}%")

        advantages = []
        if distance < 20:
            advantages.append("Vehicle very close to pickup")
        if profit > 80:
            advantages.append("High profit potential")
        if resource.status == "idle":
            advantages.append("Vehicle immediately available")
        if capacity > 90:
            advantages.append("Perfect capacity match")

        warnings = []
        if not resource_match.capacity_match:
            warnings.append("Insufficient capacity")
        if timing < 50:
            warnings.append("Tight delivery schedule")
        if profit < 40:
            warnings.append("Low profit margin")
        if analysis.difficulty_score > 70:
            warnings.append("Special handling required")
        return tuple(risk_factors), tuple(advantages), tuple(warnings)

    def score_match(self, job: Job, analysis: CargoAnalysis, resource_match: ResourceMatch) -> Match:
        s = self.settings
        resource = resource_match.resource
        distance = resource_match.distance_to_pickup

        urgency = analysis.urgency_score
        proximity = proximity_score(distance)
        profit = profit_score(analysis.profit_estimate)
        efficiency = pair_efficiency_score(resource, distance)
        capacity = capacity_compatibility(job.weight_kg, resource.max_capacity_kg)
        timing = time_compatibility(analysis.hours_to_deadline, resource_match.travel_time_minutes)

        pair_risk = pair_risk_score(job, resource, analysis.distance_km)
        combined_risk = round((analysis.risk_score + pair_risk) / 2, 1)
        costs = self.cost_breakdown(job, resource, analysis)

        if resource_match.capacity_match:
            base = (
                urgency * s.URGENCY_WEIGHT
                + proximity * s.PROXIMITY_WEIGHT
                + profit * s.PROFIT_WEIGHT
                + efficiency * s.EFFICIENCY_WEIGHT
            )
            score = self.adjusted_score(
                base, combined_risk, urgency, analysis.hours_to_deadline, capacity, efficiency
            )
        else:
            score = 0.0

        risk_factors, advantages, warnings = self._describe(
            job, resource, analysis, resource_match, profit, capacity, timing, costs.profit_margin
        )
        details = MatchDetails(
            urgency_score=urgency,
            proximity_score=proximity,
            profit_score=profit,
            efficiency_score=efficiency,
            capacity_compatibility=capacity,
            time_compatibility=timing,
            cargo_risk=analysis.risk_score,
            pair_risk=pair_risk,
            combined_risk=combined_risk,
            profit_margin=costs.profit_margin,
            costs=costs,
            risk_factors=risk_factors,
            advantages=advantages,
            warnings=warnings,
        )
        logger.debug("pair %s/%s scored %.1f (risk %.1f)", job.id, resource.id, score, combined_risk)
        return Match(
            job=job,
            resource=resource,
            score=score,
            estimated_profit=analysis.profit_estimate,
            risk_level=self.risk_level(combined_risk),
            cargo_analysis=analysis,
            resource_match=resource_match,
            details=details,
            recommendation=recommendation_text(score),
            auto_assign_eligible=score > s.AUTO_ASSIGN_HIGH_SCORE,
            auto_accept_eligible=score >= s.AUTO_ACCEPT_SCORE,
        )
