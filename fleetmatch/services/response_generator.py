"""Plain-text and structured views over a ranked match list.

Read-only: nothing here changes a score, a match or the order of the list.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, Sequence

from fleetmatch.core.config import DispatcherSettings
from fleetmatch.domain import Resource
from fleetmatch.logic.geo import as_utc, utcnow
from fleetmatch.services.scoring import Match

logger = logging.getLogger(__name__)

NO_MATCHES_MESSAGE = "I didn't find any suitable routes at the moment. Should I check again in a few minutes?"

_URGENCY_TEXT = {"high": "High", "medium": "Medium", "low": "Low"}
_STATUS_TEXT = {
    "idle": "Available",
    "in_transit": "In Transit",
    "en_route": "En Route",
    "loading": "Loading",
    "unloading": "Unloading",
    "maintenance": "In Maintenance",
    "assigned": "Assigned",
    "out_of_service": "Out of Service",
}


@dataclass(frozen=True)
class Summary:
    total_matches: int
    best_score: float
    average_profit: float
    urgent_matches: int


@dataclass(frozen=True)
class SuggestionDetails:
    cargo_weight: float
    cargo_type: str
    vehicle_name: str
    vehicle_type: str
    distance_to_pickup: int
    estimated_profit: int
    total_duration: int
    urgency_level: str
    profit_margin: float


@dataclass(frozen=True)
class FormattedSuggestion:
    index: int
    cargo_id: str
    vehicle_id: str
    route: str
    details: SuggestionDetails
    priority_level: str
    recommendation: str


@dataclass(frozen=True)
class RecommendationExplanation:
    suggestion_index: int
    reasons: tuple[str, ...]
    explanation: str
    confidence: float


@dataclass(frozen=True)
class GeneratedResponse:
    message: str
    summary: Summary
    suggestions: list[FormattedSuggestion] = field(default_factory=list)
    recommendation: RecommendationExplanation | None = None


def priority_level(score: float) -> str:
    if score > 85:
        return "High Priority"
    if score > 70:
        return "Medium Priority"
    if score > 55:
        return "Low Priority"
    return "Consider Carefully"


def short_recommendation(score: float) -> str:
    if score > 85:
        return "Highly Recommended"
    if score > 70:
        return "Recommended"
    if score > 55:
        return "Consider"
    return "Review Carefully"


def recommendation_reasons(match: Match) -> tuple[str, ...]:
    reasons = []
    if match.details.urgency_score > 75:
        reasons.append("very urgent")
    if match.details.profit_margin > 30:
        reasons.append("excellent profit")
    if match.distance_to_pickup < 20:
        reasons.append("vehicle very close")
    if match.score > 85:
        reasons.append("high match score")
    if match.risk_level == "low":
        reasons.append("low risk")
    return tuple(reasons)


def explain(reasons: Sequence[str]) -> str:
    if not reasons:
        return "the best balance between profit and efficiency."
    if len(reasons) == 1:
        text = reasons[0]
    else:
        text = ", ".join(reasons[:-1]) + " and " + reasons[-1]
    return f"the best option because it is {text}."


def confidence(match: Match) -> float:
    value = match.score
    if match.risk_level == "low":
        value += 5
    elif match.risk_level == "high":
        value -= 10
    if match.details.profit_margin > 25:
        value += 5
    elif match.details.profit_margin < 10:
        value -= 10
    return max(0.0, min(100.0, value))


def time_ago(then: datetime | None, now: datetime) -> str:
    if then is None:
        return "never"
    minutes = int((as_utc(now) - as_utc(then)).total_seconds() // 60)
    if minutes < 1:
        return "just now"
    if minutes < 60:
        return f"{minutes} minutes ago"
    hours = minutes // 60
    if hours < 24:
        return f"{hours} hours ago"
    return f"{hours // 24} days ago"


def time_until(deadline: datetime, now: datetime) -> str:
    hours = (as_utc(deadline) - as_utc(now)).total_seconds() / 3600
    if hours < 0:
        return "overdue"
    if hours < 24:
        return f"in {round(hours)} hours"
    return f"in {int(hours // 24)} days"


class ResponseGenerator:
    def __init__(self, settings: DispatcherSettings, clock: Callable[[], datetime] = utcnow):
        self.settings = settings
        self._clock = clock

    def _money(self, amount: float) -> str:
        return f"{amount:,.0f} {self.settings.CURRENCY}"

    def summarize(self, matches: Sequence[Match]) -> Summary:
        if not matches:
            return Summary(total_matches=0, best_score=0.0, average_profit=0.0, urgent_matches=0)
        profits = [m.estimated_profit for m in matches]
        return Summary(
            total_matches=len(matches),
            best_score=max(m.score for m in matches),
            average_profit=round(sum(profits) / len(profits), 2),
            urgent_matches=sum(1 for m in matches if m.job.urgency == "high"),
        )

    def format_suggestions(self, matches: Sequence[Match]) -> list[FormattedSuggestion]:
        return [
            FormattedSuggestion(
                index=position,
                cargo_id=m.job.id,
                vehicle_id=m.resource.id,
                route=m.job.route,
                details=SuggestionDetails(
                    cargo_weight=m.job.weight_kg,
                    cargo_type=m.job.cargo_type,
                    vehicle_name=m.resource.name,
                    vehicle_type=m.resource.vehicle_type or "TRUCK",
                    distance_to_pickup=round(m.distance_to_pickup),
                    estimated_profit=round(m.estimated_profit),
                    total_duration=round(m.cargo_analysis.estimated_duration),
                    urgency_level=_URGENCY_TEXT.get(m.job.urgency, "Medium"),
                    profit_margin=m.details.profit_margin,
                ),
                priority_level=priority_level(m.score),
                recommendation=short_recommendation(m.score),
            )
            for position, m in enumerate(matches, start=1)
        ]

    def generate_suggestions(self, matches: Sequence[Match]) -> GeneratedResponse:
        if not matches:
            return GeneratedResponse(message=NO_MATCHES_MESSAGE, summary=self.summarize(matches))

        logger.debug("formatting %d matches", len(matches))
        suggestions = self.format_suggestions(matches)
        best = matches[0]
        reasons = recommendation_reasons(best)
        recommendation = RecommendationExplanation(
            suggestion_index=1,
            reasons=reasons,
            explanation=explain(reasons),
            confidence=confidence(best),
        )

        lines = [f"I found {len(matches)} recommended routes:", ""]
        for s in suggestions:
            d = s.details
            lines += [
                f"{s.index}. {s.route}",
                f"   Cargo: {d.cargo_weight:g}kg {d.cargo_type}",
                f"   Vehicle: {d.vehicle_name} ({d.vehicle_type})",
                f"   Distance to pickup: {d.distance_to_pickup}km",
                f"   Estimated profit: {self._money(d.estimated_profit)}",
                f"   Total duration: {d.total_duration} hours",
                f"   Priority: {d.urgency_level}",
                "",
            ]
        lines.append(f"My recommendation: Route #{recommendation.suggestion_index} - {recommendation.explanation}")

        return GeneratedResponse(
            message="\n".join(lines),
            summary=self.summarize(matches),
            suggestions=suggestions,
            recommendation=recommendation,
        )

    def vehicle_status_response(
        self, resource: Resource, nearby_matches: Sequence[Match] | None = None, now: datetime | None = None
    ) -> str:
        now = now or self._clock()
        lat, lng = resource.position
        available = (
            resource.available_capacity_kg
            if resource.available_capacity_kg is not None
            else resource.max_capacity_kg
        )
        lines = [
            f"Vehicle {resource.name} is currently located at coordinates ({lat:.4f}, {lng:.4f}).",
            f"Status: {_STATUS_TEXT.get(resource.status, 'Unknown')}",
            f"Available capacity: {available:.0f}kg",
            f"Last update: {time_ago(resource.last_update, now)}",
        ]
        if nearby_matches:
            lines += ["", "Nearest cargo opportunities for this vehicle:", ""]
            for position, m in enumerate(nearby_matches[:3], start=1):
                lines.append(
                    f"Cargo {position}: {m.job.route} ({m.job.weight_kg:g}kg, {self._money(m.estimated_profit)} profit)"
                )
        return "\n".join(lines)

    def urgent_alert(self, matches: Sequence[Match], now: datetime | None = None) -> str:
        if not matches:
            return "No urgent cargo requiring immediate attention at this time."
        now = now or self._clock()
        lines = [f"URGENT CARGO ALERT: {len(matches)} urgent cargo offers need immediate dispatch:", ""]
        for position, m in enumerate(matches, start=1):
            lines += [
                f"{position}. URGENT: {m.job.route}",
                f"   Deadline: {time_until(m.job.effective_deadline, now)}",
                f"   {m.job.weight_kg:g}kg {m.job.cargo_type}",
                f"   Vehicle: {m.resource.name} ({m.resource.license_plate})",
                f"   Profit: {self._money(m.estimated_profit)}",
                f"   Vehicle distance: {m.distance_to_pickup:.1f}km",
                "",
            ]
        lines.append("Action required: dispatch vehicles now to meet the deadlines.")
        return "\n".join(lines)

    def daily_summary(self, matches: Sequence[Match], completed_routes: int = 0) -> str:
        revenue = sum(m.details.costs.revenue for m in matches)
        profit = sum(m.estimated_profit for m in matches)
        average_score = sum(m.score for m in matches) / len(matches) if matches else 0.0

        lines = [
            "Daily Fleet Summary",
            "",
            f"Available routes: {len(matches)}",
            f"Completed routes: {completed_routes}",
            f"Total potential revenue: {self._money(revenue)}",
            f"Total estimated profit: {self._money(profit)}",
            f"Average match score: {average_score:.1f}/100",
        ]
        if matches:
            lines += ["", "Top opportunities today:"]
            for position, m in enumerate(matches[:3], start=1):
                lines.append(f"{position}. {m.job.route} ({self._money(m.estimated_profit)} profit)")
        return "\n".join(lines)

    def profit_analysis(self, matches: Sequence[Match]) -> str:
        if not matches:
            return "No routes available for profit analysis."

        profits = [m.estimated_profit for m in matches]
        average = sum(profits) / len(profits)
        high = [m for m in matches if m.estimated_profit > average * 1.2]
        low = [m for m in matches if m.estimated_profit < average * 0.8]

        lines = [
            "Profit Analysis",
            "",
            f"Profit range: {self._money(min(profits))} - {self._money(max(profits))}",
            f"Average profit: {self._money(average)}",
            f"High-profit routes (>{self._money(average * 1.2)}): {len(high)}",
            f"Low-profit routes (<{self._money(average * 0.8)}): {len(low)}",
        ]
        if high:
            lines += ["", "Most profitable routes:"]
            for position, m in enumerate(high[:3], start=1):
                lines.append(
                    f"{position}. {m.job.route}: {self._money(m.estimated_profit)} "
                    f"({m.details.profit_margin:.1f}% margin)"
                )
        return "\n".join(lines)
