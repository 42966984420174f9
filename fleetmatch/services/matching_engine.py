"""Matching engine: pulls open cargo and available vehicles, scores every
compatible pair and returns a deterministic ranked list.

Design decisions:
- Cargo and vehicles are fetched concurrently; both must succeed.  A failed
  fetch raises UpstreamDataError, so "no candidates" (an empty list) is never
  confused with "the fetch failed".
- One scan runs under CALCULATION_TIMEOUT_SECONDS.  The fetch wait and the
  scoring loop check the same monotonic deadline.
- The clock is read once per call; every job in a scan is analyzed against
  that instant.
- Ordering: score desc, distance to pickup asc, job id asc, vehicle id asc.
- Nothing is assigned automatically.  auto_assign_eligible on a Match is a
  hint for the caller.
"""

from __future__ import annotations

import logging
import time
from concurrent.futures import Future, ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeoutError
from dataclasses import dataclass
from datetime import datetime
from typing import Callable

from fleetmatch.core.config import DispatcherSettings, validate_settings
from fleetmatch.domain import Job, JobFilter, PickupLocation, Resource
from fleetmatch.errors import ComputationTimeoutError, NotFoundError, UpstreamDataError
from fleetmatch.logic.geo import utcnow
from fleetmatch.repositories.sources import CargoSource, ResourceSource
from fleetmatch.services.cargo_analyzer import CargoAnalyzer
from fleetmatch.services.fleet_manager import FleetManager
from fleetmatch.services.scoring import Match, ScoringSystem

logger = logging.getLogger(__name__)

URGENT_MATCH_LIMIT = 10


@dataclass(frozen=True)
class MatchingOptions:
    max_distance_km: float | None = None
    min_profit_score: float | None = None
    vehicle_type: str | None = None
    exclude_risky: bool = False
    urgency_only: bool = False


@dataclass(frozen=True)
class BetterMatchSuggestion:
    job_id: str
    requested_resource_id: str
    requested_score: float
    suggested: Match

    @property
    def score_gain(self) -> float:
        return round(self.suggested.score - self.requested_score, 1)


class _ScanDeadline:
    def __init__(self, seconds: float, monotonic: Callable[[], float]):
        self.seconds = seconds
        self._monotonic = monotonic
        self._ends_at = monotonic() + seconds

    def remaining(self) -> float:
        return max(0.0, self._ends_at - self._monotonic())

    def check(self, stage: str) -> None:
        if self._monotonic() >= self._ends_at:
            raise ComputationTimeoutError(self.seconds, stage)


class MatchingEngine:
    def __init__(
        self,
        settings: DispatcherSettings,
        cargo_source: CargoSource,
        resource_source: ResourceSource,
        analyzer: CargoAnalyzer | None = None,
        fleet_manager: FleetManager | None = None,
        scoring: ScoringSystem | None = None,
        clock: Callable[[], datetime] = utcnow,
        monotonic: Callable[[], float] = time.monotonic,
    ):
        # Refuse to start on a bad weight set.
        self.settings = validate_settings(settings)
        self.cargo_source = cargo_source
        self.resource_source = resource_source
        self.analyzer = analyzer or CargoAnalyzer(settings, clock=clock)
        self.fleet_manager = fleet_manager or FleetManager(settings, resource_source)
        self.scoring = scoring or ScoringSystem(settings)
        self._clock = clock
        self._monotonic = monotonic

    # ── Fetch ─────────────────────────────────────────────────────────────────

    def _await(self, future: Future, source: str, deadline: _ScanDeadline):
        try:
            return future.result(timeout=deadline.remaining())
        except FutureTimeoutError as exc:
            raise ComputationTimeoutError(deadline.seconds, f"{source} fetch") from exc
        except UpstreamDataError:
            raise
        except Exception as exc:
            logger.exception("%s fetch failed", source)
            raise UpstreamDataError(source, str(exc)) from exc

    def _fetch(
        self, deadline: _ScanDeadline, load_jobs: Callable[[], object], load_resources: Callable[[], object]
    ) -> tuple:
        pool = ThreadPoolExecutor(max_workers=2, thread_name_prefix="fleetmatch-fetch")
        try:
            jobs_future = pool.submit(load_jobs)
            resources_future = pool.submit(load_resources)
            jobs = self._await(jobs_future, "cargo_source", deadline)
            resources = self._await(resources_future, "vehicle_source", deadline)
        finally:
            # Do not block on a fetch that outlived the deadline.
            pool.shutdown(wait=False, cancel_futures=True)
        return jobs, resources

    def _fetch_candidates(
        self, job_filter: JobFilter, deadline: _ScanDeadline
    ) -> tuple[list[Job], list[Resource]]:
        jobs, resources = self._fetch(
            deadline,
            lambda: self.cargo_source.list_open_jobs(job_filter),
            self.resource_source.list_available,
        )
        return list(jobs), list(resources)

    # ── Queries ───────────────────────────────────────────────────────────────

    def find_best_matches(self, limit: int | None = None, options: MatchingOptions | None = None) -> list[Match]:
        s = self.settings
        limit = s.MAX_SUGGESTIONS if limit is None else limit
        if limit <= 0:
            return []
        options = options or MatchingOptions()

        deadline = _ScanDeadline(s.CALCULATION_TIMEOUT_SECONDS, self._monotonic)
        now = self._clock()
        job_filter = JobFilter(status="active", urgency="high" if options.urgency_only else None)
        jobs, resources = self._fetch_candidates(job_filter, deadline)

        if options.vehicle_type:
            resources = [r for r in resources if r.vehicle_type == options.vehicle_type]
        radius = s.DEFAULT_SEARCH_RADIUS_KM if options.max_distance_km is None else options.max_distance_km
        radius = min(radius, s.MAX_DISTANCE_TO_PICKUP)

        matches: list[Match] = []
        for job, analysis in self.analyzer.analyze_multiple_cargo(jobs, now):
            deadline.check("scoring")
            if options.urgency_only and job.urgency != "high":
                continue
            if analysis.total_score < s.MIN_CARGO_SCORE and job.urgency != "high":
                logger.debug("cargo %s skipped: score %.1f below %.1f", job.id, analysis.total_score, s.MIN_CARGO_SCORE)
                continue
            pickup = PickupLocation.for_job(job)
            if pickup is None:
                logger.warning("cargo %s skipped: no pickup coordinates", job.id)
                continue

            for resource_match in self.fleet_manager.find_nearest_resources(
                pickup, job.weight_kg, radius, resources=resources
            ):
                deadline.check("scoring")
                match = self.scoring.score_match(job, analysis, resource_match)
                if match.score < s.MIN_SCORE_THRESHOLD:
                    continue
                if options.min_profit_score is not None and match.details.profit_score < options.min_profit_score:
                    continue
                if options.exclude_risky and match.risk_level == "high":
                    continue
                matches.append(match)

        matches.sort(key=Match.sort_key)
        logger.info(
            "matching: %d jobs x %d vehicles -> %d matches, returning %d",
            len(jobs), len(resources), len(matches), min(limit, len(matches)),
        )
        return matches[:limit]

    def find_urgent_matches(self, limit: int = URGENT_MATCH_LIMIT) -> list[Match]:
        return self.find_best_matches(
            limit,
            MatchingOptions(urgency_only=True, max_distance_km=self.settings.URGENT_SEARCH_RADIUS_KM),
        )

    def find_matches_for_vehicle(self, resource_id: str, limit: int | None = None) -> list[Match]:
        """Rank open cargo for one vehicle.

        Vehicles that could not take new work (unknown, busy, GPS off or
        nearly full) get [].
        """
        s = self.settings
        limit = s.MAX_SUGGESTIONS if limit is None else limit
        if limit <= 0:
            return []

        deadline = _ScanDeadline(s.CALCULATION_TIMEOUT_SECONDS, self._monotonic)
        now = self._clock()
        jobs, resource = self._fetch(
            deadline,
            lambda: self.cargo_source.list_open_jobs(JobFilter(status="active")),
            lambda: self.resource_source.get_resource(resource_id),
        )
        if resource is None or not resource.can_take_new_work:
            logger.info("vehicle %s not found or not available", resource_id)
            return []

        matches: list[Match] = []
        for job, analysis in self.analyzer.analyze_multiple_cargo(jobs, now):
            deadline.check("scoring")
            pickup = PickupLocation.for_job(job)
            if pickup is None:
                continue
            resource_match = self.fleet_manager.evaluate_resource(resource, pickup, job.weight_kg)
            if not resource_match.capacity_match or resource_match.distance_to_pickup > s.VEHICLE_SEARCH_RADIUS_KM:
                continue
            match = self.scoring.score_match(job, analysis, resource_match)
            if match.score >= s.MIN_SCORE_THRESHOLD:
                matches.append(match)

        matches.sort(key=Match.sort_key)
        logger.info("vehicle %s: %d matching cargo offers", resource_id, len(matches))
        return matches[:limit]

    # ── Single pair ───────────────────────────────────────────────────────────

    def score_pair(self, job_id: str, resource_id: str) -> Match:
        """Score a named pair.  A capacity mismatch yields a zero-score Match."""
        job = self.cargo_source.get_job(job_id)
        if job is None:
            raise NotFoundError("job", job_id)
        resource = self.resource_source.get_resource(resource_id)
        if resource is None:
            raise NotFoundError("resource", resource_id)

        pickup = PickupLocation.for_job(job)
        if pickup is None:
            raise ValueError(f"job {job_id} has no pickup coordinates")

        analysis = self.analyzer.analyze_cargo(job, self._clock())
        resource_match = self.fleet_manager.evaluate_resource(resource, pickup, job.weight_kg)
        return self.scoring.score_match(job, analysis, resource_match)

    def suggest_better_match(self, job_id: str, resource_id: str) -> BetterMatchSuggestion | None:
        """Report a higher-scoring vehicle for the job, if one exists.  Never reassigns."""
        if not self.settings.OPTIMIZATION_ENABLED:
            return None
        requested = self.score_pair(job_id, resource_id)
        job = requested.job
        pickup = PickupLocation.for_job(job)

        best: Match | None = None
        for resource_match in self.fleet_manager.find_nearest_resources(
            pickup, job.weight_kg, self.settings.MAX_DISTANCE_TO_PICKUP
        ):
            if resource_match.resource.id == resource_id:
                continue
            candidate = self.scoring.score_match(job, requested.cargo_analysis, resource_match)
            if candidate.score <= requested.score:
                continue
            if best is None or candidate.sort_key() < best.sort_key():
                best = candidate

        if best is None:
            return None
        logger.info(
            "better match for %s: %s (%.1f) over %s (%.1f)",
            job_id, best.resource.id, best.score, resource_id, requested.score,
        )
        return BetterMatchSuggestion(
            job_id=job_id,
            requested_resource_id=resource_id,
            requested_score=requested.score,
            suggested=best,
        )

    def mark_assigned(self, job_id: str) -> bool:
        """Signal the active -> assigned transition once the caller commits a match."""
        return self.cargo_source.set_job_status(job_id, "assigned")
