"""Tests for fleetmatch/services/matching_engine.py

Run with:  pytest tests/test_matching_engine.py -v
"""

import itertools
from datetime import timedelta

import pytest

from factories import (
    BASE_LAT,
    BASE_LNG,
    NOW,
    FakeCargoSource,
    FakeResourceSource,
    make_job,
    make_resource,
    north_of,
    settings,
)
from fleetmatch.core.config import DispatcherSettings
from fleetmatch.errors import ComputationTimeoutError, ConfigurationError, NotFoundError, UpstreamDataError
from fleetmatch.services.matching_engine import MatchingEngine, MatchingOptions


# ── Helpers ────────────────────────────────────────────────────────────────────

def _vehicle(resource_id, km, **kwargs):
    lat, lng = north_of(BASE_LAT, BASE_LNG, km)
    return make_resource(id=resource_id, name=f"Truck {resource_id}", lat=lat, lng=lng, **kwargs)


def _fleet():
    return [_vehicle(f"r{i}", km) for i, km in enumerate([5, 12, 20, 35, 50], start=1)]


def _jobs(count=10):
    return [
        make_job(
            id=f"j{i:02d}",
            weight_kg=1000 + i * 300,
            price=400 + i * 150,
            delivery_date=NOW + timedelta(hours=20 + i * 10),
        )
        for i in range(count)
    ]


def _engine(jobs=(), resources=(), cargo=None, vehicles=None, **overrides):
    overrides.setdefault("MIN_SCORE_THRESHOLD", 0)
    overrides.setdefault("MIN_CARGO_SCORE", 0)
    return MatchingEngine(
        settings(**overrides),
        cargo or FakeCargoSource(jobs),
        vehicles or FakeResourceSource(resources),
        clock=lambda: NOW,
    )


# ── find_best_matches ──────────────────────────────────────────────────────────

class TestFindBestMatches:
    def test_scenario_e_top_three_sorted(self):
        matches = _engine(_jobs(), _fleet()).find_best_matches(3)
        assert len(matches) == 3
        for first, second in zip(matches, matches[1:]):
            assert first.score >= second.score
            if first.score == second.score:
                assert first.distance_to_pickup <= second.distance_to_pickup

    def test_full_ordering_is_total(self):
        matches = _engine(_jobs(), _fleet()).find_best_matches(100)
        assert len(matches) == 50
        keys = [m.sort_key() for m in matches]
        assert keys == sorted(keys)
        assert len(set(keys)) == len(keys)

    def test_deterministic(self):
        engine = _engine(_jobs(), _fleet())
        assert engine.find_best_matches(10) == engine.find_best_matches(10)

    def test_input_order_does_not_matter(self):
        forward = _engine(_jobs(), _fleet()).find_best_matches(20)
        backward = _engine(list(reversed(_jobs())), list(reversed(_fleet()))).find_best_matches(20)
        assert [(m.job.id, m.resource.id) for m in forward] == [(m.job.id, m.resource.id) for m in backward]

    def test_default_limit_is_max_suggestions(self):
        assert len(_engine(_jobs(), _fleet(), MAX_SUGGESTIONS=4).find_best_matches()) == 4

    def test_zero_limit(self):
        assert _engine(_jobs(), _fleet()).find_best_matches(0) == []

    def test_no_candidates_is_empty_not_error(self):
        assert _engine([], _fleet()).find_best_matches(5) == []
        assert _engine(_jobs(), []).find_best_matches(5) == []

    def test_score_threshold_applied(self):
        matches = _engine(_jobs(), _fleet(), MIN_SCORE_THRESHOLD=75).find_best_matches(100)
        assert all(m.score >= 75 for m in matches)

    def test_low_cargo_score_skipped_unless_urgent(self):
        jobs = [make_job(id="plain"), make_job(id="rush", urgency="high")]
        matches = _engine(jobs, _fleet(), MIN_CARGO_SCORE=100).find_best_matches(100)
        assert {m.job.id for m in matches} == {"rush"}

    def test_job_without_pickup_skipped(self):
        jobs = [make_job(id="nowhere", pickup_lat=None, pickup_lng=None), make_job(id="here")]
        matches = _engine(jobs, _fleet()).find_best_matches(100)
        assert {m.job.id for m in matches} == {"here"}

    def test_heavy_job_only_gets_big_vehicles(self):
        fleet = [_vehicle("small", 5, capacity_kg=3000), _vehicle("big", 10, capacity_kg=12000)]
        matches = _engine([make_job(weight_kg=5000)], fleet).find_best_matches(10)
        assert [m.resource.id for m in matches] == ["big"]

    def test_busy_vehicles_not_offered(self):
        fleet = [_vehicle("down", 5, status="maintenance"), _vehicle("busy", 6, status="in_transit")]
        assert _engine(_jobs(2), fleet).find_best_matches(10) == []


class TestMatchingOptions:
    def test_vehicle_type(self):
        fleet = [_vehicle("van", 5, vehicle_type="VAN"), _vehicle("truck", 6, vehicle_type="TRUCK")]
        matches = _engine(_jobs(3), fleet).find_best_matches(10, MatchingOptions(vehicle_type="VAN"))
        assert {m.resource.id for m in matches} == {"van"}

    def test_max_distance(self):
        matches = _engine(_jobs(3), _fleet()).find_best_matches(100, MatchingOptions(max_distance_km=15))
        assert {m.resource.id for m in matches} == {"r1", "r2"}

    def test_radius_capped_by_max_distance_to_pickup(self):
        fleet = [_vehicle("far", 180)]
        options = MatchingOptions(max_distance_km=500)
        assert _engine(_jobs(1), fleet, MAX_DISTANCE_TO_PICKUP=150).find_best_matches(10, options) == []

    def test_min_profit_score(self):
        matches = _engine(_jobs(), _fleet()).find_best_matches(100, MatchingOptions(min_profit_score=80))
        assert matches
        assert all(m.details.profit_score >= 80 for m in matches)

    def test_exclude_risky(self):
        risky = make_job(id="risky", cargo_type="Hazardous", urgency="high", price_type="negotiable",
                         to_country="DE", deadline=NOW + timedelta(hours=3), weight_kg=6900)
        fleet = [_vehicle("r1", 5, available_capacity_kg=7000)]
        # cargo risk 85, pair risk 45
        engine = _engine([risky, make_job(id="safe")], fleet, RISK_MEDIUM_THRESHOLD=60)
        assert "risky" in {m.job.id for m in engine.find_best_matches(100)}
        filtered = engine.find_best_matches(100, MatchingOptions(exclude_risky=True))
        assert "risky" not in {m.job.id for m in filtered}

    def test_urgent_matches(self):
        jobs = [make_job(id="calm"), make_job(id="rush", urgency="high")]
        matches = _engine(jobs, _fleet()).find_urgent_matches()
        assert {m.job.id for m in matches} == {"rush"}


# ── Failure handling ───────────────────────────────────────────────────────────

class TestFailures:
    def test_invalid_weights_block_construction(self):
        bad = DispatcherSettings(_env_file=None, URGENCY_WEIGHT=0.6)
        with pytest.raises(ConfigurationError):
            MatchingEngine(bad, FakeCargoSource(), FakeResourceSource())

    def test_cargo_fetch_failure_propagates(self):
        cargo = FakeCargoSource(error=UpstreamDataError("cargo_source", "connection refused"))
        with pytest.raises(UpstreamDataError):
            _engine(cargo=cargo, resources=_fleet()).find_best_matches(5)

    def test_vehicle_fetch_failure_wrapped(self):
        vehicles = FakeResourceSource(error=ConnectionError("gps feed down"))
        with pytest.raises(UpstreamDataError, match="gps feed down") as excinfo:
            _engine(_jobs(), vehicles=vehicles).find_best_matches(5)
        assert excinfo.value.source == "vehicle_source"
        assert excinfo.value.retryable is True

    def test_slow_fetch_times_out(self):
        cargo = FakeCargoSource(_jobs(), delay=0.5)
        engine = _engine(cargo=cargo, resources=_fleet(), CALCULATION_TIMEOUT_SECONDS=0.05)
        with pytest.raises(ComputationTimeoutError) as excinfo:
            engine.find_best_matches(5)
        assert excinfo.value.retryable is True

    def test_long_scan_times_out(self):
        ticks = itertools.count()
        engine = MatchingEngine(
            settings(MIN_SCORE_THRESHOLD=0, MIN_CARGO_SCORE=0, CALCULATION_TIMEOUT_SECONDS=3),
            FakeCargoSource(_jobs()),
            FakeResourceSource(_fleet()),
            clock=lambda: NOW,
            monotonic=lambda: float(next(ticks)),
        )
        with pytest.raises(ComputationTimeoutError, match="scoring"):
            engine.find_best_matches(5)

    def test_vehicle_query_fetch_failure_wrapped(self):
        cargo = FakeCargoSource(error=ConnectionError("db down"))
        with pytest.raises(UpstreamDataError, match="db down") as excinfo:
            _engine(cargo=cargo, resources=_fleet()).find_matches_for_vehicle("r1")
        assert excinfo.value.source == "cargo_source"

    def test_vehicle_query_slow_fetch_times_out(self):
        cargo = FakeCargoSource(_jobs(), delay=0.5)
        engine = _engine(cargo=cargo, resources=_fleet(), CALCULATION_TIMEOUT_SECONDS=0.05)
        with pytest.raises(ComputationTimeoutError, match="cargo_source fetch"):
            engine.find_matches_for_vehicle("r1")


# ── Vehicle-side query ─────────────────────────────────────────────────────────

class TestFindMatchesForVehicle:
    def test_ranks_jobs_for_vehicle(self):
        engine = _engine(_jobs(), _fleet())
        matches = engine.find_matches_for_vehicle("r1", 5)
        assert len(matches) == 5
        assert {m.resource.id for m in matches} == {"r1"}
        keys = [m.sort_key() for m in matches]
        assert keys == sorted(keys)

    def test_unknown_vehicle_gives_empty(self):
        assert _engine(_jobs(), _fleet()).find_matches_for_vehicle("nope") == []

    def test_unavailable_vehicle_gives_empty(self):
        fleet = [_vehicle("shop", 5, status="maintenance")]
        assert _engine(_jobs(), fleet).find_matches_for_vehicle("shop") == []

    @pytest.mark.parametrize(
        "overrides",
        [
            {"status": "maintenance"},
            {"status": "in_transit"},
            {"gps_enabled": False},
            {"available_capacity_kg": 80},
            {"available_capacity_kg": 100},
        ],
    )
    def test_vehicle_that_cannot_take_work_gets_nothing(self, overrides):
        fleet = [_vehicle("r1", 5, **overrides)]
        assert _engine(_jobs(), fleet).find_matches_for_vehicle("r1") == []

    def test_known_free_capacity_above_minimum_is_enough(self):
        fleet = [_vehicle("r1", 5, available_capacity_kg=2000)]
        assert _engine(_jobs(), fleet).find_matches_for_vehicle("r1")

    def test_search_radius(self):
        fleet = [_vehicle("remote", 160)]
        assert _engine(_jobs(), fleet).find_matches_for_vehicle("remote") == []
        assert _engine(_jobs(), fleet, VEHICLE_SEARCH_RADIUS_KM=200).find_matches_for_vehicle("remote")

    def test_capacity_respected(self):
        fleet = [_vehicle("small", 5, capacity_kg=2000)]
        matches = _engine(_jobs(), fleet).find_matches_for_vehicle("small", 20)
        assert all(m.job.weight_kg <= 1800 for m in matches)


# ── Single pair & optimisation ─────────────────────────────────────────────────

class TestScorePair:
    def test_known_pair(self):
        match = _engine(_jobs(), _fleet()).score_pair("j00", "r1")
        assert match.job.id == "j00"
        assert match.resource.id == "r1"
        assert 0 < match.score <= 100

    def test_unknown_job(self):
        with pytest.raises(NotFoundError, match="job not found: ghost"):
            _engine(_jobs(), _fleet()).score_pair("ghost", "r1")

    def test_unknown_resource(self):
        with pytest.raises(NotFoundError) as excinfo:
            _engine(_jobs(), _fleet()).score_pair("j00", "ghost")
        assert excinfo.value.entity == "resource"

    def test_capacity_mismatch_scores_zero(self):
        fleet = [_vehicle("small", 5, capacity_kg=1000)]
        match = _engine([make_job(id="heavy", weight_kg=5000)], fleet).score_pair("heavy", "small")
        assert match.score == 0
        assert match.capacity_match is False


class TestSuggestBetterMatch:
    def test_suggests_closer_vehicle(self):
        fleet = [_vehicle("near", 3), _vehicle("far", 90)]
        suggestion = _engine([make_job(id="j")], fleet).suggest_better_match("j", "far")
        assert suggestion is not None
        assert suggestion.suggested.resource.id == "near"
        assert suggestion.score_gain > 0

    def test_none_when_requested_is_best(self):
        fleet = [_vehicle("near", 3), _vehicle("far", 90)]
        assert _engine([make_job(id="j")], fleet).suggest_better_match("j", "near") is None

    def test_disabled_optimization(self):
        fleet = [_vehicle("near", 3), _vehicle("far", 90)]
        engine = _engine([make_job(id="j")], fleet, OPTIMIZATION_ENABLED=False)
        assert engine.suggest_better_match("j", "far") is None


def test_mark_assigned_writes_status():
    cargo = FakeCargoSource([make_job(id="j")])
    engine = _engine(cargo=cargo, resources=_fleet())
    assert engine.mark_assigned("j") is True
    assert cargo.status_writes == [("j", "assigned")]
