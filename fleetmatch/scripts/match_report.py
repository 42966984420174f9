#!/usr/bin/env python3
from __future__ import annotations

import argparse
import logging
import os
import sys
from pathlib import Path

from dotenv import load_dotenv

PROJECT_ROOT = Path(__file__).resolve().parents[2]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

load_dotenv(PROJECT_ROOT / ".env")

from fleetmatch.core.config import ConfigProvider
from fleetmatch.database import SessionLocal, build_engine, build_session_factory, check_database_connection
from fleetmatch.database import engine as default_engine
from fleetmatch.errors import ComputationTimeoutError, UpstreamDataError
from fleetmatch.repositories.cargo_repo import SqlCargoSource
from fleetmatch.repositories.vehicle_repo import SqlResourceSource
from fleetmatch.services.cache import InMemoryTTLCache
from fleetmatch.services.fleet_manager import FleetManager
from fleetmatch.services.matching_engine import MatchingEngine
from fleetmatch.services.response_generator import ResponseGenerator

MODES = ("best", "vehicle", "urgent", "daily", "profit", "fleet")


def run_report(mode: str, limit: int | None, vehicle_id: str | None, session_factory=SessionLocal) -> int:
    settings = ConfigProvider().get()
    cache = InMemoryTTLCache()
    cargo = SqlCargoSource(session_factory, cache=cache, settings=settings)
    vehicles = SqlResourceSource(session_factory, cache=cache, settings=settings)
    engine = MatchingEngine(settings, cargo, vehicles)
    responses = ResponseGenerator(settings)

    print(f"fleetmatch report | mode: {mode} | env: {settings.ENV}")
    print("-" * 72)

    if mode == "vehicle":
        resource = vehicles.get_resource(vehicle_id)
        if resource is None:
            print(f"Vehicle not found: {vehicle_id}")
            return 1
        matches = engine.find_matches_for_vehicle(vehicle_id, limit)
        print(responses.vehicle_status_response(resource, matches))
        return 0

    if mode == "fleet":
        utilization = FleetManager(settings, vehicles).get_fleet_utilization()
        print(f"Vehicles: {utilization.total_vehicles} | active: {utilization.active_vehicles}")
        print(f"Utilization: {utilization.utilization_rate:.1f}%")
        print("In transit: " + (", ".join(r.name for r in utilization.top_performers) or "-"))
        print("Idle: " + (", ".join(r.name for r in utilization.underutilized) or "-"))
        return 0

    if mode == "urgent":
        print(responses.urgent_alert(engine.find_urgent_matches()))
        return 0

    matches = engine.find_best_matches(limit)
    if mode == "daily":
        print(responses.daily_summary(matches))
    elif mode == "profit":
        print(responses.profit_analysis(matches))
    else:
        print(responses.generate_suggestions(matches).message)
    return 0


def main() -> int:
    parser = argparse.ArgumentParser(description="Print dispatch match suggestions from the configured database.")
    parser.add_argument("--mode", choices=MODES, default="best", help="Report to print")
    parser.add_argument("--limit", type=int, default=None, help="Max matches (defaults to MAX_SUGGESTIONS)")
    parser.add_argument("--vehicle-id", default=None, help="Vehicle for --mode vehicle")
    parser.add_argument("--database-url", default=None, help="Database to read instead of DATABASE_URL")
    parser.add_argument(
        "--log-level",
        default=os.getenv("FLEETMATCH_LOG_LEVEL", "WARNING").upper(),
        help="Logging level (defaults to FLEETMATCH_LOG_LEVEL)",
    )
    args = parser.parse_args()

    logging.basicConfig(
        level=getattr(logging, args.log_level.upper(), logging.WARNING),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )
    if args.mode == "vehicle" and not args.vehicle_id:
        parser.error("--vehicle-id is required for --mode vehicle")

    try:
        bind = build_engine(args.database_url) if args.database_url else default_engine
        check_database_connection(bind)
        return run_report(args.mode, args.limit, args.vehicle_id, build_session_factory(bind))
    except (UpstreamDataError, ComputationTimeoutError) as exc:
        print(f"Matching failed (retryable): {exc}")
        return 2
    except Exception as exc:
        print(f"Report failed: {exc}")
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
