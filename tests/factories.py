"""Builders and in-memory sources shared by the test modules."""

import time
from datetime import datetime, timedelta, timezone

from fleetmatch.core.config import DispatcherSettings
from fleetmatch.domain import FleetStatus, Job, Resource

NOW = datetime(2026, 3, 2, 8, 0, tzinfo=timezone.utc)

# Bucharest city centre
BASE_LAT = 44.4268
BASE_LNG = 26.1025

KM_PER_DEGREE_LAT = 6371.0 * 3.141592653589793 / 180


def north_of(lat, lng, km):
    """Point `km` due north; haversine distance back is exactly `km`."""
    return lat + km / KM_PER_DEGREE_LAT, lng


def settings(**overrides):
    return DispatcherSettings(_env_file=None, **overrides)


def make_job(**kwargs):
    defaults = dict(
        id="job-1",
        from_city="Bucharest",
        to_city="Ploiesti",
        from_country="RO",
        to_country="RO",
        weight_kg=5000.0,
        cargo_type="General",
        price=1000.0,
        price_type="fixed",
        loading_date=NOW,
        delivery_date=NOW + timedelta(hours=100),
        urgency="medium",
        pickup_lat=BASE_LAT,
        pickup_lng=BASE_LNG,
        delivery_lat=44.9365,
        delivery_lng=26.0129,
    )
    defaults.update(kwargs)
    return Job(**defaults)


def make_resource(**kwargs):
    defaults = dict(
        id="veh-1",
        name="Truck 1",
        license_plate="B-01-FMX",
        status="idle",
        lat=BASE_LAT,
        lng=BASE_LNG,
        capacity_kg=7000.0,
        vehicle_type="TRUCK",
        fuel_consumption=7.0,
    )
    defaults.update(kwargs)
    return Resource(**defaults)


class FakeCargoSource:
    def __init__(self, jobs=(), error=None, delay=0.0):
        self.jobs = {job.id: job for job in jobs}
        self.error = error
        self.delay = delay
        self.status_writes = []
        self.list_calls = 0

    def list_open_jobs(self, job_filter=None):
        self.list_calls += 1
        if self.delay:
            time.sleep(self.delay)
        if self.error is not None:
            raise self.error
        jobs = list(self.jobs.values())
        if job_filter is not None:
            if job_filter.status:
                jobs = [j for j in jobs if j.status == job_filter.status]
            if job_filter.urgency:
                jobs = [j for j in jobs if j.urgency == job_filter.urgency]
        return jobs

    def get_job(self, job_id):
        return self.jobs.get(job_id)

    def set_job_status(self, job_id, status):
        self.status_writes.append((job_id, status))
        return job_id in self.jobs


class FakeResourceSource:
    def __init__(self, resources=(), capacities=None, error=None):
        self.resources = {r.id: r for r in resources}
        self.capacities = capacities or {}
        self.error = error

    def list_available(self):
        if self.error is not None:
            raise self.error
        return [r for r in self.resources.values() if r.can_take_new_work]

    def list_resources(self, resource_filter=None):
        resources = list(self.resources.values())
        if resource_filter is not None and resource_filter.statuses:
            resources = [r for r in resources if r.status in resource_filter.statuses]
        if resource_filter is not None and resource_filter.limit:
            resources = resources[: resource_filter.limit]
        return resources

    def get_resource(self, resource_id):
        return self.resources.get(resource_id)

    def get_available_capacity(self, resource_id):
        return self.capacities.get(resource_id)

    def update_position(self, resource_id, lat, lng):
        return resource_id in self.resources

    def fleet_status(self):
        counts = {}
        for r in self.resources.values():
            counts[r.status] = counts.get(r.status, 0) + 1
        return FleetStatus(
            total_vehicles=len(self.resources),
            status_counts=counts,
            online_vehicles=sum(1 for r in self.resources.values() if r.gps_enabled),
        )
