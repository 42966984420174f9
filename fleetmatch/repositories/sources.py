"""Collaborator interfaces consumed by the matching core."""

from __future__ import annotations

from typing import Protocol

from fleetmatch.domain import FleetStatus, Job, JobFilter, Resource, ResourceFilter


class CargoSource(Protocol):
    def list_open_jobs(self, job_filter: JobFilter | None = None) -> list[Job]: ...

    def get_job(self, job_id: str) -> Job | None: ...

    def set_job_status(self, job_id: str, status: str) -> bool: ...


class ResourceSource(Protocol):
    def list_available(self) -> list[Resource]: ...

    def list_resources(self, resource_filter: ResourceFilter | None = None) -> list[Resource]: ...

    def get_resource(self, resource_id: str) -> Resource | None: ...

    def get_available_capacity(self, resource_id: str) -> float | None: ...

    def update_position(self, resource_id: str, lat: float, lng: float) -> bool: ...

    def fleet_status(self) -> FleetStatus: ...
