"""
Cargo repository: reads open cargo offers and records status changes.
Uses SQLAlchemy Session queries, results cached behind the Cache protocol.
"""
import logging
from datetime import datetime, timezone
from typing import Any, Callable

from sqlalchemy import case
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from fleetmatch.core.config import DispatcherSettings, build_settings
from fleetmatch.domain import JOB_STATUSES, Job, JobFilter
from fleetmatch.errors import UpstreamDataError
from fleetmatch.models.cargo import CargoOffer
from fleetmatch.services.cache import Cache, InMemoryTTLCache, cached

logger = logging.getLogger(__name__)

CACHE_PREFIX = "cargo:"


def _default_session_factory() -> Session:
    from fleetmatch.database import SessionLocal

    return SessionLocal()


def row_to_job(row: CargoOffer) -> Job | None:
    """Map a cargo_offers row to a Job, or None when the row breaks the weight/price invariant."""
    weight = float(row.weight or 0)
    price = float(row.price or 0)
    if weight <= 0 or price <= 0:
        logger.warning("cargo_source: skipping cargo %s (weight=%s, price=%s)", row.id, row.weight, row.price)
        return None

    requirements: Any = row.requirements or []
    if isinstance(requirements, str):
        requirements = [requirements]

    return Job(
        id=str(row.id),
        title=row.title or f"{row.from_city} -> {row.to_city}",
        from_city=row.from_city,
        to_city=row.to_city,
        from_country=row.from_country,
        to_country=row.to_country,
        from_postal_code=row.from_postal_code,
        to_postal_code=row.to_postal_code,
        pickup_lat=row.pickup_lat,
        pickup_lng=row.pickup_lng,
        delivery_lat=row.delivery_lat,
        delivery_lng=row.delivery_lng,
        weight_kg=weight,
        volume_m3=row.volume,
        cargo_type=row.cargo_type or "General",
        price=price,
        price_type=(row.price_type or "fixed").lower(),
        loading_date=row.loading_date,
        delivery_date=row.delivery_date,
        deadline=row.deadline,
        urgency=(row.urgency or "medium").lower(),
        requirements=tuple(str(item) for item in requirements),
        status=(row.status or "active").lower(),
        owner_id=row.owner_id,
    )


class SqlCargoSource:
    def __init__(
        self,
        session_factory: Callable[[], Session] = _default_session_factory,
        cache: Cache | None = None,
        settings: DispatcherSettings | None = None,
    ):
        self._session_factory = session_factory
        self._cache = cache if cache is not None else InMemoryTTLCache()
        self._settings = settings or build_settings()

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def list_open_jobs(self, job_filter: JobFilter | None = None) -> list[Job]:
        job_filter = job_filter or JobFilter()
        return cached(
            self._cache,
            job_filter.cache_key(),
            self._settings.AVAILABLE_CARGO_TTL,
            lambda: self._query_jobs(job_filter),
        )

    def get_job(self, job_id: str) -> Job | None:
        return cached(
            self._cache,
            f"{CACHE_PREFIX}one:{job_id}",
            self._settings.AVAILABLE_CARGO_TTL,
            lambda: self._query_job(job_id),
        )

    def _query_jobs(self, job_filter: JobFilter) -> list[Job]:
        try:
            with self._session_factory() as db:
                query = db.query(CargoOffer)
                if job_filter.status:
                    query = query.filter(CargoOffer.status == job_filter.status)
                if job_filter.from_country:
                    query = query.filter(CargoOffer.from_country == job_filter.from_country)
                if job_filter.to_country:
                    query = query.filter(CargoOffer.to_country == job_filter.to_country)
                if job_filter.max_weight_kg is not None:
                    query = query.filter(CargoOffer.weight <= job_filter.max_weight_kg)
                if job_filter.min_price is not None:
                    query = query.filter(CargoOffer.price >= job_filter.min_price)
                if job_filter.cargo_type:
                    query = query.filter(CargoOffer.cargo_type == job_filter.cargo_type)
                if job_filter.urgency:
                    query = query.filter(CargoOffer.urgency == job_filter.urgency)
                if job_filter.owner_id:
                    query = query.filter(CargoOffer.owner_id == job_filter.owner_id)

                # Most urgent and best paid first, stable by id
                query = query.order_by(
                    case(
                        (CargoOffer.urgency == "high", 0),
                        (CargoOffer.urgency == "medium", 1),
                        else_=2,
                    ),
                    CargoOffer.price.desc(),
                    CargoOffer.id,
                )
                limit = job_filter.limit or self._settings.MAX_CARGO_PER_REQUEST
                rows = query.limit(limit).all()
        except SQLAlchemyError as exc:
            logger.exception("cargo_source: listing cargo failed")
            raise UpstreamDataError("cargo_source", str(exc)) from exc

        jobs = [job for job in (row_to_job(row) for row in rows) if job is not None]
        logger.info("cargo_source: %d cargo offers for filter status=%s", len(jobs), job_filter.status)
        return jobs

    def _query_job(self, job_id: str) -> Job | None:
        try:
            with self._session_factory() as db:
                row = db.query(CargoOffer).filter(CargoOffer.id == job_id).first()
        except SQLAlchemyError as exc:
            logger.exception("cargo_source: fetching cargo %s failed", job_id)
            raise UpstreamDataError("cargo_source", str(exc)) from exc
        if row is None:
            logger.info("cargo_source: cargo not found: %s", job_id)
            return None
        return row_to_job(row)

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def set_job_status(self, job_id: str, status: str) -> bool:
        """Persist a status transition.  Returns False when the job does not exist."""
        if status not in JOB_STATUSES:
            raise ValueError(f"unknown job status: {status}")
        try:
            with self._session_factory() as db:
                row = db.query(CargoOffer).filter(CargoOffer.id == job_id).first()
                if row is None:
                    return False
                row.status = status
                row.updated_at = datetime.now(timezone.utc)
                db.commit()
        except SQLAlchemyError as exc:
            logger.exception("cargo_source: status update %s -> %s failed", job_id, status)
            raise UpstreamDataError("cargo_source", str(exc)) from exc
        finally:
            # Invalidate even on failure: the row state is unknown now.
            self.clear_cache()

        logger.info("cargo_source: cargo %s -> %s", job_id, status)
        return True

    def clear_cache(self) -> None:
        self._cache.invalidate_prefix(CACHE_PREFIX)
