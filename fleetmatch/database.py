from typing import Any

from sqlalchemy import create_engine, text
from sqlalchemy.engine import Engine
from sqlalchemy.orm import declarative_base, sessionmaker
from pydantic_settings import BaseSettings, SettingsConfigDict


class DatabaseSettings(BaseSettings):
    db_user: str = "postgres"
    db_password: str = "postgres"
    db_name: str = "fleetmatch"
    db_host: str = "db"
    db_port: int = 5432
    database_url: str | None = None
    db_echo: bool = False

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    @property
    def resolved_database_url(self) -> str:
        if self.database_url:
            return self.database_url
        return (
            "postgresql+psycopg2://"
            f"{self.db_user}:{self.db_password}@"
            f"{self.db_host}:{self.db_port}/{self.db_name}"
        )


def build_engine(url: str, echo: bool = False, **kwargs: Any) -> Engine:
    """Engine for the cargo and vehicle sources.

    SQLite URLs get cross-thread connections: the matching engine fetches
    cargo and vehicles from worker threads.
    """
    if url.startswith("sqlite"):
        connect_args = dict(kwargs.pop("connect_args", {}))
        connect_args.setdefault("check_same_thread", False)
        kwargs["connect_args"] = connect_args
    return create_engine(url, echo=echo, pool_pre_ping=True, **kwargs)


def build_session_factory(bind: Engine) -> sessionmaker:
    return sessionmaker(autocommit=False, autoflush=False, bind=bind)


db_settings = DatabaseSettings()
DATABASE_URL = db_settings.resolved_database_url

engine = build_engine(DATABASE_URL, echo=db_settings.db_echo)
SessionLocal = build_session_factory(engine)
Base = declarative_base()


def create_schema(bind: Engine | None = None) -> None:
    """Create the cargo_offers, vehicles and assignments tables if missing."""
    # Registers the mapped classes on Base.metadata.
    import fleetmatch.models.cargo  # noqa: F401
    import fleetmatch.models.vehicle  # noqa: F401

    Base.metadata.create_all(bind or engine)


def check_database_connection(bind: Engine | None = None) -> bool:
    with (bind or engine).connect() as connection:
        connection.execute(text("SELECT 1"))
    return True
