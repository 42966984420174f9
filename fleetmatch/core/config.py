import logging
from typing import Any

from pydantic import AliasChoices, Field, ValidationError
from pydantic_settings import BaseSettings, SettingsConfigDict

from fleetmatch.errors import ConfigurationError

logger = logging.getLogger(__name__)


class DispatcherSettings(BaseSettings):
    ENV: str = Field(default="development", validation_alias=AliasChoices("APP_ENV", "ENV"))
    CONFIG_VERSION: int = 1

    # Matching
    MAX_SUGGESTIONS: int = 10
    MIN_PROFIT_MARGIN: float = 15.0  # percent
    MAX_DISTANCE_TO_PICKUP: float = 200.0
    DEFAULT_SEARCH_RADIUS_KM: float = 100.0
    URGENT_SEARCH_RADIUS_KM: float = 150.0
    VEHICLE_SEARCH_RADIUS_KM: float = 150.0
    MIN_SCORE_THRESHOLD: float = 60.0
    MIN_CARGO_SCORE: float = 30.0  # jobs below this are skipped unless urgent
    OPTIMIZATION_ENABLED: bool = True
    URGENT_PRIORITY_BOOST: float = 25.0  # percent of the gap to 100
    EFFICIENCY_BONUS: float = 15.0  # percent of the gap to 100

    # Scoring
    URGENCY_WEIGHT: float = 0.30
    PROXIMITY_WEIGHT: float = 0.25
    PROFIT_WEIGHT: float = 0.35
    EFFICIENCY_WEIGHT: float = 0.10
    WEIGHT_TOLERANCE: float = 0.01
    RISK_PENALTY: float = 0.15
    CAPACITY_UTILIZATION_BONUS: float = 0.10
    DEADLINE_PRESSURE_FACTOR: float = 1.2
    RISK_LOW_THRESHOLD: float = 33.0
    RISK_MEDIUM_THRESHOLD: float = 66.0

    # Costs
    FUEL_PRICE_PER_LITER: float = Field(
        default=1.50, validation_alias=AliasChoices("FUEL_PRICE_EUR", "FUEL_PRICE_PER_LITER")
    )
    DRIVER_HOURLY_RATE: float = Field(
        default=25.00, validation_alias=AliasChoices("DRIVER_RATE_EUR", "DRIVER_HOURLY_RATE")
    )
    MAINTENANCE_PER_KM: float = 0.15
    ANALYZER_FUEL_CONSUMPTION: float = 35.0  # L/100km used for cargo-level profit
    CURRENCY: str = "EUR"

    # Speeds (km/h)
    AVERAGE_SPEED_CITY: float = 30.0
    AVERAGE_SPEED_HIGHWAY: float = 80.0

    # Cache TTLs (seconds)
    VEHICLE_POSITIONS_TTL: int = 30
    AVAILABLE_CARGO_TTL: int = 120
    FLEET_STATUS_TTL: int = 45

    # Limits
    CALCULATION_TIMEOUT_SECONDS: float = 30.0
    MAX_CARGO_PER_REQUEST: int = 100
    MAX_VEHICLES_PER_REQUEST: int = 50

    # Thresholds the caller may act on; the core never auto-assigns
    AUTO_ASSIGN_HIGH_SCORE: float = 90.0
    AUTO_ACCEPT_SCORE: float = 95.0

    model_config = SettingsConfigDict(env_file=".env", extra="ignore", frozen=True)

    @property
    def weight_sum(self) -> float:
        return self.URGENCY_WEIGHT + self.PROXIMITY_WEIGHT + self.PROFIT_WEIGHT + self.EFFICIENCY_WEIGHT


# Applied underneath environment values: a preset never beats an explicit override.
PRESETS: dict[str, dict[str, Any]] = {
    "development": {
        "VEHICLE_POSITIONS_TTL": 10,
        "AVAILABLE_CARGO_TTL": 30,
    },
    "production": {},
    "testing": {
        "MAX_SUGGESTIONS": 3,
        "AVAILABLE_CARGO_TTL": 5,
        "CALCULATION_TIMEOUT_SECONDS": 5.0,
    },
}


def validate_settings(settings: DispatcherSettings) -> DispatcherSettings:
    """Raise ConfigurationError unless the settings are safe to score with."""
    total = settings.weight_sum
    if abs(total - 1.0) > settings.WEIGHT_TOLERANCE:
        raise ConfigurationError(
            f"scoring weights sum to {total:.3f}, expected 1.0 +/- {settings.WEIGHT_TOLERANCE}"
        )
    for name in ("FUEL_PRICE_PER_LITER", "DRIVER_HOURLY_RATE", "AVERAGE_SPEED_CITY", "AVERAGE_SPEED_HIGHWAY"):
        if getattr(settings, name) <= 0:
            raise ConfigurationError(f"{name} must be positive, got {getattr(settings, name)}")
    if settings.CALCULATION_TIMEOUT_SECONDS <= 0:
        raise ConfigurationError("CALCULATION_TIMEOUT_SECONDS must be positive")
    if not 0 <= settings.RISK_LOW_THRESHOLD < settings.RISK_MEDIUM_THRESHOLD <= 100:
        raise ConfigurationError(
            "risk thresholds must satisfy 0 <= RISK_LOW_THRESHOLD < RISK_MEDIUM_THRESHOLD <= 100"
        )
    return settings


def build_settings(**overrides: Any) -> DispatcherSettings:
    """Defaults, then the ENV preset, then environment/.env, then explicit overrides."""
    try:
        base = DispatcherSettings(**overrides)
        preset = {
            key: value
            for key, value in PRESETS.get(base.ENV.strip().lower(), {}).items()
            if key not in base.model_fields_set
        }
        settings = DispatcherSettings(**overrides, **preset) if preset else base
    except ValidationError as exc:
        raise ConfigurationError(f"invalid dispatcher settings: {exc}") from exc
    return validate_settings(settings)


class ConfigProvider:
    """Process-wide holder for one validated DispatcherSettings object."""

    def __init__(self, settings: DispatcherSettings | None = None, **overrides: Any):
        self._overrides = overrides
        self._settings = validate_settings(settings) if settings is not None else None

    def get(self) -> DispatcherSettings:
        if self._settings is None:
            self._settings = build_settings(**self._overrides)
            logger.info(
                "dispatcher config v%s loaded (env=%s, weights=%.2f)",
                self._settings.CONFIG_VERSION, self._settings.ENV, self._settings.weight_sum,
            )
        return self._settings

    def reload(self) -> DispatcherSettings:
        self._settings = None
        return self.get()
