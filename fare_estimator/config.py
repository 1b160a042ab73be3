"""Fare estimator configuration.

Loads from config.yaml if present, with environment variable overrides.
Environment variables use the pattern: FARE_<SECTION>_<KEY> (uppercase).
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field, fields
from pathlib import Path

import yaml

from fare_estimator.core.errors import ConfigurationError
from fare_estimator.core.models import TariffConfig

STAGES = ("ingest", "fare", "writer")


@dataclass
class ServerConfig:
    host: str = "0.0.0.0"
    port: int = 8000
    env: str = "dev"  # "dev" or "prod"


@dataclass
class BrokerConfig:
    backend: str = "memory"  # "memory" or "redis"
    max_size: int = 10_000
    redis_url: str = "redis://localhost:6379"
    trip_queue: str = "delivery-trips"
    fare_queue: str = "delivery-fares"
    poll_timeout_seconds: float = 1.0


@dataclass
class InputConfig:
    csv_path: str = "data/delivery_points.csv"


@dataclass
class FareRulesConfig:
    flag_amount: float = 1.30
    min_fare: float = 3.47
    idle_fare_per_hour: float = 11.90
    moving_day_fare_per_km: float = 0.74
    moving_night_fare_per_km: float = 1.30


@dataclass
class TimeBoundariesConfig:
    day_start_hour: int = 6
    day_end_hour: int = 20  # exclusive, UTC


@dataclass
class LimitsConfig:
    max_speed_kmh: float = 100.0


@dataclass
class OutputConfig:
    csv_path: str = "data/delivery_fares.csv"
    dead_letter_path: str = "data/delivery_fares.dead.jsonl"
    batch_size: int = 100
    flush_interval_seconds: float = 5.0
    retry_attempts: int = 3
    retry_base_delay_seconds: float = 0.5


@dataclass
class WorkersConfig:
    concurrency: int = 8


@dataclass
class PipelineConfig:
    stages: list[str] = field(default_factory=lambda: list(STAGES))


@dataclass
class LoggingConfig:
    level: str = "info"
    format: str = "console"  # "console" or "json"


@dataclass
class AppConfig:
    server: ServerConfig = field(default_factory=ServerConfig)
    broker: BrokerConfig = field(default_factory=BrokerConfig)
    input: InputConfig = field(default_factory=InputConfig)
    fare_rules: FareRulesConfig = field(default_factory=FareRulesConfig)
    time_boundaries: TimeBoundariesConfig = field(default_factory=TimeBoundariesConfig)
    limits: LimitsConfig = field(default_factory=LimitsConfig)
    output: OutputConfig = field(default_factory=OutputConfig)
    workers: WorkersConfig = field(default_factory=WorkersConfig)
    pipeline: PipelineConfig = field(default_factory=PipelineConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)

    def tariff(self) -> TariffConfig:
        """Build the immutable tariff. Raises ConfigurationError if invalid."""
        return TariffConfig(
            flag_amount=float(self.fare_rules.flag_amount),
            min_fare=float(self.fare_rules.min_fare),
            idle_fare_per_hour=float(self.fare_rules.idle_fare_per_hour),
            moving_day_fare_per_km=float(self.fare_rules.moving_day_fare_per_km),
            moving_night_fare_per_km=float(self.fare_rules.moving_night_fare_per_km),
            day_start_hour=int(self.time_boundaries.day_start_hour),
            day_end_hour=int(self.time_boundaries.day_end_hour),
        )

    def validate(self) -> None:
        self.tariff()
        unknown = [s for s in self.pipeline.stages if s not in STAGES]
        if unknown:
            raise ConfigurationError(f"unknown pipeline stages: {unknown}",
                                     details={"stages": self.pipeline.stages})
        if self.broker.backend not in ("memory", "redis"):
            raise ConfigurationError(f"unknown broker backend {self.broker.backend!r}")
        if self.output.batch_size < 1:
            raise ConfigurationError("output.batch_size must be at least 1")
        if self.output.flush_interval_seconds <= 0:
            raise ConfigurationError("output.flush_interval_seconds must be positive")
        if self.workers.concurrency < 1:
            raise ConfigurationError("workers.concurrency must be at least 1")


def _split_list(value: str) -> list[str]:
    return [item.strip() for item in value.split(",") if item.strip()]


def _apply_env_overrides(config: AppConfig) -> None:
    """Override config values from environment variables."""
    mapping = {
        "FARE_SERVER_HOST": lambda v: setattr(config.server, "host", v),
        "FARE_SERVER_PORT": lambda v: setattr(config.server, "port", int(v)),
        "FARE_SERVER_ENV": lambda v: setattr(config.server, "env", v),
        "FARE_BROKER_BACKEND": lambda v: setattr(config.broker, "backend", v),
        "FARE_BROKER_MAX_SIZE": lambda v: setattr(config.broker, "max_size", int(v)),
        "FARE_BROKER_REDIS_URL": lambda v: setattr(config.broker, "redis_url", v),
        "FARE_BROKER_TRIP_QUEUE": lambda v: setattr(config.broker, "trip_queue", v),
        "FARE_BROKER_FARE_QUEUE": lambda v: setattr(config.broker, "fare_queue", v),
        "FARE_INPUT_CSV_PATH": lambda v: setattr(config.input, "csv_path", v),
        "FARE_RULES_FLAG_AMOUNT": lambda v: setattr(config.fare_rules, "flag_amount", float(v)),
        "FARE_RULES_MIN_FARE": lambda v: setattr(config.fare_rules, "min_fare", float(v)),
        "FARE_RULES_IDLE_PER_HOUR": lambda v: setattr(config.fare_rules, "idle_fare_per_hour", float(v)),
        "FARE_RULES_DAY_PER_KM": lambda v: setattr(config.fare_rules, "moving_day_fare_per_km", float(v)),
        "FARE_RULES_NIGHT_PER_KM": lambda v: setattr(config.fare_rules, "moving_night_fare_per_km", float(v)),
        "FARE_TIME_DAY_START_HOUR": lambda v: setattr(config.time_boundaries, "day_start_hour", int(v)),
        "FARE_TIME_DAY_END_HOUR": lambda v: setattr(config.time_boundaries, "day_end_hour", int(v)),
        "FARE_LIMITS_MAX_SPEED_KMH": lambda v: setattr(config.limits, "max_speed_kmh", float(v)),
        "FARE_OUTPUT_CSV_PATH": lambda v: setattr(config.output, "csv_path", v),
        "FARE_OUTPUT_DEAD_LETTER_PATH": lambda v: setattr(config.output, "dead_letter_path", v),
        "FARE_OUTPUT_BATCH_SIZE": lambda v: setattr(config.output, "batch_size", int(v)),
        "FARE_OUTPUT_FLUSH_INTERVAL": lambda v: setattr(config.output, "flush_interval_seconds", float(v)),
        "FARE_OUTPUT_RETRY_ATTEMPTS": lambda v: setattr(config.output, "retry_attempts", int(v)),
        "FARE_WORKERS_CONCURRENCY": lambda v: setattr(config.workers, "concurrency", int(v)),
        "FARE_PIPELINE_STAGES": lambda v: setattr(config.pipeline, "stages", _split_list(v)),
        "FARE_LOG_LEVEL": lambda v: setattr(config.logging, "level", v),
        "FARE_LOG_FORMAT": lambda v: setattr(config.logging, "format", v),
    }
    for env_key, setter in mapping.items():
        val = os.environ.get(env_key)
        if val is not None:
            try:
                setter(val)
            except ValueError as exc:
                raise ConfigurationError(f"invalid value for {env_key}: {val!r}") from exc


def _apply_section(section: object, values: dict) -> None:
    known = {f.name for f in fields(section)}
    for k, v in values.items():
        if k in known:
            setattr(section, k, v)


def load_config(config_path: str | Path | None = None) -> AppConfig:
    """Load configuration from YAML file + environment overrides."""
    config = AppConfig()

    # Try to load YAML
    if config_path is None:
        config_path = Path("config.yaml")
    else:
        config_path = Path(config_path)

    if config_path.exists():
        with open(config_path) as f:
            raw = yaml.safe_load(f) or {}

        for f in fields(config):
            values = raw.get(f.name)
            if isinstance(values, dict):
                _apply_section(getattr(config, f.name), values)

    # Environment overrides always win
    _apply_env_overrides(config)
    config.validate()
    return config
