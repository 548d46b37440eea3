"""Environment-driven application settings."""

from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache


DEFAULT_DENOMINATIONS = (5000, 2000, 1000, 500, 200, 100, 50, 25, 10, 5, 1)


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    return int(raw)


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    return float(raw)


def _env_int_tuple(name: str, default: tuple[int, ...]) -> tuple[int, ...]:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    return tuple(int(part) for part in raw.split(",") if part.strip())


def _env_str_tuple(name: str, default: tuple[str, ...]) -> tuple[str, ...]:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    return tuple(part.strip() for part in raw.split(",") if part.strip())


@dataclass(frozen=True)
class Settings:
    app_name: str
    app_version: str
    log_level: str
    cors_allow_origins: tuple[str, ...]

    change_denominations: tuple[int, ...]
    currency_scale: int

    knapsack_scale_factor: int
    knapsack_max_scaled_capacity: int

    assignment_distance_ceiling: float
    assignment_distance_penalty: float
    assignment_max_priority: float
    assignment_priority_bonus: float
    assignment_solver_max_time_seconds: float
    assignment_cp_sat_workers: int
    assignment_solver_random_seed: int
    assignment_objective_scale: int


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Build settings once per process; tests derive variants with ``replace``."""
    return Settings(
        app_name=os.getenv("APP_NAME", "Venue Optimization Service"),
        app_version=os.getenv("APP_VERSION", "1.0.0"),
        log_level=os.getenv("LOG_LEVEL", "INFO"),
        cors_allow_origins=_env_str_tuple("CORS_ALLOW_ORIGINS", ("*",)),
        change_denominations=_env_int_tuple("CHANGE_DENOMINATIONS", DEFAULT_DENOMINATIONS),
        currency_scale=_env_int("CURRENCY_SCALE", 100),
        knapsack_scale_factor=_env_int("KNAPSACK_SCALE_FACTOR", 100),
        knapsack_max_scaled_capacity=_env_int("KNAPSACK_MAX_SCALED_CAPACITY", 1_000_000),
        assignment_distance_ceiling=_env_float("ASSIGNMENT_DISTANCE_CEILING", 100.0),
        assignment_distance_penalty=_env_float("ASSIGNMENT_DISTANCE_PENALTY", 0.3),
        assignment_max_priority=_env_float("ASSIGNMENT_MAX_PRIORITY", 10.0),
        assignment_priority_bonus=_env_float("ASSIGNMENT_PRIORITY_BONUS", 0.1),
        assignment_solver_max_time_seconds=_env_float("ASSIGNMENT_SOLVER_MAX_TIME_SECONDS", 5.0),
        assignment_cp_sat_workers=_env_int("ASSIGNMENT_CP_SAT_WORKERS", 1),
        assignment_solver_random_seed=_env_int("ASSIGNMENT_SOLVER_RANDOM_SEED", 42),
        assignment_objective_scale=_env_int("ASSIGNMENT_OBJECTIVE_SCALE", 1_000_000),
    )
