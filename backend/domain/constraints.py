"""Domain-level validation rules for the optimization engines."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable


@dataclass(frozen=True)
class AssignmentConfig:
    distance_ceiling: float
    distance_penalty: float
    max_priority: float
    priority_bonus: float
    solver_max_time_seconds: float
    solver_random_seed: int
    objective_scale: int
    cp_sat_workers: int


def validate_assignment_config(config: AssignmentConfig) -> None:
    if config.distance_ceiling <= 0.0:
        raise ValueError("distance_ceiling must be > 0")
    if not 0.0 <= config.distance_penalty <= 1.0:
        raise ValueError("distance_penalty must be between 0 and 1")
    if config.max_priority <= 0.0:
        raise ValueError("max_priority must be > 0")
    if not 0.0 <= config.priority_bonus <= 1.0:
        raise ValueError("priority_bonus must be between 0 and 1")
    if config.solver_max_time_seconds <= 0:
        raise ValueError("solver_max_time_seconds must be > 0")
    if config.solver_random_seed < 0:
        raise ValueError("solver_random_seed must be >= 0")
    if config.objective_scale <= 0:
        raise ValueError("objective_scale must be > 0")
    if config.cp_sat_workers <= 0:
        raise ValueError("cp_sat_workers must be > 0")


def validate_denominations(values: Iterable[int]) -> tuple[int, ...]:
    """Return the deduplicated denominations sorted largest first."""
    unique = set()
    for value in values:
        if isinstance(value, bool) or not isinstance(value, int):
            raise ValueError(f"denomination must be an integer, got {value!r}")
        if value <= 0:
            raise ValueError(f"denomination must be > 0, got {value}")
        unique.add(value)
    if not unique:
        raise ValueError("at least one denomination is required")
    return tuple(sorted(unique, reverse=True))
