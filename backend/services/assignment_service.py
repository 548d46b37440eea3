"""Table-to-group assignment: fitness scoring, greedy matching and CP-SAT matching."""

from __future__ import annotations

import math
from dataclasses import dataclass, replace
from enum import Enum
from typing import Any, Optional, Sequence

from ortools.sat.python import cp_model

from backend.domain.constraints import AssignmentConfig, validate_assignment_config
from backend.domain.models import Assignment, AssignmentResult, CustomerGroup, TableResource
from backend.utils.config import Settings, get_settings
from backend.utils.logger import get_logger


logger = get_logger(__name__)

DEFAULT_ASSIGNMENT_CONFIG = AssignmentConfig(
    distance_ceiling=100.0,
    distance_penalty=0.3,
    max_priority=10.0,
    priority_bonus=0.1,
    solver_max_time_seconds=5.0,
    solver_random_seed=42,
    objective_scale=1_000_000,
    cp_sat_workers=1,
)


class AssignmentValidationError(Exception):
    """Raised when a table assignment request is malformed."""


class AssignmentMethod(str, Enum):
    GREEDY = "greedy"
    OPTIMAL = "optimal"

    @classmethod
    def parse(cls, value: "str | AssignmentMethod | None") -> "AssignmentMethod":
        if isinstance(value, AssignmentMethod):
            return value
        normalized = (value or cls.GREEDY.value).strip().lower()
        try:
            return cls(normalized)
        except ValueError as exc:
            raise AssignmentValidationError(
                f"Invalid method '{value}'. Supported: greedy, optimal"
            ) from exc


def calculate_distance(x1: float, y1: float, x2: float, y2: float) -> float:
    return math.hypot(x2 - x1, y2 - y1)


def _distance_to_preference(table: TableResource, group: CustomerGroup) -> Optional[float]:
    if not group.has_preferred_location:
        return None
    return calculate_distance(
        table.location_x,
        table.location_y,
        group.preferred_x,
        group.preferred_y,
    )


def _priority_bonus(priority: int, config: AssignmentConfig) -> float:
    normalized = min(max(priority, 0) / config.max_priority, 1.0)
    return normalized * config.priority_bonus


def score_fitness(
    table: TableResource,
    group: CustomerGroup,
    config: AssignmentConfig = DEFAULT_ASSIGNMENT_CONFIG,
) -> float:
    """Score how well ``table`` suits ``group`` on a 0..1 scale.

    0 means the pair is infeasible: the table is too small, or the group set a
    positive maximum distance and the table lies beyond it.
    """
    if table.capacity < group.size or table.capacity <= 0:
        return 0.0

    score = 1.0
    utilization = group.size / table.capacity
    if utilization < 0.5:
        score *= 0.7
    elif utilization < 0.75:
        score *= 0.9

    distance = _distance_to_preference(table, group)
    if distance is not None:
        if group.max_distance > 0 and distance > group.max_distance:
            return 0.0
        normalized = min(distance, config.distance_ceiling) / config.distance_ceiling
        score *= 1.0 - normalized * config.distance_penalty

    score += _priority_bonus(table.priority, config)
    score += _priority_bonus(group.priority, config)

    return min(max(score, 0.0), 1.0)


def _order_groups(groups: Sequence[CustomerGroup]) -> list[CustomerGroup]:
    # VIP and larger groups are served first; equal keys keep input order.
    return sorted(groups, key=lambda group: (-group.priority, -group.size))


def _build_assignment(table: TableResource, group: CustomerGroup, score: float) -> Assignment:
    return Assignment(
        table_id=table.table_id,
        table_code=table.code,
        group_id=group.group_id,
        distance=_distance_to_preference(table, group) or 0.0,
        fitness_score=score,
        capacity_utilization=group.size / table.capacity,
    )


def _summarize(
    *,
    assignments: list[Assignment],
    unassigned: list[str],
    groups: Sequence[CustomerGroup],
    method: str,
) -> AssignmentResult:
    total_fitness = math.fsum(assignment.fitness_score for assignment in assignments)
    average_fitness = total_fitness / len(assignments) if assignments else 0.0
    size_by_group = {group.group_id: group.size for group in groups}
    customers_served = sum(size_by_group[assignment.group_id] for assignment in assignments)
    success_rate = len(assignments) / len(groups) * 100 if groups else 0.0
    message = (
        f"Assigned {len(assignments)} tables to {len(groups)} customer groups "
        f"({success_rate:.1f}% success rate)"
    )
    return AssignmentResult(
        assignments=assignments,
        unassigned_group_ids=unassigned,
        total_fitness=total_fitness,
        average_fitness=average_fitness,
        tables_used=len(assignments),
        customers_served=customers_served,
        message=message,
        method=method,
    )


def _precheck(
    tables: Sequence[TableResource],
    groups: Sequence[CustomerGroup],
    method: str,
) -> tuple[Optional[AssignmentResult], list[TableResource]]:
    if not groups:
        return (
            AssignmentResult(
                assignments=[],
                unassigned_group_ids=[],
                message="No customer groups to assign",
                method=method,
            ),
            [],
        )
    group_ids = [group.group_id for group in groups]
    if not tables:
        return (
            AssignmentResult(
                assignments=[],
                unassigned_group_ids=group_ids,
                message="No tables available",
                method=method,
            ),
            [],
        )
    available = [table for table in tables if table.is_eligible]
    if not available:
        return (
            AssignmentResult(
                assignments=[],
                unassigned_group_ids=group_ids,
                message="No available tables",
                method=method,
            ),
            [],
        )
    return None, available


def assign_tables_greedy(
    tables: Sequence[TableResource],
    groups: Sequence[CustomerGroup],
    config: AssignmentConfig = DEFAULT_ASSIGNMENT_CONFIG,
) -> AssignmentResult:
    """Give each group, in priority order, the best remaining table.

    O(groups * tables). Among equal scores the table listed first wins.
    """
    method = AssignmentMethod.GREEDY.value
    rejected, available = _precheck(tables, groups, method)
    if rejected is not None:
        return rejected

    assignments: list[Assignment] = []
    unassigned: list[str] = []
    used_table_ids: set[str] = set()

    for group in _order_groups(groups):
        best_table: Optional[TableResource] = None
        best_score = 0.0
        for table in available:
            if table.table_id in used_table_ids:
                continue
            score = score_fitness(table, group, config)
            if score > best_score:
                best_score = score
                best_table = table

        if best_table is None:
            unassigned.append(group.group_id)
            continue
        assignments.append(_build_assignment(best_table, group, best_score))
        used_table_ids.add(best_table.table_id)

    return _summarize(
        assignments=assignments,
        unassigned=unassigned,
        groups=groups,
        method=method,
    )


@dataclass(frozen=True)
class MatchingModel:
    model: Any
    variables: dict[tuple[int, int], Any]
    scores: dict[tuple[int, int], float]


def build_matching_model(
    *,
    tables: Sequence[TableResource],
    groups: Sequence[CustomerGroup],
    config: AssignmentConfig,
) -> MatchingModel:
    """One boolean per feasible (table, group) pair; maximize scaled fitness."""
    model = cp_model.CpModel()
    variables: dict[tuple[int, int], cp_model.IntVar] = {}
    scores: dict[tuple[int, int], float] = {}
    coefficients: dict[tuple[int, int], int] = {}

    for table_index, table in enumerate(tables):
        for group_index, group in enumerate(groups):
            score = score_fitness(table, group, config)
            if score <= 0.0:
                continue
            pair = (table_index, group_index)
            variables[pair] = model.NewBoolVar(f"x_table_{table_index}_group_{group_index}")
            scores[pair] = score
            coefficients[pair] = max(1, int(round(score * config.objective_scale)))

    for group_index in range(len(groups)):
        group_vars = [var for (_, g), var in variables.items() if g == group_index]
        if group_vars:
            model.Add(sum(group_vars) <= 1)

    # Keyed by table_id so a repeated id cannot seat two groups.
    vars_by_table_id: dict[str, list[Any]] = {}
    for (table_index, _), var in variables.items():
        vars_by_table_id.setdefault(tables[table_index].table_id, []).append(var)
    for table_vars in vars_by_table_id.values():
        model.Add(sum(table_vars) <= 1)

    if variables:
        model.Maximize(sum(coefficients[pair] * var for pair, var in variables.items()))
    else:
        model.Maximize(0)

    return MatchingModel(model=model, variables=variables, scores=scores)


def assign_tables_optimal(
    tables: Sequence[TableResource],
    groups: Sequence[CustomerGroup],
    config: AssignmentConfig = DEFAULT_ASSIGNMENT_CONFIG,
) -> AssignmentResult:
    """Maximum total-fitness matching of groups to tables via CP-SAT.

    Each group gets at most one table and each table at most one group; only
    pairs with positive fitness are candidates. Assignments are listed in the
    same priority order the greedy pass uses. Falls back to the greedy result
    when the solver finds no feasible solution within its time limit.
    """
    method = AssignmentMethod.OPTIMAL.value
    rejected, available = _precheck(tables, groups, method)
    if rejected is not None:
        return rejected

    ordered_groups = _order_groups(groups)
    matching = build_matching_model(tables=available, groups=ordered_groups, config=config)

    solver = cp_model.CpSolver()
    solver.parameters.max_time_in_seconds = float(config.solver_max_time_seconds)
    solver.parameters.num_workers = config.cp_sat_workers
    solver.parameters.random_seed = config.solver_random_seed

    status = solver.Solve(matching.model)
    status_name = solver.StatusName(status)
    if status not in (cp_model.OPTIMAL, cp_model.FEASIBLE):
        logger.warning("Optimal assignment failed, using greedy | status=%s", status_name)
        fallback = assign_tables_greedy(tables, groups, config)
        return replace(
            fallback,
            method=method,
            message=f"{fallback.message} (greedy fallback, solver status {status_name})",
        )

    table_by_group: dict[int, int] = {}
    for (table_index, group_index), var in matching.variables.items():
        if solver.Value(var) == 1:
            table_by_group[group_index] = table_index

    assignments: list[Assignment] = []
    unassigned: list[str] = []
    for group_index, group in enumerate(ordered_groups):
        table_index = table_by_group.get(group_index)
        if table_index is None:
            unassigned.append(group.group_id)
            continue
        table = available[table_index]
        assignments.append(
            _build_assignment(table, group, matching.scores[(table_index, group_index)])
        )

    logger.debug(
        "Matching solved | status=%s | candidate_pairs=%s",
        status_name,
        len(matching.variables),
    )
    return _summarize(
        assignments=assignments,
        unassigned=unassigned,
        groups=groups,
        method=method,
    )


def build_assignment_config(settings: Settings) -> AssignmentConfig:
    config = AssignmentConfig(
        distance_ceiling=settings.assignment_distance_ceiling,
        distance_penalty=settings.assignment_distance_penalty,
        max_priority=settings.assignment_max_priority,
        priority_bonus=settings.assignment_priority_bonus,
        solver_max_time_seconds=settings.assignment_solver_max_time_seconds,
        solver_random_seed=settings.assignment_solver_random_seed,
        objective_scale=settings.assignment_objective_scale,
        cp_sat_workers=settings.assignment_cp_sat_workers,
    )
    validate_assignment_config(config)
    return config


class TableAssignmentService:
    """Validates assignment requests and routes them to greedy or CP-SAT matching."""

    def __init__(self, settings: Optional[Settings] = None) -> None:
        self._settings = settings or get_settings()
        self._config = build_assignment_config(self._settings)

    @property
    def config(self) -> AssignmentConfig:
        return self._config

    def assign_tables(
        self,
        *,
        tables: Sequence[TableResource],
        groups: Sequence[CustomerGroup],
        method: "str | AssignmentMethod | None" = None,
    ) -> AssignmentResult:
        resolved = AssignmentMethod.parse(method)
        if not tables:
            raise AssignmentValidationError("No tables provided")
        if not groups:
            raise AssignmentValidationError("No customer groups provided")

        seen_ids: set[str] = set()
        for table in tables:
            if table.table_id in seen_ids:
                raise AssignmentValidationError(f"Duplicate table id: {table.table_id}")
            seen_ids.add(table.table_id)

        if resolved is AssignmentMethod.OPTIMAL:
            result = assign_tables_optimal(tables, groups, self._config)
        else:
            result = assign_tables_greedy(tables, groups, self._config)

        logger.info(
            (
                "Table assignment completed | method=%s | assigned=%s | unassigned=%s | "
                "total_fitness=%.6f | customers_served=%s"
            ),
            result.method,
            len(result.assignments),
            len(result.unassigned_group_ids),
            result.total_fitness,
            result.customers_served,
        )
        return result
