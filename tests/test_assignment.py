from __future__ import annotations

import random
from dataclasses import replace
from types import SimpleNamespace

import pytest

pytest.importorskip("ortools")

from ortools.sat.python import cp_model

from backend.domain.models import CustomerGroup, TableResource
from backend.services.assignment_service import (
    DEFAULT_ASSIGNMENT_CONFIG,
    AssignmentValidationError,
    TableAssignmentService,
    assign_tables_greedy,
    assign_tables_optimal,
    score_fitness,
)
from backend.utils.config import get_settings


def _table(table_id: str, capacity: int, **overrides) -> TableResource:
    return TableResource(table_id=table_id, code=f"MESA-{table_id}", capacity=capacity, **overrides)


def _group(group_id: str, size: int, **overrides) -> CustomerGroup:
    return CustomerGroup(group_id=group_id, size=size, **overrides)


# --- Fitness scoring ---

def test_table_too_small_scores_zero() -> None:
    assert score_fitness(_table("t1", 2), _group("g1", 4)) == 0.0


@pytest.mark.parametrize(
    ("capacity", "expected"),
    [(4, 1.0), (5, 1.0), (6, 0.9), (8, 0.9), (10, 0.7)],
)
def test_capacity_utilization_tiers(capacity: int, expected: float) -> None:
    assert score_fitness(_table("t1", capacity), _group("g1", 4)) == pytest.approx(expected)


def test_distance_penalty_is_linear_up_to_ceiling() -> None:
    table = _table("t1", 4, location_x=30.0, location_y=40.0)
    group = _group("g1", 4, preferred_x=0.0, preferred_y=0.0)

    assert score_fitness(table, group) == pytest.approx(1.0 - 0.5 * 0.3)


def test_distance_beyond_ceiling_is_clamped() -> None:
    group = _group("g1", 4, preferred_x=0.0, preferred_y=0.0)
    at_ceiling = score_fitness(_table("t1", 4, location_x=100.0), group)
    far_away = score_fitness(_table("t2", 4, location_x=250.0), group)

    assert at_ceiling == pytest.approx(0.7)
    assert far_away == pytest.approx(at_ceiling)


def test_score_is_non_increasing_in_distance() -> None:
    group = _group("g1", 3, preferred_x=0.0, preferred_y=0.0, priority=2)
    scores = [
        score_fitness(_table("t1", 4, location_x=float(distance), priority=3), group)
        for distance in range(0, 160, 10)
    ]

    assert scores == sorted(scores, reverse=True)


def test_max_distance_is_a_hard_limit() -> None:
    table = _table("t1", 4, location_x=30.0, location_y=40.0)

    assert score_fitness(table, _group("g1", 4, preferred_x=0.0, preferred_y=0.0, max_distance=40.0)) == 0.0
    assert score_fitness(table, _group("g2", 4, preferred_x=0.0, preferred_y=0.0, max_distance=60.0)) > 0.0


def test_priority_bonuses_are_capped() -> None:
    group = _group("g1", 4)

    assert score_fitness(_table("t1", 10, priority=5), group) == pytest.approx(0.75)
    assert score_fitness(_table("t1", 10, priority=50), group) == pytest.approx(0.8)
    assert score_fitness(
        _table("t1", 10, priority=50),
        _group("g1", 4, priority=50),
    ) == pytest.approx(0.9)


def test_score_is_clamped_to_unit_interval() -> None:
    rng = random.Random(11)
    for _ in range(200):
        table = _table(
            "t",
            rng.randint(1, 12),
            location_x=rng.uniform(-200, 200),
            location_y=rng.uniform(-200, 200),
            priority=rng.randint(-5, 20),
        )
        group = _group(
            "g",
            rng.randint(1, 12),
            priority=rng.randint(-5, 20),
            preferred_x=rng.uniform(-200, 200),
            preferred_y=rng.uniform(-200, 200),
            max_distance=rng.choice([0.0, 50.0, 150.0]),
        )
        score = score_fitness(table, group)
        assert 0.0 <= score <= 1.0
        if table.capacity < group.size:
            assert score == 0.0


# --- Greedy assignment ---

def test_single_group_too_large_stays_unassigned() -> None:
    result = assign_tables_greedy([_table("t1", 2)], [_group("g1", 4)])

    assert result.assignments == []
    assert result.unassigned_group_ids == ["g1"]
    assert result.fitness_scores == []
    assert result.total_fitness == 0.0


def test_higher_priority_group_is_served_first() -> None:
    groups = [_group("regular", 2, priority=1), _group("vip", 2, priority=5)]

    result = assign_tables_greedy([_table("t1", 2)], groups)

    assert [item.group_id for item in result.assignments] == ["vip"]
    assert result.unassigned_group_ids == ["regular"]


def test_larger_group_wins_priority_tie() -> None:
    groups = [_group("pair", 2), _group("quad", 4)]

    result = assign_tables_greedy([_table("t1", 4)], groups)

    assert [item.group_id for item in result.assignments] == ["quad"]


def test_first_listed_table_wins_score_tie() -> None:
    result = assign_tables_greedy([_table("t1", 4), _table("t2", 4)], [_group("g1", 4)])

    assert result.assignments[0].table_id == "t1"


def test_unavailable_and_occupied_tables_are_skipped() -> None:
    tables = [
        _table("closed", 4, is_available=False),
        _table("busy", 4, is_occupied=True),
        _table("open", 8),
    ]

    result = assign_tables_greedy(tables, [_group("g1", 4)])

    assert [item.table_id for item in result.assignments] == ["open"]


def test_no_available_tables_leaves_everyone_unassigned() -> None:
    tables = [_table("t1", 4, is_occupied=True)]
    groups = [_group("g1", 2), _group("g2", 3)]

    result = assign_tables_greedy(tables, groups)

    assert result.message == "No available tables"
    assert result.unassigned_group_ids == ["g1", "g2"]


def test_greedy_never_reuses_a_table() -> None:
    rng = random.Random(3)
    tables = [_table(f"t{index}", rng.randint(2, 8), priority=rng.randint(0, 10)) for index in range(6)]
    groups = [_group(f"g{index}", rng.randint(1, 8), priority=rng.randint(0, 5)) for index in range(10)]

    result = assign_tables_greedy(tables, groups)

    table_ids = [item.table_id for item in result.assignments]
    assert len(table_ids) == len(set(table_ids))
    capacity_by_id = {table.table_id: table.capacity for table in tables}
    size_by_id = {group.group_id: group.size for group in groups}
    for item in result.assignments:
        assert size_by_id[item.group_id] <= capacity_by_id[item.table_id]
    assert len(result.assignments) + len(result.unassigned_group_ids) == len(groups)


def test_greedy_statistics() -> None:
    tables = [_table("t1", 4), _table("t2", 6)]
    groups = [_group("g1", 4), _group("g2", 3)]

    result = assign_tables_greedy(tables, groups)

    assert result.tables_used == 2
    assert result.customers_served == 7
    assert result.total_fitness == pytest.approx(1.0 + 0.9)
    assert result.average_fitness == pytest.approx(0.95)
    assert result.assignments[1].capacity_utilization == pytest.approx(0.5)
    assert result.message == "Assigned 2 tables to 2 customer groups (100.0% success rate)"


def test_assignment_records_distance_to_preference() -> None:
    tables = [_table("t1", 4, location_x=3.0, location_y=4.0)]
    groups = [_group("g1", 4, preferred_x=0.0, preferred_y=0.0)]

    result = assign_tables_greedy(tables, groups)

    assert result.assignments[0].distance == pytest.approx(5.0)


# --- Optimal assignment ---

def test_optimal_beats_greedy_when_priority_order_misleads() -> None:
    tables = [_table("small", 4), _table("large", 8)]
    groups = [_group("vip", 4, priority=5), _group("walk_in", 4)]

    greedy = assign_tables_greedy(tables, groups)
    optimal = assign_tables_optimal(tables, groups)

    assert greedy.total_fitness == pytest.approx(1.9)
    assert optimal.total_fitness == pytest.approx(1.95)
    assert [(item.group_id, item.table_id) for item in optimal.assignments] == [
        ("vip", "large"),
        ("walk_in", "small"),
    ]
    assert optimal.method == "optimal"


def test_optimal_is_never_worse_than_greedy() -> None:
    rng = random.Random(21)
    for _ in range(5):
        tables = [
            _table(
                f"t{index}",
                rng.randint(2, 10),
                location_x=rng.uniform(0, 80),
                location_y=rng.uniform(0, 80),
                priority=rng.randint(0, 10),
            )
            for index in range(7)
        ]
        groups = [
            _group(
                f"g{index}",
                rng.randint(1, 10),
                priority=rng.randint(0, 5),
                preferred_x=rng.uniform(0, 80),
                preferred_y=rng.uniform(0, 80),
            )
            for index in range(6)
        ]

        greedy = assign_tables_greedy(tables, groups)
        optimal = assign_tables_optimal(tables, groups)

        assert optimal.total_fitness >= greedy.total_fitness - 1e-5
        table_ids = [item.table_id for item in optimal.assignments]
        assert len(table_ids) == len(set(table_ids))


def test_optimal_reports_infeasible_groups() -> None:
    result = assign_tables_optimal([_table("t1", 2)], [_group("g1", 4)])

    assert result.assignments == []
    assert result.unassigned_group_ids == ["g1"]


def test_optimal_never_seats_two_groups_at_a_repeated_table_id() -> None:
    tables = [_table("t1", 4), _table("t1", 4)]
    groups = [_group("g1", 4), _group("g2", 4)]

    result = assign_tables_optimal(tables, groups)

    assert [item.table_id for item in result.assignments] == ["t1"]
    assert len(result.unassigned_group_ids) == 1


class _StalledSolver:
    """Stands in for CpSolver when the search ends without a solution."""

    def __init__(self) -> None:
        self.parameters = SimpleNamespace()

    def Solve(self, model):
        return cp_model.UNKNOWN

    def StatusName(self, status=None) -> str:
        return "UNKNOWN"


def test_optimal_falls_back_to_greedy_when_solver_finds_nothing(monkeypatch) -> None:
    tables = [_table("small", 4), _table("large", 8)]
    groups = [_group("vip", 4, priority=5), _group("walk_in", 4)]
    greedy = assign_tables_greedy(tables, groups)

    monkeypatch.setattr(cp_model, "CpSolver", _StalledSolver)
    result = assign_tables_optimal(tables, groups)

    assert result.assignments == greedy.assignments
    assert result.unassigned_group_ids == greedy.unassigned_group_ids
    assert result.total_fitness == pytest.approx(greedy.total_fitness)
    assert result.method == "optimal"
    assert "greedy fallback" in result.message
    assert "UNKNOWN" in result.message


# --- Service ---

def test_service_routes_by_method() -> None:
    service = TableAssignmentService(settings=get_settings())
    tables = [_table("small", 4), _table("large", 8)]
    groups = [_group("vip", 4, priority=5), _group("walk_in", 4)]

    assert service.assign_tables(tables=tables, groups=groups).method == "greedy"
    assert service.assign_tables(tables=tables, groups=groups, method="optimal").method == "optimal"


def test_service_rejects_bad_requests() -> None:
    service = TableAssignmentService()

    with pytest.raises(AssignmentValidationError):
        service.assign_tables(tables=[], groups=[_group("g1", 2)])
    with pytest.raises(AssignmentValidationError):
        service.assign_tables(tables=[_table("t1", 2)], groups=[])
    with pytest.raises(AssignmentValidationError):
        service.assign_tables(tables=[_table("t1", 2)], groups=[_group("g1", 2)], method="hungarian")


def test_service_reads_scoring_config_from_settings() -> None:
    settings = replace(get_settings(), assignment_distance_penalty=0.0)
    service = TableAssignmentService(settings=settings)

    assert service.config.distance_penalty == 0.0
    assert service.config.distance_ceiling == DEFAULT_ASSIGNMENT_CONFIG.distance_ceiling


def test_service_rejects_duplicate_table_ids() -> None:
    service = TableAssignmentService()

    with pytest.raises(AssignmentValidationError, match="Duplicate table id: t1"):
        service.assign_tables(
            tables=[_table("t1", 4), _table("t2", 4), _table("t1", 6)],
            groups=[_group("g1", 4)],
            method="optimal",
        )
