"""Domain models for change making, inventory selection and table assignment."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, Optional

from backend.domain.constraints import validate_denominations


@dataclass(frozen=True)
class DenominationSet:
    values: tuple[int, ...]

    @classmethod
    def from_values(cls, values: Iterable[int]) -> "DenominationSet":
        return cls(values=validate_denominations(values))


@dataclass(frozen=True)
class ChangeResult:
    breakdown: dict[int, int]
    total_coins: int
    success: bool
    message: str
    remaining: int = 0


@dataclass(frozen=True)
class InventoryItem:
    item_id: str
    weight: float
    value: float
    cost: float = 0.0
    demand_score: float = 0.0
    name: str = ""

    @property
    def ratio(self) -> float:
        if self.weight <= 0:
            return 0.0
        return self.value / self.weight


@dataclass(frozen=True)
class KnapsackResult:
    selected_items: list[InventoryItem]
    total_value: float
    total_weight: float
    total_cost: float
    capacity_used: float
    capacity_remaining: float
    efficiency: float
    message: str
    algorithm: str = ""
    fractional_item_id: Optional[str] = None


@dataclass(frozen=True)
class TableResource:
    table_id: str
    code: str
    capacity: int
    location_x: float = 0.0
    location_y: float = 0.0
    is_available: bool = True
    is_occupied: bool = False
    priority: int = 0

    @property
    def is_eligible(self) -> bool:
        return self.is_available and not self.is_occupied


@dataclass(frozen=True)
class CustomerGroup:
    group_id: str
    size: int
    priority: int = 0
    preferred_x: Optional[float] = None
    preferred_y: Optional[float] = None
    max_distance: float = 0.0

    @property
    def has_preferred_location(self) -> bool:
        return self.preferred_x is not None and self.preferred_y is not None


@dataclass(frozen=True)
class Assignment:
    table_id: str
    table_code: str
    group_id: str
    distance: float
    fitness_score: float
    capacity_utilization: float


@dataclass(frozen=True)
class AssignmentResult:
    assignments: list[Assignment]
    unassigned_group_ids: list[str]
    total_fitness: float = 0.0
    average_fitness: float = 0.0
    tables_used: int = 0
    customers_served: int = 0
    message: str = ""
    method: str = "greedy"

    @property
    def fitness_scores(self) -> list[float]:
        return [assignment.fitness_score for assignment in self.assignments]
