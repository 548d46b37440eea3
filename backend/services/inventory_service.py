"""Inventory selection under a capacity limit (0/1 and fractional knapsack)."""

from __future__ import annotations

import math
from dataclasses import dataclass, replace
from decimal import Decimal
from enum import Enum
from typing import Optional, Sequence

import numpy as np

from backend.domain.models import InventoryItem, KnapsackResult
from backend.utils.config import Settings, get_settings
from backend.utils.logger import get_logger
from backend.utils.units import ceil_units, floor_units


logger = get_logger(__name__)

DEFAULT_SCALE_FACTOR = 100


class InventoryValidationError(Exception):
    """Raised when an inventory optimization request is malformed."""


class InventoryAlgorithm(str, Enum):
    EXACT = "exact"
    GREEDY = "greedy"
    DEMAND_FILTERED = "demand_filtered"

    @classmethod
    def parse(cls, value: "str | InventoryAlgorithm | None") -> "InventoryAlgorithm":
        if isinstance(value, InventoryAlgorithm):
            return value
        normalized = (value or cls.GREEDY.value).strip().lower()
        if normalized == "dp":
            return cls.EXACT
        try:
            return cls(normalized)
        except ValueError as exc:
            valid = ", ".join(["dp"] + [member.value for member in cls])
            raise InventoryValidationError(
                f"Invalid algorithm '{value}'. Supported: {valid}"
            ) from exc


def _empty_result(capacity: float, message: str, algorithm: str) -> KnapsackResult:
    return KnapsackResult(
        selected_items=[],
        total_value=0.0,
        total_weight=0.0,
        total_cost=0.0,
        capacity_used=0.0,
        capacity_remaining=capacity,
        efficiency=0.0,
        message=message,
        algorithm=algorithm,
    )


def _precheck(items: Sequence[InventoryItem], capacity: float, algorithm: str) -> Optional[KnapsackResult]:
    if not items:
        return _empty_result(capacity, "No items provided", algorithm)
    if capacity <= 0:
        return _empty_result(capacity, "Invalid capacity (must be > 0)", algorithm)
    return None


def _efficiency(total_value: float, total_weight: float) -> float:
    if total_weight <= 0:
        return 0.0
    return total_value / total_weight


def solve_knapsack_exact(
    items: Sequence[InventoryItem],
    capacity: float,
    scale_factor: int = DEFAULT_SCALE_FACTOR,
) -> KnapsackResult:
    """Solve the 0/1 knapsack exactly by dynamic programming.

    Weights and capacity are discretized to ``scale_factor`` units. Capacity is
    floored and weights are ceiled, so any subset that fits the discretized
    table also fits the real capacity. Runs in O(items * scaled_capacity).
    """
    algorithm = InventoryAlgorithm.EXACT.value
    rejected = _precheck(items, capacity, algorithm)
    if rejected is not None:
        return rejected

    capacity_units = floor_units(capacity, scale_factor)
    weight_units = [max(ceil_units(item.weight, scale_factor), 0) for item in items]

    table = np.zeros(capacity_units + 1, dtype=np.float64)
    taken = np.zeros((len(items), capacity_units + 1), dtype=bool)

    for index, (item, weight) in enumerate(zip(items, weight_units)):
        if weight > capacity_units:
            continue
        # Candidates are computed from the table before this item is applied,
        # which is what the descending-index pass guarantees: one use per item.
        candidate = table[: capacity_units + 1 - weight] + item.value
        current = table[weight:]
        improved = candidate > current
        taken[index, weight:] = improved
        table[weight:] = np.where(improved, candidate, current)

    chosen: list[int] = []
    cursor = capacity_units
    for index in range(len(items) - 1, -1, -1):
        if taken[index, cursor]:
            chosen.append(index)
            cursor -= weight_units[index]
    chosen.reverse()

    selected = [items[index] for index in chosen]
    total_value = math.fsum(item.value for item in selected)
    # Summed in Decimal so the reported weight never exceeds capacity.
    used = sum((Decimal(str(item.weight)) for item in selected), Decimal(0))
    total_weight = float(used)
    total_cost = math.fsum(item.cost for item in selected)

    return KnapsackResult(
        selected_items=selected,
        total_value=total_value,
        total_weight=total_weight,
        total_cost=total_cost,
        capacity_used=total_weight,
        capacity_remaining=float(Decimal(str(capacity)) - used),
        efficiency=_efficiency(total_value, total_weight),
        message=(
            f"Selected {len(selected)} items with total value {total_value:.2f} "
            f"and weight {total_weight:.2f}/{capacity:.2f}"
        ),
        algorithm=algorithm,
    )


def solve_knapsack_greedy(
    items: Sequence[InventoryItem],
    capacity: float,
) -> KnapsackResult:
    """Fractional knapsack by value/weight ratio.

    The last item that does not fit is taken partially, so the total value is
    an upper bound on the 0/1 optimum rather than a feasible 0/1 answer.
    Selected items are reported in input order.
    """
    algorithm = InventoryAlgorithm.GREEDY.value
    rejected = _precheck(items, capacity, algorithm)
    if rejected is not None:
        return rejected

    ordered = sorted(enumerate(items), key=lambda pair: pair[1].ratio, reverse=True)

    remaining = Decimal(str(capacity))
    picked: list[tuple[int, InventoryItem]] = []
    fractional_item_id: Optional[str] = None
    for index, item in ordered:
        if remaining <= 0:
            break
        weight = Decimal(str(item.weight))
        if weight <= remaining:
            picked.append((index, item))
            remaining -= weight
            continue

        fraction = float(remaining / weight)
        partial = replace(
            item,
            weight=float(remaining),
            value=item.value * fraction,
            cost=item.cost * fraction,
        )
        picked.append((index, partial))
        fractional_item_id = item.item_id
        remaining = Decimal(0)
        break

    picked.sort(key=lambda pair: pair[0])
    selected = [item for _, item in picked]
    total_value = math.fsum(item.value for item in selected)
    total_weight = float(Decimal(str(capacity)) - remaining)
    total_cost = math.fsum(item.cost for item in selected)

    return KnapsackResult(
        selected_items=selected,
        total_value=total_value,
        total_weight=total_weight,
        total_cost=total_cost,
        capacity_used=total_weight,
        capacity_remaining=float(remaining),
        efficiency=_efficiency(total_value, total_weight),
        message=(
            f"Selected {len(selected)} items (greedy) with total value {total_value:.2f} "
            f"and weight {total_weight:.2f}/{capacity:.2f}"
        ),
        algorithm=algorithm,
        fractional_item_id=fractional_item_id,
    )


def optimize_by_demand(
    items: Sequence[InventoryItem],
    capacity: float,
    min_demand_score: float,
) -> KnapsackResult:
    threshold = max(min_demand_score, 0.0)
    eligible = [item for item in items if item.demand_score >= threshold]
    if not eligible:
        return _empty_result(
            capacity,
            f"No items meet the minimum demand score of {threshold:.2f}",
            InventoryAlgorithm.DEMAND_FILTERED.value,
        )
    result = solve_knapsack_greedy(eligible, capacity)
    return replace(result, algorithm=InventoryAlgorithm.DEMAND_FILTERED.value)


@dataclass(frozen=True)
class InventoryOptimization:
    success: bool
    result: KnapsackResult
    message: str


class InventoryOptimizationService:
    """Dispatches inventory requests to the exact or approximate solver."""

    def __init__(self, settings: Optional[Settings] = None) -> None:
        self._settings = settings or get_settings()

    def _check_table_size(self, max_capacity: float) -> None:
        limit = self._settings.knapsack_max_scaled_capacity
        scaled = floor_units(max_capacity, self._settings.knapsack_scale_factor)
        if scaled > limit:
            raise InventoryValidationError(
                f"Capacity {max_capacity} is too large for the exact algorithm "
                f"({scaled} scaled units, limit {limit}). Use the greedy algorithm."
            )

    def optimize_inventory(
        self,
        *,
        items: Sequence[InventoryItem],
        max_capacity: float,
        algorithm: "str | InventoryAlgorithm | None" = None,
        min_demand_score: float = 0.0,
    ) -> InventoryOptimization:
        mode = InventoryAlgorithm.parse(algorithm)
        if not items:
            return InventoryOptimization(
                success=False,
                result=_empty_result(max_capacity, "No items provided", mode.value),
                message="No items provided",
            )
        if max_capacity <= 0:
            return InventoryOptimization(
                success=False,
                result=_empty_result(max_capacity, "Invalid capacity (must be > 0)", mode.value),
                message="Invalid capacity (must be > 0)",
            )

        threshold = max(min_demand_score, 0.0)
        if mode is InventoryAlgorithm.EXACT:
            self._check_table_size(max_capacity)
            result = solve_knapsack_exact(
                items,
                max_capacity,
                scale_factor=self._settings.knapsack_scale_factor,
            )
        elif mode is InventoryAlgorithm.DEMAND_FILTERED or threshold > 0:
            result = optimize_by_demand(items, max_capacity, threshold)
        else:
            result = solve_knapsack_greedy(items, max_capacity)

        logger.info(
            (
                "Inventory optimized | algorithm=%s | items=%s | selected=%s | "
                "total_value=%.4f | total_weight=%.4f | capacity=%.4f"
            ),
            result.algorithm,
            len(items),
            len(result.selected_items),
            result.total_value,
            result.total_weight,
            max_capacity,
        )
        return InventoryOptimization(
            success=True,
            result=result,
            message=f"Inventory optimized: {len(result.selected_items)} items selected",
        )
