"""Greedy coin-change breakdown over a fixed denomination set."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from backend.domain.models import ChangeResult, DenominationSet
from backend.utils.config import Settings, get_settings
from backend.utils.logger import get_logger
from backend.utils.units import from_minor_units, to_minor_units


logger = get_logger(__name__)


def calculate_change(amount: int, denominations: DenominationSet) -> ChangeResult:
    """Break ``amount`` minor units into coins, largest denomination first.

    Greedy selection is only complete for canonical coin systems. When a
    residual is left the result reports failure together with the residual
    instead of backtracking.
    """
    if amount < 0:
        return ChangeResult(
            breakdown={},
            total_coins=0,
            success=False,
            message="Amount cannot be negative",
        )
    if amount == 0:
        return ChangeResult(
            breakdown={},
            total_coins=0,
            success=True,
            message="No change needed",
        )

    remaining = amount
    breakdown: dict[int, int] = {}
    for coin in denominations.values:
        quantity = remaining // coin
        if quantity:
            breakdown[coin] = quantity
            remaining -= quantity * coin

    if remaining > 0:
        return ChangeResult(
            breakdown={},
            total_coins=0,
            success=False,
            message=f"Cannot make exact change. Remaining: {remaining}",
            remaining=remaining,
        )

    total_coins = sum(breakdown.values())
    return ChangeResult(
        breakdown=breakdown,
        total_coins=total_coins,
        success=True,
        message=f"Change calculated with {total_coins} coins",
    )


@dataclass(frozen=True)
class ChangeQuote:
    success: bool
    change_amount: float
    total_coins: int
    breakdown: dict[str, int]
    message: str
    available_coins: list[str]


class ChangeService:
    """Turns payments in major currency units into a coin breakdown."""

    def __init__(
        self,
        settings: Optional[Settings] = None,
        denominations: Optional[DenominationSet] = None,
    ) -> None:
        self._settings = settings or get_settings()
        self._denominations = denominations or DenominationSet.from_values(
            self._settings.change_denominations
        )

    @property
    def denominations(self) -> DenominationSet:
        return self._denominations

    def format_amount(self, minor_units: int) -> str:
        return f"${from_minor_units(minor_units, self._settings.currency_scale):.2f}"

    def available_coins(self) -> list[str]:
        return [self.format_amount(coin) for coin in self._denominations.values]

    def calculate_change(self, amount: int) -> ChangeResult:
        result = calculate_change(amount, self._denominations)
        if result.success:
            logger.info(
                "Change calculated | amount=%s | total_coins=%s",
                amount,
                result.total_coins,
            )
        else:
            logger.warning("Change not possible | amount=%s | reason=%s", amount, result.message)
        return result

    def calculate_optimal_change(self, *, amount_paid: float, total_cost: float) -> ChangeQuote:
        scale = self._settings.currency_scale
        change_units = to_minor_units(amount_paid, scale) - to_minor_units(total_cost, scale)

        if change_units < 0:
            return ChangeQuote(
                success=False,
                change_amount=0.0,
                total_coins=0,
                breakdown={},
                message="Insufficient payment amount",
                available_coins=self.available_coins(),
            )
        if change_units == 0:
            return ChangeQuote(
                success=True,
                change_amount=0.0,
                total_coins=0,
                breakdown={},
                message="Exact payment, no change needed",
                available_coins=self.available_coins(),
            )

        result = self.calculate_change(change_units)
        return ChangeQuote(
            success=result.success,
            change_amount=from_minor_units(change_units, scale),
            total_coins=result.total_coins,
            breakdown={
                self.format_amount(coin): quantity
                for coin, quantity in result.breakdown.items()
            },
            message=result.message,
            available_coins=self.available_coins(),
        )
