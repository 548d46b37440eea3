"""HTTP controller layer for change, inventory and table assignment optimization."""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Response, status
from pydantic import BaseModel, Field, model_validator

from backend.controllers.dependencies import (
    get_assignment_service,
    get_change_service,
    get_inventory_service,
)
from backend.domain.models import CustomerGroup, InventoryItem, TableResource
from backend.services.assignment_service import (
    AssignmentValidationError,
    TableAssignmentService,
)
from backend.services.change_service import ChangeService
from backend.services.inventory_service import (
    InventoryOptimizationService,
    InventoryValidationError,
)
from backend.utils.logger import get_logger


logger = get_logger(__name__)

router = APIRouter(prefix="/api/optimization", tags=["optimization"])


class CalculateChangeRequest(BaseModel):
    """Amounts in major currency units; converted to minor units by the service."""

    amount_paid: float = Field(ge=0.0)
    total_cost: float = Field(ge=0.0)


class CalculateChangeResponse(BaseModel):
    success: bool
    change_amount: float = Field(ge=0.0)
    total_coins: int = Field(ge=0)
    breakdown: dict[str, int]
    message: str
    available_coins: list[str]


class InventoryItemPayload(BaseModel):
    id: str = Field(min_length=1)
    name: str = ""
    weight: float = Field(ge=0.0)
    value: float = Field(ge=0.0)
    cost: float = Field(default=0.0, ge=0.0)
    demand_score: float = Field(default=0.0, ge=0.0, le=1.0)

    def to_domain(self) -> InventoryItem:
        return InventoryItem(
            item_id=self.id,
            name=self.name,
            weight=self.weight,
            value=self.value,
            cost=self.cost,
            demand_score=self.demand_score,
        )


class OptimizeInventoryRequest(BaseModel):
    items: list[InventoryItemPayload]
    max_capacity: float = Field(gt=0.0)
    min_demand_score: float = 0.0
    algorithm: str = ""


class KnapsackResultResponse(BaseModel):
    selected_items: list[InventoryItemPayload]
    total_value: float
    total_weight: float = Field(ge=0.0)
    total_cost: float
    capacity_used: float
    capacity_available: float
    efficiency: float = Field(ge=0.0)
    algorithm: str
    fractional_item_id: str | None = None
    message: str


class OptimizeInventoryResponse(BaseModel):
    success: bool
    result: KnapsackResultResponse
    message: str


class TablePayload(BaseModel):
    id: str = Field(min_length=1)
    code: str = ""
    capacity: int = Field(gt=0)
    location_x: float = 0.0
    location_y: float = 0.0
    is_available: bool = True
    is_occupied: bool = False
    priority: int = 0

    def to_domain(self) -> TableResource:
        return TableResource(
            table_id=self.id,
            code=self.code,
            capacity=self.capacity,
            location_x=self.location_x,
            location_y=self.location_y,
            is_available=self.is_available,
            is_occupied=self.is_occupied,
            priority=self.priority,
        )


class CustomerGroupPayload(BaseModel):
    id: str = Field(min_length=1)
    size: int = Field(gt=0)
    priority: int = 0
    preferred_x: float | None = None
    preferred_y: float | None = None
    max_distance: float = Field(default=0.0, ge=0.0)

    @model_validator(mode="after")
    def validate_preferred_location(self) -> "CustomerGroupPayload":
        if (self.preferred_x is None) != (self.preferred_y is None):
            raise ValueError("preferred_x and preferred_y must be provided together")
        return self

    def to_domain(self) -> CustomerGroup:
        return CustomerGroup(
            group_id=self.id,
            size=self.size,
            priority=self.priority,
            preferred_x=self.preferred_x,
            preferred_y=self.preferred_y,
            max_distance=self.max_distance,
        )


class AssignTablesRequest(BaseModel):
    tables: list[TablePayload]
    groups: list[CustomerGroupPayload]
    method: str = ""


class AssignmentResponse(BaseModel):
    table_id: str
    table_code: str
    customer_id: str
    distance: float = Field(ge=0.0)
    fitness_score: float = Field(ge=0.0, le=1.0)
    capacity_util: float = Field(ge=0.0, le=1.0)


class AssignmentResultResponse(BaseModel):
    assignments: list[AssignmentResponse]
    unassigned_groups: list[str]
    total_fitness: float = Field(ge=0.0)
    average_fitness: float = Field(ge=0.0, le=1.0)
    tables_used: int = Field(ge=0)
    customers_served: int = Field(ge=0)
    method: str
    message: str


class AssignTablesResponse(BaseModel):
    success: bool
    result: AssignmentResultResponse
    message: str


@router.post(
    "/change",
    response_model=CalculateChangeResponse,
    status_code=status.HTTP_200_OK,
)
async def calculate_change(
    payload: CalculateChangeRequest,
    response: Response,
    service: ChangeService = Depends(get_change_service),
) -> CalculateChangeResponse:
    """Coin breakdown for the change owed on a cash payment."""
    quote = service.calculate_optimal_change(
        amount_paid=payload.amount_paid,
        total_cost=payload.total_cost,
    )
    if not quote.success:
        response.status_code = status.HTTP_400_BAD_REQUEST
    return CalculateChangeResponse(
        success=quote.success,
        change_amount=quote.change_amount,
        total_coins=quote.total_coins,
        breakdown=quote.breakdown,
        message=quote.message,
        available_coins=quote.available_coins,
    )


@router.post(
    "/inventory/optimize",
    response_model=OptimizeInventoryResponse,
    status_code=status.HTTP_200_OK,
)
async def optimize_inventory(
    payload: OptimizeInventoryRequest,
    response: Response,
    service: InventoryOptimizationService = Depends(get_inventory_service),
) -> OptimizeInventoryResponse:
    """Select the stock to keep: ``dp``/``exact`` is 0/1-exact, ``greedy`` is fractional."""
    try:
        outcome = service.optimize_inventory(
            items=[item.to_domain() for item in payload.items],
            max_capacity=payload.max_capacity,
            algorithm=payload.algorithm,
            min_demand_score=payload.min_demand_score,
        )
    except InventoryValidationError as exc:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=str(exc),
        ) from exc

    if not outcome.success:
        response.status_code = status.HTTP_400_BAD_REQUEST
    result = outcome.result
    return OptimizeInventoryResponse(
        success=outcome.success,
        result=KnapsackResultResponse(
            selected_items=[
                InventoryItemPayload(
                    id=item.item_id,
                    name=item.name,
                    weight=item.weight,
                    value=item.value,
                    cost=item.cost,
                    demand_score=item.demand_score,
                )
                for item in result.selected_items
            ],
            total_value=result.total_value,
            total_weight=result.total_weight,
            total_cost=result.total_cost,
            capacity_used=result.capacity_used,
            capacity_available=result.capacity_remaining,
            efficiency=result.efficiency,
            algorithm=result.algorithm,
            fractional_item_id=result.fractional_item_id,
            message=result.message,
        ),
        message=outcome.message,
    )


@router.post(
    "/tables/assign",
    response_model=AssignTablesResponse,
    status_code=status.HTTP_200_OK,
)
async def assign_tables(
    payload: AssignTablesRequest,
    service: TableAssignmentService = Depends(get_assignment_service),
) -> AssignTablesResponse:
    """Match customer groups to tables by fitness; ``optimal`` solves it with CP-SAT."""
    try:
        result = service.assign_tables(
            tables=[table.to_domain() for table in payload.tables],
            groups=[group.to_domain() for group in payload.groups],
            method=payload.method,
        )
    except AssignmentValidationError as exc:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=str(exc),
        ) from exc
    except Exception as exc:  # pragma: no cover - defensive fallback
        logger.exception("Unexpected table assignment failure")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to assign tables",
        ) from exc

    return AssignTablesResponse(
        success=True,
        result=AssignmentResultResponse(
            assignments=[
                AssignmentResponse(
                    table_id=item.table_id,
                    table_code=item.table_code,
                    customer_id=item.group_id,
                    distance=item.distance,
                    fitness_score=item.fitness_score,
                    capacity_util=item.capacity_utilization,
                )
                for item in result.assignments
            ],
            unassigned_groups=result.unassigned_group_ids,
            total_fitness=result.total_fitness,
            average_fitness=result.average_fitness,
            tables_used=result.tables_used,
            customers_served=result.customers_served,
            method=result.method,
            message=result.message,
        ),
        message=result.message,
    )
