"""Shared FastAPI dependency providers for controller layer."""

from __future__ import annotations

from fastapi import Request

from backend.services.assignment_service import TableAssignmentService
from backend.services.change_service import ChangeService
from backend.services.inventory_service import InventoryOptimizationService
from backend.utils.config import get_settings


def get_change_service(request: Request) -> ChangeService:
    service = getattr(request.app.state, "change_service", None)
    if service is None:
        service = ChangeService(settings=get_settings())
        request.app.state.change_service = service
    return service


def get_inventory_service(request: Request) -> InventoryOptimizationService:
    service = getattr(request.app.state, "inventory_service", None)
    if service is None:
        service = InventoryOptimizationService(settings=get_settings())
        request.app.state.inventory_service = service
    return service


def get_assignment_service(request: Request) -> TableAssignmentService:
    service = getattr(request.app.state, "assignment_service", None)
    if service is None:
        service = TableAssignmentService(settings=get_settings())
        request.app.state.assignment_service = service
    return service
