"""
app.py - FastAPI application factory.

This is the ASGI application object imported by uvicorn. It wires the three
optimization services and registers the optimization router.

Usage (via launcher):
    python main.py

Usage (direct uvicorn):
    uvicorn app:app --reload
"""

from __future__ import annotations

from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from backend.controllers.optimization_controller import router as optimization_router
from backend.services.assignment_service import TableAssignmentService
from backend.services.change_service import ChangeService
from backend.services.inventory_service import InventoryOptimizationService
from backend.utils.config import Settings, get_settings
from backend.utils.logger import get_logger


logger = get_logger(__name__)


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    """
    Build and wire the FastAPI application.

    Services are stateless apart from their settings, so one instance of each
    is shared by every request through app.state.
    """
    settings = settings or get_settings()

    app = FastAPI(
        title=settings.app_name,
        version=settings.app_version,
    )
    app.add_middleware(
        CORSMiddleware,
        allow_origins=list(settings.cors_allow_origins),
        allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
        allow_headers=["*"],
    )

    app.include_router(optimization_router)

    app.state.change_service = ChangeService(settings=settings)
    app.state.inventory_service = InventoryOptimizationService(settings=settings)
    app.state.assignment_service = TableAssignmentService(settings=settings)

    logger.info(
        "Application wired | denominations=%s | knapsack_scale=%s",
        len(app.state.change_service.denominations.values),
        settings.knapsack_scale_factor,
    )
    return app


# Module-level app object for uvicorn
app = create_app()
