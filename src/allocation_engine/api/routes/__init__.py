"""API routes."""

from allocation_engine.api.routes.allocations import router as allocations_router
from allocation_engine.api.routes.delete_requests import router as delete_requests_router
from allocation_engine.api.routes.health import router as health_router
from allocation_engine.api.routes.payouts import router as payouts_router

__all__ = ["allocations_router", "delete_requests_router", "health_router", "payouts_router"]
