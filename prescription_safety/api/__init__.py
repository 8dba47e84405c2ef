"""API routers for the Prescription Safety Engine."""

from prescription_safety.api.safety import router as safety_router

__all__ = ["safety_router"]
