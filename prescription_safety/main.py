"""FastAPI application for the Prescription Safety Engine."""

import logging
import time
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from datetime import UTC, datetime
from typing import Any

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from prescription_safety import __version__
from prescription_safety.api import safety_router
from prescription_safety.core.config import settings
from prescription_safety.services.contraindications import get_contraindication_rule_set
from prescription_safety.services.drug_resolver import get_drug_resolver
from prescription_safety.services.interactions import get_interaction_rule_set
from prescription_safety.services.prescribing_guidance import get_prescribing_guidance_service
from prescription_safety.services.rule_config import get_ruleset
from prescription_safety.services.safety_evaluator import get_safety_evaluator

logger = logging.getLogger(__name__)


def prewarm_all_services() -> dict[str, Any]:
    """Load the rule dataset and build every engine singleton.

    Unlike optional services, a broken rule dataset must stop startup, so
    RuleConfigurationError propagates.

    Returns:
        Dictionary with service names and their stats.
    """
    start_time = time.perf_counter()

    ruleset = get_ruleset()
    services_loaded = {
        "drug_resolver": get_drug_resolver().get_stats(),
        "contraindications": get_contraindication_rule_set().get_stats(),
        "interactions": get_interaction_rule_set().get_stats(),
    }
    get_safety_evaluator()
    get_prescribing_guidance_service()

    total_time_ms = (time.perf_counter() - start_time) * 1000

    return {
        "ruleset_version": ruleset.version,
        "services_loaded": len(services_loaded) + 2,
        "total_prewarm_time_ms": round(total_time_ms, 2),
        "services": services_loaded,
    }


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan manager.

    Pre-warms the rule engine so a bad dataset fails at startup instead of
    on the first request.
    """
    startup_start = time.perf_counter()

    prewarm_stats = prewarm_all_services()
    logger.info(
        f"Rule engine pre-warmed: dataset {prewarm_stats['ruleset_version']}, "
        f"{prewarm_stats['services_loaded']} services in {prewarm_stats['total_prewarm_time_ms']}ms"
    )

    total_startup_ms = (time.perf_counter() - startup_start) * 1000
    logger.info(f"Server ready - total startup time: {total_startup_ms:.0f}ms")

    app.state.prewarm_stats = prewarm_stats
    app.state.startup_time_ms = total_startup_ms

    yield


app = FastAPI(
    title=settings.app_name,
    description="Drug-safety rule engine: resolves medication names and checks prescriptions for dangerous interactions and condition contraindications.",
    version=__version__,
    debug=settings.debug,
    lifespan=lifespan,
)

# Configure CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
app.include_router(safety_router, prefix=settings.api_v1_prefix)


@app.get("/health", tags=["Health"])
async def health_check() -> dict[str, Any]:
    """Health check endpoint (liveness check).

    Use /ready for readiness checks.
    """
    return {
        "status": "healthy",
        "service": "prescription-safety-engine",
        "version": __version__,
        "timestamp": datetime.now(UTC).isoformat(),
    }


@app.get("/ready", tags=["Health"])
async def readiness_check() -> dict[str, Any]:
    """Readiness check endpoint.

    Confirms the rule dataset is loaded and the engine can answer requests.
    """
    ruleset = get_ruleset()
    prewarm_stats = getattr(app.state, "prewarm_stats", {})
    startup_time = getattr(app.state, "startup_time_ms", 0)

    return {
        "status": "ready",
        "service": "prescription-safety-engine",
        "version": __version__,
        "timestamp": datetime.now(UTC).isoformat(),
        "startup_time_ms": startup_time,
        "ruleset_version": ruleset.version,
        "prewarmed_services": prewarm_stats.get("services_loaded", 0),
        "prewarm_time_ms": prewarm_stats.get("total_prewarm_time_ms", 0),
    }


@app.get("/", tags=["Health"])
async def root() -> dict[str, str]:
    """Root endpoint with API info."""
    return {
        "service": f"{settings.app_name} API",
        "version": __version__,
        "docs": "/docs",
        "health": "/health",
        "ready": "/ready",
    }
