"""Enums and pydantic schemas for the Prescription Safety Engine."""

from prescription_safety.schemas.base import (
    Condition,
    InteractionReportMode,
    MatchMethod,
    Severity,
    WarningKind,
)
from prescription_safety.schemas.safety import (
    ConditionGuidanceResponse,
    ConditionInfoResponse,
    ConditionWarningResponse,
    DrugAdvisoryResponse,
    EvaluateRequest,
    EvaluateResponse,
    InteractionCheckRequest,
    InteractionCheckResponse,
    InteractionWarningResponse,
    MedicationInput,
    ResolutionResponse,
    StatsResponse,
)

__all__ = [
    # Enums
    "Condition",
    "InteractionReportMode",
    "MatchMethod",
    "Severity",
    "WarningKind",
    # API schemas
    "ConditionGuidanceResponse",
    "ConditionInfoResponse",
    "ConditionWarningResponse",
    "DrugAdvisoryResponse",
    "EvaluateRequest",
    "EvaluateResponse",
    "InteractionCheckRequest",
    "InteractionCheckResponse",
    "InteractionWarningResponse",
    "MedicationInput",
    "ResolutionResponse",
    "StatsResponse",
]
