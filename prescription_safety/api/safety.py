"""Prescription Safety API Endpoints.

Exposes the rule engine over HTTP:
- Evaluate: full prescription check (interactions + contraindications)
- Interactions: drug-drug check for a medication list
- Resolve: show how a medication name maps to a canonical drug
- Conditions / Guidance: per-condition prescribing advice
- Stats: rule dataset statistics
"""

import logging

from fastapi import APIRouter, HTTPException, Query

from prescription_safety.schemas.base import Condition
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
    ResolutionResponse,
    StatsResponse,
)
from prescription_safety.services.contraindications import ConditionWarning, get_contraindication_rule_set
from prescription_safety.services.drug_resolver import get_drug_resolver
from prescription_safety.services.interactions import InteractionWarning, get_interaction_rule_set
from prescription_safety.services.prescribing_guidance import (
    ConditionGuidance,
    get_prescribing_guidance_service,
)
from prescription_safety.services.rule_config import get_ruleset
from prescription_safety.services.safety_evaluator import (
    MedicationEntry,
    MedicationResolution,
    PatientContext,
    display_name_for,
    get_safety_evaluator,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/safety", tags=["Prescription Safety"])


# ============================================================================
# Response builders
# ============================================================================


def _warning_response(warning: ConditionWarning | InteractionWarning):
    if isinstance(warning, InteractionWarning):
        return InteractionWarningResponse(**warning.to_dict())
    return ConditionWarningResponse(**warning.to_dict())


def _resolution_response(resolution: MedicationResolution) -> ResolutionResponse:
    resolver = get_drug_resolver()
    return ResolutionResponse(
        raw_name=resolution.raw_name,
        resolved=resolution.resolved,
        drug=resolution.drug,
        display_name=resolution.display_name,
        matched_term=resolution.matched_term,
        method=resolution.method,
        ingredients=list(resolver.ingredients(resolution.drug)) if resolution.drug else [],
    )


def _guidance_response(guidance: ConditionGuidance) -> ConditionGuidanceResponse:
    return ConditionGuidanceResponse(
        condition=guidance.condition,
        label=guidance.label,
        advice=guidance.advice,
        contraindicated=[DrugAdvisoryResponse(**vars(a)) for a in guidance.contraindicated],
        caution=[DrugAdvisoryResponse(**vars(a)) for a in guidance.caution],
        alternatives=list(guidance.alternatives),
    )


# ============================================================================
# Endpoints
# ============================================================================


@router.post("/evaluate", response_model=EvaluateResponse)
async def evaluate_prescription(request: EvaluateRequest) -> EvaluateResponse:
    """Evaluate a prescription for drug-drug interactions and contraindications.

    Interaction warnings are listed first, followed by condition warnings in
    medication order. Unrecognized medication names produce no warnings and
    are reported under `unresolved`.
    """
    evaluator = get_safety_evaluator()
    patient = PatientContext(conditions=list(request.conditions), patient_id=request.patient_id)
    medications = [MedicationEntry(**m.model_dump()) for m in request.medications]

    result = evaluator.check(patient, medications, report_mode=request.report_mode)

    return EvaluateResponse(
        patient_id=request.patient_id,
        ruleset_version=get_ruleset().version,
        warnings=[_warning_response(w) for w in result.warnings],
        resolutions=[_resolution_response(r) for r in result.resolutions],
        unresolved=result.unresolved,
        requires_acknowledgement=result.requires_acknowledgement,
        highest_severity=result.highest_severity,
        counts=result.counts,
    )


@router.post("/interactions", response_model=InteractionCheckResponse)
async def check_interactions(request: InteractionCheckRequest) -> InteractionCheckResponse:
    """Check a medication list for dangerous drug-drug pairs."""
    evaluator = get_safety_evaluator()
    result = evaluator.check(None, request.medications, report_mode=request.report_mode)
    warnings = [InteractionWarningResponse(**w.to_dict()) for w in result.warnings if isinstance(w, InteractionWarning)]

    return InteractionCheckResponse(
        ruleset_version=get_ruleset().version,
        warnings=warnings,
        resolutions=[_resolution_response(r) for r in result.resolutions],
        has_interactions=bool(warnings),
    )


@router.get("/resolve", response_model=ResolutionResponse)
async def resolve_drug(
    name: str = Query(..., min_length=1, max_length=200, description="Medication name to resolve"),
) -> ResolutionResponse:
    """Show how a medication name resolves to a canonical drug."""
    resolver = get_drug_resolver()
    resolution = resolver.explain(name)
    if resolution is None:
        return ResolutionResponse(raw_name=name, resolved=False, display_name=name.strip())

    return ResolutionResponse(
        raw_name=name,
        resolved=True,
        drug=resolution.drug,
        display_name=display_name_for(name, resolution.drug),
        matched_term=resolution.matched_term,
        method=resolution.method,
        ingredients=list(resolver.ingredients(resolution.drug)),
    )


@router.get("/conditions", response_model=list[ConditionInfoResponse])
async def list_conditions() -> list[ConditionInfoResponse]:
    """List the patient conditions the engine understands."""
    ruleset = get_ruleset()
    return [
        ConditionInfoResponse(
            condition=condition,
            label=ruleset.conditions[condition].label,
            advice=ruleset.conditions[condition].advice,
            alternatives=list(ruleset.conditions[condition].alternatives),
        )
        for condition in Condition
    ]


@router.get("/guidance", response_model=list[ConditionGuidanceResponse])
async def get_guidance(
    conditions: list[str] = Query(..., description="Conditions to get guidance for"),
) -> list[ConditionGuidanceResponse]:
    """Prescribing guidance (contraindicated, caution, alternatives) per condition."""
    unknown = [c for c in conditions if Condition.parse(c) is None]
    if unknown:
        raise HTTPException(status_code=422, detail=f"Unknown conditions: {', '.join(unknown)}")

    service = get_prescribing_guidance_service()
    return [_guidance_response(g) for g in service.for_conditions(conditions)]


@router.get("/stats", response_model=StatsResponse)
async def get_stats() -> StatsResponse:
    """Statistics about the loaded rule dataset."""
    ruleset = get_ruleset()
    return StatsResponse(
        ruleset_version=ruleset.version,
        format_version=ruleset.format_version,
        resolver=get_drug_resolver().get_stats(),
        contraindications=get_contraindication_rule_set().get_stats(),
        interactions=get_interaction_rule_set().get_stats(),
    )
