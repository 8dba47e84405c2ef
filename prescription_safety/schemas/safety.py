"""Request and response schemas for the safety API."""

from typing import Annotated, Literal

from pydantic import BaseModel, Field

from prescription_safety.schemas.base import (
    Condition,
    InteractionReportMode,
    MatchMethod,
    Severity,
)


class MedicationInput(BaseModel):
    """A medication line as entered by the prescriber."""

    raw_name: str = Field(..., min_length=1, max_length=200, description="Medication name as typed or dictated")
    dosage: str = Field("", description="Dosage, e.g. '400 mg'")
    frequency: str = Field("", description="Frequency, e.g. 'twice daily'")
    duration: str = Field("", description="Duration, e.g. '5 days'")
    timing: str = Field("", description="Timing, e.g. 'after food'")
    route: str = Field("", description="Route of administration")


class EvaluateRequest(BaseModel):
    """Request to evaluate a prescription."""

    patient_id: str | None = Field(None, description="Patient identifier (echoed only)")
    conditions: list[Condition] = Field(default_factory=list, description="Patient conditions")
    medications: list[MedicationInput] = Field(
        default_factory=list, max_length=100, description="Medications on the prescription"
    )
    report_mode: InteractionReportMode | None = Field(
        None, description="Report the first dangerous pair only, or all of them"
    )


class InteractionCheckRequest(BaseModel):
    """Request to check a medication list for drug-drug interactions."""

    medications: list[str] = Field(..., min_length=1, max_length=100, description="Medication names")
    report_mode: InteractionReportMode = Field(InteractionReportMode.ALL, description="first or all")


class ConditionWarningResponse(BaseModel):
    """A medication that conflicts with a patient condition."""

    kind: Literal["condition"] = "condition"
    drug_display_name: str
    drug: str
    condition: Condition
    severity: Severity
    message: str
    source: str = ""


class InteractionWarningResponse(BaseModel):
    """A dangerous pair of medications."""

    kind: Literal["drug-drug"] = "drug-drug"
    drug_a: str
    drug_b: str
    display_names: list[str]
    severity: Severity = Severity.CONTRAINDICATED
    message: str
    origin: str = "explicit"


SafetyWarningResponse = Annotated[
    ConditionWarningResponse | InteractionWarningResponse,
    Field(discriminator="kind"),
]


class ResolutionResponse(BaseModel):
    """How a medication name was resolved."""

    raw_name: str = Field(..., description="Name as submitted")
    resolved: bool = Field(..., description="Whether a canonical drug was found")
    drug: str | None = Field(None, description="Canonical drug id")
    display_name: str = Field("", description="Name used in warnings")
    matched_term: str | None = Field(None, description="Alias or name that matched")
    method: MatchMethod | None = Field(None, description="Which resolution pass matched")
    ingredients: list[str] = Field(default_factory=list, description="Ingredients of a compound drug")


class EvaluateResponse(BaseModel):
    """Result of a prescription safety evaluation."""

    patient_id: str | None = None
    ruleset_version: str = Field(..., description="Version of the rule dataset used")
    warnings: list[SafetyWarningResponse] = Field(default_factory=list)
    resolutions: list[ResolutionResponse] = Field(default_factory=list)
    unresolved: list[str] = Field(default_factory=list, description="Names no rule could apply to")
    requires_acknowledgement: bool = False
    highest_severity: Severity | None = None
    counts: dict[str, int] = Field(default_factory=dict, description="Warning counts by kind")


class InteractionCheckResponse(BaseModel):
    """Result of a drug-drug interaction check."""

    ruleset_version: str
    warnings: list[InteractionWarningResponse] = Field(default_factory=list)
    resolutions: list[ResolutionResponse] = Field(default_factory=list)
    has_interactions: bool = False


class ConditionInfoResponse(BaseModel):
    """A supported patient condition."""

    condition: Condition
    label: str
    advice: str = ""
    alternatives: list[str] = Field(default_factory=list)


class DrugAdvisoryResponse(BaseModel):
    drug: str
    message: str
    source: str = ""


class ConditionGuidanceResponse(BaseModel):
    """Prescribing guidance for one condition."""

    condition: Condition
    label: str
    advice: str = Field("", description="General prescribing advice for the condition")
    contraindicated: list[DrugAdvisoryResponse] = Field(default_factory=list)
    caution: list[DrugAdvisoryResponse] = Field(default_factory=list)
    alternatives: list[str] = Field(default_factory=list)


class StatsResponse(BaseModel):
    """Statistics about the loaded rule dataset."""

    ruleset_version: str
    format_version: int
    resolver: dict[str, int]
    contraindications: dict
    interactions: dict[str, int]
