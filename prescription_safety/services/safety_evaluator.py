"""Safety Evaluator Service.

Combines drug resolution, interaction checks and contraindication checks
into a single ordered warning list for a prescription:

1. Every medication is resolved to a canonical drug (or left unresolved).
2. Drug-drug interactions are checked across the whole list.
3. If the patient has recognized conditions, each resolved drug is checked
   against them. Warnings are deduplicated per (drug, condition).

Interaction warnings come first, followed by condition warnings in
medication order. Evaluation is pure: the same input always gives the same
output, and bad input never raises.

Note: This is a clinical decision support aid. The bundled tables are
illustrative and do not replace clinical judgment.
"""

from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
import logging
import threading
from typing import Any, Union

from prescription_safety.core.config import settings
from prescription_safety.schemas.base import Condition, InteractionReportMode, MatchMethod, Severity, WarningKind
from prescription_safety.services.contraindications import (
    ConditionWarning,
    ContraindicationRuleSet,
    get_contraindication_rule_set,
)
from prescription_safety.services.drug_resolver import (
    DrugIdentityResolver,
    get_drug_resolver,
)
from prescription_safety.services.interactions import (
    InteractionRuleSet,
    InteractionWarning,
    get_interaction_rule_set,
)
from prescription_safety.services.rule_config import normalize_text

logger = logging.getLogger(__name__)

SafetyWarning = Union[InteractionWarning, ConditionWarning]


@dataclass
class MedicationEntry:
    """A prescribed medication line. Only raw_name affects safety checks."""

    raw_name: str
    dosage: str = ""
    frequency: str = ""
    duration: str = ""
    timing: str = ""
    route: str = ""


@dataclass
class PatientContext:
    """The patient a prescription is written for."""

    conditions: list[Condition] = field(default_factory=list)
    patient_id: str | None = None


@dataclass(frozen=True)
class MedicationResolution:
    """Resolution outcome for one medication line."""

    index: int
    raw_name: str
    drug: str | None
    display_name: str
    matched_term: str | None = None
    method: MatchMethod | None = None

    @property
    def resolved(self) -> bool:
        return self.drug is not None


@dataclass
class EvaluationResult:
    """Warnings plus the resolution details behind them."""

    warnings: list[SafetyWarning]
    resolutions: list[MedicationResolution]
    conditions: list[Condition] = field(default_factory=list)

    @property
    def unresolved(self) -> list[str]:
        return [r.raw_name for r in self.resolutions if not r.resolved]

    @property
    def requires_acknowledgement(self) -> bool:
        return bool(self.warnings)

    @property
    def highest_severity(self) -> Severity | None:
        if not self.warnings:
            return None
        return max((w.severity for w in self.warnings), key=lambda s: s.rank)

    @property
    def counts(self) -> dict[str, int]:
        counts = {kind.value: 0 for kind in WarningKind}
        for warning in self.warnings:
            counts[warning.kind.value] += 1
        return counts


def display_name_for(raw_name: str, drug: str | None) -> str:
    """Raw name as typed, with the canonical drug appended when they differ."""
    raw = (raw_name or "").strip()
    if drug is None:
        return raw
    if not raw:
        return drug
    if normalize_text(raw) == normalize_text(drug):
        return raw
    return f"{raw} ({drug})"


def coerce_conditions(patient: Any) -> list[Condition]:
    """Extract recognized conditions from a patient context, mapping or None.

    Unknown values are logged and skipped.
    """
    if patient is None:
        return []
    if isinstance(patient, PatientContext):
        raw_conditions = patient.conditions
    elif isinstance(patient, Mapping):
        raw_conditions = patient.get("conditions") or []
    else:
        raw_conditions = getattr(patient, "conditions", None) or []

    if isinstance(raw_conditions, str | Condition):
        raw_conditions = [raw_conditions]

    conditions: list[Condition] = []
    for value in raw_conditions:
        condition = Condition.parse(value)
        if condition is None:
            logger.warning(f"Skipping unknown patient condition: {value!r}")
            continue
        if condition not in conditions:
            conditions.append(condition)
    return conditions


def coerce_medication(value: Any) -> MedicationEntry:
    """Accept a MedicationEntry, a mapping with raw_name/name, or a string."""
    if isinstance(value, MedicationEntry):
        return value
    if isinstance(value, str):
        return MedicationEntry(raw_name=value)
    if isinstance(value, Mapping):
        raw_name = value.get("raw_name") or value.get("name") or ""
        extras = {
            key: str(value[key])
            for key in ("dosage", "frequency", "duration", "timing", "route")
            if value.get(key) is not None
        }
        return MedicationEntry(raw_name=raw_name if isinstance(raw_name, str) else "", **extras)
    logger.debug(f"Ignoring medication of unsupported type {type(value).__name__}")
    return MedicationEntry(raw_name="")


class SafetyEvaluator:
    """Evaluate a prescription for interactions and contraindications."""

    def __init__(
        self,
        resolver: DrugIdentityResolver | None = None,
        contraindications: ContraindicationRuleSet | None = None,
        interactions: InteractionRuleSet | None = None,
        report_mode: InteractionReportMode | str | None = None,
    ) -> None:
        self.resolver = resolver or get_drug_resolver()
        self.contraindications = contraindications or get_contraindication_rule_set()
        self.interactions = interactions or get_interaction_rule_set()
        self.report_mode = InteractionReportMode(report_mode or settings.interaction_report_mode)
        logger.info(f"Safety evaluator initialized (interaction report mode: {self.report_mode.value})")

    def evaluate(
        self,
        patient: Any,
        medications: Iterable[Any] | None,
        report_mode: InteractionReportMode | None = None,
    ) -> list[SafetyWarning]:
        """Ordered, deduplicated warnings for a patient and medication list."""
        return self.check(patient, medications, report_mode=report_mode).warnings

    def check(
        self,
        patient: Any,
        medications: Iterable[Any] | None,
        report_mode: InteractionReportMode | None = None,
    ) -> EvaluationResult:
        """Evaluate and return warnings together with resolution details."""
        if isinstance(medications, str | MedicationEntry):
            medications = [medications]
        entries = [coerce_medication(m) for m in medications or []]
        conditions = coerce_conditions(patient)

        resolutions = []
        for index, entry in enumerate(entries):
            resolution = self.resolver.explain(entry.raw_name)
            drug = resolution.drug if resolution else None
            resolutions.append(
                MedicationResolution(
                    index=index,
                    raw_name=entry.raw_name,
                    drug=drug,
                    display_name=display_name_for(entry.raw_name, drug),
                    matched_term=resolution.matched_term if resolution else None,
                    method=resolution.method if resolution else None,
                )
            )

        warnings: list[SafetyWarning] = list(
            self.interactions.evaluate_list(
                [r.drug for r in resolutions],
                mode=InteractionReportMode(report_mode or self.report_mode),
                display_names=[r.display_name for r in resolutions],
            )
        )

        if conditions:
            seen: set[tuple[str, Condition]] = set()
            for resolution in resolutions:
                if resolution.drug is None:
                    continue
                for warning in self.contraindications.evaluate(
                    resolution.drug, conditions, display_name=resolution.display_name
                ):
                    key = (warning.drug, warning.condition)
                    if key not in seen:
                        seen.add(key)
                        warnings.append(warning)

        result = EvaluationResult(warnings=warnings, resolutions=resolutions, conditions=conditions)
        logger.debug(
            f"Evaluated {len(entries)} medications against {len(conditions)} conditions: "
            f"{result.counts[WarningKind.DRUG_DRUG.value]} interaction, "
            f"{result.counts[WarningKind.CONDITION.value]} condition warnings, "
            f"{len(result.unresolved)} unresolved"
        )
        return result


# Singleton instance and lock for thread safety
_safety_evaluator: SafetyEvaluator | None = None
_safety_evaluator_lock = threading.Lock()


def get_safety_evaluator() -> SafetyEvaluator:
    """Get the singleton safety evaluator."""
    global _safety_evaluator
    if _safety_evaluator is None:
        with _safety_evaluator_lock:
            if _safety_evaluator is None:
                _safety_evaluator = SafetyEvaluator()
    return _safety_evaluator


def reset_safety_evaluator() -> None:
    """Reset the singleton instance (for testing)."""
    global _safety_evaluator
    with _safety_evaluator_lock:
        _safety_evaluator = None
