"""Prescribing Guidance Service.

Builds a per-condition advisory for a patient: general prescribing advice,
the drugs that are contraindicated or need caution, and safer alternatives
to consider.
"""

from collections.abc import Iterable
from dataclasses import dataclass
import logging
import threading
from typing import Any

from prescription_safety.schemas.base import Condition, Severity
from prescription_safety.services.contraindications import (
    ContraindicationRuleSet,
    get_contraindication_rule_set,
)
from prescription_safety.services.rule_config import RuleSetConfig, get_ruleset
from prescription_safety.services.safety_evaluator import coerce_conditions

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DrugAdvisory:
    """One drug flagged for a condition."""

    drug: str
    message: str
    source: str = ""


@dataclass(frozen=True)
class ConditionGuidance:
    """Prescribing advice for a single condition."""

    condition: Condition
    label: str
    contraindicated: tuple[DrugAdvisory, ...]
    caution: tuple[DrugAdvisory, ...]
    alternatives: tuple[str, ...]
    advice: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {
            "condition": self.condition.value,
            "label": self.label,
            "contraindicated": [vars(a) for a in self.contraindicated],
            "caution": [vars(a) for a in self.caution],
            "alternatives": list(self.alternatives),
            "advice": self.advice,
        }


class PrescribingGuidanceService:
    """Per-condition prescribing advisories."""

    def __init__(
        self,
        ruleset: RuleSetConfig | None = None,
        contraindications: ContraindicationRuleSet | None = None,
    ) -> None:
        self._ruleset = ruleset or get_ruleset()
        self._contraindications = contraindications or get_contraindication_rule_set()

    def for_condition(self, condition: Condition) -> ConditionGuidance:
        info = self._ruleset.conditions[condition]
        contraindicated = []
        caution = []
        for rule in self._contraindications.rules_for_condition(condition):
            advisory = DrugAdvisory(drug=rule.drug, message=rule.message, source=rule.source)
            if rule.severity == Severity.CONTRAINDICATED:
                contraindicated.append(advisory)
            else:
                caution.append(advisory)

        return ConditionGuidance(
            condition=condition,
            label=info.label,
            contraindicated=tuple(contraindicated),
            caution=tuple(caution),
            alternatives=info.alternatives,
            advice=info.advice,
        )

    def for_conditions(self, conditions: Iterable[Any]) -> list[ConditionGuidance]:
        """Guidance for each recognized condition, in the order given."""
        return [self.for_condition(c) for c in coerce_conditions({"conditions": conditions})]


# Singleton instance and lock for thread safety
_guidance_service: PrescribingGuidanceService | None = None
_guidance_lock = threading.Lock()


def get_prescribing_guidance_service() -> PrescribingGuidanceService:
    """Get the singleton prescribing guidance service."""
    global _guidance_service
    if _guidance_service is None:
        with _guidance_lock:
            if _guidance_service is None:
                _guidance_service = PrescribingGuidanceService()
    return _guidance_service


def reset_prescribing_guidance_service() -> None:
    """Reset the singleton instance (for testing)."""
    global _guidance_service
    with _guidance_lock:
        _guidance_service = None
