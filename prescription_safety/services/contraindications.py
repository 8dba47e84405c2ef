"""Contraindication Rule Set.

Looks up condition-specific rules for a canonical drug and turns the rules
matching a patient's conditions into warnings. Every rule carries an
explicit severity loaded from the dataset.

Compound drugs ("amoxicillin + clavulanic acid") inherit the rules of their
ingredients. Rules declared directly on the compound come first, then each
ingredient's rules in ingredient order; the first declaration of a condition
wins.
"""

from collections.abc import Iterable, Mapping
from dataclasses import asdict, dataclass, field
import logging
import threading
from types import MappingProxyType
from typing import Any

from prescription_safety.schemas.base import Condition, Severity, WarningKind
from prescription_safety.services.rule_config import (
    ContraindicationRule,
    RuleSetConfig,
    get_ruleset,
    split_ingredients,
)

logger = logging.getLogger(__name__)

_NO_RULES: Mapping[Condition, ContraindicationRule] = MappingProxyType({})


@dataclass(frozen=True)
class ConditionWarning:
    """A medication that conflicts with one of the patient's conditions."""

    drug_display_name: str
    drug: str
    condition: Condition
    severity: Severity
    message: str
    source: str = ""
    kind: WarningKind = field(default=WarningKind.CONDITION, init=False)

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["kind"] = self.kind.value
        data["condition"] = self.condition.value
        data["severity"] = self.severity.value
        return data


class ContraindicationRuleSet:
    """Read-only drug -> condition rule table."""

    def __init__(self, ruleset: RuleSetConfig | None = None) -> None:
        self._ruleset = ruleset or get_ruleset()
        self._rules: dict[str, Mapping[Condition, ContraindicationRule]] = {}

        for drug, rules in self._ruleset.contraindications.items():
            self._rules[drug] = MappingProxyType({rule.condition: rule for rule in rules})

        # Pre-merge compounds so lookups never mutate shared state
        for drug in self._ruleset.canonical_drugs:
            if len(split_ingredients(drug)) > 1:
                merged = self._merge_compound(drug)
                if merged:
                    self._rules[drug] = merged

        logger.info(
            f"Contraindication rule set initialized with {sum(len(r) for r in self._ruleset.contraindications.values())} "
            f"rules across {len(self._ruleset.contraindications)} drugs"
        )

    def _merge_compound(self, drug: str) -> Mapping[Condition, ContraindicationRule]:
        merged = dict(self._rules.get(drug, _NO_RULES))
        for ingredient in split_ingredients(drug):
            for condition, rule in self._rules.get(ingredient, _NO_RULES).items():
                merged.setdefault(condition, rule)
        return MappingProxyType(merged)

    def contraindications_for(self, drug: str | None) -> Mapping[Condition, ContraindicationRule]:
        """Rules for a canonical drug, keyed by condition in declared order."""
        if not drug:
            return _NO_RULES
        rules = self._rules.get(drug)
        if rules is not None:
            return rules
        if len(split_ingredients(drug)) > 1:
            return self._merge_compound(drug)
        return _NO_RULES

    def evaluate(
        self,
        drug: str | None,
        patient_conditions: Iterable[Condition],
        display_name: str | None = None,
    ) -> list[ConditionWarning]:
        """Warnings for every declared condition the patient has."""
        conditions = set(patient_conditions)
        if not drug or not conditions:
            return []

        warnings = []
        for condition, rule in self.contraindications_for(drug).items():
            if condition in conditions:
                warnings.append(
                    ConditionWarning(
                        drug_display_name=display_name or drug,
                        drug=drug,
                        condition=condition,
                        severity=rule.severity,
                        message=rule.message,
                        source=rule.source,
                    )
                )
        return warnings

    def rules_for_condition(self, condition: Condition) -> list[ContraindicationRule]:
        """Directly declared rules for a condition, in dataset drug order."""
        result = []
        for rules in self._ruleset.contraindications.values():
            result.extend(rule for rule in rules if rule.condition == condition)
        return result

    def get_stats(self) -> dict[str, Any]:
        """Get statistics about the contraindication table."""
        by_condition = {condition.value: 0 for condition in Condition}
        by_severity = {severity.value: 0 for severity in Severity}
        total = 0
        for rules in self._ruleset.contraindications.values():
            for rule in rules:
                by_condition[rule.condition.value] += 1
                by_severity[rule.severity.value] += 1
                total += 1

        return {
            "total_drugs": len(self._ruleset.contraindications),
            "total_rules": total,
            "by_condition": by_condition,
            "by_severity": by_severity,
        }


# Singleton instance and lock for thread safety
_contraindication_rule_set: ContraindicationRuleSet | None = None
_contraindication_lock = threading.Lock()


def get_contraindication_rule_set() -> ContraindicationRuleSet:
    """Get the singleton contraindication rule set."""
    global _contraindication_rule_set
    if _contraindication_rule_set is None:
        with _contraindication_lock:
            if _contraindication_rule_set is None:
                _contraindication_rule_set = ContraindicationRuleSet()
    return _contraindication_rule_set


def reset_contraindication_rule_set() -> None:
    """Reset the singleton instance (for testing)."""
    global _contraindication_rule_set
    with _contraindication_lock:
        _contraindication_rule_set = None
