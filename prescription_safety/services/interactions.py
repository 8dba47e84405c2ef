"""Interaction Rule Set.

Holds the dangerous drug-drug pairs. Pairs come from two sources in the
dataset: explicit pairs, and class-group pairs ("ssri x maoi") expanded to
every member combination at load time. Each pair is stored once under an
order-independent key, so lookups are symmetric by construction.
"""

from collections.abc import Sequence
from dataclasses import dataclass, field
import logging
import threading
from typing import Any

from prescription_safety.schemas.base import InteractionReportMode, Severity, WarningKind
from prescription_safety.services.rule_config import (
    InteractionRule,
    RuleSetConfig,
    get_ruleset,
    pair_key,
    split_ingredients,
)

logger = logging.getLogger(__name__)

INTERACTION_MESSAGE = "Dangerous drug interaction detected"


@dataclass(frozen=True)
class InteractionWarning:
    """Two medications on the same list that should not be combined.

    drug_a and drug_b follow the order of the medication list, and
    display_names follows the same order.
    """

    drug_a: str
    drug_b: str
    display_names: tuple[str, str]
    message: str = INTERACTION_MESSAGE
    origin: str = "explicit"
    severity: Severity = field(default=Severity.CONTRAINDICATED, init=False)
    kind: WarningKind = field(default=WarningKind.DRUG_DRUG, init=False)

    def to_dict(self) -> dict[str, Any]:
        return {
            "kind": self.kind.value,
            "drug_a": self.drug_a,
            "drug_b": self.drug_b,
            "display_names": list(self.display_names),
            "severity": self.severity.value,
            "message": self.message,
            "origin": self.origin,
        }


class InteractionRuleSet:
    """Symmetric lookup of dangerous drug pairs."""

    def __init__(self, ruleset: RuleSetConfig | None = None) -> None:
        self._ruleset = ruleset or get_ruleset()
        self._pairs = self._ruleset.interactions
        self._partners: dict[str, list[InteractionRule]] = {}
        for rule in self._pairs.values():
            self._partners.setdefault(rule.drug_a, []).append(rule)
            self._partners.setdefault(rule.drug_b, []).append(rule)

        logger.info(
            f"Interaction rule set initialized with {len(self._pairs)} pairs "
            f"covering {len(self._partners)} drugs"
        )

    def find_pair(self, a: str | None, b: str | None) -> InteractionRule | None:
        """The rule that makes a and b dangerous together, if any.

        Compounds match through any of their ingredients. When several
        ingredient pairs match, the rule with the smallest key is returned
        so the answer does not depend on argument order.
        """
        if not a or not b or a == b:
            return None

        direct = self._pairs.get(pair_key(a, b))
        if direct is not None:
            return direct

        matches = []
        for ingredient_a in split_ingredients(a):
            for ingredient_b in split_ingredients(b):
                if ingredient_a == ingredient_b:
                    continue
                rule = self._pairs.get(pair_key(ingredient_a, ingredient_b))
                if rule is not None:
                    matches.append(rule)
        if not matches:
            return None
        return min(matches, key=lambda rule: rule.key)

    def is_dangerous_pair(self, a: str | None, b: str | None) -> bool:
        """Whether a and b form a dangerous pair (symmetric, never for a == b)."""
        return self.find_pair(a, b) is not None

    def evaluate_list(
        self,
        drugs: Sequence[str | None],
        mode: InteractionReportMode = InteractionReportMode.FIRST,
        display_names: Sequence[str] | None = None,
    ) -> list[InteractionWarning]:
        """Check every pair of distinct drugs on a medication list.

        Args:
            drugs: Resolved drug ids in list order; None entries are skipped.
            mode: FIRST stops at the first dangerous pair, ALL reports every
                distinct pair.
            display_names: Names to show for each entry of drugs.
        """
        distinct: dict[str, str] = {}
        for index, drug in enumerate(drugs):
            if drug and drug not in distinct:
                name = display_names[index] if display_names is not None else drug
                distinct[drug] = name

        ordered = list(distinct)
        warnings = []
        for i, drug_a in enumerate(ordered):
            for drug_b in ordered[i + 1 :]:
                rule = self.find_pair(drug_a, drug_b)
                if rule is None:
                    continue
                warnings.append(
                    InteractionWarning(
                        drug_a=drug_a,
                        drug_b=drug_b,
                        display_names=(distinct[drug_a], distinct[drug_b]),
                        origin=rule.origin,
                    )
                )
                if mode == InteractionReportMode.FIRST:
                    return warnings
        return warnings

    def interactions_for(self, drug: str) -> list[InteractionRule]:
        """Every rule involving the drug or one of its ingredients."""
        rules: dict[str, InteractionRule] = {}
        for ingredient in (drug, *split_ingredients(drug)):
            for rule in self._partners.get(ingredient, ()):
                rules[rule.key] = rule
        return [rules[key] for key in sorted(rules)]

    def get_stats(self) -> dict[str, Any]:
        """Get statistics about the interaction table."""
        explicit = sum(1 for rule in self._pairs.values() if rule.origin == "explicit")
        return {
            "total_pairs": len(self._pairs),
            "explicit_pairs": explicit,
            "group_derived_pairs": len(self._pairs) - explicit,
            "group_rules": len(self._ruleset.group_pairs),
            "unique_drugs": len(self._partners),
        }


# Singleton instance and lock for thread safety
_interaction_rule_set: InteractionRuleSet | None = None
_interaction_lock = threading.Lock()


def get_interaction_rule_set() -> InteractionRuleSet:
    """Get the singleton interaction rule set."""
    global _interaction_rule_set
    if _interaction_rule_set is None:
        with _interaction_lock:
            if _interaction_rule_set is None:
                logger.info("Creating singleton InteractionRuleSet instance")
                _interaction_rule_set = InteractionRuleSet()
    return _interaction_rule_set


def reset_interaction_rule_set() -> None:
    """Reset the singleton instance (for testing)."""
    global _interaction_rule_set
    with _interaction_lock:
        _interaction_rule_set = None
