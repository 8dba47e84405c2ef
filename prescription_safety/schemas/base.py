"""Base schemas and enums for the Prescription Safety Engine."""

from enum import Enum


class Condition(str, Enum):
    """Patient conditions the rule engine evaluates against."""

    HYPERTENSION = "hypertension"
    DIABETES = "diabetes"
    PREGNANCY = "pregnancy"
    RENAL_IMPAIRMENT = "renal_impairment"
    LIVER_DISEASE = "liver_disease"
    ASTHMA = "asthma"

    @classmethod
    def parse(cls, value: "str | Condition | None") -> "Condition | None":
        """Coerce free-text condition values ("Renal Impairment", "liver-disease").

        Returns None for anything outside the closed set.
        """
        if isinstance(value, cls):
            return value
        if not isinstance(value, str):
            return None
        key = "_".join(value.strip().lower().replace("-", " ").split())
        try:
            return cls(key)
        except ValueError:
            return None


class Severity(str, Enum):
    """Severity of a safety finding."""

    CONTRAINDICATED = "contraindicated"  # Hard stop advisory
    CAUTION = "caution"  # Dose-adjust / monitor advisory

    @property
    def rank(self) -> int:
        return 2 if self is Severity.CONTRAINDICATED else 1


class WarningKind(str, Enum):
    """Kinds of warning emitted by the safety evaluator."""

    CONDITION = "condition"
    DRUG_DRUG = "drug-drug"


class MatchMethod(str, Enum):
    """How a raw medication name was resolved to a canonical drug."""

    EXACT_ALIAS = "exact_alias"
    EXACT_GENERIC = "exact_generic"
    ALIAS = "alias"  # Alias found inside the raw text
    ALIAS_FRAGMENT = "alias_fragment"  # Raw text is the start of an alias
    GENERIC = "generic"  # Generic name found inside the raw text
    PARTIAL = "partial"  # Loose token overlap with a generic name


class InteractionReportMode(str, Enum):
    """How many drug-drug warnings to report per medication list."""

    FIRST = "first"  # Stop at the first dangerous pair
    ALL = "all"  # Every distinct dangerous pair
