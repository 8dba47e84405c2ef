"""Services for the Prescription Safety Engine.

- rule_config: dataset loading and validation
- DrugIdentityResolver: raw name -> canonical drug
- ContraindicationRuleSet / InteractionRuleSet: rule lookups
- SafetyEvaluator: ordered warning list for a prescription
- PrescriptionSession: authoring state machine
- PrescribingGuidanceService: per-condition advisories
"""

from prescription_safety.services.authoring_session import (
    PrescriptionSession,
    SavedPrescription,
    SessionState,
    SessionStateError,
)
from prescription_safety.services.contraindications import (
    ConditionWarning,
    ContraindicationRuleSet,
    get_contraindication_rule_set,
    reset_contraindication_rule_set,
)
from prescription_safety.services.drug_resolver import (
    DrugIdentityResolver,
    Resolution,
    get_drug_resolver,
    reset_drug_resolver,
)
from prescription_safety.services.interactions import (
    InteractionRuleSet,
    InteractionWarning,
    get_interaction_rule_set,
    reset_interaction_rule_set,
)
from prescription_safety.services.prescribing_guidance import (
    ConditionGuidance,
    DrugAdvisory,
    PrescribingGuidanceService,
    get_prescribing_guidance_service,
    reset_prescribing_guidance_service,
)
from prescription_safety.services.rule_config import (
    ContraindicationRule,
    InteractionRule,
    RuleConfigurationError,
    RuleSetConfig,
    classify_severity,
    get_ruleset,
    load_ruleset,
    reset_ruleset,
)
from prescription_safety.services.safety_evaluator import (
    EvaluationResult,
    MedicationEntry,
    PatientContext,
    SafetyEvaluator,
    SafetyWarning,
    get_safety_evaluator,
    reset_safety_evaluator,
)


def reset_all_services() -> None:
    """Drop every cached singleton so the next call reloads the dataset."""
    reset_prescribing_guidance_service()
    reset_safety_evaluator()
    reset_interaction_rule_set()
    reset_contraindication_rule_set()
    reset_drug_resolver()
    reset_ruleset()


__all__ = [
    # Rule configuration
    "ContraindicationRule",
    "InteractionRule",
    "RuleConfigurationError",
    "RuleSetConfig",
    "classify_severity",
    "get_ruleset",
    "load_ruleset",
    "reset_ruleset",
    # Resolver
    "DrugIdentityResolver",
    "Resolution",
    "get_drug_resolver",
    "reset_drug_resolver",
    # Rule sets
    "ConditionWarning",
    "ContraindicationRuleSet",
    "get_contraindication_rule_set",
    "reset_contraindication_rule_set",
    "InteractionRuleSet",
    "InteractionWarning",
    "get_interaction_rule_set",
    "reset_interaction_rule_set",
    # Evaluator
    "EvaluationResult",
    "MedicationEntry",
    "PatientContext",
    "SafetyEvaluator",
    "SafetyWarning",
    "get_safety_evaluator",
    "reset_safety_evaluator",
    # Session
    "PrescriptionSession",
    "SavedPrescription",
    "SessionState",
    "SessionStateError",
    # Guidance
    "ConditionGuidance",
    "DrugAdvisory",
    "PrescribingGuidanceService",
    "get_prescribing_guidance_service",
    "reset_prescribing_guidance_service",
    # Lifecycle
    "reset_all_services",
]
