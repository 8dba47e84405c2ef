"""Pytest configuration and fixtures for the rule engine tests."""

import copy
from collections.abc import AsyncGenerator
from typing import Any

import pytest
from httpx import ASGITransport, AsyncClient

from prescription_safety.main import app
from prescription_safety.services import reset_all_services
from prescription_safety.services.contraindications import ContraindicationRuleSet
from prescription_safety.services.drug_resolver import DrugIdentityResolver
from prescription_safety.services.interactions import InteractionRuleSet
from prescription_safety.services.rule_config import RuleSetConfig
from prescription_safety.services.safety_evaluator import SafetyEvaluator

# Small hand-built dataset so engine tests do not depend on the bundled
# formulary's contents.
SAMPLE_DATASET: dict[str, Any] = {
    "format_version": 2,
    "version": "test-1",
    "conditions": {
        "pregnancy": {
            "label": "Pregnancy",
            "advice": "Avoid NSAIDs in the third trimester.",
            "alternatives": ["Paracetamol - safe analgesic"],
        },
        "asthma": {"label": "Asthma", "alternatives": ["Salbutamol - bronchodilator"]},
    },
    "contraindications": {
        "ibuprofen": {
            "source": "test",
            "conditions": {
                "hypertension": {"severity": "caution", "message": "May raise blood pressure."},
                "renal_impairment": {"severity": "caution", "message": "May worsen kidney function."},
                "pregnancy": {"severity": "contraindicated", "message": "Avoid in third trimester."},
            },
        },
        "paracetamol": {
            "source": "test",
            "conditions": {
                "liver_disease": {"severity": "caution", "message": "Reduce dose in liver disease."},
            },
        },
        "propranolol": {
            "source": "test",
            "conditions": {
                "asthma": {"severity": "contraindicated", "message": "May cause severe bronchospasm."},
            },
        },
        "clavulanic acid": {
            "source": "test",
            "conditions": {
                "liver_disease": {"severity": "caution", "message": "Monitor liver function."},
            },
        },
        "amoxicillin": {"source": "test", "conditions": {}},
    },
    "aliases": {
        "acetaminophen": "paracetamol",
        "ethanol": "alcohol",
    },
    "brand_to_generic": {
        "brufen": "ibuprofen",
        "calpol": "paracetamol",
        "panadol": "paracetamol",
        "augmentin": "amoxicillin + clavulanic acid",
        "combiflam": "ibuprofen + paracetamol",
    },
    "generics": [
        "warfarin",
        "aspirin",
        "sertraline",
        "fluoxetine",
        "phenelzine",
        "selegiline",
        "insulin",
        "insulin glargine",
        "alcohol",
        "metronidazole",
        "probiotic",
        "amoxicillin",
    ],
    "noise_tokens": ["tablet", "mg", "daily"],
    "groups": {
        "ssri": ["sertraline", "fluoxetine"],
        "maoi": ["phenelzine", "selegiline"],
        "nsaid": ["ibuprofen", "aspirin"],
    },
    "interaction_pairs": [
        ["warfarin", "aspirin"],
        ["ibuprofen", "warfarin"],
        ["metronidazole", "ethanol"],
        ["amoxicillin", "probiotic"],
    ],
    "group_pairs": [
        {"label": "ssri x maoi", "left": ["@ssri"], "right": ["@maoi"]},
        {"label": "nsaid x nsaid", "left": ["@nsaid"], "right": ["@nsaid"]},
    ],
}


@pytest.fixture
def sample_data() -> dict[str, Any]:
    """A fresh, mutable copy of the sample dataset."""
    return copy.deepcopy(SAMPLE_DATASET)


@pytest.fixture
def ruleset(sample_data: dict[str, Any]) -> RuleSetConfig:
    return RuleSetConfig.from_dict(sample_data)


@pytest.fixture
def resolver(ruleset: RuleSetConfig) -> DrugIdentityResolver:
    return DrugIdentityResolver(ruleset, min_fragment_length=3, min_prefix_match_length=4)


@pytest.fixture
def contraindications(ruleset: RuleSetConfig) -> ContraindicationRuleSet:
    return ContraindicationRuleSet(ruleset)


@pytest.fixture
def interactions(ruleset: RuleSetConfig) -> InteractionRuleSet:
    return InteractionRuleSet(ruleset)


@pytest.fixture
def evaluator(
    resolver: DrugIdentityResolver,
    contraindications: ContraindicationRuleSet,
    interactions: InteractionRuleSet,
) -> SafetyEvaluator:
    return SafetyEvaluator(resolver, contraindications, interactions, report_mode="first")


@pytest.fixture(autouse=True)
def reset_singletons():
    """Make every test start from freshly loaded singletons."""
    reset_all_services()
    yield
    reset_all_services()


@pytest.fixture
async def client() -> AsyncGenerator[AsyncClient, None]:
    """Create async test client against the bundled dataset."""
    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as ac:
        yield ac
