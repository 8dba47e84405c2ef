"""Tests for the Drug Identity Resolver.

Most tests run against the small sample dataset from conftest; the
property tests at the end use the bundled formulary.
"""

import pytest

from prescription_safety.schemas.base import MatchMethod
from prescription_safety.services.drug_resolver import (
    DrugIdentityResolver,
    get_drug_resolver,
    reset_drug_resolver,
)
from prescription_safety.services.rule_config import RuleSetConfig, get_ruleset


class TestServiceInit:
    """Test resolver initialization."""

    def test_singleton_pattern(self):
        """Test singleton pattern works."""
        assert get_drug_resolver() is get_drug_resolver()

    def test_singleton_reset(self):
        """Test singleton can be reset."""
        first = get_drug_resolver()
        reset_drug_resolver()
        assert get_drug_resolver() is not first

    def test_stats(self, resolver):
        """Test alias counts in resolver statistics."""
        stats = resolver.get_stats()
        assert stats["brand_names"] == 5
        assert stats["aliases"] == 2
        assert stats["total_aliases"] == 7
        assert stats["canonical_drugs"] == len(resolver.canonical_drugs)


# ============================================================================
# Exact Matches
# ============================================================================


class TestExactMatch:
    """Test exact alias and canonical lookups."""

    def test_brand_name(self, resolver):
        """Test exact brand name resolution."""
        resolution = resolver.explain("Brufen")
        assert resolution.drug == "ibuprofen"
        assert resolution.method == MatchMethod.EXACT_ALIAS

    def test_informal_alias(self, resolver):
        """Test informal alias resolution."""
        assert resolver.resolve("Acetaminophen") == "paracetamol"

    def test_canonical_name(self, resolver):
        """Test canonical names resolve case-insensitively."""
        resolution = resolver.explain("IBUPROFEN")
        assert resolution.drug == "ibuprofen"
        assert resolution.method == MatchMethod.EXACT_GENERIC

    def test_compound_canonical_name(self, resolver):
        """Test compound canonical name resolution."""
        assert resolver.resolve("Amoxicillin + Clavulanic acid") == "amoxicillin + clavulanic acid"

    def test_multi_word_canonical_beats_single_word(self, resolver):
        """Test multi-word canonical names are matched whole."""
        assert resolver.resolve("insulin glargine") == "insulin glargine"
        assert resolver.resolve("insulin") == "insulin"


# ============================================================================
# Containment Passes
# ============================================================================


class TestAliasContainment:
    """Test alias found inside noisy text."""

    def test_brand_in_free_text(self, resolver):
        """Test brand name found inside free text."""
        resolution = resolver.explain("Calpol 500 syrup")
        assert resolution.drug == "paracetamol"
        assert resolution.method == MatchMethod.ALIAS
        assert resolution.matched_term == "calpol"

    def test_brand_with_attached_strength(self, resolver):
        """Test brand name with a strength suffix attached."""
        assert resolver.resolve("Brufen400") == "ibuprofen"

    def test_compound_brand(self, resolver):
        """Test compound brand resolution."""
        assert resolver.resolve("Augmentin 625 Duo") == "amoxicillin + clavulanic acid"

    def test_alias_outranks_generic(self, resolver):
        """Test alias matches take priority over generic matches."""
        assert resolver.resolve("ibuprofen calpol") == "paracetamol"

    def test_short_alias_needs_whole_token(self, sample_data):
        """Test short aliases only match whole tokens."""
        sample_data["brand_to_generic"]["zen"] = "warfarin"
        resolver = DrugIdentityResolver(RuleSetConfig.from_dict(sample_data))
        assert resolver.resolve("zen 5") == "warfarin"
        assert resolver.resolve("zenith") is None

    def test_longest_alias_wins(self, sample_data):
        """Test the longest matching alias is chosen."""
        sample_data["brand_to_generic"]["dolo"] = "paracetamol"
        sample_data["brand_to_generic"]["dolo fen"] = "ibuprofen"
        resolver = DrugIdentityResolver(RuleSetConfig.from_dict(sample_data))
        assert resolver.resolve("dolo fen 400") == "ibuprofen"
        assert resolver.resolve("dolo 650") == "paracetamol"


class TestFragmentMatch:
    """Test dictation fragments that are the start of an alias."""

    def test_fragment_of_brand(self, resolver):
        """Test a brand name fragment resolves to the brand."""
        resolution = resolver.explain("pana")
        assert resolution.drug == "paracetamol"
        assert resolution.method == MatchMethod.ALIAS_FRAGMENT
        assert resolution.matched_term == "panadol"

    def test_fragment_too_short(self, resolver):
        """Test fragments below the minimum length are ignored."""
        assert resolver.explain("pa") is None

    def test_shortest_alias_wins(self, sample_data):
        """Test the shortest alias containing a fragment is chosen."""
        sample_data["brand_to_generic"]["augmentin duo"] = "amoxicillin"
        resolver = DrugIdentityResolver(RuleSetConfig.from_dict(sample_data))
        assert resolver.explain("augm").matched_term == "augmentin"


class TestGenericContainment:
    """Test canonical names found inside noisy text."""

    def test_generic_with_dose(self, resolver):
        """Test generic name with dose and form."""
        resolution = resolver.explain("ibuprofen 400mg tablet")
        assert resolution.drug == "ibuprofen"
        assert resolution.method == MatchMethod.GENERIC

    def test_longest_generic_wins(self, resolver):
        """Test the longest matching generic is chosen."""
        assert resolver.resolve("inj insulin glargine 10 units") == "insulin glargine"

    def test_tie_goes_to_earliest(self, resolver):
        """Test equal-length generic matches go to the earliest."""
        assert resolver.resolve("aspirin alcohol") == "aspirin"


class TestPartialMatch:
    """Test the loose token pass."""

    def test_truncated_generic(self, resolver):
        """Test truncated generic name resolution."""
        resolution = resolver.explain("paracet")
        assert resolution.drug == "paracetamol"
        assert resolution.method == MatchMethod.PARTIAL
        assert resolution.matched_term == "paracet"

    def test_noise_and_numbers_ignored(self, resolver):
        """Test dose units and numbers never resolve."""
        assert resolver.resolve("500 mg tablet daily") is None

    def test_shortest_candidate_wins(self, resolver):
        """Test the shortest partial candidate is chosen."""
        assert resolver.resolve("insul") == "insulin"


# ============================================================================
# Bad Input
# ============================================================================


class TestBadInput:
    """The resolver never raises."""

    @pytest.mark.parametrize("value", ["", "   ", "---", None, 42, ["ibuprofen"]])
    def test_returns_none(self, resolver, value):
        """Test blank input is unresolved."""
        assert resolver.resolve(value) is None

    def test_garbage(self, resolver):
        """Test unknown names are unresolved."""
        assert resolver.resolve("qwzx plvk") is None


class TestIngredients:
    """Test splitting compounds into ingredients."""

    def test_compound(self, resolver):
        """Test compound drugs split into ingredients."""
        assert resolver.ingredients("amoxicillin + clavulanic acid") == ("amoxicillin", "clavulanic acid")

    def test_single_drug(self, resolver):
        """Test a single drug is its own ingredient."""
        assert resolver.ingredients("ibuprofen") == ("ibuprofen",)

    def test_empty(self, resolver):
        """Test empty drug has no ingredients."""
        assert resolver.ingredients("") == ()


# ============================================================================
# Properties Over the Bundled Formulary
# ============================================================================


class TestBundledFormulary:
    """Identity properties that must hold for every shipped name."""

    def test_every_alias_resolves_to_its_target(self):
        """Test every bundled alias resolves to its target."""
        resolver = get_drug_resolver()
        for alias, target in get_ruleset().all_aliases.items():
            assert resolver.resolve(alias) == target, alias

    def test_every_canonical_drug_resolves_to_itself(self):
        """Test every bundled drug resolves to itself."""
        resolver = get_drug_resolver()
        for drug in get_ruleset().canonical_drugs:
            assert resolver.resolve(drug) == drug, drug

    @pytest.mark.parametrize(
        "raw_name,expected",
        [
            ("Calpol", "paracetamol"),
            ("Brufen", "ibuprofen"),
            ("Dolo-650", "paracetamol"),
            ("Augmentin 625", "amoxicillin + clavulanic acid"),
            ("Combiflam", "ibuprofen + paracetamol"),
            ("Vitamin D3 60000 IU", "vitamin d"),
            ("Lantus", "insulin glargine"),
            ("Ethanol", "alcohol"),
        ],
    )
    def test_common_names(self, raw_name, expected):
        """Test common prescription names against the bundled formulary."""
        assert get_drug_resolver().resolve(raw_name) == expected
