"""Rule Configuration Loader.

Loads the versioned formulary dataset that drives the safety engine:
- Condition labels and safer-alternative notes
- Drug -> condition contraindication rules with explicit severity
- Informal aliases and brand -> generic mappings
- Explicit interaction pairs and class-group expansions

The dataset is validated as a whole when it is loaded. Any contradiction
(conflicting aliases, unknown conditions, undeclared groups, ...) raises
RuleConfigurationError so that a bad dataset fails at startup rather than
producing silently wrong warnings.
"""

from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
import itertools
import json
import logging
from pathlib import Path
import re
import threading
from types import MappingProxyType
from typing import Any

from prescription_safety.core.config import settings
from prescription_safety.schemas.base import Condition, Severity

logger = logging.getLogger(__name__)

DEFAULT_RULESET_FILE = Path(__file__).parent.parent / "data" / "formulary.json"

SUPPORTED_FORMAT_VERSIONS = (1, 2)
CURRENT_FORMAT_VERSION = 2

COMPOUND_SEPARATOR = " + "
GROUP_REFERENCE_PREFIX = "@"

# Shown for a condition when the dataset gives no prescribing advice
DEFAULT_CONDITION_ADVICE = "Exercise caution when prescribing."

# Legacy severity keywords, only consulted while migrating old datasets
_CONTRAINDICATED_KEYWORDS = ("contraindicated", "avoid", "do not")

_NON_ALNUM = re.compile(r"[^a-z0-9]+")


class RuleConfigurationError(ValueError):
    """Raised when the rule dataset is malformed or self-contradictory."""


# ============================================================================
# Normalization helpers
# ============================================================================


def normalize_text(value: str) -> str:
    """Lowercase, turn every non-alphanumeric run into a space, collapse."""
    return _NON_ALNUM.sub(" ", value.lower()).strip()


def normalize_drug_name(value: str) -> str:
    """Normalize a canonical drug id, keeping compound ingredients apart.

    "Amoxicillin+Clavulanic Acid" -> "amoxicillin + clavulanic acid"
    """
    parts = [normalize_text(part) for part in value.split("+")]
    return COMPOUND_SEPARATOR.join(part for part in parts if part)


def split_ingredients(drug: str) -> tuple[str, ...]:
    """Split a canonical drug id into its ingredients."""
    return tuple(part for part in drug.split(COMPOUND_SEPARATOR) if part)


def classify_severity(message: str) -> Severity:
    """Infer severity from free-text advice.

    Only used to migrate rules that predate the explicit severity field.
    """
    lowered = message.lower()
    if any(keyword in lowered for keyword in _CONTRAINDICATED_KEYWORDS):
        return Severity.CONTRAINDICATED
    return Severity.CAUTION


def _reject_duplicate_keys(pairs: list[tuple[str, Any]]) -> dict[str, Any]:
    result: dict[str, Any] = {}
    for key, value in pairs:
        if key in result:
            raise RuleConfigurationError(f"Duplicate key in rule dataset: {key!r}")
        result[key] = value
    return result


# ============================================================================
# Rule types
# ============================================================================


@dataclass(frozen=True)
class ContraindicationRule:
    """A drug that should be avoided or used with care for a condition."""

    drug: str
    condition: Condition
    severity: Severity
    message: str
    source: str = ""


@dataclass(frozen=True)
class InteractionRule:
    """A dangerous drug pair, stored with drug_a < drug_b."""

    drug_a: str
    drug_b: str
    origin: str = "explicit"  # "explicit" or "group:<label>"

    def __post_init__(self) -> None:
        if self.drug_a >= self.drug_b:
            raise ValueError(f"Interaction pair must be ordered and distinct: {self.drug_a!r}, {self.drug_b!r}")

    @property
    def key(self) -> str:
        return pair_key(self.drug_a, self.drug_b)


def pair_key(a: str, b: str) -> str:
    """Order-independent storage key for a drug pair."""
    first, second = sorted((a, b))
    return f"{first}|{second}"


@dataclass(frozen=True)
class ConditionInfo:
    """Display label, prescribing advice and safer alternatives for a condition."""

    condition: Condition
    label: str
    alternatives: tuple[str, ...] = ()
    advice: str = DEFAULT_CONDITION_ADVICE


@dataclass(frozen=True)
class GroupPair:
    """A class-level interaction, expanded to drug pairs at load time."""

    label: str
    left: tuple[str, ...]
    right: tuple[str, ...]


# ============================================================================
# Rule set configuration
# ============================================================================


@dataclass(frozen=True)
class RuleSetConfig:
    """Validated, read-only view of the rule dataset."""

    version: str
    format_version: int
    description: str
    conditions: Mapping[Condition, ConditionInfo]
    contraindications: Mapping[str, tuple[ContraindicationRule, ...]]
    aliases: Mapping[str, str]
    brand_to_generic: Mapping[str, str]
    generics: tuple[str, ...]
    groups: Mapping[str, tuple[str, ...]]
    interaction_pairs: tuple[InteractionRule, ...]
    group_pairs: tuple[GroupPair, ...]
    noise_tokens: frozenset[str]
    canonical_drugs: frozenset[str]
    interactions: Mapping[str, InteractionRule] = field(default_factory=dict)

    @property
    def all_aliases(self) -> Mapping[str, str]:
        """Both alias layers merged, keyed by normalized alias text."""
        merged = dict(self.aliases)
        merged.update(self.brand_to_generic)
        return MappingProxyType(merged)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "RuleSetConfig":
        """Build and validate a rule set from a parsed dataset mapping."""
        return _RuleSetBuilder(data).build()


class _RuleSetBuilder:
    """Validates a raw dataset and assembles a RuleSetConfig."""

    def __init__(self, data: Mapping[str, Any]) -> None:
        if not isinstance(data, Mapping):
            raise RuleConfigurationError("Rule dataset must be a JSON object")
        self.data = data
        self.format_version = data.get("format_version", CURRENT_FORMAT_VERSION)
        if self.format_version not in SUPPORTED_FORMAT_VERSIONS:
            raise RuleConfigurationError(
                f"Unsupported format_version {self.format_version!r}; "
                f"supported: {', '.join(str(v) for v in SUPPORTED_FORMAT_VERSIONS)}"
            )
        self.migrated_rules = 0

    def build(self) -> RuleSetConfig:
        conditions = self._build_conditions()
        contraindications = self._build_contraindications()
        generics = self._build_generics()
        aliases = self._build_alias_layer("aliases")
        brands = self._build_alias_layer("brand_to_generic")
        merged_aliases = self._merge_alias_layers(aliases, brands)

        groups = self._build_groups(merged_aliases)
        explicit_pairs = self._build_explicit_pairs(merged_aliases)
        group_pairs = self._build_group_pairs(groups, merged_aliases)
        interactions = self._expand_interactions(explicit_pairs, group_pairs, groups)

        noise_tokens = self._strings(self.data.get("noise_tokens"), "noise_tokens")
        canonical = set(generics) | set(contraindications) | set(merged_aliases.values())
        for rule in interactions.values():
            canonical.update((rule.drug_a, rule.drug_b))
        for drug in list(canonical):
            canonical.update(split_ingredients(drug))

        self._check_aliases_against_canonical(merged_aliases, canonical)

        if self.migrated_rules:
            logger.info(
                f"Migrated {self.migrated_rules} contraindication rules to explicit severity "
                f"(format_version {self.format_version})"
            )

        return RuleSetConfig(
            version=str(self.data.get("version", "unversioned")),
            format_version=self.format_version,
            description=str(self.data.get("description", "")),
            conditions=MappingProxyType(conditions),
            contraindications=MappingProxyType(contraindications),
            aliases=MappingProxyType(aliases),
            brand_to_generic=MappingProxyType(brands),
            generics=tuple(generics),
            groups=MappingProxyType(groups),
            interaction_pairs=tuple(explicit_pairs),
            group_pairs=tuple(group_pairs),
            noise_tokens=frozenset(normalize_text(t) for t in noise_tokens),
            canonical_drugs=frozenset(canonical),
            interactions=MappingProxyType(interactions),
        )

    # -- Shape checks -------------------------------------------------------

    def _require_type(self, value: Any, expected: type, where: str) -> Any:
        if not isinstance(value, expected):
            kind = "an object" if expected is Mapping else "a list"
            raise RuleConfigurationError(f"{where} must be {kind}, not {type(value).__name__}")
        return value

    def _section(self, name: str, expected: type) -> Any:
        value = self.data.get(name)
        if value is None:
            return {} if expected is Mapping else []
        return self._require_type(value, expected, name)

    def _strings(self, value: Any, where: str) -> list[str]:
        if value is None:
            return []
        items = self._require_type(value, list, where)
        for item in items:
            if not isinstance(item, str):
                raise RuleConfigurationError(f"{where} must only contain strings, found {item!r}")
        return items

    # -- Conditions ---------------------------------------------------------

    def _parse_condition(self, value: str, where: str) -> Condition:
        condition = Condition.parse(value)
        if condition is None:
            raise RuleConfigurationError(f"Unknown condition {value!r} in {where}")
        return condition

    def _build_conditions(self) -> dict[Condition, ConditionInfo]:
        raw = self._section("conditions", Mapping)
        conditions: dict[Condition, ConditionInfo] = {}
        for name, entry in raw.items():
            condition = self._parse_condition(name, "conditions")
            where = f"conditions[{name!r}]"
            entry = self._require_type(entry or {}, Mapping, where)
            label, advice = entry.get("label"), entry.get("advice")
            for key, value in (("label", label), ("advice", advice)):
                if value is not None and not isinstance(value, str):
                    raise RuleConfigurationError(f"{where}.{key} must be a string")
            conditions[condition] = ConditionInfo(
                condition=condition,
                label=label or condition.value.replace("_", " ").title(),
                alternatives=tuple(self._strings(entry.get("alternatives"), f"{where}.alternatives")),
                advice=(advice or "").strip() or DEFAULT_CONDITION_ADVICE,
            )
        # Every condition gets an entry so guidance can always be rendered
        for condition in Condition:
            conditions.setdefault(
                condition,
                ConditionInfo(condition=condition, label=condition.value.replace("_", " ").title()),
            )
        return conditions

    # -- Contraindications --------------------------------------------------

    def _build_contraindications(self) -> dict[str, tuple[ContraindicationRule, ...]]:
        raw = self._section("contraindications", Mapping)
        result: dict[str, tuple[ContraindicationRule, ...]] = {}
        for raw_drug, entry in raw.items():
            drug = self._require_name(raw_drug, "contraindications")
            if drug in result:
                raise RuleConfigurationError(f"Drug {drug!r} declared twice in contraindications")

            where = f"contraindications[{raw_drug!r}]"
            entry = self._require_type(entry or {}, Mapping, where)
            if self.format_version == 1:
                # v1 layout: {drug: {condition: message}}
                source, declared = "", entry
            else:
                source = entry.get("source") or ""
                if not isinstance(source, str):
                    raise RuleConfigurationError(f"{where}.source must be a string")
                declared = self._require_type(entry.get("conditions") or {}, Mapping, f"{where}.conditions")

            rules = []
            for raw_condition, definition in declared.items():
                condition = self._parse_condition(raw_condition, f"contraindications[{drug!r}]")
                rules.append(self._build_rule(drug, condition, definition, source))
            result[drug] = tuple(rules)
        return result

    def _build_rule(self, drug: str, condition: Condition, definition: Any, source: str) -> ContraindicationRule:
        where = f"contraindications[{drug!r}][{condition.value!r}]"
        if isinstance(definition, str):
            message, severity_value = definition, None
        elif isinstance(definition, Mapping):
            message, severity_value = definition.get("message"), definition.get("severity")
        else:
            raise RuleConfigurationError(f"Invalid rule definition at {where}")

        if not isinstance(message, str) or not message.strip():
            raise RuleConfigurationError(f"Missing message at {where}")

        if severity_value is None:
            severity = classify_severity(message)
            self.migrated_rules += 1
            logger.debug(f"Migrated severity for {where} -> {severity.value}")
        else:
            try:
                severity = Severity(str(severity_value).lower())
            except ValueError:
                raise RuleConfigurationError(f"Invalid severity {severity_value!r} at {where}") from None

        return ContraindicationRule(
            drug=drug,
            condition=condition,
            severity=severity,
            message=message.strip(),
            source=source or "",
        )

    # -- Names and aliases --------------------------------------------------

    def _require_name(self, value: Any, where: str) -> str:
        name = normalize_drug_name(value) if isinstance(value, str) else ""
        if not name:
            raise RuleConfigurationError(f"Empty drug name in {where}")
        return name

    def _build_generics(self) -> list[str]:
        seen: dict[str, None] = {}
        for value in self._section("generics", list):
            seen[self._require_name(value, "generics")] = None
        return list(seen)

    def _build_alias_layer(self, section: str) -> dict[str, str]:
        layer: dict[str, str] = {}
        for raw_alias, raw_target in self._section(section, Mapping).items():
            alias = normalize_text(raw_alias) if isinstance(raw_alias, str) else ""
            if not alias:
                raise RuleConfigurationError(f"Empty alias in {section}")
            target = self._require_name(raw_target, f"{section}[{raw_alias!r}]")
            if alias == normalize_text(target):
                logger.debug(f"Skipping identity alias {raw_alias!r} in {section}")
                continue
            existing = layer.get(alias)
            if existing is not None and existing != target:
                raise RuleConfigurationError(
                    f"Alias {raw_alias!r} in {section} maps to both {existing!r} and {target!r}"
                )
            layer[alias] = target
        return layer

    def _merge_alias_layers(self, aliases: dict[str, str], brands: dict[str, str]) -> dict[str, str]:
        merged = dict(aliases)
        for alias, target in brands.items():
            existing = merged.get(alias)
            if existing is not None and existing != target:
                raise RuleConfigurationError(
                    f"Alias {alias!r} maps to {existing!r} in aliases but {target!r} in brand_to_generic"
                )
            merged[alias] = target

        for alias, target in merged.items():
            if normalize_text(target) in merged:
                raise RuleConfigurationError(f"Alias {alias!r} targets {target!r}, which is itself an alias")
        return merged

    def _check_aliases_against_canonical(self, aliases: Mapping[str, str], canonical: Iterable[str]) -> None:
        by_match_key: dict[str, str] = {}
        for drug in canonical:
            key = normalize_text(drug)
            other = by_match_key.get(key)
            if other is not None and other != drug:
                raise RuleConfigurationError(f"Drug names {other!r} and {drug!r} normalize to the same text")
            by_match_key[key] = drug

        for alias, target in aliases.items():
            drug = by_match_key.get(alias)
            if drug is not None and drug != target:
                raise RuleConfigurationError(
                    f"Alias {alias!r} -> {target!r} shadows the canonical drug {drug!r}"
                )

    def _canonicalize_member(self, value: Any, aliases: Mapping[str, str], where: str) -> str:
        name = self._require_name(value, where)
        return aliases.get(normalize_text(name), name)

    # -- Interactions -------------------------------------------------------

    def _build_groups(self, aliases: Mapping[str, str]) -> dict[str, tuple[str, ...]]:
        groups: dict[str, tuple[str, ...]] = {}
        for name, members in self._section("groups", Mapping).items():
            resolved: dict[str, None] = {}
            for member in self._require_type(members or [], list, f"groups[{name!r}]"):
                resolved[self._canonicalize_member(member, aliases, f"groups[{name!r}]")] = None
            groups[name] = tuple(resolved)
        return groups

    def _build_explicit_pairs(self, aliases: Mapping[str, str]) -> list[tuple[str, str]]:
        pairs = []
        for index, pair in enumerate(self._section("interaction_pairs", list)):
            where = f"interaction_pairs[{index}]"
            if not isinstance(pair, list | tuple) or len(pair) != 2:
                raise RuleConfigurationError(f"{where} must list exactly two drugs")
            a = self._canonicalize_member(pair[0], aliases, where)
            b = self._canonicalize_member(pair[1], aliases, where)
            if a == b:
                raise RuleConfigurationError(f"{where} pairs {a!r} with itself")
            pairs.append((a, b))
        return pairs

    def _build_group_pairs(
        self, groups: Mapping[str, tuple[str, ...]], aliases: Mapping[str, str]
    ) -> list[GroupPair]:
        result = []
        for index, entry in enumerate(self._section("group_pairs", list)):
            if not isinstance(entry, Mapping):
                raise RuleConfigurationError(f"group_pairs[{index}] must be an object with left and right")
            label = entry.get("label") or f"group_pairs[{index}]"
            sides = []
            for side in ("left", "right"):
                members = self._require_type(entry.get(side) or [], list, f"Group pair {label!r} {side}")
                if not members:
                    raise RuleConfigurationError(f"Group pair {label!r} has no {side} members")
                sides.append(tuple(self._canonicalize_side_member(m, groups, aliases, label) for m in members))
            result.append(GroupPair(label=label, left=sides[0], right=sides[1]))
        return result

    def _canonicalize_side_member(
        self, member: str, groups: Mapping[str, tuple[str, ...]], aliases: Mapping[str, str], label: str
    ) -> str:
        if isinstance(member, str) and member.startswith(GROUP_REFERENCE_PREFIX):
            group = member[len(GROUP_REFERENCE_PREFIX):]
            if group not in groups:
                raise RuleConfigurationError(f"Group pair {label!r} references undeclared group {group!r}")
            return member
        return self._canonicalize_member(member, aliases, f"group pair {label!r}")

    def _expand_interactions(
        self,
        explicit: list[tuple[str, str]],
        group_pairs: list[GroupPair],
        groups: Mapping[str, tuple[str, ...]],
    ) -> dict[str, InteractionRule]:
        interactions: dict[str, InteractionRule] = {}

        def add(a: str, b: str, origin: str) -> None:
            key = pair_key(a, b)
            if key not in interactions:
                first, second = sorted((a, b))
                interactions[key] = InteractionRule(drug_a=first, drug_b=second, origin=origin)

        for a, b in explicit:
            add(a, b, "explicit")

        def members(side: tuple[str, ...]) -> list[str]:
            expanded: list[str] = []
            for member in side:
                if member.startswith(GROUP_REFERENCE_PREFIX):
                    expanded.extend(groups[member[len(GROUP_REFERENCE_PREFIX):]])
                else:
                    expanded.append(member)
            return expanded

        for group_pair in group_pairs:
            for a, b in itertools.product(members(group_pair.left), members(group_pair.right)):
                if a == b:
                    logger.debug(f"Skipping self-pair {a!r} produced by group pair {group_pair.label!r}")
                    continue
                add(a, b, f"group:{group_pair.label}")

        return interactions


# ============================================================================
# Loading
# ============================================================================


def load_ruleset(path: Path | None = None) -> RuleSetConfig:
    """Load and validate a rule dataset from a JSON file.

    Args:
        path: Dataset file. Defaults to settings.ruleset_path, then the
            bundled formulary.

    Raises:
        RuleConfigurationError: If the file is missing, unparsable or invalid.
    """
    path = Path(path or settings.ruleset_path or DEFAULT_RULESET_FILE)
    try:
        text = path.read_text(encoding="utf-8")
    except OSError as e:
        raise RuleConfigurationError(f"Cannot read rule dataset {path}: {e}") from e

    try:
        data = json.loads(text, object_pairs_hook=_reject_duplicate_keys)
    except json.JSONDecodeError as e:
        raise RuleConfigurationError(f"Invalid JSON in rule dataset {path}: {e}") from e

    ruleset = RuleSetConfig.from_dict(data)
    logger.info(
        f"Loaded rule dataset {ruleset.version} from {path.name}: "
        f"{len(ruleset.contraindications)} drugs with contraindications, "
        f"{len(ruleset.all_aliases)} aliases, {len(ruleset.interactions)} interaction pairs"
    )
    return ruleset


# Singleton instance and lock for thread safety
_ruleset: RuleSetConfig | None = None
_ruleset_lock = threading.Lock()


def get_ruleset() -> RuleSetConfig:
    """Get the singleton rule set, loading it on first use."""
    global _ruleset
    if _ruleset is None:
        with _ruleset_lock:
            if _ruleset is None:
                _ruleset = load_ruleset()
    return _ruleset


def reset_ruleset() -> None:
    """Reset the singleton instance (for testing)."""
    global _ruleset
    with _ruleset_lock:
        _ruleset = None
