"""Drug Identity Resolver.

Maps noisy medication names (brand names, informal terms, dictation
fragments, "Brufen 400mg tablet") to canonical drug ids.

Resolution runs in a fixed precedence order:
1. Exact alias or exact canonical name
2. Alias contained in the raw text (longest alias wins)
3. Raw text is the start of an alias (speech fragments)
4. Canonical name contained in the raw text (longest name wins)
5. Loose token overlap with a canonical name

Alias matches always outrank canonical matches. Every pass is driven by an
index built once at construction, so lookups do not scan the tables.
"""

from bisect import bisect_left
from collections.abc import Iterable
from dataclasses import dataclass
import logging
import threading

from prescription_safety.core.config import settings
from prescription_safety.schemas.base import MatchMethod
from prescription_safety.services.rule_config import (
    RuleSetConfig,
    get_ruleset,
    normalize_text,
    split_ingredients,
)

logger = logging.getLogger(__name__)

# Loose-pass tokens shorter than this are ignored
MIN_PARTIAL_TOKEN_LENGTH = 3


@dataclass(frozen=True)
class Resolution:
    """How a raw name was resolved."""

    raw_name: str
    drug: str
    matched_term: str
    method: MatchMethod


@dataclass(frozen=True)
class _IndexedName:
    """A normalized alias or canonical name, split into tokens."""

    text: str
    tokens: tuple[str, ...]
    target: str


def _build_token_index(names: Iterable[tuple[str, str]]) -> dict[str, list[_IndexedName]]:
    """Index names by their first token."""
    index: dict[str, list[_IndexedName]] = {}
    for text, target in names:
        tokens = tuple(text.split())
        index.setdefault(tokens[0], []).append(_IndexedName(text=text, tokens=tokens, target=target))
    return index


class DrugIdentityResolver:
    """Resolve raw medication names to canonical drug ids."""

    def __init__(
        self,
        ruleset: RuleSetConfig | None = None,
        min_fragment_length: int | None = None,
        min_prefix_match_length: int | None = None,
    ) -> None:
        self._ruleset = ruleset or get_ruleset()
        self.min_fragment_length = (
            settings.min_fragment_length if min_fragment_length is None else min_fragment_length
        )
        self.min_prefix_match_length = (
            settings.min_prefix_match_length if min_prefix_match_length is None else min_prefix_match_length
        )

        self._aliases: dict[str, str] = dict(self._ruleset.all_aliases)
        self._canonical: dict[str, str] = {normalize_text(d): d for d in self._ruleset.canonical_drugs}
        self._noise_tokens = self._ruleset.noise_tokens

        self._alias_index = _build_token_index(self._aliases.items())
        self._canonical_index = _build_token_index(self._canonical.items())
        self._sorted_aliases = sorted(self._aliases)
        self._canonical_tokens = sorted(
            {(token, drug) for text, drug in self._canonical.items() for token in text.split()}
        )

        logger.info(
            f"Drug identity resolver initialized with {len(self._canonical)} canonical drugs "
            f"and {len(self._aliases)} aliases"
        )

    @property
    def canonical_drugs(self) -> frozenset[str]:
        return self._ruleset.canonical_drugs

    def resolve(self, raw_name: str) -> str | None:
        """Resolve a raw name to a canonical drug id, or None if unknown."""
        resolution = self.explain(raw_name)
        return resolution.drug if resolution else None

    def explain(self, raw_name: str) -> Resolution | None:
        """Resolve a raw name and report which term and pass matched."""
        if not isinstance(raw_name, str):
            return None
        text = normalize_text(raw_name)
        if not text:
            return None

        if text in self._aliases:
            return Resolution(raw_name, self._aliases[text], text, MatchMethod.EXACT_ALIAS)
        if text in self._canonical:
            return Resolution(raw_name, self._canonical[text], text, MatchMethod.EXACT_GENERIC)

        tokens = text.split()
        passes = (
            (MatchMethod.ALIAS, lambda: self._forward_match(tokens, self._alias_index)),
            (MatchMethod.ALIAS_FRAGMENT, lambda: self._fragment_match(text)),
            (MatchMethod.GENERIC, lambda: self._forward_match(tokens, self._canonical_index)),
            (MatchMethod.PARTIAL, lambda: self._partial_match(tokens)),
        )
        for method, run in passes:
            match = run()
            if match is not None:
                matched_term, drug = match
                return Resolution(raw_name, drug, matched_term, method)

        logger.debug(f"Unresolved medication name: {raw_name!r}")
        return None

    def ingredients(self, drug: str) -> tuple[str, ...]:
        """Ingredients of a canonical drug; a single drug is its own ingredient."""
        if not drug:
            return ()
        return split_ingredients(drug)

    # ------------------------------------------------------------------
    # Matching passes
    # ------------------------------------------------------------------

    def _forward_match(
        self, tokens: list[str], index: dict[str, list[_IndexedName]]
    ) -> tuple[str, str] | None:
        """Find the longest indexed name contained in the token sequence."""
        best: tuple[tuple[int, int, str], _IndexedName] | None = None
        for position, token in enumerate(tokens):
            for entry in self._candidates(token, index):
                if not self._matches_at(tokens, position, entry.tokens):
                    continue
                rank = (-len(entry.text), position, entry.text)
                if best is None or rank < best[0]:
                    best = (rank, entry)
        if best is None:
            return None
        return best[1].text, best[1].target

    def _candidates(self, token: str, index: dict[str, list[_IndexedName]]) -> list[_IndexedName]:
        candidates = list(index.get(token, ()))
        # Single-token names may also match as a prefix ("brufen400")
        for length in range(self.min_prefix_match_length, len(token)):
            candidates.extend(e for e in index.get(token[:length], ()) if len(e.tokens) == 1)
        return candidates

    def _matches_at(self, tokens: list[str], position: int, name_tokens: tuple[str, ...]) -> bool:
        end = position + len(name_tokens)
        if end > len(tokens):
            return False
        if list(name_tokens[:-1]) != tokens[position : end - 1]:
            return False
        last, raw_last = name_tokens[-1], tokens[end - 1]
        return raw_last == last or (len(last) >= self.min_prefix_match_length and raw_last.startswith(last))

    def _fragment_match(self, text: str) -> tuple[str, str] | None:
        """Whole raw text is the beginning of an alias."""
        if len(text) < self.min_fragment_length:
            return None
        matches = []
        i = bisect_left(self._sorted_aliases, text)
        while i < len(self._sorted_aliases) and self._sorted_aliases[i].startswith(text):
            matches.append(self._sorted_aliases[i])
            i += 1
        if not matches:
            return None
        alias = min(matches, key=lambda a: (len(a), a))
        return alias, self._aliases[alias]

    def _partial_match(self, tokens: list[str]) -> tuple[str, str] | None:
        """First meaningful token overlapping a canonical name."""
        for token in tokens:
            if len(token) < MIN_PARTIAL_TOKEN_LENGTH or token.isdigit() or token in self._noise_tokens:
                continue

            candidates = set()
            i = bisect_left(self._canonical_tokens, (token,))
            while i < len(self._canonical_tokens) and self._canonical_tokens[i][0].startswith(token):
                candidates.add(self._canonical_tokens[i][1])
                i += 1
            for length in range(MIN_PARTIAL_TOKEN_LENGTH, len(token)):
                drug = self._canonical.get(token[:length])
                if drug is not None:
                    candidates.add(drug)

            if candidates:
                return token, min(candidates, key=lambda d: (len(d), d))
        return None

    def get_stats(self) -> dict[str, int]:
        """Get statistics about the resolver's name tables."""
        return {
            "canonical_drugs": len(self._canonical),
            "aliases": len(self._ruleset.aliases),
            "brand_names": len(self._ruleset.brand_to_generic),
            "total_aliases": len(self._aliases),
        }


# Singleton instance and lock for thread safety
_drug_resolver: DrugIdentityResolver | None = None
_drug_resolver_lock = threading.Lock()


def get_drug_resolver() -> DrugIdentityResolver:
    """Get the singleton drug identity resolver."""
    global _drug_resolver
    if _drug_resolver is None:
        with _drug_resolver_lock:
            if _drug_resolver is None:
                _drug_resolver = DrugIdentityResolver()
    return _drug_resolver


def reset_drug_resolver() -> None:
    """Reset the singleton instance (for testing)."""
    global _drug_resolver
    with _drug_resolver_lock:
        _drug_resolver = None
