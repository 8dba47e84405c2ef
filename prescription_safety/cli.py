"""
Prescription Safety Engine - Command Line Interface

Check a prescription, see how medication names resolve, or print
per-condition prescribing guidance without starting the API server.

Usage:
    rx-safety check Warfarin Aspirin
    rx-safety check Brufen --condition renal_impairment
    rx-safety resolve "Augmentin 625" calpol
    rx-safety guidance pregnancy asthma
    rx-safety stats --json

Exit status: 0 when clean, 1 when warnings were found, 2 on a rule
dataset error.
"""

import argparse
from dataclasses import dataclass
import json
import logging
from pathlib import Path
import sys
from typing import Any

from prescription_safety.core.config import settings
from prescription_safety.schemas.base import InteractionReportMode, Severity, WarningKind
from prescription_safety.services.contraindications import ContraindicationRuleSet
from prescription_safety.services.drug_resolver import DrugIdentityResolver
from prescription_safety.services.interactions import InteractionRuleSet
from prescription_safety.services.prescribing_guidance import PrescribingGuidanceService
from prescription_safety.services.rule_config import RuleConfigurationError, RuleSetConfig, load_ruleset
from prescription_safety.services.safety_evaluator import EvaluationResult, SafetyEvaluator

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_WARNINGS = 1
EXIT_CONFIG_ERROR = 2


# ============================================================================
# Terminal Output
# ============================================================================


class Colors:
    """ANSI color codes for terminal output."""

    BOLD = "\033[1m"
    RED = "\033[91m"
    YELLOW = "\033[93m"
    GREEN = "\033[92m"
    CYAN = "\033[96m"
    GRAY = "\033[90m"
    END = "\033[0m"

    enabled = True

    @classmethod
    def wrap(cls, text: str, *codes: str) -> str:
        if not cls.enabled:
            return text
        return "".join(codes) + text + cls.END


def print_header(text: str, char: str = "=") -> None:
    """Print a formatted header."""
    width = 72
    print()
    print(Colors.wrap(char * width, Colors.BOLD, Colors.CYAN))
    print(Colors.wrap(text.center(width), Colors.BOLD, Colors.CYAN))
    print(Colors.wrap(char * width, Colors.BOLD, Colors.CYAN))


def severity_badge(severity: Severity) -> str:
    if severity == Severity.CONTRAINDICATED:
        return Colors.wrap("CONTRAINDICATED", Colors.BOLD, Colors.RED)
    return Colors.wrap("CAUTION", Colors.BOLD, Colors.YELLOW)


# ============================================================================
# Engine
# ============================================================================


@dataclass
class Engine:
    """All services built from one rule dataset."""

    ruleset: RuleSetConfig
    resolver: DrugIdentityResolver
    contraindications: ContraindicationRuleSet
    interactions: InteractionRuleSet
    evaluator: SafetyEvaluator
    guidance: PrescribingGuidanceService

    @classmethod
    def load(cls, path: Path | None = None, report_mode: InteractionReportMode | None = None) -> "Engine":
        ruleset = load_ruleset(path)
        resolver = DrugIdentityResolver(ruleset)
        contraindications = ContraindicationRuleSet(ruleset)
        interactions = InteractionRuleSet(ruleset)
        return cls(
            ruleset=ruleset,
            resolver=resolver,
            contraindications=contraindications,
            interactions=interactions,
            evaluator=SafetyEvaluator(resolver, contraindications, interactions, report_mode=report_mode),
            guidance=PrescribingGuidanceService(ruleset, contraindications),
        )


def _emit_json(payload: Any) -> None:
    print(json.dumps(payload, indent=2))


# ============================================================================
# Commands
# ============================================================================


def cmd_check(engine: Engine, args: argparse.Namespace) -> int:
    result: EvaluationResult = engine.evaluator.check({"conditions": args.condition}, args.medications)

    if args.json:
        _emit_json(
            {
                "ruleset_version": engine.ruleset.version,
                "warnings": [w.to_dict() for w in result.warnings],
                "unresolved": result.unresolved,
                "requires_acknowledgement": result.requires_acknowledgement,
                "highest_severity": result.highest_severity.value if result.highest_severity else None,
                "counts": result.counts,
            }
        )
        return EXIT_WARNINGS if result.warnings else EXIT_OK

    print_header("PRESCRIPTION SAFETY CHECK")
    conditions = ", ".join(c.value for c in result.conditions) or "none"
    print(f"  Conditions: {conditions}")
    for resolution in result.resolutions:
        target = resolution.drug or Colors.wrap("unresolved", Colors.GRAY)
        print(f"  - {resolution.raw_name} -> {target}")

    print()
    if not result.warnings:
        print(Colors.wrap("  No warnings.", Colors.GREEN))
        return EXIT_OK

    for warning in result.warnings:
        if warning.kind == WarningKind.DRUG_DRUG:
            names = " + ".join(warning.display_names)
            print(f"  [{severity_badge(warning.severity)}] {warning.message}: {names}")
        else:
            print(
                f"  [{severity_badge(warning.severity)}] {warning.drug_display_name} "
                f"({warning.condition.value}): {warning.message}"
            )
    return EXIT_WARNINGS


def cmd_resolve(engine: Engine, args: argparse.Namespace) -> int:
    rows = []
    for name in args.names:
        resolution = engine.resolver.explain(name)
        rows.append(
            {
                "raw_name": name,
                "drug": resolution.drug if resolution else None,
                "matched_term": resolution.matched_term if resolution else None,
                "method": resolution.method.value if resolution else None,
            }
        )

    if args.json:
        _emit_json(rows)
        return EXIT_OK

    for row in rows:
        if row["drug"] is None:
            print(f"  {row['raw_name']}: {Colors.wrap('unresolved', Colors.GRAY)}")
        else:
            print(f"  {row['raw_name']}: {row['drug']} (via {row['method']} '{row['matched_term']}')")
    return EXIT_OK


def cmd_guidance(engine: Engine, args: argparse.Namespace) -> int:
    guidance = engine.guidance.for_conditions(args.conditions)

    if args.json:
        _emit_json([g.to_dict() for g in guidance])
        return EXIT_OK

    for item in guidance:
        print_header(item.label.upper(), "-")
        print(f"  {item.advice}")
        if item.contraindicated:
            print(Colors.wrap("  Contraindicated:", Colors.BOLD, Colors.RED))
            for advisory in item.contraindicated:
                print(f"    - {advisory.drug}: {advisory.message}")
        if item.caution:
            print(Colors.wrap("  Use with caution:", Colors.BOLD, Colors.YELLOW))
            for advisory in item.caution:
                print(f"    - {advisory.drug}: {advisory.message}")
        if item.alternatives:
            print(Colors.wrap("  Safer alternatives:", Colors.BOLD, Colors.GREEN))
            for note in item.alternatives:
                print(f"    - {note}")
    return EXIT_OK


def cmd_stats(engine: Engine, args: argparse.Namespace) -> int:
    stats = {
        "ruleset_version": engine.ruleset.version,
        "format_version": engine.ruleset.format_version,
        "resolver": engine.resolver.get_stats(),
        "contraindications": engine.contraindications.get_stats(),
        "interactions": engine.interactions.get_stats(),
    }
    if args.json:
        _emit_json(stats)
        return EXIT_OK

    print_header(f"RULE DATASET {engine.ruleset.version}")
    for section in ("resolver", "contraindications", "interactions"):
        print(Colors.wrap(f"  {section}:", Colors.BOLD))
        for key, value in stats[section].items():
            print(f"    {key}: {value}")
    return EXIT_OK


# ============================================================================
# Main Entry Point
# ============================================================================


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="rx-safety",
        description="Prescription Safety Engine - drug interaction and contraindication checks",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  rx-safety check Warfarin Aspirin
  rx-safety check Brufen --condition renal_impairment
  rx-safety resolve calpol "Augmentin 625"
  rx-safety guidance pregnancy
""",
    )
    parser.add_argument("--ruleset", type=Path, help="Path to a rule dataset JSON file")
    parser.add_argument("--json", action="store_true", help="Print machine-readable JSON")
    parser.add_argument("--no-color", action="store_true", help="Disable colored output")
    parser.add_argument("--log-level", default=settings.log_level, help="Logging level (default: %(default)s)")

    subparsers = parser.add_subparsers(dest="command", required=True)

    check = subparsers.add_parser("check", help="Check a medication list")
    check.add_argument("medications", nargs="+", help="Medication names")
    check.add_argument(
        "--condition", "-c", action="append", default=[], help="Patient condition (repeatable)"
    )
    check.add_argument(
        "--all", action="store_true", help="Report every dangerous pair, not just the first"
    )
    check.set_defaults(handler=cmd_check)

    resolve = subparsers.add_parser("resolve", help="Show how medication names resolve")
    resolve.add_argument("names", nargs="+", help="Medication names")
    resolve.set_defaults(handler=cmd_resolve)

    guidance = subparsers.add_parser("guidance", help="Prescribing guidance for conditions")
    guidance.add_argument("conditions", nargs="+", help="Conditions, e.g. pregnancy asthma")
    guidance.set_defaults(handler=cmd_guidance)

    stats = subparsers.add_parser("stats", help="Rule dataset statistics")
    stats.set_defaults(handler=cmd_stats)

    return parser


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(level=args.log_level.upper(), format="%(levelname)s %(name)s: %(message)s")
    Colors.enabled = not args.no_color and not args.json and sys.stdout.isatty()

    report_mode = InteractionReportMode.ALL if getattr(args, "all", False) else None
    try:
        engine = Engine.load(args.ruleset, report_mode=report_mode)
    except RuleConfigurationError as e:
        print(f"Error: invalid rule dataset: {e}", file=sys.stderr)
        return EXIT_CONFIG_ERROR

    return args.handler(engine, args)


if __name__ == "__main__":
    sys.exit(main())
