from __future__ import annotations

import argparse
from typing import Sequence

from govgate.config import Settings, get_settings
from govgate.core.errors import ExitCode, main_with_error_handling
from govgate.core.reasons import Verdict
from govgate.logging import configure_logging


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="govgate", description="GovGate governance gateway CLI")
    parser.add_argument("--log-level", help="Override GOVGATE_LOG_LEVEL")
    subparsers = parser.add_subparsers(dest="command")

    validate_parser = subparsers.add_parser(
        "validate-config", help="Validate policy and budget configuration files"
    )
    validate_parser.add_argument("--policy", help="Policy file (default: GOVGATE_POLICY_CONFIG_PATH)")
    validate_parser.add_argument("--budget", help="Budget file (default: GOVGATE_BUDGET_CONFIG_PATH)")

    submit_parser = subparsers.add_parser("submit", help="Submit an action descriptor for a verdict")
    submit_parser.add_argument("action_file", help="Path to action YAML/JSON file")
    submit_parser.add_argument("--output", choices=["text", "json"], default="text",
                               help="Output format")

    budget_parser = subparsers.add_parser("budget-status", help="Show budget caps and spend")
    budget_parser.add_argument("--category", help="Only this budget category")
    budget_parser.add_argument("--tier", type=int, help="Only this tier")
    budget_parser.add_argument("--output", choices=["text", "json"], default="text",
                               help="Output format")

    audit_parser = subparsers.add_parser("audit", help="Audit log tooling")
    audit_subparsers = audit_parser.add_subparsers(dest="audit_command")

    verify_parser = audit_subparsers.add_parser("verify", help="Verify the hash chain")
    verify_parser.add_argument("--file", help="Verify an exported JSON Lines file instead")
    verify_parser.add_argument("--start", type=int, default=0, help="First sequence number")
    verify_parser.add_argument("--end", type=int, help="Stop before this sequence number")

    export_parser = audit_subparsers.add_parser("export", help="Export records as JSON Lines")
    export_parser.add_argument("--output", "-o", help="Output file (default: stdout)")

    query_parser = audit_subparsers.add_parser("query", help="List audit records")
    query_parser.add_argument("--action-id", help="Filter by action id")
    query_parser.add_argument("--verdict", choices=[v.value for v in Verdict],
                              help="Filter by verdict")
    query_parser.add_argument("--actor", help="Filter by actor")
    query_parser.add_argument("--limit", type=int, default=50, help="Maximum records to show")

    return parser


def _run(args: argparse.Namespace, settings: Settings) -> int:
    if args.command == "validate-config":
        from govgate.cli.validate import validate_config_command

        return validate_config_command(args.policy, args.budget, settings)

    if args.command == "submit":
        from govgate.cli.submit import submit_command

        return submit_command(args.action_file, settings, output_format=args.output)

    if args.command == "budget-status":
        from govgate.cli.budget import budget_status_command

        return budget_status_command(
            settings, category=args.category, tier=args.tier, output_format=args.output
        )

    if args.command == "audit":
        from govgate.cli.audit import (
            audit_export_command,
            audit_query_command,
            audit_verify_command,
        )

        if args.audit_command == "verify":
            return audit_verify_command(settings, file=args.file, start=args.start, end=args.end)
        if args.audit_command == "export":
            return audit_export_command(settings, output=args.output)
        if args.audit_command == "query":
            return audit_query_command(
                settings,
                action_id=args.action_id,
                verdict=args.verdict,
                actor=args.actor,
                limit=args.limit,
            )

    return ExitCode.WARNING


@main_with_error_handling()
def run(argv: Sequence[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    settings = get_settings()
    configure_logging(args.log_level or settings.log_level)

    if args.command is None or (args.command == "audit" and args.audit_command is None):
        parser.print_help()
        return ExitCode.WARNING
    return _run(args, settings)


def main(argv: Sequence[str] | None = None) -> None:
    raise SystemExit(run(argv))


if __name__ == "__main__":
    main()
