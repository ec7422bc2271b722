"""CLI command for submitting one action descriptor."""

from __future__ import annotations

import json
from pathlib import Path

import yaml

from govgate.cli.ux import VERDICT_STYLES, console, header, print_key_value, styled
from govgate.config import Settings
from govgate.core.errors import ExitCode, ValidationError
from govgate.core.reasons import Verdict
from govgate.gateway import build_gateway
from govgate.policies.models import ActionDescriptor


def load_action_file(path: str | Path) -> ActionDescriptor:
    """
    Raises:
        ValidationError: If the file is missing, unparseable or malformed
    """
    file_path = Path(path)
    if not file_path.exists():
        raise ValidationError(f"Action file not found: {file_path}")
    try:
        data = yaml.safe_load(file_path.read_text(encoding="utf-8"))
    except yaml.YAMLError as e:
        raise ValidationError(f"Invalid YAML in {file_path}: {e}") from e
    return ActionDescriptor.from_dict(data)


def submit_command(action_file: str, settings: Settings, output_format: str = "text") -> int:
    """
    Evaluate an action against the configured gateway.

    Returns:
        Exit code (0 allowed, 2 denied or pending)
    """
    descriptor = load_action_file(action_file)
    gateway = build_gateway(settings, start_sweeper=False)
    try:
        result = gateway.submit_action(descriptor)
    finally:
        gateway.close()

    if output_format == "json":
        print(json.dumps(result.to_dict(), indent=2))
    else:
        header(f"Action {descriptor.action_id}")
        print_key_value(
            {
                "Verdict": styled(result.verdict.value, VERDICT_STYLES),
                "Reason": result.reason_code.value,
                "Message": result.message,
                "Audit ref": str(result.audit_ref),
            }
        )
        console.print()

    if result.verdict == Verdict.ALLOWED:
        return ExitCode.SUCCESS
    return ExitCode.BLOCKED
