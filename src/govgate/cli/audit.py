"""
CLI commands for the audit log.

``verify --file`` checks an exported JSON Lines file without opening the
live store, the same way external compliance tooling would.
"""

from __future__ import annotations

import itertools
import sys
from pathlib import Path

from govgate.audit import AuditFilter, AuditLogStore, VerificationResult, verify_export
from govgate.cli.ux import VERDICT_STYLES, error, header, print_table, styled, success
from govgate.config import Settings
from govgate.core.errors import ExitCode, ValidationError
from govgate.core.reasons import Verdict
from govgate.gateway import create_audit_backend


def _open_store(settings: Settings) -> AuditLogStore:
    return AuditLogStore(create_audit_backend(settings))


def _report(result: VerificationResult, source: str) -> int:
    if result:
        success(f"Hash chain intact: {result.checked} records verified ({source})")
        return ExitCode.SUCCESS
    error(
        f"Hash chain broken at sequence {result.first_divergence}: {result.reason} ({source})"
    )
    return ExitCode.INTEGRITY_ERROR


def audit_verify_command(
    settings: Settings,
    file: str | None = None,
    start: int = 0,
    end: int | None = None,
) -> int:
    """
    Returns:
        Exit code (0 intact, 13 broken)
    """
    header("Verify Audit Log")
    if file is not None:
        path = Path(file)
        if not path.exists():
            raise ValidationError(f"Export file not found: {path}")
        with path.open(encoding="utf-8") as f:
            return _report(verify_export(f, start, end), str(path))

    store = _open_store(settings)
    try:
        return _report(store.verify(start, end), settings.audit_backend)
    finally:
        store.close()


def audit_export_command(settings: Settings, output: str | None = None) -> int:
    store = _open_store(settings)
    try:
        if output is None:
            store.export(sys.stdout)
            return ExitCode.SUCCESS
        path = Path(output)
        path.parent.mkdir(parents=True, exist_ok=True)
        with path.open("w", encoding="utf-8") as f:
            written = store.export(f)
    finally:
        store.close()
    success(f"Exported {written} records to {path}")
    return ExitCode.SUCCESS


def audit_query_command(
    settings: Settings,
    action_id: str | None = None,
    verdict: str | None = None,
    actor: str | None = None,
    limit: int = 50,
) -> int:
    audit_filter = AuditFilter(
        action_id=action_id,
        verdict=Verdict(verdict) if verdict else None,
        actor=actor,
    )
    store = _open_store(settings)
    try:
        records = list(itertools.islice(store.query(audit_filter), limit))
    finally:
        store.close()

    header("Audit Records")
    print_table(
        f"{len(records)} records",
        ["Seq", "Time", "Event", "Action", "Verdict", "Reason", "Actor"],
        [
            [
                str(r.sequence_no),
                r.timestamp,
                r.event_type.value,
                r.action_id or "-",
                styled(r.verdict.value, VERDICT_STYLES) if r.verdict else "-",
                r.reason,
                r.actor or "-",
            ]
            for r in records
        ],
    )
    return ExitCode.SUCCESS
