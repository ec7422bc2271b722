"""
Hash-chain construction and verification.

This module works on plain dicts so an exported log can be re-verified
with nothing but ``json`` and ``hashlib``:

    record_hash = sha256(prior_hash + "\\n" + canonical_json(body))

where ``body`` is the record without ``prior_hash``/``record_hash`` and
``canonical_json`` is JSON with sorted keys, ``(",", ":")`` separators and
unescaped unicode. The first record's ``prior_hash`` is 64 zeros.
"""

from __future__ import annotations

import hashlib
import json
from typing import Any, Iterable, Mapping

from govgate.audit.models import VerificationResult

GENESIS_HASH = "0" * 64

HASHED_FIELDS: tuple[str, ...] = (
    "sequence_no",
    "timestamp",
    "action_id",
    "verdict",
    "reason",
    "actor",
    "event_type",
    "details",
)


def canonical_json(value: Any) -> str:
    return json.dumps(value, ensure_ascii=False, sort_keys=True, separators=(",", ":"))


def compute_record_hash(prior_hash: str, body: Mapping[str, Any]) -> str:
    payload = prior_hash + "\n" + canonical_json({k: body.get(k) for k in HASHED_FIELDS})
    return hashlib.sha256(payload.encode("utf-8")).hexdigest()


def verify_chain(
    records: Iterable[Mapping[str, Any] | None],
    start: int = 0,
    end: int | None = None,
) -> VerificationResult:
    """
    Re-walk a chain of record dicts.

    Args:
        records: Every record from sequence 0, in order. ``None`` marks an
            entry that could not be parsed.
        start: First sequence number to check (its predecessor anchors the chain)
        end: Stop before this sequence number (None = to the end)

    Returns:
        VerificationResult pointing at the first divergence, if any
    """
    prior_hash = GENESIS_HASH
    checked = 0
    for position, record in enumerate(records):
        if end is not None and position >= end:
            break
        if record is None or not all(k in record for k in (*HASHED_FIELDS, "record_hash")):
            if position >= start:
                return VerificationResult(False, checked, position, "unparseable record")
            prior_hash = ""
            continue
        if position < start:
            prior_hash = record["record_hash"]
            continue

        if record["sequence_no"] != position:
            return VerificationResult(False, checked, position, "sequence gap")
        if record.get("prior_hash") != prior_hash:
            return VerificationResult(False, checked, position, "prior hash mismatch")
        if compute_record_hash(prior_hash, record) != record["record_hash"]:
            return VerificationResult(False, checked, position, "record hash mismatch")

        prior_hash = record["record_hash"]
        checked += 1

    return VerificationResult(True, checked)


def verify_export(lines: Iterable[str], start: int = 0, end: int | None = None) -> VerificationResult:
    """Verify a line-delimited JSON export."""

    def parse(line: str) -> Mapping[str, Any] | None:
        try:
            data = json.loads(line)
        except json.JSONDecodeError:
            return None
        return data if isinstance(data, dict) else None

    return verify_chain((parse(line) for line in lines if line.strip()), start, end)
