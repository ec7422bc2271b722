"""
Audit Log Store.

Single writer for the hash-chained audit trail. Records live in an
append-only arena indexed by sequence number; appends are serialized by
one lock, while queries and verification read a snapshot prefix and run
alongside writers.
"""

from __future__ import annotations

import itertools
import threading
from dataclasses import replace
from typing import IO, Iterator

import structlog

from govgate.audit.backends import AuditBackend, MemoryAuditBackend
from govgate.audit.chain import GENESIS_HASH, canonical_json, compute_record_hash, verify_chain
from govgate.audit.models import (
    AuditEntry,
    AuditEventType,
    AuditFilter,
    AuditRecord,
    VerificationResult,
)
from govgate.core.clock import Clock, SystemClock, isoformat
from govgate.core.errors import AuditIntegrityError

logger = structlog.get_logger()


class AuditQuery:
    """Lazy, finite, restartable view over a prefix of the arena."""

    def __init__(self, records: list[AuditRecord], end: int, audit_filter: AuditFilter) -> None:
        self._records = records
        self._end = end
        self._filter = audit_filter

    def __iter__(self) -> Iterator[AuditRecord]:
        for position in range(self._end):
            record = self._records[position]
            if self._filter.matches(record):
                yield record


class AuditLogStore:
    """Append-only, tamper-evident audit log."""

    def __init__(self, backend: AuditBackend | None = None, clock: Clock | None = None) -> None:
        self.backend = backend or MemoryAuditBackend()
        self.clock = clock or SystemClock()
        self._write_lock = threading.Lock()
        self._records: list[AuditRecord] = []
        self._halted = False
        self._halt_reason: str | None = None
        self._unloadable = 0
        self._load()

    def _load(self) -> None:
        raw = list(self.backend.iter_raw())
        for data in raw:
            if data is None:
                continue
            try:
                self._records.append(AuditRecord.from_dict(data))
            except (KeyError, ValueError, TypeError):
                logger.warning("audit_record_unloadable", position=len(self._records))
        self._unloadable = len(raw) - len(self._records)
        if raw:
            result = verify_chain(raw)
            if not result:
                self._halt(result)
        logger.info("audit_log_loaded", records=len(self._records), halted=self._halted)

    def __len__(self) -> int:
        return len(self._records)

    @property
    def halted(self) -> bool:
        return self._halted

    def head(self) -> AuditRecord | None:
        records = self._records
        return records[-1] if records else None

    def append(self, entry: AuditEntry) -> AuditRecord:
        """
        Chain, persist, and return a new record.

        Raises:
            AuditIntegrityError: If the store is halted after a chain break
        """
        with self._write_lock:
            if self._halted:
                raise AuditIntegrityError(
                    "Audit log is halted; appends refused until an operator resumes it",
                    {"reason": self._halt_reason},
                )
            return self._append_locked(entry)

    def _append_locked(self, entry: AuditEntry) -> AuditRecord:
        sequence_no = len(self._records)
        prior_hash = self._records[-1].record_hash if self._records else GENESIS_HASH
        unhashed = AuditRecord(
            sequence_no=sequence_no,
            timestamp=isoformat(self.clock.now()),
            action_id=entry.action_id,
            verdict=entry.verdict,
            reason=entry.reason,
            actor=entry.actor,
            event_type=entry.event_type,
            details=dict(entry.details),
            prior_hash=prior_hash,
            record_hash="",
        )
        record_hash = compute_record_hash(prior_hash, unhashed.body())
        record = replace(unhashed, record_hash=record_hash)

        self.backend.write(record)
        self._records.append(record)
        logger.debug(
            "audit_record_appended",
            sequence_no=sequence_no,
            event_type=entry.event_type.value,
            action_id=entry.action_id,
        )
        return record

    def query(self, audit_filter: AuditFilter | None = None) -> AuditQuery:
        """Records matching the filter, ordered by sequence number."""
        return AuditQuery(self._records, len(self._records), audit_filter or AuditFilter())

    def verify(self, start: int = 0, end: int | None = None) -> VerificationResult:
        """
        Re-walk the persisted chain over ``[start, end)``.

        A divergence halts the store; appends are refused until ``resume``.
        """
        limit = len(self._records) if end is None else min(end, len(self._records))
        raw = itertools.islice(self.backend.iter_raw(), limit)
        result = verify_chain(raw, start=start, end=limit)
        if not result:
            with self._write_lock:
                self._halt(result)
        return result

    def _halt(self, result: VerificationResult) -> None:
        self._halted = True
        self._halt_reason = f"{result.reason} at sequence {result.first_divergence}"
        logger.error(
            "audit_chain_broken",
            first_divergence=result.first_divergence,
            reason=result.reason,
        )

    def resume(self, operator: str, note: str = "") -> AuditRecord:
        """
        Operator intervention: clear the halt and record that it happened.

        Raises:
            AuditIntegrityError: If persisted entries could not be loaded; the
                next sequence number is unknown until the backend is repaired
        """
        with self._write_lock:
            if self._unloadable:
                raise AuditIntegrityError(
                    "Audit log has unreadable entries; repair the backend before resuming",
                    {"unloadable": self._unloadable, "loaded": len(self._records)},
                )
            previous_reason = self._halt_reason
            self._halted = False
            self._halt_reason = None
            record = self._append_locked(
                AuditEntry(
                    action_id=None,
                    verdict=None,
                    reason="integrity_resumed",
                    actor=operator,
                    event_type=AuditEventType.INTEGRITY,
                    details={"halt_reason": previous_reason, "note": note},
                )
            )
        logger.warning("audit_log_resumed", operator=operator, halt_reason=previous_reason)
        return record

    def export(self, stream: IO[str], start: int = 0, end: int | None = None) -> int:
        """Write persisted records as JSON Lines; returns the number written."""
        limit = len(self._records) if end is None else min(end, len(self._records))
        written = 0
        for position, data in enumerate(itertools.islice(self.backend.iter_raw(), limit)):
            if position < start:
                continue
            stream.write(canonical_json(data) + "\n")
            written += 1
        return written

    def close(self) -> None:
        self.backend.close()
