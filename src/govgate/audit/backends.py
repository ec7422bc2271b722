"""
Audit storage backends.

Backends only append and read back; none offers an update or delete path.
``write`` must persist durably before returning.
"""

from __future__ import annotations

import json
import os
from pathlib import Path
from typing import Any, Iterator, Protocol

import structlog
from sqlalchemy import select
from sqlalchemy.orm import Session, sessionmaker

from govgate.audit.chain import canonical_json
from govgate.audit.models import AuditRecord
from govgate.db.models import AuditRecordModel

logger = structlog.get_logger()


class AuditBackend(Protocol):
    def write(self, record: AuditRecord) -> None: ...

    def iter_raw(self) -> Iterator[dict[str, Any] | None]:
        """Yield persisted records in sequence order; None for unparseable entries."""
        ...

    def close(self) -> None: ...


class MemoryAuditBackend:
    """Process-local backend, for tests and ephemeral gateways."""

    def __init__(self) -> None:
        self.records: list[AuditRecord] = []

    def write(self, record: AuditRecord) -> None:
        self.records.append(record)

    def iter_raw(self) -> Iterator[dict[str, Any] | None]:
        for record in list(self.records):
            yield record.to_dict()

    def close(self) -> None:
        pass


class JsonlAuditBackend:
    """Append-only JSON Lines file, fsynced on every write."""

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self._fh = open(self.path, "a", encoding="utf-8")

    def write(self, record: AuditRecord) -> None:
        self._fh.write(canonical_json(record.to_dict()) + "\n")
        self._fh.flush()
        os.fsync(self._fh.fileno())

    def iter_raw(self) -> Iterator[dict[str, Any] | None]:
        if not self.path.exists():
            return
        with open(self.path, encoding="utf-8") as f:
            for line in f:
                if not line.strip():
                    continue
                try:
                    data = json.loads(line)
                except json.JSONDecodeError:
                    logger.warning("audit_line_unparseable", path=str(self.path))
                    yield None
                    continue
                yield data if isinstance(data, dict) else None

    def close(self) -> None:
        if not self._fh.closed:
            self._fh.close()


class SqlAuditBackend:
    """SQLAlchemy-backed audit table. Every write commits its own transaction."""

    def __init__(self, session_factory: sessionmaker[Session]) -> None:
        self.session_factory = session_factory

    def write(self, record: AuditRecord) -> None:
        with self.session_factory() as session:
            session.add(
                AuditRecordModel(
                    sequence_no=record.sequence_no,
                    timestamp=record.timestamp,
                    action_id=record.action_id,
                    verdict=record.verdict.value if record.verdict is not None else None,
                    reason=record.reason,
                    actor=record.actor,
                    event_type=record.event_type.value,
                    details=record.details,
                    prior_hash=record.prior_hash,
                    record_hash=record.record_hash,
                )
            )
            session.commit()

    def iter_raw(self) -> Iterator[dict[str, Any] | None]:
        with self.session_factory() as session:
            result = session.execute(
                select(AuditRecordModel).order_by(AuditRecordModel.sequence_no)
            )
            for model in result.scalars():
                yield self._model_to_dict(model)

    def close(self) -> None:
        pass

    @staticmethod
    def _model_to_dict(model: AuditRecordModel) -> dict[str, Any]:
        return {
            "sequence_no": model.sequence_no,
            "timestamp": model.timestamp,
            "action_id": model.action_id,
            "verdict": model.verdict,
            "reason": model.reason,
            "actor": model.actor,
            "event_type": model.event_type,
            "details": model.details or {},
            "prior_hash": model.prior_hash,
            "record_hash": model.record_hash,
        }
