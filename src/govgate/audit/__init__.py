"""
Tamper-evident audit log.

Every authorization decision, approval event, and administrative budget
mutation is appended here as a hash-chained record.
"""

from govgate.audit.backends import (
    AuditBackend,
    JsonlAuditBackend,
    MemoryAuditBackend,
    SqlAuditBackend,
)
from govgate.audit.chain import GENESIS_HASH, compute_record_hash, verify_chain, verify_export
from govgate.audit.models import (
    AuditEntry,
    AuditEventType,
    AuditFilter,
    AuditRecord,
    VerificationResult,
)
from govgate.audit.store import AuditLogStore, AuditQuery

__all__ = [
    "AuditBackend",
    "AuditEntry",
    "AuditEventType",
    "AuditFilter",
    "AuditLogStore",
    "AuditQuery",
    "AuditRecord",
    "GENESIS_HASH",
    "JsonlAuditBackend",
    "MemoryAuditBackend",
    "SqlAuditBackend",
    "VerificationResult",
    "compute_record_hash",
    "verify_chain",
    "verify_export",
]
