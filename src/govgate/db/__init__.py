"""SQL persistence for the audit log."""

from govgate.db.models import AuditRecordModel, Base
from govgate.db.session import create_db_engine, init_session_factory

__all__ = ["AuditRecordModel", "Base", "create_db_engine", "init_session_factory"]
