from __future__ import annotations

from sqlalchemy import Engine, create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from govgate.config import Settings, get_settings
from govgate.db.models import Base


def create_db_engine(database_url: str, echo: bool = False) -> Engine:
    """Create an engine; in-memory SQLite shares one connection across threads."""

    kwargs: dict = {"echo": echo, "future": True}
    if database_url.startswith("sqlite"):
        kwargs["connect_args"] = {"check_same_thread": False}
        if database_url in ("sqlite://", "sqlite:///:memory:"):
            kwargs["poolclass"] = StaticPool
    else:
        kwargs["pool_pre_ping"] = True
    return create_engine(database_url, **kwargs)


def init_session_factory(
    settings: Settings | None = None,
    database_url: str | None = None,
) -> sessionmaker[Session]:
    """Create tables if needed and return a session factory."""

    cfg = settings or get_settings()
    engine = create_db_engine(database_url or cfg.database_url, echo=cfg.debug)
    Base.metadata.create_all(engine)
    return sessionmaker(engine, expire_on_commit=False)
