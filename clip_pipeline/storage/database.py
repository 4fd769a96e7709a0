"""
Database engine and session factory.
"""
from typing import Optional

from loguru import logger
from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from clip_pipeline.storage.models import Base


class Database:
    """
    Owns the SQLAlchemy engine and hands out sessions.

    Usage:
        db = Database("sqlite:///./clip_pipeline.db")
        db.create_all()
        with db.session() as session:
            ...
    """

    def __init__(self, url: str, echo: bool = False, engine: Optional[Engine] = None):
        self.url = url
        if engine is None:
            kwargs = {"echo": echo}
            if url.startswith("sqlite"):
                kwargs["connect_args"] = {"check_same_thread": False}
                if ":memory:" in url or url in ("sqlite://", "sqlite:///"):
                    kwargs["poolclass"] = StaticPool
            engine = create_engine(url, **kwargs)
        self.engine = engine
        self.SessionLocal = sessionmaker(bind=self.engine, expire_on_commit=False)

    def create_all(self) -> None:
        """Create tables that do not exist yet."""
        Base.metadata.create_all(self.engine)
        logger.debug(f"Database schema ready: {self.engine.url.render_as_string(hide_password=True)}")

    def session(self) -> Session:
        return self.SessionLocal()

    def dispose(self) -> None:
        self.engine.dispose()


def in_memory_database() -> Database:
    """A fresh SQLite in-memory database with the schema created."""
    db = Database("sqlite://")
    db.create_all()
    return db
