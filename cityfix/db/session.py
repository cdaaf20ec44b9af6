# File: cityfix/db/session.py
# Project: cityfix

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool
from cityfix.core.config import settings
from cityfix.db.base import Base

def build_engine(url: str) -> Engine:
    if url.startswith("sqlite"):
        # in-memory databases must share one connection across threads
        kwargs = {"connect_args": {"check_same_thread": False}}
        if url in ("sqlite://", "sqlite:///:memory:"):
            kwargs["poolclass"] = StaticPool
        return create_engine(url, **kwargs)
    return create_engine(
        url,
        pool_pre_ping=True,
        pool_size=5,
        max_overflow=10,
        pool_recycle=3600,
        pool_timeout=30
    )

engine = build_engine(settings.database_url)
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

def init_db(bind: Engine = engine) -> None:
    # registers every table on Base.metadata
    from cityfix.models import issue, issue_comment, issue_vote, user  # noqa: F401
    Base.metadata.create_all(bind)

def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
