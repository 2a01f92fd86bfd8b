"""Finished chat turns in SQLite, the audit trail behind GET /history."""

import json
import os
from datetime import datetime, timezone

import structlog
from sqlalchemy import Column, DateTime, Integer, String, Text, create_engine, select
from sqlalchemy.orm import Session, declarative_base, sessionmaker
from sqlalchemy.pool import StaticPool

from brewbot.api.schemas import MessageRecord

logger = structlog.get_logger(__name__)

Base = declarative_base()


class Message(Base):
    __tablename__ = "messages"

    id = Column(Integer, primary_key=True, autoincrement=True)
    conversation_id = Column(String, index=True, nullable=False)
    role = Column(String, nullable=False)  # "user" or "assistant"
    content = Column(Text, nullable=False)
    timestamp = Column(DateTime, nullable=False, default=lambda: datetime.now(timezone.utc))
    agent_trace = Column(Text, nullable=True)  # JSON string


_engine = None
_SessionLocal = None


def init_db(database_url: str | None = None) -> None:
    """Create engine + tables (DATABASE_URL unless `database_url` is given)."""
    global _engine, _SessionLocal

    url = database_url or os.environ.get("DATABASE_URL", "sqlite:///data/brewbot.sqlite")
    if url.startswith("sqlite:///") and ":memory:" not in url:
        os.makedirs(os.path.dirname(url.removeprefix("sqlite:///")) or ".", exist_ok=True)

    if ":memory:" in url:
        # One shared connection, otherwise each session sees an empty database.
        _engine = create_engine(url, echo=False, connect_args={"check_same_thread": False},
                                poolclass=StaticPool)
    else:
        _engine = create_engine(url, echo=False)
    _SessionLocal = sessionmaker(bind=_engine)

    Base.metadata.create_all(_engine)
    logger.info("db.initialized", url=url.split("///")[0] + "///***")


def get_engine():
    if _engine is None:
        raise RuntimeError("Database not initialized. Call init_db() first.")
    return _engine


def get_session() -> Session:
    if _SessionLocal is None:
        raise RuntimeError("Database not initialized. Call init_db() first.")
    return _SessionLocal()


def save_message(
    conversation_id: str,
    role: str,
    content: str,
    agent_trace: dict | None = None,
) -> None:
    """Persist one message; `agent_trace` is stored as JSON."""
    with get_session() as session:
        msg = Message(
            conversation_id=conversation_id,
            role=role,
            content=content,
            timestamp=datetime.now(timezone.utc),
            agent_trace=json.dumps(agent_trace) if agent_trace else None,
        )
        session.add(msg)
        session.commit()
        logger.debug("db.message_saved", conversation_id=conversation_id, role=role)


def get_conversation_history(conversation_id: str) -> list[MessageRecord]:
    """Fetch full persisted history for a conversation, oldest first."""
    stmt = select(Message).where(Message.conversation_id == conversation_id).order_by(Message.id)
    with get_session() as session:
        return [
            MessageRecord(role=row.role, content=row.content, timestamp=row.timestamp)
            for row in session.scalars(stmt)
        ]
