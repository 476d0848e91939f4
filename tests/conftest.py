"""
Test configuration and fixtures.

Provides:
- In-memory SQLite session with the full schema (fresh per test)
- Seed helpers for conversations, inbound messages and CLASSIFY jobs
- A stub classifier standing in for the LLM
"""
import uuid
from dataclasses import dataclass, field
from typing import Generator

import pytest
from sqlalchemy import create_engine, event
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from triage.core.config import Settings
from triage.db.base import Base
from triage.db import models  # noqa: F401  (registers tables)
from triage.db.enums import ConversationStatus, MessageDirection
from triage.db.models import Conversation, Message, MessageEvent
from triage.jobs.handlers.classify import ClassifyWorkerDeps
from triage.services import triage_normalizer


# =============================================================================
# Database Fixtures
# =============================================================================

@pytest.fixture(scope="function")
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    # pysqlite needs to leave transaction control to SQLAlchemy for SAVEPOINT
    @event.listens_for(engine, "connect")
    def _disable_pysqlite_begin(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine, "begin")
    def _emit_begin(conn):
        conn.exec_driver_sql("BEGIN")

    Base.metadata.create_all(engine)
    yield engine
    Base.metadata.drop_all(engine)
    engine.dispose()


@pytest.fixture(scope="function")
def db(engine) -> Generator[Session, None, None]:
    """Session whose commits are real; the database is discarded after the test."""
    session = sessionmaker(autocommit=False, autoflush=False, bind=engine)()
    yield session
    session.close()


@pytest.fixture
def workspace_id() -> uuid.UUID:
    return uuid.uuid4()


# =============================================================================
# Seed helpers
# =============================================================================

@dataclass
class SeededInbound:
    conversation: Conversation
    message: Message
    event: MessageEvent
    job: dict

    @property
    def item_id(self) -> str:
        return str(self.event.id)


def seed_inbound(
    db: Session,
    workspace_id: uuid.UUID,
    *,
    sender: str = "jane@customer.example",
    subject: str = "Question",
    body: str = "Hello, can you help?",
    channel: str = "email",
    customer_id: uuid.UUID | None = None,
    run_id: uuid.UUID | None = None,
) -> SeededInbound:
    """Create a conversation whose latest inbound message is pending classification."""
    conversation = Conversation(
        workspace_id=workspace_id,
        customer_id=customer_id,
        channel=channel,
        status=ConversationStatus.NEW.value,
    )
    db.add(conversation)
    db.flush()

    message = Message(
        conversation_id=conversation.id,
        direction=MessageDirection.INBOUND.value,
        body=body,
    )
    db.add(message)
    db.flush()
    conversation.last_inbound_message_id = message.id

    event_row = MessageEvent(
        workspace_id=workspace_id,
        conversation_id=conversation.id,
        channel=channel,
        from_identifier=sender,
        subject=subject,
        body=body,
    )
    db.add(event_row)
    db.commit()

    job = {
        "job_type": "CLASSIFY",
        "workspace_id": str(workspace_id),
        "channel": channel,
        "event_id": str(event_row.id),
        "conversation_id": str(conversation.id),
        "target_message_id": str(message.id),
    }
    if run_id:
        job["run_id"] = str(run_id)
    return SeededInbound(conversation=conversation, message=message, event=event_row, job=job)


@pytest.fixture
def seed(db, workspace_id):
    def _seed(**kwargs) -> SeededInbound:
        return seed_inbound(db, kwargs.pop("workspace_id", workspace_id), **kwargs)

    return _seed


# =============================================================================
# Stub classifier
# =============================================================================

@dataclass
class StubOracle:
    """Returns canned raw classifications keyed by item id."""

    responses: dict[str, dict] = field(default_factory=dict)
    error: Exception | None = None
    calls: list[list[str]] = field(default_factory=list)

    async def classify_batch(self, items, context):
        self.calls.append([item.item_id for item in items])
        if self.error:
            raise self.error
        return {
            item.item_id: triage_normalizer.normalize(self.responses[item.item_id])
            for item in items
            if item.item_id in self.responses
        }


@pytest.fixture
def oracle() -> StubOracle:
    return StubOracle()


@pytest.fixture
def worker_settings() -> Settings:
    return Settings(
        DATABASE_URL="sqlite://",
        CLASSIFY_VT_SECONDS=0,
        CLASSIFY_BATCH_SIZE=40,
        WORKER_TIME_BUDGET_MS=50_000,
    )


@pytest.fixture
def deps(oracle, worker_settings) -> ClassifyWorkerDeps:
    return ClassifyWorkerDeps(oracle=oracle, settings=worker_settings)
