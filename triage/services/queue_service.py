"""Visibility-timeout queue over the relational store.

Semantics mirror pgmq: ``read_queue`` hides the returned messages for
``vt_seconds`` and increments their read count; a message that is neither
deleted nor archived before the timeout lapses becomes visible again and is
redelivered.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

from sqlalchemy import delete, func, select
from sqlalchemy.orm import Session

from triage.db.models import QueueArchive, QueueMessage
from triage.types import QueuePayload


@dataclass(frozen=True)
class QueueRecord:
    """A message handed to a worker by ``read_queue``."""

    msg_id: int
    read_ct: int
    enqueued_at: datetime
    vt: datetime
    message: QueuePayload


def _now_utc() -> datetime:
    return datetime.now(timezone.utc)


def queue_send(
    db: Session,
    queue_name: str,
    message: QueuePayload,
    delay_seconds: int = 0,
    *,
    commit: bool = True,
) -> int:
    """
    Enqueue a message and return its msg_id.

    With ``commit=False`` the insert joins the caller's transaction so it is
    only visible if the caller's other writes also land.
    """
    now = _now_utc()
    row = QueueMessage(
        queue_name=queue_name,
        message=message,
        read_ct=0,
        enqueued_at=now,
        vt=now + timedelta(seconds=max(0, delay_seconds)),
    )
    db.add(row)
    db.flush()
    msg_id = row.msg_id
    if commit:
        db.commit()
    return msg_id


def read_queue(
    db: Session,
    queue_name: str,
    vt_seconds: int,
    qty: int,
    *,
    now: datetime | None = None,
) -> list[QueueRecord]:
    """
    Claim up to ``qty`` visible messages, oldest first.

    Rows are locked with SKIP LOCKED so concurrent workers claim disjoint sets.
    """
    now = now or _now_utc()
    rows = (
        db.execute(
            select(QueueMessage)
            .where(QueueMessage.queue_name == queue_name, QueueMessage.vt <= now)
            .order_by(QueueMessage.msg_id)
            .limit(max(0, qty))
            .with_for_update(skip_locked=True)
        )
        .scalars()
        .all()
    )

    new_vt = now + timedelta(seconds=max(0, vt_seconds))
    records: list[QueueRecord] = []
    for row in rows:
        row.read_ct += 1
        row.vt = new_vt
        records.append(
            QueueRecord(
                msg_id=row.msg_id,
                read_ct=row.read_ct,
                enqueued_at=row.enqueued_at,
                vt=new_vt,
                message=row.message,
            )
        )
    db.commit()
    return records


def queue_delete(db: Session, queue_name: str, msg_id: int) -> bool:
    """Delete a message; returns False if it was already gone."""
    result = db.execute(
        delete(QueueMessage).where(
            QueueMessage.queue_name == queue_name, QueueMessage.msg_id == msg_id
        )
    )
    db.commit()
    return result.rowcount > 0


def queue_archive(
    db: Session, queue_name: str, msg_id: int, *, commit: bool = True
) -> bool:
    """Move a message from the live queue into the archive table."""
    row = (
        db.query(QueueMessage)
        .filter(QueueMessage.queue_name == queue_name, QueueMessage.msg_id == msg_id)
        .first()
    )
    if not row:
        return False
    db.add(
        QueueArchive(
            msg_id=row.msg_id,
            queue_name=row.queue_name,
            read_ct=row.read_ct,
            enqueued_at=row.enqueued_at,
            message=row.message,
        )
    )
    db.delete(row)
    if commit:
        db.commit()
    return True


def queue_depth(db: Session, queue_name: str) -> int:
    """Count live messages (visible or not) in a queue."""
    return (
        db.query(func.count(QueueMessage.msg_id))
        .filter(QueueMessage.queue_name == queue_name)
        .scalar()
        or 0
    )


def list_queue_messages(db: Session, queue_name: str, limit: int = 100) -> list[QueueMessage]:
    return (
        db.query(QueueMessage)
        .filter(QueueMessage.queue_name == queue_name)
        .order_by(QueueMessage.msg_id)
        .limit(limit)
        .all()
    )
