"""Tests for the visibility-timeout queue."""

from datetime import datetime, timedelta, timezone

from triage.db.models import QueueArchive
from triage.services import queue_service

QUEUE = "test_queue"


def test_send_and_read_returns_oldest_first(db):
    first = queue_service.queue_send(db, QUEUE, {"n": 1})
    second = queue_service.queue_send(db, QUEUE, {"n": 2})

    records = queue_service.read_queue(db, QUEUE, vt_seconds=60, qty=10)

    assert [r.msg_id for r in records] == [first, second]
    assert [r.message["n"] for r in records] == [1, 2]
    assert all(r.read_ct == 1 for r in records)


def test_non_object_bodies_are_read_as_stored(db):
    queue_service.queue_send(db, QUEUE, "not-a-job")
    queue_service.queue_send(db, QUEUE, [1, 2])

    records = queue_service.read_queue(db, QUEUE, vt_seconds=60, qty=10)

    assert [r.message for r in records] == ["not-a-job", [1, 2]]
    assert queue_service.read_queue(db, QUEUE, vt_seconds=60, qty=10) == []


def test_read_hides_messages_until_vt_lapses(db):
    queue_service.queue_send(db, QUEUE, {"n": 1})

    assert len(queue_service.read_queue(db, QUEUE, vt_seconds=60, qty=10)) == 1
    assert queue_service.read_queue(db, QUEUE, vt_seconds=60, qty=10) == []

    later = datetime.now(timezone.utc) + timedelta(seconds=120)
    redelivered = queue_service.read_queue(db, QUEUE, vt_seconds=60, qty=10, now=later)
    assert len(redelivered) == 1
    assert redelivered[0].read_ct == 2


def test_read_respects_qty_and_queue_name(db):
    for n in range(3):
        queue_service.queue_send(db, QUEUE, {"n": n})
    queue_service.queue_send(db, "other_queue", {"n": 99})

    records = queue_service.read_queue(db, QUEUE, vt_seconds=60, qty=2)

    assert [r.message["n"] for r in records] == [0, 1]


def test_delayed_send_is_invisible_until_delay_passes(db):
    queue_service.queue_send(db, QUEUE, {"n": 1}, delay_seconds=30)

    assert queue_service.read_queue(db, QUEUE, vt_seconds=60, qty=10) == []
    later = datetime.now(timezone.utc) + timedelta(seconds=31)
    assert len(queue_service.read_queue(db, QUEUE, vt_seconds=60, qty=10, now=later)) == 1


def test_delete_removes_message(db):
    msg_id = queue_service.queue_send(db, QUEUE, {"n": 1})

    assert queue_service.queue_delete(db, QUEUE, msg_id) is True
    assert queue_service.queue_delete(db, QUEUE, msg_id) is False
    assert queue_service.queue_depth(db, QUEUE) == 0


def test_archive_moves_message_out_of_live_queue(db):
    msg_id = queue_service.queue_send(db, QUEUE, {"n": 1})

    assert queue_service.queue_archive(db, QUEUE, msg_id) is True

    assert queue_service.queue_depth(db, QUEUE) == 0
    archived = db.query(QueueArchive).filter(QueueArchive.msg_id == msg_id).one()
    assert archived.message == {"n": 1}
    assert queue_service.queue_archive(db, QUEUE, msg_id) is False


def test_msg_ids_are_not_reused_after_delete(db):
    msg_id = queue_service.queue_send(db, QUEUE, {"n": 1})
    queue_service.queue_delete(db, QUEUE, msg_id)

    assert queue_service.queue_send(db, QUEUE, {"n": 2}) > msg_id
