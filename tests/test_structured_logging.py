import uuid

from triage.core.structured_logging import build_log_context


def test_build_log_context_only_includes_set_keys():
    workspace_id = uuid.uuid4()

    context = build_log_context(workspace_id=workspace_id, msg_id=0, queue="bb_classify_jobs")

    assert context == {
        "workspace_id": str(workspace_id),
        "msg_id": 0,
        "queue": "bb_classify_jobs",
    }


def test_build_log_context_empty():
    assert build_log_context() == {}
