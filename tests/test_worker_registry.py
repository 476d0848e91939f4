import pytest

from triage.jobs.handlers.classify import process_classify_batch
from triage.jobs.registry import resolve_job_handler


def test_resolve_classify_handler():
    assert resolve_job_handler("CLASSIFY") is process_classify_batch


def test_unknown_job_type_raises():
    with pytest.raises(ValueError, match="Unknown job type"):
        resolve_job_handler("DRAFT")
