"""Tests for the worker HTTP surface."""

import pytest
from fastapi.testclient import TestClient

from triage import worker_service
from triage.core.config import settings
from triage.jobs.handlers.classify import WorkerSummary


@pytest.fixture
def client(monkeypatch):
    monkeypatch.setattr(settings, "WORKER_TOKEN", "s3cret")
    monkeypatch.setattr(settings, "WORKER_LOOP_ENABLED", False)
    calls = []

    async def fake_run_once():
        calls.append(1)
        return WorkerSummary(queue=settings.CLASSIFY_QUEUE, fetched_jobs=2, processed=2, elapsed_ms=12)

    monkeypatch.setattr(worker_service, "run_once", fake_run_once)
    with TestClient(worker_service.app) as test_client:
        test_client.calls = calls
        yield test_client


def test_health(client):
    response = client.get("/health")

    assert response.status_code == 200
    assert response.json()["status"] == "ok"


def test_trigger_requires_token(client):
    missing = client.post("/internal/pipeline/classify")
    wrong = client.post("/internal/pipeline/classify", headers={"x-bb-worker-token": "nope"})

    assert missing.status_code == 401
    assert wrong.status_code == 401
    assert client.calls == []


def test_trigger_runs_one_pass(client):
    response = client.post("/internal/pipeline/classify", headers={"x-bb-worker-token": "s3cret"})

    assert response.status_code == 200
    assert response.json() == {
        "queue": settings.CLASSIFY_QUEUE,
        "ok": True,
        "fetched_jobs": 2,
        "ai_candidates": 0,
        "processed": 2,
        "discarded": 0,
        "failed": 0,
        "deadlettered": 0,
        "elapsed_ms": 12,
    }
    assert client.calls == [1]


def test_unconfigured_token_rejects_everything(client, monkeypatch):
    monkeypatch.setattr(settings, "WORKER_TOKEN", "")

    response = client.post("/internal/pipeline/classify", headers={"x-bb-worker-token": ""})

    assert response.status_code == 401
