"""HTTP service entrypoint for the classify worker."""

from __future__ import annotations

import asyncio
import contextlib
import hmac
import os

from fastapi import FastAPI, Header, HTTPException

from triage.core.config import settings
from triage.worker import run_once, worker_loop

WORKER_TOKEN_HEADER = "x-bb-worker-token"

app = FastAPI()
_worker_task: asyncio.Task | None = None


def _token_matches(provided: str | None) -> bool:
    expected = settings.WORKER_TOKEN
    if not expected or not provided:
        return False
    return hmac.compare_digest(provided.encode(), expected.encode())


@app.get("/health")
def health() -> dict:
    return {"status": "ok", "version": settings.VERSION}


@app.post("/internal/pipeline/classify")
async def trigger_classify(
    x_bb_worker_token: str | None = Header(default=None, alias=WORKER_TOKEN_HEADER),
) -> dict:
    if not _token_matches(x_bb_worker_token):
        raise HTTPException(status_code=401, detail="Unauthorized")
    summary = await run_once()
    return summary.to_dict()


@app.on_event("startup")
async def _startup() -> None:
    global _worker_task
    if settings.WORKER_LOOP_ENABLED:
        _worker_task = asyncio.create_task(worker_loop())


@app.on_event("shutdown")
async def _shutdown() -> None:
    if _worker_task:
        _worker_task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await _worker_task


def main() -> None:
    import uvicorn

    port = int(os.getenv("PORT", "8080"))
    host = os.getenv("HOST", "0.0.0.0")
    # nosec B104 - container platforms require binding to all interfaces.
    uvicorn.run("triage.worker_service:app", host=host, port=port)


if __name__ == "__main__":
    main()
