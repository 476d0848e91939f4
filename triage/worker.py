"""
Background worker for the triage pipeline queues.

Usage:
    python -m triage.worker

Each pass reads a bounded batch from the classify queue and resolves it.
For production, run this as a separate process or behind ``triage.worker_service``.
"""

import asyncio
import logging

from triage.core.config import Settings, settings
from triage.db.enums import JobType
from triage.db.session import SessionLocal
from triage.jobs.handlers.classify import ClassifyWorkerDeps, WorkerSummary
from triage.jobs.registry import resolve_job_handler
from triage.services.ai_provider import get_provider
from triage.services.classification_oracle import ClassificationOracle
from triage.services.http_service import RetryPolicy

logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
    format="%(asctime)s [%(levelname)s] %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger(__name__)


def build_oracle(config: Settings) -> ClassificationOracle:
    """Wire the configured provider into a classification oracle."""
    provider = get_provider(
        config.AI_PROVIDER,
        config.AI_API_KEY,
        model=config.AI_CLASSIFY_MODEL,
        endpoint=config.AI_GATEWAY_URL or None,
        timeout=config.AI_REQUEST_TIMEOUT_SECONDS,
        retry_policy=RetryPolicy(
            max_attempts=config.AI_RETRY_MAX_ATTEMPTS,
            base_delay=config.AI_RETRY_BASE_DELAY,
            max_delay=config.AI_RETRY_MAX_DELAY,
        ),
    )
    return ClassificationOracle(provider, model=config.AI_CLASSIFY_MODEL)


def build_classify_deps(config: Settings = settings) -> ClassifyWorkerDeps:
    return ClassifyWorkerDeps(oracle=build_oracle(config), settings=config)


async def process_queue(job_type: str, deps: ClassifyWorkerDeps) -> WorkerSummary:
    """Run one pass of the handler registered for ``job_type``."""
    handler = resolve_job_handler(job_type)
    with SessionLocal() as db:
        return await handler(db, deps)


async def run_once(deps: ClassifyWorkerDeps | None = None) -> WorkerSummary:
    deps = deps or build_classify_deps()
    summary = await process_queue(JobType.CLASSIFY.value, deps)
    logger.info(
        "Classify pass: fetched=%s processed=%s discarded=%s failed=%s deadlettered=%s (%sms)",
        summary.fetched_jobs,
        summary.processed,
        summary.discarded,
        summary.failed,
        summary.deadlettered,
        summary.elapsed_ms,
    )
    return summary


async def worker_loop() -> None:
    """Main worker loop - polls the classify queue."""
    logger.info(
        "Worker starting (poll interval: %ss, batch size: %s)",
        settings.WORKER_POLL_INTERVAL,
        settings.classify_batch_size,
    )
    deps = build_classify_deps()
    while True:
        try:
            await run_once(deps)
        except Exception as e:
            logger.error("Error in worker loop: %s", e)

        await asyncio.sleep(settings.WORKER_POLL_INTERVAL)


def main() -> None:
    """Entry point for the worker."""
    try:
        asyncio.run(worker_loop())
    except KeyboardInterrupt:
        logger.info("Worker shutting down")


if __name__ == "__main__":
    main()
