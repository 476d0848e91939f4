"""CLI tools for operating the triage pipeline."""

import asyncio
import json
from uuid import UUID

import click

from triage.core.config import settings
from triage.db.session import SessionLocal
from triage.schemas.jobs import ClassifyJob
from triage.services import pipeline_audit_service, queue_service


@click.group()
def cli():
    """Triage pipeline CLI tools."""
    pass


@cli.command()
@click.option("--workspace-id", required=True, type=click.UUID, help="Workspace UUID")
@click.option("--conversation-id", required=True, type=click.UUID, help="Conversation UUID")
@click.option("--target-message-id", required=True, type=click.UUID, help="Latest inbound message UUID")
@click.option("--event-id", required=True, type=click.UUID, help="Message event UUID")
@click.option("--channel", default=None, help="Channel of the inbound message")
@click.option("--run-id", default=None, type=click.UUID, help="Pipeline run UUID")
def enqueue_classify(
    workspace_id: UUID,
    conversation_id: UUID,
    target_message_id: UUID,
    event_id: UUID,
    channel: str | None,
    run_id: UUID | None,
):
    """
    Enqueue a CLASSIFY job for one inbound message.

    Example:
        python -m triage.cli enqueue-classify --workspace-id ... --conversation-id ... \\
            --target-message-id ... --event-id ...
    """
    job = ClassifyJob(
        job_type="CLASSIFY",
        workspace_id=workspace_id,
        run_id=run_id,
        channel=channel,
        event_id=event_id,
        conversation_id=conversation_id,
        target_message_id=target_message_id,
    )
    with SessionLocal() as db:
        msg_id = queue_service.queue_send(
            db, settings.CLASSIFY_QUEUE, job.model_dump(mode="json", exclude_none=True)
        )
    click.echo(f"✅ Enqueued CLASSIFY job {msg_id} on {settings.CLASSIFY_QUEUE}")


@cli.command()
def run_once():
    """Run a single classify pass and print its summary."""
    from triage.worker import run_once as run_classify_once

    summary = asyncio.run(run_classify_once())
    click.echo(json.dumps(summary.to_dict(), indent=2))


@cli.command()
@click.option("--limit", default=100, show_default=True, help="Maximum jobs to replay")
def replay_deadletter(limit: int):
    """Move dead-lettered CLASSIFY jobs back onto the classify queue."""
    with SessionLocal() as db:
        replayed = pipeline_audit_service.replay_deadletters(
            db,
            deadletter_queue=settings.DEADLETTER_QUEUE,
            target_queue=settings.CLASSIFY_QUEUE,
            limit=limit,
        )
    if not replayed:
        click.echo(f"No CLASSIFY jobs in {settings.DEADLETTER_QUEUE}")
        return
    click.echo(f"✅ Replayed {replayed} job(s) onto {settings.CLASSIFY_QUEUE}")


if __name__ == "__main__":
    cli()
