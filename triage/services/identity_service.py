"""Customer identity harvesting from classifier entities."""

from __future__ import annotations

import logging
from uuid import UUID

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from triage.db.enums import IdentifierType
from triage.db.models import CustomerIdentity
from triage.schemas.triage import ClassificationEntities
from triage.utils.normalization import normalize_email, normalize_phone

logger = logging.getLogger(__name__)


def _candidates(entities: ClassificationEntities) -> list[tuple[IdentifierType, str, str]]:
    found: list[tuple[IdentifierType, str, str]] = []
    for phone in entities.extracted_phones:
        if not phone.startswith("+"):
            continue
        try:
            norm = normalize_phone(phone)
        except ValueError:
            continue
        if norm:
            found.append((IdentifierType.PHONE, phone, norm))
    for email in entities.extracted_emails:
        if "@" not in email:
            continue
        norm = normalize_email(email)
        if norm:
            found.append((IdentifierType.EMAIL, email, norm))
    return found


def _identity_exists(db: Session, workspace_id: UUID, identifier_type: IdentifierType, norm: str) -> bool:
    return (
        db.query(CustomerIdentity.id)
        .filter(
            CustomerIdentity.workspace_id == workspace_id,
            CustomerIdentity.identifier_type == identifier_type.value,
            CustomerIdentity.identifier_value_norm == norm,
        )
        .first()
        is not None
    )


def harvest_identities(
    db: Session,
    *,
    workspace_id: UUID,
    customer_id: UUID | None,
    entities: ClassificationEntities,
    source_channel: str | None,
) -> int:
    """
    Upsert phone numbers and addresses mentioned in a message as unverified
    identities of the conversation's customer.

    Runs in its own SAVEPOINT; any failure is logged and rolled back to the
    savepoint without touching the caller's transaction. Returns the number of
    identities inserted.
    """
    if not customer_id:
        return 0
    candidates = _candidates(entities)
    if not candidates:
        return 0

    inserted = 0
    savepoint = db.begin_nested()
    try:
        for identifier_type, value, norm in candidates:
            if _identity_exists(db, workspace_id, identifier_type, norm):
                continue
            db.add(
                CustomerIdentity(
                    workspace_id=workspace_id,
                    customer_id=customer_id,
                    identifier_type=identifier_type.value,
                    identifier_value=value,
                    identifier_value_norm=norm,
                    verified=False,
                    source_channel=source_channel,
                )
            )
            db.flush()
            inserted += 1
        savepoint.commit()
    except SQLAlchemyError as exc:
        savepoint.rollback()
        logger.warning("Identity harvesting failed (non-fatal): %s", type(exc).__name__)
        return 0
    return inserted
