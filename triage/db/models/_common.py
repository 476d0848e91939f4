"""Column helpers shared by the pipeline models."""

from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import BigInteger, Integer


def now_utc() -> datetime:
    return datetime.now(timezone.utc)


# BIGSERIAL on PostgreSQL; SQLite only autoincrements INTEGER primary keys.
BigIntPK = BigInteger().with_variant(Integer, "sqlite")
