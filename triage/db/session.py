from sqlalchemy import create_engine
from sqlalchemy.engine import make_url
from sqlalchemy.orm import sessionmaker

from triage.core.config import settings

_backend = make_url(settings.DATABASE_URL).get_backend_name()

connect_args = {}
if _backend.startswith("postgresql"):
    # Queue visibility timestamps are compared in UTC.
    connect_args["options"] = "-c timezone=utc"
elif _backend == "sqlite":
    # The worker loop and the HTTP trigger share one process.
    connect_args["check_same_thread"] = False

engine = create_engine(
    settings.DATABASE_URL, pool_pre_ping=True, connect_args=connect_args
)
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
