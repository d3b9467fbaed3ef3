# backend/duplex/db/session.py

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from duplex.core.config import settings

# postgresql+psycopg2://duplex_user:...@db:5432/duplex in deployment,
# DB_URL=sqlite:///duplex.db on a single analyst workstation.
_connect_args = {}
if settings.DATABASE_URL.startswith("sqlite"):
    # the tracker and the evaluation pipeline share sessions across threads
    _connect_args["check_same_thread"] = False

engine = create_engine(
    settings.DATABASE_URL,
    pool_pre_ping=True,
    connect_args=_connect_args,
)

SessionLocal = sessionmaker(
    autocommit=False,
    autoflush=False,
    bind=engine,
)
