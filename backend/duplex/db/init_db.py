# backend/duplex/db/init_db.py

from sqlalchemy.engine import Engine

from duplex.db.base_class import Base

# Import models so they are registered with Base.metadata
from duplex.models import investigation_record  # noqa: F401


def init_db(bind: Engine | None = None) -> None:
    """
    Create the investigation tables if they don't exist.
    In production, replace this with Alembic migrations.
    """
    if bind is None:
        from duplex.db.session import engine as bind

    Base.metadata.create_all(bind=bind)
