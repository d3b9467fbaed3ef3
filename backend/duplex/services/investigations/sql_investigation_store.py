# backend/duplex/services/investigations/sql_investigation_store.py

from typing import Callable, Optional

from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from duplex.core.exceptions import StateStoreUnavailable
from duplex.models.investigation_record import InvestigationRecordRow
from duplex.schemas.investigation import InvestigationRecord, InvestigationStatus


class SqlInvestigationStore:
    """
    DB-backed investigation store (Postgres or SQLite via SQLAlchemy).

    Interface is the same as the in-memory version so the tracker and the
    pipeline don't have to change.
    """

    def __init__(self, session_factory: Optional[Callable[[], Session]] = None) -> None:
        self._session_factory = session_factory

    def _get_db(self) -> Session:
        if self._session_factory is None:
            from duplex.db.session import SessionLocal

            self._session_factory = SessionLocal
        return self._session_factory()

    @staticmethod
    def _to_record(row: InvestigationRecordRow) -> InvestigationRecord:
        return InvestigationRecord(
            user_id=row.user_id,
            status=InvestigationStatus(row.status),
            ticket_id=row.ticket_id,
            opened_at=row.opened_at,
            marked_at=row.marked_at,
            suppress_until=row.suppress_until,
        )

    # --------------------------------------------------------
    # Health
    # --------------------------------------------------------
    def ping(self) -> None:
        db = self._get_db()
        try:
            db.execute(text("SELECT 1"))
        except SQLAlchemyError as exc:
            raise StateStoreUnavailable(f"investigation store unreachable: {exc}") from exc
        finally:
            db.close()

    # --------------------------------------------------------
    # Read single
    # --------------------------------------------------------
    def get(self, user_id: str) -> Optional[InvestigationRecord]:
        db = self._get_db()
        try:
            row = db.get(InvestigationRecordRow, user_id)
            return self._to_record(row) if row is not None else None
        except SQLAlchemyError as exc:
            raise StateStoreUnavailable(
                f"could not read investigation record: {exc}", user_id=user_id
            ) from exc
        finally:
            db.close()

    # --------------------------------------------------------
    # Create / replace
    # --------------------------------------------------------
    def put(self, record: InvestigationRecord) -> None:
        db = self._get_db()
        try:
            db.merge(
                InvestigationRecordRow(
                    user_id=record.user_id,
                    status=record.status.value,
                    ticket_id=record.ticket_id,
                    opened_at=record.opened_at,
                    marked_at=record.marked_at,
                    suppress_until=record.suppress_until,
                )
            )
            db.commit()
        except SQLAlchemyError as exc:
            db.rollback()
            raise StateStoreUnavailable(
                f"could not write investigation record: {exc}", user_id=record.user_id
            ) from exc
        finally:
            db.close()

    def delete(self, user_id: str) -> None:
        db = self._get_db()
        try:
            db.query(InvestigationRecordRow).filter(
                InvestigationRecordRow.user_id == user_id
            ).delete()
            db.commit()
        except SQLAlchemyError as exc:
            db.rollback()
            raise StateStoreUnavailable(
                f"could not delete investigation record: {exc}", user_id=user_id
            ) from exc
        finally:
            db.close()
