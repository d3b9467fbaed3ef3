# backend/duplex/services/investigations/investigation_store.py
import threading
from typing import Dict, Optional, Protocol

from duplex.schemas.investigation import InvestigationRecord


class InvestigationStore(Protocol):
    """
    Persistence for InvestigationRecords, one per user. Implementations
    raise StateStoreUnavailable when the backing store cannot be reached.
    """

    def ping(self) -> None:
        ...

    def get(self, user_id: str) -> Optional[InvestigationRecord]:
        ...

    def put(self, record: InvestigationRecord) -> None:
        ...

    def delete(self, user_id: str) -> None:
        ...


class InMemoryInvestigationStore:
    """
    Process-local store for tests and single-analyst runs.
    Same interface as SqlInvestigationStore so the tracker doesn't care.
    """

    def __init__(self) -> None:
        # user_id -> record
        self._records: Dict[str, InvestigationRecord] = {}
        self._lock = threading.Lock()

    def ping(self) -> None:
        return None

    def get(self, user_id: str) -> Optional[InvestigationRecord]:
        with self._lock:
            return self._records.get(user_id)

    def put(self, record: InvestigationRecord) -> None:
        with self._lock:
            self._records[record.user_id] = record

    def delete(self, user_id: str) -> None:
        with self._lock:
            self._records.pop(user_id, None)

    def __len__(self) -> int:
        with self._lock:
            return len(self._records)
