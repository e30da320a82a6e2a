"""
SESSION STORE - In-process session records with compare-and-swap commits

load()    -> current record, or a fresh minimal one for an unknown session
commit()  -> atomic: succeeds only if nobody committed since `prior` was
             loaded, otherwise raises LedgerWriteConflict
archive() -> moves a finished session out of the active map

Ledger fields and conversation state never regress here either: a commit
that tries to lower them keeps the stored values.
"""

import logging
from threading import Lock
from typing import Dict, Optional

from .errors import LedgerWriteConflict
from .models import SessionRecord, highest
from .risk_engine import merge

logger = logging.getLogger(__name__)


class InMemorySessionStore:
    def __init__(self) -> None:
        self._lock = Lock()
        self._sessions: Dict[str, SessionRecord] = {}
        self._archived: Dict[str, SessionRecord] = {}

    def load(self, session_id: str) -> SessionRecord:
        with self._lock:
            record = self._sessions.get(session_id)
            if record is None:
                return SessionRecord(sessionId=session_id)
            return record.model_copy(deep=True)

    def commit(self, prior: SessionRecord, updated: SessionRecord) -> SessionRecord:
        session_id = prior.sessionId
        if updated.sessionId != session_id:
            raise ValueError(f"Cannot commit session {updated.sessionId} over {session_id}")

        with self._lock:
            stored = self._sessions.get(session_id)
            actual_version = stored.version if stored is not None else 0
            if actual_version != prior.version:
                raise LedgerWriteConflict(session_id, prior.version, actual_version)

            baseline = stored or prior
            ledger = merge(baseline.ledger, updated.ledger)
            state = highest(baseline.state, updated.state)
            if ledger != updated.ledger or state != updated.state:
                logger.warning(f"Session {session_id}: regressing commit, stored values kept")

            record = updated.model_copy(update={
                "ledger": ledger,
                "state": state,
                "scenario": updated.scenario if state == updated.state else baseline.scenario,
                "turnCount": max(baseline.turnCount, updated.turnCount),
                "version": actual_version + 1,
            })
            self._sessions[session_id] = record
            return record.model_copy(deep=True)

    def archive(self, session_id: str) -> Optional[SessionRecord]:
        with self._lock:
            record = self._sessions.pop(session_id, None)
            if record is not None:
                self._archived[session_id] = record
                logger.info(f"Session {session_id} archived after {record.turnCount} turns")
            return record

    def get_archived(self, session_id: str) -> Optional[SessionRecord]:
        with self._lock:
            record = self._archived.get(session_id)
            return record.model_copy(deep=True) if record is not None else None
