"""
History logger: append-only status transitions, hash-chained per stream

A case's entries form one chain; a request's own entries (case_id NULL) form
another. Appends happen inside the transaction that performs the transition,
after the guarded status update, so the chain of a stream is written by one
transaction at a time.
"""

from datetime import datetime
from typing import List, Optional

from iclear.models import db, StatusHistoryEntry
from iclear.utils.hashing import chain_hash, verify_hash

ACTOR_SYSTEM = 'system'
ACTOR_STUDENT = 'student'


class HistoryService:
    """Status history service class"""

    @staticmethod
    def _stream_query(request_id: Optional[int], case_id: Optional[int]):
        if case_id is not None:
            return StatusHistoryEntry.query.filter(StatusHistoryEntry.case_id == case_id)
        return StatusHistoryEntry.query.filter(
            StatusHistoryEntry.request_id == request_id,
            StatusHistoryEntry.case_id.is_(None),
        )

    @staticmethod
    def append(request_id: int, case_id: Optional[int], from_status: Optional[str],
               to_status: str, actor_id: Optional[int], actor_role: str,
               remarks: Optional[str] = None) -> StatusHistoryEntry:
        """
        Append one transition to the history

        The entry is added to the current session; the caller commits it
        together with the transition it records.
        """
        last = (
            HistoryService._stream_query(request_id, case_id)
            .order_by(StatusHistoryEntry.id.desc())
            .first()
        )
        prev_hash = last.entry_hash if last else None

        entry = StatusHistoryEntry(
            request_id=request_id,
            case_id=case_id,
            from_status=from_status,
            to_status=to_status,
            actor_id=actor_id,
            actor_role=actor_role,
            remarks=remarks,
            # Whole seconds so the hashed value survives DATETIME columns
            created_at=datetime.utcnow().replace(microsecond=0),
            prev_hash=prev_hash,
        )
        entry.entry_hash = chain_hash(prev_hash, entry.hash_payload())
        db.session.add(entry)
        db.session.flush()
        return entry

    @staticmethod
    def get_history(case_id: int) -> List[StatusHistoryEntry]:
        """Transitions of one case, oldest first"""
        return (
            StatusHistoryEntry.query
            .filter_by(case_id=case_id)
            .order_by(StatusHistoryEntry.created_at, StatusHistoryEntry.id)
            .all()
        )

    @staticmethod
    def get_request_history(request_id: int) -> List[StatusHistoryEntry]:
        """Request-level transitions, oldest first"""
        return (
            HistoryService._stream_query(request_id, None)
            .order_by(StatusHistoryEntry.created_at, StatusHistoryEntry.id)
            .all()
        )

    @staticmethod
    def verify_chain(case_id: Optional[int] = None, request_id: Optional[int] = None) -> bool:
        """
        Check that a history stream has not been altered

        Returns:
            False if any entry's hash does not match its contents or the
            chain is broken
        """
        entries = (
            HistoryService._stream_query(request_id, case_id)
            .order_by(StatusHistoryEntry.id)
            .all()
        )
        prev_hash = None
        for entry in entries:
            if entry.prev_hash != prev_hash:
                return False
            if not verify_hash(prev_hash, entry.hash_payload(), entry.entry_hash):
                return False
            prev_hash = entry.entry_hash
        return True
