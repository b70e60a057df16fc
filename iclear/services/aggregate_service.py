"""
Aggregate status: a request's status derived from its review cases
"""

from datetime import datetime
from typing import Iterable, Optional

from iclear.models import db, ClearanceRequest, ReviewCase
from iclear.models.clearance import (
    CASE_APPROVED, CASE_PENDING,
    REQUEST_PENDING, REQUEST_IN_PROGRESS, REQUEST_REJECTED, REQUEST_COMPLETED,
    TERMINAL_REQUEST_STATUSES,
)
from iclear.services.history_service import HistoryService, ACTOR_SYSTEM
from iclear.utils.exceptions import NotFoundError
from iclear.utils.helpers import log_info


def derive_request_status(case_statuses: Iterable[str]) -> str:
    """
    Request status for a set of case statuses

    No cases, or every case approved, completes the request. A rejected or
    on-hold case keeps the request in progress since the student can
    resubmit it.
    """
    statuses = list(case_statuses)
    if all(status == CASE_APPROVED for status in statuses):
        return REQUEST_COMPLETED
    if all(status == CASE_PENDING for status in statuses):
        return REQUEST_PENDING
    return REQUEST_IN_PROGRESS


def progress(case_statuses: Iterable[str]) -> int:
    """Percentage of approved cases"""
    statuses = list(case_statuses)
    if not statuses:
        return 100
    approved = sum(1 for status in statuses if status == CASE_APPROVED)
    return int(approved * 100 / len(statuses))


class AggregateService:
    """Request status derivation service class"""

    @staticmethod
    def lock_query(request_id: int):
        """Request row read with FOR UPDATE"""
        return ClearanceRequest.query.filter_by(id=request_id).with_for_update().populate_existing()

    @staticmethod
    def lock(request_id: int) -> ClearanceRequest:
        """
        Lock a request row for the rest of the transaction

        Case transitions take this lock before touching their case, so the
        status derivation of one request runs one transaction at a time.
        """
        clearance_request = AggregateService.lock_query(request_id).one_or_none()
        if clearance_request is None:
            raise NotFoundError(f"Clearance request {request_id} not found")
        return clearance_request

    @staticmethod
    def case_statuses_query(request_id: int):
        # Locking read: sees sibling cases committed after this transaction began
        return (
            db.session.query(ReviewCase.status)
            .filter(ReviewCase.request_id == request_id)
            .with_for_update(read=True)
        )

    @staticmethod
    def case_statuses(request_id: int):
        return [row.status for row in AggregateService.case_statuses_query(request_id).all()]

    @staticmethod
    def apply(request_id: int, actor_id: Optional[int] = None,
              actor_role: str = ACTOR_SYSTEM) -> ClearanceRequest:
        """
        Recompute and write a request's status inside the caller's transaction

        A request closed as rejected outside the workflow is left as is.
        """
        clearance_request = AggregateService.lock(request_id)

        current = clearance_request.status
        if current == REQUEST_REJECTED:
            return clearance_request

        derived = derive_request_status(AggregateService.case_statuses(request_id))
        if derived == current:
            return clearance_request

        values = {'status': derived, 'updated_at': datetime.utcnow()}
        if derived in TERMINAL_REQUEST_STATUSES:
            values['active_slot'] = None

        updated = (
            ClearanceRequest.query
            .filter_by(id=request_id, status=current)
            .update(values, synchronize_session='fetch')
        )
        if updated:
            HistoryService.append(request_id, None, current, derived, actor_id, actor_role)
            log_info(f"Clearance request {request_id}: {current} -> {derived}")

        db.session.refresh(clearance_request)
        return clearance_request

    @staticmethod
    def recompute(request_id: int) -> ClearanceRequest:
        """
        Recompute a request's status and commit

        Idempotent: with no case change in between, repeated calls leave the
        request and its history unchanged.
        """
        try:
            clearance_request = AggregateService.apply(request_id)
            db.session.commit()
            return clearance_request
        except Exception:
            db.session.rollback()
            raise
