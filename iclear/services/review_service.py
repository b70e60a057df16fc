"""
Review state machine for clearance cases

    pending -> submitted -> approved | rejected | on_hold
    rejected -> submitted, on_hold -> submitted
    approved is final

Every transition names the status the caller last saw. The row is only
updated while it still has that status (compare-and-swap), so of two racing
reviewers exactly one wins and the other gets StaleStateError.
"""

from datetime import datetime
from typing import Callable, Optional, Tuple

from iclear.models import db, ReviewCase, RequirementSubmission, Staff
from iclear.models.clearance import (
    CASE_APPROVED, CASE_ON_HOLD, CASE_REJECTED, CASE_STATUSES, CASE_SUBMITTED,
    EDITABLE_CASE_STATUSES,
    SUBMISSION_REJECTED, SUBMISSION_VERIFIED,
)
from iclear.models.units import UNIT_TYPES
from iclear.services.aggregate_service import AggregateService
from iclear.services.gating import unmet_requirements
from iclear.services.history_service import HistoryService, ACTOR_STUDENT
from iclear.services.registry import UnitRegistry
from iclear.utils.exceptions import (
    AuthorizationError, CaseLockedError, NotFoundError, NotReadyError,
    StaleStateError, ValidationError
)
from iclear.utils.helpers import log_info
from iclear.utils.validators import validate_choice, validate_identifier

ROLE_ADMIN = 'admin'

SUBMITTABLE_STATUSES = EDITABLE_CASE_STATUSES
DECISION_OUTCOMES = (CASE_APPROVED, CASE_REJECTED, CASE_ON_HOLD)
REMARKS_REQUIRED = (CASE_REJECTED, CASE_ON_HOLD)
SUBMISSION_REVIEW_OUTCOMES = (SUBMISSION_VERIFIED, SUBMISSION_REJECTED)


def can_act_on(actor_role: str, actor_unit_binding: Optional[Tuple[str, int]], case) -> bool:
    """
    Whether a reviewer may act on a case

    Admins act on every case; unit staff only on cases of the unit they are
    bound to.
    """
    if actor_role == ROLE_ADMIN:
        return True
    if actor_role not in UNIT_TYPES or actor_unit_binding is None:
        return False
    unit_type, unit_id = actor_unit_binding
    return actor_role == unit_type and (unit_type, unit_id) == (case.unit_type, case.unit_id)


class ReviewService:
    """Review case transition service class"""

    def __init__(self, registry=None):
        self.registry = registry or UnitRegistry()

    @staticmethod
    def _load_case(case_id) -> ReviewCase:
        case = db.session.get(ReviewCase, validate_identifier(case_id, "Case ID"))
        if case is None:
            raise NotFoundError("Review case not found")
        return case

    @staticmethod
    def _load_reviewer(reviewer_id) -> Staff:
        reviewer = db.session.get(Staff, validate_identifier(reviewer_id, "Reviewer ID"))
        if reviewer is None or not reviewer.is_active:
            raise AuthorizationError("Reviewer not recognized")
        return reviewer

    @staticmethod
    def _transition(case: ReviewCase, expected_status: str, new_status: str, values: dict,
                    actor_id: int, actor_role: str, remarks: Optional[str],
                    precondition: Optional[Callable[[ReviewCase], None]] = None) -> ReviewCase:
        """
        Compare-and-swap the case status, log it and rederive the request, atomically

        The request row is locked first, so transitions of sibling cases
        serialize and each derivation sees the others' committed statuses.
        precondition runs after the swap, inside the same transaction.
        """
        values = dict(values, status=new_status, updated_at=datetime.utcnow())
        try:
            AggregateService.lock(case.request_id)
            updated = (
                ReviewCase.query
                .filter_by(id=case.id, status=expected_status)
                .update(values, synchronize_session='fetch')
            )
            if not updated:
                raise StaleStateError()
            if precondition is not None:
                precondition(case)

            HistoryService.append(case.request_id, case.id, expected_status, new_status,
                                  actor_id, actor_role, remarks)
            AggregateService.apply(case.request_id, actor_id, actor_role)
            db.session.commit()
        except Exception:
            db.session.rollback()
            raise

        db.session.refresh(case)
        log_info(f"Review case {case.id}: {expected_status} -> {new_status} by {actor_role} {actor_id}")
        return case

    def readiness(self, case: ReviewCase, lock: bool = False):
        """
        Unmet required requirements of a case, read from current rows

        With lock, submissions are read with a shared lock so a concurrent
        write to them waits for the caller's transaction.
        """
        requirements = self.registry.list_requirements(case.unit_type, case.unit_id)
        query = RequirementSubmission.query.filter_by(case_id=case.id)
        if lock:
            query = query.with_for_update(read=True).populate_existing()
        return unmet_requirements(case, requirements, query.all())

    def _require_ready(self, case: ReviewCase) -> None:
        unmet = self.readiness(case, lock=True)
        if unmet:
            raise NotReadyError(data={'unmet_requirements': [r.to_dict() for r in unmet]})

    def submit(self, case_id, student_id, expected_status: str) -> ReviewCase:
        """
        Student submits a ready case into the review queue

        Raises:
            AuthorizationError: The case belongs to another student
            CaseLockedError: The case is already submitted or approved
            StaleStateError: The case is no longer in expected_status
            NotReadyError: Required requirements are unmet (data lists them)
        """
        student_id = validate_identifier(student_id, "Student ID")
        validate_choice(expected_status, CASE_STATUSES, "Expected status")
        case = self._load_case(case_id)

        if case.request.student_id != student_id:
            raise AuthorizationError()
        if expected_status not in SUBMITTABLE_STATUSES:
            raise CaseLockedError()
        if case.status != expected_status:
            raise StaleStateError(data={'current_status': case.status})

        self._require_ready(case)

        # Readiness is checked again under lock, after the swap
        return self._transition(
            case, expected_status, CASE_SUBMITTED,
            {'submitted_at': datetime.utcnow(), 'remarks': None,
             'reviewed_at': None, 'reviewed_by': None},
            actor_id=student_id, actor_role=ACTOR_STUDENT, remarks=None,
            precondition=self._require_ready,
        )

    def decide(self, case_id, reviewer_id, outcome: str, remarks: Optional[str],
               expected_status: str) -> ReviewCase:
        """
        Reviewer approves, rejects or holds a submitted case

        Remarks are required to reject or hold.

        Raises:
            ValidationError: Bad outcome, missing remarks, or the case is not under review
            AuthorizationError: The reviewer is not bound to the case's unit
            StaleStateError: The case is no longer in expected_status
        """
        validate_choice(outcome, DECISION_OUTCOMES, "Outcome")
        validate_choice(expected_status, CASE_STATUSES, "Expected status")
        remarks = (remarks or '').strip() or None
        if outcome in REMARKS_REQUIRED and not remarks:
            raise ValidationError("Remarks are required when rejecting or putting a case on hold")

        reviewer = self._load_reviewer(reviewer_id)
        case = self._load_case(case_id)
        if not can_act_on(reviewer.role, reviewer.unit_binding, case):
            raise AuthorizationError()

        if expected_status != CASE_SUBMITTED:
            raise ValidationError("Only submitted cases can be reviewed")
        if case.status != expected_status:
            raise StaleStateError(data={'current_status': case.status})

        return self._transition(
            case, expected_status, outcome,
            {'remarks': remarks, 'reviewed_by': reviewer.id, 'reviewed_at': datetime.utcnow()},
            actor_id=reviewer.id, actor_role=reviewer.role, remarks=remarks,
        )

    def review_submission(self, submission_id, reviewer_id, status: str,
                          remarks: Optional[str] = None) -> RequirementSubmission:
        """Reviewer verifies or rejects one requirement submission of a case under review"""
        validate_choice(status, SUBMISSION_REVIEW_OUTCOMES, "Submission status")
        remarks = (remarks or '').strip() or None
        if status == SUBMISSION_REJECTED and not remarks:
            raise ValidationError("Remarks are required when rejecting a submission")

        reviewer = self._load_reviewer(reviewer_id)
        submission = db.session.get(RequirementSubmission,
                                    validate_identifier(submission_id, "Submission ID"))
        if submission is None:
            raise NotFoundError("Submission not found")

        case = submission.case
        if not can_act_on(reviewer.role, reviewer.unit_binding, case):
            raise AuthorizationError()
        if case.status != CASE_SUBMITTED:
            raise ValidationError("Submissions can only be reviewed while the case is under review")

        submission.status = status
        submission.remarks = remarks
        submission.reviewed_by = reviewer.id
        submission.reviewed_at = datetime.utcnow()
        try:
            db.session.commit()
        except Exception:
            db.session.rollback()
            raise
        return submission
