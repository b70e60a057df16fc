"""
Submission tracker: a student's evidence and acknowledgments per requirement
"""

from datetime import datetime
from typing import Optional, Tuple

from sqlalchemy.exc import IntegrityError

from iclear.models import db, Requirement, RequirementSubmission, ReviewCase
from iclear.models.clearance import EDITABLE_CASE_STATUSES, SUBMISSION_PENDING, SUBMISSION_SUBMITTED
from iclear.services.evidence_store import build_evidence_key, get_evidence_store, prepare_evidence
from iclear.utils.exceptions import (
    AuthorizationError, CaseLockedError, FileUploadError, NotFoundError, ValidationError
)
from iclear.utils.helpers import log_info, log_warning
from iclear.utils.validators import validate_identifier


class SubmissionService:
    """Requirement submission service class"""

    def __init__(self, evidence_store=None):
        self._evidence_store = evidence_store

    @property
    def evidence_store(self):
        return self._evidence_store or get_evidence_store()

    def load_editable(self, case_id, requirement_id, student_id) -> Tuple[ReviewCase, Requirement]:
        """
        Load a case and one of its unit's requirements for a student write

        Raises:
            NotFoundError: Unknown case or requirement
            AuthorizationError: The case belongs to another student
            ValidationError: The requirement belongs to another unit
            CaseLockedError: The case is under review or approved
        """
        case_id = validate_identifier(case_id, "Case ID")
        requirement_id = validate_identifier(requirement_id, "Requirement ID")
        student_id = validate_identifier(student_id, "Student ID")

        case = db.session.get(ReviewCase, case_id)
        if case is None:
            raise NotFoundError("Review case not found")
        if case.request.student_id != student_id:
            raise AuthorizationError()

        requirement = db.session.get(Requirement, requirement_id)
        if requirement is None:
            raise NotFoundError("Requirement not found")
        if (requirement.unit_type, requirement.unit_id) != case.unit:
            raise ValidationError("Requirement does not belong to this case")

        if case.is_locked:
            raise CaseLockedError()

        return case, requirement

    @staticmethod
    def _claim(case_id: int) -> None:
        """Touch the case only while it is editable; holds its row until commit"""
        claimed = (
            ReviewCase.query
            .filter(ReviewCase.id == case_id, ReviewCase.status.in_(EDITABLE_CASE_STATUSES))
            .update({'updated_at': datetime.utcnow()}, synchronize_session=False)
        )
        if not claimed:
            raise CaseLockedError()

    @staticmethod
    def _find_submission(case_id: int, requirement_id: int) -> Optional[RequirementSubmission]:
        return RequirementSubmission.query.filter_by(
            case_id=case_id, requirement_id=requirement_id
        ).first()

    def _write(self, case: ReviewCase, requirement: Requirement, student_id: int,
               evidence_ref: Optional[str], status: str) -> Tuple[RequirementSubmission, Optional[str]]:
        """Upsert the (case, requirement) row; returns it and the evidence it replaced"""
        case_id, requirement_id = case.id, requirement.id
        for attempt in range(2):
            created = False
            try:
                self._claim(case_id)
                submission = self._find_submission(case_id, requirement_id)
                if submission is None:
                    created = True
                    submission = RequirementSubmission(
                        case_id=case_id,
                        requirement_id=requirement_id,
                        student_id=student_id,
                    )
                    db.session.add(submission)

                previous_ref = submission.evidence_ref
                submission.evidence_ref = evidence_ref
                submission.status = status
                submission.submitted_at = datetime.utcnow() if status == SUBMISSION_SUBMITTED else None
                submission.remarks = None
                submission.reviewed_at = None
                submission.reviewed_by = None

                db.session.commit()
                return submission, previous_ref
            except IntegrityError:
                db.session.rollback()
                # A concurrent first write inserted the row; update it instead
                if not created or attempt:
                    raise
                log_warning(f"Submission for case {case_id}, requirement {requirement_id} "
                            f"was created concurrently; retrying as update")
            except Exception:
                db.session.rollback()
                raise

    def upsert_submission(self, case_id, requirement_id, student_id,
                          evidence_ref: Optional[str]) -> RequirementSubmission:
        """
        Record (or clear, with None) the evidence reference for an upload requirement

        Clearing keeps the row with a null reference so its history survives.
        """
        case, requirement = self.load_editable(case_id, requirement_id, student_id)
        if not requirement.requires_upload:
            raise ValidationError("This requirement only needs an acknowledgment")

        status = SUBMISSION_SUBMITTED if evidence_ref else SUBMISSION_PENDING
        submission, _ = self._write(case, requirement, case.request.student_id, evidence_ref or None, status)
        return submission

    def acknowledge_requirement(self, case_id, requirement_id, student_id, ack: bool) -> RequirementSubmission:
        """Mark (or unmark) an acknowledgment-only requirement"""
        if not isinstance(ack, bool):
            raise ValidationError("Acknowledgment must be true or false")

        case, requirement = self.load_editable(case_id, requirement_id, student_id)
        if requirement.requires_upload:
            raise ValidationError("This requirement needs an uploaded file")

        status = SUBMISSION_SUBMITTED if ack else SUBMISSION_PENDING
        submission, _ = self._write(case, requirement, case.request.student_id, None, status)
        return submission

    def attach_evidence(self, case_id, requirement_id, student_id, file) -> RequirementSubmission:
        """
        Validate and store an evidence file, then record it on the submission

        The uploaded file is removed again if the submission cannot be written,
        and evidence it replaces is removed once the write commits.
        """
        case, requirement = self.load_editable(case_id, requirement_id, student_id)
        if not requirement.requires_upload:
            raise ValidationError("This requirement only needs an acknowledgment")

        data, extension = prepare_evidence(file)
        key = build_evidence_key(case.request.student_id, case.id, requirement.id, extension)
        evidence_ref = self.evidence_store.upload(data, key)

        student_id = case.request.student_id
        try:
            # The claim in _write fails if the case was submitted while uploading
            submission, previous_ref = self._write(
                case, requirement, student_id, evidence_ref, SUBMISSION_SUBMITTED
            )
        except Exception:
            self._discard(evidence_ref)
            raise

        if previous_ref and previous_ref != evidence_ref:
            self._discard(previous_ref)

        log_info(f"Evidence stored for case {case.id}, requirement {requirement.id}")
        return submission

    def remove_evidence(self, case_id, requirement_id, student_id) -> RequirementSubmission:
        """Soft-clear a submission's evidence and delete the stored file"""
        case, requirement = self.load_editable(case_id, requirement_id, student_id)
        if not requirement.requires_upload:
            raise ValidationError("This requirement only needs an acknowledgment")

        submission, previous_ref = self._write(
            case, requirement, case.request.student_id, None, SUBMISSION_PENDING
        )
        if previous_ref:
            self._discard(previous_ref)
        return submission

    def _discard(self, evidence_ref: str) -> None:
        """Delete a stored file; failures leave an orphan and are only logged"""
        try:
            self.evidence_store.delete(evidence_ref)
        except FileUploadError as e:
            log_warning(f"Could not delete evidence {evidence_ref}: {e}")
