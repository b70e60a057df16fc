"""
Read side for the presentation and reporting layers
"""

from typing import Any, Dict, List, Optional

from iclear.models import db, ClearanceRequest, ReviewCase, RequirementSubmission
from iclear.models.clearance import ACTIVE_SLOT, CASE_STATUSES
from iclear.models.units import UNIT_TYPES
from iclear.services.aggregate_service import progress
from iclear.services.evidence_store import get_evidence_store
from iclear.services.gating import unmet_requirements
from iclear.services.registry import UnitRegistry
from iclear.utils.exceptions import NotFoundError
from iclear.utils.validators import validate_choice, validate_identifier


class QueryService:
    """Clearance query service class"""

    def __init__(self, registry=None, evidence_store=None):
        self.registry = registry or UnitRegistry()
        self._evidence_store = evidence_store

    @property
    def evidence_store(self):
        return self._evidence_store or get_evidence_store()

    def get_request(self, request_id) -> ClearanceRequest:
        request_id = validate_identifier(request_id, "Request ID")
        clearance_request = db.session.get(ClearanceRequest, request_id)
        if clearance_request is None:
            raise NotFoundError("Clearance request not found")
        return clearance_request

    def get_case(self, case_id) -> ReviewCase:
        case_id = validate_identifier(case_id, "Case ID")
        case = db.session.get(ReviewCase, case_id)
        if case is None:
            raise NotFoundError("Review case not found")
        return case

    def describe_request(self, clearance_request: ClearanceRequest) -> Dict[str, Any]:
        """Request with its cases and approval progress"""
        data = clearance_request.to_dict(include_cases=True)
        data['progress'] = progress(case.status for case in clearance_request.cases)
        return data

    def describe_case(self, case: ReviewCase) -> Dict[str, Any]:
        """Case with its checklist, submissions and current readiness"""
        requirements = self.registry.list_requirements(case.unit_type, case.unit_id)
        submissions = RequirementSubmission.query.filter_by(case_id=case.id).all()
        unmet = unmet_requirements(case, requirements, submissions)

        data = case.to_dict()
        data['requirements'] = [r.to_dict() for r in requirements]
        data['submissions'] = [self._describe_submission(s) for s in submissions]
        data['unmet_requirement_ids'] = [r.id for r in unmet]
        data['is_ready'] = not unmet
        return data

    def _describe_submission(self, submission: RequirementSubmission) -> Dict[str, Any]:
        data = submission.to_dict()
        data['file_url'] = (
            self.evidence_store.url(submission.evidence_ref) if submission.evidence_ref else None
        )
        return data

    def list_student_requests(self, student_id) -> List[ClearanceRequest]:
        student_id = validate_identifier(student_id, "Student ID")
        return (
            ClearanceRequest.query
            .filter_by(student_id=student_id)
            .order_by(ClearanceRequest.created_at.desc(), ClearanceRequest.id.desc())
            .all()
        )

    def get_active_request(self, student_id) -> Optional[ClearanceRequest]:
        student_id = validate_identifier(student_id, "Student ID")
        return ClearanceRequest.query.filter_by(student_id=student_id, active_slot=ACTIVE_SLOT).first()

    def list_unit_queue(self, unit_type: str, unit_id, status: Optional[str] = None) -> List[ReviewCase]:
        """Cases assigned to one approving unit, oldest submission first"""
        validate_choice(unit_type, UNIT_TYPES, "Unit type")
        unit_id = validate_identifier(unit_id, "Unit ID")
        query = ReviewCase.query.filter_by(unit_type=unit_type, unit_id=unit_id)
        if status:
            validate_choice(status, CASE_STATUSES, "Status")
            query = query.filter_by(status=status)
        return query.order_by(ReviewCase.submitted_at, ReviewCase.id).all()
