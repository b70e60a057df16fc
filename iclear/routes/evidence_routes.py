"""
Evidence download route for the owning student and the case's reviewers
"""

from flask import Blueprint, jsonify
from iclear.models import db, RequirementSubmission
from iclear.services import ActorService, can_act_on
from iclear.services.evidence_store import get_evidence_store
from iclear.utils import (
    AuthenticationError, AuthorizationError, ClearanceError, NotFoundError,
    create_response, error_response, log_error
)

evidence_bp = Blueprint('evidence', __name__)


def _readable_submission(evidence_ref):
    student = ActorService.current_student()
    staff = ActorService.current_staff()
    if student is None and staff is None:
        raise AuthenticationError()

    submission = RequirementSubmission.query.filter_by(evidence_ref=evidence_ref).first()
    if submission is None:
        raise NotFoundError("Evidence not found")

    case = submission.case
    if student is not None and case.request.student_id == student.id:
        return submission
    if staff is not None and can_act_on(staff.role, staff.unit_binding, case):
        return submission
    raise AuthorizationError()


@evidence_bp.route('/evidence/<path:evidence_ref>', methods=['GET'])
def download_evidence(evidence_ref):
    """Stream or redirect to a stored evidence file"""
    try:
        submission = _readable_submission(evidence_ref)
        return get_evidence_store().send(submission.evidence_ref)

    except ClearanceError as e:
        return error_response(e)
    except Exception as e:
        log_error("Failed to download evidence", e)
        db.session.rollback()
        return jsonify(create_response(False, "Failed to download evidence")), 500
