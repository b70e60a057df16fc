"""
Student routes
"""

from flask import Blueprint, current_app, request, jsonify
from iclear.models import db
from iclear.services import (
    ActorService, FanOutService, HistoryService, QueryService, ReviewService, SubmissionService
)
from iclear.utils import (
    AuthorizationError, ClearanceError, ValidationError,
    create_response, error_response, log_error
)

student_bp = Blueprint('student', __name__)


def _registry():
    return current_app.extensions['iclear_registry']


def _owned_case(student, case_id):
    case = QueryService(_registry()).get_case(case_id)
    if case.request.student_id != student.id:
        raise AuthorizationError()
    return case


def _failure(message, e):
    """Roll back and build the response for an unexpected error"""
    log_error(message, e)
    db.session.rollback()
    return jsonify(create_response(False, message)), 500


@student_bp.route('/student/settings', methods=['GET'])
def get_period_settings():
    """Current academic period and open clearance types"""
    try:
        ActorService.require_student()
        settings = _registry().get_period_settings()
        return jsonify(create_response(True, "Settings retrieved", settings.to_dict()))

    except ClearanceError as e:
        return error_response(e)
    except Exception as e:
        return _failure("Failed to get settings", e)


@student_bp.route('/student/requests', methods=['POST'])
def create_clearance_request():
    """Create new clearance request"""
    try:
        student = ActorService.require_student()

        data = request.get_json(silent=True)
        if not data:
            raise ValidationError("No data provided")

        period = None
        if data.get('academic_year') or data.get('semester'):
            period = (data.get('academic_year'), data.get('semester'))

        clearance_request = FanOutService(_registry()).create_request(
            student.id, data.get('request_type'), period
        )
        payload = QueryService(_registry()).describe_request(clearance_request)
        return jsonify(create_response(True, "Clearance request created", payload)), 201

    except ClearanceError as e:
        db.session.rollback()
        return error_response(e)
    except Exception as e:
        return _failure("Failed to create clearance request", e)


@student_bp.route('/student/requests', methods=['GET'])
def get_student_requests():
    """Get student's clearance requests"""
    try:
        student = ActorService.require_student()
        requests = QueryService(_registry()).list_student_requests(student.id)
        return jsonify(create_response(True, "Requests retrieved", [req.to_dict() for req in requests]))

    except ClearanceError as e:
        return error_response(e)
    except Exception as e:
        return _failure("Failed to get requests", e)


@student_bp.route('/student/requests/active', methods=['GET'])
def get_active_request():
    """Get the student's active clearance request, if any"""
    try:
        student = ActorService.require_student()
        queries = QueryService(_registry())
        clearance_request = queries.get_active_request(student.id)
        payload = queries.describe_request(clearance_request) if clearance_request else None
        return jsonify(create_response(True, "Active request retrieved", payload))

    except ClearanceError as e:
        return error_response(e)
    except Exception as e:
        return _failure("Failed to get active request", e)


@student_bp.route('/student/requests/<int:request_id>', methods=['GET'])
def get_student_request(request_id):
    """Get one clearance request with its cases"""
    try:
        student = ActorService.require_student()
        queries = QueryService(_registry())
        clearance_request = queries.get_request(request_id)
        if clearance_request.student_id != student.id:
            raise AuthorizationError()
        return jsonify(create_response(True, "Request retrieved", queries.describe_request(clearance_request)))

    except ClearanceError as e:
        return error_response(e)
    except Exception as e:
        return _failure("Failed to get request", e)


@student_bp.route('/student/cases/<int:case_id>', methods=['GET'])
def get_student_case(case_id):
    """Get one review case with its checklist and submissions"""
    try:
        student = ActorService.require_student()
        case = _owned_case(student, case_id)
        return jsonify(create_response(True, "Case retrieved", QueryService(_registry()).describe_case(case)))

    except ClearanceError as e:
        return error_response(e)
    except Exception as e:
        return _failure("Failed to get case", e)


@student_bp.route('/student/cases/<int:case_id>/history', methods=['GET'])
def get_student_case_history(case_id):
    """Status timeline of one review case"""
    try:
        student = ActorService.require_student()
        case = _owned_case(student, case_id)
        entries = HistoryService.get_history(case.id)
        return jsonify(create_response(True, "History retrieved", [entry.to_dict() for entry in entries]))

    except ClearanceError as e:
        return error_response(e)
    except Exception as e:
        return _failure("Failed to get history", e)


@student_bp.route('/student/cases/<int:case_id>/requirements/<int:requirement_id>/evidence',
                  methods=['POST'])
def upload_evidence(case_id, requirement_id):
    """Upload evidence for an upload requirement"""
    try:
        student = ActorService.require_student()
        submission = SubmissionService().attach_evidence(
            case_id, requirement_id, student.id, request.files.get('file')
        )
        return jsonify(create_response(True, "File uploaded", submission.to_dict()))

    except ClearanceError as e:
        db.session.rollback()
        return error_response(e)
    except Exception as e:
        return _failure("Upload failed", e)


@student_bp.route('/student/cases/<int:case_id>/requirements/<int:requirement_id>/evidence',
                  methods=['DELETE'])
def delete_evidence(case_id, requirement_id):
    """Remove uploaded evidence"""
    try:
        student = ActorService.require_student()
        submission = SubmissionService().remove_evidence(case_id, requirement_id, student.id)
        return jsonify(create_response(True, "File removed", submission.to_dict()))

    except ClearanceError as e:
        db.session.rollback()
        return error_response(e)
    except Exception as e:
        return _failure("Failed to remove file", e)


@student_bp.route('/student/cases/<int:case_id>/requirements/<int:requirement_id>/acknowledge',
                  methods=['POST'])
def acknowledge_requirement(case_id, requirement_id):
    """Check or uncheck an acknowledgment requirement"""
    try:
        student = ActorService.require_student()
        data = request.get_json(silent=True) or {}
        submission = SubmissionService().acknowledge_requirement(
            case_id, requirement_id, student.id, data.get('acknowledged')
        )
        return jsonify(create_response(True, "Response saved", submission.to_dict()))

    except ClearanceError as e:
        db.session.rollback()
        return error_response(e)
    except Exception as e:
        return _failure("Could not save your response", e)


@student_bp.route('/student/cases/<int:case_id>/submit', methods=['POST'])
def submit_case(case_id):
    """Submit a ready case for review"""
    try:
        student = ActorService.require_student()
        data = request.get_json(silent=True) or {}
        case = ReviewService(_registry()).submit(case_id, student.id, data.get('expected_status'))
        return jsonify(create_response(True, "Submitted for review", case.to_dict()))

    except ClearanceError as e:
        db.session.rollback()
        return error_response(e)
    except Exception as e:
        return _failure("Failed to submit", e)
