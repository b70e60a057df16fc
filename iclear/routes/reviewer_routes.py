"""
Reviewer routes for department, office and club staff
"""

from flask import Blueprint, current_app, request, jsonify
from iclear.models import db
from iclear.services import ActorService, HistoryService, QueryService, ReviewService, can_act_on
from iclear.utils import (
    AuthorizationError, ClearanceError, ValidationError,
    create_response, error_response, log_error
)

reviewer_bp = Blueprint('reviewer', __name__)


def _registry():
    return current_app.extensions['iclear_registry']


def _reviewable_case(staff, case_id):
    case = QueryService(_registry()).get_case(case_id)
    if not can_act_on(staff.role, staff.unit_binding, case):
        raise AuthorizationError()
    return case


def _failure(message, e):
    """Roll back and build the response for an unexpected error"""
    log_error(message, e)
    db.session.rollback()
    return jsonify(create_response(False, message)), 500


@reviewer_bp.route('/reviewer/queue', methods=['GET'])
def get_review_queue():
    """Cases assigned to the reviewer's unit, optionally filtered by status"""
    try:
        staff = ActorService.require_staff()

        if staff.unit_binding is not None:
            unit_type, unit_id = staff.unit_binding
        else:
            # Admins pick the unit to look at
            unit_type = request.args.get('unit_type')
            unit_id = request.args.get('unit_id')
            if not unit_type or not unit_id:
                raise ValidationError("unit_type and unit_id are required")

        status = request.args.get('status') or None
        if status == 'all':
            status = None

        cases = QueryService(_registry()).list_unit_queue(unit_type, unit_id, status)
        data = []
        for case in cases:
            item = case.to_dict()
            student = case.request.student
            item['student'] = student.to_dict() if student else None
            item['request_type'] = case.request.request_type
            item['period'] = case.request.period
            data.append(item)
        return jsonify(create_response(True, "Queue retrieved", data))

    except ClearanceError as e:
        return error_response(e)
    except Exception as e:
        return _failure("Failed to load clearance requests", e)


@reviewer_bp.route('/reviewer/cases/<int:case_id>', methods=['GET'])
def get_reviewer_case(case_id):
    """One case with the student's submissions"""
    try:
        staff = ActorService.require_staff()
        case = _reviewable_case(staff, case_id)
        data = QueryService(_registry()).describe_case(case)
        data['student'] = case.request.student.to_dict()
        return jsonify(create_response(True, "Case retrieved", data))

    except ClearanceError as e:
        return error_response(e)
    except Exception as e:
        return _failure("Failed to get case", e)


@reviewer_bp.route('/reviewer/cases/<int:case_id>/history', methods=['GET'])
def get_reviewer_case_history(case_id):
    """Status timeline of one review case"""
    try:
        staff = ActorService.require_staff()
        case = _reviewable_case(staff, case_id)
        entries = HistoryService.get_history(case.id)
        return jsonify(create_response(True, "History retrieved", [entry.to_dict() for entry in entries]))

    except ClearanceError as e:
        return error_response(e)
    except Exception as e:
        return _failure("Failed to get history", e)


@reviewer_bp.route('/reviewer/cases/<int:case_id>/decision', methods=['POST'])
def decide_case(case_id):
    """Approve, reject or hold a submitted case"""
    try:
        staff = ActorService.require_staff()
        data = request.get_json(silent=True)
        if not data:
            raise ValidationError("No data provided")

        case = ReviewService(_registry()).decide(
            case_id, staff.id, data.get('outcome'), data.get('remarks'), data.get('expected_status')
        )
        return jsonify(create_response(True, "Action recorded", case.to_dict()))

    except ClearanceError as e:
        db.session.rollback()
        return error_response(e)
    except Exception as e:
        return _failure("Could not update the clearance case", e)


@reviewer_bp.route('/reviewer/submissions/<int:submission_id>/review', methods=['POST'])
def review_submission(submission_id):
    """Verify or reject one requirement submission"""
    try:
        staff = ActorService.require_staff()
        data = request.get_json(silent=True)
        if not data:
            raise ValidationError("No data provided")

        submission = ReviewService(_registry()).review_submission(
            submission_id, staff.id, data.get('status'), data.get('remarks')
        )
        return jsonify(create_response(True, "Submission reviewed", submission.to_dict()))

    except ClearanceError as e:
        db.session.rollback()
        return error_response(e)
    except Exception as e:
        return _failure("Could not review the submission", e)
