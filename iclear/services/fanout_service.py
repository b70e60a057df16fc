"""
Fan-out: create a clearance request and one review case per approving unit
"""

from typing import List, Optional, Tuple

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError

from iclear.models import db, Student, ClearanceRequest, ReviewCase
from iclear.models.clearance import (
    ACTIVE_SLOT, CASE_PENDING, REQUEST_PENDING, REQUEST_TYPES
)
from iclear.services.aggregate_service import AggregateService
from iclear.services.history_service import HistoryService, ACTOR_STUDENT
from iclear.services.registry import UnitRegistry, UnitRef
from iclear.utils.exceptions import (
    ConflictError, FanOutIntegrityError, NotFoundError, ValidationError
)
from iclear.utils.helpers import log_error, log_info
from iclear.utils.validators import validate_choice, validate_identifier, validate_required


def unique_units(units) -> List[UnitRef]:
    """Drop repeated (unit_type, unit_id) pairs, keeping the first"""
    seen = set()
    result = []
    for unit in units:
        if unit.key in seen:
            continue
        seen.add(unit.key)
        result.append(unit)
    return result


class FanOutService:
    """Clearance request creation service class"""

    def __init__(self, registry=None):
        self.registry = registry or UnitRegistry()

    def create_request(self, student_id, request_type: str,
                       period: Optional[Tuple[str, str]] = None) -> ClearanceRequest:
        """
        Create a clearance request and fan it out into review cases

        Args:
            student_id: Student requesting clearance
            request_type: semester, transfer or graduation
            period: (academic_year, semester); defaults to the current period

        Returns:
            The committed request, its cases created and status derived

        Raises:
            ValidationError: Bad identifiers, or the type/period is not open
            NotFoundError: Unknown student
            ConflictError: The student already has an active request
            FanOutIntegrityError: Case rows do not match the unit set
        """
        student_id = validate_identifier(student_id, "Student ID")
        validate_required(request_type, "Request type")
        validate_choice(request_type, REQUEST_TYPES, "Request type")

        settings = self.registry.get_period_settings()
        if request_type not in settings.enabled_request_types:
            raise ValidationError(
                f"{request_type.title()} clearance is not open for {settings.academic_period}"
            )

        current_period = (settings.academic_year, settings.semester)
        if period is not None and tuple(period) != current_period:
            raise ValidationError(f"Clearance is only open for {settings.academic_period}")

        student = db.session.get(Student, student_id)
        if student is None or not student.is_active:
            raise NotFoundError("Student not found")

        active = ClearanceRequest.query.filter_by(student_id=student_id, active_slot=ACTIVE_SLOT).first()
        if active is not None:
            raise ConflictError(data={'request_id': active.id})

        clearance_request = ClearanceRequest(
            student_id=student_id,
            request_type=request_type,
            academic_year=settings.academic_year,
            semester=settings.semester,
            status=REQUEST_PENDING,
            active_slot=ACTIVE_SLOT,
        )
        try:
            db.session.add(clearance_request)
            db.session.flush()
        except IntegrityError:
            # Another create for the same student won the race
            db.session.rollback()
            raise ConflictError()

        try:
            HistoryService.append(clearance_request.id, None, None, REQUEST_PENDING,
                                  student_id, ACTOR_STUDENT)
            units = unique_units(self.registry.list_applicable_units(student_id))
            cases = self._create_cases(clearance_request, units)
            for case in cases:
                HistoryService.append(clearance_request.id, case.id, None, CASE_PENDING,
                                      student_id, ACTOR_STUDENT)
            AggregateService.apply(clearance_request.id, student_id, ACTOR_STUDENT)
            db.session.commit()
        except Exception:
            db.session.rollback()
            raise

        log_info(
            f"Clearance request {clearance_request.id} created for student {student_id} "
            f"with {len(units)} review cases"
        )
        return clearance_request

    def _create_cases(self, clearance_request: ClearanceRequest, units: List[UnitRef]) -> List[ReviewCase]:
        cases = [
            ReviewCase(
                request_id=clearance_request.id,
                unit_type=unit.unit_type,
                unit_id=unit.unit_id,
                unit_name=unit.name,
                status=CASE_PENDING,
            )
            for unit in units
        ]
        try:
            db.session.add_all(cases)
            db.session.flush()
        except IntegrityError as e:
            log_error(f"Fan-out for request {clearance_request.id} produced duplicate cases", e)
            raise FanOutIntegrityError()

        self._verify_cases(clearance_request.id, units)
        return cases

    @staticmethod
    def _verify_cases(request_id: int, units: List[UnitRef]) -> None:
        """The persisted case set must equal the unit set exactly"""
        if not units:
            return

        rows = (
            db.session.query(ReviewCase.unit_type, ReviewCase.unit_id, func.count(ReviewCase.id))
            .filter(ReviewCase.request_id == request_id)
            .group_by(ReviewCase.unit_type, ReviewCase.unit_id)
            .all()
        )
        persisted = {(unit_type, unit_id): count for unit_type, unit_id, count in rows}
        expected = {unit.key for unit in units}

        if set(persisted) != expected or any(count != 1 for count in persisted.values()):
            log_error(
                f"Fan-out integrity violation for request {request_id}: "
                f"expected {len(expected)} units, found {sum(persisted.values())} cases"
            )
            raise FanOutIntegrityError()
