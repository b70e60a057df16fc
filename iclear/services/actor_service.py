"""
Current actor resolution

Login happens outside this application; the auth layer stores the signed-in
student's or staff member's id in the Flask session.
"""

from typing import Optional

from flask import session

from iclear.models import db, Student, Staff
from iclear.utils.exceptions import AuthenticationError, AuthorizationError


class ActorService:
    """Session actor service class"""

    @staticmethod
    def current_student() -> Optional[Student]:
        student_id = session.get('student_id')
        if student_id is None:
            return None
        student = db.session.get(Student, student_id)
        if student is None or not student.is_active:
            return None
        return student

    @staticmethod
    def current_staff() -> Optional[Staff]:
        staff_id = session.get('staff_id')
        if staff_id is None:
            return None
        staff = db.session.get(Staff, staff_id)
        if staff is None or not staff.is_active:
            return None
        return staff

    @staticmethod
    def require_student() -> Student:
        """Require a student session - raise exception if not present"""
        student = ActorService.current_student()
        if student is None:
            if ActorService.current_staff() is not None:
                raise AuthorizationError("Student access required")
            raise AuthenticationError()
        return student

    @staticmethod
    def require_staff() -> Staff:
        """Require a staff session - raise exception if not present"""
        staff = ActorService.current_staff()
        if staff is None:
            if ActorService.current_student() is not None:
                raise AuthorizationError("Staff access required")
            raise AuthenticationError()
        return staff
