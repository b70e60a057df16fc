"""
Requirement registry: approving units, their checklists, and period settings

The workflow engine only depends on the three read operations below. The
default implementation reads the registry tables; other deployments can pass
their own object with the same methods to the services.
"""

from dataclasses import dataclass
from typing import List, Tuple

from iclear.models import (
    Department, Office, Club, ClubMembership, Requirement, SystemSettings
)
from iclear.models.clearance import REQUEST_SEMESTER, REQUEST_TRANSFER, REQUEST_GRADUATION
from iclear.utils.exceptions import NotFoundError


@dataclass(frozen=True)
class UnitRef:
    unit_type: str
    unit_id: int
    name: str

    @property
    def key(self) -> Tuple[str, int]:
        return (self.unit_type, self.unit_id)


@dataclass(frozen=True)
class PeriodSettings:
    academic_year: str
    semester: str
    enabled_request_types: Tuple[str, ...]

    @property
    def academic_period(self) -> str:
        return f"{self.academic_year} {self.semester}"

    def to_dict(self):
        return {
            'academic_year': self.academic_year,
            'semester': self.semester,
            'academic_period': self.academic_period,
            'enabled_request_types': list(self.enabled_request_types),
        }


class UnitRegistry:
    """Database-backed registry of approving units"""

    def list_applicable_units(self, student_id: int) -> List[UnitRef]:
        """
        Units a student must be cleared by

        All active departments and offices, plus every active club the
        student belongs to.
        """
        units = []
        for model in (Department, Office):
            rows = model.query.filter_by(is_active=True).order_by(model.id).all()
            units.extend(UnitRef(model.unit_type, row.id, row.name) for row in rows)

        clubs = (
            Club.query
            .join(ClubMembership, ClubMembership.club_id == Club.id)
            .filter(ClubMembership.student_id == student_id, Club.is_active.is_(True))
            .order_by(Club.id)
            .all()
        )
        units.extend(UnitRef(Club.unit_type, club.id, club.name) for club in clubs)
        return units

    def list_requirements(self, unit_type: str, unit_id: int) -> List[Requirement]:
        """Active checklist entries for one unit"""
        return (
            Requirement.query
            .filter_by(unit_type=unit_type, unit_id=unit_id, is_active=True)
            .order_by(Requirement.sort_order, Requirement.id)
            .all()
        )

    def get_period_settings(self) -> PeriodSettings:
        """Current academic period and the request types open for it"""
        settings = SystemSettings.query.order_by(SystemSettings.id).first()
        if settings is None:
            raise NotFoundError("Clearance settings have not been configured")

        enabled = []
        if settings.allow_semester_clearance:
            enabled.append(REQUEST_SEMESTER)
        if settings.allow_transfer_clearance:
            enabled.append(REQUEST_TRANSFER)
        if settings.allow_graduation_clearance:
            enabled.append(REQUEST_GRADUATION)

        return PeriodSettings(
            academic_year=settings.academic_year,
            semester=settings.current_semester,
            enabled_request_types=tuple(enabled),
        )
