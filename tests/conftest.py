"""
Shared fixtures: an application on an in-memory SQLite database and
factories for students, units, requirements and staff.
"""

import pytest

from config import TestingConfig
from iclear import create_app
from iclear.models import (
    db, Student, Staff, Department, Office, Club, ClubMembership, Requirement, SystemSettings
)
from iclear.services import FanOutService, ReviewService, SubmissionService
from iclear.utils.exceptions import FileUploadError


class FakeEvidenceStore:
    """In-memory evidence store"""

    def __init__(self):
        self.objects = {}
        self.deleted = []
        self.fail_delete = False
        self.on_upload = None

    def upload(self, data, key):
        self.objects[key] = data
        if self.on_upload:
            self.on_upload(key)
        return key

    def delete(self, evidence_ref):
        if self.fail_delete:
            raise FileUploadError("storage unavailable")
        self.objects.pop(evidence_ref, None)
        self.deleted.append(evidence_ref)

    def url(self, evidence_ref):
        return f"https://files.test/{evidence_ref}"


class Factory:
    """Creates registry rows for tests"""

    def __init__(self):
        self._seq = 0

    def _next(self):
        self._seq += 1
        return self._seq

    def student(self, **kwargs):
        n = self._next()
        student = Student(
            student_number=kwargs.pop('student_number', f"2026-{n:04d}"),
            first_name=kwargs.pop('first_name', 'Ana'),
            last_name=kwargs.pop('last_name', f'Reyes{n}'),
            email=kwargs.pop('email', f'student{n}@school.edu'),
            course='BSCS',
            year_level='4',
            **kwargs
        )
        db.session.add(student)
        db.session.commit()
        return student

    def unit(self, model, name, is_active=True):
        n = self._next()
        unit = model(name=name, code=f"U{n}", is_active=is_active)
        db.session.add(unit)
        db.session.commit()
        return unit

    def department(self, name='College of Computing', **kwargs):
        return self.unit(Department, name, **kwargs)

    def office(self, name='Library', **kwargs):
        return self.unit(Office, name, **kwargs)

    def club(self, name='Chess Club', members=(), **kwargs):
        club = self.unit(Club, name, **kwargs)
        for student in members:
            db.session.add(ClubMembership(student_id=student.id, club_id=club.id))
        db.session.commit()
        return club

    def requirement(self, unit, name='Clearance form', is_required=True, requires_upload=True):
        requirement = Requirement(
            unit_type=unit.unit_type,
            unit_id=unit.id,
            name=name,
            is_required=is_required,
            requires_upload=requires_upload,
        )
        db.session.add(requirement)
        db.session.commit()
        return requirement

    def staff(self, unit=None, role=None):
        n = self._next()
        staff = Staff(
            first_name='Rita',
            last_name=f'Santos{n}',
            email=f'staff{n}@school.edu',
            role=role or (unit.unit_type if unit is not None else 'admin'),
            unit_type=unit.unit_type if unit is not None else None,
            unit_id=unit.id if unit is not None else None,
        )
        db.session.add(staff)
        db.session.commit()
        return staff

    def settings(self, **flags):
        settings = SystemSettings.query.first()
        for name, value in flags.items():
            setattr(settings, name, value)
        db.session.commit()
        return settings


@pytest.fixture
def app(tmp_path, monkeypatch):
    monkeypatch.setattr(TestingConfig, 'UPLOAD_FOLDER', str(tmp_path / 'evidence'))
    app = create_app('testing')
    app.extensions['iclear_evidence_store'] = FakeEvidenceStore()
    yield app


@pytest.fixture
def ctx(app):
    with app.app_context():
        yield
        db.session.remove()


@pytest.fixture
def store(app):
    return app.extensions['iclear_evidence_store']


@pytest.fixture
def make(ctx):
    return Factory()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def fanout(ctx):
    return FanOutService()


@pytest.fixture
def submissions(ctx, store):
    return SubmissionService(evidence_store=store)


@pytest.fixture
def review(ctx):
    return ReviewService()


@pytest.fixture
def two_units(make):
    """A student with one department and one office, one required upload each"""
    student = make.student()
    dept = make.department()
    office = make.office()
    return {
        'student': student,
        'dept': dept,
        'office': office,
        'dept_req': make.requirement(dept, 'Department clearance slip'),
        'office_req': make.requirement(office, 'Library return receipt'),
        'dept_staff': make.staff(dept),
        'office_staff': make.staff(office),
    }


def case_for(clearance_request, unit):
    """The request's case for one unit"""
    for case in clearance_request.cases:
        if (case.unit_type, case.unit_id) == (unit.unit_type, unit.id):
            return case
    raise AssertionError(f"No case for {unit.unit_type} {unit.id}")
