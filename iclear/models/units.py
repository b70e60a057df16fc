"""
Approving unit, requirement and settings models

These tables belong to the registry side of the system; the workflow engine
only reads them.
"""

from datetime import datetime
from iclear.models.database import db

UNIT_DEPARTMENT = 'department'
UNIT_OFFICE = 'office'
UNIT_CLUB = 'club'
UNIT_TYPES = (UNIT_DEPARTMENT, UNIT_OFFICE, UNIT_CLUB)


class _UnitMixin:
    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(200), nullable=False)
    code = db.Column(db.String(30), unique=True, nullable=False)
    description = db.Column(db.Text, nullable=True)
    is_active = db.Column(db.Boolean, nullable=False, default=True)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    def to_dict(self):
        return {
            'id': self.id,
            'unit_type': self.unit_type,
            'name': self.name,
            'code': self.code,
            'description': self.description,
            'is_active': self.is_active,
        }


class Department(_UnitMixin, db.Model):
    """Academic department"""
    __tablename__ = 'departments'
    unit_type = UNIT_DEPARTMENT


class Office(_UnitMixin, db.Model):
    """Administrative office"""
    __tablename__ = 'offices'
    unit_type = UNIT_OFFICE


class Club(_UnitMixin, db.Model):
    """Student club or organization"""
    __tablename__ = 'clubs'
    unit_type = UNIT_CLUB

    memberships = db.relationship('ClubMembership', backref='club', lazy=True)




class ClubMembership(db.Model):
    """A student's affiliation with a club"""
    __tablename__ = 'club_memberships'
    __table_args__ = (
        db.UniqueConstraint('student_id', 'club_id', name='uq_club_membership'),
    )

    id = db.Column(db.Integer, primary_key=True)
    student_id = db.Column(db.Integer, db.ForeignKey('students.id'), nullable=False, index=True)
    club_id = db.Column(db.Integer, db.ForeignKey('clubs.id'), nullable=False)
    joined_at = db.Column(db.DateTime, default=datetime.utcnow)


class Requirement(db.Model):
    """Checklist entry defined by an approving unit"""
    __tablename__ = 'requirements'
    __table_args__ = (
        db.Index('idx_requirement_unit', 'unit_type', 'unit_id'),
    )

    id = db.Column(db.Integer, primary_key=True)
    unit_type = db.Column(db.Enum(*UNIT_TYPES, name='requirement_unit_type'), nullable=False)
    unit_id = db.Column(db.Integer, nullable=False)
    name = db.Column(db.String(200), nullable=False)
    description = db.Column(db.Text, nullable=True)
    is_required = db.Column(db.Boolean, nullable=False, default=True)
    requires_upload = db.Column(db.Boolean, nullable=False, default=False)
    sort_order = db.Column(db.Integer, nullable=False, default=0)
    is_active = db.Column(db.Boolean, nullable=False, default=True)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    def to_dict(self):
        """Convert to dictionary"""
        return {
            'id': self.id,
            'unit_type': self.unit_type,
            'unit_id': self.unit_id,
            'name': self.name,
            'description': self.description,
            'is_required': self.is_required,
            'requires_upload': self.requires_upload,
            'sort_order': self.sort_order,
        }


class SystemSettings(db.Model):
    """Current academic period and which clearance types are open"""
    __tablename__ = 'system_settings'

    id = db.Column(db.Integer, primary_key=True)
    academic_year = db.Column(db.String(20), nullable=False, default='2026-2027')
    current_semester = db.Column(db.String(30), nullable=False, default='1st Semester')
    allow_semester_clearance = db.Column(db.Boolean, nullable=False, default=True)
    allow_transfer_clearance = db.Column(db.Boolean, nullable=False, default=False)
    allow_graduation_clearance = db.Column(db.Boolean, nullable=False, default=False)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)
