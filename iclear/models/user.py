"""
User models for the iClear application
"""

from datetime import datetime
from iclear.models.database import db

STAFF_ROLES = ('department', 'office', 'club', 'admin')


class Student(db.Model):
    """Student model"""
    __tablename__ = 'students'

    id = db.Column(db.Integer, primary_key=True)
    student_number = db.Column(db.String(20), unique=True, nullable=False)
    first_name = db.Column(db.String(100), nullable=False)
    last_name = db.Column(db.String(100), nullable=False)
    email = db.Column(db.String(255), unique=True, nullable=False)
    course = db.Column(db.String(100), nullable=True)
    year_level = db.Column(db.String(20), nullable=True)
    department_id = db.Column(db.Integer, db.ForeignKey('departments.id'), nullable=True)
    is_active = db.Column(db.Boolean, nullable=False, default=True)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    # Relationships
    clearance_requests = db.relationship('ClearanceRequest', backref='student', lazy=True)
    club_memberships = db.relationship('ClubMembership', backref='student', lazy=True)

    @property
    def full_name(self):
        """Get full name"""
        return f"{self.first_name} {self.last_name}"

    def to_dict(self):
        """Convert to dictionary"""
        return {
            'id': self.id,
            'student_number': self.student_number,
            'first_name': self.first_name,
            'last_name': self.last_name,
            'full_name': self.full_name,
            'email': self.email,
            'course': self.course,
            'year_level': self.year_level,
            'department_id': self.department_id,
            'created_at': self.created_at.isoformat() if self.created_at else None
        }


class Staff(db.Model):
    """Staff model: a reviewer bound to one approving unit, or an admin"""
    __tablename__ = 'staff'

    id = db.Column(db.Integer, primary_key=True)
    first_name = db.Column(db.String(100), nullable=False)
    last_name = db.Column(db.String(100), nullable=False)
    email = db.Column(db.String(255), unique=True, nullable=False)
    role = db.Column(db.Enum(*STAFF_ROLES, name='staff_role'), nullable=False)
    unit_type = db.Column(db.String(20), nullable=True)
    unit_id = db.Column(db.Integer, nullable=True)
    is_active = db.Column(db.Boolean, nullable=False, default=True)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    @property
    def full_name(self):
        """Get full name"""
        return f"{self.first_name} {self.last_name}"

    @property
    def unit_binding(self):
        """(unit_type, unit_id) this staff member reviews for, or None"""
        if self.unit_type is None or self.unit_id is None:
            return None
        return (self.unit_type, self.unit_id)

    def to_dict(self):
        """Convert to dictionary"""
        return {
            'id': self.id,
            'first_name': self.first_name,
            'last_name': self.last_name,
            'full_name': self.full_name,
            'email': self.email,
            'role': self.role,
            'unit_type': self.unit_type,
            'unit_id': self.unit_id,
            'created_at': self.created_at.isoformat() if self.created_at else None
        }
