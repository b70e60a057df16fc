"""
Clearance request models
"""

from datetime import datetime

from sqlalchemy import event

from iclear.models.database import db
from iclear.utils.exceptions import HistoryImmutableError
from iclear.utils.helpers import isoformat

# Request types
REQUEST_SEMESTER = 'semester'
REQUEST_TRANSFER = 'transfer'
REQUEST_GRADUATION = 'graduation'
REQUEST_TYPES = (REQUEST_SEMESTER, REQUEST_TRANSFER, REQUEST_GRADUATION)

# Request statuses
REQUEST_PENDING = 'pending'
REQUEST_IN_PROGRESS = 'in_progress'
REQUEST_APPROVED = 'approved'
REQUEST_REJECTED = 'rejected'
REQUEST_COMPLETED = 'completed'
REQUEST_STATUSES = (REQUEST_PENDING, REQUEST_IN_PROGRESS, REQUEST_APPROVED,
                    REQUEST_REJECTED, REQUEST_COMPLETED)
TERMINAL_REQUEST_STATUSES = frozenset((REQUEST_APPROVED, REQUEST_REJECTED, REQUEST_COMPLETED))

# Review case statuses
CASE_PENDING = 'pending'
CASE_SUBMITTED = 'submitted'
CASE_APPROVED = 'approved'
CASE_REJECTED = 'rejected'
CASE_ON_HOLD = 'on_hold'
CASE_STATUSES = (CASE_PENDING, CASE_SUBMITTED, CASE_APPROVED, CASE_REJECTED, CASE_ON_HOLD)
LOCKED_CASE_STATUSES = frozenset((CASE_SUBMITTED, CASE_APPROVED))
EDITABLE_CASE_STATUSES = (CASE_PENDING, CASE_REJECTED, CASE_ON_HOLD)

# Requirement submission statuses
SUBMISSION_PENDING = 'pending'
SUBMISSION_SUBMITTED = 'submitted'
SUBMISSION_REJECTED = 'rejected'
SUBMISSION_VERIFIED = 'verified'
SUBMISSION_STATUSES = (SUBMISSION_PENDING, SUBMISSION_SUBMITTED, SUBMISSION_REJECTED, SUBMISSION_VERIFIED)

ACTIVE_SLOT = 1


class ClearanceRequest(db.Model):
    """Clearance request model: one per student per clearance cycle"""
    __tablename__ = 'clearance_requests'
    __table_args__ = (
        # active_slot is NULL once the request is terminal, so only one
        # active row per student can exist.
        db.UniqueConstraint('student_id', 'active_slot', name='uq_request_active_student'),
    )

    id = db.Column(db.Integer, primary_key=True)
    student_id = db.Column(db.Integer, db.ForeignKey('students.id'), nullable=False, index=True)
    request_type = db.Column(db.Enum(*REQUEST_TYPES, name='request_type'), nullable=False)
    academic_year = db.Column(db.String(20), nullable=False)
    semester = db.Column(db.String(30), nullable=False)
    status = db.Column(db.Enum(*REQUEST_STATUSES, name='request_status'),
                       nullable=False, default=REQUEST_PENDING)
    active_slot = db.Column(db.Integer, nullable=True, default=ACTIVE_SLOT)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    cases = db.relationship('ReviewCase', backref='request', lazy=True, cascade='all',
                            order_by='ReviewCase.id')

    @property
    def period(self):
        """Academic period label"""
        return f"{self.academic_year} {self.semester}"

    @property
    def is_active(self):
        return self.status not in TERMINAL_REQUEST_STATUSES

    def to_dict(self, include_cases=False):
        """Convert to dictionary"""
        data = {
            'id': self.id,
            'student_id': self.student_id,
            'request_type': self.request_type,
            'academic_year': self.academic_year,
            'semester': self.semester,
            'period': self.period,
            'status': self.status,
            'created_at': isoformat(self.created_at),
            'updated_at': isoformat(self.updated_at),
        }
        if include_cases:
            data['cases'] = [case.to_dict() for case in self.cases]
        return data


class ReviewCase(db.Model):
    """Per-unit review of a clearance request"""
    __tablename__ = 'review_cases'
    __table_args__ = (
        db.UniqueConstraint('request_id', 'unit_type', 'unit_id', name='uq_case_request_unit'),
        db.Index('idx_case_unit_status', 'unit_type', 'unit_id', 'status'),
    )

    id = db.Column(db.Integer, primary_key=True)
    request_id = db.Column(db.Integer, db.ForeignKey('clearance_requests.id'), nullable=False, index=True)
    unit_type = db.Column(db.String(20), nullable=False)
    unit_id = db.Column(db.Integer, nullable=False)
    unit_name = db.Column(db.String(200), nullable=False)
    status = db.Column(db.Enum(*CASE_STATUSES, name='case_status'),
                       nullable=False, default=CASE_PENDING)
    remarks = db.Column(db.Text, nullable=True)
    reviewed_by = db.Column(db.Integer, db.ForeignKey('staff.id'), nullable=True)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    submitted_at = db.Column(db.DateTime, nullable=True)
    reviewed_at = db.Column(db.DateTime, nullable=True)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    submissions = db.relationship('RequirementSubmission', backref='case', lazy=True, cascade='all',
                                  order_by='RequirementSubmission.id')

    @property
    def unit(self):
        return (self.unit_type, self.unit_id)

    @property
    def is_locked(self):
        return self.status in LOCKED_CASE_STATUSES

    def to_dict(self):
        """Convert to dictionary"""
        return {
            'id': self.id,
            'request_id': self.request_id,
            'unit_type': self.unit_type,
            'unit_id': self.unit_id,
            'unit_name': self.unit_name,
            'status': self.status,
            'remarks': self.remarks,
            'reviewed_by': self.reviewed_by,
            'is_locked': self.is_locked,
            'created_at': isoformat(self.created_at),
            'submitted_at': isoformat(self.submitted_at),
            'reviewed_at': isoformat(self.reviewed_at),
        }


class RequirementSubmission(db.Model):
    """A student's evidence or acknowledgment for one requirement of one case"""
    __tablename__ = 'requirement_submissions'
    __table_args__ = (
        db.UniqueConstraint('case_id', 'requirement_id', name='uq_submission_case_requirement'),
    )

    id = db.Column(db.Integer, primary_key=True)
    case_id = db.Column(db.Integer, db.ForeignKey('review_cases.id'), nullable=False, index=True)
    requirement_id = db.Column(db.Integer, db.ForeignKey('requirements.id'), nullable=False)
    student_id = db.Column(db.Integer, db.ForeignKey('students.id'), nullable=False)
    evidence_ref = db.Column(db.String(512), nullable=True)
    status = db.Column(db.Enum(*SUBMISSION_STATUSES, name='submission_status'),
                       nullable=False, default=SUBMISSION_PENDING)
    remarks = db.Column(db.Text, nullable=True)
    submitted_at = db.Column(db.DateTime, nullable=True)
    reviewed_at = db.Column(db.DateTime, nullable=True)
    reviewed_by = db.Column(db.Integer, db.ForeignKey('staff.id'), nullable=True)

    requirement = db.relationship('Requirement', lazy='joined')

    def to_dict(self):
        """Convert to dictionary"""
        return {
            'id': self.id,
            'case_id': self.case_id,
            'requirement_id': self.requirement_id,
            'student_id': self.student_id,
            'evidence_ref': self.evidence_ref,
            'status': self.status,
            'remarks': self.remarks,
            'submitted_at': isoformat(self.submitted_at),
            'reviewed_at': isoformat(self.reviewed_at),
        }


class StatusHistoryEntry(db.Model):
    """Append-only record of a case or request status transition"""
    __tablename__ = 'status_history'
    __table_args__ = (
        db.Index('idx_history_case', 'case_id', 'created_at'),
        db.Index('idx_history_request', 'request_id', 'created_at'),
    )

    id = db.Column(db.Integer, primary_key=True)
    request_id = db.Column(db.Integer, db.ForeignKey('clearance_requests.id'), nullable=False)
    case_id = db.Column(db.Integer, db.ForeignKey('review_cases.id'), nullable=True)
    from_status = db.Column(db.String(20), nullable=True)
    to_status = db.Column(db.String(20), nullable=False)
    actor_id = db.Column(db.Integer, nullable=True)
    actor_role = db.Column(db.String(20), nullable=False)
    remarks = db.Column(db.Text, nullable=True)
    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)
    prev_hash = db.Column(db.String(71), nullable=True)
    entry_hash = db.Column(db.String(71), nullable=False)

    def hash_payload(self):
        """Fields covered by entry_hash"""
        return {
            'request_id': self.request_id,
            'case_id': self.case_id,
            'from_status': self.from_status,
            'to_status': self.to_status,
            'actor_id': self.actor_id,
            'actor_role': self.actor_role,
            'remarks': self.remarks,
            'created_at': self.created_at,
        }

    def to_dict(self):
        """Convert to dictionary"""
        return {
            'id': self.id,
            'request_id': self.request_id,
            'case_id': self.case_id,
            'from_status': self.from_status,
            'to_status': self.to_status,
            'actor_id': self.actor_id,
            'actor_role': self.actor_role,
            'remarks': self.remarks,
            'created_at': isoformat(self.created_at),
            'entry_hash': self.entry_hash,
        }


@event.listens_for(StatusHistoryEntry, 'before_update')
def _refuse_history_update(mapper, connection, target):
    raise HistoryImmutableError(f"Status history entry {target.id} cannot be modified")


@event.listens_for(StatusHistoryEntry, 'before_delete')
@event.listens_for(ClearanceRequest, 'before_delete')
@event.listens_for(ReviewCase, 'before_delete')
def _refuse_delete(mapper, connection, target):
    raise HistoryImmutableError(f"{type(target).__name__} {target.id} cannot be deleted")
