"""
Database models initialization
"""

from iclear.models.database import db, init_db
from iclear.models.user import Student, Staff
from iclear.models.units import (
    Department, Office, Club, ClubMembership, Requirement, SystemSettings, UNIT_TYPES
)
from iclear.models.clearance import (
    ClearanceRequest, ReviewCase, RequirementSubmission, StatusHistoryEntry
)

# Export all models
__all__ = [
    'db', 'init_db', 'Student', 'Staff',
    'Department', 'Office', 'Club', 'ClubMembership', 'Requirement', 'SystemSettings',
    'UNIT_TYPES',
    'ClearanceRequest', 'ReviewCase', 'RequirementSubmission', 'StatusHistoryEntry'
]
