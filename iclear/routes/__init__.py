"""
Routes package initialization
"""

from iclear.routes.student_routes import student_bp
from iclear.routes.reviewer_routes import reviewer_bp
from iclear.routes.evidence_routes import evidence_bp

__all__ = ['student_bp', 'reviewer_bp', 'evidence_bp']
