"""
Gating: whether a review case has everything it needs to enter review

Readiness is always derived from the current requirement and submission rows
and never stored.
"""

from typing import Iterable, List

from iclear.models.clearance import SUBMISSION_SUBMITTED, SUBMISSION_VERIFIED

ACKNOWLEDGED_STATUSES = frozenset((SUBMISSION_SUBMITTED, SUBMISSION_VERIFIED))


def is_satisfied(requirement, submission) -> bool:
    """Whether one requirement is met by its submission (or lack of one)"""
    if not requirement.is_required:
        return True
    if submission is None:
        return False
    if requirement.requires_upload:
        return submission.evidence_ref is not None
    return submission.status in ACKNOWLEDGED_STATUSES


def unmet_requirements(case, requirements: Iterable, submissions: Iterable) -> List:
    """
    Required requirements of the case's unit that are not yet satisfied

    Args:
        case: ReviewCase (only unit_type/unit_id/id are read)
        requirements: Requirement rows; rows of other units are ignored
        submissions: RequirementSubmission rows; rows of other cases are ignored

    Returns:
        Unmet requirements in the order given
    """
    by_requirement = {
        s.requirement_id: s for s in submissions
        if s.case_id == case.id
    }
    return [
        r for r in requirements
        if (r.unit_type, r.unit_id) == (case.unit_type, case.unit_id)
        and not is_satisfied(r, by_requirement.get(r.id))
    ]


def is_ready(case, requirements: Iterable, submissions: Iterable) -> bool:
    """True when every required requirement of the case's unit is satisfied"""
    return not unmet_requirements(case, requirements, submissions)
