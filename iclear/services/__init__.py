"""
Services package initialization
"""

from iclear.services.registry import UnitRegistry, UnitRef, PeriodSettings
from iclear.services.gating import is_ready, unmet_requirements
from iclear.services.history_service import HistoryService
from iclear.services.aggregate_service import AggregateService, derive_request_status
from iclear.services.fanout_service import FanOutService
from iclear.services.submission_service import SubmissionService
from iclear.services.review_service import ReviewService, can_act_on
from iclear.services.query_service import QueryService
from iclear.services.actor_service import ActorService

__all__ = [
    'UnitRegistry', 'UnitRef', 'PeriodSettings',
    'is_ready', 'unmet_requirements',
    'HistoryService', 'AggregateService', 'derive_request_status',
    'FanOutService', 'SubmissionService', 'ReviewService', 'can_act_on',
    'QueryService', 'ActorService'
]
