"""
Services package
"""
from examcore.services.penalty_service import PenaltyService
from examcore.services.grading_parser import GradingResponseParser, parse_grading_response
from examcore.services.score_aggregator import ScoreAggregator
from examcore.services.submission_service import SubmissionService
from examcore.services.timer_service import TimerReconciler, CountdownSession
from examcore.services.timer_store import TimerStore, TimerPresetStore

__all__ = [
    'PenaltyService',
    'GradingResponseParser',
    'parse_grading_response',
    'ScoreAggregator',
    'SubmissionService',
    'TimerReconciler',
    'CountdownSession',
    'TimerStore',
    'TimerPresetStore'
]
