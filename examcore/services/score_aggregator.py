"""
Score Aggregator
"""
import logging
import math
from dataclasses import dataclass
from typing import Optional

from examcore.domain import LatePenalty
from examcore.services.grading_parser import ParseResult

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AggregatedScore:
    raw_score: float  # before penalty
    final_score: float
    penalty_points: float


def clamp_score(value: Optional[float], upper: float = 10.0) -> float:
    """Clamp into [0, upper]; NaN counts as 0"""
    if value is None or math.isnan(value):
        return 0.0
    return max(0.0, min(upper, value))


class ScoreAggregator:
    """
    Combines the grader's reported total, the per-question scores and the
    late penalty into one final score.

    The combining policy is isolated here so it can change without
    touching the parser:
      - 'max': larger of reported total and per-question sum (default)
      - 'sum': per-question sum only
      - 'reported': reported total, falling back to the sum when absent
    """

    POLICIES = ('max', 'sum', 'reported')

    def __init__(self, policy: str = 'max', max_score: float = 10.0):
        if policy not in self.POLICIES:
            raise ValueError(
                f"Score policy '{policy}' not supported. "
                f"Available policies: {', '.join(self.POLICIES)}"
            )
        self.policy = policy
        self.max_score = max_score

    def combine(self, reported_total: Optional[float], question_sum: float) -> float:
        question_sum = clamp_score(question_sum, self.max_score)
        reported = None if reported_total is None else clamp_score(reported_total, self.max_score)

        if self.policy == 'sum' or reported is None:
            score = question_sum
        elif self.policy == 'reported':
            score = reported
        else:
            score = max(reported, question_sum)
        return clamp_score(score, self.max_score)

    def apply_penalty(self, score: float, penalty: Optional[LatePenalty]) -> float:
        if penalty is None:
            return clamp_score(score, self.max_score)
        return clamp_score(penalty.apply(score), self.max_score)

    def aggregate(self, parsed: ParseResult, penalty: Optional[LatePenalty] = None) -> AggregatedScore:
        raw = self.combine(parsed.reported_total, parsed.score_sum)
        final = self.apply_penalty(raw, penalty)
        raw, final = round(raw, 2), round(final, 2)

        logger.info("[Scoring] reported=%s sum=%.2f policy=%s raw=%.2f penalty=%s final=%.2f",
                    parsed.reported_total, parsed.score_sum, self.policy, raw,
                    penalty.amount if penalty else None, final)
        return AggregatedScore(raw_score=raw, final_score=final, penalty_points=round(raw - final, 2))
