"""
Domain types for the timed-assessment submission pipeline
"""
from dataclasses import dataclass, field, asdict
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional


def utcnow() -> datetime:
    """Timezone-aware current UTC time (the default clock everywhere)"""
    return datetime.now(timezone.utc)


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Naive datetimes (as SQLite returns them) are taken to be UTC"""
    if value is None or value.tzinfo is not None:
        return value
    return value.replace(tzinfo=timezone.utc)


class EvaluationLabel(str, Enum):
    """Closed set of per-question verdicts"""
    FULLY_CORRECT = 'fully-correct'
    PARTIALLY_CORRECT = 'partially-correct'
    INCORRECT = 'incorrect'
    UNANSWERED = 'unanswered'


class PenaltyKind(str, Enum):
    FIXED_POINTS = 'fixed-points'
    PERCENTAGE = 'percentage'


@dataclass(frozen=True)
class AssessmentInstance:
    """One user's attempt at one exam or exercise"""

    id: str
    question_count: int
    deadline: Optional[datetime] = None
    model_id: Optional[str] = None
    name: Optional[str] = None
    instructions: Optional[str] = None  # free-text prompt, may embed a duration
    user_id: Optional[str] = None


@dataclass(frozen=True)
class Question:
    id: str
    text: str
    passage: Optional[str] = None
    type: str = 'written'


@dataclass
class Answer:
    question_id: str
    raw_text: str = ''


@dataclass
class TimerState:
    """Persisted countdown; remaining time is always derived from expires_at."""

    total_seconds: int
    expires_at: Optional[datetime]

    def remaining_seconds(self, now: Optional[datetime] = None) -> int:
        if self.expires_at is None:
            return 0
        now = now or utcnow()
        return max(0, int((self.expires_at - now).total_seconds()))

    def is_running(self, now: Optional[datetime] = None) -> bool:
        return self.remaining_seconds(now) > 0


@dataclass(frozen=True)
class GradedAnswer:
    question_id: str
    standard_answer: str
    evaluation_label: EvaluationLabel
    score: float
    max_score: float
    percentage: float
    feedback: str
    suggestion: str
    is_fallback: bool = False

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data['evaluation_label'] = self.evaluation_label.value
        return data


@dataclass(frozen=True)
class LatePenalty:
    minutes_late: int
    kind: PenaltyKind
    amount: float
    note: str = ''

    def apply(self, score: float) -> float:
        """Deduct this penalty from a score (no clamping)"""
        if self.kind is PenaltyKind.PERCENTAGE:
            return score * (1 - self.amount / 100)
        return score - self.amount

    def to_dict(self) -> Dict[str, Any]:
        return {
            'minutes_late': self.minutes_late,
            'kind': self.kind.value,
            'amount': self.amount,
            'note': self.note,
        }


@dataclass
class SubmissionResult:
    """Terminal outcome of one assessment instance"""

    final_score: float
    graded_answers: List[GradedAnswer] = field(default_factory=list)
    penalty: Optional[LatePenalty] = None
    submitted_at: Optional[datetime] = None
    submission_id: Optional[str] = None
    raw_score: Optional[float] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            'submission_id': self.submission_id,
            'final_score': self.final_score,
            'raw_score': self.raw_score,
            'graded_answers': [answer.to_dict() for answer in self.graded_answers],
            'penalty': self.penalty.to_dict() if self.penalty else None,
            'submitted_at': self.submitted_at.isoformat() if self.submitted_at else None,
        }
