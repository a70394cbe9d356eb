"""
Submission Orchestrator

Drives one attempt through collecting -> submitting -> grading -> done | failed.
"""
import logging
import threading
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Callable, Dict, List, Optional, Sequence

from examcore.ai_engines.base import GradingEngine, GradingEngineError
from examcore.domain import (Answer, AssessmentInstance, EvaluationLabel, GradedAnswer, LatePenalty,
                             PenaltyKind, Question, SubmissionResult, as_utc, utcnow)
from examcore.models.exam_result import STATUS_PENDING_REVIEW
from examcore.services.grading_parser import GradingParseError, GradingResponseParser, ParseDefect
from examcore.services.penalty_service import PenaltyService
from examcore.services.prompt_builder import build_grading_prompt
from examcore.services.score_aggregator import ScoreAggregator
from examcore.services.submission_service import SubmissionPersistenceError, SubmissionService
from examcore.services.timer_service import CountdownSession
from examcore.services.timer_store import TimerPresetStore, TimerStore

logger = logging.getLogger(__name__)


class SubmissionState(str, Enum):
    COLLECTING = 'collecting'
    SUBMITTING = 'submitting'
    GRADING = 'grading'
    DONE = 'done'
    FAILED = 'failed'


class FailureKind(str, Enum):
    GRADER_UNAVAILABLE = 'grader_unavailable'  # retryable
    PENDING_REVIEW = 'pending_review'  # grader text unusable, parked for manual grading
    PERSISTENCE = 'persistence'  # graded but not saved


class InvalidTransitionError(RuntimeError):
    """Operation not allowed in the orchestrator's current state"""


@dataclass
class SubmissionOutcome:
    state: SubmissionState
    answers: Dict[str, str]
    result: Optional[SubmissionResult] = None
    submission_id: Optional[str] = None
    failure: Optional[FailureKind] = None
    error: Optional[str] = None
    saved: bool = False
    duplicate: bool = False
    defects: List[ParseDefect] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            'state': self.state.value,
            'submissionId': self.submission_id,
            'result': self.result.to_dict() if self.result else None,
            'failure': self.failure.value if self.failure else None,
            'error': self.error,
            'saved': self.saved,
            'duplicate': self.duplicate,
            'answers': self.answers,
            'defects': [{'question': d.question, 'field': d.field, 'message': d.message}
                        for d in self.defects],
        }


def result_from_record(record) -> Optional[SubmissionResult]:
    """Rebuild a SubmissionResult from a stored ExamResult (None while it awaits review)"""
    if record.status == STATUS_PENDING_REVIEW or record.final_score is None:
        return None

    graded = []
    for item in record.graded_answers or []:
        graded.append(GradedAnswer(
            question_id=item['question_id'],
            standard_answer=item.get('standard_answer', ''),
            evaluation_label=EvaluationLabel(item.get('evaluation_label', EvaluationLabel.UNANSWERED.value)),
            score=item.get('score', 0.0),
            max_score=item.get('max_score', 0.0),
            percentage=item.get('percentage', 0.0),
            feedback=item.get('feedback', ''),
            suggestion=item.get('suggestion', ''),
            is_fallback=item.get('is_fallback', False),
        ))

    penalty = None
    if record.penalty:
        penalty = LatePenalty(
            minutes_late=record.penalty['minutes_late'],
            kind=PenaltyKind(record.penalty['kind']),
            amount=record.penalty['amount'],
            note=record.penalty.get('note', ''),
        )

    return SubmissionResult(
        final_score=record.final_score,
        graded_answers=graded,
        penalty=penalty,
        submitted_at=as_utc(record.submitted_at),
        submission_id=record.id,
        raw_score=record.raw_score,
    )


class SubmissionOrchestrator:
    """Coordinates timer shutdown, idempotency, grading, scoring and persistence"""

    def __init__(self, instance: AssessmentInstance, questions: Sequence[Question],
                 grader: GradingEngine, submissions=SubmissionService,
                 timer_store: Optional[TimerStore] = None,
                 presets: Optional[TimerPresetStore] = None,
                 aggregator: Optional[ScoreAggregator] = None,
                 countdown: Optional[CountdownSession] = None,
                 clock: Callable[[], datetime] = utcnow,
                 max_score: float = 10.0,
                 on_progress: Optional[Callable[[SubmissionState], None]] = None,
                 answers: Optional[Dict[str, str]] = None):
        self.instance = instance
        self.questions = list(questions)
        self.grader = grader
        self.submissions = submissions
        self.timer_store = timer_store
        self.presets = presets
        self.aggregator = aggregator or ScoreAggregator(max_score=max_score)
        self.clock = clock
        self.max_score = max_score
        self.on_progress = on_progress
        self._answers: Dict[str, str] = dict(answers or {})
        self._state = SubmissionState.COLLECTING
        self._outcome: Optional[SubmissionOutcome] = None
        self._lock = threading.Lock()
        self.countdown = None
        if countdown is not None:
            self.attach_countdown(countdown)

    @property
    def state(self) -> SubmissionState:
        return self._state

    @property
    def answers(self) -> Dict[str, str]:
        return dict(self._answers)

    @property
    def outcome(self) -> Optional[SubmissionOutcome]:
        return self._outcome

    def attach_countdown(self, countdown: CountdownSession) -> None:
        """Own the countdown: its expiry auto-submits this attempt"""
        self.countdown = countdown
        countdown.on_expire = self.handle_expiry

    def record_answer(self, question_id: str, text: str) -> None:
        """Store an answer (last write wins) while the attempt is still open"""
        if self._state is not SubmissionState.COLLECTING:
            raise InvalidTransitionError(f"answers are closed once the attempt is {self._state.value}")
        self._answers[str(question_id)] = text or ''

    def handle_expiry(self) -> SubmissionOutcome:
        logger.info("[Grading] %s time is up, auto-submitting", self.instance.id)
        return self.submit(trigger='expiry')

    def for_retry(self) -> 'SubmissionOrchestrator':
        """Fresh orchestrator for a failed attempt, carrying its answers over"""
        if self._state is not SubmissionState.FAILED:
            raise InvalidTransitionError("only a failed attempt can be retried")
        return SubmissionOrchestrator(
            self.instance, self.questions, self.grader, submissions=self.submissions,
            timer_store=self.timer_store, presets=self.presets, aggregator=self.aggregator,
            clock=self.clock, max_score=self.max_score, on_progress=self.on_progress,
            answers=self._answers,
        )

    def _transition(self, state: SubmissionState) -> None:
        logger.info("[Grading] %s: %s -> %s", self.instance.id, self._state.value, state.value)
        self._state = state
        if self.on_progress:
            self.on_progress(state)

    def answer_sheet(self) -> List[Answer]:
        """One Answer per question, in question order"""
        return [Answer(question.id, self._answers.get(question.id, '')) for question in self.questions]

    def _complete_answers(self) -> Dict[str, str]:
        # Every question gets an entry, even if the user never typed anything
        combined = {answer.question_id: answer.raw_text for answer in self.answer_sheet()}
        combined.update(self._answers)
        return combined

    def _finish(self, outcome: SubmissionOutcome) -> SubmissionOutcome:
        self._outcome = outcome
        self._transition(outcome.state)
        if outcome.state is SubmissionState.DONE and self.presets is not None:
            self.presets.remove(self.instance.id)
        return outcome

    def _fail(self, kind: FailureKind, error: str, answers: Dict[str, str], **kwargs) -> SubmissionOutcome:
        logger.error("[Grading] %s failed (%s): %s", self.instance.id, kind.value, error)
        return self._finish(SubmissionOutcome(SubmissionState.FAILED, answers, failure=kind,
                                              error=error, **kwargs))

    def submit(self, trigger: str = 'user') -> SubmissionOutcome:
        """
        Submit the attempt for grading

        Entering twice (double click, expiry racing a manual submit) returns
        the first outcome without a second grading call.
        """
        with self._lock:
            if self._state is not SubmissionState.COLLECTING:
                logger.info("[Grading] %s already %s, ignoring %s submit",
                            self.instance.id, self._state.value, trigger)
                return self._outcome

            submitted_at = self.clock()
            self._transition(SubmissionState.SUBMITTING)

            # The countdown must be dead before grading starts
            if self.countdown is not None:
                self.countdown.stop()
            if self.timer_store is not None:
                self.timer_store.clear(self.instance.id)

            answers = self._complete_answers()

            try:
                existing = self.submissions.find_existing(self.instance.id)
            except SubmissionPersistenceError as e:
                return self._fail(FailureKind.PERSISTENCE, str(e), answers)

            if existing is not None and existing.status == STATUS_PENDING_REVIEW:
                # Parked after an unusable grader reply: grade the parked answers
                # again, timed from the original submission
                logger.info("[Grading] %s has result %s awaiting review, regrading",
                            self.instance.id, existing.id)
                if existing.answers:
                    self._answers = dict(existing.answers)
                    answers = self._complete_answers()
                submitted_at = as_utc(existing.submitted_at) or submitted_at
            elif existing is not None:
                logger.info("[Grading] %s already has result %s, skipping grading",
                            self.instance.id, existing.id)
                return self._finish(SubmissionOutcome(
                    SubmissionState.DONE, answers, result=result_from_record(existing),
                    submission_id=existing.id, saved=True, duplicate=True))

            self._transition(SubmissionState.GRADING)
            return self._grade(answers, submitted_at)

    def _grade(self, answers: Dict[str, str], submitted_at: datetime) -> SubmissionOutcome:
        penalty = PenaltyService.calculate(self.instance.deadline, submitted_at)
        if penalty:
            logger.info("[Grading] %s late penalty: %s", self.instance.id, penalty.note)

        prompt = build_grading_prompt(self.instance, self.questions, self.answer_sheet(), penalty,
                                      max_score=self.max_score)
        try:
            evaluation_text = self.grader.grade(prompt, self.instance.instructions)
        except GradingEngineError as e:
            return self._fail(FailureKind.GRADER_UNAVAILABLE, str(e), answers)

        parser = GradingResponseParser([q.id for q in self.questions], total_max=self.max_score)
        try:
            parsed = parser.parse(evaluation_text)
        except GradingParseError as e:
            submission_id = None
            try:
                submission_id = self.submissions.record_pending_review(
                    self.instance.id, answers, evaluation_text=evaluation_text,
                    submitted_at=submitted_at, user_id=self.instance.user_id)
            except SubmissionPersistenceError as save_error:
                logger.error("[Grading] %s could not be parked for review: %s", self.instance.id, save_error)
            return self._fail(FailureKind.PENDING_REVIEW, str(e), answers,
                              submission_id=submission_id, saved=submission_id is not None)

        score = self.aggregator.aggregate(parsed, penalty)
        result = SubmissionResult(
            final_score=score.final_score,
            graded_answers=parsed.per_question,
            penalty=penalty,
            submitted_at=submitted_at,
            raw_score=score.raw_score,
        )

        try:
            submission_id = self.submissions.submit(
                self.instance.id, answers, score.final_score, penalty,
                graded_answers=parsed.per_question, raw_score=score.raw_score,
                evaluation_text=evaluation_text, submitted_at=submitted_at,
                user_id=self.instance.user_id)
        except SubmissionPersistenceError as e:
            # Show the computed score, but never retry automatically
            return self._fail(FailureKind.PERSISTENCE, str(e), answers, result=result,
                              defects=parsed.defects)

        result.submission_id = submission_id
        return self._finish(SubmissionOutcome(
            SubmissionState.DONE, answers, result=result, submission_id=submission_id,
            saved=True, defects=parsed.defects))
