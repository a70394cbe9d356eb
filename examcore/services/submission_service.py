"""
Submission API backed by the exam_results table
"""
import logging
from datetime import datetime
from typing import Dict, List, Optional

from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from examcore import db
from examcore.domain import GradedAnswer, LatePenalty, utcnow
from examcore.models.exam_result import ExamResult, STATUS_GRADED, STATUS_PENDING_REVIEW

logger = logging.getLogger(__name__)


class SubmissionPersistenceError(RuntimeError):
    """The result could not be saved"""


class SubmissionService:
    """Stores at most one result per assessment instance"""

    @classmethod
    def find_existing(cls, instance_id: str) -> Optional[ExamResult]:
        """
        Look up the stored result for an instance

        Raises:
            SubmissionPersistenceError: If the database cannot be queried
        """
        try:
            return ExamResult.query.filter_by(instance_id=str(instance_id)).first()
        except SQLAlchemyError as e:
            db.session.rollback()
            raise SubmissionPersistenceError(f"could not look up result for {instance_id}") from e

    @classmethod
    def submit(cls, instance_id: str, answers: Dict[str, str], computed_score: float,
               penalty: Optional[LatePenalty] = None,
               graded_answers: Optional[List[GradedAnswer]] = None,
               raw_score: Optional[float] = None, evaluation_text: Optional[str] = None,
               submitted_at: Optional[datetime] = None, user_id: Optional[str] = None) -> str:
        """
        Save a graded result

        Args:
            instance_id: Assessment instance id
            answers: questionId -> raw answer text
            computed_score: Final score after penalty
            penalty: Late penalty applied, if any
            graded_answers: Per-question results
            raw_score: Score before penalty
            evaluation_text: Raw grader response
            submitted_at: When the submission was initiated
            user_id: Owner of the attempt

        Returns:
            The submission id; the existing id when the instance already has a result

        Raises:
            SubmissionPersistenceError: If the database write fails
        """
        return cls._create(
            instance_id,
            user_id=user_id,
            final_score=computed_score,
            raw_score=raw_score,
            penalty=penalty.to_dict() if penalty else None,
            graded_answers=[answer.to_dict() for answer in (graded_answers or [])],
            answers=dict(answers),
            evaluation_text=evaluation_text,
            status=STATUS_GRADED,
            submitted_at=submitted_at or utcnow(),
        )

    @classmethod
    def record_pending_review(cls, instance_id: str, answers: Dict[str, str],
                              evaluation_text: Optional[str] = None,
                              submitted_at: Optional[datetime] = None,
                              user_id: Optional[str] = None) -> str:
        """Park an ungradeable submission for manual grading"""
        return cls._create(
            instance_id,
            user_id=user_id,
            final_score=None,
            answers=dict(answers),
            graded_answers=[],
            evaluation_text=evaluation_text,
            status=STATUS_PENDING_REVIEW,
            submitted_at=submitted_at or utcnow(),
        )

    @classmethod
    def _create(cls, instance_id: str, **fields) -> str:
        existing = cls.find_existing(instance_id)
        if existing and existing.status == STATUS_PENDING_REVIEW and fields.get('status') == STATUS_GRADED:
            return cls._complete_review(existing, fields)
        if existing:
            logger.info("[Submission] Result already exists for %s (%s)", instance_id, existing.id)
            return existing.id

        result = ExamResult(instance_id=str(instance_id), **fields)
        try:
            db.session.add(result)
            db.session.commit()
        except IntegrityError:
            # Lost a race with a concurrent insert for the same instance
            db.session.rollback()
            existing = cls.find_existing(instance_id)
            if existing:
                logger.info("[Submission] Concurrent duplicate for %s resolved to %s", instance_id, existing.id)
                return existing.id
            raise SubmissionPersistenceError(f"could not save result for {instance_id}")
        except SQLAlchemyError as e:
            db.session.rollback()
            raise SubmissionPersistenceError(f"could not save result for {instance_id}") from e

        logger.info("[Submission] Saved result %s for %s (status=%s, score=%s)",
                    result.id, instance_id, result.status, result.final_score)
        return result.id

    @classmethod
    def _complete_review(cls, record: ExamResult, fields: dict) -> str:
        """Turn a parked row into a graded one; the original submission time is kept"""
        for name, value in fields.items():
            if name not in ('submitted_at', 'user_id'):
                setattr(record, name, value)
        try:
            db.session.commit()
        except SQLAlchemyError as e:
            db.session.rollback()
            raise SubmissionPersistenceError(f"could not grade parked result {record.id}") from e

        logger.info("[Submission] Parked result %s for %s graded (score=%s)",
                    record.id, record.instance_id, record.final_score)
        return record.id
