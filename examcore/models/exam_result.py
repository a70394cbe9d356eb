"""
Exam result model
"""
import uuid
from datetime import datetime
from examcore import db
from examcore.domain import utcnow

STATUS_GRADED = 'graded'
STATUS_PENDING_REVIEW = 'pending_review'


class ExamResult(db.Model):
    """Result of one assessment instance; a pending_review row is completed once when regraded"""
    __tablename__ = 'exam_results'

    id = db.Column(db.String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    instance_id = db.Column(db.String(100), nullable=False, unique=True, index=True)  # one result per attempt
    user_id = db.Column(db.String(100), nullable=True)

    # Scoring
    final_score = db.Column(db.Float, nullable=True)  # None while pending review
    raw_score = db.Column(db.Float, nullable=True)  # Score before late penalty
    penalty = db.Column(db.JSON, nullable=True)  # LatePenalty dict

    # Grading detail
    graded_answers = db.Column(db.JSON, default=list)  # List of GradedAnswer dicts
    answers = db.Column(db.JSON, default=dict)  # questionId -> raw answer text
    evaluation_text = db.Column(db.Text)  # Raw grader response

    status = db.Column(db.String(30), default=STATUS_GRADED)  # graded, pending_review

    # Timestamps
    submitted_at = db.Column(db.DateTime(timezone=True), nullable=False)  # When submission was initiated
    created_at = db.Column(db.DateTime(timezone=True), default=utcnow)

    def __repr__(self):
        return f'<ExamResult {self.id} instance={self.instance_id} score={self.final_score} status={self.status}>'

    @staticmethod
    def _isoformat(value: datetime):
        return value.isoformat() if value else None

    def to_dict(self):
        return {
            'submissionId': self.id,
            'instanceId': self.instance_id,
            'userId': self.user_id,
            'finalScore': self.final_score,
            'rawScore': self.raw_score,
            'penalty': self.penalty,
            'gradedAnswers': self.graded_answers or [],
            'answers': self.answers or {},
            'status': self.status,
            'submittedAt': self._isoformat(self.submitted_at),
            'createdAt': self._isoformat(self.created_at),
        }
