"""
Assessment routes: timer reconciliation, submission and results
"""
import logging
from flask import current_app, jsonify, request
from examcore.ai_engines.base import GradingEngineError
from examcore.ai_engines.factory import GradingEngineFactory
from examcore.assessment import assessment_bp
from examcore.domain import AssessmentInstance, Question
from examcore.services.score_aggregator import ScoreAggregator
from examcore.services.submission_orchestrator import (FailureKind, SubmissionOrchestrator,
                                                       SubmissionState)
from examcore.services.submission_service import SubmissionPersistenceError, SubmissionService
from examcore.services.timer_service import TimerReconciler
from examcore.services.timer_store import parse_timestamp

logger = logging.getLogger(__name__)

FAILURE_STATUS = {
    FailureKind.GRADER_UNAVAILABLE: 502,
    FailureKind.PENDING_REVIEW: 202,
    FailureKind.PERSISTENCE: 500,
}


def _timer_store():
    return current_app.extensions['timer_store']


def _presets():
    return current_app.extensions['timer_presets']


def _bad_request(message):
    return jsonify({'error': message}), 400


def _non_negative_int(data, key):
    value = data.get(key)
    if isinstance(value, bool) or not isinstance(value, int) or value < 0:
        raise ValueError(f"'{key}' must be a non-negative integer")
    return value


def _create_grader(model_id=None):
    """Grading engine for a request; tests may install one in app.extensions"""
    engine = current_app.extensions.get('grading_engine')
    if engine is not None:
        return engine
    return GradingEngineFactory.from_config(current_app.config, model=model_id)


@assessment_bp.route('/<instance_id>/timer', methods=['GET'])
def get_timer(instance_id):
    """Reconcile and return the authoritative timer"""
    reconciler = TimerReconciler(_timer_store(), _presets())
    reconciliation = reconciler.reconcile(
        instance_id,
        external_minutes=request.args.get('timer'),
        instructions=request.args.get('instructions')
    )
    data = reconciliation.to_dict()
    data['saveInterval'] = current_app.config['TIMER_SAVE_INTERVAL']
    return jsonify(data)


@assessment_bp.route('/<instance_id>/timer', methods=['PUT'])
def save_timer(instance_id):
    """Periodic save from a running countdown"""
    data = request.get_json(silent=True) or {}
    try:
        total = _non_negative_int(data, 'totalSeconds')
        remaining = _non_negative_int(data, 'remainingSeconds')
    except ValueError as e:
        return _bad_request(str(e))

    _timer_store().save(instance_id, total, remaining)
    return jsonify({'saved': True})


@assessment_bp.route('/<instance_id>/timer', methods=['DELETE'])
def cancel_timer(instance_id):
    _timer_store().clear(instance_id)
    return jsonify({'cleared': True})


@assessment_bp.route('/<instance_id>/timer-preset', methods=['PUT'])
def set_timer_preset(instance_id):
    data = request.get_json(silent=True) or {}
    minutes = data.get('minutes')
    if isinstance(minutes, bool) or not isinstance(minutes, int) or minutes <= 0:
        return _bad_request("'minutes' must be a positive integer")

    _presets().set_minutes(instance_id, minutes)
    return jsonify({'instanceId': instance_id, 'minutes': minutes})


@assessment_bp.route('/<instance_id>/timer-preset', methods=['DELETE'])
def delete_timer_preset(instance_id):
    _presets().remove(instance_id)
    return jsonify({'removed': True})


def _parse_submission(instance_id, data):
    raw_questions = data.get('questions')
    if not isinstance(raw_questions, list) or not raw_questions:
        raise ValueError("'questions' must be a non-empty list")

    questions = []
    for item in raw_questions:
        if not isinstance(item, dict) or 'id' not in item or 'text' not in item:
            raise ValueError("each question needs 'id' and 'text'")
        questions.append(Question(
            id=str(item['id']),
            text=str(item['text']),
            passage=item.get('passage'),
            type=item.get('type', 'written')
        ))

    answers = data.get('answers') or {}
    if not isinstance(answers, dict):
        raise ValueError("'answers' must be an object")

    instance = AssessmentInstance(
        id=instance_id,
        question_count=len(questions),
        deadline=parse_timestamp(data.get('deadline')),
        model_id=data.get('model'),
        name=data.get('name'),
        instructions=data.get('instructions'),
        user_id=data.get('userId')
    )
    answers = {str(k): '' if v is None else str(v) for k, v in answers.items()}
    return instance, questions, answers


@assessment_bp.route('/<instance_id>/submit', methods=['POST'])
def submit(instance_id):
    """Stop the timer, grade the attempt and store the result"""
    data = request.get_json(silent=True) or {}
    try:
        instance, questions, answers = _parse_submission(instance_id, data)
    except ValueError as e:
        return _bad_request(str(e))

    try:
        grader = _create_grader(instance.model_id)
    except ValueError as e:
        logger.error("[Grading] Cannot create grading engine: %s", e)
        return jsonify({'error': str(e), 'answers': answers}), 500
    except GradingEngineError as e:
        logger.error("[Grading] Grading engine unavailable: %s", e)
        return jsonify({
            'state': SubmissionState.FAILED.value,
            'failure': FailureKind.GRADER_UNAVAILABLE.value,
            'error': str(e),
            'saved': False,
            'answers': answers
        }), FAILURE_STATUS[FailureKind.GRADER_UNAVAILABLE]

    orchestrator = SubmissionOrchestrator(
        instance,
        questions,
        grader,
        timer_store=_timer_store(),
        presets=_presets(),
        aggregator=ScoreAggregator(
            policy=current_app.config['SCORE_POLICY'],
            max_score=current_app.config['MAX_SCORE']
        ),
        max_score=current_app.config['MAX_SCORE'],
        answers=answers
    )
    outcome = orchestrator.submit(trigger=data.get('trigger', 'user'))

    if outcome.state is SubmissionState.DONE:
        return jsonify(outcome.to_dict())
    return jsonify(outcome.to_dict()), FAILURE_STATUS.get(outcome.failure, 500)


@assessment_bp.route('/<instance_id>/result', methods=['GET'])
def get_result(instance_id):
    try:
        record = SubmissionService.find_existing(instance_id)
    except SubmissionPersistenceError as e:
        return jsonify({'error': str(e)}), 500
    if record is None:
        return jsonify({'error': 'No result for this assessment'}), 404
    return jsonify(record.to_dict())
