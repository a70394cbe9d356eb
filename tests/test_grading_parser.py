import pytest

from examcore.domain import EvaluationLabel
from examcore.services.grading_parser import (GradingParseError, GradingResponseParser,
                                              classify_label, parse_grading_response, parse_number)
from tests.helpers import grading_text


def test_well_formed_text_yields_every_question_in_order():
    text = grading_text([2.0, 1.5, 0.5, 2.0, 1.0], total=7)
    result = parse_grading_response(text, ['q1', 'q2', 'q3', 'q4', 'q5'])

    assert [a.question_id for a in result.per_question] == ['q1', 'q2', 'q3', 'q4', 'q5']
    assert [a.score for a in result.per_question] == [2.0, 1.5, 0.5, 2.0, 1.0]
    assert result.fallback_count == 0
    assert result.defects == []
    assert result.reported_total == 7.0


def test_fields_are_extracted():
    text = grading_text([1.5, 2.0], max_score=5)
    first = parse_grading_response(text, 2).per_question[0]

    assert first.standard_answer == 'Reference answer 1'
    assert first.evaluation_label is EvaluationLabel.PARTIALLY_CORRECT
    assert first.max_score == 5.0
    assert first.percentage == 30.0
    assert first.feedback == 'Feedback for question 1'
    assert first.suggestion == 'Suggestion for question 1'


def test_missing_section_falls_back_without_touching_others():
    text = grading_text([2.0, 1.5, 1.0, 0.5, 2.0], total=7, omit=(3,))
    result = parse_grading_response(text, 5)

    assert len(result.per_question) == 5
    third = result.per_question[2]
    assert third.is_fallback
    assert third.score == 0
    assert third.evaluation_label is EvaluationLabel.UNANSWERED
    assert [a.score for i, a in enumerate(result.per_question) if i != 2] == [2.0, 1.5, 0.5, 2.0]
    assert result.fallback_count == 1
    assert result.defaulted_fields(3) == ['section']


def test_fields_may_appear_in_any_order_with_decorations():
    text = """TOTAL: 4/10
=== QUESTION 1 ===
+ **Feedback:** Clear reasoning
- Score: 4/5
* Evaluation label: PARTIALLY-CORRECT
+ Percentage: 80%
+ Suggestion: Mention the edge case
+ Standard answer: The full answer
=== QUESTION 2 ===
Score: 0/5
Evaluation: Unanswered
"""
    result = parse_grading_response(text, 2)
    first, second = result.per_question

    assert first.feedback == 'Clear reasoning'
    assert first.score == 4.0
    assert first.evaluation_label is EvaluationLabel.PARTIALLY_CORRECT
    assert second.evaluation_label is EvaluationLabel.UNANSWERED
    assert set(result.defaulted_fields(2)) == {'standard_answer', 'feedback', 'suggestion'}


def test_comma_decimal_separators():
    text = "TOTAL: 7,5/10\n=== QUESTION 1 ===\nScore: 3,25/5\nPercentage: 65,0%\nEvaluation: partially correct"
    result = parse_grading_response(text, 2)

    assert result.reported_total == 7.5
    assert result.per_question[0].score == 3.25
    assert result.per_question[0].percentage == 65.0


def test_score_derived_from_percentage_when_missing():
    text = "=== QUESTION 1 ===\nPercentage: 50%\nEvaluation: Partially correct"
    answer = parse_grading_response(text, 2).per_question[0]

    assert answer.max_score == 5.0
    assert answer.score == 2.5


def test_score_is_clamped_to_its_maximum():
    text = "=== QUESTION 1 ===\nScore: 9/5\nEvaluation: Fully correct"
    answer = parse_grading_response(text, 2).per_question[0]

    assert answer.score == 5.0
    assert answer.percentage == 100.0


def test_missing_score_counts_as_zero():
    text = "=== QUESTION 1 ===\nEvaluation: Incorrect\nFeedback: Wrong formula"
    result = parse_grading_response(text, 1)

    assert result.per_question[0].score == 0.0
    assert 'score' in result.defaulted_fields(1)
    assert not result.per_question[0].is_fallback


def test_unrecognized_label_defaults_to_unanswered():
    text = "=== QUESTION 1 ===\nScore: 3/5\nEvaluation: Excellent work"
    result = parse_grading_response(text, 1)

    assert result.per_question[0].evaluation_label is EvaluationLabel.UNANSWERED
    assert 'evaluation' in result.defaulted_fields(1)


def test_multiline_feedback_is_joined():
    text = "=== QUESTION 1 ===\nScore: 2/2\nFeedback: First line\nsecond line\nSuggestion: none"
    answer = parse_grading_response(text, 1).per_question[0]

    assert answer.feedback == 'First line\nsecond line'
    assert answer.suggestion == 'none'


def test_summary_and_total_end_a_section():
    text = ("=== QUESTION 1 ===\nScore: 2/5\nFeedback: Short\n"
            "=== SUMMARY ===\nFeedback: overall notes\nTOTAL: 2/10")
    result = parse_grading_response(text, 1)

    assert result.per_question[0].feedback == 'Short'
    assert result.reported_total == 2.0


def test_duplicate_and_unknown_sections_are_reported():
    text = ("=== QUESTION 1 ===\nScore: 2/5\n=== QUESTION 1 ===\nScore: 5/5\n"
            "=== QUESTION 9 ===\nScore: 1/5")
    result = parse_grading_response(text, 2)

    assert result.per_question[0].score == 2.0
    messages = [d.message for d in result.defects]
    assert 'duplicate section ignored' in messages
    assert 'section for an unknown question ignored' in messages


def test_total_out_of_other_scale_is_rescaled():
    result = parse_grading_response("TOTAL: 50/100", 1)
    assert result.reported_total == 5.0
    assert result.per_question[0].is_fallback


@pytest.mark.parametrize("text", ["", "   \n  ", None])
def test_empty_text_is_a_hard_failure(text):
    with pytest.raises(GradingParseError):
        GradingResponseParser(3).parse(text)


def test_text_without_structure_is_a_hard_failure():
    with pytest.raises(GradingParseError):
        parse_grading_response("I'm sorry, I cannot grade this submission.", 3)


@pytest.mark.parametrize("text,label", [
    ("Fully correct", EvaluationLabel.FULLY_CORRECT),
    ("fully-correct answer", EvaluationLabel.FULLY_CORRECT),
    ("Partially correct", EvaluationLabel.PARTIALLY_CORRECT),
    ("INCORRECT", EvaluationLabel.INCORRECT),
    ("Unanswered", EvaluationLabel.UNANSWERED),
    ("great", None),
])
def test_classify_label(text, label):
    assert classify_label(text) is label


def test_parse_number_accepts_both_separators():
    assert parse_number('2.5') == 2.5
    assert parse_number('2,5') == 2.5
    assert parse_number('abc') is None


def test_question_total_inside_a_section_does_not_end_it():
    text = ("TOTAL: 6/10\n=== QUESTION 1 ===\nEvaluation: Partially correct\n"
            "Total score: 2,5/3.33\nFeedback: Missing the units\n"
            "=== QUESTION 2 ===\nScore: 3.5/6.67\nTotal score: 6/6.67\nEvaluation: Partially correct")
    result = parse_grading_response(text, 2)
    first, second = result.per_question

    assert result.reported_total == 6.0
    assert first.score == 2.5
    assert first.max_score == 3.33
    assert first.feedback == 'Missing the units'
    assert second.score == 3.5
    assert second.evaluation_label is EvaluationLabel.PARTIALLY_CORRECT


def test_full_scale_total_after_the_last_section_is_the_document_total():
    text = "=== QUESTION 1 ===\nScore: 4/5\nFeedback: Good\nTOTAL: 8/10"
    result = parse_grading_response(text, 2)

    assert result.reported_total == 8.0
    assert result.per_question[0].feedback == 'Good'


def test_bare_total_after_a_section_is_the_document_total():
    text = "=== QUESTION 1 ===\nScore: 3/5\nTOTAL: 6\n=== QUESTION 2 ===\nScore: 3/5"
    result = parse_grading_response(text, 2)

    assert result.reported_total == 6.0
    assert [a.score for a in result.per_question] == [3.0, 3.0]
