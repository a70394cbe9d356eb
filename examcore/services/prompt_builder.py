"""
Grading request builder
"""
from typing import Optional, Sequence

from examcore.domain import Answer, AssessmentInstance, LatePenalty, Question

GRADING_SYSTEM_PROMPT = (
    "You are an examiner grading a written assessment with partial credit. "
    "Follow the requested output format exactly."
)


def build_grading_prompt(instance: AssessmentInstance, questions: Sequence[Question],
                         answers: Sequence[Answer], penalty: Optional[LatePenalty] = None,
                         max_score: float = 10.0) -> str:
    """Prompt listing every question with the student's answer plus the output format"""
    count = len(questions)
    per_question = max_score / count if count else 0
    by_question = {answer.question_id: answer.raw_text or '' for answer in answers}

    blocks = []
    for index, question in enumerate(questions, start=1):
        answer = by_question.get(question.id, '').strip() or 'No answer provided'
        block = f"Question {index}: {question.text}"
        if question.passage:
            block = f"Passage: {question.passage}\n{block}"
        blocks.append(f"{block}\nStudent answer: {answer}")
    answers_text = '\n\n'.join(blocks)

    penalty_line = f"\nLate submission: {penalty.note} (applied separately, do not deduct it yourself)" \
        if penalty else ''

    return f"""Grade the following assessment.

Assessment: {instance.name or 'Written assessment'}
Number of questions: {count}
Maximum per question: {per_question:.2f} points
Maximum total: {max_score:g} points{penalty_line}

{answers_text}

GRADING RULES:
- Award partial credit for every part of an answer that is correct
- Give scores with up to 2 decimal places
- Grade ALL {count} questions, even unanswered ones

REQUIRED OUTPUT FORMAT:
TOTAL: <total>/{max_score:g}

=== QUESTION <n> ===
Standard answer: <complete reference answer>
Evaluation: <Fully correct | Partially correct | Incorrect | Unanswered>
Score: <score>/<maximum>
Percentage: <percentage>%
Feedback: <what was right and what was missing>
Suggestion: <how to write a complete answer>

(repeat the section for each of the {count} questions, numbered from 1)

=== SUMMARY ===
<overall comments>"""
