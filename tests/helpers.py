from datetime import timedelta

from examcore.ai_engines.base import GradingEngine


class FixedClock:
    def __init__(self, now):
        self.now = now

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now = self.now + timedelta(seconds=seconds)


class FakeGrader(GradingEngine):
    """Returns scripted responses and counts calls"""

    name = 'fake'

    def __init__(self, responses=None, error=None):
        super().__init__(model='fake-model')
        self.responses = list(responses or [])
        self.error = error
        self.calls = []

    def _complete(self, prompt, instructions=None):
        self.calls.append((prompt, instructions))
        if self.error:
            raise self.error
        return self.responses.pop(0) if self.responses else ''


def grading_text(scores, total=None, max_score=None, omit=()):
    """Well-formed grader output for len(scores) questions"""
    count = len(scores)
    max_score = max_score if max_score is not None else round(10 / count, 2)
    lines = []
    if total is not None:
        lines.append(f"TOTAL: {total}/10")
        lines.append("")
    for n, score in enumerate(scores, start=1):
        if n in omit:
            continue
        percentage = round(score / max_score * 100, 1)
        if score == max_score:
            label = 'Fully correct'
        elif score == 0:
            label = 'Incorrect'
        else:
            label = 'Partially correct'
        lines.extend([
            f"=== QUESTION {n} ===",
            f"Standard answer: Reference answer {n}",
            f"Evaluation: {label}",
            f"Score: {score}/{max_score}",
            f"Percentage: {percentage}%",
            f"Feedback: Feedback for question {n}",
            f"Suggestion: Suggestion for question {n}",
            "",
        ])
    lines.extend(["=== SUMMARY ===", "Solid work overall."])
    return "\n".join(lines)
