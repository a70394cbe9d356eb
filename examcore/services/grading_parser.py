"""
Grading Response Parser

Turns the grader's free text into typed per-question results. The text
is read as a small line grammar:

    document := line* (total | section | summary)*
    total    := "TOTAL:" NUMBER ["/" NUMBER]
    section  := "=== QUESTION <n> ===" (field | text | total)*
    summary  := "=== SUMMARY ===" ...
    field    := LABEL ":" value

A section runs until the next marker, the summary, a document total or the
end of the text. A total out of less than the full scale inside a section is
read as that question's score. Lines that are not fields continue the previous field.
Every default the parser has to fill in is reported as a ParseDefect.
"""
import logging
import re
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence, Union

from examcore.domain import EvaluationLabel, GradedAnswer

logger = logging.getLogger(__name__)

NUMBER = r'[-+]?\d+(?:[.,]\d+)?'

MARKER_RE = re.compile(r'^={2,}\s*question\s*#?\s*(\d+)\b[^=]*=*\s*$', re.IGNORECASE)
SUMMARY_RE = re.compile(r'^={2,}\s*summary\b.*$', re.IGNORECASE)
TOTAL_RE = re.compile(rf'^total(?:\s+score)?\s*:\s*({NUMBER})\s*(?:/\s*({NUMBER}))?', re.IGNORECASE)
FIELD_RE = re.compile(r'^([A-Za-z][A-Za-z _\-]{0,40}?)\s*:\s*(.*)$')
FRACTION_RE = re.compile(rf'({NUMBER})\s*(?:/\s*({NUMBER}))?')
PERCENT_RE = re.compile(rf'({NUMBER})\s*%?')
DECORATION_RE = re.compile(r'^\s*(?:[#>]+\s*|[+\-*•]\s+)?')

LABELS = {
    'standard answer': 'standard_answer',
    'model answer': 'standard_answer',
    'expected answer': 'standard_answer',
    'evaluation': 'evaluation',
    'evaluation label': 'evaluation',
    'verdict': 'evaluation',
    'status': 'evaluation',
    'score': 'score',
    'percentage': 'percentage',
    'percent': 'percentage',
    'feedback': 'feedback',
    'suggestion': 'suggestion',
    'suggestions': 'suggestion',
}

# Checked in order: "partially correct" and "incorrect" both contain "correct"
LABEL_VOCABULARY = (
    ('unanswered', EvaluationLabel.UNANSWERED),
    ('partially correct', EvaluationLabel.PARTIALLY_CORRECT),
    ('incorrect', EvaluationLabel.INCORRECT),
    ('fully correct', EvaluationLabel.FULLY_CORRECT),
)

DEFAULT_STANDARD_ANSWER = 'No standard answer provided.'
DEFAULT_FEEDBACK = 'No feedback provided.'
DEFAULT_SUGGESTION = 'No suggestion provided.'
FALLBACK_FEEDBACK = 'The grader returned no evaluation for this question; it needs manual review.'


class GradingParseError(ValueError):
    """The grader's text is empty or has no recognizable structure"""


@dataclass(frozen=True)
class ParseDefect:
    question: Optional[int]  # 1-based ordinal, None for document-level defects
    field: str
    message: str


@dataclass
class ParseResult:
    reported_total: Optional[float]
    per_question: List[GradedAnswer]
    defects: List[ParseDefect] = field(default_factory=list)

    @property
    def fallback_count(self) -> int:
        return sum(1 for answer in self.per_question if answer.is_fallback)

    @property
    def score_sum(self) -> float:
        return sum(answer.score for answer in self.per_question)

    def defaulted_fields(self, question: int) -> List[str]:
        return [d.field for d in self.defects if d.question == question]


@dataclass
class _Token:
    kind: str  # 'marker', 'summary', 'total', 'field', 'text'
    line_no: int
    ordinal: Optional[int] = None
    name: Optional[str] = None
    value: str = ''
    denominator: Optional[str] = None


@dataclass
class _Section:
    ordinal: int
    fields: Dict[str, str] = field(default_factory=dict)


def parse_number(text: Optional[str]) -> Optional[float]:
    """Decimal parsing that accepts both '.' and ',' separators"""
    if text is None:
        return None
    try:
        return float(text.strip().replace(',', '.'))
    except ValueError:
        return None


def classify_label(text: Optional[str]) -> Optional[EvaluationLabel]:
    if not text:
        return None
    normalized = ' '.join(re.sub(r'[-_]', ' ', text.lower()).split())
    for needle, label in LABEL_VOCABULARY:
        if needle in normalized:
            return label
    return None


def _tokenize(text: str) -> List[_Token]:
    tokens = []
    for line_no, raw_line in enumerate(text.splitlines(), start=1):
        line = raw_line.replace('**', '').replace('__', '').strip()
        if not line:
            continue

        marker = MARKER_RE.match(line)
        if marker:
            tokens.append(_Token('marker', line_no, ordinal=int(marker.group(1))))
            continue
        if SUMMARY_RE.match(line):
            tokens.append(_Token('summary', line_no))
            continue

        line = DECORATION_RE.sub('', line, count=1)
        total = TOTAL_RE.match(line)
        if total:
            tokens.append(_Token('total', line_no, value=total.group(1), denominator=total.group(2)))
            continue

        field_match = FIELD_RE.match(line)
        if field_match:
            label = ' '.join(field_match.group(1).lower().replace('-', ' ').replace('_', ' ').split())
            name = LABELS.get(label)
            if name:
                tokens.append(_Token('field', line_no, name=name, value=field_match.group(2).strip()))
                continue

        tokens.append(_Token('text', line_no, value=line))
    return tokens


class GradingResponseParser:
    """Recursive-descent parser over the tokenized grader text"""

    def __init__(self, questions: Union[int, Sequence[str]], total_max: float = 10.0):
        if isinstance(questions, int):
            self.question_ids = [str(i) for i in range(1, questions + 1)]
        else:
            self.question_ids = [str(q) for q in questions]
        self.total_max = total_max

    @property
    def max_per_question(self) -> float:
        if not self.question_ids:
            return 0.0
        return self.total_max / len(self.question_ids)

    def parse(self, text: Optional[str]) -> ParseResult:
        if not text or not text.strip():
            raise GradingParseError("grading response is empty")

        tokens = _tokenize(text)
        if not any(t.kind in ('marker', 'total') for t in tokens):
            raise GradingParseError("grading response has no total line and no question sections")

        self._tokens = tokens
        self._pos = 0
        self._defects: List[ParseDefect] = []
        reported_total, sections = self._parse_document()

        per_question = []
        for ordinal, question_id in enumerate(self.question_ids, start=1):
            section = sections.get(ordinal)
            if section is None:
                self._defect(ordinal, 'section', 'question section missing; fallback result used')
                per_question.append(self._fallback(question_id))
            else:
                per_question.append(self._build_answer(question_id, section))

        for ordinal in sorted(set(sections) - set(range(1, len(self.question_ids) + 1))):
            self._defect(ordinal, 'section', 'section for an unknown question ignored')

        result = ParseResult(reported_total, per_question, self._defects)
        if result.defects:
            logger.warning("[GradingParser] Parsed with %d defect(s), %d fallback(s)",
                           len(result.defects), result.fallback_count)
        return result

    # -- grammar --------------------------------------------------------

    def _peek(self) -> Optional[_Token]:
        return self._tokens[self._pos] if self._pos < len(self._tokens) else None

    def _advance(self) -> _Token:
        token = self._tokens[self._pos]
        self._pos += 1
        return token

    def _parse_document(self):
        reported_total = None
        sections: Dict[int, _Section] = {}
        in_summary = False

        while self._peek() is not None:
            token = self._peek()
            if token.kind == 'total':
                self._advance()
                value = self._parse_total(token)
                if value is not None and reported_total is None:
                    reported_total = value
            elif token.kind == 'summary':
                self._advance()
                in_summary = True
            elif token.kind == 'marker':
                in_summary = False
                section = self._parse_section()
                if section.ordinal in sections:
                    self._defect(section.ordinal, 'section', 'duplicate section ignored')
                else:
                    sections[section.ordinal] = section
            else:
                # Preamble or summary prose
                self._advance()

        if in_summary:
            logger.debug("[GradingParser] Summary block reached end of text")
        return reported_total, sections

    def _parse_total(self, token: _Token) -> Optional[float]:
        value = parse_number(token.value)
        if value is None:
            self._defect(None, 'total', 'unreadable total score')
            return None
        denominator = parse_number(token.denominator)
        if denominator and denominator > 0 and denominator != self.total_max:
            self._defect(None, 'total', f'total reported out of {denominator:g}; rescaled')
            value = value * self.total_max / denominator
        return value

    def _is_document_total(self, token: _Token) -> bool:
        """A total out of less than the full scale belongs to the question"""
        denominator = parse_number(token.denominator)
        return denominator is None or denominator >= self.total_max

    def _parse_section(self) -> _Section:
        marker = self._advance()
        section = _Section(ordinal=marker.ordinal)
        current = None

        while self._peek() is not None and self._peek().kind in ('field', 'text', 'total'):
            if self._peek().kind == 'total' and self._is_document_total(self._peek()):
                break
            token = self._advance()
            if token.kind == 'total':
                # "Total score: 2.5/3.33" inside a section is that question's score
                if 'score' not in section.fields:
                    denominator = f"/{token.denominator}" if token.denominator else ''
                    section.fields['score'] = f"{token.value}{denominator}"
                current = None
            elif token.kind == 'field':
                if token.name in section.fields:
                    self._defect(section.ordinal, token.name, 'repeated field; first value kept')
                    current = None
                    continue
                section.fields[token.name] = token.value
                current = token.name
            elif current is not None:
                joined = f"{section.fields[current]}\n{token.value}"
                section.fields[current] = joined.strip()

        return section

    # -- record construction ---------------------------------------------

    def _defect(self, question: Optional[int], field_name: str, message: str) -> None:
        self._defects.append(ParseDefect(question, field_name, message))

    def _fallback(self, question_id: str) -> GradedAnswer:
        return GradedAnswer(
            question_id=question_id,
            standard_answer=DEFAULT_STANDARD_ANSWER,
            evaluation_label=EvaluationLabel.UNANSWERED,
            score=0.0,
            max_score=round(self.max_per_question, 2),
            percentage=0.0,
            feedback=FALLBACK_FEEDBACK,
            suggestion=DEFAULT_SUGGESTION,
            is_fallback=True,
        )

    def _text_field(self, section: _Section, name: str, default: str) -> str:
        value = section.fields.get(name, '').strip()
        if not value:
            self._defect(section.ordinal, name, 'missing; default used')
            return default
        return value

    def _build_answer(self, question_id: str, section: _Section) -> GradedAnswer:
        ordinal = section.ordinal
        score, max_score = None, None

        score_text = section.fields.get('score')
        if score_text is not None:
            match = FRACTION_RE.search(score_text)
            if match:
                score = parse_number(match.group(1))
                max_score = parse_number(match.group(2))
            if score is None:
                self._defect(ordinal, 'score', 'unreadable score')

        if max_score is None or max_score <= 0:
            if score_text is not None:
                self._defect(ordinal, 'max_score', 'missing; even share of the total used')
            max_score = self.max_per_question

        percentage = None
        percentage_text = section.fields.get('percentage')
        if percentage_text is not None:
            match = PERCENT_RE.search(percentage_text)
            percentage = parse_number(match.group(1)) if match else None
            if percentage is None:
                self._defect(ordinal, 'percentage', 'unreadable percentage')

        if score is None and percentage is not None:
            score = percentage / 100 * max_score
        elif score is None:
            self._defect(ordinal, 'score', 'missing; scored as 0')
            score = 0.0

        score = round(min(max(score, 0.0), max_score), 2)
        if percentage is None:
            percentage = score / max_score * 100 if max_score else 0.0
        percentage = round(min(max(percentage, 0.0), 100.0), 1)

        label = classify_label(section.fields.get('evaluation'))
        if label is None:
            self._defect(ordinal, 'evaluation', 'missing or unrecognized; unanswered used')
            label = EvaluationLabel.UNANSWERED

        return GradedAnswer(
            question_id=question_id,
            standard_answer=self._text_field(section, 'standard_answer', DEFAULT_STANDARD_ANSWER),
            evaluation_label=label,
            score=score,
            max_score=round(max_score, 2),
            percentage=percentage,
            feedback=self._text_field(section, 'feedback', DEFAULT_FEEDBACK),
            suggestion=self._text_field(section, 'suggestion', DEFAULT_SUGGESTION),
        )


def parse_grading_response(text: Optional[str], questions: Union[int, Sequence[str]],
                           total_max: float = 10.0) -> ParseResult:
    return GradingResponseParser(questions, total_max=total_max).parse(text)
