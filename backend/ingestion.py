# ingestion.py
"""
Question ingestion for the quiz creator.

CSV format, one question per line:

    Question, Option1, Option2, Option3, Option4, CorrectAnswerIndex(1-4)

Cells are split on bare commas; quoted commas are not supported.
"""
from dataclasses import dataclass, field
from typing import List

from errors import ValidationFailure
from schemas import QuestionIn

DEFAULT_POINTS = 10
CSV_OPTIONS = 4
MIN_OPTIONS = 2
MAX_OPTIONS = 6


@dataclass
class ParseResult:
    questions: List[QuestionIn] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.errors and bool(self.questions)

    def raise_for_errors(self) -> List[QuestionIn]:
        if self.errors:
            raise ValidationFailure(f"Found {len(self.errors)} errors. First error: {self.errors[0]}")
        if not self.questions:
            raise ValidationFailure("No valid questions found in CSV.")
        return self.questions


def _has_header(lines: List[str]) -> bool:
    if not lines:
        return False
    first_cell = lines[0].split(",", 1)[0]
    return "question" in first_cell.lower()


def parse_csv(text: str) -> ParseResult:
    result = ParseResult()
    lines = text.split("\n")
    start = 1 if _has_header(lines) else 0

    for i in range(start, len(lines)):
        line = lines[i].strip()
        if not line:
            continue
        line_no = i + 1

        cols = [c.strip() for c in line.split(",")]
        if len(cols) < 6:
            result.errors.append(f"Line {line_no}: Not enough columns. Expected 6.")
            continue
        if not cols[0]:
            result.errors.append(f"Line {line_no}: Question text is required.")
            continue
        if not all(cols[1:1 + CSV_OPTIONS]):
            result.errors.append(f"Line {line_no}: All options must be filled.")
            continue

        try:
            correct = int(cols[5])
        except ValueError:
            correct = None
        if correct is None or not 1 <= correct <= CSV_OPTIONS:
            result.errors.append(f"Line {line_no}: Invalid correct answer index. Must be 1-4.")
            continue

        result.questions.append(QuestionIn(
            question_text=cols[0],
            options=cols[1:1 + CSV_OPTIONS],
            correct_answer=correct - 1,
            points=DEFAULT_POINTS,
        ))

    return result


def validate_manual_question(q: QuestionIn) -> QuestionIn:
    if not q.question_text.strip():
        raise ValidationFailure("Question text is required")
    if len(q.options) < MIN_OPTIONS:
        raise ValidationFailure("At least 2 options are required")
    if len(q.options) > MAX_OPTIONS:
        raise ValidationFailure("At most 6 options are allowed")
    if any(not opt.strip() for opt in q.options):
        raise ValidationFailure("All options must be filled")
    if not 0 <= q.correct_answer < len(q.options):
        raise ValidationFailure("Correct answer must point at one of the options")
    if q.points < 1:
        raise ValidationFailure("Points must be at least 1")
    return q
