# scoring.py
from dataclasses import dataclass, field
from typing import List, Mapping, Sequence

from schemas import QuestionRecord


@dataclass
class QuestionResult:
    question_id: str
    correct: bool


@dataclass
class ScoreResult:
    earned_points: int = 0
    correct_count: int = 0
    total_points: int = 0
    per_question: List[QuestionResult] = field(default_factory=list)


def is_correct(question: QuestionRecord, selected) -> bool:
    # bool is an int subclass; True must not count as option 1
    if isinstance(selected, bool) or not isinstance(selected, int):
        return False
    return selected == question.correct_answer


def score(questions: Sequence[QuestionRecord], answers: Mapping[str, int]) -> ScoreResult:
    """All-or-nothing per question. Missing answers count as skipped and
    answers for ids outside `questions` are ignored."""
    result = ScoreResult()
    for q in questions:
        ok = is_correct(q, answers.get(q.id))
        result.total_points += q.points
        if ok:
            result.earned_points += q.points
            result.correct_count += 1
        result.per_question.append(QuestionResult(question_id=q.id, correct=ok))
    return result
