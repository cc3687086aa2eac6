from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from benchquiz.grading.validator import validate_answer
from benchquiz.schemas.question import MultipleChoiceQuestion, NumericQuestion, TextQuestion

RELATIVE_TOLERANCE = 0.01
MIN_TOLERANCE = 0.01
PARTIAL_CREDIT_BAND = 10
KEYWORD_MIN_LENGTH = 3
KEYWORD_CREDIT_FLOOR = 0.2

CORRECT_FEEDBACK = "Correct!"


@dataclass
class ScoringResult:
    is_correct: bool
    score: int
    feedback: str = ""
    partial_credit: float | None = None


def numeric_tolerance(correct_answer: float) -> float:
    return max(abs(correct_answer * RELATIVE_TOLERANCE), MIN_TOLERANCE)


def _format_number(value: float) -> str:
    return f"{value:g}"


def _score_multiple_choice(index: int, question: MultipleChoiceQuestion) -> ScoringResult:
    if index == question.correct_answer:
        return ScoringResult(True, 1, CORRECT_FEEDBACK)
    correct_text = question.choices[question.correct_answer]
    return ScoringResult(False, 0, f"Incorrect. The correct answer is \"{correct_text}\".")


def _score_numeric(value: float, question: NumericQuestion) -> ScoringResult:
    correct = question.correct_answer
    tolerance = numeric_tolerance(correct)
    difference = abs(value - correct)
    is_correct = difference <= tolerance

    partial_credit = 0.0
    band = tolerance * PARTIAL_CREDIT_BAND
    if not is_correct and difference <= band:
        partial_credit = max(0.0, 1 - difference / band)

    if is_correct:
        feedback = CORRECT_FEEDBACK
    else:
        feedback = f"Incorrect. The correct answer is {_format_number(correct)}{question.unit or ''}."
    return ScoringResult(is_correct, 1 if is_correct else 0, feedback, partial_credit)


def _score_text(text: str, question: TextQuestion) -> ScoringResult:
    correct = str(question.correct_answer).lower().strip()
    answer = text.lower().strip()

    if answer == correct:
        return ScoringResult(True, 1, CORRECT_FEEDBACK)

    accepted = [str(alt).lower().strip() for alt in (question.possible_answers or [])]
    if answer in accepted:
        return ScoringResult(True, 1, CORRECT_FEEDBACK)

    keywords = [word for word in correct.split() if len(word) >= KEYWORD_MIN_LENGTH]
    matches = [word for word in keywords if word in answer]
    ratio = len(matches) / len(keywords) if keywords else 0.0

    return ScoringResult(
        False,
        0,
        f"Incorrect. The correct answer is \"{question.correct_answer}\".",
        ratio if ratio > KEYWORD_CREDIT_FLOOR else 0.0,
    )


def score_answer(raw: Any, question: Any) -> ScoringResult:
    """Validate then score one answer. Validation failures score zero instead of raising."""
    validation = validate_answer(raw, question)
    if not validation.is_valid:
        return ScoringResult(False, 0, f"Input error: {', '.join(validation.errors)}")

    value = validation.normalized_value
    if isinstance(question, MultipleChoiceQuestion):
        return _score_multiple_choice(value, question)
    if isinstance(question, NumericQuestion):
        return _score_numeric(value, question)
    if isinstance(question, TextQuestion):
        return _score_text(value, question)
    return ScoringResult(False, 0, "Unsupported question type")
