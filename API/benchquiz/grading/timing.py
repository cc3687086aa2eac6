from __future__ import annotations

import time
from dataclasses import dataclass, replace
from typing import Any

from benchquiz.grading.scorer import score_answer
from benchquiz.schemas.progress import UserAnswer


@dataclass(frozen=True)
class TimingResult:
    start_time: int
    end_time: int
    time_spent: int
    is_within_time_limit: bool | None = None


def now_ms() -> int:
    return int(time.time() * 1000)


def start_timing() -> int:
    return now_ms()


def calculate_answer_time(start_time: int, end_time: int | None = None) -> TimingResult:
    # Never report 0s: downstream averages divide by it.
    actual_end = end_time or now_ms()
    seconds = round((actual_end - start_time) / 1000)
    return TimingResult(start_time=start_time, end_time=actual_end, time_spent=max(seconds, 1))


def check_time_limit(timing: TimingResult, time_limit_seconds: int | None = None) -> TimingResult:
    if not time_limit_seconds:
        return timing
    return replace(timing, is_within_time_limit=timing.time_spent <= time_limit_seconds)


def create_user_answer(
    question_id: str,
    user_input: Any,
    question: Any,
    start_time: int,
    end_time: int | None = None,
) -> UserAnswer:
    """Score and time one answer. The raw input is stored, never the normalized form."""
    scoring = score_answer(user_input, question)
    timing = calculate_answer_time(start_time, end_time)
    return UserAnswer(
        question_id=question_id,
        user_answer=user_input,
        is_correct=scoring.is_correct,
        time_spent=timing.time_spent,
        timestamp=timing.end_time,
    )


def calculate_answer_stats(answers: list[UserAnswer]) -> dict:
    total = len(answers)
    correct = sum(1 for answer in answers if answer.is_correct)
    total_time = sum(answer.time_spent for answer in answers)
    average = total_time / total if total else 0.0
    accuracy = correct / total * 100 if total else 0.0
    return {
        "total_answers": total,
        "correct_answers": correct,
        "accuracy": round(accuracy, 2),
        "average_time": round(average, 2),
        "total_time": total_time,
    }
