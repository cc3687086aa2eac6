from __future__ import annotations

from benchquiz.grading.timing import (
    calculate_answer_stats,
    calculate_answer_time,
    check_time_limit,
    create_user_answer,
)
from benchquiz.schemas.progress import UserAnswer
from benchquiz.schemas.question import MultipleChoiceQuestion


def test_answer_time_is_rounded_and_never_zero():
    assert calculate_answer_time(1_000, 4_400).time_spent == 3
    assert calculate_answer_time(1_000, 1_200).time_spent == 1
    assert calculate_answer_time(1_000, 1_000).time_spent == 1


def test_check_time_limit():
    timing = calculate_answer_time(0, 30_000)
    assert check_time_limit(timing).is_within_time_limit is None
    assert check_time_limit(timing, 30).is_within_time_limit is True
    assert check_time_limit(timing, 10).is_within_time_limit is False


def test_create_user_answer_keeps_raw_input():
    question = MultipleChoiceQuestion(id="q1", prompt="?", choices=["a", "b"], correct_answer=1)
    answer = create_user_answer("q1", "1", question, start_time=10_000, end_time=15_000)
    assert answer.user_answer == "1"
    assert answer.is_correct
    assert answer.time_spent == 5
    assert answer.timestamp == 15_000


def test_answer_stats():
    answers = [
        UserAnswer(question_id="a", user_answer=1, is_correct=True, time_spent=4, timestamp=1),
        UserAnswer(question_id="b", user_answer=2, is_correct=False, time_spent=5, timestamp=2),
        UserAnswer(question_id="c", user_answer=0, is_correct=True, time_spent=1, timestamp=3),
    ]
    stats = calculate_answer_stats(answers)
    assert stats == {
        "total_answers": 3,
        "correct_answers": 2,
        "accuracy": 66.67,
        "average_time": 3.33,
        "total_time": 10,
    }


def test_answer_stats_empty():
    stats = calculate_answer_stats([])
    assert stats["accuracy"] == 0.0
    assert stats["average_time"] == 0.0
