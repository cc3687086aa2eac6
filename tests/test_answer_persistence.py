from __future__ import annotations

import pytest

from benchquiz.core.errors import AnswerPersistenceError, NoActiveTestError, QuotaExceededError
from benchquiz.grading.timing import now_ms
from benchquiz.memory.answer_persistence import AnswerPersistence
from benchquiz.schemas.progress import UserAnswer, UserProgress


@pytest.fixture
def active_store(store):
    store.save_progress(UserProgress(test_id="mmlu_test_1", test_type="mmlu", mode="test", start_time=now_ms()))
    return store


def test_submit_without_active_test(store, mc_questions):
    persistence = AnswerPersistence(store)
    with pytest.raises(NoActiveTestError) as excinfo:
        persistence.submit_answer("q0", 0, mc_questions[0], now_ms())
    assert excinfo.value.code == "NO_ACTIVE_TEST"


def test_submit_records_and_overwrites(active_store, mc_questions):
    persistence = AnswerPersistence(active_store)
    started = now_ms() - 3_000

    first = persistence.submit_answer("q0", "1", mc_questions[0], started, total_questions=3)
    assert not first.was_already_answered
    assert first.progress_updated
    assert not first.test_completed
    assert not first.user_answer.is_correct
    assert first.user_answer.time_spent >= 3

    second = persistence.submit_answer("q0", 0, mc_questions[0], started, total_questions=3)
    assert second.was_already_answered
    assert second.user_answer.is_correct
    assert persistence.get_answer("q0").is_correct
    assert persistence.get_answered_question_ids() == ["q0"]
    assert persistence.is_question_answered("q0")
    assert not persistence.is_question_answered("q1")


def test_completion_at_total_questions(active_store, mc_questions):
    persistence = AnswerPersistence(active_store)
    started = now_ms()
    results = [
        persistence.submit_answer(q.id, 0, q, started, total_questions=len(mc_questions)) for q in mc_questions
    ]

    assert [r.test_completed for r in results] == [False, False, True]
    final = results[-1].test_results
    assert final.total_questions == 3
    assert final.correct_answers == 3
    assert final.accuracy == 100.0
    assert final.metadata.category_breakdown == {}
    assert active_store.get_latest_result().test_id == "mmlu_test_1"
    assert active_store.get_progress().is_completed


def test_completion_threshold_from_constructor(active_store, mc_questions):
    persistence = AnswerPersistence(active_store, completion_threshold=2)
    started = now_ms()
    assert not persistence.submit_answer("q0", 0, mc_questions[0], started).test_completed
    assert persistence.submit_answer("q1", 1, mc_questions[1], started).test_completed


def test_fallback_threshold_is_twenty(active_store, question_factory):
    questions = question_factory(20)
    persistence = AnswerPersistence(active_store)
    started = now_ms()
    outcomes = [persistence.submit_answer(q.id, 0, q, started).test_completed for q in questions]
    assert outcomes.index(True) == 19


def test_autosave_disabled_keeps_record_unchanged(active_store, mc_questions):
    active_store.save_preferences({"auto_save": False})
    persistence = AnswerPersistence(active_store)
    persistence.submit_answer("q0", 0, mc_questions[0], now_ms(), total_questions=3)
    assert persistence.get_all_answers() == {}


def test_storage_failure_is_wrapped(active_store, mc_questions, monkeypatch):
    def _full(progress):
        raise QuotaExceededError()

    monkeypatch.setattr(active_store, "autosave_progress", _full)
    persistence = AnswerPersistence(active_store)
    with pytest.raises(AnswerPersistenceError) as excinfo:
        persistence.submit_answer("q0", 0, mc_questions[0], now_ms())
    assert excinfo.value.code == "STORAGE_ERROR"


def test_unexpected_failure_is_wrapped_as_storage_error(active_store, mc_questions):
    persistence = AnswerPersistence(active_store)
    with pytest.raises(AnswerPersistenceError) as excinfo:
        persistence.submit_answer("q0", 0, mc_questions[0], None)
    assert excinfo.value.code == "STORAGE_ERROR"
    assert isinstance(excinfo.value.__cause__, TypeError)
    assert "original_error" in excinfo.value.details
    assert active_store.get_progress().answers == {}


def test_batch_and_stats(active_store, mc_questions):
    persistence = AnswerPersistence(active_store)
    started = now_ms()
    persistence.submit_answer_batch(
        [
            {"question_id": "q0", "user_input": 0, "question": mc_questions[0], "answer_start_time": started},
            {"question_id": "q1", "user_input": 2, "question": mc_questions[1], "answer_start_time": started},
        ]
    )

    stats = persistence.get_current_test_stats()
    assert stats["total_answered"] == 2
    assert stats["correct_answers"] == 1
    assert stats["accuracy"] == 50.0
    assert persistence.get_stats_by_question_type()["all"]["total"] == 2


def test_delete_and_clear(active_store, mc_questions):
    persistence = AnswerPersistence(active_store)
    started = now_ms()
    for question in mc_questions[:2]:
        persistence.update_answer(question.id, 0, question, started, total_questions=3)

    assert persistence.delete_answer("q0")
    assert not persistence.delete_answer("q0")
    assert persistence.get_answered_question_ids() == ["q1"]

    assert persistence.clear_all_answers()
    progress = active_store.get_progress()
    assert progress.answers == {}
    assert progress.current_question_index == 0
    assert not progress.is_completed


def test_reads_degrade_without_active_test(store):
    persistence = AnswerPersistence(store)
    assert persistence.get_answer("q0") is None
    assert persistence.get_all_answers() == {}
    assert persistence.get_answered_question_ids() == []
    assert persistence.get_current_test_stats() is None
    assert not persistence.delete_answer("q0")
    assert not persistence.clear_all_answers()
    assert persistence.validate_answer_data() == {"valid": True, "errors": [], "warnings": ["No active test found"]}


def test_validate_answer_data_flags_bad_records(store):
    answer = UserAnswer(question_id="q1", user_answer=0, is_correct=True, time_spent=-2, timestamp=1)
    store.save_progress(
        UserProgress(
            test_id="t",
            test_type="mmlu",
            mode="practice",
            start_time=0,
            answers={"a": answer, "b": answer.model_copy(update={"time_spent": 1})},
        )
    )
    report = AnswerPersistence(store).validate_answer_data()
    assert not report["valid"]
    assert report["errors"] == ["Answer 0: invalid time_spent value"]
    assert report["warnings"] == ["Duplicate question IDs found"]


def test_export_answer_data(active_store, mc_questions):
    persistence = AnswerPersistence(active_store)
    persistence.submit_answer("q0", 0, mc_questions[0], now_ms())
    export = persistence.export_answer_data()
    assert export["progress"].test_id == "mmlu_test_1"
    assert export["stats"]["total_answered"] == 1
    assert export["validation"]["valid"]
