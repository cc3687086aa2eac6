"""
One-call-per-answer facade over the stored progress record.

For UI code that does not hold a live QuizSessionManager: every call loads the
current progress from the store, applies one change and writes it back. Do not
run this against the same test as a live session manager; neither side locks.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from benchquiz.core.errors import AnswerPersistenceError, NoActiveTestError, StorageError
from benchquiz.core.logging import DOMAIN_STORAGE, get_domain_logger
from benchquiz.core.settings import settings
from benchquiz.grading.timing import calculate_answer_stats, create_user_answer, now_ms
from benchquiz.memory.store import ProgressStore
from benchquiz.schemas.progress import ResultsMetadata, TestResults, UserAnswer, UserProgress

logger = get_domain_logger(__name__, DOMAIN_STORAGE)


@dataclass
class AnswerSubmissionResult:
    user_answer: UserAnswer
    was_already_answered: bool
    progress_updated: bool
    test_completed: bool
    test_results: TestResults | None = None


class AnswerPersistence:
    def __init__(self, store: ProgressStore, completion_threshold: int | None = None):
        self.store = store
        self.completion_threshold = completion_threshold

    def _threshold(self, total_questions: int | None) -> int:
        if total_questions:
            return total_questions
        return self.completion_threshold or settings.completion_threshold_fallback

    def _is_complete(self, progress: UserProgress, total_questions: int | None) -> bool:
        if progress.is_completed:
            return True
        return len(progress.answers) >= self._threshold(total_questions)

    def _build_results(self, progress: UserProgress, total_questions: int | None) -> TestResults:
        answers = list(progress.answers.values())
        stats = calculate_answer_stats(answers)
        total = total_questions or stats["total_answers"]
        correct = stats["correct_answers"]
        return TestResults(
            test_id=progress.test_id,
            test_type=progress.test_type,
            mode=progress.mode,
            start_time=progress.start_time,
            end_time=now_ms(),
            total_questions=total,
            correct_answers=correct,
            incorrect_answers=stats["total_answers"] - correct,
            accuracy=round(correct / total * 100, 2) if total else 0.0,
            total_time_spent=stats["total_time"],
            average_time_per_question=stats["average_time"],
            answers=answers,
            metadata=ResultsMetadata(category_breakdown={}, difficulty_breakdown={}),
        )

    # -- submission -----------------------------------------------------------

    def submit_answer(
        self,
        question_id: str,
        user_input: Any,
        question: Any,
        answer_start_time: int,
        *,
        total_questions: int | None = None,
    ) -> AnswerSubmissionResult:
        """
        Record (or overwrite) the answer for question_id in the active test.

        Completion is reached once the answered count hits total_questions when the
        caller knows it, otherwise the configured fallback threshold.
        """
        try:
            progress = self.store.get_progress()
            if progress is None:
                raise NoActiveTestError()

            was_already_answered = question_id in progress.answers
            user_answer = create_user_answer(question_id, user_input, question, answer_start_time)
            updated = progress.model_copy(update={"answers": {**progress.answers, question_id: user_answer}})
            self.store.autosave_progress(updated)

            test_completed = self._is_complete(updated, total_questions)
            test_results = None
            if test_completed:
                test_results = self._build_results(updated, total_questions)
                self.store.add_result(test_results)
                updated.is_completed = True
                self.store.save_progress(updated)
                logger.info("Test %s completed via answer persistence", updated.test_id)

            return AnswerSubmissionResult(
                user_answer=user_answer,
                was_already_answered=was_already_answered,
                progress_updated=True,
                test_completed=test_completed,
                test_results=test_results,
            )
        except AnswerPersistenceError:
            raise
        except Exception as exc:
            raise AnswerPersistenceError(
                f"Failed to save answer: {exc}", "STORAGE_ERROR", {"original_error": str(exc)}
            ) from exc

    def submit_answer_batch(self, submissions: list[dict]) -> list[AnswerSubmissionResult]:
        return [
            self.submit_answer(
                item["question_id"],
                item["user_input"],
                item["question"],
                item["answer_start_time"],
                total_questions=item.get("total_questions"),
            )
            for item in submissions
        ]

    def update_answer(
        self,
        question_id: str,
        user_input: Any,
        question: Any,
        answer_start_time: int,
        *,
        total_questions: int | None = None,
    ) -> AnswerSubmissionResult:
        # submit_answer already overwrites.
        return self.submit_answer(
            question_id, user_input, question, answer_start_time, total_questions=total_questions
        )

    # -- reads ----------------------------------------------------------------

    def get_answer(self, question_id: str) -> UserAnswer | None:
        progress = self.store.get_progress()
        if progress is None:
            return None
        return progress.answers.get(question_id)

    def get_all_answers(self) -> dict[str, UserAnswer]:
        progress = self.store.get_progress()
        return dict(progress.answers) if progress is not None else {}

    def get_answered_question_ids(self) -> list[str]:
        progress = self.store.get_progress()
        return list(progress.answers) if progress is not None else []

    def is_question_answered(self, question_id: str) -> bool:
        progress = self.store.get_progress()
        return progress is not None and question_id in progress.answers

    def get_current_test_stats(self) -> dict | None:
        progress = self.store.get_progress()
        if progress is None:
            return None
        stats = calculate_answer_stats(list(progress.answers.values()))
        return {
            "total_answered": stats["total_answers"],
            "correct_answers": stats["correct_answers"],
            "accuracy": stats["accuracy"],
            "average_time": stats["average_time"],
            "total_time": stats["total_time"],
        }

    def get_stats_by_question_type(self) -> dict[str, dict]:
        # Answers do not record their question kind, so only the overall bucket is available.
        progress = self.store.get_progress()
        if progress is None:
            return {}
        stats = calculate_answer_stats(list(progress.answers.values()))
        return {
            "all": {
                "total": stats["total_answers"],
                "correct": stats["correct_answers"],
                "accuracy": stats["accuracy"],
                "average_time": stats["average_time"],
            }
        }

    # -- deletes --------------------------------------------------------------

    def delete_answer(self, question_id: str) -> bool:
        try:
            progress = self.store.get_progress()
            if progress is None or question_id not in progress.answers:
                return False
            answers = dict(progress.answers)
            del answers[question_id]
            self.store.autosave_progress(progress.model_copy(update={"answers": answers, "is_completed": False}))
            return True
        except StorageError as exc:
            logger.error("Failed to delete answer %s: %s", question_id, exc)
            return False

    def clear_all_answers(self) -> bool:
        try:
            progress = self.store.get_progress()
            if progress is None:
                return False
            self.store.autosave_progress(
                progress.model_copy(update={"answers": {}, "current_question_index": 0, "is_completed": False})
            )
            return True
        except StorageError as exc:
            logger.error("Failed to clear all answers: %s", exc)
            return False

    # -- diagnostics ----------------------------------------------------------

    def validate_answer_data(self) -> dict:
        errors: list[str] = []
        warnings: list[str] = []

        progress = self.store.get_progress()
        if progress is None:
            warnings.append("No active test found")
            return {"valid": True, "errors": errors, "warnings": warnings}

        answers = list(progress.answers.values())
        for index, answer in enumerate(answers):
            if not answer.question_id:
                errors.append(f"Answer {index}: question_id is missing")
            if not isinstance(answer.time_spent, (int, float)) or answer.time_spent < 0:
                errors.append(f"Answer {index}: invalid time_spent value")
            if not isinstance(answer.timestamp, (int, float)):
                errors.append(f"Answer {index}: invalid timestamp value")

        # Keys are unique already; this catches ids that differ only upstream of the store.
        question_ids = [answer.question_id for answer in answers]
        if len(question_ids) != len(set(question_ids)):
            warnings.append("Duplicate question IDs found")

        return {"valid": not errors, "errors": errors, "warnings": warnings}

    def export_answer_data(self) -> dict:
        return {
            "progress": self.store.get_progress(),
            "stats": self.get_current_test_stats(),
            "validation": self.validate_answer_data(),
        }
