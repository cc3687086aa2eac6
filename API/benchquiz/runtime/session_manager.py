from __future__ import annotations

from dataclasses import dataclass, field, replace
from typing import Any, Callable, Literal, Sequence

from benchquiz.core.errors import InvalidIndexError, NoSavedProgressError, NotInitializedError, StorageError
from benchquiz.core.logging import DOMAIN_SESSION, get_domain_logger
from benchquiz.core.settings import settings
from benchquiz.memory.store import ProgressStore
from benchquiz.runtime.timers import AsyncioScheduler, Scheduler, TimerHandle
from benchquiz.schemas.progress import BreakdownEntry, ResultsMetadata, TestResults, UserAnswer, UserProgress
from benchquiz.schemas.question import MultipleChoiceQuestion, TestMode, TestType

logger = get_domain_logger(__name__, DOMAIN_SESSION)

# Long enough for practice feedback to render. Not configurable.
PRACTICE_ADVANCE_DELAY_SECONDS = 1.0

SessionPhase = Literal["uninitialized", "active", "paused", "completed"]


@dataclass
class SessionState:
    test_id: str = ""
    test_type: TestType = "mmlu"
    mode: TestMode = "practice"
    questions: tuple[Any, ...] = ()
    current_question_index: int = 0
    answers: dict[str, UserAnswer] = field(default_factory=dict)
    start_time: int = 0
    end_time: int | None = None
    time_remaining: int | None = None
    is_completed: bool = False
    is_paused: bool = False


@dataclass
class SessionCallbacks:
    on_question_change: Callable[[int, Any], None] | None = None
    on_answer_submit: Callable[[UserAnswer], None] | None = None
    on_test_complete: Callable[[TestResults], None] | None = None
    on_time_update: Callable[[int], None] | None = None
    on_state_change: Callable[[SessionState], None] | None = None


@dataclass(frozen=True)
class InterfaceState:
    current_question: Any
    current_index: int
    total_questions: int
    time_remaining: int | None
    is_loading: bool = False
    error: str | None = None


def _breakdown(questions: Sequence[Any], answers: dict[str, UserAnswer], attr: str) -> dict[str, BreakdownEntry] | None:
    breakdown: dict[str, BreakdownEntry] = {}
    for question in questions:
        if not isinstance(question, MultipleChoiceQuestion):
            continue
        key = getattr(question, attr)
        if key is None:
            continue
        entry = breakdown.setdefault(key, BreakdownEntry())
        entry.total += 1
        answer = answers.get(question.id)
        if answer is not None and answer.is_correct:
            entry.correct += 1
    return breakdown or None


def calculate_results(state: SessionState, end_time: int) -> TestResults:
    answers = list(state.answers.values())
    correct = sum(1 for answer in answers if answer.is_correct)
    total_questions = len(state.questions)
    accuracy = round(correct / total_questions * 100, 2) if total_questions else 0.0
    total_time_spent = (end_time - state.start_time) / 1000
    average = total_time_spent / len(answers) if answers else 0.0

    return TestResults(
        test_id=state.test_id,
        test_type=state.test_type,
        mode=state.mode,
        start_time=state.start_time,
        end_time=end_time,
        total_questions=total_questions,
        correct_answers=correct,
        incorrect_answers=len(answers) - correct,
        accuracy=accuracy,
        total_time_spent=total_time_spent,
        average_time_per_question=average,
        answers=answers,
        metadata=ResultsMetadata(
            category_breakdown=_breakdown(state.questions, state.answers, "category"),
            difficulty_breakdown=_breakdown(state.questions, state.answers, "difficulty"),
        ),
    )


class QuizSessionManager:
    """
    Owns the lifecycle of one test attempt.

    uninitialized -> active <-> paused -> completed. Completed is terminal: the
    timers are torn down and further submissions are ignored. The caller owns
    the instance; to reset, call cleanup() and construct a new one.
    """

    def __init__(self, store: ProgressStore, scheduler: Scheduler | None = None):
        self.store = store
        self.scheduler = scheduler or AsyncioScheduler()
        self.state = SessionState()
        self.callbacks = SessionCallbacks()
        self._initialized = False
        self._countdown: TimerHandle | None = None
        self._autosave: TimerHandle | None = None
        self._pending_advance: TimerHandle | None = None

    @property
    def initialized(self) -> bool:
        return self._initialized

    @property
    def phase(self) -> SessionPhase:
        if self.state.is_completed:
            return "completed"
        if not self._initialized:
            return "uninitialized"
        return "paused" if self.state.is_paused else "active"

    # -- lifecycle ------------------------------------------------------------

    def initialize_test(
        self,
        test_type: TestType,
        mode: TestMode,
        questions: Sequence[Any],
        time_limit: int | None = None,
    ) -> None:
        self.cleanup()

        started = self.scheduler.now_ms()
        self.state = SessionState(
            test_id=f"{test_type}_{mode}_{started}",
            test_type=test_type,
            mode=mode,
            questions=tuple(questions),
            start_time=started,
            time_remaining=time_limit,
        )
        self._initialized = True

        if mode == "test" and time_limit:
            self._start_countdown()
        self._start_autosave()
        self._persist_progress()
        logger.info("Test initialized: %s (%d questions, limit=%s)", self.state.test_id, len(questions), time_limit)
        self._notify_state_change()

    def resume_test(self, saved_progress: UserProgress | None = None) -> None:
        progress = saved_progress if saved_progress is not None else self.store.get_progress()
        if progress is None:
            raise NoSavedProgressError()

        self.cleanup()
        self.state = SessionState(
            test_id=progress.test_id,
            test_type=progress.test_type,
            mode=progress.mode,
            questions=(),  # not part of the durable record; see attach_questions()
            current_question_index=progress.current_question_index,
            answers=dict(progress.answers),
            start_time=progress.start_time,
            time_remaining=progress.time_remaining,
            is_completed=progress.is_completed,
        )
        self._initialized = True

        if self.state.mode == "test" and self.state.time_remaining and not self.state.is_completed:
            self._start_countdown()
        self._start_autosave()
        logger.info("Test resumed: %s at question %d", self.state.test_id, self.state.current_question_index)
        self._notify_state_change()

    def attach_questions(self, questions: Sequence[Any]) -> None:
        if not self._initialized:
            raise NotInitializedError()
        # The restored index must point into the list being attached.
        index = self.state.current_question_index
        if questions and not 0 <= index < len(questions):
            raise InvalidIndexError(index, len(questions))
        self.state.questions = tuple(questions)
        self._notify_state_change()

    def complete_test(self) -> TestResults:
        if not self._initialized:
            raise NotInitializedError()

        self.state.is_completed = True
        self.state.end_time = self.scheduler.now_ms()
        self._cancel_countdown()

        results = calculate_results(self.state, self.state.end_time)
        try:
            self.store.add_result(results)
        except StorageError as exc:
            logger.warning("Could not append results for %s to history: %s", results.test_id, exc)
        try:
            self.store.clear_progress()
        except StorageError as exc:
            logger.warning("Could not clear progress for %s: %s", results.test_id, exc)

        self.cleanup()
        logger.info(
            "Test completed: %s accuracy=%.2f (%d/%d)",
            results.test_id,
            results.accuracy,
            results.correct_answers,
            results.total_questions,
        )
        if self.callbacks.on_test_complete:
            self.callbacks.on_test_complete(results)
        return results

    def cleanup(self) -> None:
        self._cancel_countdown()
        if self._autosave is not None:
            self._autosave.cancel()
            self._autosave = None
        self._cancel_pending_advance()
        self._initialized = False

    # -- navigation -----------------------------------------------------------

    def go_to_question(self, index: int) -> None:
        if not self._initialized:
            raise NotInitializedError()
        total = len(self.state.questions)
        if index < 0 or index >= total:
            raise InvalidIndexError(index, total)

        self.state.current_question_index = index
        self._persist_progress()
        if self.callbacks.on_question_change:
            self.callbacks.on_question_change(index, self.state.questions[index])
        self._notify_state_change()

    def next_question(self) -> None:
        if self.state.current_question_index < len(self.state.questions) - 1:
            self.go_to_question(self.state.current_question_index + 1)

    def previous_question(self) -> None:
        if self.state.current_question_index > 0:
            self.go_to_question(self.state.current_question_index - 1)

    # -- answers --------------------------------------------------------------

    def submit_answer(self, answer: UserAnswer) -> None:
        if not self._initialized or self.state.is_completed:
            return
        if not self.state.questions:
            logger.warning("Answer ignored for %s: no questions attached", self.state.test_id)
            return

        # Keyed by the question on screen, whatever id the answer carries.
        question_id = self.state.questions[self.state.current_question_index].id
        stored = answer.model_copy(update={"question_id": question_id, "timestamp": self.scheduler.now_ms()})
        self.state.answers[question_id] = stored

        self._persist_progress()
        if self.callbacks.on_answer_submit:
            self.callbacks.on_answer_submit(stored)
        self._notify_state_change()

        if self.state.mode == "practice":
            # Only the latest submission schedules an advance.
            self._cancel_pending_advance()
            scheduled_from = self.state.current_question_index
            self._pending_advance = self.scheduler.call_later(
                PRACTICE_ADVANCE_DELAY_SECONDS,
                lambda: self._auto_advance(scheduled_from),
            )

    def _cancel_pending_advance(self) -> None:
        if self._pending_advance is not None:
            self._pending_advance.cancel()
            self._pending_advance = None

    def _auto_advance(self, scheduled_from: int) -> None:
        self._pending_advance = None
        if not self._initialized or self.state.is_completed:
            return
        # The user navigated during the delay; advancing now would skip a question.
        if self.state.current_question_index != scheduled_from:
            return
        self.next_question()

    # -- timer ----------------------------------------------------------------

    def pause_test(self) -> None:
        if not self._initialized:
            return
        self.state.is_paused = True
        self._persist_progress()
        self._notify_state_change()

    def resume_timer(self) -> None:
        if not self._initialized:
            return
        self.state.is_paused = False
        self._notify_state_change()

    def _start_countdown(self) -> None:
        if not self.state.time_remaining:
            return
        self._countdown = self.scheduler.call_every(settings.timer_tick_seconds, self._tick)

    def _cancel_countdown(self) -> None:
        if self._countdown is not None:
            self._countdown.cancel()
            self._countdown = None

    def _tick(self) -> None:
        if self.state.is_paused or not self.state.time_remaining:
            return
        self.state.time_remaining -= 1
        if self.callbacks.on_time_update:
            self.callbacks.on_time_update(self.state.time_remaining)
        if self.state.time_remaining <= 0:
            logger.info("Time limit reached for %s; submitting automatically", self.state.test_id)
            self.complete_test()

    def _start_autosave(self) -> None:
        self._autosave = self.scheduler.call_every(settings.autosave_interval_seconds, self._autosave_tick)

    def _autosave_tick(self) -> None:
        if not self.state.is_paused and not self.state.is_completed:
            self._persist_progress()

    # -- persistence ----------------------------------------------------------

    def to_progress(self) -> UserProgress:
        return UserProgress(
            test_id=self.state.test_id,
            test_type=self.state.test_type,
            mode=self.state.mode,
            start_time=self.state.start_time,
            current_question_index=self.state.current_question_index,
            answers=dict(self.state.answers),
            time_remaining=self.state.time_remaining,
            is_completed=self.state.is_completed,
        )

    def _persist_progress(self) -> None:
        try:
            self.store.save_progress(self.to_progress())
        except StorageError as exc:
            logger.warning("Progress not saved for %s: %s", self.state.test_id, exc)

    # -- accessors ------------------------------------------------------------

    def get_state(self) -> SessionState:
        return replace(self.state, answers=dict(self.state.answers))

    def get_current_question(self) -> Any:
        if not self._initialized or not self.state.questions:
            return None
        return self.state.questions[self.state.current_question_index]

    def get_progress(self) -> dict:
        answered = len(self.state.answers)
        total = len(self.state.questions)
        return {"answered": answered, "total": total, "percentage": answered / total * 100 if total else 0.0}

    def get_interface_state(self) -> InterfaceState:
        return InterfaceState(
            current_question=self.get_current_question(),
            current_index=self.state.current_question_index,
            total_questions=len(self.state.questions),
            time_remaining=self.state.time_remaining,
        )

    def set_callbacks(self, **callbacks: Callable[..., None]) -> None:
        self.callbacks = replace(self.callbacks, **callbacks)

    def _notify_state_change(self) -> None:
        if self.callbacks.on_state_change:
            self.callbacks.on_state_change(self.get_state())
