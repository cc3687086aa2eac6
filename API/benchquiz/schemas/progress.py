from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

from benchquiz.schemas.question import TestMode, TestType


class UserAnswer(BaseModel):
    question_id: str
    user_answer: str | int | float
    is_correct: bool
    time_spent: int = Field(description="Seconds spent on the question")
    timestamp: int = Field(description="Epoch milliseconds when the answer was recorded")


class UserProgress(BaseModel):
    """Durable projection of a live session. Question bodies are never stored here."""

    test_id: str
    test_type: TestType
    mode: TestMode
    start_time: int
    current_question_index: int = 0
    answers: dict[str, UserAnswer] = Field(default_factory=dict)
    time_remaining: int | None = None
    is_completed: bool = False


class BreakdownEntry(BaseModel):
    correct: int = 0
    total: int = 0


class ResultsMetadata(BaseModel):
    category_breakdown: dict[str, BreakdownEntry] | None = None
    difficulty_breakdown: dict[str, BreakdownEntry] | None = None


class TestResults(BaseModel):
    model_config = ConfigDict(frozen=True)

    test_id: str
    test_type: TestType
    mode: TestMode
    start_time: int
    end_time: int
    total_questions: int
    correct_answers: int
    incorrect_answers: int
    accuracy: float
    total_time_spent: float
    average_time_per_question: float
    answers: list[UserAnswer] = Field(default_factory=list)
    metadata: ResultsMetadata = Field(default_factory=ResultsMetadata)


class UserPreferences(BaseModel):
    language: Literal["ja", "en"] = "ja"
    theme: Literal["light", "dark"] = "light"
    font_size: Literal["small", "medium", "large"] = "medium"
    high_contrast: bool = False
    auto_save: bool = True


class StoredData(BaseModel):
    progress: UserProgress | None = None
    history: list[TestResults] = Field(default_factory=list)
    preferences: UserPreferences = Field(default_factory=UserPreferences)
    version: str
