"""
MMLU question pools, one JSON file per category.

Each file holds {"metadata": {...}, "questions": [...]}. Categories load
independently: a broken file is logged and skipped, and the bank carries on with
whatever loaded. Sessions are assembled by shuffling a copy of a category pool
and taking the first N questions.
"""
from __future__ import annotations

import json
import random
from dataclasses import dataclass
from pathlib import Path
from typing import Sequence, TypeVar

from pydantic import BaseModel, Field, ValidationError, model_validator

from benchquiz.core.errors import CategoryNotFoundError, InsufficientQuestionsError, QuestionDataError
from benchquiz.core.logging import DOMAIN_QUESTIONS, get_domain_logger
from benchquiz.core.settings import settings
from benchquiz.schemas.question import MultipleChoiceQuestion

logger = get_domain_logger(__name__, DOMAIN_QUESTIONS)

BUNDLED_QUESTIONS_DIR = Path(__file__).resolve().parent / "questions"
MMLU_CHOICE_COUNT = 4
MIN_RECOMMENDED_POOL = 10

T = TypeVar("T")


class CategoryMetadata(BaseModel):
    category: str
    name: str
    description: str
    domain: str
    difficulty: str
    source: str
    pool_size: int = Field(ge=0)
    last_updated: str | None = None


class QuestionCategory(BaseModel):
    metadata: CategoryMetadata
    questions: list[MultipleChoiceQuestion]

    @model_validator(mode="after")
    def _mmlu_shape(self) -> "QuestionCategory":
        for question in self.questions:
            if len(question.choices) != MMLU_CHOICE_COUNT:
                raise ValueError(f"question {question.id} must have exactly {MMLU_CHOICE_COUNT} choices")
            if not question.category:
                raise ValueError(f"question {question.id} is missing its category")
        return self


@dataclass
class CategoryLoadResult:
    category_id: str
    category: QuestionCategory | None = None
    error: QuestionDataError | None = None

    @property
    def ok(self) -> bool:
        return self.category is not None


@dataclass
class SessionQuestions:
    category_id: str
    category_name: str
    questions: list[MultipleChoiceQuestion]
    total_in_pool: int


def questions_root() -> Path:
    return Path(settings.question_data_dir) if settings.question_data_dir else BUNDLED_QUESTIONS_DIR


def shuffle_questions(items: Sequence[T], rng: random.Random | None = None) -> list[T]:
    """Return a uniformly shuffled copy (Fisher-Yates); the input is left untouched."""
    shuffled = list(items)
    (rng or random).shuffle(shuffled)
    return shuffled


class QuestionBank:
    def __init__(
        self,
        data_dir: Path | str | None = None,
        categories: Sequence[str] | None = None,
        rng: random.Random | None = None,
    ):
        self.data_dir = Path(data_dir) if data_dir else questions_root() / "mmlu"
        self._categories = list(categories) if categories is not None else None
        self.rng = rng
        self.pool: dict[str, QuestionCategory] | None = None
        self.last_load_results: list[CategoryLoadResult] = []

    def category_ids(self) -> list[str]:
        if self._categories is not None:
            return list(self._categories)
        if not self.data_dir.exists():
            return []
        return sorted(path.stem for path in self.data_dir.glob("*.json"))

    def load_category(self, category_id: str) -> CategoryLoadResult:
        path = self.data_dir / f"{category_id}.json"
        try:
            payload = json.loads(path.read_text(encoding="utf-8"))
            return CategoryLoadResult(category_id, category=QuestionCategory.model_validate(payload))
        except ValidationError as exc:
            error = QuestionDataError(
                f"Invalid data format for category: {category_id}", "VALIDATION_ERROR", category_id, exc.errors()
            )
        except (OSError, ValueError) as exc:
            error = QuestionDataError(
                f"Failed to load category {category_id}: {exc}", "LOAD_ERROR", category_id
            )
        return CategoryLoadResult(category_id, error=error)

    def load(self) -> dict[str, QuestionCategory]:
        if self.pool is not None:
            return self.pool

        results = [self.load_category(category_id) for category_id in self.category_ids()]
        pool: dict[str, QuestionCategory] = {}
        for result in results:
            if result.ok:
                pool[result.category_id] = result.category
                logger.info("Loaded %d questions for %s", len(result.category.questions), result.category_id)
            else:
                logger.warning("Failed to load category %s: %s", result.category_id, result.error)
        self.last_load_results = results

        if not pool:
            raise QuestionDataError("No question categories could be loaded", "LOAD_ERROR")

        self.pool = pool
        logger.info("Question pool loaded with %d categories", len(pool))
        return pool

    def clear_cache(self) -> None:
        self.pool = None
        self.last_load_results = []
        logger.info("Question cache cleared")

    def get_available_categories(self) -> list[str]:
        return list(self.pool) if self.pool else []

    def validate_question_data(self) -> dict:
        errors: list[str] = []
        warnings: list[str] = []
        if self.pool is None:
            errors.append("Question pool not loaded")
            return {"valid": False, "errors": errors, "warnings": warnings}

        for category_id, category in self.pool.items():
            ids = [question.id for question in category.questions]
            if len(ids) != len(set(ids)):
                errors.append(f"Duplicate question IDs found in category: {category_id}")
            if len(ids) < MIN_RECOMMENDED_POOL:
                warnings.append(f"Category {category_id} has only {len(ids)} questions")
            if category.metadata.pool_size != len(ids):
                warnings.append(
                    f"Category {category_id} declares pool_size {category.metadata.pool_size} but has {len(ids)} questions"
                )
        return {"valid": not errors, "errors": errors, "warnings": warnings}

    def get_question_by_id(self, question_id: str) -> MultipleChoiceQuestion | None:
        for category in (self.pool or {}).values():
            for question in category.questions:
                if question.id == question_id:
                    return question
        return None

    def get_questions_by_category(self, category_id: str) -> list[MultipleChoiceQuestion]:
        if not self.pool or category_id not in self.pool:
            return []
        return list(self.pool[category_id].questions)

    def assemble_session(self, category_id: str, count: int | None = None) -> SessionQuestions:
        count = settings.default_session_size if count is None else count
        pool = self.load()
        if category_id not in pool:
            raise CategoryNotFoundError(category_id)

        category = pool[category_id]
        available = len(category.questions)
        if available < count:
            raise InsufficientQuestionsError(category_id, count, available)

        selected = shuffle_questions(category.questions, self.rng)[:count]
        return SessionQuestions(
            category_id=category_id,
            category_name=category.metadata.name,
            questions=selected,
            total_in_pool=available,
        )

    def assemble_multi_category_session(
        self, category_ids: Sequence[str], questions_per_category: int | None = None
    ) -> list[SessionQuestions]:
        return [self.assemble_session(category_id, questions_per_category) for category_id in category_ids]

    def get_category_summary(self) -> list[dict]:
        return [
            {
                "id": category_id,
                "name": category.metadata.name,
                "domain": category.metadata.domain,
                "difficulty": category.metadata.difficulty,
                "question_count": len(category.questions),
            }
            for category_id, category in (self.pool or {}).items()
        ]
