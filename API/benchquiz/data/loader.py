from __future__ import annotations

import json
import random
from pathlib import Path
from typing import Any

from cachetools import TTLCache
from pydantic import ValidationError

from benchquiz.core.errors import QuestionDataError
from benchquiz.core.logging import DOMAIN_QUESTIONS, get_domain_logger
from benchquiz.core.settings import settings
from benchquiz.data.question_bank import QuestionBank, questions_root, shuffle_questions
from benchquiz.schemas.question import (
    TEST_TYPES,
    MultipleChoiceQuestion,
    NumericQuestion,
    TextQuestion,
    parse_questions,
)

logger = get_domain_logger(__name__, DOMAIN_QUESTIONS)

# Flat pools; MMLU is per category and goes through QuestionBank.
DATA_FILES: dict[str, str] = {
    "gsm8k": "gsm8k/problems.json",
    "hellaswag": "hellaswag/scenarios.json",
    "bigbench": "bigbench/hard_tasks.json",
    "drop": "drop/passages.json",
}

EXPECTED_KIND: dict[str, type] = {
    "mmlu": MultipleChoiceQuestion,
    "gsm8k": NumericQuestion,
    "hellaswag": MultipleChoiceQuestion,
    "bigbench": MultipleChoiceQuestion,
    "drop": TextQuestion,
}


def new_question_cache() -> TTLCache:
    """Pools keyed by test type, or "type:category" for MMLU slices."""
    return TTLCache(maxsize=settings.question_cache_max_entries, ttl=settings.question_cache_ttl_seconds)


def _validate_for_type(test_type: str, questions: list[Any]) -> None:
    expected = EXPECTED_KIND[test_type]
    for question in questions:
        if not isinstance(question, expected):
            raise QuestionDataError(
                f"Question {question.id} is not valid for {test_type}",
                "VALIDATION_ERROR",
                details={"question_id": question.id, "kind": question.kind},
            )
        if test_type == "mmlu" and not question.category:
            raise QuestionDataError(
                f"Question {question.id} is missing its category", "VALIDATION_ERROR", details={"question_id": question.id}
            )


class QuestionLoader:
    """
    Loads question pools by test type.

    Results are cached for question_cache_ttl_seconds; copies are handed out so
    callers can reorder or trim without touching the cache.
    """

    def __init__(
        self,
        data_dir: Path | str | None = None,
        cache: TTLCache | None = None,
        rng: random.Random | None = None,
    ):
        self.data_dir = Path(data_dir) if data_dir else questions_root()
        # An empty TTLCache is falsy, so test for None explicitly.
        self.cache = cache if cache is not None else new_question_cache()
        self.rng = rng
        self.bank = QuestionBank(self.data_dir / "mmlu", rng=rng)

    def _load_flat(self, test_type: str) -> list[Any]:
        path = self.data_dir / DATA_FILES[test_type]
        try:
            payload = json.loads(path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as exc:
            raise QuestionDataError(f"Failed to load {test_type} questions: {exc}", "LOAD_ERROR") from exc
        if not isinstance(payload, list):
            raise QuestionDataError(f"{test_type} data must be a list of questions", "VALIDATION_ERROR")
        try:
            return parse_questions(payload)
        except ValidationError as exc:
            raise QuestionDataError(
                f"Invalid data format for {test_type}", "VALIDATION_ERROR", details=exc.errors()
            ) from exc

    def _load_mmlu(self, category: str | None) -> list[Any]:
        pool = self.bank.load()
        if category is not None:
            return self.bank.get_questions_by_category(category)
        return [question for entry in pool.values() for question in entry.questions]

    def load_questions_by_type(
        self, test_type: str, category: str | None = None, limit: int | None = None
    ) -> list[Any]:
        if test_type not in TEST_TYPES:
            raise QuestionDataError(f"Unknown test type: {test_type}", "LOAD_ERROR")

        cache_key = f"{test_type}:{category}" if category else test_type
        questions = self.cache.get(cache_key)
        if questions is None:
            questions = self._load_mmlu(category) if test_type == "mmlu" else self._load_flat(test_type)
            _validate_for_type(test_type, questions)
            self.cache[cache_key] = questions
            logger.info("Loaded %d %s questions", len(questions), cache_key)

        selected = list(questions)
        if limit is not None and limit > 0:
            selected = selected[:limit]
        return selected

    def load_random_questions(self, test_type: str, count: int, category: str | None = None) -> list[Any]:
        questions = self.load_questions_by_type(test_type, category)
        return shuffle_questions(questions, self.rng)[: min(count, len(questions))]

    def preload_all(self) -> dict[str, int]:
        """Warm the cache for every test type; failures are logged and reported as 0."""
        loaded: dict[str, int] = {}
        for test_type in TEST_TYPES:
            try:
                loaded[test_type] = len(self.load_questions_by_type(test_type))
            except QuestionDataError as exc:
                logger.warning("Preload failed for %s: %s", test_type, exc)
                loaded[test_type] = 0
        return loaded

    def check_data_availability(self) -> dict[str, bool]:
        availability: dict[str, bool] = {}
        for test_type in TEST_TYPES:
            try:
                availability[test_type] = bool(self.load_questions_by_type(test_type))
            except QuestionDataError:
                availability[test_type] = False
        return availability

    def get_cache_stats(self) -> dict:
        self.cache.expire()
        keys = list(self.cache.keys())
        return {"size": len(keys), "keys": keys}

    def clear_cache(self) -> None:
        self.cache.clear()
        self.bank.clear_cache()

    def cleanup_cache(self) -> int:
        removed = len(self.cache.expire())
        if removed:
            logger.debug("Evicted %d expired question cache entries", removed)
        return removed
