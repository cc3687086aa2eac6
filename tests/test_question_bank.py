from __future__ import annotations

import json
import random
from pathlib import Path

import pytest

from benchquiz.core.errors import CategoryNotFoundError, InsufficientQuestionsError, QuestionDataError
from benchquiz.data.question_bank import QuestionBank, shuffle_questions


def _category_payload(category: str, count: int) -> dict:
    return {
        "metadata": {
            "category": category,
            "name": category.replace("_", " ").title(),
            "description": "Fixture pool",
            "domain": "STEM",
            "difficulty": "medium",
            "source": "MMLU",
            "pool_size": count,
        },
        "questions": [
            {
                "id": f"{category}_{i}",
                "kind": "multiple-choice",
                "prompt": f"Question {i}?",
                "choices": ["a", "b", "c", "d"],
                "correct_answer": i % 4,
                "category": category,
            }
            for i in range(count)
        ],
    }


def _write(path: Path, payload) -> None:
    path.write_text(json.dumps(payload) if not isinstance(payload, str) else payload, encoding="utf-8")


def test_shuffle_returns_permutation_without_mutating_input():
    items = list(range(50))
    shuffled = shuffle_questions(items, random.Random(7))
    assert items == list(range(50))
    assert sorted(shuffled) == items
    assert shuffled != items


def test_shuffle_edge_sizes():
    assert shuffle_questions([]) == []
    assert shuffle_questions(["only"]) == ["only"]


def test_bundled_pool_loads():
    bank = QuestionBank()
    pool = bank.load()
    assert {"college_mathematics", "world_history", "computer_science"} <= set(pool)
    assert all(result.ok for result in bank.last_load_results)
    assert bank.validate_question_data()["valid"]


def test_assemble_session_from_bundled_pool():
    bank = QuestionBank(rng=random.Random(1))
    session = bank.assemble_session("world_history")
    assert session.category_name == "World History"
    assert session.total_in_pool == 20
    assert len(session.questions) == 20
    assert len({q.id for q in session.questions}) == 20

    smaller = bank.assemble_session("college_mathematics", 5)
    assert len(smaller.questions) == 5
    assert all(q.category == "college_mathematics" for q in smaller.questions)


def test_assemble_session_errors():
    bank = QuestionBank()
    with pytest.raises(CategoryNotFoundError) as missing:
        bank.assemble_session("astrology")
    assert missing.value.code == "CATEGORY_NOT_FOUND"

    with pytest.raises(InsufficientQuestionsError) as short:
        bank.assemble_session("computer_science")
    assert short.value.code == "INSUFFICIENT_QUESTIONS"
    assert short.value.details == {"requested_count": 20, "available_count": 10}


def test_failed_category_is_isolated(tmp_path: Path, caplog):
    _write(tmp_path / "good.json", _category_payload("good", 12))
    _write(tmp_path / "broken.json", "{ definitely not json")
    bad_shape = _category_payload("three_choices", 2)
    bad_shape["questions"][0]["choices"] = ["a", "b", "c"]
    _write(tmp_path / "three_choices.json", bad_shape)

    bank = QuestionBank(tmp_path)
    pool = bank.load()

    assert list(pool) == ["good"]
    failures = {r.category_id: r.error.code for r in bank.last_load_results if not r.ok}
    assert failures == {"broken": "LOAD_ERROR", "three_choices": "VALIDATION_ERROR"}
    assert "Failed to load category broken" in caplog.text


def test_nothing_loads_raises(tmp_path: Path):
    _write(tmp_path / "broken.json", "[]")
    with pytest.raises(QuestionDataError) as excinfo:
        QuestionBank(tmp_path).load()
    assert excinfo.value.code == "LOAD_ERROR"


def test_explicit_category_list_reports_missing_files(tmp_path: Path):
    _write(tmp_path / "good.json", _category_payload("good", 10))
    bank = QuestionBank(tmp_path, categories=["good", "absent"])
    assert bank.get_available_categories() == []
    bank.load()
    assert bank.get_available_categories() == ["good"]


def test_lookups_and_summary(tmp_path: Path):
    _write(tmp_path / "alpha.json", _category_payload("alpha", 10))
    _write(tmp_path / "beta.json", _category_payload("beta", 3))
    bank = QuestionBank(tmp_path)
    assert bank.get_question_by_id("alpha_1") is None

    bank.load()
    assert bank.get_question_by_id("beta_2").category == "beta"
    assert bank.get_question_by_id("nope") is None
    assert len(bank.get_questions_by_category("alpha")) == 10
    assert bank.get_questions_by_category("gamma") == []

    summary = {entry["id"]: entry["question_count"] for entry in bank.get_category_summary()}
    assert summary == {"alpha": 10, "beta": 3}

    report = bank.validate_question_data()
    assert report["valid"]
    assert report["warnings"] == ["Category beta has only 3 questions"]

    sessions = bank.assemble_multi_category_session(["alpha", "beta"], 3)
    assert [len(s.questions) for s in sessions] == [3, 3]

    bank.clear_cache()
    assert bank.get_available_categories() == []


def test_duplicate_ids_are_reported(tmp_path: Path):
    payload = _category_payload("dupes", 10)
    payload["questions"][1]["id"] = payload["questions"][0]["id"]
    _write(tmp_path / "dupes.json", payload)
    bank = QuestionBank(tmp_path)
    bank.load()
    report = bank.validate_question_data()
    assert not report["valid"]
    assert report["errors"] == ["Duplicate question IDs found in category: dupes"]
