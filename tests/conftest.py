from __future__ import annotations

import os
import sys
from pathlib import Path
from typing import Callable

import pytest
from fastapi.testclient import TestClient

ROOT = Path(__file__).resolve().parents[1]
API_DIR = ROOT / "API"
if str(API_DIR) not in sys.path:
    sys.path.insert(0, str(API_DIR))

# Test-mode runtime guards:
# - bundled question pools only
# - quiet logs
os.environ.setdefault("APP_ENV", "test")
os.environ.setdefault("LOG_LEVEL", "WARNING")
os.environ.setdefault("QUESTION_DATA_DIR", "")

from benchquiz.main import app  # noqa: E402
from benchquiz.memory.store import InMemoryProgressStore  # noqa: E402
from benchquiz.runtime.timers import Scheduler, TimerHandle  # noqa: E402
from benchquiz.schemas.question import MultipleChoiceQuestion  # noqa: E402

START_MS = 1_700_000_000_000


class ManualScheduler(Scheduler):
    """Fake clock: timers only fire when advance() moves time past them."""

    def __init__(self, start_ms: int = START_MS):
        self.current_ms = start_ms
        self._seq = 0
        self._timers: list[dict] = []

    def now_ms(self) -> int:
        return self.current_ms

    def _add(self, delay_seconds: float, callback: Callable[[], None], repeat: bool) -> TimerHandle:
        self._seq += 1
        interval_ms = int(delay_seconds * 1000)
        entry = {
            "seq": self._seq,
            "due": self.current_ms + interval_ms,
            "interval": interval_ms if repeat else None,
            "callback": callback,
        }
        self._timers.append(entry)

        def _remove() -> None:
            if entry in self._timers:
                self._timers.remove(entry)

        return TimerHandle(_remove)

    def call_later(self, delay_seconds: float, callback: Callable[[], None]) -> TimerHandle:
        return self._add(delay_seconds, callback, repeat=False)

    def call_every(self, interval_seconds: float, callback: Callable[[], None]) -> TimerHandle:
        return self._add(interval_seconds, callback, repeat=True)

    @property
    def pending(self) -> int:
        return len(self._timers)

    def advance(self, seconds: float) -> None:
        target = self.current_ms + int(seconds * 1000)
        while True:
            due = [entry for entry in self._timers if entry["due"] <= target]
            if not due:
                break
            entry = min(due, key=lambda item: (item["due"], item["seq"]))
            self.current_ms = entry["due"]
            if entry["interval"] is None:
                self._timers.remove(entry)
            else:
                entry["due"] += entry["interval"]
            entry["callback"]()
        self.current_ms = target


def make_mc_questions(count: int, category: str = "college_mathematics") -> list[MultipleChoiceQuestion]:
    return [
        MultipleChoiceQuestion(
            id=f"q{i}",
            prompt=f"Question {i}?",
            choices=["A", "B", "C", "D"],
            correct_answer=0,
            category=category,
            difficulty="easy" if i % 2 == 0 else "hard",
        )
        for i in range(count)
    ]


@pytest.fixture(scope="session")
def client() -> TestClient:
    with TestClient(app, raise_server_exceptions=False) as tc:
        yield tc


@pytest.fixture
def scheduler() -> ManualScheduler:
    return ManualScheduler()


@pytest.fixture
def store() -> InMemoryProgressStore:
    return InMemoryProgressStore()


@pytest.fixture
def mc_questions() -> list[MultipleChoiceQuestion]:
    return make_mc_questions(3)


@pytest.fixture
def question_factory() -> Callable[..., list[MultipleChoiceQuestion]]:
    return make_mc_questions
