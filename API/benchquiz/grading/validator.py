"""
Answer validation: normalizes raw user input against the shape a question expects.

Validation never raises. Every outcome comes back as a ValidationResult so callers
(the scorer, the persistence facade, UI code) can decide how to present it.
"""
from __future__ import annotations

import math
import re
from dataclasses import dataclass, field
from typing import Any

from benchquiz.schemas.question import MultipleChoiceQuestion, NumericQuestion, TextQuestion

MAX_TEXT_LENGTH = 1000
MAX_NUMERIC_MAGNITUDE = 1e15

NO_ANSWER = "No answer entered"
HTML_REMOVED = "HTML tags were removed"

_LEADING_INT = re.compile(r"^\s*([+-]?\d+)")
# Mirrors parseFloat: only the exact spelling "Infinity" reads as infinite.
_LEADING_FLOAT = re.compile(r"^\s*([+-]?(?:Infinity|(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?))")
_ANY_TAG = re.compile(r"<[^>]*>")
_SCRIPT_BLOCK = re.compile(r"<script\b[^<]*(?:(?!</script>)<[^<]*)*</script>", re.IGNORECASE)
_STYLE_BLOCK = re.compile(r"<style\b[^<]*(?:(?!</style>)<[^<]*)*</style>", re.IGNORECASE)


@dataclass
class ValidationResult:
    is_valid: bool
    errors: list[str] = field(default_factory=list)
    normalized_value: Any = None


def _parse_leading_int(raw: Any) -> int | None:
    if isinstance(raw, bool):
        return None
    if isinstance(raw, int):
        return raw
    match = _LEADING_INT.match(str(raw))
    return int(match.group(1)) if match else None


def _parse_leading_float(raw: Any) -> float:
    if isinstance(raw, bool):
        return math.nan
    if isinstance(raw, (int, float)):
        return float(raw)
    match = _LEADING_FLOAT.match(str(raw))
    if not match:
        return math.nan
    return float(match.group(1))


def strip_html(text: str) -> str:
    """Remove script/style blocks (tag and contents) and every remaining bare tag."""
    text = _SCRIPT_BLOCK.sub("", text)
    text = _STYLE_BLOCK.sub("", text)
    return _ANY_TAG.sub("", text)


def _validate_multiple_choice(raw: Any, question: MultipleChoiceQuestion) -> ValidationResult:
    index = _parse_leading_int(raw)
    if index is None:
        return ValidationResult(False, ["Answer must be numeric"], raw)
    upper = len(question.choices) - 1
    if index < 0 or index > upper:
        return ValidationResult(False, [f"Answer must select within range 0 to {upper}"], index)
    return ValidationResult(True, [], index)


def _validate_numeric(raw: Any, question: NumericQuestion) -> ValidationResult:
    value = _parse_leading_float(raw)
    if math.isnan(value):
        return ValidationResult(False, ["Answer must be a valid number"], raw)
    if math.isinf(value):
        return ValidationResult(False, ["Answer must be finite"], raw)
    if abs(value) > MAX_NUMERIC_MAGNITUDE:
        return ValidationResult(False, ["Answer is too large"], value)
    return ValidationResult(True, [], value)


def _validate_text(raw: Any, question: TextQuestion) -> ValidationResult:
    text = str(raw).strip()
    if not text:
        return ValidationResult(False, ["Please enter an answer"], text)
    if len(text) > MAX_TEXT_LENGTH:
        return ValidationResult(False, [f"Answer must be at most {MAX_TEXT_LENGTH} characters"], text)
    if _ANY_TAG.search(text):
        # Non-fatal: the sanitized text is still a usable answer.
        return ValidationResult(True, [HTML_REMOVED], strip_html(text))
    return ValidationResult(True, [], text)


def validate_answer(raw: Any, question: Any) -> ValidationResult:
    if raw is None or raw == "":
        return ValidationResult(False, [NO_ANSWER], raw)

    if isinstance(question, MultipleChoiceQuestion):
        return _validate_multiple_choice(raw, question)
    if isinstance(question, NumericQuestion):
        return _validate_numeric(raw, question)
    if isinstance(question, TextQuestion):
        return _validate_text(raw, question)
    return ValidationResult(False, ["Unsupported question type"], raw)


def validate_answer_batch(items: list[tuple[Any, Any]]) -> list[ValidationResult]:
    return [validate_answer(raw, question) for raw, question in items]
