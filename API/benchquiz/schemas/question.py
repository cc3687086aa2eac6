from __future__ import annotations

from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, Field, TypeAdapter, field_validator, model_validator


TestType = Literal["mmlu", "gsm8k", "hellaswag", "bigbench", "drop"]
TestMode = Literal["practice", "test"]
QuestionKind = Literal["multiple-choice", "numeric", "text"]
Difficulty = Literal["easy", "medium", "hard"]

TEST_TYPES: tuple[str, ...] = ("mmlu", "gsm8k", "hellaswag", "bigbench", "drop")


class BaseQuestion(BaseModel):
    id: str = Field(min_length=1)
    prompt: str
    explanation: str = ""
    metadata: dict[str, Any] | None = None


class MultipleChoiceQuestion(BaseQuestion):
    kind: Literal["multiple-choice"] = "multiple-choice"
    choices: list[str] = Field(min_length=1)
    correct_answer: int
    category: str | None = None
    difficulty: Difficulty | None = None
    # HellaSwag scenario text and BIG-Bench task descriptors.
    context: str | None = None
    task_type: str | None = None
    reasoning_type: Literal["logical", "mathematical", "commonsense", "linguistic"] | None = None

    @field_validator("choices")
    @classmethod
    def _choices_not_blank(cls, value: list[str]) -> list[str]:
        if any(not str(choice).strip() for choice in value):
            raise ValueError("choices must be non-empty strings")
        return value

    @model_validator(mode="after")
    def _correct_index_in_range(self) -> "MultipleChoiceQuestion":
        if not 0 <= self.correct_answer < len(self.choices):
            raise ValueError(
                f"correct_answer {self.correct_answer} out of range for {len(self.choices)} choices"
            )
        return self


class NumericQuestion(BaseQuestion):
    kind: Literal["numeric"] = "numeric"
    correct_answer: float
    unit: str | None = None
    chain_of_thought: list[str] = Field(default_factory=list)


class TextQuestion(BaseQuestion):
    kind: Literal["text"] = "text"
    correct_answer: str
    passage: str = ""
    question_type: Literal["numeric", "span", "date"] = "span"
    possible_answers: list[str] | None = None


Question = Annotated[
    Union[MultipleChoiceQuestion, NumericQuestion, TextQuestion],
    Field(discriminator="kind"),
]

_question_adapter: TypeAdapter[Question] = TypeAdapter(Question)
_question_list_adapter: TypeAdapter[list[Question]] = TypeAdapter(list[Question])


def parse_question(data: dict) -> MultipleChoiceQuestion | NumericQuestion | TextQuestion:
    return _question_adapter.validate_python(data)


def parse_questions(data: list[dict]) -> list[MultipleChoiceQuestion | NumericQuestion | TextQuestion]:
    return _question_list_adapter.validate_python(data)
