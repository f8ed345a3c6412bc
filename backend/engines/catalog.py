"""Exercise catalog: categories, levels, kinds and the validated item schema.

Every pool item, whether seeded from YAML or produced by the language
model, passes through ExerciseDraft before it is stored.
"""
from __future__ import annotations

from typing import Literal, get_args

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

Category = Literal["grammar", "vocabulary"]
Level = Literal["beginner", "intermediate", "advanced"]
SessionMode = Literal["grammar", "vocabulary", "conversation"]

CATEGORIES: tuple[str, ...] = get_args(Category)
LEVELS: tuple[str, ...] = get_args(Level)

KINDS_BY_CATEGORY: dict[str, frozenset[str]] = {
    "grammar": frozenset({"correction", "fill_blank", "quiz"}),
    "vocabulary": frozenset({"synonym", "antonym", "context", "recognition"}),
}

# Kinds answered by picking one of the options
MULTIPLE_CHOICE_KINDS = frozenset({"quiz", "synonym", "antonym", "context", "recognition"})

# Key the model uses for the stimulus in each category
PROMPT_FIELD = {
    "grammar": "sentence",
    "vocabulary": "word",
}


def is_multiple_choice(kind: str) -> bool:
    return kind in MULTIPLE_CHOICE_KINDS


def normalize_level(value: str | None) -> str | None:
    """Lowercase/trim a level string; None when it is not a known level."""
    if not value:
        return None
    level = value.strip().lower()
    return level if level in LEVELS else None


class ExerciseDraft(BaseModel):
    """A complete, valid exercise that has not been stored yet."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    category: Category
    level: Level
    prompt_text: str = Field(min_length=1)
    exercise_kind: str
    correct_answer: str = Field(min_length=1)
    options: list[str] = Field(default_factory=list)
    grammar_rule: str | None = None
    feedback: str | None = None
    example_sentence: str | None = None
    blank_position: int | None = Field(default=None, ge=0)

    @field_validator("prompt_text", "correct_answer")
    @classmethod
    def _not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("must not be blank")
        return value

    @model_validator(mode="after")
    def _check_kind_and_options(self) -> ExerciseDraft:
        allowed = KINDS_BY_CATEGORY[self.category]
        if self.exercise_kind not in allowed:
            raise ValueError(
                f"exercise_kind '{self.exercise_kind}' is not one of {sorted(allowed)} for {self.category}"
            )
        if is_multiple_choice(self.exercise_kind):
            if len(self.options) < 2:
                raise ValueError("multiple-choice exercises need at least two options")
            if self.correct_answer not in self.options:
                raise ValueError("correct_answer must be one of the options")
        elif self.options:
            # Free-text kinds never show options
            object.__setattr__(self, "options", [])
        return self

    @classmethod
    def from_payload(cls, category: str, level: str, payload: dict) -> ExerciseDraft:
        """Build from the model's JSON shape (sentence/word + exercise_type).

        Raises pydantic.ValidationError when the payload is incomplete.
        """
        prompt_key = PROMPT_FIELD[category]
        return cls.model_validate({
            "category": category,
            "level": level,
            "prompt_text": payload.get(prompt_key, payload.get("prompt_text")),
            "exercise_kind": payload.get("exercise_type", payload.get("exercise_kind")),
            "correct_answer": payload.get("correct_answer"),
            "options": payload.get("options") or [],
            "grammar_rule": payload.get("grammar_rule"),
            "feedback": payload.get("feedback"),
            "example_sentence": payload.get("example_sentence"),
            "blank_position": payload.get("blank_position"),
        })
