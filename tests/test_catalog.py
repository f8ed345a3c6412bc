import pytest
from pydantic import ValidationError

from engines.catalog import ExerciseDraft, is_multiple_choice, normalize_level


def test_multiple_choice_needs_answer_among_options():
    with pytest.raises(ValidationError):
        ExerciseDraft(
            category="vocabulary",
            level="beginner",
            prompt_text="happy",
            exercise_kind="synonym",
            correct_answer="glad",
            options=["sad", "angry"],
        )


def test_multiple_choice_needs_two_options():
    with pytest.raises(ValidationError):
        ExerciseDraft(
            category="grammar",
            level="beginner",
            prompt_text="Pick one",
            exercise_kind="quiz",
            correct_answer="is",
            options=["is"],
        )


def test_free_text_kind_drops_options():
    draft = ExerciseDraft(
        category="grammar",
        level="intermediate",
        prompt_text="She don't like tea.",
        exercise_kind="correction",
        correct_answer="She doesn't like tea.",
        options=["a", "b"],
    )
    assert draft.options == []


def test_kind_must_belong_to_category():
    with pytest.raises(ValidationError):
        ExerciseDraft(
            category="grammar",
            level="beginner",
            prompt_text="big",
            exercise_kind="antonym",
            correct_answer="small",
            options=["small", "large"],
        )


def test_blank_prompt_rejected():
    with pytest.raises(ValidationError):
        ExerciseDraft(
            category="grammar",
            level="beginner",
            prompt_text="   ",
            exercise_kind="fill_blank",
            correct_answer="is",
        )


def test_from_payload_reads_category_specific_prompt_key():
    grammar = ExerciseDraft.from_payload("grammar", "beginner", {
        "sentence": "I ___ a student.",
        "exercise_type": "fill_blank",
        "correct_answer": "am",
        "blank_position": 1,
    })
    vocab = ExerciseDraft.from_payload("vocabulary", "advanced", {
        "word": "candid",
        "exercise_type": "antonym",
        "correct_answer": "evasive",
        "options": ["frank", "evasive"],
    })

    assert grammar.prompt_text == "I ___ a student."
    assert grammar.blank_position == 1
    assert vocab.prompt_text == "candid"
    assert vocab.level == "advanced"


def test_from_payload_rejects_non_string_answer():
    with pytest.raises(ValidationError):
        ExerciseDraft.from_payload("grammar", "beginner", {
            "sentence": "Two plus two",
            "exercise_type": "fill_blank",
            "correct_answer": 4,
        })


def test_helpers():
    assert is_multiple_choice("quiz")
    assert not is_multiple_choice("correction")
    assert normalize_level(" Advanced ") == "advanced"
    assert normalize_level("expert") is None
    assert normalize_level(None) is None
