import random

import pytest
from pydantic import ValidationError

from exam_client.models.question_model import ExamDefinition, ExamSettings, Question, QuestionType
from exam_client.services.presentation import (
    blank_count,
    decode_answer,
    derive_presentation,
    encode_answer,
    is_answered,
    match_items,
    option_pairs,
    present_options,
)


def _q(**kwargs) -> Question:
    data = {"id": 1, "text": "Q", "type": "MCQ"}
    data.update(kwargs)
    return Question.model_validate(data)


# ── 문제 유형 ───────────────────────────────────────────────────────────────

@pytest.mark.parametrize("raw, expected", [
    ("mcq", QuestionType.MCQ),
    ("CHOICE_BASED", QuestionType.MCQ),
    ("fill-in-the-blanks", QuestionType.FILL_IN_THE_BLANK),
    ("True_False", QuestionType.TRUE_FALSE),
    ("descriptive", QuestionType.ESSAY),
])
def test_question_type_aliases(raw, expected):
    assert _q(type=raw).type == expected


def test_unknown_question_type_is_rejected():
    with pytest.raises(ValidationError):
        _q(type="HOTSPOT")


def test_question_accepts_text_or_question_text():
    assert _q(text="from text").question_text == "from text"
    assert Question.model_validate(
        {"id": 2, "question_text": "direct", "type": "ESSAY"}
    ).question_text == "direct"


def test_settings_defaults_and_nulls():
    settings = ExamSettings.model_validate({
        "shuffleQuestions": True,
        "allowPreviousNavigation": None,
        "passPercentage": None,
    })
    assert settings.shuffle_questions is True
    assert settings.allow_previous_navigation is True
    assert settings.allow_revisit is True
    assert settings.pass_percentage == 40.0


def test_exam_definition_attempt_lookup():
    exam = ExamDefinition.model_validate({
        "quiz_id": 3,
        "time_limit_minutes": 20,
        "settings": None,
        "attempts": [
            {"attempt_id": 1, "is_completed": False},
            {"attempt_id": 2, "is_completed": True},
        ],
    })
    assert exam.id == 3
    assert exam.time_limit_seconds == 1200
    assert exam.open_attempt.attempt_id == 1
    assert exam.completed_attempt.attempt_id == 2


# ── 보기 ────────────────────────────────────────────────────────────────────

def test_list_options_keep_positional_values_when_unshuffled():
    q = _q(options=["Paris", "Rome", "Oslo"])
    shown = present_options(q, shuffle=False, rng=random.Random(0))
    assert [(o.label, o.value, o.text) for o in shown] == [
        ("A", "a", "Paris"),
        ("B", "b", "Rome"),
        ("C", "c", "Oslo"),
    ]


def test_shuffled_options_keep_value_to_text_mapping():
    q = _q(options={"a": "Paris", "b": "Rome", "c": "Oslo", "d": "Bern"})
    original = dict(option_pairs(q))
    shown = present_options(q, shuffle=True, rng=random.Random(11))

    assert [o.label for o in shown] == ["A", "B", "C", "D"]
    assert sorted(o.value for o in shown) == ["a", "b", "c", "d"]
    for option in shown:
        assert original[option.value] == option.text


def test_true_false_options_are_fixed():
    q = _q(type="TRUE_FALSE")
    shown = present_options(q, shuffle=True, rng=random.Random(5))
    assert [(o.label, o.value) for o in shown] == [("A", "true"), ("B", "false")]


def test_derive_presentation_without_shuffle_keeps_source_order():
    questions = [_q(id=i, options=["x", "y"]) for i in range(1, 6)]
    order, options = derive_presentation(questions, ExamSettings(), random.Random(0))
    assert [q.id for q in order] == [1, 2, 3, 4, 5]
    assert [o.value for o in options[3]] == ["a", "b"]


def test_derive_presentation_with_shuffle_is_a_permutation():
    questions = [_q(id=i) for i in range(1, 21)]
    settings = ExamSettings(shuffle_questions=True)
    order, _ = derive_presentation(questions, settings, random.Random(42))
    assert sorted(q.id for q in order) == list(range(1, 21))
    assert [q.id for q in questions] == list(range(1, 21))


# ── 짝짓기 / 빈칸 ───────────────────────────────────────────────────────────

def test_match_items_from_sides():
    q = _q(type="MATCH", left_side="Item1,Item2", right_side="A,B")
    items = match_items(q)
    assert items.left == ["Item1", "Item2"]
    assert items.right == ["A", "B"]


def test_match_items_from_left_right_mapping():
    q = _q(type="MATCH", options={"left": "cat, dog", "right": "meow, woof"})
    items = match_items(q)
    assert items.left == ["cat", "dog"]
    assert items.right == ["meow", "woof"]


def test_match_items_from_plain_mapping_and_list():
    assert match_items(_q(type="MATCH", options={"H2O": "water"})).right == ["water"]
    items = match_items(_q(type="MATCH", options=["a", "b", "c"]))
    assert (items.left, items.right) == (["a", "b"], ["c"])


def test_blank_count():
    assert blank_count(_q(type="FILL_IN_THE_BLANK", text="The ___ sat on the __.")) == 2
    assert blank_count(_q(type="FILL_IN_THE_BLANK", text="Capital of France?")) == 1


# ── 답안 직렬화 ─────────────────────────────────────────────────────────────

def test_mapping_answer_is_json_encoded_and_decoded_for_match():
    q = _q(type="MATCH", left_side="Item1,Item2", right_side="A,B")
    text = encode_answer({"Item1": "B", "Item2": "A"})
    assert text == '{"Item1": "B", "Item2": "A"}'
    assert decode_answer(q, text) == {"Item1": "B", "Item2": "A"}


def test_plain_answers_are_not_decoded():
    assert encode_answer("b") == "b"
    assert decode_answer(_q(), '{"x": "y"}') == '{"x": "y"}'
    assert decode_answer(_q(type="FILL_IN_THE_BLANK"), "42") == "42"


def test_is_answered():
    assert not is_answered(None)
    assert not is_answered("  ")
    assert not is_answered({"Item1": ""})
    assert is_answered({"Item1": "", "Item2": "A"})
    assert is_answered("false")
