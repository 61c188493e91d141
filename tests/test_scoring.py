from __future__ import annotations

import random

import pytest

from competency_core.aggregation import aggregate
from competency_core.errors import InvalidAnswerFormat, OutOfRangeAnswer, TemplateStructureError
from competency_core.scoring import ideal_answer, normalize, sample_answer, score_answer, worst_answer
from competency_core.types import Answer, Question, ResponseSet, Rubric
from competency_core.validators import validate_structure
from tests.conftest import build_synthetic_template


def _q(**rubric) -> Question:
    return Question(id="q1", rubric=Rubric(**rubric))


def test_likert_linear_scale():
    q = _q(answer_type="LIKERT", scale_length=5)
    assert normalize(q, 0) == 0.0
    assert normalize(q, 2) == 0.5
    assert normalize(q, 4) == 1.0


def test_reversed_likert_inverts_raw_score():
    q = _q(answer_type="LIKERT", scale_length=5, reversed=True)
    assert normalize(q, 0) == 1.0
    assert normalize(q, 4) == 0.0
    assert normalize(q, 1) == pytest.approx(0.75)


def test_mcq_correct_partial_and_wrong():
    q = _q(answer_type="MCQ", options=4, correct=2, partial_credit={1: 0.4})
    assert normalize(q, 2) == 1.0
    assert normalize(q, 1) == pytest.approx(0.4)
    assert normalize(q, 0) == 0.0


def test_sjt_keys_are_rescaled_between_min_and_max():
    q = _q(answer_type="SJT", options=4, keys={0: 2.0, 1: 0.0, 2: 1.0, 3: -2.0})
    assert normalize(q, 0) == 1.0
    assert normalize(q, 3) == 0.0
    assert normalize(q, 1) == pytest.approx(0.5)


def test_numeric_within_domain():
    q = _q(answer_type="NUMERIC", min_value=10, max_value=20)
    assert normalize(q, 15) == pytest.approx(0.5)
    assert normalize(q, 15.0) == pytest.approx(0.5)


def test_out_of_range_answers_carry_question_id():
    q = _q(answer_type="LIKERT", scale_length=5)
    with pytest.raises(OutOfRangeAnswer) as exc:
        normalize(q, 5)
    assert exc.value.question_id == "q1"
    with pytest.raises(OutOfRangeAnswer):
        normalize(_q(answer_type="NUMERIC", min_value=0, max_value=1), 1.5)


@pytest.mark.parametrize("value", ["3", True, 1.5, [1]])
def test_wrong_shape_rejected(value):
    q = _q(answer_type="LIKERT", scale_length=5)
    with pytest.raises(InvalidAnswerFormat):
        normalize(q, value)


@pytest.mark.parametrize("value", [float("nan"), float("inf"), float("-inf")])
def test_non_finite_numeric_answer_is_out_of_range(value):
    with pytest.raises(OutOfRangeAnswer) as exc:
        normalize(_q(answer_type="NUMERIC", min_value=0, max_value=10), value)
    assert exc.value.question_id == "q1"


def test_non_finite_answer_never_reaches_the_tree():
    template = build_synthetic_template(competencies=["A"], indicators_per_competency=1, questions_per_indicator=1)
    template.competencies[0].indicators[0].questions[0].rubric = Rubric("NUMERIC", min_value=0, max_value=10)
    with pytest.raises(OutOfRangeAnswer):
        aggregate(ResponseSet("a1", (Answer("A.ind0.q0", float("nan")),)), template)


def test_non_finite_numeric_bounds_are_fatal():
    template = build_synthetic_template(competencies=["A"], indicators_per_competency=1, questions_per_indicator=1)
    template.competencies[0].indicators[0].questions[0].rubric = Rubric("NUMERIC", min_value=0, max_value=float("inf"))
    with pytest.raises(TemplateStructureError):
        validate_structure(template)


def test_numeric_rejects_text():
    with pytest.raises(InvalidAnswerFormat):
        normalize(_q(answer_type="NUMERIC", min_value=0, max_value=1), "0.5")


def test_structural_rubric_problems_are_fatal():
    with pytest.raises(TemplateStructureError):
        normalize(_q(answer_type="LIKERT", scale_length=1), 0)
    with pytest.raises(TemplateStructureError):
        normalize(_q(answer_type="SJT", options=3), 0)


def test_skipped_and_blank_answers_have_no_score():
    q = _q(answer_type="LIKERT", scale_length=5)
    assert score_answer(q, None) is None
    assert score_answer(q, Answer(question_id="q1", value=None)) is None
    assert score_answer(q, Answer(question_id="q1", value=3, skipped=True)) is None
    assert score_answer(q, Answer(question_id="q1", value=3)) == pytest.approx(0.75)


def test_ideal_and_worst_answers_respect_polarity():
    rev = _q(answer_type="LIKERT", scale_length=7, reversed=True)
    assert ideal_answer(rev) == 0
    assert worst_answer(rev) == 6
    numeric_rev = _q(answer_type="NUMERIC", min_value=0, max_value=10, reversed=True)
    assert normalize(numeric_rev, ideal_answer(numeric_rev)) == 1.0
    assert normalize(numeric_rev, worst_answer(numeric_rev)) == 0.0


def test_sample_answer_stays_in_domain():
    rng = random.Random(7)
    q = _q(answer_type="MCQ", options=3, correct=0)
    for _ in range(50):
        assert 0.0 <= normalize(q, sample_answer(q, rng)) <= 1.0
