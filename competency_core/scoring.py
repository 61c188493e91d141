"""Response normalisation: raw answer -> score in [0, 1].

Polarity correction for reversed items happens here, before aggregation, so
that reliability statistics always see trait-aligned scores.
"""
from __future__ import annotations
from typing import List, Optional
import math
import random

from .errors import InvalidAnswerFormat, OutOfRangeAnswer, TemplateStructureError
from .types import Answer, Question


def _clamp01(x: float) -> float:
    if x < 0.0: return 0.0
    if x > 1.0: return 1.0
    return x


def _as_index(question: Question, value: object) -> int:
    # bool is an int subclass; a True/False answer is never a valid option index
    if isinstance(value, bool):
        raise InvalidAnswerFormat(question.id, f"expected option index, got bool {value!r}")
    if isinstance(value, int):
        return value
    if isinstance(value, float) and value.is_integer():
        return int(value)
    raise InvalidAnswerFormat(
        question.id, f"expected option index for {question.rubric.answer_type}, got {type(value).__name__}"
    )


def _check_index(question: Question, idx: int, count: int) -> None:
    if idx < 0 or idx >= count:
        raise OutOfRangeAnswer(question.id, f"index {idx} outside 0..{count - 1}")


def _score_likert(question: Question, value: object) -> float:
    n = int(question.rubric.scale_length)
    if n < 2:
        raise TemplateStructureError("Likert scale needs at least 2 points", question.id)
    idx = _as_index(question, value)
    _check_index(question, idx, n)
    return idx / (n - 1)


def _score_mcq(question: Question, value: object) -> float:
    rubric = question.rubric
    idx = _as_index(question, value)
    _check_index(question, idx, rubric.option_count())
    if rubric.correct is not None and idx == int(rubric.correct):
        return 1.0
    return _clamp01(float(rubric.partial_credit.get(idx, 0.0)))


def _score_sjt(question: Question, value: object) -> float:
    """Weighted keys normalised across min..max; unkeyed options take the min weight."""
    rubric = question.rubric
    idx = _as_index(question, value)
    _check_index(question, idx, rubric.option_count())
    weights = {int(k): float(v) for k, v in rubric.keys.items()}
    if not weights:
        raise TemplateStructureError("SJT rubric has no keyed options", question.id)
    mn, mx = min(weights.values()), max(weights.values())
    span = (mx - mn) if mx > mn else 1.0
    raw = weights.get(idx, mn)
    return _clamp01((raw - mn) / span)


def _score_numeric(question: Question, value: object) -> float:
    rubric = question.rubric
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise InvalidAnswerFormat(question.id, f"expected number, got {type(value).__name__}")
    lo, hi = float(rubric.min_value), float(rubric.max_value)
    if hi <= lo:
        raise TemplateStructureError("numeric domain is empty", question.id)
    v = float(value)
    if not math.isfinite(v):
        raise OutOfRangeAnswer(question.id, f"value {v} is not a finite number")
    if v < lo or v > hi:
        raise OutOfRangeAnswer(question.id, f"value {v} outside [{lo}, {hi}]")
    return (v - lo) / (hi - lo)


_SCORERS = {
    "LIKERT": _score_likert,
    "MCQ": _score_mcq,
    "SJT": _score_sjt,
    "NUMERIC": _score_numeric,
}


def normalize(question: Question, raw_answer: object) -> float:
    """Map ``raw_answer`` to [0, 1] under the question's rubric.

    Raises ``InvalidAnswerFormat`` when the answer shape does not fit the
    rubric and ``OutOfRangeAnswer`` when it lies outside the declared domain.
    """
    kind = str(question.rubric.answer_type).upper()
    scorer = _SCORERS.get(kind)
    if scorer is None:
        raise InvalidAnswerFormat(question.id, f"unsupported answer type {kind!r}")
    raw = scorer(question, raw_answer)
    score = 1.0 - raw if question.rubric.reversed else raw
    return _clamp01(score)


def score_answer(question: Question, answer: Optional[Answer]) -> Optional[float]:
    """Normalised score, or ``None`` when the question was skipped or left blank."""
    if answer is None or not answer.answered:
        return None
    return normalize(question, answer.value)


# ---- answer domain, used by simulation personas ----
def valid_answers(question: Question) -> Optional[List[int]]:
    """Discrete answer domain, or ``None`` for continuous (NUMERIC) items."""
    rubric = question.rubric
    kind = str(rubric.answer_type).upper()
    if kind == "LIKERT":
        return list(range(int(rubric.scale_length)))
    if kind in ("MCQ", "SJT"):
        return list(range(rubric.option_count()))
    return None


def _candidates(question: Question) -> List[object]:
    discrete = valid_answers(question)
    if discrete is not None:
        return list(discrete)
    return [float(question.rubric.min_value), float(question.rubric.max_value)]


def ideal_answer(question: Question) -> object:
    """The answer with the highest normalised score (first on ties)."""
    cands = _candidates(question)
    return max(cands, key=lambda v: normalize(question, v))


def worst_answer(question: Question) -> object:
    cands = _candidates(question)
    return min(cands, key=lambda v: normalize(question, v))


def sample_answer(question: Question, rng: random.Random) -> object:
    discrete = valid_answers(question)
    if discrete is not None:
        return rng.choice(discrete)
    return rng.uniform(float(question.rubric.min_value), float(question.rubric.max_value))
