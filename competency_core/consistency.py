"""Per-attempt response quality: speed anomalies, straight-lining, spread.

The consistency score blends three factors (0.3 speed, 0.3 straight-lining,
0.4 within-competency variance) into [0, 1].  It describes how an attempt was
answered, not how well, and never changes the attempt's scores.
"""
from __future__ import annotations
from collections import Counter
from statistics import mean, variance
from typing import Dict, List
import logging

from . import config
from .scoring import score_answer
from .types import Answer, ConsistencyReport, ResponseSet, TestTemplate

log = logging.getLogger(__name__)

_DISENGAGED_VARIANCE = 0.02
_ERRATIC_VARIANCE = 0.6


def _speed_anomaly_rate(answered: List[Answer]) -> float:
    if not answered:
        return 0.0
    floor = float(config.CONSISTENCY_MIN_RESPONSE_SEC)
    fast = sum(1 for a in answered if a.time_spent_sec is not None and float(a.time_spent_sec) < floor)
    return fast / len(answered)


def _straight_lining_rate(values: List[object]) -> float:
    """Share of Likert answers that used the most common value."""
    if not values:
        return 0.0
    return max(Counter(values).values()) / len(values)


def _variance_factor(avg_variance: float) -> float:
    low, high = float(config.CONSISTENCY_VARIANCE_LOW), float(config.CONSISTENCY_VARIANCE_HIGH)
    if avg_variance == 0.0:
        return 0.7
    if low <= avg_variance <= high:
        return 1.0
    if avg_variance < low:
        return avg_variance / low
    return max(0.0, 1.0 - (avg_variance - high) / (1.0 - high))


def analyze_consistency(response_set: ResponseSet, template: TestTemplate) -> ConsistencyReport:
    """Inspect one attempt for careless answering patterns.

    Answers to questions outside the template are ignored; normaliser errors
    propagate as they do when scoring.
    """
    answers = response_set.by_question()
    answered: List[Answer] = []
    likert_values: List[object] = []
    by_competency: Dict[str, List[float]] = {}
    for comp, _, q in template.iter_questions():
        answer = answers.get(q.id)
        score = score_answer(q, answer)
        if score is None:
            continue
        answered.append(answer)
        by_competency.setdefault(comp.id, []).append(score)
        if str(q.rubric.answer_type).upper() == "LIKERT":
            likert_values.append(answer.value)

    if not answered:
        return ConsistencyReport(
            attempt_id=response_set.attempt_id, consistency_score=1.0, speed_anomaly_rate=0.0,
            straight_lining_rate=0.0, intra_competency_variance=0.0,
        )

    speed = _speed_anomaly_rate(answered)
    straight = _straight_lining_rate(likert_values)
    min_answers = int(config.CONSISTENCY_MIN_ANSWERS_FOR_VARIANCE)
    variances = [variance(scores) for scores in by_competency.values() if len(scores) >= max(2, min_answers)]
    avg_variance = mean(variances) if variances else 0.0

    score = 0.3 * (1.0 - speed) + 0.3 * (1.0 - straight) + 0.4 * _variance_factor(avg_variance)

    flags: List[str] = []
    if speed > config.CONSISTENCY_SPEED_FLAG_RATE:
        flags.append(
            f"Speed anomaly: {round(speed * len(answered))} of {len(answered)} answers "
            f"took under {config.CONSISTENCY_MIN_RESPONSE_SEC:g} seconds"
        )
    if straight > config.STRAIGHT_LINING_THRESHOLD:
        flags.append(f"Straight-lining: {round(straight * 100)}% of Likert answers used the same value")
    if 0.0 < avg_variance < _DISENGAGED_VARIANCE:
        flags.append("Low response variance suggests possible disengagement")
    if avg_variance > _ERRATIC_VARIANCE:
        flags.append("High response variance suggests inconsistent engagement")

    report = ConsistencyReport(
        attempt_id=response_set.attempt_id,
        consistency_score=round(score, 2),
        speed_anomaly_rate=round(speed, 4),
        straight_lining_rate=round(straight, 4),
        intra_competency_variance=round(avg_variance, 4),
        flags=tuple(flags),
    )
    log.debug("Consistency %s: score=%.2f flags=%d", response_set.attempt_id, report.consistency_score, len(flags))
    return report
