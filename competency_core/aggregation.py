# competency_core/aggregation.py
"""Roll normalised question scores up the weight hierarchy.

question -> indicator -> competency -> overall.  Every level is a weighted
mean over *answered* children only: unanswered questions leave both the
numerator and the denominator, and a competency without answers gets a
``None`` score whose template weight is redistributed over the others.
"""
from __future__ import annotations
from typing import Dict, List, Optional, Sequence, Tuple
import logging

from . import config
from .errors import EmptyTemplateError, IncompleteResponseSet, NoResponsesError
from .scoring import score_answer
from .types import (
    Competency,
    CompetencyScore,
    Indicator,
    IndicatorScore,
    QuestionScore,
    ResponseSet,
    ScoreTree,
    TestTemplate,
)
from .validators import validate_structure

log = logging.getLogger(__name__)


def _emit_trace(**values: object) -> None:
    if not config.DEBUG_TRACE:
        return
    ordered = [f"{key}={values[key]}" for key in config.TRACE_FIELDS if key in values]
    if ordered:
        log.info("trace %s", " ".join(ordered))


def _clamp01(x: float) -> float:
    return max(0.0, min(1.0, x))


def weighted_mean(pairs: Sequence[Tuple[float, float]]) -> Optional[float]:
    """Weighted mean of ``(score, weight)`` pairs, clamped to [0, 1].

    ``None`` for an empty sequence.  When every weight is zero the children
    still count as answered, so the plain mean is used.
    """
    if not pairs:
        return None
    total_w = sum(w for _, w in pairs)
    if total_w <= 0.0:
        return _clamp01(sum(s for s, _ in pairs) / len(pairs))
    return _clamp01(sum(s * w for s, w in pairs) / total_w)


def normalized_weights(weights: Sequence[float]) -> List[float]:
    """Rescale weights to sum to 1; equal shares when they sum to zero."""
    if not weights:
        return []
    total = sum(weights)
    if total <= 0.0:
        return [1.0 / len(weights)] * len(weights)
    return [w / total for w in weights]


def _score_indicator(ind: Indicator, answers: Dict) -> IndicatorScore:
    q_scores: List[QuestionScore] = []
    pairs: List[Tuple[float, float]] = []
    for q in ind.questions:
        s = score_answer(q, answers.get(q.id))
        q_scores.append(QuestionScore(question_id=q.id, score=s, weight=float(q.weight)))
        if s is not None:
            pairs.append((s, float(q.weight)))
    return IndicatorScore(
        indicator_id=ind.id,
        competency_id=ind.competency_id,
        score=weighted_mean(pairs),
        weight=float(ind.weight),
        answered_count=len(pairs),
        questions=tuple(q_scores),
    )


def _score_competency(comp: Competency, answers: Dict) -> Tuple[List[IndicatorScore], Optional[float], int]:
    ind_scores = [_score_indicator(ind, answers) for ind in comp.indicators]
    pairs = [(i.score, i.weight) for i in ind_scores if i.score is not None]
    answered = sum(i.answered_count for i in ind_scores)
    score = weighted_mean(pairs)
    for i in ind_scores:
        _emit_trace(competency=comp.id, indicator=i.indicator_id, answered=i.answered_count, score=i.score, weight=i.weight)
    return ind_scores, score, answered


def aggregate(response_set: ResponseSet, template: TestTemplate, *, strict: bool = False) -> ScoreTree:
    """Score one response set against one template.

    Raises ``EmptyTemplateError`` for a template without competencies,
    ``NoResponsesError`` when nothing was answered and lets normaliser errors
    (carrying the failing question id) propagate.  With ``strict=True`` every
    template question must be answered or explicitly skipped.
    """
    if not template.competencies:
        raise EmptyTemplateError(f"template {template.id} has no competencies")
    validate_structure(template)

    answers = response_set.by_question()
    known = set(template.question_ids())
    unknown = [qid for qid in answers if qid not in known]
    if unknown:
        log.warning("Ignoring %d answer(s) for questions not in template %s: %s",
                    len(unknown), template.id, ", ".join(unknown[:5]))
    if strict:
        missing = response_set.missing_questions(template)
        if missing:
            raise IncompleteResponseSet(missing)

    partial: List[Tuple[Competency, List[IndicatorScore], Optional[float], int]] = []
    total_answered = 0
    for comp in template.competencies:
        ind_scores, score, answered = _score_competency(comp, answers)
        total_answered += answered
        partial.append((comp, ind_scores, score, answered))

    if total_answered == 0:
        raise NoResponsesError(f"response set {response_set.attempt_id} has no answered questions")

    scored = [(comp, score) for comp, _, score, _ in partial if score is not None]
    shares = normalized_weights([float(comp.weight) for comp, _ in scored])
    share_by_id = {comp.id: share for (comp, _), share in zip(scored, shares)}
    overall = _clamp01(sum(score * share_by_id[comp.id] for comp, score in scored))

    competencies = tuple(
        CompetencyScore(
            competency_id=comp.id,
            score=score,
            weight=float(comp.weight),
            normalized_weight=share_by_id.get(comp.id),
            answered_count=answered,
            indicators=tuple(ind_scores),
            label=dict(comp.label),
            big_five_trait=comp.big_five_trait,
        )
        for comp, ind_scores, score, answered in partial
    )
    skipped = [c.competency_id for c in competencies if c.score is None]
    if skipped:
        log.debug("Competencies without answers excluded from overall: %s", ", ".join(skipped))

    return ScoreTree(
        attempt_id=response_set.attempt_id,
        template_id=template.id,
        template_hash=template.content_hash(),
        overall=overall,
        competencies=competencies,
    )
