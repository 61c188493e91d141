from __future__ import annotations
from typing import Dict, List, Optional, Set
import math

from .errors import MissingJobConfigError, MissingTeamConfigError, TemplateStructureError
from .types import ANSWER_TYPES, BIG_FIVE_TRAITS, STRATEGIES, Question, TestTemplate


def _check_weight(weight: float, node_id: str) -> None:
    try:
        w = float(weight)
    except (TypeError, ValueError):
        raise TemplateStructureError(f"weight {weight!r} is not a number", node_id)
    if w < 0.0 or w != w:
        raise TemplateStructureError(f"negative or NaN weight {weight!r}", node_id)


def _check_rubric(q: Question) -> None:
    r = q.rubric
    kind = str(r.answer_type).upper()
    if kind not in ANSWER_TYPES:
        raise TemplateStructureError(f"unsupported answer type {r.answer_type!r}", q.id)
    if kind == "LIKERT" and int(r.scale_length) < 2:
        raise TemplateStructureError("Likert scale needs at least 2 points", q.id)
    if kind == "MCQ":
        n = r.option_count()
        if n < 2:
            raise TemplateStructureError("MCQ needs at least 2 options", q.id)
        if r.correct is not None and not 0 <= int(r.correct) < n:
            raise TemplateStructureError(f"correct option {r.correct} outside 0..{n - 1}", q.id)
        if any(not 0.0 <= float(v) <= 1.0 for v in r.partial_credit.values()):
            raise TemplateStructureError("partial credit must lie in [0, 1]", q.id)
    if kind == "SJT" and not r.keys:
        raise TemplateStructureError("SJT rubric has no keyed options", q.id)
    if kind == "NUMERIC" and not (math.isfinite(float(r.min_value)) and math.isfinite(float(r.max_value))):
        raise TemplateStructureError("numeric bounds must be finite", q.id)
    if kind == "NUMERIC" and float(r.max_value) <= float(r.min_value):
        raise TemplateStructureError("numeric domain is empty", q.id)


def _check_cycles(template: TestTemplate) -> None:
    parents: Dict[str, Optional[str]] = {c.id: c.parent_id for c in template.competencies}
    for start in parents:
        seen: Set[str] = set()
        node: Optional[str] = start
        while node is not None and node in parents:
            if node in seen:
                raise TemplateStructureError("cyclic competency reference", start)
            seen.add(node)
            node = parents[node]


def validate_structure(template: TestTemplate) -> None:
    """Reject templates no safe partial result can be computed from."""
    comp_ids: Set[str] = set()
    ind_ids: Set[str] = set()
    q_ids: Set[str] = set()
    for comp in template.competencies:
        if comp.id in comp_ids:
            raise TemplateStructureError("duplicate competency id", comp.id)
        comp_ids.add(comp.id)
        _check_weight(comp.weight, comp.id)
        if comp.big_five_trait is not None and comp.big_five_trait not in BIG_FIVE_TRAITS:
            raise TemplateStructureError(f"unknown Big Five trait {comp.big_five_trait!r}", comp.id)
        for ind in comp.indicators:
            if ind.id in ind_ids:
                raise TemplateStructureError("duplicate indicator id", ind.id)
            ind_ids.add(ind.id)
            if ind.competency_id != comp.id:
                raise TemplateStructureError(
                    f"indicator belongs to {ind.competency_id!r} but is nested under {comp.id!r}", ind.id
                )
            _check_weight(ind.weight, ind.id)
            for q in ind.questions:
                if q.id in q_ids:
                    raise TemplateStructureError("duplicate question id", q.id)
                q_ids.add(q.id)
                _check_weight(q.weight, q.id)
                _check_rubric(q)
            if ind.questions and sum(float(q.weight) for q in ind.questions) <= 0.0:
                raise TemplateStructureError("question weights sum to zero", ind.id)
    _check_cycles(template)


def validate_strategy_config(template: TestTemplate) -> None:
    if template.strategy not in STRATEGIES:
        raise TemplateStructureError(f"unknown strategy {template.strategy!r}", template.id)
    cfg = template.strategy_config or {}
    if template.strategy == "TARGETED_FIT" and not cfg.get("onet_code"):
        raise MissingJobConfigError(f"template {template.id} has no occupational code (onet_code)")
    if template.strategy == "DYNAMIC_GAP_ANALYSIS" and not cfg.get("team_id"):
        raise MissingTeamConfigError(f"template {template.id} has no team_id")
    strictness = cfg.get("strictness")
    if strictness is not None and not 0 <= float(strictness) <= 100:
        raise TemplateStructureError(f"strictness {strictness} outside 0..100", template.id)


def validate_template(template: TestTemplate) -> None:
    validate_structure(template)
    validate_strategy_config(template)


def has_answerable_questions(template: TestTemplate) -> bool:
    return any(c.question_count() > 0 for c in template.competencies)


def structure_errors(template: TestTemplate) -> List[str]:
    """Non-raising variant for audits."""
    try:
        validate_template(template)
    except (TemplateStructureError, MissingJobConfigError, MissingTeamConfigError) as exc:
        return [str(exc)]
    return []
