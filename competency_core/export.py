"""Flatten ScoreTrees, reliability reports and runs into JSON/CSV rows."""
from __future__ import annotations

from dataclasses import asdict
from typing import Any, Dict, Iterable, List, Optional, Sequence
import csv
import io

from .types import InterpretationResult, ReliabilityReport, ScoreTree, SimulationRun

SCORE_FIELDS: tuple[str, ...] = (
    "attempt_id",
    "level",
    "competency_id",
    "indicator_id",
    "question_id",
    "score",
    "weight",
)

RELIABILITY_FIELDS: tuple[str, ...] = (
    "competency_id",
    "scope",
    "alpha",
    "status",
    "sample_size",
    "item_count",
    "provisional",
    "sem",
    "item_correlations",
    "flagged_items",
)


def _row(attempt_id: str, level: str, competency_id: str, indicator_id: str = "",
         question_id: str = "", score: Optional[float] = None, weight: float = 0.0) -> Dict[str, Any]:
    return {
        "attempt_id": attempt_id,
        "level": level,
        "competency_id": competency_id,
        "indicator_id": indicator_id,
        "question_id": question_id,
        "score": "" if score is None else round(float(score), 6),
        "weight": float(weight),
    }


def score_tree_rows(tree: ScoreTree) -> List[Dict[str, Any]]:
    """One row per competency, indicator and question, depth first."""
    rows = [_row(tree.attempt_id, "overall", "", score=tree.overall, weight=1.0)]
    for comp in tree.competencies:
        rows.append(_row(tree.attempt_id, "competency", comp.competency_id, score=comp.score, weight=comp.weight))
        for ind in comp.indicators:
            rows.append(_row(tree.attempt_id, "indicator", comp.competency_id, ind.indicator_id,
                             score=ind.score, weight=ind.weight))
            for q in ind.questions:
                rows.append(_row(tree.attempt_id, "question", comp.competency_id, ind.indicator_id,
                                 q.question_id, score=q.score, weight=q.weight))
    return rows


def reliability_rows(reports: Iterable[ReliabilityReport]) -> List[Dict[str, Any]]:
    rows: List[Dict[str, Any]] = []
    for rep in reports:
        corr = ";".join(
            f"{it.item_id}={'' if it.item_total_correlation is None else it.item_total_correlation}"
            for it in rep.items
        )
        rows.append({
            "competency_id": rep.competency_id,
            "scope": rep.scope,
            "alpha": "" if rep.alpha is None else rep.alpha,
            "status": rep.status,
            "sample_size": rep.sample_size,
            "item_count": rep.item_count,
            "provisional": rep.provisional,
            "sem": "" if rep.sem is None else rep.sem,
            "item_correlations": corr,
            "flagged_items": ";".join(it.item_id for it in rep.flagged_items()),
        })
    return rows


def interpretation_to_dict(result: Optional[InterpretationResult]) -> Optional[Dict[str, Any]]:
    if result is None:
        return None
    return {"strategy": result.strategy, "payload": asdict(result.payload)}


def simulation_to_dict(run: SimulationRun, current_hash: Optional[str] = None) -> Dict[str, Any]:
    """JSON-safe view of a run; ``stale`` is only known when the caller passes the current hash."""
    return {
        "run_id": run.run_id,
        "persona": run.persona,
        "seed": run.seed,
        "template_id": run.template_id,
        "template_hash": run.template_hash,
        "stale": None if current_hash is None else run.is_stale(current_hash),
        "overall": run.score_tree.overall,
        "score_tree": asdict(run.score_tree),
        "interpretation": interpretation_to_dict(run.interpretation),
        "interpretation_error": run.interpretation_error,
        "composition": dict(run.composition),
        "estimated_duration_min": run.estimated_duration_min,
        "warnings": list(run.warnings),
    }


def to_json(tree: ScoreTree) -> Dict[str, Any]:
    """Return a JSON-safe payload for a scored attempt."""

    return {
        "attempt_id": tree.attempt_id,
        "template_id": tree.template_id,
        "template_hash": tree.template_hash,
        "overall": tree.overall,
        "rows": score_tree_rows(tree),
    }


def to_csv(rows: Sequence[Dict[str, Any]], fields: Sequence[str] = SCORE_FIELDS) -> str:
    """Render rows as CSV with a fixed header."""

    buf = io.StringIO()
    writer = csv.DictWriter(buf, fieldnames=list(fields), extrasaction="ignore")
    writer.writeheader()
    for row in rows:
        writer.writerow(row)
    return buf.getvalue()


__all__ = [
    "RELIABILITY_FIELDS",
    "SCORE_FIELDS",
    "interpretation_to_dict",
    "reliability_rows",
    "score_tree_rows",
    "simulation_to_dict",
    "to_csv",
    "to_json",
]
