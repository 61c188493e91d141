"""Classical-test-theory reliability for competency and trait measurements.

Items are a competency's behavioural indicators; respondents are the scored
attempts in an explicitly supplied corpus.  The engine computes Cronbach's
alpha, corrected item-total correlations, alpha-if-item-deleted and the
standard error of measurement, and classifies the result.  The corpus is only
read, never modified, so computations for different competencies can run on
a worker pool concurrently.
"""
from __future__ import annotations

from concurrent.futures import Executor, Future, ThreadPoolExecutor
from statistics import mean, variance
from typing import Dict, Iterable, List, Mapping, Optional, Sequence, Tuple, Union
import logging
import math

from . import config
from .errors import InsufficientVarianceError
from .types import ConfidenceInterval, ItemStatistic, ReliabilityReport, ScoreTree, TestTemplate

log = logging.getLogger(__name__)

CorpusEntry = Union[ScoreTree, Mapping[str, Optional[float]]]
Row = Dict[str, float]

_SCALE = 4


def _round(x: Optional[float]) -> Optional[float]:
    return None if x is None else round(x, _SCALE)


def pearson(xs: Sequence[float], ys: Sequence[float]) -> Optional[float]:
    """Pearson correlation; ``None`` when either side has no variance."""
    if len(xs) != len(ys) or len(xs) < 2:
        return None
    mx, my = mean(xs), mean(ys)
    num = sum((x - mx) * (y - my) for x, y in zip(xs, ys))
    sxx = sum((x - mx) ** 2 for x in xs)
    syy = sum((y - my) ** 2 for y in ys)
    denom = math.sqrt(sxx * syy)
    if denom == 0.0:
        return None
    return num / denom


def cronbach_alpha(matrix: Sequence[Sequence[float]]) -> float:
    """``k/(k-1) * (1 - sum(var_i) / var_total)`` with sample variances.

    ``matrix`` holds one row per respondent and one column per item.  Raises
    ``InsufficientVarianceError`` when the total score does not vary.
    """
    k = len(matrix[0])
    if k < 2 or len(matrix) < 2:
        raise ValueError("alpha needs at least 2 items and 2 respondents")
    columns = list(zip(*matrix))
    item_vars = [variance(col) for col in columns]
    total_var = variance([sum(row) for row in matrix])
    if total_var <= 0.0:
        raise InsufficientVarianceError("total score variance is zero")
    return (k / (k - 1)) * (1.0 - sum(item_vars) / total_var)


def classify(alpha: Optional[float]) -> str:
    if alpha is None:
        return "INSUFFICIENT_DATA"
    if alpha >= config.ALPHA_GOOD:
        return "GOOD"
    if alpha >= config.ALPHA_ACCEPTABLE:
        return "ACCEPTABLE"
    return "POOR"


def _difficulty_flag(item_mean: float) -> str:
    if item_mean < config.DIFFICULTY_TOO_HARD:
        return "TOO_HARD"
    if item_mean > config.DIFFICULTY_TOO_EASY:
        return "TOO_EASY"
    return "NONE"


def _discrimination_flag(r: Optional[float]) -> str:
    if r is None:
        return "NONE"
    if r < 0.0:
        return "NEGATIVE"
    if r < config.DISCRIMINATION_CRITICAL:
        return "CRITICAL"
    if r < config.DISCRIMINATION_GOOD:
        return "WARNING"
    return "NONE"


def _entry_scores(entry: CorpusEntry) -> Mapping[str, Optional[float]]:
    if isinstance(entry, ScoreTree):
        return entry.indicator_scores()
    return entry


def _build_rows(item_ids: Sequence[str], corpus: Iterable[CorpusEntry]) -> List[Row]:
    rows: List[Row] = []
    for entry in corpus:
        scores = _entry_scores(entry)
        row = {iid: float(scores[iid]) for iid in item_ids if scores.get(iid) is not None}
        if row:
            rows.append(row)
    return rows


def _complete_matrix(item_ids: Sequence[str], rows: List[Row]) -> Tuple[List[List[float]], int]:
    """Keep rows meeting the completeness threshold; impute gaps with item means."""
    k = len(item_ids)
    need = k * float(config.RESPONSE_COMPLETENESS_THRESHOLD)
    complete = [row for row in rows if len(row) >= need]
    excluded = len(rows) - len(complete)
    item_means = {}
    for iid in item_ids:
        vals = [row[iid] for row in complete if iid in row]
        item_means[iid] = mean(vals) if vals else 0.0
    matrix = [[row.get(iid, item_means[iid]) for iid in item_ids] for row in complete]
    return matrix, excluded


def _analyze(
    subject_id: str,
    item_ids: Sequence[str],
    rows: List[Row],
    min_sample: int,
    scope: str,
) -> ReliabilityReport:
    k = len(item_ids)
    matrix, excluded = _complete_matrix(item_ids, rows) if k else ([], len(rows))
    n = len(matrix)
    provisional = n < min_sample

    if k < 2 or n < 2:
        note = f"need at least 2 items and 2 complete response sets (items={k}, n={n})"
        items = tuple(
            ItemStatistic(item_id=iid, mean=round(mean(col), _SCALE), variance=0.0, item_total_correlation=None,
                          difficulty_flag=_difficulty_flag(mean(col)))
            for iid, col in zip(item_ids, zip(*matrix))
        ) if n else ()
        log.debug("Reliability for %s not computed: %s", subject_id, note)
        return ReliabilityReport(
            competency_id=subject_id, alpha=None, status="INSUFFICIENT_DATA", sample_size=n,
            item_count=k, provisional=provisional, items=items, scope=scope,
            excluded_incomplete=excluded, note=note,
        )

    columns = [list(col) for col in zip(*matrix)]
    totals = [sum(row) for row in matrix]

    alpha: Optional[float]
    note = ""
    try:
        alpha = cronbach_alpha(matrix)
    except InsufficientVarianceError as exc:
        log.info("Reliability for %s degenerate: %s", subject_id, exc)
        alpha = None
        note = "zero total variance"

    stats: List[ItemStatistic] = []
    for idx, iid in enumerate(item_ids):
        col = columns[idx]
        rest = [t - x for t, x in zip(totals, col)]
        r = pearson(col, rest)
        alpha_del: Optional[float] = None
        if k >= 3:
            reduced = [row[:idx] + row[idx + 1:] for row in matrix]
            try:
                alpha_del = cronbach_alpha(reduced)
            except InsufficientVarianceError:
                alpha_del = None
        item_mean = mean(col)
        stats.append(ItemStatistic(
            item_id=iid,
            mean=round(item_mean, _SCALE),
            variance=round(variance(col), _SCALE),
            item_total_correlation=_round(r),
            alpha_if_deleted=_round(alpha_del),
            difficulty_flag=_difficulty_flag(item_mean),
            discrimination_flag=_discrimination_flag(r),
        ))

    sem: Optional[float] = None
    if alpha is not None and 0.0 < alpha <= 1.0:
        sem = math.sqrt(variance(totals)) * math.sqrt(1.0 - alpha)

    report = ReliabilityReport(
        competency_id=subject_id,
        alpha=_round(alpha),
        status=classify(alpha),
        sample_size=n,
        item_count=k,
        provisional=provisional,
        items=tuple(stats),
        sem=_round(sem),
        scope=scope,
        excluded_incomplete=excluded,
        note=note or ("provisional: sample below minimum" if provisional else ""),
    )
    log.info("Reliability %s %s: alpha=%s status=%s n=%d k=%d provisional=%s",
             scope.lower(), subject_id, report.alpha, report.status, n, k, provisional)
    return report


def _item_ids_from_corpus(competency_id: str, corpus: Sequence[CorpusEntry]) -> List[str]:
    ids: List[str] = []
    for entry in corpus:
        if not isinstance(entry, ScoreTree):
            continue
        comp = entry.competency(competency_id)
        if comp is None:
            continue
        for ind in comp.indicators:
            if ind.indicator_id not in ids:
                ids.append(ind.indicator_id)
    return ids


def compute_reliability(
    competency_id: str,
    corpus: Iterable[CorpusEntry],
    *,
    item_ids: Optional[Sequence[str]] = None,
    min_sample: Optional[int] = None,
) -> ReliabilityReport:
    """Reliability of one competency over a corpus of scored attempts.

    ``corpus`` holds ``ScoreTree`` objects or plain ``{indicator_id: score}``
    mappings.  ``item_ids`` defaults to the competency's indicators as found
    in the corpus score trees.  Degenerate corpora never raise: the report
    comes back with ``alpha=None``.
    """
    entries = tuple(corpus)
    items = list(item_ids) if item_ids is not None else _item_ids_from_corpus(competency_id, entries)
    floor = int(min_sample if min_sample is not None else config.RELIABILITY_MIN_SAMPLE)
    return _analyze(competency_id, items, _build_rows(items, entries), floor, "COMPETENCY")


def compute_trait_reliability(
    trait: str,
    template: TestTemplate,
    corpus: Iterable[CorpusEntry],
    *,
    min_sample: Optional[int] = None,
) -> ReliabilityReport:
    """Pool the indicators of every competency mapped to a Big Five trait."""
    mapped = [c for c in template.competencies if c.big_five_trait == trait]
    floor = int(min_sample if min_sample is not None else config.RELIABILITY_MIN_SAMPLE)
    if not mapped:
        return ReliabilityReport(
            competency_id=trait, alpha=None, status="INSUFFICIENT_DATA", sample_size=0, item_count=0,
            provisional=True, scope="TRAIT", note="no competencies mapped to trait",
        )
    items = [ind.id for c in mapped for ind in c.indicators]
    return _analyze(trait, items, _build_rows(items, tuple(corpus)), floor, "TRAIT")


def compute_reliability_batch(
    competency_ids: Sequence[str],
    corpus: Iterable[CorpusEntry],
    *,
    item_ids_by_competency: Optional[Mapping[str, Sequence[str]]] = None,
    min_sample: Optional[int] = None,
    max_workers: Optional[int] = None,
) -> Dict[str, ReliabilityReport]:
    """Fan per-competency computations out over a thread pool.

    A failure for one competency is logged and degrades to an
    ``INSUFFICIENT_DATA`` report; the rest of the batch still completes.
    """
    entries = tuple(corpus)
    workers = max(1, int(max_workers or config.RELIABILITY_MAX_WORKERS))
    lookup = item_ids_by_competency or {}
    out: Dict[str, ReliabilityReport] = {}
    with ThreadPoolExecutor(max_workers=workers) as pool:
        futures = {
            cid: pool.submit(compute_reliability, cid, entries, item_ids=lookup.get(cid), min_sample=min_sample)
            for cid in competency_ids
        }
        for cid, fut in futures.items():
            try:
                out[cid] = fut.result()
            except Exception as exc:
                log.exception("Reliability computation failed for %s", cid)
                out[cid] = ReliabilityReport(
                    competency_id=cid, alpha=None, status="INSUFFICIENT_DATA", sample_size=0,
                    item_count=0, provisional=True, note=f"failed: {exc}",
                )
    return out


def compute_template_reliability(
    template: TestTemplate,
    corpus: Iterable[CorpusEntry],
    *,
    min_sample: Optional[int] = None,
) -> Dict[str, ReliabilityReport]:
    """Reliability of every template competency, items taken from the template."""
    item_map = {c.id: [ind.id for ind in c.indicators] for c in template.competencies}
    return compute_reliability_batch(
        [c.id for c in template.competencies],
        corpus,
        item_ids_by_competency=item_map,
        min_sample=min_sample,
    )


def submit_reliability_job(
    executor: Executor,
    template: TestTemplate,
    corpus: Iterable[CorpusEntry],
    *,
    min_sample: Optional[int] = None,
) -> "Future[Dict[str, ReliabilityReport]]":
    """Schedule a whole-template reliability batch on ``executor``."""
    return executor.submit(compute_template_reliability, template, tuple(corpus), min_sample=min_sample)


def confidence_intervals(
    tree: ScoreTree,
    reports: Mapping[str, ReliabilityReport],
    *,
    z: Optional[float] = None,
) -> Dict[str, ConfidenceInterval]:
    """``score +/- z * SEM`` per competency, clamped to [0, 1].

    Report SEM is on the summed-indicator scale, so it is divided by the item
    count to match the mean-based competency score.  Competencies without a
    score, a report, or an alpha in (0, 1] get no interval.
    """
    zval = float(config.CI_Z if z is None else z)
    out: Dict[str, ConfidenceInterval] = {}
    for comp in tree.competencies:
        rep = reports.get(comp.competency_id)
        if comp.score is None or rep is None or rep.alpha is None or rep.sem is None:
            continue
        if not 0.0 < rep.alpha <= 1.0 or rep.item_count < 1:
            log.debug("No interval for %s: alpha=%s", comp.competency_id, rep.alpha)
            continue
        sem = rep.sem / rep.item_count
        out[comp.competency_id] = ConfidenceInterval(
            competency_id=comp.competency_id,
            score=comp.score,
            low=round(max(0.0, comp.score - zval * sem), _SCALE),
            high=round(min(1.0, comp.score + zval * sem), _SCALE),
            sem=round(sem, _SCALE),
            alpha=rep.alpha,
            provisional=rep.provisional,
        )
    return out


def health_summary(reports: Iterable[ReliabilityReport]) -> Dict[str, object]:
    reports = list(reports)
    counts = {"GOOD": 0, "ACCEPTABLE": 0, "POOR": 0, "INSUFFICIENT_DATA": 0}
    for rep in reports:
        counts[rep.status] = counts.get(rep.status, 0) + 1
    actionable = [r.alpha for r in reports if r.actionable]
    flagged = [
        {"competency_id": r.competency_id, "item_id": it.item_id,
         "difficulty_flag": it.difficulty_flag, "discrimination_flag": it.discrimination_flag}
        for r in reports for it in r.flagged_items()
    ]
    return {
        "total": len(reports),
        "by_status": counts,
        "provisional": sum(1 for r in reports if r.provisional),
        "average_alpha": _round(mean(actionable)) if actionable else None,
        "flagged_items": flagged,
    }
