# competency_core/interpretation.py
"""Strategy-specific reading of a ScoreTree.

Each strategy is a plain handler function registered in ``_HANDLERS``; the
result is an ``InterpretationResult`` whose payload type is fixed by the
strategy tag.  Benchmarks (job requirements, team averages) are immutable
snapshots handed in by the caller for the duration of one call.
"""
from __future__ import annotations
from dataclasses import asdict
from statistics import mean, pstdev
from typing import Callable, Dict, List, Optional, Tuple
import logging

from . import config
from .aggregation import aggregate, normalized_weights
from .errors import (
    InsufficientTeamSampleError,
    InvalidBenchmarkError,
    MissingJobConfigError,
    MissingTeamConfigError,
    StrategyMismatchError,
    TemplateStructureError,
)
from .proficiency import proficiency_label, proficiency_level
from .types import (
    BaselinePayload,
    CompetencyBand,
    FitRow,
    GapAnalysisPayload,
    GapRow,
    InterpretationResult,
    JobFitPayload,
    JobRequirements,
    ResponseSet,
    ScoreTree,
    StrategyConfig,
    TeamBenchmark,
    TestTemplate,
    stable_hash,
)

log = logging.getLogger(__name__)


def _check_benchmark(values, what: str) -> None:
    for cid, v in values.items():
        try:
            f = float(v)
        except (TypeError, ValueError):
            raise InvalidBenchmarkError(f"{what} for {cid!r} is not a number: {v!r}")
        if not 0.0 <= f <= 1.0:
            raise InvalidBenchmarkError(f"{what} for {cid!r} outside [0, 1]: {f}")


# ---- UNIVERSAL_BASELINE ----
def _interpret_baseline(tree: ScoreTree, template: TestTemplate, cfg, strict_benchmark: bool) -> BaselinePayload:
    if cfg is not None:
        raise StrategyMismatchError(
            f"UNIVERSAL_BASELINE takes no benchmark, got {type(cfg).__name__}"
        )
    locale = str(template.strategy_config.get("locale", "en"))
    comps = list(tree.competencies)

    ranked = sorted(comps, key=lambda c: (c.score is None, -(c.score or 0.0), c.competency_id))
    scores = [c.score for c in comps if c.score is not None]
    shares = normalized_weights([c.weight for c in comps])

    weight_sd = pstdev(shares) if len(shares) > 1 else 0.0
    score_sd = pstdev(scores) if len(scores) > 1 else 0.0
    balance = (score_sd / weight_sd) if weight_sd > 0.0 else None

    over: List[str] = []
    under: List[str] = []
    if comps:
        equal = 1.0 / len(comps)
        tol = float(config.BASELINE_MEASURE_TOLERANCE)
        for c, share in zip(comps, shares):
            if share > equal * (1.0 + tol):
                over.append(c.competency_id)
            elif share < equal * (1.0 - tol):
                under.append(c.competency_id)

    bands = tuple(
        CompetencyBand(
            competency_id=c.competency_id,
            score=c.score,
            level=proficiency_level(c.score),
            label=proficiency_label(c.score, locale),
        )
        for c in ranked
    )
    return BaselinePayload(
        ranked=tuple((c.competency_id, c.score) for c in ranked),
        bands=bands,
        weight_stddev=weight_sd,
        score_stddev=score_sd,
        balance_ratio=balance,
        over_measured=tuple(over),
        under_measured=tuple(under),
        strengths=tuple(c.competency_id for c in ranked
                        if c.score is not None and c.score >= config.BASELINE_STRENGTH_THRESHOLD),
        development_areas=tuple(c.competency_id for c in ranked
                                if c.score is not None and c.score < config.BASELINE_DEVELOPMENT_THRESHOLD),
    )


# ---- TARGETED_FIT ----
def effective_threshold(strictness: Optional[float] = None) -> float:
    """Pass mark for job fit: base threshold raised by strictness (0..100)."""
    s = float(config.JOB_FIT_DEFAULT_STRICTNESS if strictness is None else strictness)
    s = max(0.0, min(100.0, s))
    return config.JOB_FIT_BASE_THRESHOLD + (s / 100.0) * config.JOB_FIT_STRICTNESS_MAX_ADJUSTMENT


def _fit_status(score: float, req: float) -> str:
    if score < req - config.JOB_FIT_DEV_THRESHOLD:
        return "DEVELOPMENT"
    if score > req + config.JOB_FIT_STRENGTH_MARGIN:
        return "STRENGTH"
    if score >= req:
        return "MEETS"
    return "BELOW"


def _interpret_job_fit(tree: ScoreTree, template: TestTemplate, cfg, strict_benchmark: bool) -> JobFitPayload:
    if cfg is None:
        raise MissingJobConfigError(
            f"template {template.id} uses TARGETED_FIT but no occupational requirement vector was supplied"
        )
    if not isinstance(cfg, JobRequirements):
        raise StrategyMismatchError(f"TARGETED_FIT needs JobRequirements, got {type(cfg).__name__}")
    _check_benchmark(cfg.requirements, "requirement")

    reqs = {cid: float(v) for cid, v in cfg.requirements.items()}
    scores = tree.competency_scores()

    rows: List[FitRow] = []
    for cid, score in scores.items():
        if score is None or cid not in reqs:
            continue
        r = reqs[cid]
        rows.append(FitRow(competency_id=cid, score=score, requirement=r, gap=score - r, status=_fit_status(score, r)))

    # competencies on one side only, or without answers, stay out of both sums
    matched = {row.competency_id for row in rows}
    unmatched = sorted((set(scores) | set(reqs)) - matched)

    denom = sum(row.requirement for row in rows)
    job_fit: Optional[float] = None
    if rows and denom > 0.0:
        job_fit = sum(min(row.score, row.requirement) * row.requirement for row in rows) / denom

    threshold = effective_threshold(template.strategy_config.get("strictness"))
    if job_fit is None:
        log.info("No overlap between scores and requirements for %s (%s)", tree.attempt_id, cfg.onet_code)
    return JobFitPayload(
        onet_code=cfg.onet_code,
        job_fit=job_fit,
        job_fit_percent=None if job_fit is None else round(job_fit * 100.0, 2),
        rows=tuple(rows),
        development_areas=tuple(r.competency_id for r in rows if r.status == "DEVELOPMENT"),
        strengths=tuple(r.competency_id for r in rows if r.status == "STRENGTH"),
        unmatched=tuple(unmatched),
        effective_threshold=threshold,
        meets_requirements=job_fit is not None and job_fit >= threshold,
    )


# ---- DYNAMIC_GAP_ANALYSIS ----
def _contribution(team_average: float) -> str:
    if team_average >= config.TEAM_SATURATION_THRESHOLD:
        return "SATURATION"
    if team_average >= config.TEAM_DIVERSITY_THRESHOLD:
        return "DIVERSITY"
    return "GAP"


def _big_five_profile(tree: ScoreTree) -> Dict[str, float]:
    by_trait: Dict[str, List[float]] = {}
    for c in tree.competencies:
        if c.big_five_trait and c.score is not None:
            by_trait.setdefault(c.big_five_trait, []).append(c.score)
    return {trait: mean(vals) for trait, vals in sorted(by_trait.items())}


def _interpret_gap(tree: ScoreTree, template: TestTemplate, cfg, strict_benchmark: bool) -> GapAnalysisPayload:
    if cfg is None:
        raise MissingTeamConfigError(
            f"template {template.id} uses DYNAMIC_GAP_ANALYSIS but no team benchmark was supplied"
        )
    if not isinstance(cfg, TeamBenchmark):
        raise StrategyMismatchError(f"DYNAMIC_GAP_ANALYSIS needs TeamBenchmark, got {type(cfg).__name__}")
    _check_benchmark(cfg.averages, "team average")

    unreliable = False
    try:
        if int(cfg.sample_size) < int(config.TEAM_MIN_SAMPLE):
            raise InsufficientTeamSampleError(int(cfg.sample_size), int(config.TEAM_MIN_SAMPLE))
    except InsufficientTeamSampleError as exc:
        if strict_benchmark:
            raise
        log.warning("Team %s benchmark unreliable: %s", cfg.team_id, exc)
        unreliable = True

    averages = {cid: float(v) for cid, v in cfg.averages.items()}
    rows: List[GapRow] = []
    weighted: List[Tuple[float, float]] = []
    for c in tree.competencies:
        if c.score is None or c.competency_id not in averages:
            continue
        avg = averages[c.competency_id]
        gap = c.score - avg
        rows.append(GapRow(competency_id=c.competency_id, score=c.score, team_average=avg,
                           gap=gap, contribution=_contribution(avg)))
        weighted.append((gap, c.weight))

    overall: Optional[float] = None
    if weighted and not unreliable:
        shares = normalized_weights([w for _, w in weighted])
        overall = sum(g * s for (g, _), s in zip(weighted, shares))

    return GapAnalysisPayload(
        team_id=cfg.team_id,
        sample_size=int(cfg.sample_size),
        rows=tuple(rows),
        overall_gap=overall,
        unreliable_benchmark=unreliable,
        big_five_profile=_big_five_profile(tree),
    )


Handler = Callable[[ScoreTree, TestTemplate, Optional[StrategyConfig], bool], object]

_HANDLERS: Dict[str, Handler] = {
    "UNIVERSAL_BASELINE": _interpret_baseline,
    "TARGETED_FIT": _interpret_job_fit,
    "DYNAMIC_GAP_ANALYSIS": _interpret_gap,
}


def interpret(
    score_tree: ScoreTree,
    template: TestTemplate,
    config: Optional[StrategyConfig] = None,
    *,
    strict_benchmark: bool = False,
) -> InterpretationResult:
    """Apply the template's assessment strategy to a ScoreTree.

    Missing or mismatched benchmark data raises a ``ConfigurationError``
    subclass; the strategy is never switched behind the caller's back.  A
    team sample below the minimum is reported as ``unreliable_benchmark``
    unless ``strict_benchmark`` asks for ``InsufficientTeamSampleError``.
    """
    handler = _HANDLERS.get(template.strategy)
    if handler is None:
        raise TemplateStructureError(f"unknown strategy {template.strategy!r}", template.id)
    payload = handler(score_tree, template, config, strict_benchmark)
    return InterpretationResult(strategy=template.strategy, payload=payload)


def score_and_interpret(
    response_set: ResponseSet,
    template: TestTemplate,
    config: Optional[StrategyConfig] = None,
    *,
    strict_benchmark: bool = False,
) -> Tuple[ScoreTree, InterpretationResult]:
    tree = aggregate(response_set, template)
    return tree, interpret(tree, template, config, strict_benchmark=strict_benchmark)


def config_hash(cfg: Optional[StrategyConfig]) -> str:
    if cfg is None:
        return stable_hash(None)
    return stable_hash({"type": type(cfg).__name__, **asdict(cfg)})


def cache_key(template_hash: str, response_hash: str, strategy_config_hash: str) -> str:
    """Key for callers that cache interpretations; the core itself never caches."""
    return stable_hash([template_hash, response_hash, strategy_config_hash])
