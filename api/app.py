from __future__ import annotations
from dataclasses import asdict
from fastapi import FastAPI, HTTPException, Query
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel
import logging, os, typing as t

# ---- Engine imports ----
from competency_core.config import load_config, setting
from competency_core.aggregation import aggregate
from competency_core.consistency import analyze_consistency
from competency_core.errors import (
    ConfigurationError,
    InputError,
    InvalidTransitionError,
    ScoringError,
    TemplateStructureError,
)
from competency_core.export import interpretation_to_dict, reliability_rows, simulation_to_dict, to_json
from competency_core.interpretation import interpret
from competency_core.loader import (
    job_requirements_from_dict,
    response_set_from_dict,
    team_benchmark_from_dict,
    template_from_dict,
)
from competency_core.reliability import compute_template_reliability, health_summary
from competency_core.simulation import run_batch, run_simulation
from competency_core.types import PERSONAS, StrategyConfig, TestTemplate
from competency_core.validators import validate_structure
from .storage import (
    DATA_ROOT,
    delete_simulation,
    list_simulations_for_template,
    load_simulation,
    save_simulation,
    utcnow_iso,
)

log = logging.getLogger(__name__)

app = FastAPI(title="Competency Scoring API")

ALLOWED_ORIGINS = [o.strip() for o in os.getenv("CORS_ORIGINS", "http://localhost:3000").split(",") if o.strip()]

app.add_middleware(
    CORSMiddleware,
    allow_origins=ALLOWED_ORIGINS,
    allow_methods=["*"],
    allow_headers=["*"],
    allow_credentials=False,
)

# ---- Schemas ----
class ScoreReq(BaseModel):
    template: dict[str, t.Any]
    responses: dict[str, t.Any]
    strict: bool = False

class InterpretReq(ScoreReq):
    job_requirements: dict[str, t.Any] | None = None
    team_benchmark: dict[str, t.Any] | None = None
    strict_benchmark: bool = False

class SimulateReq(BaseModel):
    template: dict[str, t.Any]
    persona: str = "PERFECT"
    personas: list[str] | None = None   # batch; overrides persona
    seed: int = 0
    job_requirements: dict[str, t.Any] | None = None
    team_benchmark: dict[str, t.Any] | None = None

class ReliabilityReq(BaseModel):
    template: dict[str, t.Any]
    corpus: list[dict[str, t.Any]]
    min_sample: int | None = None

# ---- Helpers ----
def _http_error(exc: ScoringError) -> HTTPException:
    if isinstance(exc, InputError):
        return HTTPException(422, str(exc))
    if isinstance(exc, (ConfigurationError, InvalidTransitionError)):
        return HTTPException(409, {"error": type(exc).__name__, "detail": str(exc)})
    if isinstance(exc, TemplateStructureError):
        return HTTPException(400, str(exc))
    return HTTPException(500, str(exc))


def _strategy_config(job: dict | None, team: dict | None) -> StrategyConfig | None:
    if job is not None and team is not None:
        raise InputError("send either job_requirements or team_benchmark, not both")
    if job is not None:
        return job_requirements_from_dict(job)
    if team is not None:
        return team_benchmark_from_dict(team)
    return None


def _store_run(run, template: TestTemplate) -> dict[str, t.Any]:
    payload = simulation_to_dict(run, template.content_hash())
    save_simulation(
        run.run_id,
        payload,
        {
            "templateId": run.template_id,
            "templateHash": run.template_hash,
            "persona": run.persona,
            "seed": run.seed,
            "overall": run.score_tree.overall,
            "createdAt": utcnow_iso(),
        },
    )
    return payload

# ---- Health ----
@app.get("/health")
def health():
    return {
        "status": "ok",
        "service": "competency-scoring-api",
        "personas": list(PERSONAS),
        "data_dir": str(DATA_ROOT),
    }

# ---- Scoring ----
@app.post("/score")
def score(req: ScoreReq):
    try:
        template = template_from_dict(req.template)
        responses = response_set_from_dict(req.responses)
        tree = aggregate(responses, template, strict=req.strict)
        consistency = analyze_consistency(responses, template)
    except ScoringError as exc:
        raise _http_error(exc) from exc
    return {"score_tree": asdict(tree), "consistency": asdict(consistency), **to_json(tree)}


@app.post("/interpret")
def interpret_endpoint(req: InterpretReq):
    try:
        template = template_from_dict(req.template)
        responses = response_set_from_dict(req.responses)
        cfg = _strategy_config(req.job_requirements, req.team_benchmark)
        tree = aggregate(responses, template, strict=req.strict)
        result = interpret(tree, template, cfg, strict_benchmark=req.strict_benchmark)
    except ScoringError as exc:
        raise _http_error(exc) from exc
    return {"overall": tree.overall, "template_hash": tree.template_hash, "interpretation": interpretation_to_dict(result)}

# ---- Simulations (separate store; never an attempt result) ----
@app.post("/simulations")
def simulate(req: SimulateReq):
    try:
        template = template_from_dict(req.template)
        cfg = _strategy_config(req.job_requirements, req.team_benchmark)
        if req.personas:
            runs = run_batch(template, [p.upper() for p in req.personas], req.seed, cfg)
        else:
            runs = [run_simulation(template, req.persona, req.seed, cfg)]
    except ScoringError as exc:
        raise _http_error(exc) from exc
    return {"state": "RESULTS", "runs": [_store_run(run, template) for run in runs]}


@app.get("/simulations/{run_id}")
def get_simulation(run_id: str, template_hash: str | None = Query(None, description="Current template content hash")):
    stored = load_simulation(run_id)
    if not stored:
        raise HTTPException(404, "simulation not found")
    out = dict(stored)
    if template_hash is not None:
        out["stale"] = stored.get("template_hash") != template_hash
    out["state"] = "STALE" if out.get("stale") else "RESULTS"
    return out


@app.delete("/simulations/{run_id}")
def delete_simulation_endpoint(run_id: str):
    if not delete_simulation(run_id):
        raise HTTPException(404, "simulation not found")
    return {"ok": True}


@app.get("/templates/{template_id}/simulations")
def list_simulations(template_id: str):
    return {"simulations": list_simulations_for_template(template_id)}

# ---- Reliability ----
@app.post("/reliability")
def reliability(req: ReliabilityReq):
    try:
        template = template_from_dict(req.template)
        validate_structure(template)
    except ScoringError as exc:
        raise _http_error(exc) from exc

    # a malformed or empty response set is dropped from the corpus
    corpus = []
    excluded = []
    for idx, raw in enumerate(req.corpus):
        try:
            corpus.append(aggregate(response_set_from_dict(raw), template))
        except ScoringError as exc:
            log.info("Reliability corpus entry %d for %s excluded: %s", idx, template.id, exc)
            excluded.append({"index": idx, "attempt_id": raw.get("attempt_id"), "error": str(exc)})

    min_sample = req.min_sample if req.min_sample is not None else setting("RELIABILITY_MIN_SAMPLE", load_config())
    reports = compute_template_reliability(template, corpus, min_sample=min_sample)
    log.info("Reliability for %s over %d response set(s), %d excluded", template.id, len(corpus), len(excluded))
    return {
        "template_id": template.id,
        "corpus_size": len(corpus),
        "excluded": excluded,
        "reports": reliability_rows(reports.values()),
        "details": {cid: asdict(rep) for cid, rep in reports.items()},
        "health": health_summary(reports.values()),
    }
