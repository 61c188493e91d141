from __future__ import annotations

import logging
from typing import List

from .config import DEBUG_TRACE, TRACE_FIELDS
from .reliability import compute_reliability_batch, health_summary
from .simulation import run_batch, run_simulation
from .types import PERSONAS, Competency, Indicator, Question, Rubric, TestTemplate


def _maybe_enable_trace() -> None:
    logging.basicConfig(level=logging.INFO, format="[%(levelname)s] %(message)s")
    if DEBUG_TRACE:
        logging.getLogger("competency_core.aggregation").setLevel(logging.INFO)


def _synthetic_template() -> TestTemplate:
    comps: List[Competency] = []
    for c_idx, name in enumerate(("analysis", "communication", "ownership")):
        indicators: List[Indicator] = []
        for i_idx in range(2):
            ind_id = f"smoke_{name}_{i_idx}"
            questions = [
                Question(id=f"{ind_id}_likert", rubric=Rubric("LIKERT", scale_length=5, reversed=i_idx == 1)),
                Question(id=f"{ind_id}_mcq", rubric=Rubric("MCQ", options=4, correct=c_idx % 4, partial_credit={3: 0.5})),
                Question(id=f"{ind_id}_sjt", rubric=Rubric("SJT", options=3, keys={0: 1.0, 1: 3.0, 2: 0.0})),
            ]
            indicators.append(Indicator(id=ind_id, competency_id=name, questions=questions))
        comps.append(Competency(id=name, indicators=indicators, weight=1.0 + c_idx))
    return TestTemplate(id="smoke-template", competencies=comps)


def _trace_fields() -> str:
    return ", ".join(TRACE_FIELDS)


def run_smoke_session(random_runs: int = 40) -> None:
    _maybe_enable_trace()

    template = _synthetic_template()
    logging.info("Starting synthetic simulation for %s (hash %s)", template.id, template.content_hash()[:12])
    logging.info("Trace fields: %s", _trace_fields())

    for run in run_batch(template, PERSONAS):
        logging.info("Persona %s: overall=%.3f run_id=%s", run.persona, run.score_tree.overall, run.run_id)
        for comp in run.score_tree.competencies:
            logging.info("  %s score=%.3f share=%.3f", comp.competency_id, comp.score or 0.0, comp.normalized_weight or 0.0)

    corpus = [run_simulation(template, "RANDOM", seed=s).score_tree for s in range(random_runs)]
    reports = compute_reliability_batch([c.id for c in template.competencies], corpus)
    for cid, rep in reports.items():
        logging.info("Reliability %s: alpha=%s status=%s n=%d", cid, rep.alpha, rep.status, rep.sample_size)
    logging.info("Health: %s", health_summary(reports.values()))


if __name__ == "__main__":  # pragma: no cover
    run_smoke_session()
