from __future__ import annotations

import csv
import io
import json

from competency_core.aggregation import aggregate
from competency_core.export import (
    RELIABILITY_FIELDS,
    SCORE_FIELDS,
    reliability_rows,
    score_tree_rows,
    simulation_to_dict,
    to_csv,
    to_json,
)
from competency_core.reliability import compute_reliability
from competency_core.simulation import run_simulation
from competency_core.types import JobRequirements
from tests.conftest import build_synthetic_template, likert_responses


def test_score_tree_rows_cover_every_level(synthetic_template):
    tree = aggregate(likert_responses(synthetic_template, skip={"Communication"}), synthetic_template)
    rows = score_tree_rows(tree)
    levels = [r["level"] for r in rows]
    assert levels.count("overall") == 1
    assert levels.count("competency") == 3
    assert levels.count("indicator") == 6
    assert levels.count("question") == 12
    comm = next(r for r in rows if r["level"] == "competency" and r["competency_id"] == "Communication")
    assert comm["score"] == ""


def test_csv_has_fixed_header(synthetic_template):
    tree = aggregate(likert_responses(synthetic_template), synthetic_template)
    text = to_csv(score_tree_rows(tree))
    reader = csv.DictReader(io.StringIO(text))
    assert tuple(reader.fieldnames) == SCORE_FIELDS
    assert len(list(reader)) == 1 + 3 + 6 + 12


def test_json_payload_is_serialisable(synthetic_template):
    tree = aggregate(likert_responses(synthetic_template), synthetic_template)
    payload = to_json(tree)
    assert payload["template_hash"] == synthetic_template.content_hash()
    json.dumps(payload)


def test_reliability_rows_render_nulls_as_blank():
    corpus = [{"i1": 0.5, "i2": 0.5} for _ in range(5)]
    report = compute_reliability("C", corpus, item_ids=["i1", "i2"])
    rows = reliability_rows([report])
    assert rows[0]["alpha"] == ""
    assert rows[0]["status"] == "INSUFFICIENT_DATA"
    assert rows[0]["provisional"] is True
    assert rows[0]["item_correlations"] == "i1=;i2="
    text = to_csv(rows, RELIABILITY_FIELDS)
    assert text.splitlines()[0].split(",") == list(RELIABILITY_FIELDS)


def test_simulation_dict_reports_staleness_only_with_current_hash():
    template = build_synthetic_template(strategy="TARGETED_FIT", strategy_config={"onet_code": "x"})
    run = run_simulation(template, "PERFECT", config=JobRequirements("x", {"Leadership": 0.5}))
    out = simulation_to_dict(run)
    assert out["stale"] is None
    assert out["interpretation"]["strategy"] == "TARGETED_FIT"
    assert out["interpretation"]["payload"]["job_fit"] == 0.5
    json.dumps(out)
    assert simulation_to_dict(run, run.template_hash)["stale"] is False
    assert simulation_to_dict(run, "other")["stale"] is True
