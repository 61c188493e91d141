from __future__ import annotations

import pytest

from competency_core import config
from competency_core.errors import (
    InsufficientTeamSampleError,
    InvalidBenchmarkError,
    MissingJobConfigError,
    MissingTeamConfigError,
    StrategyMismatchError,
)
from competency_core.interpretation import cache_key, config_hash, effective_threshold, interpret, score_and_interpret
from competency_core.types import (
    BaselinePayload,
    CompetencyScore,
    GapAnalysisPayload,
    InterpretationResult,
    JobFitPayload,
    JobRequirements,
    ScoreTree,
    TeamBenchmark,
    TestTemplate,
)
from tests.conftest import build_synthetic_template, likert_responses


def _tree(scores: dict, weights: dict | None = None, traits: dict | None = None) -> ScoreTree:
    weights = weights or {}
    traits = traits or {}
    comps = tuple(
        CompetencyScore(
            competency_id=cid,
            score=s,
            weight=weights.get(cid, 1.0),
            normalized_weight=None,
            answered_count=0 if s is None else 1,
            big_five_trait=traits.get(cid),
        )
        for cid, s in scores.items()
    )
    return ScoreTree(attempt_id="a1", template_id="t", template_hash="h", overall=0.0, competencies=comps)


def _template(strategy: str, **cfg) -> TestTemplate:
    return TestTemplate(id="t", strategy=strategy, strategy_config=cfg)  # type: ignore[arg-type]


def test_job_fit_scenario():
    tree = _tree({"Leadership": 0.72, "Technical": 0.65})
    reqs = JobRequirements(onet_code="11-1021.00", requirements={"Leadership": 0.6, "Technical": 0.9})
    result = interpret(tree, _template("TARGETED_FIT", onet_code="11-1021.00"), reqs)

    assert result.strategy == "TARGETED_FIT"
    payload = result.payload
    assert isinstance(payload, JobFitPayload)
    assert payload.job_fit == pytest.approx(0.63)
    assert payload.job_fit_percent == pytest.approx(63.0)
    assert payload.development_areas == ("Technical",)
    assert payload.strengths == ("Leadership",)
    rows = {r.competency_id: r for r in payload.rows}
    assert rows["Technical"].gap == pytest.approx(-0.25)
    assert rows["Leadership"].status == "STRENGTH"


def test_job_fit_excludes_unanswered_and_unmatched_competencies():
    tree = _tree({"Leadership": 0.72, "Technical": 0.65, "Sales": None, "Design": 0.9})
    reqs = JobRequirements(onet_code="x", requirements={"Leadership": 0.6, "Technical": 0.9, "Sales": 1.0, "Legal": 0.5})
    payload = interpret(tree, _template("TARGETED_FIT"), reqs).payload
    assert payload.job_fit == pytest.approx(0.63)
    assert payload.unmatched == ("Design", "Legal", "Sales")


def test_job_fit_without_overlap_has_no_fit():
    payload = interpret(_tree({"A": 0.5}), _template("TARGETED_FIT"), JobRequirements("x", {"B": 0.5})).payload
    assert payload.job_fit is None
    assert payload.job_fit_percent is None
    assert payload.meets_requirements is False


def test_strictness_raises_the_pass_mark():
    assert effective_threshold(0) == pytest.approx(0.5)
    assert effective_threshold(50) == pytest.approx(0.65)
    assert effective_threshold(100) == pytest.approx(0.8)
    tree = _tree({"A": 0.7})
    reqs = JobRequirements("x", {"A": 0.7})
    lenient = interpret(tree, _template("TARGETED_FIT", strictness=0), reqs).payload
    strict = interpret(tree, _template("TARGETED_FIT", strictness=100), reqs).payload
    assert lenient.meets_requirements is True
    assert strict.meets_requirements is False


def test_missing_configs_are_configuration_errors():
    tree = _tree({"A": 0.5})
    with pytest.raises(MissingJobConfigError):
        interpret(tree, _template("TARGETED_FIT"))
    with pytest.raises(MissingTeamConfigError):
        interpret(tree, _template("DYNAMIC_GAP_ANALYSIS"))


def test_wrong_config_type_is_a_mismatch():
    tree = _tree({"A": 0.5})
    with pytest.raises(StrategyMismatchError):
        interpret(tree, _template("TARGETED_FIT"), TeamBenchmark("team", {"A": 0.5}, 5))
    with pytest.raises(StrategyMismatchError):
        interpret(tree, _template("DYNAMIC_GAP_ANALYSIS"), JobRequirements("x", {"A": 0.5}))
    with pytest.raises(StrategyMismatchError):
        interpret(tree, _template("UNIVERSAL_BASELINE"), JobRequirements("x", {"A": 0.5}))


def test_benchmark_values_outside_unit_interval_rejected():
    with pytest.raises(InvalidBenchmarkError):
        interpret(_tree({"A": 0.5}), _template("TARGETED_FIT"), JobRequirements("x", {"A": 1.5}))
    with pytest.raises(InvalidBenchmarkError):
        interpret(_tree({"A": 0.5}), _template("DYNAMIC_GAP_ANALYSIS"), TeamBenchmark("t", {"A": -0.1}, 5))


def test_gap_analysis_with_reliable_team():
    tree = _tree({"A": 0.8, "B": 0.4, "C": None}, weights={"A": 3.0, "B": 1.0, "C": 5.0},
                 traits={"A": "OPENNESS", "B": "OPENNESS"})
    team = TeamBenchmark(team_id="core", averages={"A": 0.6, "B": 0.8, "C": 0.5}, sample_size=6)
    payload = interpret(tree, _template("DYNAMIC_GAP_ANALYSIS", team_id="core"), team).payload

    assert isinstance(payload, GapAnalysisPayload)
    assert payload.unreliable_benchmark is False
    rows = {r.competency_id: r for r in payload.rows}
    assert set(rows) == {"A", "B"}
    assert rows["A"].gap == pytest.approx(0.2)
    assert rows["B"].gap == pytest.approx(-0.4)
    assert rows["A"].contribution == "DIVERSITY"
    assert rows["B"].contribution == "SATURATION"
    assert payload.overall_gap == pytest.approx(0.75 * 0.2 + 0.25 * -0.4)
    assert payload.big_five_profile == {"OPENNESS": pytest.approx(0.6)}


def test_small_team_is_flagged_not_reported():
    tree = _tree({"A": 0.8})
    team = TeamBenchmark(team_id="pair", averages={"A": 0.3}, sample_size=2)
    payload = interpret(tree, _template("DYNAMIC_GAP_ANALYSIS"), team).payload
    assert payload.unreliable_benchmark is True
    assert payload.overall_gap is None
    assert payload.rows[0].contribution == "GAP"

    with pytest.raises(InsufficientTeamSampleError) as exc:
        interpret(tree, _template("DYNAMIC_GAP_ANALYSIS"), team, strict_benchmark=True)
    assert exc.value.sample_size == 2
    assert exc.value.minimum == config.TEAM_MIN_SAMPLE


def test_team_minimum_follows_config(monkeypatch):
    monkeypatch.setattr(config, "TEAM_MIN_SAMPLE", 2)
    team = TeamBenchmark(team_id="pair", averages={"A": 0.3}, sample_size=2)
    payload = interpret(_tree({"A": 0.8}), _template("DYNAMIC_GAP_ANALYSIS"), team).payload
    assert payload.unreliable_benchmark is False
    assert payload.overall_gap == pytest.approx(0.5)


def test_baseline_profile():
    tree = _tree({"A": 0.9, "B": None, "C": 0.3, "D": 0.6}, weights={"A": 4.0, "B": 1.0, "C": 1.0, "D": 0.2})
    payload = interpret(tree, _template("UNIVERSAL_BASELINE", locale="ru")).payload

    assert isinstance(payload, BaselinePayload)
    assert [cid for cid, _ in payload.ranked] == ["A", "D", "C", "B"]
    assert payload.strengths == ("A",)
    assert payload.development_areas == ("C",)
    assert payload.over_measured == ("A",)
    assert payload.under_measured == ("D",)
    assert payload.weight_stddev > 0
    assert payload.balance_ratio == pytest.approx(payload.score_stddev / payload.weight_stddev)
    bands = {b.competency_id: b for b in payload.bands}
    assert bands["A"].level == "EXPERT"
    assert bands["A"].label == "Эксперт"
    assert bands["C"].level == "DEVELOPING"
    assert bands["B"].level is None


def test_baseline_balance_ignores_weight_units():
    scores = {"A": 0.9, "B": 0.5, "C": 0.2}
    small = interpret(_tree(scores, weights={"A": 1.0, "B": 2.0, "C": 3.0}), _template("UNIVERSAL_BASELINE")).payload
    large = interpret(_tree(scores, weights={"A": 10.0, "B": 20.0, "C": 30.0}), _template("UNIVERSAL_BASELINE")).payload
    assert small.weight_stddev == pytest.approx(large.weight_stddev)
    assert small.balance_ratio == pytest.approx(large.balance_ratio)
    assert small.over_measured == large.over_measured


def test_payload_must_match_strategy_tag():
    payload = interpret(_tree({"A": 0.5}), _template("UNIVERSAL_BASELINE")).payload
    with pytest.raises(TypeError):
        InterpretationResult(strategy="TARGETED_FIT", payload=payload)


def test_score_and_interpret_and_cache_key(synthetic_template):
    rs = likert_responses(synthetic_template)
    tree, result = score_and_interpret(rs, synthetic_template)
    assert result.strategy == "UNIVERSAL_BASELINE"
    key = cache_key(synthetic_template.content_hash(), rs.content_hash(), config_hash(None))
    assert key == cache_key(synthetic_template.content_hash(), rs.content_hash(), config_hash(None))
    other = cache_key(synthetic_template.content_hash(), rs.content_hash(), config_hash(JobRequirements("x", {"A": 0.5})))
    assert key != other


def test_targeted_template_end_to_end():
    template = build_synthetic_template(
        competencies=["Leadership", "Technical"],
        strategy="TARGETED_FIT",
        strategy_config={"onet_code": "15-1252.00"},
    )
    rs = likert_responses(template, value=2)
    _, result = score_and_interpret(rs, template, JobRequirements("15-1252.00", {"Leadership": 0.5, "Technical": 0.8}))
    assert result.payload.job_fit == pytest.approx((0.5 * 0.5 + 0.5 * 0.8) / 1.3)
