from __future__ import annotations

import threading

import pytest

from competency_core import config, simulation
from competency_core.errors import InputError
from competency_core.simulation import generate_responses, persona_rng, run_batch, run_simulation
from competency_core.types import JobRequirements, Question, Rubric
from tests.conftest import build_synthetic_template


def test_perfect_and_failing_hit_the_bounds(mixed_template):
    perfect = run_simulation(mixed_template, "PERFECT")
    failing = run_simulation(mixed_template, "FAILING")
    assert perfect.score_tree.overall == pytest.approx(1.0)
    assert failing.score_tree.overall == pytest.approx(0.0)


def test_perfect_answers_reversed_items_at_the_low_end():
    template = build_synthetic_template(competencies=["A"], indicators_per_competency=1, questions_per_indicator=1)
    template.competencies[0].indicators[0].questions[0].rubric.reversed = True
    run = run_simulation(template, "PERFECT")
    assert run.responses.answers[0].value == 0
    assert run.score_tree.overall == 1.0


@pytest.mark.parametrize("seed", range(100))
def test_persona_ordering_is_monotone(mixed_template, seed):
    perfect = run_simulation(mixed_template, "PERFECT", seed=seed).score_tree.overall
    rand = run_simulation(mixed_template, "RANDOM", seed=seed).score_tree.overall
    failing = run_simulation(mixed_template, "FAILING", seed=seed).score_tree.overall
    assert perfect >= rand >= failing


def test_same_inputs_give_identical_runs(mixed_template):
    a = run_simulation(mixed_template, "RANDOM", seed=42)
    b = run_simulation(mixed_template, "RANDOM", seed=42)
    assert a == b
    c = run_simulation(mixed_template, "RANDOM", seed=43)
    assert c.run_id != a.run_id


def test_rng_depends_on_template_hash_persona_and_seed():
    base = persona_rng("h1", "RANDOM", 1).random()
    assert persona_rng("h1", "RANDOM", 1).random() == base
    assert persona_rng("h2", "RANDOM", 1).random() != base
    assert persona_rng("h1", "RANDOM", 2).random() != base


def test_run_is_tagged_with_template_hash(synthetic_template):
    run = run_simulation(synthetic_template, "PERFECT")
    assert run.template_hash == synthetic_template.content_hash()
    assert not run.is_stale(synthetic_template.content_hash())
    synthetic_template.competencies[0].weight = 9.0
    assert run.is_stale(synthetic_template.content_hash())


def test_configuration_error_is_recorded_not_raised():
    template = build_synthetic_template(strategy="TARGETED_FIT", strategy_config={"onet_code": "x"})
    run = run_simulation(template, "PERFECT")
    assert run.interpretation is None
    assert "MissingJobConfigError" in run.interpretation_error
    assert run.score_tree.overall == pytest.approx(1.0)

    reqs = JobRequirements("x", {"Leadership": 0.5})
    run = run_simulation(template, "PERFECT", config=reqs)
    assert run.interpretation_error is None
    assert run.interpretation.payload.job_fit == pytest.approx(0.5)


def test_unknown_persona_is_an_input_error(synthetic_template):
    with pytest.raises(InputError):
        run_simulation(synthetic_template, "LAZY")


def test_persona_names_are_case_insensitive(synthetic_template):
    assert run_simulation(synthetic_template, "perfect").persona == "PERFECT"


def test_dry_run_metadata(synthetic_template, monkeypatch):
    synthetic_template.competencies[0].indicators[0].questions[0].time_limit_sec = 150
    run = run_simulation(synthetic_template, "PERFECT")
    assert run.composition["LIKERT"] == 12
    assert run.composition["MCQ"] == 0
    # 11 questions at the 60 s default plus one at 150 s -> 810 s -> 14 min
    assert run.estimated_duration_min == 14
    assert run.warnings == ()

    monkeypatch.setattr(config, "SIM_MIN_QUESTIONS_PER_COMPETENCY", 5)
    run = run_simulation(synthetic_template, "PERFECT")
    assert len(run.warnings) == 3
    assert "Leadership has 4 question(s)" in run.warnings[0]


def test_generated_responses_cover_every_question(mixed_template):
    rs = generate_responses(mixed_template, "RANDOM", persona_rng("h", "RANDOM", 0))
    assert [a.question_id for a in rs.answers] == mixed_template.question_ids()


def test_batch_runs_personas_in_order(synthetic_template):
    runs = run_batch(synthetic_template, ["PERFECT", "RANDOM", "FAILING"], seed=3)
    assert [r.persona for r in runs] == ["PERFECT", "RANDOM", "FAILING"]


def test_batch_cancellation_keeps_completed_runs(synthetic_template, monkeypatch):
    cancel = threading.Event()
    real = simulation.run_simulation

    def run_then_cancel(*args, **kwargs):
        out = real(*args, **kwargs)
        cancel.set()
        return out

    monkeypatch.setattr(simulation, "run_simulation", run_then_cancel)
    runs = run_batch(synthetic_template, ["PERFECT", "RANDOM", "FAILING"], cancel_event=cancel)
    assert [r.persona for r in runs] == ["PERFECT"]


def test_numeric_random_answers_stay_in_domain():
    q = Question(id="n", rubric=Rubric("NUMERIC", min_value=5, max_value=6))
    template = build_synthetic_template(competencies=["A"], indicators_per_competency=1, questions_per_indicator=1)
    template.competencies[0].indicators[0].questions = [q]
    for seed in range(10):
        run = run_simulation(template, "RANDOM", seed=seed)
        assert 5.0 <= run.responses.answers[0].value <= 6.0
