from __future__ import annotations

import pytest

from competency_core.types import (
    Answer,
    Competency,
    Indicator,
    Question,
    ResponseSet,
    Rubric,
    TestTemplate,
)


def build_synthetic_template(
    *,
    competencies: list[str] | None = None,
    weights: list[float] | None = None,
    indicators_per_competency: int = 2,
    questions_per_indicator: int = 2,
    strategy: str = "UNIVERSAL_BASELINE",
    strategy_config: dict | None = None,
    mixed_types: bool = False,
) -> TestTemplate:
    """Create a deterministic synthetic template for tests and smoke runs."""

    names = competencies or ["Leadership", "Technical", "Communication"]
    ws = weights or [1.0] * len(names)
    comps: list[Competency] = []
    for c_idx, (name, weight) in enumerate(zip(names, ws)):
        indicators: list[Indicator] = []
        for i_idx in range(indicators_per_competency):
            ind_id = f"{name}.ind{i_idx}"
            questions: list[Question] = []
            for q_idx in range(questions_per_indicator):
                qid = f"{ind_id}.q{q_idx}"
                if mixed_types and q_idx % 4 == 1:
                    rubric = Rubric("MCQ", options=4, correct=1, partial_credit={2: 0.5})
                elif mixed_types and q_idx % 4 == 2:
                    rubric = Rubric("SJT", options=3, keys={0: 2.0, 1: -1.0, 2: 0.5})
                elif mixed_types and q_idx % 4 == 3:
                    rubric = Rubric("NUMERIC", min_value=0.0, max_value=10.0, reversed=True)
                else:
                    rubric = Rubric("LIKERT", scale_length=5)
                questions.append(Question(id=qid, rubric=rubric, text=f"{name} question {q_idx}"))
            indicators.append(Indicator(id=ind_id, competency_id=name, questions=questions))
        comps.append(Competency(id=name, indicators=indicators, weight=weight, label={"en": name}))
    return TestTemplate(
        id="synthetic",
        competencies=comps,
        strategy=strategy,  # type: ignore[arg-type]
        strategy_config=dict(strategy_config or {}),
    )


def likert_responses(template: TestTemplate, value: int = 4, *, skip: set[str] | None = None,
                     attempt_id: str = "attempt-1") -> ResponseSet:
    """Answer every Likert question with ``value``; competencies in ``skip`` stay blank."""

    skip = skip or set()
    answers = [
        Answer(question_id=q.id, value=value)
        for comp, _, q in template.iter_questions()
        if comp.id not in skip
    ]
    return ResponseSet(attempt_id=attempt_id, answers=tuple(answers))


@pytest.fixture
def synthetic_template() -> TestTemplate:
    return build_synthetic_template()


@pytest.fixture
def mixed_template() -> TestTemplate:
    return build_synthetic_template(questions_per_indicator=4, mixed_types=True)
