from __future__ import annotations
import json
from pathlib import Path
from typing import Any, Dict, List, Mapping, Union

from .errors import TemplateStructureError
from .types import (
    Answer,
    Competency,
    Indicator,
    JobRequirements,
    Question,
    ResponseSet,
    Rubric,
    TeamBenchmark,
    TestTemplate,
)

DATA_DIR = Path(__file__).with_name("data")

_RUBRIC_FIELDS = ("answer_type", "scale_length", "options", "correct", "min_value", "max_value", "reversed")


def _require(raw: Mapping[str, Any], key: str, where: str) -> Any:
    if not isinstance(raw, Mapping):
        raise TemplateStructureError(f"{where} must be an object, got {type(raw).__name__}")
    if key not in raw:
        raise TemplateStructureError(f"{where} is missing {key!r}")
    return raw[key]


def _int_keys(raw: Any, where: str) -> Dict[int, float]:
    # JSON object keys are strings; option indexes are ints
    if not raw:
        return {}
    try:
        return {int(k): float(v) for k, v in dict(raw).items()}
    except (TypeError, ValueError):
        raise TemplateStructureError(f"{where} must map option indexes to numbers")


def rubric_from_dict(raw: Mapping[str, Any], where: str = "rubric") -> Rubric:
    kwargs = {k: raw[k] for k in _RUBRIC_FIELDS if k in raw}
    if "answer_type" in kwargs:
        kwargs["answer_type"] = str(kwargs["answer_type"]).upper()
    return Rubric(
        partial_credit=_int_keys(raw.get("partial_credit"), f"{where}.partial_credit"),
        keys=_int_keys(raw.get("keys"), f"{where}.keys"),
        **kwargs,
    )


def _question(raw: Mapping[str, Any]) -> Question:
    qid = str(_require(raw, "id", "question"))
    return Question(
        id=qid,
        rubric=rubric_from_dict(raw.get("rubric") or {}, f"{qid}.rubric"),
        weight=raw.get("weight", 1.0),
        text=str(raw.get("text", "")),
        time_limit_sec=raw.get("time_limit_sec"),
    )


def _indicator(raw: Mapping[str, Any], competency_id: str) -> Indicator:
    iid = str(_require(raw, "id", f"indicator of {competency_id}"))
    return Indicator(
        id=iid,
        competency_id=str(raw.get("competency_id", competency_id)),
        questions=[_question(q) for q in raw.get("questions", [])],
        weight=raw.get("weight", 1.0),
        title=str(raw.get("title", "")),
    )


def _competency(raw: Mapping[str, Any]) -> Competency:
    cid = str(_require(raw, "id", "competency"))
    label = raw.get("label") or {}
    if isinstance(label, str):
        label = {"en": label}
    return Competency(
        id=cid,
        indicators=[_indicator(i, cid) for i in raw.get("indicators", [])],
        weight=raw.get("weight", 1.0),
        label=dict(label),
        big_five_trait=raw.get("big_five_trait"),
        parent_id=raw.get("parent_id"),
    )


def template_from_dict(raw: Mapping[str, Any]) -> TestTemplate:
    tid = str(_require(raw, "id", "template"))
    comps = raw.get("competencies", [])
    if not isinstance(comps, list):
        raise TemplateStructureError("competencies must be a list", tid)
    return TestTemplate(
        id=tid,
        competencies=[_competency(c) for c in comps],
        strategy=str(raw.get("strategy", "UNIVERSAL_BASELINE")).upper(),  # type: ignore[arg-type]
        strategy_config=dict(raw.get("strategy_config") or {}),
        version=int(raw.get("version", 1)),
    )


def response_set_from_dict(raw: Mapping[str, Any]) -> ResponseSet:
    """Accepts ``answers`` as a list of answer objects or a question-id map."""
    attempt_id = str(_require(raw, "attempt_id", "response set"))
    answers = raw.get("answers", [])
    out: List[Answer] = []
    if isinstance(answers, Mapping):
        out = [Answer(question_id=str(qid), value=v) for qid, v in answers.items()]
    else:
        for a in answers:
            out.append(Answer(
                question_id=str(_require(a, "question_id", "answer")),
                value=a.get("value"),
                skipped=bool(a.get("skipped", False)),
                time_spent_sec=a.get("time_spent_sec"),
            ))
    return ResponseSet(attempt_id=attempt_id, answers=tuple(out))


def job_requirements_from_dict(raw: Mapping[str, Any]) -> JobRequirements:
    return JobRequirements(
        onet_code=str(_require(raw, "onet_code", "job requirements")),
        requirements=dict(raw.get("requirements") or {}),
    )


def team_benchmark_from_dict(raw: Mapping[str, Any]) -> TeamBenchmark:
    return TeamBenchmark(
        team_id=str(_require(raw, "team_id", "team benchmark")),
        averages=dict(raw.get("averages") or {}),
        sample_size=int(raw.get("sample_size", 0)),
    )


def load_template(path: Union[str, Path]) -> TestTemplate:
    p = Path(path)
    try:
        raw = json.loads(p.read_text(encoding="utf-8"))
    except ValueError as exc:
        raise TemplateStructureError(f"{p.name} is not valid JSON: {exc}")
    return template_from_dict(raw)


def load_sample_template() -> TestTemplate:
    return load_template(DATA_DIR / "sample_template.json")
