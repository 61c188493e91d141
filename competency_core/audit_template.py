from __future__ import annotations

import json
import sys
from pathlib import Path
from typing import Iterable

from . import config
from .loader import load_sample_template, load_template
from .types import ANSWER_TYPES, TestTemplate
from .validators import structure_errors


def composition(template: TestTemplate) -> dict[str, int]:
    """Question count per answer type."""
    counts = {kind: 0 for kind in ANSWER_TYPES}
    for _, _, q in template.iter_questions():
        kind = str(q.rubric.answer_type).upper()
        counts[kind] = counts.get(kind, 0) + 1
    return counts


def estimated_duration_min(template: TestTemplate) -> int:
    seconds = 0
    for _, _, q in template.iter_questions():
        seconds += int(q.time_limit_sec or config.SIM_DEFAULT_SECONDS_PER_QUESTION)
    return -(-seconds // 60)


def inventory_warnings(template: TestTemplate) -> list[str]:
    warnings: list[str] = []
    minimum = int(config.SIM_MIN_QUESTIONS_PER_COMPETENCY)
    for comp in template.competencies:
        n = comp.question_count()
        if n < minimum:
            warnings.append(f"{comp.id} has {n} question(s) (<{minimum})")
        for ind in comp.indicators:
            if not ind.questions:
                warnings.append(f"{comp.id}/{ind.id} has no questions")
    return warnings


def _blank_competency() -> dict[str, object]:
    return {
        "indicators": {},
        "types": {kind: 0 for kind in ANSWER_TYPES},
        "reversed": 0,
        "questions": 0,
        "zero_weight": [],
    }


def audit_template(template: TestTemplate) -> dict[str, object]:
    coverage: dict[str, dict[str, object]] = {}
    totals = {kind: 0 for kind in ANSWER_TYPES}
    totals.update({"reversed": 0, "questions": 0})

    for comp in template.competencies:
        data = coverage.setdefault(comp.id, _blank_competency())
        if float(comp.weight) == 0.0:
            data["zero_weight"].append(comp.id)  # type: ignore[union-attr]
        for ind in comp.indicators:
            data["indicators"][ind.id] = len(ind.questions)  # type: ignore[index]
            if float(ind.weight) == 0.0:
                data["zero_weight"].append(ind.id)  # type: ignore[union-attr]
            for q in ind.questions:
                kind = str(q.rubric.answer_type).upper()
                data["types"][kind] = data["types"].get(kind, 0) + 1  # type: ignore[index,union-attr]
                data["questions"] += 1  # type: ignore[operator]
                totals[kind] = totals.get(kind, 0) + 1
                totals["questions"] += 1
                if q.rubric.reversed:
                    data["reversed"] += 1  # type: ignore[operator]
                    totals["reversed"] += 1
                if float(q.weight) == 0.0:
                    data["zero_weight"].append(q.id)  # type: ignore[union-attr]

    warnings = structure_errors(template) + inventory_warnings(template)
    for comp_id, data in coverage.items():
        zero = data["zero_weight"]
        if zero:
            warnings.append(f"{comp_id} has zero-weight nodes: {', '.join(zero)}")  # type: ignore[arg-type]
        n = data["questions"]
        if n and data["reversed"] == n:  # type: ignore[operator]
            warnings.append(f"{comp_id} has only reversed questions")

    return {
        "template_id": template.id,
        "template_hash": template.content_hash(),
        "coverage": coverage,
        "warnings": warnings,
        "totals": totals,
        "estimated_duration_min": estimated_duration_min(template),
    }


def _format_row(label: str, kinds: Iterable[str], data: dict[str, int]) -> str:
    parts = [label]
    for kind in kinds:
        parts.append(f"{kind}:{data.get(kind, 0):3d}")
    return "  ".join(parts)


def print_report(summary: dict[str, object]) -> None:
    coverage: dict[str, dict[str, object]] = summary["coverage"]  # type: ignore[assignment]
    print(f"=== Template Coverage: {summary['template_id']} ===")
    for comp_id in sorted(coverage):
        data = coverage[comp_id]
        print(f"\nCompetency: {comp_id}")
        print("  " + _format_row("types", ANSWER_TYPES, data["types"]))  # type: ignore[arg-type]
        for ind_id, n in sorted(data["indicators"].items()):  # type: ignore[union-attr]
            print(f"    {ind_id}: {n} question(s)")
        if data["reversed"]:
            print(f"    reversed: {data['reversed']}")

    warnings: list[str] = summary["warnings"]  # type: ignore[assignment]
    if warnings:
        print("\nWarnings:")
        for msg in warnings:
            print(f" - {msg}")
    else:
        print("\nNo warnings.")

    print("\nTotals:", summary["totals"])
    print(f"Estimated duration: {summary['estimated_duration_min']} min")


def write_summary(summary: dict[str, object], path: Path = Path("/tmp/template_audit.json")) -> str:
    text = json.dumps(summary, indent=2, sort_keys=True)
    path.write_text(text + "\n", encoding="utf-8")
    print(text)
    return text


def main(argv: list[str] | None = None) -> int:
    args = sys.argv[1:] if argv is None else argv
    template = load_template(args[0]) if args else load_sample_template()
    summary = audit_template(template)
    print_report(summary)
    write_summary(summary)
    return 2 if summary["warnings"] else 0


if __name__ == "__main__":
    raise SystemExit(main())
