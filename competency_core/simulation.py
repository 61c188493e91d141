# competency_core/simulation.py
"""Dry runs of a template with synthetic personas.

A run never touches an attempt store: it scores generated answers in memory
and tags the result with the template's content hash so a stored run can be
recognised as stale once the template changes.
"""
from __future__ import annotations
from typing import Dict, FrozenSet, List, Optional, Sequence
import hashlib
import logging
import random
import threading

from .aggregation import aggregate
from .audit_template import composition, estimated_duration_min, inventory_warnings
from .errors import ConfigurationError, EmptyTemplateError, InputError, InvalidTransitionError
from .interpretation import interpret
from .scoring import ideal_answer, sample_answer, worst_answer
from .types import (
    PERSONAS,
    Answer,
    InterpretationResult,
    ResponseSet,
    SimulationRun,
    StrategyConfig,
    TestTemplate,
    stable_hash,
)
from .validators import has_answerable_questions, validate_structure

log = logging.getLogger(__name__)


def _persona(persona: str) -> str:
    p = str(persona).upper()
    if p not in PERSONAS:
        raise InputError(f"unknown persona {persona!r}; expected one of {', '.join(PERSONAS)}")
    return p


def persona_rng(template_hash: str, persona: str, seed: int) -> random.Random:
    digest = hashlib.sha256(f"{template_hash}:{persona}:{int(seed)}".encode("utf-8")).hexdigest()
    return random.Random(int(digest[:16], 16))


def simulation_run_id(template_hash: str, persona: str, seed: int) -> str:
    return "sim-" + stable_hash([template_hash, persona, int(seed)])[:12]


def generate_responses(template: TestTemplate, persona: str, rng: random.Random, attempt_id: str = "simulation") -> ResponseSet:
    p = _persona(persona)
    answers: List[Answer] = []
    for _, _, q in template.iter_questions():
        if p == "PERFECT":
            value = ideal_answer(q)
        elif p == "FAILING":
            value = worst_answer(q)
        else:
            value = sample_answer(q, rng)
        answers.append(Answer(question_id=q.id, value=value))
    return ResponseSet(attempt_id=attempt_id, answers=tuple(answers))


def run_simulation(
    template: TestTemplate,
    persona: str,
    seed: int = 0,
    config: Optional[StrategyConfig] = None,
    *,
    strict_benchmark: bool = False,
) -> SimulationRun:
    """Score one synthetic attempt for ``persona``.

    Identical ``(template, persona, seed)`` always produce an identical run.
    Structure, normaliser and aggregation errors propagate; a configuration error from
    the interpreter is recorded on the run so the ScoreTree is still reported.
    """
    p = _persona(persona)
    if not template.competencies:
        raise EmptyTemplateError(f"template {template.id} has no competencies")
    validate_structure(template)
    template_hash = template.content_hash()
    run_id = simulation_run_id(template_hash, p, seed)
    rng = persona_rng(template_hash, p, seed)

    responses = generate_responses(template, p, rng, attempt_id=run_id)
    tree = aggregate(responses, template)

    interpretation: Optional[InterpretationResult] = None
    interpretation_error: Optional[str] = None
    try:
        interpretation = interpret(tree, template, config, strict_benchmark=strict_benchmark)
    except ConfigurationError as exc:
        log.info("Simulation %s: interpretation skipped (%s)", run_id, exc)
        interpretation_error = f"{type(exc).__name__}: {exc}"

    warnings = tuple(inventory_warnings(template))
    for msg in warnings:
        log.warning("Template %s inventory: %s", template.id, msg)

    log.info("Simulation %s persona=%s seed=%s overall=%.3f", run_id, p, seed, tree.overall)
    return SimulationRun(
        run_id=run_id,
        persona=p,  # type: ignore[arg-type]
        seed=int(seed),
        template_id=template.id,
        template_hash=template_hash,
        responses=responses,
        score_tree=tree,
        interpretation=interpretation,
        interpretation_error=interpretation_error,
        composition=composition(template),
        estimated_duration_min=estimated_duration_min(template),
        warnings=warnings,
    )


def run_batch(
    template: TestTemplate,
    personas: Sequence[str] = PERSONAS,
    seed: int = 0,
    config: Optional[StrategyConfig] = None,
    cancel_event: Optional[threading.Event] = None,
) -> List[SimulationRun]:
    """Run personas in order; on cancellation return the runs completed so far."""
    runs: List[SimulationRun] = []
    for persona in personas:
        if cancel_event is not None and cancel_event.is_set():
            log.info("Simulation batch for %s cancelled after %d of %d persona(s)",
                     template.id, len(runs), len(personas))
            break
        runs.append(run_simulation(template, persona, seed, config))
    return runs


_TRANSITIONS: Dict[str, FrozenSet[str]] = {
    "IDLE": frozenset({"READY"}),
    "READY": frozenset({"SIMULATING", "IDLE"}),
    "SIMULATING": frozenset({"RESULTS", "ERROR"}),
    "RESULTS": frozenset({"STALE", "SIMULATING"}),
    "STALE": frozenset({"SIMULATING"}),
    "ERROR": frozenset({"READY"}),
}


class SimulationSession:
    """Client-observable lifecycle of simulations against one template.

    Staleness is detected on read: ``refresh()`` compares the template's
    current content hash with the hash the last run was tagged with.
    """

    def __init__(self, template: TestTemplate, config: Optional[StrategyConfig] = None):
        self.template = template
        self.config = config
        self.state = "READY" if has_answerable_questions(template) else "IDLE"
        self.error: Optional[str] = None
        self._run: Optional[SimulationRun] = None
        self._lock = threading.Lock()

    def _transition(self, target: str) -> None:
        if target not in _TRANSITIONS.get(self.state, frozenset()):
            raise InvalidTransitionError(f"cannot go from {self.state} to {target}")
        log.debug("Simulation session for %s: %s -> %s", self.template.id, self.state, target)
        self.state = target

    def refresh(self, template: Optional[TestTemplate] = None) -> str:
        with self._lock:
            if template is not None:
                self.template = template
            answerable = has_answerable_questions(self.template)
            if self.state == "IDLE" and answerable:
                self._transition("READY")
            elif self.state == "READY" and not answerable:
                self._transition("IDLE")
            elif self.state == "RESULTS" and self._run is not None:
                if self._run.is_stale(self.template.content_hash()):
                    self._transition("STALE")
            return self.state

    def run(self, persona: str, seed: int = 0) -> SimulationRun:
        with self._lock:
            self._transition("SIMULATING")
            try:
                run = run_simulation(self.template, persona, seed, self.config)
            except Exception as exc:
                log.warning("Simulation for %s failed: %s", self.template.id, exc)
                self.error = f"{type(exc).__name__}: {exc}"
                self._transition("ERROR")
                raise
            self._run = run
            self.error = None
            self._transition("RESULTS")
            return run

    def retry(self) -> str:
        with self._lock:
            self._transition("READY")
            self.error = None
            return self.state

    @property
    def current_run(self) -> Optional[SimulationRun]:
        """The last run, only while it is current."""
        return self._run if self.state == "RESULTS" else None

    @property
    def last_run(self) -> Optional[SimulationRun]:
        return self._run
