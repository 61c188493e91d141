from __future__ import annotations
from dataclasses import dataclass, field, asdict
from typing import Dict, Iterator, List, Literal, Mapping, Optional, Tuple, Union
import hashlib, json

AnswerType = Literal["LIKERT", "MCQ", "SJT", "NUMERIC"]
Strategy = Literal["UNIVERSAL_BASELINE", "TARGETED_FIT", "DYNAMIC_GAP_ANALYSIS"]
ReliabilityStatus = Literal["GOOD", "ACCEPTABLE", "POOR", "INSUFFICIENT_DATA"]
Persona = Literal["PERFECT", "RANDOM", "FAILING"]
SimulationState = Literal["IDLE", "READY", "SIMULATING", "RESULTS", "STALE", "ERROR"]

ANSWER_TYPES: Tuple[str, ...] = ("LIKERT", "MCQ", "SJT", "NUMERIC")
STRATEGIES: Tuple[str, ...] = ("UNIVERSAL_BASELINE", "TARGETED_FIT", "DYNAMIC_GAP_ANALYSIS")
PERSONAS: Tuple[str, ...] = ("PERFECT", "RANDOM", "FAILING")
BIG_FIVE_TRAITS: Tuple[str, ...] = (
    "OPENNESS", "CONSCIENTIOUSNESS", "EXTRAVERSION", "AGREEABLENESS", "NEUROTICISM",
)


def stable_hash(payload: object) -> str:
    """SHA-256 over the canonical JSON form of ``payload``."""

    text = json.dumps(payload, sort_keys=True, separators=(",", ":"), default=str)
    return hashlib.sha256(text.encode("utf-8")).hexdigest()


# ---- template tree (owned by template authoring) ----
@dataclass
class Rubric:
    answer_type: AnswerType = "LIKERT"
    scale_length: int = 5
    options: int = 0
    correct: Optional[int] = None
    partial_credit: Dict[int, float] = field(default_factory=dict)
    keys: Dict[int, float] = field(default_factory=dict)
    min_value: float = 0.0
    max_value: float = 1.0
    reversed: bool = False

    def option_count(self) -> int:
        if self.options:
            return int(self.options)
        seen = list(self.keys) + list(self.partial_credit)
        if self.correct is not None:
            seen.append(self.correct)
        return (max(seen) + 1) if seen else 0


@dataclass
class Question:
    id: str
    rubric: Rubric = field(default_factory=Rubric)
    weight: float = 1.0
    text: str = ""
    time_limit_sec: Optional[int] = None


@dataclass
class Indicator:
    id: str
    competency_id: str
    questions: List[Question] = field(default_factory=list)
    weight: float = 1.0
    title: str = ""


@dataclass
class Competency:
    id: str
    indicators: List[Indicator] = field(default_factory=list)
    weight: float = 1.0
    label: Dict[str, str] = field(default_factory=dict)
    big_five_trait: Optional[str] = None
    parent_id: Optional[str] = None

    def question_count(self) -> int:
        return sum(len(ind.questions) for ind in self.indicators)


@dataclass
class TestTemplate:
    __test__ = False  # not a pytest class

    id: str
    competencies: List[Competency] = field(default_factory=list)
    strategy: Strategy = "UNIVERSAL_BASELINE"
    strategy_config: Dict[str, object] = field(default_factory=dict)
    version: int = 1

    def iter_questions(self) -> Iterator[Tuple[Competency, Indicator, Question]]:
        for comp in self.competencies:
            for ind in comp.indicators:
                for q in ind.questions:
                    yield comp, ind, q

    def question_ids(self) -> List[str]:
        return [q.id for _, _, q in self.iter_questions()]

    def competency(self, competency_id: str) -> Optional[Competency]:
        return next((c for c in self.competencies if c.id == competency_id), None)

    def content_hash(self) -> str:
        return stable_hash(asdict(self))


# ---- responses (from the test-taking collaborator) ----
@dataclass(frozen=True)
class Answer:
    question_id: str
    value: object = None
    skipped: bool = False
    time_spent_sec: Optional[float] = None

    @property
    def answered(self) -> bool:
        return not self.skipped and self.value is not None


@dataclass(frozen=True)
class ResponseSet:
    attempt_id: str
    answers: Tuple[Answer, ...] = ()

    def __post_init__(self) -> None:
        object.__setattr__(self, "answers", tuple(self.answers))

    def by_question(self) -> Dict[str, Answer]:
        # later answers for the same question replace earlier ones
        return {a.question_id: a for a in self.answers}

    def missing_questions(self, template: TestTemplate) -> List[str]:
        present = self.by_question()
        return [qid for qid in template.question_ids() if qid not in present]

    def content_hash(self) -> str:
        return stable_hash([asdict(a) for a in self.answers])


# ---- external benchmark snapshots ----
@dataclass(frozen=True)
class JobRequirements:
    onet_code: str
    requirements: Mapping[str, float] = field(default_factory=dict)


@dataclass(frozen=True)
class TeamBenchmark:
    team_id: str
    averages: Mapping[str, float] = field(default_factory=dict)
    sample_size: int = 0


StrategyConfig = Union[JobRequirements, TeamBenchmark]


# ---- derived: score tree ----
@dataclass(frozen=True)
class QuestionScore:
    question_id: str
    score: Optional[float]
    weight: float


@dataclass(frozen=True)
class IndicatorScore:
    indicator_id: str
    competency_id: str
    score: Optional[float]
    weight: float
    answered_count: int
    questions: Tuple[QuestionScore, ...] = ()


@dataclass(frozen=True)
class CompetencyScore:
    competency_id: str
    score: Optional[float]
    weight: float
    normalized_weight: Optional[float]
    answered_count: int
    indicators: Tuple[IndicatorScore, ...] = ()
    label: Mapping[str, str] = field(default_factory=dict)
    big_five_trait: Optional[str] = None


@dataclass(frozen=True)
class ScoreTree:
    attempt_id: str
    template_id: str
    template_hash: str
    overall: float
    competencies: Tuple[CompetencyScore, ...] = ()

    def competency(self, competency_id: str) -> Optional[CompetencyScore]:
        return next((c for c in self.competencies if c.competency_id == competency_id), None)

    def competency_scores(self) -> Dict[str, Optional[float]]:
        return {c.competency_id: c.score for c in self.competencies}

    def indicator_scores(self) -> Dict[str, Optional[float]]:
        return {i.indicator_id: i.score for c in self.competencies for i in c.indicators}


# ---- derived: reliability ----
@dataclass(frozen=True)
class ItemStatistic:
    item_id: str
    mean: float
    variance: float
    item_total_correlation: Optional[float]
    alpha_if_deleted: Optional[float] = None
    difficulty_flag: str = "NONE"
    discrimination_flag: str = "NONE"


@dataclass(frozen=True)
class ReliabilityReport:
    competency_id: str
    alpha: Optional[float]
    status: ReliabilityStatus
    sample_size: int
    item_count: int
    provisional: bool
    items: Tuple[ItemStatistic, ...] = ()
    sem: Optional[float] = None
    scope: Literal["COMPETENCY", "TRAIT"] = "COMPETENCY"
    excluded_incomplete: int = 0
    note: str = ""

    @property
    def actionable(self) -> bool:
        """Only non-provisional reports with an alpha may drive remediation."""
        return not self.provisional and self.alpha is not None

    def flagged_items(self) -> List[ItemStatistic]:
        return [it for it in self.items if it.discrimination_flag != "NONE" or it.difficulty_flag != "NONE"]


@dataclass(frozen=True)
class ConfidenceInterval:
    competency_id: str
    score: float
    low: float
    high: float
    sem: float
    alpha: float
    provisional: bool


# ---- derived: response consistency (one attempt) ----
@dataclass(frozen=True)
class ConsistencyReport:
    attempt_id: str
    consistency_score: float
    speed_anomaly_rate: float
    straight_lining_rate: float
    intra_competency_variance: float
    flags: Tuple[str, ...] = ()


# ---- derived: interpretation (tagged union keyed by strategy) ----
@dataclass(frozen=True)
class CompetencyBand:
    competency_id: str
    score: Optional[float]
    level: Optional[str]
    label: Optional[str]


@dataclass(frozen=True)
class BaselinePayload:
    ranked: Tuple[Tuple[str, Optional[float]], ...]
    bands: Tuple[CompetencyBand, ...]
    weight_stddev: float
    score_stddev: float
    balance_ratio: Optional[float]
    over_measured: Tuple[str, ...] = ()
    under_measured: Tuple[str, ...] = ()
    strengths: Tuple[str, ...] = ()
    development_areas: Tuple[str, ...] = ()


@dataclass(frozen=True)
class FitRow:
    competency_id: str
    score: float
    requirement: float
    gap: float
    status: Literal["STRENGTH", "MEETS", "BELOW", "DEVELOPMENT"]


@dataclass(frozen=True)
class JobFitPayload:
    onet_code: str
    job_fit: Optional[float]
    job_fit_percent: Optional[float]
    rows: Tuple[FitRow, ...]
    development_areas: Tuple[str, ...]
    strengths: Tuple[str, ...]
    unmatched: Tuple[str, ...]
    effective_threshold: float
    meets_requirements: bool


@dataclass(frozen=True)
class GapRow:
    competency_id: str
    score: float
    team_average: float
    gap: float
    contribution: Literal["SATURATION", "DIVERSITY", "GAP"]


@dataclass(frozen=True)
class GapAnalysisPayload:
    team_id: str
    sample_size: int
    rows: Tuple[GapRow, ...]
    overall_gap: Optional[float]
    unreliable_benchmark: bool
    big_five_profile: Mapping[str, float] = field(default_factory=dict)


Payload = Union[BaselinePayload, JobFitPayload, GapAnalysisPayload]

PAYLOAD_BY_STRATEGY: Dict[str, type] = {
    "UNIVERSAL_BASELINE": BaselinePayload,
    "TARGETED_FIT": JobFitPayload,
    "DYNAMIC_GAP_ANALYSIS": GapAnalysisPayload,
}


@dataclass(frozen=True)
class InterpretationResult:
    strategy: Strategy
    payload: Payload

    def __post_init__(self) -> None:
        expected = PAYLOAD_BY_STRATEGY.get(self.strategy)
        if expected is None or not isinstance(self.payload, expected):
            raise TypeError(f"payload {type(self.payload).__name__} does not match strategy {self.strategy}")


# ---- derived: simulation ----
@dataclass(frozen=True)
class SimulationRun:
    run_id: str
    persona: Persona
    seed: int
    template_id: str
    template_hash: str
    responses: ResponseSet
    score_tree: ScoreTree
    interpretation: Optional[InterpretationResult] = None
    interpretation_error: Optional[str] = None
    composition: Mapping[str, int] = field(default_factory=dict)
    estimated_duration_min: int = 0
    warnings: Tuple[str, ...] = ()

    def is_stale(self, current_hash: str) -> bool:
        return current_hash != self.template_hash
