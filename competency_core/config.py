from __future__ import annotations
import os, json, pathlib


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw.strip())
    except ValueError:
        return default


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return float(raw.strip())
    except ValueError:
        return default


# reliability (classical test theory)
RELIABILITY_MIN_SAMPLE: int = 30
RESPONSE_COMPLETENESS_THRESHOLD: float = 0.9
ALPHA_GOOD: float = 0.80
ALPHA_ACCEPTABLE: float = 0.70
DIFFICULTY_TOO_HARD: float = 0.2
DIFFICULTY_TOO_EASY: float = 0.9
DISCRIMINATION_CRITICAL: float = 0.1
DISCRIMINATION_GOOD: float = 0.25
RELIABILITY_MAX_WORKERS: int = 4
CI_Z: float = 1.96

# baseline discovery
BASELINE_STRENGTH_THRESHOLD: float = 0.75
BASELINE_DEVELOPMENT_THRESHOLD: float = 0.40
BASELINE_MEASURE_TOLERANCE: float = 0.5

# targeted fit
JOB_FIT_DEV_THRESHOLD: float = 0.15
JOB_FIT_STRENGTH_MARGIN: float = 0.10
JOB_FIT_BASE_THRESHOLD: float = 0.5
JOB_FIT_STRICTNESS_MAX_ADJUSTMENT: float = 0.3
JOB_FIT_DEFAULT_STRICTNESS: int = 50

# dynamic gap analysis
TEAM_MIN_SAMPLE: int = 3
TEAM_SATURATION_THRESHOLD: float = 0.75
TEAM_DIVERSITY_THRESHOLD: float = 0.5

# response consistency (per attempt)
CONSISTENCY_MIN_RESPONSE_SEC: float = 3.0
CONSISTENCY_SPEED_FLAG_RATE: float = 0.2
STRAIGHT_LINING_THRESHOLD: float = 0.70
CONSISTENCY_MIN_ANSWERS_FOR_VARIANCE: int = 3
CONSISTENCY_VARIANCE_LOW: float = 0.05
CONSISTENCY_VARIANCE_HIGH: float = 0.4

# simulation
SIM_DEFAULT_SECONDS_PER_QUESTION: int = 60
SIM_MIN_QUESTIONS_PER_COMPETENCY: int = 3

DEBUG_TRACE: bool = False
TRACE_FIELDS: tuple[str, ...] = (
    "competency",
    "indicator",
    "answered",
    "score",
    "weight",
)
# // env overrides for staging/ops; defaults match the documented policy.
RELIABILITY_MIN_SAMPLE = _env_int("RELIABILITY_MIN_SAMPLE", RELIABILITY_MIN_SAMPLE)
RELIABILITY_MAX_WORKERS = _env_int("RELIABILITY_MAX_WORKERS", RELIABILITY_MAX_WORKERS)
RESPONSE_COMPLETENESS_THRESHOLD = _env_float("RESPONSE_COMPLETENESS_THRESHOLD", RESPONSE_COMPLETENESS_THRESHOLD)
JOB_FIT_DEV_THRESHOLD = _env_float("JOB_FIT_DEV_THRESHOLD", JOB_FIT_DEV_THRESHOLD)
TEAM_MIN_SAMPLE = _env_int("TEAM_MIN_SAMPLE", TEAM_MIN_SAMPLE)
SIM_MIN_QUESTIONS_PER_COMPETENCY = _env_int("SIM_MIN_QUESTIONS_PER_COMPETENCY", SIM_MIN_QUESTIONS_PER_COMPETENCY)
STRAIGHT_LINING_THRESHOLD = _env_float("STRAIGHT_LINING_THRESHOLD", STRAIGHT_LINING_THRESHOLD)
DEBUG_TRACE = _env_bool("DEBUG_TRACE", False)

_OVERRIDABLE: tuple[str, ...] = (
    "RELIABILITY_MIN_SAMPLE",
    "RESPONSE_COMPLETENESS_THRESHOLD",
    "JOB_FIT_DEV_THRESHOLD",
    "JOB_FIT_STRENGTH_MARGIN",
    "TEAM_MIN_SAMPLE",
    "SIM_MIN_QUESTIONS_PER_COMPETENCY",
)


def load_config(path: str = "config.json") -> dict:
    """Merge an optional JSON file with environment overrides.

    Only the keys in ``_OVERRIDABLE`` are honoured; values keep the type of the
    module default.
    """
    cfg: dict = {}
    p = pathlib.Path(path)
    if p.exists():
        try:
            raw = json.loads(p.read_text(encoding="utf-8"))
        except (OSError, ValueError):
            raw = {}
        if isinstance(raw, dict):
            cfg.update({k: v for k, v in raw.items() if k in _OVERRIDABLE})
    for key in _OVERRIDABLE:
        default = globals()[key]
        if os.getenv(key):
            cfg[key] = _env_float(key, default) if isinstance(default, float) else _env_int(key, default)
    return cfg


def setting(name: str, cfg: dict | None = None):
    """Read a setting from ``cfg`` falling back to the module default."""
    if cfg and name in cfg:
        return cfg[name]
    return globals()[name]
