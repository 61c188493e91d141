"""Exception taxonomy for the scoring core.

Input errors are caller-correctable and surfaced verbatim.  Configuration
errors mean strategy data is missing and the caller must supply it; they are
never answered by silently switching strategy.  Statistical degeneracy is
recovered locally by the reliability engine.  Structure errors are fatal.
"""
from __future__ import annotations

from typing import Optional


class ScoringError(Exception):
    """Base class for every error raised by ``competency_core``."""


# ---- input errors ----
class InputError(ScoringError):
    pass


class InvalidAnswerFormat(InputError):
    def __init__(self, question_id: str, message: str):
        super().__init__(f"{question_id}: {message}")
        self.question_id = question_id


class OutOfRangeAnswer(InputError):
    def __init__(self, question_id: str, message: str):
        super().__init__(f"{question_id}: {message}")
        self.question_id = question_id


class EmptyTemplateError(InputError):
    pass


class NoResponsesError(InputError):
    pass


class IncompleteResponseSet(InputError):
    def __init__(self, missing: list[str]):
        super().__init__(f"{len(missing)} question(s) neither answered nor skipped: {', '.join(missing[:5])}")
        self.missing = list(missing)


# ---- configuration errors ----
class ConfigurationError(ScoringError):
    pass


class MissingJobConfigError(ConfigurationError):
    pass


class MissingTeamConfigError(ConfigurationError):
    pass


class InsufficientTeamSampleError(ConfigurationError):
    def __init__(self, sample_size: int, minimum: int):
        super().__init__(f"team benchmark sample size {sample_size} is below minimum {minimum}")
        self.sample_size = sample_size
        self.minimum = minimum


class StrategyMismatchError(ConfigurationError):
    pass


class InvalidBenchmarkError(ConfigurationError):
    pass


# ---- statistical degeneracy ----
class StatisticalDegeneracyError(ScoringError):
    pass


class InsufficientVarianceError(StatisticalDegeneracyError):
    pass


# ---- fatal ----
class TemplateStructureError(ScoringError):
    def __init__(self, message: str, node_id: Optional[str] = None):
        super().__init__(f"{node_id}: {message}" if node_id else message)
        self.node_id = node_id


class InvalidTransitionError(ScoringError):
    pass
