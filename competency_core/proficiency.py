# competency_core/proficiency.py
from __future__ import annotations
from typing import Optional

_LABELS = {
    "EXPERT": {"en": "Expert", "ru": "Эксперт"},
    "ADVANCED": {"en": "Advanced", "ru": "Опытный"},
    "PROFICIENT": {"en": "Proficient", "ru": "Компетентный"},
    "DEVELOPING": {"en": "Developing", "ru": "Развивающийся"},
    "BEGINNING": {"en": "Beginning", "ru": "Начальный"},
}


def proficiency_level(score: Optional[float]) -> Optional[str]:
    if score is None: return None
    s = float(score)
    if s >= 0.85: return "EXPERT"
    if s >= 0.70: return "ADVANCED"
    if s >= 0.50: return "PROFICIENT"
    if s >= 0.30: return "DEVELOPING"
    return "BEGINNING"


def proficiency_label(score: Optional[float], locale: str = "en") -> Optional[str]:
    level = proficiency_level(score)
    if level is None: return None
    labels = _LABELS[level]
    return labels.get((locale or "en").lower(), labels["en"])
