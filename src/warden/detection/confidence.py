from __future__ import annotations

from ..constants import HIGH_CONFIDENCE, MEDIUM_CONFIDENCE


def clamp(value: float) -> float:
    return max(0.0, min(1.0, float(value)))


def confidence_level(confidence: float) -> str:
    if confidence >= HIGH_CONFIDENCE:
        return "High"
    if confidence >= MEDIUM_CONFIDENCE:
        return "Medium"
    return "Low"


def format_confidence(confidence: float) -> str:
    return f"{confidence_level(confidence)} ({round(clamp(confidence) * 100)}%)"
