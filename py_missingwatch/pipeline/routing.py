"""Confidence-based routing of comparison verdicts into matches and alerts."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Optional

from py_missingwatch.config import ACCEPT_THRESHOLD, HIGH_PRIORITY_THRESHOLD
from py_missingwatch.pipeline.comparison import ComparisonResult


class MatchStatus(str, Enum):
    PENDING = "pending"
    HIGH_PRIORITY = "high_priority"
    CONFIRMED = "confirmed"
    DISMISSED = "dismissed"


class AlertType(str, Enum):
    POTENTIAL_MATCH = "potential_match"
    HIGH_PRIORITY_MATCH = "high_priority_match"


@dataclass(frozen=True)
class RoutingDecision:
    accepted: bool
    status: Optional[MatchStatus] = None
    alert_type: Optional[AlertType] = None


REJECTED = RoutingDecision(accepted=False)


def route(
    result: ComparisonResult,
    accept: float = ACCEPT_THRESHOLD,
    high_priority: float = HIGH_PRIORITY_THRESHOLD,
) -> RoutingDecision:
    """Decide whether a verdict becomes a match and how urgent it is.

    Only verdicts flagged `is_match` with confidence >= `accept` are kept;
    those at or above `high_priority` are escalated.
    """
    if not result.is_match or result.confidence < accept:
        return REJECTED
    if result.confidence >= high_priority:
        return RoutingDecision(True, MatchStatus.HIGH_PRIORITY, AlertType.HIGH_PRIORITY_MATCH)
    return RoutingDecision(True, MatchStatus.PENDING, AlertType.POTENTIAL_MATCH)


def format_pct(value: float) -> str:
    return f"{value:.0f}" if float(value).is_integer() else f"{value:.1f}"


def alert_message(person_name: str, confidence: float, reasoning: str = "") -> str:
    message = f"Potential match detected for {person_name} with {format_pct(confidence)}% confidence."
    if reasoning:
        message = f"{message} {reasoning}"
    return message
