"""Missing-person match pipeline.

This package provides a UI-agnostic engine that turns surveillance footage
into ranked candidate matches: sample frames, extract faces, drop repeats,
compare each face with each missing person, and route the verdicts.
"""

from __future__ import annotations

from py_missingwatch.config import AnalysisConfig, load_analysis_config
from py_missingwatch.pipeline.comparison import (
    ComparisonClient,
    ComparisonResult,
    parse_verdict,
)
from py_missingwatch.pipeline.dispatcher import (
    ComparisonOutcome,
    ComparisonTask,
    DispatchReport,
    accepted,
    best_per_person,
    dispatch_comparisons,
    make_compare_fn,
)
from py_missingwatch.pipeline.engine import (
    AnalysisContext,
    AnalysisResult,
    compare_and_record,
    extract_unique_faces,
    run_video_analysis,
)
from py_missingwatch.pipeline.routing import AlertType, MatchStatus, alert_message, route

__all__ = [
    "AlertType",
    "AnalysisConfig",
    "AnalysisContext",
    "AnalysisResult",
    "ComparisonClient",
    "ComparisonOutcome",
    "ComparisonResult",
    "ComparisonTask",
    "DispatchReport",
    "MatchStatus",
    "accepted",
    "alert_message",
    "best_per_person",
    "compare_and_record",
    "dispatch_comparisons",
    "extract_unique_faces",
    "load_analysis_config",
    "make_compare_fn",
    "parse_verdict",
    "route",
    "run_video_analysis",
]
