"""Parallel fan-out of face × person comparisons."""

from __future__ import annotations

import logging
import threading
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Sequence

from py_missingwatch.face_extractor import DetectedFace
from py_missingwatch.pipeline.comparison import ComparisonClient, ComparisonResult, ReferenceResolver

LOGGER = logging.getLogger(__name__)

DEFAULT_MAX_WORKERS = 8


@dataclass(frozen=True)
class ComparisonTask:
    person: Mapping[str, Any]
    face: DetectedFace
    face_index: int
    total_faces: int

    @property
    def person_id(self) -> Optional[str]:
        return self.person.get("id")


@dataclass
class ComparisonOutcome:
    """Settlement of one task: either a result or an error, never both."""

    task: ComparisonTask
    result: Optional[ComparisonResult] = None
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.result is not None

    @property
    def confidence(self) -> float:
        return self.result.confidence if self.result else 0.0


@dataclass
class DispatchReport:
    succeeded: List[ComparisonOutcome] = field(default_factory=list)
    failed: List[ComparisonOutcome] = field(default_factory=list)

    @property
    def total(self) -> int:
        return len(self.succeeded) + len(self.failed)


CompareFn = Callable[[ComparisonTask], ComparisonResult]


def make_compare_fn(client: ComparisonClient, resolve_reference: ReferenceResolver) -> CompareFn:
    """Bind a comparison client to a reference-image resolver.

    Each person's reference is resolved once per dispatcher and shared across
    worker threads.
    """
    cache: Dict[Any, str] = {}
    lock = threading.Lock()

    def _reference(person: Mapping[str, Any]) -> str:
        key = person.get("id") or id(person)
        with lock:
            if key in cache:
                return cache[key]
        url = resolve_reference(person)
        with lock:
            cache.setdefault(key, url)
        return url

    def _compare(task: ComparisonTask) -> ComparisonResult:
        return client.compare(
            task.person,
            task.face.face_image_b64,
            _reference(task.person),
            face_index=task.face_index,
            total_faces=task.total_faces,
        )

    return _compare


def build_tasks(faces: Sequence[DetectedFace], persons: Iterable[Mapping[str, Any]], total_faces: Optional[int] = None) -> List[ComparisonTask]:
    persons = list(persons)
    total = len(faces) if total_faces is None else total_faces
    return [
        ComparisonTask(person=person, face=face, face_index=face_idx, total_faces=total)
        for face_idx, face in enumerate(faces, start=1)
        for person in persons
    ]


def dispatch_tasks(
    tasks: Sequence[ComparisonTask],
    compare_fn: CompareFn,
    max_workers: int = DEFAULT_MAX_WORKERS,
    on_settled: Optional[Callable[[ComparisonOutcome], None]] = None,
) -> DispatchReport:
    """Run every task concurrently and wait for all of them to settle.

    One failing call never cancels the others; its error is kept on the
    outcome. Successful outcomes are ordered by confidence, highest first.
    """
    report = DispatchReport()
    if not tasks:
        return report
    workers = max(1, min(max_workers, len(tasks)))
    with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="compare") as pool:
        futures = {pool.submit(compare_fn, task): task for task in tasks}
        for future in as_completed(futures):
            task = futures[future]
            try:
                outcome = ComparisonOutcome(task=task, result=future.result())
            except Exception as exc:
                LOGGER.warning(
                    "Comparison failed for person=%s face=%d: %s",
                    task.person.get("name"),
                    task.face_index,
                    exc,
                )
                outcome = ComparisonOutcome(task=task, error=str(exc))
            (report.succeeded if outcome.ok else report.failed).append(outcome)
            if on_settled is not None:
                on_settled(outcome)
    report.succeeded.sort(key=lambda o: o.confidence, reverse=True)
    LOGGER.info(
        "Dispatched %d comparisons: %d succeeded, %d failed",
        report.total,
        len(report.succeeded),
        len(report.failed),
    )
    return report


def dispatch_comparisons(
    faces: Sequence[DetectedFace],
    persons: Iterable[Mapping[str, Any]],
    compare_fn: CompareFn,
    max_workers: int = DEFAULT_MAX_WORKERS,
) -> DispatchReport:
    return dispatch_tasks(build_tasks(faces, persons), compare_fn, max_workers=max_workers)


def accepted(outcomes: Iterable[ComparisonOutcome], min_confidence: float) -> List[ComparisonOutcome]:
    """Successful `is_match` outcomes at or above the confidence floor."""
    return [
        outcome
        for outcome in outcomes
        if outcome.result is not None and outcome.result.is_match and outcome.result.confidence >= min_confidence
    ]


def best_per_person(outcomes: Iterable[ComparisonOutcome]) -> List[ComparisonOutcome]:
    """Keep the highest-confidence outcome for each person, ranked descending."""
    best: Dict[Any, ComparisonOutcome] = {}
    for outcome in outcomes:
        key = outcome.task.person_id or id(outcome.task.person)
        current = best.get(key)
        if current is None or outcome.confidence > current.confidence:
            best[key] = outcome
    return sorted(best.values(), key=lambda o: o.confidence, reverse=True)
