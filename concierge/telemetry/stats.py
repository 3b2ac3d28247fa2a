"""
Offline threshold tuning over the routing telemetry dataset.

For each route, compares the semantic router's pick against the route that
finally handled the message: a match is a true positive, a mismatch a false
positive. Suggested thresholds move toward the 20th percentile of the true
positive scores, or split the true/false positive distributions when enough
false positives exist.
"""

import os
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Sequence

import numpy as np

MIN_TRUE_POSITIVES = 8
MIN_FALSE_POSITIVES = 5
THRESHOLD_FLOOR = 0.05
THRESHOLD_CEILING = 0.95
MIN_THRESHOLD_CHANGE = 0.01


def quantile(values: Sequence[float], q: float) -> float:
    """Linear-interpolated quantile; 0.0 for an empty sequence."""
    if len(values) == 0:
        return 0.0
    q = max(0.0, min(1.0, q))
    return float(np.quantile(np.asarray(values, dtype=float), q))


def suggest_threshold(
    current: float,
    true_positive_scores: Sequence[float],
    false_positive_scores: Sequence[float],
) -> Optional[float]:
    """Suggested threshold, or None when there is too little data or no meaningful change."""
    if len(true_positive_scores) < MIN_TRUE_POSITIVES:
        return None

    low_true_positive = quantile(true_positive_scores, 0.2)
    if len(false_positive_scores) < MIN_FALSE_POSITIVES:
        candidate = max(current, low_true_positive - 0.01)
    else:
        high_false_positive = quantile(false_positive_scores, 0.8)
        if high_false_positive < low_true_positive:
            candidate = (high_false_positive + low_true_positive) / 2
        else:
            candidate = low_true_positive - 0.01

    rounded = round(max(THRESHOLD_FLOOR, min(THRESHOLD_CEILING, candidate)), 3)
    if abs(rounded - current) < MIN_THRESHOLD_CHANGE:
        return None
    return rounded


@dataclass
class RouteStats:
    name: str
    threshold: float
    selected: int = 0
    hit: int = 0
    false_positive: int = 0
    tp_scores: List[float] = field(default_factory=list)
    fp_scores: List[float] = field(default_factory=list)
    score_sum: float = 0.0

    @property
    def precision(self) -> float:
        return self.hit / self.selected if self.selected else 0.0

    @property
    def avg_score(self) -> float:
        return self.score_sum / self.selected if self.selected else 0.0

    @property
    def suggested(self) -> Optional[float]:
        return suggest_threshold(self.threshold, self.tp_scores, self.fp_scores)

    def to_row(self) -> str:
        suggested = self.suggested
        return " | ".join([
            f"- {self.name}",
            f"selected={self.selected}",
            f"hit={self.hit}",
            f"fp={self.false_positive}",
            f"precision={self.precision * 100:.1f}%",
            f"avg_score={self.avg_score:.3f}",
            f"threshold={self.threshold:.3f}",
            f"suggested={'no change' if suggested is None else f'{suggested:.3f}'}",
        ])


def collect_route_stats(
    entries: Iterable[Dict[str, Any]],
    thresholds: Sequence[Dict[str, Any]],
) -> Dict[str, RouteStats]:
    by_route = {t["name"]: RouteStats(name=t["name"], threshold=float(t["threshold"])) for t in thresholds}
    for entry in entries:
        semantic = entry.get("semantic")
        if not isinstance(semantic, dict):
            continue
        stats = by_route.get(semantic.get("route"))
        score = semantic.get("score")
        if stats is None or not isinstance(score, (int, float)):
            continue
        stats.selected += 1
        stats.score_sum += score
        if entry.get("final_handler") == semantic.get("route"):
            stats.hit += 1
            stats.tp_scores.append(float(score))
        else:
            stats.false_positive += 1
            stats.fp_scores.append(float(score))
    return by_route


def count_filtered(entries: Sequence[Dict[str, Any]]) -> int:
    """Entries where the context filter actually narrowed the candidate set."""
    filtered = 0
    for entry in entries:
        allowed = entry.get("route_filter_allowed") or []
        candidates = entry.get("route_candidates") or []
        if 0 < len(allowed) < len(candidates):
            filtered += 1
    return filtered


def _display_path(path: str) -> str:
    try:
        return os.path.relpath(path)
    except ValueError:
        # other drive on Windows
        return os.path.abspath(path)


def build_stats_report(
    entries: Sequence[Dict[str, Any]],
    thresholds: Sequence[Dict[str, Any]],
    dataset_path: str = "",
) -> str:
    display_path = _display_path(dataset_path) if dataset_path else "(memory)"
    lines = ["Intent router stats", f"dataset: {display_path}"]
    if not entries:
        lines.append("No samples yet.")
        return "\n".join(lines)

    lines.append(f"samples: {len(entries)}")
    lines.append(f"route_filter applied: {count_filtered(entries)}/{len(entries)}")
    lines.append("")
    lines.append("Per route:")
    by_route = collect_route_stats(entries, thresholds)
    for threshold in thresholds:
        lines.append(by_route[threshold["name"]].to_row())
    return "\n".join(lines)
