"""concierge.telemetry

Append-only routing dataset and offline threshold suggestions.
"""

from concierge.telemetry.dataset import RoutingDatasetSink, RoutingTelemetryEntry, read_entries
from concierge.telemetry.stats import build_stats_report, suggest_threshold

__all__ = ["RoutingDatasetSink", "RoutingTelemetryEntry", "read_entries", "build_stats_report", "suggest_threshold"]
