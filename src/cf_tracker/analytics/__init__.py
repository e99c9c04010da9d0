"""Statistics and inactivity analysis over normalized Codeforces data."""

from .aggregator import (
    HeatmapDay,
    PeriodSummary,
    build_submission_heatmap,
    compute_statistics,
    filter_contests,
    summarize_period,
    unique_accepted,
)
from .inactivity import DEFAULT_THRESHOLD_DAYS, apply_inactivity, is_inactive, last_submission_at

__all__ = [
    "HeatmapDay",
    "PeriodSummary",
    "build_submission_heatmap",
    "compute_statistics",
    "filter_contests",
    "summarize_period",
    "unique_accepted",
    "DEFAULT_THRESHOLD_DAYS",
    "apply_inactivity",
    "is_inactive",
    "last_submission_at",
]
