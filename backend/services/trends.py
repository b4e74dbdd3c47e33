"""Trend, velocity and work-breakdown aggregation over categorized issues."""

import math
from typing import Optional

from services.categorization import CategorizedSet, CategoryBuckets, is_in_progress_status

NO_DATA_TREND = "No data available"
TREND_INCREASING = "Increasing"
TREND_DECREASING = "Decreasing"
TREND_STABLE = "Stable"

INCREASE_THRESHOLD = 1.1
DECREASE_THRESHOLD = 0.9
RECENT_PERIODS = 2
TOP_TYPES_LIMIT = 3


def round_half_up(value: float, digits: int = 0):
    """Round like a spreadsheet does: 0.5 always goes up.

    Returns an int when digits is 0.
    """
    factor = 10 ** digits
    rounded = math.floor(value * factor + 0.5) / factor
    return int(rounded) if digits == 0 else rounded


def percentage(part: int, total: int) -> int:
    """Whole-number percentage, 0 when total is 0."""
    if total <= 0:
        return 0
    return round_half_up(part / total * 100)


def _number(value) -> float:
    if value is None or isinstance(value, bool):
        return 0
    try:
        return float(value) if isinstance(value, str) else value
    except ValueError:
        return 0


def _velocity_period(sample: dict) -> str:
    return sample.get("sprint") or sample.get("weekEnding") or sample.get("period") or "Period"


def _weekly_period(sample: dict) -> str:
    return sample.get("weekEnding") or sample.get("sprint") or sample.get("period") or "Period"


def _mean(values: list) -> float:
    return sum(values) / len(values)


def calculate_velocity(samples: Optional[list]) -> dict:
    """Average completed work per period and its direction.

    The unit is chosen once for the whole list: story points when any sample
    has positive story points, otherwise completed-item counts.

    Args:
        samples: Ordered list of {period|sprint|weekEnding, completedCount, storyPoints}

    Returns:
        Dict with average, unit, trend, and data ({period, value} per sample)
    """
    if not samples:
        return {
            "average": 0,
            "unit": "items",
            "trend": NO_DATA_TREND,
            "data": []
        }

    has_story_points = any(_number(s.get("storyPoints")) > 0 for s in samples)
    unit = "story points" if has_story_points else "items"
    metric = "storyPoints" if has_story_points else "completedCount"
    values = [_number(s.get(metric)) for s in samples]

    average = round_half_up(_mean(values), 1)

    trend = TREND_STABLE
    recent = values[-RECENT_PERIODS:]
    older = values[:-RECENT_PERIODS]
    if len(recent) >= RECENT_PERIODS and len(older) >= 1:
        recent_avg = _mean(recent)
        older_avg = _mean(older)
        if recent_avg > older_avg * INCREASE_THRESHOLD:
            trend = TREND_INCREASING
        elif recent_avg < older_avg * DECREASE_THRESHOLD:
            trend = TREND_DECREASING

    return {
        "average": average,
        "unit": unit,
        "trend": trend,
        "data": [
            {"period": _velocity_period(sample), "value": value}
            for sample, value in zip(samples, values)
        ]
    }


def summarize_trends(categorized, velocity_samples: Optional[list] = None) -> dict:
    """Tally the sub-level view of a categorization run.

    Args:
        categorized: CategorizedSet, or its sub-level CategoryBuckets directly
        velocity_samples: Optional per-period samples for weeklyMetrics

    Returns:
        Dict with totalItems, byType, byStatus, completionRate, weeklyMetrics, summary
    """
    items: CategoryBuckets = (
        categorized.sub_epic_items if isinstance(categorized, CategorizedSet) else categorized
    )
    all_items = items.all or []

    by_type: dict[str, dict] = {}
    by_status: dict[str, int] = {}

    for issue in all_items:
        issue_type = issue.issue_type or "Unknown"
        counts = by_type.setdefault(issue_type, {"total": 0, "completed": 0, "inProgress": 0})
        counts["total"] += 1
        if issue.resolution:
            counts["completed"] += 1
        elif is_in_progress_status(issue.status):
            counts["inProgress"] += 1

        status = issue.status or "Unknown"
        by_status[status] = by_status.get(status, 0) + 1

    weekly_metrics = [
        {
            "period": _weekly_period(sample),
            "completed": _number(sample.get("completedCount")),
            "storyPoints": _number(sample.get("storyPoints"))
        }
        for sample in velocity_samples or []
    ]

    # sorted() is stable, so equal totals keep first-seen order
    ranked = sorted(by_type.items(), key=lambda entry: entry[1]["total"], reverse=True)
    top_types = [
        {
            "type": issue_type,
            "total": counts["total"],
            "completed": counts["completed"],
            "completionRate": percentage(counts["completed"], counts["total"])
        }
        for issue_type, counts in ranked[:TOP_TYPES_LIMIT]
    ]

    return {
        "totalItems": len(all_items),
        "byType": by_type,
        "byStatus": by_status,
        "completionRate": percentage(len(items.completed), len(all_items)),
        "weeklyMetrics": weekly_metrics,
        "summary": {
            "topTypes": top_types,
            "activeItems": len(items.in_progress),
            "newThisWeek": len(items.new_issues),
            "needingAttention": len(items.needs_attention)
        }
    }


def calculate_work_breakdown(categorized: CategorizedSet) -> dict:
    """Share of completed, in-progress and attention items in the pooled view.

    The buckets can overlap, so the three percentages need not add up to 100.
    """
    completed = len(categorized.completed)
    in_progress = len(categorized.in_progress)
    attention = len(categorized.needs_attention)
    total = completed + in_progress + attention

    return {
        "completedPercentage": percentage(completed, total),
        "inProgressPercentage": percentage(in_progress, total),
        "attentionPercentage": percentage(attention, total)
    }
