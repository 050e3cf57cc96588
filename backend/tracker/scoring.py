"""Progress scoring utilities.

Contains utilities for:
- computing the per-task completion ratio (guarded against a zero target),
- aggregating a day's tasks into a single 0-100 completion score,
- classifying a score into a motivational tier,
- counting the current streak of qualifying days from recent daily logs,
- building the insight summary shown next to the score.

Every function here is pure: tasks and logs come in as plain mappings
(``{"target_value": ..., "current_value": ...}`` and
``{"date": ..., "completion_score": ...}``) and nothing is stored or mutated.
"""

import math
from datetime import date, datetime
from typing import Dict, Any, Mapping, Sequence

# A task whose target is not positive has no defined ratio; it counts as 0% done.
ZERO_TARGET_RATIO = 0.0

STREAK_THRESHOLD = 80.0
RECENT_LOG_LIMIT = 7

# (lower bound, tier, message, emoji), highest band first.
TIERS = (
    (90.0, "top", "Exceptional! You're crushing it today!", "\U0001F525"),
    (70.0, "high", "Great momentum! Keep pushing forward!", "\U0001F4AA"),
    (50.0, "mid", "You're halfway there! Don't stop now!", "\u26A1"),
    (25.0, "low", "Good start! Time to accelerate!", "\U0001F680"),
    (0.0, "baseline", "Every journey begins with a single step!", "\U0001F31F"),
)


class MalformedDailyLogError(ValueError):
    """A stored daily log has a missing or unusable completion score."""


def _ensure_date(d: Any) -> date:
    """Normalize an input to a `datetime.date`.

    Accepts:
      - date instance (datetime is truncated to its date)
      - ISO-like date string, optionally with time (e.g. '2025-11-30' or '2025-11-30T12:00:00')
      - raises ValueError for invalid inputs
    """
    if isinstance(d, datetime):
        return d.date()
    if isinstance(d, date):
        return d
    if isinstance(d, str):
        try:
            return datetime.fromisoformat(d).date()
        except ValueError:
            try:
                return datetime.fromisoformat(d.split("T", 1)[0]).date()
            except ValueError:
                raise ValueError(f"Invalid date string: {d!r}")
    raise ValueError(f"Invalid date type: {type(d)}")


def task_ratio(task: Mapping[str, Any]) -> float:
    """Return how far a task is toward its target, clamped to [0, 1].

    Over-completion is clamped, so a task at 150% of target weighs the same
    as a task exactly at target. A target of 0 (or below) yields
    ``ZERO_TARGET_RATIO`` instead of dividing.
    """
    target = float(task["target_value"])
    current = float(task["current_value"])
    if target <= 0:
        return ZERO_TARGET_RATIO
    return max(0.0, min(current / target, 1.0))


def task_percentage(task: Mapping[str, Any]) -> float:
    """Per-task completion as a percentage (0-100)."""
    return task_ratio(task) * 100.0


def calculate_completion_score(tasks: Sequence[Mapping[str, Any]]) -> float:
    """Aggregate tasks into a single completion score in [0, 100].

    The score is the mean of the per-task ratios times 100, not rounded.
    An empty task collection scores exactly 0.
    """
    if not tasks:
        return 0.0
    total = sum(task_ratio(t) for t in tasks)
    return (total / len(tasks)) * 100.0


def motivational_tier(score: float) -> Dict[str, str]:
    """Classify a completion score into one of the fixed tiers.

    Bands are checked highest first and lower bounds are inclusive, so a
    score of exactly 90 is "top" while 89.999 is "high".
    """
    for lower, tier, message, emoji in TIERS:
        if score >= lower:
            return {"tier": tier, "message": message, "emoji": emoji}
    _, tier, message, emoji = TIERS[-1]
    return {"tier": tier, "message": message, "emoji": emoji}


def validate_log_score(log: Mapping[str, Any]) -> float:
    """Return the completion score stored in a daily log.

    Raises MalformedDailyLogError when the score is missing, not a number,
    not finite, or outside 0-100. Malformed history is rejected rather than
    dropped or defaulted.
    """
    if "completion_score" not in log or log["completion_score"] is None:
        raise MalformedDailyLogError(f"Daily log {log.get('date')!r} has no completion_score")
    raw = log["completion_score"]
    if isinstance(raw, bool) or not isinstance(raw, (int, float)):
        raise MalformedDailyLogError(
            f"Daily log {log.get('date')!r} has non-numeric completion_score: {raw!r}"
        )
    score = float(raw)
    if not math.isfinite(score) or score < 0 or score > 100:
        raise MalformedDailyLogError(
            f"Daily log {log.get('date')!r} has out-of-range completion_score: {raw!r}"
        )
    return score


def calculate_average_score(logs: Sequence[Mapping[str, Any]]) -> float:
    """Arithmetic mean of the logs' completion scores; 0 when there are no logs."""
    if not logs:
        return 0.0
    scores = [validate_log_score(log) for log in logs]
    return sum(scores) / len(scores)


def _check_descending(logs: Sequence[Mapping[str, Any]]) -> None:
    previous = None
    for log in logs:
        if log.get("date") is None:
            raise MalformedDailyLogError("Daily log has no date")
        try:
            current = _ensure_date(log["date"])
        except ValueError as exc:
            raise MalformedDailyLogError(str(exc)) from exc
        if previous is not None and current > previous:
            raise ValueError("daily logs must be sorted by date, most recent first")
        previous = current


def calculate_streak(logs: Sequence[Mapping[str, Any]],
                     threshold: float = STREAK_THRESHOLD) -> int:
    """Count the leading run of days whose score meets the threshold.

    Args:
        logs: daily logs sorted by date descending (most recent first). The
              order is checked, never derived; unsorted input is a caller bug
              and raises ValueError.
        threshold: minimum completion score for a day to count.

    Returns:
        Number of consecutive qualifying days starting from the most recent
        log. The first day below the threshold ends the streak even if older
        days qualify again.
    """
    _check_descending(logs)
    streak = 0
    for log in logs:
        if validate_log_score(log) >= threshold:
            streak += 1
        else:
            break
    return streak


def derive_insights(tasks: Sequence[Mapping[str, Any]],
                    completion_score: float,
                    logs: Sequence[Mapping[str, Any]]) -> Dict[str, Any]:
    """Build the insight summary for the current day.

    Args:
        tasks: the user's current tasks.
        completion_score: the aggregate score for ``tasks``.
        logs: up to RECENT_LOG_LIMIT recent daily logs, most recent first.

    Returns:
        dict with task counters, raw (unclamped) progress totals, the average
        and streak over ``logs``, and the tier/message/emoji for the score.
    """
    completed = sum(1 for t in tasks if task_ratio(t) >= 1)
    summary: Dict[str, Any] = {
        "completed_tasks": completed,
        "incomplete_tasks": len(tasks) - completed,
        "total_tasks": len(tasks),
        "total_progress": sum(float(t["current_value"]) for t in tasks),
        "total_target": sum(float(t["target_value"]) for t in tasks),
        "average_score": calculate_average_score(logs),
        "current_streak": calculate_streak(logs),
    }
    summary.update(motivational_tier(completion_score))
    return summary


# -----------------------
# Quick manual test helper (run directly for ad-hoc checks)
# -----------------------
if __name__ == "__main__":
    sample = [
        {"name": "Read", "target_value": 10, "current_value": 10},
        {"name": "Run", "target_value": 20, "current_value": 0},
    ]
    history = [
        {"date": "2025-11-30", "completion_score": 95},
        {"date": "2025-11-29", "completion_score": 85},
        {"date": "2025-11-28", "completion_score": 60},
        {"date": "2025-11-27", "completion_score": 90},
    ]
    score = calculate_completion_score(sample)
    print("Score:", score)
    print("Insights:", derive_insights(sample, score, history))
