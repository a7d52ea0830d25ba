import math

import pandas as pd

from prereq_chain import COMPLETED, IN_PROGRESS, PLANNED, course_status

# Standard lower-division transfer requirement.
DEFAULT_TARGET_UNITS = 60

TERM_ORDER = {"WINTER": 0, "SPRING": 1, "SUMMER": 2, "FALL": 3}


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def _to_utc(value):
    """Timestamp in UTC; naive values are taken as UTC, unparseable ones become NaT."""
    try:
        ts = pd.Timestamp(value)
    except (TypeError, ValueError):
        return pd.NaT
    if pd.isna(ts):
        return pd.NaT
    return ts.tz_localize("UTC") if ts.tzinfo is None else ts.tz_convert("UTC")


def _count_upcoming_deadlines(deadlines: list[dict], now: pd.Timestamp) -> int:
    if not deadlines:
        return 0
    df = pd.DataFrame(deadlines)
    if "due_date" not in df.columns:
        return 0
    due = df["due_date"].map(_to_utc)
    upcoming = due.map(lambda ts: not pd.isna(ts) and ts > now).astype(bool)
    done = df.get("is_completed", pd.Series(False, index=df.index))
    done = done.map(lambda v: v is not None and not pd.isna(v) and bool(v)).astype(bool)
    return int((upcoming & ~done).sum())


def compute_dashboard_stats(
    courses: list[dict],
    plans: list[dict],
    deadlines: list[dict],
    target_units: int = DEFAULT_TARGET_UNITS,
    now: pd.Timestamp | None = None,
) -> dict:
    """
    Progress summary over the current store snapshot.

    completion_percentage = round(completed_units / target_units * 100),
    not clamped, so it can exceed 100.
    """
    if now is None:
        now = pd.Timestamp.now(tz="UTC")

    completed = [c for c in courses if c.get("is_completed")]
    completed_units = sum(c.get("units") or 0 for c in completed)
    percentage = _round_half_up(completed_units / target_units * 100) if target_units else 0

    return {
        "completed_units": completed_units,
        "target_units": target_units,
        "completion_percentage": percentage,
        "total_courses": len(courses),
        "completed_courses": len(completed),
        "active_plans": sum(1 for p in plans if p.get("is_active")),
        "upcoming_deadlines": _count_upcoming_deadlines(deadlines, now),
    }


def categorize_courses(courses: list[dict]) -> dict:
    """Bucket courses by status: completed / in_progress / planned."""
    buckets: dict[str, list[dict]] = {COMPLETED: [], IN_PROGRESS: [], PLANNED: []}
    for course in courses:
        buckets[course_status(course)].append(course)
    return {
        **buckets,
        "counts": {k: len(v) for k, v in buckets.items()},
    }


def sort_semesters(semesters: list[dict]) -> list[dict]:
    """Chronological order: year, then term within the year."""
    return sorted(
        semesters,
        key=lambda s: (s.get("year") or 0, TERM_ORDER.get(str(s.get("term") or "").upper(), 99)),
    )
