"""Habit statistics computed from HIT/SLIP events.

Hit and slip counts, the current combo (how many of the most recent
events share the latest event's type) and a cumulative score series.
Events are the dicts returned by Database; ordering of the input does
not matter, every function sorts by timestamp itself.
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional

from .models import EventType


def _by_timestamp(events: List[Dict[str, Any]], newest_first: bool) -> List[Dict[str, Any]]:
    return sorted(
        events,
        key=lambda e: (e.get("timestamp") or "", e.get("id") or ""),
        reverse=newest_first,
    )


def count_events(events: List[Dict[str, Any]]) -> Dict[str, int]:
    """Count HIT and SLIP events."""
    hits = sum(1 for e in events if e.get("type") == EventType.HIT.value)
    slips = sum(1 for e in events if e.get("type") == EventType.SLIP.value)
    return {"hits": hits, "slips": slips}


def compute_combo(events: List[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
    """Latest event type and how many consecutive events share it.

    Returns:
        {"type": "HIT"|"SLIP", "count": n}, or None when there are no events
    """
    if not events:
        return None
    ordered = _by_timestamp(events, newest_first=True)
    latest_type = ordered[0].get("type")
    count = 1
    for event in ordered[1:]:
        if event.get("type") != latest_type:
            break
        count += 1
    return {"type": latest_type, "count": count}


def cumulative_score(events: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    """Running total of +1 per HIT and -1 per SLIP, oldest first."""
    series = []
    total = 0
    for event in _by_timestamp(events, newest_first=False):
        value = EventType(event["type"]).score
        total += value
        series.append({"timestamp": event.get("timestamp"), "value": value, "total": total})
    return series


def habit_stats(habit: Dict[str, Any]) -> Dict[str, Any]:
    """All statistics for a habit dict (as returned by Database.get_habit)."""
    events = habit.get("events") or []
    counts = count_events(events)
    return {
        "habitId": habit["id"],
        "hits": counts["hits"],
        "slips": counts["slips"],
        "combo": compute_combo(events),
        "score": cumulative_score(events),
    }
