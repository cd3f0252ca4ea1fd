from __future__ import annotations

from datetime import date
from typing import Dict, Iterable, List, Optional, Union

from .config import DEFAULT_EVENT_MINUTES, DEFAULT_TASK_MINUTES, LOAD_DAY_MINUTES
from .models import Event, Task
from .utils import (
    Interval,
    MINUTES_PER_DAY,
    merge_intervals,
    parse_time_minutes,
    try_parse_date,
    weekday_index,
)

Item = Union[Event, Task]

_RECURRENCE_RULES = {"none", "daily", "weekly", "monthly", "weekdays", "specific_days"}


def _normalize_days_of_week(value: Optional[Iterable[int]]) -> List[int]:
    if not value:
        return []
    out: List[int] = []
    for raw in value:
        try:
            iv = int(raw)
        except Exception:
            continue
        if 0 <= iv <= 6 and iv not in out:
            out.append(iv)
    return out


def occurs_on(item: Item, target: Union[date, str]) -> bool:
    """Whether ``item`` is live on ``target``.

    The anchor date always matches. Recurring items project forward from the
    anchor and never before it. A ``monthly`` item anchored on the 31st is
    skipped in shorter months rather than clamped to the last day.
    """
    anchor = try_parse_date(item.date)
    target_date = try_parse_date(target)
    if anchor is None or target_date is None:
        return False
    if target_date == anchor:
        return True

    rule = item.recurrence
    if not rule or rule == "none" or rule not in _RECURRENCE_RULES:
        return False
    if target_date < anchor:
        return False

    if rule == "daily":
        return True
    if rule == "weekdays":
        return 1 <= weekday_index(target_date) <= 5
    if rule == "weekly":
        return weekday_index(target_date) == weekday_index(anchor)
    if rule == "specific_days":
        days = _normalize_days_of_week(item.days_of_week)
        return weekday_index(target_date) in days
    if rule == "monthly":
        day_of_month = item.day_of_month
        if not isinstance(day_of_month, int) or not 1 <= day_of_month <= 31:
            day_of_month = anchor.day
        return target_date.day == day_of_month
    return False


def items_on_date(items: Iterable[Item], target: Union[date, str]) -> List[Item]:
    return [item for item in items if occurs_on(item, target)]


def item_interval(item: Item) -> Optional[Interval]:
    """Occupied minutes of an item on a day it occurs, or None when untimed."""
    if isinstance(item, Event):
        start = parse_time_minutes(item.start_time)
        if start is None:
            return None
        end = parse_time_minutes(item.end_time)
        if end is None or end <= start:
            end = min(start + DEFAULT_EVENT_MINUTES, MINUTES_PER_DAY)
        return (start, end)
    if item.completed:
        return None
    start = parse_time_minutes(item.time)
    if start is None:
        return None
    duration = item.estimated_minutes if item.estimated_minutes and item.estimated_minutes > 0 else DEFAULT_TASK_MINUTES
    return (start, min(start + duration, MINUTES_PER_DAY))


def busy_intervals(items: Iterable[Item],
                   target: Union[date, str],
                   exclude_id: Optional[str] = None) -> List[Interval]:
    occupied: List[Interval] = []
    for item in items_on_date(items, target):
        if exclude_id and item.id == exclude_id:
            continue
        interval = item_interval(item)
        if interval:
            occupied.append(interval)
    return merge_intervals(occupied)


def day_load(items: Iterable[Item], target: Union[date, str]) -> Dict[str, int]:
    """Workload stats for ``target``.

    ``burnout_risk`` is the share of an 8-hour day taken by open tasks on
    ``target`` (capped at 100) plus 2 per reschedule across all tasks.
    ``efficiency`` starts at 100 and loses 5 per reschedule.
    """
    items = list(items)
    tasks = [item for item in items if isinstance(item, Task)]
    planned = sum(
        task.estimated_minutes if task.estimated_minutes and task.estimated_minutes > 0 else DEFAULT_TASK_MINUTES
        for task in items_on_date(tasks, target)
        if not task.completed
    )
    density = min(100.0, planned / LOAD_DAY_MINUTES * 100)
    reschedules = sum(task.reschedule_count for task in tasks)
    return {
        "planned_minutes": planned,
        "burnout_risk": round(density + reschedules * 2),
        "efficiency": max(0, 100 - reschedules * 5),
    }
