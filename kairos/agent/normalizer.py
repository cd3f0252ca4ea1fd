from __future__ import annotations

from typing import Any, List, Optional
from zoneinfo import ZoneInfo

from ..config import DEFAULT_TIMEZONE
from ..utils import format_minutes, parse_time_minutes

_RECURRENCE_ALIASES = {
    "none": "none",
    "once": "none",
    "daily": "daily",
    "every_day": "daily",
    "weekly": "weekly",
    "every_week": "weekly",
    "monthly": "monthly",
    "every_month": "monthly",
    "weekdays": "weekdays",
    "workdays": "weekdays",
    "specific_days": "specific_days",
}
_PRIORITIES = {"urgent", "high", "normal", "low"}


def normalize_input_as_text(value: Optional[str]) -> str:
  if not isinstance(value, str):
    return ""
  return value.strip()


def resolve_timezone(requested_timezone: Optional[str]) -> str:
  for candidate in (requested_timezone, DEFAULT_TIMEZONE):
    if not isinstance(candidate, str):
      continue
    cleaned = candidate.strip()
    if not cleaned:
      continue
    try:
      ZoneInfo(cleaned)
      return cleaned
    except Exception:
      continue
  return "UTC"


def coerce_hhmm(value: Any) -> Optional[str]:
  minutes = parse_time_minutes(value)
  if minutes is None or minutes >= 24 * 60:
    return None
  return format_minutes(minutes)


def normalize_recurrence(value: Any) -> Optional[str]:
  if not isinstance(value, str):
    return None
  key = value.strip().lower().replace(" ", "_").replace("-", "_")
  return _RECURRENCE_ALIASES.get(key)


def normalize_days_of_week(value: Any) -> Optional[List[int]]:
  if not isinstance(value, list):
    return None
  out: List[int] = []
  for raw in value:
    try:
      iv = int(raw)
    except Exception:
      continue
    if 0 <= iv <= 6 and iv not in out:
      out.append(iv)
  return sorted(out) or None


def normalize_priority(value: Any) -> str:
  if isinstance(value, str) and value.strip().lower() in _PRIORITIES:
    return value.strip().lower()
  return "normal"
