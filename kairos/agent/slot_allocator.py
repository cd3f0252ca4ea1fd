"""
Slot Allocator: 빈 시간대 찾기
- 작업 시간대(window) 안에서 바쁜 구간과 겹치지 않는 슬롯
- 원격 탐색 결과는 반드시 로컬에서 검증
"""

from __future__ import annotations

from datetime import date
from typing import List, Optional, Sequence, Tuple, Union

from pydantic import BaseModel

from ..config import WORK_DAY_END, WORK_DAY_START
from ..utils import (
    Interval,
    _log_debug,
    format_minutes,
    intervals_overlap,
    merge_intervals,
    parse_time_minutes,
    try_parse_date,
)
from .errors import SlotUnavailable
from .interpretation import InterpretationService
from .schemas import SlotSearchRequest, SlotSearchResult, parse_structured

Window = Tuple[str, str]


class Slot(BaseModel):
  date: str
  start: str
  end: str


def _window_minutes(window: Window) -> Interval:
  start = parse_time_minutes(window[0])
  end = parse_time_minutes(window[1])
  if start is None or end is None or end <= start:
    raise ValueError(f"Invalid working window: {window!r}")
  return (start, end)


def earliest_free_slot(duration_minutes: int,
                       busy: Sequence[Interval],
                       window: Interval,
                       not_before: Optional[int] = None) -> Optional[Interval]:
  """First-fit search: earliest interval of ``duration_minutes`` inside ``window``."""
  if duration_minutes <= 0:
    return None
  cursor = window[0] if not_before is None else max(window[0], not_before)
  for busy_start, busy_end in merge_intervals(list(busy)):
    if busy_end <= cursor:
      continue
    if busy_start >= cursor + duration_minutes:
      break
    cursor = max(cursor, busy_end)
  if cursor + duration_minutes > window[1]:
    return None
  return (cursor, cursor + duration_minutes)


def validate_slot(candidate: Optional[SlotSearchResult],
                  target_date: str,
                  duration_minutes: int,
                  busy: Sequence[Interval],
                  window: Interval) -> Optional[Interval]:
  if candidate is None or not candidate.found:
    return None
  if candidate.date and try_parse_date(candidate.date) != try_parse_date(target_date):
    return None
  start = parse_time_minutes(candidate.start)
  end = parse_time_minutes(candidate.end)
  if start is None or end is None or end <= start:
    return None
  if end - start != duration_minutes:
    return None
  if start < window[0] or end > window[1]:
    return None
  if any(intervals_overlap((start, end), interval) for interval in busy):
    return None
  return (start, end)


async def find_slot(duration_minutes: int,
                    busy: Sequence[Interval],
                    target_date: Union[date, str],
                    service: InterpretationService,
                    window: Window = (WORK_DAY_START, WORK_DAY_END)) -> Slot:
  """Ask the remote search for a free slot and accept it only if it is valid.

  Raises ``SlotUnavailable`` when the search fails or proposes anything that
  overlaps, escapes the window or has the wrong length.
  """
  date_text = target_date.isoformat() if isinstance(target_date, date) else str(target_date)
  window_minutes = _window_minutes(window)
  busy_list: List[Interval] = merge_intervals(list(busy))
  request = SlotSearchRequest(
      date=date_text,
      duration_minutes=int(duration_minutes),
      busy=[{"start": format_minutes(s), "end": format_minutes(e)} for s, e in busy_list],
      window_start=format_minutes(window_minutes[0]),
      window_end=format_minutes(window_minutes[1]),
  )
  try:
    raw_output = await service.complete(request)
  except Exception as exc:
    raise SlotUnavailable(f"Slot search failed: {exc}") from exc

  candidate = parse_structured(SlotSearchResult, raw_output)
  interval = validate_slot(candidate, date_text, int(duration_minutes), busy_list, window_minutes)
  if interval is None:
    _log_debug(f"[SLOT] rejected candidate for {date_text}: {raw_output!r}")
    raise SlotUnavailable(f"No free {duration_minutes}-minute slot on {date_text}.")
  return Slot(date=date_text, start=format_minutes(interval[0]), end=format_minutes(interval[1]))
