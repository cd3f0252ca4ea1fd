"""
Conflict Manager: 제안 일정 ↔ 기존 일정 충돌 관리
- 같은 날 바쁜 구간과의 겹침 감지
- 겹치면 같은 길이의 다음 빈 시간으로 이동
"""

from typing import List, Optional, Sequence

from pydantic import BaseModel

from ..utils import MINUTES_PER_DAY, Interval, intervals_overlap
from .slot_allocator import earliest_free_slot


class TimeSlot(BaseModel):
  """시간대 (자정 기준 분)"""
  start: int
  end: int

  @property
  def duration(self) -> int:
    return self.end - self.start

  def as_interval(self) -> Interval:
    return (self.start, self.end)


class ConflictResolution(BaseModel):
  """충돌 해결 결과"""
  original_slot: TimeSlot
  conflicting: List[TimeSlot]
  resolved_slot: Optional[TimeSlot] = None

  @property
  def moved(self) -> bool:
    return bool(self.conflicting) and self.resolved_slot is not None


class ConflictManager:
  """Keeps proposed drafts from double-booking a day."""

  def __init__(self, day_end: int = MINUTES_PER_DAY):
    self.day_end = day_end

  def detect_conflicts(self,
                       new_slot: TimeSlot,
                       busy: Sequence[Interval]) -> List[TimeSlot]:
    return [
        TimeSlot(start=start, end=end)
        for start, end in busy
        if intervals_overlap(new_slot.as_interval(), (start, end))
    ]

  def resolve(self,
              new_slot: TimeSlot,
              busy: Sequence[Interval]) -> ConflictResolution:
    """Return the slot unchanged when free, else the next free one of equal length.

    ``resolved_slot`` is None when nothing fits before the end of the day.
    """
    conflicts = self.detect_conflicts(new_slot, busy)
    if not conflicts:
      return ConflictResolution(original_slot=new_slot, conflicting=[], resolved_slot=new_slot)
    found = earliest_free_slot(new_slot.duration,
                               busy,
                               window=(0, self.day_end),
                               not_before=new_slot.start)
    resolved = TimeSlot(start=found[0], end=found[1]) if found else None
    return ConflictResolution(original_slot=new_slot, conflicting=conflicts, resolved_slot=resolved)
