import asyncio

import pytest

from kairos.agent.conflict_manager import ConflictManager, TimeSlot
from kairos.agent.errors import InterpretationError, SlotUnavailable
from kairos.agent.schemas import SlotSearchResult
from kairos.agent.slot_allocator import earliest_free_slot, find_slot, validate_slot

from conftest import ScriptedService

WINDOW = (9 * 60, 21 * 60)
BUSY = [(600, 660), (720, 780)]  # 10:00-11:00, 12:00-13:00


def _candidate(start, end, date="2024-01-10"):
  return SlotSearchResult(found=True, date=date, start=start, end=end)


def test_earliest_free_slot_first_fit():
  assert earliest_free_slot(60, BUSY, WINDOW) == (540, 600)
  assert earliest_free_slot(90, BUSY, WINDOW) == (780, 870)
  assert earliest_free_slot(60, BUSY, WINDOW, not_before=610) == (660, 720)
  assert earliest_free_slot(13 * 60, BUSY, WINDOW) is None


def test_validate_slot_rejects_bad_candidates():
  args = ("2024-01-10", 60, BUSY, WINDOW)
  assert validate_slot(_candidate("09:00", "10:00"), *args) == (540, 600)
  assert validate_slot(_candidate("10:30", "11:30"), *args) is None  # overlap
  assert validate_slot(_candidate("08:00", "09:00"), *args) is None  # before window
  assert validate_slot(_candidate("20:30", "21:30"), *args) is None  # after window
  assert validate_slot(_candidate("14:00", "14:30"), *args) is None  # wrong length
  assert validate_slot(_candidate("15:00", "14:00"), *args) is None  # end before start
  assert validate_slot(_candidate("14:00", "15:00", date="2024-01-11"), *args) is None
  assert validate_slot(SlotSearchResult(found=False), *args) is None
  assert validate_slot(None, *args) is None


def test_find_slot_accepts_valid_remote_answer():
  service = ScriptedService(slot_search={"found": True, "date": "2024-01-10", "start": "13:00", "end": "14:00"})
  slot = asyncio.run(find_slot(60, BUSY, "2024-01-10", service))
  assert (slot.date, slot.start, slot.end) == ("2024-01-10", "13:00", "14:00")
  request = service.calls[0]
  assert request.busy == [{"start": "10:00", "end": "11:00"}, {"start": "12:00", "end": "13:00"}]
  assert (request.window_start, request.window_end) == ("09:00", "21:00")


@pytest.mark.parametrize("answer", [
    {"found": True, "date": "2024-01-10", "start": "12:30", "end": "13:30"},
    {"found": False},
    "no idea",
    InterpretationError("slot_search", "boom"),
])
def test_find_slot_never_surfaces_invalid_slot(answer):
  service = ScriptedService(slot_search=answer)
  with pytest.raises(SlotUnavailable):
    asyncio.run(find_slot(60, BUSY, "2024-01-10", service))


def test_conflict_manager_moves_to_next_free_slot():
  resolution = ConflictManager().resolve(TimeSlot(start=600, end=660), [(600, 660)])
  assert resolution.moved
  assert resolution.resolved_slot.as_interval() == (660, 720)

  free = ConflictManager().resolve(TimeSlot(start=480, end=540), [(600, 660)])
  assert not free.moved
  assert free.resolved_slot.as_interval() == (480, 540)

  full = ConflictManager().resolve(TimeSlot(start=1380, end=1440), [(1380, 1440)])
  assert full.resolved_slot is None
