from __future__ import annotations

import asyncio
from datetime import date
from typing import Optional, Tuple, Union

from ..config import DEFAULT_TASK_MINUTES
from ..gcal import SyncPort
from ..models import ChatMessage, Event, Task
from ..recurrence import busy_intervals
from ..state import WorkspaceStore, remove_item, replace_item, replace_session
from ..utils import _log_debug, intervals_overlap, new_id, parse_time_minutes, try_parse_date
from .errors import DraftAlreadyAccepted, NotFound, SlotUnavailable
from .interpretation import InterpretationService
from .slot_allocator import Slot, find_slot


async def accept_draft(store: WorkspaceStore,
                       session_id: str,
                       message_id: str,
                       sync_port: SyncPort) -> Tuple[ChatMessage, Union[Event, Task]]:
  """Commit a proposed draft to the calendar; a draft is accepted only once."""
  workspace = store.workspace
  session = workspace.find_session(session_id)
  if session is None:
    raise NotFound(f"Session {session_id} not found.")
  message = session.find_message(message_id)
  if message is None or message.draft is None:
    raise NotFound(f"No draft on message {message_id}.")
  if message.draft.status == "accepted":
    raise DraftAlreadyAccepted(f"Draft on message {message_id} was already accepted.")

  item = message.draft.item
  external_id = await asyncio.to_thread(sync_port.create_item, item)
  if external_id:
    item = item.model_copy(update={"external_id": external_id})
  draft = message.draft.model_copy(update={"item": item, "status": "accepted", "synced": True})
  message = message.model_copy(update={"draft": draft})

  # 동기화 호출 동안 진행 중인 턴이 커밋했을 수 있으므로 최신 스냅샷을 다시 읽는다
  workspace = store.workspace
  session = workspace.find_session(session_id)
  if session is None:
    raise NotFound(f"Session {session_id} not found.")
  current = session.find_message(message_id)
  if current is not None and current.draft is not None and current.draft.status == "accepted":
    raise DraftAlreadyAccepted(f"Draft on message {message_id} was already accepted.")
  messages = [message if m.id == message.id else m for m in session.messages]
  workspace = replace_session(workspace, session.model_copy(update={"messages": messages}))
  store.commit(replace_item(workspace, item))
  _log_debug(f"[ACTIONS] accepted draft {message_id} as {item.kind} {item.id}")
  return message, item


def _slot_still_free(store: WorkspaceStore, task_id: str, slot: Slot) -> bool:
  interval = (parse_time_minutes(slot.start), parse_time_minutes(slot.end))
  busy = busy_intervals(store.workspace.items, slot.date, exclude_id=task_id)
  return not any(intervals_overlap(interval, other) for other in busy)


async def auto_schedule_task(store: WorkspaceStore,
                             task_id: str,
                             service: InterpretationService,
                             sync_port: SyncPort,
                             target_date: Optional[Union[date, str]] = None) -> Event:
  """Replace an unscheduled task with an event in the first free slot.

  ``SlotUnavailable`` propagates and leaves the task untouched, including
  when the slot was taken by another commit while the search was pending.
  """
  task = store.workspace.find_item(task_id)
  if not isinstance(task, Task):
    raise NotFound(f"Task {task_id} not found.")
  day = try_parse_date(target_date) or try_parse_date(task.date)
  if day is None:
    raise ValueError(f"Task {task_id} has no usable date.")

  duration = task.estimated_minutes or DEFAULT_TASK_MINUTES
  busy = busy_intervals(store.workspace.items, day, exclude_id=task.id)
  slot = await find_slot(duration, busy, day, service)
  if not _slot_still_free(store, task_id, slot):
    raise SlotUnavailable(f"Slot {slot.start}-{slot.end} on {slot.date} was taken while searching.")

  event = Event(id=new_id(),
                title=task.title,
                date=slot.date,
                start_time=slot.start,
                end_time=slot.end,
                recurrence=task.recurrence,
                days_of_week=task.days_of_week,
                day_of_month=task.day_of_month,
                description=task.description)
  external_id = await asyncio.to_thread(sync_port.create_item, event)
  if external_id:
    event = event.model_copy(update={"external_id": external_id})

  workspace = store.workspace
  current = workspace.find_item(task_id)
  if current is None or not _slot_still_free(store, task_id, slot):
    await asyncio.to_thread(sync_port.delete_item, event)
    if current is None:
      raise NotFound(f"Task {task_id} was removed while scheduling.")
    raise SlotUnavailable(f"Slot {slot.start}-{slot.end} on {slot.date} was taken while syncing.")
  store.commit(replace_item(remove_item(workspace, task_id), event))
  await asyncio.to_thread(sync_port.delete_item, current)
  _log_debug(f"[ACTIONS] task {task_id} scheduled as event {event.id} {slot.start}-{slot.end}")
  return event


async def reschedule_task(store: WorkspaceStore,
                          task_id: str,
                          new_date: Union[date, str],
                          sync_port: SyncPort) -> Task:
  """Move a task to another day and count the move."""
  day = try_parse_date(new_date)
  if day is None:
    raise ValueError("date must be YYYY-MM-DD.")
  task = store.workspace.find_item(task_id)
  if not isinstance(task, Task):
    raise NotFound(f"Task {task_id} not found.")

  moved = task.model_copy(update={
      "date": day.isoformat(),
      "reschedule_count": task.reschedule_count + 1,
  })
  await asyncio.to_thread(sync_port.update_item, moved)

  current = store.workspace.find_item(task_id)
  if not isinstance(current, Task):
    raise NotFound(f"Task {task_id} was removed while rescheduling.")
  moved = current.model_copy(update={
      "date": day.isoformat(),
      "reschedule_count": current.reschedule_count + 1,
  })
  store.commit(replace_item(store.workspace, moved))
  _log_debug(f"[ACTIONS] task {task_id} moved to {moved.date} (x{moved.reschedule_count})")
  return moved
