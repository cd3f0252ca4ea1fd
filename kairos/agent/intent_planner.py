from __future__ import annotations

from datetime import date, datetime
from typing import Any, Dict, List, Optional, Sequence, Union

from pydantic import BaseModel, ConfigDict

from ..config import (
    DEFAULT_EVENT_MINUTES,
    DEFAULT_TASK_MINUTES,
    HISTORY_WINDOW_MESSAGES,
    PLANNER_MODEL,
    WORK_DAY_END,
    WORK_DAY_START,
)
from ..models import ChatMessage, Event, Insight, Task
from ..recurrence import busy_intervals, day_load
from ..utils import (
    MINUTES_PER_DAY,
    _log_debug,
    format_minutes,
    new_id,
    parse_time_minutes,
    try_parse_date,
)
from .conflict_manager import ConflictManager, TimeSlot
from .interpretation import InterpretationService
from .normalizer import (
    coerce_hhmm,
    normalize_days_of_week,
    normalize_priority,
    normalize_recurrence,
)
from .schemas import IntentPlanRequest, IntentName, PlanDetails, PlanResult, parse_structured
from .slot_allocator import earliest_free_slot

print(f"[INTENT_PLANNER] Loaded model: {PLANNER_MODEL}", flush=True)

_CREATE_INTENTS = {"create_event", "create_task"}


class Plan(BaseModel):
  model_config = ConfigDict(frozen=True)

  intent: IntentName = "general"
  new_fact: Optional[str] = None
  insight: Optional[Insight] = None
  details: Optional[PlanDetails] = None
  requested_start: Optional[str] = None
  rescheduled: bool = False

  def as_payload(self) -> Dict[str, Any]:
    return self.model_dump(exclude_none=True)


def _history_window(history: Sequence[ChatMessage]) -> List[Dict[str, str]]:
  recent = list(history)[-HISTORY_WINDOW_MESSAGES:] if HISTORY_WINDOW_MESSAGES > 0 else []
  return [{"role": message.role, "content": message.content} for message in recent]


def _occupied_payload(intervals: Sequence[tuple]) -> List[Dict[str, str]]:
  return [{"start": format_minutes(s), "end": format_minutes(e)} for s, e in intervals]


def _normalize_details(raw: Optional[PlanDetails],
                       intent: str,
                       today: date) -> Optional[PlanDetails]:
  if raw is None:
    return None
  title = (raw.title or "").strip()
  if not title:
    return None

  target_date = try_parse_date(raw.date) or today
  recurrence = normalize_recurrence(raw.recurrence)
  days_of_week = normalize_days_of_week(raw.days_of_week)
  if recurrence == "specific_days" and not days_of_week:
    recurrence = "none"
  day_of_month = raw.day_of_month if isinstance(raw.day_of_month, int) and 1 <= raw.day_of_month <= 31 else None

  start_time = coerce_hhmm(raw.start_time)
  start = parse_time_minutes(start_time)
  end = parse_time_minutes(coerce_hhmm(raw.end_time))
  estimated = raw.estimated_minutes if isinstance(raw.estimated_minutes, int) and raw.estimated_minutes > 0 else None

  if start is not None and end is not None and end > start:
    duration = end - start
  elif estimated:
    duration = estimated
  else:
    duration = DEFAULT_EVENT_MINUTES if intent == "create_event" or start is not None else DEFAULT_TASK_MINUTES

  end_time = None
  if start is not None:
    # 할 일은 자정에서 자르고, 일정은 _avoid_conflicts 에서 버린다
    end_time = format_minutes(min(start + duration, MINUTES_PER_DAY))

  return PlanDetails(
      title=title,
      date=target_date.isoformat(),
      start_time=start_time,
      end_time=end_time,
      estimated_minutes=duration,
      recurrence=recurrence,
      days_of_week=days_of_week if recurrence == "specific_days" else None,
      day_of_month=day_of_month if recurrence == "monthly" else None,
      priority=normalize_priority(raw.priority) if intent == "create_task" else None,
      location=(raw.location or "").strip() or None,
      description=(raw.description or "").strip() or None,
  )


def _avoid_conflicts(plan: Plan,
                     items: Sequence[Union[Event, Task]]) -> Plan:
  """Move a timed draft off occupied time on its own date, or drop it."""
  details = plan.details
  if details is None:
    return plan
  busy = busy_intervals(items, details.date)
  duration = details.estimated_minutes or DEFAULT_EVENT_MINUTES
  start = parse_time_minutes(details.start_time)

  if start is None:
    if plan.intent != "create_event":
      return plan
    window = (parse_time_minutes(WORK_DAY_START), parse_time_minutes(WORK_DAY_END))
    found = earliest_free_slot(duration, busy, window=window)
    if found is None:
      return _drop_draft(plan, details)
    return plan.model_copy(update={
        "details": details.model_copy(update={
            "start_time": format_minutes(found[0]),
            "end_time": format_minutes(found[1]),
        }),
    })

  if plan.intent == "create_event" and start + duration > MINUTES_PER_DAY:
    return _drop_draft(plan, details, f"\"{details.title}\" does not fit before midnight on {details.date}.")
  end = parse_time_minutes(details.end_time) or min(start + duration, MINUTES_PER_DAY)
  resolution = ConflictManager().resolve(TimeSlot(start=start, end=end), busy)
  if resolution.resolved_slot is None:
    return _drop_draft(plan, details)
  if not resolution.moved:
    return plan
  slot = resolution.resolved_slot
  _log_debug(f"[INTENT_PLANNER] moved '{details.title}' {details.start_time} -> {format_minutes(slot.start)}")
  return plan.model_copy(update={
      "details": details.model_copy(update={
          "start_time": format_minutes(slot.start),
          "end_time": format_minutes(slot.end),
      }),
      "requested_start": details.start_time,
      "rescheduled": True,
  })


def _drop_draft(plan: Plan, details: PlanDetails, message: Optional[str] = None) -> Plan:
  message = message or f"No free time left on {details.date} for \"{details.title}\"."
  return plan.model_copy(update={
      "details": None,
      "insight": Insight(type="warning", message=message),
  })


def draft_item(plan: Plan) -> Optional[Union[Event, Task]]:
  """Materialize the plan's details as an uncommitted calendar item."""
  details = plan.details
  if details is None or plan.intent not in _CREATE_INTENTS:
    return None
  common: Dict[str, Any] = {
      "id": new_id(),
      "title": details.title,
      "date": details.date,
      "recurrence": details.recurrence,
      "days_of_week": details.days_of_week,
      "day_of_month": details.day_of_month,
      "description": details.description,
  }
  if plan.intent == "create_event":
    if not details.start_time or not details.end_time:
      return None
    return Event(start_time=details.start_time,
                 end_time=details.end_time,
                 location=details.location,
                 **common)
  return Task(time=details.start_time,
              estimated_minutes=details.estimated_minutes,
              priority=details.priority or "normal",
              **common)


async def plan(profile: Dict[str, Any],
               items: Sequence[Union[Event, Task]],
               history: Sequence[ChatMessage],
               utterance: str,
               now: datetime,
               service: InterpretationService) -> Plan:
  """Classify ``utterance`` and propose a conflict-free draft for create intents.

  Unparsable output defaults to ``general`` with no details. Transport
  failures from ``service`` propagate to the caller.
  """
  today = now.date()
  request = IntentPlanRequest(
      profile=dict(profile or {}),
      today=today.isoformat(),
      day_name=now.strftime("%A"),
      now_time=now.strftime("%H:%M"),
      occupied=_occupied_payload(busy_intervals(items, today)),
      load=day_load(items, today),
      history=_history_window(history),
      utterance=utterance,
  )
  raw_output = await service.complete(request)
  parsed = parse_structured(PlanResult, raw_output)
  if parsed is None:
    _log_debug("[INTENT_PLANNER] plan output unparsable, defaulting to general")
    return Plan(intent="general")

  insight = None
  if parsed.insight is not None and parsed.insight.message.strip():
    insight = Insight(type=parsed.insight.type, message=parsed.insight.message.strip())
  new_fact = (parsed.new_fact or "").strip() or None

  details = None
  if parsed.intent in _CREATE_INTENTS:
    details = _normalize_details(parsed.details, parsed.intent, today)

  result = Plan(intent=parsed.intent, new_fact=new_fact, insight=insight, details=details)
  return _avoid_conflicts(result, items)
