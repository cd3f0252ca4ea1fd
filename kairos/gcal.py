from __future__ import annotations

import json
import pathlib
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, Optional, Union
from zoneinfo import ZoneInfo

from google.oauth2.credentials import Credentials
from google.auth.transport.requests import Request as GoogleRequest
from googleapiclient.discovery import build

from .config import (
    DEFAULT_EVENT_MINUTES,
    DEFAULT_TIMEZONE,
    ENABLE_GCAL,
    GCAL_SCOPES,
    GOOGLE_CALENDAR_ID,
    GOOGLE_TASKLIST_ID,
    GOOGLE_TOKEN_FILE,
)
from .models import Event, Task
from .utils import _log_debug, parse_time_minutes, try_parse_date

_RRULE_DAYS = ["SU", "MO", "TU", "WE", "TH", "FR", "SA"]  # Sunday=0


class SyncPort:
  """Adapter to the external calendar/task service, keyed by external id."""

  def create_item(self, item: Union[Event, Task]) -> Optional[str]:
    raise NotImplementedError

  def update_item(self, item: Union[Event, Task]) -> None:
    raise NotImplementedError

  def delete_item(self, item: Union[Event, Task]) -> None:
    raise NotImplementedError


class NullSyncPort(SyncPort):
  def create_item(self, item: Union[Event, Task]) -> Optional[str]:
    return None

  def update_item(self, item: Union[Event, Task]) -> None:
    return None

  def delete_item(self, item: Union[Event, Task]) -> None:
    return None


# -------------------------
# Google Calendar / Tasks
# -------------------------
def rrule_for(item: Union[Event, Task]) -> Optional[str]:
  recurrence = item.recurrence or "none"
  if recurrence == "daily":
    return "FREQ=DAILY"
  if recurrence == "weekly":
    anchor = try_parse_date(item.date)
    if anchor is None:
      return None
    return f"FREQ=WEEKLY;BYDAY={_RRULE_DAYS[(anchor.weekday() + 1) % 7]}"
  if recurrence == "weekdays":
    return "FREQ=WEEKLY;BYDAY=MO,TU,WE,TH,FR"
  if recurrence == "specific_days" and item.days_of_week:
    days = ",".join(_RRULE_DAYS[d] for d in sorted(set(item.days_of_week)) if 0 <= d <= 6)
    return f"FREQ=WEEKLY;BYDAY={days}" if days else None
  if recurrence == "monthly":
    anchor = try_parse_date(item.date)
    day = item.day_of_month or (anchor.day if anchor else None)
    return f"FREQ=MONTHLY;BYMONTHDAY={day}" if day else None
  return None


def _event_body(event: Event, timezone_value: str) -> Dict[str, Any]:
  start_date = try_parse_date(event.date)
  start = parse_time_minutes(event.start_time)
  end = parse_time_minutes(event.end_time)
  if start_date is None or start is None:
    raise ValueError(f"Event {event.id} has no usable start.")
  tz = ZoneInfo(timezone_value)
  start_dt = datetime(start_date.year, start_date.month, start_date.day, tzinfo=tz) + timedelta(minutes=start)
  if end is None or end <= start:
    end_dt = start_dt + timedelta(minutes=DEFAULT_EVENT_MINUTES)
  else:
    end_dt = start_dt + timedelta(minutes=end - start)

  body: Dict[str, Any] = {
      "summary": event.title,
      "start": {"dateTime": start_dt.isoformat(), "timeZone": timezone_value},
      "end": {"dateTime": end_dt.isoformat(), "timeZone": timezone_value},
  }
  if event.description:
    body["description"] = event.description
  if event.location:
    body["location"] = event.location
  rrule = rrule_for(event)
  if rrule:
    body["recurrence"] = [f"RRULE:{rrule}"]
  return body


def _task_body(task: Task) -> Dict[str, Any]:
  body: Dict[str, Any] = {"title": task.title}
  notes = task.description or ""
  if task.time:
    notes = f"{task.time} {notes}".strip()
  if notes:
    body["notes"] = notes
  due = try_parse_date(task.date)
  if due is not None:
    # Tasks API는 날짜만 저장한다
    body["due"] = f"{due.isoformat()}T00:00:00.000Z"
  if task.completed:
    body["status"] = "completed"
  return body


class GoogleSyncPort(SyncPort):
  def __init__(self,
               token_file: pathlib.Path = GOOGLE_TOKEN_FILE,
               calendar_id: str = GOOGLE_CALENDAR_ID,
               tasklist_id: str = GOOGLE_TASKLIST_ID,
               timezone_value: str = DEFAULT_TIMEZONE,
               timezone_provider: Optional[Callable[[], Optional[str]]] = None):
    self.token_file = token_file
    self.calendar_id = calendar_id
    self.tasklist_id = tasklist_id
    self.timezone_value = timezone_value
    self.timezone_provider = timezone_provider

  def _timezone(self) -> str:
    # 환경설정에서 바뀐 시간대를 매 동기화마다 반영
    if self.timezone_provider is not None:
      return self.timezone_provider() or self.timezone_value
    return self.timezone_value

  def _load_token(self) -> Optional[Dict[str, Any]]:
    if not self.token_file.exists():
      return None
    try:
      return json.loads(self.token_file.read_text(encoding="utf-8"))
    except Exception as e:
      _log_debug(f"[GCAL] token load error: {e}")
      return None

  def _credentials(self) -> Credentials:
    token_data = self._load_token()
    if not token_data:
      raise RuntimeError("Google OAuth token not found.")
    creds = Credentials.from_authorized_user_info(token_data, GCAL_SCOPES)
    if creds.expired and creds.refresh_token:
      creds.refresh(GoogleRequest())
      self.token_file.write_text(creds.to_json(), encoding="utf-8")
    return creds

  def _calendar(self):
    return build("calendar", "v3", credentials=self._credentials())

  def _tasks(self):
    return build("tasks", "v1", credentials=self._credentials())

  def create_item(self, item: Union[Event, Task]) -> Optional[str]:
    try:
      if isinstance(item, Event):
        created = self._calendar().events().insert(
            calendarId=self.calendar_id,
            body=_event_body(item, self._timezone())).execute()
      else:
        created = self._tasks().tasks().insert(
            tasklist=self.tasklist_id,
            body=_task_body(item)).execute()
      return created.get("id")
    except Exception as e:
      _log_debug(f"[GCAL] create {item.kind} error: {e}")
      return None

  def update_item(self, item: Union[Event, Task]) -> None:
    if not item.external_id:
      return
    try:
      if isinstance(item, Event):
        self._calendar().events().patch(calendarId=self.calendar_id,
                                        eventId=item.external_id,
                                        body=_event_body(item, self._timezone())).execute()
      else:
        self._tasks().tasks().patch(tasklist=self.tasklist_id,
                                    task=item.external_id,
                                    body=_task_body(item)).execute()
    except Exception as e:
      _log_debug(f"[GCAL] update {item.kind} error: {e}")

  def delete_item(self, item: Union[Event, Task]) -> None:
    if not item.external_id:
      return
    try:
      if isinstance(item, Event):
        self._calendar().events().delete(calendarId=self.calendar_id,
                                         eventId=item.external_id).execute()
      else:
        self._tasks().tasks().delete(tasklist=self.tasklist_id,
                                     task=item.external_id).execute()
    except Exception as e:
      _log_debug(f"[GCAL] delete {item.kind} error: {e}")


def build_sync_port(timezone_provider: Optional[Callable[[], Optional[str]]] = None) -> SyncPort:
  if ENABLE_GCAL and GOOGLE_TOKEN_FILE.exists():
    print(f"[GCAL] Sync enabled for calendar {GOOGLE_CALENDAR_ID}", flush=True)
    return GoogleSyncPort(timezone_provider=timezone_provider)
  return NullSyncPort()
