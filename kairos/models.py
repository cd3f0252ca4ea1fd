from __future__ import annotations

from typing import Annotated, Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field

RecurrenceRule = Literal["none", "daily", "weekly", "monthly", "weekdays", "specific_days"]
TaskPriority = Literal["urgent", "high", "normal", "low"]
InsightType = Literal["warning", "encouragement", "tip"]
Language = Literal["en", "ru"]


class _Snapshot(BaseModel):
    model_config = ConfigDict(frozen=True, extra="ignore")


class _ItemBase(_Snapshot):
    id: str
    title: str
    date: str  # "YYYY-MM-DD", anchor date
    recurrence: Optional[RecurrenceRule] = None
    days_of_week: Optional[List[int]] = None  # Sunday=0
    day_of_month: Optional[int] = None
    description: Optional[str] = None
    external_id: Optional[str] = None
    source: Literal["local", "google"] = "local"


class Event(_ItemBase):
    kind: Literal["event"] = "event"
    start_time: str  # "HH:MM"
    end_time: str  # "HH:MM"
    location: Optional[str] = None
    event_type: Literal["work", "personal", "meeting"] = "work"


class Task(_ItemBase):
    kind: Literal["task"] = "task"
    completed: bool = False
    priority: TaskPriority = "normal"
    time: Optional[str] = None  # "HH:MM"
    estimated_minutes: Optional[int] = None
    category: str = "Personal"
    reschedule_count: int = 0


CalendarItem = Annotated[Union[Event, Task], Field(discriminator="kind")]


class Insight(_Snapshot):
    type: InsightType = "tip"
    message: str


class Draft(_Snapshot):
    item: CalendarItem
    status: Literal["proposed", "accepted"] = "proposed"
    synced: bool = False


class ChatMessage(_Snapshot):
    id: str
    role: Literal["user", "assistant"]
    content: str
    insight: Optional[Insight] = None
    draft: Optional[Draft] = None
    is_greeting: bool = False


class ChatSession(_Snapshot):
    id: str
    title: str = ""
    messages: List[ChatMessage] = Field(default_factory=list)
    created_at: float = 0.0

    def find_message(self, message_id: str) -> Optional[ChatMessage]:
        for message in self.messages:
            if message.id == message_id:
                return message
        return None


class Preferences(_Snapshot):
    user_name: str = ""
    assistant_name: str = ""
    language: Language = "en"
    tone: str = ""
    timezone: Optional[str] = None


class Workspace(_Snapshot):
    sessions: List[ChatSession] = Field(default_factory=list)
    active_session_id: str = ""
    profile: Dict[str, Any] = Field(default_factory=dict)
    recent_facts: List[str] = Field(default_factory=list)
    items: List[CalendarItem] = Field(default_factory=list)
    preferences: Preferences = Field(default_factory=Preferences)

    def find_session(self, session_id: str) -> Optional[ChatSession]:
        for session in self.sessions:
            if session.id == session_id:
                return session
        return None

    def find_item(self, item_id: str) -> Optional[Union[Event, Task]]:
        for item in self.items:
            if item.id == item_id:
                return item
        return None


# -------------------------
# API 요청 모델
# -------------------------
class TurnRequest(BaseModel):
    text: str


class PreferencesUpdate(BaseModel):
    user_name: Optional[str] = None
    assistant_name: Optional[str] = None
    language: Optional[Language] = None
    tone: Optional[str] = None
    timezone: Optional[str] = None


class AutoScheduleRequest(BaseModel):
    date: Optional[str] = None


class RescheduleRequest(BaseModel):
    date: str
