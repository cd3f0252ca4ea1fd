from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional, Union

from fastapi import APIRouter, HTTPException, Query

from .agent.actions import accept_draft, auto_schedule_task, reschedule_task
from .agent.errors import DraftAlreadyAccepted, NotFound, SlotUnavailable, TurnInProgress
from .agent.interpretation import InterpretationService, LLMInterpretationService
from .agent.normalizer import resolve_timezone
from .agent.orchestrator import ChatOrchestrator
from .config import API_BASE, DEFAULT_ASSISTANT_NAME
from .gcal import SyncPort, build_sync_port
from .models import (
    AutoScheduleRequest,
    ChatMessage,
    ChatSession,
    Event,
    Preferences,
    PreferencesUpdate,
    RescheduleRequest,
    Task,
    TurnRequest,
)
from .recurrence import day_load, items_on_date
from .state import WorkspaceStore
from .utils import now_in_timezone, try_parse_date

router = APIRouter(prefix=API_BASE)
logger = logging.getLogger(__name__)

# -------------------------
# 런타임 구성
# -------------------------
_runtime: Dict[str, Any] = {}


def configure(store: Optional[WorkspaceStore] = None,
              service: Optional[InterpretationService] = None,
              sync_port: Optional[SyncPort] = None) -> ChatOrchestrator:
  store = store or WorkspaceStore()
  service = service or LLMInterpretationService(
      assistant_name=store.workspace.preferences.assistant_name or DEFAULT_ASSISTANT_NAME)
  sync_port = sync_port or build_sync_port(lambda: store.workspace.preferences.timezone)
  orchestrator = ChatOrchestrator(store, service, sync_port)
  _runtime["orchestrator"] = orchestrator
  return orchestrator


def get_orchestrator() -> ChatOrchestrator:
  orchestrator = _runtime.get("orchestrator")
  if orchestrator is None:
    orchestrator = configure()
  return orchestrator


# -------------------------
# 세션
# -------------------------
@router.get("/sessions")
def list_sessions() -> Dict[str, Any]:
  orchestrator = get_orchestrator()
  orchestrator.ensure_session()
  workspace = orchestrator.store.workspace
  return {
      "active_session_id": workspace.active_session_id,
      "sessions": [session.model_dump(mode="json") for session in workspace.sessions],
  }


@router.post("/sessions", response_model=ChatSession)
def create_session():
  return get_orchestrator().new_session()


@router.delete("/sessions/{session_id}")
def delete_session(session_id: str):
  try:
    get_orchestrator().delete_session(session_id)
  except NotFound as exc:
    raise HTTPException(status_code=404, detail=str(exc))
  except TurnInProgress as exc:
    raise HTTPException(status_code=409, detail=str(exc))
  return {"ok": True, "deleted": session_id}


@router.post("/sessions/{session_id}/activate", response_model=ChatSession)
def activate_session(session_id: str):
  try:
    return get_orchestrator().activate_session(session_id)
  except NotFound as exc:
    raise HTTPException(status_code=404, detail=str(exc))


# -------------------------
# 채팅 턴 / 드래프트
# -------------------------
@router.post("/chat/{session_id}/turn", response_model=ChatMessage)
async def chat_turn(session_id: str, body: TurnRequest):
  orchestrator = get_orchestrator()
  try:
    return await orchestrator.run_turn(session_id, body.text)
  except TurnInProgress as exc:
    raise HTTPException(status_code=409, detail=str(exc))
  except NotFound as exc:
    raise HTTPException(status_code=404, detail=str(exc))
  except ValueError as exc:
    raise HTTPException(status_code=400, detail=str(exc))
  except Exception as exc:
    logger.exception("Chat turn error")
    raise HTTPException(status_code=500, detail=f"Chat turn error: {exc}")


@router.post("/chat/{session_id}/messages/{message_id}/accept")
async def accept_message_draft(session_id: str, message_id: str):
  orchestrator = get_orchestrator()
  try:
    message, item = await accept_draft(orchestrator.store, session_id, message_id, orchestrator.sync_port)
  except NotFound as exc:
    raise HTTPException(status_code=404, detail=str(exc))
  except DraftAlreadyAccepted as exc:
    raise HTTPException(status_code=409, detail=str(exc))
  except Exception as exc:
    logger.exception("Draft accept error")
    raise HTTPException(status_code=500, detail=str(exc))
  return {"message": message, "item": item}


# -------------------------
# 일정 / 할 일
# -------------------------
@router.post("/tasks/{task_id}/auto-schedule", response_model=Event)
async def auto_schedule(task_id: str, body: Optional[AutoScheduleRequest] = None):
  orchestrator = get_orchestrator()
  target = body.date if body is not None else None
  if target is not None and try_parse_date(target) is None:
    raise HTTPException(status_code=400, detail="date must be YYYY-MM-DD.")
  try:
    return await auto_schedule_task(orchestrator.store,
                                    task_id,
                                    orchestrator.service,
                                    orchestrator.sync_port,
                                    target_date=target)
  except NotFound as exc:
    raise HTTPException(status_code=404, detail=str(exc))
  except SlotUnavailable as exc:
    raise HTTPException(status_code=409, detail=str(exc))
  except ValueError as exc:
    raise HTTPException(status_code=400, detail=str(exc))
  except Exception as exc:
    logger.exception("Auto-schedule error")
    raise HTTPException(status_code=500, detail=str(exc))


@router.post("/tasks/{task_id}/reschedule", response_model=Task)
async def reschedule(task_id: str, body: RescheduleRequest):
  orchestrator = get_orchestrator()
  try:
    return await reschedule_task(orchestrator.store, task_id, body.date, orchestrator.sync_port)
  except NotFound as exc:
    raise HTTPException(status_code=404, detail=str(exc))
  except ValueError as exc:
    raise HTTPException(status_code=400, detail=str(exc))


@router.get("/items")
def list_items(date: Optional[str] = Query(None)) -> List[Union[Event, Task]]:
  workspace = get_orchestrator().store.workspace
  if date is None:
    target = now_in_timezone(resolve_timezone(workspace.preferences.timezone)).date()
  else:
    target = try_parse_date(date)
    if target is None:
      raise HTTPException(status_code=400, detail="date must be YYYY-MM-DD.")
  return items_on_date(workspace.items, target)


@router.get("/load")
def get_load(date: Optional[str] = Query(None)) -> Dict[str, int]:
  workspace = get_orchestrator().store.workspace
  target = try_parse_date(date) if date is not None else \
      now_in_timezone(resolve_timezone(workspace.preferences.timezone)).date()
  if target is None:
    raise HTTPException(status_code=400, detail="date must be YYYY-MM-DD.")
  return day_load(workspace.items, target)


# -------------------------
# 설정 / 프로필
# -------------------------
@router.get("/preferences", response_model=Preferences)
def get_preferences():
  return get_orchestrator().store.workspace.preferences


@router.patch("/preferences", response_model=Preferences)
def patch_preferences(body: PreferencesUpdate):
  return get_orchestrator().update_preferences(body)


@router.get("/profile")
def get_profile() -> Dict[str, Any]:
  return {"profile": get_orchestrator().store.workspace.profile}


@router.get("/facts")
def get_facts() -> Dict[str, Any]:
  return {"facts": get_orchestrator().store.workspace.recent_facts}
