from __future__ import annotations

import time
from datetime import datetime
from typing import Callable, Dict, Optional

from ..config import (
    DEFAULT_ASSISTANT_NAME,
    DEFAULT_USER_NAME,
    RECENT_FACTS_CAP,
    SESSION_TITLE_MAX_CHARS,
)
from ..gcal import NullSyncPort, SyncPort
from ..models import ChatMessage, ChatSession, Draft, Preferences, PreferencesUpdate, Workspace
from ..state import WorkspaceStore, remove_session, replace_session
from ..utils import _log_debug, new_id, normalize_text, now_in_timezone
from . import intent_planner, knowledge_merger, response_composer
from .errors import NotFound, TurnInProgress
from .interpretation import InterpretationService
from .normalizer import normalize_input_as_text, resolve_timezone
from .state import TurnState, TurnStateRegistry

GREETINGS: Dict[str, str] = {
    "en": "Hello, {user}! I'm your personal {assistant}. Ready to assist with your day.",
    "ru": "Привет, {user}! Я ваш личный {assistant}. Готов помочь с делами.",
}

FAILURE_REPLIES: Dict[str, str] = {
    "en": "I'm having trouble processing your request. Let's try again in a moment.",
    "ru": "Извините, возникла ошибка при обработке запроса. Попробуйте еще раз.",
}

_FALLBACK_USER_NAMES = {"en": DEFAULT_USER_NAME, "ru": "друг"}


def greeting_text(preferences: Preferences) -> str:
  language = preferences.language if preferences.language in GREETINGS else "en"
  user = preferences.user_name.strip() or _FALLBACK_USER_NAMES[language]
  assistant = preferences.assistant_name.strip() or DEFAULT_ASSISTANT_NAME
  return GREETINGS[language].format(user=user, assistant=assistant)


def failure_text(language: str) -> str:
  return FAILURE_REPLIES.get(language, FAILURE_REPLIES["en"])


def refresh_greeting(workspace: Workspace) -> Workspace:
  """Re-render greetings that are still the only message of their session."""
  content = greeting_text(workspace.preferences)
  sessions = []
  for session in workspace.sessions:
    if len(session.messages) == 1 and session.messages[0].is_greeting \
        and session.messages[0].content != content:
      greeting = session.messages[0].model_copy(update={"content": content})
      session = session.model_copy(update={"messages": [greeting]})
    sessions.append(session)
  return workspace.model_copy(update={"sessions": sessions})


def _title_from(text: str) -> str:
  title = normalize_text(text)
  if len(title) > SESSION_TITLE_MAX_CHARS:
    title = title[:SESSION_TITLE_MAX_CHARS].rstrip() + "..."
  return title


class ChatOrchestrator:
  """Drives one chat turn through merge, plan and compose for a session.

  All workspace changes go through ``store.commit`` with whole-value
  replacement. Each commit re-reads ``store.workspace`` so that draft
  acceptances or auto-scheduling done while a turn is suspended survive.
  """

  def __init__(self,
               store: WorkspaceStore,
               service: InterpretationService,
               sync_port: Optional[SyncPort] = None,
               clock: Optional[Callable[[], datetime]] = None):
    self.store = store
    self.service = service
    self.sync_port = sync_port or NullSyncPort()
    self.turns = TurnStateRegistry()
    self._clock = clock

  def _now(self) -> datetime:
    if self._clock is not None:
      return self._clock()
    return now_in_timezone(resolve_timezone(self.store.workspace.preferences.timezone))

  def _require_session(self, session_id: str) -> ChatSession:
    session = self.store.workspace.find_session(session_id)
    if session is None:
      raise NotFound(f"Session {session_id} not found.")
    return session

  # -------------------------
  # 세션 관리
  # -------------------------
  def new_session(self) -> ChatSession:
    workspace = self.store.workspace
    greeting = ChatMessage(id=new_id(),
                           role="assistant",
                           content=greeting_text(workspace.preferences),
                           is_greeting=True)
    session = ChatSession(id=new_id(), messages=[greeting], created_at=time.time())
    workspace = replace_session(workspace, session)
    self.store.commit(workspace.model_copy(update={"active_session_id": session.id}))
    return session

  def ensure_session(self) -> ChatSession:
    workspace = self.store.workspace
    active = workspace.find_session(workspace.active_session_id)
    if active is not None:
      return active
    if workspace.sessions:
      session = workspace.sessions[0]
      self.store.commit(workspace.model_copy(update={"active_session_id": session.id}))
      return session
    return self.new_session()

  def activate_session(self, session_id: str) -> ChatSession:
    session = self._require_session(session_id)
    self.store.commit(self.store.workspace.model_copy(update={"active_session_id": session_id}))
    return session

  def delete_session(self, session_id: str) -> None:
    if self.turns.is_thinking(session_id):
      raise TurnInProgress(session_id)
    self._require_session(session_id)
    self.store.commit(remove_session(self.store.workspace, session_id))
    self.turns.reset(session_id)

  def update_preferences(self, update: PreferencesUpdate) -> Preferences:
    workspace = self.store.workspace
    changes = {key: value for key, value in update.model_dump(exclude_none=True).items()}
    if "user_name" in changes:
      changes["user_name"] = changes["user_name"].strip()
    if "assistant_name" in changes:
      changes["assistant_name"] = changes["assistant_name"].strip()
    if "timezone" in changes:
      changes["timezone"] = resolve_timezone(changes["timezone"])
    preferences = workspace.preferences.model_copy(update=changes)
    workspace = refresh_greeting(workspace.model_copy(update={"preferences": preferences}))
    self.store.commit(workspace)
    return preferences

  # -------------------------
  # 턴 실행
  # -------------------------
  def _append_message(self, session_id: str, message: ChatMessage) -> Workspace:
    workspace = self.store.workspace
    session = workspace.find_session(session_id)
    if session is None:
      # 세션이 턴 도중 삭제됨
      return workspace
    update = {"messages": [*session.messages, message]}
    if message.role == "user" and not session.title:
      update["title"] = _title_from(message.content)
    return replace_session(workspace, session.model_copy(update=update))

  async def run_turn(self, session_id: str, text: str) -> ChatMessage:
    """Run one turn and return the assistant message appended for it.

    Raises ``TurnInProgress`` when the session already has a turn in flight,
    ``NotFound`` for an unknown session and ``ValueError`` for empty text.
    Any failure after the user message is appended becomes a single
    localized failure reply.
    """
    utterance = normalize_input_as_text(text)
    if not utterance:
      raise ValueError("Message text is empty.")
    session = self._require_session(session_id)
    if self.turns.is_thinking(session_id):
      raise TurnInProgress(session_id)
    self.turns.advance(session_id, TurnState.AWAITING_KNOWLEDGE_MERGE)

    history = list(session.messages)
    user_message = ChatMessage(id=new_id(), role="user", content=utterance)
    self.store.commit(self._append_message(session_id, user_message))

    base_profile = dict(self.store.workspace.profile)
    try:
      profile = await knowledge_merger.merge(base_profile, utterance, self.service)
      self.turns.advance(session_id, TurnState.AWAITING_PLAN)

      plan = await intent_planner.plan(profile,
                                       self.store.workspace.items,
                                       history,
                                       utterance,
                                       self._now(),
                                       self.service)
      self.turns.advance(session_id, TurnState.AWAITING_REPLY)

      preferences = self.store.workspace.preferences
      reply = await response_composer.compose(profile,
                                              plan,
                                              utterance,
                                              preferences.tone,
                                              preferences.language,
                                              self.service)
    except Exception as exc:
      _log_debug(f"[ORCHESTRATOR] turn failed for {session_id}: {type(exc).__name__}: {exc}")
      self.turns.advance(session_id, TurnState.ERRORED)
      failure = ChatMessage(id=new_id(),
                            role="assistant",
                            content=failure_text(self.store.workspace.preferences.language))
      self.store.commit(self._append_message(session_id, failure))
      self.turns.advance(session_id, TurnState.IDLE)
      return failure

    draft_item = intent_planner.draft_item(plan)
    reply_message = ChatMessage(id=new_id(),
                                role="assistant",
                                content=reply,
                                insight=plan.insight,
                                draft=Draft(item=draft_item) if draft_item is not None else None)

    workspace = self._append_message(session_id, reply_message)
    facts = list(workspace.recent_facts)
    if plan.new_fact:
      facts = [plan.new_fact, *facts][:RECENT_FACTS_CAP]
    profile = knowledge_merger.rebase(base_profile, profile, workspace.profile)
    workspace = workspace.model_copy(update={"profile": profile, "recent_facts": facts})

    declared = knowledge_merger.declared_user_name(profile)
    if declared and declared != workspace.preferences.user_name:
      preferences = workspace.preferences.model_copy(update={"user_name": declared})
      workspace = refresh_greeting(workspace.model_copy(update={"preferences": preferences}))

    self.store.commit(workspace)
    self.turns.advance(session_id, TurnState.SETTLED)
    self.turns.advance(session_id, TurnState.IDLE)
    return reply_message
