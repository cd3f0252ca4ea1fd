from __future__ import annotations

from enum import Enum
from typing import Dict


class TurnState(str, Enum):
  IDLE = "idle"
  AWAITING_KNOWLEDGE_MERGE = "awaiting_knowledge_merge"
  AWAITING_PLAN = "awaiting_plan"
  AWAITING_REPLY = "awaiting_reply"
  SETTLED = "settled"
  ERRORED = "errored"


_AWAITING = {
    TurnState.AWAITING_KNOWLEDGE_MERGE,
    TurnState.AWAITING_PLAN,
    TurnState.AWAITING_REPLY,
}

_TRANSITIONS = {
    TurnState.IDLE: {TurnState.AWAITING_KNOWLEDGE_MERGE},
    TurnState.AWAITING_KNOWLEDGE_MERGE: {TurnState.AWAITING_PLAN, TurnState.ERRORED},
    TurnState.AWAITING_PLAN: {TurnState.AWAITING_REPLY, TurnState.ERRORED},
    TurnState.AWAITING_REPLY: {TurnState.SETTLED, TurnState.ERRORED},
    TurnState.SETTLED: {TurnState.IDLE},
    TurnState.ERRORED: {TurnState.IDLE},
}


class TurnStateRegistry:
  """Per-session turn state; a session with a state in ``_AWAITING`` is thinking."""

  def __init__(self) -> None:
    self._states: Dict[str, TurnState] = {}

  def get(self, session_id: str) -> TurnState:
    return self._states.get(session_id, TurnState.IDLE)

  def is_thinking(self, session_id: str) -> bool:
    return self.get(session_id) in _AWAITING

  def advance(self, session_id: str, target: TurnState) -> None:
    current = self.get(session_id)
    if target not in _TRANSITIONS[current]:
      raise RuntimeError(f"Illegal turn transition {current.value} -> {target.value}")
    if target == TurnState.IDLE:
      self._states.pop(session_id, None)
      return
    self._states[session_id] = target

  def reset(self, session_id: str) -> None:
    self._states.pop(session_id, None)
