from __future__ import annotations

from typing import Any, Dict, Optional


class AgentError(Exception):
  """Base class for pipeline and action failures."""


class InterpretationError(AgentError):
  """The remote interpretation call failed at the transport level."""

  def __init__(self, kind: str, reason: str, meta: Optional[Dict[str, Any]] = None):
    super().__init__(f"{kind} call failed: {reason}")
    self.kind = kind
    self.reason = reason
    self.meta = meta or {}


class CompositionError(AgentError):
  """Reply composition produced no usable text."""


class TurnInProgress(AgentError):
  """A turn is already in flight for this session."""

  def __init__(self, session_id: str):
    super().__init__(f"A turn is already in progress for session {session_id}.")
    self.session_id = session_id


class NotFound(AgentError):
  pass


class DraftAlreadyAccepted(AgentError):
  pass


class SlotUnavailable(AgentError):
  """No valid free slot could be obtained for an auto-scheduling request."""
