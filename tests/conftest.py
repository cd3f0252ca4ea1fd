from __future__ import annotations

import asyncio
import json
from datetime import datetime
from typing import Any, Dict, List, Optional

import pytest

from kairos.agent.interpretation import InterpretationService
from kairos.agent.orchestrator import ChatOrchestrator
from kairos.gcal import SyncPort
from kairos.state import WorkspaceStore

NOW = datetime(2024, 1, 10, 9, 30)  # Wednesday


class ScriptedService(InterpretationService):
  """Answers each call kind from a script instead of a remote model.

  A script entry may be a string, a dict (sent as JSON), an exception
  instance (raised) or a list of those consumed in order. ``gates`` holds
  events a call of that kind waits on before answering.
  """

  def __init__(self, **scripts: Any):
    self.scripts: Dict[str, Any] = dict(scripts)
    self.gates: Dict[str, asyncio.Event] = {}
    self.calls: List[Any] = []

  def kinds(self) -> List[str]:
    return [request.kind for request in self.calls]

  async def complete(self, request) -> str:
    self.calls.append(request)
    gate = self.gates.get(request.kind)
    if gate is not None:
      await gate.wait()
    script = self.scripts.get(request.kind, "")
    if isinstance(script, list):
      value = script.pop(0) if script else ""
    else:
      value = script
    if isinstance(value, BaseException):
      raise value
    if isinstance(value, dict):
      return json.dumps(value)
    return value or ""


class RecordingSyncPort(SyncPort):
  def __init__(self):
    self.created: List[Any] = []
    self.deleted: List[Any] = []
    self.updated: List[Any] = []

  def create_item(self, item) -> Optional[str]:
    self.created.append(item)
    return f"ext-{len(self.created)}"

  def update_item(self, item) -> None:
    self.updated.append(item)

  def delete_item(self, item) -> None:
    self.deleted.append(item)


@pytest.fixture
def store():
  return WorkspaceStore(data_file=None)


@pytest.fixture
def sync_port():
  return RecordingSyncPort()


@pytest.fixture
def service():
  return ScriptedService(
      knowledge_merge={"profile": {}},
      intent_plan={"intent": "general"},
      reply_compose="Sure thing.",
  )


@pytest.fixture
def orchestrator(store, service, sync_port):
  return ChatOrchestrator(store, service, sync_port, clock=lambda: NOW)
