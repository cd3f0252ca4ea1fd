from __future__ import annotations

import json
import re
from typing import Any, Dict, List, Literal, Optional, Type, TypeVar, Union

from pydantic import BaseModel, ConfigDict, Field

IntentName = Literal["general", "create_event", "create_task", "update_prefs"]

T = TypeVar("T", bound=BaseModel)


# ---------------------------------------------------------------------------
#  Requests, one per remote call kind
# ---------------------------------------------------------------------------

class KnowledgeMergeRequest(BaseModel):
  model_config = ConfigDict(extra="forbid")

  kind: Literal["knowledge_merge"] = "knowledge_merge"
  profile: Dict[str, Any] = Field(default_factory=dict)
  utterance: str
  max_facts: int


class IntentPlanRequest(BaseModel):
  model_config = ConfigDict(extra="forbid")

  kind: Literal["intent_plan"] = "intent_plan"
  profile: Dict[str, Any] = Field(default_factory=dict)
  today: str
  day_name: str
  now_time: str
  occupied: List[Dict[str, str]] = Field(default_factory=list)
  load: Dict[str, int] = Field(default_factory=dict)
  history: List[Dict[str, str]] = Field(default_factory=list)
  utterance: str


class ReplyComposeRequest(BaseModel):
  model_config = ConfigDict(extra="forbid")

  kind: Literal["reply_compose"] = "reply_compose"
  profile: Dict[str, Any] = Field(default_factory=dict)
  plan: Dict[str, Any] = Field(default_factory=dict)
  utterance: str
  tone: str
  language: str


class SlotSearchRequest(BaseModel):
  model_config = ConfigDict(extra="forbid")

  kind: Literal["slot_search"] = "slot_search"
  date: str
  duration_minutes: int
  busy: List[Dict[str, str]] = Field(default_factory=list)
  window_start: str
  window_end: str


InterpretationRequest = Union[KnowledgeMergeRequest, IntentPlanRequest,
                              ReplyComposeRequest, SlotSearchRequest]


# ---------------------------------------------------------------------------
#  Structured responses
# ---------------------------------------------------------------------------

class KnowledgeMergeResult(BaseModel):
  model_config = ConfigDict(extra="ignore")

  profile: Dict[str, Any] = Field(default_factory=dict)


class InsightSchema(BaseModel):
  model_config = ConfigDict(extra="ignore")

  type: Literal["warning", "encouragement", "tip"] = "tip"
  message: str = ""


class PlanDetails(BaseModel):
  model_config = ConfigDict(extra="ignore")

  title: Optional[str] = None
  date: Optional[str] = None
  start_time: Optional[str] = None
  end_time: Optional[str] = None
  estimated_minutes: Optional[int] = None
  recurrence: Optional[str] = None
  days_of_week: Optional[List[int]] = None
  day_of_month: Optional[int] = None
  priority: Optional[str] = None
  location: Optional[str] = None
  description: Optional[str] = None


class PlanResult(BaseModel):
  model_config = ConfigDict(extra="ignore")

  intent: IntentName = "general"
  new_fact: Optional[str] = None
  insight: Optional[InsightSchema] = None
  details: Optional[PlanDetails] = None


class SlotSearchResult(BaseModel):
  model_config = ConfigDict(extra="ignore")

  found: bool = False
  date: Optional[str] = None
  start: Optional[str] = None
  end: Optional[str] = None


# ---------------------------------------------------------------------------
#  Deserialization boundary
# ---------------------------------------------------------------------------

def _clean_json_text(text: str) -> str:
  cleaned = (text or "").strip()
  if cleaned.startswith("```"):
    cleaned = re.sub(r"^```[a-zA-Z0-9_-]*\s*", "", cleaned).strip()
    cleaned = re.sub(r"\s*```$", "", cleaned).strip()
  return cleaned


def parse_structured(response_model: Type[T], raw_output: Any) -> Optional[T]:
  """Validate raw remote output against ``response_model``; None if it does not fit."""
  if isinstance(raw_output, response_model):
    return raw_output
  if isinstance(raw_output, dict):
    try:
      return response_model.model_validate(raw_output)
    except Exception:
      return None
  if not isinstance(raw_output, str) or not raw_output.strip():
    return None
  candidates = [raw_output, _clean_json_text(raw_output)]
  cleaned = candidates[-1]
  if cleaned:
    left = cleaned.find("{")
    right = cleaned.rfind("}")
    if left != -1 and right != -1 and right > left:
      candidates.append(cleaned[left:right + 1])
    stripped = cleaned.strip()
    if stripped.startswith("["):
      try:
        arr = json.loads(stripped)
        if isinstance(arr, list) and arr and isinstance(arr[0], dict):
          candidates.append(json.dumps(arr[0], ensure_ascii=False))
      except Exception:
        pass
  seen = set()
  for candidate in candidates:
    text = (candidate or "").strip()
    if not text or text in seen:
      continue
    seen.add(text)
    try:
      return response_model.model_validate_json(text)
    except Exception:
      continue
  return None
