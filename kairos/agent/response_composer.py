from __future__ import annotations

from typing import Any, Dict, Optional

from ..config import DEFAULT_TONE, RESPONSE_MODEL
from ..utils import _log_debug
from .errors import CompositionError
from .intent_planner import Plan
from .interpretation import InterpretationService
from .schemas import ReplyComposeRequest

print(f"[RESPONSE_COMPOSER] Loaded model: {RESPONSE_MODEL}", flush=True)

_MAX_REPLY_CHARS = 4000


def _plan_payload(plan: Plan) -> Dict[str, Any]:
  payload = plan.as_payload()
  if not plan.rescheduled:
    payload.pop("rescheduled", None)
  return payload


def _clean_reply(text: Any) -> str:
  if not isinstance(text, str):
    return ""
  cleaned = text.strip()
  # 구조화 응답이 섞여 들어오면 버린다
  if cleaned.startswith("{") and cleaned.endswith("}"):
    return ""
  if cleaned.startswith("```"):
    return ""
  return cleaned[:_MAX_REPLY_CHARS]


async def compose(profile: Dict[str, Any],
                  plan: Plan,
                  utterance: str,
                  tone: Optional[str],
                  language: str,
                  service: InterpretationService) -> str:
  request = ReplyComposeRequest(
      profile=dict(profile or {}),
      plan=_plan_payload(plan),
      utterance=utterance,
      tone=(tone or "").strip() or DEFAULT_TONE,
      language=language,
  )
  raw_output = await service.complete(request)
  reply = _clean_reply(raw_output)
  if not reply:
    _log_debug(f"[RESPONSE_COMPOSER] unusable reply: {raw_output!r}")
    raise CompositionError("Reply composition returned no usable text.")
  return reply
