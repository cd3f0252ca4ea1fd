"""
Remote interpretation service used by every pipeline stage.

One request type per call kind (see ``schemas``); the service returns the raw
remote output and each stage validates it at its own deserialization boundary.
"""

from __future__ import annotations

from typing import Any, Dict, Tuple

from ..config import KNOWLEDGE_MODEL, PLANNER_MODEL, RESPONSE_MODEL, SLOT_MODEL
from .errors import InterpretationError
from .llm_provider import get_agent_llm_settings, run_structured_completion, run_text_completion
from .schemas import InterpretationRequest

KNOWLEDGE_SYSTEM_PROMPT = """You maintain a compact profile of facts about the user of a personal scheduling assistant.
Return JSON only. No markdown.
"""

KNOWLEDGE_DEVELOPER_PROMPT = """Input: profile (current facts), utterance (latest user message), max_facts.
Output: {"profile": {fact_key: value}}

Rules:
1) Return the COMPLETE replacement profile, not a diff.
2) Keep existing facts unless the utterance contradicts or refines them.
3) Add durable facts only: name (key "name"), interests, preferences, projects, routines, important people.
4) Never store one-off requests, dates of single meetings, or small talk.
5) Use short snake_case keys. Values are strings or short lists of strings.
6) At most max_facts entries. When over the limit drop the oldest or least relevant facts.
7) If nothing durable was said, return the profile unchanged.
"""

PLANNER_SYSTEM_PROMPT = """Intent planner for a personal calendar + tasks secretary.
Return JSON only. No markdown.
Today: {today} ({day_name}). Current time: {now_time}.
"""

PLANNER_DEVELOPER_PROMPT = """Input: profile, today, day_name, now_time, occupied (today's busy intervals),
load (today's planned_minutes, burnout_risk and efficiency, 0-100), history (recent turns), utterance.

Output: {"intent": "general"|"create_event"|"create_task"|"update_prefs",
         "new_fact": string|null,
         "insight": {"type": "warning"|"encouragement"|"tip", "message": string}|null,
         "details": {"title", "date": "YYYY-MM-DD", "start_time": "HH:MM"|null, "end_time": "HH:MM"|null,
                     "estimated_minutes": number|null,
                     "recurrence": "none"|"daily"|"weekly"|"monthly"|"weekdays"|"specific_days"|null,
                     "days_of_week": [0..6]|null (Sunday=0), "day_of_month": number|null,
                     "priority": "urgent"|"high"|"normal"|"low"|null, "location": string|null}|null}

Rules:
1) create_event for things that happen at a time (meetings, appointments, workouts); create_task for to-dos and reminders.
2) update_prefs when the user changes how the assistant should address or behave toward them.
3) general for everything else; details must be null then.
4) title: a few words, no dates or times.
5) Resolve relative dates against today. Times are 24h "HH:MM".
6) end_time must be after start_time. Default event length is one hour.
7) Never propose a time that overlaps an occupied interval; pick the next free time instead.
8) new_fact: one short sentence worth remembering about the user, or null.
9) insight: only when the day looks overloaded (warning, e.g. burnout_risk of 70 or more), the user made progress (encouragement), or a useful tip applies.
10) If the user keeps rescheduling (low efficiency), comment on the pattern.
"""

RESPONSE_SYSTEM_PROMPT = """You are {assistant_name}, a high-end personal secretary.
Write the reply shown to the user as plain conversational text (no JSON, no markdown tables).
Language: {language}. Tone: {tone}.
"""

RESPONSE_DEVELOPER_PROMPT = """Input: profile, plan (intent, details, insight), utterance, tone, language.

Rules:
- YOUR OUTPUT LANGUAGE MUST MATCH the language field ("en" = English, "ru" = Russian).
- If the plan proposes an event or task, describe it briefly (title, date, time) and invite the user to accept it.
- If the proposed time differs from what the user asked for, say it was moved to avoid a conflict.
- Use the profile to personalize (name, interests) without listing it back.
- Never invent items that are not in the plan.
- One to three sentences.
"""

SLOT_SYSTEM_PROMPT = """You find a free time slot in a single day's schedule.
Return JSON only. No markdown.
"""

SLOT_DEVELOPER_PROMPT = """Input: date, duration_minutes, busy (list of {start, end} "HH:MM"), window_start, window_end.

Output: {"found": true|false, "date": "YYYY-MM-DD", "start": "HH:MM", "end": "HH:MM"}

Rules:
1) end - start must equal duration_minutes exactly.
2) The slot must lie inside [window_start, window_end].
3) The slot must not overlap any busy interval (touching edges is fine).
4) Prefer the earliest slot that fits.
5) If nothing fits return {"found": false}.
"""


class InterpretationService:
  """Request/response contract with the remote interpretation capability."""

  async def complete(self, request: InterpretationRequest) -> str:
    raise NotImplementedError


_ROUTES: Dict[str, Tuple[str, str, str, bool, str, int]] = {
    "knowledge_merge": (KNOWLEDGE_MODEL, KNOWLEDGE_SYSTEM_PROMPT, KNOWLEDGE_DEVELOPER_PROMPT,
                        True, "KNOWLEDGE", 4000),
    "intent_plan": (PLANNER_MODEL, PLANNER_SYSTEM_PROMPT, PLANNER_DEVELOPER_PROMPT,
                    True, "PLANNER", 6000),
    "reply_compose": (RESPONSE_MODEL, RESPONSE_SYSTEM_PROMPT, RESPONSE_DEVELOPER_PROMPT,
                      False, "RESPONSE", 3000),
    "slot_search": (SLOT_MODEL, SLOT_SYSTEM_PROMPT, SLOT_DEVELOPER_PROMPT,
                    True, "SLOT", 2000),
}


class LLMInterpretationService(InterpretationService):
  """OpenAI / Gemini backed implementation."""

  def __init__(self, assistant_name: str = "Kairos"):
    self.assistant_name = assistant_name

  def _system_prompt(self, template: str, payload: Dict[str, Any]) -> str:
    return template.format(
        today=payload.get("today", ""),
        day_name=payload.get("day_name", ""),
        now_time=payload.get("now_time", ""),
        assistant_name=self.assistant_name,
        language=payload.get("language", "en"),
        tone=payload.get("tone", ""),
    )

  async def complete(self, request: InterpretationRequest) -> str:
    kind = request.kind
    model, system_template, developer_prompt, json_mode, settings_key, max_tokens = _ROUTES[kind]
    settings = get_agent_llm_settings(settings_key)
    payload = request.model_dump(exclude={"kind"})
    system_prompt = self._system_prompt(system_template, payload)

    if json_mode:
      # 각 단계가 자체 스키마로 raw 출력을 검증한다
      raw_output, meta = await run_structured_completion(
          model=model,
          system_prompt=system_prompt,
          developer_prompt=developer_prompt,
          user_payload=payload,
          reasoning_effort=settings["reasoning_effort"],
          gemini_thinking_level=settings["gemini_thinking_level"],
          verbosity="low",
          max_completion_tokens=max_tokens,
      )
    else:
      raw_output, meta = await run_text_completion(
          model=model,
          system_prompt=system_prompt,
          developer_prompt=developer_prompt,
          user_payload=payload,
          reasoning_effort=settings["reasoning_effort"],
          gemini_thinking_level=settings["gemini_thinking_level"],
          verbosity="low",
          max_completion_tokens=max_tokens,
      )

    if meta.get("llm_available") is False:
      raise InterpretationError(kind, str(meta.get("unavailable_reason") or "llm_unavailable"), meta)
    if meta.get("llm_output_empty_or_error") and meta.get("llm_error"):
      raise InterpretationError(kind, str(meta.get("llm_error"))[:220], meta)
    return raw_output or ""
