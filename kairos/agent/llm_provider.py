from __future__ import annotations

import asyncio
import json
import os
from typing import Any, Dict, List, Optional, Tuple

from google import genai
from google.genai import types as genai_types

from ..llm import get_async_client
from ..utils import _log_debug

_gemini_client: Any = None
_gemini_api_key_cached: str = ""
_GEMINI_DEFAULT_THINKING_LEVEL = "MINIMAL"


def _get_openai_reasoning_effort() -> str:
  return os.getenv("OPENAI_REASONING_EFFORT", "low").strip() or "low"


def _get_openai_verbosity() -> str:
  return os.getenv("OPENAI_VERBOSITY", "low").strip() or "low"


def _print_raw_output(*,
                      kind: str,
                      provider: str,
                      model: str,
                      raw_output: str,
                      resolved_model: Optional[str] = None) -> None:
  meta_parts = [f"kind={kind}", f"provider={provider}", f"model={model}"]
  if resolved_model:
    meta_parts.append(f"resolved_model={resolved_model}")
  _log_debug(f"[AGENT LLM RAW] {' '.join(meta_parts)}")
  _log_debug(raw_output if raw_output else "(empty)")
  _log_debug("[AGENT LLM RAW END]")


def _extract_message_text(content: Any) -> str:
  if isinstance(content, str):
    return content.strip()
  if isinstance(content, list):
    chunks = []
    for item in content:
      if isinstance(item, dict):
        text_val = item.get("text")
        if isinstance(text_val, str) and text_val.strip():
          chunks.append(text_val.strip())
      elif isinstance(item, str) and item.strip():
        chunks.append(item.strip())
    return " ".join(chunks).strip()
  return ""


def _provider_for_model(model: str) -> str:
  provider = os.getenv("AGENT_LLM_PROVIDER", "auto").strip().lower()
  if provider in ("openai", "gemini"):
    return provider
  model_name = str(model or "").strip().lower()
  if model_name.startswith("gemini") or model_name.startswith("models/gemini"):
    return "gemini"
  return "openai"


def _canonical_gemini_model(model: str) -> str:
  model_name = str(model or "").strip()
  if not model_name:
    return "models/gemini-flash-latest"
  if model_name.startswith("models/"):
    return model_name
  return f"models/{model_name}"


def get_agent_llm_settings(prefix: str) -> Dict[str, Optional[str]]:
  """Per-stage reasoning effort / thinking level overrides from the environment."""
  prefix = prefix.upper().strip()
  return {
      "reasoning_effort": os.getenv(f"AGENT_{prefix}_REASONING_EFFORT"),
      "gemini_thinking_level": os.getenv(f"AGENT_{prefix}_THINKING_LEVEL"),
  }


def _gemini_text_from_response(response: Any) -> str:
  text = getattr(response, "text", None)
  if isinstance(text, str) and text.strip():
    return text.strip()
  candidates = getattr(response, "candidates", None)
  if not isinstance(candidates, list):
    return ""
  chunks = []
  for candidate in candidates:
    content = getattr(candidate, "content", None)
    parts = getattr(content, "parts", None) if content is not None else None
    if not isinstance(parts, list):
      continue
    for part in parts:
      text_val = getattr(part, "text", None)
      if isinstance(text_val, str) and text_val.strip():
        chunks.append(text_val.strip())
  return " ".join(chunks).strip()


def _gemini_client_or_reason() -> Tuple[Any, Optional[str]]:
  global _gemini_client, _gemini_api_key_cached
  gemini_api_key = os.getenv("GEMINI_API_KEY", "").strip()
  if not gemini_api_key:
    return None, "gemini_api_key_missing"
  if _gemini_client is None or _gemini_api_key_cached != gemini_api_key:
    _gemini_client = genai.Client(api_key=gemini_api_key)
    _gemini_api_key_cached = gemini_api_key
  return _gemini_client, None


def _compose_prompt(system_prompt: str,
                    user_content: str,
                    developer_prompt: Optional[str]) -> str:
  instruction = system_prompt
  if isinstance(developer_prompt, str) and developer_prompt.strip():
    instruction = f"{instruction}\n\n{developer_prompt.strip()}"
  return f"{instruction}\n\nUser:\n{user_content}"


def _gemini_thinking_level(override_level: Optional[str] = None) -> Optional[str]:
  raw = override_level
  if raw is None:
    raw = os.getenv("GEMINI_THINKING_LEVEL", _GEMINI_DEFAULT_THINKING_LEVEL)
  value = str(raw or "").strip().upper()
  if value in ("NONE", "MINIMAL", "LOW", "MEDIUM", "HIGH"):
    return value
  return None


def _gemini_config(max_completion_tokens: int,
                   json_mode: bool,
                   thinking_level: Optional[str] = None) -> genai_types.GenerateContentConfig:
  config: Dict[str, Any] = {}
  if json_mode:
    config["response_mime_type"] = "application/json"
  if isinstance(max_completion_tokens, int) and max_completion_tokens > 0:
    config["max_output_tokens"] = max_completion_tokens
  level = _gemini_thinking_level(thinking_level)
  if level:
    config["thinking_config"] = {"thinking_level": level}
  return genai_types.GenerateContentConfig(**config)


def _gemini_generate_sync(client: Any,
                          model: str,
                          prompt: str,
                          max_completion_tokens: int,
                          json_mode: bool,
                          thinking_level: Optional[str] = None) -> Tuple[str, str]:
  resolved_model = _canonical_gemini_model(model)
  response = client.models.generate_content(
      model=resolved_model,
      contents=prompt,
      config=_gemini_config(max_completion_tokens, json_mode, thinking_level),
  )
  return _gemini_text_from_response(response), resolved_model


def _compose_openai_messages(system_prompt: str,
                             developer_prompt: Optional[str],
                             user_content: str,
                             json_mode: bool) -> List[Dict[str, str]]:
  instruction = system_prompt
  if isinstance(developer_prompt, str) and developer_prompt.strip():
    instruction = f"{instruction}\n\n{developer_prompt.strip()}"
  # JSON 모드 사용 시 시스템 프롬프트에 'json' 명시 필수
  if json_mode and "json" not in instruction.lower():
    instruction += "\n\nResponse must be a valid JSON object."
  return [
      {"role": "system", "content": instruction},
      {"role": "user", "content": user_content},
  ]


async def _run_completion(*,
                          kind: str,
                          model: str,
                          system_prompt: str,
                          developer_prompt: Optional[str],
                          user_payload: Dict[str, Any],
                          max_completion_tokens: int,
                          json_mode: bool,
                          reasoning_effort: Optional[str],
                          verbosity: Optional[str],
                          gemini_thinking_level: Optional[str]) -> Tuple[str, Dict[str, Any]]:
  if reasoning_effort is None:
    reasoning_effort = _get_openai_reasoning_effort()
  if verbosity is None:
    verbosity = _get_openai_verbosity()
  provider = _provider_for_model(model)
  user_content = json.dumps(user_payload, ensure_ascii=False)

  if provider == "gemini":
    client, unavailable_reason = _gemini_client_or_reason()
    if client is None:
      return "", {
          "model": model,
          "provider": provider,
          "llm_available": False,
          "unavailable_reason": unavailable_reason,
      }
    prompt = _compose_prompt(system_prompt, user_content, developer_prompt)
    try:
      text, resolved_model = await asyncio.to_thread(
          _gemini_generate_sync,
          client,
          model,
          prompt,
          max_completion_tokens,
          json_mode,
          gemini_thinking_level,
      )
    except Exception as exc:
      print(f"[AGENT LLM ERROR] Gemini {kind} model={model} error={exc}", flush=True)
      return "", {
          "model": model,
          "provider": provider,
          "llm_available": True,
          "llm_output_empty_or_error": True,
          "llm_error": str(exc),
      }
    _print_raw_output(kind=kind, provider=provider, model=model,
                      raw_output=text, resolved_model=resolved_model)
    return text, {
        "model": model,
        "resolved_model": resolved_model,
        "provider": provider,
        "thinking_level": gemini_thinking_level,
        "llm_available": True,
    }

  try:
    client = get_async_client()
  except Exception:
    return "", {
        "model": model,
        "provider": provider,
        "llm_available": False,
        "unavailable_reason": "openai_api_key_missing",
    }

  messages = _compose_openai_messages(system_prompt, developer_prompt,
                                      user_content, json_mode)
  request_kwargs: Dict[str, Any] = {
      "model": model,
      "messages": messages,
      "reasoning_effort": reasoning_effort,
      "verbosity": verbosity,
      "max_completion_tokens": max_completion_tokens,
  }
  if json_mode:
    request_kwargs["response_format"] = {"type": "json_object"}
  try:
    completion = await client.chat.completions.create(**request_kwargs)
  except Exception as exc:
    print(f"[AGENT LLM ERROR] OpenAI {kind} model={model} error={exc}", flush=True)
    return "", {
        "model": model,
        "provider": provider,
        "reasoning_effort": reasoning_effort,
        "llm_available": True,
        "llm_output_empty_or_error": True,
        "llm_error": str(exc),
    }
  text = _extract_message_text(completion.choices[0].message.content)
  _print_raw_output(kind=kind, provider=provider, model=model, raw_output=text)
  return text, {
      "model": model,
      "provider": provider,
      "reasoning_effort": reasoning_effort,
      "llm_available": True,
  }


async def run_structured_completion(
    *,
    model: str,
    system_prompt: str,
    developer_prompt: Optional[str],
    user_payload: Dict[str, Any],
    max_completion_tokens: int,
    reasoning_effort: Optional[str] = None,
    verbosity: Optional[str] = None,
    gemini_thinking_level: Optional[str] = None,
) -> Tuple[str, Dict[str, Any]]:
  return await _run_completion(
      kind="structured",
      model=model,
      system_prompt=system_prompt,
      developer_prompt=developer_prompt,
      user_payload=user_payload,
      max_completion_tokens=max_completion_tokens,
      json_mode=True,
      reasoning_effort=reasoning_effort,
      verbosity=verbosity,
      gemini_thinking_level=gemini_thinking_level,
  )


async def run_text_completion(
    *,
    model: str,
    system_prompt: str,
    developer_prompt: Optional[str],
    user_payload: Dict[str, Any],
    max_completion_tokens: int,
    reasoning_effort: Optional[str] = None,
    verbosity: Optional[str] = None,
    gemini_thinking_level: Optional[str] = None,
) -> Tuple[str, Dict[str, Any]]:
  return await _run_completion(
      kind="text",
      model=model,
      system_prompt=system_prompt,
      developer_prompt=developer_prompt,
      user_payload=user_payload,
      max_completion_tokens=max_completion_tokens,
      json_mode=False,
      reasoning_effort=reasoning_effort,
      verbosity=verbosity,
      gemini_thinking_level=gemini_thinking_level,
  )
