from __future__ import annotations

import json
import os
from typing import Any, Dict, List, Optional, Tuple
from urllib.parse import quote

import requests
from mcp.server.fastmcp import FastMCP

BACKEND_BASE_URL = os.getenv("BACKEND_BASE_URL", "http://localhost:8000").rstrip("/")
BACKEND_API_BASE = os.getenv("BACKEND_API_BASE", "/api").rstrip("/")
DEFAULT_SESSION_ID = os.getenv("KAIROS_SESSION_ID", "").strip()
REQUEST_TIMEOUT = float(os.getenv("MCP_BACKEND_TIMEOUT", "60"))
DEBUG_MODE = os.getenv("MCP_DEBUG", "1").strip() in ("1", "true", "True", "yes")
LOG_REQUESTS = os.getenv("MCP_LOG_REQUESTS", "0").strip() in ("1", "true", "True", "yes")

mcp = FastMCP("kairos")


def _log_tool_call(tool_name: str, input_data: Dict[str, Any], output_data: Dict[str, Any]) -> None:
  """도구 호출 입출력을 터미널에 출력"""
  if not DEBUG_MODE:
    return
  print(f"\n{'='*80}")
  print(f"Tool: {tool_name}")
  print(f"{'='*80}")
  print("입력:")
  print(json.dumps(input_data, indent=2, ensure_ascii=False))
  print("\n출력:")
  print(json.dumps(output_data, indent=2, ensure_ascii=False))
  print(f"{'='*80}\n")


class RequestLoggerMiddleware:
  def __init__(self, app: Any):
    self.app = app

  async def __call__(self, scope: Dict[str, Any], receive: Any, send: Any) -> None:
    if scope.get("type") == "http" and LOG_REQUESTS:
      headers = self._decode_headers(scope.get("headers") or [])
      if "authorization" in headers:
        headers["authorization"] = "(redacted)"
      print("\n" + "=" * 80)
      print(f"MCP HTTP Request {scope.get('method', '')} {scope.get('path', '')}")
      print(json.dumps(headers, indent=2, ensure_ascii=False))
      print("=" * 80 + "\n")
    await self.app(scope, receive, send)

  def _decode_headers(self, raw_headers: List[Tuple[bytes, bytes]]) -> Dict[str, str]:
    decoded: Dict[str, str] = {}
    for key, value in raw_headers:
      decoded[key.decode("latin-1").lower()] = value.decode("latin-1")
    return decoded


def _api_path(path: str) -> str:
  return f"{BACKEND_API_BASE}/{path.lstrip('/')}"


def _resolve_session_id(session_id: Optional[str]) -> Optional[str]:
  sid = (session_id or DEFAULT_SESSION_ID).strip()
  return sid or None


def _request(method: str,
             path: str,
             params: Optional[Dict[str, Any]] = None,
             payload: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
  url = f"{BACKEND_BASE_URL}{path}"
  try:
    resp = requests.request(method,
                            url,
                            params=params,
                            json=payload,
                            timeout=REQUEST_TIMEOUT)
  except Exception as exc:
    return {
        "ok": False,
        "code": "request_failed",
        "message": f"Backend request failed: {exc}",
    }

  try:
    data = resp.json()
  except Exception:
    data = {"raw": resp.text}

  if resp.status_code >= 400:
    return {
        "ok": False,
        "code": "backend_error",
        "status": resp.status_code,
        "error": data,
    }

  return {"ok": True, "data": data}


def _active_session_id() -> Optional[str]:
  listed = _request("GET", _api_path("sessions"))
  if not listed.get("ok"):
    return None
  data = listed.get("data") or {}
  return data.get("active_session_id") or None


@mcp.tool(name="chat.send")
def chat_send(text: str, session_id: Optional[str] = None) -> Dict[str, Any]:
  input_data = {"text": text, "session_id": session_id}
  sid = _resolve_session_id(session_id) or _active_session_id()
  if not sid:
    result = {"ok": False, "code": "no_session", "message": "No chat session is available."}
    _log_tool_call("chat.send", input_data, result)
    return result
  result = _request("POST", _api_path(f"chat/{quote(sid)}/turn"), payload={"text": text})
  if result.get("ok"):
    result["session_id"] = sid
  _log_tool_call("chat.send", input_data, result)
  return result


@mcp.tool(name="drafts.accept")
def drafts_accept(message_id: str, session_id: Optional[str] = None) -> Dict[str, Any]:
  input_data = {"message_id": message_id, "session_id": session_id}
  sid = _resolve_session_id(session_id) or _active_session_id()
  if not sid:
    result = {"ok": False, "code": "no_session", "message": "No chat session is available."}
    _log_tool_call("drafts.accept", input_data, result)
    return result
  result = _request("POST", _api_path(f"chat/{quote(sid)}/messages/{quote(message_id)}/accept"))
  _log_tool_call("drafts.accept", input_data, result)
  return result


@mcp.tool(name="tasks.auto_schedule")
def tasks_auto_schedule(task_id: str, date: Optional[str] = None) -> Dict[str, Any]:
  input_data = {"task_id": task_id, "date": date}
  payload = {"date": date} if date else None
  result = _request("POST", _api_path(f"tasks/{quote(task_id)}/auto-schedule"), payload=payload)
  _log_tool_call("tasks.auto_schedule", input_data, result)
  return result


@mcp.tool(name="tasks.reschedule")
def tasks_reschedule(task_id: str, date: str) -> Dict[str, Any]:
  input_data = {"task_id": task_id, "date": date}
  result = _request("POST", _api_path(f"tasks/{quote(task_id)}/reschedule"), payload={"date": date})
  _log_tool_call("tasks.reschedule", input_data, result)
  return result


@mcp.tool(name="calendar.items_on_date")
def calendar_items_on_date(date: Optional[str] = None, kind: Optional[str] = None) -> Dict[str, Any]:
  input_data = {"date": date, "kind": kind}
  params = {"date": date} if date else None
  result = _request("GET", _api_path("items"), params=params)
  if result.get("ok") and kind in ("event", "task"):
    items = result.get("data") or []
    result["data"] = [item for item in items if isinstance(item, dict) and item.get("kind") == kind]
  _log_tool_call("calendar.items_on_date", input_data, result)
  return result


if __name__ == "__main__":
  import uvicorn

  host = os.getenv("MCP_HOST", "0.0.0.0")
  port = int(os.getenv("MCP_PORT", "8001"))
  app = mcp.streamable_http_app()
  if LOG_REQUESTS:
    app = RequestLoggerMiddleware(app)
  uvicorn.run(app, host=host, port=port)
