from __future__ import annotations

import os
import pathlib
import re

OPENAI_API_KEY = os.getenv("OPENAI_API_KEY")
LLM_DEBUG = os.getenv("LLM_DEBUG", "0") == "1"
DEFAULT_TIMEZONE = os.getenv("KAIROS_TIMEZONE", "UTC").strip() or "UTC"

ISO_DATE_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")
HHMM_RE = re.compile(r"^([01]?\d|2[0-3]):([0-5]\d)$")
AMPM_RE = re.compile(r"^(\d{1,2})(?::(\d{2}))?\s*([AaPp])\.?\s*[Mm]\.?$")

# -------------------------
# Google Calendar / Tasks 설정
# -------------------------
ENABLE_GCAL = os.getenv("ENABLE_GCAL", "0") == "1"
GOOGLE_CALENDAR_ID = os.getenv("GOOGLE_CALENDAR_ID", "primary")
GOOGLE_TASKLIST_ID = os.getenv("GOOGLE_TASKLIST_ID", "@default")
GCAL_SCOPES = [
    "https://www.googleapis.com/auth/calendar.events",
    "https://www.googleapis.com/auth/tasks",
]

BASE_DIR = pathlib.Path(__file__).resolve().parent.parent
GOOGLE_TOKEN_FILE = pathlib.Path(
    os.getenv("GOOGLE_TOKEN_FILE", str(BASE_DIR / "gcal_tokens" / "token.json")))
_data_file_raw = os.getenv("KAIROS_DATA_FILE", "").strip()
DATA_FILE = pathlib.Path(_data_file_raw) if _data_file_raw else None
API_BASE = os.getenv("API_BASE", "/api")

# -------------------------
# 런타임 제한/기본값
# -------------------------
WORK_DAY_START = os.getenv("KAIROS_WORK_DAY_START", "09:00")
WORK_DAY_END = os.getenv("KAIROS_WORK_DAY_END", "21:00")
KNOWLEDGE_PROFILE_CAP = int(os.getenv("KAIROS_KNOWLEDGE_CAP", "15"))
RECENT_FACTS_CAP = 50
HISTORY_WINDOW_MESSAGES = int(os.getenv("KAIROS_HISTORY_WINDOW", "6"))
DEFAULT_EVENT_MINUTES = 60
DEFAULT_TASK_MINUTES = 45
LOAD_DAY_MINUTES = 8 * 60
SESSION_TITLE_MAX_CHARS = 40
DEFAULT_TONE = os.getenv("KAIROS_DEFAULT_TONE", "warm")
DEFAULT_USER_NAME = "there"
DEFAULT_ASSISTANT_NAME = "Kairos"

# -------------------------
# Agent LLM 모델
# -------------------------
DEFAULT_TEXT_MODEL = "gpt-5-nano"
DEFAULT_PLANNER_MODEL = "gpt-5-mini"
KNOWLEDGE_MODEL = os.getenv("AGENT_KNOWLEDGE_MODEL", DEFAULT_TEXT_MODEL).strip() or DEFAULT_TEXT_MODEL
PLANNER_MODEL = os.getenv("AGENT_PLANNER_MODEL", DEFAULT_PLANNER_MODEL).strip() or DEFAULT_PLANNER_MODEL
RESPONSE_MODEL = os.getenv("AGENT_RESPONSE_MODEL", DEFAULT_TEXT_MODEL).strip() or DEFAULT_TEXT_MODEL
SLOT_MODEL = os.getenv("AGENT_SLOT_MODEL", DEFAULT_TEXT_MODEL).strip() or DEFAULT_TEXT_MODEL

# -------------------------
# 음성 입력
# -------------------------
SPEECH_MAX_DURATION_SECONDS = float(os.getenv("KAIROS_SPEECH_MAX_SECONDS", "60"))
