from __future__ import annotations

from typing import Any, Dict, List, Optional

from ..config import KNOWLEDGE_PROFILE_CAP
from ..utils import _log_debug
from .interpretation import InterpretationService
from .schemas import KnowledgeMergeRequest, KnowledgeMergeResult, parse_structured

_NAME_KEYS = ("name", "user_name", "userName")


def _clean_profile(raw: Dict[str, Any]) -> Dict[str, Any]:
  cleaned: Dict[str, Any] = {}
  for key, value in raw.items():
    if not isinstance(key, str) or not key.strip():
      continue
    if value is None:
      continue
    if isinstance(value, str) and not value.strip():
      continue
    if isinstance(value, (list, dict)) and not value:
      continue
    cleaned[key.strip()] = value
  return cleaned


def enforce_cap(previous: Dict[str, Any],
                merged: Dict[str, Any],
                cap: int = KNOWLEDGE_PROFILE_CAP) -> Dict[str, Any]:
  """Order ``merged`` by fact age and evict the oldest facts beyond ``cap``.

  Keys already present in ``previous`` keep their position; keys introduced
  by this merge are the youngest.
  """
  surviving: List[str] = [key for key in previous if key in merged]
  introduced: List[str] = [key for key in merged if key not in previous]
  ordered = surviving + introduced
  if len(ordered) > cap:
    ordered = ordered[len(ordered) - cap:]
  return {key: merged[key] for key in ordered}


def rebase(base: Dict[str, Any],
           merged: Dict[str, Any],
           current: Dict[str, Any],
           cap: int = KNOWLEDGE_PROFILE_CAP) -> Dict[str, Any]:
  """Replay the ``base`` -> ``merged`` change on top of ``current``.

  Turns in other sessions may commit between the merge call and this turn's
  commit; their facts stay unless this merge removed or rewrote the same key.
  """
  removed = {key for key in base if key not in merged}
  changed = {key: value for key, value in merged.items() if key not in base or base[key] != value}
  result = {key: value for key, value in current.items() if key not in removed}
  result.update(changed)
  return enforce_cap(current, result, cap)


def declared_user_name(profile: Dict[str, Any]) -> Optional[str]:
  for key in _NAME_KEYS:
    value = profile.get(key)
    if isinstance(value, str) and value.strip():
      return value.strip()
  return None


async def merge(profile: Dict[str, Any],
                utterance: str,
                service: InterpretationService) -> Dict[str, Any]:
  """Fold facts from ``utterance`` into ``profile``.

  Never raises: an empty, unparsable or failed merge returns ``profile``
  unchanged.
  """
  previous = dict(profile or {})
  request = KnowledgeMergeRequest(
      profile=previous,
      utterance=utterance,
      max_facts=KNOWLEDGE_PROFILE_CAP,
  )
  try:
    raw_output = await service.complete(request)
  except Exception as exc:
    _log_debug(f"[KNOWLEDGE] merge call failed, keeping profile: {exc}")
    return previous

  parsed = parse_structured(KnowledgeMergeResult, raw_output)
  if parsed is None:
    _log_debug("[KNOWLEDGE] merge output unparsable, keeping profile")
    return previous
  merged = _clean_profile(parsed.profile)
  if not merged:
    _log_debug("[KNOWLEDGE] merge output empty, keeping profile")
    return previous
  return enforce_cap(previous, merged)
