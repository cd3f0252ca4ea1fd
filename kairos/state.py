from __future__ import annotations

import json
import pathlib
from typing import Any, Dict, List, Optional, Union

from .config import DATA_FILE
from .models import ChatSession, Event, Task, Workspace
from .utils import _log_debug

# NOTE: 상태 변경은 WorkspaceStore.commit 을 통해서만 한다. 값 전체를 교체한다.


class WorkspaceStore:
    """Holds the only mutable handle to the workspace and persists snapshots."""

    def __init__(self, data_file: Optional[pathlib.Path] = DATA_FILE):
        self.data_file = data_file
        self._workspace = Workspace()
        self._load_from_disk()

    @property
    def workspace(self) -> Workspace:
        return self._workspace

    def commit(self, workspace: Workspace) -> Workspace:
        self._workspace = workspace
        self._save_to_disk()
        return workspace

    def _serialize_payload(self) -> Dict[str, Any]:
        return {
            "version": 1,
            **self._workspace.model_dump(mode="json"),
        }

    def _save_to_disk(self) -> None:
        if self.data_file is None:
            return
        try:
            self.data_file.parent.mkdir(parents=True, exist_ok=True)
            payload = self._serialize_payload()
            self.data_file.write_text(json.dumps(payload, ensure_ascii=False, indent=2),
                                      encoding="utf-8")
        except Exception as exc:
            _log_debug(f"[WORKSPACE STORE] save failed: {exc}")

    def _load_from_disk(self) -> None:
        if self.data_file is None or not self.data_file.exists():
            return
        try:
            data = json.loads(self.data_file.read_text(encoding="utf-8"))
        except Exception as exc:
            _log_debug(f"[WORKSPACE STORE] load failed: {exc}")
            return
        if not isinstance(data, dict):
            return
        data.pop("version", None)
        try:
            self._workspace = Workspace.model_validate(data)
        except Exception as exc:
            _log_debug(f"[WORKSPACE STORE] invalid snapshot ignored: {exc}")


def replace_session(workspace: Workspace, session: ChatSession) -> Workspace:
    sessions = [session if s.id == session.id else s for s in workspace.sessions]
    if not any(s.id == session.id for s in workspace.sessions):
        sessions.insert(0, session)
    return workspace.model_copy(update={"sessions": sessions})


def remove_session(workspace: Workspace, session_id: str) -> Workspace:
    sessions = [s for s in workspace.sessions if s.id != session_id]
    active = workspace.active_session_id
    if active == session_id:
        active = sessions[0].id if sessions else ""
    return workspace.model_copy(update={"sessions": sessions, "active_session_id": active})


def replace_item(workspace: Workspace, item: Union[Event, Task]) -> Workspace:
    items: List[Union[Event, Task]] = [item if i.id == item.id else i for i in workspace.items]
    if not any(i.id == item.id for i in workspace.items):
        items.append(item)
    return workspace.model_copy(update={"items": items})


def remove_item(workspace: Workspace, item_id: str) -> Workspace:
    return workspace.model_copy(update={"items": [i for i in workspace.items if i.id != item_id]})
