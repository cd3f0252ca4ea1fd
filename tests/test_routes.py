import pytest
from fastapi.testclient import TestClient

from kairos import routes
from kairos.agent.state import TurnState
from kairos.app import app
from kairos.models import Event, Task
from kairos.state import WorkspaceStore, replace_item

from conftest import RecordingSyncPort, ScriptedService

GYM_PLAN = {
    "intent": "create_event",
    "new_fact": "Goes to the gym",
    "details": {"title": "Gym", "date": "2024-01-10", "start_time": "18:00", "end_time": "19:00"},
}


@pytest.fixture
def api():
  service = ScriptedService(
      knowledge_merge={"profile": {"name": "Anna"}},
      intent_plan=GYM_PLAN,
      reply_compose="Booked a gym slot for you.",
      slot_search={"found": True, "date": "2024-01-10", "start": "12:00", "end": "12:45"},
  )
  routes.configure(store=WorkspaceStore(data_file=None),
                   service=service,
                   sync_port=RecordingSyncPort())
  return TestClient(app)


def test_sessions_lifecycle(api):
  listed = api.get("/api/sessions").json()
  assert len(listed["sessions"]) == 1
  first_id = listed["active_session_id"]

  created = api.post("/api/sessions").json()
  assert created["messages"][0]["is_greeting"] is True
  assert api.get("/api/sessions").json()["active_session_id"] == created["id"]

  assert api.post(f"/api/sessions/{first_id}/activate").status_code == 200
  assert api.delete(f"/api/sessions/{created['id']}").json() == {"ok": True, "deleted": created["id"]}
  assert api.delete(f"/api/sessions/{created['id']}").status_code == 404
  assert api.post("/api/sessions/missing/activate").status_code == 404


def test_turn_then_accept_draft(api):
  session_id = api.post("/api/sessions").json()["id"]

  resp = api.post(f"/api/chat/{session_id}/turn", json={"text": "gym at 6pm"})
  assert resp.status_code == 200
  reply = resp.json()
  assert reply["content"] == "Booked a gym slot for you."
  assert reply["draft"]["item"]["kind"] == "event"

  accepted = api.post(f"/api/chat/{session_id}/messages/{reply['id']}/accept")
  assert accepted.status_code == 200
  assert accepted.json()["message"]["draft"]["synced"] is True
  again = api.post(f"/api/chat/{session_id}/messages/{reply['id']}/accept")
  assert again.status_code == 409
  assert api.post(f"/api/chat/{session_id}/messages/unknown/accept").status_code == 404

  items = api.get("/api/items", params={"date": "2024-01-10"}).json()
  assert [item["title"] for item in items] == ["Gym"]
  assert api.get("/api/profile").json() == {"profile": {"name": "Anna"}}
  assert api.get("/api/facts").json() == {"facts": ["Goes to the gym"]}
  assert api.get("/api/preferences").json()["user_name"] == "Anna"


def test_turn_validation_errors(api):
  session_id = api.post("/api/sessions").json()["id"]
  assert api.post(f"/api/chat/{session_id}/turn", json={"text": "  "}).status_code == 400
  assert api.post("/api/chat/missing/turn", json={"text": "hi"}).status_code == 404


def test_turn_in_flight_returns_conflict(api):
  session_id = api.post("/api/sessions").json()["id"]
  routes.get_orchestrator().turns.advance(session_id, TurnState.AWAITING_KNOWLEDGE_MERGE)
  resp = api.post(f"/api/chat/{session_id}/turn", json={"text": "hello"})
  assert resp.status_code == 409


def test_auto_schedule_endpoint(api):
  store = routes.get_orchestrator().store
  workspace = replace_item(store.workspace, Task(id="t1", title="Inbox zero", date="2024-01-10"))
  workspace = replace_item(workspace, Task(id="t2", title="Taxes", date="2024-01-10", estimated_minutes=120))
  store.commit(workspace)

  resp = api.post("/api/tasks/t1/auto-schedule", json={})
  assert resp.status_code == 200
  assert (resp.json()["start_time"], resp.json()["end_time"]) == ("12:00", "12:45")
  assert store.workspace.find_item("t1") is None

  failed = api.post("/api/tasks/t2/auto-schedule", json={"date": "2024-01-10"})
  assert failed.status_code == 409
  assert "No free 120-minute slot" in failed.json()["detail"]
  assert store.workspace.find_item("t2") is not None

  assert api.post("/api/tasks/nope/auto-schedule", json={}).status_code == 404
  assert api.post("/api/tasks/t2/auto-schedule", json={"date": "tomorrow"}).status_code == 400


def test_preferences_patch_refreshes_greeting(api):
  session = api.post("/api/sessions").json()
  prefs = api.patch("/api/preferences", json={"language": "ru", "user_name": "Олег"}).json()
  assert prefs["language"] == "ru"
  sessions = api.get("/api/sessions").json()["sessions"]
  greeting = next(s for s in sessions if s["id"] == session["id"])["messages"][0]
  assert greeting["content"].startswith("Привет, Олег!")


def test_items_rejects_bad_date(api):
  store = routes.get_orchestrator().store
  store.commit(replace_item(store.workspace, Event(id="e1", title="Sync", date="2024-01-10",
                                                   start_time="09:00", end_time="10:00")))
  assert api.get("/api/items", params={"date": "10/01/2024"}).status_code == 400
  assert api.get("/api/items", params={"date": "2024-01-11"}).json() == []


def test_reschedule_and_load_endpoints(api):
  store = routes.get_orchestrator().store
  store.commit(replace_item(store.workspace, Task(id="t1", title="Taxes", date="2024-01-10", estimated_minutes=240)))
  assert api.get("/api/load", params={"date": "2024-01-10"}).json() == {
      "planned_minutes": 240, "burnout_risk": 50, "efficiency": 100}

  moved = api.post("/api/tasks/t1/reschedule", json={"date": "2024-01-11"})
  assert moved.status_code == 200
  assert (moved.json()["date"], moved.json()["reschedule_count"]) == ("2024-01-11", 1)
  assert api.get("/api/load", params={"date": "2024-01-11"}).json() == {
      "planned_minutes": 240, "burnout_risk": 52, "efficiency": 95}

  assert api.post("/api/tasks/t1/reschedule", json={"date": "soon"}).status_code == 400
  assert api.post("/api/tasks/nope/reschedule", json={"date": "2024-01-12"}).status_code == 404
  assert api.get("/api/load", params={"date": "bad"}).status_code == 400
