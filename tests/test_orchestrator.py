import asyncio

import pytest

from kairos.agent.errors import CompositionError, InterpretationError, NotFound, TurnInProgress
from kairos.agent.actions import accept_draft
from kairos.agent.orchestrator import FAILURE_REPLIES, ChatOrchestrator
from kairos.agent.state import TurnState
from kairos.models import PreferencesUpdate

from conftest import NOW, ScriptedService

GYM_PLAN = {
    "intent": "create_event",
    "new_fact": "Goes to the gym",
    "details": {"title": "Gym", "date": "2024-01-10", "start_time": "18:00", "end_time": "19:00"},
}


async def _settle(rounds: int = 20) -> None:
  for _ in range(rounds):
    await asyncio.sleep(0)


def test_new_session_starts_with_single_greeting(orchestrator, store):
  session = orchestrator.new_session()
  assert len(session.messages) == 1
  greeting = session.messages[0]
  assert greeting.role == "assistant" and greeting.is_greeting
  assert "Kairos" in greeting.content
  assert store.workspace.active_session_id == session.id


def test_turn_runs_stages_in_order_and_commits_reply(orchestrator, store, service):
  service.scripts.update(knowledge_merge={"profile": {"hobby": "gym"}}, intent_plan=GYM_PLAN)
  session = orchestrator.new_session()

  reply = asyncio.run(orchestrator.run_turn(session.id, "  book gym at 6pm  "))

  assert service.kinds() == ["knowledge_merge", "intent_plan", "reply_compose"]
  assert reply.content == "Sure thing."
  assert reply.draft.status == "proposed" and reply.draft.synced is False
  assert reply.draft.item.title == "Gym"

  stored = store.workspace.find_session(session.id)
  assert [m.role for m in stored.messages] == ["assistant", "user", "assistant"]
  assert stored.messages[1].content == "book gym at 6pm"
  assert stored.title == "book gym at 6pm"
  assert store.workspace.profile == {"hobby": "gym"}
  assert store.workspace.recent_facts == ["Goes to the gym"]
  assert orchestrator.turns.get(session.id) == TurnState.IDLE


@pytest.mark.parametrize("failure", [
    InterpretationError("reply_compose", "timeout"),
    "",
])
def test_compose_failure_appends_one_generic_reply(orchestrator, store, service, failure):
  service.scripts.update(knowledge_merge={"profile": {"hobby": "gym"}}, intent_plan=GYM_PLAN, reply_compose=failure)
  session = orchestrator.new_session()

  reply = asyncio.run(orchestrator.run_turn(session.id, "book gym"))

  stored = store.workspace.find_session(session.id)
  assert len(stored.messages) == 3
  assert stored.messages[-1] == reply
  assert reply.content == FAILURE_REPLIES["en"]
  assert reply.draft is None
  assert store.workspace.profile == {}
  assert store.workspace.recent_facts == []
  assert orchestrator.turns.get(session.id) == TurnState.IDLE


def test_planner_transport_error_is_turn_fatal(orchestrator, store, service):
  service.scripts["intent_plan"] = InterpretationError("intent_plan", "down")
  session = orchestrator.new_session()
  reply = asyncio.run(orchestrator.run_turn(session.id, "hi"))
  assert reply.content == FAILURE_REPLIES["en"]
  assert "reply_compose" not in service.kinds()


def test_failure_text_follows_language(orchestrator, service):
  orchestrator.update_preferences(PreferencesUpdate(language="ru"))
  service.scripts["reply_compose"] = CompositionError("empty")
  session = orchestrator.new_session()
  reply = asyncio.run(orchestrator.run_turn(session.id, "привет"))
  assert reply.content == FAILURE_REPLIES["ru"]


def test_rejects_empty_text_and_unknown_session(orchestrator):
  session = orchestrator.new_session()
  with pytest.raises(ValueError):
    asyncio.run(orchestrator.run_turn(session.id, "   "))
  with pytest.raises(NotFound):
    asyncio.run(orchestrator.run_turn("missing", "hello"))


def test_second_turn_in_same_session_is_rejected(orchestrator, store, service):
  session = orchestrator.new_session()
  other = orchestrator.new_session()

  async def scenario():
    service.gates["intent_plan"] = asyncio.Event()
    first = asyncio.create_task(orchestrator.run_turn(session.id, "first"))
    await _settle()
    assert orchestrator.turns.is_thinking(session.id)
    with pytest.raises(TurnInProgress):
      await orchestrator.run_turn(session.id, "second")
    service.gates["intent_plan"].set()
    await first
    await orchestrator.run_turn(other.id, "elsewhere")

  asyncio.run(scenario())
  contents = [m.content for m in store.workspace.find_session(session.id).messages]
  assert "second" not in contents
  assert contents.count("Sure thing.") == 1
  assert not orchestrator.turns.is_thinking(session.id)


def test_draft_acceptance_during_turn_survives(orchestrator, store, service, sync_port):
  service.scripts["intent_plan"] = [GYM_PLAN, {"intent": "general"}]
  session = orchestrator.new_session()
  first = asyncio.run(orchestrator.run_turn(session.id, "book gym"))

  async def scenario():
    service.gates["reply_compose"] = asyncio.Event()
    pending = asyncio.create_task(orchestrator.run_turn(session.id, "thanks"))
    await _settle()
    await accept_draft(store, session.id, first.id, sync_port)
    service.gates["reply_compose"].set()
    return await pending

  second = asyncio.run(scenario())
  stored = store.workspace.find_session(session.id)
  accepted = stored.find_message(first.id)
  assert accepted.draft.status == "accepted" and accepted.draft.synced
  assert stored.messages[-1].id == second.id
  assert [item.title for item in store.workspace.items] == ["Gym"]


def test_concurrent_turns_in_two_sessions_keep_both_facts(orchestrator, store, service):
  service.scripts["knowledge_merge"] = [{"profile": {"hobby": "gym"}}, {"profile": {"pet": "cat"}}]
  first = orchestrator.new_session()
  second = orchestrator.new_session()

  async def scenario():
    service.gates["reply_compose"] = asyncio.Event()
    turn_a = asyncio.create_task(orchestrator.run_turn(first.id, "I go to the gym"))
    await _settle()
    turn_b = asyncio.create_task(orchestrator.run_turn(second.id, "I have a cat"))
    await _settle()
    assert orchestrator.turns.is_thinking(first.id) and orchestrator.turns.is_thinking(second.id)
    service.gates["reply_compose"].set()
    await asyncio.gather(turn_a, turn_b)

  asyncio.run(scenario())
  assert store.workspace.profile == {"hobby": "gym", "pet": "cat"}


def test_declared_name_updates_preferences_and_greetings(orchestrator, store, service):
  service.scripts["knowledge_merge"] = {"profile": {"name": "Anna"}}
  idle = orchestrator.new_session()
  talking = orchestrator.new_session()
  asyncio.run(orchestrator.run_turn(talking.id, "I'm Anna"))

  assert store.workspace.preferences.user_name == "Anna"
  refreshed = store.workspace.find_session(idle.id).messages
  assert len(refreshed) == 1 and "Anna" in refreshed[0].content
  untouched = store.workspace.find_session(talking.id).messages[0]
  assert "Anna" not in untouched.content


def test_greeting_refresh_only_when_sole_message(orchestrator, store):
  fresh = orchestrator.new_session()
  used = orchestrator.new_session()
  asyncio.run(orchestrator.run_turn(used.id, "hello"))
  used_greeting = store.workspace.find_session(used.id).messages[0]

  orchestrator.update_preferences(PreferencesUpdate(language="ru", assistant_name="Хронос"))

  greeting = store.workspace.find_session(fresh.id).messages[0]
  assert greeting.id == fresh.messages[0].id
  assert greeting.content.startswith("Привет")
  assert "Хронос" in greeting.content
  assert store.workspace.find_session(used.id).messages[0] == used_greeting


def test_recent_facts_are_most_recent_first_and_capped(store):
  facts = [{"intent": "general", "new_fact": f"fact {i}"} for i in range(55)]
  service = ScriptedService(intent_plan=facts, reply_compose="ok")
  orchestrator = ChatOrchestrator(store, service, clock=lambda: NOW)
  session = orchestrator.new_session()
  for i in range(55):
    asyncio.run(orchestrator.run_turn(session.id, f"message {i}"))
  assert len(store.workspace.recent_facts) == 50
  assert store.workspace.recent_facts[0] == "fact 54"
  assert store.workspace.recent_facts[-1] == "fact 5"


def test_long_first_message_becomes_truncated_title(orchestrator, store):
  session = orchestrator.new_session()
  asyncio.run(orchestrator.run_turn(session.id, "please plan my whole week around the conference in Berlin"))
  asyncio.run(orchestrator.run_turn(session.id, "second message"))
  title = store.workspace.find_session(session.id).title
  assert title.startswith("please plan my whole week")
  assert title.endswith("...")
  assert len(title) <= 43
