import asyncio

from kairos.agent import knowledge_merger
from kairos.agent.errors import InterpretationError
from kairos.config import KNOWLEDGE_PROFILE_CAP

from conftest import ScriptedService


def test_garbage_output_keeps_profile():
  profile = {"name": "Anna", "hobby": "chess"}
  service = ScriptedService(knowledge_merge="I'm sorry, I can't help with that.")
  merged = asyncio.run(knowledge_merger.merge(profile, "I like tea", service))
  assert merged == profile


def test_empty_and_failed_merges_keep_profile():
  profile = {"name": "Anna"}
  for script in ("", {"profile": {}}, InterpretationError("knowledge_merge", "timeout")):
    service = ScriptedService(knowledge_merge=script)
    assert asyncio.run(knowledge_merger.merge(profile, "hello", service)) == profile


def test_merge_replaces_profile_with_cleaned_result():
  service = ScriptedService(knowledge_merge='```json\n{"profile": {"name": "Anna", "city": "Riga", "empty": ""}}\n```')
  merged = asyncio.run(knowledge_merger.merge({"name": "Anna"}, "I live in Riga", service))
  assert merged == {"name": "Anna", "city": "Riga"}
  request = service.calls[0]
  assert request.kind == "knowledge_merge"
  assert request.max_facts == KNOWLEDGE_PROFILE_CAP


def test_profile_never_exceeds_cap_over_many_merges():
  profile = {}
  for round_no in range(40):
    grown = dict(profile)
    grown[f"fact_{round_no}"] = round_no
    grown[f"extra_{round_no}"] = "x"
    service = ScriptedService(knowledge_merge={"profile": grown})
    profile = asyncio.run(knowledge_merger.merge(profile, "more", service))
    assert len(profile) <= KNOWLEDGE_PROFILE_CAP
  assert "fact_39" in profile
  assert "fact_0" not in profile


def test_enforce_cap_evicts_oldest_keys():
  previous = {f"k{i}": i for i in range(3)}
  merged = {"k2": 2, "new": True, "k0": 0, "k1": 1}
  assert list(knowledge_merger.enforce_cap(previous, merged, cap=3)) == ["k1", "k2", "new"]


def test_declared_user_name():
  assert knowledge_merger.declared_user_name({"userName": " Ivan "}) == "Ivan"
  assert knowledge_merger.declared_user_name({"name": ""}) is None


def test_rebase_keeps_facts_committed_by_other_turns():
  base = {"name": "Anna", "city": "Riga"}
  merged = {"name": "Anna", "city": "Oslo", "hobby": "gym"}
  current = {"name": "Anna", "city": "Riga", "pet": "cat"}
  assert knowledge_merger.rebase(base, merged, current) == {
      "name": "Anna", "city": "Oslo", "pet": "cat", "hobby": "gym"}

  dropped = knowledge_merger.rebase(base, {"name": "Anna"}, current)
  assert dropped == {"name": "Anna", "pet": "cat"}
  assert knowledge_merger.rebase(base, dict(base), current) == current


def test_rebase_respects_cap():
  current = {f"k{i}": i for i in range(KNOWLEDGE_PROFILE_CAP)}
  rebased = knowledge_merger.rebase({}, {"fresh": "yes"}, current)
  assert len(rebased) == KNOWLEDGE_PROFILE_CAP
  assert "k0" not in rebased and rebased["fresh"] == "yes"
