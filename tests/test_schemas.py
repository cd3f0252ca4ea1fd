import pytest

from kairos.agent.normalizer import (
    coerce_hhmm,
    normalize_days_of_week,
    normalize_recurrence,
    resolve_timezone,
)
from kairos.agent.schemas import IntentPlanRequest, PlanResult, SlotSearchResult, parse_structured
from kairos.gcal import rrule_for
from kairos.models import Event


@pytest.mark.parametrize("raw", [
    '{"intent": "create_task", "details": {"title": "Call mom"}}',
    '```json\n{"intent": "create_task", "details": {"title": "Call mom"}}\n```',
    'Here you go: {"intent": "create_task", "details": {"title": "Call mom"}} hope it helps',
    '[{"intent": "create_task", "details": {"title": "Call mom"}}]',
    {"intent": "create_task", "details": {"title": "Call mom"}},
])
def test_parse_structured_accepts_wrapped_json(raw):
  parsed = parse_structured(PlanResult, raw)
  assert parsed.intent == "create_task"
  assert parsed.details.title == "Call mom"


@pytest.mark.parametrize("raw", ["", "nothing here", '{"intent": "dance"}', None, 42])
def test_parse_structured_rejects_garbage(raw):
  assert parse_structured(PlanResult, raw) is None


def test_requests_carry_literal_kind():
  request = IntentPlanRequest(today="2024-01-10", day_name="Wednesday", now_time="09:30", utterance="hi")
  assert request.kind == "intent_plan"
  assert parse_structured(SlotSearchResult, '{"found": false}').found is False


def test_normalizers():
  assert coerce_hhmm("7:05 pm") == "19:05"
  assert coerce_hhmm("24:00") is None
  assert normalize_recurrence("Every Week") == "weekly"
  assert normalize_recurrence("fortnightly") is None
  assert normalize_days_of_week(["3", 1, 9, 1]) == [1, 3]
  assert resolve_timezone("Not/AZone") == resolve_timezone(None)


def test_rrule_mapping_uses_sunday_zero():
  base = dict(id="e", title="Yoga", date="2024-01-10", start_time="07:00", end_time="08:00")
  assert rrule_for(Event(recurrence="weekly", **base)) == "FREQ=WEEKLY;BYDAY=WE"
  assert rrule_for(Event(recurrence="specific_days", days_of_week=[0, 6], **base)) == "FREQ=WEEKLY;BYDAY=SU,SA"
  assert rrule_for(Event(recurrence="monthly", **base)) == "FREQ=MONTHLY;BYMONTHDAY=10"
  assert rrule_for(Event(**base)) is None
