from datetime import datetime, timedelta, timezone
import pytest
from werkzeug.exceptions import HTTPException
from fieldops.config.sla import STANDARD, HELPDESK
from fieldops.services.sla import compute_sla_due, effective_priority

NOW = datetime(2026, 3, 2, 12, 0, tzinfo=timezone.utc)


@pytest.mark.parametrize('priority,hours', [('critical', 1), ('high', 4), ('medium', 24), ('low', 72)])
def test_standard_offsets(priority, hours):
    assert compute_sla_due(priority, now=NOW) == NOW + timedelta(hours=hours)


@pytest.mark.parametrize('priority,hours', [('critical', 2), ('high', 4), ('medium', 8), ('low', 24)])
def test_helpdesk_offsets(priority, hours):
    assert compute_sla_due(priority, now=NOW, table=HELPDESK) == NOW + timedelta(hours=hours)


def test_tables_are_not_unified():
    assert compute_sla_due('critical', now=NOW, table=STANDARD) != compute_sla_due('critical', now=NOW, table=HELPDESK)


def test_critical_due_before_low_at_same_instant():
    for table in (STANDARD, HELPDESK):
        assert compute_sla_due('critical', now=NOW, table=table) < compute_sla_due('low', now=NOW, table=table)


def test_urgency_escalates_but_never_relaxes():
    assert effective_priority('low', 'critical') == 'critical'
    assert effective_priority('medium', 'high') == 'high'
    assert effective_priority('low', 'normal') == 'medium'
    # A mild urgency leaves a higher priority alone
    assert effective_priority('critical', 'low') == 'critical'
    assert effective_priority('high', 'normal') == 'high'
    assert effective_priority('medium', None) == 'medium'


def test_helpdesk_urgency_shortens_due():
    due = compute_sla_due('low', now=NOW, urgency_level='critical', table=HELPDESK)
    assert due == NOW + timedelta(hours=2)


def test_due_follows_creation_instant():
    later = NOW + timedelta(seconds=1)
    delta = compute_sla_due('low', now=later) - compute_sla_due('low', now=NOW)
    assert delta == timedelta(seconds=1)


def test_invalid_priority_and_urgency():
    with pytest.raises(HTTPException) as exc:
        compute_sla_due('urgent', now=NOW)
    assert exc.value.code == 400
    with pytest.raises(HTTPException) as exc:
        compute_sla_due('low', now=NOW, urgency_level='panic', table=HELPDESK)
    assert exc.value.code == 400


def test_default_now_is_current_time():
    before = datetime.now(timezone.utc)
    due = compute_sla_due('high')
    after = datetime.now(timezone.utc)
    assert before + timedelta(hours=4) <= due <= after + timedelta(hours=4)
