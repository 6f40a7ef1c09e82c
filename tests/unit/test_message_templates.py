"""Unit tests for reminder message rendering"""
from datetime import timedelta

from ticket_reminders.domain.enums import RuleKind
from ticket_reminders.engine.selector import select_due_notifications
from ticket_reminders.templates import build_message
from tests.fakes import T0, make_rule, make_ticket


def only_item(now, rule, ticket):
    (item,) = select_due_notifications(now, [rule], [ticket])
    return item


def test_pending_reminder_message():
    now = T0 + timedelta(hours=12, minutes=30)
    message = build_message(only_item(now, make_rule(), make_ticket()), now)

    assert message.template_name == "ticket_reminder"
    assert message.template_params == {
        "ticket_id": "T-1",
        "subcategory": "Plumbing",
        "hours": "12",
        "reminder_number": "1",
    }
    assert "pending for 12h 30m" in message.fallback_text
    assert message.ticket_ref == "TKT-1"


def test_visit_reminder_uses_rule_template():
    visit = T0 + timedelta(days=4, hours=2)
    rule = make_rule(
        rule_id="rule-visit",
        kind=RuleKind.AGENCY_VISIT_REMINDER,
        target_ref="agency-7",
        template_id="visit_tomorrow_v3",
    )
    ticket = make_ticket(agency_ref="agency-7", agency_visit_at=visit)
    now = visit - timedelta(hours=3)

    message = build_message(only_item(now, rule, ticket), now)

    assert message.template_name == "visit_tomorrow_v3"
    assert message.template_params["visit_date"] == "5 Mar 2025"
    assert message.template_params["location"] == "Block B"
    assert "5 Mar 2025" in message.fallback_text


def test_missed_visit_message():
    visit = T0 + timedelta(days=1)
    rule = make_rule(rule_id="rule-missed", kind=RuleKind.MISSED_VISIT_ALERT, target_ref="agency-7")
    ticket = make_ticket(agency_ref="agency-7", agency_visit_at=visit)
    now = visit + timedelta(hours=1)

    message = build_message(only_item(now, rule, ticket), now)

    assert message.template_name == "agency_missed_visit"
    assert message.template_params["scheduled_date"] == "2 Mar 2025"
    assert "Missed Visit" in message.fallback_text
