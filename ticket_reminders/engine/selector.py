"""Due-Item Selector - Decide which reminders are due in this run

Pure and deterministic: the same `now`, rules and tickets always produce the
same ordered list, and nothing is read or written while selecting.

Per rule kind:
- USER_REMINDER: reminder k fires once `now - last_status_change_at >=
  k * reminder_interval`, only after k-1 has been recorded, up to
  max_reminders. A missed run sends the next reminder late, never two at once.
- AGENCY_VISIT_REMINDER: fires once inside [visit - lead_time, visit).
- MISSED_VISIT_ALERT: fires once when a pending ticket's visit (plus grace
  period) has passed.
"""
from datetime import datetime
from typing import Iterable, List, Optional

from ..domain.enums import RuleKind, TicketStatus
from ..domain.models import DueNotification, NotificationRule, TicketNotificationState
from ..utils.time import format_iso


def make_dedupe_key(rule_id: str, cycle_start: datetime, bucket: str) -> str:
    """Identity of one reminder slot: rule, cycle and time bucket"""
    return f"{rule_id}|{format_iso(cycle_start)}|{bucket}"


class DueItemSelector:
    """Compute due notifications from rules and ticket snapshots"""

    def select(
        self,
        now: datetime,
        rules: Iterable[NotificationRule],
        tickets: Iterable[TicketNotificationState]
    ) -> List[DueNotification]:
        """
        Produce the due notifications for this run

        Args:
            now: Current wall-clock time (UTC)
            rules: Rules to evaluate; inactive or misconfigured ones are ignored
            tickets: Ticket snapshots including their reminder logs

        Returns:
            Due items ordered by fire_at, then ticket_ref, then rule_id
        """
        tickets = list(tickets)
        due: List[DueNotification] = []

        for rule in rules:
            if not rule.active or rule.configuration_problem() is not None:
                continue

            for ticket in tickets:
                if not rule.applies_to(ticket.sub_category_id):
                    continue

                item = self._evaluate(rule, ticket, now)
                if item is not None:
                    due.append(item)

        due.sort(key=lambda d: (d.fire_at, d.ticket_ref, d.rule.rule_id))
        return due

    def _evaluate(
        self,
        rule: NotificationRule,
        ticket: TicketNotificationState,
        now: datetime
    ) -> Optional[DueNotification]:
        if rule.kind == RuleKind.USER_REMINDER:
            return self._user_reminder(rule, ticket, now)
        if rule.kind == RuleKind.AGENCY_VISIT_REMINDER:
            return self._agency_visit_reminder(rule, ticket, now)
        if rule.kind == RuleKind.MISSED_VISIT_ALERT:
            return self._missed_visit_alert(rule, ticket, now)
        return None

    def _user_reminder(
        self,
        rule: NotificationRule,
        ticket: TicketNotificationState,
        now: datetime
    ) -> Optional[DueNotification]:
        if ticket.status != TicketStatus.PENDING:
            return None

        # Entries before the last status change belong to an earlier cycle (reopen)
        cycle_start = ticket.last_status_change_at
        sent = len(ticket.cycle_entries(rule.rule_id, cycle_start))
        sequence = sent + 1
        if sequence > rule.max_reminders:
            return None

        fire_at = cycle_start + sequence * rule.reminder_interval
        if now < fire_at:
            return None

        return self._build(rule, ticket, fire_at, sequence, sent, cycle_start, f"reminder-{sequence}")

    def _agency_visit_reminder(
        self,
        rule: NotificationRule,
        ticket: TicketNotificationState,
        now: datetime
    ) -> Optional[DueNotification]:
        visit_at = ticket.agency_visit_at
        if visit_at is None or ticket.status == TicketStatus.COMPLETED:
            return None
        if not self._agency_matches(rule, ticket):
            return None

        window_start = visit_at - rule.lead_time
        if not (window_start <= now < visit_at):
            return None

        # One reminder per visit; status changes inside the window do not reset it
        cycle_start = window_start
        sent = len(ticket.cycle_entries(rule.rule_id, cycle_start))
        if sent > 0:
            return None

        return self._build(
            rule, ticket, window_start, 1, sent, cycle_start, f"visit-{format_iso(visit_at)}"
        )

    def _missed_visit_alert(
        self,
        rule: NotificationRule,
        ticket: TicketNotificationState,
        now: datetime
    ) -> Optional[DueNotification]:
        visit_at = ticket.agency_visit_at
        if visit_at is None or ticket.status != TicketStatus.PENDING:
            return None
        if not self._agency_matches(rule, ticket):
            return None

        alert_at = visit_at + rule.grace_period
        if now < alert_at:
            return None

        # One alert per visit date, whatever happens to the ticket afterwards
        cycle_start = visit_at
        sent = len(ticket.cycle_entries(rule.rule_id, cycle_start))
        if sent > 0:
            return None

        return self._build(
            rule, ticket, alert_at, 1, sent, cycle_start, f"missed-{format_iso(visit_at)}"
        )

    @staticmethod
    def _agency_matches(rule: NotificationRule, ticket: TicketNotificationState) -> bool:
        return ticket.agency_ref is None or ticket.agency_ref == rule.target_ref

    @staticmethod
    def _build(
        rule: NotificationRule,
        ticket: TicketNotificationState,
        fire_at: datetime,
        sequence: int,
        expected_count: int,
        cycle_start: datetime,
        bucket: str
    ) -> DueNotification:
        return DueNotification(
            ticket_ref=ticket.ticket_ref,
            rule=rule,
            recipient_ref=rule.target_ref,
            fire_at=fire_at,
            sequence=sequence,
            expected_count=expected_count,
            cycle_start=cycle_start,
            dedupe_key=make_dedupe_key(rule.rule_id, cycle_start, bucket),
            ticket=ticket,
        )


def select_due_notifications(
    now: datetime,
    rules: Iterable[NotificationRule],
    tickets: Iterable[TicketNotificationState]
) -> List[DueNotification]:
    """Module-level shortcut for DueItemSelector().select"""
    return DueItemSelector().select(now, rules, tickets)
