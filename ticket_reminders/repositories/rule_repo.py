"""Notification Rule Repository - Read-only access to reminder rules

Rules are maintained by the admin masters screens; the scheduler only reads
them. Documents written by the admin UI carry the legacy field names
(`type`, `user_id`, `agency_id`, `notify_before_days`, `reminder_after_hours`),
newer documents may carry `kind` and explicit duration fields.
"""
from datetime import timedelta
from typing import Any, Dict, List, Optional
from pydantic import ValidationError
from pymongo.errors import PyMongoError

from .async_mongo import get_async_collection
from ..config.settings import settings
from ..domain.enums import RuleKind
from ..domain.errors import RuleConfigurationError, StoreError
from ..domain.models import NotificationRule
from ..utils.logger import get_logger

logger = get_logger(__name__)

LEGACY_TYPES = {
    "user": RuleKind.USER_REMINDER,
    "agency": RuleKind.AGENCY_VISIT_REMINDER,
    "missed_visit": RuleKind.MISSED_VISIT_ALERT,
}


def _as_str(value: Any) -> Optional[str]:
    if value is None or value == "":
        return None
    return str(value)


def _duration(doc: Dict[str, Any], hours_field: str, days_field: Optional[str] = None) -> Optional[timedelta]:
    for field, unit in ((hours_field, "hours"), (days_field, "days")):
        if not field or doc.get(field) is None:
            continue
        try:
            return timedelta(**{unit: float(doc[field])})
        except (TypeError, ValueError, OverflowError) as e:
            raise RuleConfigurationError(
                f"Invalid {field}: {doc[field]!r}",
                details={"field": field}
            ) from e
    return None


def _resolve_kind(doc: Dict[str, Any]) -> RuleKind:
    raw_kind = doc.get("kind")
    if raw_kind:
        try:
            return RuleKind(str(raw_kind).upper())
        except ValueError:
            raise RuleConfigurationError(f"Unknown rule kind: {raw_kind}")

    legacy = LEGACY_TYPES.get(str(doc.get("type", "")).lower())
    if legacy is None:
        raise RuleConfigurationError(f"Unknown rule type: {doc.get('type')}")
    return legacy


def rule_from_document(doc: Dict[str, Any]) -> NotificationRule:
    """
    Convert a stored rule document into a NotificationRule.

    Raises:
        RuleConfigurationError: If the document cannot be evaluated
    """
    rule_id = _as_str(doc.get("rule_id")) or _as_str(doc.get("_id"))
    if not rule_id:
        raise RuleConfigurationError("Rule has no identifier")

    kind = _resolve_kind(doc)

    if kind == RuleKind.USER_REMINDER:
        target_ref = _as_str(doc.get("target_ref")) or _as_str(doc.get("user_id"))
    else:
        target_ref = _as_str(doc.get("target_ref")) or _as_str(doc.get("agency_id"))

    scope = doc.get("scope_ids") or doc.get("sub_category_ids") or []
    if not isinstance(scope, (list, tuple)):
        raise RuleConfigurationError(f"Invalid scope on rule {rule_id}", details={"rule_id": rule_id})

    fields: Dict[str, Any] = {
        "rule_id": rule_id,
        "kind": kind,
        "target_ref": target_ref or "",
        "scope_ids": [str(s) for s in scope],
        "lead_time": _duration(doc, "notify_before_hours", "notify_before_days"),
        "reminder_interval": _duration(doc, "reminder_after_hours"),
        "template_id": _as_str(doc.get("whatsapp_template_id")) or _as_str(doc.get("template_id")),
        "active": bool(doc.get("active", True)),
    }
    grace = _duration(doc, "grace_hours")
    if grace is not None:
        fields["grace_period"] = grace
    fields["max_reminders"] = (
        doc["max_reminders"] if doc.get("max_reminders") is not None else settings.default_max_reminders
    )

    try:
        rule = NotificationRule(**fields)
    except ValidationError as e:
        raise RuleConfigurationError(
            f"Invalid rule {rule_id}",
            details={"rule_id": rule_id, "error": str(e)}
        ) from e

    problem = rule.configuration_problem()
    if problem:
        raise RuleConfigurationError(
            f"Invalid rule {rule_id}: {problem}",
            details={"rule_id": rule_id}
        )
    return rule


class RuleRepository:
    """Repository for notification rule lookups"""

    def __init__(self, collection=None):
        self._rules = collection if collection is not None else get_async_collection("notification_rules")

    async def get_active_rules(self, kind: Optional[RuleKind] = None) -> List[NotificationRule]:
        """
        Get all active rules that can be evaluated.

        Misconfigured rules are logged and skipped; they never abort the run.
        """
        try:
            docs = await self._rules.find({"active": True}).to_list(length=None)
        except PyMongoError as e:
            raise StoreError(f"Failed to load notification rules: {e}") from e

        rules: List[NotificationRule] = []
        for doc in docs:
            try:
                rule = rule_from_document(doc)
            except RuleConfigurationError as e:
                logger.warning(
                    f"Skipping notification rule: {e.message}",
                    extra={"rule_id": str(doc.get("rule_id") or doc.get("_id")), "error_code": e.error_code}
                )
                continue

            if kind is None or rule.kind == kind:
                rules.append(rule)

        logger.debug(f"Loaded {len(rules)} active notification rules")
        return rules
