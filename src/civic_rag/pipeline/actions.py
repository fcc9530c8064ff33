"""Suggested follow-up actions derived from the query and the answer."""

from __future__ import annotations

import re
import uuid
from dataclasses import dataclass

from civic_rag.types import ActionItem, Locale

MAX_ACTIONS = 3


@dataclass(frozen=True, slots=True)
class ActionRule:
    action: str
    pattern: re.Pattern[str]
    label: str
    label_ml: str
    icon: str


ACTION_RULES: tuple[ActionRule, ...] = (
    ActionRule(
        "check_epic",
        re.compile(r"register|registration|form\s*6|enroll|രജിസ്", re.IGNORECASE),
        "Check Registration",
        "രജിസ്ട്രേഷൻ പരിശോധിക്കുക",
        "IdentificationIcon",
    ),
    ActionRule(
        "locate_booth",
        re.compile(r"booth|polling\s*station|where.*vote|ബൂത്ത്|പോളിംഗ്", re.IGNORECASE),
        "Find Polling Booth",
        "പോളിംഗ് ബൂത്ത് കണ്ടെത്തുക",
        "MapPinIcon",
    ),
    ActionRule(
        "report_violation",
        re.compile(r"violation|report|complaint|bribery|intimidat|ലംഘന|റിപ്പോർട്ട്", re.IGNORECASE),
        "Report Violation",
        "ലംഘനം റിപ്പോർട്ട് ചെയ്യുക",
        "ExclamationTriangleIcon",
    ),
    ActionRule(
        "faq",
        re.compile(r"faq|question|help|സഹായ|ചോദ്യ", re.IGNORECASE),
        "View FAQ",
        "FAQ കാണുക",
        "QuestionMarkCircleIcon",
    ),
)


def extract_actions(query: str, text: str, locale: Locale) -> list[ActionItem]:
    combined = f"{query} {text}"
    actions: list[ActionItem] = []
    for rule in ACTION_RULES:
        if len(actions) == MAX_ACTIONS:
            break
        if rule.pattern.search(combined):
            actions.append(
                ActionItem(
                    id=str(uuid.uuid4()),
                    label=rule.label,
                    label_ml=rule.label_ml,
                    icon=rule.icon,
                    action=rule.action,
                    payload={"locale": locale},
                )
            )
    return actions
