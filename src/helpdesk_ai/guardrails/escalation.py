"""Keyword and context based escalation triggers."""

from __future__ import annotations

import re
from dataclasses import dataclass, field

from helpdesk_ai.config import GuardrailConfig
from helpdesk_ai.types import Severity

SEVERITY_RANK: dict[str, int] = {"low": 0, "medium": 1, "high": 2, "critical": 3}

# A keyword also matches its common inflections ("sued", "hacked", "lawyers").
_INFLECTIONS = r"(?:s|es|d|ed|ing|er|ers)?"


@dataclass(frozen=True, slots=True)
class TriggerKeyword:
    keyword: str
    category: str
    severity: Severity
    pattern: re.Pattern[str]


def _trigger(keyword: str, category: str, severity: Severity = "medium") -> TriggerKeyword:
    words = r"\s+".join(re.escape(word) for word in keyword.split())
    return TriggerKeyword(
        keyword=keyword,
        category=category,
        severity=severity,
        pattern=re.compile(rf"\b{words}{_INFLECTIONS}\b"),
    )


ESCALATION_TRIGGERS: tuple[TriggerKeyword, ...] = (
    # Legal and compliance
    _trigger("lawsuit", "legal", "critical"),
    _trigger("legal action", "legal", "critical"),
    _trigger("sue", "legal", "critical"),
    _trigger("attorney", "legal"),
    _trigger("lawyer", "legal"),
    _trigger("court", "legal"),
    _trigger("compliance", "compliance", "high"),
    _trigger("regulation", "compliance"),
    _trigger("gdpr", "compliance"),
    _trigger("hipaa", "compliance"),
    _trigger("pci", "compliance"),
    _trigger("sox", "compliance"),
    # Security incidents
    _trigger("breach", "security", "critical"),
    _trigger("hack", "security", "critical"),
    _trigger("security incident", "security", "critical"),
    _trigger("data leak", "security"),
    _trigger("unauthorized access", "security"),
    _trigger("compromised", "security"),
    _trigger("ransomware", "security", "high"),
    _trigger("malware", "security", "high"),
    _trigger("phishing", "security", "high"),
    # Billing disputes
    _trigger("refund", "billing"),
    _trigger("charge back", "billing"),
    _trigger("chargeback", "billing"),
    _trigger("dispute charge", "billing"),
    _trigger("unauthorized charge", "billing", "high"),
    _trigger("refund demand", "billing"),
    _trigger("fraud", "billing", "high"),
    _trigger("overcharged", "billing"),
    _trigger("billing error", "billing"),
    # Customer frustration
    _trigger("cancel subscription", "frustration"),
    _trigger("switching to competitor", "frustration"),
    _trigger("worst service", "frustration"),
    _trigger("unacceptable", "frustration"),
    _trigger("furious", "frustration"),
    _trigger("speak to manager", "frustration"),
    _trigger("supervisor", "frustration"),
    _trigger("escalate", "frustration"),
    _trigger("terrible service", "frustration"),
    _trigger("worst experience", "frustration"),
    _trigger("never again", "frustration"),
    # Threats
    _trigger("report to", "threat"),
    _trigger("social media", "threat"),
    _trigger("report you", "threat"),
    _trigger("bad review", "threat"),
    _trigger("better business bureau", "threat"),
    _trigger("bbb", "threat"),
    # Urgency
    _trigger("emergency", "urgency", "high"),
    _trigger("urgent", "urgency"),
    _trigger("critical", "urgency"),
    _trigger("production down", "urgency", "high"),
    _trigger("outage", "urgency"),
)

HUMAN_REQUEST_PATTERNS: tuple[re.Pattern[str], ...] = tuple(
    re.compile(pattern)
    for pattern in (
        r"\b(?:speak|talk|chat)\s+(?:to|with)\s+(?:a\s+|an\s+)?(?:human|person|someone|agent|representative)\b",
        r"\breal\s+(?:person|human)\b",
        r"\bhuman\s+(?:agent|support|being)\b",
        r"\blive\s+(?:agent|person|support)\b",
        r"\b(?:transfer|connect)\s+me\s+to\b",
        r"\bnot\s+a\s+(?:bot|robot|machine)\b",
        r"\bstop\s+the\s+bot\b",
    )
)


@dataclass(slots=True)
class EscalationCheck:
    should_escalate: bool = False
    reasons: list[str] = field(default_factory=list)
    severity: Severity = "low"


def max_severity(left: Severity, right: Severity) -> Severity:
    return left if SEVERITY_RANK[left] >= SEVERITY_RANK[right] else right


def check_escalation_triggers(
    message: str,
    *,
    failed_attempts: int = 0,
    severity: Severity | None = None,
    customer_requested: bool = False,
    config: GuardrailConfig | None = None,
) -> EscalationCheck:
    """Collect every escalation reason for one message.

    The resulting severity is the maximum over all matched triggers, so the
    order in which triggers are evaluated never changes the outcome.
    """

    config = config or GuardrailConfig()
    lowered = message.lower()
    result = EscalationCheck()

    def hit(reason: str, level: Severity) -> None:
        result.should_escalate = True
        result.reasons.append(reason)
        result.severity = max_severity(result.severity, level)

    for trigger in ESCALATION_TRIGGERS:
        if trigger.pattern.search(lowered):
            hit(f"Keyword detected: {trigger.keyword}", trigger.severity)

    if failed_attempts >= config.failed_attempts_threshold:
        hit(f"Multiple failed attempts: {failed_attempts}", "medium")

    if severity in ("high", "critical"):
        hit(f"Case severity: {severity}", severity)

    if customer_requested:
        hit("Customer requested human agent", "medium")

    return result


def detect_human_request(message: str) -> bool:
    lowered = message.lower()
    return any(pattern.search(lowered) for pattern in HUMAN_REQUEST_PATTERNS)
