"""Output checks applied to every model reply before it reaches a customer."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field

from helpdesk_ai.config import GuardrailConfig
from helpdesk_ai.guardrails.redaction import redact_secrets

logger = logging.getLogger(__name__)

UNSAFE_PATTERNS: tuple[tuple[re.Pattern[str], str], ...] = (
    (
        re.compile(r"\b(?:i\s+(?:will|can|'ll)\s+)?(?:delete|drop|remove)\s+(?:all|every|your)\s+(?:data|files|records|database)", re.IGNORECASE),
        "Suggests destructive data removal",
    ),
    (re.compile(r"\bformat\s+(?:your\s+|the\s+)?(?:hard\s+)?(?:drive|disk)", re.IGNORECASE), "Suggests formatting a disk"),
    (re.compile(r"\brm\s+-rf\b", re.IGNORECASE), "Contains a recursive delete command"),
    (re.compile(r"\bsudo\s+", re.IGNORECASE), "Contains a privileged shell command"),
    (
        re.compile(r"\b(?:disable|turn\s+off)\s+(?:your\s+|the\s+)?(?:firewall|antivirus|security)", re.IGNORECASE),
        "Suggests disabling security controls",
    ),
    (
        re.compile(r"\b(?:share|send|tell)\s+(?:me\s+)?(?:your\s+)?(?:password|credentials|api\s+key)", re.IGNORECASE),
        "Asks the customer for credentials",
    ),
    (re.compile(r"\bguarantee(?:d)?\s+(?:refund|compensation)", re.IGNORECASE), "Promises compensation"),
)


@dataclass(slots=True)
class ResponseValidation:
    valid: bool
    sanitized_response: str
    issues: list[str] = field(default_factory=list)


def validate_ai_response(response: str, config: GuardrailConfig | None = None) -> ResponseValidation:
    """Redact secrets from a reply and flag unsafe or overlong content.

    `sanitized_response` is always safe to deliver: it is the reply with every
    secret replaced, whether or not other issues were found.
    """

    config = config or GuardrailConfig()
    issues: list[str] = []

    redaction = redact_secrets(response)
    if redaction.has_secrets:
        kinds = sorted({item.kind for item in redaction.redactions})
        issues.append(f"Response contained sensitive data: {', '.join(kinds)}")

    for pattern, description in UNSAFE_PATTERNS:
        if pattern.search(response):
            issues.append(description)

    if len(response) > config.max_response_chars:
        issues.append(
            f"Response exceeds {config.max_response_chars} characters ({len(response)})"
        )

    if issues:
        logger.warning("AI response failed validation", extra={"issues": "; ".join(issues)})

    return ResponseValidation(valid=not issues, sanitized_response=redaction.text, issues=issues)
