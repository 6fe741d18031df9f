"""Secret and PII redaction applied to both user input and model output."""

from __future__ import annotations

import re
from dataclasses import dataclass, field


@dataclass(frozen=True, slots=True)
class SensitivePattern:
    kind: str
    pattern: re.Pattern[str]


SENSITIVE_PATTERNS: tuple[SensitivePattern, ...] = (
    # API keys and tokens
    SensitivePattern(
        "API Key",
        re.compile(r"(?:api[_-]?key|apikey)[=:\s]+['\"]?[a-zA-Z0-9_\-]{20,}['\"]?", re.IGNORECASE),
    ),
    SensitivePattern(
        "Bearer Token",
        re.compile(r"(?:bearer|token)[:\s]+['\"]?[a-zA-Z0-9_\-.]{20,}['\"]?", re.IGNORECASE),
    ),
    SensitivePattern("OpenAI API Key", re.compile(r"sk-[a-zA-Z0-9_\-]{32,}", re.IGNORECASE)),
    SensitivePattern("GitHub Token", re.compile(r"ghp_[a-zA-Z0-9]{36}", re.IGNORECASE)),
    SensitivePattern("GitHub OAuth Token", re.compile(r"gho_[a-zA-Z0-9]{36}", re.IGNORECASE)),
    SensitivePattern("Slack Token", re.compile(r"xox[baprs]-[a-zA-Z0-9\-]+", re.IGNORECASE)),
    # Cloud provider credentials
    SensitivePattern("AWS Access Key", re.compile(r"AKIA[A-Z0-9]{16}", re.IGNORECASE)),
    SensitivePattern(
        "AWS Secret",
        re.compile(
            r"(?:aws[_-]?secret|secret[_-]?key)[=:\s]+['\"]?[a-zA-Z0-9/+=]{40}['\"]?",
            re.IGNORECASE,
        ),
    ),
    # Passwords and generic secrets
    SensitivePattern(
        "Password",
        re.compile(r"(?:password|passwd|pwd)[=:\s]+['\"]?[^\s'\"]{8,}['\"]?", re.IGNORECASE),
    ),
    SensitivePattern(
        "Secret",
        re.compile(r"(?:secret|credential)[=:\s]+['\"]?[^\s'\"]{8,}['\"]?", re.IGNORECASE),
    ),
    # Payment and identity numbers
    SensitivePattern(
        "Credit Card",
        re.compile(
            r"\b(?:4[0-9]{12}(?:[0-9]{3})?|5[1-5][0-9]{14}|3[47][0-9]{13}|6(?:011|5[0-9]{2})[0-9]{12})\b"
        ),
    ),
    SensitivePattern("SSN", re.compile(r"\b\d{3}-\d{2}-\d{4}\b")),
    # Key material and connection strings
    SensitivePattern(
        "Private Key",
        re.compile(r"-----BEGIN (?:RSA |EC |DSA |OPENSSH )?PRIVATE KEY-----", re.IGNORECASE),
    ),
    SensitivePattern(
        "Connection String",
        re.compile(r"(?:mongodb(?:\+srv)?|mysql|postgres(?:ql)?|redis|amqp)://[^\s]+", re.IGNORECASE),
    ),
    SensitivePattern(
        "Email:Password",
        re.compile(r"[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}:[^\s]+", re.IGNORECASE),
    ),
)


@dataclass(frozen=True, slots=True)
class Redaction:
    """Where a secret was found; `preview` holds at most its first 4 characters."""

    kind: str
    preview: str
    position: int


@dataclass(slots=True)
class RedactionResult:
    text: str
    redactions: list[Redaction] = field(default_factory=list)

    @property
    def has_secrets(self) -> bool:
        return bool(self.redactions)


def placeholder(kind: str) -> str:
    return f"[REDACTED {kind}]"


def redact_secrets(text: str) -> RedactionResult:
    """Replace every catalogued secret in `text` with a typed placeholder.

    All patterns are matched against the original text. Where matches overlap,
    the earliest one wins, then the longest, then the one listed first in
    `SENSITIVE_PATTERNS`. Positions refer to the original text. Placeholders
    never match any pattern, so redacting twice changes nothing.
    """

    if not text:
        return RedactionResult(text=text)

    candidates: list[tuple[int, int, int, str]] = []
    for priority, sensitive in enumerate(SENSITIVE_PATTERNS):
        for match in sensitive.pattern.finditer(text):
            if match.end() > match.start():
                candidates.append((match.start(), -(match.end() - match.start()), priority, sensitive.kind))
    if not candidates:
        return RedactionResult(text=text)

    candidates.sort()
    pieces: list[str] = []
    redactions: list[Redaction] = []
    cursor = 0
    for start, negative_length, _, kind in candidates:
        if start < cursor:
            continue
        end = start - negative_length
        pieces.append(text[cursor:start])
        pieces.append(placeholder(kind))
        redactions.append(Redaction(kind=kind, preview=text[start : start + 4] + "...", position=start))
        cursor = end
    pieces.append(text[cursor:])

    return RedactionResult(text="".join(pieces), redactions=redactions)
