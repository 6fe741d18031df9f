"""Test doubles and sample data shared across the test suites."""

from __future__ import annotations

from typing import Any

from langchain_core.messages import BaseMessage
from langchain_core.tools import StructuredTool

from helpdesk_ai.agent.llm import ChatCompletion, ToolCall

WIFI_PLAYBOOK: dict[str, Any] = {
    "metadata": {
        "id": "wifi-reset",
        "name": "WiFi reset",
        "version": "1.0",
        "product": "router",
        "category": "connectivity",
        "updatedAt": "2024-05-01T00:00:00Z",
    },
    "triggers": {
        "keywords": ["wifi", "internet"],
        "products": ["router"],
        "categories": ["connectivity"],
    },
    "steps": [
        {
            "id": "power-cycle",
            "title": "Power cycle the router",
            "instruction": "Unplug the {{device}} for 30 seconds, then plug it back in.",
            "expectedOutcome": "The status lights come back on",
            "nextOnSuccess": "check-lights",
            "maxAttempts": 2,
        },
        {
            "id": "check-lights",
            "title": "Check the status lights",
            "instruction": "Confirm the WAN light is solid green.",
            "failureHint": "Check that the cable is seated in the WAN port",
        },
    ],
    "escalation": {
        "defaultMessage": "Connecting you with a network specialist.",
        "conditions": [
            {
                "reason": "Max attempts exceeded for step: Power cycle the router",
                "message": "The router did not recover; a specialist will take over.",
            }
        ],
    },
    "variables": {"device": "router"},
}


class ScriptedChatModel:
    """Chat model double that replays queued completions and records prompts."""

    def __init__(self, *completions: ChatCompletion) -> None:
        self.completions = list(completions)
        self.calls: list[dict[str, Any]] = []

    def complete(
        self,
        messages: list[BaseMessage],
        tools: list[StructuredTool],
        *,
        temperature: float | None = None,
        max_tokens: int | None = None,
    ) -> ChatCompletion:
        self.calls.append(
            {
                "messages": messages,
                "tools": [tool.name for tool in tools],
                "temperature": temperature,
                "max_tokens": max_tokens,
            }
        )
        if self.completions:
            return self.completions.pop(0)
        return ChatCompletion(content="Is there anything else I can help with?", model="scripted")

    @property
    def system_prompt(self) -> str:
        return str(self.calls[-1]["messages"][0].content)


class FailingChatModel:
    def complete(self, messages, tools, *, temperature=None, max_tokens=None) -> ChatCompletion:
        raise RuntimeError("provider unavailable")


def reply(content: str, tool: str | None = None, tokens: int = 42, **arguments: Any) -> ChatCompletion:
    return ChatCompletion(
        content=content,
        model="scripted",
        tool_call=ToolCall(name=tool, arguments=arguments, id="call-1") if tool else None,
        total_tokens=tokens,
    )

