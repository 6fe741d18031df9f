"""Chat completion seam between the agents and the model provider."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Protocol

from langchain_core.messages import BaseMessage
from langchain_core.tools import StructuredTool
from langchain_openai import ChatOpenAI

from helpdesk_ai.errors import NotConnectedError

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class ToolCall:
    name: str
    arguments: dict[str, Any] = field(default_factory=dict)
    id: str | None = None


@dataclass(slots=True)
class ChatCompletion:
    """One model reply: free text plus at most one proposed tool call."""

    content: str
    model: str
    tool_call: ToolCall | None = None
    total_tokens: int = 0


class ChatModel(Protocol):
    def complete(
        self,
        messages: list[BaseMessage],
        tools: list[StructuredTool],
        *,
        temperature: float | None = None,
        max_tokens: int | None = None,
    ) -> ChatCompletion:
        """Run one completion with the given tools offered to the model."""


class LangChainChatModel:
    """OpenAI chat model through langchain-openai with native tool binding.

    `connect()` builds the client explicitly so a missing key surfaces at
    startup instead of on the first customer turn.
    """

    def __init__(
        self,
        *,
        model: str = "gpt-4o",
        api_key: str | None = None,
        timeout_seconds: float = 60.0,
        max_retries: int = 2,
    ) -> None:
        self.model = model
        self._api_key = api_key
        self._timeout_seconds = timeout_seconds
        self._max_retries = max_retries
        self._client: ChatOpenAI | None = None

    def connect(self) -> "LangChainChatModel":
        if not self._api_key:
            raise NotConnectedError("OPENAI_API_KEY is not configured")
        self._client = ChatOpenAI(
            model=self.model,
            api_key=self._api_key,
            timeout=self._timeout_seconds,
            max_retries=self._max_retries,
        )
        logger.info("Chat model %s ready", self.model)
        return self

    def complete(
        self,
        messages: list[BaseMessage],
        tools: list[StructuredTool],
        *,
        temperature: float | None = None,
        max_tokens: int | None = None,
    ) -> ChatCompletion:
        if self._client is None:
            raise NotConnectedError("LangChainChatModel.connect() has not been called")

        runnable: Any = self._client
        if tools:
            runnable = runnable.bind_tools(tools, tool_choice="auto")
        overrides: dict[str, Any] = {}
        if temperature is not None:
            overrides["temperature"] = temperature
        if max_tokens is not None:
            overrides["max_tokens"] = max_tokens
        if overrides:
            runnable = runnable.bind(**overrides)

        reply = runnable.invoke(messages)

        tool_call = None
        tool_calls = getattr(reply, "tool_calls", None) or []
        if tool_calls:
            first = tool_calls[0]
            tool_call = ToolCall(
                name=str(first.get("name", "")),
                arguments=dict(first.get("args") or {}),
                id=first.get("id"),
            )
            if len(tool_calls) > 1:
                logger.info("Model proposed %d tool calls; using the first", len(tool_calls))

        usage = getattr(reply, "usage_metadata", None) or {}
        response_metadata = getattr(reply, "response_metadata", None) or {}
        return ChatCompletion(
            content=_message_text(reply.content),
            model=str(response_metadata.get("model_name") or self.model),
            tool_call=tool_call,
            total_tokens=int(usage.get("total_tokens", 0) or 0),
        )


def _message_text(content: Any) -> str:
    if isinstance(content, str):
        return content
    if isinstance(content, list):
        parts: list[str] = []
        for item in content:
            if isinstance(item, dict) and "text" in item:
                parts.append(str(item["text"]))
            elif isinstance(item, str):
                parts.append(item)
        return "".join(parts)
    return str(content or "")
