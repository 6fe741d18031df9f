"""Deterministic chat model used when no LLM provider is configured."""

from __future__ import annotations

import re

from langchain_core.messages import BaseMessage, SystemMessage
from langchain_core.tools import StructuredTool

from helpdesk_ai.agent.llm import ChatCompletion
from helpdesk_ai.agent.prompts import DOCUMENTATION_HEADERS, PLAYBOOK_HEADER
from helpdesk_ai.obs.tracing import estimate_tokens

FALLBACK_MODEL = "deterministic-fallback"

_INSTRUCTION_LINE = re.compile(r"^\*\*Instructions\*\*:\s*(?P<body>.+)$", re.MULTILINE)
_SOURCE_LABEL = re.compile(r"^\[Source \d+\]$")


class DeterministicChatModel:
    """Answers from the prompt's own material without calling a provider.

    It keeps the `ChatModel` contract so the agents run unchanged in
    offline environments where ``OPENAI_API_KEY`` is not set. It never
    proposes a tool call: escalation and playbook moves stay with the
    guardrails and the human operators.
    """

    def complete(
        self,
        messages: list[BaseMessage],
        tools: list[StructuredTool],
        *,
        temperature: float | None = None,
        max_tokens: int | None = None,
    ) -> ChatCompletion:
        del tools, temperature  # no provider, no sampling
        system = next(
            (str(message.content) for message in messages if isinstance(message, SystemMessage)),
            "",
        )
        answer = _build_answer(system)
        if max_tokens is not None:
            answer = answer[: max_tokens * 4]
        prompt_tokens = sum(estimate_tokens(str(message.content)) for message in messages)
        return ChatCompletion(
            content=answer,
            model=FALLBACK_MODEL,
            total_tokens=prompt_tokens + estimate_tokens(answer),
        )


def _build_answer(system_prompt: str) -> str:
    instruction = _INSTRUCTION_LINE.search(_section(system_prompt, PLAYBOOK_HEADER))
    if instruction is not None:
        return f"Let's try this next step: {instruction.group('body').strip()}"

    documentation = ""
    for header in DOCUMENTATION_HEADERS:
        documentation = _section(system_prompt, header)
        if documentation:
            break
    snippets = [
        line.strip()
        for line in documentation.splitlines()[1:]
        if line.strip() and line.strip() != "---" and not _SOURCE_LABEL.match(line.strip())
    ]
    if snippets:
        lines = [f"{number}. {snippet}" for number, snippet in enumerate(snippets[:3], start=1)]
        return "Here is what our documentation says about this:\n" + "\n".join(lines)

    return (
        "I couldn't find documentation for this issue yet. Could you share more details, "
        "such as the exact error message and when the problem started?"
    )


def _section(prompt: str, header: str) -> str:
    """Text from `header` up to the next ``## `` heading, or empty when absent."""

    start = prompt.find(header)
    if start < 0:
        return ""
    end = prompt.find("\n## ", start + len(header))
    return prompt[start:] if end < 0 else prompt[start:end]
