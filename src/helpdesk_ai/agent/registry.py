"""Tool registry built on Pydantic v2 models."""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import Any

from langchain_core.tools import StructuredTool
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from helpdesk_ai.agent.llm import ToolCall
from helpdesk_ai.errors import ConfigurationError
from helpdesk_ai.guardrails.actions import is_action_safe

logger = logging.getLogger(__name__)


class ToolSpec(BaseModel):
    """Declarative tool specification for registration and validation."""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    name: str
    description: str
    args_schema: type[BaseModel]
    tags: list[str] = Field(default_factory=list)

    def validate_args(self, payload: dict[str, Any]) -> BaseModel:
        return self.args_schema.model_validate(payload)


class ToolRegistry:
    """Stores the tool set of one agent tier.

    Tools are never executed by the model runtime. The model only proposes a
    call; `parse` turns that proposal into the tool's typed argument model and
    the agent acts on it.
    """

    def __init__(self, specs: list[ToolSpec] | None = None) -> None:
        self._tools: dict[str, ToolSpec] = {}
        for spec in specs or []:
            self.register(spec)

    def register(self, spec: ToolSpec) -> None:
        if spec.name in self._tools:
            raise ValueError(f"Tool already registered: {spec.name}")
        if not is_action_safe(spec.name):
            raise ConfigurationError(f"Tool is not an allowed action: {spec.name}")
        self._tools[spec.name] = spec

    def get(self, name: str) -> ToolSpec | None:
        return self._tools.get(name)

    def names(self) -> list[str]:
        return list(self._tools)

    def specs(self) -> list[ToolSpec]:
        return list(self._tools.values())

    def parse(self, call: ToolCall) -> BaseModel | None:
        """Validate a proposed call; unknown tools and bad arguments yield None."""

        spec = self._tools.get(call.name)
        if spec is None:
            logger.warning("Ignoring call to unknown tool %s", call.name)
            return None
        try:
            return spec.validate_args(call.arguments)
        except ValidationError as exc:
            logger.warning(
                "Ignoring call to %s with invalid arguments",
                call.name,
                extra={"errors": exc.error_count()},
            )
            return None

    def as_langchain_tools(self) -> list[StructuredTool]:
        tools: list[StructuredTool] = []
        for spec in self._tools.values():
            tools.append(
                StructuredTool.from_function(
                    name=spec.name,
                    description=spec.description,
                    args_schema=spec.args_schema,
                    func=self._build_function(spec),
                )
            )
        return tools

    def _build_function(self, spec: ToolSpec) -> Callable[..., str]:
        def _callable(**kwargs: Any) -> str:
            return spec.validate_args(kwargs).model_dump_json(exclude_none=True)

        return _callable
