from __future__ import annotations

import json
from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from mnemos.agent.messages import ToolResult


class BaseTool(ABC):
    """Abstract base class for agent tools."""

    @property
    @abstractmethod
    def name(self) -> str:
        """Unique tool name used in function calling."""
        ...

    @property
    @abstractmethod
    def description(self) -> str:
        """Human-readable description of what the tool does."""
        ...

    @property
    @abstractmethod
    def parameters(self) -> dict:
        """JSON Schema describing the tool's input parameters."""
        ...

    @property
    def requires_permission(self) -> bool:
        """Whether the permission gate must approve each call.

        Tools touching the filesystem or other external state override this.
        """
        return False

    @abstractmethod
    async def execute(self, arguments: dict[str, Any]) -> ToolResult:
        """Run the tool. Expected failures are returned as ToolResult.fail()."""
        ...

    def summarize(self, arguments: dict[str, Any], result: ToolResult) -> str:
        """One-line description of a finished call, for UI and logs."""
        status = "ok" if result.success else "failed"
        return f"{self.name}({', '.join(sorted(arguments))}) {status}"

    @property
    def prompt_string(self) -> str:
        schema = json.dumps(self.parameters, separators=(",", ":"), ensure_ascii=False)
        return f"- **{self.name}**: {self.description}\n  parameters: {schema}"

    def to_openai_schema(self) -> dict:
        return {
            "type": "function",
            "function": {
                "name": self.name,
                "description": self.description,
                "parameters": self.parameters,
            },
        }
