"""Tool registry consumed by tool_call steps.

Tool implementations live outside the engine. The engine only needs
`execute(tool_name, args)` returning {"success": bool, "result": ...} and
raising ToolUnavailable for unknown names. InMemoryToolRegistry is enough
for wiring and tests.
"""

import logging
import threading
from abc import ABC, abstractmethod
from typing import Any, Callable, Optional

from src.errors import ToolUnavailable

logger = logging.getLogger(__name__)

ToolFunc = Callable[[dict[str, Any]], Any]


class ToolRegistry(ABC):
    @abstractmethod
    def execute(self, tool_name: str, args: dict[str, Any]) -> dict[str, Any]:
        """Run a tool. Raises ToolUnavailable if the name is unknown."""

    @abstractmethod
    def has_tool(self, tool_name: str) -> bool:
        ...

    def list_tools(self) -> list[dict[str, Any]]:
        return []


class InMemoryToolRegistry(ToolRegistry):
    """Tools are plain callables taking the argument dict.

    A callable may return a dict carrying `success` (passed through as-is)
    or any other value (wrapped as a successful result).
    """

    def __init__(self):
        self._tools: dict[str, dict[str, Any]] = {}
        self._lock = threading.Lock()

    def register(self, name: str, func: ToolFunc, description: str = "", category: str = "general") -> None:
        with self._lock:
            self._tools[name] = {
                "name": name,
                "func": func,
                "description": description,
                "category": category,
            }
        logger.debug(f"Registered tool: {name}")

    def unregister(self, name: str) -> bool:
        with self._lock:
            return self._tools.pop(name, None) is not None

    def has_tool(self, tool_name: str) -> bool:
        return tool_name in self._tools

    def get_tool_info(self, tool_name: str) -> Optional[dict[str, Any]]:
        tool = self._tools.get(tool_name)
        if tool is None:
            return None
        return {k: v for k, v in tool.items() if k != "func"}

    def list_tools(self) -> list[dict[str, Any]]:
        return [self.get_tool_info(name) for name in sorted(self._tools)]

    def execute(self, tool_name: str, args: dict[str, Any]) -> dict[str, Any]:
        tool = self._tools.get(tool_name)
        if tool is None:
            raise ToolUnavailable(tool_name)

        value = tool["func"](args)
        if isinstance(value, dict) and "success" in value:
            return value
        return {"success": True, "result": value}
