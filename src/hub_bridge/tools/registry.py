"""Tool registry - the operations a free-text router may dispatch to.

Tools are async or sync callables returning a ``ToolResult`` dict. Tools
that act on a user's wallet declare a ``user_id`` parameter; the registry
injects it so a router can never pass someone else's id in ``params``.
"""

from __future__ import annotations

import inspect
import logging
from dataclasses import dataclass, field
from typing import Any, Callable

logger = logging.getLogger("hub_bridge.tools.registry")


@dataclass
class Tool:
    name: str
    description: str
    parameters: dict[str, Any]
    func: Callable[..., Any]
    is_async: bool = False
    user_scoped: bool = field(default=False)

    def schema(self) -> dict[str, Any]:
        """Function-calling schema handed to the router."""
        return {
            "name": self.name,
            "description": self.description,
            "parameters": self.parameters,
        }

    async def call(self, **kwargs) -> Any:
        if self.is_async:
            return await self.func(**kwargs)
        return self.func(**kwargs)


class ToolRegistry:
    """Global registry of available tools."""

    _instance: ToolRegistry | None = None

    def __init__(self):
        self._tools: dict[str, Tool] = {}

    @classmethod
    def get(cls) -> ToolRegistry:
        if cls._instance is None:
            cls._instance = cls()
        return cls._instance

    def register(self, tool: Tool) -> None:
        if tool.name in self._tools:
            logger.debug(f"Replacing tool {tool.name}")
        self._tools[tool.name] = tool

    def get_tool(self, name: str) -> Tool | None:
        return self._tools.get(name)

    def list_names(self) -> list[str]:
        return list(self._tools.keys())

    def schemas(self) -> list[dict[str, Any]]:
        return [t.schema() for t in self._tools.values()]

    async def dispatch(self, name: str, user_id: str, params: dict[str, Any] | None = None) -> dict:
        """Run tool *name* with the router's loose *params*.

        Unknown tools come back as a failed ``ToolResult``; everything else
        is whatever the tool returns.
        """
        t = self._tools.get(name)
        if t is None:
            return {
                "success": False,
                "message": f"Unknown tool '{name}'. Available: {', '.join(self._tools)}",
                "data": None,
            }

        kwargs = {k: v for k, v in (params or {}).items() if k != "user_id"}
        if t.user_scoped:
            kwargs["user_id"] = user_id
        logger.info(f"Dispatching {name} for {user_id or 'anonymous'}")
        return await t.call(**kwargs)


def tool(name: str, description: str, parameters: dict[str, Any]):
    """Decorator to register a function as a tool.

    Usage:
        @tool("list_chains", "List the supported networks", {"type": "object", "properties": {}})
        def list_chains(**_ignored) -> dict:
            ...
    """

    def decorator(func: Callable) -> Callable:
        ToolRegistry.get().register(
            Tool(
                name=name,
                description=description,
                parameters=parameters,
                func=func,
                is_async=inspect.iscoroutinefunction(func),
                user_scoped="user_id" in inspect.signature(func).parameters,
            )
        )
        return func

    return decorator
