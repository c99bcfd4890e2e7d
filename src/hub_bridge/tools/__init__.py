"""hub-bridge tools - the operations a free-text router may call."""

from hub_bridge.tools import bridge_tools  # noqa: F401
from hub_bridge.tools.registry import ToolRegistry, tool  # noqa: F401
