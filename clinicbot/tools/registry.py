"""Tools registry mapping tool names to their definitions."""

from collections.abc import Iterable
from types import MappingProxyType

from clinicbot.models.llm import LLMToolDefinition
from clinicbot.services.availability import AvailabilityService
from clinicbot.tools.availability import create_get_availability_tool
from clinicbot.tools.base import ToolDefinition


class ToolsRegistry:
    """Read-only catalogue of the tools the assistant may call."""

    def __init__(self, tools: Iterable[ToolDefinition]):
        """Initialize the registry.

        Raises:
            ValueError: If two tools share a name
        """
        tools_by_name: dict[str, ToolDefinition] = {}
        for tool in tools:
            if tool.name in tools_by_name:
                raise ValueError(f"Duplicate tool name: {tool.name}")
            tools_by_name[tool.name] = tool

        self._tools = MappingProxyType(tools_by_name)

    def get(self, name: str) -> ToolDefinition | None:
        """Look up a tool by name."""
        return self._tools.get(name)

    def catalogue(self) -> list[LLMToolDefinition]:
        """Get the tool schemas advertised to the completion service."""
        return [tool.as_llm_tool() for tool in self._tools.values()]

    def get_tool_names(self) -> list[str]:
        """Get list of all registered tool names."""
        return list(self._tools.keys())

    def has_tool(self, name: str) -> bool:
        """Check if a tool is registered."""
        return name in self._tools


def create_default_registry(availability_service: AvailabilityService) -> ToolsRegistry:
    """Build the registry with the default set of clinic tools."""
    return ToolsRegistry(
        [
            create_get_availability_tool(availability_service),
        ]
    )
