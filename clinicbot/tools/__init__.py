"""Tools for the conversational AI assistant."""

from clinicbot.tools.base import ToolDefinition
from clinicbot.tools.registry import ToolsRegistry, create_default_registry

__all__ = ["ToolDefinition", "ToolsRegistry", "create_default_registry"]
