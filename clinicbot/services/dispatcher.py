"""Tool dispatcher executing model-requested tool calls."""

import inspect
import json
from typing import Any

from pydantic import ValidationError

from clinicbot.models.messages import ToolCallRequest, ToolResult
from clinicbot.tools.registry import ToolsRegistry
from clinicbot.utils.logging import get_logger

logger = get_logger(__name__)


class ToolDispatcher:
    """Runs tool calls against the registry, one result per request."""

    def __init__(self, registry: ToolsRegistry):
        self.registry = registry

    async def dispatch(self, tool_calls: list[ToolCallRequest]) -> list[ToolResult]:
        """Execute a batch of tool calls in the order received.

        Failures never abort the batch: an unknown tool, invalid arguments
        or a failing handler each yield an error payload in place of a result.

        Args:
            tool_calls: Tool calls from one assistant message

        Returns:
            Exactly one result per call, in input order
        """
        logger.info(f"Dispatching {len(tool_calls)} tool calls")

        results = []
        for call in tool_calls:
            results.append(await self._execute(call))
        return results

    async def _execute(self, call: ToolCallRequest) -> ToolResult:
        if not self.registry.has_tool(call.name):
            logger.error(f"Unknown tool requested: {call.name}")
            return _error_result(call, {"error": "unknown tool", "tool": call.name})

        tool = self.registry.get(call.name)
        logger.debug(f"Executing tool: {call.name} with input: {call.arguments}")

        try:
            params = tool.parse_input(call.arguments)
        except ValidationError as e:
            logger.warning(f"Tool {call.name} received invalid arguments: {e}")
            return _error_result(
                call,
                {
                    "error": "invalid arguments",
                    "tool": call.name,
                    "details": [err["msg"] for err in e.errors()],
                },
            )

        try:
            result = tool.handler(params)
            if inspect.isawaitable(result):
                result = await result
        except Exception as e:
            logger.error(f"Tool {call.name} failed: {e}", exc_info=True)
            return _error_result(call, {"error": "tool execution failed", "tool": call.name, "details": str(e)})

        if isinstance(result, dict) and "error" in result:
            logger.warning(f"Tool {call.name} returned an error: {result['error']}")
            return _error_result(call, result)

        logger.debug(f"Tool {call.name} succeeded: {str(result)[:100]}...")
        return ToolResult(tool_call_id=call.id, name=call.name, content=_serialize(result))


def _serialize(result: Any) -> str:
    if isinstance(result, str):
        return result
    return json.dumps(result, indent=2, default=str)


def _error_result(call: ToolCallRequest, payload: dict[str, Any]) -> ToolResult:
    return ToolResult(tool_call_id=call.id, name=call.name, content=_serialize(payload), is_error=True)
