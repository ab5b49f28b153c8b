"""Edge logic and routing for the orchestration graph."""

from typing import Literal

from clinicbot.graphs.state import LoopState
from clinicbot.utils.logging import get_logger

logger = get_logger(__name__)


def route_completion_output(state: LoopState) -> Literal["dispatch", "end"]:
    """Route from the completion node.

    Goes to tool dispatch only while the turn is open and tool calls are pending.
    """
    logger.debug(f"Routing from completion node. Finished: {state.finished}")

    if state.finished or not state.pending_tool_calls:
        return "end"
    return "dispatch"


def route_dispatch_output(state: LoopState) -> Literal["complete", "end"]:
    """Route from the dispatch node back to the model unless the bound stopped the turn."""
    if state.finished:
        return "end"
    return "complete"
