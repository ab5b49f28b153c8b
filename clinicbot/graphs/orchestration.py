"""Orchestration graph driving one conversational turn."""

from datetime import datetime

from langgraph.graph import END, StateGraph

from clinicbot.graphs.edges import route_completion_output, route_dispatch_output
from clinicbot.graphs.nodes import create_completion_node, create_dispatch_node
from clinicbot.graphs.state import LoopResult, LoopState
from clinicbot.models.messages import Message
from clinicbot.services.completion import CompletionClient
from clinicbot.services.dispatcher import ToolDispatcher
from clinicbot.tools.registry import ToolsRegistry
from clinicbot.utils.logging import get_logger

logger = get_logger(__name__)

DEFAULT_MAX_ITERATIONS = 10


def create_orchestration_graph(
    completion_client: CompletionClient,
    dispatcher: ToolDispatcher,
    registry: ToolsRegistry,
    max_iterations: int = DEFAULT_MAX_ITERATIONS,
):
    """Create the turn graph.

    The graph alternates between the model and tool execution:
    - complete: ask the model for content and/or tool calls
    - dispatch: run the requested tools and feed results back

    Args:
        completion_client: Adapter for the completion service
        dispatcher: Tool dispatcher bound to the registry
        registry: Tool catalogue advertised to the model
        max_iterations: Maximum number of completion calls per turn

    Returns:
        Compiled LangGraph workflow
    """
    workflow = StateGraph(LoopState)

    workflow.add_node("complete", create_completion_node(completion_client, registry.catalogue()))
    workflow.add_node("dispatch", create_dispatch_node(dispatcher, max_iterations))

    workflow.set_entry_point("complete")

    workflow.add_conditional_edges(
        "complete",
        route_completion_output,
        {
            "dispatch": "dispatch",
            "end": END,
        },
    )

    workflow.add_conditional_edges(
        "dispatch",
        route_dispatch_output,
        {
            "complete": "complete",
            "end": END,
        },
    )

    return workflow.compile()


def get_system_prompt(registry: ToolsRegistry, now: datetime | None = None) -> str:
    """Generate the system prompt for a turn.

    Args:
        registry: Tools the model may call
        now: Current time (defaults to the local clock)

    Returns:
        System prompt string
    """
    now = now or datetime.now()

    prompt = "You are a helpful personal assistant for a medical clinic, chatting over WhatsApp.\n\n# Tools\n"
    prompt += "You have the following tools that you can invoke based on the user inquiry.\n"
    for name in registry.get_tool_names():
        tool = registry.get(name)
        prompt += f"- {name}: {tool.description.splitlines()[0]}\n"

    prompt += "\n# User\nIf the user's full name is needed, ask for it.\n"
    prompt += "\n# Language Support\nPlease reply in the language used by the user.\n"
    prompt += f"\nToday is {now.strftime('%A, %Y-%m-%d %H:%M')}."

    return prompt


class OrchestrationLoop:
    """Runs the completion/tool-dispatch cycle for one inbound message."""

    def __init__(
        self,
        completion_client: CompletionClient,
        registry: ToolsRegistry,
        dispatcher: ToolDispatcher | None = None,
        max_iterations: int = DEFAULT_MAX_ITERATIONS,
    ):
        """Initialize the loop.

        Args:
            completion_client: Adapter for the completion service
            registry: Tool catalogue
            dispatcher: Tool dispatcher (defaults to one over ``registry``)
            max_iterations: Maximum number of completion calls per turn
        """
        if max_iterations < 1:
            raise ValueError("max_iterations must be at least 1")

        self.registry = registry
        self.max_iterations = max_iterations
        self.graph = create_orchestration_graph(
            completion_client,
            dispatcher or ToolDispatcher(registry),
            registry,
            max_iterations,
        )

    async def run(self, conversation_id: str, user_message: Message, prior_context: list[Message]) -> LoopResult:
        """Process one user message until the model replies or the loop stops.

        Args:
            conversation_id: Conversation the message belongs to
            user_message: The inbound user message
            prior_context: Earlier messages replayed to the model, oldest first

        Returns:
            The messages produced during the turn and why it ended
        """
        initial_state = {
            "conversation_id": conversation_id,
            "system_prompt": get_system_prompt(self.registry),
            "prior_context": list(prior_context),
            "new_turn_messages": [user_message],
        }

        # Each iteration visits two nodes; leave room for the final completion
        config = {"recursion_limit": 2 * self.max_iterations + 4}

        final_state = LoopState.model_validate(await self.graph.ainvoke(initial_state, config))
        result = LoopResult.from_state(final_state)

        logger.info(
            f"Turn finished for conversation {conversation_id}: {result.finish_reason} after "
            f"{result.completion_calls} completion calls, {result.usage.input_tokens} input / "
            f"{result.usage.output_tokens} output tokens"
        )
        return result
