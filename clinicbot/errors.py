"""Error taxonomy for inbound message handling."""


class ClinicBotError(Exception):
    """Base class for all orchestrator errors."""


class TransportError(ClinicBotError):
    """Inbound webhook payload is malformed or missing required fields."""


class CompletionError(ClinicBotError):
    """The completion service could not produce a response."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class ToolExecutionError(ClinicBotError):
    """A tool handler failed while serving a tool call."""

    def __init__(self, tool_name: str, message: str):
        super().__init__(f"{tool_name}: {message}")
        self.tool_name = tool_name


class SendFailure(ClinicBotError):
    """The outbound messaging channel rejected a reply."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code
