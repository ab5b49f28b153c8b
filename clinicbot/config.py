"""Application configuration loaded from the environment."""

import os
from dataclasses import dataclass, field

from clinicbot.clients.anthropic import AnthropicConfig


@dataclass
class OrchestratorConfig:
    """Tuning for a single conversational turn."""

    max_iterations: int = 10
    context_limit: int = 5
    temperature: float = 0.3


@dataclass
class WatiConfig:
    """Credentials and endpoint for the WATI messaging API."""

    api_url: str
    api_token: str
    timeout: float = 15.0


@dataclass
class RecordsConfig:
    """Endpoint of the clinic records backend queried by tools.

    When ``convex_url`` is empty, tools run against in-memory sample data.
    """

    convex_url: str = ""
    timeout: float = 10.0


@dataclass
class Settings:
    """Top-level settings bundle handed to the dependency wiring."""

    anthropic_api_key: str
    wati: WatiConfig
    anthropic: AnthropicConfig = field(default_factory=AnthropicConfig)
    orchestrator: OrchestratorConfig = field(default_factory=OrchestratorConfig)
    records: RecordsConfig = field(default_factory=RecordsConfig)

    @classmethod
    def from_env(cls) -> "Settings":
        """Build settings from environment variables.

        Raises:
            ValueError: If a required variable is missing
        """
        missing = [name for name in ("ANTHROPIC_API_KEY", "WATI_API_URL", "WATI_API_TOKEN") if not os.getenv(name)]
        if missing:
            raise ValueError(f"Missing required environment variables: {', '.join(missing)}")

        orchestrator = OrchestratorConfig(
            max_iterations=int(os.getenv("MAX_TOOL_ITERATIONS", "10")),
            context_limit=int(os.getenv("CONTEXT_MESSAGE_LIMIT", "5")),
            temperature=float(os.getenv("COMPLETION_TEMPERATURE", "0.3")),
        )

        anthropic = AnthropicConfig(temperature=orchestrator.temperature)
        if os.getenv("ANTHROPIC_MODEL"):
            anthropic.model = os.environ["ANTHROPIC_MODEL"]

        return cls(
            anthropic_api_key=os.environ["ANTHROPIC_API_KEY"],
            wati=WatiConfig(
                api_url=os.environ["WATI_API_URL"].rstrip("/"),
                api_token=os.environ["WATI_API_TOKEN"],
            ),
            anthropic=anthropic,
            orchestrator=orchestrator,
            records=RecordsConfig(convex_url=os.getenv("CONVEX_URL", "").rstrip("/")),
        )
