"""Runtime configuration."""

from dataclasses import dataclass

from stepgraph.config import EngineConfig, RuntimeConfig

default_config = RuntimeConfig()
default_engine_config = EngineConfig()


@dataclass
class AgentMetadata:
    name: str = "Email Support Agent"
    version: str = "1.0.0"
    description: str = (
        "Triage customer support email: classify intent and urgency, search "
        "documentation, file a ticket, draft a reply and send it. Urgent or "
        "complex emails pause for human review before anything is sent."
    )
    storage_dir: str = "email_support"


metadata = AgentMetadata()
