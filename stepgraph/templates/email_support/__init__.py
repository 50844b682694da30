"""
Email Support Agent - classify, research, draft and send replies to customer email.

Urgent or complex emails suspend at human review; the run resumes once a
reviewer approves, edits or rejects the draft.
"""

from .agent import EmailSupportAgent, edges
from .collaborators import (
    DEFAULT_CLASSIFICATION,
    EmailClassification,
    Intent,
    ReviewDecision,
    Urgency,
)
from .config import AgentMetadata, default_config, metadata

__version__ = "1.0.0"

__all__ = [
    "EmailSupportAgent",
    "edges",
    "EmailClassification",
    "Intent",
    "Urgency",
    "ReviewDecision",
    "DEFAULT_CLASSIFICATION",
    "AgentMetadata",
    "default_config",
    "metadata",
]
