"""
External collaborators of the email support workflow.

Each collaborator is an injectable object with a small async contract. The
LLM-backed ones talk to an LLMProvider; the rest are mocks that stand in for
a documentation index, a bug tracker and a mail transport.
"""

import json
import logging
import uuid
from abc import ABC, abstractmethod
from collections.abc import Mapping
from enum import StrEnum
from typing import Any

from pydantic import BaseModel, Field

from stepgraph.llm.provider import LLMProvider

logger = logging.getLogger(__name__)


# === CLASSIFICATION ===


class Intent(StrEnum):
    QUESTION = "question"
    BUG = "bug"
    BILLING = "billing"
    FEATURE = "feature"
    COMPLEX = "complex"


class Urgency(StrEnum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class EmailClassification(BaseModel):
    """Structured classification of one customer email."""

    intent: Intent
    urgency: Urgency
    topic: str
    summary: str


DEFAULT_CLASSIFICATION = EmailClassification(
    intent=Intent.QUESTION,
    urgency=Urgency.MEDIUM,
    topic="general inquiry",
    summary="Unable to classify email automatically",
).model_dump(mode="json")


class ReviewDecision(BaseModel):
    """Resume value for the human review step."""

    approved: bool = False
    edited_response: str | None = Field(default=None, alias="editedResponse")

    model_config = {"populate_by_name": True}


# === CONTRACTS ===


class EmailClassifier(ABC):
    @abstractmethod
    async def classify(self, email_content: str, sender_email: str) -> EmailClassification:
        """Classify intent, urgency, topic and summary. May raise."""


class ResponseDrafter(ABC):
    @abstractmethod
    async def draft(
        self,
        email_content: str,
        classification: Mapping[str, Any],
        context: list[str],
    ) -> str:
        """Draft a reply. ``context`` holds pre-formatted context sections. May raise."""


class DocumentationSearch(ABC):
    @abstractmethod
    async def search(self, classification: Mapping[str, Any]) -> list[str]:
        """Return documentation snippets relevant to the classification."""


class BugTracker(ABC):
    @abstractmethod
    async def create_ticket(self, state: Mapping[str, Any]) -> str:
        """File a ticket for the email and return its ID."""


class Mailer(ABC):
    @abstractmethod
    async def send(self, to: str, body: str) -> None:
        """Deliver ``body`` to ``to``."""


# === LLM-BACKED IMPLEMENTATIONS ===

CLASSIFY_SYSTEM_PROMPT = """\
You classify customer support email. Respond with a JSON object with exactly these keys:
- "intent": one of "question", "bug", "billing", "feature", "complex"
- "urgency": one of "low", "medium", "high", "critical"
- "topic": a short phrase naming the main subject
- "summary": one sentence describing the email
"""

DRAFT_GUIDELINES = """\
Guidelines:
- Be professional and helpful
- Address their specific concern
- Use the provided documentation when relevant
- Be brief"""


class LLMEmailClassifier(EmailClassifier):
    """Classifier that asks the LLM for JSON and validates it with pydantic."""

    def __init__(self, llm: LLMProvider, max_tokens: int = 1024):
        self.llm = llm
        self.max_tokens = max_tokens

    async def classify(self, email_content: str, sender_email: str) -> EmailClassification:
        prompt = (
            "Analyze this customer email and classify it:\n\n"
            f"Email: {email_content}\n"
            f"From: {sender_email}\n\n"
            "Provide classification, including intent, urgency, topic, and summary."
        )
        response = await self.llm.acomplete(
            [{"role": "user", "content": prompt}],
            system=CLASSIFY_SYSTEM_PROMPT,
            max_tokens=self.max_tokens,
            json_mode=True,
        )
        return EmailClassification.model_validate(json.loads(response.content))


class LLMResponseDrafter(ResponseDrafter):
    def __init__(self, llm: LLMProvider, max_tokens: int = 1024):
        self.llm = llm
        self.max_tokens = max_tokens

    async def draft(
        self,
        email_content: str,
        classification: Mapping[str, Any],
        context: list[str],
    ) -> str:
        prompt = (
            "Draft a response to this customer email:\n"
            f"{email_content}\n\n"
            f"Email intent: {classification.get('intent')}\n"
            f"Urgency level: {classification.get('urgency')}\n\n"
            + "\n\n".join(context)
            + "\n\n"
            + DRAFT_GUIDELINES
        )
        response = await self.llm.acomplete(
            [{"role": "user", "content": prompt}],
            max_tokens=self.max_tokens,
        )
        if not response.content.strip():
            raise ValueError("LLM returned an empty draft")
        return response.content


# === MOCKS ===


class MockDocumentationSearch(DocumentationSearch):
    """Canned results built from the classification."""

    async def search(self, classification: Mapping[str, Any]) -> list[str]:
        intent = classification.get("intent", "question")
        topic = classification.get("topic", "general")
        return [
            f"Documentation for {intent}: Basic information about {topic}",
            f"FAQ entry: Common questions related to {topic}",
            f"Knowledge base article: How to handle {intent} requests",
        ]


class MockBugTracker(BugTracker):
    """Generates ``BUG_<id>`` ticket IDs and remembers what it filed."""

    def __init__(self):
        self.tickets: dict[str, dict[str, Any]] = {}

    async def create_ticket(self, state: Mapping[str, Any]) -> str:
        ticket_id = f"BUG_{uuid.uuid4().hex[:9]}"
        self.tickets[ticket_id] = {
            "email_id": state.get("email_id"),
            "sender_email": state.get("sender_email"),
            "classification": state.get("classification"),
        }
        return ticket_id


class LoggingMailer(Mailer):
    """Logs a preview instead of sending; keeps every message in ``sent``."""

    def __init__(self):
        self.sent: list[dict[str, str]] = []

    async def send(self, to: str, body: str) -> None:
        preview = body[:60] + ("..." if len(body) > 60 else "")
        logger.info(f"📧 Sending reply to {to}: {preview}")
        self.sent.append({"to": to, "body": body})
