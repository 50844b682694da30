"""Step definitions for Email Support Agent."""

import logging
import uuid
from collections.abc import Mapping
from typing import Any

from stepgraph.graph.directive import Route, Terminate
from stepgraph.graph.interrupt import suspend

from ..collaborators import (
    DEFAULT_CLASSIFICATION,
    BugTracker,
    DocumentationSearch,
    EmailClassifier,
    Mailer,
    ResponseDrafter,
    ReviewDecision,
)

logger = logging.getLogger(__name__)

DRAFT_ERROR_TEXT = "Error generating response. Please try again."
REVIEW_ACTION = "Please review and approve/edit this response"


def needs_review(classification: Mapping[str, Any]) -> bool:
    """High or critical urgency, or a complex intent, needs a human."""
    return classification.get("urgency") in ("high", "critical") or (
        classification.get("intent") == "complex"
    )


class EmailSteps:
    """
    The seven steps of the email workflow, bound to their collaborators.

    State fields: email_content, sender_email, email_id, classification,
    ticket_id, search_results, customer_history, draft_response.
    """

    def __init__(
        self,
        classifier: EmailClassifier,
        drafter: ResponseDrafter,
        search: DocumentationSearch,
        tracker: BugTracker,
        mailer: Mailer,
    ):
        self.classifier = classifier
        self.drafter = drafter
        self.search = search
        self.tracker = tracker
        self.mailer = mailer

    # Step 1: Read (entry)
    # In production this would fetch from the mail service; the content is
    # supplied when the run starts.
    async def read_email(self, state: Mapping[str, Any]) -> dict[str, Any]:
        logger.info(f"Processing email from: {state.get('sender_email')}")
        if not state.get("email_id"):
            return {"email_id": f"email_{uuid.uuid4().hex[:12]}"}
        return {}

    # Step 2: Classify
    # Registered with DEFAULT_CLASSIFICATION as its fallback, so a failing
    # classifier never stops the run.
    async def classify_intent(self, state: Mapping[str, Any]) -> dict[str, Any]:
        classification = await self.classifier.classify(
            state.get("email_content", ""), state.get("sender_email", "")
        )
        logger.info(
            f"Classification: intent={classification.intent} urgency={classification.urgency}"
        )
        return {"classification": classification.model_dump(mode="json")}

    # Step 3a: Search documentation (fan-out branch)
    async def search_documentation(self, state: Mapping[str, Any]) -> dict[str, Any]:
        classification = state.get("classification") or {"intent": "question", "topic": "general"}
        results = await self.search.search(classification)
        logger.info(f"Found {len(results)} search results")
        return {"search_results": results}

    # Step 3b: File a ticket (fan-out branch)
    # Runs for every email, whatever the intent.
    async def bug_tracking(self, state: Mapping[str, Any]) -> dict[str, Any]:
        ticket_id = await self.tracker.create_ticket(state)
        logger.info(f"Created ticket: {ticket_id}")
        return {"ticket_id": ticket_id}

    # Step 4: Draft (fan-in, dynamic router)
    async def write_response(self, state: Mapping[str, Any]) -> Route:
        classification = state.get("classification") or DEFAULT_CLASSIFICATION

        context = []
        if state.get("search_results"):
            docs = "\n".join(f"- {doc}" for doc in state["search_results"])
            context.append(f"Relevant documentation:\n{docs}")
        if state.get("customer_history") is not None:
            tier = state["customer_history"].get("tier", "standard")
            context.append(f"Customer tier: {tier}")

        draft = await self.drafter.draft(state.get("email_content", ""), classification, context)

        if needs_review(classification):
            logger.info("Draft needs approval")
            return Route({"draft_response": draft}, "human_review")
        return Route({"draft_response": draft}, "send_reply")

    # Step 5: Human review (suspends the run)
    # suspend() must stay the first operation: the step re-runs from the top on resume.
    def human_review(self, state: Mapping[str, Any]) -> Route | Terminate:
        classification = state.get("classification") or DEFAULT_CLASSIFICATION
        decision = suspend(
            {
                "email_id": state.get("email_id"),
                "original_email": state.get("email_content"),
                "draft_response": state.get("draft_response") or "",
                "urgency": classification.get("urgency"),
                "intent": classification.get("intent"),
                "action": REVIEW_ACTION,
            }
        )

        if isinstance(decision, bool):
            decision = ReviewDecision(approved=decision)
        elif not isinstance(decision, ReviewDecision):
            decision = ReviewDecision.model_validate(decision or {})

        if decision.approved:
            edited = decision.edited_response is not None
            response = decision.edited_response if edited else state.get("draft_response")
            logger.info("Draft approved" + (" with edits" if edited else ""))
            return Route({"draft_response": response}, "send_reply")

        logger.info("Draft rejected; leaving the email to a human")
        return Terminate({})

    # Step 6: Send (exit)
    async def send_reply(self, state: Mapping[str, Any]) -> dict[str, Any]:
        await self.mailer.send(state.get("sender_email", ""), state.get("draft_response") or "")
        return {}


def draft_failed(error: Exception, state: Mapping[str, Any]) -> Route:
    """write_response fallback: never auto-send a failed draft."""
    return Route({"draft_response": DRAFT_ERROR_TEXT}, "human_review")


def search_failed(error: Exception, state: Mapping[str, Any]) -> dict[str, Any]:
    """search_documentation fallback."""
    return {"search_results": [f"Search temporarily unavailable: {error}"]}
