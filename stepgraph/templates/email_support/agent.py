"""Graph construction for Email Support Agent."""

import json
from typing import Any

from stepgraph.config import EngineConfig, RuntimeConfig
from stepgraph.graph.directive import END, START
from stepgraph.graph.edge import StepGraph
from stepgraph.graph.runner import GraphRunner
from stepgraph.llm import LiteLLMProvider, LLMProvider, MockLLMProvider
from stepgraph.schemas.checkpoint import SuspensionCheckpoint
from stepgraph.schemas.run import RunResult
from stepgraph.storage.checkpoint_store import CheckpointStore, InMemoryCheckpointStore

from .collaborators import (
    DEFAULT_CLASSIFICATION,
    BugTracker,
    DocumentationSearch,
    EmailClassifier,
    LLMEmailClassifier,
    LLMResponseDrafter,
    LoggingMailer,
    Mailer,
    MockBugTracker,
    MockDocumentationSearch,
    ResponseDrafter,
)
from .config import default_config, default_engine_config, metadata
from .nodes import EmailSteps, draft_failed, search_failed

# Canned classification used by --mock runs: routine questions go straight out.
MOCK_CLASSIFICATION = {
    "intent": "question",
    "urgency": "low",
    "topic": "general inquiry",
    "summary": "Mock classification",
}

# Edges
edges = [
    (START, "read_email"),
    ("read_email", "classify_intent"),
    # Fan-out: both branches run for every email
    ("classify_intent", "search_documentation"),
    ("classify_intent", "bug_tracking"),
    # Fan-in: write_response waits for both branches
    ("search_documentation", "write_response"),
    ("bug_tracking", "write_response"),
    ("send_reply", END),
]


class EmailSupportAgent:
    """
    Email Support Agent - triage, draft and (after review) reply.

    Flow: read_email -> classify_intent -> [search_documentation, bug_tracking]
          -> write_response -> (human_review ->) send_reply

    Collaborators default to LLM-backed classifier/drafter and mock search,
    ticketing and mail. Pass your own to integrate real systems.
    """

    def __init__(
        self,
        config: RuntimeConfig | None = None,
        engine_config: EngineConfig | None = None,
        store: CheckpointStore | None = None,
        llm: LLMProvider | None = None,
        classifier: EmailClassifier | None = None,
        drafter: ResponseDrafter | None = None,
        search: DocumentationSearch | None = None,
        tracker: BugTracker | None = None,
        mailer: Mailer | None = None,
        mock_mode: bool = False,
    ):
        self.config = config or default_config
        self.engine_config = engine_config or default_engine_config
        self.store = store if store is not None else InMemoryCheckpointStore()

        if llm is None and (classifier is None or drafter is None):
            if mock_mode:
                llm = MockLLMProvider(default_json=json.dumps(MOCK_CLASSIFICATION))
            else:
                llm = LiteLLMProvider(
                    model=self.config.model,
                    api_key=self.config.api_key,
                    api_base=self.config.api_base,
                    temperature=self.config.temperature,
                )
        self.llm = llm

        self.mailer = mailer or LoggingMailer()
        self.tracker = tracker or MockBugTracker()
        self.steps = EmailSteps(
            classifier=classifier or LLMEmailClassifier(llm, max_tokens=self.config.max_tokens),
            drafter=drafter or LLMResponseDrafter(llm, max_tokens=self.config.max_tokens),
            search=search or MockDocumentationSearch(),
            tracker=self.tracker,
            mailer=self.mailer,
        )

        self.graph = self._build_graph()
        self._runner: GraphRunner | None = None

    def _build_graph(self) -> StepGraph:
        steps = self.steps
        graph = StepGraph("email-support", description=metadata.description)

        graph.add_step("read_email", steps.read_email, description="Log and identify the email")
        graph.add_step(
            "classify_intent",
            steps.classify_intent,
            fallback={"classification": DEFAULT_CLASSIFICATION},
            description="Classify intent and urgency",
        )
        graph.add_step(
            "search_documentation",
            steps.search_documentation,
            fallback=search_failed,
            description="Find relevant documentation",
        )
        graph.add_step("bug_tracking", steps.bug_tracking, description="File a ticket")
        graph.add_step(
            "write_response",
            steps.write_response,
            allowed_destinations=["human_review", "send_reply"],
            fallback=draft_failed,
            description="Draft a reply and decide whether it needs review",
        )
        graph.add_step(
            "human_review",
            steps.human_review,
            allowed_destinations=["send_reply", END],
            description="Pause for a human to approve, edit or reject the draft",
        )
        graph.add_step("send_reply", steps.send_reply, description="Send the reply")

        for source, target in edges:
            graph.add_edge(source, target)

        return graph

    @property
    def runner(self) -> GraphRunner:
        if self._runner is None:
            self._runner = self.graph.compile(store=self.store, config=self.engine_config)
        return self._runner

    async def start(
        self,
        email_content: str,
        sender_email: str,
        email_id: str | None = None,
        customer_history: dict[str, Any] | None = None,
        run_id: str | None = None,
    ) -> RunResult:
        """Process one email. Returns suspended when the draft needs review."""
        initial_state: dict[str, Any] = {
            "email_content": email_content,
            "sender_email": sender_email,
        }
        if email_id:
            initial_state["email_id"] = email_id
        if customer_history is not None:
            initial_state["customer_history"] = customer_history

        return await self.runner.start(initial_state, run_id=run_id)

    async def resume(self, run_id: str, decision: Any) -> RunResult:
        """Resume a run paused at human_review with the reviewer's decision."""
        return await self.runner.resume(run_id, decision)

    async def pending(self, run_id: str) -> SuspensionCheckpoint | None:
        """Outstanding review request for ``run_id``, if any."""
        return await self.store.get(run_id)

    def info(self) -> dict[str, Any]:
        """Get agent information."""
        return {
            "name": metadata.name,
            "version": metadata.version,
            "description": metadata.description,
            **{k: v for k, v in self.graph.describe().items() if k != "description"},
        }

    def validate(self) -> dict[str, Any]:
        """Validate agent structure."""
        errors = self.graph.dangling_references()
        warnings = [
            f"Step '{name}' is unreachable from entry" for name in self.graph.unreachable_steps()
        ]
        return {
            "valid": len(errors) == 0,
            "errors": errors,
            "warnings": warnings,
        }
