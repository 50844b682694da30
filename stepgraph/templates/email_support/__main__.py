"""
CLI entry point for Email Support Agent.

Runs are checkpointed to disk, so an email paused for review by ``run`` can
be approved or rejected by a later ``resume`` invocation.
"""

import asyncio
import json
import sys
from pathlib import Path

import click

from stepgraph.config import EngineConfig
from stepgraph.errors import NoPendingSuspensionError, StepGraphError
from stepgraph.observability import configure_logging
from stepgraph.storage.checkpoint_store import FileCheckpointStore

from .agent import EmailSupportAgent
from .config import metadata


def setup_logging(verbose=False, debug=False):
    """Configure logging for execution visibility."""
    if debug:
        level = "DEBUG"
    elif verbose:
        level = "INFO"
    else:
        level = "WARNING"
    configure_logging(level=level)


def build_agent(storage: str | None, mock: bool = False) -> EmailSupportAgent:
    engine_config = EngineConfig()
    storage_path = Path(storage) if storage else engine_config.storage_path / metadata.storage_dir
    return EmailSupportAgent(
        engine_config=engine_config,
        store=FileCheckpointStore(storage_path),
        mock_mode=mock,
    )


def emit(data: dict) -> None:
    click.echo(json.dumps(data, indent=2, default=str))


storage_option = click.option(
    "--storage",
    type=click.Path(file_okay=False),
    default=None,
    help="Checkpoint directory (default: <engine.storage_path>/email_support)",
)


@click.group()
@click.version_option(version=metadata.version)
def cli():
    """Email Support Agent - Triage and answer customer email with human review."""
    pass


@cli.command()
@click.option("--content", "-c", type=str, required=True, help="Email body")
@click.option("--sender", "-s", type=str, required=True, help="Sender address")
@click.option("--email-id", type=str, default=None, help="Email ID (generated if omitted)")
@click.option("--tier", type=str, default=None, help="Customer tier, e.g. premium")
@click.option("--mock", is_flag=True, help="Run with a mock LLM")
@storage_option
@click.option("--quiet", "-q", is_flag=True, help="Only output result JSON")
@click.option("--verbose", "-v", is_flag=True, help="Show execution details")
@click.option("--debug", is_flag=True, help="Show debug logging")
def run(content, sender, email_id, tier, mock, storage, quiet, verbose, debug):
    """Process one email until it is sent or paused for review."""
    if not quiet:
        setup_logging(verbose=verbose, debug=debug)

    agent = build_agent(storage, mock=mock)
    customer_history = {"tier": tier} if tier else None

    try:
        result = asyncio.run(
            agent.start(content, sender, email_id=email_id, customer_history=customer_history)
        )
    except StepGraphError as e:
        emit({"status": "failed", "error": str(e)})
        sys.exit(1)

    emit(result.model_dump(mode="json"))


@cli.command()
@click.argument("run_id")
@click.option("--approve/--reject", "approved", default=None, help="Reviewer decision")
@click.option("--edited", type=str, default=None, help="Replacement reply text")
@click.option("--mock", is_flag=True, help="Run with a mock LLM")
@storage_option
@click.option("--quiet", "-q", is_flag=True, help="Only output result JSON")
@click.option("--verbose", "-v", is_flag=True, help="Show execution details")
@click.option("--debug", is_flag=True, help="Show debug logging")
def resume(run_id, approved, edited, mock, storage, quiet, verbose, debug):
    """Resume a run paused for review."""
    if approved is None:
        raise click.UsageError("Pass --approve or --reject")
    if not quiet:
        setup_logging(verbose=verbose, debug=debug)

    agent = build_agent(storage, mock=mock)
    decision = {"approved": approved, "edited_response": edited}

    try:
        result = asyncio.run(agent.resume(run_id, decision))
    except NoPendingSuspensionError as e:
        emit({"status": "not_found", "run_id": run_id, "error": str(e)})
        sys.exit(1)
    except StepGraphError as e:
        emit({"status": "failed", "run_id": run_id, "error": str(e)})
        sys.exit(1)

    emit(result.model_dump(mode="json"))


@cli.command()
@click.argument("run_id")
@storage_option
def pending(run_id, storage):
    """Show the review request a run is waiting on."""
    agent = build_agent(storage, mock=True)
    checkpoint = asyncio.run(agent.pending(run_id))
    if checkpoint is None:
        emit({"run_id": run_id, "pending": False})
        sys.exit(1)
    emit({"pending": True, **checkpoint.summary()})


@cli.command()
@click.option("--json", "output_json", is_flag=True)
def info(output_json):
    """Show agent information."""
    info_data = EmailSupportAgent(mock_mode=True).info()
    if output_json:
        click.echo(json.dumps(info_data, indent=2))
    else:
        click.echo(f"Agent: {info_data['name']}")
        click.echo(f"Version: {info_data['version']}")
        click.echo(f"Description: {info_data['description']}")
        click.echo(f"\nSteps: {', '.join(info_data['steps'])}")
        click.echo(f"Entry: {', '.join(info_data['entry_steps'])}")
        for step, targets in info_data["fan_out"].items():
            click.echo(f"Fan-out: {step} -> {', '.join(targets)}")
        for step, destinations in info_data["routers"].items():
            click.echo(f"Routes: {step} -> {', '.join(destinations)}")


@cli.command()
def validate():
    """Validate agent structure."""
    validation = EmailSupportAgent(mock_mode=True).validate()
    if validation["valid"]:
        click.echo("Agent is valid")
        if validation["warnings"]:
            for warning in validation["warnings"]:
                click.echo(f"  WARNING: {warning}")
    else:
        click.echo("Agent has errors:")
        for error in validation["errors"]:
            click.echo(f"  ERROR: {error}")
    sys.exit(0 if validation["valid"] else 1)


if __name__ == "__main__":
    cli()
