"""
Structured logging with automatic trace context propagation.

Key Features:
- Standard logger.info() calls pick up run context automatically
- ContextVar-based propagation: thread-safe and async-safe
- Dual output modes: JSON for production, human-readable for development

Architecture:
    GraphRunner.start()/resume() → sets run_id and graph_id once
        ↓ (automatic propagation via ContextVar)
    StepExecutor.execute() → adds step
        ↓ (automatic propagation, per fan-out branch task)
    Step code → logger.info("message") → gets ALL context automatically
"""

import json
import logging
import os
import re
from contextvars import ContextVar, Token
from datetime import UTC, datetime
from typing import Any

trace_context: ContextVar[dict[str, Any] | None] = ContextVar("trace_context", default=None)

# ANSI escape code pattern (matches \033[...m or \x1b[...m)
ANSI_ESCAPE_PATTERN = re.compile(r"\x1b\[[0-9;]*m|\033\[[0-9;]*m")


def strip_ansi_codes(text: str) -> str:
    """Remove ANSI escape codes from text for clean JSON logging."""
    return ANSI_ESCAPE_PATTERN.sub("", text)


class StructuredFormatter(logging.Formatter):
    """
    JSON formatter for structured logging.

    Produces machine-parseable log entries with:
    - Standard fields (timestamp, level, logger, message)
    - Trace context (run_id, graph_id, step)
    """

    def format(self, record: logging.LogRecord) -> str:
        """Format log record as JSON."""
        context = trace_context.get() or {}

        log_entry = {
            "timestamp": datetime.now(UTC).isoformat(),
            "level": record.levelname.lower(),
            "logger": record.name,
            "message": strip_ansi_codes(record.getMessage()),
        }

        log_entry.update(context)

        if record.exc_info:
            log_entry["exception"] = strip_ansi_codes(self.formatException(record.exc_info))

        return json.dumps(log_entry, default=str)


class HumanReadableFormatter(logging.Formatter):
    """
    Human-readable formatter for development.

    Colorized output prefixed with the run and step from trace context.
    """

    COLORS = {
        "DEBUG": "\033[36m",  # Cyan
        "INFO": "\033[32m",  # Green
        "WARNING": "\033[33m",  # Yellow
        "ERROR": "\033[31m",  # Red
        "CRITICAL": "\033[35m",  # Magenta
    }
    RESET = "\033[0m"

    def format(self, record: logging.LogRecord) -> str:
        """Format log record as human-readable string."""
        context = trace_context.get() or {}
        run_id = context.get("run_id", "")
        step = context.get("step", "")

        prefix_parts = []
        if run_id:
            prefix_parts.append(f"run:{run_id[-8:]}")
        if step:
            prefix_parts.append(f"step:{step}")

        context_prefix = f"[{' | '.join(prefix_parts)}] " if prefix_parts else ""

        color = self.COLORS.get(record.levelname, "")
        level = f"{record.levelname:<8}"

        return f"{color}[{level}]{self.RESET} {context_prefix}{record.getMessage()}"


def configure_logging(
    level: str = "INFO",
    format: str = "auto",  # "json", "human", or "auto"
) -> None:
    """
    Configure structured logging for the application.

    Call once at startup (CLI entry point, test fixtures).

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        format: Output format:
            - "json": Machine-parseable JSON (for production)
            - "human": Human-readable with colors (for development)
            - "auto": JSON if LOG_FORMAT=json or ENV=production, else human
    """
    if format == "auto":
        log_format_env = os.getenv("LOG_FORMAT", "").lower()
        env = os.getenv("ENV", "development").lower()
        format = "json" if log_format_env == "json" or env == "production" else "human"

    formatter = StructuredFormatter() if format == "json" else HumanReadableFormatter()

    handler = logging.StreamHandler()
    handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.addHandler(handler)
    root_logger.setLevel(level.upper())

    # LiteLLM and its HTTP stack log on their own handlers; route them through ours
    if format == "json":
        for logger_name in ["LiteLLM", "httpcore", "httpx", "openai"]:
            logger = logging.getLogger(logger_name)
            logger.handlers.clear()
            logger.propagate = True


def set_trace_context(**kwargs: Any) -> Token:
    """
    Add fields to the trace context of the current execution.

    Context is stored in a ContextVar and propagates through async calls
    and into tasks created from the current context.

    Called by the framework:
    - GraphRunner.start()/resume(): run_id, graph_id
    - StepExecutor.execute(): step

    Returns:
        Token for ``reset_trace_context``, to restore the previous context
    """
    current = trace_context.get() or {}
    return trace_context.set({**current, **kwargs})


def reset_trace_context(token: Token) -> None:
    """Restore the trace context that was current before ``set_trace_context``."""
    trace_context.reset(token)


def get_trace_context() -> dict:
    """Copy of the current trace context (empty dict if none set)."""
    context = trace_context.get() or {}
    return context.copy()


def clear_trace_context() -> None:
    """Clear trace context (between test runs, or before an unrelated run)."""
    trace_context.set(None)
