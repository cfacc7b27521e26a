"""Failure taxonomy for the trace pipeline."""

from typing import Any, Dict, Optional

import requests


class TraceError(Exception):
    """Base exception for all trace pipeline errors."""

    def __init__(self, message: str, stage: Optional[str] = None, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.stage = stage
        self.details = details or {}


class StageFailure(TraceError):
    """An external call made by a stage failed (network, timeout, non-2xx). Fatal."""
    pass


class MalformedOutput(TraceError):
    """Model text did not parse or did not match the required shape. Fatal."""
    pass


class ToolFailure(TraceError):
    """A research tool call failed. Reported back to the model, never fatal."""
    pass


class PersistenceFailure(TraceError):
    """Archival or store write failed. Logged only."""
    pass


def is_timeout(exc: BaseException) -> bool:
    if isinstance(exc, (TimeoutError, requests.exceptions.Timeout)):
        return True
    # httpx, google-api-core and ollama each ship their own timeout types
    name = type(exc).__name__.lower()
    text = str(exc).lower()
    return "timeout" in name or "deadline" in name or "timed out" in text or "timeout" in text


def stage_failure(stage: str, exc: BaseException) -> StageFailure:
    """Convert an exception raised by a model call into a StageFailure."""
    if is_timeout(exc):
        message = f"Model call timeout during {stage} stage"
    else:
        message = f"Model call failed during {stage} stage: {exc}"
    return StageFailure(message, stage=stage, details={"cause": type(exc).__name__})
