import json
import re
from typing import Any, Dict, Iterable, List, Optional, Tuple

from langchain_core.messages import BaseMessage
from pydantic import BaseModel, ValidationError

from causetrace.config import logger
from causetrace.exceptions import MalformedOutput, TraceError, stage_failure
from causetrace.schemas import StreamEvent, ToolCallEvent

FENCE_PATTERN = re.compile(r"```[a-zA-Z]*\s*([\s\S]*?)```")


def extract_json(text: str, stage: Optional[str] = None) -> Dict[str, Any]:
    """
    Recover a JSON object from raw model output.

    The output may be wrapped in prose or in a ```json fence. A fenced block wins;
    otherwise everything from the first "{" to the last "}" is parsed.

    Args:
        text: Raw completion text
        stage: Pipeline stage name, attached to the failure

    Returns:
        The parsed JSON object

    Raises:
        MalformedOutput: No object could be located or parsed
    """
    candidate = (text or "").strip()
    fenced = FENCE_PATTERN.search(candidate)
    if fenced:
        candidate = fenced.group(1).strip()
    else:
        start = candidate.find("{")
        end = candidate.rfind("}")
        if start == -1 or end < start:
            raise MalformedOutput(f"No JSON object found in {stage or 'model'} output", stage=stage)
        candidate = candidate[start:end + 1]

    try:
        parsed = json.loads(candidate)
    except json.JSONDecodeError as e:
        raise MalformedOutput(f"Invalid JSON in {stage or 'model'} output: {e}", stage=stage) from e

    if not isinstance(parsed, dict):
        raise MalformedOutput(f"Expected a JSON object in {stage or 'model'} output", stage=stage)
    return parsed


def message_parts(message: BaseMessage) -> Tuple[str, str]:
    """
    Split a chat model message into answer text and reasoning text.

    Providers return either a plain string or a list of typed content blocks;
    reasoning shows up as "thinking"/"reasoning" blocks or, for Ollama, in
    additional_kwargs["reasoning_content"].
    """
    content = message.content
    text_parts: List[str] = []
    thinking_parts: List[str] = []

    if isinstance(content, str):
        text_parts.append(content)
    else:
        for block in content:
            if isinstance(block, str):
                text_parts.append(block)
            elif block.get("type") == "text":
                text_parts.append(block.get("text", ""))
            elif block.get("type") == "thinking":
                thinking_parts.append(block.get("thinking", ""))
            elif block.get("type") == "reasoning":
                thinking_parts.append(block.get("reasoning", ""))

    reasoning = message.additional_kwargs.get("reasoning_content")
    if reasoning:
        thinking_parts.append(reasoning)

    text = "".join(text_parts).strip()
    thinking = "\n".join(part.strip() for part in thinking_parts if part and part.strip())
    return text, thinking


def collapse_tool_calls(events: Iterable[StreamEvent]) -> List[ToolCallEvent]:
    """
    Aggregate tool_call events the way a client should display them.

    A later event with the same (tool, input) key replaces the earlier one, so
    each call appears once with its latest status, in first-seen order.
    """
    latest: Dict[Tuple[str, str], ToolCallEvent] = {}
    for event in events:
        if event.event != "tool_call":
            continue
        call = ToolCallEvent.model_validate(event.data)
        latest[call.key] = call
    return list(latest.values())


def call_model(model, messages: List[BaseMessage], stage: str) -> BaseMessage:
    """Invoke a chat model once; any provider error becomes a StageFailure."""
    try:
        return model.invoke(messages)
    except Exception as e:
        raise stage_failure(stage, e) from e


def validate_output(schema: type, data: Any, stage: str) -> BaseModel:
    """Validate an untrusted model payload against a schema."""
    try:
        return schema.model_validate(data)
    except ValidationError as e:
        first = e.errors()[0]
        location = ".".join(str(part) for part in first["loc"]) or schema.__name__
        raise MalformedOutput(
            f"{stage} output did not match the expected shape ({location}: {first['msg']})",
            stage=stage,
            details={"errors": e.error_count()},
        ) from e


def failure_event(exc: Exception, stage: str) -> StreamEvent:
    """Turn a failure that ends a trace into its terminal error event. Call from an except block."""
    if isinstance(exc, TraceError):
        logger.error(f"Trace failed during {exc.stage or stage} stage: {exc.message}")
        return StreamEvent.error(exc.message)
    logger.exception(f"Unexpected error during {stage} stage")
    return StreamEvent.error(f"Unexpected error during {stage} stage: {exc}")
