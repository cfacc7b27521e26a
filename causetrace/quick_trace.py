"""
Quick Trace
Single-call alternative to the deep pipeline: one completion returns one chain,
a summary and suggestions together. No tools, no research loop, no persistence.
"""

from typing import Generator, Optional

from langchain_core.messages import HumanMessage
from langsmith import traceable

from causetrace.config import get_fast_model, logger
from causetrace.exceptions import MalformedOutput
from causetrace.prompts import quick_trace_prompt
from causetrace.recommendation import triage_suggestions
from causetrace.schemas import CausalChain, PatientProfile, StreamEvent, TraceResult
from causetrace.utils import call_model, extract_json, failure_event, message_parts, validate_output


@traceable(run_type="llm", name="quick_trace")
def _complete(model, input_text: str, patient: Optional[PatientProfile]) -> str:
    request = f"Patient symptoms: {input_text}"
    if patient is not None:
        request = f"{patient.to_prompt()}\n\n{request}"
    response = call_model(model, [quick_trace_prompt, HumanMessage(content=request)], stage="quick")
    text, _ = message_parts(response)
    return text


class QuickTracer:
    """Speaks the same event vocabulary as TraceOrchestrator, with exactly one chain."""

    def __init__(self, model=None):
        self.model = model

    def run(
        self, input_text: str, patient: Optional[PatientProfile] = None
    ) -> Generator[StreamEvent, None, TraceResult]:
        """Yield progress events and return the result; failures are raised."""
        if not input_text or not input_text.strip():
            raise ValueError("input_text must not be empty")

        yield StreamEvent.status("symptoms", "Analyzing symptoms...")
        yield StreamEvent.status("chains", "Building causal chain...")
        logger.info("Running quick trace...")
        text = _complete(self.model or get_fast_model(), input_text, patient)

        parsed = extract_json(text, stage="quick")
        chain = validate_output(CausalChain, parsed.get("chain"), stage="quick")
        summary = parsed.get("summary")
        if not isinstance(summary, str) or not summary.strip():
            raise MalformedOutput("quick output is missing a summary", stage="quick")
        suggestions = triage_suggestions(parsed.get("suggestions"), stage="quick")

        yield StreamEvent.chain(chain)
        yield StreamEvent.summary(summary)
        yield StreamEvent.status("recommendations", "Finalizing...")
        yield StreamEvent.suggestions(suggestions)
        return TraceResult(
            input_text=input_text,
            chains=[chain],
            summary=summary,
            suggestions=suggestions,
        )

    def stream(
        self, input_text: str, patient: Optional[PatientProfile] = None
    ) -> Generator[StreamEvent, None, Optional[TraceResult]]:
        """Like run(), but always ends in exactly one done or error event."""
        try:
            result = yield from self.run(input_text, patient)
        except Exception as e:
            yield failure_event(e, stage="quick")
            return None
        yield StreamEvent.done()
        return result
