"""
Trace Orchestrator
Runs the deep pipeline (symptoms -> chains -> recommendations), then hands the
finished trace to the archive and the store, as one ordered stream of events.

State machine:
    init -> symptoms -> chains -> recommendations -> persisting -> complete
    any non-terminal state -> error
There is no retry: a failed stage ends the trace.
"""

from typing import Generator, Optional

from causetrace.archive import VaultArchive, format_trace_markdown, symptom_title
from causetrace.chain_builder import build_causal_chains
from causetrace.config import VAULT_API_KEY, logger
from causetrace.recommendation import generate_recommendations
from causetrace.research_tools import ResearchToolAdapter
from causetrace.schemas import PatientProfile, StreamEvent, TraceResult
from causetrace.storage import TraceStore, get_trace_store
from causetrace.symptom_analyzer import analyze_symptoms
from causetrace.utils import failure_event

STAGE_MESSAGES = {
    "symptoms": "Parsing symptoms...",
    "chains": "Tracing causal connections across body systems...",
    "recommendations": "Generating actionable suggestions...",
    "persisting": "Saving to records...",
}


class TraceOrchestrator:
    """
    One deep trace. Build a fresh orchestrator per request: it holds the trace's
    state and its own research tool adapter.

    Args:
        symptom_model: Model for the symptom analyzer (defaults to the fast model)
        agent_model: Tool-calling model for the chain builder (defaults to the agent model)
        recommendation_model: Model for suggestions (defaults to the pro model)
        tools: Research tool adapter for the chain builder
        archive: Archival sink, None to skip (defaults to the vault when VAULT_API_KEY is set)
        store: Relational store, None to skip (defaults to the process-wide store)
    """

    def __init__(
        self,
        symptom_model=None,
        agent_model=None,
        recommendation_model=None,
        tools: Optional[ResearchToolAdapter] = None,
        archive: Optional[VaultArchive] = None,
        store: Optional[TraceStore] = None,
        use_default_sinks: bool = True,
    ):
        self.symptom_model = symptom_model
        self.agent_model = agent_model
        self.recommendation_model = recommendation_model
        self.tools = tools
        if use_default_sinks:
            archive = archive or (VaultArchive() if VAULT_API_KEY else None)
            store = store or get_trace_store()
        self.archive = archive
        self.store = store
        self.state = "init"
        self.trace_id: Optional[str] = None

    def _enter(self, stage: str) -> StreamEvent:
        self.state = stage
        logger.info(f"Trace stage: {stage}")
        return StreamEvent.status(stage, STAGE_MESSAGES[stage])

    def run(
        self, input_text: str, patient: Optional[PatientProfile] = None
    ) -> Generator[StreamEvent, None, TraceResult]:
        """Yield every event of the three stages in order and return the finished trace."""
        yield self._enter("symptoms")
        symptoms = analyze_symptoms(input_text, model=self.symptom_model)
        yield StreamEvent.symptoms(symptoms)

        yield self._enter("chains")
        chain_result = yield from build_causal_chains(
            symptoms,
            model=self.agent_model,
            tools=self.tools or ResearchToolAdapter(),
            patient=patient,
        )
        for chain in chain_result.chains:
            yield StreamEvent.chain(chain)
        yield StreamEvent.summary(chain_result.summary)

        yield self._enter("recommendations")
        suggestions = generate_recommendations(
            chain_result.chains, chain_result.summary, model=self.recommendation_model
        )
        yield StreamEvent.suggestions(suggestions)

        return TraceResult(
            input_text=input_text,
            symptoms=symptoms,
            chains=chain_result.chains,
            summary=chain_result.summary,
            suggestions=suggestions,
            thinking=chain_result.thinking,
        )

    def persist(self, result: TraceResult) -> Optional[str]:
        """
        Archive, then store, a finished trace. Failures are logged and never raised:
        the trace is complete before this runs.

        Returns:
            The store's trace id, or None if the store was skipped or failed
        """
        if self.archive is not None:
            try:
                if not self.archive.save(symptom_title(result), format_trace_markdown(result)):
                    logger.error("Archive rejected the trace note")
            except Exception as e:
                logger.error(f"Archive failed: {e}")

        if self.store is None:
            return None
        try:
            return self.store.persist(result)
        except Exception as e:
            logger.error(f"Trace store failed: {e}")
            return None

    def stream(
        self, input_text: str, patient: Optional[PatientProfile] = None
    ) -> Generator[StreamEvent, None, Optional[TraceResult]]:
        """
        The full trace as a stream that ends in exactly one done or error event.

        Closing the generator early (client disconnect) abandons the trace
        without persisting anything.
        """
        try:
            result = yield from self.run(input_text, patient)
        except Exception as e:
            failed_stage = self.state
            self.state = "error"
            yield failure_event(e, stage=failed_stage)
            return None

        yield self._enter("persisting")
        self.trace_id = self.persist(result)
        self.state = "complete"
        logger.info(f"Trace complete ({len(result.chains)} chains, {len(result.suggestions)} suggestions)")
        yield StreamEvent.done(self.trace_id)
        return result
