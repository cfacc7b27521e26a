import json
from typing import Annotated, Generator, List, Optional, TypedDict

# LangChain imports
from langchain_core.messages import AnyMessage, HumanMessage, ToolMessage
from langsmith import traceable

# LangGraph imports
from langgraph.config import get_stream_writer
from langgraph.graph import END, START, StateGraph, add_messages

# Local imports
from causetrace.config import MAX_TOOL_TURNS, get_agent_model, logger
from causetrace.exceptions import MalformedOutput
from causetrace.prompts import causal_chain_prompt
from causetrace.research_tools import ResearchToolAdapter
from causetrace.schemas import (
    CausalChainResult,
    PatientProfile,
    StreamEvent,
    SymptomAnalysis,
    ToolCallEvent,
)
from causetrace.utils import call_model, extract_json, message_parts, validate_output

MIN_CHAINS = 2
MAX_CHAINS = 4


##################### Research Loop Graph #####################
# reason -> (tools -> reason)* -> END, capped at max_turns model turns.
class ChainBuilderState(TypedDict):
    messages: Annotated[List[AnyMessage], add_messages]
    turns: int
    thinking: List[str]  # reasoning text per turn, in turn order
    final_text: str


def build_chain_graph(model, tools: ResearchToolAdapter, max_turns: int = MAX_TOOL_TURNS):
    """Compile the bounded tool-use loop for one trace."""
    agent = model.bind_tools(tools.tools)

    @traceable(run_type="llm", name="chain_builder_turn")
    def reason(state: ChainBuilderState) -> dict:
        writer = get_stream_writer()
        turn = state["turns"] + 1
        logger.info(f"Chain builder turn {turn}/{max_turns}")
        response = call_model(agent, [causal_chain_prompt] + state["messages"], stage="chains")

        text, thinking = message_parts(response)
        if thinking:
            writer(StreamEvent.thinking(thinking))
        return {
            "messages": [response],
            "turns": turn,
            "thinking": state["thinking"] + ([thinking] if thinking else []),
            "final_text": text,
        }

    def run_tools(state: ChainBuilderState) -> dict:
        # Sequential on purpose: one external call in flight per trace
        writer = get_stream_writer()
        results = []
        for index, call in enumerate(state["messages"][-1].tool_calls):
            name, args = call["name"], call.get("args") or {}
            event = ToolCallEvent(
                tool=name,
                name=tools.display_name(name),
                input=tools.describe_input(name, args),
                status="calling",
            )
            writer(StreamEvent.tool_call(event))
            result = tools.execute(name, args)
            writer(StreamEvent.tool_call(event.model_copy(update={"status": "done"})))
            results.append(ToolMessage(content=result, tool_call_id=call.get("id") or f"call-{index}", name=name))
        return {"messages": results}

    def route(state: ChainBuilderState):
        if state["messages"][-1].tool_calls and state["turns"] < max_turns:
            return "tools"
        return END

    workflow = StateGraph(ChainBuilderState)
    workflow.add_node("reason", reason)
    workflow.add_node("tools", run_tools)
    workflow.add_edge(START, "reason")
    workflow.add_conditional_edges("reason", route, ["tools", END])
    workflow.add_edge("tools", "reason")
    return workflow.compile()


def _chain_request(symptoms: SymptomAnalysis, patient: Optional[PatientProfile]) -> str:
    parts = []
    if patient is not None:
        parts.append(patient.to_prompt())
    parts.append(
        "Analyze these parsed symptoms and build causal chains:\n\n"
        + json.dumps(symptoms.to_wire(), indent=2)
    )
    return "\n\n".join(parts)


def build_causal_chains(
    symptoms: SymptomAnalysis,
    model=None,
    tools: Optional[ResearchToolAdapter] = None,
    patient: Optional[PatientProfile] = None,
    max_turns: int = MAX_TOOL_TURNS,
) -> Generator[StreamEvent, None, CausalChainResult]:
    """
    Build ranked causal chains for a symptom analysis.

    Yields thinking and tool_call events while the research loop runs and
    returns the validated result (use ``result = yield from ...``). The
    reasoning text is accumulated per trace and returned with the chains.

    Args:
        symptoms: Output of the symptom analyzer
        model: Chat model with tool calling (defaults to the agent model)
        tools: Research tool adapter (a fresh one per call by default)
        patient: Optional patient profile added as context
        max_turns: Model turn budget for the research loop

    Returns:
        CausalChainResult with 2-4 chains sorted by overall confidence
    """
    graph = build_chain_graph(model or get_agent_model(), tools or ResearchToolAdapter(), max_turns)
    initial_state = {
        "messages": [HumanMessage(content=_chain_request(symptoms, patient))],
        "turns": 0,
        "thinking": [],
        "final_text": "",
    }

    final_state = initial_state
    for mode, chunk in graph.stream(
        initial_state,
        {"recursion_limit": 2 * max_turns + 5},
        stream_mode=["custom", "values"],
    ):
        if mode == "custom":
            yield chunk
        else:
            final_state = chunk

    if getattr(final_state["messages"][-1], "tool_calls", None):
        logger.warning(f"Research budget of {max_turns} turns exhausted; using the last response as the answer")

    parsed = extract_json(final_state["final_text"], stage="chains")
    result = validate_output(
        CausalChainResult,
        {
            "chains": parsed.get("chains"),
            "summary": parsed.get("summary"),
            "thinking": "\n\n".join(final_state["thinking"]),
        },
        stage="chains",
    )
    if not result.summary.strip():
        raise MalformedOutput("chains output is missing a summary", stage="chains")
    if len(result.chains) < MIN_CHAINS:
        raise MalformedOutput(
            f"chains output has {len(result.chains)} chain(s), expected at least {MIN_CHAINS}", stage="chains"
        )

    ranked = sorted(result.chains, key=lambda chain: chain.overall_confidence, reverse=True)
    if len(ranked) > MAX_CHAINS:
        logger.info(f"Keeping the {MAX_CHAINS} most confident of {len(ranked)} chains")
    result.chains = ranked[:MAX_CHAINS]
    logger.info(f"Built {len(result.chains)} causal chains in {final_state['turns']} turns")
    return result
