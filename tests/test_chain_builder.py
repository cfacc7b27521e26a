import json

import pytest
from langchain_core.messages import AIMessage, ToolMessage

from causetrace.chain_builder import build_causal_chains
from causetrace.exceptions import MalformedOutput, ToolFailure
from causetrace.research_tools import ResearchToolAdapter
from causetrace.schemas import PatientProfile, SymptomAnalysis

from fakes import FakeSearcher, ScriptedChatModel, as_json, chains_answer, drain, symptoms_payload, tool_call_message


@pytest.fixture
def symptoms():
    return SymptomAnalysis.model_validate(symptoms_payload())


def test_tool_call_is_executed_and_fed_back(symptoms, tools, searcher):
    model = ScriptedChatModel([
        tool_call_message("search_medical_research", {"query": "cold weather vaso-occlusive crisis"}),
        as_json(chains_answer(0.6, 0.9), fenced=True),
    ])

    events, result = drain(build_causal_chains(symptoms, model=model, tools=tools))

    assert [(e.event, e.data["status"]) for e in events] == [("tool_call", "calling"), ("tool_call", "done")]
    assert events[0].data["input"] == "cold weather vaso-occlusive crisis"
    assert events[0].data["name"] == "Searching medical research"
    assert searcher.queries == ["cold weather vaso-occlusive crisis"]

    tool_messages = [m for m in model.calls[1] if isinstance(m, ToolMessage)]
    assert len(tool_messages) == 1
    assert json.loads(tool_messages[0].content)[0]["url"] == "https://example.org/cold"
    assert [t.name for t in model.bound_tools] == ["search_medical_research", "scrape_article"]

    assert [c.overall_confidence for c in result.chains] == [0.9, 0.6]
    assert result.summary


def test_loop_stops_at_five_turns_and_uses_the_last_answer(symptoms, tools):
    # Always asks for another search, but carries a usable answer in its text
    model = ScriptedChatModel(
        [tool_call_message("search_medical_research", {"query": "again"}, content=as_json(chains_answer(0.7, 0.5)))],
        repeat_last=True,
    )

    events, result = drain(build_causal_chains(symptoms, model=model, tools=tools))

    assert len(model.calls) == 5
    assert len([e for e in events if e.event == "tool_call"]) == 8  # 4 executed calls, pending one dropped
    assert len(result.chains) == 2


def test_thinking_is_streamed_per_turn_and_accumulated(symptoms, tools):
    model = ScriptedChatModel([
        AIMessage(
            content=[{"type": "thinking", "thinking": "Cold exposure may matter."}],
            tool_calls=[{"name": "scrape_article", "args": {"url": "https://example.org/cold"}, "id": "call-1"}],
        ),
        AIMessage(content=[
            {"type": "thinking", "thinking": "The article supports vasoconstriction."},
            {"type": "text", "text": as_json(chains_answer(0.8, 0.4))},
        ]),
    ])

    events, result = drain(build_causal_chains(symptoms, model=model, tools=tools))

    assert [e.event for e in events] == ["thinking", "tool_call", "tool_call", "thinking"]
    assert events[0].data["content"] == "Cold exposure may matter."
    assert events[1].data["input"] == "https://example.org/cold"
    assert result.thinking == "Cold exposure may matter.\n\nThe article supports vasoconstriction."


def test_tool_failure_is_reported_to_the_model(symptoms, scraper):
    tools = ResearchToolAdapter(searcher=FakeSearcher(error=ToolFailure("Exa search timeout after 30s")), scraper=scraper)
    model = ScriptedChatModel([
        tool_call_message("search_medical_research", {"query": "cold"}),
        as_json(chains_answer(0.8, 0.4)),
    ])

    events, result = drain(build_causal_chains(symptoms, model=model, tools=tools))

    tool_message = [m for m in model.calls[1] if isinstance(m, ToolMessage)][0]
    assert "error" in json.loads(tool_message.content)
    assert events[-1].data["status"] == "done"
    assert len(result.chains) == 2


def test_chains_are_ranked_and_capped_at_four(symptoms, tools):
    model = ScriptedChatModel([as_json(chains_answer(0.3, 0.9, 0.5, 0.7, 0.6))])
    _, result = drain(build_causal_chains(symptoms, model=model, tools=tools))
    assert [c.overall_confidence for c in result.chains] == [0.9, 0.7, 0.6, 0.5]


def test_single_chain_is_malformed(symptoms, tools):
    model = ScriptedChatModel([as_json(chains_answer(0.9))])
    with pytest.raises(MalformedOutput) as info:
        drain(build_causal_chains(symptoms, model=model, tools=tools))
    assert info.value.stage == "chains"


def test_missing_summary_is_malformed(symptoms, tools):
    answer = chains_answer(0.9, 0.8)
    del answer["summary"]
    model = ScriptedChatModel([as_json(answer)])
    with pytest.raises(MalformedOutput):
        drain(build_causal_chains(symptoms, model=model, tools=tools))


def test_invalid_chain_shape_is_malformed(symptoms, tools):
    answer = chains_answer(0.9, 0.8)
    answer["chains"][1]["nodes"].reverse()
    model = ScriptedChatModel([as_json(answer)])
    with pytest.raises(MalformedOutput, match="did not match the expected shape"):
        drain(build_causal_chains(symptoms, model=model, tools=tools))


def test_patient_profile_is_sent_as_context(symptoms, tools):
    model = ScriptedChatModel([as_json(chains_answer(0.9, 0.8))])
    patient = PatientProfile.model_validate({"genotype": "HbSC", "knownTriggers": ["cold"]})

    drain(build_causal_chains(symptoms, model=model, tools=tools, patient=patient))

    request = model.calls[0][1].content
    assert "Genotype: HbSC" in request
    assert '"bodySystem": "musculoskeletal"' in request
