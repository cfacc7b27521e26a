import pytest
from langchain_core.messages import HumanMessage

from causetrace.exceptions import MalformedOutput, StageFailure
from causetrace.symptom_analyzer import analyze_symptoms

from fakes import ScriptedChatModel, as_json, symptoms_payload


def test_compound_input_is_split_into_two_musculoskeletal_symptoms():
    model = ScriptedChatModel([as_json(symptoms_payload(), fenced=True)])

    analysis = analyze_symptoms("My legs and back hurt", model=model)

    assert len(analysis.symptoms) == 2
    assert {s.body_system for s in analysis.symptoms} == {"musculoskeletal"}
    assert analysis.environmental_factors == ["cold weather"]


def test_raw_input_is_always_the_callers_text():
    model = ScriptedChatModel([as_json(symptoms_payload(raw_input="legs + back"))])
    analysis = analyze_symptoms("My legs and back hurt", model=model)
    assert analysis.raw_input == "My legs and back hurt"


def test_one_call_with_the_input_quoted():
    model = ScriptedChatModel([as_json(symptoms_payload())])
    analyze_symptoms("My legs and back hurt", model=model)

    assert len(model.calls) == 1
    human = model.calls[0][-1]
    assert isinstance(human, HumanMessage)
    assert '"My legs and back hurt"' in human.content


def test_timeout_is_a_stage_failure():
    model = ScriptedChatModel([TimeoutError("Request timed out")])
    with pytest.raises(StageFailure) as info:
        analyze_symptoms("headache", model=model)
    assert info.value.stage == "symptoms"
    assert "timeout" in info.value.message
    assert len(model.calls) == 1  # no retries


def test_prose_answer_is_malformed():
    model = ScriptedChatModel(["I'm sorry, I can't help with that."])
    with pytest.raises(MalformedOutput) as info:
        analyze_symptoms("headache", model=model)
    assert info.value.stage == "symptoms"


def test_wrong_shape_is_malformed():
    payload = symptoms_payload()
    payload["symptoms"][0]["severity"] = "excruciating"
    model = ScriptedChatModel([as_json(payload)])
    with pytest.raises(MalformedOutput, match="did not match the expected shape"):
        analyze_symptoms("My legs and back hurt", model=model)


def test_blank_input_is_rejected_before_any_call():
    model = ScriptedChatModel([])
    with pytest.raises(ValueError):
        analyze_symptoms("   ", model=model)
    assert model.calls == []
