"""Scripted stand-ins for the chat model, research backends and sinks, plus payload builders."""

import json

from langchain_core.messages import AIMessage

from causetrace.exceptions import PersistenceFailure
from causetrace.schemas import CausalChain, Suggestion, SymptomAnalysis, TraceResult


class ScriptedChatModel:
    """
    Plays back queued responses in order. A response may be an AIMessage, a str
    (wrapped in an AIMessage) or an exception instance (raised).
    """

    def __init__(self, responses, repeat_last=False):
        self.responses = list(responses)
        self.repeat_last = repeat_last
        self.calls = []
        self.bound_tools = None

    def bind_tools(self, tools, **kwargs):
        self.bound_tools = list(tools)
        return self

    def invoke(self, messages, config=None, **kwargs):
        self.calls.append(list(messages))
        if not self.responses:
            raise AssertionError("ScriptedChatModel ran out of responses")
        if self.repeat_last and len(self.responses) == 1:
            response = self.responses[0]
        else:
            response = self.responses.pop(0)
        if isinstance(response, Exception):
            raise response
        if isinstance(response, str):
            return AIMessage(content=response)
        # A fresh copy per turn so the graph assigns each its own message id
        return response.model_copy()


class FakeSearcher:
    def __init__(self, results=None, error=None):
        self.results = results or []
        self.error = error
        self.queries = []

    def search(self, query):
        self.queries.append(query)
        if self.error is not None:
            raise self.error
        return self.results


class FakeScraper:
    def __init__(self, content="# Article\n\nHbS polymerizes when deoxygenated."):
        self.content = content
        self.urls = []

    def scrape(self, url):
        self.urls.append(url)
        return self.content


class RecordingStore:
    def __init__(self, error=None):
        self.error = error
        self.persisted = []

    def persist(self, result):
        if self.error is not None:
            raise self.error
        self.persisted.append(result)
        return f"trace-{len(self.persisted)}"


class RecordingArchive:
    def __init__(self, error=None, accepted=True):
        self.error = error
        self.accepted = accepted
        self.saved = []

    def save(self, title, markdown):
        if self.error is not None:
            raise self.error
        self.saved.append((title, markdown))
        return self.accepted


def unreachable_store():
    return RecordingStore(error=PersistenceFailure("Trace store write failed: connection refused", stage="persisting"))


def drain(generator):
    """Collect every event from a stage generator and its return value."""
    events = []
    while True:
        try:
            events.append(next(generator))
        except StopIteration as stop:
            return events, stop.value


def as_json(payload, fenced=False):
    text = json.dumps(payload)
    return f"Here is the result:\n```json\n{text}\n```" if fenced else text


def tool_call_message(name, args, call_id="call-1", content=""):
    return AIMessage(content=content, tool_calls=[{"name": name, "args": args, "id": call_id}])


def symptoms_payload(raw_input="My legs and back hurt"):
    return {
        "symptoms": [
            {"id": "s1", "text": "leg pain", "bodySystem": "musculoskeletal", "severity": "moderate",
             "temporalMarker": None, "isNewOnset": False},
            {"id": "s2", "text": "back pain", "bodySystem": "musculoskeletal", "severity": "moderate",
             "temporalMarker": None, "isNewOnset": False},
        ],
        "environmentalFactors": ["cold weather"],
        "temporalPattern": "acute",
        "rawInput": raw_input,
    }


def chain_payload(chain_id="chain-1", confidence=0.8):
    return {
        "id": chain_id,
        "label": f"Pathway {chain_id}",
        "overallConfidence": confidence,
        "nodes": [
            {"id": "n1", "type": "symptom", "title": "Leg pain", "description": "Aching in both legs",
             "bodySystem": "musculoskeletal", "confidence": 0.9, "patientEvidence": "my legs hurt"},
            {"id": "n2", "type": "mechanism", "title": "Vaso-occlusion", "description": "Sickled cells block small vessels",
             "bodySystem": "circulatory", "confidence": 0.8,
             "citations": [{"title": "Pathophysiology of SCD", "source": "Blood", "url": "https://example.org/scd"}]},
            {"id": "n3", "type": "root-cause", "title": "Cold-triggered sickling", "description": "Cold exposure promotes HbS polymerization",
             "bodySystem": "circulatory", "confidence": 0.7},
        ],
        "connections": [
            {"fromNodeId": "n1", "toNodeId": "n2", "mechanism": "Ischemic pain", "strength": "strong"},
            {"fromNodeId": "n2", "toNodeId": "n3", "mechanism": "Vasoconstriction", "strength": "moderate"},
        ],
    }


def chains_answer(*confidences, summary="Cold weather likely triggered a pain crisis."):
    return {
        "chains": [chain_payload(f"chain-{index + 1}", c) for index, c in enumerate(confidences)],
        "summary": summary,
    }


def suggestions_payload():
    # Deliberately not in urgency order
    return [
        {"text": "Drink water regularly", "forDoctor": False, "urgency": "info"},
        {"text": "Seek care if chest pain develops", "forDoctor": False, "urgency": "urgent"},
        {"text": "Ask about hydroxyurea dosing", "forDoctor": True, "urgency": "discuss"},
        {"text": "Keep warm in cold weather", "forDoctor": False, "urgency": "info"},
    ]


def quick_payload():
    return {"chain": chain_payload(), "summary": "Probable cold-triggered crisis.", "suggestions": suggestions_payload()}


def trace_result(input_text="My legs and back hurt"):
    return TraceResult(
        input_text=input_text,
        symptoms=SymptomAnalysis.model_validate(symptoms_payload()),
        chains=[CausalChain.model_validate(chain_payload("chain-1", 0.9)), CausalChain.model_validate(chain_payload("chain-2", 0.4))],
        summary="Cold weather likely triggered a pain crisis.",
        suggestions=[Suggestion(text="Review pain plan", for_doctor=True, urgency="discuss")],
        thinking="Considered dehydration first.",
    )
