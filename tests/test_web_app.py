import json

import pytest
from fastapi.testclient import TestClient

from causetrace.schemas import StreamEvent
from causetrace.storage import TraceStore
from web_app import app, get_orchestrator, get_quick_tracer, get_store

from fakes import symptoms_payload, trace_result


class StubPipeline:
    def __init__(self, events):
        self.events = events
        self.inputs = []

    def stream(self, input_text, patient=None):
        self.inputs.append((input_text, patient))
        yield from self.events


def parse_sse(body):
    frames = []
    for block in body.strip().split("\n\n"):
        event_line, data_line = block.split("\n")
        frames.append((event_line[len("event: "):], json.loads(data_line[len("data: "):])))
    return frames


@pytest.fixture
def deep():
    return StubPipeline([
        StreamEvent.status("symptoms", "Parsing symptoms..."),
        StreamEvent(event="symptoms", data={"symptoms": symptoms_payload()["symptoms"]}),
        StreamEvent.done("trace-1"),
    ])


@pytest.fixture
def quick():
    return StubPipeline([StreamEvent.status("chains", "Building causal chain..."), StreamEvent.done()])


@pytest.fixture
def trace_store(tmp_path):
    return TraceStore(url=f"sqlite:///{tmp_path / 'web.db'}")


@pytest.fixture
def client(deep, quick, trace_store):
    app.dependency_overrides[get_orchestrator] = lambda: deep
    app.dependency_overrides[get_quick_tracer] = lambda: quick
    app.dependency_overrides[get_store] = lambda: trace_store
    yield TestClient(app)
    app.dependency_overrides.clear()


def test_trace_streams_server_sent_events(client, deep):
    response = client.post("/trace", json={"inputText": "  My legs and back hurt  "})

    assert response.status_code == 200
    assert response.headers["content-type"].startswith("text/event-stream")
    assert response.headers["cache-control"] == "no-cache"
    frames = parse_sse(response.text)
    assert [name for name, _ in frames] == ["status", "symptoms", "done"]
    assert frames[-1][1] == {"success": True, "traceId": "trace-1"}
    assert deep.inputs == [("My legs and back hurt", None)]


def test_quick_mode_uses_the_quick_tracer(client, deep, quick):
    response = client.post("/trace", json={"inputText": "headache since Tuesday", "mode": "quick"})
    assert [name for name, _ in parse_sse(response.text)] == ["status", "done"]
    assert quick.inputs and not deep.inputs


def test_patient_profile_is_passed_through(client, deep):
    client.post("/trace", json={"inputText": "tired", "patient": {"genotype": "HbSS", "hbfLevel": 6}})
    patient = deep.inputs[0][1]
    assert patient.genotype == "HbSS" and patient.hbf_level == 6


@pytest.mark.parametrize("body", [{}, {"inputText": ""}, {"inputText": "   "}])
def test_missing_input_is_a_bad_request(client, body):
    assert client.post("/trace", json=body).status_code == 400


def test_unknown_mode_is_rejected(client):
    assert client.post("/trace", json={"inputText": "headache", "mode": "turbo"}).status_code == 422


def test_history_endpoints(client, trace_store):
    trace_id = trace_store.persist(trace_result())

    listing = client.get("/traces", params={"limit": 5}).json()["traces"]
    assert [entry["id"] for entry in listing] == [trace_id]
    assert client.get(f"/traces/{trace_id}").json()["summary"] == "Cold weather likely triggered a pain crisis."
    assert client.get("/traces/unknown").status_code == 404


def test_health(client):
    assert client.get("/health").json() == {"status": "ok"}
