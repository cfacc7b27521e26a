"""
Trace Data Model

Pydantic models for everything that crosses a stage boundary or the stream.
Model output is untrusted: every payload parsed from a completion is validated
against these shapes before any field is used.
"""

import json
from typing import Any, Dict, List, Literal, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


BODY_SYSTEMS = (
    "respiratory",
    "circulatory",
    "musculoskeletal",
    "neurological",
    "renal",
    "immune",
    "gastrointestinal",
    "integumentary",
    "endocrine",
)
BodySystem = Literal[
    "respiratory",
    "circulatory",
    "musculoskeletal",
    "neurological",
    "renal",
    "immune",
    "gastrointestinal",
    "integumentary",
    "endocrine",
]
Severity = Literal["mild", "moderate", "severe"]
TemporalPattern = Literal["acute", "gradual", "recurring"]
NodeType = Literal["symptom", "mechanism", "root-cause"]
Strength = Literal["strong", "moderate", "possible"]
Urgency = Literal["urgent", "discuss", "info"]
EventName = Literal[
    "status", "thinking", "tool_call", "symptoms", "chain", "summary", "suggestions", "done", "error"
]

NODE_ORDER = {"symptom": 0, "mechanism": 1, "root-cause": 2}
URGENCY_RANK = {"urgent": 0, "discuss": 1, "info": 2}
TERMINAL_EVENTS = ("done", "error")


def _normalize_tag(value):
    # Models drift on casing and separators ("Root Cause", "Musculoskeletal ")
    if isinstance(value, str):
        return value.strip().lower().replace("_", "-").replace(" ", "-")
    return value


class WireModel(BaseModel):
    """Snake_case in Python, camelCase on the wire."""
    model_config = ConfigDict(populate_by_name=True)

    def to_wire(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True, mode="json")


# ── Symptoms ─────────────────────────────────
class ParsedSymptom(WireModel):
    model_config = ConfigDict(populate_by_name=True, frozen=True)

    id: str
    text: str
    body_system: BodySystem = Field(alias="bodySystem")
    severity: Severity
    temporal_marker: Optional[str] = Field(default=None, alias="temporalMarker")
    is_new_onset: bool = Field(default=False, alias="isNewOnset")

    @field_validator("body_system", "severity", mode="before")
    @classmethod
    def normalize_tags(cls, value):
        return _normalize_tag(value)


class SymptomAnalysis(WireModel):
    symptoms: List[ParsedSymptom] = Field(min_length=1)
    environmental_factors: List[str] = Field(default_factory=list, alias="environmentalFactors")
    temporal_pattern: TemporalPattern = Field(alias="temporalPattern")
    raw_input: str = Field(default="", alias="rawInput")

    @field_validator("temporal_pattern", mode="before")
    @classmethod
    def normalize_pattern(cls, value):
        return _normalize_tag(value)

    @field_validator("symptoms")
    @classmethod
    def unique_ids(cls, symptoms: List[ParsedSymptom]) -> List[ParsedSymptom]:
        ids = [s.id for s in symptoms]
        if len(set(ids)) != len(ids):
            raise ValueError("symptom ids must be unique")
        return symptoms


# ── Causal chains ────────────────────────────
class Citation(WireModel):
    title: str
    source: str
    url: Optional[str] = None


class ChainNode(WireModel):
    id: str
    type: NodeType
    title: str
    description: str
    body_system: str = Field(alias="bodySystem")
    confidence: float = Field(ge=0, le=1)
    patient_evidence: Optional[str] = Field(default=None, alias="patientEvidence")
    citations: Optional[List[Citation]] = None

    @field_validator("type", "body_system", mode="before")
    @classmethod
    def normalize_tags(cls, value):
        return _normalize_tag(value)


class ChainConnection(WireModel):
    from_node_id: str = Field(alias="fromNodeId")
    to_node_id: str = Field(alias="toNodeId")
    mechanism: str
    strength: Strength

    @field_validator("strength", mode="before")
    @classmethod
    def normalize_strength(cls, value):
        return _normalize_tag(value)


class CausalChain(WireModel):
    id: str
    label: str
    overall_confidence: float = Field(ge=0, le=1, alias="overallConfidence")
    nodes: List[ChainNode] = Field(min_length=2)
    connections: List[ChainConnection]

    @model_validator(mode="after")
    def check_path(self) -> "CausalChain":
        """The chain is a simple path: one symptom, mechanisms, one root cause."""
        ids = [node.id for node in self.nodes]
        if len(set(ids)) != len(ids):
            raise ValueError("node ids must be unique within a chain")

        ranks = [NODE_ORDER[node.type] for node in self.nodes]
        if ranks[0] != 0 or ranks.count(0) != 1:
            raise ValueError("a chain starts with exactly one symptom node")
        if ranks[-1] != 2 or ranks.count(2) != 1:
            raise ValueError("a chain ends with exactly one root-cause node")
        if any(later < earlier for earlier, later in zip(ranks, ranks[1:])):
            raise ValueError("node types must run symptom -> mechanism -> root-cause")

        position = {node_id: index for index, node_id in enumerate(ids)}
        oriented = []
        for connection in self.connections:
            if connection.from_node_id not in position or connection.to_node_id not in position:
                raise ValueError(
                    f"connection {connection.from_node_id}->{connection.to_node_id} references a node outside the chain"
                )
            step = position[connection.to_node_id] - position[connection.from_node_id]
            if step == -1:
                # Drawn root-cause upwards; store it along the path
                connection = connection.model_copy(
                    update={"from_node_id": connection.to_node_id, "to_node_id": connection.from_node_id}
                )
            elif step != 1:
                raise ValueError(
                    f"connection {connection.from_node_id}->{connection.to_node_id} does not join neighbouring nodes"
                )
            oriented.append(connection)

        linked = {connection.from_node_id for connection in oriented}
        missing = [node_id for node_id in ids[:-1] if node_id not in linked]
        if missing:
            raise ValueError(f"nodes without a connection to their successor: {', '.join(missing)}")

        self.connections = oriented
        return self


# ── Recommendations ──────────────────────────
class Suggestion(WireModel):
    text: str
    for_doctor: bool = Field(alias="forDoctor")
    urgency: Urgency

    @field_validator("urgency", mode="before")
    @classmethod
    def normalize_urgency(cls, value):
        return _normalize_tag(value)


class RecommendationResult(WireModel):
    suggestions: List[Suggestion]


def sort_by_urgency(suggestions: List[Suggestion]) -> List[Suggestion]:
    """Urgent first, then discuss, then info. Stable within a tier."""
    return sorted(suggestions, key=lambda s: URGENCY_RANK[s.urgency])


# ── Context and research ─────────────────────
class PatientProfile(WireModel):
    genotype: Literal["HbSS", "HbSC", "HbS-beta-thal-plus", "HbS-beta-thal-zero"]
    hbf_level: Optional[float] = Field(default=None, alias="hbfLevel")
    known_triggers: List[str] = Field(default_factory=list, alias="knownTriggers")
    medications: List[str] = Field(default_factory=list)
    specialists: List[str] = Field(default_factory=list)

    def to_prompt(self) -> str:
        def listed(items: List[str]) -> str:
            return ", ".join(items) if items else "None specified"

        hbf = f"{self.hbf_level}%" if self.hbf_level is not None else "Unknown"
        return (
            "PATIENT PROFILE:\n"
            f"- Genotype: {self.genotype}\n"
            f"- Fetal Hemoglobin: {hbf}\n"
            f"- Known Triggers: {listed(self.known_triggers)}\n"
            f"- Medications: {listed(self.medications)}\n"
            f"- Specialists: {listed(self.specialists)}"
        )


class SearchResult(WireModel):
    title: str = ""
    url: str = ""
    excerpt: str = ""


# ── Results ──────────────────────────────────
class CausalChainResult(WireModel):
    chains: List[CausalChain]
    summary: str
    thinking: str = ""


class TraceResult(WireModel):
    input_text: str = Field(alias="inputText")
    symptoms: Optional[SymptomAnalysis] = None
    chains: List[CausalChain]
    summary: str
    suggestions: List[Suggestion]
    thinking: str = ""


# ── Stream events ────────────────────────────
class ToolCallEvent(WireModel):
    tool: str
    name: str
    input: str
    status: Literal["calling", "done"]

    @property
    def key(self) -> Tuple[str, str]:
        return (self.tool, self.input)


class StreamEvent(BaseModel):
    """One frame on the append-only trace stream."""
    event: EventName
    data: Dict[str, Any] = Field(default_factory=dict)

    @property
    def is_terminal(self) -> bool:
        return self.event in TERMINAL_EVENTS

    def to_sse(self) -> str:
        return f"event: {self.event}\ndata: {json.dumps(self.data)}\n\n"

    @classmethod
    def status(cls, stage: str, message: str) -> "StreamEvent":
        return cls(event="status", data={"stage": stage, "message": message})

    @classmethod
    def thinking(cls, content: str) -> "StreamEvent":
        return cls(event="thinking", data={"content": content})

    @classmethod
    def tool_call(cls, call: ToolCallEvent) -> "StreamEvent":
        return cls(event="tool_call", data=call.to_wire())

    @classmethod
    def symptoms(cls, analysis: SymptomAnalysis) -> "StreamEvent":
        wire = analysis.to_wire()
        return cls(event="symptoms", data={
            "symptoms": wire["symptoms"],
            "environmentalFactors": wire["environmentalFactors"],
            "temporalPattern": wire["temporalPattern"],
        })

    @classmethod
    def chain(cls, chain: CausalChain) -> "StreamEvent":
        return cls(event="chain", data={"chain": chain.to_wire()})

    @classmethod
    def summary(cls, content: str) -> "StreamEvent":
        return cls(event="summary", data={"content": content})

    @classmethod
    def suggestions(cls, suggestions: List[Suggestion]) -> "StreamEvent":
        return cls(event="suggestions", data={"suggestions": [s.to_wire() for s in suggestions]})

    @classmethod
    def done(cls, trace_id: Optional[str] = None) -> "StreamEvent":
        return cls(event="done", data={"success": True, "traceId": trace_id})

    @classmethod
    def error(cls, message: str) -> "StreamEvent":
        return cls(event="error", data={"message": message})
