from causetrace.orchestrator import TraceOrchestrator
from causetrace.quick_trace import QuickTracer
from causetrace.utils import collapse_tool_calls


def print_event(event):
    """Print one stream event the way a client would render it."""
    data = event.data
    if event.event == "status":
        print(f"\n[{data['stage']}] {data['message']}")
    elif event.event == "thinking":
        print(f"  (thinking) {data['content'][:300]}")
    elif event.event == "tool_call":
        print(f"  -> {data['name']}: {data['input']} [{data['status']}]")
    elif event.event == "symptoms":
        for symptom in data["symptoms"]:
            print(f"  - {symptom['text']} ({symptom['bodySystem']}, {symptom['severity']})")
    elif event.event == "chain":
        chain = data["chain"]
        print(f"\n  {chain['label']} ({round(chain['overallConfidence'] * 100)}%)")
        print("    " + " -> ".join(node["title"] for node in chain["nodes"]))
    elif event.event == "summary":
        print(f"\nSummary: {data['content']}")
    elif event.event == "suggestions":
        for suggestion in data["suggestions"]:
            audience = "doctor" if suggestion["forDoctor"] else "patient"
            print(f"  [{suggestion['urgency']}] {suggestion['text']} (for {audience})")
    elif event.event == "done":
        print(f"\nDone. Trace id: {data['traceId']}")
    elif event.event == "error":
        print(f"\nTrace failed: {data['message']}")


def trace_procedure(input_text, quick=False):
    """
    Run one trace and print every event as it arrives.

    Args:
        input_text: The patient's symptom report
        quick: Use the single-call quick trace instead of the deep pipeline

    Returns:
        The list of events received
    """
    pipeline = QuickTracer() if quick else TraceOrchestrator()
    events = []
    for event in pipeline.stream(input_text):
        events.append(event)
        print_event(event)

    calls = collapse_tool_calls(events)
    if calls:
        print(f"\nResearch: {len(calls)} tool call(s)")
    return events


def main():
    print(f"\nHi, I am CauseTrace. Describe how you are feeling.")
    input_text = input("Symptoms (exit with 'e'): ")
    while input_text.lower() != "e":
        quick = input("Quick trace? (y/N): ").strip().lower() == "y"
        trace_procedure(input_text, quick=quick)
        input_text = input("\nSymptoms (exit with 'e'): ")
    print("Exiting....")


if __name__ == "__main__":
    main()
