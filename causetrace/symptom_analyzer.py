from langchain_core.messages import HumanMessage
from langsmith import traceable

from causetrace.config import get_fast_model, logger
from causetrace.prompts import symptom_analyzer_prompt
from causetrace.schemas import SymptomAnalysis
from causetrace.utils import call_model, extract_json, message_parts, validate_output


@traceable(run_type="llm", name="analyze_symptoms")
def analyze_symptoms(input_text: str, model=None) -> SymptomAnalysis:
    """
    Parse a free-text symptom report into structured symptoms.

    One completion call, no retries. rawInput is always the caller's text,
    whatever the model echoes back.

    Args:
        input_text: The patient's symptom report
        model: Chat model to use (defaults to the fast model)

    Returns:
        The validated SymptomAnalysis
    """
    if not input_text or not input_text.strip():
        raise ValueError("input_text must not be empty")
    model = model or get_fast_model()

    logger.info("Parsing symptoms...")
    response = call_model(
        model,
        [symptom_analyzer_prompt, HumanMessage(content=f'Parse the following patient input:\n\n"{input_text}"')],
        stage="symptoms",
    )
    text, _ = message_parts(response)
    parsed = extract_json(text, stage="symptoms")
    parsed["rawInput"] = input_text

    analysis = validate_output(SymptomAnalysis, parsed, stage="symptoms")
    logger.info(f"Parsed {len(analysis.symptoms)} symptoms ({analysis.temporal_pattern})")
    return analysis
