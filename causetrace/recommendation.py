import json
from typing import Any, List

from langchain_core.messages import HumanMessage
from langsmith import traceable

from causetrace.config import get_pro_model, logger
from causetrace.exceptions import MalformedOutput
from causetrace.prompts import recommendation_prompt
from causetrace.schemas import CausalChain, RecommendationResult, Suggestion, sort_by_urgency
from causetrace.utils import call_model, extract_json, message_parts, validate_output

MIN_SUGGESTIONS = 3
MAX_SUGGESTIONS = 6


def triage_suggestions(raw: Any, stage: str) -> List[Suggestion]:
    """
    Validate model-produced suggestions and put them in urgency order.

    The model is asked for urgent-first ordering but downstream consumers rely
    on it, so the order is always re-established here.
    """
    if not isinstance(raw, list):
        raise MalformedOutput(f"{stage} output is missing a suggestions list", stage=stage)
    result = validate_output(RecommendationResult, {"suggestions": raw}, stage=stage)
    suggestions = sort_by_urgency(result.suggestions)

    if len(suggestions) < MIN_SUGGESTIONS:
        raise MalformedOutput(
            f"{stage} output has {len(suggestions)} suggestion(s), expected at least {MIN_SUGGESTIONS}", stage=stage
        )
    if len(suggestions) > MAX_SUGGESTIONS:
        logger.info(f"Keeping the first {MAX_SUGGESTIONS} of {len(suggestions)} suggestions")
        kept, dropped = suggestions[:MAX_SUGGESTIONS], suggestions[MAX_SUGGESTIONS:]
        if not any(s.for_doctor for s in kept):
            # The last slot goes to the best-ranked doctor item; urgency order still holds
            doctor_items = [s for s in dropped if s.for_doctor]
            if doctor_items:
                kept[-1] = doctor_items[0]
        suggestions = kept
    if not any(s.for_doctor for s in suggestions):
        raise MalformedOutput(f"{stage} output has no suggestion for the doctor", stage=stage)
    return suggestions


@traceable(run_type="llm", name="generate_recommendations")
def generate_recommendations(chains: List[CausalChain], summary: str, model=None) -> List[Suggestion]:
    """
    Turn causal chains into triaged suggestions for the patient and their doctor.

    Args:
        chains: Validated chains from the chain builder
        summary: Plain-language summary from the chain builder
        model: Chat model to use (defaults to the pro model)

    Returns:
        3-6 suggestions, urgent first, at least one for the doctor
    """
    model = model or get_pro_model()
    logger.info("Generating recommendations...")
    chains_json = json.dumps([chain.to_wire() for chain in chains], indent=2)
    response = call_model(
        model,
        [
            recommendation_prompt,
            HumanMessage(
                content=f"Based on these causal chains and summary, generate recommendations:\n\n"
                        f"SUMMARY: {summary}\n\nCHAINS:\n{chains_json}"
            ),
        ],
        stage="recommendations",
    )
    text, _ = message_parts(response)
    parsed = extract_json(text, stage="recommendations")
    suggestions = triage_suggestions(parsed.get("suggestions"), stage="recommendations")
    logger.info(f"Generated {len(suggestions)} suggestions")
    return suggestions
