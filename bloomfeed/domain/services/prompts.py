from typing import Optional

from bloomfeed.domain.models.product import AFFILIATE, MARKETPLACE


def system_prompt() -> str:
    return "You are a ranking model for BABY AND PREGNANCY PRODUCTS. Return strict JSON only."


def user_task(*, min_items: int, max_items: int, preferred_source: Optional[str] = None) -> str:
    output_format = (
        '{"recommendations":['
        '{"product_id":"<candidate.id>","source":"<candidate.source>",'
        '"relevance_score":0-100,"reason":"brief reason","urgency":"high|medium|low"}]}'
    )

    mix = "- Mix both sources when both are present\n"
    if preferred_source == MARKETPLACE:
        mix += "- Budget is tight: favour second-hand marketplace listings\n"
    elif preferred_source == AFFILIATE:
        mix += "- Budget is comfortable: favour new retail (affiliate) products\n"

    return (
        f"Pick the {min_items}-{max_items} CANDIDATES most relevant to the CONTEXT stage right now.\n\n"
        "SCORING (relevance_score 0-100):\n"
        "+ Safe and useful for the current age or pregnancy week\n"
        "+ Prepares for upcoming milestones\n"
        "+ Fits the current season\n"
        "- Wrong age range or not needed for months\n\n"
        "URGENCY: high = needed now, medium = within 2-4 weeks, low = nice to have\n\n"
        "RULES:\n"
        "- Use ONLY provided CANDIDATES, copy product_id and source exactly\n"
        "- Order by relevance_score, highest first\n"
        "- Reason: one sentence, <= 25 words\n"
        + mix +
        "- Format: strict JSON\n\n"
        "OUTPUT FORMAT: " + output_format
    )


def repair_instruction(error: str) -> str:
    return (
        "Your previous response did not conform to the required JSON format.\n"
        f"Validation error was: {error}\n"
        "Return ONLY a JSON object with a `recommendations` array. "
        "No prose, no code fences, no comments."
    )
