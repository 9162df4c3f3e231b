"""Prompt builders: brand voice, then category or idea, then bucket directive."""
from typing import List, Optional, Tuple

from ideaqueue.specs.common.enums import Stage
from ideaqueue.specs.models.domain import Bucket, BrandConfig, Category, Idea

PHRASE_JSON_SHAPE = (
    '{ "phrase": string, "explanation": string, "graphicDescription": string, '
    '"graphicStyle": string, "apparelType": string }'
)
PRODUCT_JSON_SHAPE = (
    '{ "suggestions": [{ "apparelType": string, "colors": string[], "sizes": string[], '
    '"retailPrice": string, "reasoning": string }] }'
)
LISTING_JSON_SHAPE = '{ "options": [{ "title": string, "description": string, "tags": string[], "angle": string }] }'


def _join(parts: List[str]) -> str:
    return "\n".join(p for p in parts if p)


def phrase_prompt(
    brand: BrandConfig,
    category: Category,
    bucket: Bucket,
    existing_phrases: List[str],
    batch_size: int,
) -> Tuple[str, str]:
    system_prompt = _join(
        [
            "You are a creative copywriter specializing in culturally authentic apparel phrases.",
            brand.verbiagePromptContext or "",
            f"\nTone guidelines: {brand.toneGuidelines}" if brand.toneGuidelines else "",
        ]
    )
    avoid = ""
    if existing_phrases:
        avoid = "\nAvoid these existing phrases:\n" + "\n".join(f"- {p}" for p in existing_phrases)
    user_prompt = _join(
        [
            f"Generate exactly {batch_size} phrase options.\n",
            f"Category: {category.name}",
            f"Context: {category.promptContext}" if category.promptContext else "",
            f"\nCreative directive: {bucket.prompt}",
            avoid,
            f"\nGenerate phrases as JSON array. Each item: {PHRASE_JSON_SHAPE}",
        ]
    )
    return system_prompt, user_prompt


def design_prompt(idea: Idea, brand: BrandConfig, bucket: Bucket, guidance: Optional[str] = None) -> str:
    return _join(
        [
            f'Create a design for the phrase: "{idea.phrase}"',
            f"Concept: {idea.graphicDescription}" if idea.graphicDescription else "",
            f"Style: {idea.graphicStyle}" if idea.graphicStyle else "",
            f"Available styles: {brand.graphicThemes}" if brand.graphicThemes else "",
            f"\nDesign directive: {bucket.prompt}",
            f"\nAdditional guidance: {guidance}" if guidance else "",
        ]
    )


def product_prompt(idea: Idea, brand: BrandConfig, bucket: Bucket, guidance: Optional[str] = None) -> Tuple[str, str]:
    apparel = ", ".join(brand.defaultApparelTypes)
    system_prompt = _join(
        [
            "You are a product configuration specialist for print-on-demand apparel.",
            f"Available apparel types: {apparel}",
            f"Default markup: {brand.defaultMarkupPercent}%",
        ]
    )
    user_prompt = _join(
        [
            f'Configure products for phrase: "{idea.phrase}"',
            f"Suggested apparel: {idea.suggestedApparelType}" if idea.suggestedApparelType else "",
            f"\nProduct directive: {bucket.prompt}",
            f"\nAdditional guidance: {guidance}" if guidance else "",
            f"\nRespond as JSON: {PRODUCT_JSON_SHAPE}",
        ]
    )
    return system_prompt, user_prompt


def listing_prompt(idea: Idea, brand: BrandConfig, bucket: Bucket, guidance: Optional[str] = None) -> Tuple[str, str]:
    system_prompt = _join(
        [
            "You are an e-commerce copywriter specializing in culturally authentic apparel listings.",
            f"Tone: {brand.toneGuidelines}" if brand.toneGuidelines else "",
        ]
    )
    user_prompt = _join(
        [
            "Generate 3-4 listing copy variations, each with a different angle.\n",
            f'Write product listing for: "{idea.phrase}"',
            f"Product type: {idea.apparelType}" if idea.apparelType else "",
            f"\nCopy directive: {bucket.prompt}",
            f"\nAdditional guidance: {guidance}" if guidance else "",
            f"\nRespond as JSON: {LISTING_JSON_SHAPE}",
        ]
    )
    return system_prompt, user_prompt


_REFINE_SHAPES = {
    Stage.PHRASE.value: f"\nRespond as a single JSON object: {PHRASE_JSON_SHAPE}",
    Stage.PRODUCT.value: f"\nRespond as JSON: {PRODUCT_JSON_SHAPE}",
    Stage.LISTING.value: f"\nRespond as JSON: {LISTING_JSON_SHAPE}",
}


def refine_prompt(idea: Idea, brand: BrandConfig, bucket: Bucket, notes: str, history: List[str]) -> Tuple[str, str]:
    """Prompt for regenerating a text stage; ``history`` is newest first."""
    system_prompt = _join(
        [
            "You are refining a product idea based on admin feedback.",
            brand.verbiagePromptContext or "",
            f"Tone: {brand.toneGuidelines}" if brand.toneGuidelines else "",
        ]
    )
    user_prompt = _join(
        [
            f'Current phrase: "{idea.phrase}"',
            f"Current stage: {idea.stage}",
            f"\nBucket directive: {bucket.prompt}",
            f"\nNew feedback: {notes}",
            "\nPrevious guidance history (newest first):\n" + "\n".join(history) if history else "",
            "\nRegenerate with improvements based on all feedback.",
            _REFINE_SHAPES.get(Stage(idea.stage).value, ""),
        ]
    )
    return system_prompt, user_prompt
