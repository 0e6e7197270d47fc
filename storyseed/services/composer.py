# storyseed/services/composer.py
"""Build the instruction for one writing-prompt question and normalise the model's answer."""
from __future__ import annotations

import random
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Optional, Sequence

from storyseed.llm_client import PROMPT_MAX_TOKENS, PROMPT_TEMPERATURE, chat_completion
from storyseed.vocabulary import (
    FALLBACK_QUESTION, PromptType, coerce_element_type, coerce_prompt_type, preferred_element_types,
)

HISTORY_RESPONSE_LIMIT = 400
HISTORY_PER_ELEMENT = 3

Generate = Callable[..., Awaitable[str]]


@dataclass
class BookContext:
    title: str
    description: Optional[str] = None


@dataclass
class FocusElement:
    """What the composer sees of a story element."""
    id: Optional[int]
    element_type: str
    name: str
    description: Optional[str] = None
    notes: Optional[str] = None

    @classmethod
    def from_model(cls, element, with_context: bool = True) -> "FocusElement":
        return cls(
            id=getattr(element, "id", None),
            element_type=str(getattr(element.element_type, "value", element.element_type)),
            name=element.name,
            description=element.description if with_context else None,
            notes=element.notes if with_context else None,
        )


@dataclass
class ElementHistory:
    """Earlier (prompt_text, response_text) exchanges about one element, newest first."""
    element: object
    exchanges: list = field(default_factory=list)


# ---------- focus element ----------

def resolve_focus_elements(category, focus_elements: Sequence, available_elements: Sequence = (), rng=None) -> list:
    """
    Use the pinned elements when there are any; otherwise pick one element that suits
    the category (by the category's preferred element types), else any element.
    """
    if focus_elements:
        return list(focus_elements)
    if not available_elements:
        return []
    rng = rng or random
    for etype in preferred_element_types(category):
        matching = [el for el in available_elements if coerce_element_type(el.element_type) is etype]
        if matching:
            return [rng.choice(matching)]
    return [rng.choice(list(available_elements))]


# ---------- instruction templates ----------

BASE_SYSTEM_PROMPT = """You are a creative writing assistant helping authors develop their stories through brief, focused questions. Your role is to draw out the author's ideas ONE SMALL DETAIL AT A TIME.

CRITICAL RULES:
- Ask ONE specific, bite-sized question
- Questions should be answerable in 2-4 sentences
- Focus on concrete details, not abstract concepts
- Reference story elements by name when possible
- Build on previous answers if provided
- You will be given extensive context (descriptions, notes, and previous Q&A), but you DON'T need to use all of it
- Focus on asking about something new or unexplored, or build naturally on recent answers
- DO NOT ask the author to write scenes or dialogue
- DO NOT ask philosophical or overly complex questions
- DO NOT try to worldbuild for them - draw out their existing ideas"""

CATEGORY_TEMPLATES: dict[PromptType, str] = {
    PromptType.general: """

For GENERAL mode: Ask simple, specific questions about any story element that reveal concrete details. Examples:
- "What's one physical trait that makes [Character] immediately recognizable?"
- "What's the most common sound heard in [Location]?"
- "What does [Item] smell like?"
- "What time of day does [Event] typically happen?"
Keep it simple, specific, and answerable quickly.""",
    PromptType.character_deep_dive: """

For CHARACTER mode: Ask focused questions about personality, habits, or relationships. Examples:
- "What's one thing [Character] always carries with them, and why?"
- "How does [Character] react when someone disagrees with them?"
- "What's [Character]'s go-to comfort food?"
Keep it personal but not too deep - one detail at a time.""",
    PromptType.plot_development: """

For PLOT mode: Ask about specific events, obstacles, or consequences. Examples:
- "What's the first thing that goes wrong in [Plot Point]?"
- "Who has the most to lose if [Event] fails?"
- "What does [Character] notice first when [Plot Point] begins?"
Focus on concrete moments, not entire story arcs.""",
    PromptType.worldbuilding: """

For WORLDBUILDING mode: Ask about sensory details or practical aspects. Examples:
- "What's the weather like in [Location] most of the year?"
- "What material is [Item] made from?"
- "What do locals call [Location] in everyday conversation?"
Keep it grounded in specifics, not world systems.""",
    PromptType.dialogue: """

For DIALOGUE mode: Ask for a single line or brief exchange that reveals character. Examples:
- "What's one phrase [Character] says when they're nervous?"
- "How would [Character] greet an old friend?"
- "What would [Character] say if interrupted while working?"
Just a quick line or two, not a full scene.""",
    PromptType.conflict_theme: """

For CONFLICT & THEME mode: Ask about specific values or choices. Examples:
- "What rule would [Character] break if pushed far enough?"
- "What does [Character] value more: truth or kindness?"
- "What line won't [Character] cross, even for someone they love?"
One clear choice or value, not philosophical essays.""",
}


def build_system_prompt(category) -> str:
    pt = coerce_prompt_type(category) or PromptType.general
    return BASE_SYSTEM_PROMPT + CATEGORY_TEMPLATES[pt]


def truncate_response(text: str, limit: int = HISTORY_RESPONSE_LIMIT) -> str:
    return text[:limit] + "..." if len(text) > limit else text


def _type_label(element) -> str:
    return str(getattr(element.element_type, "value", element.element_type))


def build_user_prompt(book_context: BookContext, category, elements: Sequence,
                      history: Sequence[ElementHistory] = ()) -> str:
    lines = ["STORY CONTEXT:", f"Title: {book_context.title}"]
    if book_context.description:
        lines.append(f"Description: {book_context.description}")

    lines += ["", "FOCUS ELEMENTS:"]
    for el in elements:
        lines.append(f'- {_type_label(el).upper()}: "{el.name}"')
        if getattr(el, "description", None):
            lines.append(f"  Description: {el.description}")
        if getattr(el, "notes", None):
            lines.append(f"  Notes: {el.notes}")

    answered = [h for h in (history or []) if h.exchanges]
    if answered:
        lines += [
            "",
            "PREVIOUS QUESTIONS & ANSWERS ABOUT THESE ELEMENTS:",
            "(You don't need to reference all of this - focus on what's relevant or unexplored)",
        ]
        for entry in answered:
            el = entry.element
            lines += ["", f'For {_type_label(el)} "{el.name}":']
            for idx, ex in enumerate(entry.exchanges[:HISTORY_PER_ELEMENT], start=1):
                lines.append(f"Q{idx}: {ex.prompt_text}")
                if ex.response_text:
                    lines.append(f"A{idx}: {truncate_response(ex.response_text)}")

    pt = coerce_prompt_type(category) or PromptType.general
    lines += [
        "",
        f"PROMPT MODE: {pt.value}",
        "",
        "Generate ONE specific, thought-provoking question that helps the author develop these story "
        "elements further. Reference the element by name in your question. Build on what they've "
        "already explored or ask about something new.",
    ]
    return "\n".join(lines)


# ---------- compose ----------

async def compose_prompt(
    book_context: BookContext,
    category,
    focus_elements: Sequence,
    recent_history: Sequence[ElementHistory] = (),
    *,
    available_elements: Sequence = (),
    generate: Optional[Generate] = None,
    rng=None,
) -> str:
    """
    Ask the generation provider for one question about ``focus_elements``.

    Returns the trimmed question, or FALLBACK_QUESTION when the provider answers with
    nothing. Provider failures propagate as GenerationProviderError.
    """
    elements = resolve_focus_elements(category, focus_elements, available_elements, rng)
    if not elements:
        raise ValueError("compose_prompt needs at least one story element")

    system = build_system_prompt(category)
    user = build_user_prompt(book_context, category, elements, recent_history)

    generate = generate or chat_completion
    text = await generate(system, user, temperature=PROMPT_TEMPERATURE, max_tokens=PROMPT_MAX_TOKENS)
    text = (text or "").strip()
    return text or FALLBACK_QUESTION
