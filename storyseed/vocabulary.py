"""Fixed vocabulary shared by the selection engine, the prompt composer and the API.

Element types, prompt categories and email formats are a contract with
the database and the clients, so they live here as string enums. The two
preference tables (element type -> flag, category -> flag) and the
category -> preferred element types table are defined once and read by
both :mod:`storyseed.services.selection` and :mod:`storyseed.services.composer`.
"""
from __future__ import annotations

import enum


class ElementType(str, enum.Enum):
    character = "character"
    location = "location"
    plot_point = "plot_point"
    item = "item"
    theme = "theme"


class PromptType(str, enum.Enum):
    character_deep_dive = "character_deep_dive"
    plot_development = "plot_development"
    worldbuilding = "worldbuilding"
    dialogue = "dialogue"
    conflict_theme = "conflict_theme"
    general = "general"


class EmailFormat(str, enum.Enum):
    minimal = "minimal"
    detailed = "detailed"
    inspirational = "inspirational"


# Prompt mode stored on prompts produced by the scheduled delivery path
DAILY_PROMPT_MODE = "daily_prompt"

FALLBACK_QUESTION = "What detail about this element would you like to explore further?"

# element type -> preference flag that includes it
ELEMENT_TYPE_FLAGS: dict[ElementType, str] = {
    ElementType.character: "include_character",
    ElementType.location: "include_worldbuilding",
    ElementType.plot_point: "include_plot",
    ElementType.item: "include_worldbuilding",
    ElementType.theme: "include_conflict",
}

# prompt category -> preference flag that enables it (order is the enumeration order)
PROMPT_TYPE_FLAGS: dict[PromptType, str] = {
    PromptType.character_deep_dive: "include_character",
    PromptType.plot_development: "include_plot",
    PromptType.worldbuilding: "include_worldbuilding",
    PromptType.dialogue: "include_dialogue",
    PromptType.conflict_theme: "include_conflict",
    PromptType.general: "include_general",
}

# prompt category -> element types it prefers to ask about, most preferred first
PROMPT_TYPE_ELEMENTS: dict[PromptType, tuple[ElementType, ...]] = {
    PromptType.character_deep_dive: (ElementType.character,),
    PromptType.plot_development: (ElementType.plot_point, ElementType.character),
    PromptType.worldbuilding: (ElementType.location, ElementType.item, ElementType.theme),
    PromptType.dialogue: (ElementType.character,),
    PromptType.conflict_theme: (ElementType.theme, ElementType.character, ElementType.plot_point),
    PromptType.general: tuple(ElementType),
}


def coerce_element_type(value) -> ElementType | None:
    try:
        return ElementType(getattr(value, "value", value))
    except ValueError:
        return None


def coerce_prompt_type(value) -> PromptType | None:
    try:
        return PromptType(getattr(value, "value", value))
    except ValueError:
        return None


def element_type_included(element_type, preferences) -> bool:
    """An element stays eligible unless its preference flag is explicitly False."""
    et = coerce_element_type(element_type)
    flag = ELEMENT_TYPE_FLAGS.get(et) if et else None
    if not flag:
        return True
    return getattr(preferences, flag, None) is not False


def enabled_prompt_types(preferences) -> list[PromptType]:
    return [pt for pt, flag in PROMPT_TYPE_FLAGS.items() if getattr(preferences, flag, None)]


def preferred_element_types(prompt_type) -> tuple[ElementType, ...]:
    pt = coerce_prompt_type(prompt_type) or PromptType.general
    return PROMPT_TYPE_ELEMENTS[pt]


def available_modes(element_types) -> list[PromptType]:
    """Categories that make sense for a set of element types. ``general`` is always offered."""
    present = {coerce_element_type(t) for t in element_types}
    present.discard(None)
    modes = [PromptType.general]
    for pt, wanted in PROMPT_TYPE_ELEMENTS.items():
        if pt is PromptType.general:
            continue
        if present.intersection(wanted):
            modes.append(pt)
    return modes
