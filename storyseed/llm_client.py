import logging
import httpx
from typing import Optional

from storyseed.errors import GenerationProviderError
from storyseed.settings.config import settings

logger = logging.getLogger(__name__)

PROMPT_TEMPERATURE = 0.8
PROMPT_MAX_TOKENS = 300


async def chat_completion(system: str, user: str, *, temperature: float = PROMPT_TEMPERATURE,
                          max_tokens: int = PROMPT_MAX_TOKENS, model: Optional[str] = None,
                          timeout: Optional[float] = None) -> str:
    """
    POST an OpenAI-compatible /chat/completions request and return the first choice's content.
    Returns "" when the provider answered but produced no text; raises GenerationProviderError otherwise.
    """
    if not settings.OPENAI_API_KEY:
        raise GenerationProviderError("OPENAI_API_KEY is not configured")

    url = f"{settings.OPENAI_BASE_URL.rstrip('/')}/chat/completions"
    payload = {
        "model": model or settings.OPENAI_MODEL,
        "messages": [
            {"role": "system", "content": system},
            {"role": "user", "content": user},
        ],
        "temperature": temperature,
        "max_tokens": max_tokens,
    }
    headers = {"Authorization": f"Bearer {settings.OPENAI_API_KEY}"}

    try:
        async with httpx.AsyncClient(timeout=timeout or settings.OPENAI_TIMEOUT) as client:
            r = await client.post(url, json=payload, headers=headers)
            r.raise_for_status()
            data = r.json()
    except (httpx.HTTPError, ValueError) as e:
        logger.warning("Chat completion request to %s failed: %s", url, e)
        raise GenerationProviderError(f"Chat completion request failed: {e}") from e

    try:
        choices = (data or {}).get("choices") or []
        content = ((choices[0] or {}).get("message") or {}).get("content") if choices else None
    except (AttributeError, TypeError) as e:
        raise GenerationProviderError(f"Malformed chat completion payload: {str(data)[:200]}") from e
    return (content or "").strip()


#------Element description consolidation------------

ENHANCE_SYSTEM_PROMPT = (
    "You are a writing assistant helping an author consolidate their scattered notes about a story element.\n\n"
    "Your ONLY task is to organize and merge the information provided - nothing more.\n\n"
    "CRITICAL RULES:\n"
    "1. ONLY use facts, details, and descriptions explicitly written by the author\n"
    "2. Do NOT add any interpretations, analysis, or embellishments\n"
    "3. Do NOT add descriptive language, adjectives, or color that wasn't in the original\n"
    "4. Do NOT speculate or expand on ideas\n"
    "5. If the author wrote \"tall\" don't change it to \"imposing\" or \"towering\"\n"
    "6. Simply organize the scattered information into a clear, factual summary\n"
    "7. Maintain the author's exact wording whenever possible\n"
    "8. If there are contradictions, list both versions\n"
    "9. Keep it concise - only include what the author already wrote\n\n"
    "Think of this as copy-pasting the author's notes into a single organized document, not as creative writing."
)

ENHANCE_RESPONSE_LIMIT = 800


def _field(item, key):
    return item.get(key) if isinstance(item, dict) else getattr(item, key, None)


def build_enhance_context(element, exchanges) -> str:
    """
    element: object with name/element_type/description/notes
    exchanges: iterable of objects/dicts with prompt_text, prompt_type, response_text
    """
    etype = getattr(element.element_type, "value", element.element_type)
    parts = [f"Story Element: {element.name}", f"Type: {etype}", ""]
    if element.description:
        parts += ["Current Description:", element.description, ""]
    if element.notes:
        parts += ["Author's Notes:", element.notes, ""]

    items = list(exchanges or [])
    if items:
        parts += ["Writing Prompts and Responses:", ""]
        for idx, item in enumerate(items, start=1):
            ptype = _field(item, "prompt_type") or "general"
            ptype = getattr(ptype, "value", ptype)
            parts.append(f"{idx}. Prompt ({ptype}): {_field(item, 'prompt_text')}")
            resp = _field(item, "response_text")
            if resp:
                if len(resp) > ENHANCE_RESPONSE_LIMIT:
                    resp = resp[:ENHANCE_RESPONSE_LIMIT] + "..."
                parts.append(f"   Response: {resp}")
            parts.append("")
    return "\n".join(parts)


async def enhance_element_description(element, exchanges) -> str:
    """Merge an element's description, notes and answered prompts into one factual description."""
    context = build_enhance_context(element, exchanges)
    user = (
        "Please consolidate ALL the information provided below into a single organized description. "
        "Use ONLY the exact facts and details written here - do not add any new adjectives, "
        "interpretations, or embellishments.\n\n"
        f"{context}\n\nConsolidated Description:"
    )
    return await chat_completion(
        ENHANCE_SYSTEM_PROMPT,
        user,
        temperature=0.3,
        max_tokens=800,
        model=settings.OPENAI_SUMMARY_MODEL,
    )
