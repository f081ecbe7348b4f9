"""Optional translation of user queries to English before tool selection."""

from __future__ import annotations

import logging
import re
from typing import Protocol

from mcp_gateway.agent.llm import GenerationError, TextGenerator

logger = logging.getLogger(__name__)

TRANSLATION_PROMPT = (
    "Translate the user's message to English. Keep table names, identifiers, "
    "code and quoted text unchanged. Reply with ONLY the translation."
)

COMMON_ENGLISH_WORDS = {
    "a", "all", "an", "and", "are", "by", "can", "data", "do", "for", "from",
    "get", "give", "how", "i", "in", "is", "it", "list", "many", "me", "my",
    "of", "on", "please", "show", "tables", "the", "to", "what", "which",
    "with", "you",
}


class Translator(Protocol):
    async def translate(self, text: str) -> str: ...


def looks_english(text: str) -> bool:
    """Rough guess: ASCII only, with at least a third common English words."""
    if any(ord(ch) > 127 for ch in text):
        return False
    words = re.findall(r"[a-z']+", text.lower())
    if not words:
        return True
    hits = sum(1 for word in words if word in COMMON_ENGLISH_WORDS)
    return hits * 3 >= len(words)


class LlmTranslator:
    def __init__(self, generator: TextGenerator):
        self.generator = generator

    async def translate(self, text: str) -> str:
        if not text.strip() or looks_english(text):
            return text
        try:
            translated = (await self.generator.generate(text, system=TRANSLATION_PROMPT)).strip()
        except GenerationError as e:
            logger.warning(f"Translation failed, using original text: {e}")
            return text
        return translated or text
