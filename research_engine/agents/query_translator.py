from __future__ import annotations

from loguru import logger

from research_engine.llm_client import TextCompletionService
from research_engine.services.llm_output import strip_code_fences
from research_engine.services.prompt_store import render_prompt

# Turkish letters plus common Latin diacritics. Text without any of these is
# assumed to be English already.
TRANSLATION_TRIGGER_CHARS = frozenset(
    "çğıöşüÇĞİÖŞÜ"
    "áàâäãåéèêëíìîïóòôõúùûñÁÀÂÄÃÅÉÈÊËÍÌÎÏÓÒÔÕÚÙÛÑßæøÆØ"
)


def needs_translation(text: str) -> bool:
    return any(char in TRANSLATION_TRIGGER_CHARS for char in text)


def _first_line(raw_text: str) -> str:
    for line in strip_code_fences(raw_text).splitlines():
        line = line.strip().strip('"').strip("'").strip()
        if line:
            return line
    return ""


class QueryTranslator:
    name = "query_translator"

    def __init__(self, completion: TextCompletionService):
        self.completion = completion

    async def translate(self, text: str) -> str:
        """Return an English rendering of ``text``, or ``text`` itself."""
        if not text.strip() or not needs_translation(text):
            return text
        try:
            raw_text = await self.completion.generate(
                render_prompt("query_translator.system_prompt"),
                render_prompt("query_translator.user_prompt", query=text),
                temperature=0.1,
                max_output_tokens=128,
                caller=self.name,
            )
        except Exception as exc:
            logger.warning(f"Translation failed, keeping original query: {exc}")
            return text

        translated = _first_line(raw_text)
        if not translated:
            logger.warning("Translation returned empty output, keeping original query")
            return text
        return translated
