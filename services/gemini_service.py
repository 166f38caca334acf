"""
Gemini service.
README summaries for the repository page and structured intent extraction
for natural-language repository search.
"""
import json
import logging
import re
from typing import Optional

from google import genai
from google.genai import types
from pydantic import ValidationError

from config import Settings
from models.pydantic_models import SearchFilters, SearchIntent

logger = logging.getLogger(__name__)

README_PROMPT_CHARS = 5000
NO_KEY_MESSAGE = "AI summarization unavailable (Key missing)."
API_DISABLED_MESSAGE = "Error: Google AI API not enabled. Check server logs for the link."
FAILED_MESSAGE = "Summary unavailable due to an AI error."

SUMMARY_PROMPT = (
    "Summarize the following GitHub repository README into a single, engaging sentence "
    "for a non-technical user. Focus on what it does and why it's useful. "
    "Keep it under 30 words.\n\nREADME:\n{readme}"
)

INTENT_PROMPT = """
Analyze this user search query for a GitHub repository search engine.
Extract the core semantic meaning for vector search and specific metadata filters.

Rules:
- semantic_query: the core concept to look up (e.g. "chat app boilerplate")
- filters.language: programming language only if explicitly mentioned
- filters.min_stars: a minimum star count only if the user implies "popular" or "best" (e.g. 500)
- filters.is_fork: false if the user implies "from scratch", "base", "starter" or "boilerplate"

User Query: "{query}"
"""


def _strip_fences(raw_text: str) -> str:
    """Remove markdown code fences around a JSON payload."""
    text = raw_text.strip()
    if text.startswith("```"):
        return text.split("```json")[-1].split("```")[0].strip()
    if text.startswith("{"):
        return text
    match = re.search(r"\{.*\}", text, re.DOTALL)
    return match.group(0) if match else text


class GeminiService:
    """Google GenAI client wrapper; every call degrades to a fixed answer without a key."""

    def __init__(self, settings: Settings, client: Optional[genai.Client] = None):
        self.model_name = settings.gemini_model
        self.fallback_model = settings.gemini_fallback_model
        self.client = client
        if self.client is None and settings.gemini_api_key:
            self.client = genai.Client(api_key=settings.gemini_api_key)

    @property
    def enabled(self) -> bool:
        return self.client is not None

    async def _generate(self, model: str, prompt: str, config: Optional[types.GenerateContentConfig] = None) -> str:
        response = await self.client.aio.models.generate_content(
            model=model,
            contents=prompt,
            config=config,
        )
        return (response.text or "").strip()

    # ==========================================================================
    # SUMMARIES
    # ==========================================================================

    async def generate_summary(self, readme: str) -> str:
        """One sentence for a non-technical reader; primary model first, then the fallback."""
        if not self.enabled:
            return NO_KEY_MESSAGE

        prompt = SUMMARY_PROMPT.format(readme=readme[:README_PROMPT_CHARS])
        try:
            return await self._generate(self.model_name, prompt)
        except Exception as e:
            logger.warning("%s failed (%s); retrying with %s", self.model_name, e, self.fallback_model)

        try:
            return await self._generate(self.fallback_model, prompt)
        except Exception as e:
            logger.error("All Gemini models failed: %s", e)
            message = str(e)
            if "404" in message or "not found" in message.lower():
                logger.error(
                    "Enable the Generative Language API: "
                    "https://console.cloud.google.com/apis/library/generativelanguage.googleapis.com"
                )
                return API_DISABLED_MESSAGE
            return FAILED_MESSAGE

    # ==========================================================================
    # SEARCH INTENT
    # ==========================================================================

    async def parse_search_intent(self, query: str) -> SearchIntent:
        """Structured intent for `query`; the raw query with no filters when Gemini can't help."""
        fallback = SearchIntent(semantic_query=query, filters=SearchFilters())
        if not self.enabled:
            return fallback

        config = types.GenerateContentConfig(
            response_mime_type="application/json",
            response_schema=SearchIntent,
        )
        try:
            raw_text = await self._generate(self.model_name, INTENT_PROMPT.format(query=query), config)
            intent = SearchIntent(**json.loads(_strip_fences(raw_text)))
        except (json.JSONDecodeError, ValidationError) as e:
            logger.warning("Gemini returned an unusable intent for %r: %s", query, e)
            return fallback
        except Exception as e:
            logger.error("Gemini intent extraction failed: %s", e)
            return fallback

        logger.info("Search intent: %s", intent.model_dump())
        return intent
