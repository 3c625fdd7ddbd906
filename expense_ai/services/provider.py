"""
Generative-language provider.

The orchestrator depends on the ``AIProvider`` protocol only. "AI disabled"
is the ``DisabledProvider`` implementation, chosen once at startup by
``build_provider``; nothing checks a feature flag at call time.
"""
from __future__ import annotations

import asyncio
import logging
from typing import Protocol, runtime_checkable

import google.generativeai as genai
from google.api_core import exceptions as google_exceptions

from expense_ai.config import Settings
from expense_ai.errors import ServiceUnavailable
from expense_ai.services.resilience import call_with_retries

logger = logging.getLogger(__name__)


@runtime_checkable
class AIProvider(Protocol):
    enabled: bool

    async def generate(self, prompt: str) -> str:
        """Return the provider's raw text answer or raise ``ServiceUnavailable``."""
        ...


class DisabledProvider:
    enabled = False

    def __init__(self, reason: str = "AI features disabled"):
        self.reason = reason

    async def generate(self, prompt: str) -> str:
        raise ServiceUnavailable("AI service is not available")


class GeminiProvider:
    enabled = True

    def __init__(
        self,
        api_key: str,
        model_name: str,
        *,
        timeout: float,
        attempts: int,
        backoff: float,
        backoff_max: float,
    ):
        genai.configure(api_key=api_key)
        self.model_name = model_name
        self._model = genai.GenerativeModel(
            model_name,
            generation_config=genai.GenerationConfig(temperature=0.2),
        )
        self.timeout = timeout
        self.attempts = attempts
        self.backoff = backoff
        self.backoff_max = backoff_max

    async def _generate_once(self, prompt: str) -> str:
        response = await self._model.generate_content_async(prompt)
        return response.text

    async def generate(self, prompt: str) -> str:
        try:
            return await call_with_retries(
                lambda: self._generate_once(prompt),
                label=f"Gemini {self.model_name}",
                attempts=self.attempts,
                timeout=self.timeout,
                backoff=self.backoff,
                backoff_max=self.backoff_max,
                retry_on=(google_exceptions.GoogleAPIError, ConnectionError),
            )
        except asyncio.TimeoutError as exc:
            logger.error("Gemini request timed out after %d attempts", self.attempts)
            raise ServiceUnavailable("AI provider timed out") from exc
        except Exception as exc:
            # blocked/empty candidates surface as ValueError from response.text
            logger.error("Gemini request failed: %s", exc, exc_info=True)
            raise ServiceUnavailable("AI provider unavailable") from exc


def build_provider(settings: Settings) -> AIProvider:
    if not settings.AI_ENABLED:
        logger.info("AI features disabled (AI_ENABLED=false)")
        return DisabledProvider("AI features disabled")

    if not settings.GEMINI_API_KEY:
        logger.warning("Gemini API key not found, AI features disabled")
        return DisabledProvider("AI provider credential missing")

    try:
        provider = GeminiProvider(
            settings.GEMINI_API_KEY,
            settings.GEMINI_MODEL,
            timeout=settings.AI_TIMEOUT_SECONDS,
            attempts=settings.AI_MAX_ATTEMPTS,
            backoff=settings.AI_BACKOFF_SECONDS,
            backoff_max=settings.AI_BACKOFF_MAX_SECONDS,
        )
    except Exception as exc:
        logger.error("Failed to initialize AI provider: %s", exc)
        return DisabledProvider("AI provider failed to initialize")

    logger.info("AI provider initialized with %s", settings.GEMINI_MODEL)
    return provider
