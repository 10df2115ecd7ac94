from __future__ import annotations

import json
import logging
import time
from typing import Any, Dict, List, Optional

import openai
from fastapi import status
from openai import OpenAI

from mentorhub.core.config import settings
from mentorhub.core.errors import AppError, ConfigurationError

logger = logging.getLogger(__name__)

# Tried in order; the first model the key can use wins
MODEL_PRIORITY = [
    "gpt-4o",
    "gpt-4-turbo",
    "gpt-4",
    "gpt-4o-mini",
    "gpt-3.5-turbo",
]

OPENAI_NOT_CONFIGURED_MESSAGE = (
    "OpenAI API is not configured. Please set OPENAI_API_KEY in your environment variables."
)


class ModelCache:
    """Process-wide record of the detected model.

    No lock: concurrent detections can both write, last writer wins. A stale
    or lost entry only costs one more check.
    """

    def __init__(self, ttl_seconds: int) -> None:
        self.ttl_seconds = ttl_seconds
        self.model: Optional[str] = None
        self.checked_at: float = 0.0

    def get(self) -> Optional[str]:
        if self.model is None:
            return None
        if time.time() - self.checked_at > self.ttl_seconds:
            return None
        return self.model

    def set(self, model: str) -> None:
        self.model = model
        self.checked_at = time.time()

    def clear(self) -> None:
        self.model = None
        self.checked_at = 0.0


def _is_model_not_found(exc: Exception) -> bool:
    return isinstance(exc, openai.NotFoundError) or getattr(exc, "code", None) == "model_not_found"


def map_llm_error(exc: Exception, model: str) -> AppError:
    """Map an OpenAI SDK error to the HTTP error the client sees"""
    if isinstance(exc, AppError):
        return exc

    if isinstance(exc, openai.AuthenticationError):
        return AppError(
            status.HTTP_500_INTERNAL_SERVER_ERROR,
            "OpenAI API key is invalid. Please check your OPENAI_API_KEY.",
        )

    status_code = getattr(exc, "status_code", None)
    code = getattr(exc, "code", None)
    # Exhausted quota arrives as a 429 with its own code; check it before rate limits
    if status_code == 402 or code == "insufficient_quota" or "quota" in str(exc).lower():
        return AppError(
            status.HTTP_402_PAYMENT_REQUIRED,
            "Insufficient OpenAI API credits. Please add credits to your OpenAI account.",
        )

    if _is_model_not_found(exc):
        return AppError(
            status.HTTP_500_INTERNAL_SERVER_ERROR,
            f'The model "{model}" is unavailable. Please check your OpenAI API key has access to this model.',
        )

    if isinstance(exc, openai.RateLimitError):
        return AppError(
            status.HTTP_429_TOO_MANY_REQUESTS,
            "OpenAI API rate limit exceeded. Please try again later.",
        )

    if isinstance(exc, openai.APIConnectionError):
        return AppError(
            status.HTTP_503_SERVICE_UNAVAILABLE,
            "Could not reach the OpenAI API. Please try again.",
        )

    if isinstance(exc, openai.APIStatusError):
        status_text = exc.response.reason_phrase or exc.message or "Unknown error"
        return AppError(status.HTTP_500_INTERNAL_SERVER_ERROR, f"OpenAI API error: {status_text}")

    return AppError(
        status.HTTP_500_INTERNAL_SERVER_ERROR,
        "Failed to get AI response. Please try again.",
    )


def parse_json_content(content: str) -> Dict[str, Any]:
    """Parse a JSON object from model output, tolerating markdown fences and trailing text"""
    cleaned = content.strip()
    if cleaned.startswith("```"):
        # Remove first fence line (```json or ```)
        cleaned = "\n".join(cleaned.splitlines()[1:])
    if cleaned.endswith("```"):
        cleaned = "\n".join(cleaned.splitlines()[:-1])
    cleaned = cleaned.strip()

    try:
        data = json.loads(cleaned)
    except json.JSONDecodeError:
        # Some models append commentary after the JSON; cut at the last brace
        last_brace = cleaned.rfind("}")
        if last_brace == -1:
            raise
        data = json.loads(cleaned[: last_brace + 1])

    if not isinstance(data, dict):
        raise ValueError("Expected a JSON object")
    return data


class LLMService:
    def __init__(self) -> None:
        self._client: Optional[OpenAI] = None
        self.model_cache = ModelCache(settings.MODEL_CACHE_TTL_SECONDS)

    def is_configured(self) -> bool:
        return bool(settings.OPENAI_API_KEY)

    def get_client(self) -> OpenAI:
        """Create the OpenAI client on first use"""
        if not settings.OPENAI_API_KEY:
            raise ConfigurationError(OPENAI_NOT_CONFIGURED_MESSAGE)
        if self._client is None:
            self._client = OpenAI(
                api_key=settings.OPENAI_API_KEY,
                timeout=settings.OPENAI_TIMEOUT_SECONDS,
                max_retries=1,
            )
        return self._client

    def detect_model(self) -> str:
        """
        Try MODEL_PRIORITY with one-token completions.

        "Model not found" moves on to the next candidate; any other error
        stops detection. Either way the result lands in the cache.
        """
        client = self.get_client()
        logger.info("Detecting available OpenAI models...")
        for model in MODEL_PRIORITY:
            try:
                client.chat.completions.create(
                    model=model,
                    messages=[{"role": "user", "content": "test"}],
                    max_tokens=1,
                )
            except openai.OpenAIError as exc:
                if _is_model_not_found(exc):
                    logger.info("Model %s is not available, trying next", model)
                    continue
                logger.error("Model detection aborted: %s", exc)
                break
            logger.info("Detected available model: %s", model)
            self.model_cache.set(model)
            return model

        logger.warning("No model detected, falling back to %s", settings.FALLBACK_MODEL)
        self.model_cache.set(settings.FALLBACK_MODEL)
        return settings.FALLBACK_MODEL

    def get_model(self) -> str:
        if settings.OPENAI_MODEL:
            return settings.OPENAI_MODEL
        cached = self.model_cache.get()
        if cached:
            return cached
        if not self.is_configured():
            return settings.DEFAULT_MODEL
        return self.detect_model()

    def model_info(self) -> Dict[str, Any]:
        return {
            "model": self.get_model(),
            "fixed": bool(settings.OPENAI_MODEL),
            "lastChecked": self.model_cache.checked_at or None,
        }

    def complete(
        self,
        messages: List[Dict[str, str]],
        temperature: float = 0.7,
        max_tokens: int = 1000,
        json_mode: bool = False,
    ) -> str:
        """Send a chat completion and return the generated text"""
        client = self.get_client()
        model = self.get_model()
        kwargs: Dict[str, Any] = {
            "model": model,
            "messages": messages,
            "temperature": temperature,
            "max_tokens": max_tokens,
        }
        if json_mode:
            kwargs["response_format"] = {"type": "json_object"}

        try:
            completion = client.chat.completions.create(**kwargs)
        except openai.OpenAIError as exc:
            logger.error("OpenAI request failed (model=%s): %s", model, exc)
            raise map_llm_error(exc, model)

        return completion.choices[0].message.content or ""

    def complete_json(self, messages: List[Dict[str, str]], **kwargs: Any) -> Dict[str, Any]:
        content = self.complete(messages, json_mode=True, **kwargs)
        try:
            return parse_json_content(content)
        except ValueError:
            # json.JSONDecodeError is a ValueError too
            logger.error("Failed to parse AI response: %s", content[:200])
            raise AppError(status.HTTP_500_INTERNAL_SERVER_ERROR, "Failed to parse AI response")


llm_service = LLMService()
