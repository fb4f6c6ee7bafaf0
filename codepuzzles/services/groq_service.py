"""
Groq chat-completions client (OpenAI-compatible endpoint).

Callers pass the model and credential per call so batch tooling can rotate
through a key/model pool. HTTP 429 is raised as ``LLMRateLimitError`` without
retrying in place; 5xx responses and transport failures are retried with
exponential backoff and then surface as ``UpstreamUnavailableError``.
"""

import logging
import time

import httpx
from tenacity import (
    after_log,
    before_sleep_log,
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from codepuzzles.config import settings
from codepuzzles.services.rate_limiter import credential_bucket, get_rate_limiter
from codepuzzles.utils.exceptions import LLMRateLimitError, UpstreamUnavailableError

logger = logging.getLogger(__name__)

# Groq API endpoint (OpenAI-compatible)
GROQ_API_URL = "https://api.groq.com/openai/v1/chat/completions"

# Lazy singleton instance
_groq_service_instance = None


def get_groq_service() -> "GroqService":
    """
    Get or create singleton GroqService instance (lazy initialization).

    Returns:
        GroqService: Singleton instance
    """
    global _groq_service_instance

    if _groq_service_instance is None:
        logger.info("🤖 Initializing GroqService (first use)...")
        logger.info(f"   Generation model: {settings.groq_generation_model}")
        _groq_service_instance = GroqService()
        logger.info("✅ GroqService ready (will reuse for future requests)")

    return _groq_service_instance


class GroqService:
    def __init__(self, rate_limiter=None):
        self.api_url = GROQ_API_URL
        self.default_model = settings.groq_generation_model
        self.timeout = settings.groq_timeout
        self.rate_limiter = rate_limiter or get_rate_limiter()

        logger.debug(f"   API URL: {self.api_url}")
        logger.debug(f"   Timeout: {self.timeout}s")

    async def complete(
        self,
        system_prompt: str,
        user_prompt: str,
        model: str | None = None,
        api_key: str | None = None,
        json_mode: bool = False,
        temperature: float | None = None,
    ) -> str:
        """
        Run one chat completion and return the assistant text.

        Args:
            system_prompt: System instructions
            user_prompt: User message
            model: Model identifier (defaults to the generation model)
            api_key: Credential to use (defaults to GROQ_API_KEY)
            json_mode: Request ``response_format={"type": "json_object"}``
            temperature: Sampling temperature (model default when None)

        Returns:
            Assistant message content ("" when the model returned none)

        Raises:
            LLMRateLimitError: Groq answered 429 for this credential/model
            UpstreamUnavailableError: Network, 4xx or 5xx failure after retries
        """
        model = model or self.default_model
        api_key = api_key or settings.groq_api_key
        if not api_key:
            raise ValueError("GROQ_API_KEY is not configured. Please set it in your .env file.")

        await self.rate_limiter.acquire(credential_bucket(api_key))

        messages = [
            {"role": "system", "content": system_prompt},
            {"role": "user", "content": user_prompt},
        ]
        payload: dict = {"model": model, "messages": messages}
        if temperature is not None:
            payload["temperature"] = temperature
        if json_mode:
            payload["response_format"] = {"type": "json_object"}

        try:
            return await self._complete_with_retry(payload, api_key)
        except httpx.HTTPStatusError as e:
            error_msg = f"Groq API HTTP error: {e.response.status_code}"
            logger.error(f"❌ {error_msg}")
            raise UpstreamUnavailableError("Groq", error_msg) from e
        except httpx.TimeoutException as e:
            error_msg = f"Groq API request timed out after {self.timeout}s"
            logger.error(f"❌ {error_msg}")
            raise UpstreamUnavailableError("Groq", error_msg) from e
        except httpx.TransportError as e:
            error_msg = f"Groq API request failed: {str(e)}"
            logger.error(f"❌ {error_msg}")
            raise UpstreamUnavailableError("Groq", error_msg) from e

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=2, min=2, max=60),
        retry=retry_if_exception_type((httpx.HTTPStatusError, httpx.TransportError)),
        before_sleep=before_sleep_log(logger, logging.WARNING),
        after=after_log(logger, logging.INFO),
        reraise=True,
    )
    async def _complete_with_retry(self, payload: dict, api_key: str) -> str:
        start_time = time.time()
        model = payload["model"]
        logger.info(f"🤖 Calling Groq (model: {model})")

        headers = {
            "Authorization": f"Bearer {api_key}",
            "Content-Type": "application/json",
        }

        async with httpx.AsyncClient(timeout=self.timeout) as client:
            response = await client.post(self.api_url, json=payload, headers=headers)

            if response.status_code == 429:
                logger.warning(f"⚠️  Groq rate limit hit (model: {model})")
                raise LLMRateLimitError(status_code=429, model=model)

            if 400 <= response.status_code < 500:
                detail = response.text[:200]
                logger.error(f"❌ Groq API HTTP error: {response.status_code} - {detail}")
                raise UpstreamUnavailableError(
                    "Groq", f"HTTP {response.status_code} for model {model}"
                )

            # 5xx raises HTTPStatusError and is retried
            response.raise_for_status()

            result = response.json()
            choices = result.get("choices") or []
            if not choices:
                logger.warning("⚠️  No choices returned from Groq API")
                return ""

            content = choices[0].get("message", {}).get("content") or ""

            if "usage" in result:
                usage = result["usage"]
                logger.debug(
                    f"   Token usage: prompt={usage.get('prompt_tokens', 0)}, "
                    f"completion={usage.get('completion_tokens', 0)}, "
                    f"total={usage.get('total_tokens', 0)}"
                )

            duration = time.time() - start_time
            logger.info(f"✅ Groq response ({len(content)} chars) in {duration:.3f}s")
            return content
