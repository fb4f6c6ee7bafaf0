"""
PydanticAI helper wrappers for structured LLM outputs.

Goal: centralize model/provider configuration so callers can request
validated structured outputs (Pydantic models) from Groq with an explicit
model and credential per call.
"""

from __future__ import annotations

from functools import lru_cache
from typing import Any, TypeVar

from pydantic_ai import Agent
from pydantic_ai.exceptions import ModelAPIError, ModelHTTPError
from pydantic_ai.models.groq import GroqModel
from pydantic_ai.providers.groq import GroqProvider

from codepuzzles.config import settings
from codepuzzles.services.rate_limiter import credential_bucket, get_rate_limiter
from codepuzzles.utils.exceptions import LLMRateLimitError, UpstreamUnavailableError

T = TypeVar("T")


@lru_cache(maxsize=32)
def _groq_model(model_name: str, api_key: str) -> GroqModel:
    provider = GroqProvider(api_key=api_key)
    return GroqModel(model_name, provider=provider)


async def run_groq_structured(
    *,
    user_prompt: str,
    system_prompt: str,
    output_type: type[T],
    model: str | None = None,
    api_key: str | None = None,
    model_settings: dict[str, Any] | None = None,
) -> T:
    """
    Run Groq and force structured output validated against `output_type`.

    Raises:
        LLMRateLimitError: Groq answered 429 for this credential/model
        UpstreamUnavailableError: Any other HTTP failure, connection error or timeout
        pydantic_ai.exceptions.UnexpectedModelBehavior: Output never validated
    """
    model_name = model or settings.groq_grading_model
    api_key = api_key or settings.groq_api_key
    if not api_key:
        raise ValueError("GROQ_API_KEY is not configured. Please set it in your .env file.")

    await get_rate_limiter().acquire(credential_bucket(api_key))

    agent = Agent(
        _groq_model(model_name, api_key),
        system_prompt=system_prompt,
        output_type=output_type,
        model_settings=model_settings or {},
    )
    try:
        result = await agent.run(user_prompt)
        return result.output
    except ModelHTTPError as exc:
        if exc.status_code == 429:
            raise LLMRateLimitError(status_code=429, model=model_name) from exc
        raise UpstreamUnavailableError("Groq", f"HTTP {exc.status_code} for model {model_name}") from exc
    except ModelAPIError as exc:
        raise UpstreamUnavailableError("Groq", f"{exc.message} (model {model_name})") from exc
