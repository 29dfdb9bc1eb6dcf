from __future__ import annotations

import asyncio
import json
import logging
from typing import Any, Callable, Dict, Optional, Protocol, Sequence, Type, TypeVar

import openai
from openai import AsyncOpenAI
from pydantic import BaseModel, ValidationError

logger = logging.getLogger("docreview")

T = TypeVar("T", bound=BaseModel)

# Called with the raw model text when it does not parse; returns a fixed-up text.
RepairHook = Callable[[str], str]

CONTEXT_LENGTH_MARKERS = (
    "maximum context length",
    "context_length_exceeded",
    "tokens_limit_reached",
    "many images",
)


class LLMError(RuntimeError):
    """Base class for every failure of the text-generation service."""


class LLMCallError(LLMError):
    pass


class ContextLengthExceededError(LLMError):
    pass


class LLMOutputError(LLMError):
    """
    Raised when the model returns text that cannot be parsed into the requested schema.

    Carries the raw (and optionally repaired) model output so the caller can log it.
    """

    def __init__(self, message: str, *, raw_text: str, repaired_text: str | None = None):
        super().__init__(message)
        self.raw_text = raw_text
        self.repaired_text = repaired_text


class TextGenerator(Protocol):
    async def generate(
        self,
        messages: Sequence[Dict[str, Any]],
        schema: Type[T],
        *,
        repair: Optional[RepairHook] = None,
    ) -> T: ...


def create_llm_client(api_key: str, base_url: str | None = None) -> AsyncOpenAI:
    """
    Create an async OpenAI-compatible API client.
    """
    if not api_key:
        raise ValueError("OPENAI_API_KEY is not set")

    return AsyncOpenAI(api_key=api_key, base_url=base_url)


def _try_parse(text: str, schema: Type[T]) -> T | None:
    try:
        return schema.model_validate(json.loads(text))
    except (json.JSONDecodeError, ValidationError, TypeError):
        return None


def parse_structured_output(
    text: str,
    schema: Type[T],
    *,
    repair: Optional[RepairHook] = None,
    truncated: bool = False,
) -> T:
    """
    Parse raw model text into ``schema``.

    The repair hook only runs when the text does not parse as-is. Errors raised
    by the hook propagate to the caller unchanged.
    """
    parsed = _try_parse(text, schema)
    if parsed is not None:
        return parsed

    reason = "model output was cut off" if truncated else "model output did not match the expected format"
    if repair is None:
        raise LLMOutputError(reason, raw_text=text)

    repaired = repair(text)
    parsed = _try_parse(repaired, schema)
    if parsed is None:
        raise LLMOutputError(f"{reason} and could not be repaired", raw_text=text, repaired_text=repaired)
    return parsed


def is_context_length_error(exc: BaseException) -> bool:
    body = getattr(exc, "body", None)
    text = f"{exc} {json.dumps(body, default=str) if body is not None else ''}".lower()
    return any(marker in text for marker in CONTEXT_LENGTH_MARKERS)


def _schema_instructions(schema: Type[BaseModel]) -> str:
    return (
        "Respond with a single JSON object only, no prose and no code fences. "
        "It must validate against this JSON schema:\n"
        f"{json.dumps(schema.model_json_schema(), ensure_ascii=False)}"
    )


class OpenAITextGenerator:
    """Structured JSON generation on top of the chat completions API."""

    RETRYABLE_ERRORS = (
        openai.RateLimitError,
        openai.APITimeoutError,
        openai.APIConnectionError,
        openai.InternalServerError,
    )

    def __init__(
        self,
        client: AsyncOpenAI,
        model: str,
        *,
        temperature: float = 0.2,
        max_retries: int = 4,
        base_delay: float = 1,
    ) -> None:
        self.client = client
        self.model = model
        self.temperature = temperature
        self.max_retries = max_retries
        self.base_delay = base_delay

    async def generate(
        self,
        messages: Sequence[Dict[str, Any]],
        schema: Type[T],
        *,
        repair: Optional[RepairHook] = None,
    ) -> T:
        payload = [{"role": "system", "content": _schema_instructions(schema)}, *messages]
        response = await self._create_with_retries(payload)

        choice = response.choices[0]
        text = (choice.message.content or "").strip()
        truncated = choice.finish_reason == "length"
        if truncated:
            logger.warning("Model output hit the token limit (%s chars received)", len(text))
        if choice.finish_reason == "content_filter":
            raise LLMOutputError("model output was blocked by the content filter", raw_text=text)

        return parse_structured_output(text, schema, repair=repair, truncated=truncated)

    async def _create_with_retries(self, messages: list[Dict[str, Any]]) -> Any:
        for attempt in range(1, self.max_retries + 1):
            try:
                response = await self.client.chat.completions.create(
                    model=self.model,
                    messages=messages,
                    temperature=self.temperature,
                    response_format={"type": "json_object"},
                )
                _log_usage(response)
                return response

            except openai.BadRequestError as exc:
                if is_context_length_error(exc):
                    raise ContextLengthExceededError(
                        "the request exceeded the model context length; reduce the document size"
                    ) from exc
                raise LLMCallError(f"model request was rejected: {exc}") from exc

            except self.RETRYABLE_ERRORS as exc:
                logger.error(
                    "LLM API exception on attempt %s/%s: %s",
                    attempt,
                    self.max_retries,
                    exc,
                )
                if attempt < self.max_retries:
                    delay = self.base_delay * (2 ** (attempt - 1))
                    logger.warning("Retrying after %s seconds...", delay)
                    await asyncio.sleep(delay)
                    continue
                raise LLMCallError(f"model request failed after {attempt} attempts: {exc}") from exc

            except openai.OpenAIError as exc:
                # authentication, permission and unexpected API errors are not retried
                logger.error("Non-retryable error: %s", exc)
                raise LLMCallError(f"model request failed: {exc}") from exc

        raise LLMCallError("model request failed: no attempts were made")


def _log_usage(response: Any) -> None:
    """
    Log token usage of one completion call.
    """
    usage = getattr(response, "usage", None)
    if not usage:
        return

    logger.info(
        "LLM usage: prompt_tokens=%s, completion_tokens=%s, total_tokens=%s",
        usage.prompt_tokens or 0,
        usage.completion_tokens or 0,
        usage.total_tokens or 0,
    )


__all__ = [
    "ContextLengthExceededError",
    "LLMCallError",
    "LLMError",
    "LLMOutputError",
    "OpenAITextGenerator",
    "RepairHook",
    "TextGenerator",
    "create_llm_client",
    "is_context_length_error",
    "parse_structured_output",
]
