"""LLM gateway for any OpenAI-compatible endpoint.

Three call shapes are supported:

``chat_complete``
    One request, one text reply.

``stream_chat``
    Async iterator over incremental text deltas.  Closing the iterator, or
    cancelling the task consuming it, closes the SDK stream and with it the
    HTTP response.

``generate_image``
    Calls the images endpoint and returns decoded PNG bytes.

Every SDK failure is raised as :class:`~inquiry.errors.GatewayError`.
Nothing here retries.
"""

from __future__ import annotations

import base64
import logging
from typing import Any, AsyncIterator, Optional

import openai
from openai import AsyncOpenAI

from inquiry.config import settings
from inquiry.errors import GatewayError

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Internal helpers
# ---------------------------------------------------------------------------

def _client() -> AsyncOpenAI:
    if not settings.llm_api_key:
        raise GatewayError(
            "OPENAI_API_KEY environment variable is not set. "
            "Set it in your environment or .env file."
        )
    return AsyncOpenAI(
        api_key=settings.llm_api_key,
        base_url=settings.llm_base_url,
        timeout=settings.request_timeout,
        max_retries=0,
    )


def _messages(prompt: str, system: Optional[str]) -> list[dict[str, str]]:
    messages: list[dict[str, str]] = []
    if system:
        messages.append({"role": "system", "content": system})
    messages.append({"role": "user", "content": prompt})
    return messages


def _wrap(exc: openai.APIError, what: str) -> GatewayError:
    """Translate an SDK error, preferring the API's own ``error.message``."""
    if isinstance(exc, openai.APIStatusError):
        body = exc.body
        detail = body.get("message") if isinstance(body, dict) else None
        return GatewayError(
            detail or f"API request failed with status {exc.status_code}",
            status_code=exc.status_code,
        )
    return GatewayError(f"{what} failed: {exc}")


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------

async def chat_complete(
    prompt: str,
    model: Optional[str] = None,
    temperature: float = 0.7,
    system: Optional[str] = None,
    max_tokens: Optional[int] = None,
) -> str:
    """Send *prompt* as a single user message and return the reply text.

    Raises:
        GatewayError: On a missing API key, transport error, non-2xx status,
            or a response without a message.
    """
    model = model or settings.generation_model
    extra: dict[str, Any] = {}
    if max_tokens is not None:
        extra["max_tokens"] = max_tokens
    logger.debug("chat_complete model=%s prompt_length=%d", model, len(prompt))

    try:
        async with _client() as client:
            response = await client.chat.completions.create(
                model=model,
                messages=_messages(prompt, system),
                temperature=temperature,
                **extra,
            )
    except openai.APIError as exc:
        raise _wrap(exc, "LLM request") from exc

    try:
        return response.choices[0].message.content or ""
    except (IndexError, AttributeError, TypeError) as exc:
        raise GatewayError("LLM response did not contain a message") from exc


async def stream_chat(
    prompt: str,
    model: Optional[str] = None,
    temperature: float = 0.7,
    system: Optional[str] = None,
) -> AsyncIterator[str]:
    """Yield text deltas for *prompt* in arrival order until the stream ends.

    Raises:
        GatewayError: On a missing API key, transport error, non-2xx status,
            or an undecodable frame.
    """
    model = model or settings.explanation_model
    logger.debug("stream_chat model=%s prompt_length=%d", model, len(prompt))

    try:
        async with _client() as client:
            stream = await client.chat.completions.create(
                model=model,
                messages=_messages(prompt, system),
                temperature=temperature,
                stream=True,
            )
            try:
                async for chunk in stream:
                    if not chunk.choices:
                        continue
                    delta = chunk.choices[0].delta.content
                    if delta:
                        yield delta
            finally:
                await stream.close()
    except openai.APIError as exc:
        raise _wrap(exc, "LLM stream") from exc
    except ValueError as exc:
        raise GatewayError(f"Malformed stream frame: {exc}") from exc


async def generate_image(
    prompt: str,
    model: Optional[str] = None,
    size: str = "1024x1024",
) -> bytes:
    """Generate one image for *prompt* and return its PNG bytes.

    Raises:
        GatewayError: On a transport error, non-2xx status, or a response
            without ``b64_json`` data.
    """
    logger.debug("generate_image prompt_length=%d", len(prompt))

    try:
        async with _client() as client:
            response = await client.images.generate(
                model=model or settings.image_model,
                prompt=prompt,
                n=1,
                size=size,
                moderation="low",
            )
    except openai.APIError as exc:
        raise _wrap(exc, "Image request") from exc

    try:
        return base64.b64decode(response.data[0].b64_json)
    except (IndexError, AttributeError, TypeError, ValueError) as exc:
        raise GatewayError("Invalid response from image API") from exc
