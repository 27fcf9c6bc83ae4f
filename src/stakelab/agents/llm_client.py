"""OpenAI Chat Completions helper acting as the probability oracle."""

from __future__ import annotations

import json
import logging
import re
from collections.abc import Sequence
from typing import Any, Dict, List

import openai
from openai import OpenAI
from pydantic import ValidationError
from tenacity import (
    RetryCallState,
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_fixed,
)

from stakelab.agents.schemas import OracleResponse
from stakelab.config import get_openai_api_key, get_settings

logger = logging.getLogger(__name__)

_openai: OpenAI | None = None
_JSON_OBJECT_RE = re.compile(r"\{[\s\S]*\}")

TRANSIENT_ERRORS = (
    openai.APIConnectionError,
    openai.APITimeoutError,
    openai.RateLimitError,
    openai.InternalServerError,
)


class OracleError(RuntimeError):
    """The oracle could not be reached or returned an unusable reply."""


def _retry_log(retry_state: RetryCallState) -> None:
    exception = retry_state.outcome.exception() if retry_state.outcome else None
    logger.warning("Oracle retry attempt %s due to %s", retry_state.attempt_number, exception)


def _client() -> OpenAI:
    global _openai
    if _openai is None:
        _openai = OpenAI(api_key=get_openai_api_key())
    return _openai


@retry(
    retry=retry_if_exception_type(TRANSIENT_ERRORS),
    stop=stop_after_attempt(3),
    wait=wait_fixed(1),
    after=_retry_log,
    reraise=True,
)
def chat_completion(messages: List[Dict[str, Any]], temperature: float | None = None) -> str:
    settings = get_settings()
    response = _client().chat.completions.create(
        model=settings.openai_model,
        temperature=settings.oracle_temperature if temperature is None else temperature,
        messages=messages,
    )
    return response.choices[0].message.content or ""


def extract_json(text: str) -> dict[str, Any]:
    """Pull the JSON object out of a model reply that may carry extra prose."""

    match = _JSON_OBJECT_RE.search(text)
    payload = json.loads(match.group(0) if match else text)
    if not isinstance(payload, dict):
        raise ValueError("Expected a JSON object")
    return payload


def _user_content(prompt: str, images: Sequence[str]) -> str | list[dict[str, Any]]:
    if not images:
        return prompt
    parts: list[dict[str, Any]] = [{"type": "text", "text": prompt}]
    parts.extend({"type": "image_url", "image_url": {"url": image}} for image in images)
    return parts


def request_estimates(
    system_prompt: str,
    user_prompt: str,
    images: Sequence[str] = (),
) -> OracleResponse:
    """Ask the model for per-option probabilities and validate the reply."""

    messages = [
        {"role": "system", "content": system_prompt},
        {"role": "user", "content": _user_content(user_prompt, images)},
    ]
    try:
        text = chat_completion(messages)
    except (openai.OpenAIError, RuntimeError) as exc:
        logger.error("Oracle call failed: %s", exc)
        raise OracleError(f"Oracle call failed: {exc}") from exc

    try:
        return OracleResponse.model_validate(extract_json(text))
    except (ValueError, ValidationError) as exc:
        logger.error("Unusable oracle reply: %s | raw=%.500s", exc, text)
        raise OracleError("Oracle returned an unusable reply") from exc
