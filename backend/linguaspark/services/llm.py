"""LLM service using LiteLLM with multi-model fallback.

Provider order: Gemini Flash (fast, cheap) → GPT-5.2 → Claude Haiku.
A provider is only tried when it has an API key configured.

Truncation recovery lives here and nowhere else. When a provider reports
finish_reason == "length":
- with text: the partial text is returned, flagged truncated
- without text: the same provider is retried at half the output budget,
  until the budget drops below settings.max_tokens_floor

Every call is appended to llm_calls_{date}.jsonl for scripts/audit_llm_usage.py.
"""

import json
import logging
import os
import time
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Any

import litellm
from pydantic import BaseModel

from linguaspark.config import settings

litellm.set_verbose = False

logger = logging.getLogger(__name__)


class FailureKind(str, Enum):
    QUOTA = "QUOTA"
    NETWORK = "NETWORK"
    MAX_TOKENS_NO_CONTENT = "MAX_TOKENS_NO_CONTENT"
    MALFORMED_RESPONSE = "MALFORMED_RESPONSE"


class LLMError(Exception):
    pass


class GenerationServiceFailure(LLMError):
    """The text-generation service could not produce usable text."""

    def __init__(self, kind: FailureKind, message: str):
        super().__init__(message)
        self.kind = kind


class AllProvidersFailed(GenerationServiceFailure):
    pass


class Completion(BaseModel):
    text: str
    truncated: bool = False
    model: str
    max_output_tokens: int


MODELS = [
    {
        "name": "gemini",
        "model": "gemini/gemini-3-flash-preview",
        "key_env": "GEMINI_KEY",
        "key_setting": "gemini_key",
    },
    {
        "name": "openai",
        "model": "gpt-5.2",
        "key_env": "OPENAI_KEY",
        "key_setting": "openai_key",
    },
    {
        "name": "anthropic",
        "model": "claude-haiku-4-5",
        "key_env": "ANTHROPIC_API_KEY",
        "key_setting": "anthropic_api_key",
    },
]

QUOTA_MARKERS = ("quota", "429", "rate limit", "rate_limit", "resource_exhausted", "too many requests")
NETWORK_MARKERS = ("timeout", "timed out", "connection", "network", "unavailable", "503", "502")


def _get_api_key(model_config: dict) -> str | None:
    """Get API key from settings or environment."""
    key = getattr(settings, model_config["key_setting"], "")
    if key:
        return key
    return os.environ.get(model_config["key_env"], "") or None


def classify_exception(error: Exception) -> FailureKind:
    """Map a provider exception onto the adapter's failure kinds."""
    if isinstance(error, litellm.RateLimitError):
        return FailureKind.QUOTA
    if isinstance(error, (litellm.Timeout, litellm.APIConnectionError, litellm.ServiceUnavailableError, TimeoutError)):
        return FailureKind.NETWORK
    message = str(error).lower()
    if any(marker in message for marker in QUOTA_MARKERS):
        return FailureKind.QUOTA
    if any(marker in message for marker in NETWORK_MARKERS):
        return FailureKind.NETWORK
    # An unrecognised provider error is treated as the service being unreachable.
    return FailureKind.NETWORK


def _usage_tokens(response: Any) -> dict[str, int]:
    usage = getattr(response, "usage", None)
    tokens = {}
    for field in ("prompt_tokens", "completion_tokens"):
        value = getattr(usage, field, None)
        if isinstance(value, int):
            tokens[field] = value
    return tokens


def _log_call(
    log_dir: Path,
    model: str,
    success: bool,
    response_time: float,
    error: str | None = None,
    prompt_length: int = 0,
    task_type: str | None = None,
    max_output_tokens: int | None = None,
    truncated: bool = False,
    failure_kind: str | None = None,
    usage: dict[str, int] | None = None,
) -> None:
    """Append a log entry for the LLM call."""
    log_dir.mkdir(parents=True, exist_ok=True)
    log_file = log_dir / f"llm_calls_{datetime.now():%Y-%m-%d}.jsonl"
    entry = {
        "ts": datetime.now().isoformat(),
        "event": "llm_call",
        "model": model,
        "success": success,
        "response_time_s": round(response_time, 2),
        "error": error,
        "prompt_length": prompt_length,
        "max_output_tokens": max_output_tokens,
        "truncated": truncated,
    }
    if task_type:
        entry["task_type"] = task_type
    if failure_kind:
        entry["failure_kind"] = failure_kind
    if usage:
        entry.update(usage)
    with open(log_file, "a") as f:
        f.write(json.dumps(entry) + "\n")


def _complete_with_budget(
    model_config: dict,
    api_key: str,
    messages: list[dict[str, str]],
    max_output_tokens: int,
    temperature: float,
    timeout: int,
    json_mode: bool,
    task_type: str | None,
) -> Completion:
    """Run one provider call, halving the budget on empty truncated output."""
    prompt_length = sum(len(m["content"]) for m in messages)
    kwargs: dict[str, Any] = {
        "model": model_config["model"],
        "messages": messages,
        "temperature": temperature,
        "max_tokens": max_output_tokens,
        "timeout": timeout,
        "api_key": api_key,
    }
    if json_mode:
        kwargs["response_format"] = {"type": "json_object"}

    start = time.time()
    try:
        response = litellm.completion(**kwargs)
    except Exception as e:
        elapsed = time.time() - start
        kind = classify_exception(e)
        _log_call(
            settings.log_dir, model_config["model"], False, elapsed,
            error=str(e), prompt_length=prompt_length, task_type=task_type,
            max_output_tokens=max_output_tokens, failure_kind=kind.value,
        )
        raise GenerationServiceFailure(kind, f"{model_config['name']}: {e}") from e
    elapsed = time.time() - start

    try:
        choice = response.choices[0]
        content = choice.message.content
        finish_reason = choice.finish_reason
    except (AttributeError, IndexError, TypeError) as e:
        _log_call(
            settings.log_dir, model_config["model"], False, elapsed,
            error="response has no choices", prompt_length=prompt_length, task_type=task_type,
            max_output_tokens=max_output_tokens, failure_kind=FailureKind.MALFORMED_RESPONSE.value,
        )
        raise GenerationServiceFailure(
            FailureKind.MALFORMED_RESPONSE, f"{model_config['name']}: response has no choices"
        ) from e

    if content is not None and not isinstance(content, str):
        _log_call(
            settings.log_dir, model_config["model"], False, elapsed,
            error="non-text content", prompt_length=prompt_length, task_type=task_type,
            max_output_tokens=max_output_tokens, failure_kind=FailureKind.MALFORMED_RESPONSE.value,
        )
        raise GenerationServiceFailure(
            FailureKind.MALFORMED_RESPONSE, f"{model_config['name']}: non-text content"
        )

    text = (content or "").strip()
    truncated = finish_reason == "length"

    if truncated and not text:
        _log_call(
            settings.log_dir, model_config["model"], False, elapsed,
            error="max_tokens with no content", prompt_length=prompt_length, task_type=task_type,
            max_output_tokens=max_output_tokens, truncated=True,
            failure_kind=FailureKind.MAX_TOKENS_NO_CONTENT.value,
        )
        next_budget = max_output_tokens // 2
        if next_budget < settings.max_tokens_floor:
            raise GenerationServiceFailure(
                FailureKind.MAX_TOKENS_NO_CONTENT,
                f"{model_config['name']}: no content at {max_output_tokens} tokens, "
                f"budget {next_budget} is below floor {settings.max_tokens_floor}",
            )
        logger.warning(
            f"{model_config['name']} returned no content at {max_output_tokens} tokens, "
            f"retrying at {next_budget}"
        )
        return _complete_with_budget(
            model_config, api_key, messages, next_budget, temperature, timeout, json_mode, task_type,
        )

    if not text:
        _log_call(
            settings.log_dir, model_config["model"], False, elapsed,
            error="empty response", prompt_length=prompt_length, task_type=task_type,
            max_output_tokens=max_output_tokens, failure_kind=FailureKind.MALFORMED_RESPONSE.value,
        )
        raise GenerationServiceFailure(
            FailureKind.MALFORMED_RESPONSE, f"{model_config['name']}: empty response"
        )

    _log_call(
        settings.log_dir, model_config["model"], True, elapsed,
        prompt_length=prompt_length, task_type=task_type,
        max_output_tokens=max_output_tokens, truncated=truncated, usage=_usage_tokens(response),
    )
    if truncated:
        logger.info(f"{model_config['name']} output truncated at {max_output_tokens} tokens, returning partial text")
    return Completion(
        text=text,
        truncated=truncated,
        model=model_config["model"],
        max_output_tokens=max_output_tokens,
    )


def generate_text(
    prompt: str,
    system_prompt: str = "",
    max_output_tokens: int | None = None,
    temperature: float | None = None,
    timeout: int | None = None,
    json_mode: bool = False,
    model_override: str | None = None,
    task_type: str | None = None,
) -> Completion:
    """Call LLM with automatic fallback across providers.

    When model_override is provided (e.g. "gemini", "openai", "anthropic"),
    only that specific model is tried.

    task_type: label for the call log, usually the lesson section name.

    Raises:
        AllProvidersFailed: no provider produced text. Its kind is the last
            provider's failure kind, or NETWORK when no provider is configured.
    """
    messages = []
    if system_prompt:
        messages.append({"role": "system", "content": system_prompt})
    messages.append({"role": "user", "content": prompt})

    if model_override:
        models_to_try = [m for m in MODELS if m["name"] == model_override]
        if not models_to_try:
            raise LLMError(f"Unknown model override: {model_override}")
    else:
        models_to_try = MODELS

    budget = max_output_tokens or settings.default_max_output_tokens
    temp = settings.llm_temperature if temperature is None else temperature
    call_timeout = timeout or settings.llm_timeout

    errors: list[str] = []
    last_kind = FailureKind.NETWORK

    for model_config in models_to_try:
        api_key = _get_api_key(model_config)
        if not api_key:
            continue
        try:
            return _complete_with_budget(
                model_config, api_key, messages, budget, temp, call_timeout, json_mode, task_type,
            )
        except GenerationServiceFailure as e:
            errors.append(str(e))
            last_kind = e.kind
            logger.warning(f"LLM call failed ({e.kind.value}): {e}")

    if not errors:
        raise AllProvidersFailed(FailureKind.NETWORK, "No LLM provider has an API key configured")
    raise AllProvidersFailed(last_kind, f"All LLM providers failed: {'; '.join(errors)}")


def generate_json(prompt: str, **kwargs) -> Completion:
    """generate_text with the provider's JSON response format switched on."""
    return generate_text(prompt, json_mode=True, **kwargs)
