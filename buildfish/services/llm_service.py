"""LLM Service - OpenAI-compatible chat completion for CAD generation."""

import json
import logging
import math
import re
import time
from dataclasses import dataclass
from typing import Any, Optional

import httpx

from buildfish.prompts.system_prompt import SYSTEM_PROMPT, format_user_prompt
from buildfish.services.expr_eval import evaluate_expressions
from buildfish import config

logger = logging.getLogger(__name__)


class GenerationError(RuntimeError):
    """Base class for failures while generating a CAD model."""


class ConfigurationError(GenerationError):
    """The server is missing configuration required to call the LLM."""


class LLMResponseError(GenerationError):
    """The LLM endpoint failed or returned something we cannot use."""


class NoJSONFoundError(LLMResponseError):
    """The LLM reply contains no JSON block."""


@dataclass
class GeneratedCAD:
    objects: list[Any]
    raw_response: str
    metadata: Optional[dict] = None


# ── Lazy Singleton Client (connection reuse) ──────────────────
_http_client: httpx.AsyncClient | None = None


def _get_http_client() -> httpx.AsyncClient:
    """Get or create singleton httpx.AsyncClient."""
    global _http_client
    if _http_client is None:
        _http_client = httpx.AsyncClient(timeout=config.LLM_TIMEOUT_SECONDS)
        logger.info("HTTP client initialized (singleton)")
    return _http_client


async def close_http_client() -> None:
    """Close the shared client; a new one is created on next use."""
    global _http_client
    if _http_client is not None:
        await _http_client.aclose()
        _http_client = None


# Tried in order; the first match wins.
_JSON_PATTERNS = (
    re.compile(r"```json\n([\s\S]*?)\n```"),
    re.compile(r"```\n([\s\S]*?)\n```"),
    re.compile(r"\{[\s\S]*\}"),
)
_FENCE_RE = re.compile(r"^```json\n|^```\n|```$")


def _build_messages(prompt: str) -> list[dict]:
    return [
        {"role": "system", "content": SYSTEM_PROMPT},
        {"role": "user", "content": format_user_prompt(prompt)},
    ]


def _reject_constant(name: str):
    raise ValueError(f"Non-finite number {name} in model data")


def _finite_float(text: str) -> float:
    value = float(text)
    if not math.isfinite(value):
        _reject_constant(text)
    return value


def _extract_json(text: str) -> str:
    """Extract the JSON text from an LLM reply.

    Looks for a ```json fenced block, then any fenced block, then the
    outermost brace-delimited substring.
    """
    for pattern in _JSON_PATTERNS:
        match = pattern.search(text)
        if match:
            json_text = match.group(1) if match.groups() else match.group(0)
            return _FENCE_RE.sub("", json_text).strip()
    raise NoJSONFoundError("Invalid response format: no JSON found")


def parse_cad_response(content: str) -> GeneratedCAD:
    """Turn the raw text of an LLM reply into a GeneratedCAD."""
    json_text = _extract_json(content)

    try:
        parsed = json.loads(json_text, parse_float=_finite_float, parse_constant=_reject_constant)
    except (ValueError, RecursionError) as e:
        logger.error(f"JSON parsing error: {e}. Raw JSON: {json_text[:200]}")
        raise LLMResponseError("Failed to parse model data") from e

    try:
        data = evaluate_expressions(parsed)
    except RecursionError as e:
        logger.error(f"Model data nested too deeply: {e}")
        raise LLMResponseError("Failed to parse model data") from e

    if not isinstance(data, dict) or not isinstance(data.get("objects"), list):
        logger.error(f"Invalid objects array in response: {str(data)[:200]}")
        raise LLMResponseError("Invalid response format: missing objects array")

    metadata = data.get("metadata")
    return GeneratedCAD(
        objects=data["objects"],
        raw_response=content,
        metadata=metadata if isinstance(metadata, dict) else None,
    )


async def request_completion(prompt: str, api_key: str) -> str:
    """Send the prompt to the chat-completion endpoint and return the reply text."""
    base_url = config.OPENAI_API_BASE_URL.rstrip("/")
    model = config.DEFAULT_MODEL
    logger.info(f"Using OpenAI API URL: {base_url}, model: {model}")

    client = _get_http_client()
    t0 = time.perf_counter()
    try:
        response = await client.post(
            f"{base_url}/chat/completions",
            headers={"Authorization": f"Bearer {api_key}"},
            json={
                "model": model,
                "messages": _build_messages(prompt),
                "temperature": config.LLM_TEMPERATURE,
                "max_tokens": config.LLM_MAX_TOKENS,
            },
        )
    except httpx.HTTPError as e:
        logger.error(f"OpenAI API request failed: {e!r}")
        raise LLMResponseError(f"OpenAI API request failed: {e}") from e
    elapsed = time.perf_counter() - t0

    if response.is_error:
        logger.error(f"OpenAI API error: {response.status_code} {response.text[:500]}")
        raise LLMResponseError(f"OpenAI API error: {response.status_code}")

    try:
        data = response.json()
        content = data["choices"][0]["message"]["content"]
    except (ValueError, KeyError, IndexError, TypeError):
        content = None

    if not content or not isinstance(content, str):
        logger.error(f"Invalid response from OpenAI API: {response.text[:500]}")
        raise LLMResponseError("Invalid response from OpenAI API")

    logger.info(f"OpenAI response received in {elapsed:.2f}s ({len(content)} chars)")
    return content


async def generate_cad_model(prompt: str, api_key: str | None = None) -> GeneratedCAD:
    """Generate CAD objects from a text prompt.

    Raises ConfigurationError when no API key is available and
    LLMResponseError (or NoJSONFoundError) when the reply is unusable.
    """
    api_key = api_key or config.openai_api_key()
    if not api_key:
        logger.error("OPENAI_API_KEY is not set in environment variables")
        raise ConfigurationError("OpenAI API key is not configured")

    logger.info(f"Starting CAD model generation with prompt: {prompt[:50]}...")
    content = await request_completion(prompt, api_key)
    result = parse_cad_response(content)
    logger.info(f"Generated CAD model with {len(result.objects)} objects")
    return result
