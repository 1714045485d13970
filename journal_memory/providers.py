"""Embedding and extraction providers.

Two backends: any OpenAI-compatible HTTP API (via httpx) and Google
Gemini (via google-genai). Every call returns a ``Result`` instead of
raising, so callers decide per unit of work how to treat a failure.
"""

from __future__ import annotations

import json
import logging
import re
from typing import Any, Dict, List, Optional, Protocol

import httpx
from google import genai
from google.genai import types as genai_types

from .config import AppConfig
from .errors import ConfigurationError, ProviderError, Result

logger = logging.getLogger(__name__)


class EmbeddingProvider(Protocol):
    model: str

    async def embed(self, texts: List[str]) -> Result[List[List[float]]]:
        """Embed every text in one request; one vector per input, in order."""
        ...


class ExtractionProvider(Protocol):
    model: str

    async def complete_json(self, system_prompt: str, user_prompt: str) -> Result[Dict[str, Any]]:
        """Ask the model for a single JSON object."""
        ...


def parse_json_object(raw: str) -> Optional[dict]:
    """Parse a JSON object, tolerating prose or code fences around it."""
    raw = raw.strip()
    try:
        parsed = json.loads(raw)
    except json.JSONDecodeError:
        match = re.search(r"\{[\s\S]*\}", raw)
        if not match:
            return None
        try:
            parsed = json.loads(match.group(0))
        except json.JSONDecodeError:
            return None
    return parsed if isinstance(parsed, dict) else None


def _require_key(api_key: Optional[str], provider: str) -> str:
    if not api_key:
        raise ConfigurationError(f"No API key configured for the {provider} provider")
    return api_key


def _http_error_message(resp: httpx.Response) -> str:
    try:
        data = resp.json()
    except ValueError:
        data = None
    if isinstance(data, dict) and isinstance(data.get("error"), dict):
        message = data["error"].get("message") or data["error"].get("code")
        if message:
            return str(message)
    if resp.status_code == 429:
        return "Rate limit exceeded"
    return f"API error ({resp.status_code})"


class _OpenAICompatibleClient:
    """Shared POST plumbing for OpenAI-style JSON endpoints."""

    def __init__(
        self,
        api_key: Optional[str],
        base_url: str,
        timeout: float,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        key = _require_key(api_key, "openai")
        self._client = httpx.AsyncClient(
            base_url=base_url.rstrip("/"),
            headers={"Authorization": f"Bearer {key}", "Content-Type": "application/json"},
            timeout=timeout,
            transport=transport,
        )

    async def _post(self, path: str, payload: Dict[str, Any]) -> Result[Dict[str, Any]]:
        try:
            resp = await self._client.post(path, json=payload)
        except httpx.HTTPError as exc:
            return Result.failure(ProviderError(f"Connection failed: {exc}", retryable=True))

        if resp.status_code >= 400:
            logger.debug("Provider call %s failed with HTTP %d", path, resp.status_code)
            return Result.failure(
                ProviderError(
                    _http_error_message(resp),
                    status=resp.status_code,
                    retryable=resp.status_code == 429 or resp.status_code >= 500,
                )
            )
        try:
            data = resp.json()
        except ValueError:
            return Result.failure(ProviderError("Provider response was not valid JSON"))
        if not isinstance(data, dict):
            return Result.failure(ProviderError("Provider response was not a JSON object"))
        return Result.success(data)

    async def aclose(self) -> None:
        await self._client.aclose()


class OpenAIEmbeddingProvider(_OpenAICompatibleClient):
    """``POST /embeddings`` with a batched ``input`` list."""

    def __init__(
        self,
        api_key: Optional[str],
        model: str = "text-embedding-3-small",
        base_url: str = "https://api.openai.com/v1",
        timeout: float = 60.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        super().__init__(api_key, base_url, timeout, transport)
        self.model = model

    async def embed(self, texts: List[str]) -> Result[List[List[float]]]:
        result = await self._post("/embeddings", {"model": self.model, "input": texts})
        if not result.ok:
            return Result.failure(result.error)  # type: ignore[arg-type]

        items = result.value.get("data") if result.value else None
        if not isinstance(items, list) or len(items) != len(texts):
            return Result.failure(ProviderError("Embedding response did not match the request size"))
        try:
            ordered = sorted(items, key=lambda item: item.get("index", 0))
            vectors = [[float(x) for x in item["embedding"]] for item in ordered]
        except (KeyError, TypeError, ValueError, AttributeError):
            return Result.failure(ProviderError("Embedding response was malformed"))
        return Result.success(vectors)


class OpenAIExtractionProvider(_OpenAICompatibleClient):
    """``POST /chat/completions`` in JSON-object response mode."""

    def __init__(
        self,
        api_key: Optional[str],
        model: str = "gpt-4o-mini",
        base_url: str = "https://api.openai.com/v1",
        temperature: float = 0.3,
        timeout: float = 120.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        super().__init__(api_key, base_url, timeout, transport)
        self.model = model
        self.temperature = temperature

    async def complete_json(self, system_prompt: str, user_prompt: str) -> Result[Dict[str, Any]]:
        result = await self._post(
            "/chat/completions",
            {
                "model": self.model,
                "messages": [
                    {"role": "system", "content": system_prompt},
                    {"role": "user", "content": user_prompt},
                ],
                "response_format": {"type": "json_object"},
                "temperature": self.temperature,
            },
        )
        if not result.ok:
            return Result.failure(result.error)  # type: ignore[arg-type]

        try:
            content = result.value["choices"][0]["message"]["content"]  # type: ignore[index]
        except (KeyError, IndexError, TypeError):
            return Result.failure(ProviderError("No response content from model"))
        parsed = parse_json_object(content or "")
        if parsed is None:
            return Result.failure(ProviderError("Failed to parse model response as JSON"))
        return Result.success(parsed)


class GeminiEmbeddingProvider:
    """Batched ``embed_content`` through the google-genai async client."""

    def __init__(self, api_key: Optional[str], model: str = "text-embedding-004"):
        self.model = model
        self.client = genai.Client(api_key=_require_key(api_key, "google"))

    async def embed(self, texts: List[str]) -> Result[List[List[float]]]:
        try:
            resp = await self.client.aio.models.embed_content(model=self.model, contents=texts)
        except Exception as exc:
            return Result.failure(ProviderError(f"Gemini embedding failed: {exc}", retryable=True))

        embeddings = resp.embeddings or []
        if len(embeddings) != len(texts):
            return Result.failure(ProviderError("Embedding response did not match the request size"))
        return Result.success([[float(x) for x in (emb.values or [])] for emb in embeddings])


class GeminiExtractionProvider:
    """``generate_content`` with a JSON response MIME type."""

    def __init__(self, api_key: Optional[str], model: str = "gemini-2.5-flash", temperature: float = 0.3):
        self.model = model
        self.temperature = temperature
        self.client = genai.Client(api_key=_require_key(api_key, "google"))

    async def complete_json(self, system_prompt: str, user_prompt: str) -> Result[Dict[str, Any]]:
        try:
            resp = await self.client.aio.models.generate_content(
                model=self.model,
                contents=user_prompt,
                config=genai_types.GenerateContentConfig(
                    system_instruction=system_prompt,
                    temperature=self.temperature,
                    response_mime_type="application/json",
                ),
            )
        except Exception as exc:
            return Result.failure(ProviderError(f"Gemini extraction failed: {exc}", retryable=True))

        parsed = parse_json_object(resp.text or "")
        if parsed is None:
            return Result.failure(ProviderError("Failed to parse model response as JSON"))
        return Result.success(parsed)


def build_embedding_provider(config: AppConfig) -> EmbeddingProvider:
    """Create the configured embedding provider; raises ConfigurationError without a key."""
    settings = config.embeddings
    api_key = config.api_key_for(settings.provider)
    if settings.provider == "openai":
        return OpenAIEmbeddingProvider(
            api_key, model=settings.model, base_url=settings.base_url, timeout=settings.timeout
        )
    if settings.provider == "google":
        return GeminiEmbeddingProvider(api_key, model=settings.model)
    raise ConfigurationError(f"Unknown embedding provider: {settings.provider!r}")


def build_extraction_provider(config: AppConfig) -> ExtractionProvider:
    """Create the configured extraction provider; raises ConfigurationError without a key."""
    settings = config.extraction
    api_key = config.api_key_for(settings.provider)
    if settings.provider == "openai":
        return OpenAIExtractionProvider(
            api_key,
            model=settings.model,
            base_url=settings.base_url,
            temperature=settings.temperature,
            timeout=settings.timeout,
        )
    if settings.provider == "google":
        return GeminiExtractionProvider(api_key, model=settings.model, temperature=settings.temperature)
    raise ConfigurationError(f"Unknown extraction provider: {settings.provider!r}")
