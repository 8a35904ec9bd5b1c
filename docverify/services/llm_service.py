"""Language-model field extraction: enrichment layer on top of the regex parser.

Providers are tried in order until one returns a parseable reply:

1. **Ollama** (local / self-hosted) when ``OLLAMA_URL`` is configured.
2. **OpenAI** (hosted) when ``OPENAI_API_KEY`` is configured.

Every provider is optional and every failure is non-fatal: a provider error or
malformed reply is logged and the next provider is tried.  When nothing is
configured, or everything fails, :meth:`LLMFieldExtractor.extract` returns
``None`` and the pipeline continues on regex output alone.
"""

from __future__ import annotations

import json
import logging
from typing import Awaitable, Callable, Optional, Sequence

import httpx
from openai import AsyncOpenAI, OpenAIError

from docverify.core.config import Settings, settings
from docverify.core.exceptions import ModelExtractionError
from docverify.schemas.verification import ModelExtraction
from docverify.services.parser import sanitize_policy_number, sanitize_text

logger = logging.getLogger(__name__)

# A provider takes the full prompt and returns the model's raw reply text.
Provider = Callable[[str], Awaitable[str]]

# ── Prompts ───────────────────────────────────────────────────────────────

SYSTEM_PROMPT = (
    "You extract insurance and licensing document metadata for contractor "
    "compliance checks. Respond with strict JSON only."
)

EXTRACTION_PROMPT = """You are verifying contractor compliance documents. Extract key fields from the following text. Respond with a JSON object containing keys issuer (string), policyNumber (string), effectiveFrom (ISO 8601 date), effectiveTo (ISO 8601 date), coverage (array of strings). If a value is missing, use null.

Document text:
\"\"\"
{text}
\"\"\""""


def build_prompt(text: str, max_chars: int | None = None) -> str:
    limit = settings.llm_max_input_chars if max_chars is None else max_chars
    normalized = f"{text[:limit]}..." if len(text) > limit else text
    return EXTRACTION_PROMPT.format(text=normalized)


# ── Reply parsing ─────────────────────────────────────────────────────────

def parse_model_json(raw: str | None) -> Optional[ModelExtraction]:
    """Parse the JSON object embedded in a model reply.

    Only the span from the first ``{`` to the last ``}`` is decoded, so chatty
    replies ("Here is the JSON: {...}") still work.  Returns ``None`` on any
    parse failure.
    """
    if not raw:
        return None
    trimmed = raw.strip()
    start = trimmed.find("{")
    end = trimmed.rfind("}")
    if start == -1 or end == -1 or end <= start:
        return None

    try:
        data = json.loads(trimmed[start:end + 1])
    except json.JSONDecodeError as exc:
        logger.warning("Failed to parse model JSON output: %s", exc)
        return None
    if not isinstance(data, dict):
        return None

    def _str(key: str) -> str | None:
        value = data.get(key)
        return value if isinstance(value, str) else None

    coverage_raw = data.get("coverage")
    coverage: list[str] = []
    if isinstance(coverage_raw, list):
        for item in coverage_raw:
            if item is None:
                continue
            label = sanitize_text(str(item))
            if label and label not in coverage:
                coverage.append(label)

    return ModelExtraction(
        issuer=sanitize_text(_str("issuer")),
        policy_number=sanitize_policy_number(_str("policyNumber")),
        effective_from=_str("effectiveFrom"),
        effective_to=_str("effectiveTo"),
        coverage=coverage,
    )


# ── Providers ─────────────────────────────────────────────────────────────

def ollama_provider(
    config: Settings = settings,
    *,
    client: httpx.AsyncClient | None = None,
) -> Provider:
    """Build a provider that calls Ollama's ``/api/generate`` endpoint."""
    base_url = (config.ollama_url or "").strip().rstrip("/")
    model = config.ollama_model.strip() or "llama3.1:8b"

    async def call(prompt: str) -> str:
        payload = {
            "model": model,
            "prompt": f"{prompt}\nReturn JSON only.",
            "options": {"temperature": 0.1},
            "stream": False,
        }
        try:
            if client is not None:
                response = await client.post(
                    f"{base_url}/api/generate", json=payload, timeout=config.ollama_timeout,
                )
            else:
                async with httpx.AsyncClient(timeout=config.ollama_timeout) as http:
                    response = await http.post(f"{base_url}/api/generate", json=payload)
            response.raise_for_status()
            return response.json().get("response", "") or ""
        except (httpx.HTTPError, ValueError) as exc:
            raise ModelExtractionError(f"Ollama request failed: {exc}") from exc

    call.__name__ = "ollama"
    return call


def openai_provider(
    config: Settings = settings,
    *,
    client: AsyncOpenAI | None = None,
) -> Provider:
    """Build a provider that calls the OpenAI chat completions API in JSON mode."""
    openai_client = client or AsyncOpenAI(
        api_key=config.openai_api_key,
        timeout=config.openai_timeout,
    )

    async def call(prompt: str) -> str:
        try:
            logger.info(
                "Calling OpenAI model=%s, input_length=%d", config.openai_model, len(prompt),
            )
            response = await openai_client.chat.completions.create(
                model=config.openai_model,
                temperature=0.1,
                messages=[
                    {"role": "system", "content": SYSTEM_PROMPT},
                    {"role": "user", "content": prompt},
                ],
                max_completion_tokens=config.openai_max_tokens,
                response_format={"type": "json_object"},
            )
        except OpenAIError as exc:
            raise ModelExtractionError(f"OpenAI service error: {exc}") from exc

        content = response.choices[0].message.content if response.choices else None
        if not content:
            raise ModelExtractionError("Empty response from OpenAI")
        return content

    call.__name__ = "openai"
    return call


def default_providers(config: Settings = settings) -> list[Provider]:
    """Providers enabled by the current configuration, in priority order."""
    providers: list[Provider] = []
    if config.local_model_enabled:
        providers.append(ollama_provider(config))
    if config.ai_enabled:
        providers.append(openai_provider(config))
    return providers


# ── Extractor ─────────────────────────────────────────────────────────────

class LLMFieldExtractor:
    """Ordered chain of optional model providers."""

    def __init__(
        self,
        providers: Sequence[Provider] | None = None,
        *,
        max_input_chars: int | None = None,
    ) -> None:
        self.providers = list(default_providers() if providers is None else providers)
        self.max_input_chars = max_input_chars

    @property
    def enabled(self) -> bool:
        return bool(self.providers)

    async def extract(self, text: str) -> Optional[ModelExtraction]:
        if not self.providers or not text.strip():
            return None

        prompt = build_prompt(text, self.max_input_chars)
        for provider in self.providers:
            name = getattr(provider, "__name__", "provider")
            try:
                raw = await provider(prompt)
            except Exception as exc:
                logger.warning("Model extraction via %s failed, trying next provider: %s", name, exc)
                continue

            parsed = parse_model_json(raw)
            if parsed is not None:
                logger.info("Model extraction via %s succeeded", name)
                return parsed
            logger.warning("Model extraction via %s returned no usable JSON", name)

        return None

    def describe(self) -> list[str]:
        return [getattr(p, "__name__", "provider") for p in self.providers]

