"""LLM provider interface and the OpenAI / Azure OpenAI implementation."""
import asyncio
import json
import logging
import re
import time
from abc import ABC, abstractmethod
from typing import Optional

import openai
from openai import AsyncAzureOpenAI, AsyncOpenAI

from agents.prompts import (
    BANK_CODES,
    BANK_DETECTION_SYSTEM_PROMPT,
    EXTRACTION_SYSTEM_PROMPT,
    RESPONSE_FORMAT,
    bank_detection_prompt,
    extraction_prompt,
)
from config import settings
from exceptions import LLMResponseError, ToolUnavailableError
from models import BankCode
from schemas import BankDetection, LLMResponse, TokenUsage

logger = logging.getLogger("StatementPipeline.LLM")

_FENCE_START_RE = re.compile(r"^```(?:json)?\s*", re.I)
_FENCE_END_RE = re.compile(r"\s*```$")


def strip_fences(text: str) -> str:
    """Remove a markdown code fence wrapped around a JSON payload."""
    text = (text or "").strip()
    text = _FENCE_START_RE.sub("", text)
    text = _FENCE_END_RE.sub("", text)
    return text.strip()


def parse_llm_json(text: str) -> dict:
    """Parse a model reply as a JSON object (fences stripped). Raises ValueError."""
    parsed = json.loads(strip_fences(text))
    if not isinstance(parsed, dict):
        raise ValueError(f"expected a JSON object, got {type(parsed).__name__}")
    return parsed


def estimate_cost(model: str, input_tokens: int, output_tokens: int) -> float:
    """Rupee cost of one call from the per-1K-token price table."""
    input_price, output_price = settings.MODEL_PRICING.get(
        model, settings.MODEL_PRICING[settings.LLM_PRIMARY_MODEL]
    )
    return input_tokens * input_price / 1000 + output_tokens * output_price / 1000


def normalise_bank_code(answer: str) -> str:
    """Map a free-text detection answer onto a known bank code, else OTHER."""
    token = re.sub(r"[^A-Z]", " ", (answer or "").upper()).split()
    code = token[0] if token else ""
    return code if code in BANK_CODES else BankCode.OTHER.value


class LLMProvider(ABC):
    """Provider-agnostic surface the statement parser talks to."""

    name: str = "llm"

    @abstractmethod
    async def detect_bank(self, preview: str) -> BankDetection:
        ...

    @abstractmethod
    async def parse_statement(
        self,
        text: str,
        bank_hint: Optional[str] = None,
        few_shot: Optional[str] = None,
        model: Optional[str] = None,
    ) -> LLMResponse:
        ...


class OpenAIProvider(LLMProvider):
    """Chat-completions provider for OpenAI or Azure OpenAI (``LLM_PROVIDER``)."""

    def __init__(self, client=None, provider: str = None, primary_model: str = None, detection_model: str = None):
        self.name = provider or settings.LLM_PROVIDER
        self.primary_model = primary_model or settings.LLM_PRIMARY_MODEL
        self.detection_model = detection_model or settings.LLM_DETECTION_MODEL
        self._client = client

    @property
    def client(self):
        if self._client is None:
            self._client = self._build_client()
        return self._client

    def _build_client(self):
        if self.name == "azure":
            if not (settings.AZURE_OPENAI_API_KEY and settings.AZURE_OPENAI_ENDPOINT):
                raise ToolUnavailableError("Azure OpenAI is not configured (AZURE_OPENAI_API_KEY / AZURE_OPENAI_ENDPOINT)")
            logger.info("Azure OpenAI client initialized (endpoint=%s)", settings.AZURE_OPENAI_ENDPOINT)
            return AsyncAzureOpenAI(
                api_key=settings.AZURE_OPENAI_API_KEY,
                azure_endpoint=settings.AZURE_OPENAI_ENDPOINT,
                api_version=settings.AZURE_OPENAI_API_VERSION,
                timeout=settings.LLM_TIMEOUT_SECONDS,
                max_retries=settings.LLM_MAX_RETRIES,
            )
        if not settings.OPENAI_API_KEY:
            raise ToolUnavailableError("OPENAI_API_KEY is not set")
        logger.info("OpenAI client initialized")
        return AsyncOpenAI(
            api_key=settings.OPENAI_API_KEY,
            timeout=settings.LLM_TIMEOUT_SECONDS,
            max_retries=settings.LLM_MAX_RETRIES,
        )

    async def _complete(self, **kwargs):
        try:
            return await self.client.chat.completions.create(**kwargs)
        except openai.APIError as e:
            # Connection, auth and exhausted transport retries all mean the provider is unusable
            raise ToolUnavailableError(f"{self.name} request failed: {e}") from e

    @staticmethod
    def _usage(response) -> TokenUsage:
        usage = getattr(response, "usage", None)
        return TokenUsage(
            input=getattr(usage, "prompt_tokens", 0) or 0,
            output=getattr(usage, "completion_tokens", 0) or 0,
        )

    @staticmethod
    def _text(response) -> str:
        if not response.choices:
            return ""
        return (response.choices[0].message.content or "").strip()

    async def detect_bank(self, preview: str) -> BankDetection:
        """Cheap bank identification from the statement header."""
        start = time.monotonic()
        response = await self._complete(
            model=self.detection_model,
            messages=[
                {"role": "system", "content": BANK_DETECTION_SYSTEM_PROMPT},
                {"role": "user", "content": bank_detection_prompt(preview)},
            ],
            temperature=0,
            max_tokens=settings.BANK_DETECTION_MAX_TOKENS,
        )
        tokens = self._usage(response)
        bank = normalise_bank_code(self._text(response))
        return BankDetection(
            bank=bank,
            confidence=0.9 if bank != BankCode.OTHER.value else 0.3,
            cost=estimate_cost(self.detection_model, tokens.input, tokens.output),
            latency_ms=(time.monotonic() - start) * 1000,
        )

    async def parse_statement(
        self,
        text: str,
        bank_hint: Optional[str] = None,
        few_shot: Optional[str] = None,
        model: Optional[str] = None,
    ) -> LLMResponse:
        """
        Structured extraction with the strict response schema.

        Unparseable replies are retried with linear backoff. The spend of every
        attempt is reported, including on failure (``LLMResponseError.details["cost"]``).
        """
        model = model or self.primary_model
        prompt = extraction_prompt(text, bank_hint, few_shot)
        attempts = settings.LLM_MAX_RETRIES + 1
        start = time.monotonic()
        total_cost = 0.0
        total_tokens = TokenUsage()
        last_error = None

        for attempt in range(attempts):
            response = await self._complete(
                model=model,
                messages=[
                    {"role": "system", "content": EXTRACTION_SYSTEM_PROMPT},
                    {"role": "user", "content": prompt},
                ],
                response_format=RESPONSE_FORMAT,
                temperature=0,
                max_tokens=settings.LLM_MAX_OUTPUT_TOKENS,
            )
            tokens = self._usage(response)
            total_tokens = TokenUsage(input=total_tokens.input + tokens.input, output=total_tokens.output + tokens.output)
            total_cost += estimate_cost(model, tokens.input, tokens.output)

            raw = self._text(response)
            try:
                if not raw:
                    raise ValueError(f"empty response from {model}")
                content = parse_llm_json(raw)
            except ValueError as e:  # JSONDecodeError is a ValueError
                last_error = e
                logger.warning(f"⚠️ {model} parse attempt {attempt + 1}/{attempts} failed: {e}")
                if attempt < attempts - 1:
                    await asyncio.sleep(settings.LLM_RETRY_BACKOFF_SECONDS * (attempt + 1))
                continue

            return LLMResponse(
                content=content,
                provider=self.name,
                model=model,
                cost=total_cost,
                latency_ms=(time.monotonic() - start) * 1000,
                tokens=total_tokens,
            )

        raise LLMResponseError(
            f"{model} returned unparseable JSON after {attempts} attempts: {last_error}",
            cost=total_cost,
            model=model,
        )


def get_provider() -> LLMProvider:
    """Provider configured by the environment."""
    return OpenAIProvider()
