"""
Review clients for the execution engine.

Supports Anthropic (Claude) and OpenAI models. Clients retry only
network-level failures; rate limits and provider errors are surfaced
to the engine, which owns the recovery policy.
"""

import json
import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional, Protocol, runtime_checkable

import anthropic
import openai
from anthropic import AsyncAnthropic
from openai import AsyncOpenAI
from pydantic import ValidationError
from tenacity import AsyncRetrying, retry_if_exception_type, stop_after_attempt, wait_exponential

from batch_review.config import Settings
from batch_review.llm.errors import LLMError, RateLimitError, ResponseParseError, TransientNetworkError
from batch_review.llm.prompts import SYSTEM_PROMPT, ContextBuilder, ReviewContext
from batch_review.llm.schemas import Finding, LLMConfig, ReviewResult

logger = logging.getLogger(__name__)

# Model output uses either snake_case or camelCase keys
_FINDING_KEY_ALIASES = {
    'endLine': 'end_line',
    'ruleId': 'rule_id',
    'file_path': 'file',
    'line_number': 'line',
}


@runtime_checkable
class ReviewPort(Protocol):
    """Anything that can review a context and return findings."""

    async def review_code(self, context: ReviewContext, config: LLMConfig) -> ReviewResult:
        ...


class ReviewClient(ABC):
    """Abstract base class for LLM-backed review clients."""

    def __init__(self, settings: Settings, context_builder: Optional[ContextBuilder] = None):
        self.settings = settings
        self.context_builder = context_builder or ContextBuilder()
        self.retry_attempts = settings.LLM_NETWORK_RETRY_ATTEMPTS
        self.retry_wait = wait_exponential(multiplier=1, min=2, max=10)

    async def review_code(self, context: ReviewContext, config: LLMConfig) -> ReviewResult:
        """
        Review one context.

        Args:
            context: Guidelines, rules and diffs to review
            config: Model, token budget and temperature for this call

        Returns:
            ReviewResult: Parsed findings

        Raises:
            RateLimitError: The provider throttled the call
            ResponseParseError: The response was not valid findings JSON
            LLMError: Any other provider failure
        """
        prompt = self.context_builder.render_prompt(context)

        async for attempt in AsyncRetrying(
            stop=stop_after_attempt(self.retry_attempts),
            wait=self.retry_wait,
            retry=retry_if_exception_type(TransientNetworkError),
            reraise=True,
        ):
            with attempt:
                response_text = await self._complete(SYSTEM_PROMPT, prompt, config)

        logger.debug(f"{self.provider} response: {response_text[:200]}...")
        return self._parse_result(response_text)

    @property
    @abstractmethod
    def provider(self) -> str:
        pass

    @abstractmethod
    async def _complete(self, system_prompt: str, user_prompt: str, config: LLMConfig) -> str:
        """
        Issue one completion request and return the response text.

        Implementations translate SDK exceptions into ``RateLimitError``,
        ``TransientNetworkError`` and ``LLMError``.
        """
        pass

    def _parse_result(self, response_text: str) -> ReviewResult:
        """Parse a JSON response into findings, skipping malformed entries."""
        try:
            data = json.loads(self._extract_json(response_text))
        except json.JSONDecodeError as e:
            logger.error(f"Failed to parse review JSON: {e}")
            raise ResponseParseError(f"Response is not valid JSON: {e}")

        if isinstance(data, list):
            raw_findings, summary = data, None
        elif isinstance(data, dict):
            raw_findings, summary = data.get('findings') or [], data.get('summary')
        else:
            raise ResponseParseError(f"Unexpected response type: {type(data).__name__}")

        findings: List[Finding] = []
        for raw in raw_findings:
            try:
                findings.append(Finding(**self._normalize_keys(raw)))
            except (TypeError, ValidationError) as e:
                logger.warning(f"Skipping invalid finding: {e}", extra={"raw_finding": raw})

        logger.info(f"Parsed {len(findings)} findings from {self.provider} response")
        return ReviewResult(
            findings=findings,
            summary=summary if isinstance(summary, str) else None,
        )

    @staticmethod
    def _normalize_keys(raw: Dict[str, Any]) -> Dict[str, Any]:
        if not isinstance(raw, dict):
            raise TypeError(f"finding must be an object, got {type(raw).__name__}")
        normalized = {}
        for key, value in raw.items():
            normalized[_FINDING_KEY_ALIASES.get(key, key)] = value
        if isinstance(normalized.get('severity'), str):
            normalized['severity'] = normalized['severity'].lower()
        return normalized

    def _extract_json(self, text: str) -> str:
        """
        Strip prose and a markdown fence from around the JSON body.

        Args:
            text: Raw response text

        Returns:
            The fenced block if there is one, otherwise the whole text
        """
        for fence in ("```json", "```"):
            start = text.find(fence)
            if start == -1:
                continue
            start += len(fence)
            end = text.find("```", start)
            return (text[start:end] if end != -1 else text[start:]).strip()
        return text.strip()


class AnthropicReviewClient(ReviewClient):
    """Anthropic (Claude) review client."""

    provider = "anthropic"

    def __init__(self, settings: Settings, context_builder: Optional[ContextBuilder] = None):
        super().__init__(settings, context_builder)
        # SDK retries are disabled; the engine owns rate-limit handling
        self.client = AsyncAnthropic(api_key=settings.ANTHROPIC_API_KEY, max_retries=0)

    async def _complete(self, system_prompt: str, user_prompt: str, config: LLMConfig) -> str:
        try:
            response = await self.client.messages.create(
                model=config.model,
                max_tokens=config.max_tokens,
                temperature=config.temperature,
                system=system_prompt,
                messages=[
                    {"role": "user", "content": user_prompt}
                ]
            )
        except anthropic.RateLimitError as e:
            logger.warning(f"Claude rate limit: {e}")
            raise RateLimitError(f"Claude rate limit: {e}", status_code=429) from e
        except anthropic.APIConnectionError as e:
            logger.warning(f"Claude connection error: {e}")
            raise TransientNetworkError(f"Claude connection failed: {e}") from e
        except anthropic.APIStatusError as e:
            logger.error(f"Claude API error: {e}")
            raise LLMError(f"Claude generation failed: {e}", status_code=e.status_code) from e

        return ''.join(
            block.text for block in response.content if getattr(block, 'type', None) == 'text'
        )


class OpenAIReviewClient(ReviewClient):
    """OpenAI review client."""

    provider = "openai"

    def __init__(self, settings: Settings, context_builder: Optional[ContextBuilder] = None):
        super().__init__(settings, context_builder)
        self.client = AsyncOpenAI(api_key=settings.OPENAI_API_KEY, max_retries=0)

    async def _complete(self, system_prompt: str, user_prompt: str, config: LLMConfig) -> str:
        try:
            response = await self.client.chat.completions.create(
                model=config.model,
                max_tokens=config.max_tokens,
                temperature=config.temperature,
                messages=[
                    {"role": "system", "content": system_prompt},
                    {"role": "user", "content": user_prompt},
                ],
                response_format={"type": "json_object"}  # Force JSON mode
            )
        except openai.RateLimitError as e:
            logger.warning(f"OpenAI rate limit: {e}")
            raise RateLimitError(f"OpenAI rate limit: {e}", status_code=429) from e
        except openai.APIConnectionError as e:
            logger.warning(f"OpenAI connection error: {e}")
            raise TransientNetworkError(f"OpenAI connection failed: {e}") from e
        except openai.APIStatusError as e:
            logger.error(f"OpenAI API error: {e}")
            raise LLMError(f"OpenAI generation failed: {e}", status_code=e.status_code) from e

        return response.choices[0].message.content or ''


def get_review_client(settings: Settings) -> ReviewClient:
    """
    Factory function to get the configured review client.

    Args:
        settings: Application settings

    Returns:
        Configured review client (Anthropic or OpenAI)

    Raises:
        ValueError: If the provider is not supported or its API key is missing
    """
    provider = settings.LLM_PROVIDER.lower()

    if provider == "anthropic":
        if not settings.ANTHROPIC_API_KEY:
            raise ValueError("ANTHROPIC_API_KEY is required for the anthropic provider")
        logger.info(f"Initializing Anthropic client with model {settings.LLM_MODEL}")
        return AnthropicReviewClient(settings)
    elif provider == "openai":
        if not settings.OPENAI_API_KEY:
            raise ValueError("OPENAI_API_KEY is required for the openai provider")
        logger.info(f"Initializing OpenAI client with model {settings.LLM_MODEL}")
        return OpenAIReviewClient(settings)
    else:
        raise ValueError(f"Unsupported LLM provider: {provider}. Use 'anthropic' or 'openai'")
