"""
Language-model completion client for SafeHER backend.
Wraps the OpenAI chat completions API with an explicit timeout and no retries.
"""

import logging
from typing import Optional

from openai import AsyncOpenAI, OpenAIError

from common.errors import UpstreamError
from libs.config import Config

logger = logging.getLogger(__name__)


class LLMClient:
    """Client for chat completions used by route scoring and story summaries."""

    def __init__(
        self,
        api_key: Optional[str] = None,
        model: Optional[str] = None,
        timeout: Optional[float] = None,
    ):
        """
        Initialize the LLM client.

        Args:
            api_key: OpenAI API key. If None, reads Config.OPENAI_API_KEY.
            model: Chat model name. If None, reads Config.OPENAI_MODEL.
            timeout: Request timeout in seconds. If None, reads Config.LLM_TIMEOUT_SECONDS.
        """
        self.api_key = api_key or Config.OPENAI_API_KEY
        self.model = model or Config.OPENAI_MODEL
        self.timeout = timeout if timeout is not None else Config.LLM_TIMEOUT_SECONDS

        if not self.api_key:
            logger.warning("OPENAI_API_KEY not set. AI scoring and summaries will be disabled.")
            self.client = None
        else:
            self.client = AsyncOpenAI(
                api_key=self.api_key, timeout=self.timeout, max_retries=0
            )

    def is_enabled(self) -> bool:
        """Check if the LLM is enabled (has API key)."""
        return self.client is not None

    async def complete(self, prompt: str, json_mode: bool = False) -> str:
        """
        Run a single-message chat completion.

        Args:
            prompt: User message content
            json_mode: Ask the model for a JSON object response

        Returns:
            Completion text

        Raises:
            UpstreamError: If the client is disabled, the call fails or times
                out, or the completion is empty
        """
        if not self.is_enabled():
            raise UpstreamError("LLM is not configured")

        try:
            completion = await self.client.chat.completions.create(
                model=self.model,
                response_format={"type": "json_object" if json_mode else "text"},
                messages=[{"role": "user", "content": prompt}],
            )
        except OpenAIError as e:
            logger.error(f"LLM completion failed: {e}")
            raise UpstreamError("LLM completion failed") from e

        content = completion.choices[0].message.content if completion.choices else None
        if not content:
            raise UpstreamError("LLM returned an empty completion")
        return content

    async def summarize_story(self, text: str) -> Optional[str]:
        """One-sentence summary of a story, or None when unavailable."""
        if not self.is_enabled():
            return None
        try:
            summary = await self.complete(
                f"Summarize this safety story in one sentence: {text}"
            )
        except UpstreamError:
            logger.info("AI summary failed, storing full text only.")
            return None
        return summary.strip() or None


# Global client instance
_llm_client: Optional[LLMClient] = None


def get_llm_client() -> LLMClient:
    """Get LLM client instance (singleton)."""
    global _llm_client
    if _llm_client is None:
        _llm_client = LLMClient()
    return _llm_client


async def close_llm_client() -> None:
    """Close the shared client, if one was created."""
    global _llm_client
    if _llm_client is not None and _llm_client.client is not None:
        await _llm_client.client.close()
    _llm_client = None
