"""
Narration script writer backed by Anthropic's Claude API.

The script-to-video stage hands over a short brief and gets back only
the words to be spoken, capped to a word budget so the synthesized
voice-over stays within a short social clip.
"""

import logging
import re

from anthropic import AsyncAnthropic, APIConnectionError, APIStatusError, APITimeoutError

from vidforge.config import Settings
from vidforge.services.ai_clients.base import (
    AIClientConnectionError,
    AIClientResponseError,
    AIClientTimeoutError,
)

logger = logging.getLogger(__name__)

DEFAULT_SCRIPT_MODEL = "claude-sonnet-4-5"
DEFAULT_MAX_WORDS = 120

# Roughly 1.3 tokens per English word, plus headroom for punctuation
TOKENS_PER_WORD = 2

SCRIPT_SYSTEM_PROMPT = (
    "You write voice-over scripts for short social videos. "
    "Return only the words to be spoken: no stage directions, no headings, "
    "no markdown, no speaker labels. Keep it under {max_words} words."
)

_DIRECTION_RE = re.compile(r"\[[^\]]*\]|\([^)]*\)")
_SENTENCE_END = (".", "!", "?")


def fit_script(text: str, max_words: int) -> str:
    """
    Clean an LLM reply into speakable text within a word budget.

    Drops markdown headings, emphasis markers and bracketed directions
    like "[music]" or "(pause)". Over-long scripts are cut at the last
    complete sentence inside the budget, or hard-cut if none ends there.

    Args:
        text: Raw model output
        max_words: Word budget

    Returns:
        Script text on a single line (may be empty)
    """
    lines = [line for line in text.splitlines() if not line.lstrip().startswith("#")]
    cleaned = _DIRECTION_RE.sub(" ", " ".join(lines)).replace("*", "").replace("_", " ")
    words = cleaned.split()

    if len(words) <= max_words:
        return " ".join(words)

    kept = words[:max_words]
    for i in range(len(kept) - 1, max_words // 2 - 1, -1):
        if kept[i].endswith(_SENTENCE_END):
            return " ".join(kept[: i + 1])
    return " ".join(kept)


class ClaudeClient:
    """
    Script writer using the Claude Messages API.

    Example:
        async with ClaudeClient.from_settings(settings) as writer:
            script = await writer.write_script("Launch teaser for our habit app")
    """

    def __init__(
        self,
        api_key: str,
        model: str = DEFAULT_SCRIPT_MODEL,
        max_words: int = DEFAULT_MAX_WORDS,
        timeout: float = 300.0,
        max_retries: int = 3,
    ):
        """
        Initialize Claude script writer.

        Args:
            api_key: Anthropic API key
            model: Claude model used for scripts
            max_words: Default word budget per script
            timeout: Request timeout in seconds
            max_retries: SDK-level retries for transient errors

        Raises:
            ValueError: If API key is not provided
        """
        if not api_key:
            raise ValueError("ClaudeClient requires ANTHROPIC_API_KEY")

        self.model = model
        self.max_words = max_words
        self.client = AsyncAnthropic(api_key=api_key, timeout=timeout, max_retries=max_retries)

        logger.info(f"ClaudeClient initialized, model: {model}, max_words: {max_words}")

    @classmethod
    def from_settings(cls, settings: Settings) -> "ClaudeClient":
        """
        Create ClaudeClient from application settings.

        Raises:
            ValueError: If ANTHROPIC_API_KEY is not set
        """
        return cls(
            api_key=settings.anthropic_api_key,
            model=settings.script_model,
            max_words=settings.script_max_words,
            timeout=settings.llm_timeout,
        )

    async def __aenter__(self) -> "ClaudeClient":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    async def close(self) -> None:
        """Close the client and release resources."""
        await self.client.close()

    async def write_script(self, brief: str, max_words: int | None = None) -> str:
        """
        Turn a brief into a narration script.

        Args:
            brief: What the video is about
            max_words: Word budget (default: client's max_words)

        Returns:
            Speakable script, possibly empty if the model returned nothing usable

        Raises:
            AIClientError: If the API call fails
        """
        limit = max_words or self.max_words

        try:
            response = await self.client.messages.create(
                model=self.model,
                max_tokens=limit * TOKENS_PER_WORD,
                temperature=0.7,
                system=SCRIPT_SYSTEM_PROMPT.format(max_words=limit),
                messages=[{"role": "user", "content": brief}],
            )
        except APITimeoutError as e:
            raise AIClientTimeoutError(
                "Script generation timeout", provider="claude", model=self.model, original_error=e
            ) from e
        except APIConnectionError as e:
            raise AIClientConnectionError(
                f"Cannot connect to Claude API: {e}", provider="claude", original_error=e
            ) from e
        except APIStatusError as e:
            logger.error(f"Claude API error: {e.status_code} - {e.message}")
            raise AIClientResponseError(
                f"Claude API error: {e.message}",
                provider="claude",
                model=self.model,
                status_code=e.status_code,
                response_body=str(e.body) if e.body else None,
                original_error=e,
            ) from e

        raw = "".join(block.text for block in response.content if block.type == "text")
        script = fit_script(raw, limit)

        logger.info(
            f"Script: {len(script.split())}/{limit} words "
            f"(stop={response.stop_reason}, tokens {response.usage.input_tokens} in / "
            f"{response.usage.output_tokens} out)"
        )
        return script
