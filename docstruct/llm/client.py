"""Chat-completion adapter for the structuring step.

The orchestrator only needs text or "nothing usable". Transport, auth,
quota and timeout errors are all folded into ``LlmUnavailable`` and kept
for logging.
"""

from dataclasses import dataclass
from typing import Protocol

from openai import OpenAI, OpenAIError

from docstruct.errors import LlmUnavailable
from docstruct.utils.config import LLMConfig
from docstruct.utils.logger import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class CompletionOptions:
    """Sampling settings for a structuring request."""

    temperature: float = 0.0
    max_tokens: int = 3000


@dataclass(frozen=True)
class LLMCompletion:
    """Either the model's text or the reason there is none."""

    text: str | None = None
    error: LlmUnavailable | None = None

    @property
    def is_blank(self) -> bool:
        return self.text is None or not self.text.strip()


class LLMClient(Protocol):
    """Anything that can answer a system + user chat exchange."""

    def complete(
        self, system_prompt: str, user_payload: str, options: CompletionOptions
    ) -> LLMCompletion: ...


class OpenAIChatClient:
    """OpenAI-compatible chat-completions client.

    Args:
        config: Model name, endpoint, credentials and timeout.
        client: Pre-built SDK client; built from ``config`` when omitted.
    """

    def __init__(self, config: LLMConfig, client: OpenAI | None = None) -> None:
        self.config = config
        self._client = client

    def _get_client(self) -> OpenAI:
        if self._client is None:
            api_key = self.config.api_key()
            if not api_key:
                raise LlmUnavailable(
                    f"{self.config.api_key_env} environment variable must be set and non-empty"
                )
            self._client = OpenAI(
                api_key=api_key,
                base_url=self.config.base_url,
                timeout=self.config.timeout_s,
            )
        return self._client

    def complete(
        self, system_prompt: str, user_payload: str, options: CompletionOptions
    ) -> LLMCompletion:
        """Send one chat request and return the first choice's content."""
        try:
            response = self._get_client().chat.completions.create(
                model=self.config.model,
                messages=[
                    {"role": "system", "content": system_prompt},
                    {"role": "user", "content": user_payload},
                ],
                temperature=options.temperature,
                max_tokens=options.max_tokens,
            )
        except LlmUnavailable as exc:
            logger.warning("LLM client not configured: %s", exc)
            return LLMCompletion(error=exc)
        except OpenAIError as exc:
            logger.warning("LLM call failed (%s): %s", type(exc).__name__, exc)
            return LLMCompletion(error=LlmUnavailable(str(exc)))

        if not response.choices:
            logger.warning("LLM returned no choices")
            return LLMCompletion(error=LlmUnavailable("LLM returned no choices"))

        usage = response.usage
        logger.info(
            "LLM call completed - input: %s, output: %s tokens",
            usage.prompt_tokens if usage else "?",
            usage.completion_tokens if usage else "?",
        )
        return LLMCompletion(text=response.choices[0].message.content)
