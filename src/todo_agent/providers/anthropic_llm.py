"""Anthropic adapter implementing LanguageModel.

Structured output is obtained by forcing a single tool call: the tool's
input schema is the response schema and the tool input is returned as JSON
text. Transient errors (429, 5xx, connection) are retried by the SDK
(max_retries=3); anything left is raised as LanguageModelError.
"""

from __future__ import annotations

import json
import time
from typing import Any

import anthropic

from todo_agent.core.errors import LanguageModelError
from todo_agent.core.logging import get_logger

logger = get_logger(__name__)

SDK_MAX_RETRIES = 3


class AnthropicLanguageModel:
    """LanguageModel backed by the Anthropic Messages API."""

    def __init__(
        self,
        api_key: str,
        model: str,
        temperature: float = 0.3,
        max_tokens: int = 500,
        client: anthropic.AsyncAnthropic | None = None,
    ):
        self._client = client or anthropic.AsyncAnthropic(
            api_key=api_key,
            max_retries=SDK_MAX_RETRIES,
        )
        self._model = model
        self._temperature = temperature
        self._max_tokens = max_tokens

    async def complete(
        self,
        system_prompt: str,
        user_prompt: str,
        schema: dict[str, Any],
    ) -> str:
        """Call the model with `schema` as the forced tool and return its input as JSON.

        Raises:
            LanguageModelError: On API failure or when no tool call comes back
        """
        tool_name = schema["name"]
        start_time = time.monotonic()

        try:
            response = await self._client.messages.create(
                model=self._model,
                max_tokens=self._max_tokens,
                temperature=self._temperature,
                system=system_prompt,
                messages=[{"role": "user", "content": user_prompt}],
                tools=[schema],
                tool_choice={"type": "tool", "name": tool_name},
            )
        except anthropic.RateLimitError as e:
            raise LanguageModelError(
                f"Rate limited after SDK retries: {e}", status_code=429, error_code="rate_limited"
            ) from e
        except anthropic.APIConnectionError as e:
            raise LanguageModelError(f"API connection error after SDK retries: {e}") from e
        except anthropic.APIStatusError as e:
            raise LanguageModelError(
                f"API status error {e.status_code}: {e.message}", status_code=e.status_code
            ) from e

        duration_ms = int((time.monotonic() - start_time) * 1000)
        logger.debug(
            "llm_request_complete",
            model=self._model,
            duration_ms=duration_ms,
            input_tokens=response.usage.input_tokens,
            output_tokens=response.usage.output_tokens,
        )

        for block in response.content:
            if block.type == "tool_use" and block.name == tool_name:
                return json.dumps(block.input)

        raise LanguageModelError(f"No {tool_name} tool call in response")
