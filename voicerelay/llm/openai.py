"""OpenAI-compatible chat completion client."""

import json
import logging
from typing import Optional, Sequence

import httpx

from ..prompts import COMPLETION_FALLBACK
from .provider import (
    ChatMessage,
    CompletionAuthError,
    CompletionBadRequestError,
    CompletionError,
    CompletionRateLimitError,
    CompletionServerError,
)

logger = logging.getLogger("voicerelay.llm.openai")


def _raise_for_status(resp: httpx.Response):
    """Map a non-2xx response to a typed CompletionError."""
    code = resp.status_code
    detail = resp.text[:200]
    if code == 429:
        raise CompletionRateLimitError(f"Rate limited (429): {detail}")
    if code in (401, 403):
        raise CompletionAuthError(f"Authentication failed ({code}): {detail}")
    if code == 400:
        raise CompletionBadRequestError(f"Bad request (400): {detail}")
    raise CompletionServerError(f"Completion service returned HTTP {code}: {detail}")


def _extract_content(data: dict) -> Optional[str]:
    """Pull choices[0].message.content out of a response body, if present."""
    choices = data.get("choices") if isinstance(data, dict) else None
    if not choices:
        return None
    message = choices[0].get("message") or {}
    content = message.get("content")
    return content or None


class CompletionClient:
    """Chat completion client for any OpenAI-compatible endpoint.

    Sends the system prompt followed by the conversation history and
    returns the generated text. No retries: a failed call fails the event.
    """

    def __init__(
        self,
        api_key: str,
        model: str = "gpt-4o",
        temperature: float = 0.7,
        max_tokens: int = 200,
        base_url: str = "https://api.openai.com/v1",
        timeout: float = 60.0,
    ):
        self.api_key = api_key
        self.model = model
        self.temperature = temperature
        self.max_tokens = max_tokens
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout

    def _get_headers(self) -> dict:
        return {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }

    @staticmethod
    def build_messages(history: Sequence, system_prompt: str) -> list[dict]:
        """System entry first, then every history turn in order."""
        messages = [ChatMessage(role="system", content=system_prompt).to_dict()]
        for turn in history:
            messages.append(turn.to_message())
        return messages

    async def complete(self, history: Sequence, system_prompt: str) -> str:
        """Generate the next assistant reply.

        Args:
            history: Ordered turns (objects with .role and .content)
            system_prompt: Composed system prompt

        Returns:
            Generated text, or COMPLETION_FALLBACK if the response has none

        Raises:
            CompletionError: network failure, HTTP error or unparseable body
        """
        body = {
            "model": self.model,
            "messages": self.build_messages(history, system_prompt),
            "temperature": self.temperature,
            "max_tokens": self.max_tokens,
        }

        logger.debug(f"Request: model={self.model}, messages={len(body['messages'])}")

        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                resp = await client.post(
                    f"{self.base_url}/chat/completions",
                    json=body,
                    headers=self._get_headers(),
                )
        except httpx.HTTPError as e:
            raise CompletionError(f"Completion request failed: {type(e).__name__}: {e}") from e

        if resp.status_code >= 400:
            logger.error(f"Completion API error: {resp.status_code} - {resp.text[:200]}")
            _raise_for_status(resp)

        try:
            data = resp.json()
        except (json.JSONDecodeError, ValueError) as e:
            raise CompletionError(f"Unparseable completion response: {e}") from e

        content = _extract_content(data)
        if content is None:
            logger.warning("Completion response had no content, using fallback reply")
            return COMPLETION_FALLBACK

        usage = data.get("usage") or {}
        logger.info(
            f"Completion: {len(content)} chars "
            f"(in={usage.get('prompt_tokens', 0)}, out={usage.get('completion_tokens', 0)})"
        )
        return content
