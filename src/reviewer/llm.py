"""Narrative generation via an OpenAI-compatible chat endpoint.

Turns the structured game summary (or a position hint prompt) into prose.
Falls back gracefully (returns None) when the LLM is unreachable or
answers with something unexpected.
"""

from __future__ import annotations

import logging

import httpx

from reviewer.summary import SUMMARY_SYSTEM_PROMPT, format_summary_prompt

logger = logging.getLogger(__name__)

_HINT_SYSTEM_PROMPT = (
    "You are an expert chess tutor who explains concepts clearly and concisely "
    'to beginners. You focus on the "why" behind moves, comparing strategic approaches.'
)


class GameNarrator:
    """Generates natural-language game summaries and position explanations."""

    def __init__(
        self,
        base_url: str,
        model: str,
        api_key: str | None = None,
        timeout: float = 30.0,
        max_tokens: int = 300,
        temperature: float = 0.7,
    ):
        self._url = base_url.rstrip("/")
        self._model = model
        self._api_key = api_key
        self._timeout = timeout
        self._max_tokens = max_tokens
        self._temperature = temperature

    async def summarize_game(self, payload: dict) -> str | None:
        """Summarize a reviewed game from its narrative payload.

        Returns None on any failure.
        """
        messages = [
            {"role": "system", "content": SUMMARY_SYSTEM_PROMPT},
            {"role": "user", "content": format_summary_prompt(payload)},
        ]
        return await self._chat(messages)

    async def explain_position(self, prompt: str) -> str | None:
        """Explain candidate moves from a prompt built by format_hint_prompt()."""
        messages = [
            {"role": "system", "content": _HINT_SYSTEM_PROMPT},
            {"role": "user", "content": prompt},
        ]
        return await self._chat(messages)

    async def _chat(self, messages: list[dict]) -> str | None:
        """POST to /v1/chat/completions and return the assistant content."""
        headers = {}
        if self._api_key:
            headers["Authorization"] = f"Bearer {self._api_key}"
        payload = {
            "model": self._model,
            "messages": messages,
            "temperature": self._temperature,
            "max_tokens": self._max_tokens,
            "stream": False,
        }
        try:
            async with httpx.AsyncClient(timeout=self._timeout) as client:
                resp = await client.post(
                    f"{self._url}/v1/chat/completions", json=payload, headers=headers,
                )
                resp.raise_for_status()
                data = resp.json()
                content = data["choices"][0]["message"]["content"]
        except (httpx.HTTPError, KeyError, IndexError, ValueError, TypeError) as e:
            logger.warning("Narrative request failed: %s", e)
            return None
        if not isinstance(content, str) or not content.strip():
            return None
        return content.strip()
