from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Optional

from openai import OpenAI

from ..config import OpenAIConfig


LOGGER = logging.getLogger("agent_builder.openai")


@dataclass
class OpenAIClient:
    """Thin wrapper around chat completions that asks for JSON objects."""

    model: str
    temperature: float
    max_output_tokens: Optional[int]
    api_key_provider: Callable[[], str]
    base_url: Optional[str] = None
    timeout: float = 60.0
    _client: Optional[Any] = field(default=None, init=False, repr=False)
    _api_key: Optional[str] = field(default=None, init=False, repr=False)

    @classmethod
    def from_config(cls, config: OpenAIConfig, api_key_provider: Callable[[], str]) -> "OpenAIClient":
        return cls(
            model=config.model,
            temperature=config.temperature,
            max_output_tokens=config.max_output_tokens,
            api_key_provider=api_key_provider,
            base_url=config.base_url,
            timeout=config.timeout_seconds,
        )

    def complete(self, system_prompt: str, user_content: str) -> str:
        """Return the text of the first choice; SDK errors propagate to the caller."""

        client = self._ensure_client(self.api_key_provider())
        request_params: Dict[str, Any] = {
            "model": self.model,
            "messages": [
                {"role": "system", "content": system_prompt},
                {"role": "user", "content": user_content},
            ],
            "temperature": self.temperature,
            "response_format": {"type": "json_object"},
        }
        if self.max_output_tokens is not None:
            request_params["max_tokens"] = self.max_output_tokens
        LOGGER.debug("Invoking chat completions with model %s", self.model)
        response = client.chat.completions.create(**request_params)
        return self._extract_text(response)

    def _ensure_client(self, api_key: str) -> Any:
        if self._client is not None and self._api_key == api_key:
            return self._client
        kwargs: Dict[str, Any] = {"api_key": api_key}
        if self.base_url:
            kwargs["base_url"] = self.base_url
        client = OpenAI(**kwargs)
        if self.timeout:
            client = client.with_options(timeout=self.timeout)
        self._client = client
        self._api_key = api_key
        return self._client

    @staticmethod
    def _extract_text(response: Any) -> str:
        choices = getattr(response, "choices", None) or []
        for choice in choices:
            message = getattr(choice, "message", None)
            content = getattr(message, "content", None)
            if isinstance(content, str) and content.strip():
                return content.strip()
        return ""


__all__ = ["OpenAIClient"]
