"""Text-generation provider (OpenAI chat completions over HTTP)."""

import logging
from typing import Optional

import requests

from errors import ConfigurationError, ExternalAPIError, MalformedResponseError

logger = logging.getLogger(__name__)


class TextGenerationClient:
    """Single-shot completion client. No retries, no streaming."""

    API_URL = "https://api.openai.com/v1/chat/completions"

    def __init__(self, api_key: Optional[str], model: str = "gpt-4", timeout: float = 60):
        self.api_key = api_key
        self.model = model
        self.timeout = timeout
        if not self.api_key:
            logger.warning("OPENAI_API_KEY not set")

    def ensure_configured(self) -> None:
        if not self.api_key:
            raise ConfigurationError("OpenAI API key not configured")

    def complete(self, prompt: str, max_tokens: int = 2000) -> str:
        self.ensure_configured()

        payload = {
            "model": self.model,
            "messages": [{"role": "user", "content": prompt}],
            "max_tokens": max_tokens,
        }
        headers = {"Authorization": f"Bearer {self.api_key}"}
        try:
            r = requests.post(self.API_URL, json=payload, headers=headers, timeout=self.timeout)
        except requests.exceptions.RequestException as e:
            logger.error(f"OpenAI request failed: {e}")
            raise ExternalAPIError(f"KI-Anfrage fehlgeschlagen: {e}") from e

        if r.status_code != 200:
            logger.error(f"OpenAI returned status {r.status_code}")
            raise ExternalAPIError(f"KI-Provider Status {r.status_code}")

        try:
            return r.json()["choices"][0]["message"]["content"]
        except (ValueError, KeyError, IndexError, TypeError) as e:
            raise MalformedResponseError("KI-Provider lieferte eine unerwartete Antwort") from e
