"""
Text generation client (OpenAI chat completions).
"""

import logging
from typing import Optional

from openai import OpenAI, OpenAIError

from protocols_api.config import settings
from protocols_api.errors import UpstreamServiceError

logger = logging.getLogger(__name__)


class LLMClient:
    """Thin wrapper around the OpenAI chat completions API."""

    def __init__(
        self,
        api_key: Optional[str] = None,
        model: Optional[str] = None,
        timeout: Optional[float] = None,
    ):
        self.api_key = api_key or settings.openai_api_key
        self.model = model or settings.openai_model
        self.timeout = timeout or settings.openai_timeout_seconds
        self._client = None

    def _get_client(self) -> OpenAI:
        """Lazy load the OpenAI client."""
        if self._client is None:
            if not self.api_key:
                raise UpstreamServiceError("OPENAI_API_KEY no está configurada")
            self._client = OpenAI(api_key=self.api_key, timeout=self.timeout)
            logger.info(f"Initialized OpenAI client: {self.model}")
        return self._client

    def generate_text(self, system_prompt: str, user_prompt: str) -> str:
        """
        Free-text completion for a system and a user prompt.

        Raises:
            UpstreamServiceError: API failure, timeout or empty answer
        """
        client = self._get_client()
        try:
            response = client.chat.completions.create(
                model=self.model,
                messages=[
                    {"role": "system", "content": system_prompt},
                    {"role": "user", "content": user_prompt},
                ],
            )
        except OpenAIError as e:
            logger.error(f"OpenAI call failed: {e}")
            raise UpstreamServiceError("Error al generar texto con IA") from e

        content = response.choices[0].message.content if response.choices else None
        if not content:
            raise UpstreamServiceError("No se recibió respuesta de OpenAI")
        return content
