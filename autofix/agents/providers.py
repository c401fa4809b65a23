"""
Generative model providers.

A provider turns a (system prompt, user prompt) pair into raw model text. It knows
nothing about edits or quota policy; transport and SDK failures surface as
GenerationFailed carrying the upstream message.
"""

from abc import ABC, abstractmethod
from typing import Optional

import ollama
from google import genai
from google.genai import errors as genai_errors
from google.genai import types as genai_types

from ..core.config import Settings
from ..core.errors import GenerationFailed, GenerationUnavailable
from util.logging import logger


class GenerationProvider(ABC):
    """Abstract base for generative collaborators."""

    name = "base"

    def __init__(self, model_name: str):
        self.model_name = model_name

    @abstractmethod
    async def complete(self, system_prompt: str, user_prompt: str) -> str:
        """Return the model's raw text answer."""
        pass


class GeminiProvider(GenerationProvider):
    """Google Gemini through the google-genai async client."""

    name = "gemini"

    def __init__(self, api_key: str, model_name: str = "gemini-2.5-flash",
                 temperature: float = 0.2, max_output_tokens: int = 8192):
        super().__init__(model_name)
        self.api_key = api_key
        self.temperature = temperature
        self.max_output_tokens = max_output_tokens
        self._client: Optional[genai.Client] = None

    def _get_client(self) -> genai.Client:
        if not self.api_key:
            raise GenerationUnavailable("GEMINI_API_KEY not configured on server.")
        if self._client is None:
            self._client = genai.Client(api_key=self.api_key)
        return self._client

    async def complete(self, system_prompt: str, user_prompt: str) -> str:
        client = self._get_client()
        config = genai_types.GenerateContentConfig(
            system_instruction=system_prompt,
            temperature=self.temperature,
            max_output_tokens=self.max_output_tokens,
        )
        try:
            response = await client.aio.models.generate_content(
                model=self.model_name,
                contents=user_prompt,
                config=config,
            )
        except genai_errors.APIError as e:
            raise GenerationFailed(f"Gemini API error {e.code}: {e.message or e}") from e
        except Exception as e:
            raise GenerationFailed(f"Gemini call failed: {e}") from e

        return response.text or ""


class OllamaProvider(GenerationProvider):
    """Local model served by Ollama."""

    name = "ollama"

    def __init__(self, model_name: str = "llama3.1", host: Optional[str] = None, temperature: float = 0.2):
        super().__init__(model_name)
        self.client = ollama.AsyncClient(host=host)
        self.temperature = temperature

    async def complete(self, system_prompt: str, user_prompt: str) -> str:
        try:
            response = await self.client.chat(
                model=self.model_name,
                messages=[
                    {"role": "system", "content": system_prompt},
                    {"role": "user", "content": user_prompt},
                ],
                options={"temperature": self.temperature},
            )
        except ollama.ResponseError as e:
            raise GenerationFailed(f"Ollama model error: {e.error}") from e
        except Exception as e:
            raise GenerationFailed(f"Ollama call failed: {e}") from e

        return response["message"]["content"] or ""


def build_provider(settings: Settings) -> GenerationProvider:
    """Create the configured provider."""
    if settings.generation_provider == "ollama":
        logger.info(f"Generation provider: ollama ({settings.ollama_model})")
        return OllamaProvider(settings.ollama_model, host=settings.ollama_host)

    if settings.generation_provider != "gemini":
        logger.warning(f"Unknown GENERATION_PROVIDER '{settings.generation_provider}', using gemini")
    logger.info(f"Generation provider: gemini ({settings.gemini_model})")
    return GeminiProvider(settings.gemini_api_key, settings.gemini_model)
