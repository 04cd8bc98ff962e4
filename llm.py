"""Text and vision model services backed by Gemini."""

import io
import logging
from typing import Protocol

import PIL.Image
from google import genai
from google.genai import types

from config import GeminiConfig

logger = logging.getLogger(__name__)


class TextCompletion(Protocol):
    async def complete(self, prompt: str, temperature: float = 0.0, max_tokens: int = 2000) -> str:
        ...


class VisionCompletion(Protocol):
    async def complete_with_images(self, prompt: str, images: list[bytes]) -> str:
        ...


class GeminiClient:
    """Implements both model capabilities on one Gemini client.

    The underlying client is created on first use so that building the
    pipeline does not require an API key.
    """

    def __init__(self, config: GeminiConfig):
        self.config = config
        self._client: genai.Client | None = None

    def _get_client(self) -> genai.Client:
        if self._client is None:
            self._client = genai.Client(api_key=self.config.api_key or None)
        return self._client

    async def complete(self, prompt: str, temperature: float = 0.0, max_tokens: int = 2000) -> str:
        client = self._get_client()
        response = await client.aio.models.generate_content(
            model=self.config.model,
            contents=[prompt],
            config=types.GenerateContentConfig(
                temperature=temperature,
                max_output_tokens=max_tokens,
            ),
        )
        text = (response.text or "").strip()
        logger.debug(f"Text model returned {len(text)} characters")
        return text

    async def complete_with_images(self, prompt: str, images: list[bytes]) -> str:
        client = self._get_client()
        contents: list = [PIL.Image.open(io.BytesIO(data)) for data in images]
        contents.append(prompt)

        response = await client.aio.models.generate_content(
            model=self.config.vision_model,
            contents=contents,
            config=types.GenerateContentConfig(temperature=self.config.temperature),
        )
        text = (response.text or "").strip()
        logger.debug(f"Vision model returned {len(text)} characters for {len(images)} image(s)")
        return text
