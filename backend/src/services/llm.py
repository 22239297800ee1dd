"""
Text and vision generation adapters.

Components depend on the TextGenerator / VisionGenerator protocols, never on a
vendor SDK. AnthropicGenerator implements both with one AsyncAnthropic client
built at startup and injected; build_generator() returns None when no API key
is configured so callers take their documented fallback path.
"""
import asyncio
import base64
import logging
from dataclasses import dataclass
from typing import Protocol

from anthropic import AsyncAnthropic

from core.config import Settings

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ImageSource:
    """An image given either as a public URL or as raw bytes."""

    url: str | None = None
    data: bytes | None = None
    media_type: str | None = None

    def __post_init__(self) -> None:
        if (self.url is None) == (self.data is None):
            raise ValueError("ImageSource needs exactly one of url or data")
        if self.data is not None and not self.media_type:
            raise ValueError("ImageSource with data needs a media_type")

    def to_content_block(self) -> dict:
        """Anthropic message content block for this image."""
        if self.url is not None:
            return {"type": "image", "source": {"type": "url", "url": self.url}}
        return {
            "type": "image",
            "source": {
                "type": "base64",
                "media_type": self.media_type,
                "data": base64.b64encode(self.data).decode("ascii"),
            },
        }


class TextGenerator(Protocol):
    """Text-generation capability."""

    async def complete(
        self,
        system: str,
        user: str,
        max_tokens: int = 1024,
        temperature: float = 0.3,
    ) -> str:
        """Return the model's text response."""
        ...


class VisionGenerator(Protocol):
    """Vision-generation capability."""

    async def complete_with_image(
        self,
        image: ImageSource,
        prompt: str,
        max_tokens: int = 2048,
    ) -> str:
        """Return the model's text response about the image."""
        ...


class AnthropicGenerator:
    """TextGenerator and VisionGenerator backed by the Anthropic Messages API."""

    def __init__(
        self,
        client: AsyncAnthropic,
        model: str,
        timeout: float = 30.0,
    ) -> None:
        self._client = client
        self.model = model
        self.timeout = timeout

    async def complete(
        self,
        system: str,
        user: str,
        max_tokens: int = 1024,
        temperature: float = 0.3,
    ) -> str:
        """Send a system + user prompt and return the concatenated text blocks."""
        async with asyncio.timeout(self.timeout):
            response = await self._client.messages.create(
                model=self.model,
                max_tokens=max_tokens,
                temperature=temperature,
                system=system,
                messages=[{"role": "user", "content": user}],
            )
        return _response_text(response)

    async def complete_with_image(
        self,
        image: ImageSource,
        prompt: str,
        max_tokens: int = 2048,
    ) -> str:
        """Send an image plus prompt in one user turn and return the text response."""
        async with asyncio.timeout(self.timeout):
            response = await self._client.messages.create(
                model=self.model,
                max_tokens=max_tokens,
                messages=[
                    {
                        "role": "user",
                        "content": [
                            image.to_content_block(),
                            {"type": "text", "text": prompt},
                        ],
                    },
                ],
            )
        return _response_text(response)


def _response_text(response: object) -> str:
    blocks = getattr(response, "content", None) or []
    return "".join(
        block.text for block in blocks if getattr(block, "type", None) == "text"
    )


def build_anthropic_client(settings: Settings) -> AsyncAnthropic | None:
    """Construct the shared Anthropic client, or None when no key is set."""
    if not settings.anthropic_api_key:
        logger.warning("ANTHROPIC_API_KEY not set; AI tagging, vision and reranking disabled")
        return None
    return AsyncAnthropic(api_key=settings.anthropic_api_key, timeout=settings.ai_timeout)


def build_generator(
    client: AsyncAnthropic | None,
    model: str,
    timeout: float,
) -> AnthropicGenerator | None:
    """Wrap the shared client for one model, or return None when unconfigured."""
    if client is None:
        return None
    return AnthropicGenerator(client, model=model, timeout=timeout)
