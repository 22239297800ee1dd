"""
Embedding generation for semantic search.

EmbeddingService tries an ordered chain of providers (Gemini first, then
OpenAI). Each provider fixes its own output dimension, and every result
records which model produced it so vectors from different models are never
compared. When no provider is configured, or all fail, the service returns
EmbeddingResult.empty() and search degrades to keyword-only.
"""
import asyncio
import logging
import math
import re
from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import Protocol

from google import genai
from google.genai import types as genai_types
from openai import AsyncOpenAI

from core.config import Settings
from services.content_classifier import extract_domain
from services.exceptions import EmbeddingDimensionError, ProviderNotConfiguredError

logger = logging.getLogger(__name__)

GEMINI_DIMENSIONS = 768
OPENAI_DIMENSIONS = 1536
MIN_EMBEDDING_TEXT_LENGTH = 3

_WHITESPACE = re.compile(r"\s+")


def build_embedding_text(
    title: str,
    content: str | None = None,
    tags: Sequence[str] | None = None,
    url: str | None = None,
    content_chars: int = 2000,
    max_chars: int = 8000,
) -> str:
    """
    Compose the weighted text representation of a bookmark.

    Weighting is by repetition: title three times, tags twice, then the
    truncated content and the URL's bare domain.
    """
    parts = [title, title, title]
    if tags:
        tag_text = " ".join(tags)
        parts.extend([tag_text, tag_text])
    if content:
        parts.append(content[:content_chars])
    domain = extract_domain(url)
    if domain:
        parts.append(domain)
    return clean_embedding_text(" ".join(parts), max_chars)


def clean_embedding_text(text: str, max_chars: int = 8000) -> str:
    """Collapse whitespace and truncate to the provider input budget."""
    return _WHITESPACE.sub(" ", text).strip()[:max_chars]


@dataclass(frozen=True)
class EmbeddingResult:
    """A vector and the model that produced it. Empty when no provider succeeded."""

    vector: list[float] = field(default_factory=list)
    model: str | None = None
    dimensions: int = 0

    def __post_init__(self) -> None:
        if len(self.vector) != self.dimensions:
            raise EmbeddingDimensionError(
                f"Embedding from {self.model} has {len(self.vector)} values, "
                f"expected {self.dimensions}",
            )

    @classmethod
    def empty(cls) -> "EmbeddingResult":
        """The explicit 'no embedding' result."""
        return cls()

    @property
    def is_empty(self) -> bool:  # noqa: D102
        return not self.vector


def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    """
    Cosine similarity of two equal-length vectors.

    Raises:
        EmbeddingDimensionError: If the vectors differ in length or are empty.
    """
    if len(a) != len(b):
        raise EmbeddingDimensionError(
            f"Cannot compare vectors of different dimensions ({len(a)} vs {len(b)})",
        )
    if not a:
        raise EmbeddingDimensionError("Cannot compare zero-length vectors")
    dot = sum(x * y for x, y in zip(a, b, strict=True))
    norm_a = math.sqrt(sum(x * x for x in a))
    norm_b = math.sqrt(sum(y * y for y in b))
    if norm_a == 0 or norm_b == 0:
        return 0.0
    return dot / (norm_a * norm_b)


class EmbeddingProvider(Protocol):
    """One embedding backend with a fixed output dimension."""

    name: str
    model: str
    dimensions: int

    async def embed(self, text: str) -> list[float]:
        """Return the embedding vector for text."""
        ...


class GeminiEmbeddingProvider:
    """Google Gemini embeddings (free tier capable)."""

    name = "gemini"

    def __init__(
        self,
        api_key: str,
        model: str = "text-embedding-004",
        dimensions: int = GEMINI_DIMENSIONS,
        timeout: float = 60.0,
    ) -> None:
        self.model = model
        self.dimensions = dimensions
        self.timeout = timeout
        self._client = genai.Client(api_key=api_key) if api_key else None

    async def embed(self, text: str) -> list[float]:
        """Embed text with Gemini, asking for this provider's output dimension."""
        if self._client is None:
            raise ProviderNotConfiguredError(self.name)
        async with asyncio.timeout(self.timeout):
            response = await self._client.aio.models.embed_content(
                model=self.model,
                contents=text,
                config=genai_types.EmbedContentConfig(output_dimensionality=self.dimensions),
            )
        values = response.embeddings[0].values if response.embeddings else None
        if not values:
            raise ValueError("Empty embedding returned from Gemini")
        return [float(v) for v in values]


class OpenAIEmbeddingProvider:
    """OpenAI embeddings (paid fallback)."""

    name = "openai"

    def __init__(
        self,
        api_key: str,
        model: str = "text-embedding-3-small",
        dimensions: int = OPENAI_DIMENSIONS,
        timeout: float = 60.0,
    ) -> None:
        self.model = model
        self.dimensions = dimensions
        self.timeout = timeout
        self._client = AsyncOpenAI(api_key=api_key, timeout=timeout) if api_key else None

    async def embed(self, text: str) -> list[float]:
        """Embed text with the OpenAI embeddings endpoint."""
        if self._client is None:
            raise ProviderNotConfiguredError(self.name)
        async with asyncio.timeout(self.timeout):
            response = await self._client.embeddings.create(
                model=self.model,
                input=text,
                encoding_format="float",
            )
        return list(response.data[0].embedding)


class EmbeddingService:
    """Ordered provider chain; the first provider that succeeds wins."""

    def __init__(
        self,
        providers: Sequence[EmbeddingProvider],
        content_chars: int = 2000,
        max_chars: int = 8000,
    ) -> None:
        self.providers = list(providers)
        self.content_chars = content_chars
        self.max_chars = max_chars

    async def embed(self, text: str) -> EmbeddingResult:
        """
        Embed text with the first provider that succeeds.

        Returns:
            The result, or EmbeddingResult.empty() when the text is too short,
            no provider is configured, or every provider failed.

        Raises:
            EmbeddingDimensionError: If a provider returns a vector whose length
                does not match its declared dimension.
        """
        cleaned = clean_embedding_text(text, self.max_chars)
        if len(cleaned) < MIN_EMBEDDING_TEXT_LENGTH:
            logger.warning("Text too short for embedding generation")
            return EmbeddingResult.empty()

        for provider in self.providers:
            try:
                vector = await provider.embed(cleaned)
            except ProviderNotConfiguredError:
                logger.debug("Embedding provider %s not configured", provider.name)
                continue
            except Exception:
                logger.exception("Embedding provider %s failed", provider.name)
                continue
            logger.info(
                "Generated %d-dimensional embedding with %s", len(vector), provider.name,
            )
            return EmbeddingResult(
                vector=vector, model=provider.model, dimensions=provider.dimensions,
            )

        logger.warning("No embedding provider available; semantic search disabled")
        return EmbeddingResult.empty()

    async def embed_bookmark(
        self,
        title: str,
        content: str | None = None,
        tags: Sequence[str] | None = None,
        url: str | None = None,
    ) -> EmbeddingResult:
        """Embed a bookmark's weighted text representation."""
        text = build_embedding_text(
            title, content, tags, url,
            content_chars=self.content_chars,
            max_chars=self.max_chars,
        )
        return await self.embed(text)


def build_embedding_service(settings: Settings) -> EmbeddingService:
    """Construct the Gemini -> OpenAI chain from settings."""
    providers: list[EmbeddingProvider] = [
        GeminiEmbeddingProvider(
            settings.google_api_key,
            model=settings.gemini_embedding_model,
            timeout=settings.embedding_timeout,
        ),
        OpenAIEmbeddingProvider(
            settings.openai_api_key,
            model=settings.openai_embedding_model,
            timeout=settings.embedding_timeout,
        ),
    ]
    if not (settings.google_api_key or settings.openai_api_key):
        logger.warning("No embedding provider configured; set GOOGLE_API_KEY or OPENAI_API_KEY")
    return EmbeddingService(
        providers,
        content_chars=settings.embedding_content_chars,
        max_chars=settings.embedding_max_chars,
    )
