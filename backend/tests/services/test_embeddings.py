"""Tests for embedding text composition, similarity, and the provider chain."""
import math
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from core.config import Settings
from services.embeddings import (
    EmbeddingResult,
    EmbeddingService,
    GeminiEmbeddingProvider,
    OpenAIEmbeddingProvider,
    build_embedding_service,
    build_embedding_text,
    clean_embedding_text,
    cosine_similarity,
)
from services.exceptions import EmbeddingDimensionError, ProviderNotConfiguredError
from tests.fakes import FakeEmbeddingProvider


class TestBuildEmbeddingText:
    """Tests for the weighted text representation."""

    def test__build_embedding_text__weights_title_and_tags(self) -> None:
        text = build_embedding_text(
            'Calculus Basics', 'Limits and derivatives.', ['math', 'learning'],
            'https://www.example.com/calc',
        )
        assert text == (
            'Calculus Basics Calculus Basics Calculus Basics '
            'math learning math learning '
            'Limits and derivatives. example.com'
        )

    def test__build_embedding_text__truncates_content(self) -> None:
        text = build_embedding_text('T', 'c' * 5000, content_chars=2000)
        assert text.count('c') == 2000

    def test__build_embedding_text__global_cap(self) -> None:
        text = build_embedding_text('word ' * 3000, max_chars=8000)
        assert len(text) == 8000

    def test__clean_embedding_text__collapses_whitespace(self) -> None:
        assert clean_embedding_text('  a\n\n b\t c  ') == 'a b c'


class TestCosineSimilarity:
    """Tests for cosine_similarity."""

    @pytest.mark.parametrize('vector', [[1.0, 2.0, 3.0], [0.5, -0.25], [7.0]])
    def test__cosine_similarity__self_is_one(self, vector: list[float]) -> None:
        assert math.isclose(cosine_similarity(vector, vector), 1.0)

    def test__cosine_similarity__orthogonal_and_opposite(self) -> None:
        assert cosine_similarity([1.0, 0.0], [0.0, 1.0]) == 0.0
        assert math.isclose(cosine_similarity([1.0, 2.0], [-1.0, -2.0]), -1.0)

    def test__cosine_similarity__zero_vector(self) -> None:
        assert cosine_similarity([0.0, 0.0], [1.0, 1.0]) == 0.0

    def test__cosine_similarity__dimension_mismatch(self) -> None:
        with pytest.raises(EmbeddingDimensionError, match='768 vs 1536'):
            cosine_similarity([0.1] * 768, [0.1] * 1536)

    def test__cosine_similarity__empty(self) -> None:
        with pytest.raises(EmbeddingDimensionError):
            cosine_similarity([], [])

    def test__embedding_dimension_error__is_value_error(self) -> None:
        assert issubclass(EmbeddingDimensionError, ValueError)


class TestEmbeddingResult:
    """Tests for EmbeddingResult."""

    def test__empty(self) -> None:
        result = EmbeddingResult.empty()
        assert result.is_empty
        assert result.model is None
        assert result.dimensions == 0

    def test__length_must_match_dimensions(self) -> None:
        with pytest.raises(EmbeddingDimensionError):
            EmbeddingResult(vector=[0.1, 0.2], model='m', dimensions=3)


class TestEmbeddingService:
    """Tests for the ordered provider chain."""

    async def test__embed__first_provider_wins(self) -> None:
        first = FakeEmbeddingProvider(name='gemini', model='gemini-model')
        second = FakeEmbeddingProvider(name='openai', model='openai-model')
        result = await EmbeddingService([first, second]).embed('math study')

        assert result.model == 'gemini-model'
        assert result.dimensions == first.dimensions
        assert second.calls == []

    async def test__embed__falls_back_on_failure(self) -> None:
        first = FakeEmbeddingProvider(name='gemini', error=RuntimeError('quota'))
        second = FakeEmbeddingProvider(name='openai', model='openai-model')
        result = await EmbeddingService([first, second]).embed('math study')

        assert result.model == 'openai-model'
        assert first.calls == ['math study']

    async def test__embed__skips_unconfigured(self) -> None:
        first = FakeEmbeddingProvider(name='gemini', error=ProviderNotConfiguredError('gemini'))
        second = FakeEmbeddingProvider(name='openai', model='openai-model')
        result = await EmbeddingService([first, second]).embed('math study')

        assert result.model == 'openai-model'

    async def test__embed__all_fail_is_empty(self) -> None:
        providers = [
            FakeEmbeddingProvider(error=ProviderNotConfiguredError('gemini')),
            FakeEmbeddingProvider(error=RuntimeError('down')),
        ]
        assert (await EmbeddingService(providers).embed('math study')).is_empty

    async def test__embed__no_providers_is_empty(self) -> None:
        assert (await EmbeddingService([]).embed('math study')).is_empty

    async def test__embed__short_text_skips_providers(self) -> None:
        provider = FakeEmbeddingProvider()
        result = await EmbeddingService([provider]).embed('  a \n')

        assert result.is_empty
        assert provider.calls == []

    async def test__embed__wrong_length_vector_raises(self) -> None:
        provider = FakeEmbeddingProvider(vector_fn=lambda _text: [1.0, 2.0])
        with pytest.raises(EmbeddingDimensionError):
            await EmbeddingService([provider]).embed('math study')

    async def test__embed_bookmark__uses_weighted_text(self) -> None:
        provider = FakeEmbeddingProvider()
        await EmbeddingService([provider]).embed_bookmark('Title', 'Body', ['tag'], None)
        assert provider.calls == ['Title Title Title tag tag Body']


class TestProviders:
    """Tests for the Gemini and OpenAI providers with SDKs mocked."""

    async def test__gemini__unconfigured_raises(self) -> None:
        provider = GeminiEmbeddingProvider(api_key='')
        with pytest.raises(ProviderNotConfiguredError):
            await provider.embed('text')

    async def test__gemini__embeds_with_async_client(self) -> None:
        client = MagicMock()
        client.aio.models.embed_content = AsyncMock(
            return_value=SimpleNamespace(embeddings=[SimpleNamespace(values=[0.1] * 768)]),
        )
        with patch('services.embeddings.genai.Client', return_value=client) as client_class:
            provider = GeminiEmbeddingProvider(api_key='key', model='text-embedding-004')
            vector = await provider.embed('hello world')

        client_class.assert_called_once_with(api_key='key')
        kwargs = client.aio.models.embed_content.await_args.kwargs
        assert kwargs['model'] == 'text-embedding-004'
        assert kwargs['contents'] == 'hello world'
        assert kwargs['config'].output_dimensionality == 768
        assert len(vector) == provider.dimensions == 768

    async def test__gemini__empty_embedding_raises(self) -> None:
        client = MagicMock()
        client.aio.models.embed_content = AsyncMock(
            return_value=SimpleNamespace(embeddings=[]),
        )
        with patch('services.embeddings.genai.Client', return_value=client):
            provider = GeminiEmbeddingProvider(api_key='key')

        with pytest.raises(ValueError, match='Empty embedding'):
            await provider.embed('hello world')

    async def test__openai__unconfigured_raises(self) -> None:
        with pytest.raises(ProviderNotConfiguredError):
            await OpenAIEmbeddingProvider(api_key='').embed('text')

    async def test__openai__embeds(self) -> None:
        provider = OpenAIEmbeddingProvider(api_key='sk-test')
        client = MagicMock()
        client.embeddings.create = AsyncMock(
            return_value=SimpleNamespace(data=[SimpleNamespace(embedding=[0.2] * 1536)]),
        )
        provider._client = client

        vector = await provider.embed('hello world')

        assert len(vector) == provider.dimensions == 1536
        client.embeddings.create.assert_awaited_once_with(
            model='text-embedding-3-small', input='hello world', encoding_format='float',
        )

    def test__build_embedding_service__gemini_then_openai(self, settings: Settings) -> None:
        service = build_embedding_service(settings)
        assert [p.name for p in service.providers] == ['gemini', 'openai']
        assert [p.dimensions for p in service.providers] == [768, 1536]
