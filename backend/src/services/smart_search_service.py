"""Natural-language search: parse, embed, retrieve, rerank."""
import logging

from schemas.bookmark import BookmarkResponse
from schemas.search import SmartSearchResponse, SmartSearchResult
from services.embeddings import EmbeddingResult, EmbeddingService
from services.query_parser import QueryParser
from services.reranker import Reranker, merge_rankings
from services.retrieval import RetrievalEngine

logger = logging.getLogger(__name__)

NO_QUERY_MESSAGE = "No query provided"
NO_RESULTS_MESSAGE = "No bookmarks found matching your query"


class SmartSearchService:
    """
    Search façade.

    Parser, embedding, and reranker failures all degrade to fallbacks inside
    their components; only StoreUnavailableError escapes search().
    """

    def __init__(
        self,
        parser: QueryParser,
        embeddings: EmbeddingService,
        retrieval: RetrievalEngine,
        reranker: Reranker,
    ) -> None:
        self.parser = parser
        self.embeddings = embeddings
        self.retrieval = retrieval
        self.reranker = reranker

    async def search(self, query: str, user_id: str, limit: int) -> SmartSearchResponse:
        """
        Run a natural-language search for one user.

        A blank query returns an empty response without touching the store.
        """
        if not query or not query.strip():
            return SmartSearchResponse(results=[], query="", parsed=None, message=NO_QUERY_MESSAGE)

        parsed = await self.parser.parse(query)
        logger.info(
            "Parsed query %r: keywords=%s filters=%s",
            query, parsed.search_keywords, parsed.filters.model_dump(exclude_defaults=True),
        )

        query_embedding = EmbeddingResult.empty()
        if await self.retrieval.store.has_embedding_column():
            query_embedding = await self.embeddings.embed(parsed.semantic_query or query)

        candidates = await self.retrieval.retrieve(parsed, user_id, limit, query_embedding)
        if not candidates:
            return SmartSearchResponse(
                results=[], query=query, parsed=parsed, total_results=0, message=NO_RESULTS_MESSAGE,
            )

        rankings = await self.reranker.rerank(query, candidates, limit)
        results = [
            SmartSearchResult(
                **BookmarkResponse.model_validate(candidate.bookmark).model_dump(),
                relevance_score=ranking.score,
                explanation=ranking.explanation,
                vector_similarity=candidate.similarity,
            )
            for candidate, ranking in merge_rankings(rankings, candidates)
        ]
        return SmartSearchResponse(
            results=results,
            query=query,
            parsed=parsed,
            total_results=len(results),
            message=f"Found {len(results)} relevant bookmarks",
        )
