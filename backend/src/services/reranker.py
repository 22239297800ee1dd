"""Relevance re-ranking of retrieved candidates."""
import json
import logging
from typing import Any
from uuid import UUID

from schemas.search import Ranking
from services.bookmark_store import SearchCandidate
from services.llm import TextGenerator
from services.utils import extract_json_array

logger = logging.getLogger(__name__)

NEUTRAL_SCORE = 0.5
NO_RANKER_EXPLANATION = "No AI ranking available"
RANKING_FAILED_EXPLANATION = "Ranking unavailable"
PREVIEW_CHARS = 200

RERANK_SYSTEM_PROMPT = """You are a relevance ranking expert for search results.

Analyze each bookmark and assign a relevance score (0-1) based on how well it matches the user's query.

Consider:
- Semantic meaning and context
- Exact keyword matches
- Tag relevance
- Overall content match

Return a JSON array with this structure:
[
  {{ "id": "bookmark-id", "score": 0.95, "explanation": "Perfect match for query about..." }},
  {{ "id": "bookmark-id", "score": 0.7, "explanation": "Partial match..." }}
]

Return ONLY the top {top_k} most relevant results, ordered by score (highest first)."""  # noqa: E501


def neutral_rankings(
    candidates: list[SearchCandidate],
    top_k: int,
    explanation: str,
) -> list[Ranking]:
    """Keep retrieval order with a fixed neutral score."""
    return [
        Ranking(id=c.bookmark.id, score=NEUTRAL_SCORE, explanation=explanation)
        for c in candidates[:top_k]
    ]


def parse_rankings(raw: str, top_k: int) -> list[Ranking]:
    """
    Validate the model's ranking array.

    Entries without a usable id or score are dropped; scores are clamped to
    [0, 1]; duplicate ids keep their first occurrence.

    Raises:
        AIResponseParseError: If no JSON array is present.
    """
    rankings: list[Ranking] = []
    seen: set[UUID] = set()
    for entry in extract_json_array(raw):
        ranking = _ranking_from_entry(entry)
        if ranking is None or ranking.id in seen:
            continue
        seen.add(ranking.id)
        rankings.append(ranking)
    return rankings[:top_k]


def _ranking_from_entry(entry: Any) -> Ranking | None:
    if not isinstance(entry, dict):
        return None
    score = entry.get("score")
    if isinstance(score, bool) or not isinstance(score, int | float):
        return None
    try:
        bookmark_id = UUID(str(entry.get("id")))
    except ValueError:
        return None
    explanation = entry.get("explanation")
    return Ranking(
        id=bookmark_id,
        score=min(max(float(score), 0.0), 1.0),
        explanation=explanation if isinstance(explanation, str) else "",
    )


def merge_rankings(
    rankings: list[Ranking],
    candidates: list[SearchCandidate],
) -> list[tuple[SearchCandidate, Ranking]]:
    """Join rankings to candidates by id, in ranking order. Unknown ids are dropped."""
    by_id = {c.bookmark.id: c for c in candidates}
    return [(by_id[r.id], r) for r in rankings if r.id in by_id]


class Reranker:
    """AI relevance scoring with a neutral, order-preserving fallback."""

    def __init__(self, generator: TextGenerator | None) -> None:
        self.generator = generator

    async def rerank(
        self,
        query: str,
        candidates: list[SearchCandidate],
        top_k: int,
    ) -> list[Ranking]:
        """
        Score candidates for relevance to the query.

        Returns at most top_k rankings. Never raises.
        """
        if self.generator is None or not candidates:
            return neutral_rankings(candidates, top_k, NO_RANKER_EXPLANATION)

        formatted = [
            {
                "index": index,
                "id": str(c.bookmark.id),
                "title": c.bookmark.title,
                "tags": ", ".join(c.bookmark.tags or []),
                "preview": (c.bookmark.content or "")[:PREVIEW_CHARS],
            }
            for index, c in enumerate(candidates)
        ]
        user = f'Query: "{query}"\n\nBookmarks:\n{json.dumps(formatted, indent=2)}'
        try:
            raw = await self.generator.complete(
                RERANK_SYSTEM_PROMPT.format(top_k=top_k), user,
                max_tokens=2048, temperature=0.2,
            )
            known = {c.bookmark.id for c in candidates}
            rankings = [r for r in parse_rankings(raw, top_k) if r.id in known]
        except Exception:
            logger.exception("Reranking failed; keeping retrieval order")
            return neutral_rankings(candidates, top_k, RANKING_FAILED_EXPLANATION)
        if not rankings:
            logger.warning("Reranker returned no usable rankings; keeping retrieval order")
            return neutral_rankings(candidates, top_k, RANKING_FAILED_EXPLANATION)
        return rankings
