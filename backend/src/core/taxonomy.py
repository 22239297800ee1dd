"""
Fixed vocabularies shared by the enrichment pipeline and the query parser.

The AI prompts and the filter logic both embed these value sets verbatim, so
changing one means changing the other.
"""
from typing import Literal, get_args

ContentType = Literal["video", "product", "article", "tweet", "note", "image"]
Category = Literal[
    "work", "personal", "research", "inspiration", "shopping", "entertainment", "learning",
]
QueryIntent = Literal["find_bookmarks", "filter_bookmarks", "recall_content"]

CONTENT_TYPES: tuple[str, ...] = get_args(ContentType)
CATEGORIES: tuple[str, ...] = get_args(Category)
QUERY_INTENTS: tuple[str, ...] = get_args(QueryIntent)

# Tag bounds applied to every tag source (user, AI, vision)
MIN_TAG_LENGTH = 2
MAX_TAG_LENGTH = 30
