"""
Natural-language query understanding.

QueryParser asks the text model for a structured ParsedQuery. When no model is
configured, or its answer cannot be used, basic_parse_query() produces one
deterministically from keyword tables. parse() never raises.
"""
import calendar
import logging
import re
from collections.abc import Callable
from datetime import UTC, datetime, timedelta
from typing import Any

from pydantic import ValidationError

from core.taxonomy import CATEGORIES, CONTENT_TYPES, Category, ContentType
from schemas.search import DateRange, ParsedQuery, QueryFilters
from services.llm import TextGenerator
from services.utils import extract_json_object

logger = logging.getLogger(__name__)

FALLBACK_CONFIDENCE = 0.5
MIN_KEYWORD_LENGTH = 3

QUERY_SYSTEM_PROMPT = """You are an intelligent search query parser for a bookmark management system.

Your task is to parse natural language search queries and extract structured information.

Available content types: {content_types}
Available categories: {categories}

Parse the query and return a JSON object with this EXACT structure:
{{
  "intent": "find_bookmarks",
  "filters": {{
    "contentType": ["article"],
    "category": ["work"],
    "tags": ["ai", "machine learning"],
    "dateRange": {{
      "start": "2024-10-01",
      "end": "2024-10-31"
    }}
  }},
  "keywords": ["AI agents", "autonomous"],
  "expandedKeywords": ["artificial intelligence", "autonomous systems", "intelligent agents", "AI", "automation"],
  "semanticQuery": "artificial intelligence autonomous agents systems",
  "contextualHints": ["looking for technical articles", "interested in AI agent architecture"],
  "confidence": 0.9
}}

Rules:
1. intent is one of: find_bookmarks, filter_bookmarks, recall_content
2. Only include filters that are explicitly mentioned or clearly implied
3. For date ranges, calculate actual dates based on today being {today}
4. Extract and expand keywords with synonyms and related terms
5. semanticQuery should be optimized for semantic search (remove stop words, focus on meaning)
6. confidence should reflect how well you understood the query (0-1)
7. Return ONLY valid JSON, no markdown or explanations"""  # noqa: E501

CONTENT_TYPE_WORDS: dict[str, ContentType] = {
    "video": "video",
    "videos": "video",
    "product": "product",
    "products": "product",
    "article": "article",
    "articles": "article",
    "tweet": "tweet",
    "tweets": "tweet",
    "note": "note",
    "notes": "note",
    "image": "image",
    "images": "image",
    "screenshot": "image",
}

CATEGORY_WORDS: dict[str, Category] = {
    "work": "work",
    "business": "work",
    "personal": "personal",
    "research": "research",
    "study": "learning",
    "inspiration": "inspiration",
    "design": "inspiration",
    "shopping": "shopping",
    "buy": "shopping",
    "entertainment": "entertainment",
    "learning": "learning",
    "learn": "learning",
    "tutorial": "learning",
}

STOP_WORDS = frozenset({
    "the", "a", "an", "and", "or", "but", "in", "on", "at", "to", "for", "of", "with",
    "by", "from", "about", "show", "me", "find", "search", "my", "i", "saved",
})

KEYWORD_EXPANSIONS: dict[str, tuple[str, ...]] = {
    "study": (
        "study", "learn", "education", "book", "textbook", "tutorial", "course", "lesson",
        "academic",
    ),
    "learn": ("learn", "study", "education", "tutorial", "course", "lesson", "training"),
    "math": ("math", "maths", "mathematics", "algebra", "calculus", "geometry"),
    "maths": ("math", "maths", "mathematics", "algebra", "calculus", "geometry"),
    "code": ("code", "coding", "programming", "development", "software"),
    "phone": ("phone", "smartphone", "mobile", "iphone", "android"),
    "video": ("video", "watch", "youtube", "tutorial"),
    "book": ("book", "ebook", "textbook", "reading"),
}

_WORD = re.compile(r"[\w'-]+")


def _unique(items: list[str]) -> list[str]:
    return list(dict.fromkeys(items))


def _months_ago(moment: datetime, months: int) -> datetime:
    month_index = moment.month - 1 - months
    year = moment.year + month_index // 12
    month = month_index % 12 + 1
    day = min(moment.day, calendar.monthrange(year, month)[1])
    return moment.replace(year=year, month=month, day=day)


def _start_of_day(moment: datetime) -> datetime:
    return moment.replace(hour=0, minute=0, second=0, microsecond=0)


def relative_date_range(text: str, now: datetime) -> DateRange | None:
    """Recognize 'yesterday', 'last week', and 'last month'."""
    today = _start_of_day(now)
    if "yesterday" in text:
        yesterday = today - timedelta(days=1)
        return DateRange(start=yesterday, end=yesterday)
    if "last week" in text:
        return DateRange(start=today - timedelta(days=7), end=today)
    if "last month" in text:
        return DateRange(start=_months_ago(today, 1), end=today)
    return None


def expand_keywords(keywords: list[str]) -> list[str]:
    """Keywords plus their synonyms from KEYWORD_EXPANSIONS, in first-seen order."""
    expanded: list[str] = []
    for keyword in keywords:
        expanded.append(keyword)
        expanded.extend(KEYWORD_EXPANSIONS.get(keyword, ()))
    return _unique(expanded)


def basic_parse_query(query: str, now: datetime | None = None) -> ParsedQuery:
    """
    Deterministic query parsing used when the AI path is unavailable.

    Content type and category come from the first word found in each table;
    relative dates are recognized; keywords are the remaining words longer
    than two characters, expanded with fixed synonyms.
    """
    now = now or datetime.now(UTC)
    lowered = query.lower()
    words = _WORD.findall(lowered)
    word_set = set(words)

    content_type = next((t for w, t in CONTENT_TYPE_WORDS.items() if w in word_set), None)
    category = next((c for w, c in CATEGORY_WORDS.items() if w in word_set), None)

    keywords = _unique([
        w for w in words if len(w) >= MIN_KEYWORD_LENGTH and w not in STOP_WORDS
    ])
    return ParsedQuery(
        intent="find_bookmarks",
        filters=QueryFilters(
            content_type=[content_type] if content_type else [],
            category=[category] if category else [],
            date_range=relative_date_range(lowered, now),
        ),
        keywords=keywords,
        expanded_keywords=expand_keywords(keywords),
        semantic_query=" ".join(keywords) or query.strip(),
        contextual_hints=[],
        confidence=FALLBACK_CONFIDENCE,
    )


def _from_model_output(data: dict[str, Any]) -> dict[str, Any]:
    """Map the model's camelCase JSON onto ParsedQuery field names."""
    filters = data.get("filters")
    if isinstance(filters, dict):
        filters = {
            "content_type": filters.get("contentType", filters.get("content_type")),
            "category": filters.get("category"),
            "tags": filters.get("tags"),
            "date_range": filters.get("dateRange", filters.get("date_range")),
        }
    return {
        "intent": data.get("intent"),
        "filters": filters,
        "keywords": data.get("keywords"),
        "expanded_keywords": data.get("expandedKeywords", data.get("expanded_keywords")),
        "semantic_query": data.get("semanticQuery", data.get("semantic_query")),
        "contextual_hints": data.get("contextualHints", data.get("contextual_hints")),
        "confidence": data.get("confidence"),
    }


class QueryParser:
    """AI-first query parser with a deterministic fallback."""

    def __init__(
        self,
        generator: TextGenerator | None,
        clock: Callable[[], datetime] = lambda: datetime.now(UTC),
    ) -> None:
        self.generator = generator
        self.clock = clock

    async def parse(self, query: str) -> ParsedQuery:
        """Parse a query. Falls back to basic_parse_query() on any AI failure."""
        now = self.clock()
        if self.generator is None:
            logger.warning("No text generator configured; using basic query parsing")
            return basic_parse_query(query, now)

        system = QUERY_SYSTEM_PROMPT.format(
            content_types=", ".join(CONTENT_TYPES),
            categories=", ".join(CATEGORIES),
            today=f"{now:%B} {now.day}, {now.year}",
        )
        try:
            raw = await self.generator.complete(
                system, f'Parse this search query: "{query}"', max_tokens=1024, temperature=0.3,
            )
            parsed = ParsedQuery.model_validate(_from_model_output(extract_json_object(raw)))
        except ValidationError:
            logger.warning("AI query parse did not validate; using basic parsing")
            return basic_parse_query(query, now)
        except Exception:
            logger.exception("AI query parsing failed; using basic parsing")
            return basic_parse_query(query, now)

        if not parsed.semantic_query:
            parsed.semantic_query = query.strip()
        if not parsed.keywords and not parsed.expanded_keywords:
            fallback = basic_parse_query(query, now)
            parsed.keywords = fallback.keywords
            parsed.expanded_keywords = fallback.expanded_keywords
        return parsed
