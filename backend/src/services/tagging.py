"""
Tag, summary, and category generation.

TagGenerator shares one text-generation capability between two independent
operations (tag generation and content analysis). Both are best-effort: any
failure yields an empty result and is logged, never raised.
"""
import logging
import re
from collections.abc import Iterable
from dataclasses import dataclass, field

from core.taxonomy import Category
from schemas.validators import clean_tags
from services.llm import TextGenerator
from services.utils import extract_json_array, extract_json_object

logger = logging.getLogger(__name__)

TAG_PROMPT_CONTENT_CHARS = 2000
ANALYSIS_PROMPT_CONTENT_CHARS = 3000

TAG_SYSTEM_PROMPT = "You generate concise, specific tags for organizing saved bookmarks."

TAG_PROMPT = """Analyze this content and extract 3-5 relevant, specific keywords or tags.

Rules:
- Tags should be concise (1-2 words max)
- Focus on main topics, technologies, categories, or key concepts
- Prioritize specificity over generic terms
- Use lowercase for consistency
- Return tags that would help in searching/organizing

Title: {title}
Content: {content}
{url_line}
Examples of good tags:
- "javascript", "react", "tutorial"
- "machine-learning", "python", "ai"
- "shopping", "electronics", "deals"
- "recipe", "cooking", "italian"

Return ONLY a JSON array of tags (no explanation):
["tag1", "tag2", "tag3"]"""

ANALYSIS_SYSTEM_PROMPT = "You summarize saved content for a personal knowledge base."

ANALYSIS_PROMPT = """Analyze this {content_type} content and provide:
1. A brief 2-3 sentence summary
2. 3-5 relevant tags/keywords
3. 2-3 key points or takeaways

Content: {content}
{url_line}
Respond in JSON format:
{{
  "summary": "...",
  "suggestedTags": ["tag1", "tag2", "tag3"],
  "keyPoints": ["point1", "point2"]
}}"""


@dataclass
class ContentAnalysis:
    """Summary, key points, and extra tags for a piece of content."""

    summary: str = ""
    key_points: list[str] = field(default_factory=list)
    suggested_tags: list[str] = field(default_factory=list)

    @property
    def is_empty(self) -> bool:  # noqa: D102
        return not (self.summary or self.key_points or self.suggested_tags)


def merge_tags(primary: Iterable[str], secondary: Iterable[str], limit: int) -> list[str]:
    """
    Ordered union of two tag lists, primary first, cleaned and capped.

    Re-applying the merge to its own output adds nothing, so the result never
    grows past the cap on a second pass.
    """
    return clean_tags([*primary, *secondary], limit=limit)


class TagGenerator:
    """AI tagging and content analysis over an injected TextGenerator."""

    def __init__(self, generator: TextGenerator | None, max_tags: int = 5) -> None:
        self.generator = generator
        self.max_tags = max_tags

    async def generate_tags(self, title: str, content: str | None, url: str | None = None) -> list[str]:
        """
        Ask the model for 3-5 tags.

        Returns:
            Cleaned tags (lowercase, 2-30 chars, deduplicated, capped), or []
            when no generator is configured or anything fails.
        """
        if self.generator is None:
            return []
        prompt = TAG_PROMPT.format(
            title=title,
            content=(content or "")[:TAG_PROMPT_CONTENT_CHARS],
            url_line=f"URL: {url}\n" if url else "",
        )
        try:
            raw = await self.generator.complete(
                TAG_SYSTEM_PROMPT, prompt, max_tokens=512, temperature=0.3,
            )
            tags = clean_tags(extract_json_array(raw), limit=self.max_tags)
        except Exception:
            logger.exception("Tag generation failed for %r", title)
            return []
        logger.info("Generated tags for %r: %s", title, ", ".join(tags))
        return tags

    async def analyze_content(
        self,
        content: str,
        content_type: str,
        url: str | None = None,
    ) -> ContentAnalysis:
        """
        Ask the model for a summary, key points, and suggested tags.

        Returns:
            The analysis, or an all-empty ContentAnalysis on any failure.
        """
        if self.generator is None:
            return ContentAnalysis()
        prompt = ANALYSIS_PROMPT.format(
            content_type=content_type,
            content=content[:ANALYSIS_PROMPT_CONTENT_CHARS],
            url_line=f"URL: {url}\n" if url else "",
        )
        try:
            raw = await self.generator.complete(
                ANALYSIS_SYSTEM_PROMPT, prompt, max_tokens=1024, temperature=0.3,
            )
            data = extract_json_object(raw)
        except Exception:
            logger.exception("Content analysis failed")
            return ContentAnalysis()

        summary = data.get("summary")
        key_points = data.get("keyPoints")
        suggested = data.get("suggestedTags")
        return ContentAnalysis(
            summary=summary.strip() if isinstance(summary, str) else "",
            key_points=[
                point.strip() for point in key_points
                if isinstance(point, str) and point.strip()
            ] if isinstance(key_points, list) else [],
            suggested_tags=clean_tags(suggested) if isinstance(suggested, list) else [],
        )


# First matching category wins; vocabulary is matched against individual words
CATEGORY_KEYWORDS: dict[Category, frozenset[str]] = {
    "work": frozenset({"code", "coding", "programming", "software", "tech", "developer", "business"}),
    "learning": frozenset({
        "learn", "learning", "education", "tutorial", "study", "book", "course", "lesson",
    }),
    "inspiration": frozenset({"design", "art", "creative", "inspiration", "photography"}),
    "entertainment": frozenset({"meme", "funny", "entertainment", "music", "movie", "game", "gaming"}),
    "shopping": frozenset({"shopping", "deals", "deal", "price", "product", "store"}),
    "research": frozenset({"research", "paper", "science", "analysis", "academic"}),
}

_WORD_SPLIT = re.compile(r"[^a-z0-9]+")


def infer_category(
    tags: Iterable[str],
    objects: Iterable[str] = (),
    content_type: str | None = None,
) -> Category:
    """
    Assign an organizational category from tag and object vocabulary.

    Deterministic: checks CATEGORY_KEYWORDS in order against the words of every
    tag and detected object. Products default to shopping; everything
    unmatched is personal.
    """
    words: set[str] = set()
    for term in [*tags, *objects]:
        lowered = term.lower()
        words.add(lowered)
        words.update(w for w in _WORD_SPLIT.split(lowered) if w)
    for category, vocabulary in CATEGORY_KEYWORDS.items():
        if words & vocabulary:
            return category
    if content_type == "product":
        return "shopping"
    return "personal"
