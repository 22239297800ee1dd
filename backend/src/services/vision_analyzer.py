"""Image understanding: OCR text, description, tags, and objects in one vision call."""
import logging
from dataclasses import dataclass, field
from typing import Any

from schemas.validators import clean_tags
from services.llm import ImageSource, VisionGenerator
from services.utils import extract_json_object

logger = logging.getLogger(__name__)

MAX_VISION_TAGS = 10
MAX_OBJECTS = 10
DEFAULT_CONFIDENCE = 0.8

VISION_PROMPT = """Analyze this image thoroughly and provide:

1. **OCR Text**: Extract ALL visible text from the image (even if it's handwritten, in screenshots, or watermarked)
2. **Description**: A clear 2-3 sentence description of what the image shows
3. **Tags**: 5-10 relevant keywords/tags for categorization and search
4. **Objects**: List of main objects, concepts, or elements visible in the image
{context}
Return response in this EXACT JSON format (no markdown, no code blocks):
{{
  "ocrText": "All extracted text here...",
  "description": "Clear description of the image...",
  "tags": ["tag1", "tag2", "tag3", "tag4", "tag5"],
  "objects": ["object1", "object2", "object3"],
  "confidence": 0.95
}}

Rules:
- ocrText: Include ALL text, maintain formatting if possible
- description: Be specific and descriptive
- tags: Lowercase, concise (1-2 words), relevant for search
- objects: Main subjects, themes, or concepts
- confidence: 0-1, how confident you are in the analysis"""  # noqa: E501


@dataclass
class ImageAnalysis:
    """Result of analyzing one image."""

    ocr_text: str = ""
    description: str = ""
    tags: list[str] = field(default_factory=list)
    objects: list[str] = field(default_factory=list)
    confidence: float = 0.0

    @classmethod
    def fallback(cls) -> "ImageAnalysis":
        """Result used whenever vision analysis is unavailable or fails."""
        return cls(
            ocr_text="",
            description="Image analysis unavailable",
            tags=["image"],
            objects=[],
            confidence=0.0,
        )


def build_context_block(surrounding_text: str | None, alt_text: str | None) -> str:
    """Render the optional page context appended to the vision prompt."""
    lines = []
    if surrounding_text:
        lines.append(f'Surrounding text from page: "{surrounding_text}"')
    if alt_text:
        lines.append(f'Alt text: "{alt_text}"')
    if not lines:
        return ""
    return "\nContext:\n" + "\n".join(lines) + "\n"


def parse_image_analysis(raw: str) -> ImageAnalysis:
    """
    Validate a vision model response into an ImageAnalysis.

    Raises:
        AIResponseParseError: If the response has no parseable JSON object.
    """
    data = extract_json_object(raw)
    return ImageAnalysis(
        ocr_text=_as_str(data.get("ocrText")),
        description=_as_str(data.get("description")) or "Image could not be analyzed",
        tags=clean_tags(_as_list(data.get("tags")), limit=MAX_VISION_TAGS),
        objects=_clean_objects(_as_list(data.get("objects"))),
        confidence=_clamp_confidence(data.get("confidence")),
    )


def _clean_objects(values: list) -> list[str]:
    objects: list[str] = []
    for value in values:
        if not isinstance(value, str):
            continue
        obj = value.strip().lower()
        if len(obj) >= 2 and obj not in objects:
            objects.append(obj)
    return objects[:MAX_OBJECTS]


def _as_str(value: Any) -> str:
    return value.strip() if isinstance(value, str) else ""


def _as_list(value: Any) -> list:
    return value if isinstance(value, list) else []


def _clamp_confidence(value: Any) -> float:
    if isinstance(value, bool) or not isinstance(value, int | float):
        return DEFAULT_CONFIDENCE
    return min(max(float(value), 0.0), 1.0)


class VisionAnalyzer:
    """
    Wraps a vision-capable generator.

    Never raises: with no generator configured, or on any failure, it returns
    ImageAnalysis.fallback().
    """

    def __init__(self, generator: VisionGenerator | None) -> None:
        self.generator = generator

    async def analyze(
        self,
        image_url: str,
        surrounding_text: str | None = None,
        alt_text: str | None = None,
    ) -> ImageAnalysis:
        """Analyze a publicly reachable image URL."""
        return await self._analyze(ImageSource(url=image_url), surrounding_text, alt_text)

    async def analyze_bytes(
        self,
        data: bytes,
        media_type: str,
        surrounding_text: str | None = None,
        alt_text: str | None = None,
    ) -> ImageAnalysis:
        """Analyze raw image bytes (sent base64 encoded)."""
        return await self._analyze(
            ImageSource(data=data, media_type=media_type), surrounding_text, alt_text,
        )

    async def _analyze(
        self,
        image: ImageSource,
        surrounding_text: str | None,
        alt_text: str | None,
    ) -> ImageAnalysis:
        if self.generator is None:
            logger.warning("No vision capability configured; using fallback image analysis")
            return ImageAnalysis.fallback()
        prompt = VISION_PROMPT.format(context=build_context_block(surrounding_text, alt_text))
        try:
            raw = await self.generator.complete_with_image(image, prompt, max_tokens=2048)
            analysis = parse_image_analysis(raw)
        except Exception:
            logger.exception("Image analysis failed")
            return ImageAnalysis.fallback()
        logger.info(
            "Image analysis complete: %d tags, %d objects, confidence %.2f",
            len(analysis.tags), len(analysis.objects), analysis.confidence,
        )
        return analysis
