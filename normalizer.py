"""Content normalization and cleaning utilities."""
import re
from bs4 import BeautifulSoup
import bleach
from typing import Optional
import logging

logger = logging.getLogger(__name__)

# Display label used when a source gives a chapter no name
DEFAULT_CHAPTER_LABEL = "Глава"


class ContentCleaner:
    """
    Clean and normalize text scraped from work pages.

    Descriptions arrive as HTML fragments, rich-text JSON or plain text
    depending on the source; the catalog stores plain text.
    """

    def clean_text(self, raw: Optional[str]) -> Optional[str]:
        """
        Strip markup and normalize whitespace.

        Args:
            raw: Raw description (HTML or plain text)

        Returns:
            Plain text, or None if nothing remains
        """
        if not raw:
            return None

        # Keep paragraph breaks before dropping tags
        text = re.sub(r'(?i)<p(?:\s[^>]*)?>', '', raw)
        text = re.sub(r'(?i)<br\s*/?>|</p>', '\n', text)
        text = bleach.clean(text, tags=[], attributes={}, strip=True)
        # bleach escapes entities; decode them back to text
        text = BeautifulSoup(text, 'lxml').get_text()

        text = self._normalize_whitespace(text)
        return text or None

    def _normalize_whitespace(self, text: str) -> str:
        """Normalize paragraph spacing and whitespace."""
        lines = [re.sub(r'[ \t\u00a0]{2,}', ' ', line).strip() for line in text.splitlines()]
        text = '\n'.join(lines)

        # One line per paragraph
        text = re.sub(r'\n{2,}', '\n', text)

        return text.strip()


class SlugGenerator:
    """Generate URL-safe slugs from titles."""

    @staticmethod
    def generate_slug(text: str) -> str:
        """
        Generate a URL-safe slug from text.

        Args:
            text: Input text (e.g., genre label)

        Returns:
            Slugified text
        """
        from slugify import slugify
        return slugify(text, max_length=500)


class GenreNormalizer:
    """
    Normalize genre labels from various sources.

    Sources label the same genre differently ("Sci-Fi", "sci fi"); labels
    are compared by slug and the first spelling seen is kept for display.
    """

    @classmethod
    def normalize_genre(cls, raw_genre: str) -> Optional[str]:
        """
        Normalize a single genre label to its comparison slug.

        Args:
            raw_genre: Raw genre string from source

        Returns:
            Genre slug or None if invalid
        """
        if not raw_genre:
            return None

        clean = raw_genre.strip().lower()
        slug = SlugGenerator.generate_slug(clean)

        # Validate (must be reasonable length)
        if slug and 1 <= len(slug) <= 50:
            return slug

        return None

    @classmethod
    def normalize_genres(cls, raw_genres: list[str]) -> list[str]:
        """
        Clean a list of genre labels.

        Args:
            raw_genres: List of raw genre strings

        Returns:
            Stripped labels, deduplicated by slug, in source order
        """
        if not raw_genres:
            return []

        seen = set()
        genres = []

        for genre in raw_genres:
            slug = cls.normalize_genre(genre)
            if not slug or slug in seen:
                continue
            seen.add(slug)
            genres.append(genre.strip())

        return genres


class ChapterNumberParser:
    """Extract chapter numbers from loosely structured labels and URLs."""

    LABEL_PATTERN = re.compile(
        r'(?:Глава|Chapter|Гл\.|Ch\.)\s*(\d+(?:[.,]\d+)?)', re.IGNORECASE
    )
    URL_PATTERN = re.compile(r'/(?:glava|chapter)-(\d+(?:\.\d+)?)(?:/|$|\?)', re.IGNORECASE)

    @staticmethod
    def to_number(value) -> Optional[float]:
        """Convert an API field to a chapter number, None if not numeric."""
        if value is None or isinstance(value, bool):
            return None
        try:
            number = float(str(value).strip().replace(',', '.'))
        except ValueError:
            return None
        if number != number or number in (float('inf'), float('-inf')):
            return None
        return number

    @classmethod
    def from_label(cls, label: Optional[str]) -> Optional[float]:
        """Parse "Глава 12.5" / "Chapter 12" into a number."""
        if not label:
            return None
        match = cls.LABEL_PATTERN.search(label)
        if not match:
            return None
        return cls.to_number(match.group(1))

    @classmethod
    def from_url(cls, url: Optional[str]) -> Optional[float]:
        """Parse ".../glava-12/" style chapter URLs into a number."""
        if not url:
            return None
        match = cls.URL_PATTERN.search(url)
        if not match:
            return None
        return cls.to_number(match.group(1))

    @staticmethod
    def default_name(number: Optional[float]) -> str:
        """Display name for a chapter the source left unnamed."""
        if number is None:
            return "Без названия"
        if number == int(number):
            return f"{DEFAULT_CHAPTER_LABEL} {int(number)}"
        return f"{DEFAULT_CHAPTER_LABEL} {number}"
