"""Telemanga source: JSON REST API."""
import logging
import time
from typing import Any, Dict, List, Optional
from urllib.parse import quote, unquote

import requests
from pydantic import BaseModel

from config import settings
from normalizer import ChapterNumberParser, ContentCleaner, GenreNormalizer
from sources.base import ChapterRef, ParsedSource, finalize, source_errors
from sources.http import HttpClient

logger = logging.getLogger(__name__)


class TelemangaManga(BaseModel):
    id: Optional[str] = None
    titleRu: Optional[str] = None
    titleEn: Optional[str] = None
    type: Optional[str] = None
    cover: Optional[str] = None
    year: Optional[int] = None
    description: Optional[str] = None
    authors: List[Any] = []
    artists: List[Any] = []
    genres: List[Dict[str, Any]] = []
    themes: List[Dict[str, Any]] = []
    formats: List[Dict[str, Any]] = []


class TelemangaChapter(BaseModel):
    id: str
    numeration: Optional[float] = None


class TelemangaSource:
    """Source adapter for telemanga.me (``https://telemanga.me/manga/<slug>``)."""

    family = "telemanga"
    hosts = ("telemanga.me", "www.telemanga.me")

    BASE_URL = "https://telemanga.me"
    PAGE_SIZE = 100

    def __init__(self, http: HttpClient, pagination_delay: float = 0.1, sleep=time.sleep):
        self.http = http
        self.pagination_delay = pagination_delay
        self.sleep = sleep
        self.cleaner = ContentCleaner()

    @property
    def headers(self) -> Dict[str, str]:
        return {
            "Accept": "application/json",
            "Origin": self.BASE_URL,
            "Referer": f"{self.BASE_URL}/",
        }

    @staticmethod
    def extract_slug(url: str) -> str:
        if '/manga/' not in url:
            raise ValueError(
                "Invalid telemanga.me URL. Expected format: https://telemanga.me/manga/{slug}"
            )
        slug = url.split('/manga/', 1)[1].split('?')[0].split('#')[0].strip('/').split('/')[0]
        if not slug:
            raise ValueError(f"Invalid telemanga.me URL: {url}")
        return unquote(slug)

    def parse(self, locator: str) -> ParsedSource:
        with source_errors(locator):
            slug = self.extract_slug(locator)
            payload = self.http.get_json(f"{self.BASE_URL}/api/manga/{quote(slug)}", headers=self.headers)
            if not payload.get('manga'):
                raise ValueError("Invalid API response: missing manga object")
            manga = TelemangaManga.model_validate(payload['manga'])

            genres = (
                self._names(manga.genres) + self._names(manga.themes) + self._names(manga.formats)
            )

            title = manga.titleRu or manga.titleEn or slug
            parsed = ParsedSource(
                title=title,
                alternative_titles=[manga.titleEn] if manga.titleEn and manga.titleEn != title else [],
                description=self.cleaner.clean_text(manga.description),
                cover_url=manga.cover or None,
                genres=GenreNormalizer.normalize_genres(genres),
                author=self._join_names(manga.authors),
                artist=self._join_names(manga.artists),
                type=manga.type or None,
                release_year=manga.year if manga.year and manga.year > 0 else None,
                chapters=self.fetch_chapters(slug, locator),
            )
            return finalize(parsed, locator)

    @staticmethod
    def _names(items: List[Dict[str, Any]]) -> List[str]:
        return [item['name'] for item in items if isinstance(item.get('name'), str)]

    @staticmethod
    def _join_names(items: List[Any]) -> Optional[str]:
        """People arrive as objects carrying ``name``, ``content`` or ``title``."""
        names = []
        for item in items:
            if not isinstance(item, dict):
                continue
            for key in ('name', 'content', 'title'):
                if isinstance(item.get(key), str) and item[key]:
                    names.append(item[key])
                    break
        return ', '.join(names) or None

    def fetch_chapters(self, slug: str, locator: str) -> List[ChapterRef]:
        chapters: List[ChapterRef] = []
        page = 0

        while True:
            try:
                payload = self.http.get_json(
                    f"{self.BASE_URL}/api/manga/{quote(slug)}/chapters",
                    headers=self.headers,
                    params={"limit": self.PAGE_SIZE, "page": page, "sortOrder": "DESC"},
                )
            except requests.RequestException as e:
                if page == 0:
                    raise
                logger.warning(f"Stopping chapter pagination for '{slug}' at page {page}: {e}")
                break

            batch = [TelemangaChapter.model_validate(item) for item in payload.get('chapters') or []]
            if not batch:
                break

            for chapter in batch:
                number = ChapterNumberParser.to_number(chapter.numeration)
                chapters.append(ChapterRef(
                    name=ChapterNumberParser.default_name(number),
                    number=number,
                    # Pages are addressed by chapter number, not chapter id
                    locator=f"{self.BASE_URL}/api/manga/{quote(slug)}/chapter/{_number_text(number)}",
                    source=locator,
                ))

            if len(batch) < self.PAGE_SIZE:
                break
            page += 1
            self.sleep(self.pagination_delay)

        # Requested newest first
        chapters.reverse()
        return chapters

    def page_urls(self, chapter: ChapterRef) -> List[str]:
        payload = self.http.get_json(chapter.locator, headers=self.headers)
        result = payload.get('result') or {}
        return [url for url in result.get('pages') or [] if url]

    def image_headers(self, chapter: ChapterRef) -> Dict[str, str]:
        return {"Referer": f"{self.BASE_URL}/"}

    def mirror_url(self, url: str) -> Optional[str]:
        return None


def _number_text(number: Optional[float]) -> str:
    if number is None:
        return ''
    return str(int(number)) if number == int(number) else str(number)
