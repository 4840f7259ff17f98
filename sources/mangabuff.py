"""MangaBuff source: HTML work page plus a "load more" chapter endpoint."""
import logging
import time
from typing import Dict, List, Optional
from urllib.parse import urlparse

import requests
from bs4 import BeautifulSoup

from normalizer import ChapterNumberParser, ContentCleaner, GenreNormalizer
from sources.base import (
    ChapterRef,
    ParsedSource,
    absolute_url,
    finalize,
    first_html,
    first_text,
    image_sources,
    source_errors,
)
from sources.http import HttpClient

logger = logging.getLogger(__name__)


class MangabuffSource:
    """
    Source adapter for mangabuff.ru.

    Work pages look like ``https://mangabuff.ru/manga/<id>-<slug>``. The page
    only renders the first chapters; the rest come from ``POST /chapters/load``
    which returns an HTML fragment inside JSON.
    """

    family = "mangabuff"
    hosts = ("mangabuff.ru", "www.mangabuff.ru")

    BASE_URL = "https://mangabuff.ru"
    PAGE_SIZE = 100

    PAGE_SELECTORS = [
        '.reader__pages .reader__item img',
        '.reader__item img',
        '.page-break img',
        '.chapter-images img',
        '.manga-images img',
        '.reader img',
        '.comic img',
        'img[data-src]',
        'img[src]',
    ]

    def __init__(self, http: HttpClient, pagination_delay: float = 0.2, sleep=time.sleep):
        self.http = http
        self.pagination_delay = pagination_delay
        self.sleep = sleep
        self.cleaner = ContentCleaner()

    def parse(self, locator: str) -> ParsedSource:
        with source_errors(locator):
            soup = self.http.get_html(locator)

            title = first_text(soup, ['h1.manga__name'])
            cover = soup.select_one('.manga__img img')

            parsed = ParsedSource(
                title=title or locator,
                alternative_titles=self.extract_alternative_titles(soup, title),
                description=self.cleaner.clean_text(first_html(soup, ['.manga__description'])),
                cover_url=absolute_url(self.BASE_URL, cover.get('src')) if cover else None,
                genres=GenreNormalizer.normalize_genres(self.extract_genres(soup)),
                chapters=self.fetch_chapters(self.extract_manga_id(locator), soup, locator),
            )
            return finalize(parsed, locator)

    @staticmethod
    def extract_manga_id(url: str) -> str:
        segments = [s for s in urlparse(url).path.split('/') if s]
        if len(segments) < 2:
            raise ValueError(f"Invalid MangaBuff URL: {url}")
        return segments[1].split('-')[0]

    @staticmethod
    def extract_alternative_titles(soup: BeautifulSoup, title: str) -> List[str]:
        titles: List[str] = []
        for span in soup.select('h3.manga__name-alt span'):
            text = span.get_text(strip=True)
            if text and text not in titles:
                titles.append(text)

        og_title = soup.select_one('meta[property="og:title"]')
        if og_title:
            content = (og_title.get('content') or '').strip()
            if content and content != title and content not in titles:
                titles.append(content)
        return titles

    @staticmethod
    def extract_genres(soup: BeautifulSoup) -> List[str]:
        genres = []
        for tag in soup.select('.tags__item'):
            text = tag.get_text(strip=True)
            # Skip the "+N more tags" button
            if not text or '+' in text or 'tags__item-more' in (tag.get('class') or []):
                continue
            genres.append(text)
        return genres

    def parse_chapter_items(self, soup: BeautifulSoup, locator: str) -> List[ChapterRef]:
        chapters = []
        for item in soup.select('.chapters__item'):
            href = item.get('href')
            if not href:
                continue

            number = ChapterNumberParser.to_number(item.get('data-chapter'))
            name = (
                first_text(item, ['.chapters__name'])
                or first_text(item, ['.chapters__value'])
                or ChapterNumberParser.default_name(number)
            )
            chapters.append(ChapterRef(
                name=name,
                number=number,
                locator=absolute_url(self.BASE_URL, href),
                source=locator,
            ))
        return chapters

    def fetch_chapters(self, manga_id: str, page_soup: BeautifulSoup, locator: str) -> List[ChapterRef]:
        chapters: List[ChapterRef] = []
        seen = set()
        offset = 0

        while True:
            try:
                response = self.http.post(
                    f"{self.BASE_URL}/chapters/load",
                    data={"manga_id": manga_id, "offset": offset, "limit": self.PAGE_SIZE},
                    headers={"X-Requested-With": "XMLHttpRequest", "Referer": locator},
                )
                content = response.json().get('content')
            except (requests.RequestException, ValueError) as e:
                if offset == 0:
                    raise
                logger.warning(f"Stopping chapter load for manga {manga_id} at offset {offset}: {e}")
                break

            if not content:
                break

            batch = self.parse_chapter_items(BeautifulSoup(content, 'lxml'), locator)
            added = 0
            for chapter in batch:
                if chapter.locator in seen:
                    continue
                seen.add(chapter.locator)
                chapters.append(chapter)
                added += 1

            if not batch or added == 0:
                break
            offset += self.PAGE_SIZE
            self.sleep(self.pagination_delay)

        if not chapters:
            # Endpoint returned nothing; use what the work page rendered
            chapters = self.parse_chapter_items(page_soup, locator)

        return chapters

    def page_urls(self, chapter: ChapterRef) -> List[str]:
        soup = self.http.get_html(chapter.locator, headers={"Referer": chapter.source})
        return image_sources(soup, self.PAGE_SELECTORS, chapter.locator)

    def image_headers(self, chapter: ChapterRef) -> Dict[str, str]:
        return {"Referer": chapter.locator}

    def mirror_url(self, url: str) -> Optional[str]:
        return None
