"""Manga-Shi source: HTML pages with new and legacy layouts."""
import logging
import re
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
    first_attr,
    first_html,
    first_text,
    image_sources,
    source_errors,
)
from sources.http import HttpClient

logger = logging.getLogger(__name__)

# Chapter links carry a trailing publication date: "Глава 12 01.02.2024"
TRAILING_DATE = re.compile(r'\s*\d{2}\.\d{2}\.\d{4}\s*$')
SLUG_PATTERN = re.compile(r'/manga/([^/?#]+)')


class MangashiSource:
    """
    Source adapter for manga-shi.org.

    The site was redesigned; the new layout lists chapters as
    ``a[href*="/glava-"]`` with paginated "load more" pages, the old one
    served them through a WordPress AJAX endpoint. Both are tried.
    """

    family = "mangashi"
    hosts = ("manga-shi.org", "www.manga-shi.org")

    TITLE_SELECTORS = ['h1', '.post-title h1', '.post-title']
    COVER_SELECTORS = [
        ('meta[property="og:image"]', ['content']),
        ('.summary_image img', ['data-src', 'src']),
        ('.summary_image a img', ['data-src', 'src']),
        ('.thumb img', ['data-src', 'src']),
        ('img.media-image[alt*="Обложка"], img.media-image[title]', ['src', 'data-src']),
    ]
    DESCRIPTION_SELECTORS = [
        '.summary__content .post-content',
        '.summary .post-content',
        '.description',
        '.manga-summary',
    ]
    GENRE_SELECTOR = '.genres-content a, .genre a, .mg_genres a'
    LEGACY_CHAPTER_SELECTORS = [
        'li.wp-manga-chapter a',
        '.wp-manga-chapter a',
        '.chapter-item a',
        '.chapter-list li a',
        '.listing-chapters_wrap ul li a',
    ]
    PAGE_SELECTORS = ['.page-break img', '.reading-content img']

    def __init__(self, http: HttpClient, sleep=time.sleep):
        self.http = http
        self.sleep = sleep
        self.cleaner = ContentCleaner()

    def parse(self, locator: str) -> ParsedSource:
        with source_errors(locator):
            soup = self.http.get_html(locator)
            parts = urlparse(locator)
            base_url = f"{parts.scheme}://{parts.netloc}"

            cover_url = None
            for selector, attrs in self.COVER_SELECTORS:
                cover_url = first_attr(soup, [selector], attrs)
                if cover_url:
                    break

            genres = [a.get_text(strip=True) for a in soup.select(self.GENRE_SELECTOR)]

            parsed = ParsedSource(
                title=first_text(soup, self.TITLE_SELECTORS) or locator,
                description=self.cleaner.clean_text(first_html(soup, self.DESCRIPTION_SELECTORS)),
                cover_url=absolute_url(base_url, cover_url),
                genres=GenreNormalizer.normalize_genres(genres),
                chapters=self.fetch_chapters(soup, locator, base_url),
            )
            return finalize(parsed, locator)

    def fetch_chapters(self, soup: BeautifulSoup, locator: str, base_url: str) -> List[ChapterRef]:
        chapters = self.extract_chapters(soup, locator, base_url)

        match = SLUG_PATTERN.search(urlparse(locator).path)
        slug = match.group(1) if match else None

        if slug and chapters:
            chapters.extend(self.fetch_more_chapters(slug, locator, base_url, {c.locator for c in chapters}))

        if not chapters and slug:
            chapters = self.fetch_chapters_via_ajax(slug, locator, base_url)
        if not chapters:
            chapters = self.extract_chapters_legacy(soup, locator)

        # Site lists newest first
        chapters.reverse()
        return chapters

    def fetch_more_chapters(self, slug: str, locator: str, base_url: str, seen: set) -> List[ChapterRef]:
        """Follow ``/chapters/?page=N`` until a page adds nothing new."""
        chapters: List[ChapterRef] = []
        page = 2
        while True:
            url = f"{base_url}/manga/{slug}/chapters/?chapter_sort=latest&page={page}"
            try:
                batch = self.extract_chapters(self.http.get_html(url), locator, base_url)
            except requests.RequestException as e:
                logger.debug(f"Chapter page {page} unavailable: {e}")
                break

            added = 0
            for chapter in batch:
                if chapter.locator not in seen:
                    seen.add(chapter.locator)
                    chapters.append(chapter)
                    added += 1
            # The site repeats the last page instead of returning an empty one
            if added == 0:
                break
            page += 1
        return chapters

    def extract_chapters(self, soup: BeautifulSoup, locator: str, base_url: str) -> List[ChapterRef]:
        chapters: List[ChapterRef] = []
        seen = set()
        for link in soup.select('a[href*="/glava-"]'):
            url = absolute_url(base_url, link.get('href'))
            if not url or url in seen:
                continue
            seen.add(url)

            name = (
                first_text(link, ['.chapter-title'])
                or first_text(link, ['span'])
                or link.get_text(' ', strip=True)
            )
            name = TRAILING_DATE.sub('', name).strip() or name

            number = ChapterNumberParser.from_url(url)
            if number is None:
                number = ChapterNumberParser.from_label(name)

            chapters.append(ChapterRef(
                name=name or ChapterNumberParser.default_name(number),
                number=number,
                locator=url,
                source=locator,
            ))
        return chapters

    def fetch_chapters_via_ajax(self, slug: str, locator: str, base_url: str) -> List[ChapterRef]:
        ajax_url = f"{base_url}/manga/{slug}/ajax/chapters/"
        logger.info(f"Trying AJAX chapter list {ajax_url}")
        try:
            response = self.http.post(
                ajax_url,
                headers={
                    "X-Requested-With": "XMLHttpRequest",
                    "Referer": locator,
                    "Origin": base_url,
                    "Accept": "*/*",
                },
            )
        except requests.RequestException as e:
            logger.warning(f"AJAX chapters fetch failed: {e}")
            return []

        soup = BeautifulSoup(response.text, 'lxml')
        chapters = []
        for item in soup.select('li.wp-manga-chapter'):
            link = item.find('a')
            if link is None:
                continue
            ref = self._legacy_ref(link, locator)
            if ref:
                chapters.append(ref)
        logger.info(f"Found {len(chapters)} chapters via AJAX")
        return chapters

    def extract_chapters_legacy(self, soup: BeautifulSoup, locator: str) -> List[ChapterRef]:
        for selector in self.LEGACY_CHAPTER_SELECTORS:
            chapters = []
            for link in soup.select(selector):
                href = link.get('href') or ''
                if not any(marker in href for marker in ('/glava/', '/glava-', '/chapter/')):
                    continue
                ref = self._legacy_ref(link, locator)
                if ref:
                    chapters.append(ref)
            if chapters:
                return chapters
        return []

    @staticmethod
    def _legacy_ref(link, locator: str) -> Optional[ChapterRef]:
        name = link.get_text(' ', strip=True)
        href = link.get('href')
        if not name or not href:
            return None
        number = ChapterNumberParser.from_label(name)
        if number is None:
            number = ChapterNumberParser.from_url(href)
        return ChapterRef(name=name, number=number, locator=absolute_url(locator, href), source=locator)

    def page_urls(self, chapter: ChapterRef) -> List[str]:
        soup = self.http.get_html(chapter.locator, headers={"Referer": chapter.source})
        return image_sources(soup, self.PAGE_SELECTORS, chapter.locator)

    def image_headers(self, chapter: ChapterRef) -> Dict[str, str]:
        return {"Referer": chapter.locator}

    def mirror_url(self, url: str) -> Optional[str]:
        return None
