"""Shared types and helpers for source adapters."""
import logging
from contextlib import contextmanager
from typing import Dict, Iterable, List, Optional, Protocol, Tuple
from urllib.parse import urljoin, urlparse

import requests
from bs4 import BeautifulSoup
from pydantic import BaseModel

from errors import SourceEmpty, SourceUnavailable

logger = logging.getLogger(__name__)


class ChapterRef(BaseModel):
    """Chapter as listed by a source."""
    name: str
    number: Optional[float] = None
    # Source-specific chapter address: page URL, API URL or opaque slug
    locator: str
    # Work-page locator this chapter was parsed from
    source: str


class ParsedSource(BaseModel):
    """Normalized work metadata and chapter list from one source."""
    title: str
    alternative_titles: List[str] = []
    description: Optional[str] = None
    cover_url: Optional[str] = None
    genres: List[str] = []
    author: Optional[str] = None
    artist: Optional[str] = None
    type: Optional[str] = None
    release_year: Optional[int] = None
    chapters: List[ChapterRef] = []


class SourceAdapter(Protocol):
    """Capability every source family implements."""

    family: str
    hosts: Tuple[str, ...]

    def parse(self, locator: str) -> ParsedSource:
        ...

    def page_urls(self, chapter: ChapterRef) -> List[str]:
        ...

    def image_headers(self, chapter: ChapterRef) -> Dict[str, str]:
        ...

    def mirror_url(self, url: str) -> Optional[str]:
        ...


def host_of(url: str) -> str:
    """Lower-cased host of a locator."""
    return (urlparse(url).hostname or '').lower()


@contextmanager
def source_errors(locator: str):
    """Turn network and layout failures inside a parse into SourceUnavailable."""
    try:
        yield
    except (SourceEmpty, SourceUnavailable):
        raise
    except requests.RequestException as e:
        raise SourceUnavailable(f"Failed to fetch {host_of(locator)}: {e}") from e
    except (ValueError, KeyError, TypeError, AttributeError, IndexError) as e:
        # pydantic.ValidationError is a ValueError
        raise SourceUnavailable(f"Failed to parse {host_of(locator)}: {e}") from e


def order_chapters(chapters: List[ChapterRef]) -> List[ChapterRef]:
    """
    Sort chapters ascending by number.

    Unnumbered chapters keep their position right after the numbered
    chapter that preceded them in the (already ascending-oriented) list.
    """
    keyed = []
    last_number = float('-inf')
    for position, chapter in enumerate(chapters):
        if chapter.number is not None:
            last_number = chapter.number
        keyed.append((chapter.number if chapter.number is not None else last_number, position, chapter))
    keyed.sort(key=lambda item: (item[0], item[1]))
    return [chapter for _, _, chapter in keyed]


def finalize(parsed: ParsedSource, locator: str) -> ParsedSource:
    """Normalize chapter order and reject sources without chapters."""
    if not parsed.chapters:
        raise SourceEmpty(f"No chapters found on {locator}")
    parsed.chapters = order_chapters(parsed.chapters)
    logger.info(f"Parsed '{parsed.title}' from {host_of(locator)}: {len(parsed.chapters)} chapters")
    return parsed


def absolute_url(base_url: str, href: Optional[str]) -> Optional[str]:
    """Resolve a possibly relative href against the page it came from."""
    if not href:
        return None
    href = href.strip()
    if href.startswith('//'):
        return 'https:' + href
    return urljoin(base_url, href)


def first_text(soup: BeautifulSoup, selectors: Iterable[str]) -> str:
    """Text of the first selector in the cascade that yields non-empty text."""
    for selector in selectors:
        element = soup.select_one(selector)
        if element is None:
            continue
        text = element.get_text(' ', strip=True)
        if text:
            return text
    return ''


def first_html(soup: BeautifulSoup, selectors: Iterable[str]) -> str:
    """Inner HTML of the first selector in the cascade that has any text."""
    for selector in selectors:
        element = soup.select_one(selector)
        if element is not None and element.get_text(strip=True):
            return element.decode_contents()
    return ''


def first_attr(soup: BeautifulSoup, selectors: Iterable[str], attrs: Iterable[str]) -> Optional[str]:
    """First non-empty attribute value over a selector cascade."""
    attrs = list(attrs)
    for selector in selectors:
        for element in soup.select(selector):
            for attr in attrs:
                value = element.get(attr)
                if value and value.strip():
                    return value.strip()
    return None


def image_sources(soup: BeautifulSoup, selectors: Iterable[str], base_url: str) -> List[str]:
    """
    Page image URLs from the first selector strategy that finds any.

    ``data-src`` wins over ``src`` (lazy-loading readers put a placeholder
    in ``src``).
    """
    for selector in selectors:
        urls: List[str] = []
        for img in soup.select(selector):
            src = img.get('data-src') or img.get('src')
            url = absolute_url(base_url, src)
            if url and url not in urls:
                urls.append(url)
        if urls:
            logger.debug(f"Found {len(urls)} images with selector '{selector}'")
            return urls
    return []
