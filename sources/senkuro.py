"""Senkuro source: GraphQL API with cursor pagination."""
import logging
import time
from typing import Any, Dict, List, Optional

from pydantic import BaseModel

from config import settings
from normalizer import ChapterNumberParser, ContentCleaner, GenreNormalizer
from sources.base import ChapterRef, ParsedSource, finalize, host_of, source_errors
from sources.http import HttpClient

logger = logging.getLogger(__name__)


MANGA_QUERY = """
query Manga($slug: String!) {
  manga(slug: $slug) {
    id
    slug
    originalName { content lang }
    titles { content lang }
    alternativeNames { content lang }
    type
    releasedOn
    labels { titles { content lang } }
    branches { id primaryBranch }
    cover { original { url } }
    localizations {
      lang
      description {
        __typename
        ... on TiptapNodeNestedBlock {
          type
          content { __typename ... on TiptapNodeText { type text } }
        }
        ... on TiptapNodeText { type text }
      }
    }
    mainStaff { roles person { name } }
  }
}
"""

CHAPTERS_QUERY = """
query ChaptersByBranch($branchId: ID!, $first: Int!, $after: String) {
  mangaChapters(branchId: $branchId, first: $first, after: $after) {
    edges { node { id slug name number createdAt } }
    pageInfo { hasNextPage endCursor }
  }
}
"""

CHAPTER_PAGES_QUERY = """
query Chapter($slug: String!) {
  mangaChapter(slug: $slug) {
    id
    name
    number
    pages { number image { original { url } } }
  }
}
"""

TYPE_NAMES = {
    'MANHWA': 'Manhwa',
    'MANGA': 'Manga',
    'COMIC': 'Comic',
    'NOVEL': 'Novel',
}


# API response shapes

class SenkuroText(BaseModel):
    content: Optional[str] = None
    lang: Optional[str] = None


class SenkuroLabel(BaseModel):
    titles: List[SenkuroText] = []


class SenkuroBranch(BaseModel):
    id: str
    primaryBranch: bool = False


class SenkuroImageUrl(BaseModel):
    url: Optional[str] = None


class SenkuroImage(BaseModel):
    original: Optional[SenkuroImageUrl] = None


class SenkuroLocalization(BaseModel):
    lang: Optional[str] = None
    description: Optional[List[Dict[str, Any]]] = None


class SenkuroPerson(BaseModel):
    name: Optional[str] = None


class SenkuroStaff(BaseModel):
    roles: List[str] = []
    person: Optional[SenkuroPerson] = None


class SenkuroManga(BaseModel):
    id: str
    slug: Optional[str] = None
    originalName: Optional[SenkuroText] = None
    titles: List[SenkuroText] = []
    alternativeNames: List[SenkuroText] = []
    type: Optional[str] = None
    releasedOn: Optional[str] = None
    labels: List[SenkuroLabel] = []
    branches: List[SenkuroBranch] = []
    cover: Optional[SenkuroImage] = None
    localizations: List[SenkuroLocalization] = []
    mainStaff: List[SenkuroStaff] = []


class SenkuroChapterNode(BaseModel):
    id: str
    slug: str
    name: Optional[str] = None
    number: Optional[Any] = None


class SenkuroChapterEdge(BaseModel):
    node: SenkuroChapterNode


class SenkuroPageInfo(BaseModel):
    hasNextPage: bool = False
    endCursor: Optional[str] = None


class SenkuroChapterConnection(BaseModel):
    edges: List[SenkuroChapterEdge] = []
    pageInfo: SenkuroPageInfo


class SenkuroPage(BaseModel):
    number: int = 0
    image: Optional[SenkuroImage] = None


class SenkuroChapter(BaseModel):
    id: str
    pages: List[SenkuroPage] = []


class SenkuroSource:
    """
    Source adapter for senkuro.me (and its sencuro.me mirror).

    Work pages look like ``https://senkuro.me/manga/<slug>``; all data comes
    from ``https://api.<host>/graphql``. Chapter locators are chapter slugs.
    """

    family = "senkuro"
    hosts = ("senkuro.me", "www.senkuro.me", "sencuro.me", "www.sencuro.me")

    # Same content is served from both domains
    MIRRORS = {
        "senkuro.me": "sencuro.me",
        "sencuro.me": "senkuro.me",
    }

    def __init__(self, http: HttpClient, pagination_delay: Optional[float] = None, sleep=time.sleep):
        self.http = http
        self.pagination_delay = settings.pagination_delay if pagination_delay is None else pagination_delay
        self.sleep = sleep
        self.cleaner = ContentCleaner()

    # Requests

    @staticmethod
    def _domain(url: str) -> str:
        host = host_of(url)
        return host[4:] if host.startswith('www.') else host

    def _headers(self, domain: str) -> Dict[str, str]:
        return {
            "Accept": "application/json",
            "Content-Type": "application/json",
            "Origin": f"https://{domain}",
            "Referer": f"https://{domain}/",
        }

    def _graphql(self, domain: str, query: str, variables: dict) -> dict:
        payload = self.http.post_json(
            f"https://api.{domain}/graphql",
            {"query": query, "variables": variables},
            headers=self._headers(domain),
        )
        if payload.get('errors'):
            raise ValueError(f"GraphQL errors: {payload['errors']}")
        return payload.get('data') or {}

    # Parsing

    @staticmethod
    def extract_slug(url: str) -> str:
        if '/manga/' not in url:
            raise ValueError(f"Invalid Senkuro manga URL: {url}")
        return url.split('/manga/', 1)[1].split('?')[0].strip('/').split('/')[0]

    def parse(self, locator: str) -> ParsedSource:
        with source_errors(locator):
            domain = self._domain(locator)
            slug = self.extract_slug(locator)
            logger.info(f"Fetching Senkuro manga '{slug}' from api.{domain}")

            data = self._graphql(domain, MANGA_QUERY, {"slug": slug})
            if not data.get('manga'):
                raise ValueError("No manga data found")
            manga = SenkuroManga.model_validate(data['manga'])

            author, artist = self.extract_staff(manga)
            parsed = ParsedSource(
                title=self.extract_title(manga),
                alternative_titles=self.extract_alternative_titles(manga),
                description=self.extract_description(manga),
                cover_url=manga.cover.original.url if manga.cover and manga.cover.original else None,
                genres=self.extract_genres(manga),
                author=author,
                artist=artist,
                type=self.extract_type(manga),
                release_year=self.extract_release_year(manga),
                chapters=self.fetch_chapters(manga, domain, locator),
            )
            return finalize(parsed, locator)

    @staticmethod
    def _by_lang(texts: List[SenkuroText], lang: str) -> Optional[str]:
        for text in texts:
            if text.lang == lang and text.content:
                return text.content
        return None

    def extract_title(self, manga: SenkuroManga) -> str:
        # Priority: RU title > EN title > originalName > first title > slug
        ru_title = self._by_lang(manga.titles, 'RU')
        if ru_title:
            return ru_title

        en_title = self._by_lang(manga.titles, 'EN')
        if en_title:
            return en_title

        if manga.originalName and manga.originalName.content:
            return manga.originalName.content

        if manga.titles and manga.titles[0].content:
            return manga.titles[0].content

        return manga.slug or "Unknown Title"

    def extract_alternative_titles(self, manga: SenkuroManga) -> List[str]:
        main_title = self.extract_title(manga)
        seen = {main_title}
        result = []

        candidates = list(manga.titles) + list(manga.alternativeNames)
        if manga.originalName:
            candidates.append(manga.originalName)

        for text in candidates:
            content = (text.content or '').strip()
            if content and content not in seen:
                seen.add(content)
                result.append(content)

        return result

    def extract_description(self, manga: SenkuroManga) -> Optional[str]:
        # Priority: RU > EN > first localization with a description
        localizations = manga.localizations
        chosen = (
            next((l for l in localizations if l.lang == 'RU' and l.description), None)
            or next((l for l in localizations if l.lang == 'EN' and l.description), None)
            or next((l for l in localizations if l.description), None)
        )
        if chosen is None:
            return None
        return self.cleaner.clean_text(self.flatten_rich_text(chosen.description))

    @staticmethod
    def flatten_rich_text(blocks: List[Dict[str, Any]]) -> str:
        """Join the text nodes of each paragraph block into lines."""
        lines = []
        for block in blocks:
            if block.get('type') != 'paragraph' or not block.get('content'):
                continue
            text = ''.join(
                item.get('text') or ''
                for item in block['content']
                if item.get('type') == 'text'
            )
            if text.strip():
                lines.append(text)
        return '\n'.join(lines)

    def extract_genres(self, manga: SenkuroManga) -> List[str]:
        genres = []
        for label in manga.labels:
            en_title = self._by_lang(label.titles, 'EN')
            if en_title:
                genres.append(en_title)
            elif label.titles and label.titles[0].content:
                genres.append(label.titles[0].content)

        genres = GenreNormalizer.normalize_genres(genres)
        return genres or ['Unknown']

    @staticmethod
    def extract_staff(manga: SenkuroManga):
        """Author from STORY staff, artist from ART staff."""
        authors: List[str] = []
        artists: List[str] = []
        for staff in manga.mainStaff:
            name = (staff.person.name or '').strip() if staff.person else ''
            if not name:
                continue
            if 'STORY' in staff.roles and name not in authors:
                authors.append(name)
            if 'ART' in staff.roles and name not in artists:
                artists.append(name)

        return (
            ', '.join(authors) if authors else None,
            ', '.join(artists) if artists else None,
        )

    @staticmethod
    def extract_type(manga: SenkuroManga) -> Optional[str]:
        if not manga.type:
            return None
        return TYPE_NAMES.get(manga.type, manga.type)

    @staticmethod
    def extract_release_year(manga: SenkuroManga) -> Optional[int]:
        # releasedOn looks like "2024-05-17"
        if not manga.releasedOn:
            return None
        try:
            return int(manga.releasedOn[:4])
        except ValueError:
            return None

    def fetch_chapters(self, manga: SenkuroManga, domain: str, locator: str) -> List[ChapterRef]:
        branch = next((b for b in manga.branches if b.primaryBranch), None)
        if branch is None and manga.branches:
            branch = manga.branches[0]
        if branch is None:
            raise ValueError("No branch ID found")

        chapters: List[ChapterRef] = []
        after = None
        batch = 0

        while True:
            batch += 1
            data = self._graphql(
                domain, CHAPTERS_QUERY, {"branchId": branch.id, "first": 100, "after": after}
            )
            if not data.get('mangaChapters'):
                break
            connection = SenkuroChapterConnection.model_validate(data['mangaChapters'])
            logger.debug(f"Chapter batch {batch}: {len(connection.edges)} chapters")

            for edge in connection.edges:
                node = edge.node
                number = ChapterNumberParser.to_number(node.number)
                chapters.append(ChapterRef(
                    name=node.name or ChapterNumberParser.default_name(number),
                    number=number,
                    locator=node.slug,
                    source=locator,
                ))

            if not connection.pageInfo.hasNextPage:
                break
            after = connection.pageInfo.endCursor
            self.sleep(self.pagination_delay)

        # API lists newest first
        chapters.reverse()
        return chapters

    # Assets

    def page_urls(self, chapter: ChapterRef) -> List[str]:
        data = self._graphql(self._domain(chapter.source), CHAPTER_PAGES_QUERY, {"slug": chapter.locator})
        if not data.get('mangaChapter'):
            raise ValueError("No chapter data in response")
        pages = SenkuroChapter.model_validate(data['mangaChapter']).pages

        urls = []
        for page in sorted(pages, key=lambda p: p.number):
            if page.image and page.image.original and page.image.original.url:
                urls.append(page.image.original.url)
        return urls

    def image_headers(self, chapter: ChapterRef) -> Dict[str, str]:
        return {"Referer": f"https://{self._domain(chapter.source)}/"}

    def mirror_url(self, url: str) -> Optional[str]:
        host = host_of(url)
        for domain, mirror in self.MIRRORS.items():
            if host == domain or host.endswith('.' + domain):
                return url.replace(domain, mirror, 1)
        return None
