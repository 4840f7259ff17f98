"""Download a chapter's page images into the asset store."""
import logging
import os
import time
from typing import List, Optional
from urllib.parse import urlparse

import requests

from catalog import AssetStore
from config import settings
from errors import NoAssetsFound
from progress import ProgressCallback, ProgressEvent, emit
from sources import ChapterRef, SourceRegistry
from sources.http import HttpClient

logger = logging.getLogger(__name__)

IMAGE_EXTENSIONS = ('.jpg', '.jpeg', '.png', '.webp', '.gif', '.avif')


def page_extension(url: str) -> str:
    """Image extension from the URL path, ``jpg`` when there is none."""
    ext = os.path.splitext(urlparse(url).path)[1].lower()
    if ext in IMAGE_EXTENSIONS:
        return ext[1:]
    return 'jpg'


def page_path(chapter_id: int, page_number: int, url: str) -> str:
    return f"chapters/{chapter_id}/{page_number:03d}.{page_extension(url)}"


def cover_path(work_id: int, url: str) -> str:
    return f"covers/{work_id}.{page_extension(url)}"


class AssetDownloadPipeline:
    """
    Fetch page images for one chapter.

    Pages are downloaded one at a time with ``page_delay`` between
    requests. A failed page is retried once on the adapter's mirror host;
    if that fails too the page is skipped. Partial chapters are accepted.
    """

    def __init__(
            self,
            registry: SourceRegistry,
            asset_store: AssetStore,
            http: Optional[HttpClient] = None,
            page_delay: Optional[float] = None,
            sleep=time.sleep,
    ):
        self.registry = registry
        self.asset_store = asset_store
        self.http = http or HttpClient()
        self.page_delay = settings.page_delay if page_delay is None else page_delay
        self.sleep = sleep

    def download_chapter_assets(
            self,
            chapter_ref: ChapterRef,
            target_chapter_id: int,
            progress: Optional[ProgressCallback] = None,
    ) -> List[str]:
        """
        Download every page of ``chapter_ref`` as files of chapter ``target_chapter_id``.

        Returns:
            Local paths in page order

        Raises:
            NoAssetsFound: if no page URL could be extracted or none downloaded
        """
        adapter = self.registry.adapter_for(chapter_ref.source)

        try:
            urls = adapter.page_urls(chapter_ref)
        except (requests.RequestException, ValueError, KeyError, TypeError, AttributeError) as e:
            raise NoAssetsFound(f"Failed to extract pages for '{chapter_ref.name}': {e}") from e

        if not urls:
            raise NoAssetsFound(f"No pages found for '{chapter_ref.name}'")

        logger.info(f"Downloading {len(urls)} pages for '{chapter_ref.name}'")
        headers = adapter.image_headers(chapter_ref)
        paths: List[str] = []

        for index, url in enumerate(urls):
            if index > 0:
                self.sleep(self.page_delay)

            page_number = index + 1
            data = self._fetch(url, headers, adapter)
            if data is None:
                emit(progress, ProgressEvent(
                    stage='page', status='skipped',
                    message=f"Page {page_number} failed",
                    current=page_number, total=len(urls), data={"url": url},
                ))
                continue

            try:
                paths.append(self.asset_store.write_file(page_path(target_chapter_id, page_number, url), data))
            except Exception:
                self.discard(paths)
                raise
            emit(progress, ProgressEvent(
                stage='page', status='progress',
                message=f"Downloaded page {page_number}/{len(urls)}",
                current=page_number, total=len(urls),
            ))

        if not paths:
            raise NoAssetsFound(f"Failed to download any page of '{chapter_ref.name}'")

        if len(paths) < len(urls):
            logger.warning(f"Chapter '{chapter_ref.name}': {len(paths)}/{len(urls)} pages downloaded")
        return paths

    def download_cover(self, cover_url: str, work_id: int) -> Optional[str]:
        """
        Store a work's cover image.

        Returns:
            Local path, or None if the cover could not be fetched
        """
        try:
            data = self.http.get_bytes(cover_url)
        except requests.RequestException as e:
            logger.warning(f"Cover {cover_url} for work {work_id} not downloaded: {e}")
            return None
        return self.asset_store.write_file(cover_path(work_id, cover_url), data)

    def discard(self, paths: List[str]) -> None:
        """Remove page files written for a chapter that is being rolled back."""
        for path in paths:
            try:
                self.asset_store.delete(path)
            except OSError as e:
                logger.warning(f"Could not remove page file {path}: {e}")

    def _fetch(self, url: str, headers, adapter) -> Optional[bytes]:
        try:
            return self.http.get_bytes(url, headers=headers)
        except requests.RequestException as e:
            mirror = adapter.mirror_url(url)
            if not mirror:
                logger.warning(f"Skipping page {url}: {e}")
                return None
            logger.info(f"Retrying page on mirror {mirror}")

        try:
            return self.http.get_bytes(mirror, headers=headers)
        except requests.RequestException as e:
            logger.warning(f"Skipping page {url}, mirror failed too: {e}")
            return None
