"""Source adapters and the host registry that selects them."""
import logging
from typing import Dict, Iterable, List, Optional

from config import settings
from errors import UnsupportedSource
from sources.base import ChapterRef, ParsedSource, SourceAdapter, host_of
from sources.http import HttpClient
from sources.mangabuff import MangabuffSource
from sources.mangashi import MangashiSource
from sources.senkuro import SenkuroSource
from sources.telemanga import TelemangaSource

logger = logging.getLogger(__name__)

__all__ = [
    "ChapterRef",
    "ParsedSource",
    "SourceAdapter",
    "SourceRegistry",
    "build_registry",
]


class SourceRegistry:
    """
    Registry mapping hosts to source adapters.

    Used to select the appropriate adapter for a given locator.
    """

    def __init__(self, adapters: Iterable[SourceAdapter]):
        self.adapters: List[SourceAdapter] = list(adapters)
        self.host_map: Dict[str, SourceAdapter] = {}
        for adapter in self.adapters:
            for host in adapter.hosts:
                self.host_map[host.lower()] = adapter

    def find(self, locator: str) -> Optional[SourceAdapter]:
        """Adapter for a locator, or None if its host is not registered."""
        adapter = self.host_map.get(host_of(locator))
        if adapter is None:
            logger.warning(f"No source adapter registered for host: {host_of(locator)}")
        return adapter

    def adapter_for(self, locator: str) -> SourceAdapter:
        """
        Determine which adapter handles a locator.

        Raises:
            UnsupportedSource: if no adapter serves the host
        """
        adapter = self.find(locator)
        if adapter is None:
            raise UnsupportedSource(locator)
        return adapter

    def is_supported(self, locator: str) -> bool:
        """Check if locator is supported."""
        return self.find(locator) is not None

    def parse(self, locator: str) -> ParsedSource:
        return self.adapter_for(locator).parse(locator)

    def families(self) -> List[str]:
        return [adapter.family for adapter in self.adapters]

    def supported_sites(self) -> List[Dict[str, object]]:
        """Family and hosts of every registered adapter."""
        return [
            {"family": adapter.family, "hosts": list(adapter.hosts)}
            for adapter in self.adapters
        ]


def build_registry(http: Optional[HttpClient] = None) -> SourceRegistry:
    """Registry with every built-in source family sharing one HTTP client."""
    http = http or HttpClient()
    return SourceRegistry([
        SenkuroSource(http, pagination_delay=settings.pagination_delay),
        TelemangaSource(http),
        MangabuffSource(http, pagination_delay=settings.pagination_delay),
        MangashiSource(http),
    ])
