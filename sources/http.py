"""HTTP client shared by source adapters and the asset pipeline."""
import logging
import threading
from typing import Dict, Optional

import requests
from bs4 import BeautifulSoup
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from config import settings

logger = logging.getLogger(__name__)


class HttpClient:
    """
    Thin wrapper over ``requests.Session``.

    Each thread gets its own session, so one client can serve every
    worker of the dispatch thread pool.

    Retries transient upstream failures (the status codes in
    ``settings.retry_http_codes``) with exponential backoff and raises
    ``requests.HTTPError`` for any other non-2xx response.
    """

    def __init__(
            self,
            timeout: Optional[float] = None,
            user_agent: Optional[str] = None,
            retries: Optional[int] = None,
            session: Optional[requests.Session] = None,
    ):
        self.timeout = timeout or settings.request_timeout
        self.user_agent = user_agent or settings.user_agent
        self.retries = settings.retry_times if retries is None else retries
        self._shared_session = session
        self._local = threading.local()

    @property
    def session(self) -> requests.Session:
        if self._shared_session is not None:
            return self._shared_session
        session = getattr(self._local, 'session', None)
        if session is None:
            session = self._build_session(self.user_agent, self.retries)
            self._local.session = session
        return session

    @staticmethod
    def _build_session(user_agent: str, retries: int) -> requests.Session:
        session = requests.Session()
        session.headers.update({
            "User-Agent": user_agent,
            "Accept-Language": "ru-RU,ru;q=0.9,en-US;q=0.8,en;q=0.7",
        })

        retry = Retry(
            total=retries,
            backoff_factor=settings.retry_backoff,
            status_forcelist=settings.retry_http_codes,
            allowed_methods=None,  # GraphQL and "load more" endpoints are POST
            raise_on_status=False,
        )
        adapter = HTTPAdapter(max_retries=retry)
        session.mount("http://", adapter)
        session.mount("https://", adapter)
        return session

    def get(self, url: str, headers: Optional[Dict[str, str]] = None,
            params: Optional[dict] = None, timeout: Optional[float] = None) -> requests.Response:
        logger.debug(f"GET {url} params={params}")
        response = self.session.get(url, headers=headers, params=params, timeout=timeout or self.timeout)
        response.raise_for_status()
        return response

    def post(self, url: str, json: Optional[dict] = None, data: Optional[dict] = None,
             headers: Optional[Dict[str, str]] = None) -> requests.Response:
        logger.debug(f"POST {url}")
        response = self.session.post(url, json=json, data=data, headers=headers, timeout=self.timeout)
        response.raise_for_status()
        return response

    def get_json(self, url: str, headers: Optional[Dict[str, str]] = None, params: Optional[dict] = None):
        return self.get(url, headers=headers, params=params).json()

    def post_json(self, url: str, payload: dict, headers: Optional[Dict[str, str]] = None):
        return self.post(url, json=payload, headers=headers).json()

    def get_html(self, url: str, headers: Optional[Dict[str, str]] = None) -> BeautifulSoup:
        response = self.get(url, headers=headers)
        return BeautifulSoup(response.text, 'lxml')

    def get_bytes(self, url: str, headers: Optional[Dict[str, str]] = None) -> bytes:
        response = self.get(url, headers=headers, timeout=settings.image_timeout)
        if not response.content:
            raise requests.RequestException(f"Empty response body from {url}")
        return response.content
