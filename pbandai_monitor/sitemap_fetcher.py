"""
1.0 Sitemap Fetcher Module
Fetches the product sitemap with a conditional GET.

Key features:
- If-None-Match with the ETag from the previous fetch (304 = unchanged)
- Automatic retry on transient failures (429, 500, 502, 503, 504)
- Exponential backoff between retries
- Session reuse for connection pooling
- Any non-2xx status other than 304 fails the fetch; it is never read as "no changes"
"""

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry
import logging
from dataclasses import dataclass, field
from typing import Optional, Dict, Any, List

from pbandai_monitor.config import BROWSER_USER_AGENT
from pbandai_monitor.sitemap_parser import SitemapParser, SitemapProduct

logger = logging.getLogger(__name__)


class MonitorError(Exception):
    """Base class for errors that abort a poll cycle."""


class SitemapFetchError(MonitorError):
    """The sitemap could not be fetched (transport error or unexpected status)."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


@dataclass
class FetchResult:
    """Outcome of a conditional sitemap fetch."""
    changed: bool
    etag: str
    products: List[SitemapProduct] = field(default_factory=list)


class SitemapFetcher:
    """
    2.0 SitemapFetcher Class
    Fetches the sitemap with built-in retry logic and ETag caching.
    """

    def __init__(
        self,
        sitemap_url: str,
        config: Optional[Dict[str, Any]] = None,
        session: Optional[requests.Session] = None,
        parser: Optional[SitemapParser] = None,
    ):
        """
        2.1 Initialize the SitemapFetcher with retry strategy.

        Args:
            sitemap_url: URL of the product sitemap
            config: Configuration dictionary with optional keys:
                - user_agent: Custom user agent string
                - timeout: Request timeout in seconds (default: 30)
                - max_retries: Number of retry attempts (default: 3)
            session: Pre-built session (tests inject a fake one)
            parser: SitemapParser used on changed responses
        """
        config = config or {}

        self.sitemap_url = sitemap_url
        self.user_agent = config.get("user_agent", BROWSER_USER_AGENT)
        if not isinstance(self.user_agent, str) or not self.user_agent.strip():
            self.user_agent = BROWSER_USER_AGENT
            logger.warning(f"Invalid user_agent in config. Using default: {self.user_agent}")

        self.timeout = config.get("timeout", 30)
        self.max_retries = config.get("max_retries", 3)

        self.session = session or self._create_session_with_retries()
        self.parser = parser or SitemapParser()

        logger.debug(
            f"SitemapFetcher initialized: "
            f"url={self.sitemap_url}, "
            f"timeout={self.timeout}s, "
            f"retries={self.max_retries}"
        )

    def _create_session_with_retries(self) -> requests.Session:
        """
        2.2 Create a requests Session with automatic retry logic.

        Retry strategy:
        - Retries on: 429 (rate limit), 500, 502, 503, 504 (server errors)
        - Backoff: 1s, 2s, 4s between retries (exponential)
        - Also retries on connection errors
        """
        session = requests.Session()

        retry_strategy = Retry(
            total=self.max_retries,
            backoff_factor=1,
            status_forcelist=[429, 500, 502, 503, 504],
            allowed_methods=["GET"],
            raise_on_status=False,  # Don't raise, let us handle it
        )

        adapter = HTTPAdapter(max_retries=retry_strategy)
        session.mount("http://", adapter)
        session.mount("https://", adapter)

        session.headers.update({"User-Agent": self.user_agent})

        return session

    def fetch(self, prior_etag: str = "") -> FetchResult:
        """
        2.3 Conditionally fetch and parse the sitemap.

        Args:
            prior_etag: ETag from the last changed fetch, empty if none

        Returns:
            FetchResult with changed=False and the prior ETag on 304,
            otherwise changed=True with the parsed products and the new
            ETag (empty when the server sends none).

        Raises:
            SitemapFetchError: on transport errors or any non-2xx status other than 304
        """
        headers = {}
        if prior_etag:
            headers["If-None-Match"] = prior_etag

        try:
            response = self.session.get(self.sitemap_url, headers=headers, timeout=self.timeout)
        except requests.exceptions.Timeout as e:
            raise SitemapFetchError(f"Timeout fetching {self.sitemap_url} after {self.timeout}s") from e
        except requests.exceptions.RequestException as e:
            raise SitemapFetchError(f"Request error fetching {self.sitemap_url}: {e}") from e

        if response.status_code == 304:
            logger.debug(f"Sitemap not modified (304): {self.sitemap_url}")
            return FetchResult(changed=False, etag=prior_etag)

        if not 200 <= response.status_code < 300:
            raise SitemapFetchError(
                f"Failed to fetch {self.sitemap_url}: HTTP {response.status_code}",
                status_code=response.status_code,
            )

        etag = response.headers.get("ETag") or ""
        if not etag:
            logger.warning(f"No ETag in response from {self.sitemap_url}; next fetch will be unconditional")

        logger.info(
            f"Fetched {self.sitemap_url} "
            f"(status={response.status_code}, size={len(response.content):,} bytes)"
        )

        products = self.parser.parse_products(response.content, sitemap_url=self.sitemap_url)
        return FetchResult(changed=True, etag=etag, products=products)
