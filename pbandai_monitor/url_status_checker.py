"""
1.0 URL Status Checker
Decides whether a product is live by checking its image URL.

Key features:
- HEAD requests only (no body transfer)
- Realistic browser User-Agent (the image CDN rejects empty/default agents)
- Any 2xx after redirects = live; errors, timeouts and other statuses = not live
- No retries: an unreachable URL is simply re-checked on the next cycle
- Parallel checks for batches of URLs, results kept in input order
"""

import logging
from concurrent.futures import ThreadPoolExecutor
from typing import Dict, List, Optional, Any, Sequence

import requests

from pbandai_monitor.config import BROWSER_USER_AGENT

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 10  # Short timeout for HEAD requests


def check_url_head(
    url: Optional[str],
    session: Optional[requests.Session] = None,
    user_agent: str = BROWSER_USER_AGENT,
    timeout: float = DEFAULT_TIMEOUT,
) -> bool:
    """
    2.0 Check whether a URL currently resolves with a HEAD request.

    Args:
        url: URL to check (None or empty means not live)
        session: Optional session to issue the request on
        user_agent: User-Agent header to send
        timeout: Request timeout in seconds

    Returns:
        True for a 2xx response, False otherwise (including errors).
    """
    if not url:
        return False

    http = session or requests
    try:
        response = http.head(
            url,
            headers={'User-Agent': user_agent},
            timeout=timeout,
            allow_redirects=True,
        )
    except requests.exceptions.RequestException as e:
        logger.debug(f"HEAD {url} failed: {type(e).__name__}: {e}")
        return False

    live = 200 <= response.status_code < 300
    logger.debug(f"HEAD {url} -> {response.status_code} ({'live' if live else 'not live'})")
    return live


class LivenessProber:
    """
    3.0 LivenessProber Class
    Checks product image URLs for availability.
    """

    def __init__(self, config: Optional[Dict[str, Any]] = None, session: Optional[requests.Session] = None):
        config = config or {}
        self.user_agent = config.get("user_agent", BROWSER_USER_AGENT)
        self.timeout = config.get("probe_timeout", DEFAULT_TIMEOUT)
        self.max_workers = max(1, int(config.get("max_probe_workers", 8)))

        # Plain session: no retry adapter, a failed probe waits for the next cycle
        self.session = session or requests.Session()

    def is_live(self, probe_url: Optional[str]) -> bool:
        return check_url_head(probe_url, session=self.session, user_agent=self.user_agent, timeout=self.timeout)

    def check_many(self, probe_urls: Sequence[Optional[str]]) -> List[bool]:
        """
        3.1 Check several URLs concurrently.

        Returns one result per input URL, in input order. Empty URLs are
        answered without a request.
        """
        if not probe_urls:
            return []
        if len(probe_urls) == 1 or self.max_workers == 1:
            return [self.is_live(url) for url in probe_urls]

        workers = min(self.max_workers, len(probe_urls))
        with ThreadPoolExecutor(max_workers=workers) as executor:
            return list(executor.map(self.is_live, probe_urls))
