"""
Shared fakes for the monitor tests. No network: every HTTP collaborator
is replaced by a small in-memory object.
"""

from typing import Dict, List, Optional

import pytest

from pbandai_monitor.sitemap_fetcher import FetchResult
from pbandai_monitor.sitemap_parser import SitemapProduct
from pbandai_monitor.state_store import StateStore


class FakeResponse:
    def __init__(self, status_code: int = 200, text: str = "", headers: Optional[Dict[str, str]] = None):
        self.status_code = status_code
        self.text = text
        self.content = text.encode("utf-8")
        self.headers = headers or {}


class FakeSession:
    """Records calls and replays queued responses or exceptions."""

    def __init__(self, responses=None):
        self.responses = list(responses or [])
        self.calls: List[Dict] = []

    def _next(self, method, url, **kwargs):
        self.calls.append({"method": method, "url": url, **kwargs})
        item = self.responses.pop(0) if self.responses else FakeResponse(200)
        if isinstance(item, Exception):
            raise item
        return item

    def get(self, url, **kwargs):
        return self._next("GET", url, **kwargs)

    def head(self, url, **kwargs):
        return self._next("HEAD", url, **kwargs)

    def post(self, url, **kwargs):
        return self._next("POST", url, **kwargs)


class FakeFetcher:
    """Returns queued FetchResults (or raises queued exceptions)."""

    def __init__(self, results=None):
        self.results = list(results or [])
        self.etags_seen: List[str] = []

    def fetch(self, prior_etag: str = "") -> FetchResult:
        self.etags_seen.append(prior_etag)
        item = self.results.pop(0)
        if isinstance(item, Exception):
            raise item
        return item


class FakeProber:
    """URLs in `live` answer True; everything else False."""

    def __init__(self, live=None, fail: Optional[Exception] = None):
        self.live = set(live or [])
        self.fail = fail
        self.checked: List[Optional[str]] = []

    def is_live(self, url):
        self.checked.append(url)
        if self.fail:
            raise self.fail
        return bool(url) and url in self.live

    def check_many(self, urls):
        return [self.is_live(url) for url in urls]


class FakeNotifier:
    def __init__(self):
        self.messages: List[str] = []

    def notify(self, message: str) -> bool:
        self.messages.append(message)
        return True


def changed(etag: str, *ids: str) -> FetchResult:
    """FetchResult for a changed sitemap whose products use img/<id>.jpg as image."""
    return FetchResult(
        changed=True,
        etag=etag,
        products=[SitemapProduct(id=pid, probe_url=f"https://img.example.com/{pid}.jpg") for pid in ids],
    )


def unchanged(etag: str) -> FetchResult:
    return FetchResult(changed=False, etag=etag)


def img(pid: str) -> str:
    return f"https://img.example.com/{pid}.jpg"


@pytest.fixture
def store(tmp_path):
    return StateStore(str(tmp_path / "data" / "state.json"))


@pytest.fixture
def notifier():
    return FakeNotifier()
