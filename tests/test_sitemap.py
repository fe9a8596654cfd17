"""
SITEMAP TESTS - Parser and conditional fetcher, no network

Run: pytest tests/test_sitemap.py
"""

import pytest
import requests

from conftest import FakeResponse, FakeSession
from pbandai_monitor.sitemap_fetcher import SitemapFetchError, SitemapFetcher
from pbandai_monitor.sitemap_parser import SitemapParseError, SitemapParser, extract_product_id

SITEMAP_URL = "https://p-bandai.com/us/sitemap-product_1.xml"

PRODUCT_XML = """<?xml version="1.0" encoding="UTF-8"?>
<urlset xmlns="http://www.sitemaps.org/schemas/sitemap/0.9"
        xmlns:image="http://www.google.com/schemas/sitemap-image/1.1">
    <url>
        <loc>https://p-bandai.com/us/item/N2741785001</loc>
        <image:image><image:loc>https://img.example.com/N2741785001.jpg</image:loc></image:image>
    </url>
    <url>
        <loc>https://p-bandai.com/us/item/N9999999001</loc>
    </url>
    <url>
        <loc>https://p-bandai.com/us/</loc>
    </url>
    <url>
        <loc>https://p-bandai.com/us/item/N2741785001</loc>
    </url>
</urlset>"""

# =============================================================================
# 1. ID EXTRACTION
# =============================================================================

def test_extract_product_id():
    assert extract_product_id("https://p-bandai.com/us/item/N2741785001") == "N2741785001"
    assert extract_product_id("https://p-bandai.com/us/item/4573102630520/") == "4573102630520"
    assert extract_product_id("https://p-bandai.com/us/item/N27?ref=x") == "N27"
    assert extract_product_id("https://p-bandai.com/us/item/lowercase") is None
    assert extract_product_id("https://p-bandai.com/us/item/") is None
    assert extract_product_id("https://p-bandai.com/us/category/N1") is None
    assert extract_product_id("") is None

# =============================================================================
# 2. PARSING
# =============================================================================

def test_parse_products_in_document_order():
    products = SitemapParser().parse_products(PRODUCT_XML, SITEMAP_URL)

    assert [p.id for p in products] == ["N2741785001", "N9999999001", "N2741785001"]
    assert products[0].probe_url == "https://img.example.com/N2741785001.jpg"
    assert products[1].probe_url is None


def test_parse_empty_urlset():
    xml = '<?xml version="1.0"?><urlset xmlns="http://www.sitemaps.org/schemas/sitemap/0.9"></urlset>'
    assert SitemapParser().parse_products(xml) == []


def test_parse_empty_body_raises():
    with pytest.raises(SitemapParseError):
        SitemapParser().parse_products("   ")

# =============================================================================
# 3. CONDITIONAL FETCH
# =============================================================================

def test_first_fetch_is_unconditional_and_returns_etag():
    session = FakeSession([FakeResponse(200, PRODUCT_XML, {"ETag": "\"v2\""})])
    fetcher = SitemapFetcher(SITEMAP_URL, session=session)

    result = fetcher.fetch("")

    assert result.changed is True
    assert result.etag == "\"v2\""
    assert len(result.products) == 3
    assert "If-None-Match" not in session.calls[0]["headers"]


def test_not_modified_echoes_prior_etag():
    session = FakeSession([FakeResponse(304, "", {"ETag": "\"other\""})])
    fetcher = SitemapFetcher(SITEMAP_URL, session=session)

    result = fetcher.fetch("\"v1\"")

    assert result.changed is False
    assert result.etag == "\"v1\""
    assert result.products == []
    assert session.calls[0]["headers"]["If-None-Match"] == "\"v1\""


def test_missing_etag_returns_empty_string():
    session = FakeSession([FakeResponse(200, PRODUCT_XML)])
    result = SitemapFetcher(SITEMAP_URL, session=session).fetch("\"v1\"")
    assert result.changed is True
    assert result.etag == ""


@pytest.mark.parametrize("status", [403, 404, 429, 500, 503])
def test_error_status_is_a_failure(status):
    session = FakeSession([FakeResponse(status, "blocked")])
    with pytest.raises(SitemapFetchError) as excinfo:
        SitemapFetcher(SITEMAP_URL, session=session).fetch("\"v1\"")
    assert excinfo.value.status_code == status


def test_transport_error_is_a_failure():
    session = FakeSession([requests.exceptions.ConnectionError("reset")])
    with pytest.raises(SitemapFetchError):
        SitemapFetcher(SITEMAP_URL, session=session).fetch("")


def test_timeout_is_passed_to_request():
    session = FakeSession([FakeResponse(304)])
    SitemapFetcher(SITEMAP_URL, config={"timeout": 7}, session=session).fetch("x")
    assert session.calls[0]["timeout"] == 7


def test_default_session_retries_get_on_server_errors():
    fetcher = SitemapFetcher(SITEMAP_URL, config={"max_retries": 2, "user_agent": "Test/1.0"})
    retries = fetcher.session.get_adapter(SITEMAP_URL).max_retries

    assert retries.total == 2
    assert 503 in retries.status_forcelist
    assert 304 not in retries.status_forcelist
    assert fetcher.session.headers["User-Agent"] == "Test/1.0"

# =============================================================================
# 4. NON-SITEMAP RESPONSES AND ENCODING
# =============================================================================

BLOCK_PAGE = "<html><head><title>Just a moment...</title></head><body>Checking your browser</body></html>"


def test_block_page_is_not_a_sitemap():
    with pytest.raises(SitemapParseError):
        SitemapParser().parse_products(BLOCK_PAGE, SITEMAP_URL)


def test_block_page_fails_the_fetch():
    session = FakeSession([FakeResponse(200, BLOCK_PAGE, {"ETag": "\"cf\""})])
    with pytest.raises(SitemapParseError):
        SitemapFetcher(SITEMAP_URL, session=session).fetch("\"v1\"")


def test_unknown_root_with_url_entries_is_still_parsed():
    xml = """<root xmlns:sm="http://www.sitemaps.org/schemas/sitemap/0.9">
        <sm:url><sm:loc>https://p-bandai.com/us/item/N1</sm:loc></sm:url>
    </root>"""
    assert [p.id for p in SitemapParser().parse_products(xml)] == ["N1"]


def test_any_2xx_is_a_successful_fetch():
    session = FakeSession([FakeResponse(203, PRODUCT_XML, {"ETag": "\"v3\""})])
    result = SitemapFetcher(SITEMAP_URL, session=session).fetch("\"v2\"")
    assert result.changed is True
    assert result.etag == "\"v3\""
    assert len(result.products) == 3


def test_body_bytes_are_decoded_by_xml_declaration():
    xml = (
        '<?xml version="1.0" encoding="UTF-8"?>'
        '<urlset xmlns="http://www.sitemaps.org/schemas/sitemap/0.9"'
        ' xmlns:image="http://www.google.com/schemas/sitemap-image/1.1">'
        '<url><loc>https://p-bandai.com/us/item/N1</loc>'
        '<image:image><image:loc>https://img.example.com/café.jpg</image:loc></image:image></url>'
        '</urlset>'
    )
    response = FakeResponse(200, xml, {"ETag": "\"v2\""})
    # text/xml without a charset: requests falls back to ISO-8859-1 for .text
    response.text = response.content.decode("iso-8859-1")

    result = SitemapFetcher(SITEMAP_URL, session=FakeSession([response])).fetch("")
    assert result.products[0].probe_url == "https://img.example.com/café.jpg"
