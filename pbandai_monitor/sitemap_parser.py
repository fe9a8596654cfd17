import logging
from dataclasses import dataclass
from typing import List, Optional, Union
from urllib.parse import urlparse

from lxml import etree  # Using lxml for robust parsing and namespace handling

logger = logging.getLogger(__name__)

SITEMAP_NS = {
    'sm': 'http://www.sitemaps.org/schemas/sitemap/0.9',
    'image': 'http://www.google.com/schemas/sitemap-image/1.1',
}

# Product pages live at .../item/<PRODUCT_ID>
ITEM_PATH_SEGMENT = "item"


class SitemapParseError(ValueError):
    """Raised when a sitemap body cannot be parsed as XML at all."""


@dataclass
class SitemapProduct:
    """A product entry parsed from the sitemap."""
    id: str
    probe_url: Optional[str] = None


def extract_product_id(loc: str) -> Optional[str]:
    """
    Extract the product id from a product page URL.

    The id is the path segment right after 'item', e.g.
    https://p-bandai.com/us/item/N2741785001 -> N2741785001.
    Only upper-case letters and digits form a valid id.
    """
    if not loc:
        return None
    segments = [s for s in urlparse(loc.strip()).path.split("/") if s]
    for i, segment in enumerate(segments[:-1]):
        if segment == ITEM_PATH_SEGMENT:
            candidate = segments[i + 1]
            if candidate.isascii() and candidate.isalnum() and candidate == candidate.upper():
                return candidate
            return None
    return None


class SitemapParser:
    def __init__(self):
        logger.debug("SitemapParser initialized.")

    def parse_products(self, xml_content: Union[str, bytes], sitemap_url: str = "") -> List[SitemapProduct]:
        """
        Parses product entries from a urlset sitemap.

        Each <url> block yields one SitemapProduct when its <loc> carries an
        item id; the first <image:image>/<image:loc> of the block becomes the
        probe URL. Entries without an id are skipped. Document order and
        duplicate ids are preserved.

        Bytes are handed to lxml as-is so the XML declaration decides the
        encoding.

        Raises:
            SitemapParseError: if the content is empty, not XML, or not a
                sitemap (unknown root and no url entries, e.g. a block page).
        """
        if not xml_content or not xml_content.strip():
            raise SitemapParseError(f"Empty sitemap content from {sitemap_url}")

        try:
            # recover mode parses mildly malformed XML
            parser = etree.XMLParser(recover=True, remove_blank_text=True)
            if isinstance(xml_content, str):
                xml_content = xml_content.encode('utf-8')
            root = etree.fromstring(xml_content, parser=parser)
        except etree.XMLSyntaxError as e:
            raise SitemapParseError(f"XML syntax error in sitemap from {sitemap_url}: {e}") from e

        if root is None:
            raise SitemapParseError(f"No XML document found in sitemap from {sitemap_url}")

        url_elements = list(root.iter('{%s}url' % SITEMAP_NS['sm']))

        root_tag_name = etree.QName(root.tag).localname
        if root_tag_name != 'urlset':
            if not url_elements:
                raise SitemapParseError(
                    f"Unknown root element '{root_tag_name}' and no url entries in {sitemap_url}"
                )
            logger.warning(f"Unexpected root tag '{root_tag_name}' in sitemap from {sitemap_url}. Using its url entries anyway.")

        products: List[SitemapProduct] = []
        skipped = 0
        for url_element in url_elements:
            loc_el = url_element.find('sm:loc', SITEMAP_NS)
            product_id = extract_product_id(loc_el.text) if loc_el is not None and loc_el.text else None
            if not product_id:
                skipped += 1
                continue

            image_el = url_element.find('image:image/image:loc', SITEMAP_NS)
            probe_url = image_el.text.strip() if image_el is not None and image_el.text and image_el.text.strip() else None
            products.append(SitemapProduct(id=product_id, probe_url=probe_url))

        if skipped:
            logger.debug(f"Skipped {skipped} sitemap entries without a product id.")
        logger.debug(f"Extracted {len(products)} product entries from {sitemap_url}.")
        return products
