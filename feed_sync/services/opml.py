"""OPML subscription list parsing."""

import logging
from typing import List, Optional, Tuple

from lxml import etree

from feed_sync.errors import NotFeed

logger = logging.getLogger(__name__)


def _secure(url: str) -> str:
    if url[:7].lower() == "http://":
        return "https://" + url[7:]
    return url


def parse_opml(data: bytes) -> List[Tuple[Optional[str], str]]:
    """Extract feed subscriptions from an OPML document.

    Every <outline> carrying an xmlUrl attribute is a feed, at any nesting
    depth. Folder outlines without xmlUrl are skipped. http:// feed URLs are
    upgraded to https://.

    Args:
        data: Raw OPML bytes

    Returns:
        List of (title, feed_url) tuples in document order

    Raises:
        NotFeed: If the document is not well-formed XML
    """
    parser = etree.XMLParser(resolve_entities=False, no_network=True)
    try:
        root = etree.fromstring(data, parser=parser)
    except etree.XMLSyntaxError as e:
        raise NotFeed(f"Malformed OPML: {e}") from e

    entries = []
    for outline in root.iter("{*}outline"):
        xml_url = (outline.get("xmlUrl") or "").strip()
        if not xml_url:
            continue
        title = outline.get("title") or outline.get("text") or None
        entries.append((title, _secure(xml_url)))

    logger.info(f"Found {len(entries)} feed entries in OPML")
    return entries
