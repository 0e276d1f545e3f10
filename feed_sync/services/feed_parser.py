"""Feed parser service.

This module parses RSS 2.0 (and RDF) and Atom documents into FeedMeta and
FeedItem records. Elements are matched by namespace URI and local name, so
core RSS elements are never confused with extension elements that share a
local name (media:title, itunes:author, atom:link).
"""

import logging
from itertools import islice
from typing import AbstractSet, Iterator, List, Optional, Tuple
from urllib.parse import urljoin, urlsplit, urlunsplit

from bs4 import BeautifulSoup
from lxml import etree

from feed_sync.errors import NotFeed
from feed_sync.models.schemas import FeedFormat, FeedItem, FeedMeta
from feed_sync.services.dates import parse_date
from feed_sync.services.format_sniffer import detect_format

logger = logging.getLogger(__name__)

DEFAULT_MAX_ITEMS = 50

# Plain RSS 2.0 elements carry no namespace; RDF feeds use the RSS 1.0/0.90 ones.
RSS_NS = frozenset({
    None,
    "http://purl.org/rss/1.0/",
    "http://my.netscape.com/rdf/simple/0.9/",
})
ATOM_NS = frozenset({
    None,
    "http://www.w3.org/2005/Atom",
    "http://purl.org/atom/ns#",
})
CONTENT_NS = frozenset({"http://purl.org/rss/1.0/modules/content/"})
DC_NS = frozenset({"http://purl.org/dc/elements/1.1/"})
MEDIA_NS = frozenset({"http://search.yahoo.com/mrss/", "http://search.yahoo.com/mrss"})


class MalformedItem(ValueError):
    """An item/entry that cannot become a FeedItem; it is skipped."""


def parse_feed(
    data: bytes,
    base_url: str,
    fmt: Optional[FeedFormat] = None,
    max_items: int = DEFAULT_MAX_ITEMS,
) -> Tuple[FeedMeta, List[FeedItem]]:
    """Parse a feed document.

    Args:
        data: Raw document bytes
        base_url: URL the document was fetched from; relative links resolve against it
        fmt: Detected format (sniffed from data when omitted)
        max_items: Maximum number of items to extract; later items are not parsed

    Returns:
        Tuple of (FeedMeta, list of FeedItem in document order)

    Raises:
        NotFeed: If the format is unrecognized or the XML is malformed
    """
    if fmt is None:
        fmt = detect_format(data)

    root = _parse_xml(data)
    parser = RSSParser(base_url) if fmt is FeedFormat.RSS2 else AtomParser(base_url)

    meta = parser.parse_meta(root)
    items = parser.parse_items(root, max_items)

    logger.info(f"Parsed {len(items)} items from {fmt.value} feed {base_url}")
    return meta, items


def _parse_xml(data: bytes) -> etree._Element:
    xml_parser = etree.XMLParser(resolve_entities=False, no_network=True)
    try:
        root = etree.fromstring(data, parser=xml_parser)
    except etree.XMLSyntaxError as e:
        raise NotFeed(f"Malformed feed XML: {e}") from e
    if root is None:
        raise NotFeed("Empty feed document")
    return root


def _is(element: etree._Element, name: str, namespaces: AbstractSet[Optional[str]]) -> bool:
    """True if element's local name is name (case-insensitive) in one of namespaces."""
    tag = element.tag
    if not isinstance(tag, str):
        return False
    qname = etree.QName(tag)
    return qname.localname.lower() == name and qname.namespace in namespaces


def _children(
    element: etree._Element,
    name: str,
    namespaces: AbstractSet[Optional[str]] = RSS_NS,
) -> Iterator[etree._Element]:
    return (child for child in element if _is(child, name, namespaces))


def _child(
    element: etree._Element,
    name: str,
    namespaces: AbstractSet[Optional[str]] = RSS_NS,
) -> Optional[etree._Element]:
    return next(_children(element, name, namespaces), None)


def _text(element: Optional[etree._Element]) -> Optional[str]:
    """Return the stripped text content of an element, or None if empty."""
    if element is None:
        return None
    text = "".join(element.itertext()).strip()
    return text or None


def _first_text(
    element: etree._Element,
    name: str,
    namespaces: AbstractSet[Optional[str]] = RSS_NS,
) -> Optional[str]:
    """Return the first non-empty text among children with the given name."""
    for child in _children(element, name, namespaces):
        text = _text(child)
        if text:
            return text
    return None


def _markup(element: Optional[etree._Element]) -> Optional[str]:
    """Return element content as HTML, keeping inline XHTML children."""
    if element is None:
        return None
    if len(element) == 0:
        return _text(element)
    parts = [element.text or ""]
    for child in element:
        parts.append(etree.tostring(child, encoding="unicode", with_tail=True))
    html = "".join(parts).strip()
    return html or None


def favicon_url(base_url: str) -> Optional[str]:
    """Derive {scheme}://{host}[:{port}]/favicon.ico from a feed URL."""
    try:
        parts = urlsplit(base_url)
        host = parts.hostname
        port = parts.port
    except ValueError:
        return None
    if not parts.scheme or not host:
        return None
    if ":" in host:
        host = f"[{host}]"
    netloc = host if port is None else f"{host}:{port}"
    return urlunsplit((parts.scheme, netloc, "/favicon.ico", "", ""))


class _BaseParser:
    """Shared URL resolution and HTML image scanning."""

    def __init__(self, base_url: str):
        self.base_url = base_url

    def resolve(self, value: Optional[str]) -> Optional[str]:
        if not value:
            return None
        try:
            return urljoin(self.base_url, value.strip())
        except ValueError:
            return None

    def resolve_link(self, value: Optional[str]) -> str:
        return self.resolve(value) or self.base_url

    def image_from_html(self, html: Optional[str]) -> Optional[str]:
        """Return the first <img src> in an HTML fragment, resolved."""
        if not html or "<img" not in html.lower():
            return None
        soup = BeautifulSoup(html, "lxml")
        for img in soup.find_all("img"):
            src = (img.get("src") or "").strip()
            if src:
                return self.resolve(src)
        return None

    def parse_items(self, root: etree._Element, max_items: int) -> List[FeedItem]:
        items = []
        for node in islice(self.item_nodes(root), max_items):
            try:
                items.append(self.parse_item(node))
            except Exception as e:
                logger.debug(f"Skipping malformed item in {self.base_url}: {e}")
        return items

    def item_nodes(self, root: etree._Element) -> Iterator[etree._Element]:
        raise NotImplementedError

    def parse_item(self, node: etree._Element) -> FeedItem:
        raise NotImplementedError

    def parse_meta(self, root: etree._Element) -> FeedMeta:
        raise NotImplementedError


class RSSParser(_BaseParser):
    """RSS 2.0 / RDF item extraction."""

    def item_nodes(self, root):
        return (el for el in root.iter() if _is(el, "item", RSS_NS))

    def parse_meta(self, root):
        channel = _child(root, "channel")
        if channel is None:
            channel = root

        image = _child(channel, "image")
        if image is None:
            # RDF places <image> beside <channel>
            image = _child(root, "image")
        thumbnail = self.resolve(_text(_child(image, "url"))) if image is not None else None

        return FeedMeta(
            title=_text(_child(channel, "title")),
            thumbnail_url=thumbnail or favicon_url(self.base_url),
        )

    def parse_item(self, node):
        title = _first_text(node, "title")
        link = _first_text(node, "link")
        if not title and not link:
            raise MalformedItem("item has neither title nor link")

        content = (
            _markup(_child(node, "encoded", CONTENT_NS))
            or _markup(_child(node, "description"))
        )
        author = _first_text(node, "author") or _first_text(node, "creator", DC_NS)
        date_text = (
            _first_text(node, "pubdate")
            or _first_text(node, "published", RSS_NS | ATOM_NS)
            or _first_text(node, "date", DC_NS)
        )

        return FeedItem(
            title=title or "",
            link=self.resolve_link(link),
            content_html=content,
            author=author,
            published_at=parse_date(date_text),
            featured_image_url=self._image(node, content),
        )

    def _image(self, node, content: Optional[str]) -> Optional[str]:
        for enclosure in _children(node, "enclosure"):
            media_type = (enclosure.get("type") or "").lower()
            if media_type.startswith("image/"):
                url = self.resolve(enclosure.get("url"))
                if url:
                    return url

        media_url = self._media_url(node)
        if media_url:
            return media_url

        return self.image_from_html(content)

    def _media_url(self, node) -> Optional[str]:
        candidates = list(node)
        for group in _children(node, "group", MEDIA_NS):
            candidates.extend(group)

        for name in ("content", "thumbnail"):
            for element in candidates:
                if not _is(element, name, MEDIA_NS):
                    continue
                url = self.resolve(element.get("url"))
                if url:
                    return url
        return None


class AtomParser(_BaseParser):
    """Atom entry extraction."""

    def item_nodes(self, root):
        return (el for el in root.iter() if _is(el, "entry", ATOM_NS))

    def parse_meta(self, root):
        thumbnail = (
            self.resolve(_text(_child(root, "logo", ATOM_NS)))
            or self.resolve(_text(_child(root, "icon", ATOM_NS)))
        )
        return FeedMeta(
            title=_text(_child(root, "title", ATOM_NS)),
            thumbnail_url=thumbnail or favicon_url(self.base_url),
        )

    def parse_item(self, node):
        title = _first_text(node, "title", ATOM_NS)
        href = self._link_href(node)
        if not title and not href:
            raise MalformedItem("entry has neither title nor link")

        content = (
            _markup(_child(node, "content", ATOM_NS))
            or _markup(_child(node, "summary", ATOM_NS))
        )
        author_node = _child(node, "author", ATOM_NS)
        author = _text(_child(author_node, "name", ATOM_NS)) if author_node is not None else None
        date_text = _first_text(node, "published", ATOM_NS) or _first_text(node, "updated", ATOM_NS)

        return FeedItem(
            title=title or "",
            link=self.resolve_link(href),
            content_html=content,
            author=author,
            published_at=parse_date(date_text),
            featured_image_url=self.image_from_html(content),
        )

    def _link_href(self, node) -> Optional[str]:
        first = None
        for link in _children(node, "link", ATOM_NS):
            href = link.get("href")
            if not href:
                continue
            if link.get("rel", "alternate") == "alternate":
                return href
            if first is None:
                first = href
        return first
