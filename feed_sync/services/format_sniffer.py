"""Feed format detection."""

from feed_sync.errors import NotFeed
from feed_sync.models.schemas import FeedFormat

SNIFF_BYTES = 512


def detect_format(data: bytes) -> FeedFormat:
    """Classify a document as RSS2 or Atom from its leading bytes.

    Raises:
        NotFeed: If neither an <rss>/<rdf> nor a <feed> root is visible
    """
    prefix = data[:SNIFF_BYTES].decode("utf-8", errors="ignore").lower()

    if "<rss" in prefix or "<rdf" in prefix:
        return FeedFormat.RSS2
    if "<feed" in prefix:
        return FeedFormat.ATOM

    raise NotFeed("Unrecognized feed format")
