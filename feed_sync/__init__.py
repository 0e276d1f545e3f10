"""feed_sync - RSS/Atom feed synchronization with persistent read/starred state."""

__version__ = "0.1.0"
