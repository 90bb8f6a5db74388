"""Web layer of a tagged image board: media embedding, thumbnails, page state and tag views."""

__version__ = "0.1.0"
__all__ = ["media", "imaging", "pages", "tags", "app"]