"""Helpers for presenting uploaded media inside HTML pages."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any

import jinja2
from markupsafe import Markup

logger = logging.getLogger(__name__)

_EMBED_IMAGE_EXTENSIONS = frozenset(
    {".jpg", ".jpeg", ".bmp", ".gif", ".png", ".svg", ".webp", ".tiff", ".tif", ".jfif"}
)
_EMBED_VIDEO_EXTENSIONS = frozenset({".mpg", ".mov", ".webm", ".avi", ".mp4", ".mp3", ".ogg"})
_AUDIO_TYPE_EXTENSIONS = frozenset({".wav", ".mp3", ".ogg"})
_VIDEO_TYPE_EXTENSIONS = frozenset({".mpg", ".mov", ".webm", ".avi", ".mp4", ".gif"})

_MIME_TYPES = {
    ".mp4": "video/mp4",
    ".webm": "video/webm",
    ".avi": "video/avi",
    ".mpg": "video/mpeg",
    ".mov": "video/quicktime",
    ".ogg": "video/ogg",
    ".mp3": "audio/mpeg3",
    ".wav": "audio/wav",
}


def _extension(path: str) -> str:
    """Lower-cased extension of the last path element, including the dot."""
    name = path.lower().rsplit("/", 1)[-1]
    dot = name.rfind(".")
    return name[dot:] if dot >= 0 else ""


def get_mime(extension: str, fallback: str) -> str:
    """Return the MIME type for an audio or video extension, or ``fallback``."""
    return _MIME_TYPES.get(extension, fallback)


def get_embed_for_content(image_location: str) -> Markup:
    """Return the HTML that embeds the named file on a page."""
    ext = _extension(image_location)
    source = f"/images/{image_location}"
    if ext in _EMBED_IMAGE_EXTENSIONS:
        html = f'<img src="{source}" alt="{image_location}" id="IMGContent" />'
    elif ext in _EMBED_VIDEO_EXTENSIONS:
        html = (
            f'<video controls loop> <source src="{source}" type="{get_mime(ext, "video/mp4")}">'
            "Your browser does not support the video tag.</video>"
        )
    elif ext == ".wav":
        html = (
            f'<audio controls loop> <source src="{source}" type="{get_mime(ext, "audio/wav")}">'
            "Your browser does not support the audio tag.</audio>"
        )
    else:
        logger.error(
            "File uploaded, but did not match a filter during download: %s", image_location
        )
        html = "<p>File format not supported. Click download.</p>"
    return Markup(html)


def get_image_type(path: str) -> str:
    """Classify a file as ``audio``, ``video`` or ``image`` by its extension."""
    ext = _extension(path)
    if ext in _AUDIO_TYPE_EXTENSIONS:
        return "audio"
    if ext in _VIDEO_TYPE_EXTENSIONS:
        return "video"
    return "image"


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def increment(value: Any) -> Any:
    """Add one to a number; any other value is returned unchanged."""
    return value + 1 if _is_number(value) else value


def decrement(value: Any) -> Any:
    """Subtract one from a number; any other value is returned unchanged."""
    return value - 1 if _is_number(value) else value


def _embed(value: Any) -> Markup:
    return get_embed_for_content(str(value))


def create_template_environment(http_root: str | Path) -> jinja2.Environment:
    """Load and compile every ``.html`` file in ``http_root``.

    Raises ``OSError`` if the directory cannot be read and
    ``jinja2.TemplateSyntaxError`` if a template does not parse.
    """
    root = Path(http_root)
    try:
        sources = {
            entry.name: entry.read_text(encoding="utf-8")
            for entry in sorted(root.iterdir())
            if entry.name.endswith(".html") and entry.is_file()
        }
    except OSError as exc:
        logger.error("Failed to read template directory %s: %s", root, exc)
        raise

    env = jinja2.Environment(
        loader=jinja2.DictLoader(sources),
        autoescape=jinja2.select_autoescape(default=True, default_for_string=True),
    )
    helpers = {
        "getimagetype": get_image_type,
        "inc": increment,
        "dec": decrement,
        "getEmbed": _embed,
    }
    env.globals.update(helpers)
    env.filters.update(helpers)

    try:
        for name in sources:
            env.get_template(name)
    except jinja2.TemplateSyntaxError as exc:
        logger.critical("Failed to parse templates: %s", exc)
        raise
    logger.info("Added templates: %d", len(sources))
    return env