"""Thumbnail generation and perceptual hashing of uploaded media."""

from __future__ import annotations

import logging
import subprocess
from dataclasses import dataclass
from pathlib import Path
from typing import Protocol

from PIL import Image, ImageOps

logger = logging.getLogger(__name__)

_DISPLAYABLE_EXTENSIONS = frozenset(
    {".jpg", ".jpeg", ".bmp", ".gif", ".png", ".svg", ".webp", ".tiff", ".tif", ".jfif"}
)
_PLAYABLE_EXTENSIONS = frozenset({".mpg", ".mov", ".webm", ".avi", ".mp4", ".mp3", ".ogg", ".wav"})
_DECODABLE_EXTENSIONS = frozenset(
    {".jpg", ".jpeg", ".bmp", ".gif", ".png", ".webp", ".tiff", ".tif", ".jfif"}
)
_VIDEO_EXTENSIONS = frozenset({".mpg", ".mov", ".webm", ".avi", ".mp4"})

_HASH_SIZE = 9


class ThumbnailError(Exception):
    """Raised when a file cannot be thumbnailed or hashed."""


@dataclass
class MediaConfig:
    """Locations and limits used when handling media files."""

    image_directory: Path
    http_root: Path
    max_thumbnail_width: int = 450
    max_thumbnail_height: int = 300
    use_ffmpeg: bool = False
    ffmpeg_path: str = "ffmpeg"

    def __post_init__(self) -> None:
        self.image_directory = Path(self.image_directory)
        self.http_root = Path(self.http_root)

    def thumbnail_path(self, name: str) -> Path:
        return self.image_directory / "thumbs" / f"{name}.png"


class _HashStore(Protocol):
    def set_image_dhash(self, image_id: int, h_hash: int, v_hash: int) -> None: ...


def _extension(name: str) -> str:
    last = name.lower().rsplit("/", 1)[-1]
    dot = last.rfind(".")
    return last[dot:] if dot >= 0 else ""


def thumbnail_dimensions(
    width: int, height: int, max_width: int, max_height: int
) -> tuple[int, int]:
    """Scale ``width`` x ``height`` down to fit the thumbnail limits."""
    if width >= height and width > max_width:
        scale = max_width / width
        width, height = int(width * scale), int(height * scale)
    if height > width and height > max_height:
        scale = max_height / height
        width, height = int(width * scale), int(height * scale)
    return width, height


def resolve_thumbnail_path(config: MediaConfig, name: str) -> Path:
    """Pick the file to serve as the thumbnail for ``name``."""
    path = config.thumbnail_path(name)
    if not path.exists():
        ext = _extension(name)
        if ext in _DISPLAYABLE_EXTENSIONS:
            path = config.image_directory / name
        elif ext in _PLAYABLE_EXTENSIONS:
            path = config.http_root / "resources" / "playicon.svg"
    if not path.exists():
        path = config.http_root / "resources" / "noicon.svg"
    return path


def _open_oriented(path: Path) -> Image.Image:
    with Image.open(path) as source:
        source.load()
        return ImageOps.exif_transpose(source)


def generate_thumbnail(config: MediaConfig, name: str) -> Path:
    """Write a PNG thumbnail for ``name`` and return its path."""
    ext = _extension(name)
    target = config.thumbnail_path(name)
    if ext in _DECODABLE_EXTENSIONS:
        image = _open_oriented(config.image_directory / name)
        if image.mode not in ("L", "LA", "RGB", "RGBA"):
            image = image.convert("RGBA")
        width, height = thumbnail_dimensions(
            image.width, image.height, config.max_thumbnail_width, config.max_thumbnail_height
        )
        thumbnail = image.resize((max(width, 1), max(height, 1)), Image.Resampling.LANCZOS)
        thumbnail.save(target, format="PNG")
        return target
    if ext in _VIDEO_EXTENSIONS:
        logger.debug("Video detected: %s", name)
        if not config.use_ffmpeg:
            raise ThumbnailError("No thumbnail method for file type")
        scale = f"thumbnail,scale={config.max_thumbnail_width}:{config.max_thumbnail_height}"
        command = [
            config.ffmpeg_path,
            "-i", str(config.image_directory / name),
            "-vf", scale,
            "-frames:v", "1",
            str(target),
        ]
        try:
            subprocess.run(command, capture_output=True, check=True)
        except (OSError, subprocess.CalledProcessError) as exc:
            logger.error("Failed to use FFMPEG for %s: %s", name, exc)
            raise ThumbnailError(f"FFMPEG failed for {name}: {exc}") from exc
        logger.info("FFMPEG output success: %s", name)
        return target
    raise ThumbnailError("No thumbnail method for file type")


def compute_dhash(image: Image.Image) -> tuple[int, int]:
    """Return the horizontal and vertical 64-bit difference hashes of ``image``."""
    small = image.convert("RGBA").resize((_HASH_SIZE, _HASH_SIZE), Image.Resampling.LANCZOS)
    premultiplied = small.convert("RGBa")
    pixels = premultiplied.load()
    grey = [
        [
            # 16-bit channel average, truncated to its low byte
            ((pixels[x, y][0] + pixels[x, y][1] + pixels[x, y][2]) * 257 // 3) & 0xFF
            for y in range(_HASH_SIZE)
        ]
        for x in range(_HASH_SIZE)
    ]

    h_hash = 0
    bit = 64
    for y in range(1, _HASH_SIZE):
        for x in range(1, _HASH_SIZE):
            bit -= 1
            if grey[x][y] > grey[x - 1][y]:
                h_hash |= 1 << bit

    v_hash = 0
    bit = 64
    for x in range(1, _HASH_SIZE):
        for y in range(1, _HASH_SIZE):
            bit -= 1
            if grey[x][y] > grey[x][y - 1]:
                v_hash |= 1 << bit

    return h_hash, v_hash


def generate_dhash(config: MediaConfig, name: str, image_id: int, store: _HashStore) -> tuple[int, int]:
    """Hash the stored image ``name`` and record the result for ``image_id``."""
    if _extension(name) not in _DECODABLE_EXTENSIONS:
        raise ThumbnailError("Cannot process image of this type")
    image = _open_oriented(config.image_directory / name)
    h_hash, v_hash = compute_dhash(image)
    store.set_image_dhash(image_id, h_hash, v_hash)
    return h_hash, v_hash