import pytest
from PIL import Image

from imageboard.imaging import (
    MediaConfig,
    ThumbnailError,
    compute_dhash,
    generate_dhash,
    generate_thumbnail,
    resolve_thumbnail_path,
    thumbnail_dimensions,
)


@pytest.fixture
def config(tmp_path):
    images = tmp_path / "images"
    (images / "thumbs").mkdir(parents=True)
    root = tmp_path / "http"
    (root / "resources").mkdir(parents=True)
    (root / "resources" / "noicon.svg").write_text("<svg/>")
    (root / "resources" / "playicon.svg").write_text("<svg/>")
    return MediaConfig(
        image_directory=images, http_root=root, max_thumbnail_width=100, max_thumbnail_height=100
    )


def _gradient(size=9):
    image = Image.new("RGB", (size, size))
    for x in range(size):
        for y in range(size):
            image.putpixel((x, y), (x * 20, x * 20, x * 20))
    return image


def test_dimensions_unchanged_when_small():
    assert thumbnail_dimensions(80, 40, 100, 100) == (80, 40)


@pytest.mark.parametrize("w, h", [(400, 200), (200, 400), (1000, 1000), (333, 777)])
def test_dimensions_fit_limits(w, h):
    nw, nh = thumbnail_dimensions(w, h, 100, 100)
    assert nw <= 100 and nh <= 100
    assert abs(nw / max(nh, 1) - w / h) < 0.1 * (w / h) + 0.05


def test_resolve_existing_thumbnail(config):
    thumb = config.image_directory / "thumbs" / "a.jpg.png"
    thumb.write_bytes(b"x")
    assert resolve_thumbnail_path(config, "a.jpg") == thumb


def test_resolve_falls_back_to_original(config):
    original = config.image_directory / "b.JPG"
    original.write_bytes(b"x")
    assert resolve_thumbnail_path(config, "b.JPG") == original


def test_resolve_missing_image_uses_noicon(config):
    assert resolve_thumbnail_path(config, "c.png") == config.http_root / "resources" / "noicon.svg"


def test_resolve_video_uses_playicon(config):
    assert resolve_thumbnail_path(config, "d.mp4") == config.http_root / "resources" / "playicon.svg"


def test_generate_thumbnail_scales(config):
    Image.new("RGB", (400, 200), (10, 20, 30)).save(config.image_directory / "wide.png")
    target = generate_thumbnail(config, "wide.png")
    assert target == config.image_directory / "thumbs" / "wide.png.png"
    with Image.open(target) as thumb:
        assert thumb.size == thumbnail_dimensions(400, 200, 100, 100)
        assert thumb.format == "PNG"


def test_generate_thumbnail_unknown_type(config):
    with pytest.raises(ThumbnailError):
        generate_thumbnail(config, "notes.txt")


def test_generate_thumbnail_video_without_ffmpeg(config):
    with pytest.raises(ThumbnailError):
        generate_thumbnail(config, "clip.mp4")


def test_generate_thumbnail_ffmpeg_missing(config, tmp_path):
    config.use_ffmpeg = True
    config.ffmpeg_path = str(tmp_path / "no-such-binary")
    with pytest.raises(ThumbnailError):
        generate_thumbnail(config, "clip.mp4")


def test_dhash_uniform_image_is_zero():
    assert compute_dhash(Image.new("RGB", (30, 20), (120, 120, 120))) == (0, 0)


def test_dhash_horizontal_gradient():
    h_hash, v_hash = compute_dhash(_gradient())
    assert h_hash == (1 << 64) - 1
    assert v_hash == 0


def test_dhash_transposed_gradient_swaps():
    image = _gradient().transpose(Image.Transpose.TRANSPOSE)
    h_hash, v_hash = compute_dhash(image)
    assert (v_hash, h_hash) == compute_dhash(_gradient())


class _Store:
    def __init__(self):
        self.calls = []

    def set_image_dhash(self, image_id, h_hash, v_hash):
        self.calls.append((image_id, h_hash, v_hash))


def test_generate_dhash_records(config):
    _gradient().save(config.image_directory / "g.png")
    store = _Store()
    result = generate_dhash(config, "g.png", 42, store)
    assert store.calls == [(42, *result)]
    assert result == compute_dhash(_gradient())


def test_generate_dhash_rejects_unsupported(config):
    store = _Store()
    with pytest.raises(ThumbnailError):
        generate_dhash(config, "clip.mp4", 1, store)
    assert store.calls == []