import jinja2
import pytest
from markupsafe import Markup

from imageboard.media import (
    create_template_environment,
    decrement,
    get_embed_for_content,
    get_image_type,
    get_mime,
    increment,
)


@pytest.mark.parametrize(
    "ext, expected",
    [
        (".mp4", "video/mp4"),
        (".webm", "video/webm"),
        (".mov", "video/quicktime"),
        (".mp3", "audio/mpeg3"),
        (".wav", "audio/wav"),
    ],
)
def test_get_mime_known(ext, expected):
    assert get_mime(ext, "fallback/x") == expected


def test_get_mime_fallback():
    assert get_mime(".xyz", "fallback/x") == "fallback/x"


def test_embed_image():
    html = get_embed_for_content("picture.PNG")
    assert isinstance(html, Markup)
    assert html.startswith("<img ")
    assert 'src="/images/picture.PNG"' in html
    assert 'id="IMGContent"' in html


def test_embed_video_uses_mime():
    html = get_embed_for_content("clip.webm")
    assert html.startswith("<video controls loop>")
    assert 'type="video/webm"' in html


def test_embed_audio():
    html = get_embed_for_content("sound.wav")
    assert html.startswith("<audio controls loop>")
    assert 'type="audio/wav"' in html


def test_embed_unknown():
    assert get_embed_for_content("doc.pdf") == "<p>File format not supported. Click download.</p>"


@pytest.mark.parametrize(
    "path, expected",
    [("a.MP3", "audio"), ("b.ogg", "audio"), ("c.gif", "video"), ("d.mp4", "video"), ("e.jpg", "image"), ("noext", "image")],
)
def test_get_image_type(path, expected):
    assert get_image_type(path) == expected


def test_increment_decrement_round_trip():
    assert decrement(increment(7)) == 7
    assert increment(1.5) == 2.5
    assert decrement(0) == -1


def test_non_numbers_unchanged():
    assert increment("abc") == "abc"
    assert decrement(None) is None
    assert increment(True) is True


def test_template_environment_renders_helpers(tmp_path):
    (tmp_path / "page.html").write_text(
        "{{ getimagetype(name) }}|{{ inc(n) }}|{{ dec(n) }}|{{ getEmbed(name) }}"
    )
    (tmp_path / "notes.txt").write_text("ignored")
    env = create_template_environment(tmp_path)
    assert env.list_templates() == ["page.html"]
    out = env.get_template("page.html").render(name="clip.mp4", n=5)
    kind, up, down, embed = out.split("|", 3)
    assert kind == "video"
    assert up == "6"
    assert down == "4"
    assert embed == get_embed_for_content("clip.mp4")


def test_template_environment_autoescapes(tmp_path):
    (tmp_path / "x.html").write_text("{{ value }}")
    env = create_template_environment(tmp_path)
    assert "<b>" not in env.get_template("x.html").render(value="<b>")


def test_template_environment_missing_dir(tmp_path):
    with pytest.raises(FileNotFoundError):
        create_template_environment(tmp_path / "missing")


def test_template_environment_syntax_error(tmp_path):
    (tmp_path / "bad.html").write_text("{% if %}")
    with pytest.raises(jinja2.TemplateSyntaxError):
        create_template_environment(tmp_path)