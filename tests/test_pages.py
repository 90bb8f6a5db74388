import pytest
from markupsafe import Markup

from imageboard.pages import (
    ImageCountCache,
    PageContext,
    Permission,
    Settings,
    UserInformation,
    add_flash,
    apply_flash,
    build_page_context,
    flash_redirect_url,
    resolve_slideshow_speed,
    resolve_view_mode,
    write_audit_log,
    write_audit_log_by_name,
)


class FakeStore:
    def __init__(self, users=None, permissions=None, total=0, fail_search=False, fail_audit=False):
        self.users = users or {}
        self.permissions = permissions or {}
        self.total = total
        self.fail_search = fail_search
        self.fail_audit = fail_audit
        self.audit = []
        self.search_calls = 0

    def get_user_id(self, user_name):
        if user_name not in self.users:
            raise LookupError(user_name)
        return self.users[user_name]

    def get_user_permission_set(self, user_name):
        return self.permissions.get(user_name, 0)

    def search_images(self, tags, page_start, page_stride):
        self.search_calls += 1
        if self.fail_search:
            raise RuntimeError("down")
        return [], self.total

    def add_audit_log(self, user_id, kind, info):
        if self.fail_audit:
            raise RuntimeError("audit down")
        self.audit.append((user_id, kind, info))


class Clock:
    def __init__(self):
        self.now = 0.0

    def __call__(self):
        return self.now


def test_flash_redirect_url_without_query():
    assert flash_redirect_url("/logon", "LogonRequired") == "/logon?flash=LogonRequired"


def test_flash_redirect_url_with_query():
    url = flash_redirect_url("/tags?SearchTerms=cat", "TagFail")
    assert url == "/tags?SearchTerms=cat&flash=TagFail"


@pytest.mark.parametrize(
    "value,expected",
    [("STREAM", "stream"), ("SlideShow", "slideshow"), ("grid", "grid"), (None, "grid"), (3, "grid")],
)
def test_resolve_view_mode(value, expected):
    assert resolve_view_mode(value) == expected


@pytest.mark.parametrize("value,expected", [(12, 12), (None, 30), ("12", 30), (True, 30)])
def test_resolve_slideshow_speed(value, expected):
    assert resolve_slideshow_speed(value) == expected


def test_write_audit_log_records_entry():
    store = FakeStore()
    write_audit_log(store, 4, "DELETE-TAG", "info")
    assert store.audit == [(4, "DELETE-TAG", "info")]


def test_write_audit_log_reraises():
    store = FakeStore(fail_audit=True)
    with pytest.raises(RuntimeError):
        write_audit_log(store, 4, "DELETE-TAG", "info")


def test_write_audit_log_by_name_resolves_user():
    store = FakeStore(users={"alice": 7})
    write_audit_log_by_name(store, "alice", "MODIFY-TAG", "x")
    assert store.audit == [(7, "MODIFY-TAG", "x")]


def test_write_audit_log_by_name_unknown_user_uses_zero():
    store = FakeStore()
    write_audit_log_by_name(store, "ghost", "MODIFY-TAG", "x")
    assert store.audit == [(0, "MODIFY-TAG", "x")]


def test_image_count_cache_refreshes_only_when_stale():
    clock = Clock()
    cache = ImageCountCache(max_age=3600, clock=clock)
    store = FakeStore(total=5)
    assert cache.total(store) == 5
    store.total = 9
    clock.now = 100
    assert cache.total(store) == 5
    assert store.search_calls == 1
    clock.now = 4000
    assert cache.total(store) == 9
    assert store.search_calls == 2


def test_image_count_cache_keeps_old_count_on_error():
    clock = Clock()
    cache = ImageCountCache(max_age=10, clock=clock)
    store = FakeStore(total=5)
    assert cache.total(store) == 5
    store.fail_search = True
    clock.now = 20
    assert cache.total(store) == 5
    clock.now = 25
    cache.total(store)
    assert store.search_calls == 2


def test_is_logged_on():
    assert not PageContext().is_logged_on()
    assert not PageContext(user=UserInformation(id=3)).is_logged_on()
    assert PageContext(user=UserInformation(id=3, name="bob")).is_logged_on()


def test_composite_id_mentions_user():
    info = UserInformation(id=3, name="bob", ip="10.0.0.1")
    composite = info.composite_id()
    assert "bob" in composite and "10.0.0.1" in composite and "3" in composite


def test_build_page_context_logged_in_user():
    flags = Permission.MODIFY_TAGS | Permission.REMOVE_TAGS
    store = FakeStore(users={"alice": 11}, permissions={"alice": int(flags)}, total=42)
    settings = Settings(allow_account_creation=True, users_control_own_objects=True)
    context = build_page_context(
        settings, store, ImageCountCache(), "alice", "token", "192.168.1.5:5555",
        {"ViewMode": "Stream", "slideshowspeed": 8}, "Cat Dog",
    )
    assert context.is_logged_on()
    assert context.user.id == 11
    assert context.user.ip == "192.168.1.5"
    assert Permission.MODIFY_TAGS in context.permissions
    assert Permission.BULK_TAG_OPERATIONS not in context.permissions
    assert context.view_mode == "stream"
    assert context.slideshow_speed == 8
    assert context.old_query == "cat dog"
    assert context.total_results == 42
    assert context.allow_account_creation and context.users_control_own


def test_build_page_context_anonymous_and_ipv6():
    store = FakeStore(total=1)
    context = build_page_context(
        Settings(), store, ImageCountCache(), "", "", "[::1]:8080", {}, ""
    )
    assert not context.is_logged_on()
    assert context.user.ip == "::1"
    assert context.view_mode == "grid"
    assert context.slideshow_speed == 30
    assert context.permissions == Permission.NONE


def test_build_page_context_unknown_user_and_bad_address():
    store = FakeStore()
    context = build_page_context(
        Settings(), store, ImageCountCache(), "ghost", "token", "not-an-address", {}, ""
    )
    assert context.user.id == 0
    assert context.user.name == ""
    assert context.user.ip == "not-an-address"


def test_apply_flash_moves_messages_once():
    session = {}
    add_flash(session, "Tag updated successfully.<br>", "TagSucceeded")
    add_flash(session, "Second.<br>", "TagSucceeded")
    context = PageContext()
    apply_flash(session, "TagSucceeded", context)
    assert context.html_message == Markup("Tag updated successfully.<br>Second.<br>")
    again = PageContext()
    apply_flash(session, "TagSucceeded", again)
    assert again.html_message == ""


def test_apply_flash_ignores_empty_name_and_other_names():
    session = {}
    add_flash(session, "hello", "One")
    context = PageContext()
    apply_flash(session, "", context)
    apply_flash(session, "Two", context)
    assert context.html_message == ""
    apply_flash(session, "One", context)
    assert context.html_message == "hello"


def test_settings_media_config_carries_limits():
    settings = Settings(http_root="root", image_directory="imgs", max_thumbnail_width=10)
    media = settings.media
    assert media.max_thumbnail_width == 10
    assert media.thumbnail_path("a.png").name == "a.png.png"