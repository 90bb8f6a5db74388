"""Per-request page state shared by every rendered view."""

from __future__ import annotations

import enum
import logging
import time
from collections.abc import Callable, MutableMapping
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Protocol

from markupsafe import Markup

from imageboard.imaging import MediaConfig

logger = logging.getLogger(__name__)

APPLICATION_VERSION = "1.0.0"
DEFAULT_SLIDESHOW_SPEED = 30
_COUNT_CACHE_SECONDS = 3600.0
_FLASH_PREFIX = "_flashes:"


class Permission(enum.IntFlag):
    """Rights a user can hold, combined as bit flags."""

    NONE = 0
    VIEW_IMAGES_AND_TAGS = enum.auto()
    UPLOAD_IMAGE = enum.auto()
    MODIFY_IMAGE_TAGS = enum.auto()
    REMOVE_IMAGES = enum.auto()
    ADD_TAGS = enum.auto()
    MODIFY_TAGS = enum.auto()
    REMOVE_TAGS = enum.auto()
    BULK_TAG_OPERATIONS = enum.auto()
    SCORE_IMAGE = enum.auto()
    SOURCE_IMAGE = enum.auto()
    MODIFY_USERS = enum.auto()


@dataclass
class UserInformation:
    """Identity of the user making a request."""

    id: int = 0
    name: str = ""
    ip: str = ""

    def composite_id(self) -> str:
        """A single string naming the user, used in log lines."""
        return f"{self.name}({self.id})@{self.ip}"


@dataclass
class Settings:
    """Site-wide configuration."""

    http_root: Path = Path(".")
    image_directory: Path = Path("images")
    page_stride: int = 30
    max_thumbnail_width: int = 450
    max_thumbnail_height: int = 300
    use_ffmpeg: bool = False
    ffmpeg_path: str = "ffmpeg"
    allow_account_creation: bool = False
    users_control_own_objects: bool = False
    account_required_to_view: bool = False
    version: str = APPLICATION_VERSION

    def __post_init__(self) -> None:
        self.http_root = Path(self.http_root)
        self.image_directory = Path(self.image_directory)

    @property
    def media(self) -> MediaConfig:
        """The subset of settings needed for media handling."""
        return MediaConfig(
            image_directory=self.image_directory,
            http_root=self.http_root,
            max_thumbnail_width=self.max_thumbnail_width,
            max_thumbnail_height=self.max_thumbnail_height,
            use_ffmpeg=self.use_ffmpeg,
            ffmpeg_path=self.ffmpeg_path,
        )


@dataclass
class PageContext:
    """Everything a page template is rendered with."""

    page_title: str = "GIB"
    version: str = APPLICATION_VERSION
    images: list[Any] = field(default_factory=list)
    collection: Any = None
    collections: list[Any] = field(default_factory=list)
    old_query: str = ""
    page_menu: Markup = field(default_factory=Markup)
    total_results: int = 0
    tags: list[Any] = field(default_factory=list)
    image_content: Markup = field(default_factory=Markup)
    image_content_info: Any = None
    tag_content_info: Any = None
    alias_tag_info: Any = None
    user: UserInformation = field(default_factory=UserInformation)
    html_message: Markup = field(default_factory=Markup)
    allow_account_creation: bool = False
    account_required_to_view: bool = False
    question_one: str = ""
    question_two: str = ""
    question_three: str = ""
    permissions: Permission = Permission.NONE
    users_control_own: bool = False
    redirect_link: str = ""
    user_filter: str = ""
    similar_count: int = 0
    csrf: Markup = field(default_factory=Markup)
    previous_member_id: int = 0
    next_member_id: int = 0
    view_mode: str = "grid"
    slideshow_speed: int = DEFAULT_SLIDESHOW_SPEED
    request_start: float = field(default_factory=time.monotonic)
    request_time: int = 0
    mod_user: UserInformation = field(default_factory=UserInformation)

    def is_logged_on(self) -> bool:
        """True when the request carries a known user."""
        return self.user.id != 0 and self.user.name != ""


class _UserStore(Protocol):
    def get_user_id(self, user_name: str) -> int: ...

    def get_user_permission_set(self, user_name: str) -> int: ...

    def search_images(self, tags: list[Any], page_start: int, page_stride: int) -> tuple[list[Any], int]: ...

    def add_audit_log(self, user_id: int, kind: str, info: str) -> None: ...


class ImageCountCache:
    """Caches the total number of images, refreshing it at most hourly."""

    def __init__(
        self,
        max_age: float = _COUNT_CACHE_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.max_age = max_age
        self._clock = clock
        self._count = 0
        self._refreshed_at: float | None = None

    def total(self, store: _UserStore) -> int:
        """Return the cached count, asking ``store`` again once it is stale."""
        now = self._clock()
        if self._refreshed_at is None or now - self._refreshed_at > self.max_age:
            try:
                _, self._count = store.search_images([], 0, 1)
            except Exception as exc:  # a transient failure keeps the old count
                logger.warning("Failed to update count cache: %s", exc)
            self._refreshed_at = now
        return self._count


def flash_redirect_url(redirect_url: str, flash_name: str) -> str:
    """Append the flash marker to ``redirect_url``."""
    separator = "&" if "?" in redirect_url else "?"
    return f"{redirect_url}{separator}flash={flash_name}"


def resolve_view_mode(value: Any) -> str:
    """Normalise a stored view preference to ``stream``, ``slideshow`` or ``grid``."""
    if isinstance(value, str):
        lowered = value.lower()
        if lowered in ("stream", "slideshow"):
            return lowered
    return "grid"


def resolve_slideshow_speed(value: Any) -> int:
    """Return a stored slideshow speed in seconds, or the default."""
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    return DEFAULT_SLIDESHOW_SPEED


def write_audit_log(store: _UserStore, user_id: int, kind: str, info: str) -> None:
    """Record an audit entry for ``user_id``; failures are logged and re-raised."""
    try:
        store.add_audit_log(user_id, kind, info)
    except Exception as exc:
        logger.error("Failed to write audit entry for %s: %s %s %s", user_id, exc, kind, info)
        raise


def write_audit_log_by_name(store: _UserStore, user_name: str, kind: str, info: str) -> None:
    """Record an audit entry for the named user (id 0 if the name is unknown)."""
    try:
        user_id = store.get_user_id(user_name)
    except Exception as exc:
        logger.error("Could not get user id for audit log %s: %s %s %s", user_name, exc, kind, info)
        user_id = 0
    write_audit_log(store, user_id, kind, info)


def _split_host(address: str) -> str | None:
    if address.startswith("["):
        end = address.find("]")
        if end < 0 or address[end + 1 : end + 2] != ":":
            return None
        return address[1:end]
    host, sep, _ = address.rpartition(":")
    if not sep or ":" in host:
        return None
    return host


def build_page_context(
    settings: Settings,
    store: _UserStore,
    counter: ImageCountCache,
    user_name: str,
    token: str,
    remote_addr: str,
    session: MutableMapping[str, Any],
    search_terms: str,
) -> PageContext:
    """Assemble the common page state for a request."""
    context = PageContext(
        version=settings.version,
        allow_account_creation=settings.allow_account_creation,
        users_control_own=settings.users_control_own_objects,
        account_required_to_view=settings.account_required_to_view,
    )

    if token and user_name:
        try:
            context.permissions = Permission(store.get_user_permission_set(user_name))
        except Exception:
            context.permissions = Permission.NONE
        try:
            context.user.id = store.get_user_id(user_name)
            context.user.name = user_name
        except Exception as exc:
            logger.error("Failed to get user id for %s: %s", user_name, exc)

    host = _split_host(remote_addr)
    context.user.ip = host if host is not None else remote_addr

    context.view_mode = resolve_view_mode(session.get("ViewMode"))
    context.slideshow_speed = resolve_slideshow_speed(session.get("slideshowspeed"))
    context.old_query = search_terms.lower()
    context.total_results = counter.total(store)
    return context


def add_flash(session: MutableMapping[str, Any], message: str, flash_name: str) -> None:
    """Queue ``message`` in ``session`` under ``flash_name``."""
    key = _FLASH_PREFIX + flash_name
    session[key] = [*session.get(key, []), str(message)]


def apply_flash(session: MutableMapping[str, Any], flash_name: str, context: PageContext) -> None:
    """Move any pending flashes named ``flash_name`` into the page message."""
    if not flash_name:
        return
    pending = session.pop(_FLASH_PREFIX + flash_name, None) or []
    for message in pending:
        if isinstance(message, str):
            context.html_message = Markup(context.html_message + Markup(message))
        else:
            logger.debug("Flash is not markup for %s", context.user.composite_id())