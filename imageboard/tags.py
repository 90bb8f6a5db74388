"""Viewing, searching and editing tags."""

from __future__ import annotations

import logging
import re
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from typing import Any, Protocol
from urllib.parse import quote_plus

from markupsafe import Markup

from imageboard.pages import (
    PageContext,
    Permission,
    Settings,
    write_audit_log,
    write_audit_log_by_name,
)

logger = logging.getLogger(__name__)

_UINT32_MAX = 0xFFFFFFFF
_DIGITS = re.compile(r"[0-9]+")

_MUST_LOG_ON = "You must be logged in to perform that action.<br>"
_BAD_TAG_ID = "Error parsing tag id.<br>"
_TAG_INFO_FAILED = "Error getting tag info.<br>"
_INCOMPLETE_FORM = "You must complete the full form before this action can be performed.<br>"
_NO_BULK_PERMISSION = "User does not have modify permission for bulk tagging on images.<br>"
_NO_TAG_PERMISSION = "User does not have modify permission for tags.<br>"
_BAD_BULK_TAGS = (
    "Failed to get tags from user input. Ensure the tags you entered exist and that you did "
    "not enter more than one per field. And that the new and old tags are not the same tag or "
    "alias to the same tag.<br>"
)
_BAD_ALIAS = (
    "Error parsing alias information. Ensure you are not putting in multiple tags to alias, "
    "and that you are not pointing the alias to an alias.<br>"
)
_SQL_FAILED = "Error adding tags (SQL).<br>"


@dataclass(frozen=True)
class TagRedirect:
    """Where to send the user after a tag command, and the message to flash there."""

    url: str
    flash_name: str
    message: Markup


class TagLookupError(Exception):
    """Raised when a requested tag cannot be identified or loaded."""

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = Markup(message)


class _TagStore(Protocol):
    def get_tag(self, tag_id: int, include_count: bool) -> Any: ...

    def get_query_tags(self, query: str, include_aliases: bool) -> list[Any]: ...

    def update_tag(
        self, tag_id: int, name: str, description: str, alias_id: int, is_alias: bool, user_id: int
    ) -> None: ...

    def bulk_add_tag(self, new_tag_id: int, old_tag_id: int, user_id: int) -> None: ...

    def replace_image_tags(self, old_tag_id: int, new_tag_id: int, user_id: int) -> None: ...

    def delete_tag(self, tag_id: int) -> None: ...

    def search_tags(
        self, query: str, page_start: int, page_stride: int, a: bool, b: bool
    ) -> tuple[list[Any], int]: ...

    def get_user_id(self, user_name: str) -> int: ...

    def add_audit_log(self, user_id: int, kind: str, info: str) -> None: ...


class _Done(Exception):
    """Ends a command early with the redirect it settled on."""

    def __init__(self, redirect: TagRedirect) -> None:
        super().__init__(redirect.url)
        self.redirect = redirect


def parse_tag_id(value: str) -> int:
    """Parse a decimal tag id in the unsigned 32-bit range."""
    text = value or ""
    if not _DIGITS.fullmatch(text):
        raise ValueError(f"invalid tag id: {value!r}")
    number = int(text)
    if number > _UINT32_MAX:
        raise ValueError(f"tag id out of range: {value!r}")
    return number


def _page_offset(value: Any) -> int:
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    text = str(value or "")
    if not _DIGITS.fullmatch(text):
        return 0
    return min(int(text), _UINT32_MAX)


def view_tag(store: _TagStore, raw_id: str) -> tuple[Any, Any, Markup]:
    """Load a tag and, if it is an alias, the tag it points to.

    Returns the tag, the aliased tag (or ``None``) and a message for the page.
    """
    try:
        tag_id = parse_tag_id(raw_id)
    except ValueError as exc:
        logger.error("Failed to parse tag id: %s", exc)
        raise TagLookupError(_BAD_TAG_ID) from exc
    try:
        tag = store.get_tag(tag_id, True)
    except Exception as exc:
        logger.error("Failed to pull tag %s: %s", tag_id, exc)
        raise TagLookupError("Error pulling tag.<br>") from exc

    alias = None
    message = Markup()
    if tag.is_alias:
        try:
            alias = store.get_tag(tag.aliased_id, True)
        except Exception as exc:
            logger.error("Failed to pull alias of tag %s: %s", tag_id, exc)
            message = Markup("Tag is an alias, error pulling parent tag's information.<br>")
    return tag, alias, message


def search_tags(
    store: _TagStore, query: str, page_start: Any, page_stride: int
) -> tuple[list[Any], int, Markup]:
    """Search tags by name; returns the tags, the total match count and a page message."""
    start = _page_offset(page_start)
    try:
        tags, total = store.search_tags(query.strip(), start, page_stride, False, False)
    except Exception as exc:
        logger.error("Failed to pull tags: %s", exc)
        return [], 0, Markup("Error pulling tags.<br>")
    return list(tags), total, Markup()


def _append(context: PageContext, text: str) -> None:
    context.html_message = Markup(context.html_message) + Markup(text)


def _finish(context: PageContext, url: str, text: str, flash_name: str) -> TagRedirect:
    _append(context, text)
    return TagRedirect(url=url, flash_name=flash_name, message=context.html_message)


def _stop(context: PageContext, url: str, text: str, flash_name: str) -> _Done:
    return _Done(_finish(context, url, text, flash_name))


def _tags_url(context: PageContext) -> str:
    return "/tags?SearchTerms=" + quote_plus(context.old_query)


def _tag_url(context: PageContext, tag_id: int) -> str:
    return f"/tag?ID={tag_id}&SearchTerms={quote_plus(context.old_query)}"


def _audit_by_name(store: _TagStore, user_name: str, kind: str, info: str) -> None:
    try:
        write_audit_log_by_name(store, user_name, kind, info)
    except Exception:
        pass  # already logged; auditing never blocks the action


def _audit(store: _TagStore, user_id: int, kind: str, info: str) -> None:
    try:
        write_audit_log(store, user_id, kind, info)
    except Exception:
        pass


def _may_change(context: PageContext, settings: Settings, permission: Permission, tag: Any) -> bool:
    if permission in context.permissions:
        return True
    return settings.users_control_own_objects and context.user.id == tag.uploader_id


def _require_logon(context: PageContext) -> None:
    if not context.is_logged_on():
        raise _stop(context, "/logon", _MUST_LOG_ON, "LogonRequired")


def _load_tag(context: PageContext, form: Mapping[str, str], store: _TagStore) -> tuple[int, Any]:
    try:
        tag_id = parse_tag_id(form.get("ID", ""))
    except ValueError as exc:
        logger.error("Failed to parse tag id for %s: %s", context.user.composite_id(), exc)
        raise _stop(context, _tags_url(context), _BAD_TAG_ID, "TagFail") from exc
    try:
        tag = store.get_tag(tag_id, False)
    except Exception as exc:
        logger.error("Failed to get tag info for %s: %s", context.user.composite_id(), exc)
        raise _stop(context, _tags_url(context), _TAG_INFO_FAILED, "TagFail") from exc
    return tag_id, tag


def _single_existing(store: _TagStore, query: str) -> Any:
    try:
        found = list(store.get_query_tags(query, False))
    except Exception:
        return None
    if len(found) != 1 or not found[0].exists:
        return None
    return found[0]


def _bulk_pair(
    context: PageContext, form: Mapping[str, str], store: _TagStore, kind: str
) -> tuple[str, str, Any, Any]:
    old_query = form.get("tagName", "")
    new_query = form.get("newTagName", "")
    if not old_query or not new_query:
        raise _stop(context, _tags_url(context), _INCOMPLETE_FORM, "TagFail")
    required = Permission.MODIFY_IMAGE_TAGS | Permission.BULK_TAG_OPERATIONS
    if required not in context.permissions:
        name = context.user.name
        _audit_by_name(
            store,
            name,
            kind,
            f"{name} failed to add tag to images. Insufficient permissions. {old_query}->{new_query}",
        )
        raise _stop(context, _tags_url(context), _NO_BULK_PERMISSION, "TagFail")
    old_tag = _single_existing(store, old_query)
    new_tag = _single_existing(store, new_query)
    if old_tag is None or new_tag is None or old_tag.id == new_tag.id:
        raise _stop(context, _tags_url(context), _BAD_BULK_TAGS, "TagFail")
    return old_query, new_query, old_tag, new_tag


def _update_tag(
    context: PageContext, form: Mapping[str, str], store: _TagStore, settings: Settings
) -> TagRedirect | None:
    _require_logon(context)
    tag_id, tag = _load_tag(context, form, store)
    user = context.user
    if not _may_change(context, settings, Permission.MODIFY_TAGS, tag):
        _audit_by_name(
            store,
            user.name,
            "MODIFY-TAG",
            f"{user.name} failed to update tag. Insufficient permissions. {tag_id}",
        )
        raise _stop(context, _tag_url(context, tag_id), _NO_TAG_PERMISSION, "TagFail")

    alias_name = form.get("aliasedTagName", "")
    alias_id = 0
    is_alias = False
    if alias_name:
        try:
            aliased = list(store.get_query_tags(alias_name, False))
        except Exception:
            aliased = []
        if len(aliased) != 1:
            _append(context, _BAD_ALIAS)
            logger.error("Failed to parse alias id for %s", user.composite_id())
            return None
        alias_id = aliased[0].id
        is_alias = True

    name = form.get("tagName", "")
    description = form.get("tagDescription", "")
    try:
        store.update_tag(tag_id, name, description, alias_id, is_alias, user.id)
    except Exception:
        raise _stop(
            context,
            _tag_url(context, tag_id),
            "Failed to update tag. Is your name too short? Did it exist in the first place?<br>",
            "TagFail",
        )
    _audit_by_name(
        store,
        user.name,
        "MODIFY-TAG",
        f"{user.name} successfully updated tag. {tag_id} to alias {alias_name} "
        f"with name {name} and description {description}",
    )
    return _finish(context, _tag_url(context, tag_id), "Tag updated successfully.<br>", "TagSucceeded")


def _bulk_add_tag(
    context: PageContext, form: Mapping[str, str], store: _TagStore, settings: Settings
) -> TagRedirect | None:
    if not context.is_logged_on():
        _append(context, _MUST_LOG_ON)
        return None
    old_query, new_query, old_tag, new_tag = _bulk_pair(context, form, store, "ADD-BULKIMAGETAG")
    user = context.user
    try:
        store.bulk_add_tag(new_tag.id, old_tag.id, user.id)
    except Exception as exc:
        logger.error("Failed to bulk add tags %s->%s: %s", old_query, new_query, exc)
        raise _stop(context, _tag_url(context, new_tag.id), _SQL_FAILED, "TagFail") from exc
    _audit(
        store,
        user.id,
        "ADD-BULKIMAGETAG",
        f"{user.name} bulk added tags to images. {old_query}->{new_query}",
    )
    return _finish(context, _tag_url(context, new_tag.id), "Tags added successfully.<br>", "TagSucceeded")


def _replace_tag(
    context: PageContext, form: Mapping[str, str], store: _TagStore, settings: Settings
) -> TagRedirect | None:
    _require_logon(context)
    old_query, new_query, old_tag, new_tag = _bulk_pair(context, form, store, "REPLACE-BULKIMAGETAG")
    user = context.user
    try:
        store.replace_image_tags(old_tag.id, new_tag.id, user.id)
    except Exception as exc:
        logger.error("Failed to bulk replace tags %s->%s: %s", old_query, new_query, exc)
        raise _stop(context, _tag_url(context, old_tag.id), _SQL_FAILED, "TagFail") from exc
    _audit(
        store,
        user.id,
        "REPLACE-BULKIMAGETAG",
        f"{user.name} bulk added tags to images. {old_query}->{new_query}",
    )
    return _finish(
        context, _tag_url(context, new_tag.id), "Tags replaced successfully.<br>", "TagSucceeded"
    )


def _delete_tag(
    context: PageContext, form: Mapping[str, str], store: _TagStore, settings: Settings
) -> TagRedirect | None:
    _require_logon(context)
    tag_id, tag = _load_tag(context, form, store)
    user = context.user
    if not _may_change(context, settings, Permission.REMOVE_TAGS, tag):
        _audit_by_name(
            store,
            user.name,
            "DELETE-TAG",
            f"{user.name} failed to delete tag. Insufficient permissions. {tag_id}",
        )
        raise _stop(context, _tag_url(context, tag_id), _NO_TAG_PERMISSION, "TagFail")
    try:
        store.delete_tag(tag_id)
    except Exception:
        raise _stop(
            context,
            _tags_url(context),
            "Failed to delete tag. Ensure the tag is not currently in use.<br>",
            "TagFail",
        )
    _audit_by_name(store, user.name, "DELETE-TAG", f"{user.name} successfully deleted tag. {tag_id}")
    return _finish(context, _tags_url(context), "Tag deleted successfully.<br>", "DeleteSuccess")


_Handler = Callable[[PageContext, Mapping[str, str], _TagStore, Settings], "TagRedirect | None"]

_COMMANDS: dict[str, _Handler] = {
    "updateTag": _update_tag,
    "bulkAddTag": _bulk_add_tag,
    "replaceTag": _replace_tag,
    "delete": _delete_tag,
}


def handle_tag_command(
    context: PageContext, form: Mapping[str, str], store: _TagStore, settings: Settings
) -> TagRedirect:
    """Carry out the tag command named in ``form`` and say where to go next."""
    handler = _COMMANDS.get(form.get("command", ""))
    if handler is not None:
        try:
            redirect = handler(context, form, store, settings)
        except _Done as done:
            return done.redirect
        if redirect is not None:
            return redirect
    return _finish(context, _tags_url(context), "Unknown command given.<br>", "TagFail")