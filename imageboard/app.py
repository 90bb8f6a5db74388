"""The web application serving pages, media and tag views."""

from __future__ import annotations

import dataclasses
import logging
import secrets
import time
from pathlib import Path
from typing import Any
from urllib.parse import quote_plus

import jinja2
from flask import Flask, Response, abort, request, send_file, send_from_directory, session
from flask import redirect as flask_redirect
from markupsafe import Markup

from imageboard.imaging import resolve_thumbnail_path
from imageboard.media import create_template_environment
from imageboard.pages import (
    ImageCountCache,
    PageContext,
    Settings,
    add_flash,
    apply_flash,
    build_page_context,
    flash_redirect_url,
)
from imageboard.tags import TagLookupError, TagRedirect, handle_tag_command, search_tags, view_tag

logger = logging.getLogger(__name__)


def _form_values() -> dict[str, str]:
    values = request.args.to_dict()
    values.update(request.form.to_dict())
    return values


def _template_values(context: PageContext) -> dict[str, Any]:
    values = {f.name: getattr(context, f.name) for f in dataclasses.fields(context)}
    values["context"] = context
    values["logged_on"] = context.is_logged_on()
    return values


def _safe_name(name: str) -> str:
    if not name or name in (".", "..") or "/" in name or "\\" in name:
        abort(404)
    return name


def _register_bad_config(app: Flask, http_root: Path) -> None:
    resources = http_root / "resources"

    @app.route("/", defaults={"path": ""})
    @app.route("/<path:path>")
    def bad_config(path: str) -> Response:
        response = send_from_directory(resources, "updateconfig.html")
        # Never cache: once the configuration is fixed the real site must show.
        response.headers["Cache-Control"] = "no-cache, private, max-age=0"
        response.headers["Pragma"] = "no-cache"
        response.headers["X-Accel-Expires"] = "0"
        return response


def create_app(settings: Settings, store: Any) -> Flask:
    """Build the application; with no ``store`` every request gets the configuration notice."""
    app = Flask(__name__)
    app.config["SECRET_KEY"] = secrets.token_hex(32)
    http_root = Path(settings.http_root).resolve()

    if store is None:
        _register_bad_config(app, http_root)
        return app

    templates = create_template_environment(http_root)
    counter = ImageCountCache()
    media = dataclasses.replace(
        settings.media,
        image_directory=Path(settings.image_directory).resolve(),
        http_root=http_root,
    )

    def page_context() -> PageContext:
        return build_page_context(
            settings,
            store,
            counter,
            str(session.get("UserName") or ""),
            str(session.get("TokenID") or ""),
            request.remote_addr or "",
            session,
            _form_values().get("SearchTerms", ""),
        )

    def render(name: str, context: PageContext) -> Response:
        context.request_time = int((time.monotonic() - context.request_start) * 1000)
        apply_flash(session, _form_values().get("flash", ""), context)
        try:
            body = templates.get_template(name).render(_template_values(context))
        except jinja2.TemplateError as exc:
            logger.error("Template error in %s: %s", name, exc)
            return Response("", status=500)
        return Response(body, mimetype="text/html")

    def follow(target: TagRedirect) -> Response:
        add_flash(session, target.message, target.flash_name)
        return flask_redirect(flash_redirect_url(target.url, target.flash_name), code=302)

    @app.route("/")
    def root() -> Response:
        return render("indextemplate.html", page_context())

    @app.route("/resources/<file>")
    def resource(file: str) -> Response:
        return send_from_directory(http_root / "resources", _safe_name(file))

    @app.route("/redirect")
    def redirect_page() -> Response:
        context = page_context()
        context.redirect_link = _form_values().get("RedirectLink", "")
        logger.debug("Redirect for %s to %s", context.user.composite_id(), context.redirect_link)
        return render("redirect.html", context)

    @app.route("/images/<file>")
    def image(file: str) -> Response:
        return send_from_directory(media.image_directory, _safe_name(file))

    @app.route("/thumbs/<file>")
    def thumbnail(file: str) -> Response:
        path = resolve_thumbnail_path(media, _safe_name(file))
        if not path.is_file():
            abort(404)
        return send_file(path)

    @app.route("/tag", methods=["GET"])
    def tag_view() -> Response:
        context = page_context()
        try:
            tag, alias, message = view_tag(store, _form_values().get("ID", ""))
        except TagLookupError as exc:
            context.html_message = Markup(context.html_message) + exc.message
            target = TagRedirect(
                url="/tags?SearchTerms=" + quote_plus(context.old_query),
                flash_name="TagFail",
                message=context.html_message,
            )
            return follow(target)
        context.tag_content_info = tag
        context.alias_tag_info = alias
        context.html_message = Markup(context.html_message) + message
        return render("tag.html", context)

    @app.route("/tag", methods=["POST"])
    def tag_command() -> Response:
        context = page_context()
        return follow(handle_tag_command(context, _form_values(), store, settings))

    @app.route("/tags")
    def tag_list() -> Response:
        context = page_context()
        context.total_results = 0
        values = _form_values()
        tags, total, message = search_tags(
            store, values.get("SearchTags", ""), values.get("PageStart", ""), settings.page_stride
        )
        context.tags = tags
        context.total_results = total
        context.html_message = Markup(context.html_message) + message
        return render("tags.html", context)

    return app