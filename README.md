# imageboard

The web layer of a tagged image board. It turns uploaded files into
embeddable HTML, makes PNG thumbnails and difference hashes for images,
builds the per-request page context (user, permissions, view mode,
slideshow speed, flash messages), and serves the tag pages and tag
commands. A Flask application ties these together.

## Installing

Install the package from a checkout with your usual Python packaging
tool. The `test` extra pulls in pytest.

## Embedding media (`imageboard.media`)

```python
from imageboard.media import get_embed_for_content, get_image_type, get_mime

get_embed_for_content("cat.png")
# Markup('<img src="/images/cat.png" alt="cat.png" id="IMGContent" />')

get_image_type("clip.webm")   # "video"
get_image_type("song.mp3")    # "audio"
get_mime(".mov", "video/mp4") # "video/quicktime"
```

Images get an `<img>` tag, video and most audio a `<video>` element, `.wav`
an `<audio>` element. Any other extension gets a short "File format not
supported. Click download." paragraph and an error in the log.

`increment` and `decrement` add or subtract one from a number and return
anything else unchanged.

`create_template_environment(http_root)` loads every `.html` file at the
top level of `http_root` into a Jinja environment with autoescaping on,
compiles them all, and makes `getimagetype`, `inc`, `dec` and `getEmbed`
available both as globals and as filters. It raises `OSError` if the
directory cannot be read and `jinja2.TemplateSyntaxError` if a template
does not parse.

## Thumbnails and hashes (`imageboard.imaging`)

The functions work on a `MediaConfig`: `image_directory`, `http_root`,
`max_thumbnail_width` (450), `max_thumbnail_height` (300), `use_ffmpeg`
(off) and `ffmpeg_path` (`"ffmpeg"`).

- `thumbnail_dimensions(width, height, max_width, max_height)` shrinks the
  longer side to its limit and keeps the aspect ratio.
- `generate_thumbnail(config, name)` writes `thumbs/<name>.png` inside the
  image directory (the `thumbs` directory must already exist) and returns
  its path. Images are turned upright by their EXIF orientation and
  resized with Lanczos filtering. Videos (`.mpg`, `.mov`, `.webm`, `.avi`,
  `.mp4`) are handed to ffmpeg when `use_ffmpeg` is set. Other types, a
  disabled ffmpeg, or a failing ffmpeg run raise `ThumbnailError`.
- `compute_dhash(image)` returns the horizontal and vertical 64-bit
  difference hashes of a Pillow image, taken from a 9×9 greyscale copy.
- `generate_dhash(config, name, image_id, store)` computes those hashes for
  a stored image, passes them to `store.set_image_dhash(image_id, h_hash,
  v_hash)` and returns them. Non-image types raise `ThumbnailError`.
- `resolve_thumbnail_path(config, name)` picks the generated thumbnail,
  else the original image, else `resources/playicon.svg` for audio and
  video, and finally `resources/noicon.svg` under `http_root`.

## Pages, sessions and flashes (`imageboard.pages`)

```python
from imageboard.pages import flash_redirect_url, resolve_view_mode

flash_redirect_url("/tags?SearchTerms=cat", "TagFail")
# "/tags?SearchTerms=cat&flash=TagFail"

resolve_view_mode("Stream")  # "stream"
resolve_view_mode(None)      # "grid"
```

- `Settings` holds the site configuration (`http_root`, `image_directory`,
  `page_stride`, thumbnail limits, ffmpeg options, account options and
  `version`); its `media` property gives the matching `MediaConfig`.
- `Permission` is the set of user rights as bit flags.
- `UserInformation` holds a user's `id`, `name` and `ip`;
  `composite_id()` gives `"name(id)@ip"` for log lines.
- `PageContext` is everything a page template is rendered with;
  `is_logged_on()` is true when both user id and name are set.
- `build_page_context(settings, store, counter, user_name, token,
  remote_addr, session, search_terms)` fills a `PageContext`: permissions
  and user id from the store when a user name and token are given, the
  client host from `remote_addr`, view mode and slideshow speed (default
  30 seconds) from the session, the lower-cased search terms, and the
  total image count.
- `ImageCountCache.total(store)` returns the image count, asking the store
  again at most once an hour; a failing refresh keeps the old count.
- `add_flash(session, message, flash_name)` queues a message in a session
  mapping; `apply_flash(session, flash_name, context)` moves the queued
  messages of that name into the page message.
- `write_audit_log(store, user_id, kind, info)` records an audit entry and
  re-raises failures after logging them; `write_audit_log_by_name` looks
  the user id up first and uses 0 if it cannot.

## Tags (`imageboard.tags`)

- `parse_tag_id(value)` accepts a decimal id up to 2³²−1 and raises
  `ValueError` otherwise.
- `view_tag(store, raw_id)` returns the tag, the tag it aliases (or
  `None`), and a message for the page; a bad id or a failed lookup raises
  `TagLookupError`.
- `search_tags(store, query, page_start, page_stride)` returns the
  matching tags, the total count and a page message.
- `handle_tag_command(context, form, store, settings)` carries out the
  form's `command` — `updateTag`, `bulkAddTag`, `replaceTag` or `delete` —
  checking logon and `Permission` flags (and, when
  `users_control_own_objects` is set, ownership of the tag), writing audit
  entries, and always returns a `TagRedirect` with the URL, the flash name
  and the message to show there.

## The application (`imageboard.app`)

```python
from imageboard.app import create_app
from imageboard.pages import Settings

app = create_app(Settings(http_root="site", image_directory="images"), store)
```

The result is a Flask application to hand to any WSGI server. It serves:

| Route | What it does |
|---|---|
| `/` | renders `indextemplate.html` |
| `/redirect` | renders `redirect.html` with `RedirectLink` |
| `/resources/<file>` | a file from `http_root/resources` |
| `/images/<file>` | a file from the image directory |
| `/thumbs/<file>` | the file chosen by `resolve_thumbnail_path` |
| `/tag` (GET) | renders `tag.html` for the tag `ID` |
| `/tag` (POST) | runs a tag command and redirects with a flash |
| `/tags` | renders `tags.html` with the tags matching `SearchTags` |

Templates receive every `PageContext` field by name, plus `context` and
`logged_on`. The logged-on user is read from the session keys `UserName`
and `TokenID`. If `store` is `None`, every path serves
`resources/updateconfig.html` with caching disabled.

### The store

The package keeps no data of its own. The `store` object must provide
`get_user_id`, `get_user_permission_set`, `search_images`,
`add_audit_log`, `get_tag`, `get_query_tags`, `update_tag`,
`bulk_add_tag`, `replace_image_tags`, `delete_tag`, `search_tags` and,
for `generate_dhash`, `set_image_dhash`. Tag objects it returns need
`id`, `exists`, `is_alias`, `aliased_id` and `uploader_id`.

## What it does not do

- No storage: there is no database layer; everything goes through the
  store you pass in.
- No logon, account creation, upload, image pages, collections or user
  administration; nothing puts `UserName` and `TokenID` into the session.
- No CSRF protection and no page menu for paged results.
- The session secret key is random for each `create_app` call, so
  sessions do not survive a restart.
- No command-line entry point or bundled server; run the application with
  a WSGI server of your choice.