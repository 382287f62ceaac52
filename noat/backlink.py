"""Canonical backlink URLs pointing from a Bluesky post to its source page."""

from __future__ import annotations

import posixpath
import re
from typing import Any
from urllib.parse import quote

from noat.errors import ValidationError

# Same set encodeURIComponent leaves alone, so URLs match the site's own links.
_SEGMENT_SAFE = "!~*'()"


def _join(base_url: str, segments: list[str]) -> str:
    base = base_url.strip().rstrip("/")
    path = "/".join(quote(segment, safe=_SEGMENT_SAFE) for segment in segments)
    return f"{base}/{path}" if path else base


def _slug_value(frontmatter: dict[str, Any]) -> str | None:
    if "slug" not in frontmatter:
        return None
    value = frontmatter["slug"]
    if value is None or isinstance(value, dict):
        return None
    if isinstance(value, (bool, list)):
        raise ValidationError(f'Invalid "slug" value {value!r}. Use a string such as "my-post".')
    return str(value)


def resolve_backlink_url(
    post_path: str,
    posts_root_spec: str,
    frontmatter: dict[str, Any],
    base_url: str,
) -> str:
    """Compute the public URL of a post.

    A ``slug`` in the frontmatter wins; otherwise the path below the posts
    root is used with its markdown extension and any trailing ``/index``
    removed.

    Raises:
        ValidationError: If no usable URL path can be derived.
    """
    if not base_url.strip():
        raise ValidationError("Cannot build backlink: baseUrl is empty")

    slug = _slug_value(frontmatter)
    if slug is not None:
        segments = [s for s in slug.strip().strip("/").split("/") if s]
        return _join(base_url, segments)

    root = posixpath.normpath(posts_root_spec or ".")
    rel = post_path if root == "." else posixpath.relpath(post_path, root)
    if rel == ".." or rel.startswith("../"):
        raise ValidationError(f'Post "{post_path}" is not inside posts root "{posts_root_spec}"')

    stem, ext = posixpath.splitext(rel)
    if ext.lower() in (".md", ".markdown"):
        rel = stem
    if rel == "index":
        rel = ""
    elif rel.endswith("/index"):
        rel = rel[: -len("/index")]

    segments = [s for s in rel.split("/") if s]
    if not segments:
        raise ValidationError(
            f'Cannot derive a backlink path for "{post_path}". Set a "slug" in its frontmatter.'
        )
    return _join(base_url, segments)


def contains_url(text: str, url: str) -> bool:
    """True when ``url`` appears as a whole link, not as a prefix of a longer one."""
    pattern = rf"(?<![\w/.%:-]){re.escape(url)}(?=$|\s|[.,;:!?)\]]+(?:\s|$))"
    return re.search(pattern, text) is not None


def append_backlink(text: str, url: str) -> str:
    """Append ``url`` after a blank line unless the text already links to it."""
    if contains_url(text, url):
        return text
    return f"{text.rstrip()}\n\n{url}"
