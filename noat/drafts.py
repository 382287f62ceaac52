"""Turns committed markdown posts into drafts ready to send to Bluesky.

Drafts are built eagerly for the whole batch: any post that fails
validation stops the run before a single remote call is made.
"""

from __future__ import annotations

import logging
import posixpath
import re
from dataclasses import dataclass
from typing import Any

import regex

from noat import frontmatter
from noat.backlink import append_backlink, resolve_backlink_url
from noat.config import NoatConfig, resolve_string
from noat.errors import ValidationError
from noat.git import GitRepo

logger = logging.getLogger(__name__)

MARKER_FIELD = "AT_URL"
MAX_POST_LENGTH = 300

FALLBACK_TEXT_FIELDS = ("bluesky.text", "text", "post")
FALLBACK_IMAGE_FIELDS = ("bluesky.image", "image")
FALLBACK_IMAGE_ALT_FIELDS = ("bluesky.imageAlt", "imageAlt", "alt")

IMAGE_MIME_BY_EXTENSION = {
    ".jpg": "image/jpeg",
    ".jpeg": "image/jpeg",
    ".png": "image/png",
    ".gif": "image/gif",
    ".webp": "image/webp",
    ".avif": "image/avif",
}

# ![alt](path) with an optional "title"
MARKDOWN_IMAGE_RE = re.compile(r'!\[([^\]]*)\]\(\s*<?([^)\s>]+)>?(?:\s+"[^"]*")?\s*\)')
_SCHEME_RE = re.compile(r"^[a-zA-Z][a-zA-Z0-9+.-]*:")


@dataclass
class Post:
    path: str
    source: str
    frontmatter: dict[str, Any]
    body: str

    @property
    def is_published(self) -> bool:
        return MARKER_FIELD in self.frontmatter


@dataclass
class ImageReference:
    path: str
    alt: str
    mime_type: str
    data: bytes


@dataclass
class Draft:
    post: Post
    text: str
    backlink: str
    image: ImageReference | None = None

    @property
    def path(self) -> str:
        return self.post.path


@dataclass
class PostFields:
    text: str
    image_path: str | None = None
    image_alt: str = ""


def text_length(text: str) -> int:
    """Length in user-perceived characters (extended grapheme clusters)."""
    return len(regex.findall(r"\X", text))


def check_length(text: str) -> None:
    count = text_length(text)
    if count > MAX_POST_LENGTH:
        raise ValidationError(
            f"Post text must be {MAX_POST_LENGTH} characters or fewer. Received {count}."
        )


def find_first_markdown_image(markdown: str) -> tuple[str, str] | None:
    """First ``![alt](path)`` in the text as ``(alt, path)``."""
    match = MARKDOWN_IMAGE_RE.search(markdown)
    if match is None:
        return None
    return match.group(1).strip(), match.group(2).strip()


def strip_markdown_images(markdown: str) -> str:
    return MARKDOWN_IMAGE_RE.sub("", markdown).strip()


def _unique(paths: list[str]) -> list[str]:
    seen: list[str] = []
    for path in paths:
        if path.strip() and path not in seen:
            seen.append(path)
    return seen


def first_string(data: dict[str, Any], field_paths: list[str]) -> str | None:
    for field_path in field_paths:
        value = resolve_string(frontmatter.read_field(data, field_path))
        if value is not None:
            return value
    return None


def parse_post_fields(post: Post, config: NoatConfig) -> PostFields:
    """Pick the outbound text and image reference for a post.

    Text comes from the configured field, then the fallback fields, then the
    body with image markup removed. The image comes from frontmatter fields
    when ``image_field`` is configured, otherwise from the first body image.
    """
    text = first_string(post.frontmatter, _unique([config.post_text_field, *FALLBACK_TEXT_FIELDS]))
    if text is None:
        text = strip_markdown_images(post.body)
    if not text.strip():
        raise ValidationError(
            f'Missing post text. Set a frontmatter field (default "{config.post_text_field}") '
            "or markdown content."
        )
    check_length(text)

    if config.image_field:
        image_path = first_string(
            post.frontmatter, _unique([config.image_field, *FALLBACK_IMAGE_FIELDS]),
        )
        image_alt = first_string(
            post.frontmatter, _unique([config.image_alt_field, *FALLBACK_IMAGE_ALT_FIELDS]),
        ) or ""
        return PostFields(text=text, image_path=image_path, image_alt=image_alt)

    image = find_first_markdown_image(post.body)
    if image is None:
        return PostFields(text=text)
    alt, path = image
    return PostFields(text=text, image_path=path, image_alt=alt)


def resolve_repo_relative_path(post_path: str, asset_path: str) -> str:
    """Resolve an asset reference against the post's directory.

    A leading ``/`` means relative to the repository root.

    Raises:
        ValidationError: For URLs, or paths that leave the repository.
    """
    if _SCHEME_RE.match(asset_path) or asset_path.startswith("//"):
        raise ValidationError(
            f'Only repository file paths are supported for images. Received "{asset_path}"'
        )

    normalized = asset_path.replace("\\", "/")
    if normalized.startswith("/"):
        resolved = posixpath.normpath(normalized.lstrip("/"))
    else:
        resolved = posixpath.normpath(posixpath.join(posixpath.dirname(post_path), normalized))

    if resolved in ("", ".", "..") or resolved.startswith("../"):
        raise ValidationError(f'Asset path "{asset_path}" resolves outside repo root')
    return resolved


def detect_image_mime_type(path: str) -> str:
    extension = posixpath.splitext(path)[1].lower()
    mime_type = IMAGE_MIME_BY_EXTENSION.get(extension)
    if mime_type is None:
        supported = ", ".join(IMAGE_MIME_BY_EXTENSION)
        raise ValidationError(f'Unsupported image type for "{path}". Supported: {supported}')
    return mime_type


class DraftBuilder:
    """Builds drafts for every unpublished post in a list of HEAD paths."""

    def __init__(self, repo: GitRepo, config: NoatConfig, posts_root_spec: str) -> None:
        self.repo = repo
        self.config = config
        self.posts_root_spec = posts_root_spec

    def load_post(self, path: str) -> Post:
        try:
            source = self.repo.read_file_at_head(path).decode("utf-8")
        except UnicodeDecodeError as exc:
            raise ValidationError(f"{path}: not valid UTF-8 ({exc.reason})") from exc
        try:
            data, body = frontmatter.split(source)
        except ValidationError as exc:
            raise ValidationError(f"{path}: {exc}") from exc
        return Post(path=path, source=source, frontmatter=data, body=body)

    def build_draft(self, post: Post) -> Draft:
        try:
            fields = parse_post_fields(post, self.config)
            backlink = resolve_backlink_url(
                post.path, self.posts_root_spec, post.frontmatter, self.config.base_url,
            )
            text = append_backlink(fields.text, backlink)
            check_length(text)
            image = None
            if fields.image_path is not None:
                image = self._load_image(post.path, fields.image_path, fields.image_alt)
        except ValidationError as exc:
            raise ValidationError(f"{post.path}: {exc}") from exc
        return Draft(post=post, text=text, backlink=backlink, image=image)

    def _load_image(self, post_path: str, image_path: str, alt: str) -> ImageReference:
        repo_path = resolve_repo_relative_path(post_path, image_path)
        mime_type = detect_image_mime_type(repo_path)
        return ImageReference(
            path=repo_path,
            alt=alt,
            mime_type=mime_type,
            data=self.repo.read_file_at_head(repo_path),
        )

    def build(self, paths: list[str]) -> tuple[list[Draft], list[Post]]:
        """Returns the drafts to publish and the posts skipped as already published."""
        drafts: list[Draft] = []
        skipped: list[Post] = []
        for path in paths:
            post = self.load_post(path)
            if post.is_published:
                logger.debug("Skipping %s: %s already set", path, MARKER_FIELD)
                skipped.append(post)
                continue
            drafts.append(self.build_draft(post))
        return drafts, skipped
