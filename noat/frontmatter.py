"""Frontmatter codec for markdown posts.

Reads and rewrites the ``---`` delimited metadata block at the top of a
document. The block itself is YAML and is parsed with PyYAML. Rewrites
touch only the line for the field being changed, so every other byte of
the document survives.
"""

from __future__ import annotations

import json
import re
from typing import Any

import yaml

from noat.errors import FrontmatterParseError

DELIMITER = "---"

# Lines keep their terminator so bodies can be returned verbatim.
_LINE_RE = re.compile(r"[^\n]*\n|[^\n]+")


def _lines(document: str) -> list[str]:
    return _LINE_RE.findall(document)


def _bare(line: str) -> str:
    return line.rstrip("\r\n")


def _line_ending(line: str) -> str:
    return line[len(_bare(line)):]


def _closing_index(lines: list[str]) -> int | None:
    """Index of the closing delimiter, or None when there is no block."""
    if not lines or _bare(lines[0]).strip() != DELIMITER:
        return None
    for index in range(1, len(lines)):
        if _bare(lines[index]).strip() == DELIMITER:
            return index
    return None


def split(document: str) -> tuple[dict[str, Any], str]:
    """Split a document into its parsed frontmatter and the body text.

    Documents without a complete leading block yield an empty map and the
    whole document as body.
    """
    lines = _lines(document)
    closing = _closing_index(lines)
    if closing is None:
        return {}, document
    frontmatter = parse_block([_bare(line) for line in lines[1:closing]])
    return frontmatter, "".join(lines[closing + 1:])


def _content_lines(lines: list[str]) -> list[str]:
    return [line for line in lines if line.strip() and not line.strip().startswith("#")]


def _offending_line(lines: list[str], exc: yaml.YAMLError) -> str:
    for mark in (getattr(exc, "problem_mark", None), getattr(exc, "context_mark", None)):
        if mark is not None and 0 <= mark.line < len(lines) and lines[mark.line].strip():
            return lines[mark.line].strip()
    content = _content_lines(lines)
    return content[-1].strip() if content else ""


def parse_block(lines: list[str]) -> dict[str, Any]:
    """Parse the lines between the delimiters as a YAML mapping.

    Raises:
        FrontmatterParseError: If the YAML is malformed, is not a mapping,
            or has an empty key.
    """
    try:
        data = yaml.safe_load("\n".join(lines))
    except yaml.YAMLError as exc:
        problem = getattr(exc, "problem", None) or str(exc)
        raise FrontmatterParseError(_offending_line(lines, exc), detail=problem) from exc

    if data is None:
        return {}
    if not isinstance(data, dict):
        content = _content_lines(lines)
        raise FrontmatterParseError(content[0].strip() if content else "", detail="expected key: value")

    for key in data:
        if key is None or (isinstance(key, str) and not key.strip()):
            line = next((text.strip() for text in _content_lines(lines) if text.lstrip().startswith(":")), ":")
            raise FrontmatterParseError(line, detail="empty key")
    return data


def read_field(data: dict[str, Any], field_path: str, default: Any = None) -> Any:
    """Read a value by dotted path, e.g. ``bluesky.image``.

    Returns ``default`` as soon as a segment is missing or a non-dict value
    would have to be indexed further.
    """
    segments = [segment for segment in field_path.split(".") if segment]
    if not segments:
        return default

    current: Any = data
    for segment in segments:
        if not isinstance(current, dict) or segment not in current:
            return default
        current = current[segment]
    return current


def _matches_field(line: str, key: str) -> bool:
    return re.match(rf"^{re.escape(key)}\s*:", line) is not None


def _quote(value: str) -> str:
    # A JSON string literal is also a valid double-quoted YAML scalar.
    return json.dumps(str(value), ensure_ascii=False)


def upsert_field(document: str, key: str, value: str) -> str:
    """Set a top-level field to a quoted string value.

    Replaces the first existing ``key:`` line in the block, or inserts the
    field before the closing delimiter. Documents without a block get a new
    one containing only this field. Line endings, including whether the
    document ends with a newline, are preserved.
    """
    newline = "\r\n" if "\r\n" in document else "\n"
    rendered = f"{key}: {_quote(value)}"
    lines = _lines(document)
    closing = _closing_index(lines)

    if closing is None:
        return f"{DELIMITER}{newline}{rendered}{newline}{DELIMITER}{newline}{document}"

    for index in range(1, closing):
        if _matches_field(lines[index], key):
            lines[index] = rendered + _line_ending(lines[index])
            return "".join(lines)

    lines.insert(closing, rendered + newline)
    return "".join(lines)


def strip_field(document: str, key: str) -> str:
    """Remove every top-level ``key:`` line from the block, if there is one."""
    lines = _lines(document)
    closing = _closing_index(lines)
    if closing is None:
        return document

    kept = [lines[0]]
    kept.extend(line for line in lines[1:closing] if not _matches_field(line, key))
    kept.extend(lines[closing:])
    return "".join(kept)


def dump_frontmatter(data: dict[str, Any]) -> str:
    """Render a frontmatter map back into block text (without delimiters)."""
    if not data:
        return ""
    return yaml.safe_dump(data, sort_keys=False, allow_unicode=True, default_flow_style=False)


def join_document(data: dict[str, Any], body: str) -> str:
    """Inverse of :func:`split` for documents that have a block."""
    return f"{DELIMITER}\n{dump_frontmatter(data)}{DELIMITER}\n{body}"
