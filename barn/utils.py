"""Utility functions for Barn.

This module contains small helpers shared by the loader, renderer and CLI.
These include string processing, path handling and date extraction.

Key functions:
    slugify: Convert file names to URL slugs.
    titleize: Convert file names to human-readable titles.
    extract_date_from_name: Extract date from a YYYY-MM-DD- file name prefix.
    first_paragraph: Extract a plain-text summary from a body.
    is_content_file: Check whether a path is a content unit.
    relative_url: Build a link from one output file to another.
    absolute_url: Prefix an output path with the base URL.
"""

from __future__ import annotations

import posixpath
import re
from datetime import datetime
from pathlib import Path, PurePosixPath

CONTENT_SUFFIXES = (".md", ".markdown", ".html", ".htm")
MARKDOWN_SUFFIXES = (".md", ".markdown")

_DATE_PREFIX_RE = re.compile(r"^(\d{4})-(\d{1,2})-(\d{1,2})(?:-|$)")


def _strip_date_prefix(stem: str) -> str:
    match = _DATE_PREFIX_RE.match(stem)
    if match and match.end() < len(stem):
        return stem[match.end() :]
    return stem


def slugify(name: str) -> str:
    """Turn a file stem into a lowercase URL slug without its date prefix."""
    slug = re.sub(r"[^a-zA-Z0-9]+", "-", _strip_date_prefix(name)).strip("-")
    return slug.lower() or "index"


def titleize(filename: str) -> str:
    """Convert a file name to a human-readable title.

    The date prefix and extension are dropped, separators become spaces and
    each word is capitalized.

    Examples:
        >>> titleize("2024-01-15-hello-world.md")
        'Hello World'

        >>> titleize("getting_started.md")
        'Getting Started'
    """
    words = re.split(r"[\s\-_]+", _strip_date_prefix(Path(filename).stem))
    return " ".join(w.capitalize() for w in words if w) or "Untitled"


def extract_date_from_name(name: str) -> datetime | None:
    """Return the date encoded in a YYYY-MM-DD file name prefix, if valid."""
    match = _DATE_PREFIX_RE.match(name)
    if match is None:
        return None
    try:
        return datetime(*(int(g) for g in match.groups()))
    except ValueError:
        return None


def first_paragraph(text: str, limit: int = 160) -> str:
    """Extract and clean the first paragraph from text.

    Skips headings, strips HTML tags and wiki links, collapses whitespace
    and truncates to the given limit.
    """
    paragraphs = [p.strip() for p in text.split("\n\n") if p.strip()]
    for para in paragraphs:
        if para.startswith(("#", "```", "![")):
            continue
        para = re.sub(r"<[^>]+>", "", para)
        para = re.sub(r"\[\[([^\]|]+)(?:\|([^\]]+))?\]\]", lambda m: m.group(2) or m.group(1), para)
        collapsed = " ".join(para.split())
        if collapsed:
            return collapsed[:limit]
    return ""


def is_content_file(path: Path) -> bool:
    """Check if a path has a content unit extension (case-insensitive)."""
    return path.suffix.lower() in CONTENT_SUFFIXES


def is_markdown(path: str | Path) -> bool:
    """Check if a path is a Markdown file."""
    return PurePosixPath(str(path)).suffix.lower() in MARKDOWN_SUFFIXES


def relative_url(from_output: str, to_output: str) -> str:
    """Return the link from one output file to another.

    Both arguments are posix paths relative to the output directory. A
    target named index.html is linked through its directory.

    Examples:
        >>> relative_url("b.html", "a.html")
        'a.html'

        >>> relative_url("posts/one.html", "docs/index.html")
        '../docs/'
    """
    start = posixpath.dirname(from_output) or "."
    target_dir, target_name = posixpath.split(to_output)
    if target_name == "index.html":
        rel_dir = posixpath.relpath(target_dir or ".", start)
        return "./" if rel_dir == "." else f"{rel_dir}/"
    return posixpath.relpath(to_output, start)


def normalize_tags(value: object) -> list[str]:
    """Coerce a front-matter tags value into a list of unique strings."""
    if value is None:
        return []
    if isinstance(value, str):
        items = [t.strip() for t in value.split(",")]
    elif isinstance(value, (list, tuple)):
        items = [str(t).strip() for t in value]
    else:
        items = [str(value).strip()]
    seen: list[str] = []
    for tag in items:
        if tag and tag not in seen:
            seen.append(tag)
    return seen


def absolute_url(base_url: str, path: str) -> str:
    """Prefix an output path with the configured base URL.

    Examples:
        >>> absolute_url("https://example.com/blog/", "posts/a.html")
        'https://example.com/blog/posts/a.html'

        >>> absolute_url("", "/about.html")
        '/about.html'
    """
    return f"{base_url.rstrip('/')}/{path.lstrip('/')}"
