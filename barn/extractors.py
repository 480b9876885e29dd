"""Metadata extractors for Barn.

Each extractor handles a single type of metadata and returns a dictionary that
is merged into the unit's metadata. Extractors later in the chain can read
what earlier ones produced through the ``metadata`` argument.

Key classes:
- FrontmatterExtractor: Splits YAML front-matter from the body.
- FrontmatterDefaultsExtractor: Applies configured defaults and required fields.
- TitleExtractor: Title from front-matter, first heading or file name.
- DescriptionExtractor: Description from front-matter or first paragraph.
- DateExtractor: Date from front-matter or file name prefix.
- TagExtractor: Tags from front-matter.
- CompositeMetadataExtractor: Runs a chain of extractors.
"""

from __future__ import annotations

import re
from collections.abc import Iterable, Mapping
from datetime import date, datetime
from pathlib import PurePosixPath
from typing import Any

import yaml

from .errors import ContentValidationError
from .protocols import MetadataExtractor
from .utils import extract_date_from_name, first_paragraph, normalize_tags, titleize

FRONTMATTER_RE = re.compile(
    r"\A---[ \t]*\r?\n(.*?)(?:\r?\n)?^---[ \t]*(?:\r?\n|\Z)", re.DOTALL | re.MULTILINE
)


def extract_frontmatter(text: str, source_path: str = "<string>") -> tuple[dict[str, Any], str]:
    """Extract YAML front-matter from content.

    Args:
        text: Raw file content.
        source_path: Unit path used in error messages.

    Returns:
        Tuple of (front-matter dict, remaining body).

    Raises:
        ContentValidationError: If the block is unterminated, is not valid
            YAML, or does not hold a mapping.
    """
    text = text.lstrip("\ufeff")
    if not re.match(r"---[ \t]*\r?\n", text):
        return {}, text
    match = FRONTMATTER_RE.match(text)
    if not match:
        raise ContentValidationError(source_path, "unterminated front-matter block")
    try:
        data = yaml.safe_load(match.group(1))
    except yaml.YAMLError as exc:
        mark = getattr(exc, "problem_mark", None)
        where = f" on line {mark.line + 2}" if mark is not None else ""
        problem = getattr(exc, "problem", None) or str(exc)
        raise ContentValidationError(
            source_path, f"invalid front-matter{where}: {problem}"
        ) from exc
    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise ContentValidationError(
            source_path, f"front-matter must be a mapping, got {type(data).__name__}"
        )
    return {str(k): v for k, v in data.items()}, text[match.end() :]


class FrontmatterExtractor:
    """Extracts YAML front-matter from content."""

    def extract(
        self, content: str, path: PurePosixPath, metadata: dict[str, Any]
    ) -> dict[str, Any]:
        frontmatter, body = extract_frontmatter(content, path.as_posix())
        return {"frontmatter": frontmatter, "body": body}


class FrontmatterDefaultsExtractor:
    """Fills missing front-matter fields from configured defaults.

    Attributes:
        defaults: Fallback values keyed by field name.
        required: Fields every unit must end up defining.
    """

    def __init__(self, defaults: Mapping[str, Any], required: Iterable[str] = ()):
        self.defaults = dict(defaults)
        self.required = tuple(required)

    def extract(
        self, content: str, path: PurePosixPath, metadata: dict[str, Any]
    ) -> dict[str, Any]:
        frontmatter = dict(self.defaults)
        frontmatter.update(metadata.get("frontmatter", {}))
        for name in self.required:
            if name not in frontmatter:
                raise ContentValidationError(
                    path.as_posix(), f"missing required front-matter field '{name}'"
                )
        return {"frontmatter": frontmatter}


class TitleExtractor:
    """Extracts the title.

    Uses the front-matter title when present, then a level-1 heading
    (# Title) in the body outside code blocks, falling back to titleizing
    the file name.
    """

    def extract(
        self, content: str, path: PurePosixPath, metadata: dict[str, Any]
    ) -> dict[str, Any]:
        title = metadata.get("frontmatter", {}).get("title")
        if title is not None:
            return {"title": str(title)}
        fence = None
        for line in metadata.get("body", content).splitlines():
            stripped = line.strip()
            if fence is not None:
                if stripped.startswith(fence):
                    fence = None
                continue
            if stripped.startswith(("```", "~~~")):
                fence = stripped[:3]
                continue
            if stripped.startswith("# ") and not line.startswith(("    ", "\t")):
                return {"title": stripped.lstrip("# ").strip()}
        name = path.parent.name if path.stem == "index" and path.parent.name else path.name
        return {"title": titleize(name)}


class DescriptionExtractor:
    """Extracts description from front-matter or the first paragraph."""

    def extract(
        self, content: str, path: PurePosixPath, metadata: dict[str, Any]
    ) -> dict[str, Any]:
        description = metadata.get("frontmatter", {}).get("description")
        if description is not None:
            return {"description": str(description)}
        return {"description": first_paragraph(metadata.get("body", content))}


class DateExtractor:
    """Extracts date from front-matter or a YYYY-MM-DD file name prefix.

    The file's mtime is never consulted, so a given tree always yields
    the same dates.
    """

    def extract(
        self, content: str, path: PurePosixPath, metadata: dict[str, Any]
    ) -> dict[str, Any]:
        value = metadata.get("frontmatter", {}).get("date")
        if isinstance(value, datetime):
            return {"date": value}
        if isinstance(value, date):
            return {"date": datetime(value.year, value.month, value.day)}
        if isinstance(value, str):
            try:
                return {"date": datetime.fromisoformat(value.strip())}
            except ValueError as exc:
                raise ContentValidationError(
                    path.as_posix(), f"invalid date {value!r}"
                ) from exc
        if value is not None:
            raise ContentValidationError(path.as_posix(), f"invalid date {value!r}")
        return {"date": extract_date_from_name(path.stem)}


class TagExtractor:
    """Extracts tags from the front-matter tags field."""

    def extract(
        self, content: str, path: PurePosixPath, metadata: dict[str, Any]
    ) -> dict[str, Any]:
        return {"tags": normalize_tags(metadata.get("frontmatter", {}).get("tags"))}


class CompositeMetadataExtractor:
    """Combines multiple metadata extractors.

    Runs every registered extractor in order and merges their results.
    Later extractors can override earlier ones.
    """

    def __init__(self, extractors: list[MetadataExtractor] | None = None):
        """Initialize with a list of extractors.

        Args:
            extractors: Extractor implementations. If None, uses the defaults.
        """
        if extractors is None:
            self._extractors = [
                FrontmatterExtractor(),
                TitleExtractor(),
                DescriptionExtractor(),
                DateExtractor(),
                TagExtractor(),
            ]
        else:
            self._extractors = list(extractors)

    def add_extractor(self, extractor: MetadataExtractor) -> None:
        self._extractors.append(extractor)

    def extract(self, content: str, path: PurePosixPath) -> dict[str, Any]:
        result: dict[str, Any] = {}
        for extractor in self._extractors:
            result.update(extractor.extract(content, path, result))
        return result


# Default composite extractor instance
default_metadata_extractor = CompositeMetadataExtractor()


def create_metadata_extractor(
    defaults: Mapping[str, Any], required: Iterable[str] = ()
) -> CompositeMetadataExtractor:
    """Build the default extractor chain with configured front-matter defaults."""
    return CompositeMetadataExtractor(
        [
            FrontmatterExtractor(),
            FrontmatterDefaultsExtractor(defaults, required),
            TitleExtractor(),
            DescriptionExtractor(),
            DateExtractor(),
            TagExtractor(),
        ]
    )
