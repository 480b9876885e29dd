"""Content loading for Barn.

This module walks the content directory, parses every content file into a
ContentUnit and assembles the units into a read-only ContentGraph.

Key classes:
- ContentUnit: One addressable piece of content.
- ContentGraph: Units keyed by source path, with the reference index,
  parent/child links and tag index used while rendering.
- FileContentFinder: Discovers content files in traversal order.
- UnitBuilder: Builds a ContentUnit from one source file.
- ContentLoader: Facade that runs discovery, parsing and graph validation.

Traversal order is lexicographic by relative posix path. Every list this
module produces (units, failures) follows that order.
"""

from __future__ import annotations

import threading
from collections.abc import Callable, Iterable, Iterator, Mapping
from concurrent.futures import Executor
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path, PurePosixPath
from types import MappingProxyType
from typing import Any

from . import constants
from .config import SiteConfig
from .errors import (
    BrokenReference,
    Cancelled,
    ContentDirNotFound,
    ContentValidationError,
    OutputPathCollision,
    UnitError,
    UnitFailure,
)
from .extractors import CompositeMetadataExtractor, create_metadata_extractor
from .renderers import find_references
from .utils import is_content_file, is_markdown, slugify


@dataclass(frozen=True, eq=False)
class ContentUnit:
    """One content file after parsing.

    Attributes:
        source_path: Path relative to the content directory (posix).
        ref_name: Name other units use to reference this one.
        output_path: Destination relative to the output directory (posix).
        frontmatter: Front-matter with configured defaults applied.
        body: Raw body text without the front-matter block.
        title: Title from front-matter, heading or file name.
        description: Short description, often from the first paragraph.
        date: Date from front-matter or file name prefix, if any.
        tags: Tags from front-matter.
        references: Names this unit links to with [[name]], in order.
        layout: Layout named in front-matter, None for the site default.
        parent: Reference name of the parent unit, if any.
        source_type: "markdown" or "html".
    """

    source_path: str
    ref_name: str
    output_path: str
    frontmatter: Mapping[str, Any]
    body: str
    title: str
    description: str = ""
    date: datetime | None = None
    tags: tuple[str, ...] = ()
    references: tuple[str, ...] = ()
    layout: str | None = None
    parent: str | None = None
    source_type: str = "markdown"

    @property
    def slug(self) -> str:
        return slugify(PurePosixPath(self.ref_name).name)

    def __repr__(self) -> str:  # pragma: no cover - for debugging
        return f"ContentUnit({self.source_path!r} -> {self.output_path!r})"


class ContentGraph(Mapping[str, ContentUnit]):
    """Read-only graph of the units that loaded successfully.

    Attributes:
        source_paths: Every discovered source path in traversal order,
            including units that failed to load.
        failures: Load failures in traversal order.
    """

    def __init__(
        self,
        units: Iterable[ContentUnit],
        failures: Iterable[UnitError] = (),
        source_paths: Iterable[str] | None = None,
    ):
        self._units = {u.source_path: u for u in units}
        self.failures: tuple[UnitError, ...] = tuple(failures)
        if source_paths is None:
            source_paths = sorted(
                list(self._units) + [f.source_path for f in self.failures]
            )
        self.source_paths: tuple[str, ...] = tuple(source_paths)
        self._order = {path: i for i, path in enumerate(self.source_paths)}

        self._by_ref: dict[str, ContentUnit] = {}
        ambiguous: set[str] = set()
        for unit in self._units.values():
            if unit.ref_name in self._by_ref:
                ambiguous.add(unit.ref_name)
            self._by_ref[unit.ref_name] = unit
        for name in ambiguous:
            del self._by_ref[name]
        self._ambiguous = frozenset(ambiguous)

        children: dict[str, list[ContentUnit]] = {}
        tags: dict[str, list[ContentUnit]] = {}
        for unit in self._units.values():
            if unit.parent is not None:
                parent = self.resolve(unit.parent)
                if parent is not None:
                    children.setdefault(parent.source_path, []).append(unit)
            for tag in unit.tags:
                tags.setdefault(tag, []).append(unit)
        self._children = {k: tuple(v) for k, v in children.items()}
        self.tags: Mapping[str, tuple[ContentUnit, ...]] = MappingProxyType(
            {k: tuple(v) for k, v in sorted(tags.items())}
        )

    def __getitem__(self, key: str) -> ContentUnit:
        return self._units[key]

    def __iter__(self) -> Iterator[str]:
        return iter(self._units)

    def __len__(self) -> int:
        return len(self._units)

    @property
    def units(self) -> tuple[ContentUnit, ...]:
        return tuple(self._units.values())

    def order_of(self, source_path: str) -> int:
        """Position of a source path in traversal order."""
        return self._order.get(source_path, len(self._order))

    def resolve(self, name: str) -> ContentUnit | None:
        """Find a unit by reference name or source path.

        Names that several units share resolve to nothing.
        """
        name = name.strip().strip("/")
        if name in self._units:
            return self._units[name]
        return self._by_ref.get(name)

    def is_ambiguous(self, name: str) -> bool:
        return name.strip().strip("/") in self._ambiguous

    def parent_of(self, unit: ContentUnit) -> ContentUnit | None:
        if unit.parent is None:
            return None
        return self.resolve(unit.parent)

    def children_of(self, unit: ContentUnit) -> tuple[ContentUnit, ...]:
        return self._children.get(unit.source_path, ())

    def __repr__(self) -> str:  # pragma: no cover - for debugging
        return f"ContentGraph({len(self._units)} units, {len(self.failures)} failures)"


class FileContentFinder:
    """Discovers content files in a directory.

    Only handles file discovery. Hidden and system entries (any component
    starting with "." or "_", editor backups ending in "~") are skipped; the
    configured content file name is always accepted.

    Attributes:
        content_dir: Directory containing site content.
        content_file_name: Per-directory content file name.
    """

    def __init__(self, content_dir: Path, content_file_name: str = constants.CONTENT_FILE_NAME):
        self.content_dir = content_dir
        self.content_file_name = content_file_name

    def iter_files(self) -> list[tuple[Path, PurePosixPath]]:
        """Return (absolute path, relative path) pairs in traversal order."""
        files: list[tuple[Path, PurePosixPath]] = []
        for path in self.content_dir.rglob("*"):
            rel = PurePosixPath(path.relative_to(self.content_dir).as_posix())
            if self._is_hidden(rel):
                continue
            if not path.is_file() or not is_content_file(path):
                continue
            files.append((path, rel))
        files.sort(key=lambda item: item[1].as_posix())
        return files

    def _is_hidden(self, rel: PurePosixPath) -> bool:
        if any(part.startswith((".", "_")) for part in rel.parts[:-1]):
            return True
        if rel.name == self.content_file_name:
            return False
        return rel.name.startswith((".", "_")) or rel.name.endswith("~")


class UnitBuilder:
    """Builds ContentUnit objects from source files.

    Attributes:
        config: Resolved site configuration.
        metadata_extractor: Composite metadata extractor.
    """

    def __init__(
        self,
        config: SiteConfig,
        metadata_extractor: CompositeMetadataExtractor | None = None,
    ):
        self.config = config
        self.metadata_extractor = metadata_extractor or create_metadata_extractor(
            config.defaults, config.required_fields
        )

    def build(self, path: Path, rel: PurePosixPath) -> ContentUnit:
        """Build a ContentUnit from a source file.

        Args:
            path: Absolute path to the source file.
            rel: Path relative to the content directory.

        Returns:
            The parsed unit.

        Raises:
            ContentValidationError: If the file cannot be read or its
                front-matter is invalid.
        """
        source = rel.as_posix()
        try:
            raw = path.read_text(encoding="utf-8")
        except UnicodeDecodeError as exc:
            raise ContentValidationError(source, f"not valid UTF-8: {exc.reason}") from exc
        except OSError as exc:
            raise ContentValidationError(source, f"cannot read file: {exc.strerror}") from exc

        metadata = self.metadata_extractor.extract(raw, rel)
        frontmatter = metadata.get("frontmatter", {})
        body = metadata.get("body", raw)

        layout = frontmatter.get("layout")
        if layout is not None and not isinstance(layout, str):
            raise ContentValidationError(source, "'layout' must be a string")
        parent = frontmatter.get("parent")
        if parent is not None and not isinstance(parent, str):
            raise ContentValidationError(source, "'parent' must be a reference name")

        return ContentUnit(
            source_path=source,
            ref_name=self.ref_name(rel),
            output_path=self.output_path(rel, frontmatter),
            frontmatter=MappingProxyType(frontmatter),
            body=body,
            title=metadata.get("title", ""),
            description=metadata.get("description", ""),
            date=metadata.get("date"),
            tags=tuple(metadata.get("tags", ())),
            references=tuple(find_references(body, markdown=is_markdown(rel))),
            layout=layout or None,
            parent=parent.strip().strip("/") if parent else None,
            source_type="markdown" if is_markdown(rel) else "html",
        )

    def ref_name(self, rel: PurePosixPath) -> str:
        if rel.name == self.config.content_file_name:
            parent = rel.parent.as_posix()
            return "index" if parent == "." else parent
        return rel.with_suffix("").as_posix()

    def output_path(self, rel: PurePosixPath, frontmatter: Mapping[str, Any]) -> str:
        """Compute the destination of a unit relative to the output directory.

        Raises:
            ContentValidationError: If a permalink is absolute or escapes the
                output directory.
        """
        source = rel.as_posix()
        permalink = frontmatter.get("permalink")
        if permalink is None:
            if rel.name == self.config.content_file_name:
                return (rel.parent / "index.html").as_posix()
            return rel.with_suffix(".html").as_posix()

        if not isinstance(permalink, str) or not permalink.strip():
            raise ContentValidationError(source, "'permalink' must be a non-empty string")
        link = permalink.strip()
        if link.startswith("/") or "\\" in link or ":" in link:
            raise ContentValidationError(
                source, f"permalink {permalink!r} must be relative to the output directory"
            )
        if any(part in ("", ".", "..") for part in link.rstrip("/").split("/")):
            raise ContentValidationError(
                source, f"permalink {permalink!r} must not contain '.', '..' or empty segments"
            )
        target = PurePosixPath(link)
        if link.endswith("/"):
            target = target / "index.html"
        elif not target.suffix:
            target = target.with_suffix(".html")
        return target.as_posix()


class ContentLoader:
    """Loads a content directory into a ContentGraph.

    Files are parsed independently, on the executor when one is given.
    Results are collected in traversal order regardless of completion order.

    Attributes:
        executor: Optional executor used to parse files in parallel.
        cancel_event: Optional event; once set, unparsed files are
            recorded as Cancelled.
    """

    def __init__(
        self,
        executor: Executor | None = None,
        cancel_event: threading.Event | None = None,
        builder_factory: Callable[[SiteConfig], UnitBuilder] = UnitBuilder,
    ):
        self.executor = executor
        self.cancel_event = cancel_event
        self._builder_factory = builder_factory

    def load(self, content_dir: Path, config: SiteConfig) -> ContentGraph:
        """Load every content unit under content_dir.

        Args:
            content_dir: Directory to walk.
            config: Resolved site configuration.

        Returns:
            The ContentGraph; units that failed are listed in its failures.

        Raises:
            ContentDirNotFound: If content_dir is not a directory.
        """
        if not content_dir.is_dir():
            raise ContentDirNotFound(content_dir)

        files = FileContentFinder(content_dir, config.content_file_name).iter_files()
        builder = self._builder_factory(config)

        def parse(item: tuple[Path, PurePosixPath]) -> ContentUnit | UnitError:
            path, rel = item
            if self.cancel_event is not None and self.cancel_event.is_set():
                return Cancelled(rel.as_posix(), "run cancelled before loading").to_unit_error()
            try:
                return builder.build(path, rel)
            except UnitFailure as exc:
                return exc.to_unit_error()

        if self.executor is not None:
            parsed = list(self.executor.map(parse, files))
        else:
            parsed = [parse(item) for item in files]

        source_paths = [rel.as_posix() for _, rel in files]
        units = [p for p in parsed if isinstance(p, ContentUnit)]
        failures = {p.source_path: p for p in parsed if isinstance(p, UnitError)}

        units = _reject_collisions(units, failures)
        units = _reject_parent_cycles(units, failures)
        units = _reject_missing_parents(units, failures)

        ordered_failures = [failures[p] for p in source_paths if p in failures]
        return ContentGraph(units, ordered_failures, source_paths)


def _reject_collisions(
    units: list[ContentUnit], failures: dict[str, UnitError]
) -> list[ContentUnit]:
    """Fail every unit whose output path clashes with another unit's.

    Two paths clash when they are equal or when one of them would have to be
    a directory holding the other (a.html next to a.html/index.html).
    """
    claims: dict[str, list[ContentUnit]] = {}
    for unit in units:
        claims.setdefault(unit.output_path, []).append(unit)
    clashes: dict[str, str] = {}
    for path, claimants in claims.items():
        if len(claimants) > 1:
            names = ", ".join(u.source_path for u in claimants)
            for unit in claimants:
                clashes.setdefault(unit.source_path, f"output path '{path}' is produced by {names}")
        for parent in PurePosixPath(path).parents:
            blockers = claims.get(parent.as_posix())
            if not blockers:
                continue
            involved = blockers + claimants
            names = ", ".join(u.source_path for u in involved)
            message = f"output path '{parent}' is both a file and the directory of '{path}' ({names})"
            for unit in involved:
                clashes.setdefault(unit.source_path, message)
    kept: list[ContentUnit] = []
    for unit in units:
        if unit.source_path in clashes:
            failures[unit.source_path] = OutputPathCollision(
                unit.source_path, clashes[unit.source_path]
            ).to_unit_error()
        else:
            kept.append(unit)
    return kept


def _reject_parent_cycles(
    units: list[ContentUnit], failures: dict[str, UnitError]
) -> list[ContentUnit]:
    """Fail every unit that sits on a parent cycle."""
    graph = ContentGraph(units)
    on_cycle: dict[str, str] = {}
    for start in units:
        chain: list[ContentUnit] = []
        seen: set[str] = set()
        current: ContentUnit | None = start
        while current is not None and current.source_path not in seen:
            seen.add(current.source_path)
            chain.append(current)
            current = graph.parent_of(current)
        if current is None or current.source_path in on_cycle:
            continue
        cycle = chain[chain.index(current) :]
        description = " -> ".join(u.ref_name for u in cycle + [current])
        for unit in cycle:
            on_cycle[unit.source_path] = description
    for source, description in on_cycle.items():
        failures[source] = ContentValidationError(
            source, f"parent cycle: {description}"
        ).to_unit_error()
    return [u for u in units if u.source_path not in on_cycle]


def _reject_missing_parents(
    units: list[ContentUnit], failures: dict[str, UnitError]
) -> list[ContentUnit]:
    """Fail units whose parent is unknown, repeating until nothing changes."""
    while True:
        graph = ContentGraph(units)
        broken = [u for u in units if u.parent is not None and graph.parent_of(u) is None]
        if not broken:
            return units
        for unit in broken:
            failures[unit.source_path] = BrokenReference(
                unit.source_path, f"parent '{unit.parent}' does not exist"
            ).to_unit_error()
        rejected = {u.source_path for u in broken}
        units = [u for u in units if u.source_path not in rejected]


def load_content(content_dir: Path, config: SiteConfig) -> ContentGraph:
    """Load a content directory sequentially."""
    return ContentLoader().load(content_dir, config)
