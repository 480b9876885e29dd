"""Protocol definitions for Barn.

These protocols describe the pluggable pieces of the content pipeline so that
new extractors and body renderers can be registered without modifying the
loader or the render engine.
"""

from __future__ import annotations

from abc import abstractmethod
from pathlib import PurePosixPath
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

if TYPE_CHECKING:
    from .renderers import Heading


@runtime_checkable
class MetadataExtractor(Protocol):
    """Protocol for extracting metadata from a content file.

    Implementations extract one kind of metadata (front-matter, title,
    date, ...) and may read what earlier extractors produced.
    """

    @abstractmethod
    def extract(
        self, content: str, path: PurePosixPath, metadata: dict[str, Any]
    ) -> dict[str, Any]:
        """Extract metadata from content.

        Args:
            content: Raw file content.
            path: Path relative to the content directory.
            metadata: Metadata collected by earlier extractors.

        Returns:
            Dictionary merged into the unit's metadata.
        """
        ...


@runtime_checkable
class BodyRenderer(Protocol):
    """Protocol for turning a unit body into HTML."""

    source_type: str

    @abstractmethod
    def render(self, content: str) -> tuple[str, list[Heading]]:
        """Render a body to HTML.

        Args:
            content: Body with references already resolved.

        Returns:
            Tuple of (rendered HTML, list of headings for the TOC).
        """
        ...
