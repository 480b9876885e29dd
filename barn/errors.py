"""Error taxonomy for the generate pipeline.

Errors fall into two families:
- FatalError: the run cannot start (config missing or malformed, no content
  directory). Raised before any output is touched.
- UnitFailure: scoped to one content unit. Collected into the report while
  every other unit still renders and writes.

Key classes:
- UnitError: Plain descriptor of a unit failure as it appears in a report.
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path


class BarnError(Exception):
    """Base class for all errors raised by Barn."""


class FatalError(BarnError):
    """Error that aborts a pipeline run."""


class ConfigNotFound(FatalError):
    """No config file and the built-in defaults cannot locate content.

    Attributes:
        path: Expected location of the config file.
    """

    def __init__(self, path: Path, message: str | None = None):
        self.path = path
        super().__init__(message or f"Config file not found: {path}")


class ConfigParseError(FatalError):
    """Config file exists but cannot be parsed or validated.

    Attributes:
        path: Path to the config file.
        message: Human-readable description of the problem.
        line: 1-based line of the problem, when known.
        column: 1-based column of the problem, when known.
    """

    def __init__(
        self,
        path: Path,
        message: str,
        line: int | None = None,
        column: int | None = None,
    ):
        self.path = path
        self.message = message
        self.line = line
        self.column = column
        location = f"{path}"
        if line is not None:
            location += f":{line}"
            if column is not None:
                location += f":{column}"
        super().__init__(f"{location}: {message}")


class ContentDirNotFound(FatalError):
    """The configured content directory does not exist."""

    def __init__(self, path: Path):
        self.path = path
        super().__init__(f"Content directory not found: {path}")


@dataclass(frozen=True)
class UnitError:
    """Descriptor of a failure attached to one content unit.

    Attributes:
        kind: Error kind name, e.g. "BrokenReference".
        source_path: Unit path relative to the content directory.
        message: Human-readable reason.
    """

    kind: str
    source_path: str
    message: str

    def __str__(self) -> str:
        return f"{self.source_path}: {self.kind}: {self.message}"


class UnitFailure(BarnError):
    """Error scoped to a single content unit.

    Attributes:
        source_path: Unit path relative to the content directory.
        message: Human-readable reason.
    """

    def __init__(self, source_path: str, message: str):
        self.source_path = source_path
        self.message = message
        super().__init__(f"{source_path}: {message}")

    @property
    def kind(self) -> str:
        return type(self).__name__

    def to_unit_error(self) -> UnitError:
        return UnitError(kind=self.kind, source_path=self.source_path, message=self.message)


class ContentValidationError(UnitFailure):
    """Unit front-matter, layout or template is invalid."""


class OutputPathCollision(UnitFailure):
    """Two or more units resolve to the same output path."""


class BrokenReference(UnitFailure):
    """A unit references another unit that does not exist."""


class WriteFailure(UnitFailure):
    """Rendered bytes could not be written to the output directory."""


class Cancelled(UnitFailure):
    """The run was cancelled before this unit finished."""
