"""Output writing for Barn.

This module writes rendered units into the output directory and removes files
left over from the previous run. A JSON manifest kept outside the output
directory records which files Barn wrote there; only files listed in it are
ever deleted.

Key classes:
- UnitOutcome: One entry of a PipelineReport.
- PipelineReport: Aggregate result of a generate run.
- OutputWriter: Writes results atomically and cleans stale artifacts.
"""

from __future__ import annotations

import contextlib
import json
import os
import stat
import tempfile
import threading
from collections.abc import Iterable
from dataclasses import dataclass, field
from pathlib import Path, PurePosixPath
from typing import Any

from .constants import MANIFEST_NAME, STATE_DIR
from .errors import Cancelled, UnitError, WriteFailure
from .templates import RenderResult

MANIFEST_VERSION = 1

_umask_lock = threading.Lock()


@dataclass(frozen=True)
class UnitOutcome:
    """Outcome of one content unit in a run.

    Attributes:
        source_path: Unit path relative to the content directory.
        destination: Output path relative to the output directory, if known.
        error: Failure descriptor, None on success.
    """

    source_path: str
    destination: str | None = None
    error: UnitError | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass
class PipelineReport:
    """Aggregate of per-unit successes and failures for one run.

    Attributes:
        output_dir: Directory the run wrote into.
        entries: Per-unit outcomes in traversal order.
        removed: Stale files deleted during cleanup (relative posix paths).
        unchanged: Destinations whose bytes were already up to date.
        cancelled: Whether the run was cancelled.
        manifest_error: Why the manifest could not be saved, if it could not.
    """

    output_dir: Path
    entries: list[UnitOutcome] = field(default_factory=list)
    removed: list[str] = field(default_factory=list)
    unchanged: list[str] = field(default_factory=list)
    cancelled: bool = False
    manifest_error: str | None = None

    @property
    def succeeded(self) -> int:
        return sum(1 for e in self.entries if e.ok)

    @property
    def failed(self) -> int:
        return sum(1 for e in self.entries if not e.ok)

    @property
    def failures(self) -> list[UnitError]:
        return [e.error for e in self.entries if e.error is not None]

    @property
    def written(self) -> list[str]:
        return [e.destination for e in self.entries if e.ok and e.destination]

    def summary(self) -> str:
        text = f"{self.succeeded} succeeded, {self.failed} failed"
        if self.removed:
            text += f", {len(self.removed)} stale removed"
        if self.cancelled:
            text += " (cancelled)"
        return text


def default_manifest_path(output_dir: Path) -> Path:
    """Manifest location used when the caller does not give one."""
    return output_dir.parent / STATE_DIR / MANIFEST_NAME


def _manifest_key(output_dir: Path) -> str:
    return str(output_dir.resolve())


def _load_manifest(manifest_path: Path) -> dict[str, Any]:
    try:
        payload = json.loads(manifest_path.read_text(encoding="utf-8"))
    except (OSError, ValueError):
        return {}
    outputs = payload.get("outputs") if isinstance(payload, dict) else None
    return outputs if isinstance(outputs, dict) else {}


def read_manifest(manifest_path: Path, output_dir: Path) -> list[str]:
    """Return the files the previous run wrote into output_dir.

    A missing or unreadable manifest counts as empty. Entries that are not
    plain relative paths inside the output directory are dropped.
    """
    files = _load_manifest(manifest_path).get(_manifest_key(output_dir))
    if not isinstance(files, list):
        return []
    return [f for f in files if isinstance(f, str) and _is_safe_relative(f)]


def _is_safe_relative(rel: str) -> bool:
    if not rel or PurePosixPath(rel).is_absolute() or "\\" in rel:
        return False
    return not any(part in ("..", ".", "") for part in rel.split("/"))


def _file_mode(path: Path) -> int:
    """Mode for a new file at path: the existing file's, else 0o666 minus the umask."""
    try:
        return stat.S_IMODE(path.stat().st_mode)
    except OSError:
        pass
    with _umask_lock:
        umask = os.umask(0)
        os.umask(umask)
    return 0o666 & ~umask


def atomic_write(path: Path, data: bytes) -> None:
    """Write bytes to path through a temporary file and os.replace.

    Readers see either the old file or the complete new one. The file gets
    the mode an ordinary write would give it.
    """
    path.parent.mkdir(parents=True, exist_ok=True)
    mode = _file_mode(path)
    fd, tmp_path = tempfile.mkstemp(dir=path.parent, suffix=".tmp", prefix=".barn-")
    try:
        with os.fdopen(fd, "wb") as f:
            f.write(data)
        os.chmod(tmp_path, mode)
        os.replace(tmp_path, path)
    except BaseException:
        with contextlib.suppress(OSError):
            os.unlink(tmp_path)
        raise


class OutputWriter:
    """Writes render results into an output directory.

    Only one writer may run against a given output directory at a time.

    Attributes:
        cancel_event: Optional event; once set, remaining units are recorded
            as Cancelled and stale cleanup is skipped.
        manifest_path: JSON file recording what was written, keyed by the
            resolved output directory. Defaults to .barn/manifest.json next
            to the output directory.
    """

    def __init__(
        self,
        cancel_event: threading.Event | None = None,
        manifest_path: Path | None = None,
    ):
        self.cancel_event = cancel_event
        self.manifest_path = manifest_path

    def write(self, results: Iterable[RenderResult], output_dir: Path) -> PipelineReport:
        """Write successful results and clean up stale artifacts.

        Stale files (listed in the previous manifest but not produced by this
        run) are removed before anything is written. Files the manifest does
        not list are never touched.

        Args:
            results: Render results in the order they should appear in the report.
            output_dir: Destination directory.

        Returns:
            PipelineReport with one entry per result.
        """
        results = list(results)
        report = PipelineReport(output_dir=output_dir)
        manifest_path = self.manifest_path or default_manifest_path(output_dir)
        previous = read_manifest(manifest_path, output_dir)
        current = {r.destination for r in results if r.ok and r.destination}

        if self._cancelled():
            report.cancelled = True
        else:
            report.removed = self._remove_stale(output_dir, sorted(set(previous) - current))

        written: list[str] = []
        for result in results:
            if result.error is not None:
                report.entries.append(
                    UnitOutcome(result.source_path, result.destination, result.error)
                )
                continue
            if self._cancelled():
                report.cancelled = True
                error = Cancelled(result.source_path, "run cancelled before writing")
                report.entries.append(
                    UnitOutcome(result.source_path, result.destination, error.to_unit_error())
                )
                continue
            target = output_dir / result.destination
            try:
                if _has_same_bytes(target, result.data):
                    report.unchanged.append(result.destination)
                else:
                    atomic_write(target, result.data)
            except OSError as exc:
                error = WriteFailure(
                    result.source_path,
                    f"cannot write '{result.destination}': {exc.strerror or exc}",
                )
                report.entries.append(
                    UnitOutcome(result.source_path, result.destination, error.to_unit_error())
                )
                continue
            written.append(result.destination)
            report.entries.append(UnitOutcome(result.source_path, result.destination))

        # Previous files that are still on disk stay tracked so a later run
        # can clean them up.
        removed = set(report.removed)
        tracked = set(written)
        tracked.update(
            rel for rel in previous if rel not in removed and (output_dir / rel).is_file()
        )
        try:
            self._write_manifest(manifest_path, output_dir, sorted(tracked))
        except OSError as exc:
            report.manifest_error = f"cannot write {manifest_path}: {exc.strerror or exc}"
        return report

    def _remove_stale(self, output_dir: Path, stale: list[str]) -> list[str]:
        removed: list[str] = []
        for rel in stale:
            path = output_dir / rel
            try:
                if not (path.is_file() or path.is_symlink()):
                    continue
                path.unlink()
            except OSError:
                continue
            removed.append(rel)
            _prune_empty_dirs(path.parent, output_dir)
        return removed

    def _cancelled(self) -> bool:
        return self.cancel_event is not None and self.cancel_event.is_set()

    def _write_manifest(self, manifest_path: Path, output_dir: Path, files: list[str]) -> None:
        outputs = _load_manifest(manifest_path)
        if files:
            outputs[_manifest_key(output_dir)] = files
        else:
            outputs.pop(_manifest_key(output_dir), None)
        if not outputs and not manifest_path.exists():
            return
        payload = {"version": MANIFEST_VERSION, "outputs": dict(sorted(outputs.items()))}
        data = (json.dumps(payload, indent=2) + "\n").encode("utf-8")
        if not _has_same_bytes(manifest_path, data):
            atomic_write(manifest_path, data)


def _has_same_bytes(path: Path, data: bytes) -> bool:
    try:
        return path.is_file() and path.read_bytes() == data
    except OSError:
        return False


def _prune_empty_dirs(start: Path, root: Path) -> None:
    """Remove empty directories from start up to (not including) root."""
    current = start
    while current != root and root in current.parents:
        try:
            current.rmdir()
        except OSError:
            return
        current = current.parent
