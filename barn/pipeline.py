"""Generate pipeline orchestration for Barn.

This module contains the single public entry point of the generate pipeline.
It resolves the configuration, loads the content graph, renders every unit on
a bounded worker pool and hands the results to the output writer.

Key classes:
- PipelineState: States a run moves through.
- PipelineCoordinator: Runs the pipeline and supports cancellation.

Key functions:
- generate: Convenience wrapper returning the PipelineReport of one run.
"""

from __future__ import annotations

import threading
from concurrent.futures import ThreadPoolExecutor
from enum import Enum
from pathlib import Path

from . import constants
from .config import ConfigResolver, SiteConfig
from .content import ContentGraph, ContentLoader, ContentUnit
from .errors import Cancelled, FatalError
from .templates import RenderEngine, RenderResult
from .writer import OutputWriter, PipelineReport

__all__ = ["PipelineCoordinator", "PipelineReport", "PipelineState", "generate"]


class PipelineState(Enum):
    IDLE = "idle"
    CONFIG_RESOLVED = "config_resolved"
    CONTENT_LOADED = "content_loaded"
    RENDERED = "rendered"
    WRITTEN = "written"
    DONE = "done"
    ABORTED = "aborted"


class PipelineCoordinator:
    """Runs one generate pass over a working directory.

    Fatal errors (missing or malformed config, missing content directory)
    move the run to ABORTED and are re-raised before anything is written.
    Unit errors never abort; they are collected into the report.

    Attributes:
        concurrency: Worker pool size; None uses the configured value.
        config_file_name: Config file to read from the working directory.
        state: Current pipeline state.
        config: Resolved configuration, once available.
        graph: Loaded content graph, once available.
    """

    def __init__(
        self,
        concurrency: int | None = None,
        cancel_event: threading.Event | None = None,
        config_file_name: str = constants.CONFIG_FILE_NAME,
        output_dir: Path | None = None,
    ):
        if concurrency is not None and concurrency < 1:
            raise ValueError("concurrency must be a positive integer")
        self.concurrency = concurrency
        self.config_file_name = config_file_name
        self._output_dir_override = output_dir
        self._cancel_event = cancel_event or threading.Event()
        self.state = PipelineState.IDLE
        self.config: SiteConfig | None = None
        self.graph: ContentGraph | None = None

    def cancel(self) -> None:
        """Ask the run to stop at the next unit boundary."""
        self._cancel_event.set()

    @property
    def cancelled(self) -> bool:
        return self._cancel_event.is_set()

    def run(self, working_dir: Path) -> PipelineReport:
        """Generate the site for working_dir.

        Args:
            working_dir: Project directory holding the config file.

        Returns:
            PipelineReport with per-unit entries in traversal order.

        Raises:
            ConfigNotFound: No config file and no default content directory.
            ConfigParseError: The config file is malformed.
            ContentDirNotFound: The content directory does not exist.
        """
        if self.state is not PipelineState.IDLE:
            raise RuntimeError(f"pipeline already ran (state: {self.state.value})")
        working_dir = Path(working_dir)
        try:
            config = ConfigResolver(self.config_file_name).resolve(working_dir)
            self.config = config
            self.state = PipelineState.CONFIG_RESOLVED

            workers = self.concurrency or config.concurrency
            with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="barn") as executor:
                loader = ContentLoader(executor=executor, cancel_event=self._cancel_event)
                graph = loader.load(working_dir / config.content_dir, config)
                self.graph = graph
                self.state = PipelineState.CONTENT_LOADED

                engine = RenderEngine(base_dir=working_dir)
                results = list(
                    executor.map(lambda unit: self._render(engine, unit, graph, config), graph.units)
                )
        except FatalError:
            self.state = PipelineState.ABORTED
            raise
        self.state = PipelineState.RENDERED

        output_dir = self._output_dir_override or (working_dir / config.output_dir)
        results.extend(
            RenderResult(f.source_path, None, error=f) for f in graph.failures
        )
        results.sort(key=lambda r: graph.order_of(r.source_path))
        writer = OutputWriter(
            cancel_event=self._cancel_event,
            manifest_path=working_dir / constants.STATE_DIR / constants.MANIFEST_NAME,
        )
        report = writer.write(results, output_dir)
        self.state = PipelineState.WRITTEN

        report.entries.sort(key=lambda e: graph.order_of(e.source_path))
        if self.cancelled:
            report.cancelled = True
        self.state = PipelineState.DONE
        return report

    def _render(
        self, engine: RenderEngine, unit: ContentUnit, graph: ContentGraph, config: SiteConfig
    ) -> RenderResult:
        if self.cancelled:
            error = Cancelled(unit.source_path, "run cancelled before rendering")
            return RenderResult(unit.source_path, unit.output_path, error=error.to_unit_error())
        return engine.render(unit, graph, config)


def generate(
    working_dir: Path,
    concurrency: int | None = None,
    config_file_name: str = constants.CONFIG_FILE_NAME,
    output_dir: Path | None = None,
) -> PipelineReport:
    """Run the generate pipeline once and return its report."""
    coordinator = PipelineCoordinator(
        concurrency=concurrency, config_file_name=config_file_name, output_dir=output_dir
    )
    return coordinator.run(working_dir)

