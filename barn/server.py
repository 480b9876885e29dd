"""Development server for Barn.

Serves the generated output directory for local authoring:
- Directories resolve to their index.html; listings and missing paths are 404s
  (serving 404.html when present).
- Watches the content directory, layouts and config file and regenerates on
  change.
- Prints one of the farewell strings on shutdown.

Key classes:
- DevServer: Main class for running the development server.
- _StaticHandler: HTTP request handler that enforces 404s.
- _ChangeHandler: File system event handler for triggering regeneration.
"""

from __future__ import annotations

import functools
import random
import threading
import time
from http.server import SimpleHTTPRequestHandler, ThreadingHTTPServer
from pathlib import Path

from watchdog.events import FileSystemEventHandler
from watchdog.observers import Observer

from .config import ConfigResolver
from .constants import CONFIG_FILE_NAME, FAREWELLS
from .errors import FatalError
from .pipeline import PipelineCoordinator
from .writer import PipelineReport


def pick_farewell(rng: random.Random | None = None) -> str:
    """Return one of the canned farewell strings."""
    return (rng or random).choice(FAREWELLS)


class _StaticHandler(SimpleHTTPRequestHandler):
    """Serves the output tree read-only without directory listings."""

    def end_headers(self):
        self.send_header("Cache-Control", "no-cache, no-store, must-revalidate")
        super().end_headers()

    def list_directory(self, path):  # pragma: no cover - exercised via send_head
        return self._serve_404()

    def log_message(self, format, *args):  # pragma: no cover - console noise
        return

    def _serve_404(self):
        """Serve 404.html (when present) with a 404 status."""
        error_page = Path(self.directory) / "404.html"
        if error_page.is_file():
            encoded = error_page.read_bytes()
            self.send_response(404)
            self.send_header("Content-type", "text/html; charset=utf-8")
            self.send_header("Content-Length", str(len(encoded)))
            self.end_headers()
            self.wfile.write(encoded)
            return None
        self.send_error(404, "File not found")
        return None

    def send_head(self):
        path_obj = Path(self.translate_path(self.path))
        if path_obj.is_dir():
            if not (path_obj / "index.html").is_file():
                return self._serve_404()
        elif not path_obj.is_file():
            return self._serve_404()
        return super().send_head()


class DevServer:
    """Development server that regenerates on change.

    Attributes:
        project_root: Root directory of the project.
        config: Site configuration.
        output_dir: Directory being served.
        host: Interface to bind.
        port: Port for the HTTP server.
    """

    def __init__(
        self,
        project_root: Path,
        host: str | None = None,
        port: int | None = None,
        config_file_name: str = CONFIG_FILE_NAME,
    ):
        self.project_root = project_root
        self.config_file_name = config_file_name
        self.config = ConfigResolver(config_file_name).resolve(project_root)
        self.output_dir = project_root / self.config.output_dir
        self.host = host or self.config.debug_host
        self.port = int(port if port is not None else self.config.debug_port)
        self._observer: Observer | None = None
        self._httpd: ThreadingHTTPServer | None = None
        self._rebuilding = False
        self._last_rebuild_at = 0.0
        self._debounce_seconds = 0.2

    def start(self) -> None:  # pragma: no cover - integration path
        self.generate()
        threading.Thread(target=self._start_http, daemon=True).start()
        self._start_watcher()
        try:
            while True:
                time.sleep(1)
        except KeyboardInterrupt:
            self.stop()
            print(pick_farewell())

    def stop(self) -> None:
        if self._observer:
            self._observer.stop()
            self._observer.join()
            self._observer = None
        if self._httpd:
            self._httpd.shutdown()
            self._httpd = None

    def generate(self) -> PipelineReport:
        """Run the generate pipeline once and print its summary."""
        report = PipelineCoordinator(config_file_name=self.config_file_name).run(
            self.project_root
        )
        print(f"Generated: {report.summary()}")
        for failure in report.failures:
            print(f"  {failure}")
        return report

    def _start_http(self) -> None:  # pragma: no cover - integration path
        self.output_dir.mkdir(parents=True, exist_ok=True)
        handler = functools.partial(_StaticHandler, directory=str(self.output_dir))
        self._httpd = ThreadingHTTPServer((self.host, self.port), handler)
        print(f"Serving {self.output_dir} at http://{self.host}:{self.port}")
        self._httpd.serve_forever()

    def watch_paths(self) -> list[Path]:
        paths = [
            self.project_root / self.config.content_dir,
            self.project_root / self.config.layout_dir,
        ]
        return [p for p in paths if p.exists()]

    def _start_watcher(self) -> None:
        handler = _ChangeHandler(self)
        observer = Observer()
        for watch_path in self.watch_paths():
            observer.schedule(handler, str(watch_path), recursive=True)
        # Non-recursive watch on the root picks up config file edits.
        observer.schedule(handler, str(self.project_root), recursive=False)
        observer.start()
        self._observer = observer

    def rebuild(self) -> None:
        now = time.time()
        if self._rebuilding or (now - self._last_rebuild_at) < self._debounce_seconds:
            return
        self._rebuilding = True
        try:
            print("Change detected; regenerating...")
            self.generate()
        except FatalError as exc:
            print(f"Generate aborted: {exc}")
        finally:
            self._rebuilding = False
            self._last_rebuild_at = time.time()


class _ChangeHandler(FileSystemEventHandler):
    def __init__(self, server: DevServer):
        super().__init__()
        self.server = server

    def on_any_event(self, event):
        if event.is_directory:
            return
        path = Path(event.src_path)
        try:
            path.relative_to(self.server.output_dir)
            return
        except ValueError:
            pass
        if path.parent == self.server.project_root and path.name != self.server.config_file_name:
            return
        self.server.rebuild()
