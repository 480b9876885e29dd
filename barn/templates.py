"""Template rendering engine for Barn.

This module uses Jinja2 to wrap rendered unit bodies in layouts. Rendering is a
pure function of (unit, graph, config): the engine holds no per-run state
besides a cache of Jinja environments keyed by layout directory, and nothing in
the template context depends on the clock or the file system.

Key classes:
- RenderResult: Outcome of rendering one unit.
- RenderEngine: Resolves references, renders the body and applies the layout.

Key functions:
- render_toc: Render headings as a nested list.
"""

from __future__ import annotations

import threading
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from jinja2 import (
    Environment,
    FileSystemLoader,
    Template,
    TemplateError,
    TemplateNotFound,
    TemplateSyntaxError,
    select_autoescape,
)
from markupsafe import Markup, escape

from .config import SiteConfig
from .content import ContentGraph, ContentUnit
from .errors import BrokenReference, ContentValidationError, UnitError, UnitFailure
from .renderers import Heading, RendererRegistry, default_renderer_registry, resolve_references
from .utils import absolute_url, relative_url

__all__ = ["RenderEngine", "RenderResult", "render_toc"]

DEFAULT_LAYOUT_SOURCE = """<!DOCTYPE html>
<html lang="{{ page.frontmatter.get('lang', site.get('lang', 'en')) }}">
<head>
<meta charset="utf-8">
<meta name="viewport" content="width=device-width, initial-scale=1">
<title>{{ page.title }}{% if site.title %} | {{ site.title }}{% endif %}</title>
{% if page.description %}<meta name="description" content="{{ page.description }}">
{% endif %}</head>
<body>
<main>
{{ content }}
</main>
</body>
</html>
"""

LAYOUT_SUFFIXES = (".html.jinja", ".jinja", ".html")


@dataclass(frozen=True)
class RenderResult:
    """Outcome of rendering one unit.

    Exactly one of ``data`` and ``error`` is set.

    Attributes:
        source_path: Unit path relative to the content directory.
        destination: Output path relative to the output directory.
        data: Rendered bytes.
        error: Failure descriptor.
    """

    source_path: str
    destination: str | None
    data: bytes | None = None
    error: UnitError | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


def render_toc(headings: list[Heading]) -> Markup:
    """Render a table of contents as nested HTML from headings.

    Generates properly nested `<ul><li><a href="#id">text</a></li></ul>`
    structure based on heading levels.
    """
    if not headings:
        return Markup("")

    html_parts: list[str] = []
    level_stack: list[int] = []

    for heading in headings:
        level = heading.level

        while level_stack and level_stack[-1] > level:
            level_stack.pop()
            html_parts.append("</li></ul>")

        if level_stack and level_stack[-1] == level:
            html_parts.append("</li>")
        elif not level_stack or level > level_stack[-1]:  # pragma: no branch
            html_parts.append("<ul>")
            level_stack.append(level)

        html_parts.append(
            f'<li><a href="#{escape(heading.id)}">{escape(heading.text)}</a>'
        )

    while level_stack:
        level_stack.pop()
        html_parts.append("</li></ul>")

    return Markup("".join(html_parts))


class RenderEngine:
    """Renders content units into output bytes.

    Attributes:
        layout_dir: Directory holding Jinja layouts. When None, it is taken
            from the config passed to render(), relative to base_dir.
        base_dir: Directory the configured layout_dir is relative to.
        renderer_registry: Body renderers keyed by source type.
    """

    def __init__(
        self,
        layout_dir: Path | None = None,
        base_dir: Path | None = None,
        renderer_registry: RendererRegistry | None = None,
    ):
        self.layout_dir = layout_dir
        self.base_dir = base_dir or Path.cwd()
        self.renderer_registry = renderer_registry or default_renderer_registry
        self._environments: dict[Path, Environment] = {}
        self._lock = threading.Lock()

    def render(self, unit: ContentUnit, graph: ContentGraph, config: SiteConfig) -> RenderResult:
        """Render one unit.

        Failures are scoped to the unit and returned in the result, never
        raised.

        Args:
            unit: Unit to render.
            graph: Read-only graph used to resolve references.
            config: Resolved site configuration.

        Returns:
            RenderResult carrying bytes or an error.
        """
        try:
            html = self._render_unit(unit, graph, config)
        except UnitFailure as exc:
            return RenderResult(unit.source_path, unit.output_path, error=exc.to_unit_error())
        return RenderResult(unit.source_path, unit.output_path, data=html.encode("utf-8"))

    def _render_unit(self, unit: ContentUnit, graph: ContentGraph, config: SiteConfig) -> str:
        def lookup(name: str) -> tuple[str, str] | None:
            target = graph.resolve(name)
            if target is None:
                return None
            return relative_url(unit.output_path, target.output_path), target.title

        body = resolve_references(
            unit.body, unit.source_path, lookup, markdown=unit.source_type == "markdown"
        )
        renderer = self.renderer_registry.get_renderer(unit.source_type)
        if renderer is None:
            raise ContentValidationError(
                unit.source_path, f"no renderer for source type '{unit.source_type}'"
            )
        content, headings = renderer.render(body)

        def url_for(name: str) -> str:
            found = lookup(name)
            if found is None:
                raise BrokenReference(unit.source_path, f"unresolved reference to '{name}'")
            return found[0]

        context: dict[str, Any] = {
            "site": config,
            "page": unit,
            "content": Markup(content),
            "toc": render_toc(headings),
            "headings": headings,
            "pages": graph.units,
            "parent": graph.parent_of(unit),
            "children": graph.children_of(unit),
            "tags": graph.tags,
            "url_for": url_for,
            "abs_url": lambda path: absolute_url(config["base_url"], path),
            "page_url": absolute_url(config["base_url"], unit.output_path),
        }
        template = self._resolve_layout(unit, config)
        try:
            return template.render(**context)
        except UnitFailure:
            raise
        except Exception as exc:
            name = template.name or config.default_layout
            raise ContentValidationError(
                unit.source_path, f"layout '{name}' failed: {_format_error_message(exc)}"
            ) from exc

    def _resolve_layout(self, unit: ContentUnit, config: SiteConfig) -> Template:
        """Find the layout template for a unit.

        Tries ``<name>.html.jinja``, ``<name>.jinja`` and ``<name>.html`` for the
        layout named in front-matter or, failing that, the site default. A
        layout named in front-matter must exist; a missing site default falls
        back to the built-in layout.
        """
        env = self._environment(config)
        names = [unit.layout] if unit.layout else [config.default_layout]
        for name in names:
            for suffix in LAYOUT_SUFFIXES:
                try:
                    return env.get_template(f"{name}{suffix}")
                except TemplateNotFound:
                    continue
                except TemplateSyntaxError as exc:
                    raise ContentValidationError(
                        unit.source_path,
                        f"layout '{exc.name or name}' has a syntax error on line {exc.lineno}: {exc.message}",
                    ) from exc
        if unit.layout:
            raise ContentValidationError(unit.source_path, f"layout '{unit.layout}' not found")
        return env.from_string(DEFAULT_LAYOUT_SOURCE)

    def _environment(self, config: SiteConfig) -> Environment:
        layout_dir = self.layout_dir or (self.base_dir / config.layout_dir)
        layout_dir = layout_dir.resolve()
        with self._lock:
            env = self._environments.get(layout_dir)
            if env is None:
                env = Environment(
                    loader=FileSystemLoader([str(layout_dir)]),
                    autoescape=select_autoescape(["html", "xml", "jinja"]),
                    keep_trailing_newline=True,
                    enable_async=False,
                )
                self._environments[layout_dir] = env
            return env


def _format_error_message(exc: Exception) -> str:
    """Format a template exception into a user-friendly message."""
    error_type = type(exc).__name__
    error_msg = str(exc)
    line = getattr(exc, "lineno", None)
    where = f" on line {line}" if line else ""

    if error_type == "UndefinedError":
        return f"undefined variable{where}: {error_msg}"
    if isinstance(exc, TemplateError):
        return f"template error{where}: {error_msg}"
    return f"{error_type}: {error_msg}"
