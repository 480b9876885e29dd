"""Barn content scaffolding tool.

This package turns a tree of Markdown/HTML content plus a YAML config file into
a static site rendered through Jinja2 layouts.

The main entry point is the CLI module, which provides commands for cloning the
starter template, generating the site and running the development server.

Architecture:
- ConfigResolver (config.py) loads config.yml and merges built-in defaults.
- ContentLoader (content.py) walks the content directory into a ContentGraph.
- RenderEngine (templates.py) renders each unit with its layout.
- OutputWriter (writer.py) writes output atomically and cleans stale files.
- PipelineCoordinator (pipeline.py) orchestrates a single generate run.
"""

__all__ = ["__version__"]
__version__ = "0.1.0"
