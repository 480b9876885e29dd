"""Site configuration loading for Barn.

This module reads config.yml from a working directory and merges it over the
built-in defaults. The result is an immutable SiteConfig shared by every stage
of a single generate run.

Key classes:
- SiteConfig: Read-only mapping with typed accessors for recognised keys.
- ConfigResolver: Loads, normalises and validates the config file.
"""

from __future__ import annotations

import copy
import os
from collections.abc import Iterator, Mapping
from pathlib import Path
from types import MappingProxyType
from typing import Any

import yaml

from . import constants
from .errors import ConfigNotFound, ConfigParseError

DEFAULT_CONFIG: dict[str, Any] = {
    "title": "Barn Site",
    "base_url": "",
    "config_file_name": constants.CONFIG_FILE_NAME,
    "content_dir": constants.CONTENT_DIR,
    "content_file_name": constants.CONTENT_FILE_NAME,
    "output_dir": constants.OUTPUT_DIR,
    "layout_dir": constants.LAYOUT_DIR,
    "default_layout": constants.DEFAULT_LAYOUT,
    "required_fields": [],
    "defaults": {},
    "concurrency": constants.DEFAULT_CONCURRENCY,
    "debug": {"host": constants.DEBUG_HOST, "port": constants.DEBUG_PORT},
}

# Older config files use camelCase names for the same settings.
KEY_ALIASES = {
    "baseUrl": "base_url",
    "configFileName": "config_file_name",
    "contentDir": "content_dir",
    "contentFileName": "content_file_name",
    "outputDir": "output_dir",
    "layoutDir": "layout_dir",
    "defaultLayout": "default_layout",
    "requiredFields": "required_fields",
}

_STRING_KEYS = (
    "title",
    "base_url",
    "config_file_name",
    "content_dir",
    "content_file_name",
    "output_dir",
    "layout_dir",
    "default_layout",
)


def _freeze(value: Any) -> Any:
    if isinstance(value, Mapping):
        return MappingProxyType({k: _freeze(v) for k, v in value.items()})
    if isinstance(value, list):
        return tuple(_freeze(v) for v in value)
    return value


class SiteConfig(Mapping[str, Any]):
    """Immutable site configuration for one run.

    Unrecognised keys are kept as-is so layouts can read them as ``site.<key>``.
    """

    def __init__(self, values: Mapping[str, Any], path: Path | None = None):
        self._values = {k: _freeze(v) for k, v in values.items()}
        self.path = path

    def __getitem__(self, key: str) -> Any:
        return self._values[key]

    def __iter__(self) -> Iterator[str]:
        return iter(self._values)

    def __len__(self) -> int:
        return len(self._values)

    def __getattr__(self, name: str) -> Any:
        # Lets Jinja templates write site.title as well as site["title"].
        if name.startswith("_"):
            raise AttributeError(name)
        try:
            return self._values[name]
        except KeyError:
            raise AttributeError(name) from None

    @property
    def content_dir(self) -> str:
        return self._values["content_dir"]

    @property
    def content_file_name(self) -> str:
        return self._values["content_file_name"]

    @property
    def output_dir(self) -> str:
        return self._values["output_dir"]

    @property
    def layout_dir(self) -> str:
        return self._values["layout_dir"]

    @property
    def default_layout(self) -> str:
        return self._values["default_layout"]

    @property
    def required_fields(self) -> tuple[str, ...]:
        return self._values["required_fields"]

    @property
    def defaults(self) -> Mapping[str, Any]:
        return self._values["defaults"]

    @property
    def concurrency(self) -> int:
        return self._values["concurrency"]

    @property
    def debug_host(self) -> str:
        return self._values["debug"]["host"]

    @property
    def debug_port(self) -> int:
        return self._values["debug"]["port"]

    def __repr__(self) -> str:  # pragma: no cover - for debugging
        return f"SiteConfig({dict(self._values)!r})"


class ConfigResolver:
    """Loads the site configuration from a working directory.

    Attributes:
        file_name: Name of the config file to look for.
    """

    def __init__(self, file_name: str = constants.CONFIG_FILE_NAME):
        self.file_name = file_name

    def resolve(self, working_dir: Path) -> SiteConfig:
        """Read the config file and merge it over the defaults.

        Args:
            working_dir: Project directory containing the config file.

        Returns:
            The resolved SiteConfig.

        Raises:
            ConfigNotFound: No config file and no default content directory.
            ConfigParseError: The file is unreadable, malformed or has
                invalid values.
        """
        config_path = working_dir / self.file_name
        config = copy.deepcopy(DEFAULT_CONFIG)
        config["config_file_name"] = self.file_name

        if not config_path.exists():
            if not (working_dir / config["content_dir"]).is_dir():
                raise ConfigNotFound(
                    config_path,
                    f"Config file not found: {config_path} "
                    f"(and no '{config['content_dir']}' directory to fall back on)",
                )
            return SiteConfig(config)

        loaded = self._load_yaml(config_path)
        for key, value in loaded.items():
            key = KEY_ALIASES.get(str(key), str(key))
            if key == "debug" and isinstance(value, Mapping):
                config["debug"].update(value)
            else:
                config[key] = value
        _validate(config, config_path)
        return SiteConfig(config, path=config_path)

    def _load_yaml(self, config_path: Path) -> dict[str, Any]:
        try:
            with open(config_path, encoding="utf-8") as f:
                loaded = yaml.safe_load(f)
        except yaml.YAMLError as exc:
            mark = getattr(exc, "problem_mark", None)
            problem = getattr(exc, "problem", None) or str(exc)
            if mark is not None:
                raise ConfigParseError(
                    config_path, problem, line=mark.line + 1, column=mark.column + 1
                ) from exc
            raise ConfigParseError(config_path, problem) from exc
        except UnicodeDecodeError as exc:
            raise ConfigParseError(config_path, f"not valid UTF-8: {exc}") from exc
        except OSError as exc:
            raise ConfigParseError(config_path, f"cannot read: {exc.strerror or exc}") from exc
        if loaded is None:
            return {}
        if not isinstance(loaded, dict):
            raise ConfigParseError(
                config_path,
                f"expected a mapping at the top level, got {type(loaded).__name__}",
            )
        return loaded


def _validate(config: dict[str, Any], config_path: Path) -> None:
    """Check the types of recognised keys.

    Raises:
        ConfigParseError: If a recognised key holds a value of the wrong type.
    """
    for key in _STRING_KEYS:
        if not isinstance(config[key], str):
            raise ConfigParseError(config_path, f"'{key}' must be a string")
    for key in ("content_dir", "content_file_name", "output_dir", "layout_dir"):
        if not config[key].strip():
            raise ConfigParseError(config_path, f"'{key}' must not be empty")
    content = Path(os.path.normpath(config["content_dir"]))
    output = Path(os.path.normpath(config["output_dir"]))
    if output == content or content in output.parents:
        raise ConfigParseError(config_path, "'output_dir' must not be inside 'content_dir'")

    required = config["required_fields"]
    if not isinstance(required, list) or not all(isinstance(f, str) for f in required):
        raise ConfigParseError(config_path, "'required_fields' must be a list of strings")
    if not isinstance(config["defaults"], dict):
        raise ConfigParseError(config_path, "'defaults' must be a mapping")

    concurrency = config["concurrency"]
    if isinstance(concurrency, bool) or not isinstance(concurrency, int) or concurrency < 1:
        raise ConfigParseError(config_path, "'concurrency' must be a positive integer")

    debug = config["debug"]
    if not isinstance(debug, dict):
        raise ConfigParseError(config_path, "'debug' must be a mapping with host and port")
    if not isinstance(debug.get("host"), str):
        raise ConfigParseError(config_path, "'debug.host' must be a string")
    port = debug.get("port")
    if isinstance(port, bool) or not isinstance(port, int) or not 0 <= port <= 65535:
        raise ConfigParseError(config_path, "'debug.port' must be an integer port number")


def resolve_config(working_dir: Path, file_name: str = constants.CONFIG_FILE_NAME) -> SiteConfig:
    """Resolve the site configuration for a working directory.

    Args:
        working_dir: Project directory.
        file_name: Config file name to read.

    Returns:
        The resolved SiteConfig.
    """
    return ConfigResolver(file_name).resolve(working_dir)
