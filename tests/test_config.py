from pathlib import Path

import pytest

from barn.config import ConfigResolver, SiteConfig, resolve_config
from barn.errors import ConfigNotFound, ConfigParseError


def write_config(root: Path, text: str, name: str = "config.yml") -> Path:
    path = root / name
    path.write_text(text, encoding="utf-8")
    return path


def test_defaults_when_config_missing_but_content_exists(tmp_path):
    (tmp_path / "content").mkdir()
    config = ConfigResolver().resolve(tmp_path)
    assert config.path is None
    assert config.content_dir == "content"
    assert config.content_file_name == "index.md"
    assert config.output_dir == "public"
    assert config.layout_dir == "layouts"
    assert config.default_layout == "default"
    assert config.concurrency == 4
    assert config.debug_host == "localhost"
    assert config.debug_port == 4000
    assert config["title"] == "Barn Site"


def test_missing_config_and_content_is_fatal(tmp_path):
    with pytest.raises(ConfigNotFound) as excinfo:
        ConfigResolver().resolve(tmp_path)
    assert excinfo.value.path == tmp_path / "config.yml"


def test_config_overrides_defaults_and_keeps_custom_keys(tmp_path):
    write_config(
        tmp_path,
        "title: My Notes\nauthor: Ann\noutput_dir: dist\nconcurrency: 2\n",
    )
    config = resolve_config(tmp_path)
    assert config.path == tmp_path / "config.yml"
    assert config.title == "My Notes"
    assert config.author == "Ann"
    assert config.output_dir == "dist"
    assert config.concurrency == 2
    assert config.content_dir == "content"


def test_camel_case_aliases(tmp_path):
    write_config(tmp_path, "contentDir: src\noutputDir: site\nbaseUrl: https://example.com\n")
    config = resolve_config(tmp_path)
    assert config.content_dir == "src"
    assert config.output_dir == "site"
    assert config["base_url"] == "https://example.com"


def test_debug_section_is_merged(tmp_path):
    write_config(tmp_path, "debug:\n  port: 5000\n")
    config = resolve_config(tmp_path)
    assert config.debug_host == "localhost"
    assert config.debug_port == 5000


def test_custom_config_file_name(tmp_path):
    write_config(tmp_path, "title: Other\n", name="site.yml")
    config = ConfigResolver("site.yml").resolve(tmp_path)
    assert config.title == "Other"
    assert config["config_file_name"] == "site.yml"


def test_empty_config_file_uses_defaults(tmp_path):
    write_config(tmp_path, "")
    config = resolve_config(tmp_path)
    assert config.output_dir == "public"


def test_malformed_yaml_reports_location(tmp_path):
    write_config(tmp_path, "title: ok\nlinks: [one, two\n")
    with pytest.raises(ConfigParseError) as excinfo:
        resolve_config(tmp_path)
    assert excinfo.value.line is not None
    assert excinfo.value.column is not None
    assert str(excinfo.value).startswith(str(tmp_path / "config.yml"))


def test_top_level_must_be_mapping(tmp_path):
    write_config(tmp_path, "- a\n- b\n")
    with pytest.raises(ConfigParseError, match="mapping"):
        resolve_config(tmp_path)



def test_unreadable_config_is_a_parse_error(tmp_path):
    (tmp_path / "content").mkdir()
    (tmp_path / "config.yml").mkdir()
    with pytest.raises(ConfigParseError, match="cannot read") as excinfo:
        resolve_config(tmp_path)
    assert excinfo.value.path == tmp_path / "config.yml"


@pytest.mark.parametrize(
    "text, fragment",
    [
        ("output_dir: content\n", "output_dir"),
        ("output_dir: content/public\n", "output_dir"),
        ("content_dir: ''\n", "content_dir"),
        ("title: [a]\n", "title"),
        ("concurrency: 0\n", "concurrency"),
        ("concurrency: true\n", "concurrency"),
        ("required_fields: title\n", "required_fields"),
        ("defaults: [a]\n", "defaults"),
        ("debug: nope\n", "debug"),
        ("debug:\n  port: 70000\n", "debug.port"),
    ],
)
def test_invalid_values_are_rejected(tmp_path, text, fragment):
    write_config(tmp_path, text)
    with pytest.raises(ConfigParseError, match=fragment):
        resolve_config(tmp_path)


def test_site_config_is_read_only(tmp_path):
    write_config(
        tmp_path,
        "required_fields: [title]\ndefaults:\n  layout: post\n",
    )
    config = resolve_config(tmp_path)
    assert config.required_fields == ("title",)
    assert config.defaults["layout"] == "post"
    with pytest.raises(TypeError):
        config.defaults["layout"] = "other"
    with pytest.raises(TypeError):
        config["title"] = "changed"


def test_site_config_attribute_access():
    config = SiteConfig({"title": "T"})
    assert config.title == "T"
    assert dict(config) == {"title": "T"}
    with pytest.raises(AttributeError):
        config.missing
    with pytest.raises(AttributeError):
        config._private
