from datetime import datetime
from pathlib import Path

from barn.errors import BrokenReference, ConfigParseError, UnitError
from barn.utils import (
    absolute_url,
    extract_date_from_name,
    first_paragraph,
    is_content_file,
    is_markdown,
    normalize_tags,
    relative_url,
    slugify,
    titleize,
)


def test_slugify_and_titleize():
    assert slugify("2024-01-15-Hello World") == "hello-world"
    assert slugify("Already-Slugged") == "already-slugged"
    assert slugify("***") == "index"
    assert titleize("2024-01-15-hello-world.md") == "Hello World"
    assert titleize("getting_started.md") == "Getting Started"
    assert titleize("") == "Untitled"


def test_extract_date_from_name():
    assert extract_date_from_name("2024-02-29-leap") == datetime(2024, 2, 29)
    assert extract_date_from_name("2023-02-30-bad") is None
    assert extract_date_from_name("notes") is None


def test_first_paragraph():
    text = "# Heading\n\n![img](x.png)\n\nFirst   real\nparagraph.\n\nSecond."
    assert first_paragraph(text) == "First real paragraph."
    assert first_paragraph("word " * 100, limit=10) == "word word "
    assert first_paragraph("") == ""


def test_content_file_checks():
    assert is_content_file(Path("a.md"))
    assert is_content_file(Path("a.HTM"))
    assert not is_content_file(Path("a.txt"))
    assert is_markdown("a.markdown")
    assert is_markdown(Path("A.MD"))
    assert not is_markdown("a.html")


def test_relative_url():
    assert relative_url("b.html", "a.html") == "a.html"
    assert relative_url("posts/one.html", "docs/index.html") == "../docs/"
    assert relative_url("posts/one.html", "index.html") == "../"
    assert relative_url("index.html", "index.html") == "./"
    assert relative_url("docs/index.html", "docs/guide/setup.html") == "guide/setup.html"


def test_normalize_tags():
    assert normalize_tags(None) == []
    assert normalize_tags("a, b,,a") == ["a", "b"]
    assert normalize_tags(("x", " y ")) == ["x", "y"]
    assert normalize_tags(3) == ["3"]


def test_absolute_url():
    assert absolute_url("https://example.com/", "/about.html") == "https://example.com/about.html"
    assert absolute_url("https://example.com/blog", "posts/a.html") == "https://example.com/blog/posts/a.html"
    assert absolute_url("", "about.html") == "/about.html"


def test_error_descriptors():
    error = BrokenReference("c.md", "unresolved reference to 'z'")
    descriptor = error.to_unit_error()
    assert descriptor == UnitError("BrokenReference", "c.md", "unresolved reference to 'z'")
    assert str(descriptor) == "c.md: BrokenReference: unresolved reference to 'z'"

    parse_error = ConfigParseError(Path("config.yml"), "bad", line=3, column=7)
    assert str(parse_error) == "config.yml:3:7: bad"
    assert str(ConfigParseError(Path("config.yml"), "bad")) == "config.yml: bad"
