from datetime import date, datetime
from pathlib import PurePosixPath

import pytest

from barn.errors import ContentValidationError
from barn.extractors import (
    CompositeMetadataExtractor,
    DateExtractor,
    DescriptionExtractor,
    FrontmatterDefaultsExtractor,
    FrontmatterExtractor,
    TagExtractor,
    TitleExtractor,
    create_metadata_extractor,
    default_metadata_extractor,
    extract_frontmatter,
)
from barn.protocols import MetadataExtractor


def test_extract_frontmatter_variants():
    assert extract_frontmatter("no front-matter") == ({}, "no front-matter")
    assert extract_frontmatter("---\n---\nbody") == ({}, "body")
    data, body = extract_frontmatter("\ufeff---\ntitle: Hi\ntags: [a]\n---\n# Body\n")
    assert data == {"title": "Hi", "tags": ["a"]}
    assert body == "# Body\n"
    data, body = extract_frontmatter("---\r\ntitle: Win\r\n---\r\nbody")
    assert data == {"title": "Win"}
    assert body == "body"


def test_extract_frontmatter_errors():
    with pytest.raises(ContentValidationError, match="unterminated"):
        extract_frontmatter("---\ntitle: x\nbody", "a.md")
    with pytest.raises(ContentValidationError, match="invalid front-matter on line"):
        extract_frontmatter("---\ntitle: [x\n---\n", "a.md")
    with pytest.raises(ContentValidationError, match="mapping"):
        extract_frontmatter("---\njust text\n---\n", "a.md")


def test_title_extraction_order():
    extractor = TitleExtractor()
    path = PurePosixPath("posts/2024-01-15-my-post.md")
    assert extractor.extract("", path, {"frontmatter": {"title": 42}}) == {"title": "42"}
    assert extractor.extract("", path, {"body": "intro\n# Heading Title\n"}) == {
        "title": "Heading Title"
    }
    assert extractor.extract("", path, {"body": "no heading"}) == {"title": "My Post"}
    assert extractor.extract("", PurePosixPath("getting-started/index.md"), {}) == {
        "title": "Getting Started"
    }



def test_title_ignores_headings_inside_code():
    extractor = TitleExtractor()
    path = PurePosixPath("setup.md")
    fenced = "```sh\n# install the tools\nmake\n```\n\n# Setup Guide\n"
    assert extractor.extract("", path, {"body": fenced}) == {"title": "Setup Guide"}
    tilde = "~~~\n# not a title\n~~~\n"
    assert extractor.extract("", path, {"body": tilde}) == {"title": "Setup"}
    indented = "Example:\n\n    # comment\n"
    assert extractor.extract("", path, {"body": indented}) == {"title": "Setup"}


def test_description_from_frontmatter_or_first_paragraph():
    extractor = DescriptionExtractor()
    path = PurePosixPath("a.md")
    assert extractor.extract("", path, {"frontmatter": {"description": "Given"}}) == {
        "description": "Given"
    }
    body = "# Title\n\n```\ncode\n```\n\nSee [[other|the other page]] <b>now</b>.\n"
    assert extractor.extract("", path, {"body": body}) == {
        "description": "See the other page now."
    }


def test_date_extraction():
    extractor = DateExtractor()
    assert extractor.extract("", PurePosixPath("2023-05-06-x.md"), {}) == {
        "date": datetime(2023, 5, 6)
    }
    assert extractor.extract("", PurePosixPath("plain.md"), {}) == {"date": None}
    fm = {"frontmatter": {"date": "2024-02-03T10:30:00"}}
    assert extractor.extract("", PurePosixPath("a.md"), fm) == {
        "date": datetime(2024, 2, 3, 10, 30)
    }
    fm = {"frontmatter": {"date": date(2022, 1, 2)}}
    assert extractor.extract("", PurePosixPath("a.md"), fm) == {"date": datetime(2022, 1, 2)}
    with pytest.raises(ContentValidationError, match="invalid date"):
        extractor.extract("", PurePosixPath("a.md"), {"frontmatter": {"date": "someday"}})
    with pytest.raises(ContentValidationError, match="invalid date"):
        extractor.extract("", PurePosixPath("a.md"), {"frontmatter": {"date": [1]}})


def test_tag_extraction():
    extractor = TagExtractor()
    path = PurePosixPath("a.md")
    assert extractor.extract("", path, {"frontmatter": {"tags": "a, b, a"}}) == {"tags": ["a", "b"]}
    assert extractor.extract("", path, {"frontmatter": {"tags": ["x", 1]}}) == {"tags": ["x", "1"]}
    assert extractor.extract("", path, {}) == {"tags": []}


def test_defaults_extractor_fills_and_requires():
    extractor = FrontmatterDefaultsExtractor({"layout": "post", "lang": "en"}, ["title"])
    result = extractor.extract(
        "", PurePosixPath("a.md"), {"frontmatter": {"title": "T", "lang": "fr"}}
    )
    assert result == {"frontmatter": {"layout": "post", "lang": "fr", "title": "T"}}
    with pytest.raises(ContentValidationError, match="'title'"):
        extractor.extract("", PurePosixPath("b.md"), {"frontmatter": {}})


def test_composite_runs_chain_in_order():
    class Marker:
        def extract(self, content, path, metadata):
            return {"seen_title": metadata.get("title")}

    assert isinstance(Marker(), MetadataExtractor)
    composite = CompositeMetadataExtractor([FrontmatterExtractor(), TitleExtractor()])
    composite.add_extractor(Marker())
    result = composite.extract("---\ntitle: Hello\n---\nbody", PurePosixPath("a.md"))
    assert result["seen_title"] == "Hello"
    assert result["body"] == "body"


def test_default_and_configured_chains():
    result = default_metadata_extractor.extract("# Hi\n\nText", PurePosixPath("a.md"))
    assert result["title"] == "Hi"
    assert result["description"] == "Text"
    assert result["tags"] == []

    chain = create_metadata_extractor({"tags": ["default"]})
    result = chain.extract("body", PurePosixPath("a.md"))
    assert result["tags"] == ["default"]
    assert result["frontmatter"] == {"tags": ["default"]}
