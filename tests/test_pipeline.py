import json
from pathlib import Path

import pytest

from barn.errors import ConfigNotFound, ConfigParseError, ContentDirNotFound
from barn.pipeline import PipelineCoordinator, PipelineState, generate


def create_project(tmp_path: Path, files: dict[str, str], config: str = "") -> Path:
    (tmp_path / "content").mkdir(parents=True, exist_ok=True)
    (tmp_path / "config.yml").write_text(config, encoding="utf-8")
    for rel, text in files.items():
        path = tmp_path / "content" / rel
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(text, encoding="utf-8")
    return tmp_path


def output_files(root: Path, output_dir: str = "public") -> dict[str, bytes]:
    out = root / output_dir
    return {
        p.relative_to(out).as_posix(): p.read_bytes()
        for p in sorted(out.rglob("*"))
        if p.is_file()
    }


def test_partial_failure_writes_the_healthy_units(tmp_path):
    root = create_project(
        tmp_path,
        {"a.md": "Alpha", "b.md": "See [[a]].", "c.md": "See [[z]]."},
    )
    report = generate(root)
    assert report.succeeded == 2
    assert report.failed == 1
    assert [e.source_path for e in report.entries] == ["a.md", "b.md", "c.md"]
    failure = report.failures[0]
    assert failure.source_path == "c.md"
    assert failure.kind == "BrokenReference"
    assert "z" in failure.message
    assert sorted(output_files(root)) == ["a.html", "b.html"]
    assert b'<a href="a.html">A</a>' in output_files(root)["b.html"]


def test_one_file_per_successful_unit(tmp_path):
    root = create_project(
        tmp_path,
        {
            "index.md": "# Home",
            "about.md": "---\npermalink: about/\n---\nAbout",
            "docs/index.md": "Docs",
            "docs/guide.md": "Guide",
            "raw.html": "<p>raw</p>",
        },
    )
    report = generate(root)
    assert report.failed == 0
    assert sorted(report.written) == sorted(output_files(root))
    assert set(output_files(root)) == {
        "index.html",
        "about/index.html",
        "docs/index.html",
        "docs/guide.html",
        "raw.html",
    }


def test_generate_is_idempotent(tmp_path):
    root = create_project(
        tmp_path,
        {"a.md": "# A\n\n```python\nprint(1)\n```", "b.md": "[[a]]", "posts/2024-01-01-x.md": "X"},
    )
    first_report = generate(root)
    first = output_files(root)
    manifest = (root / ".barn" / "manifest.json").read_bytes()

    second_report = generate(root)
    assert output_files(root) == first
    assert (root / ".barn" / "manifest.json").read_bytes() == manifest
    assert sorted(second_report.unchanged) == sorted(first_report.written)
    assert second_report.removed == []


def test_removed_content_is_cleaned_up(tmp_path):
    root = create_project(tmp_path, {"a.md": "A", "old/gone.md": "Gone"})
    generate(root)
    assert "old/gone.html" in output_files(root)
    (root / "public" / "extra.txt").write_text("mine", encoding="utf-8")

    (root / "content" / "old" / "gone.md").unlink()
    report = generate(root)
    assert report.removed == ["old/gone.html"]
    assert set(output_files(root)) == {"a.html", "extra.txt"}
    manifest = json.loads((root / ".barn" / "manifest.json").read_text(encoding="utf-8"))
    assert manifest == {"version": 1, "outputs": {str((root / "public").resolve()): ["a.html"]}}


def test_collision_fails_claimants_only(tmp_path):
    root = create_project(
        tmp_path,
        {"a.md": "---\npermalink: same.html\n---\nA", "b.md": "---\npermalink: same\n---\nB", "c.md": "C"},
    )
    report = generate(root)
    assert {f.source_path: f.kind for f in report.failures} == {
        "a.md": "OutputPathCollision",
        "b.md": "OutputPathCollision",
    }
    assert set(output_files(root)) == {"c.html"}


def test_concurrency_does_not_change_output(tmp_path):
    files = {f"dir{i % 4}/page{i:02d}.md": f"# Page {i}\n\n[[dir0/page00]]" for i in range(24)}
    files["broken.md"] = "[[nowhere]]"
    root_one = create_project(tmp_path / "one", files)
    root_many = create_project(tmp_path / "many", files)

    report_one = generate(root_one, concurrency=1)
    report_many = generate(root_many, concurrency=8)
    assert output_files(root_one) == output_files(root_many)
    assert report_one.entries == report_many.entries


def test_fatal_errors_abort_before_writing(tmp_path):
    coordinator = PipelineCoordinator()
    with pytest.raises(ConfigNotFound):
        coordinator.run(tmp_path)
    assert coordinator.state is PipelineState.ABORTED

    (tmp_path / "config.yml").write_text("title: [broken\n", encoding="utf-8")
    with pytest.raises(ConfigParseError):
        generate(tmp_path)

    (tmp_path / "config.yml").write_text("content_dir: pages\n", encoding="utf-8")
    with pytest.raises(ContentDirNotFound):
        generate(tmp_path)
    assert not (tmp_path / "public").exists()


def test_states_and_single_use(tmp_path):
    root = create_project(tmp_path, {"a.md": "A"})
    coordinator = PipelineCoordinator(concurrency=2)
    assert coordinator.state is PipelineState.IDLE
    coordinator.run(root)
    assert coordinator.state is PipelineState.DONE
    assert coordinator.config.output_dir == "public"
    assert list(coordinator.graph) == ["a.md"]
    with pytest.raises(RuntimeError):
        coordinator.run(root)


def test_invalid_concurrency_rejected():
    with pytest.raises(ValueError):
        PipelineCoordinator(concurrency=0)


def test_cancelled_run_writes_nothing(tmp_path):
    root = create_project(tmp_path, {"a.md": "A", "b.md": "B"})
    coordinator = PipelineCoordinator()
    coordinator.cancel()
    report = coordinator.run(root)
    assert report.cancelled
    assert report.succeeded == 0
    assert {f.kind for f in report.failures} == {"Cancelled"}
    assert output_files(root) == {}


def test_output_dir_override(tmp_path):
    root = create_project(tmp_path, {"a.md": "A"})
    report = generate(root, output_dir=tmp_path / "staging")
    assert report.output_dir == tmp_path / "staging"
    assert (tmp_path / "staging" / "a.html").exists()
    assert not (root / "public").exists()


def test_configured_directories(tmp_path):
    (tmp_path / "src").mkdir()
    (tmp_path / "src" / "a.md").write_text("A", encoding="utf-8")
    (tmp_path / "theme").mkdir()
    (tmp_path / "theme" / "base.html").write_text("<b>{{ page.title }}</b>", encoding="utf-8")
    (tmp_path / "config.yml").write_text(
        "contentDir: src\noutputDir: dist\nlayoutDir: theme\ndefaultLayout: base\n",
        encoding="utf-8",
    )
    report = generate(tmp_path)
    assert report.failed == 0
    assert (tmp_path / "dist" / "a.html").read_text(encoding="utf-8") == "<b>A</b>"
