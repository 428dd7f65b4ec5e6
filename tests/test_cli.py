import subprocess
import sys
from pathlib import Path

from click.testing import CliRunner

from blossom import __version__
from blossom.build import BuildResult
from blossom.cli import cli


def create_project(root: Path) -> Path:
    notes = root / "notes"
    notes.mkdir(parents=True)
    (notes / "post.md").write_text(
        "---\ntitle: Post\ndate: 2025-08-01\n---\nHello.\n", encoding="utf-8"
    )
    return root


def test_cli_build_writes_site(monkeypatch, tmp_path):
    create_project(tmp_path)
    monkeypatch.chdir(tmp_path)
    result = CliRunner().invoke(cli, ["build"], catch_exceptions=False)
    assert result.exit_code == 0
    assert "Built 1 posts" in result.output
    assert "1 rendered, 0 reused" in result.output
    assert (tmp_path / "dist" / "blog" / "post" / "index.html").is_file()

    again = CliRunner().invoke(cli, ["build"], catch_exceptions=False)
    assert "0 rendered, 1 reused" in again.output


def test_cli_passes_options(monkeypatch, tmp_path):
    monkeypatch.chdir(tmp_path)
    calls = {}

    def fake_build_site(root, **kwargs):
        calls.update(kwargs)
        return BuildResult(documents=[], about=None, output_dir=root / "dist")

    monkeypatch.setattr("blossom.cli.build_site", fake_build_site)
    result = CliRunner().invoke(
        cli,
        ["build", "--drafts", "--future", "--base", "/repo", "--site-url", "https://e.org", "--full"],
        catch_exceptions=False,
    )
    assert result.exit_code == 0
    assert calls == {
        "include_drafts": True,
        "include_future": True,
        "strict_links": False,
        "base_path": "/repo",
        "site_url": "https://e.org",
        "full": True,
    }


def test_cli_strict_links_fails_but_keeps_output(monkeypatch, tmp_path):
    create_project(tmp_path)
    (tmp_path / "notes" / "broken.md").write_text(
        "---\ntitle: Broken\ndate: 2025-08-02\n---\nSee [x](/missing/).\n", encoding="utf-8"
    )
    monkeypatch.chdir(tmp_path)

    relaxed = CliRunner().invoke(cli, ["build"])
    assert relaxed.exit_code == 0
    assert "Broken link: blog/broken/index.html: /missing/" in relaxed.output

    strict = CliRunner().invoke(cli, ["build", "--strict-links"])
    assert strict.exit_code == 1
    assert "1 broken internal links" in strict.output
    assert (tmp_path / "dist" / "blog" / "broken" / "index.html").is_file()
    assert (tmp_path / ".blossom-manifest.json").is_file()


def test_cli_reports_build_errors(monkeypatch, tmp_path):
    create_project(tmp_path)
    (tmp_path / "notes" / "bad.md").write_text("---\ntitle: [oops\n---\n", encoding="utf-8")
    monkeypatch.chdir(tmp_path)
    result = CliRunner().invoke(cli, ["build"])
    assert result.exit_code == 1
    assert "Build failed:" in result.output
    assert "File: notes/bad.md" in result.output


def test_cli_reports_config_errors(monkeypatch, tmp_path):
    (tmp_path / "blossom.yaml").write_text("title: [oops\n", encoding="utf-8")
    monkeypatch.chdir(tmp_path)
    result = CliRunner().invoke(cli, ["build"])
    assert result.exit_code == 1
    assert "Build failed:" in result.output


def test_cli_version():
    result = CliRunner().invoke(cli, ["--version"])
    assert result.exit_code == 0
    assert __version__ in result.output


def test_module_main_entrypoint():
    result = subprocess.run(
        [sys.executable, "-m", "blossom", "--help"], capture_output=True, text=True, check=False
    )
    assert result.returncode == 0
    assert "build" in result.stdout


def test_main_invokes_cli(monkeypatch):
    called = {}
    monkeypatch.setattr("blossom.cli.cli", lambda: called.setdefault("cli", True))
    from blossom.cli import main

    main()
    assert called["cli"] is True
