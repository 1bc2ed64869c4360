from click.testing import CliRunner

from conftest import write
from staticforge import __version__
from staticforge.cli import cli
from staticforge.result import Failure, GenerationResult


def test_version():
    result = CliRunner().invoke(cli, ["--version"])
    assert result.exit_code == 0
    assert __version__ in result.output


def test_render_builds_project(project):
    runner = CliRunner()
    result = runner.invoke(cli, ["render", "--project", str(project)], catch_exceptions=False)
    assert result.exit_code == 0
    assert "Rendered 2 files" in result.output
    assert "Skipped 1 files" in result.output
    assert (project / "public" / "index.html").exists()


def test_render_reports_isolated_failures(monkeypatch, project):
    def fake_generate(self):
        return GenerationResult(
            success=True,
            files_processed=1,
            failures=[Failure("file", "content/bad.md", "RENDER", "boom", "RuntimeError")],
        )

    monkeypatch.setattr("staticforge.orchestrator.Orchestrator.generate", fake_generate)
    result = CliRunner().invoke(cli, ["render", "--project", str(project)])
    assert result.exit_code == 0
    assert "Completed with 1 failures" in result.output
    assert "content/bad.md [RENDER]: boom" in result.output


def test_render_fatal_failure_exits_1(monkeypatch, project):
    def fake_generate(self):
        return GenerationResult(
            success=False,
            failures=[Failure("core", "Orchestrator", "generation", "broken", "CoreError")],
        )

    monkeypatch.setattr("staticforge.orchestrator.Orchestrator.generate", fake_generate)
    result = CliRunner().invoke(cli, ["render", "--project", str(project)])
    assert result.exit_code == 1
    assert "Generation failed" in result.output
    assert "broken" in result.output


def test_render_invalid_config(tmp_path):
    write(tmp_path / "staticforge.yaml", "disabled_features: nope\n")
    result = CliRunner().invoke(cli, ["render", "--project", str(tmp_path)])
    assert result.exit_code == 1
    assert "Invalid configuration" in result.output


def test_render_page(project):
    source = project / "content" / "index.md"
    result = CliRunner().invoke(
        cli, ["render-page", "--project", str(project), str(source)], catch_exceptions=False
    )
    assert result.exit_code == 0
    assert "index.html" in result.output
    assert (project / "public" / "index.html").exists()


def test_render_page_skipped_and_unhandled(project):
    runner = CliRunner()
    draft = project / "content" / "draft.md"
    result = runner.invoke(cli, ["render-page", "--project", str(project), str(draft)])
    assert "Skipped" in result.output

    text = write(project / "content" / "notes.txt", "plain")
    result = runner.invoke(cli, ["render-page", "--project", str(project), str(text)])
    assert result.exit_code == 0
    assert "No renderer handled" in result.output


def test_render_page_failure(project):
    write(project / "templates" / "default" / "base.html.jinja", "{{ missing.attr }}")
    source = project / "content" / "index.md"
    result = CliRunner().invoke(cli, ["render-page", "--project", str(project), str(source)])
    assert result.exit_code == 1
    assert "Render failed" in result.output
    assert "Stage: RENDER" in result.output


def test_features_lists_loaded_features(project):
    write(project / "staticforge.yaml", "disabled_features: [Sitemap]\n")
    write(project / "features" / "broken" / "feature.py", "raise RuntimeError('bad plugin')\n")
    result = CliRunner().invoke(cli, ["features", "--project", str(project)])
    assert result.exit_code == 0
    assert "MarkdownRenderer" in result.output
    assert "Standard" in result.output
    assert "disabled" in result.output
    assert "bad plugin" in result.output


def test_verbose_flag_configures_debug(project):
    import logging

    result = CliRunner().invoke(cli, ["--verbose", "features", "--project", str(project)])
    assert result.exit_code == 0
    assert logging.getLogger("staticforge").level == logging.DEBUG


def test_main_invokes_cli(monkeypatch):
    import staticforge.cli as cli_mod

    called = {}
    monkeypatch.setattr(cli_mod, "cli", lambda: called.setdefault("ran", True))
    cli_mod.main()
    assert called == {"ran": True}
