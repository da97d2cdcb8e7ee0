"""
Smoke tests for CLI module imports and commands that need no network.
"""

import pytest

typer = pytest.importorskip("typer")

from typer.testing import CliRunner  # noqa: E402

runner = CliRunner()


def test_cli_main_imports():
    import deliberation.cli.main  # noqa: F401


def test_chat_session_imports():
    import deliberation.cli.chat_session  # noqa: F401


def test_models_command_shows_configuration():
    from deliberation.cli.main import app
    from deliberation.settings import CHAIRMAN_MODEL

    result = runner.invoke(app, ["models"])

    assert result.exit_code == 0
    assert "Chairman" in result.output
    assert CHAIRMAN_MODEL.split("/")[-1] in result.output


def test_prompts_command_lists_stages():
    from deliberation.cli.main import app

    result = runner.invoke(app, ["prompts"])

    assert result.exit_code == 0
    for stage in ("stage1", "stage2", "stage3", "preprocessing"):
        assert stage in result.output


def test_prompts_check_valid_template(tmp_path):
    from deliberation.cli.main import app

    template = tmp_path / "ranking.txt"
    template.write_text("Rank answers to {question}:\n{responses}")

    result = runner.invoke(app, ["prompts", "stage2", "--check", str(template)])

    assert result.exit_code == 0
    assert "valid" in result.output


def test_prompts_check_invalid_template(tmp_path):
    from deliberation.cli.main import app

    template = tmp_path / "ranking.txt"
    template.write_text("Rank these: {responses}")

    result = runner.invoke(app, ["prompts", "stage2", "--check", str(template)])

    assert result.exit_code == 1
    assert "question" in result.output


def test_prompts_unknown_stage():
    from deliberation.cli.main import app

    result = runner.invoke(app, ["prompts", "stage9"])

    assert result.exit_code == 2
