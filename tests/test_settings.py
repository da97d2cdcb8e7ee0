"""
Tests for configuration loading.
"""

import pytest

from deliberation.settings import ConfigError, load_config


def test_missing_file_returns_defaults(tmp_path):
    config = load_config(tmp_path / "config.yaml")

    assert len(config["council_models"]) == 4
    assert config["max_retries"] == 3
    assert config["stage_timeout"] is None
    assert config["preprocess_model"] is None


def test_values_override_defaults(tmp_path):
    path = tmp_path / "config.yaml"
    path.write_text(
        "council_models:\n"
        "  - openai/gpt-5.2\n"
        "  - x-ai/grok-4\n"
        "chairman_model: openai/gpt-5.2\n"
        "stage_timeout: 90\n"
        "custom_prompts:\n"
        "  stage1: 'Be brief. {question}'\n"
    )

    config = load_config(path)

    assert config["council_models"] == ["openai/gpt-5.2", "x-ai/grok-4"]
    assert config["chairman_model"] == "openai/gpt-5.2"
    assert config["stage_timeout"] == 90
    assert config["custom_prompts"] == {"stage1": "Be brief. {question}"}
    assert config["title_model"] == "google/gemini-2.5-flash"


def test_empty_file_returns_defaults(tmp_path):
    path = tmp_path / "config.yaml"
    path.write_text("")

    assert load_config(path)["chairman_model"] == "google/gemini-3-pro-preview"


@pytest.mark.parametrize(
    "content",
    [
        "council_models: [unclosed",
        "- just\n- a list\n",
        "council_model: typo/model\n",
        "council_models: []\n",
        "max_retries: -1\n",
        "council_models:\n" + "".join(f"  - vendor/model-{i}\n" for i in range(27)),
    ],
)
def test_invalid_config_rejected(tmp_path, content):
    path = tmp_path / "config.yaml"
    path.write_text(content)

    with pytest.raises(ConfigError):
        load_config(path)
