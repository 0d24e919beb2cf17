"""
Tests for configuration loading, prompts and language helpers
"""

import json

import pytest

import underlator.config as config_module
from underlator import language_codes as lc
from underlator.translation import prompts


@pytest.fixture
def config_file(tmp_path, monkeypatch):
    config_dir = tmp_path / "config"
    monkeypatch.setattr(config_module, "CONFIG_DIR", config_dir)
    monkeypatch.setattr(config_module, "CONFIG_FILE", config_dir / "config.json")
    return config_dir / "config.json"


class TestConfig:
    """Tests for load_config/save_config"""

    def test_first_load_writes_defaults(self, config_file):
        config = config_module.load_config()

        assert config == config_module.DEFAULT_CONFIG
        assert json.loads(config_file.read_text(encoding="utf-8")) == config_module.DEFAULT_CONFIG

    def test_partial_config_is_merged_with_defaults(self, config_file):
        config_module.save_config({"provider": "local", "remote": {"model": "llama3"}})
        config = config_module.load_config()

        assert config["provider"] == "local"
        assert config["remote"]["model"] == "llama3"
        assert config["remote"]["base_url"] == config_module.DEFAULT_OLLAMA_URL
        assert config["translation"]["chunk_delimiter"] == "🔴"

    def test_corrupt_file_falls_back_to_defaults(self, config_file):
        config_file.parent.mkdir(parents=True)
        config_file.write_text("{not json", encoding="utf-8")

        assert config_module.load_config() == config_module.DEFAULT_CONFIG

    def test_unknown_prompt_falls_back_to_translation_prompt(self):
        assert config_module.get_prompt("nope") == config_module.DEFAULT_PROMPTS["translation_prompt"]


class TestPrompts:
    def test_translation_prompt_uses_language_names(self):
        prompt = prompts.build_translation_prompt("Hello", "en", "ru")
        assert "English" in prompt
        assert "Russian" in prompt
        assert '"Hello"' in prompt

    def test_unknown_language_code_is_used_verbatim(self):
        assert "xx-YY" in prompts.build_translation_prompt("Hello", "en", "xx-YY")

    def test_contextual_prompt(self):
        prompt = prompts.build_contextual_prompt("a🔴b", "en", "ru", "🔴", 2)
        assert "a🔴b" in prompt
        assert "Segments: 2" in prompt
        assert "(ru)" in prompt


class TestLanguageCodes:
    def test_parse_direction(self):
        assert lc.parse_direction("en-ru") == ("en", "ru")

    @pytest.mark.parametrize("direction", ["", "en", "en-", "en-ru-de"])
    def test_parse_direction_rejects(self, direction):
        with pytest.raises(ValueError):
            lc.parse_direction(direction)

    def test_display_name_falls_back_to_base_language(self):
        assert lc.display_name("ru") == "Russian"
        assert lc.extract_base_language("zh-CN") == "zh"
        assert lc.format_direction("en-US", "ru") == "en-ru"
