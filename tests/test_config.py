"""Tests for config loading and API key lookup."""

import json

from saphira.config import ApiKeyStore, AppConfig, Settings, load_config


def _settings(**values) -> Settings:
    values.setdefault("news_api_key", "")
    values.setdefault("github_token", "")
    return Settings(_env_file=None, **values)


class TestApiKeyStore:
    """API key 查找顺序"""

    def test_settings_win(self, tmp_path):
        keys = tmp_path / "api-keys.json"
        keys.write_text(json.dumps({"newsApiKey": "from-file"}), encoding="utf-8")
        store = ApiKeyStore(_settings(news_api_key="from-env"), keys)
        assert store.get_api_key("newsapi") == "from-env"

    def test_file_aliases(self, tmp_path):
        keys = tmp_path / "api-keys.json"
        keys.write_text(
            json.dumps({"newsApiKey": "n", "githubApiKey": "g"}), encoding="utf-8"
        )
        store = ApiKeyStore(_settings(), keys)
        assert store.get_api_key("newsapi") == "n"
        assert store.get_api_key("github") == "g"

    def test_missing_everywhere(self, tmp_path):
        store = ApiKeyStore(_settings(), tmp_path / "absent.json")
        assert store.get_api_key("newsapi") == ""
        assert store.get_api_key("unknown") == ""

    def test_corrupt_file(self, tmp_path):
        keys = tmp_path / "api-keys.json"
        keys.write_text("{oops", encoding="utf-8")
        assert ApiKeyStore(_settings(), keys).get_api_key("github") == ""


class TestLoadConfig:
    def test_missing_file_gives_defaults(self, tmp_path):
        config, _ = load_config(str(tmp_path / "nope.yaml"))
        assert config == AppConfig()
        assert config.collection.processing_level == "basic"
        assert config.search.cache_ttl == 300

    def test_yaml_values(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text(
            "collection:\n"
            "  processing_level: enhanced\n"
            "  fallback_timeout: 45\n"
            "sources:\n"
            "  duckduckgo:\n"
            "    allowed_sources: [python.org]\n"
            "interests:\n"
            "  - name: Rust\n"
            "    tags: [rust]\n"
            "    weight: 12\n",
            encoding="utf-8",
        )
        config, _ = load_config(str(path))

        assert config.collection.processing_level == "enhanced"
        assert config.collection.fallback_timeout == 45
        assert config.sources.duckduckgo.allowed_sources == ["python.org"]
        assert config.interests[0].tags == ["rust"]
        assert config.interests[0].weight == 10
