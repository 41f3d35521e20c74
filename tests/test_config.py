"""Tests for the configuration store."""

import json

from codesensei.config import (
    CONFIG_PATH_ENV,
    PROJECTS_DIR_ENV,
    ConfigStore,
    default_config_path,
    default_projects_dir,
    normalize_server_url,
)
from codesensei.schemas import RemoteConfig


class TestConfigStore:
    """Test ConfigStore class."""

    def test_first_load_writes_default(self, config_store):
        """Loading with no file returns and persists the defaults."""
        assert not config_store.config_path.exists()

        config = config_store.load()

        assert config == RemoteConfig()
        assert config.server_url == "http://localhost:4096"
        assert config.username == "opencode"
        assert config.password is None
        assert config_store.config_path.exists()

    def test_save_and_load(self, config_store):
        config = RemoteConfig(server_url="http://remote:4096", password="pw", default_model="m")

        config_store.save(config)

        assert config_store.load() == config

    def test_pretty_printed(self, config_store):
        config_store.save(RemoteConfig())

        text = config_store.config_path.read_text()

        assert text.startswith("{\n  ")
        assert json.loads(text)["username"] == "opencode"

    def test_update_server_url_normalizes(self, config_store):
        config = config_store.update_server_url("  http://remote:4096/  ")

        assert config.server_url == "http://remote:4096"
        assert config_store.load().server_url == "http://remote:4096"

    def test_update_auth(self, config_store):
        config_store.update_server_url("http://remote:4096")

        config_store.update_auth("admin", "secret")

        loaded = config_store.load()
        assert loaded.username == "admin"
        assert loaded.password == "secret"
        # Other fields are preserved
        assert loaded.server_url == "http://remote:4096"

    def test_update_provider(self, config_store):
        config_store.update_provider("anthropic", "claude-a")

        loaded = config_store.load()
        assert loaded.default_provider == "anthropic"
        assert loaded.default_model == "claude-a"

    def test_clear_provider(self, config_store):
        config_store.update_provider("anthropic", "claude-a")

        config_store.update_provider(None, None)

        assert config_store.load().default_provider is None

    def test_invalid_json_falls_back_to_defaults(self, config_store):
        config_store.config_path.write_text("{not json")

        assert config_store.load() == RemoteConfig()

    def test_partial_file_fills_defaults(self, config_store):
        config_store.config_path.write_text('{"server_url": "http://other:1234"}')

        config = config_store.load()

        assert config.server_url == "http://other:1234"
        assert config.username == "opencode"

    def test_creates_parent_directory(self, tmp_path):
        store = ConfigStore(config_path=tmp_path / "a" / "b" / "config.json")

        assert store.config_path.parent.is_dir()


class TestDefaults:
    """Test default locations and env overrides."""

    def test_config_path_env(self, monkeypatch, tmp_path):
        monkeypatch.setenv(CONFIG_PATH_ENV, str(tmp_path / "c.json"))

        assert default_config_path() == tmp_path / "c.json"

    def test_projects_dir_env(self, monkeypatch, tmp_path):
        monkeypatch.setenv(PROJECTS_DIR_ENV, str(tmp_path / "projects"))

        assert default_projects_dir() == tmp_path / "projects"

    def test_defaults_without_env(self, monkeypatch):
        monkeypatch.delenv(CONFIG_PATH_ENV, raising=False)
        monkeypatch.delenv(PROJECTS_DIR_ENV, raising=False)

        assert default_config_path().name == "opencode-config.json"
        assert default_projects_dir().name == "projects"

    def test_normalize_server_url(self):
        assert normalize_server_url("http://x:1/") == "http://x:1"
        assert normalize_server_url("http://x:1//") == "http://x:1"
        assert normalize_server_url(" http://x:1 ") == "http://x:1"
