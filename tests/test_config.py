"""Tests for the config module."""

import json
from pathlib import Path

import pytest

from noat.config import (
    DEFAULT_PASSWORD_ENV_VAR,
    DEFAULT_PDS_URL,
    NoatConfig,
    load_config,
    load_config_file,
    normalize_config,
    read_env,
    source_for,
)
from noat.errors import ConfigError

FIXTURES = Path(__file__).parent / "fixtures"


class TestConfigFile:
    def test_load_from_yaml(self):
        cfg, path = load_config(FIXTURES, {}, config_path=Path("sample_config.yaml"))
        assert path == (FIXTURES / "sample_config.yaml").resolve()
        assert cfg.handle == "test.bsky.social"
        assert cfg.base_url == "https://blog.test"
        assert cfg.posts_dir == (FIXTURES / "content" / "posts").resolve()
        assert cfg.pds_url == "https://pds.test"
        assert cfg.password_env_var == "BLOG_BSKY_PASSWORD"
        assert cfg.post_text_field == "summary"
        assert cfg.image_field == "bluesky.image"
        assert cfg.image_alt_field == "imageAlt"

    def test_discovers_json(self, tmp_path):
        (tmp_path / "noat.config.json").write_text(json.dumps({
            "handle": "json.bsky.social",
            "baseUrl": "https://json.test",
        }))
        cfg, path = load_config(tmp_path, {})
        assert path == tmp_path / "noat.config.json"
        assert cfg.handle == "json.bsky.social"
        assert cfg.posts_dir == (tmp_path / "posts").resolve()

    def test_discovers_python(self, tmp_path):
        (tmp_path / "noat.config.py").write_text(
            'config = {"handle": "py.bsky.social", "baseUrl": "https://py.test", "posts": "blog"}\n'
        )
        cfg, _ = load_config(tmp_path, {})
        assert cfg.handle == "py.bsky.social"
        assert cfg.posts_dir == (tmp_path / "blog").resolve()

    def test_yaml_preferred_over_json(self, tmp_path):
        (tmp_path / "noat.config.yaml").write_text("handle: yaml.bsky.social\nbaseUrl: https://y.test\n")
        (tmp_path / "noat.config.json").write_text('{"handle": "json.bsky.social", "baseUrl": "https://j.test"}')
        cfg, _ = load_config(tmp_path, {})
        assert cfg.handle == "yaml.bsky.social"

    def test_posts_relative_to_config_dir(self, tmp_path):
        site = tmp_path / "site"
        site.mkdir()
        (site / "blog.yaml").write_text("handle: a.bsky.social\nbaseUrl: https://a.test\nposts: notes\n")
        cfg, _ = load_config(tmp_path, {}, config_path=Path("site/blog.yaml"))
        assert cfg.posts_dir == (site / "notes").resolve()

    def test_no_config_file(self, tmp_path):
        loaded = load_config_file(tmp_path)
        assert loaded.path is None
        assert loaded.data == {}
        assert loaded.directory is None

    def test_missing_explicit_file(self, tmp_path):
        with pytest.raises(ConfigError, match="does not exist"):
            load_config_file(tmp_path, Path("nope.yaml"))

    def test_config_must_be_mapping(self, tmp_path):
        (tmp_path / "noat.config.yaml").write_text("- just\n- a list\n")
        with pytest.raises(ConfigError, match="must export an object"):
            load_config_file(tmp_path)

    def test_malformed_json(self, tmp_path):
        (tmp_path / "noat.config.json").write_text("{not json")
        with pytest.raises(ConfigError, match="Could not parse"):
            load_config_file(tmp_path)

    def test_unsupported_extension(self):
        with pytest.raises(ConfigError, match="Unsupported config file type"):
            source_for(Path("noat.config.toml"))


class TestNormalize:
    def test_env_fallbacks_and_defaults(self, tmp_path):
        env = {"NOAT_BLUESKY_HANDLE": "env.bsky.social", "NOAT_BASE_URL": "https://env.test"}
        cfg = normalize_config(tmp_path, env, {})
        assert cfg.handle == "env.bsky.social"
        assert cfg.base_url == "https://env.test"
        assert cfg.pds_url == DEFAULT_PDS_URL
        assert cfg.password_env_var == DEFAULT_PASSWORD_ENV_VAR
        assert cfg.post_text_field == "post"
        assert cfg.image_field == ""

    def test_pds_url_from_env(self, tmp_path):
        env = {"NOAT_BLUESKY_PDS_URL": "https://pds.env"}
        cfg = normalize_config(tmp_path, env, {"handle": "a", "baseUrl": "https://a.test"})
        assert cfg.pds_url == "https://pds.env"

    def test_nested_block_beats_top_level(self, tmp_path):
        raw = {
            "handle": "top.bsky.social",
            "bluesky": {"handle": "nested.bsky.social"},
            "baseUrl": "https://a.test",
        }
        assert normalize_config(tmp_path, {}, raw).handle == "nested.bsky.social"

    def test_file_beats_env(self, tmp_path):
        env = {"NOAT_BLUESKY_HANDLE": "env.bsky.social", "NOAT_BASE_URL": "https://env.test"}
        raw = {"handle": "file.bsky.social", "baseUrl": "https://file.test"}
        cfg = normalize_config(tmp_path, env, raw)
        assert cfg.handle == "file.bsky.social"
        assert cfg.base_url == "https://file.test"

    def test_overrides_win(self, tmp_path):
        raw = {"handle": "file.bsky.social", "baseUrl": "https://file.test", "posts": "posts"}
        cfg = normalize_config(tmp_path, {}, raw, overrides={
            "handle": "cli.bsky.social", "base_url": "https://cli.test", "posts": "drafts",
        })
        assert cfg.handle == "cli.bsky.social"
        assert cfg.base_url == "https://cli.test"
        assert cfg.posts_dir == (tmp_path / "drafts").resolve()

    def test_posts_override_relative_to_cwd(self, tmp_path):
        site = tmp_path / "site"
        site.mkdir()
        (site / "blog.yaml").write_text("handle: a.bsky.social\nbaseUrl: https://a.test\nposts: notes\n")
        cfg, _ = load_config(
            tmp_path, {}, config_path=Path("site/blog.yaml"), overrides={"posts": "drafts"},
        )
        assert cfg.posts_dir == (tmp_path / "drafts").resolve()

    def test_blank_values_ignored(self, tmp_path):
        raw = {"handle": "   ", "baseUrl": "https://a.test"}
        env = {"NOAT_BLUESKY_HANDLE": "env.bsky.social"}
        assert normalize_config(tmp_path, env, raw, overrides={"handle": None}).handle == "env.bsky.social"

    def test_missing_handle(self, tmp_path):
        with pytest.raises(ConfigError, match="Missing Bluesky handle"):
            normalize_config(tmp_path, {}, {"baseUrl": "https://a.test"})

    def test_missing_base_url(self, tmp_path):
        with pytest.raises(ConfigError, match="Missing baseUrl"):
            normalize_config(tmp_path, {}, {"handle": "a.bsky.social"})

    def test_dataclass_rejects_blank_handle(self):
        with pytest.raises(ConfigError):
            NoatConfig(handle=" ", base_url="https://a.test", posts_dir=Path("posts"))


class TestReadEnv:
    def test_dotenv_file(self, tmp_path):
        (tmp_path / ".env").write_text("NOAT_BLUESKY_APP_PASSWORD=from-file\nNOAT_BASE_URL=https://dot.test\n")
        env = read_env(tmp_path, environ={})
        assert env["NOAT_BLUESKY_APP_PASSWORD"] == "from-file"
        assert env["NOAT_BASE_URL"] == "https://dot.test"

    def test_process_env_wins(self, tmp_path):
        (tmp_path / ".env").write_text("NOAT_BLUESKY_APP_PASSWORD=from-file\n")
        env = read_env(tmp_path, environ={"NOAT_BLUESKY_APP_PASSWORD": "from-process"})
        assert env["NOAT_BLUESKY_APP_PASSWORD"] == "from-process"

    def test_no_dotenv_file(self, tmp_path, monkeypatch):
        monkeypatch.setenv("NOAT_BLUESKY_HANDLE", "shell.bsky.social")
        env = read_env(tmp_path)
        assert env["NOAT_BLUESKY_HANDLE"] == "shell.bsky.social"
