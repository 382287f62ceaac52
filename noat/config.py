"""Configuration loader for noat.

Finds a ``noat.config.*`` file next to the posts repository, loads it with
the matching ConfigSource, then fills gaps from the environment. All env
vars use the NOAT_ prefix. The publish engine only ever sees the resolved
NoatConfig and the flat env mapping built here.
"""

from __future__ import annotations

import importlib.util
import json
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml
from dotenv import dotenv_values

from noat.errors import ConfigError


ENV_PREFIX = "NOAT_"

DEFAULT_PDS_URL = "https://bsky.social"
DEFAULT_POSTS_DIR = "posts"
DEFAULT_PASSWORD_ENV_VAR = "NOAT_BLUESKY_APP_PASSWORD"
DEFAULT_POST_TEXT_FIELD = "post"
DEFAULT_IMAGE_ALT_FIELD = "imageAlt"

CONFIG_FILENAMES = (
    "noat.config.yaml",
    "noat.config.yml",
    "noat.config.json",
    "noat.config.py",
)


@dataclass(frozen=True)
class NoatConfig:
    """Resolved configuration consumed by the publish engine."""
    handle: str
    base_url: str
    posts_dir: Path
    pds_url: str = DEFAULT_PDS_URL
    password_env_var: str = DEFAULT_PASSWORD_ENV_VAR
    post_text_field: str = DEFAULT_POST_TEXT_FIELD
    # Empty selects the first-body-image strategy.
    image_field: str = ""
    image_alt_field: str = DEFAULT_IMAGE_ALT_FIELD

    def __post_init__(self) -> None:
        if not self.handle.strip():
            raise ConfigError("Missing Bluesky handle.")
        if not self.base_url.strip():
            raise ConfigError("Missing baseUrl.")


@dataclass
class LoadedConfig:
    path: Path | None
    data: dict[str, Any] = field(default_factory=dict)

    @property
    def directory(self) -> Path | None:
        return self.path.parent if self.path else None


class ConfigSource:
    """Strategy for turning one config file format into a mapping."""
    suffixes: tuple[str, ...] = ()

    def handles(self, path: Path) -> bool:
        return path.suffix.lower() in self.suffixes

    def read(self, path: Path) -> Any:
        raise NotImplementedError

    def load(self, path: Path) -> dict[str, Any]:
        data = self.read(path)
        if not isinstance(data, dict):
            raise ConfigError(f'Config file "{path}" must export an object')
        return data


class YamlConfigSource(ConfigSource):
    suffixes = (".yaml", ".yml")

    def read(self, path: Path) -> Any:
        try:
            return yaml.safe_load(path.read_text(encoding="utf-8"))
        except yaml.YAMLError as exc:
            raise ConfigError(f'Could not parse config file "{path}": {exc}') from exc


class JsonConfigSource(ConfigSource):
    suffixes = (".json",)

    def read(self, path: Path) -> Any:
        try:
            return json.loads(path.read_text(encoding="utf-8"))
        except json.JSONDecodeError as exc:
            raise ConfigError(f'Could not parse config file "{path}": {exc}') from exc


class PythonConfigSource(ConfigSource):
    """Executes a config script and reads its module-level ``config`` object."""
    suffixes = (".py",)

    def read(self, path: Path) -> Any:
        spec = importlib.util.spec_from_file_location("noat_user_config", path)
        if spec is None or spec.loader is None:
            raise ConfigError(f'Cannot load config script "{path}"')
        module = importlib.util.module_from_spec(spec)
        spec.loader.exec_module(module)
        return getattr(module, "config", None)


CONFIG_SOURCES: tuple[ConfigSource, ...] = (
    YamlConfigSource(),
    JsonConfigSource(),
    PythonConfigSource(),
)


def source_for(path: Path) -> ConfigSource:
    for source in CONFIG_SOURCES:
        if source.handles(path):
            return source
    raise ConfigError(f'Unsupported config file type "{path.suffix}" for "{path}"')


def find_config_path(cwd: Path) -> Path | None:
    for name in CONFIG_FILENAMES:
        candidate = cwd / name
        if candidate.exists():
            return candidate
    return None


def load_config_file(cwd: Path, explicit_path: Path | None = None) -> LoadedConfig:
    """Load the explicit config path, or the first ``noat.config.*`` in ``cwd``."""
    if explicit_path is not None:
        path = (cwd / explicit_path).resolve()
        if not path.exists():
            raise ConfigError(f'Config file "{path}" does not exist')
    else:
        path = find_config_path(cwd)

    if path is None:
        return LoadedConfig(path=None)
    return LoadedConfig(path=path, data=source_for(path).load(path))


def read_env(cwd: Path, environ: dict[str, str] | None = None) -> dict[str, str]:
    """``.env`` values in ``cwd`` overlaid by the process environment."""
    env: dict[str, str] = {}
    env_path = cwd / ".env"
    if env_path.exists():
        env.update({k: v for k, v in dotenv_values(env_path).items() if v is not None})
    env.update(os.environ if environ is None else environ)
    return env


def normalize_config(
    config_dir: Path,
    env: dict[str, str],
    raw: dict[str, Any],
    overrides: dict[str, str | None] | None = None,
    cwd: Path | None = None,
) -> NoatConfig:
    """Resolve a raw config mapping into a NoatConfig.

    Precedence per field: explicit overrides, the nested ``bluesky:`` block,
    top-level keys, NOAT_* env vars, then defaults. Handle and baseUrl have
    no default. A configured ``posts`` path is relative to ``config_dir``;
    the ``posts`` override is relative to ``cwd``, the directory it was
    given in.

    Raises:
        ConfigError: If the handle or base URL cannot be resolved.
    """
    overrides = overrides or {}
    bluesky = raw.get("bluesky") if isinstance(raw.get("bluesky"), dict) else {}

    handle = _first(
        overrides.get("handle"),
        bluesky.get("handle"),
        raw.get("handle"),
        _env(env, "BLUESKY_HANDLE"),
    )
    if handle is None:
        raise ConfigError(
            "Missing Bluesky handle. Configure \"handle\" in noat.config.* "
            f"or {ENV_PREFIX}BLUESKY_HANDLE in env."
        )

    base_url = _first(
        overrides.get("base_url"),
        raw.get("baseUrl"),
        _env(env, "BASE_URL"),
    )
    if base_url is None:
        raise ConfigError(
            "Missing baseUrl. Configure \"baseUrl\" in noat.config.* "
            f"or {ENV_PREFIX}BASE_URL in env."
        )

    posts_override = _first(overrides.get("posts"))
    if posts_override is not None:
        posts_dir = ((cwd or config_dir) / posts_override).resolve()
    else:
        posts = _first(raw.get("posts"), raw.get("postsDir")) or DEFAULT_POSTS_DIR
        posts_dir = (config_dir / posts).resolve()

    return NoatConfig(
        handle=handle,
        base_url=base_url,
        posts_dir=posts_dir,
        pds_url=_first(
            bluesky.get("pdsUrl"),
            raw.get("pdsUrl"),
            _env(env, "BLUESKY_PDS_URL"),
        ) or DEFAULT_PDS_URL,
        password_env_var=_first(
            bluesky.get("passwordEnvVar"),
            raw.get("passwordEnvVar"),
        ) or DEFAULT_PASSWORD_ENV_VAR,
        post_text_field=_first(raw.get("postTextField")) or DEFAULT_POST_TEXT_FIELD,
        image_field=_first(raw.get("imageField")) or "",
        image_alt_field=_first(raw.get("imageAltField")) or DEFAULT_IMAGE_ALT_FIELD,
    )


def load_config(
    cwd: Path,
    env: dict[str, str],
    config_path: Path | None = None,
    overrides: dict[str, str | None] | None = None,
) -> tuple[NoatConfig, Path | None]:
    """Load and resolve configuration; returns it with the file it came from."""
    loaded = load_config_file(cwd, config_path)
    config = normalize_config(loaded.directory or cwd, env, loaded.data, overrides, cwd=cwd)
    return config, loaded.path


def resolve_string(value: Any) -> str | None:
    if not isinstance(value, str):
        return None
    trimmed = value.strip()
    return trimmed or None


def _first(*values: Any) -> str | None:
    for value in values:
        resolved = resolve_string(value)
        if resolved is not None:
            return resolved
    return None


def _env(env: dict[str, str], suffix: str) -> str | None:
    return resolve_string(env.get(f"{ENV_PREFIX}{suffix}"))
