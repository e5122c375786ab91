"""Configuration loading and validation for the theme builder."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Dict, List, Optional

import yaml
from pydantic import BaseModel, Field, ValidationError, validator

from .models import BuildError

SLUG_PLACEHOLDER = "wprig"
NAME_PLACEHOLDER = "WP Rig"


class ThemeInfo(BaseModel):
    """Identity of the theme being built."""

    slug: str
    name: str
    author: str
    bug_report: Optional[str] = None

    @validator("slug")
    def slug_is_identifier(cls, value: str) -> str:
        value = value.strip()
        if not value or any(char.isspace() for char in value):
            raise ValueError("Theme slug must be a non-empty string without whitespace")
        return value

    @validator("name")
    def name_not_empty(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("Theme name cannot be empty")
        return value


class DebugFlags(BaseModel):
    """Skip minification per asset type while debugging."""

    styles: bool = False
    scripts: bool = False


class LiveReloadConfig(BaseModel):
    enabled: bool = False
    proxy_url: str = "localwprig.test"
    port: int = 8181

    @validator("port")
    def port_in_range(cls, value: int) -> int:
        if not 0 < value < 65536:
            raise ValueError("Live reload port must be between 1 and 65535")
        return value


class ExportConfig(BaseModel):
    compress: bool = True


class ToolsConfig(BaseModel):
    """Command lines for the external linters and transpiler.

    Relative executables are resolved against the theme root. A missing
    executable disables its stage.
    """

    phpcs: List[str] = Field(
        default_factory=lambda: [
            "vendor/bin/phpcs",
            "--standard=WordPress",
            "--warning-severity=0",
            "--report=emacs",
            "--stdin-path={path}",
            "-",
        ]
    )
    eslint: List[str] = Field(
        default_factory=lambda: [
            "node_modules/.bin/eslint",
            "--format=unix",
            "--stdin",
            "--stdin-filename={path}",
        ]
    )
    babel: List[str] = Field(
        default_factory=lambda: ["node_modules/.bin/babel", "--filename={path}"]
    )


class ThemeConfig(BaseModel):
    """Top-level theme configuration."""

    theme: ThemeInfo
    debug: DebugFlags = Field(default_factory=DebugFlags)
    export: ExportConfig = Field(default_factory=ExportConfig)
    live_reload: LiveReloadConfig = Field(default_factory=LiveReloadConfig)
    browser_targets: List[str] = Field(
        default_factory=lambda: ["> 1%", "last 2 versions", "ie >= 11"]
    )
    tools: ToolsConfig = Field(default_factory=ToolsConfig)

    @property
    def slug(self) -> str:
        return self.theme.slug

    @property
    def name(self) -> str:
        return self.theme.name


class CssVariables(BaseModel):
    """Custom property values and custom media definitions."""

    variables: Dict[str, str] = Field(default_factory=dict)
    queries: Dict[str, str] = Field(default_factory=dict)

    @validator("variables", "queries")
    def normalize_names(cls, value: Dict[str, str]) -> Dict[str, str]:
        normalized: Dict[str, str] = {}
        for key, item in value.items():
            name = key if key.startswith("--") else f"--{key}"
            normalized[name] = str(item)
        return normalized


class ConfigError(BuildError):
    """Raised when a configuration file is invalid."""


def load_config(path: Path) -> ThemeConfig:
    """Load theme configuration from a YAML file."""

    try:
        data = yaml.safe_load(path.read_text())
    except FileNotFoundError as exc:
        raise ConfigError(f"Configuration file not found: {path}") from exc
    except yaml.YAMLError as exc:
        raise ConfigError(f"Failed to parse YAML: {exc}") from exc

    if not isinstance(data, dict):
        raise ConfigError(f"Configuration file {path} must contain a mapping")

    try:
        return ThemeConfig.parse_obj(data)
    except ValidationError as exc:
        raise ConfigError(f"Invalid configuration: {exc}") from exc


def load_css_vars(path: Path) -> CssVariables:
    """Load custom property and custom media definitions from JSON."""

    try:
        data = json.loads(path.read_text())
    except FileNotFoundError as exc:
        raise ConfigError(f"CSS variables file not found: {path}") from exc
    except json.JSONDecodeError as exc:
        raise ConfigError(f"Failed to parse {path.name}: {exc}") from exc

    if not isinstance(data, dict):
        raise ConfigError(f"CSS variables file {path} must contain an object")

    try:
        return CssVariables.parse_obj(data)
    except ValidationError as exc:
        raise ConfigError(f"Invalid CSS variables: {exc}") from exc


def save_config(config: ThemeConfig, path: Path) -> None:
    """Persist configuration to disk as YAML."""

    rendered = config.dict()
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(yaml.safe_dump(rendered, sort_keys=False))


def save_css_vars(css_vars: CssVariables, path: Path) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(css_vars.dict(), indent=2) + "\n")


def default_config() -> ThemeConfig:
    return ThemeConfig(
        theme=ThemeInfo(slug=SLUG_PLACEHOLDER, name=NAME_PLACEHOLDER, author="Theme Author"),
    )


class ConfigProvider:
    """Hands out freshly loaded configuration.

    Nothing is memoized: every call re-reads the files so edits made while a
    watch session is running are seen by the next task.
    """

    def __init__(self, config_path: Path, css_vars_path: Path) -> None:
        self.config_path = config_path
        self.css_vars_path = css_vars_path

    def load(self) -> ThemeConfig:
        return load_config(self.config_path)

    def load_css_vars(self) -> CssVariables:
        return load_css_vars(self.css_vars_path)


__all__ = [
    "ThemeConfig",
    "ThemeInfo",
    "CssVariables",
    "ConfigError",
    "ConfigProvider",
    "load_config",
    "load_css_vars",
    "save_config",
    "save_css_vars",
    "default_config",
    "SLUG_PLACEHOLDER",
    "NAME_PLACEHOLDER",
]
