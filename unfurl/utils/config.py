"""
Configuration management for unfurl.
Loads and validates settings from YAML files and environment variables.
"""

import os
from functools import lru_cache
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, ConfigDict, Field

from unfurl.utils.dotenv import load_dotenv_if_present

ENV_PREFIX = "UNFURL_"

# Honoured when browser.executable_path is unset, for container images that
# already ship a system Chromium under this name.
LEGACY_EXECUTABLE_ENV = "PUPPETEER_EXECUTABLE_PATH"


class GeneralConfig(BaseModel):
    """General configuration."""

    project_name: str = "unfurl"
    log_level: str = "INFO"
    json_logs: bool = True


class BrowserConfig(BaseModel):
    """Headless browser configuration."""

    model_config = ConfigDict(extra="forbid")

    executable_path: str | None = None
    headless: bool = True
    extra_launch_args: list[str] = Field(default_factory=list)

    # Recycle the process after this many sessions (applied at zero in-flight)
    recycle_after_requests: int = 20
    idle_shutdown_seconds: float = 300.0

    # Navigation deadlines (seconds)
    navigation_timeout: float = 15.0
    reader_navigation_timeout: float = 45.0

    # Challenge handling (seconds)
    challenge_auto_wait: float = 15.0
    challenge_click_wait: float = 10.0
    challenge_settle_wait: float = 1.0
    press_and_hold_duration: float = 3.0


class ConcurrencyConfig(BaseModel):
    """Render worker pool configuration."""

    model_config = ConfigDict(extra="forbid")

    max_workers: int = 4


class ScraperConfig(BaseModel):
    """Scrape orchestration configuration."""

    model_config = ConfigDict(extra="forbid")

    lightweight_timeout: float = 5.0
    task_timeout: float = 60.0
    reader_task_timeout: float = 90.0

    max_retries: int = 2
    blocked_backoff_step: float = 5.0
    reader_max_retries: int = 1
    reader_blocked_backoff_step: float = 3.0

    # Reader readiness wait (seconds)
    reader_ready_timeout: float = 2.0


class Settings(BaseModel):
    """Main settings container."""

    general: GeneralConfig = Field(default_factory=GeneralConfig)
    browser: BrowserConfig = Field(default_factory=BrowserConfig)
    concurrency: ConcurrencyConfig = Field(default_factory=ConcurrencyConfig)
    scraper: ScraperConfig = Field(default_factory=ScraperConfig)


def _deep_merge(base: dict, override: dict) -> dict:
    """Deep merge two dictionaries.

    Args:
        base: Base dictionary.
        override: Override dictionary.

    Returns:
        Merged dictionary.
    """
    result = base.copy()
    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = _deep_merge(result[key], value)
        else:
            result[key] = value
    return result


def _load_yaml_with_local_override(config_dir: Path, filename: str) -> dict[str, Any]:
    """Load a YAML file, then apply the matching section of local.yaml.

    Example local.yaml:
        settings:
          concurrency:
            max_workers: 2

    Args:
        config_dir: Configuration directory path.
        filename: YAML filename (e.g., "settings.yaml").

    Returns:
        Merged configuration dictionary.
    """
    config: dict[str, Any] = {}

    base_path = config_dir / filename
    if base_path.exists():
        with open(base_path, encoding="utf-8") as f:
            config = yaml.safe_load(f) or {}

    local_path = config_dir / "local.yaml"
    if local_path.exists():
        with open(local_path, encoding="utf-8") as f:
            local_overrides = yaml.safe_load(f) or {}
        section_key = Path(filename).stem
        if section_key in local_overrides:
            config = _deep_merge(config, local_overrides[section_key])

    return config


def _parse_env_value(value: str) -> Any:
    if value.lower() in ("true", "false"):
        return value.lower() == "true"
    try:
        if "." in value:
            return float(value)
        return int(value)
    except ValueError:
        return value


def _apply_env_overrides(config: dict[str, Any]) -> dict[str, Any]:
    """Apply environment variable overrides.

    Environment variables should be prefixed with UNFURL_ and use
    double underscores for nested keys.

    Example:
        UNFURL_GENERAL__LOG_LEVEL=DEBUG

    Args:
        config: Configuration dictionary.

    Returns:
        Configuration with environment overrides.
    """
    for key, value in os.environ.items():
        if not key.startswith(ENV_PREFIX) or key == f"{ENV_PREFIX}CONFIG_DIR":
            continue

        key_path = key[len(ENV_PREFIX) :].lower().split("__")
        if len(key_path) < 2:
            continue

        current = config
        for part in key_path[:-1]:
            if not isinstance(current.get(part), dict):
                current[part] = {}
            current = current[part]

        final_key = key_path[-1]
        if final_key == "executable_path":
            current[final_key] = value
        else:
            current[final_key] = _parse_env_value(value)

    browser = config.setdefault("browser", {})
    if not browser.get("executable_path") and os.environ.get(LEGACY_EXECUTABLE_ENV):
        browser["executable_path"] = os.environ[LEGACY_EXECUTABLE_ENV]

    return config


def load_settings(config_dir: Path | None = None) -> Settings:
    """Build settings from defaults, YAML files and environment variables.

    Args:
        config_dir: Configuration directory. Defaults to UNFURL_CONFIG_DIR or
            ``config`` under the project root.

    Returns:
        Settings instance.
    """
    if config_dir is None:
        config_dir = Path(
            os.environ.get(f"{ENV_PREFIX}CONFIG_DIR", get_project_root() / "config")
        )

    config = _load_yaml_with_local_override(config_dir, "settings.yaml")
    config = _apply_env_overrides(config)
    return Settings(**config)


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Get application settings.

    Settings are loaded from:
    1. Default values
    2. YAML configuration files
    3. .env and environment variables (highest priority)

    Returns:
        Settings instance.
    """
    load_dotenv_if_present()
    return load_settings()


def get_project_root() -> Path:
    """Get the project root directory.

    Returns:
        Project root path.
    """
    # Assuming this file is at unfurl/utils/config.py
    return Path(__file__).parent.parent.parent
