"""Configuration management for Checkpoint QA.

Loads configuration from:
1. config.toml (defaults)
2. Environment variables (overrides)
"""

import os
import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

if sys.version_info >= (3, 11):
    import tomllib
else:
    import tomli as tomllib

from dotenv import load_dotenv

# Load .env file if present
load_dotenv()

DEFAULT_USER_ROLES = ["Patient", "Provider", "Front Desk", "Admin", "Billing Staff"]

DEFAULT_QUICK_MODE_PATTERNS = [
    r"typo",
    r"spelling",
    r"copy change",
    r"text change",
    r"styling",
    r"css",
    r"color",
    r"font",
    r"spacing",
    r"margin",
    r"padding",
]


@dataclass
class StorageConfig:
    """Session store configuration."""

    backend: str = "file"  # "file" | "memory"
    directory: str = ""  # default: ~/.checkpoint-qa
    storage_key: str = "testing-framework-sessions"

    def resolve_directory(self) -> Path:
        if self.directory:
            return Path(self.directory).expanduser()
        return Path.home() / ".checkpoint-qa"


@dataclass
class PreFlightConfig:
    """Pre-flight interview configuration."""

    # Options offered by the "who will use this feature" question
    user_roles: list[str] = field(default_factory=lambda: list(DEFAULT_USER_ROLES))

    # Case-insensitive regexes for low-risk changes, added to the defaults
    quick_mode_patterns: list[str] = field(default_factory=list)

    def all_quick_mode_patterns(self) -> list[str]:
        return DEFAULT_QUICK_MODE_PATTERNS + [
            p for p in self.quick_mode_patterns if p not in DEFAULT_QUICK_MODE_PATTERNS
        ]


@dataclass
class SessionConfig:
    """Defaults stamped onto new sessions."""

    environment: str = "dev"
    version: str = "1.0.0"
    current_user: str = ""  # recorded as preparer of hand-offs


@dataclass
class PipelineConfig:
    """Runtime behaviour."""

    log_level: str = "INFO"
    autosave: bool = True  # persist after every operator action


@dataclass
class IntegrationsConfig:
    """Issue tracker integration configuration.

    GitHub settings are also configurable via env: GITHUB_TOKEN or GH_TOKEN,
    GITHUB_REPO.
    """

    github_token: str = ""
    github_repo: str = ""  # "owner/repo"


@dataclass
class Config:
    """Main configuration container."""

    storage: StorageConfig = field(default_factory=StorageConfig)
    pre_flight: PreFlightConfig = field(default_factory=PreFlightConfig)
    session: SessionConfig = field(default_factory=SessionConfig)
    pipeline: PipelineConfig = field(default_factory=PipelineConfig)
    integrations: IntegrationsConfig = field(default_factory=IntegrationsConfig)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Config":
        """Create Config from dictionary."""
        return cls(
            storage=StorageConfig(**data.get("storage", {})),
            pre_flight=PreFlightConfig(**data.get("pre_flight", {})),
            session=SessionConfig(**data.get("session", {})),
            pipeline=PipelineConfig(**data.get("pipeline", {})),
            integrations=IntegrationsConfig(**data.get("integrations", {})),
        )


def find_config_file() -> Path | None:
    """Find config.toml in current or parent directories.

    Returns:
        Path to config.toml or None if not found.
    """
    current = Path.cwd()

    for directory in [current, *current.parents]:
        config_path = directory / "config.toml"
        if config_path.exists():
            return config_path

    return None


def load_config(config_path: Path | str | None = None) -> Config:
    """Load configuration from file and environment.

    Args:
        config_path: Optional explicit path to config.toml

    Returns:
        Config object with merged settings.
    """
    # Start with defaults
    config_data: dict[str, Any] = {}

    # Load from file if available
    if config_path is None:
        config_path = find_config_file()

    if config_path is not None:
        path = Path(config_path)
        if path.exists():
            with open(path, "rb") as f:
                config_data = tomllib.load(f)

    # Apply environment variable overrides
    env_overrides = {
        "storage": {
            "backend": os.getenv("CQA_STORAGE_BACKEND"),
            "directory": os.getenv("CQA_STORAGE_DIR"),
            "storage_key": os.getenv("CQA_STORAGE_KEY"),
        },
        "session": {
            "environment": os.getenv("CQA_ENVIRONMENT"),
            "current_user": os.getenv("CQA_USER"),
        },
        "pipeline": {
            "log_level": os.getenv("LOG_LEVEL"),
            "autosave": _bool_or_none(os.getenv("CQA_AUTOSAVE")),
        },
        "integrations": {
            "github_token": os.getenv("GITHUB_TOKEN") or os.getenv("GH_TOKEN"),
            "github_repo": os.getenv("GITHUB_REPO"),
        },
    }

    # Merge env overrides (only non-None values)
    for section, values in env_overrides.items():
        if section not in config_data:
            config_data[section] = {}
        for key, value in values.items():
            if value is not None:
                config_data[section][key] = value

    return Config.from_dict(config_data)


def _bool_or_none(value: str | None) -> bool | None:
    """Convert an env string to bool, or return None."""
    if value is None:
        return None
    return value.strip().lower() in ("1", "true", "yes", "on")


# Global config instance (lazy loaded)
_config: Config | None = None


def get_config() -> Config:
    """Get the global configuration instance.

    Returns:
        Config object (loaded once, cached).
    """
    global _config
    if _config is None:
        _config = load_config()
    return _config


def reload_config() -> Config:
    """Force reload of configuration.

    Returns:
        Fresh Config object.
    """
    global _config
    _config = load_config()
    return _config
