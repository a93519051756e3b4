"""Configuration manager for loading and merging configs."""

from pathlib import Path
from typing import Any

import toml

from teamorch.config.presets import create_team_structure
from teamorch.config.schema import (
    CommunicationModel,
    OrchestrationConfig,
    OrchestrationStrategy,
    TeamOrchConfig,
    get_config_file,
)

PROJECT_CONFIG_NAME = ".teamorch.toml"


class ConfigManager:
    """Manages configuration loading, merging, and access."""

    _config: TeamOrchConfig | None = None

    @classmethod
    def get_config(cls) -> TeamOrchConfig:
        """Get the current configuration, loading if necessary."""
        if cls._config is None:
            cls._config = cls.load_config()
        return cls._config

    @classmethod
    def load_config(cls) -> TeamOrchConfig:
        """Load configuration from all sources.

        Priority (highest to lowest):
        1. Project-level config (.teamorch.toml in cwd or parents)
        2. User config (~/.config/teamorch/config.toml)
        3. Default config
        """
        config_dict: dict[str, Any] = {}

        user_config_file = get_config_file()
        if user_config_file.exists():
            user_config = toml.load(user_config_file)
            config_dict = cls._deep_merge(config_dict, user_config)

        project_config_file = cls._find_project_config()
        if project_config_file and project_config_file.exists():
            project_config = toml.load(project_config_file)
            config_dict = cls._deep_merge(config_dict, project_config)

        if config_dict:
            return TeamOrchConfig.model_validate(config_dict)
        return TeamOrchConfig.default()

    @classmethod
    def reload(cls) -> TeamOrchConfig:
        """Force reload configuration from disk."""
        cls._config = cls.load_config()
        return cls._config

    @classmethod
    def _find_project_config(cls) -> Path | None:
        """Find project-level config file by searching up from cwd."""
        cwd = Path.cwd()
        for parent in [cwd, *cwd.parents]:
            config_file = parent / PROJECT_CONFIG_NAME
            if config_file.exists():
                return config_file
            # Stop at home directory
            if parent == Path.home():
                break
        return None

    @classmethod
    def _deep_merge(
        cls, base: dict[str, Any], override: dict[str, Any]
    ) -> dict[str, Any]:
        """Deep merge two dictionaries, with override taking precedence."""
        result = base.copy()
        for key, value in override.items():
            if key in result and isinstance(result[key], dict) and isinstance(value, dict):
                result[key] = cls._deep_merge(result[key], value)
            else:
                result[key] = value
        return result

    @classmethod
    def save_user_config(cls, config: TeamOrchConfig) -> None:
        """Save configuration to user config file."""
        config_file = get_config_file()
        config_dict = config.model_dump(by_alias=True, exclude_none=True, mode="json")
        with open(config_file, "w") as f:
            toml.dump(config_dict, f)

    @classmethod
    def build_orchestration_config(
        cls,
        project_name: str,
        size: str | None = None,
        strategy: OrchestrationStrategy | str | None = None,
        communication_model: CommunicationModel | str | None = None,
        overrides: dict[str, Any] | None = None,
    ) -> OrchestrationConfig:
        """Assemble an OrchestrationConfig from settings and a team preset.

        Args:
            project_name: Name of the orchestrated project.
            size: Team preset size; ignored when the settings declare a team.
            strategy: Deployment strategy override.
            communication_model: Topology override.
            overrides: Nested values merged over the settings, e.g.
                {"git_discipline": {"enabled": False}}.
        """
        settings = cls.get_config()

        team = settings.team or create_team_structure(size or settings.deploy.team_size, project_name)

        config_dict: dict[str, Any] = {
            "project_name": project_name,
            "strategy": strategy or settings.deploy.strategy,
            "communication_model": communication_model or settings.deploy.communication_model,
            "git_discipline": settings.git_discipline.model_dump(),
            "self_scheduling": settings.self_scheduling.model_dump(),
            "tmux": settings.tmux.model_dump(),
            "team_structure": team.model_dump(),
            "state_dir": settings.deploy.state_dir,
        }
        if overrides:
            config_dict = cls._deep_merge(config_dict, overrides)

        return OrchestrationConfig.model_validate(config_dict)

    @classmethod
    def get_value(cls, key_path: str, default: Any = None) -> Any:
        """Get a configuration value by dot-separated path."""
        config = cls.get_config()
        config_dict = config.model_dump(by_alias=True)

        keys = key_path.split(".")
        current = config_dict
        for key in keys:
            if isinstance(current, dict) and key in current:
                current = current[key]
            else:
                return default
        return current
