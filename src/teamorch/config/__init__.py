"""Configuration management."""

from teamorch.config.manager import ConfigManager
from teamorch.config.schema import OrchestrationConfig, TeamOrchConfig

__all__ = ["ConfigManager", "OrchestrationConfig", "TeamOrchConfig"]
