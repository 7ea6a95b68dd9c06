"""
Configuration module for SheLLM.

This module contains configuration classes and the host inventory.
"""

from .agent_config import AgentConfig, LLMConfig, ReActConfig, InventoryConfig, SSHConfig, ToolsConfig, LoggingConfig
from .inventory import Host, Secret, Inventory, InventoryValidationError, load_hosts, load_secrets

__all__ = [
    "AgentConfig",
    "LLMConfig",
    "ReActConfig",
    "InventoryConfig",
    "SSHConfig",
    "ToolsConfig",
    "LoggingConfig",
    "Host",
    "Secret",
    "Inventory",
    "InventoryValidationError",
    "load_hosts",
    "load_secrets",
]
