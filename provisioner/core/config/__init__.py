"""Configuration — YAML settings validated with Pydantic."""

from provisioner.core.config.loader import ProvisionerConfig, find_config_file, load_config

__all__ = ["ProvisionerConfig", "find_config_file", "load_config"]
