"""
Configuration loader — reads provisioner.yml into a typed model.

Search order:
    explicit path (--config)  >  $PROVISIONER_CONFIG  >  ./provisioner.yml
    >  /etc/provisioner/config.yml

A missing file means defaults. A file that exists but is unreadable,
is not valid YAML, or does not match the schema raises ConfigError.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from provisioner.core.data.recipes import NODE_EXPORTER_VERSION, PROMETHEUS_VERSION
from provisioner.core.errors import ConfigError
from provisioner.core.planning.builder import PlanOptions, resolve_product
from provisioner.core.reliability.retry import RetryPolicy

logger = logging.getLogger(__name__)

CONFIG_ENV = "PROVISIONER_CONFIG"
LOCAL_CONFIG_FILE = "provisioner.yml"
SYSTEM_CONFIG_FILE = Path("/etc/provisioner/config.yml")
DEFAULT_STATE_DIR = "/var/lib/provisioner"


class _Section(BaseModel):
    model_config = ConfigDict(extra="forbid")


class RetryConfig(_Section):
    max_attempts: int = Field(default=3, ge=1, le=10)
    backoff_seconds: float = Field(default=2.0, ge=0)


class DockerConfig(_Section):
    group_user: str | None = None
    smoke_test: bool = False


class GrafanaStackConfig(_Section):
    prometheus_version: str = PROMETHEUS_VERSION
    node_exporter_version: str = NODE_EXPORTER_VERSION


class ProvisionerConfig(_Section):
    """Validated provisioner settings."""

    retry: RetryConfig = Field(default_factory=RetryConfig)
    network_timeout: float = Field(default=300, gt=0)
    state_dir: str = DEFAULT_STATE_DIR
    firewall: bool = False
    strict_verification: bool = False
    docker: DockerConfig = Field(default_factory=DockerConfig)
    grafana_stack: GrafanaStackConfig = Field(default_factory=GrafanaStackConfig)

    source: str | None = Field(default=None, exclude=True)

    def retry_policy(self) -> RetryPolicy:
        return RetryPolicy(
            max_attempts=self.retry.max_attempts,
            backoff=self.retry.backoff_seconds,
        )

    def plan_options(self, product: str) -> PlanOptions:
        """PlanOptions for ``product``; product sections only apply to their product."""
        name = resolve_product(product)
        options = {
            "firewall": self.firewall,
            "strict_verification": self.strict_verification,
        }
        if name == "docker":
            options.update(group_user=self.docker.group_user, smoke_test=self.docker.smoke_test)
        if name == "grafana-stack":
            options.update(
                prometheus_version=self.grafana_stack.prometheus_version,
                node_exporter_version=self.grafana_stack.node_exporter_version,
            )
        return PlanOptions(**options)


def find_config_file(explicit: Path | None = None) -> Path | None:
    """Locate the config file following the search order.

    An explicit path or $PROVISIONER_CONFIG is returned even if it does
    not exist, so ``load_config`` can report it.
    """
    if explicit is not None:
        return explicit
    env_path = os.environ.get(CONFIG_ENV)
    if env_path:
        return Path(env_path)
    for candidate in (Path.cwd() / LOCAL_CONFIG_FILE, SYSTEM_CONFIG_FILE):
        if candidate.is_file():
            return candidate
    return None


def load_config(path: Path | None = None) -> ProvisionerConfig:
    """Load and validate configuration.

    Args:
        path: Explicit config path. If None, searches the default locations.

    Returns:
        Validated ProvisionerConfig (defaults when no file is found).

    Raises:
        ConfigError: If a named file is missing or any file is invalid.
    """
    path = find_config_file(path)
    if path is None:
        logger.debug("No config file found, using defaults")
        return ProvisionerConfig()

    if not path.is_file():
        raise ConfigError(f"Config file not found: {path}")

    logger.debug("Loading config from %s", path)

    try:
        raw = path.read_text(encoding="utf-8")
    except OSError as e:
        raise ConfigError(f"Cannot read {path}: {e}") from e

    try:
        data = yaml.safe_load(raw)
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in {path}: {e}") from e

    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise ConfigError(f"Expected a YAML mapping in {path}, got {type(data).__name__}")

    try:
        config = ProvisionerConfig.model_validate(data)
    except ValidationError as e:
        raise ConfigError(f"Invalid configuration in {path}: {e}") from e

    config.source = str(path)
    logger.info("Loaded config from %s", path)
    return config
