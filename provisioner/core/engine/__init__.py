"""Engine — runs plans step by step through the host adapter."""

from provisioner.core.engine.executor import Executor, generate_run_id

__all__ = ["Executor", "generate_run_id"]
