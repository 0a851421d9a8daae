"""
Command runner — the single place where ``subprocess.run`` is called.

Every package manager, service manager and firewall invocation goes
through ``CommandRunner.run``. The runner never raises: timeouts and
missing binaries come back as a CommandResult so the adapter can map
them onto the error taxonomy.
"""

from __future__ import annotations

import logging
import os
import shutil
import subprocess
import time
from dataclasses import dataclass

logger = logging.getLogger(__name__)

# Output kept per stream (tail)
_OUTPUT_LIMIT = 4000

# Return code used when the binary does not exist
NOT_FOUND = 127


@dataclass(frozen=True)
class CommandResult:
    """Outcome of one subprocess invocation."""

    argv: tuple[str, ...]
    returncode: int
    stdout: str = ""
    stderr: str = ""
    elapsed_ms: int = 0
    timed_out: bool = False

    @property
    def ok(self) -> bool:
        return self.returncode == 0 and not self.timed_out

    @property
    def not_found(self) -> bool:
        return self.returncode == NOT_FOUND and not self.timed_out

    @property
    def output(self) -> str:
        """stdout and stderr combined (some tools print versions to stderr)."""
        return (self.stdout or "") + (self.stderr or "")

    def summary(self) -> str:
        """Short human description of a failure."""
        if self.timed_out:
            return f"'{self.argv[0]}' timed out"
        if self.not_found:
            return f"'{self.argv[0]}' not found"
        tail = (self.stderr or self.stdout).strip().splitlines()
        last = tail[-1] if tail else ""
        return f"'{' '.join(self.argv)}' exited {self.returncode}" + (f": {last}" if last else "")


class CommandRunner:
    """Runs commands with a timeout and optional environment overrides."""

    def __init__(self, default_timeout: float = 120.0):
        self._default_timeout = default_timeout

    def which(self, name: str) -> str | None:
        return shutil.which(name)

    def run(
        self,
        cmd: list[str],
        *,
        timeout: float | None = None,
        env_overrides: dict[str, str] | None = None,
        input_text: str | None = None,
    ) -> CommandResult:
        """Run ``cmd`` and capture its output.

        Args:
            cmd: Command list for ``subprocess.run()``.
            timeout: Seconds before the command is killed.
            env_overrides: Extra environment variables.
            input_text: Data piped to stdin.

        Returns:
            CommandResult; never raises.
        """
        timeout = timeout or self._default_timeout
        env = os.environ.copy()
        if env_overrides:
            env.update(env_overrides)

        argv = tuple(cmd)
        logger.debug("$ %s (timeout %ss)", " ".join(argv), timeout)
        start = time.monotonic()
        try:
            proc = subprocess.run(
                cmd,
                capture_output=True,
                text=True,
                timeout=timeout,
                input=input_text,
                env=env,
            )
        except subprocess.TimeoutExpired:
            logger.warning("Command timed out after %ss: %s", timeout, argv[0])
            return CommandResult(
                argv=argv,
                returncode=-1,
                elapsed_ms=int((time.monotonic() - start) * 1000),
                timed_out=True,
            )
        except FileNotFoundError:
            return CommandResult(argv=argv, returncode=NOT_FOUND, stderr=f"{argv[0]}: not found")
        except OSError as e:
            logger.error("Cannot execute %s: %s", argv[0], e)
            return CommandResult(argv=argv, returncode=126, stderr=str(e))

        result = CommandResult(
            argv=argv,
            returncode=proc.returncode,
            stdout=(proc.stdout or "")[-_OUTPUT_LIMIT:],
            stderr=(proc.stderr or "")[-_OUTPUT_LIMIT:],
            elapsed_ms=int((time.monotonic() - start) * 1000),
        )
        if not result.ok:
            logger.debug("Command failed: %s", result.summary())
        return result
