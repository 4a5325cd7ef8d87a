"""
Command Invoker - run kernel commands through the resolved session.

A disabled session yields ``CommandResult(available=False)`` without spawning
anything; the caller then uses its local implementation. Once a command runs
against a live kernel, every failure raises ProcessExecutionError: the command
may already have had side effects, so it must not be silently re-run by a
fallback.
"""

import json
import logging
import subprocess
import time
from dataclasses import dataclass
from typing import Any, Dict, Optional

from ecc_core.config import get_config
from ecc_core.errors import ContractViolationError, ProcessExecutionError
from ecc_core.logging_utils import KernelEventLog
from ecc_kernel.contract import (
    IMPLICIT_EMPTY_RESULT_COMMANDS,
    validate_protocol_version_output,
    validate_repo_info_output,
)
from ecc_kernel.session import KernelSession, get_session

logger = logging.getLogger(__name__)

# Raw output kept in failure messages
RAW_EXCERPT_CHARS = 2000


@dataclass
class CommandResult:
    """Result of a kernel command (or the lack of a kernel)."""
    command: str
    available: bool
    value: Any = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "command": self.command,
            "available": self.available,
            "value": self.value,
        }


class KernelInvoker:
    """
    Issues commands against the kernel held by a session.

    Example:
        invoker = KernelInvoker(get_session())
        result = invoker.run("worktree.ensure", {"path": "/tmp/wt"})
        if not result.available:
            ...  # local implementation
    """

    def __init__(self, session: KernelSession, event_log: Optional[KernelEventLog] = None):
        """
        Initialize the invoker.

        Args:
            session: Resolved kernel session
            event_log: Optional kernel event log
        """
        self.session = session
        self.event_log = event_log

    def run(self, command: str, request: Any = None, allow_empty: Optional[bool] = None) -> CommandResult:
        """
        Run one kernel command.

        Args:
            command: Kernel command name (passed as the only argument)
            request: JSON-serializable request written to stdin
            allow_empty: Accept empty stdout as {} (defaults to the command contract)

        Returns:
            CommandResult; ``available`` is False when the session is disabled

        Raises:
            ProcessExecutionError: spawn failure, non-zero exit, empty or non-JSON stdout
        """
        session = self.session
        if not session.enabled:
            return CommandResult(command=command, available=False)

        if allow_empty is None:
            allow_empty = command in IMPLICIT_EMPTY_RESULT_COMMANDS
        if session.commands and command not in session.commands:
            logger.debug(f"ecc-kernel did not advertise '{command}', running it anyway")

        locator = session.locator
        payload = json.dumps(request if request is not None else {})

        start = time.monotonic()
        try:
            cp = subprocess.run(
                [locator, command],
                input=payload,
                capture_output=True,
                text=True,
                encoding="utf-8",
                errors="replace",
            )
        except OSError as e:
            self._log(command, None, "", str(e), start)
            raise ProcessExecutionError("spawn", command, locator, f"spawn failed: {e}") from e

        stdout = (cp.stdout or "").strip()
        stderr = (cp.stderr or "").strip()
        self._log(command, cp.returncode, stdout, stderr, start)

        if cp.returncode != 0:
            stderr_excerpt = stderr[:RAW_EXCERPT_CHARS]
            stdout_excerpt = stdout[:RAW_EXCERPT_CHARS]
            parts = [f"exit {cp.returncode}"]
            if stderr_excerpt:
                parts.append(f"stderr:\n{stderr_excerpt}")
            if stdout_excerpt:
                parts.append(f"stdout:\n{stdout_excerpt}")
            raise ProcessExecutionError(
                "exit", command, locator, "\n\n".join(parts),
                returncode=cp.returncode, stdout=stdout_excerpt, stderr=stderr_excerpt,
            )

        if not stdout:
            if allow_empty:
                return CommandResult(command=command, available=True, value={})
            raise ProcessExecutionError(
                "empty", command, locator, "empty stdout",
                returncode=cp.returncode, stderr=stderr[:RAW_EXCERPT_CHARS],
            )

        try:
            value = json.loads(stdout)
        except ValueError as e:
            excerpt = stdout[:RAW_EXCERPT_CHARS]
            raise ProcessExecutionError(
                "parse", command, locator,
                f"returned non-JSON output ({e}). Raw:\n{excerpt}",
                returncode=cp.returncode, stdout=excerpt, stderr=stderr[:RAW_EXCERPT_CHARS],
            ) from e

        return CommandResult(command=command, available=True, value=value)

    def _log(self, command: str, returncode: Optional[int], stdout: str, stderr: str, start: float):
        duration_ms = (time.monotonic() - start) * 1000
        logger.debug(f"ecc-kernel {command} rc={returncode} ({duration_ms:.1f}ms)")
        if self.event_log is not None:
            self.event_log.log_command(
                command, self.session.locator, returncode,
                stdout=stdout, stderr=stderr, duration_ms=duration_ms,
            )

    # ------------------------ Typed helpers ------------------------

    def repo_info(self, request: Any = None) -> CommandResult:
        """
        Query repository status (``repo.info``) and validate its shape.

        Raises:
            ContractViolationError: if the kernel response is malformed
        """
        result = self.run("repo.info", request)
        if result.available:
            errors = validate_repo_info_output(result.value)
            if errors:
                raise ContractViolationError("repo.info", errors)
        return result

    def protocol_version(self) -> CommandResult:
        """Re-query the handshake payload through the live session."""
        result = self.run("protocol.version", {})
        if result.available:
            errors = validate_protocol_version_output(result.value)
            if errors:
                raise ContractViolationError("protocol.version", errors)
        return result


def run_kernel(
    command: str,
    request: Any = None,
    session: Optional[KernelSession] = None,
    event_log: Optional[KernelEventLog] = None,
) -> CommandResult:
    """
    Run a kernel command through the process-wide session.

    Args:
        command: Kernel command name
        request: JSON-serializable request
        session: Session to use (process-wide session if None)
        event_log: Kernel event log (built from the global config if None)

    Returns:
        CommandResult
    """
    session = session or get_session()
    if event_log is None:
        event_log = KernelEventLog.from_config(get_config().logging)
    return KernelInvoker(session, event_log=event_log).run(command, request)
