"""
Handshake Prober - negotiate protocol compatibility with candidate kernels.

Each candidate is asked for ``protocol.version`` with an empty request; the
first one whose response satisfies the contract is selected.
"""

import json
import logging
import subprocess
from dataclasses import dataclass, field
from typing import Any, Callable, FrozenSet, List, Optional, Tuple

from ecc_core.errors import ConfigurationError, HandshakeError
from ecc_core.logging_utils import KernelEventLog
from ecc_kernel.contract import EXPECTED_PROTOCOL, validate_protocol_version_output
from ecc_kernel.resolver import Candidate, ExecutionMode

logger = logging.getLogger(__name__)

HANDSHAKE_COMMAND = "protocol.version"


@dataclass
class HandshakeResult:
    """Outcome of probing one candidate."""
    ok: bool
    protocol: Optional[int] = None
    kernel_version: Optional[str] = None
    commands: FrozenSet[str] = field(default_factory=frozenset)
    error: Optional[str] = None
    spawn_failed: bool = False

    @classmethod
    def failure(cls, error: str, spawn_failed: bool = False) -> "HandshakeResult":
        return cls(ok=False, error=error, spawn_failed=spawn_failed)


@dataclass
class Selection:
    """Result of walking the candidate list."""
    candidate: Optional[Candidate] = None
    handshake: Optional[HandshakeResult] = None
    reason: Optional[str] = None

    @property
    def enabled(self) -> bool:
        return self.candidate is not None


def _run_json(locator: str, command: str, request: Any) -> Tuple[Any, Optional[str], bool]:
    """
    Run one kernel command for probing.

    Returns:
        (value, error, spawn_failed); error is None on success
    """
    try:
        cp = subprocess.run(
            [locator, command],
            input=json.dumps(request if request is not None else {}),
            capture_output=True,
            text=True,
            encoding="utf-8",
            errors="replace",
        )
    except OSError as e:
        return None, f"spawn failed: {e}", True

    stdout = (cp.stdout or "").strip()
    stderr = (cp.stderr or "").strip()

    if cp.returncode != 0:
        if stderr:
            detail = f" (stderr: {stderr})"
        elif stdout:
            detail = f" (stdout: {stdout})"
        else:
            detail = ""
        return None, f"exit {cp.returncode}{detail}", False

    if not stdout:
        return None, "empty stdout", False

    try:
        return json.loads(stdout), None, False
    except ValueError as e:
        return None, f"non-JSON stdout ({e})", False


def probe_kernel(locator: str) -> HandshakeResult:
    """
    Probe a single kernel binary.

    Args:
        locator: Executable path (or bare name resolved through PATH)

    Returns:
        HandshakeResult; contract violations are aggregated into one reason
    """
    value, error, spawn_failed = _run_json(locator, HANDSHAKE_COMMAND, {})
    if error is not None:
        return HandshakeResult.failure(f"{HANDSHAKE_COMMAND} failed: {error}", spawn_failed=spawn_failed)

    violations = validate_protocol_version_output(value, expected_protocol=EXPECTED_PROTOCOL)
    if violations:
        return HandshakeResult.failure(f"invalid {HANDSHAKE_COMMAND} output: {'; '.join(violations)}")

    return HandshakeResult(
        ok=True,
        protocol=value["protocol"],
        kernel_version=value["kernelVersion"],
        commands=frozenset(c for c in value["commands"] if isinstance(c, str)),
    )


def select_kernel(
    candidates: List[Candidate],
    mode: ExecutionMode,
    prober: Callable[[str], HandshakeResult] = probe_kernel,
    event_log: Optional[KernelEventLog] = None,
) -> Selection:
    """
    Walk candidates in order and return the first compatible kernel.

    Args:
        candidates: Ordered candidates from the resolver
        mode: AUTO degrades to a disabled selection; EXTERNAL raises
        prober: Handshake function (injectable for testing)
        event_log: Optional kernel event log

    Returns:
        Selection (enabled, or disabled with the first failure reason)

    Raises:
        ConfigurationError: EXTERNAL mode and the explicit override is not a file
        HandshakeError: EXTERNAL mode and no candidate passed the handshake
    """
    forced = mode == ExecutionMode.EXTERNAL
    errors: List[str] = []

    for candidate in candidates:
        if not candidate.exists():
            if candidate.explicit and forced:
                raise ConfigurationError(
                    f"ECC kernel required but ECC_KERNEL_PATH is not a file: {candidate.locator}"
                )
            logger.debug(f"Skipping {candidate.label}: {candidate.locator} does not exist")
            continue

        result = prober(candidate.locator)
        if event_log is not None:
            detail = result.kernel_version if result.ok else result.error
            event_log.log_handshake(candidate.label, candidate.locator, result.ok, detail or "")

        if result.ok:
            logger.info(
                f"Using ecc-kernel {result.kernel_version} from {candidate.label} ({candidate.locator})"
            )
            return Selection(candidate=candidate, handshake=result)

        if result.spawn_failed and not candidate.requires_file:
            logger.debug(f"Skipping {candidate.label}: {result.error}")
            continue

        errors.append(f"{candidate.label} ({candidate.locator}): {result.error}")
        if candidate.explicit and forced:
            break

    if forced:
        raise HandshakeError(
            "ECC kernel required but not found or incompatible.\n"
            "Install or build a compatible ecc-kernel, then re-run, "
            "or set ECC_KERNEL=fallback to force the local implementation.",
            reasons=errors,
        )

    reason = errors[0] if errors else None
    if reason:
        logger.info(f"ecc-kernel disabled, falling back: {reason}")
    return Selection(reason=reason)
