"""
Kernel Session - the resolved kernel for this process.

The session is resolved once (candidates, then handshake) and reused by every
later call. It is never refreshed; a new resolution needs a new process, or
``reset_session()`` in tests.

Usage:
    from ecc_kernel.session import get_session

    session = get_session()
    if session.enabled:
        print(session.kernel_version, session.locator)
    else:
        print("fallback:", session.reason)
"""

import logging
import shutil
import threading
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, FrozenSet, Optional

from ecc_core.config import EccConfig, get_config
from ecc_core.errors import EccError
from ecc_core.logging_utils import KernelEventLog
from ecc_kernel.probe import HandshakeResult, probe_kernel, select_kernel
from ecc_kernel.resolver import ExecutionMode, candidate_list, parse_mode

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class KernelSession:
    """Resolved kernel state (enabled with capabilities, or disabled with a reason)."""
    mode: ExecutionMode
    enabled: bool
    locator: Optional[str] = None
    label: Optional[str] = None
    protocol: Optional[int] = None
    kernel_version: Optional[str] = None
    commands: FrozenSet[str] = field(default_factory=frozenset)
    reason: Optional[str] = None

    @classmethod
    def disabled(cls, mode: ExecutionMode, reason: Optional[str] = None) -> "KernelSession":
        return cls(mode=mode, enabled=False, reason=reason)

    def supports(self, command: str) -> bool:
        """Whether the kernel advertised this command in its handshake."""
        return self.enabled and command in self.commands

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary (doctor output)."""
        return {
            "mode": self.mode.value,
            "enabled": self.enabled,
            "locator": self.locator,
            "label": self.label,
            "protocol": self.protocol,
            "kernelVersion": self.kernel_version,
            "commands": sorted(self.commands),
            "reason": self.reason,
        }


def resolve_session(
    config: Optional[EccConfig] = None,
    which: Callable[[str], Optional[str]] = shutil.which,
    prober: Callable[[str], HandshakeResult] = probe_kernel,
    event_log: Optional[KernelEventLog] = None,
) -> KernelSession:
    """
    Resolve a kernel session without caching.

    Args:
        config: Configuration (global config if None)
        which: PATH lookup function
        prober: Handshake function
        event_log: Optional kernel event log (built from config if None)

    Returns:
        KernelSession

    Raises:
        ConfigurationError, HandshakeError: only in EXTERNAL mode
    """
    config = config or get_config()
    mode = parse_mode(config.kernel.mode)

    if mode == ExecutionMode.FALLBACK:
        logger.debug("ecc-kernel disabled by configuration")
        return KernelSession.disabled(mode)

    if event_log is None:
        event_log = KernelEventLog.from_config(config.logging)

    candidates = candidate_list(config.kernel, which=which)
    selection = select_kernel(candidates, mode, prober=prober, event_log=event_log)

    if not selection.enabled:
        return KernelSession.disabled(mode, selection.reason)

    handshake = selection.handshake
    return KernelSession(
        mode=mode,
        enabled=True,
        locator=selection.candidate.locator,
        label=selection.candidate.label,
        protocol=handshake.protocol,
        kernel_version=handshake.kernel_version,
        commands=handshake.commands,
    )


# =============================================================================
# Process-wide session (single initialization)
# =============================================================================

_lock = threading.Lock()
_session: Optional[KernelSession] = None
_session_error: Optional[EccError] = None


def get_session(config: Optional[EccConfig] = None) -> KernelSession:
    """
    Get the process-wide kernel session, resolving it on first use.

    Concurrent first callers wait for the one resolution in progress. A fatal
    resolution error is remembered and re-raised without probing again.
    """
    global _session, _session_error

    session = _session
    if session is not None:
        return session

    with _lock:
        if _session is not None:
            return _session
        if _session_error is not None:
            raise _session_error.with_traceback(None)
        try:
            _session = resolve_session(config)
        except EccError as e:
            _session_error = e
            raise
        return _session


def reset_session() -> None:
    """Forget the resolved session. Testing only."""
    global _session, _session_error
    with _lock:
        _session = None
        _session_error = None
