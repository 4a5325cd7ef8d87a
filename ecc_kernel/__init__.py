"""
ECC Kernel Bridge - discover, handshake with and invoke the ecc-kernel binary

- Resolver lists candidate binaries (override, package, PATH, local builds)
- Prober runs the protocol.version handshake against each candidate
- Session memoizes the outcome once per process
- Invoker runs further commands through the session (JSON over stdin/stdout)
"""

from ecc_core.version import __version__

__all__ = [
    # Contract
    "EXPECTED_PROTOCOL",
    "REQUIRED_COMMANDS",
    "validate_protocol_version_output",
    "validate_repo_info_output",
    # Resolver / prober
    "Candidate",
    "ExecutionMode",
    "candidate_list",
    "HandshakeResult",
    "probe_kernel",
    # Session
    "KernelSession",
    "get_session",
    "resolve_session",
    "reset_session",
    # Invoker
    "CommandResult",
    "KernelInvoker",
    "run_kernel",
]


def __getattr__(name):
    """Lazy imports to avoid circular dependencies."""
    if name in ("EXPECTED_PROTOCOL", "REQUIRED_COMMANDS",
                "validate_protocol_version_output", "validate_repo_info_output"):
        from ecc_kernel import contract
        return getattr(contract, name)
    elif name in ("Candidate", "ExecutionMode", "candidate_list"):
        from ecc_kernel import resolver
        return getattr(resolver, name)
    elif name in ("HandshakeResult", "probe_kernel"):
        from ecc_kernel import probe
        return getattr(probe, name)
    elif name in ("KernelSession", "get_session", "resolve_session", "reset_session"):
        from ecc_kernel import session
        return getattr(session, name)
    elif name in ("CommandResult", "KernelInvoker", "run_kernel"):
        from ecc_kernel import invoker
        return getattr(invoker, name)
    raise AttributeError(f"module 'ecc_kernel' has no attribute '{name}'")
