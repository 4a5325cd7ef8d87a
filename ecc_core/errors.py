"""
Error taxonomy for the ECC kernel bridge and the streaming extractor.

Resolution errors (ConfigurationError, HandshakeError) are only raised when
the kernel is explicitly required. Errors raised once a command runs against
a live kernel (ProcessExecutionError, ContractViolationError) are always
surfaced to the caller.
"""

from enum import Enum
from typing import List, Optional


class ExtractionErrorKind(str, Enum):
    """Contract violated by a streaming field extraction."""
    FIELD_NOT_FOUND = "field_not_found"
    NOT_A_STRING = "not_a_string"
    MALFORMED_ESCAPE = "malformed_escape"
    INVALID_UNICODE_ESCAPE = "invalid_unicode_escape"
    MALFORMED_DOCUMENT = "malformed_document"
    IO_ERROR = "io_error"


class EccError(Exception):
    """Base class for all ecc-bridge errors."""
    pass


class ConfigurationError(EccError):
    """Raised when an explicit kernel override is unusable in forced mode."""
    pass


class HandshakeError(EccError):
    """Raised when no candidate kernel passes the handshake in forced mode."""

    def __init__(self, message: str, reasons: Optional[List[str]] = None):
        self.reasons = list(reasons or [])
        if self.reasons:
            message = message + "\n\nHandshake errors:\n- " + "\n- ".join(self.reasons)
        super().__init__(message)


class ContractViolationError(EccError):
    """Raised when a kernel response does not match its documented shape."""

    def __init__(self, what: str, violations: List[str]):
        self.what = what
        self.violations = list(violations)
        super().__init__(f"invalid {what} output: {'; '.join(self.violations)}")


class ProcessExecutionError(EccError):
    """
    Raised when a command against a live kernel fails.

    Attributes:
        kind: One of "spawn", "exit", "empty", "parse"
        command: Kernel command name
        locator: Executable that was invoked
        detail: Human-readable failure detail
        returncode: Exit status (None if the process never ran)
        stdout: Captured stdout excerpt
        stderr: Captured stderr excerpt
    """

    def __init__(
        self,
        kind: str,
        command: str,
        locator: Optional[str],
        detail: str,
        returncode: Optional[int] = None,
        stdout: str = "",
        stderr: str = "",
    ):
        self.kind = kind
        self.command = command
        self.locator = locator
        self.detail = detail
        self.returncode = returncode
        self.stdout = stdout
        self.stderr = stderr
        super().__init__(f"ecc-kernel {command} failed ({locator}): {detail}")


class ExtractionError(EccError):
    """Raised when a string field cannot be streamed out of a JSON document."""

    def __init__(
        self,
        kind: ExtractionErrorKind,
        message: str,
        field_name: Optional[str] = None,
        path: Optional[str] = None,
    ):
        self.kind = kind
        self.field_name = field_name
        self.path = path
        super().__init__(message)
