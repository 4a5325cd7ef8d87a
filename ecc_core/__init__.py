"""
ECC Core - Configuration, logging, errors and streaming extraction for ecc-bridge
"""

from .version import __version__
from .errors import (
    EccError,
    ConfigurationError,
    HandshakeError,
    ContractViolationError,
    ProcessExecutionError,
    ExtractionError,
    ExtractionErrorKind,
)
from .config import (
    EccConfig,
    KernelConfig,
    ExtractConfig,
    LoggingConfig,
    load_config,
    save_config,
    get_config,
    reload_config,
)
from .logging_utils import KernelEventLog, LogLevel, mask_secrets
from .json_extract import (
    FieldScanner,
    ScanState,
    ExtractionResult,
    extract_json_string_field,
)

__all__ = [
    "__version__",
    "EccError",
    "ConfigurationError",
    "HandshakeError",
    "ContractViolationError",
    "ProcessExecutionError",
    "ExtractionError",
    "ExtractionErrorKind",
    "EccConfig",
    "KernelConfig",
    "ExtractConfig",
    "LoggingConfig",
    "load_config",
    "save_config",
    "get_config",
    "reload_config",
    "KernelEventLog",
    "LogLevel",
    "mask_secrets",
    "FieldScanner",
    "ScanState",
    "ExtractionResult",
    "extract_json_string_field",
]
