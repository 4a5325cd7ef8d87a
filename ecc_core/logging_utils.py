"""
Logging Utilities for the ECC kernel bridge

Kernel handshakes and command invocations can be recorded to a file-based
event log, next to the usual ``logging`` output.
"""

import json
import logging
import re
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Dict, Any, Optional

# Excerpts stored in the JSONL log
MAX_EVENT_OUTPUT = 1000


class LogLevel(str, Enum):
    """Log levels for the kernel event log."""
    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"


# Patterns for secret masking (environment variables, tokens, keys)
SECRET_PATTERNS = [
    (re.compile(r"(API_KEY|TOKEN|SECRET|PASSWORD|PASS|AUTH)[=:]\s*['\"]?([^'\"\ \n]+)", re.I), r"\1=***"),
    (re.compile(r"(Bearer|token)\s+([a-zA-Z0-9_\-\.]+)", re.I), r"\1 ***"),
    (re.compile(r"-----BEGIN [A-Z ]+-----.*?-----END [A-Z ]+-----", re.DOTALL), "*** SSH/PGP KEY ***"),
]


def mask_secrets(text: str) -> str:
    """
    Mask secrets in text before logging.

    Args:
        text: Raw text that may contain secrets

    Returns:
        Text with secrets replaced by ***
    """
    masked = text
    for pattern, replacement in SECRET_PATTERNS:
        masked = pattern.sub(replacement, masked)
    return masked


def setup_logging(level: str = "INFO") -> None:
    """Configure root logging for command-line use."""
    if level.upper() == "DEBUG":
        logging.basicConfig(level=logging.DEBUG, format="%(name)s %(levelname)s %(message)s")
    else:
        logging.basicConfig(level=getattr(logging, level.upper(), logging.INFO),
                            format="%(levelname)s %(message)s")


class KernelEventLog:
    """
    File-based log of kernel activity with structured JSONL support.

    Logs are written to:
    - {log_dir}/commands.log - Human-readable text log
    - {log_dir}/events.jsonl - Structured JSONL log
    """

    def __init__(
        self,
        log_dir: Path,
        min_level: LogLevel = LogLevel.INFO,
        mask_secrets_enabled: bool = True,
        commands_log: str = "commands.log",
        events_log: str = "events.jsonl",
    ):
        """
        Initialize the event log.

        Args:
            log_dir: Directory for log files
            min_level: Minimum log level to write
            mask_secrets_enabled: Whether to mask secrets in logs
            commands_log: File name of the text log
            events_log: File name of the JSONL log
        """
        self.log_dir = Path(log_dir)
        self.log_dir.mkdir(parents=True, exist_ok=True)
        self.min_level = min_level
        self.mask_secrets_enabled = mask_secrets_enabled

        self.text_log = self.log_dir / commands_log
        self.json_log = self.log_dir / events_log

    @classmethod
    def from_config(cls, logging_config) -> Optional["KernelEventLog"]:
        """Build an event log from a LoggingConfig, or None when disabled."""
        if not logging_config.log_dir:
            return None
        try:
            min_level = LogLevel(str(logging_config.level).upper())
        except ValueError:
            min_level = LogLevel.INFO
        return cls(
            Path(logging_config.log_dir),
            min_level=min_level,
            mask_secrets_enabled=logging_config.mask_secrets,
            commands_log=logging_config.commands_log,
            events_log=logging_config.events_log,
        )

    def _should_log(self, level: LogLevel) -> bool:
        """Check if a log level should be written."""
        levels = [LogLevel.DEBUG, LogLevel.INFO, LogLevel.WARNING, LogLevel.ERROR]
        return levels.index(level) >= levels.index(self.min_level)

    def _mask_if_enabled(self, text: str) -> str:
        """Mask secrets if enabled."""
        if self.mask_secrets_enabled:
            return mask_secrets(text)
        return text

    def log_text(self, line: str, level: LogLevel = LogLevel.INFO):
        """
        Append a timestamped line to the text log.

        Args:
            line: Log message (timestamp will be prepended)
            level: Log level
        """
        if not self._should_log(level):
            return

        timestamp = datetime.now(timezone.utc).isoformat()
        with self.text_log.open("a", encoding="utf-8") as f:
            f.write(f"[{timestamp}] [{level.value}] {self._mask_if_enabled(line)}\n")

    def log_jsonl(self, event_type: str, data: Dict[str, Any], level: LogLevel = LogLevel.INFO):
        """
        Append structured JSONL event to the events log.

        Args:
            event_type: Type of event (e.g., "handshake", "command")
            data: Event data dictionary
            level: Log level
        """
        if not self._should_log(level):
            return

        event = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": level.value,
            "type": event_type,
            "data": data,
        }

        event_str = self._mask_if_enabled(json.dumps(event, default=str))
        with self.json_log.open("a", encoding="utf-8") as f:
            f.write(event_str + "\n")

    def log_handshake(self, label: str, locator: str, ok: bool, detail: str = ""):
        """
        Log one handshake attempt against a candidate kernel.

        Args:
            label: Candidate label (e.g. "PATH", "package")
            locator: Executable that was probed
            ok: Whether the handshake was accepted
            detail: Kernel version on success, failure reason otherwise
        """
        level = LogLevel.INFO if ok else LogLevel.WARNING
        status = "OK" if ok else "FAILED"
        self.log_text(f"HANDSHAKE {status} LABEL={label} BIN='{locator}' {detail}".rstrip(), level)
        self.log_jsonl("handshake", {
            "label": label,
            "locator": locator,
            "ok": ok,
            "detail": detail,
        }, level)

    def log_command(self, command: str, locator: str, returncode: Optional[int],
                    stdout: Optional[str] = None, stderr: Optional[str] = None,
                    duration_ms: Optional[float] = None):
        """
        Log a kernel command execution to both text and JSONL logs.

        Args:
            command: Kernel command name
            locator: Executable that was invoked
            returncode: Exit code (None when the process could not be spawned)
            stdout: Command stdout (optional, truncated if long)
            stderr: Command stderr (optional, truncated if long)
            duration_ms: Execution duration in milliseconds
        """
        summary = f"CMD=\"{command}\" BIN='{locator}' RC={returncode}"
        if duration_ms is not None:
            summary += f" DURATION={duration_ms:.1f}ms"

        level = LogLevel.ERROR if returncode != 0 else LogLevel.INFO
        self.log_text(summary, level)

        data = {
            "command": command,
            "locator": locator,
            "returncode": returncode,
        }
        if stdout:
            data["stdout"] = stdout[:MAX_EVENT_OUTPUT]
        if stderr:
            data["stderr"] = stderr[:MAX_EVENT_OUTPUT]
        if duration_ms is not None:
            data["duration_ms"] = duration_ms

        self.log_jsonl("command", data, level)
