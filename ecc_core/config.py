"""
ECC Unified Configuration System
================================

Loads and manages configuration from ecc.yaml with environment variable overrides.
"""

import os
import yaml
import logging
from pathlib import Path
from dataclasses import dataclass, field
from typing import Optional, Dict, Any

logger = logging.getLogger(__name__)

VALID_LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR")


# =============================================================================
# Configuration Data Classes
# =============================================================================

@dataclass
class KernelConfig:
    """Kernel discovery configuration."""
    mode: str = "auto"  # auto | external | fallback (aliases accepted)
    path: Optional[str] = None  # explicit binary override
    bin_dir: Optional[str] = None  # packaged binaries, <bin_dir>/<os>-<cpu>/
    repo_root: Optional[str] = None  # local build outputs under crates/ecc-kernel/target
    binary_name: str = "ecc-kernel"


@dataclass
class ExtractConfig:
    """Streaming extractor configuration."""
    chunk_size: int = 64 * 1024  # bytes read per input chunk
    flush_threshold: int = 16 * 1024  # characters buffered before a write


@dataclass
class LoggingConfig:
    """Logging configuration."""
    level: str = "INFO"
    log_dir: Optional[str] = None  # event log disabled when unset
    commands_log: str = "commands.log"
    events_log: str = "events.jsonl"
    mask_secrets: bool = True


@dataclass
class EccConfig:
    """Root configuration container."""
    kernel: KernelConfig = field(default_factory=KernelConfig)
    extract: ExtractConfig = field(default_factory=ExtractConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)
    version: str = "1"


# =============================================================================
# Configuration Loader
# =============================================================================

def find_config_file(start_path: Optional[Path] = None) -> Optional[Path]:
    """
    Find ecc.yaml by searching upward from start_path.

    Search order:
    1. start_path / ecc.yaml
    2. start_path / .ecc / ecc.yaml
    3. Parent directories (recursive)
    4. ~/.config/ecc/ecc.yaml

    Args:
        start_path: Starting directory (defaults to cwd)

    Returns:
        Path to config file or None if not found
    """
    if start_path is None:
        start_path = Path.cwd()

    start_path = Path(start_path).resolve()

    current = start_path
    for _ in range(10):  # Max 10 levels up
        candidates = [
            current / "ecc.yaml",
            current / ".ecc" / "ecc.yaml",
        ]
        for candidate in candidates:
            if candidate.exists():
                return candidate

        parent = current.parent
        if parent == current:
            break
        current = parent

    user_config = Path.home() / ".config" / "ecc" / "ecc.yaml"
    if user_config.exists():
        return user_config

    return None


def load_config(config_path: Optional[Path] = None) -> EccConfig:
    """
    Load configuration from YAML file with environment variable overrides.

    Environment variables override config file values:
    - ECC_KERNEL -> kernel.mode
    - ECC_KERNEL_PATH -> kernel.path
    - ECC_LOG_LEVEL -> logging.level
    - ECC_LOG_DIR -> logging.log_dir

    Args:
        config_path: Path to config file (auto-detected if None)

    Returns:
        EccConfig instance
    """
    config = EccConfig()

    if config_path is None:
        config_path = find_config_file()

    if config_path and Path(config_path).exists():
        logger.info(f"Loading config from: {config_path}")
        try:
            with open(config_path, 'r', encoding="utf-8") as f:
                data = yaml.safe_load(f) or {}
            config = _parse_config_dict(data)
        except (OSError, yaml.YAMLError, AttributeError) as e:
            logger.warning(f"Failed to load config: {e}, using defaults")
    else:
        logger.debug("No config file found, using defaults")

    config = _apply_env_overrides(config)
    _validate_config(config)

    return config


def _parse_config_dict(data: Dict[str, Any]) -> EccConfig:
    """Parse configuration dictionary into EccConfig."""
    config = EccConfig()

    if "kernel" in data:
        kernel = data["kernel"] or {}
        mode = kernel.get("mode", config.kernel.mode)
        if mode is False:  # YAML reads a bare `off` as a boolean
            mode = "off"
        config.kernel = KernelConfig(
            mode=str(mode),
            path=kernel.get("path"),
            bin_dir=kernel.get("bin_dir"),
            repo_root=kernel.get("repo_root"),
            binary_name=kernel.get("binary_name", config.kernel.binary_name),
        )

    if "extract" in data:
        extract = data["extract"] or {}
        config.extract = ExtractConfig(
            chunk_size=extract.get("chunk_size", config.extract.chunk_size),
            flush_threshold=extract.get("flush_threshold", config.extract.flush_threshold),
        )

    if "logging" in data:
        log = data["logging"] or {}
        config.logging = LoggingConfig(
            level=log.get("level", config.logging.level),
            log_dir=log.get("log_dir"),
            commands_log=log.get("commands_log", config.logging.commands_log),
            events_log=log.get("events_log", config.logging.events_log),
            mask_secrets=log.get("mask_secrets", config.logging.mask_secrets),
        )

    config.version = str(data.get("version", config.version))

    return config


def _apply_env_overrides(config: EccConfig) -> EccConfig:
    """Apply environment variable overrides to config."""

    if os.environ.get("ECC_KERNEL"):
        config.kernel.mode = os.environ["ECC_KERNEL"]

    if os.environ.get("ECC_KERNEL_PATH"):
        config.kernel.path = os.environ["ECC_KERNEL_PATH"]

    if os.environ.get("ECC_LOG_LEVEL"):
        config.logging.level = os.environ["ECC_LOG_LEVEL"]

    if os.environ.get("ECC_LOG_DIR"):
        config.logging.log_dir = os.environ["ECC_LOG_DIR"]

    return config


def _validate_config(config: EccConfig) -> None:
    """Validate configuration and log warnings."""

    level = str(config.logging.level).upper()
    if level not in VALID_LOG_LEVELS:
        logger.warning(f"Unknown log level '{config.logging.level}', defaulting to 'INFO'")
        level = "INFO"
    config.logging.level = level

    if not isinstance(config.extract.chunk_size, int) or config.extract.chunk_size <= 0:
        logger.warning(f"Invalid extract.chunk_size '{config.extract.chunk_size}', defaulting to 65536")
        config.extract.chunk_size = 64 * 1024

    if not isinstance(config.extract.flush_threshold, int) or config.extract.flush_threshold <= 0:
        logger.warning(f"Invalid extract.flush_threshold '{config.extract.flush_threshold}', defaulting to 16384")
        config.extract.flush_threshold = 16 * 1024


def save_config(config: EccConfig, path: Path) -> None:
    """
    Save configuration to YAML file.

    Args:
        config: EccConfig instance
        path: Output path
    """
    data = {
        "version": config.version,
        "kernel": {
            "mode": config.kernel.mode,
            "path": config.kernel.path,
            "bin_dir": config.kernel.bin_dir,
            "repo_root": config.kernel.repo_root,
            "binary_name": config.kernel.binary_name,
        },
        "extract": {
            "chunk_size": config.extract.chunk_size,
            "flush_threshold": config.extract.flush_threshold,
        },
        "logging": {
            "level": config.logging.level,
            "log_dir": config.logging.log_dir,
            "commands_log": config.logging.commands_log,
            "events_log": config.logging.events_log,
            "mask_secrets": config.logging.mask_secrets,
        },
    }

    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, 'w', encoding="utf-8") as f:
        yaml.dump(data, f, default_flow_style=False, sort_keys=False)

    logger.info(f"Configuration saved to: {path}")


# =============================================================================
# Global Config Instance
# =============================================================================

_global_config: Optional[EccConfig] = None


def get_config() -> EccConfig:
    """Get the global configuration instance (lazy-loaded)."""
    global _global_config
    if _global_config is None:
        _global_config = load_config()
    return _global_config


def reload_config(config_path: Optional[Path] = None) -> EccConfig:
    """Reload configuration from file."""
    global _global_config
    _global_config = load_config(config_path)
    return _global_config
