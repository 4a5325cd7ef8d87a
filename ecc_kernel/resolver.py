"""
Candidate Resolver - where to look for an ecc-kernel binary.

Candidates are listed by priority:
1. Explicit override (ECC_KERNEL_PATH / kernel.path)
2. Packaged binary for the current platform (<bin_dir>/<os>-<cpu>/)
3. ecc-kernel found on PATH
4. Local build outputs (release, then debug)

Duplicates (same normalized locator) are dropped, keeping the first one.
"""

import logging
import os
import platform
import shutil
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Callable, List, Optional

from ecc_core.config import KernelConfig

logger = logging.getLogger(__name__)

PACKAGE_DIR = Path(__file__).resolve().parent
DEFAULT_BIN_DIR = PACKAGE_DIR / "bin"
DEFAULT_REPO_ROOT = PACKAGE_DIR.parent

_OS_NAMES = {
    "darwin": "darwin",
    "linux": "linux",
    "windows": "windows",
}

_CPU_NAMES = {
    "x86_64": "x64",
    "amd64": "x64",
    "x64": "x64",
    "arm64": "arm64",
    "aarch64": "arm64",
}

_EXTERNAL_ALIASES = ("external", "kernel", "rust")
_FALLBACK_ALIASES = ("fallback", "python", "node", "js", "off", "disable")


class ExecutionMode(str, Enum):
    """How the bridge chooses between the kernel and local fallbacks."""
    AUTO = "auto"  # use the kernel when a compatible one is found
    EXTERNAL = "external"  # kernel required, fail loudly otherwise
    FALLBACK = "fallback"  # never use the kernel


def parse_mode(raw: Optional[str]) -> ExecutionMode:
    """Parse a mode selector (case-insensitive). Unknown values map to AUTO."""
    value = str(raw).strip().lower() if raw is not None else ""
    if value in _EXTERNAL_ALIASES:
        return ExecutionMode.EXTERNAL
    if value in _FALLBACK_ALIASES:
        return ExecutionMode.FALLBACK
    if value and value != ExecutionMode.AUTO.value:
        logger.debug(f"Unknown kernel mode '{raw}', using auto")
    return ExecutionMode.AUTO


@dataclass(frozen=True)
class Candidate:
    """One place an ecc-kernel binary might live."""
    label: str
    locator: str
    requires_file: bool
    explicit: bool = False

    def exists(self) -> bool:
        """Whether the existence requirement is satisfied."""
        return not self.requires_file or os.path.isfile(self.locator)


def platform_arch_key(system: Optional[str] = None, machine: Optional[str] = None) -> Optional[str]:
    """
    Normalize the running platform to "<os>-<cpu>".

    Returns:
        e.g. "linux-x64", or None for unsupported combinations
    """
    system = (system if system is not None else platform.system()).lower()
    machine = (machine if machine is not None else platform.machine()).lower()

    os_name = _OS_NAMES.get(system)
    if os_name is None and system.startswith(("win", "cygwin", "msys")):
        os_name = "windows"
    cpu = _CPU_NAMES.get(machine)

    if not os_name or not cpu:
        return None
    return f"{os_name}-{cpu}"


def binary_filename(base: str = "ecc-kernel", system: Optional[str] = None) -> str:
    """Executable file name for the platform."""
    system = (system if system is not None else platform.system()).lower()
    if system.startswith("win"):
        return f"{base}.exe"
    return base


def _normalize(locator: str) -> str:
    return os.path.normcase(os.path.abspath(locator))


def candidate_list(
    config: Optional[KernelConfig] = None,
    which: Callable[[str], Optional[str]] = shutil.which,
    system: Optional[str] = None,
    machine: Optional[str] = None,
) -> List[Candidate]:
    """
    Enumerate kernel candidates in priority order.

    Args:
        config: Kernel configuration (defaults if None)
        which: PATH lookup function
        system: Override for platform.system() (testing)
        machine: Override for platform.machine() (testing)

    Returns:
        De-duplicated list of candidates
    """
    config = config or KernelConfig()
    name = binary_filename(config.binary_name, system)
    candidates: List[Candidate] = []

    if config.path:
        candidates.append(Candidate(
            label="ECC_KERNEL_PATH",
            locator=os.path.abspath(os.path.expanduser(str(config.path))),
            requires_file=True,
            explicit=True,
        ))

    key = platform_arch_key(system, machine)
    if key:
        bin_dir = Path(config.bin_dir) if config.bin_dir else DEFAULT_BIN_DIR
        candidates.append(Candidate(
            label="package",
            locator=str(bin_dir / key / name),
            requires_file=True,
        ))
    else:
        logger.debug("Unsupported platform for packaged ecc-kernel binaries")

    from_path = which(config.binary_name)
    if from_path:
        candidates.append(Candidate(label="PATH", locator=from_path, requires_file=False))

    repo_root = Path(config.repo_root) if config.repo_root else DEFAULT_REPO_ROOT
    target = repo_root / "crates" / "ecc-kernel" / "target"
    candidates.append(Candidate(label="repo-release", locator=str(target / "release" / name), requires_file=True))
    candidates.append(Candidate(label="repo-debug", locator=str(target / "debug" / name), requires_file=True))

    seen = set()
    unique = []
    for candidate in candidates:
        normalized = _normalize(candidate.locator)
        if normalized in seen:
            continue
        seen.add(normalized)
        unique.append(candidate)

    return unique
