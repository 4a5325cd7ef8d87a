"""
Pytest Configuration and Fixtures

Fake kernels are small executable Python scripts: each command maps to a
canned stdout/stderr/exit code, and every invocation can be appended to a log.
"""

import json
import stat
import sys
from pathlib import Path
from typing import Any, Callable, Dict, Generator, Optional

import pytest

# Add project root to path
PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from ecc_core import config as config_module  # noqa: E402
from ecc_core.config import EccConfig, KernelConfig  # noqa: E402
from ecc_kernel.contract import EXPECTED_PROTOCOL, REQUIRED_COMMANDS  # noqa: E402
from ecc_kernel.session import reset_session  # noqa: E402


FAKE_KERNEL_TEMPLATE = '''#!@PYTHON@
import json
import sys

SPEC = json.loads(@SPEC@)

command = sys.argv[1] if len(sys.argv) > 1 else ""
request = sys.stdin.read()

log_path = SPEC.get("_log")
if log_path:
    with open(log_path, "a", encoding="utf-8") as f:
        f.write(json.dumps({"command": command, "request": request}) + "\\n")

entry = SPEC.get(command, SPEC.get("*"))
if entry is None:
    sys.stderr.write("unknown command: " + command)
    sys.exit(2)
if entry.get("echo"):
    sys.stdout.write(json.dumps({"command": command, "request": json.loads(request or "null")}))
    sys.exit(0)
sys.stderr.write(entry.get("stderr", ""))
sys.stdout.write(entry.get("stdout", ""))
sys.exit(entry.get("exit", 0))
'''


def handshake_payload(**overrides: Any) -> Dict[str, Any]:
    """A valid protocol.version response, with optional field overrides."""
    payload = {
        "version": 1,
        "protocol": EXPECTED_PROTOCOL,
        "kernelVersion": "0.1.0",
        "commands": list(REQUIRED_COMMANDS),
    }
    payload.update(overrides)
    return payload


def read_calls(log_path: Path) -> list:
    """Invocations recorded by a fake kernel."""
    if not log_path.exists():
        return []
    return [json.loads(line) for line in log_path.read_text(encoding="utf-8").splitlines() if line]


@pytest.fixture(autouse=True)
def isolated_env(monkeypatch) -> Generator[None, None, None]:
    """Clear ECC_* variables, the global config and the process-wide session around each test."""
    for name in ("ECC_KERNEL", "ECC_KERNEL_PATH", "ECC_LOG_LEVEL", "ECC_LOG_DIR"):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setattr(config_module, "_global_config", None)
    reset_session()
    yield
    reset_session()


@pytest.fixture
def make_kernel(tmp_path: Path) -> Callable[..., str]:
    """
    Factory writing a fake ecc-kernel executable.

    Args (of the returned factory):
        directory: Where to put it (default: tmp_path/"kernels"/<n>)
        name: File name (default: ecc-kernel)
        handshake: protocol.version payload (dict) or raw stdout (str)
        commands: Extra {command: {"stdout", "stderr", "exit", "echo"}}
        log: File receiving one JSON line per invocation

    Returns:
        Path to the executable (str)
    """
    counter = {"n": 0}

    def factory(
        directory: Optional[Path] = None,
        name: str = "ecc-kernel",
        handshake: Any = None,
        commands: Optional[Dict[str, Dict[str, Any]]] = None,
        log: Optional[Path] = None,
    ) -> str:
        if directory is None:
            counter["n"] += 1
            directory = tmp_path / "kernels" / str(counter["n"])
        directory.mkdir(parents=True, exist_ok=True)

        if handshake is None:
            handshake = handshake_payload()
        if isinstance(handshake, str):
            handshake_entry = {"stdout": handshake}
        else:
            handshake_entry = {"stdout": json.dumps(handshake)}

        spec: Dict[str, Any] = {"protocol.version": handshake_entry}
        spec.update(commands or {})
        if log is not None:
            spec["_log"] = str(log)

        script = (
            FAKE_KERNEL_TEMPLATE
            .replace("@PYTHON@", sys.executable)
            .replace("@SPEC@", repr(json.dumps(spec)))
        )
        path = directory / name
        path.write_text(script, encoding="utf-8")
        path.chmod(path.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
        return str(path)

    return factory


@pytest.fixture
def isolated_config(tmp_path: Path) -> EccConfig:
    """Config whose packaged/repo candidate locations do not exist."""
    config = EccConfig()
    config.kernel = KernelConfig(
        bin_dir=str(tmp_path / "no-bin"),
        repo_root=str(tmp_path / "no-repo"),
    )
    return config


@pytest.fixture
def no_path(monkeypatch, tmp_path: Path) -> None:
    """Make PATH lookups of ecc-kernel fail."""
    empty = tmp_path / "empty-path"
    empty.mkdir(exist_ok=True)
    monkeypatch.setenv("PATH", str(empty))
