"""
Kernel protocol contract - pure validators for kernel responses.

Validators never raise; each returns the ordered list of violations found
(empty means valid), so several problems are reported together.

The required command identifiers are a compatibility contract: renaming one
requires bumping EXPECTED_PROTOCOL.
"""

from typing import Any, List

EXPECTED_PROTOCOL = 1

# Commands the bridge expects every compatible kernel to support
REQUIRED_COMMANDS = (
    "worktree.ensure",
    "worktree.remove",
    "patch.apply",
    "git.commit_all",
    "verify.run",
    "protocol.version",
    "repo.info",
)

# Commands whose empty stdout means an empty-object result
IMPLICIT_EMPTY_RESULT_COMMANDS = frozenset({
    "worktree.remove",
})


def _is_obj(value: Any) -> bool:
    return isinstance(value, dict)


def _is_int(value: Any) -> bool:
    # JSON booleans decode to bool, which is an int subclass
    return isinstance(value, int) and not isinstance(value, bool)


def _is_version_one(value: Any) -> bool:
    return _is_int(value) and value == 1


def validate_protocol_version_output(obj: Any, expected_protocol: int = EXPECTED_PROTOCOL) -> List[str]:
    """
    Validate a ``protocol.version`` response.

    Args:
        obj: Decoded JSON response
        expected_protocol: Protocol number the bridge speaks

    Returns:
        List of violation messages (empty if valid)
    """
    if not _is_obj(obj):
        return ["expected object"]

    errors = []

    if not _is_version_one(obj.get("version")):
        errors.append("expected version: 1")

    protocol = obj.get("protocol")
    if not _is_int(protocol):
        errors.append("expected protocol: integer")
    elif protocol != expected_protocol:
        errors.append(f"protocol mismatch: expected {expected_protocol}, got {protocol}")

    kernel_version = obj.get("kernelVersion")
    if not isinstance(kernel_version, str) or not kernel_version.strip():
        errors.append("expected kernelVersion: non-empty string")

    commands = obj.get("commands")
    if not isinstance(commands, list):
        errors.append("expected commands: array")
    else:
        for command in REQUIRED_COMMANDS:
            if command not in commands:
                errors.append(f"missing command: {command}")

    return errors


def validate_repo_info_output(obj: Any) -> List[str]:
    """
    Validate a ``repo.info`` response.

    An empty ``branch``/``sha`` with a null ``repoRoot`` means "no repository".
    """
    if not _is_obj(obj):
        return ["expected object"]

    errors = []

    if not _is_version_one(obj.get("version")):
        errors.append("expected version: 1")

    repo_root = obj.get("repoRoot", ...)
    if repo_root is not None and not isinstance(repo_root, str):
        errors.append("expected repoRoot: string|null")
    if not isinstance(obj.get("branch"), str):
        errors.append("expected branch: string")
    if not isinstance(obj.get("sha"), str):
        errors.append("expected sha: string")
    if not isinstance(obj.get("clean"), bool):
        errors.append("expected clean: boolean")

    return errors
