# /*
# Copyright 2026 The Grove Authors.
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.
# */

"""Utility functions for kubectl, command checks, and flag parsing."""

from __future__ import annotations

import subprocess

import sh

from runtime_manager.constants import KUBECTL_TIMEOUT_SECONDS


def require_command(cmd: str) -> None:
    """Check if a command exists on the system PATH.

    Args:
        cmd: Name of the CLI command to check.

    Raises:
        RuntimeError: If the command is not found.
    """
    try:
        sh.which(cmd)
    except sh.ErrorReturnCode as err:
        raise RuntimeError(f"Required command '{cmd}' not found. Please install it first.") from err


def run_kubectl(args: list[str], timeout: int = KUBECTL_TIMEOUT_SECONDS,
                input_text: str | None = None) -> tuple[bool, str, str]:
    """Run a kubectl command via subprocess and return (success, stdout, stderr).

    Uses subprocess instead of sh because "not found" detection relies on
    stderr alone, which sh's combined output makes unreliable.

    Args:
        args: kubectl arguments (e.g. ``["get", "pods", "-n", "default"]``).
        timeout: Maximum seconds to wait for the command to complete.
        input_text: Text written to the command's stdin, if any.

    Returns:
        Tuple of (success, stdout, stderr).
    """
    try:
        result = subprocess.run(
            ["kubectl", *args],
            capture_output=True,
            text=True,
            timeout=timeout,
            input=input_text,
        )
        return result.returncode == 0, result.stdout, result.stderr
    except (subprocess.SubprocessError, OSError) as exc:
        return False, "", str(exc)


def parse_key_value_pairs(pairs: list[str] | None, flag: str = "") -> dict[str, str]:
    """Parse ``key=value`` CLI flag values into a dict.

    Args:
        pairs: Raw flag values; each may hold several comma-separated pairs.
        flag: Flag name used in the error message.

    Returns:
        Mapping of keys to values, later pairs winning.

    Raises:
        ValueError: If an item has no ``=`` or an empty key.
    """
    result: dict[str, str] = {}
    for raw in pairs or []:
        for item in raw.split(","):
            item = item.strip()
            if not item:
                continue
            key, sep, value = item.partition("=")
            if not sep or not key.strip():
                raise ValueError(f"invalid value '{item}' for {flag or 'flag'}: expected key=value")
            result[key.strip()] = value.strip()
    return result
