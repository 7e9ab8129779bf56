# /*
# Copyright 2026 The MultiKueue Lab Authors.
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

"""Utility functions for kubectl, command checks, and prompts."""

from __future__ import annotations

import platform
import subprocess
from collections.abc import Iterable

import sh
import typer
from rich.panel import Panel

from multikueue_lab import console, logger
from multikueue_lab.config import ClusterTarget
from multikueue_lab.constants import HOMEBREW_INSTALL_HINT


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


def command_available(cmd: str) -> bool:
    """Return True if *cmd* is on the system PATH."""
    try:
        require_command(cmd)
    except RuntimeError:
        return False
    return True


def check_prerequisites(tools: Iterable[str], install_missing: bool = False) -> None:
    """Check that every tool is installed, optionally installing via Homebrew.

    Args:
        tools: CLI tool names that must be available.
        install_missing: Whether to ``brew install`` missing tools.

    Raises:
        RuntimeError: If a tool is missing and cannot be installed.
    """
    console.print(Panel.fit("Checking prerequisites", style="bold blue"))
    missing = [tool for tool in tools if not command_available(tool)]
    if missing and install_missing:
        if not command_available("brew"):
            raise RuntimeError(f"Homebrew is not installed. Please install it first: {HOMEBREW_INSTALL_HINT}")
        for tool in missing:
            console.print(f"[yellow]   Installing {tool}...[/yellow]")
            sh.brew("install", tool)
            console.print(f"[green]✅ {tool} installed[/green]")
        missing = [tool for tool in missing if not command_available(tool)]

    if missing:
        hint = "brew install " + " ".join(missing) if platform.system() == "Darwin" else "your package manager"
        raise RuntimeError(f"Missing required tools: {', '.join(missing)}. Install them with {hint}.")
    console.print("[green]✅ All required tools are available[/green]")


def run_kubectl(
    args: list[str],
    target: ClusterTarget | None = None,
    timeout: int = 30,
    stdin: str | None = None,
) -> tuple[bool, str, str]:
    """Run a kubectl command via subprocess and return (success, stdout, stderr).

    Uses subprocess instead of sh because callers inspect stdout and stderr
    separately (e.g. tolerating ``AlreadyExists`` or CRD-missing errors).

    Args:
        args: kubectl arguments (e.g. ``["get", "pods", "-n", "default"]``).
        target: Cluster to talk to, or None for the current context.
        timeout: Maximum seconds to wait for the command to complete.
        stdin: Text piped to kubectl (e.g. a manifest for ``apply -f -``).

    Returns:
        Tuple of (success, stdout, stderr).
    """
    cmd = ["kubectl", *(target.kubectl_flags() if target else []), *args]
    logger.debug("$ %s", " ".join(cmd))
    try:
        result = subprocess.run(
            cmd,
            capture_output=True,
            text=True,
            timeout=timeout,
            input=stdin,
        )
        return result.returncode == 0, result.stdout, result.stderr
    except (subprocess.SubprocessError, OSError) as exc:
        return False, "", str(exc)


def kubectl(target: ClusterTarget | None, *args: str, stdin: str | None = None) -> str:
    """Run a kubectl command that must succeed.

    Args:
        target: Cluster to talk to, or None for the current context.
        *args: kubectl arguments.
        stdin: Text piped to kubectl.

    Returns:
        Command stdout.

    Raises:
        RuntimeError: If kubectl exits non-zero.
    """
    flags = target.kubectl_flags() if target else []
    logger.debug("$ kubectl %s", " ".join([*flags, *args]))
    try:
        if stdin is not None:
            return str(sh.kubectl(*flags, *args, _in=stdin))
        return str(sh.kubectl(*flags, *args))
    except sh.ErrorReturnCode as err:
        stderr = err.stderr.decode(errors="replace").strip() if err.stderr else ""
        raise RuntimeError(f"kubectl {' '.join(args)} failed: {stderr[:300]}") from err


def apply_manifest(target: ClusterTarget | None, manifest_yaml: str) -> None:
    """Apply a YAML manifest stream with ``kubectl apply -f -``."""
    kubectl(target, "apply", "-f", "-", stdin=manifest_yaml)


def resource_exists(target: ClusterTarget | None, kind: str, name: str, namespace: str | None = None) -> bool:
    """Return True if ``kubectl get <kind>/<name>`` succeeds."""
    args = ["get", f"{kind}/{name}", "--no-headers"]
    if namespace:
        args += ["-n", namespace]
    ok, _, _ = run_kubectl(args, target=target)
    return ok


def context_exists(context: str) -> bool:
    """Return True if *context* is present in the default kubeconfig."""
    ok, stdout, _ = run_kubectl(["config", "get-contexts", "-o", "name"])
    return ok and context in stdout.split()


def confirm(message: str, assume_yes: bool = False) -> bool:
    """Ask the user to confirm a destructive action.

    Args:
        message: Question shown to the user.
        assume_yes: Skip the prompt and answer yes.

    Returns:
        True if the action should proceed.
    """
    if assume_yes:
        return True
    return typer.confirm(message, default=False)


def split_rows(output: str) -> list[str]:
    """Split ``--no-headers`` kubectl output into non-empty rows."""
    return [line for line in output.splitlines() if line.strip()]
