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

"""Kueue installation, controller configuration, and removal."""

from __future__ import annotations

from rich.panel import Panel

from multikueue_lab import console
from multikueue_lab.config import ClusterTarget
from multikueue_lab.constants import (
    KUEUE_CONTROLLER_DEPLOYMENT,
    KUEUE_READY_TIMEOUT,
    LABEL_CONTROL_PLANE,
    NS_KUEUE_SYSTEM,
    kueue_manifests_url,
)
from multikueue_lab.manifests import kueue_configuration, render
from multikueue_lab.utils import apply_manifest, kubectl, run_kubectl


def install_kueue(target: ClusterTarget, version: str) -> None:
    """Install Kueue from its GitHub release manifests.

    Server-side apply is required because the Kueue CRDs exceed the
    client-side annotation size limit.

    Args:
        target: Cluster to install into.
        version: Kueue release tag.
    """
    console.print(Panel.fit(f"Installing Kueue {version} on '{target.name}'", style="bold blue"))
    kubectl(target, "apply", "--server-side", "-f", kueue_manifests_url(version))
    console.print(f"[green]✅ Kueue manifests applied on '{target.name}'[/green]")


def wait_for_kueue(target: ClusterTarget, timeout: str = KUEUE_READY_TIMEOUT) -> None:
    """Wait until the Kueue controller deployment is Available.

    Raises:
        RuntimeError: If the deployment does not become available in time.
    """
    console.print(f"[yellow]ℹ️  Waiting for Kueue controller on '{target.name}' (timeout {timeout})...[/yellow]")
    ok, _, stderr = run_kubectl(
        ["wait", "--for=condition=Available", f"deployment/{KUEUE_CONTROLLER_DEPLOYMENT}",
         "-n", NS_KUEUE_SYSTEM, f"--timeout={timeout}"],
        target=target,
        timeout=_seconds(timeout) + 30,
    )
    if not ok:
        raise RuntimeError(f"Timed out waiting for Kueue controller on '{target.name}': {stderr.strip()}")
    console.print(f"[green]✅ Kueue controller is available on '{target.name}'[/green]")


def rollout_status(target: ClusterTarget, timeout: str) -> None:
    """Wait for the Kueue controller rollout to finish."""
    ok, _, stderr = run_kubectl(
        ["rollout", "status", f"deployment/{KUEUE_CONTROLLER_DEPLOYMENT}",
         "-n", NS_KUEUE_SYSTEM, f"--timeout={timeout}"],
        target=target,
        timeout=_seconds(timeout) + 30,
    )
    if not ok:
        raise RuntimeError(f"Timed out waiting for Kueue rollout on '{target.name}': {stderr.strip()}")


def configure_minimal_integrations(target: ClusterTarget) -> None:
    """Limit Kueue to ``batch/job`` and restart the controller.

    Args:
        target: Cluster whose Kueue controller is reconfigured.
    """
    console.print(f"[yellow]ℹ️  Configuring Kueue integrations on '{target.name}'...[/yellow]")
    apply_manifest(target, render([kueue_configuration()]))
    kubectl(target, "rollout", "restart", f"deployment/{KUEUE_CONTROLLER_DEPLOYMENT}", "-n", NS_KUEUE_SYSTEM)
    wait_for_kueue(target)
    console.print(f"[green]✅ Kueue restricted to batch/job on '{target.name}'[/green]")


def uninstall_kueue(target: ClusterTarget, version: str) -> bool:
    """Delete the Kueue release manifests without waiting for finalizers.

    Returns:
        True if kubectl reported success.
    """
    console.print(f"[yellow]ℹ️  Uninstalling Kueue {version} from '{target.name}'...[/yellow]")
    ok, _, stderr = run_kubectl(
        ["delete", "-f", kueue_manifests_url(version), "--ignore-not-found", "--wait=false"],
        target=target,
        timeout=120,
    )
    if ok:
        console.print(f"[green]✅ Kueue removed from '{target.name}'[/green]")
    else:
        console.print(f"[yellow]⚠️  Kueue removal reported errors: {stderr.strip()[:200]}[/yellow]")
    return ok


def kueue_running(target: ClusterTarget) -> bool:
    """Return True if the Kueue deployment exists and a controller pod is Running."""
    ok, _, _ = run_kubectl(
        ["get", f"deployment/{KUEUE_CONTROLLER_DEPLOYMENT}", "-n", NS_KUEUE_SYSTEM], target=target)
    if not ok:
        return False
    ok, stdout, _ = run_kubectl(
        ["get", "pods", "-n", NS_KUEUE_SYSTEM, "-l", f"{LABEL_CONTROL_PLANE}=controller-manager",
         "-o", "jsonpath={.items[*].status.phase}"],
        target=target,
    )
    return ok and "Running" in stdout.split()


def _seconds(timeout: str) -> int:
    """Convert a kubectl duration such as ``300s`` or ``5m`` to seconds."""
    units = {"s": 1, "m": 60, "h": 3600}
    if timeout and timeout[-1] in units:
        return int(timeout[:-1]) * units[timeout[-1]]
    return int(timeout)
