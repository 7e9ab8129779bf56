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

"""k3d and kind cluster lifecycle, the shared Docker network, and kubectl contexts."""

from __future__ import annotations

import os
import tempfile
from collections.abc import Sequence
from pathlib import Path

import docker
import sh
import yaml
from rich.panel import Panel
from tenacity import retry, stop_after_attempt, wait_fixed

from multikueue_lab import console, logger
from multikueue_lab.config import ClusterSpec, ClusterTarget
from multikueue_lab.constants import (
    CLUSTER_CREATE_RETRY_WAIT_SECONDS,
    CLUSTER_INTERNAL_API_PORT,
    CLUSTER_TIMEOUT,
    NODES_READY_TIMEOUT,
    PROVIDER_KIND,
)
from multikueue_lab.manifests import kind_cluster_config
from multikueue_lab.utils import kubectl, run_kubectl


# ============================================================================
# Docker network
# ============================================================================

def docker_available() -> bool:
    """Return True if the Docker daemon of the current context answers a ping."""
    try:
        client = docker.from_env()
    except docker.errors.DockerException as e:
        logger.debug("Docker client unavailable: %s", e)
        return False
    try:
        return bool(client.ping())
    except docker.errors.DockerException as e:
        logger.debug("Docker ping failed: %s", e)
        return False
    finally:
        client.close()


def network_exists(name: str) -> bool:
    """Return True if a Docker network called *name* exists."""
    client = docker.from_env()
    try:
        return any(net.name == name for net in client.networks.list(names=[name]))
    finally:
        client.close()


def ensure_network(name: str) -> None:
    """Create the Docker bridge network joining the clusters if it is missing.

    Args:
        name: Docker network name.
    """
    client = docker.from_env()
    try:
        if any(net.name == name for net in client.networks.list(names=[name])):
            console.print(f"[yellow]   Docker network '{name}' already exists[/yellow]")
            return
        client.networks.create(name, driver="bridge")
        console.print(f"[green]✅ Docker network '{name}' created[/green]")
    finally:
        client.close()


def remove_network(name: str) -> None:
    """Remove a Docker network, ignoring networks that do not exist."""
    try:
        client = docker.from_env()
    except docker.errors.DockerException as e:
        console.print(f"[yellow]⚠️  Docker is not available, skipping network removal: {e}[/yellow]")
        return
    try:
        client.networks.get(name).remove()
        console.print(f"[green]✅ Docker network '{name}' removed[/green]")
    except docker.errors.NotFound:
        console.print(f"[yellow]⚠️  Docker network '{name}' not found or already removed[/yellow]")
    except docker.errors.APIError as e:
        console.print(f"[yellow]⚠️  Could not remove Docker network '{name}': {e}[/yellow]")
    finally:
        client.close()


# ============================================================================
# Cluster operations
# ============================================================================

def cluster_exists(spec: ClusterSpec) -> bool:
    """Return True if the provider lists a cluster named ``spec.name``."""
    try:
        if spec.provider == PROVIDER_KIND:
            names = str(sh.kind("get", "clusters")).split()
        else:
            names = [line.split()[0] for line in str(sh.k3d("cluster", "list", "--no-headers")).splitlines()
                     if line.strip()]
    except (sh.ErrorReturnCode, sh.CommandNotFound) as err:
        logger.debug("listing %s clusters failed: %s", spec.provider, err)
        return False
    return spec.name in names


def delete_cluster(spec: ClusterSpec) -> None:
    """Delete a k3d or kind cluster.

    Args:
        spec: Cluster to delete.
    """
    console.print(f"[yellow]ℹ️  Deleting {spec.provider} cluster '{spec.name}'...[/yellow]")
    try:
        if spec.provider == PROVIDER_KIND:
            sh.kind("delete", "cluster", "--name", spec.name)
        else:
            sh.k3d("cluster", "delete", spec.name)
        console.print(f"[green]✅ Cluster '{spec.name}' deleted[/green]")
    except sh.ErrorReturnCode_1:
        console.print(f"[yellow]⚠️  Cluster '{spec.name}' not found or already deleted[/yellow]")


def _k3d_create_args(spec: ClusterSpec) -> list[str]:
    args = [
        "cluster", "create", spec.name,
        "--servers", "1",
        "--agents", str(spec.agents),
        "--port", f"{spec.api_port}:{CLUSTER_INTERNAL_API_PORT}@server:0",
    ]
    for mapping in spec.lb_ports:
        args += ["--port", f"{mapping}@loadbalancer"]
    args += ["--k3s-arg", "--disable=traefik@server:0"]
    if spec.image:
        args += ["--image", spec.image]
    if spec.network:
        args += ["--network", spec.network]
    args += ["--timeout", CLUSTER_TIMEOUT, "--wait"]
    return args


def create_k3d_cluster(spec: ClusterSpec, max_retries: int = 3) -> None:
    """Create a k3d cluster with retry logic.

    Any existing cluster with the same name is deleted before each attempt.

    Args:
        spec: Cluster name, ports, agents, network and image.
        max_retries: Maximum creation attempts.

    Raises:
        sh.ErrorReturnCode: If the cluster cannot be created after all retries.
    """
    console.print(Panel.fit(f"Creating k3d cluster '{spec.name}'", style="bold blue"))
    console.print(f"[yellow]   API port {spec.api_port}, load balancer ports {', '.join(spec.lb_ports) or 'none'}"
                  f"{', network ' + spec.network if spec.network else ''}[/yellow]")

    @retry(
        stop=stop_after_attempt(max_retries),
        wait=wait_fixed(CLUSTER_CREATE_RETRY_WAIT_SECONDS),
        reraise=True,
    )
    def _attempt() -> None:
        try:
            sh.k3d("cluster", "delete", spec.name)
            console.print("[yellow]   Removed existing cluster[/yellow]")
        except sh.ErrorReturnCode_1:
            console.print("[yellow]   No existing cluster found[/yellow]")
        sh.k3d(*_k3d_create_args(spec))

    _attempt()
    console.print(f"[green]✅ Cluster '{spec.name}' created (context {spec.context})[/green]")


def create_kind_cluster(
    spec: ClusterSpec,
    api_address: str | None = None,
    cert_sans: Sequence[str] = (),
    config_path: Path | None = None,
) -> None:
    """Create a kind cluster from a generated config file.

    Args:
        spec: Cluster name, API port and node image.
        api_address: Address the API server binds to, or None for localhost only.
        cert_sans: Extra names and addresses the API certificate is valid for.
        config_path: Where to keep the generated kind config, or None for a temporary file.
    """
    console.print(Panel.fit(f"Creating kind cluster '{spec.name}'", style="bold blue"))
    config = kind_cluster_config(
        api_address=api_address,
        api_port=spec.api_port,
        cert_sans=cert_sans,
        image=spec.image,
    )
    with tempfile.TemporaryDirectory() as tmp:
        config_path = config_path or Path(tmp) / "kind-config.yaml"
        config_path.write_text(yaml.safe_dump(config, sort_keys=False))
        env_args: dict = {}
        if spec.network:
            env_args["_env"] = {**os.environ, "KIND_EXPERIMENTAL_DOCKER_NETWORK": spec.network}
        if cluster_exists(spec):
            sh.kind("delete", "cluster", "--name", spec.name)
            console.print("[yellow]   Removed existing cluster[/yellow]")
        sh.kind("create", "cluster", "--name", spec.name, "--config", str(config_path),
                "--wait", CLUSTER_TIMEOUT, **env_args)
    console.print(f"[green]✅ Cluster '{spec.name}' created (context {spec.context})[/green]")


def wait_for_nodes(target: ClusterTarget) -> None:
    """Wait for all nodes of a cluster to be ready."""
    console.print(f"[yellow]ℹ️  Waiting for all nodes in '{target.name}' to be ready...[/yellow]")
    kubectl(target, "wait", "--for=condition=Ready", "nodes", "--all", f"--timeout={NODES_READY_TIMEOUT}")
    console.print(f"[green]✅ All nodes in '{target.name}' are ready[/green]")


def export_kind_kubeconfig(name: str, path: Path) -> Path:
    """Write the kubeconfig of a kind cluster to *path*.

    Args:
        name: kind cluster name.
        path: Destination file.

    Returns:
        The written path.
    """
    path.write_text(str(sh.kind("get", "kubeconfig", "--name", name)))
    path.chmod(0o600)
    console.print(f"[green]✅ Kubeconfig for '{name}' written to {path}[/green]")
    return path


# ============================================================================
# kubectl contexts
# ============================================================================

def use_context(context: str) -> None:
    """Make *context* the current kubectl context."""
    kubectl(None, "config", "use-context", context)
    console.print(f"[green]✅ Switched kubectl context to '{context}'[/green]")


def delete_context_entries(context: str) -> None:
    """Remove the context, cluster and user entries a provider registered.

    k3d and kind register all three under the same ``<provider>-<name>`` key
    (k3d prefixes the user with ``admin@``); missing entries are ignored.

    Args:
        context: Context name, e.g. ``k3d-manager``.
    """
    users = [context, f"admin@{context}"]
    steps = [["config", "delete-context", context], ["config", "delete-cluster", context]]
    steps += [["config", "delete-user", user] for user in users]
    for args in steps:
        ok, _, stderr = run_kubectl(args)
        if ok:
            logger.debug("kubectl %s succeeded", " ".join(args))
        else:
            logger.debug("kubectl %s: %s", " ".join(args), stderr.strip())
    console.print(f"[green]✅ Removed kubeconfig entries for '{context}'[/green]")
