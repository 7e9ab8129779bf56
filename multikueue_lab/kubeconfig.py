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

"""Service-account credentials and kubeconfig files for MultiKueue clusters."""

from __future__ import annotations

import base64
import ipaddress
import warnings
from pathlib import Path

import requests
import sh
import yaml
from rich.panel import Panel
from tenacity import RetryError, retry, retry_if_result, stop_after_attempt, wait_fixed

from multikueue_lab import console, logger
from multikueue_lab.colima import gateway_ip
from multikueue_lab.config import ClusterSpec, ClusterTarget
from multikueue_lab.constants import (
    HOST_IP_CANDIDATES,
    HOST_PROBE_TIMEOUT_SECONDS,
    LOOPBACK_IP,
    NS_KUEUE_SYSTEM,
    REMOTE_TOKEN_DURATION,
    TOKEN_MAX_RETRIES,
    TOKEN_POLL_INTERVAL_SECONDS,
    WORKER_KUBECONFIG_CLUSTER,
    WORKER_KUBECONFIG_CONTEXT,
    WORKER_SA,
    WORKER_SA_BINDING,
    WORKER_SA_ROLE,
    WORKER_SA_TOKEN_SECRET,
)
from multikueue_lab.manifests import RULE_PROFILES, render, service_account_rbac, service_account_token_secret
from multikueue_lab.utils import apply_manifest, kubectl, resource_exists, run_kubectl


# ============================================================================
# Service accounts and tokens
# ============================================================================

def create_service_account(
    target: ClusterTarget,
    sa: str = WORKER_SA,
    role: str = WORKER_SA_ROLE,
    binding: str = WORKER_SA_BINDING,
    rules_profile: str = "worker",
    cluster_admin: bool = False,
) -> None:
    """Create a ServiceAccount in kueue-system bound to a ClusterRole.

    Args:
        target: Cluster to create the account in.
        sa: ServiceAccount name.
        role: ClusterRole name.
        binding: ClusterRoleBinding name.
        rules_profile: ``worker`` or ``remote`` rule set.
        cluster_admin: Bind to ``cluster-admin`` instead of the rule set.

    Raises:
        RuntimeError: If the ServiceAccount does not exist after applying.
    """
    console.print(f"[yellow]ℹ️  Creating service account '{sa}' on '{target.name}'...[/yellow]")
    docs = service_account_rbac(sa, role, binding, RULE_PROFILES[rules_profile], cluster_admin=cluster_admin)
    apply_manifest(target, render(docs))
    if not resource_exists(target, "serviceaccount", sa, NS_KUEUE_SYSTEM):
        raise RuntimeError(f"Service account '{sa}' was not created on '{target.name}'")
    console.print(f"[green]✅ Service account '{sa}' ready[/green]")


def _read_secret_token(target: ClusterTarget, secret_name: str) -> str:
    ok, stdout, _ = run_kubectl(
        ["get", "secret", secret_name, "-n", NS_KUEUE_SYSTEM, "-o", "jsonpath={.data.token}"],
        target=target,
    )
    if not ok or not stdout.strip():
        return ""
    return base64.b64decode(stdout.strip()).decode()


def service_account_token(target: ClusterTarget, sa: str, secret_name: str | None = None) -> str:
    """Return a long-lived bearer token for a ServiceAccount.

    With *secret_name* a ``kubernetes.io/service-account-token`` Secret is
    applied and polled until the token controller fills it in. Without it,
    the first Secret listed on the ServiceAccount is used, falling back to
    ``kubectl create token`` on clusters that no longer auto-create them.

    Args:
        target: Cluster holding the ServiceAccount.
        sa: ServiceAccount name in kueue-system.
        secret_name: Token Secret to create, or None.

    Returns:
        Decoded token.

    Raises:
        RuntimeError: If no token can be obtained.
    """
    if secret_name is not None:
        apply_manifest(target, render([service_account_token_secret(secret_name, sa)]))

        @retry(
            stop=stop_after_attempt(TOKEN_MAX_RETRIES),
            wait=wait_fixed(TOKEN_POLL_INTERVAL_SECONDS),
            retry=retry_if_result(lambda token: not token),
        )
        def _wait_token() -> str:
            return _read_secret_token(target, secret_name)

        try:
            token = _wait_token()
        except RetryError as err:
            raise RuntimeError(f"Timed out waiting for token in secret '{secret_name}'") from err
        console.print("[green]✅ Service account token extracted[/green]")
        return token

    ok, stdout, _ = run_kubectl(
        ["get", "sa", sa, "-n", NS_KUEUE_SYSTEM, "-o", "jsonpath={.secrets[0].name}"], target=target)
    if ok and stdout.strip():
        token = _read_secret_token(target, stdout.strip())
        if token:
            return token
    console.print("[yellow]ℹ️  Creating service account token (Kubernetes 1.24+)...[/yellow]")
    token = kubectl(target, "create", "token", sa, "-n", NS_KUEUE_SYSTEM,
                    f"--duration={REMOTE_TOKEN_DURATION}").strip()
    if not token:
        raise RuntimeError(f"Could not obtain a token for service account '{sa}'")
    return token


# ============================================================================
# Cluster endpoint data
# ============================================================================

def cluster_ca_data(target: ClusterTarget) -> str:
    """Return the base64 CA bundle of *target*'s cluster from the kubeconfig."""
    ca = kubectl(target, "config", "view", "--minify", "--raw",
                 "-o", "jsonpath={.clusters[0].cluster.certificate-authority-data}").strip()
    if not ca:
        raise RuntimeError(f"No certificate-authority-data found for '{target.name}'")
    return ca


def cluster_server(target: ClusterTarget) -> str:
    """Return the API server URL of *target*'s cluster from the kubeconfig."""
    server = kubectl(target, "config", "view", "--minify",
                     "-o", "jsonpath={.clusters[0].cluster.server}").strip()
    if not server:
        raise RuntimeError(f"No API server found for '{target.name}'")
    return server


# ============================================================================
# Kubeconfig files
# ============================================================================

def build_kubeconfig(
    cluster: str,
    context: str,
    user: str,
    server: str,
    token: str,
    ca_data: str | None = None,
    insecure: bool = False,
) -> dict:
    """Build a single-cluster token kubeconfig.

    Args:
        cluster: Cluster entry name.
        context: Context entry name, also the current context.
        user: User entry name.
        server: API server URL.
        token: Bearer token.
        ca_data: Base64 CA bundle.
        insecure: Skip TLS verification instead of pinning a CA.

    Returns:
        Kubeconfig document.

    Raises:
        ValueError: If neither or both of *ca_data* and *insecure* are given.
    """
    if bool(ca_data) == insecure:
        raise ValueError("exactly one of ca_data or insecure must be set")
    cluster_entry: dict = {"server": server}
    if insecure:
        cluster_entry["insecure-skip-tls-verify"] = True
    else:
        cluster_entry["certificate-authority-data"] = ca_data
    return {
        "apiVersion": "v1",
        "kind": "Config",
        "clusters": [{"name": cluster, "cluster": cluster_entry}],
        "contexts": [{"name": context, "context": {"cluster": cluster, "user": user}}],
        "current-context": context,
        "users": [{"name": user, "user": {"token": token}}],
    }


def write_kubeconfig(path: Path, data: dict) -> Path:
    """Write a kubeconfig readable only by the current user."""
    path.write_text(yaml.safe_dump(data, sort_keys=False))
    path.chmod(0o600)
    return path


# ============================================================================
# Host IP detection
# ============================================================================

def _api_reachable(host: str, port: int) -> bool:
    """Return True if an HTTPS request to ``/api`` gets any HTTP response."""
    with warnings.catch_warnings():
        warnings.simplefilter("ignore")
        try:
            requests.get(f"https://{host}:{port}/api", verify=False, timeout=HOST_PROBE_TIMEOUT_SECONDS)
        except requests.RequestException as err:
            logger.debug("probe of %s:%d failed: %s", host, port, err)
            return False
    return True


def _first_address(output: str) -> str | None:
    for token in output.split():
        try:
            addr = ipaddress.ip_address(token)
        except ValueError:
            continue
        if not addr.is_loopback:
            return str(addr)
    return None


def _local_address() -> str | None:
    """Return the host's first non-loopback address (Linux, then macOS)."""
    for cmd, args in (("hostname", ("-I",)), ("ipconfig", ("getifaddr", "en0"))):
        try:
            output = str(sh.Command(cmd)(*args))
        except (sh.ErrorReturnCode, sh.CommandNotFound) as err:
            logger.debug("%s failed: %s", cmd, err)
            continue
        addr = _first_address(output)
        if addr:
            return addr
    return None


def detect_host_ip(colima_profile: str | None, port: int) -> str:
    """Detect an address of this host that another Colima VM can reach.

    Tries the Colima network gateway, then probes well-known Docker host
    aliases on *port*, then the host's own address, finally loopback.

    Args:
        colima_profile: Profile whose VM network is inspected, or None to skip.
        port: Host port the worker API server is published on.

    Returns:
        IP address or hostname.
    """
    console.print("[yellow]ℹ️  Detecting host IP for cross-VM communication...[/yellow]")
    if colima_profile:
        gateway = gateway_ip(colima_profile)
        if gateway:
            console.print(f"[green]✅ Found Colima network gateway: {gateway}[/green]")
            return gateway

    for candidate in HOST_IP_CANDIDATES:
        if _api_reachable(candidate, port):
            console.print(f"[green]✅ Found working host address: {candidate}[/green]")
            return candidate

    local = _local_address()
    if local:
        console.print(f"[green]✅ Using host external IP: {local}[/green]")
        return local

    console.print("[yellow]⚠️  Could not auto-detect host IP. Using localhost as fallback.[/yellow]")
    console.print("[yellow]   If the manager cannot connect, edit the server address in the kubeconfig.[/yellow]")
    return LOOPBACK_IP


# ============================================================================
# Worker kubeconfig export
# ============================================================================

def export_worker_kubeconfig(
    worker: ClusterSpec,
    path: Path,
    via_host: bool = False,
    colima_profile: str | None = None,
    cluster_admin: bool = False,
    force: bool = False,
) -> Path:
    """Produce the kubeconfig the manager uses to reach a worker cluster.

    On a shared Docker network the worker is addressed by its container
    name and its CA is pinned. Across VMs it is addressed by a detected host
    IP and TLS verification is skipped, since the API certificate does not
    cover that address.

    Args:
        worker: Worker cluster spec.
        path: Destination kubeconfig file.
        via_host: Address the worker through the host instead of the Docker network.
        colima_profile: Colima profile used for host IP detection.
        cluster_admin: Bind the service account to ``cluster-admin``.
        force: Regenerate even if *path* already exists.

    Returns:
        Path of the kubeconfig file.
    """
    console.print(Panel.fit(f"Creating MultiKueue kubeconfig for '{worker.name}'", style="bold blue"))
    if path.exists() and not force:
        console.print(f"[yellow]⚠️  Worker kubeconfig '{path}' already exists. Using existing file.[/yellow]")
        return path

    target = worker.target()
    create_service_account(target, cluster_admin=cluster_admin)
    token = service_account_token(target, WORKER_SA, secret_name=WORKER_SA_TOKEN_SECRET)

    if via_host:
        host = detect_host_ip(colima_profile, worker.api_port)
        server = f"https://{host}:{worker.api_port}"
        data = build_kubeconfig(WORKER_KUBECONFIG_CLUSTER, WORKER_KUBECONFIG_CONTEXT, WORKER_SA,
                                server, token, insecure=True)
    else:
        server = worker.internal_server
        data = build_kubeconfig(WORKER_KUBECONFIG_CLUSTER, WORKER_KUBECONFIG_CONTEXT, WORKER_SA,
                                server, token, ca_data=cluster_ca_data(target))

    write_kubeconfig(path, data)
    console.print(f"[green]✅ Worker kubeconfig written to {path} (server {server})[/green]")
    return path
