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

"""MultiKueue wiring of manager, worker, and remote clusters."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path

from rich.panel import Panel
from tenacity import RetryError, retry, retry_if_result, stop_after_attempt, wait_fixed

from multikueue_lab import console
from multikueue_lab.config import REMOTE_LINK, ClusterTarget, MultiKueueLink, QueueQuota
from multikueue_lab.constants import (
    DEFAULT_LOCAL_QUEUE,
    KUBECONFIG_SECRET_KEY,
    NS_DEFAULT,
    NS_KUEUE_SYSTEM,
    REMOTE_KUBECONFIG_CLUSTER,
    REMOTE_KUBECONFIG_CONTEXT,
    REMOTE_KUEUE_ROLLOUT_TIMEOUT,
    REMOTE_SA,
    REMOTE_SA_BINDING,
    REMOTE_SA_ROLE,
    RESOURCE_VERIFY_MAX_RETRIES,
    RESOURCE_VERIFY_POLL_INTERVAL_SECONDS,
    WORKER_SA,
)
from multikueue_lab.kubeconfig import (
    build_kubeconfig,
    cluster_ca_data,
    cluster_server,
    create_service_account,
    service_account_token,
    write_kubeconfig,
)
from multikueue_lab.kueue import install_kueue, kueue_running, rollout_status
from multikueue_lab.manifests import manager_manifests, render, worker_manifests
from multikueue_lab.utils import apply_manifest, kubectl, resource_exists, run_kubectl, split_rows

# (kind, name, namespace) triples checked after applying manifests.
Resource = tuple[str, str, str | None]


# ============================================================================
# Helpers
# ============================================================================

def _show(target: ClusterTarget, args: list[str]) -> str:
    """Print and return the output of a read-only kubectl command."""
    console.print(f"[yellow]$ kubectl {' '.join(args)}[/yellow]")
    ok, stdout, stderr = run_kubectl(args, target=target)
    output = stdout if ok else stderr
    if output.strip():
        console.print(output.rstrip(), markup=False, highlight=False)
    return stdout if ok else ""


def verify_resources(target: ClusterTarget, resources: list[Resource]) -> None:
    """Wait until every listed resource exists.

    Raises:
        RuntimeError: If a resource is still missing after all retries.
    """
    console.print(f"[yellow]ℹ️  Verifying {len(resources)} resources on '{target.name}'...[/yellow]")

    @retry(
        stop=stop_after_attempt(RESOURCE_VERIFY_MAX_RETRIES),
        wait=wait_fixed(RESOURCE_VERIFY_POLL_INTERVAL_SECONDS),
        retry=retry_if_result(lambda missing: bool(missing)),
    )
    def _missing() -> list[str]:
        return [f"{kind}/{name}" for kind, name, ns in resources if not resource_exists(target, kind, name, ns)]

    try:
        _missing()
    except RetryError as err:
        missing = err.last_attempt.result()
        raise RuntimeError(f"Timed out waiting for resources on '{target.name}': {', '.join(missing)}") from err
    console.print("[green]✅ Resources verified successfully[/green]")


def create_kubeconfig_secret(target: ClusterTarget, secret: str, kubeconfig_path: Path) -> None:
    """Store a kubeconfig file in a kueue-system Secret, replacing any previous one."""
    console.print(f"[yellow]ℹ️  Creating secret '{secret}' on '{target.name}'...[/yellow]")
    manifest = kubectl(target, "create", "secret", "generic", secret, "-n", NS_KUEUE_SYSTEM,
                       f"--from-file={KUBECONFIG_SECRET_KEY}={kubeconfig_path}",
                       "--dry-run=client", "-o", "yaml")
    apply_manifest(target, manifest)
    console.print(f"[green]✅ Secret '{secret}' stored on '{target.name}'[/green]")


def _worker_resources(link: MultiKueueLink) -> list[Resource]:
    return [
        ("clusterqueue", link.worker_queue, None),
        ("localqueue", link.local_queue, link.namespace),
        ("localqueue", DEFAULT_LOCAL_QUEUE, NS_DEFAULT),
    ]


def _manager_resources(link: MultiKueueLink, include_default_queue: bool) -> list[Resource]:
    resources: list[Resource] = [
        ("clusterqueue", link.cluster_queue, None),
        ("localqueue", link.local_queue, link.namespace),
        ("admissioncheck", link.admission_check, None),
        ("multikueueconfig", link.config, None),
        ("multikueuecluster", link.cluster, None),
    ]
    if include_default_queue:
        resources.insert(2, ("localqueue", DEFAULT_LOCAL_QUEUE, NS_DEFAULT))
    return resources


# ============================================================================
# Worker and manager
# ============================================================================

def configure_worker(
    target: ClusterTarget,
    link: MultiKueueLink,
    quota: QueueQuota,
    service_account: str | None = WORKER_SA,
) -> None:
    """Create the worker-side queues a link dispatches into.

    Args:
        target: Worker cluster.
        link: Names wiring the manager to this worker.
        quota: Nominal quota of the worker ClusterQueue.
        service_account: ServiceAccount the manager authenticates as, checked when set.
    """
    console.print(Panel.fit(f"Configuring worker cluster '{target.name}'", style="bold blue"))
    apply_manifest(target, render(worker_manifests(link, quota)))
    verify_resources(target, _worker_resources(link))

    if service_account is not None:
        if resource_exists(target, "serviceaccount", service_account, NS_KUEUE_SYSTEM):
            console.print(f"[green]✅ Service account '{service_account}' exists[/green]")
        else:
            console.print(f"[yellow]⚠️  Service account '{service_account}' not found. "
                          "Create the worker kubeconfig before configuring the manager.[/yellow]")

    _show(target, ["get", "clusterqueue", link.worker_queue, "-o", "yaml"])
    _show(target, ["get", "localqueue", "-n", link.namespace])
    _show(target, ["get", "localqueue", "-n", NS_DEFAULT])
    _show(target, ["get", "resourceflavor"])
    console.print(f"[green]✅ Worker cluster '{target.name}' configured[/green]")


def configure_manager(
    target: ClusterTarget,
    link: MultiKueueLink,
    kubeconfig_path: Path,
    quota: QueueQuota,
    include_default_queue: bool = True,
) -> None:
    """Point the manager at a worker through a MultiKueue admission check.

    Args:
        target: Manager cluster.
        link: Names wiring the manager to the worker.
        kubeconfig_path: Worker kubeconfig stored in the link's Secret.
        quota: Nominal quota of the manager ClusterQueue.
        include_default_queue: Also route ``default/default-local-queue`` through this link.

    Raises:
        RuntimeError: If the kubeconfig file is missing or resources never appear.
    """
    console.print(Panel.fit(f"Configuring manager cluster '{target.name}'", style="bold blue"))
    if not kubeconfig_path.is_file():
        raise RuntimeError(f"Worker kubeconfig '{kubeconfig_path}' not found. Create it first.")

    create_kubeconfig_secret(target, link.secret, kubeconfig_path)
    apply_manifest(target, render(manager_manifests(link, quota, include_default_queue=include_default_queue)))
    verify_resources(target, _manager_resources(link, include_default_queue))

    _show(target, ["get", "admissioncheck", link.admission_check, "-o", "yaml"])
    _show(target, ["get", "multikueueconfig", link.config, "-o", "yaml"])
    _show(target, ["get", "multikueuecluster", link.cluster, "-o", "yaml"])
    _show(target, ["get", "clusterqueue", link.cluster_queue, "-o", "yaml"])

    if link.secret != REMOTE_LINK.secret and resource_exists(target, "secret", REMOTE_LINK.secret, NS_KUEUE_SYSTEM):
        console.print("[green]✅ Remote cluster detected and configured[/green]")
    console.print(f"[green]✅ MultiKueue configured on '{target.name}'[/green]")


# ============================================================================
# Remote cluster
# ============================================================================

def configure_remote(
    manager: ClusterTarget,
    remote_kubeconfig: Path,
    quota: QueueQuota,
    version: str,
    link: MultiKueueLink = REMOTE_LINK,
    out_dir: Path | None = None,
) -> Path:
    """Add an existing cluster as a MultiKueue worker of the manager.

    Installs Kueue on the remote cluster, creates its queues and a
    restricted service account, writes a token kubeconfig for it, and wires
    the manager to it.

    Args:
        manager: Manager cluster.
        remote_kubeconfig: Admin kubeconfig of the remote cluster.
        quota: Nominal quota of the ClusterQueues on both sides.
        version: Kueue release installed on the remote cluster.
        link: Names wiring the manager to the remote cluster.
        out_dir: Directory for the generated kubeconfig, default the working directory.

    Returns:
        Path of the generated remote kubeconfig.

    Raises:
        RuntimeError: If the remote cluster is unreachable or setup fails.
    """
    console.print(Panel.fit("Configuring remote MultiKueue cluster", style="bold blue"))
    if not remote_kubeconfig.is_file():
        raise RuntimeError(f"Remote kubeconfig file not found: {remote_kubeconfig}")
    remote = ClusterTarget(name="remote", kubeconfig=remote_kubeconfig)

    ok, _, stderr = run_kubectl(["cluster-info"], target=remote)
    if not ok:
        raise RuntimeError(f"Cannot connect to remote cluster: {stderr.strip()[:300]}")
    ok, context, _ = run_kubectl(["config", "current-context"], target=remote)
    console.print(f"[green]✅ Connected to remote cluster (context {context.strip() if ok else 'unknown'})[/green]")

    install_kueue(remote, version)
    rollout_status(remote, REMOTE_KUEUE_ROLLOUT_TIMEOUT)
    configure_worker(remote, link, quota, service_account=None)

    create_service_account(remote, REMOTE_SA, REMOTE_SA_ROLE, REMOTE_SA_BINDING, rules_profile="remote")
    token = service_account_token(remote, REMOTE_SA)
    server = cluster_server(remote)
    try:
        data = build_kubeconfig(REMOTE_KUBECONFIG_CLUSTER, REMOTE_KUBECONFIG_CONTEXT, REMOTE_SA,
                                server, token, ca_data=cluster_ca_data(remote))
    except RuntimeError:
        console.print("[yellow]⚠️  Remote kubeconfig has no CA data, skipping TLS verification[/yellow]")
        data = build_kubeconfig(REMOTE_KUBECONFIG_CLUSTER, REMOTE_KUBECONFIG_CONTEXT, REMOTE_SA,
                                server, token, insecure=True)
    path = write_kubeconfig((out_dir or Path.cwd()) / link.kubeconfig_file, data)
    console.print(f"[green]✅ Generated {path} for manager cluster access[/green]")

    configure_manager(manager, link, path, quota, include_default_queue=False)
    return path


# ============================================================================
# Inspection
# ============================================================================

@dataclass
class QueueRoute:
    """Where a LocalQueue on the manager sends its workloads."""

    namespace: str
    name: str
    cluster_queue: str
    remote: bool


@dataclass
class ManagerReport:
    """Summary of the MultiKueue state of a manager cluster."""

    kueue_running: bool = False
    clusters: dict[str, str] = field(default_factory=dict)
    routes: list[QueueRoute] = field(default_factory=list)


def cluster_active_status(target: ClusterTarget, name: str) -> str:
    """Return the ``Active`` condition of a MultiKueueCluster.

    Returns:
        ``True``, ``False`` or ``Unknown``.
    """
    ok, stdout, _ = run_kubectl(
        ["get", "multikueuecluster", name,
         "-o", 'jsonpath={.status.conditions[?(@.type=="Active")].status}'],
        target=target,
    )
    status = stdout.strip() if ok else ""
    return status if status in ("True", "False") else "Unknown"


def _dispatches_remotely(target: ClusterTarget, cluster_queue: str) -> bool:
    ok, stdout, _ = run_kubectl(
        ["get", "clusterqueue", cluster_queue, "-o", "jsonpath={.spec.admissionChecks}"], target=target)
    return ok and "multikueue" in stdout


def inspect_manager(target: ClusterTarget) -> ManagerReport:
    """Print the MultiKueue configuration of a manager cluster.

    Args:
        target: Manager cluster.

    Returns:
        Controller state, MultiKueueCluster activity and LocalQueue routing.
    """
    report = ManagerReport()
    console.print(Panel.fit(f"Inspecting MultiKueue on '{target.name}'", style="bold blue"))

    report.kueue_running = kueue_running(target)
    if report.kueue_running:
        console.print("[green]✅ Kueue controller manager is running[/green]")
    else:
        console.print("[yellow]⚠️  Kueue controller manager is not running properly[/yellow]")

    if _show(target, ["get", "multikueueconfigs", "-o", "wide"]).strip() == "":
        console.print("[cyan]ℹ️  No MultiKueueConfigs found[/cyan]")
    _show(target, ["get", "multikueueclusters", "-o", "wide"])
    _show(target, ["get", "clusterqueues", "-o", "wide"])
    _show(target, ["get", "admissionchecks", "-o", "wide"])
    _show(target, ["get", "localqueues", "-A", "-o", "wide"])

    ok, stdout, _ = run_kubectl(
        ["get", "localqueues", "-A", "--no-headers",
         "-o", "custom-columns=NS:.metadata.namespace,NAME:.metadata.name,CQ:.spec.clusterQueue"],
        target=target,
    )
    console.print("[cyan]Available queues on manager cluster:[/cyan]")
    for row in split_rows(stdout) if ok else []:
        ns, name, cq = (row.split() + ["unknown"] * 3)[:3]
        route = QueueRoute(ns, name, cq, _dispatches_remotely(target, cq))
        report.routes.append(route)
        where = "Dispatches to remote cluster via MultiKueue" if route.remote else "Runs locally on manager cluster"
        console.print(f"  • {ns}/{name}\n    → {where}")

    ok, stdout, _ = run_kubectl(
        ["get", "multikueueclusters", "-o", "jsonpath={.items[*].metadata.name}"], target=target)
    names = stdout.split() if ok else []
    if not names:
        console.print("[cyan]ℹ️  No MultiKueueClusters configured[/cyan]")
    for name in names:
        status = cluster_active_status(target, name)
        report.clusters[name] = status
        if status == "True":
            console.print(f"[green]✅ Cluster {name} is active and reachable[/green]")
        elif status == "False":
            console.print(f"[yellow]⚠️  Cluster {name} is not active - check connection[/yellow]")
        else:
            console.print(f"[cyan]ℹ️  Cluster {name} status: {status}[/cyan]")
    return report
