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

"""Orchestration functions that compose domain modules into per-topology workflows."""

from __future__ import annotations

import threading
from collections.abc import Callable
from concurrent.futures import ThreadPoolExecutor, as_completed
from pathlib import Path

from rich.panel import Panel

from multikueue_lab import console
from multikueue_lab.cleanup import cleanup_cluster, cleanup_local, cleanup_remote
from multikueue_lab.cluster import (
    create_k3d_cluster,
    create_kind_cluster,
    ensure_network,
    export_kind_kubeconfig,
    use_context,
    wait_for_nodes,
)
from multikueue_lab.colima import start_profile
from multikueue_lab.config import (
    LOCAL_LINK,
    REMOTE_LINK,
    SPLIT_LINK,
    ClusterSpec,
    ClusterTarget,
    JobOptions,
    QueueQuota,
    ResolvedConfig,
    manager_spec,
    worker_spec,
)
from multikueue_lab.constants import (
    CLUSTER_INTERNAL_API_PORT,
    LOOPBACK_IP,
    PROVIDER_KIND,
    REMOTE_KIND_CLUSTER,
    REMOTE_KIND_CONFIG_FILE,
    REMOTE_KIND_KUBECONFIG_FILE,
)
from multikueue_lab.dispatch import DispatchResult, run_dispatch_test
from multikueue_lab.kubeconfig import export_worker_kubeconfig
from multikueue_lab.kueue import configure_minimal_integrations, install_kueue, wait_for_kueue
from multikueue_lab.multikueue import ManagerReport, configure_manager, configure_remote, configure_worker, inspect_manager
from multikueue_lab.utils import check_prerequisites, context_exists

LOCAL_TOOLS = ("colima", "docker", "k3d", "kubectl")
SPLIT_MANAGER_TOOLS = ("colima", "docker", "kind", "kubectl")
SPLIT_WORKER_TOOLS = ("colima", "docker", "k3d", "kubectl")
REMOTE_WORKER_TOOLS = ("docker", "kind", "kubectl")


# ============================================================================
# Internal helpers
# ============================================================================

def _run_parallel(tasks: dict[str, Callable[[], None]]) -> None:
    """Run tasks in parallel, printing each task's output as a clean block.

    Args:
        tasks: Mapping of task name to callable.

    Raises:
        Exception: Re-raises the first exception from any failed task.
    """
    if not tasks:
        return

    outputs: dict[str, str] = {}
    lock = threading.Lock()

    def _run_task(name: str, fn: Callable) -> None:
        with console.buffered() as buf:
            try:
                fn()
            finally:
                with lock:
                    outputs[name] = buf.getvalue()

    try:
        with ThreadPoolExecutor(max_workers=len(tasks)) as executor:
            futures = {executor.submit(_run_task, name, fn): name for name, fn in tasks.items()}
            for future in as_completed(futures):
                future.result()
    finally:
        for name in tasks:
            if outputs.get(name):
                console.print(outputs[name], end="")


def _create_cluster(spec: ClusterSpec, max_retries: int) -> None:
    if spec.provider == PROVIDER_KIND:
        create_kind_cluster(spec)
    else:
        create_k3d_cluster(spec, max_retries=max_retries)
    wait_for_nodes(spec.target())


def _install_and_configure_kueue(target: ClusterTarget, version: str) -> None:
    install_kueue(target, version)
    wait_for_kueue(target)
    configure_minimal_integrations(target)


def _require_context(spec: ClusterSpec, hint: str) -> None:
    if not context_exists(spec.context):
        raise RuntimeError(f"Cluster context '{spec.context}' not found. {hint}")


def _split_manager(cfg: ResolvedConfig) -> ClusterSpec:
    return manager_spec(cfg.clusters, shared_network=False, provider=cfg.clusters.split_manager_provider)


def _split_worker(cfg: ResolvedConfig) -> ClusterSpec:
    return worker_spec(cfg.clusters, shared_network=False)


def _profile(cfg: ResolvedConfig, profile: str):
    return cfg.colima.model_copy(update={"colima_profile": profile})


# ============================================================================
# Local topology: both clusters in one Colima VM
# ============================================================================

def run_local_setup(cfg: ResolvedConfig, install_missing: bool = False, skip_colima: bool = False) -> None:
    """Create the Colima VM, shared network, manager and worker, and install Kueue on both.

    Args:
        cfg: Resolved configuration.
        install_missing: Install missing tools with Homebrew.
        skip_colima: Reuse the Docker runtime that is already running.
    """
    check_prerequisites(LOCAL_TOOLS, install_missing=install_missing)
    if not skip_colima:
        start_profile(cfg.colima)
    manager, worker = manager_spec(cfg.clusters), worker_spec(cfg.clusters)

    console.print(Panel.fit("Creating clusters", style="bold blue"))
    ensure_network(cfg.clusters.network)
    _create_cluster(manager, cfg.clusters.max_retries)
    _create_cluster(worker, cfg.clusters.max_retries)

    version = cfg.kueue.kueue_version
    _run_parallel({
        manager.name: lambda: _install_and_configure_kueue(manager.target(), version),
        worker.name: lambda: _install_and_configure_kueue(worker.target(), version),
    })
    use_context(manager.context)

    console.print(Panel.fit("Setup complete", style="bold green"))
    console.print(f"  manager: {manager.context} (API localhost:{manager.api_port})")
    console.print(f"  worker : {worker.context} (API localhost:{worker.api_port})")
    console.print("Next: multikueue-lab configure local")


def run_local_configure(cfg: ResolvedConfig, force: bool = False, workdir: Path | None = None) -> None:
    """Wire the local manager to the local worker over the shared Docker network."""
    manager, worker = manager_spec(cfg.clusters), worker_spec(cfg.clusters)
    _require_context(manager, "Run 'multikueue-lab setup local' first.")
    _require_context(worker, "Run 'multikueue-lab setup local' first.")
    link = LOCAL_LINK.with_namespace(cfg.kueue.demo_namespace)
    quota = QueueQuota.from_config(cfg.kueue)

    path = export_worker_kubeconfig(worker, (workdir or Path.cwd()) / link.kubeconfig_file, force=force)
    configure_worker(worker.target(), link, quota)
    configure_manager(manager.target(), link, path, quota)
    use_context(manager.context)
    console.print("Next: multikueue-lab test local")


def run_local_test(cfg: ResolvedConfig) -> DispatchResult:
    """Submit the sample job on the local manager and follow it onto the worker."""
    manager, worker = manager_spec(cfg.clusters), worker_spec(cfg.clusters)
    _require_context(manager, "Run setup scripts first.")
    _require_context(worker, "Run setup scripts first.")
    link = LOCAL_LINK.with_namespace(cfg.kueue.demo_namespace)
    return run_dispatch_test(manager.target(), worker.target(), JobOptions.for_link(link, cfg.kueue))


def run_local_cleanup(cfg: ResolvedConfig, assume_yes: bool = False, workdir: Path | None = None) -> bool:
    return cleanup_local(cfg, manager_spec(cfg.clusters), worker_spec(cfg.clusters), assume_yes, workdir)


# ============================================================================
# Split topology: manager and worker in separate Colima VMs
# ============================================================================

def run_split_manager_setup(cfg: ResolvedConfig, install_missing: bool = False, skip_colima: bool = False) -> None:
    """Create the manager VM and cluster and install Kueue."""
    check_prerequisites(SPLIT_MANAGER_TOOLS, install_missing=install_missing)
    if not skip_colima:
        start_profile(_profile(cfg, cfg.colima.manager_profile))
    manager = _split_manager(cfg)
    _create_cluster(manager, cfg.clusters.max_retries)
    _install_and_configure_kueue(manager.target(), cfg.kueue.kueue_version)
    use_context(manager.context)
    console.print("Next: copy the worker kubeconfig here and run 'multikueue-lab configure manager'")


def run_split_worker_setup(cfg: ResolvedConfig, install_missing: bool = False, skip_colima: bool = False) -> None:
    """Create the worker VM and cluster and install Kueue."""
    check_prerequisites(SPLIT_WORKER_TOOLS, install_missing=install_missing)
    if not skip_colima:
        start_profile(_profile(cfg, cfg.colima.worker_profile))
    worker = _split_worker(cfg)
    _create_cluster(worker, cfg.clusters.max_retries)
    _install_and_configure_kueue(worker.target(), cfg.kueue.kueue_version)
    use_context(worker.context)
    console.print("Next: multikueue-lab configure worker-kubeconfig")


def run_split_worker_kubeconfig(cfg: ResolvedConfig, force: bool = False, workdir: Path | None = None) -> Path:
    """Export a kubeconfig the manager VM can use to reach the worker through the host."""
    worker = _split_worker(cfg)
    _require_context(worker, "Run 'multikueue-lab setup worker' first.")
    path = export_worker_kubeconfig(
        worker,
        (workdir or Path.cwd()) / SPLIT_LINK.kubeconfig_file,
        via_host=True,
        colima_profile=cfg.colima.worker_profile,
        cluster_admin=True,
        force=force,
    )
    console.print(f"Move {path} to the machine running the manager and run 'multikueue-lab configure manager'")
    return path


def run_split_manager_configure(
    cfg: ResolvedConfig,
    kubeconfig: Path | None = None,
    workdir: Path | None = None,
) -> None:
    """Point the split manager at the worker kubeconfig.

    The kubeconfig is *kubeconfig* when given, else REMOTE_KUBECONFIG for a
    kind worker on another machine, else the file exported from the worker VM.
    """
    manager = _split_manager(cfg)
    _require_context(manager, "Run 'multikueue-lab setup manager' first.")
    link = SPLIT_LINK.with_namespace(cfg.kueue.demo_namespace)
    path = kubeconfig or cfg.remote.remote_kubeconfig or (workdir or Path.cwd()) / link.kubeconfig_file
    configure_manager(manager.target(), link, path, QueueQuota.from_config(cfg.kueue))


def run_split_worker_configure(cfg: ResolvedConfig) -> None:
    """Create the worker queues the split manager dispatches into."""
    worker = _split_worker(cfg)
    _require_context(worker, "Run 'multikueue-lab setup worker' first.")
    link = SPLIT_LINK.with_namespace(cfg.kueue.demo_namespace)
    configure_worker(worker.target(), link, QueueQuota.from_config(cfg.kueue))


def run_split_manager_test(cfg: ResolvedConfig) -> ManagerReport:
    """Inspect the split manager's MultiKueue configuration and cluster connections."""
    manager = _split_manager(cfg)
    _require_context(manager, "Run 'multikueue-lab setup manager' first.")
    return inspect_manager(manager.target())


def run_split_manager_cleanup(cfg: ResolvedConfig, assume_yes: bool = False, workdir: Path | None = None) -> bool:
    return cleanup_cluster("manager", cfg, _split_manager(cfg), cfg.colima.manager_profile, assume_yes, workdir)


def run_split_worker_cleanup(cfg: ResolvedConfig, assume_yes: bool = False, workdir: Path | None = None) -> bool:
    return cleanup_cluster("worker", cfg, _split_worker(cfg), cfg.colima.worker_profile, assume_yes, workdir)


# ============================================================================
# Remote topology: an existing cluster as worker
# ============================================================================

def run_remote_worker_setup(cfg: ResolvedConfig, install_missing: bool = False, workdir: Path | None = None) -> Path:
    """Create a kind cluster that other machines reach at ``WORKER_IP``.

    Args:
        cfg: Resolved configuration; ``cfg.remote.worker_ip`` is required.
        install_missing: Install missing tools with Homebrew.
        workdir: Directory for the kind config and exported kubeconfig.

    Returns:
        Path of the exported admin kubeconfig.

    Raises:
        RuntimeError: If ``WORKER_IP`` is not set.
    """
    if cfg.remote.worker_ip is None:
        raise RuntimeError("WORKER_IP is not set. Export the address other machines use to reach this host.")
    workdir = workdir or Path.cwd()
    worker_ip = str(cfg.remote.worker_ip)
    check_prerequisites(REMOTE_WORKER_TOOLS, install_missing=install_missing)

    spec = ClusterSpec(name=REMOTE_KIND_CLUSTER, provider=PROVIDER_KIND, api_port=CLUSTER_INTERNAL_API_PORT,
                       image=cfg.clusters.kind_image)
    create_kind_cluster(
        spec,
        api_address=worker_ip,
        cert_sans=(worker_ip, "localhost", LOOPBACK_IP, "0.0.0.0"),
        config_path=workdir / REMOTE_KIND_CONFIG_FILE,
    )
    path = export_kind_kubeconfig(REMOTE_KIND_CLUSTER, workdir / REMOTE_KIND_KUBECONFIG_FILE)
    console.print(Panel.fit("Remote worker setup is done", style="bold green"))
    console.print(f"Copy {path} to the manager machine and run:")
    console.print(f"  export REMOTE_KUBECONFIG=/path/to/{path.name}")
    console.print("  multikueue-lab remote configure")
    return path


def run_remote_configure(cfg: ResolvedConfig, workdir: Path | None = None) -> Path:
    """Add the cluster at ``REMOTE_KUBECONFIG`` as a MultiKueue worker of the local manager."""
    if cfg.remote.remote_kubeconfig is None:
        raise RuntimeError("REMOTE_KUBECONFIG is not set. Point it at the remote cluster's kubeconfig.")
    manager = manager_spec(cfg.clusters)
    _require_context(manager, "Run 'multikueue-lab setup local' first.")
    link = REMOTE_LINK.with_namespace(cfg.kueue.demo_namespace)
    path = configure_remote(
        manager.target(),
        cfg.remote.remote_kubeconfig,
        QueueQuota.from_config(cfg.kueue),
        cfg.kueue.kueue_version,
        link=link,
        out_dir=workdir,
    )
    console.print(f"Next: submit jobs to the '{link.local_queue}' LocalQueue in '{link.namespace}'")
    return path


def run_remote_test(cfg: ResolvedConfig) -> DispatchResult:
    """Submit the sample job to the remote queue and follow it when the remote cluster is reachable."""
    manager = manager_spec(cfg.clusters)
    _require_context(manager, "Run 'multikueue-lab setup local' first.")
    link = REMOTE_LINK.with_namespace(cfg.kueue.demo_namespace)
    remote = None
    if cfg.remote.remote_kubeconfig is not None:
        remote = ClusterTarget(name="remote", kubeconfig=cfg.remote.remote_kubeconfig)
    return run_dispatch_test(manager.target(), remote, JobOptions.for_link(link, cfg.kueue))


def run_remote_cleanup(cfg: ResolvedConfig, assume_yes: bool = False, workdir: Path | None = None) -> bool:
    link = REMOTE_LINK.with_namespace(cfg.kueue.demo_namespace)
    return cleanup_remote(cfg, manager_spec(cfg.clusters).target(), assume_yes, workdir, link=link)


def remote_requirements() -> None:
    """Print what a cluster needs before it can join as a remote worker."""
    console.print(Panel.fit("Remote Cluster Setup Information", style="bold cyan"))
    console.print("[blue]📋 Remote Cluster Requirements:[/blue]")
    console.print("• Kubernetes cluster version 1.23+ with RBAC enabled")
    console.print("• Network connectivity from your local machine to the cluster")
    console.print("• kubectl access with cluster-admin privileges")
    console.print("• Valid kubeconfig file for the remote cluster")
    console.print("[blue]🔧 Supported Remote Cluster Types:[/blue]")
    console.print("• Kind clusters (with external IP configuration, see 'multikueue-lab remote setup-worker')")
    console.print("• Cloud-managed clusters (EKS, GKE, AKS, etc.)")
    console.print("• Self-managed and on-premises clusters with external access")
    console.print("[blue]📁 Required Environment Variable:[/blue]")
    console.print("  export REMOTE_KUBECONFIG=/path/to/your/remote-cluster-kubeconfig.yaml")
    console.print("[blue]✅ Verification Steps:[/blue]")
    console.print("  kubectl --kubeconfig=$REMOTE_KUBECONFIG cluster-info")
    console.print("  kubectl --kubeconfig=$REMOTE_KUBECONFIG get nodes")
    console.print("[blue]⚠️  Important Notes:[/blue]")
    console.print("• The remote cluster will NOT be deleted during cleanup")
    console.print("• Only MultiKueue resources will be installed/removed from the remote cluster")
    console.print("• The remote API server must be reachable from the manager cluster's network")
