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

"""Teardown of local, split, and remote MultiKueue environments."""

from __future__ import annotations

from collections.abc import Iterable
from pathlib import Path

from rich.panel import Panel

from multikueue_lab import console
from multikueue_lab.cluster import (
    cluster_exists,
    delete_cluster,
    delete_context_entries,
    docker_available,
    remove_network,
)
from multikueue_lab.colima import delete_profile, list_profiles, profile_running, resume_profile, stop_profile
from multikueue_lab.config import (
    REMOTE_LINK,
    ClusterSpec,
    ClusterTarget,
    MultiKueueLink,
    QueueQuota,
    ResolvedConfig,
)
from multikueue_lab.constants import (
    EXTRA_TEST_JOBS,
    GENERATED_FILES,
    NS_DEFAULT,
    NS_KUEUE_SYSTEM,
    REMOTE_SA,
    REMOTE_SA_BINDING,
    REMOTE_SA_ROLE,
    WORKER_TEST_POD,
)
from multikueue_lab.kueue import uninstall_kueue
from multikueue_lab.manifests import render, worker_manifests
from multikueue_lab.utils import confirm, context_exists, run_kubectl


def _delete(target: ClusterTarget, *args: str) -> None:
    """Run an idempotent ``kubectl delete`` and report failures as warnings."""
    ok, _, stderr = run_kubectl(["delete", *args, "--ignore-not-found=true"], target=target, timeout=60)
    if not ok:
        console.print(f"[yellow]⚠️  kubectl delete {' '.join(args)}: {stderr.strip()[:200]}[/yellow]")


def remove_files(names: Iterable[str], workdir: Path) -> None:
    """Delete generated files from *workdir*, skipping those that are absent."""
    for name in names:
        path = workdir / name
        if path.exists():
            path.unlink()
            console.print(f"[green]✅ Removed {path}[/green]")


def _delete_cluster_if_present(spec: ClusterSpec) -> None:
    if cluster_exists(spec):
        delete_cluster(spec)
    else:
        console.print(f"[yellow]⚠️  {spec.provider} cluster '{spec.name}' not found[/yellow]")


def _forget_context(spec: ClusterSpec) -> None:
    if not context_exists(spec.context):
        console.print(f"[yellow]   Context '{spec.context}' not found (likely already cleaned up)[/yellow]")
    delete_context_entries(spec.context)


def _remove_profile(profile: str) -> None:
    if profile_running(profile):
        stop_profile(profile)
    delete_profile(profile)


def cleanup_local(
    cfg: ResolvedConfig,
    manager: ClusterSpec,
    worker: ClusterSpec,
    assume_yes: bool = False,
    workdir: Path | None = None,
) -> bool:
    """Remove the single-VM environment: clusters, network, VM, files, contexts.

    Args:
        cfg: Resolved configuration.
        manager: Manager cluster spec.
        worker: Worker cluster spec.
        assume_yes: Skip the confirmation prompt.
        workdir: Directory holding generated kubeconfig files.

    Returns:
        False if the user cancelled.
    """
    workdir = workdir or Path.cwd()
    profile = cfg.colima.colima_profile
    console.print(Panel.fit("Cleaning up MultiKueue environment", style="bold blue"))
    console.print(f"This will delete clusters '{manager.name}' and '{worker.name}', "
                  f"network '{cfg.clusters.network}' and Colima profile '{profile}'.")
    if not confirm("Are you sure you want to continue?", assume_yes):
        console.print("[yellow]Cleanup cancelled[/yellow]")
        return False

    if docker_available():
        if cluster_exists(manager):
            for job in (cfg.kueue.job_name, *EXTRA_TEST_JOBS):
                _delete(manager.target(), "job", job, "-n", cfg.kueue.demo_namespace)
        if cluster_exists(worker):
            _delete(worker.target(), "pod", WORKER_TEST_POD, "-n", cfg.kueue.demo_namespace)
        _delete_cluster_if_present(manager)
        _delete_cluster_if_present(worker)
        remove_network(cfg.clusters.network)
    else:
        console.print("[yellow]⚠️  Docker not available - skipping cluster deletion (likely already cleaned up)"
                      "[/yellow]")

    _remove_profile(profile)
    remove_files(GENERATED_FILES, workdir)
    _forget_context(manager)
    _forget_context(worker)

    listing = list_profiles()
    console.print(listing.rstrip() or "No Colima instances running", markup=False)
    console.print("[green]✅ Cleanup completed[/green]")
    return True


def cleanup_cluster(
    role: str,
    cfg: ResolvedConfig,
    spec: ClusterSpec,
    profile: str,
    assume_yes: bool = False,
    workdir: Path | None = None,
) -> bool:
    """Remove one side of the split topology and its Colima VM.

    Args:
        role: ``manager`` or ``worker``, used in messages.
        cfg: Resolved configuration.
        spec: Cluster spec of this side.
        profile: Colima profile hosting the cluster.
        assume_yes: Skip the confirmation prompt.
        workdir: Directory holding generated kubeconfig files.

    Returns:
        False if the user cancelled.
    """
    workdir = workdir or Path.cwd()
    console.print(Panel.fit(f"Cleaning up {role} cluster", style="bold blue"))
    console.print(f"This will delete {spec.provider} cluster '{spec.name}' and Colima profile '{profile}'.")
    if not confirm("Are you sure you want to continue?", assume_yes):
        console.print("[yellow]Cleanup cancelled[/yellow]")
        return False

    if resume_profile(profile) and cluster_exists(spec):
        for ns in (cfg.kueue.demo_namespace, NS_DEFAULT):
            _delete(spec.target(), "jobs", "--all", "-n", ns)
        delete_cluster(spec)
    else:
        console.print(f"[yellow]⚠️  {role.capitalize()} cluster not reachable - skipping deletion[/yellow]")

    _remove_profile(profile)
    if role == "worker":
        remove_files(GENERATED_FILES, workdir)
    _forget_context(spec)
    console.print(list_profiles().rstrip() or "No Colima instances running", markup=False)
    console.print(f"[green]✅ {role.capitalize()} cleanup completed[/green]")
    return True


def _remove_link_from_manager(manager: ClusterTarget, link: MultiKueueLink) -> None:
    console.print(f"[yellow]ℹ️  Removing remote cluster configuration from '{manager.name}'...[/yellow]")
    _delete(manager, "secret", link.secret, "-n", NS_KUEUE_SYSTEM, "--wait=false")
    _delete(manager, "multikueuecluster", link.cluster, "--wait=false")
    _delete(manager, "multikueueconfig", link.config, "--wait=false")
    _delete(manager, "admissioncheck", link.admission_check, "--wait=false")
    _delete(manager, "clusterqueue", link.cluster_queue, "--wait=false")
    _delete(manager, "localqueue", link.local_queue, "-n", link.namespace, "--wait=false")


def cleanup_remote(
    cfg: ResolvedConfig,
    manager: ClusterTarget,
    assume_yes: bool = False,
    workdir: Path | None = None,
    link: MultiKueueLink = REMOTE_LINK,
) -> bool:
    """Remove everything the lab created on a remote cluster, keeping the cluster.

    Args:
        cfg: Resolved configuration; ``cfg.remote.remote_kubeconfig`` is required.
        manager: Manager cluster the remote link is removed from.
        assume_yes: Skip both confirmation prompts.
        workdir: Directory holding generated files.
        link: Names wiring the manager to the remote cluster.

    Returns:
        False if the user cancelled.

    Raises:
        RuntimeError: If the remote kubeconfig is unset, missing, or unreachable.
    """
    workdir = workdir or Path.cwd()
    kubeconfig = cfg.remote.remote_kubeconfig
    if kubeconfig is None:
        raise RuntimeError("REMOTE_KUBECONFIG is not set. Point it at the remote cluster's kubeconfig.")
    if not kubeconfig.is_file():
        raise RuntimeError(f"Remote kubeconfig file not found: {kubeconfig}")
    remote = ClusterTarget(name="remote", kubeconfig=kubeconfig)

    console.print(Panel.fit("Cleaning up remote cluster", style="bold blue"))
    ok, _, stderr = run_kubectl(["cluster-info"], target=remote)
    if not ok:
        raise RuntimeError(f"Cannot connect to remote cluster: {stderr.strip()[:300]}")
    ok, context, _ = run_kubectl(["config", "current-context"], target=remote)
    console.print(f"Remote context: {context.strip() if ok else 'unknown'}")
    console.print("The remote cluster itself is kept; only MultiKueue resources are removed.")
    if not confirm("Are you sure you want to continue?", assume_yes):
        console.print("[yellow]Cleanup cancelled[/yellow]")
        return False

    ns = link.namespace
    _delete(remote, "jobs", "--all", "-n", ns)
    ok, _, stderr = run_kubectl(
        ["delete", "-f", "-", "--ignore-not-found=true", "--wait=false"],
        target=remote,
        stdin=render(worker_manifests(link, QueueQuota.from_config(cfg.kueue))),
    )
    if not ok:
        console.print(f"[yellow]⚠️  Some remote queues could not be deleted: {stderr.strip()[:200]}[/yellow]")
    _delete(remote, "serviceaccount", REMOTE_SA, "-n", NS_KUEUE_SYSTEM)
    _delete(remote, "clusterrole", REMOTE_SA_ROLE)
    _delete(remote, "clusterrolebinding", REMOTE_SA_BINDING)

    if confirm("Uninstall Kueue from remote cluster?", assume_yes):
        uninstall_kueue(remote, cfg.kueue.kueue_version)
    else:
        console.print("[cyan]ℹ️  Kueue left installed on the remote cluster[/cyan]")
    _delete(remote, "namespace", ns, "--wait=false")

    remove_files((link.kubeconfig_file, "remote-test-job.yaml"), workdir)

    if manager.context is None or context_exists(manager.context):
        _remove_link_from_manager(manager, link)
    else:
        console.print(f"[yellow]⚠️  Manager context '{manager.context}' not found, skipping manager cleanup"
                      "[/yellow]")
    console.print("[green]✅ Remote cleanup completed[/green]")
    return True
