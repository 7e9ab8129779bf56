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

"""Configuration classes, cluster targets, and MultiKueue link presets."""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from pathlib import Path

from pydantic import AliasChoices, Field, IPvAnyAddress
from pydantic_settings import BaseSettings, SettingsConfigDict
from rich.panel import Panel
from rich.table import Table

from multikueue_lab import console
from multikueue_lab.constants import (
    CLUSTER_INTERNAL_API_PORT,
    DEFAULT_AGENTS,
    DEFAULT_COLIMA_CPU,
    DEFAULT_COLIMA_DISK,
    DEFAULT_COLIMA_MEMORY,
    DEFAULT_COLIMA_PROFILE,
    DEFAULT_COLIMA_RUNTIME,
    DEFAULT_CPU_QUOTA,
    DEFAULT_JOB_IMAGE,
    DEFAULT_JOB_NAME,
    DEFAULT_JOB_SLEEP_SECONDS,
    DEFAULT_KUEUE_VERSION,
    DEFAULT_MEMORY_QUOTA,
    DEFAULT_NETWORK,
    MANAGER_API_PORT,
    MANAGER_CLUSTER,
    MANAGER_COLIMA_PROFILE,
    MANAGER_LB_PORTS,
    NS_DEMO,
    PROVIDER_K3D,
    PROVIDER_KIND,
    WORKER_API_PORT,
    WORKER_CLUSTER,
    WORKER_COLIMA_PROFILE,
    WORKER_LB_PORTS,
    dep_value,
)


# ============================================================================
# Configuration classes
# ============================================================================

class ColimaConfig(BaseSettings):
    """Colima VM configuration, auto-loaded from MK_* env vars.

    Attributes:
        colima_profile: Colima profile name hosting the Docker runtime.
        colima_cpu: Number of CPUs assigned to the VM.
        colima_memory: Memory in GiB assigned to the VM.
        colima_disk: Disk size in GiB assigned to the VM.
        colima_runtime: Container runtime started inside the VM.
        manager_profile: Colima profile hosting the manager in the split topology.
        worker_profile: Colima profile hosting the worker in the split topology.
    """

    model_config = SettingsConfigDict(env_prefix="MK_", extra="ignore")

    colima_profile: str = DEFAULT_COLIMA_PROFILE
    colima_cpu: int = Field(default=DEFAULT_COLIMA_CPU, ge=1, le=64)
    colima_memory: int = Field(default=DEFAULT_COLIMA_MEMORY, ge=1, le=512)
    colima_disk: int = Field(default=DEFAULT_COLIMA_DISK, ge=10, le=2048)
    colima_runtime: str = Field(default=DEFAULT_COLIMA_RUNTIME, pattern=r"^(docker|containerd)$")
    manager_profile: str = MANAGER_COLIMA_PROFILE
    worker_profile: str = WORKER_COLIMA_PROFILE


class ClusterConfig(BaseSettings):
    """Manager and worker cluster configuration, auto-loaded from MK_* env vars.

    Attributes:
        manager_cluster: Name of the manager cluster.
        worker_cluster: Name of the worker cluster.
        manager_provider: Tool creating the manager cluster (k3d or kind).
        split_manager_provider: Tool creating the manager cluster in the split topology.
        worker_provider: Tool creating the worker cluster (k3d or kind).
        network: Shared Docker network joining both clusters.
        manager_api_port: Host port mapped to the manager API server.
        worker_api_port: Host port mapped to the worker API server.
        agents: Number of k3d agent nodes per cluster.
        k3s_image: K3s image used by k3d clusters.
        kind_image: Node image used by kind clusters.
        max_retries: Maximum cluster creation attempts.
    """

    model_config = SettingsConfigDict(env_prefix="MK_", extra="ignore")

    manager_cluster: str = MANAGER_CLUSTER
    worker_cluster: str = WORKER_CLUSTER
    manager_provider: str = Field(default=PROVIDER_K3D, pattern=r"^(k3d|kind)$")
    split_manager_provider: str = Field(default=PROVIDER_KIND, pattern=r"^(k3d|kind)$")
    worker_provider: str = Field(default=PROVIDER_K3D, pattern=r"^(k3d|kind)$")
    network: str = DEFAULT_NETWORK
    manager_api_port: int = Field(default=MANAGER_API_PORT, ge=1, le=65535)
    worker_api_port: int = Field(default=WORKER_API_PORT, ge=1, le=65535)
    agents: int = Field(default=DEFAULT_AGENTS, ge=0, le=10)
    k3s_image: str | None = dep_value("k3s", "image")
    kind_image: str | None = dep_value("kind", "node_image")
    max_retries: int = Field(default=3, ge=1, le=10)


class KueueConfig(BaseSettings):
    """Kueue version, quotas, and sample job settings, auto-loaded from MK_* env vars.

    Attributes:
        kueue_version: Kueue release tag installed from GitHub.
        demo_namespace: Namespace holding the demo LocalQueue and jobs.
        cpu_quota: Nominal CPU quota of every ClusterQueue.
        memory_quota: Nominal memory quota of every ClusterQueue.
        job_name: Name of the sample dispatch job.
        job_image: Container image of the sample dispatch job.
        job_sleep_seconds: How long the sample job keeps running.
    """

    model_config = SettingsConfigDict(env_prefix="MK_", extra="ignore")

    kueue_version: str = Field(default=dep_value("kueue", "version", default=DEFAULT_KUEUE_VERSION),
                               pattern=r"^v\d+\.\d+\.\d+(-[\w.]+)?$")
    demo_namespace: str = NS_DEMO
    cpu_quota: str = Field(default=DEFAULT_CPU_QUOTA, pattern=r"^\d+(\.\d+)?m?$")
    memory_quota: str = Field(default=DEFAULT_MEMORY_QUOTA, pattern=r"^\d+([KMGT]i?)?$")
    job_name: str = DEFAULT_JOB_NAME
    job_image: str = dep_value("test_images", "busybox", default=DEFAULT_JOB_IMAGE)
    job_sleep_seconds: int = Field(default=DEFAULT_JOB_SLEEP_SECONDS, ge=1, le=3600)


class RemoteConfig(BaseSettings):
    """Remote cluster access, loaded from REMOTE_KUBECONFIG and WORKER_IP.

    Attributes:
        remote_kubeconfig: Kubeconfig file of an existing remote cluster.
        worker_ip: Public address a remote kind worker advertises.
    """

    model_config = SettingsConfigDict(env_prefix="MK_", extra="ignore")

    remote_kubeconfig: Path | None = Field(
        default=None, validation_alias=AliasChoices("REMOTE_KUBECONFIG", "MK_REMOTE_KUBECONFIG"))
    worker_ip: IPvAnyAddress | None = Field(
        default=None, validation_alias=AliasChoices("WORKER_IP", "MK_WORKER_IP"))


# ============================================================================
# Cluster targets and specs
# ============================================================================

@dataclass(frozen=True)
class ClusterTarget:
    """A cluster kubectl talks to.

    Attributes:
        name: Human-readable cluster name for messages.
        context: kubectl context, or None to use the kubeconfig's current context.
        kubeconfig: Explicit kubeconfig file, or None for the default one.
    """

    name: str
    context: str | None = None
    kubeconfig: Path | None = None

    def kubectl_flags(self) -> list[str]:
        """Return the global kubectl flags selecting this cluster."""
        flags: list[str] = []
        if self.kubeconfig is not None:
            flags.append(f"--kubeconfig={self.kubeconfig}")
        if self.context is not None:
            flags.append(f"--context={self.context}")
        return flags


@dataclass(frozen=True)
class ClusterSpec:
    """How to create one k3d or kind cluster.

    Attributes:
        name: Cluster name passed to k3d/kind.
        provider: ``k3d`` or ``kind``.
        api_port: Host port mapped to the API server.
        lb_ports: ``host:container`` load balancer port mappings (k3d only).
        agents: Number of agent nodes (k3d only).
        network: Docker network to join, or None for the default.
        image: Node image override, or None for the tool default.
    """

    name: str
    provider: str = PROVIDER_K3D
    api_port: int = MANAGER_API_PORT
    lb_ports: tuple[str, ...] = ()
    agents: int = DEFAULT_AGENTS
    network: str | None = None
    image: str | None = None

    @property
    def context(self) -> str:
        """kubectl context name the provider registers for this cluster."""
        return f"{self.provider}-{self.name}"

    @property
    def internal_server(self) -> str:
        """API server URL reachable from containers on the same Docker network."""
        if self.provider == PROVIDER_KIND:
            return f"https://{self.name}-control-plane:{CLUSTER_INTERNAL_API_PORT}"
        return f"https://k3d-{self.name}-server-0:{CLUSTER_INTERNAL_API_PORT}"

    def target(self) -> ClusterTarget:
        """Return the kubectl target for this cluster."""
        return ClusterTarget(name=self.name, context=self.context)


def manager_spec(cfg: ClusterConfig, shared_network: bool = True, provider: str | None = None) -> ClusterSpec:
    """Build the manager cluster spec from configuration."""
    provider = provider or cfg.manager_provider
    return ClusterSpec(
        name=cfg.manager_cluster,
        provider=provider,
        api_port=cfg.manager_api_port,
        lb_ports=MANAGER_LB_PORTS,
        agents=cfg.agents,
        network=cfg.network if shared_network else None,
        image=cfg.k3s_image if provider == PROVIDER_K3D else cfg.kind_image,
    )


def worker_spec(cfg: ClusterConfig, shared_network: bool = True) -> ClusterSpec:
    """Build the worker cluster spec from configuration."""
    return ClusterSpec(
        name=cfg.worker_cluster,
        provider=cfg.worker_provider,
        api_port=cfg.worker_api_port,
        lb_ports=WORKER_LB_PORTS,
        agents=cfg.agents,
        network=cfg.network if shared_network else None,
        image=cfg.k3s_image if cfg.worker_provider == PROVIDER_K3D else cfg.kind_image,
    )


# ============================================================================
# MultiKueue links
# ============================================================================

@dataclass(frozen=True)
class QueueQuota:
    """Nominal quota of a ClusterQueue.

    Attributes:
        cpu: CPU quantity (e.g. ``4``).
        memory: Memory quantity (e.g. ``8Gi``).
    """

    cpu: str = DEFAULT_CPU_QUOTA
    memory: str = DEFAULT_MEMORY_QUOTA

    @classmethod
    def from_config(cls, cfg: KueueConfig) -> QueueQuota:
        return cls(cpu=cfg.cpu_quota, memory=cfg.memory_quota)


@dataclass(frozen=True)
class MultiKueueLink:
    """Names wiring a manager cluster to one worker cluster.

    The worker exposes a LocalQueue with the same namespace and name as the
    manager LocalQueue, so dispatched workloads land in a matching queue.

    Attributes:
        cluster: MultiKueueCluster name on the manager.
        secret: Secret on the manager holding the worker kubeconfig.
        config: MultiKueueConfig name on the manager.
        admission_check: AdmissionCheck name on the manager.
        cluster_queue: ClusterQueue name on both sides.
        local_queue: LocalQueue name in the demo namespace on both sides.
        kubeconfig_file: Local file the worker kubeconfig is written to.
        namespace: Demo namespace holding the LocalQueue and jobs.
        worker_cluster_queue: ClusterQueue name on the worker, or None to reuse ``cluster_queue``.
        preemption: Whether the manager ClusterQueue enables preemption.
    """

    cluster: str
    secret: str
    config: str
    admission_check: str
    cluster_queue: str
    local_queue: str
    kubeconfig_file: str
    namespace: str = NS_DEMO
    worker_cluster_queue: str | None = None
    preemption: bool = False

    @property
    def worker_queue(self) -> str:
        return self.worker_cluster_queue or self.cluster_queue

    def with_namespace(self, namespace: str) -> MultiKueueLink:
        """Return a copy of this link using another demo namespace."""
        return replace(self, namespace=namespace)


LOCAL_LINK = MultiKueueLink(
    cluster="worker1",
    secret="worker1-secret",
    config="multikueue-config",
    admission_check="multikueue-admission-check",
    cluster_queue="manager-cluster-queue",
    local_queue="manager-local-queue",
    kubeconfig_file="worker1.kubeconfig",
    worker_cluster_queue="worker-cluster-queue",
)

SPLIT_LINK = MultiKueueLink(
    cluster="worker",
    secret="worker-secret",
    config="multikueue-config",
    admission_check="multikueue-admission-check",
    cluster_queue="manager-cluster-queue",
    local_queue="worker-queue",
    kubeconfig_file="worker.kubeconfig",
    worker_cluster_queue="worker-cluster-queue",
)

REMOTE_LINK = MultiKueueLink(
    cluster="remote-cluster",
    secret="remote-kubeconfig",
    config="remote-multikueue-config",
    admission_check="remote-multikueue-admission-check",
    cluster_queue="remote-cluster-queue",
    local_queue="remote-queue",
    kubeconfig_file="remote.kubeconfig",
    preemption=True,
)

LINKS = {"local": LOCAL_LINK, "split": SPLIT_LINK, "remote": REMOTE_LINK}


# ============================================================================
# Sample job options
# ============================================================================

@dataclass(frozen=True)
class JobOptions:
    """Options for the sample job submitted to the manager.

    Attributes:
        name: Job name.
        namespace: Namespace the job is created in.
        queue: LocalQueue the job is labelled for.
        image: Container image.
        sleep_seconds: Seconds the container sleeps after printing its banner.
    """

    name: str
    namespace: str
    queue: str
    image: str = DEFAULT_JOB_IMAGE
    sleep_seconds: int = DEFAULT_JOB_SLEEP_SECONDS

    @classmethod
    def for_link(cls, link: MultiKueueLink, cfg: KueueConfig) -> JobOptions:
        return cls(
            name=cfg.job_name,
            namespace=link.namespace,
            queue=link.local_queue,
            image=cfg.job_image,
            sleep_seconds=cfg.job_sleep_seconds,
        )


@dataclass(frozen=True)
class ResolvedConfig:
    """All configuration objects for one invocation."""

    colima: ColimaConfig = field(default_factory=ColimaConfig)
    clusters: ClusterConfig = field(default_factory=ClusterConfig)
    kueue: KueueConfig = field(default_factory=KueueConfig)
    remote: RemoteConfig = field(default_factory=RemoteConfig)


# ============================================================================
# Display
# ============================================================================

def display_config(cfg: ResolvedConfig, show_remote: bool = False) -> None:
    """Print the resolved configuration.

    Args:
        cfg: Resolved configuration objects.
        show_remote: Whether to include the remote cluster settings.
    """
    console.print(Panel.fit("Configuration", style="bold blue"))
    table = Table()
    table.add_column("Section", style="yellow")
    table.add_column("Setting", style="cyan")
    table.add_column("Value", style="green")
    table.add_row("colima", "profile", cfg.colima.colima_profile)
    table.add_row("colima", "resources", f"{cfg.colima.colima_cpu} cpu / {cfg.colima.colima_memory}GiB / "
                                         f"{cfg.colima.colima_disk}GiB disk")
    table.add_row("clusters", "manager", f"{cfg.clusters.manager_provider}-{cfg.clusters.manager_cluster}"
                                         f" (port {cfg.clusters.manager_api_port})")
    table.add_row("clusters", "worker", f"{cfg.clusters.worker_provider}-{cfg.clusters.worker_cluster}"
                                        f" (port {cfg.clusters.worker_api_port})")
    table.add_row("clusters", "network", cfg.clusters.network)
    table.add_row("kueue", "version", cfg.kueue.kueue_version)
    table.add_row("kueue", "namespace", cfg.kueue.demo_namespace)
    table.add_row("kueue", "quota", f"cpu={cfg.kueue.cpu_quota} memory={cfg.kueue.memory_quota}")
    if show_remote:
        table.add_row("remote", "kubeconfig", str(cfg.remote.remote_kubeconfig or "(unset)"))
        table.add_row("remote", "worker_ip", str(cfg.remote.worker_ip or "(unset)"))
    console.print(table)
