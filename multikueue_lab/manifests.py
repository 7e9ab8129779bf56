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

"""Builders for the Kubernetes and Kueue manifests the lab applies."""

from __future__ import annotations

from collections.abc import Iterable, Sequence

import yaml

from multikueue_lab.config import LINKS, JobOptions, MultiKueueLink, QueueQuota
from multikueue_lab.constants import (
    CLUSTER_INTERNAL_API_PORT,
    DEFAULT_FLAVOR,
    DEFAULT_LOCAL_QUEUE,
    KUEUE_API_GROUP,
    KUEUE_API_VERSION,
    KUEUE_CONFIG_API_VERSION,
    KUEUE_CONFIGMAP,
    KUEUE_CONFIGMAP_KEY,
    KUEUE_LEADER_ELECTION_ID,
    LABEL_QUEUE_NAME,
    MULTIKUEUE_CONTROLLER_NAME,
    NS_DEFAULT,
    NS_KUBE_SYSTEM,
    NS_KUEUE_SYSTEM,
)

_ALL_VERBS = ["get", "list", "watch", "create", "update", "patch", "delete"]

# Permissions the manager needs on a worker to mirror workloads and jobs.
WORKER_SA_RULES: list[dict] = [
    {"apiGroups": [""], "resources": ["namespaces"], "verbs": ["get", "list", "watch"]},
    {
        "apiGroups": [KUEUE_API_GROUP],
        "resources": ["workloads", "localqueues", "clusterqueues", "resourceflavors"],
        "verbs": _ALL_VERBS,
    },
    {"apiGroups": ["batch"], "resources": ["jobs"], "verbs": _ALL_VERBS},
    {"apiGroups": ["apps"], "resources": ["deployments"], "verbs": _ALL_VERBS},
    {"apiGroups": [""], "resources": ["pods"], "verbs": _ALL_VERBS},
]

REMOTE_SA_RULES: list[dict] = [
    {"apiGroups": [KUEUE_API_GROUP], "resources": ["workloads", "workloads/status"], "verbs": _ALL_VERBS},
    {"apiGroups": [""], "resources": ["namespaces"], "verbs": ["get", "list"]},
    {"apiGroups": ["batch"], "resources": ["jobs"], "verbs": _ALL_VERBS},
]

RULE_PROFILES = {"worker": WORKER_SA_RULES, "remote": REMOTE_SA_RULES}


# ============================================================================
# Core resources
# ============================================================================

def namespace(name: str) -> dict:
    return {"apiVersion": "v1", "kind": "Namespace", "metadata": {"name": name}}


def resource_flavor(name: str = DEFAULT_FLAVOR) -> dict:
    return {"apiVersion": KUEUE_API_VERSION, "kind": "ResourceFlavor", "metadata": {"name": name}}


def cluster_queue(
    name: str,
    quota: QueueQuota,
    flavor: str = DEFAULT_FLAVOR,
    admission_checks: Sequence[str] = (),
    preemption: bool = False,
) -> dict:
    """Build a ClusterQueue admitting CPU and memory from a single flavor.

    Args:
        name: ClusterQueue name.
        quota: Nominal CPU and memory quota.
        flavor: ResourceFlavor providing the quota.
        admission_checks: AdmissionChecks a workload must pass before admission.
        preemption: Whether to enable reclaim and priority-based preemption.

    Returns:
        ClusterQueue manifest.
    """
    spec: dict = {
        "namespaceSelector": {},
        "queueingStrategy": "BestEffortFIFO",
        "resourceGroups": [{
            "coveredResources": ["cpu", "memory"],
            "flavors": [{
                "name": flavor,
                "resources": [
                    {"name": "cpu", "nominalQuota": quota.cpu},
                    {"name": "memory", "nominalQuota": quota.memory},
                ],
            }],
        }],
    }
    if preemption:
        spec["preemption"] = {"reclaimWithinCohort": "Any", "withinClusterQueue": "LowerPriority"}
    if admission_checks:
        spec["admissionChecks"] = list(admission_checks)
    return {"apiVersion": KUEUE_API_VERSION, "kind": "ClusterQueue", "metadata": {"name": name}, "spec": spec}


def local_queue(name: str, namespace_name: str, cluster_queue_name: str) -> dict:
    return {
        "apiVersion": KUEUE_API_VERSION,
        "kind": "LocalQueue",
        "metadata": {"name": name, "namespace": namespace_name},
        "spec": {"clusterQueue": cluster_queue_name},
    }


def admission_check(name: str, multikueue_config_name: str) -> dict:
    """Build an AdmissionCheck handled by the MultiKueue controller."""
    return {
        "apiVersion": KUEUE_API_VERSION,
        "kind": "AdmissionCheck",
        "metadata": {"name": name},
        "spec": {
            "controllerName": MULTIKUEUE_CONTROLLER_NAME,
            "parameters": {
                "apiGroup": KUEUE_API_GROUP,
                "kind": "MultiKueueConfig",
                "name": multikueue_config_name,
            },
        },
    }


def multikueue_config(name: str, clusters: Iterable[str]) -> dict:
    return {
        "apiVersion": KUEUE_API_VERSION,
        "kind": "MultiKueueConfig",
        "metadata": {"name": name},
        "spec": {"clusters": list(clusters)},
    }


def multikueue_cluster(name: str, secret_name: str) -> dict:
    """Build a MultiKueueCluster reading its kubeconfig from a Secret in kueue-system."""
    return {
        "apiVersion": KUEUE_API_VERSION,
        "kind": "MultiKueueCluster",
        "metadata": {"name": name},
        "spec": {"kubeConfig": {"locationType": "Secret", "location": secret_name}},
    }


def kueue_configuration(frameworks: Sequence[str] = ("batch/job",)) -> dict:
    """Build the Kueue manager ConfigMap enabling only the given integrations.

    Pods in kube-system and kueue-system are never managed so the control
    plane keeps working while Kueue restarts.

    Args:
        frameworks: Kueue integration frameworks to enable.

    Returns:
        ConfigMap manifest embedding the Kueue Configuration.
    """
    configuration = {
        "apiVersion": KUEUE_CONFIG_API_VERSION,
        "kind": "Configuration",
        "namespace": NS_KUEUE_SYSTEM,
        "health": {"healthProbeBindAddress": ":8081"},
        "metrics": {"bindAddress": ":8080"},
        "webhook": {"port": 9443},
        "leaderElection": {"leaderElect": True, "resourceName": KUEUE_LEADER_ELECTION_ID},
        "controller": {
            "groupKindConcurrency": {
                "Job.batch": 5,
                "Pod.v1": 5,
                "Workload.kueue.x-k8s.io": 5,
                "LocalQueue.kueue.x-k8s.io": 1,
                "ClusterQueue.kueue.x-k8s.io": 1,
                "ResourceFlavor.kueue.x-k8s.io": 1,
            },
        },
        "integrations": {
            "frameworks": list(frameworks),
            "podOptions": {
                "namespaceSelector": {
                    "matchExpressions": [{
                        "key": "kubernetes.io/metadata.name",
                        "operator": "NotIn",
                        "values": [NS_KUBE_SYSTEM, NS_KUEUE_SYSTEM],
                    }],
                },
            },
        },
    }
    return {
        "apiVersion": "v1",
        "kind": "ConfigMap",
        "metadata": {"name": KUEUE_CONFIGMAP, "namespace": NS_KUEUE_SYSTEM},
        "data": {KUEUE_CONFIGMAP_KEY: yaml.safe_dump(configuration, sort_keys=False)},
    }


# ============================================================================
# Service accounts
# ============================================================================

def service_account_rbac(
    sa: str,
    role: str,
    binding: str,
    rules: list[dict],
    sa_namespace: str = NS_KUEUE_SYSTEM,
    cluster_admin: bool = False,
) -> list[dict]:
    """Build a ServiceAccount with a ClusterRole and ClusterRoleBinding.

    Args:
        sa: ServiceAccount name.
        role: ClusterRole name.
        binding: ClusterRoleBinding name.
        rules: Policy rules of the ClusterRole.
        sa_namespace: Namespace of the ServiceAccount.
        cluster_admin: Bind to the built-in ``cluster-admin`` role instead of *role*.

    Returns:
        List of manifests: ServiceAccount, optional ClusterRole, ClusterRoleBinding.
    """
    docs: list[dict] = [{
        "apiVersion": "v1",
        "kind": "ServiceAccount",
        "metadata": {"name": sa, "namespace": sa_namespace},
    }]
    role_ref = "cluster-admin"
    if not cluster_admin:
        docs.append({
            "apiVersion": "rbac.authorization.k8s.io/v1",
            "kind": "ClusterRole",
            "metadata": {"name": role},
            "rules": rules,
        })
        role_ref = role
    docs.append({
        "apiVersion": "rbac.authorization.k8s.io/v1",
        "kind": "ClusterRoleBinding",
        "metadata": {"name": binding},
        "roleRef": {"apiGroup": "rbac.authorization.k8s.io", "kind": "ClusterRole", "name": role_ref},
        "subjects": [{"kind": "ServiceAccount", "name": sa, "namespace": sa_namespace}],
    })
    return docs


def service_account_token_secret(name: str, sa: str, sa_namespace: str = NS_KUEUE_SYSTEM) -> dict:
    return {
        "apiVersion": "v1",
        "kind": "Secret",
        "type": "kubernetes.io/service-account-token",
        "metadata": {
            "name": name,
            "namespace": sa_namespace,
            "annotations": {"kubernetes.io/service-account.name": sa},
        },
    }


# ============================================================================
# Jobs and kind
# ============================================================================

def sample_job(job: JobOptions) -> dict:
    """Build the busybox Job submitted to the manager's LocalQueue.

    Args:
        job: Job name, namespace, queue, image and runtime.

    Returns:
        batch/v1 Job manifest labelled for Kueue.
    """
    script = (
        'echo "Hello from MultiKueue on $(hostname)"; '
        f"sleep {job.sleep_seconds}; "
        'echo "Job finished"'
    )
    return {
        "apiVersion": "batch/v1",
        "kind": "Job",
        "metadata": {
            "name": job.name,
            "namespace": job.namespace,
            "labels": {LABEL_QUEUE_NAME: job.queue},
        },
        "spec": {
            "parallelism": 1,
            "completions": 1,
            "backoffLimit": 0,
            "suspend": True,
            "template": {
                "spec": {
                    "restartPolicy": "Never",
                    "containers": [{
                        "name": "main",
                        "image": job.image,
                        "command": ["sh", "-c", script],
                        "resources": {"requests": {"cpu": "100m", "memory": "64Mi"}},
                    }],
                },
            },
        },
    }


def kind_cluster_config(
    api_address: str | None = None,
    api_port: int = CLUSTER_INTERNAL_API_PORT,
    cert_sans: Sequence[str] = (),
    image: str | None = None,
) -> dict:
    """Build a kind cluster config, optionally exposing the API server externally.

    Args:
        api_address: Address the API server listens on, or None for kind's default.
        api_port: Host port of the API server.
        cert_sans: Extra subject alternative names for the API server certificate.
        image: Node image override.

    Returns:
        kind ``Cluster`` config document.
    """
    node: dict = {"role": "control-plane"}
    if image:
        node["image"] = image
    if cert_sans:
        patch = {
            "kind": "ClusterConfiguration",
            "apiServer": {"certSANs": list(cert_sans)},
        }
        node["kubeadmConfigPatches"] = [yaml.safe_dump(patch, sort_keys=False)]
    config: dict = {"kind": "Cluster", "apiVersion": "kind.x-k8s.io/v1alpha4", "nodes": [node]}
    if api_address:
        config["networking"] = {"apiServerAddress": api_address, "apiServerPort": api_port}
    return config


# ============================================================================
# Manifest sets
# ============================================================================

def worker_manifests(link: MultiKueueLink, quota: QueueQuota) -> list[dict]:
    """Build the worker side of a link.

    The worker serves a LocalQueue with the same namespace and name as the
    manager LocalQueue, backed by a plain ClusterQueue without admission checks.
    """
    return [
        namespace(link.namespace),
        resource_flavor(),
        cluster_queue(link.worker_queue, quota),
        local_queue(link.local_queue, link.namespace, link.worker_queue),
        local_queue(DEFAULT_LOCAL_QUEUE, NS_DEFAULT, link.worker_queue),
    ]


def manager_manifests(link: MultiKueueLink, quota: QueueQuota, include_default_queue: bool = True) -> list[dict]:
    """Build the manager side of a link.

    Args:
        link: Names wiring the manager to the worker.
        quota: Nominal quota of the manager ClusterQueue.
        include_default_queue: Also point ``default/default-local-queue`` at this link's ClusterQueue.

    Returns:
        Namespace, flavor, MultiKueue wiring, ClusterQueue and LocalQueue manifests.
    """
    docs = [
        namespace(link.namespace),
        resource_flavor(),
        multikueue_cluster(link.cluster, link.secret),
        multikueue_config(link.config, [link.cluster]),
        admission_check(link.admission_check, link.config),
        cluster_queue(link.cluster_queue, quota, admission_checks=[link.admission_check],
                      preemption=link.preemption),
        local_queue(link.local_queue, link.namespace, link.cluster_queue),
    ]
    if include_default_queue:
        docs.append(local_queue(DEFAULT_LOCAL_QUEUE, NS_DEFAULT, link.cluster_queue))
    return docs


def manifest_sets(quota: QueueQuota, job: JobOptions | None = None,
                  demo_namespace: str | None = None) -> dict[str, list[dict]]:
    """Return every generated manifest set keyed by ``<topology>-<side>``."""
    sets: dict[str, list[dict]] = {}
    for topology, link in LINKS.items():
        if demo_namespace is not None:
            link = link.with_namespace(demo_namespace)
        sets[f"{topology}-manager"] = manager_manifests(link, quota, include_default_queue=topology != "remote")
        sets[f"{topology}-worker"] = worker_manifests(link, quota)
    if job is not None:
        sets["sample-job"] = [sample_job(job)]
    return sets


def render(docs: Iterable[dict]) -> str:
    """Serialize manifests into a multi-document YAML stream."""
    return yaml.safe_dump_all(list(docs), sort_keys=False, default_flow_style=False)
