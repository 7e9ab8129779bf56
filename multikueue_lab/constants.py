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

"""Constants, dependency loading, and dep_value helper."""

from __future__ import annotations

from pathlib import Path
from typing import Any

import yaml

# -- Resolved paths --
PACKAGE_DIR = Path(__file__).resolve().parent


def load_dependencies() -> dict:
    """Load dependency versions and images from dependencies.yaml.

    Returns:
        Parsed YAML content as a nested dictionary.
    """
    deps_file = PACKAGE_DIR / "dependencies.yaml"
    with open(deps_file) as f:
        return yaml.safe_load(f)


DEPENDENCIES = load_dependencies()


def dep_value(*keys: str, default: Any = None) -> Any:
    """Safely traverse the DEPENDENCIES dict by key path.

    Args:
        *keys: Sequence of dictionary keys to traverse.
        default: Value to return if any key is missing.

    Returns:
        The value at the nested key path, or *default* if not found.
    """
    node = DEPENDENCIES
    for key in keys:
        if not isinstance(node, dict):
            return default
        node = node.get(key)
        if node is None:
            return default
    return node


def kueue_manifests_url(version: str) -> str:
    """Build the release manifest URL for a Kueue version.

    Args:
        version: Kueue release tag (e.g. ``v0.13.1``).

    Returns:
        Full GitHub release download URL of ``manifests.yaml``.
    """
    repo = dep_value("kueue", "repo", default=KUEUE_GITHUB_REPO)
    return f"https://github.com/{repo}/releases/download/{version}/manifests.yaml"


# -- Timeouts & polling --
KUEUE_READY_TIMEOUT = "300s"
REMOTE_KUEUE_ROLLOUT_TIMEOUT = "180s"
NODES_READY_TIMEOUT = "5m"
CLUSTER_TIMEOUT = "180s"
CLUSTER_CREATE_RETRY_WAIT_SECONDS = 10

COLIMA_READY_MAX_RETRIES = 12
COLIMA_READY_POLL_INTERVAL_SECONDS = 5

RESOURCE_VERIFY_MAX_RETRIES = 12
RESOURCE_VERIFY_POLL_INTERVAL_SECONDS = 5

TOKEN_MAX_RETRIES = 10
TOKEN_POLL_INTERVAL_SECONDS = 2

WORKLOAD_MAX_RETRIES = 10
WORKLOAD_POLL_INTERVAL_SECONDS = 3

DISPATCH_MAX_RETRIES = 20
DISPATCH_POLL_INTERVAL_SECONDS = 3

POD_START_MAX_RETRIES = 30
POD_START_POLL_INTERVAL_SECONDS = 2

JOB_COMPLETE_TIMEOUT = "120s"
HOST_PROBE_TIMEOUT_SECONDS = 2

# -- External tools --
KUEUE_GITHUB_REPO = "kubernetes-sigs/kueue"
HOMEBREW_INSTALL_HINT = (
    '/bin/bash -c "$(curl -fsSL https://raw.githubusercontent.com/Homebrew/install/HEAD/install.sh)"'
)
ALL_TOOLS = ("colima", "docker", "k3d", "kind", "kubectl", "helm")

# -- Namespaces --
NS_KUEUE_SYSTEM = "kueue-system"
NS_KUBE_SYSTEM = "kube-system"
NS_DEMO = "multikueue-demo"
NS_DEFAULT = "default"

# -- Kueue --
KUEUE_API_GROUP = "kueue.x-k8s.io"
KUEUE_API_VERSION = "kueue.x-k8s.io/v1beta1"
KUEUE_CONFIG_API_VERSION = "config.kueue.x-k8s.io/v1beta1"
KUEUE_CONTROLLER_DEPLOYMENT = "kueue-controller-manager"
KUEUE_CONFIGMAP = "kueue-manager-config"
KUEUE_CONFIGMAP_KEY = "controller_manager_config.yaml"
KUEUE_LEADER_ELECTION_ID = "c1f6bfd2.kueue.x-k8s.io"
MULTIKUEUE_CONTROLLER_NAME = "kueue.x-k8s.io/multikueue"
LABEL_QUEUE_NAME = "kueue.x-k8s.io/queue-name"
LABEL_JOB_NAME = "job-name"
LABEL_CONTROL_PLANE = "control-plane"

# -- Demo defaults --
DEFAULT_KUEUE_VERSION = "v0.13.1"
DEFAULT_FLAVOR = "default-flavor"
DEFAULT_LOCAL_QUEUE = "default-local-queue"
DEFAULT_CPU_QUOTA = "4"
DEFAULT_MEMORY_QUOTA = "8Gi"
DEFAULT_JOB_NAME = "multikueue-test-job"
DEFAULT_JOB_IMAGE = "busybox:1.36"
DEFAULT_JOB_SLEEP_SECONDS = 30

# -- Colima defaults --
DEFAULT_COLIMA_PROFILE = "multikueue"
MANAGER_COLIMA_PROFILE = "multikueue-manager"
WORKER_COLIMA_PROFILE = "multikueue-worker"
DEFAULT_COLIMA_CPU = 4
DEFAULT_COLIMA_MEMORY = 8
DEFAULT_COLIMA_DISK = 50
DEFAULT_COLIMA_RUNTIME = "docker"

# -- Cluster defaults --
DEFAULT_NETWORK = "multikueue-network"
MANAGER_CLUSTER = "manager"
WORKER_CLUSTER = "worker"
REMOTE_KIND_CLUSTER = "remote-cluster"
MANAGER_API_PORT = 6443
WORKER_API_PORT = 6444
CLUSTER_INTERNAL_API_PORT = 6443
MANAGER_LB_PORTS = ("80:80", "443:443")
WORKER_LB_PORTS = ("8080:80", "8443:443")
DEFAULT_AGENTS = 1
PROVIDER_K3D = "k3d"
PROVIDER_KIND = "kind"

# -- Service accounts --
WORKER_SA = "multikueue-sa"
WORKER_SA_ROLE = "multikueue-role"
WORKER_SA_BINDING = "multikueue-binding"
WORKER_SA_TOKEN_SECRET = "multikueue-sa-token"
REMOTE_SA = "multikueue-remote-sa"
REMOTE_SA_ROLE = "multikueue-remote-role"
REMOTE_SA_BINDING = "multikueue-remote-binding"
REMOTE_TOKEN_DURATION = "87600h"

# -- Generated files --
REMOTE_KIND_CONFIG_FILE = "remote-config.yaml"
REMOTE_KIND_KUBECONFIG_FILE = "remote-kubeconfig.yaml"
GENERATED_FILES = (
    "worker1.kubeconfig",
    "worker.kubeconfig",
    "remote.kubeconfig",
    "remote-test-job.yaml",
)

# -- Host IP detection --
HOST_IP_CANDIDATES = ("host.docker.internal", "172.17.0.1")
LOOPBACK_IP = "127.0.0.1"

# -- Dry-run tolerance --
DRY_RUN_TOLERATED_PATTERNS = (
    "no matches for kind",
    "the server doesn't have a resource type",
    "resource mapping not found",
    "ensure CRDs are installed first",
    "failed to download openapi",
    "connection refused",
    "dial tcp",
    "The connection to the server",
)

# -- Pod phases --
POD_STARTED_PHASES = ("Running", "Succeeded", "Failed")
POD_FINISHED_PHASES = ("Succeeded", "Failed")

# -- Generated kubeconfig entries --
WORKER_KUBECONFIG_CLUSTER = "worker-cluster"
WORKER_KUBECONFIG_CONTEXT = "worker-cluster"
REMOTE_KUBECONFIG_CLUSTER = "remote-cluster"
REMOTE_KUBECONFIG_CONTEXT = "remote-context"
KUBECONFIG_SECRET_KEY = "kubeconfig"

# -- Cleanup --
EXTRA_TEST_JOBS = ("multikueue-simple-test",)
WORKER_TEST_POD = "worker-test-pod"
