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

"""Tests for MultiKueue manager, worker and remote configuration."""

from unittest.mock import patch

import pytest

from multikueue_lab import multikueue
from multikueue_lab.config import LOCAL_LINK, REMOTE_LINK, ClusterTarget
from multikueue_lab.multikueue import (
    _manager_resources,
    cluster_active_status,
    configure_manager,
    configure_remote,
    configure_worker,
    inspect_manager,
    verify_resources,
)

MANAGER = ClusterTarget(name="manager", context="k3d-manager")
WORKER = ClusterTarget(name="worker", context="k3d-worker")


@pytest.fixture(autouse=True)
def no_polling_delay():
    with patch.object(multikueue, "RESOURCE_VERIFY_POLL_INTERVAL_SECONDS", 0):
        yield


def test_verify_resources_lists_missing():
    """Test that the timeout error names the missing resources."""
    present = {("clusterqueue", "cq")}
    with patch.object(multikueue, "resource_exists",
                      side_effect=lambda target, kind, name, ns: (kind, name) in present), \
            patch.object(multikueue, "RESOURCE_VERIFY_MAX_RETRIES", 2):
        with pytest.raises(RuntimeError, match="localqueue/lq"):
            verify_resources(MANAGER, [("clusterqueue", "cq", None), ("localqueue", "lq", "ns")])


def test_verify_resources_waits_until_present():
    """Test that resources appearing later pass verification."""
    answers = iter([False, True, True, True])
    with patch.object(multikueue, "resource_exists", side_effect=lambda *a: next(answers)):
        verify_resources(MANAGER, [("clusterqueue", "cq", None), ("localqueue", "lq", "ns")])


def test_manager_resources_default_queue():
    """Test the optional default queue in manager verification."""
    with_default = _manager_resources(LOCAL_LINK, include_default_queue=True)
    without_default = _manager_resources(LOCAL_LINK, include_default_queue=False)

    assert ("localqueue", "default-local-queue", "default") in with_default
    assert len(with_default) == len(without_default) + 1


def test_configure_worker_applies_worker_manifests(quota):
    """Test that worker queues are applied and verified."""
    with patch.object(multikueue, "apply_manifest") as apply, \
            patch.object(multikueue, "resource_exists", return_value=True), \
            patch.object(multikueue, "run_kubectl", return_value=(True, "", "")):
        configure_worker(WORKER, LOCAL_LINK, quota)

    manifest = apply.call_args.args[1]
    assert "name: worker-cluster-queue" in manifest
    assert "MultiKueueCluster" not in manifest


def test_configure_manager_requires_kubeconfig(tmp_path, quota):
    """Test that a missing worker kubeconfig is reported before any change."""
    with patch.object(multikueue, "apply_manifest") as apply:
        with pytest.raises(RuntimeError, match="not found"):
            configure_manager(MANAGER, LOCAL_LINK, tmp_path / "worker1.kubeconfig", quota)
    apply.assert_not_called()


def test_configure_manager(tmp_path, quota):
    """Test that the secret is created before the MultiKueue resources."""
    path = tmp_path / "worker1.kubeconfig"
    path.write_text("apiVersion: v1\n")
    calls = []
    with patch.object(multikueue, "kubectl", side_effect=lambda *a, **k: calls.append(a) or "kind: Secret\n"), \
            patch.object(multikueue, "apply_manifest", side_effect=lambda t, m: calls.append(m)), \
            patch.object(multikueue, "resource_exists", return_value=True), \
            patch.object(multikueue, "run_kubectl", return_value=(True, "", "")):
        configure_manager(MANAGER, LOCAL_LINK, path, quota)

    create_secret = calls[0]
    assert "worker1-secret" in create_secret
    assert f"--from-file=kubeconfig={path}" in create_secret
    assert calls[1] == "kind: Secret\n"
    assert "kind: MultiKueueCluster" in calls[2]


def test_configure_remote_unreachable(tmp_path, quota):
    """Test that an unreachable remote cluster stops configuration."""
    path = tmp_path / "remote.yaml"
    path.write_text("apiVersion: v1\n")
    with patch.object(multikueue, "run_kubectl", return_value=(False, "", "connection refused")), \
            patch.object(multikueue, "install_kueue") as install:
        with pytest.raises(RuntimeError, match="Cannot connect"):
            configure_remote(MANAGER, path, quota, "v0.13.1")
    install.assert_not_called()


def test_configure_remote_missing_file(tmp_path, quota):
    with pytest.raises(RuntimeError, match="not found"):
        configure_remote(MANAGER, tmp_path / "absent.yaml", quota, "v0.13.1")


def test_configure_remote_insecure_fallback(tmp_path, quota):
    """Test the generated remote kubeconfig when the remote has no CA data."""
    import yaml

    path = tmp_path / "remote.yaml"
    path.write_text("apiVersion: v1\n")
    with patch.object(multikueue, "run_kubectl", return_value=(True, "remote-admin", "")), \
            patch.object(multikueue, "install_kueue"), \
            patch.object(multikueue, "rollout_status"), \
            patch.object(multikueue, "configure_worker") as worker, \
            patch.object(multikueue, "create_service_account") as create_sa, \
            patch.object(multikueue, "service_account_token", return_value="tok"), \
            patch.object(multikueue, "cluster_server", return_value="https://1.2.3.4:6443"), \
            patch.object(multikueue, "cluster_ca_data", side_effect=RuntimeError("no CA")), \
            patch.object(multikueue, "configure_manager") as manager:
        out = configure_remote(MANAGER, path, quota, "v0.13.1", out_dir=tmp_path)

    assert out == tmp_path / "remote.kubeconfig"
    cluster = yaml.safe_load(out.read_text())["clusters"][0]["cluster"]
    assert cluster == {"server": "https://1.2.3.4:6443", "insecure-skip-tls-verify": True}
    assert worker.call_args.kwargs["service_account"] is None
    assert create_sa.call_args.kwargs["rules_profile"] == "remote"
    assert manager.call_args.args[:3] == (MANAGER, REMOTE_LINK, out)
    assert manager.call_args.kwargs["include_default_queue"] is False


@pytest.mark.parametrize("stdout,expected", [("True", "True"), ("False", "False"), ("", "Unknown")])
def test_cluster_active_status(stdout, expected):
    with patch.object(multikueue, "run_kubectl", return_value=(True, stdout, "")):
        assert cluster_active_status(MANAGER, "worker1") == expected


def test_inspect_manager_routes():
    """Test that LocalQueue routing and cluster activity are reported."""
    def run_kubectl(args, target=None, timeout=30, stdin=None):
        if "custom-columns=NS:.metadata.namespace,NAME:.metadata.name,CQ:.spec.clusterQueue" in args:
            return True, "multikueue-demo remote-queue remote-cluster-queue\ndefault plain local-cq\n", ""
        if args[:3] == ["get", "clusterqueue", "remote-cluster-queue"]:
            return True, '["remote-multikueue-admission-check"]', ""
        if args[:2] == ["get", "multikueueclusters"] and "jsonpath={.items[*].metadata.name}" in args:
            return True, "remote-cluster", ""
        if args[:2] == ["get", "multikueuecluster"]:
            return True, "True", ""
        return True, "", ""

    with patch.object(multikueue, "run_kubectl", side_effect=run_kubectl), \
            patch.object(multikueue, "kueue_running", return_value=True):
        report = inspect_manager(MANAGER)

    assert report.kueue_running
    assert report.clusters == {"remote-cluster": "True"}
    assert [(r.name, r.remote) for r in report.routes] == [("remote-queue", True), ("plain", False)]
