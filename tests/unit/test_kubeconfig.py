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

"""Tests for kubeconfig generation, tokens and host IP detection."""

import base64
import stat
from unittest.mock import patch

import pytest
import requests
import yaml

from multikueue_lab import kubeconfig
from multikueue_lab.config import ClusterSpec, ClusterTarget
from multikueue_lab.kubeconfig import (
    _first_address,
    build_kubeconfig,
    detect_host_ip,
    export_worker_kubeconfig,
    service_account_token,
    write_kubeconfig,
)

TARGET = ClusterTarget(name="worker", context="k3d-worker")


def test_build_kubeconfig_with_ca():
    """Test a kubeconfig pinned to a CA."""
    data = build_kubeconfig("c", "ctx", "u", "https://k3d-worker-server-0:6443", "tok", ca_data="Q0E=")

    assert data["current-context"] == "ctx"
    assert data["clusters"][0]["cluster"] == {
        "server": "https://k3d-worker-server-0:6443", "certificate-authority-data": "Q0E="}
    assert data["contexts"][0]["context"] == {"cluster": "c", "user": "u"}
    assert data["users"][0]["user"] == {"token": "tok"}


def test_build_kubeconfig_insecure():
    """Test a kubeconfig skipping TLS verification."""
    data = build_kubeconfig("c", "ctx", "u", "https://10.0.0.1:6444", "tok", insecure=True)

    cluster = data["clusters"][0]["cluster"]
    assert cluster["insecure-skip-tls-verify"] is True
    assert "certificate-authority-data" not in cluster


@pytest.mark.parametrize("ca_data,insecure", [(None, False), ("Q0E=", True)])
def test_build_kubeconfig_requires_one_trust_mode(ca_data, insecure):
    """Test that exactly one of CA data and insecure must be given."""
    with pytest.raises(ValueError):
        build_kubeconfig("c", "ctx", "u", "https://x", "tok", ca_data=ca_data, insecure=insecure)


def test_write_kubeconfig_is_private(tmp_path):
    """Test that kubeconfig files are written with mode 600."""
    path = write_kubeconfig(tmp_path / "w.kubeconfig", {"kind": "Config"})

    assert yaml.safe_load(path.read_text()) == {"kind": "Config"}
    assert stat.S_IMODE(path.stat().st_mode) == 0o600


def test_first_address_skips_loopback_and_noise():
    """Test parsing of hostname -I style output."""
    assert _first_address("127.0.0.1 192.168.1.20 10.0.0.2\n") == "192.168.1.20"
    assert _first_address("en0: not-an-ip") is None
    assert _first_address("") is None


def test_detect_host_ip_prefers_gateway():
    """Test that the Colima gateway wins when available."""
    with patch.object(kubeconfig, "gateway_ip", return_value="192.168.5.2"), \
            patch.object(kubeconfig, "_api_reachable") as probe:
        assert detect_host_ip("multikueue-worker", 6444) == "192.168.5.2"
    probe.assert_not_called()


def test_detect_host_ip_probes_candidates():
    """Test that Docker host aliases are probed in order."""
    with patch.object(kubeconfig, "gateway_ip", return_value=None), \
            patch.object(kubeconfig, "_api_reachable", side_effect=[False, True]):
        assert detect_host_ip("multikueue-worker", 6444) == "172.17.0.1"


def test_detect_host_ip_falls_back_to_loopback():
    """Test the loopback fallback when nothing else works."""
    with patch.object(kubeconfig, "_api_reachable", return_value=False), \
            patch.object(kubeconfig, "_local_address", return_value=None):
        assert detect_host_ip(None, 6444) == "127.0.0.1"


def test_api_reachable_handles_errors():
    """Test that connection errors count as unreachable."""
    with patch.object(kubeconfig.requests, "get", side_effect=requests.ConnectionError("refused")):
        assert not kubeconfig._api_reachable("10.0.0.1", 6444)
    with patch.object(kubeconfig.requests, "get"):
        assert kubeconfig._api_reachable("10.0.0.1", 6444)


def test_token_from_secret():
    """Test that a token Secret is applied and decoded."""
    encoded = base64.b64encode(b"secret-token").decode()
    with patch.object(kubeconfig, "apply_manifest") as apply, \
            patch.object(kubeconfig, "run_kubectl", return_value=(True, encoded, "")):
        assert service_account_token(TARGET, "multikueue-sa", secret_name="multikueue-sa-token") == "secret-token"
    assert "kubernetes.io/service-account-token" in apply.call_args.args[1]


def test_token_falls_back_to_create_token():
    """Test kubectl create token when the ServiceAccount lists no secrets."""
    with patch.object(kubeconfig, "run_kubectl", return_value=(True, "", "")), \
            patch.object(kubeconfig, "kubectl", return_value="issued-token\n") as kubectl:
        assert service_account_token(TARGET, "multikueue-remote-sa") == "issued-token"
    assert "--duration=87600h" in kubectl.call_args.args


def test_export_reuses_existing_file(tmp_path):
    """Test that an existing kubeconfig is kept unless forced."""
    path = tmp_path / "worker1.kubeconfig"
    path.write_text("existing")
    with patch.object(kubeconfig, "create_service_account") as create:
        assert export_worker_kubeconfig(ClusterSpec(name="worker"), path) == path
    create.assert_not_called()
    assert path.read_text() == "existing"


def test_export_internal_uses_network_name_and_ca(tmp_path):
    """Test the shared-network kubeconfig."""
    path = tmp_path / "worker1.kubeconfig"
    with patch.object(kubeconfig, "create_service_account") as create, \
            patch.object(kubeconfig, "service_account_token", return_value="tok"), \
            patch.object(kubeconfig, "cluster_ca_data", return_value="Q0E="):
        export_worker_kubeconfig(ClusterSpec(name="worker", api_port=6444), path)

    data = yaml.safe_load(path.read_text())
    assert data["clusters"][0]["cluster"] == {
        "server": "https://k3d-worker-server-0:6443", "certificate-authority-data": "Q0E="}
    assert create.call_args.kwargs["cluster_admin"] is False


def test_export_via_host_is_insecure(tmp_path):
    """Test the cross-VM kubeconfig addressed through the host."""
    path = tmp_path / "worker.kubeconfig"
    with patch.object(kubeconfig, "create_service_account"), \
            patch.object(kubeconfig, "service_account_token", return_value="tok"), \
            patch.object(kubeconfig, "detect_host_ip", return_value="192.168.5.2"):
        export_worker_kubeconfig(ClusterSpec(name="worker", api_port=6444), path, via_host=True,
                                 colima_profile="multikueue-worker", cluster_admin=True, force=True)

    cluster = yaml.safe_load(path.read_text())["clusters"][0]["cluster"]
    assert cluster == {"server": "https://192.168.5.2:6444", "insecure-skip-tls-verify": True}
