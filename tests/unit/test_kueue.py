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

"""Tests for Kueue installation helpers."""

from unittest.mock import MagicMock, patch

import pytest
import yaml

from multikueue_lab import kueue
from multikueue_lab.config import ClusterTarget
from multikueue_lab.kueue import (
    _seconds,
    configure_minimal_integrations,
    install_kueue,
    kueue_running,
    uninstall_kueue,
    wait_for_kueue,
)

TARGET = ClusterTarget(name="worker", context="k3d-worker")


@pytest.mark.parametrize("timeout,expected", [("300s", 300), ("5m", 300), ("1h", 3600), ("45", 45)])
def test_seconds(timeout, expected):
    """Test kubectl duration parsing."""
    assert _seconds(timeout) == expected


def test_install_uses_server_side_apply():
    """Test that the release manifest is applied server-side."""
    with patch.object(kueue, "kubectl") as kubectl:
        install_kueue(TARGET, "v0.13.1")
    args = kubectl.call_args.args
    assert args[0] == TARGET
    assert "--server-side" in args
    assert args[-1].endswith("/v0.13.1/manifests.yaml")


def test_wait_for_kueue_failure():
    """Test that an unavailable controller raises RuntimeError."""
    with patch.object(kueue, "run_kubectl", return_value=(False, "", "timed out")):
        with pytest.raises(RuntimeError, match="Timed out waiting for Kueue controller"):
            wait_for_kueue(TARGET, timeout="10s")


def test_uninstall_reports_result():
    """Test that uninstall returns kubectl's outcome."""
    with patch.object(kueue, "run_kubectl", return_value=(True, "", "")) as run:
        assert uninstall_kueue(TARGET, "v0.13.1")
    assert "--wait=false" in run.call_args.args[0]


def test_kueue_running():
    """Test the controller probe."""
    with patch.object(kueue, "run_kubectl", side_effect=[(True, "", ""), (True, "Running", "")]):
        assert kueue_running(TARGET)
    with patch.object(kueue, "run_kubectl", return_value=(False, "", "NotFound")):
        assert not kueue_running(TARGET)


def test_configure_minimal_integrations_order():
    """Test that the ConfigMap is applied, the controller restarted, then awaited."""
    calls = MagicMock()
    with patch.object(kueue, "apply_manifest", calls.apply), \
            patch.object(kueue, "kubectl", calls.kubectl), \
            patch.object(kueue, "wait_for_kueue", calls.wait):
        configure_minimal_integrations(TARGET)

    assert [c[0] for c in calls.mock_calls] == ["apply", "kubectl", "wait"]
    target, manifest = calls.apply.call_args.args
    assert target == TARGET
    configmap = yaml.safe_load(manifest)
    assert configmap["kind"] == "ConfigMap"
    assert configmap["metadata"] == {"name": "kueue-manager-config", "namespace": "kueue-system"}
    configuration = yaml.safe_load(next(iter(configmap["data"].values())))
    assert configuration["integrations"]["frameworks"] == ["batch/job"]
    assert calls.kubectl.call_args.args == (
        TARGET, "rollout", "restart", "deployment/kueue-controller-manager", "-n", "kueue-system")
    calls.wait.assert_called_once_with(TARGET)
