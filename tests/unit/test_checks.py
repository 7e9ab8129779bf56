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

"""Tests for offline checks."""

from unittest.mock import patch

import pytest

from multikueue_lab import checks
from multikueue_lab.checks import (
    check_dry_run,
    check_gitignore,
    check_manifests,
    is_tolerated_dry_run_error,
    run_checks,
)


def test_manifests_check_passes(tmp_path):
    """Test that every generated set renders and parses."""
    result = check_manifests(tmp_path)
    assert result.passed, result.messages


def test_gitignore_check(tmp_path):
    """Test the kubeconfig ignore pattern check."""
    assert not check_gitignore(tmp_path).passed

    (tmp_path / ".gitignore").write_text("__pycache__/\n")
    result = check_gitignore(tmp_path)
    assert not result.passed
    assert "*.kubeconfig" in result.messages[0]

    (tmp_path / ".gitignore").write_text("*.kubeconfig\n")
    assert check_gitignore(tmp_path).passed


@pytest.mark.parametrize("stderr", [
    'error: resource mapping not found for name: "worker1" namespace: "" from "STDIN": '
    'no matches for kind "MultiKueueCluster"',
    "The connection to the server localhost:8080 was refused",
    'unable to recognize "STDIN": ClusterQueue',
])
def test_tolerated_dry_run_errors(stderr):
    assert is_tolerated_dry_run_error(stderr)


def test_real_dry_run_error_is_not_tolerated():
    assert not is_tolerated_dry_run_error('error: error parsing STDIN: yaml: line 3: mapping values are not allowed')


def test_dry_run_without_kubectl(tmp_path):
    """Test that a missing kubectl is a warning, not a failure."""
    with patch.object(checks, "command_available", return_value=False):
        result = check_dry_run(tmp_path)
    assert result.passed
    assert result.warnings


def test_dry_run_offline(tmp_path):
    """Test that missing CRDs are tolerated and other failures are not."""
    def run_kubectl(args, target=None, timeout=30, stdin=None):
        if "kind: Job" in stdin:
            return False, "", "error: strict decoding error: unknown field"
        return False, "", 'no matches for kind "ClusterQueue" in version "kueue.x-k8s.io/v1beta1"'

    with patch.object(checks, "command_available", return_value=True), \
            patch.object(checks, "run_kubectl", side_effect=run_kubectl):
        result = check_dry_run(tmp_path)

    assert not result.passed
    assert len(result.messages) == 1
    assert result.messages[0].startswith("sample-job")


def test_run_checks_unknown_name(tmp_path):
    with pytest.raises(ValueError, match="Unknown checks: nope"):
        run_checks(["manifests", "nope"], root=tmp_path)


def test_run_checks_selected(tmp_path):
    """Test that only the named checks run, in order."""
    (tmp_path / ".gitignore").write_text("*.kubeconfig\n")
    results = run_checks(["gitignore", "manifests"], root=tmp_path)
    assert [r.name for r in results] == ["gitignore", "manifests"]
    assert all(r.passed for r in results)
