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

"""Tests for Colima profile handling."""

from unittest.mock import patch

import pytest
import sh

from multikueue_lab import colima
from multikueue_lab.colima import (
    delete_profile,
    list_profiles,
    parse_default_gateway,
    profile_running,
    resume_profile,
    start_profile,
    stop_profile,
)
from multikueue_lab.config import ColimaConfig


def test_parse_default_gateway():
    """Test gateway extraction from ip route output."""
    output = "default via 192.168.5.2 dev eth0 proto dhcp src 192.168.5.15 metric 100\n"
    assert parse_default_gateway(output) == "192.168.5.2"


@pytest.mark.parametrize("output", ["", "default dev eth0", "default via 127.0.0.1 dev lo", "10.0.0.0/8 via 1.2.3.4"])
def test_parse_default_gateway_rejects(output):
    """Test outputs without a usable gateway."""
    assert parse_default_gateway(output) is None


def test_start_profile(fake_sh, sh_error):
    """Test that a profile is recreated with the configured resources."""
    mock_sh = fake_sh()

    def colima_cmd(*args):
        if args[0] == "delete":
            raise sh_error("colima delete")
        return ""

    mock_sh.colima.side_effect = colima_cmd
    with patch.object(colima, "sh", mock_sh):
        start_profile(ColimaConfig(colima_profile="demo", colima_cpu=2))

    start = next(c.args for c in mock_sh.colima.call_args_list if c.args[0] == "start")
    assert start[start.index("--profile") + 1] == "demo"
    assert start[start.index("--cpu") + 1] == "2"
    assert "--kubernetes=false" in start


def test_start_profile_times_out(fake_sh, sh_error):
    """Test that a profile that never runs raises RuntimeError."""
    mock_sh = fake_sh()

    def colima_cmd(*args):
        if args[0] == "status":
            raise sh_error("colima status")
        return ""

    mock_sh.colima.side_effect = colima_cmd
    with patch.object(colima, "sh", mock_sh), patch.object(colima, "COLIMA_READY_POLL_INTERVAL_SECONDS", 0):
        with pytest.raises(RuntimeError, match="Timed out"):
            start_profile(ColimaConfig(colima_profile="demo"))


def test_resume_profile_already_running():
    """Test that a running profile is not restarted."""
    with patch.object(colima, "profile_running", return_value=True), patch.object(colima, "sh") as mock_sh:
        assert resume_profile("multikueue-worker")
    mock_sh.colima.assert_not_called()


def test_profile_helpers_without_colima(fake_sh):
    """Test that the profile helpers tolerate a host without colima installed."""
    mock_sh = fake_sh()
    mock_sh.colima.side_effect = sh.CommandNotFound("colima")
    with patch.object(colima, "sh", mock_sh):
        assert not profile_running("multikueue")
        stop_profile("multikueue")
        delete_profile("multikueue")
        assert list_profiles() == ""
        assert not resume_profile("multikueue")
