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

"""Pytest configuration and shared fixtures."""

import pytest
from hypothesis import Verbosity, settings

from multikueue_lab.config import KueueConfig, QueueQuota

# Configure Hypothesis for property-based testing
settings.register_profile("default", max_examples=100, verbosity=Verbosity.normal)
settings.register_profile("ci", max_examples=1000, verbosity=Verbosity.verbose)
settings.register_profile("dev", max_examples=10, verbosity=Verbosity.verbose)

# Load the default profile
settings.load_profile("default")

_ENV_VARS = ("REMOTE_KUBECONFIG", "WORKER_IP")


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    """Keep MK_* and remote variables from the developer's shell out of tests."""
    import os

    for name in list(os.environ):
        if name.startswith("MK_") or name in _ENV_VARS:
            monkeypatch.delenv(name, raising=False)


@pytest.fixture
def quota():
    """Default ClusterQueue quota."""
    return QueueQuota(cpu="4", memory="8Gi")


@pytest.fixture
def kueue_cfg():
    """Kueue settings with library defaults."""
    return KueueConfig()


@pytest.fixture
def fake_sh():
    """Build a stand-in for the ``sh`` module that keeps its real exception classes."""
    from unittest.mock import MagicMock

    import sh

    def _make():
        mock = MagicMock()
        mock.ErrorReturnCode = sh.ErrorReturnCode
        mock.ErrorReturnCode_1 = sh.ErrorReturnCode_1
        mock.CommandNotFound = sh.CommandNotFound
        mock.TimeoutException = sh.TimeoutException
        return mock

    return _make


@pytest.fixture
def sh_error():
    """Build an ``sh.ErrorReturnCode_1`` as raised by a failing command."""
    import sh

    def _make(cmd="cmd", stderr=b"failed"):
        return sh.ErrorReturnCode_1(cmd, b"", stderr)

    return _make
