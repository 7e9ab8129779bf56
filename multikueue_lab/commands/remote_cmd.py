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

"""Remote cluster subcommands."""

from __future__ import annotations

import typer

from multikueue_lab.commands import load_config
from multikueue_lab.commands.test_cmd import exit_on_failure
from multikueue_lab.config import display_config
from multikueue_lab.orchestrator import (
    remote_requirements,
    run_remote_configure,
    run_remote_test,
    run_remote_worker_setup,
)

app = typer.Typer(help="Use an existing cluster (REMOTE_KUBECONFIG) as a MultiKueue worker.")

_NAMESPACE = typer.Option(None, "--namespace", "-n", help="Demo namespace (overrides MK_DEMO_NAMESPACE)")


@app.command()
def info() -> None:
    """Show what a remote cluster needs before it can join."""
    remote_requirements()


@app.command("setup-worker")
def setup_worker(
    install_missing: bool = typer.Option(False, "--install-missing", help="brew install missing tools"),
) -> None:
    """Create a kind cluster other machines reach at WORKER_IP."""
    cfg = load_config(remote=True)
    display_config(cfg, show_remote=True)
    run_remote_worker_setup(cfg, install_missing=install_missing)


@app.command()
def configure(
    kueue_version: str | None = typer.Option(None, "--kueue-version", help="Kueue release tag for the remote"),
    namespace: str | None = _NAMESPACE,
) -> None:
    """Install Kueue on the remote cluster and register it with the local manager."""
    cfg = load_config(kueue_version=kueue_version, namespace=namespace, remote=True)
    display_config(cfg, show_remote=True)
    run_remote_configure(cfg)


@app.command()
def test(namespace: str | None = _NAMESPACE) -> None:
    """Submit the sample job to the remote queue."""
    cfg = load_config(namespace=namespace, remote=True)
    exit_on_failure(run_remote_test(cfg), worker_known=cfg.remote.remote_kubeconfig is not None)
