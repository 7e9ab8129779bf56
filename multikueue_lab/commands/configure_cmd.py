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

"""Configure subcommands wiring managers to workers."""

from __future__ import annotations

from pathlib import Path

import typer

from multikueue_lab.commands import load_config
from multikueue_lab.orchestrator import (
    run_local_configure,
    run_split_manager_configure,
    run_split_worker_configure,
    run_split_worker_kubeconfig,
)

app = typer.Typer(help="Configure MultiKueue between manager and worker clusters.")

_NAMESPACE = typer.Option(None, "--namespace", "-n", help="Demo namespace (overrides MK_DEMO_NAMESPACE)")
_FORCE = typer.Option(False, "--force", help="Regenerate the worker kubeconfig even if it exists")


@app.command()
def local(
    force: bool = _FORCE,
    namespace: str | None = _NAMESPACE,
) -> None:
    """Connect the local manager to the local worker."""
    run_local_configure(load_config(namespace=namespace), force=force)


@app.command("worker-kubeconfig")
def worker_kubeconfig(force: bool = _FORCE) -> None:
    """Export a kubeconfig for the split worker, reachable through the host IP."""
    run_split_worker_kubeconfig(load_config(), force=force)


@app.command()
def manager(
    kubeconfig: Path | None = typer.Option(
        None, "--kubeconfig", exists=True, dir_okay=False,
        help="Worker kubeconfig (default $REMOTE_KUBECONFIG, then ./worker.kubeconfig)"),
    namespace: str | None = _NAMESPACE,
) -> None:
    """Point the split manager at the worker kubeconfig."""
    run_split_manager_configure(load_config(namespace=namespace, remote=True), kubeconfig=kubeconfig)


@app.command()
def worker(namespace: str | None = _NAMESPACE) -> None:
    """Create the queues the split manager dispatches into."""
    run_split_worker_configure(load_config(namespace=namespace))
