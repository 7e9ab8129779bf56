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

"""Cleanup subcommands."""

from __future__ import annotations

import typer

from multikueue_lab.commands import assume_yes, load_config
from multikueue_lab.orchestrator import (
    run_local_cleanup,
    run_remote_cleanup,
    run_split_manager_cleanup,
    run_split_worker_cleanup,
)

app = typer.Typer(help="Tear down clusters, VMs and generated files.")

_YES = typer.Option(False, "--yes", "-y", help="Do not ask for confirmation")


@app.command()
def local(ctx: typer.Context, yes: bool = _YES) -> None:
    """Delete both local clusters, the Docker network and the Colima VM."""
    run_local_cleanup(load_config(), assume_yes=assume_yes(ctx, yes))


@app.command()
def manager(ctx: typer.Context, yes: bool = _YES) -> None:
    """Delete the split manager cluster and its Colima VM."""
    run_split_manager_cleanup(load_config(), assume_yes=assume_yes(ctx, yes))


@app.command()
def worker(ctx: typer.Context, yes: bool = _YES) -> None:
    """Delete the split worker cluster and its Colima VM."""
    run_split_worker_cleanup(load_config(), assume_yes=assume_yes(ctx, yes))


@app.command()
def remote(
    ctx: typer.Context,
    yes: bool = _YES,
    namespace: str | None = typer.Option(None, "--namespace", "-n", help="Demo namespace"),
) -> None:
    """Remove MultiKueue resources from the remote cluster (the cluster is kept)."""
    run_remote_cleanup(load_config(namespace=namespace, remote=True), assume_yes=assume_yes(ctx, yes))
