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

"""
cli.py - Unified CLI for MultiKueue demo environments.

Subcommands:
    setup      Create Colima VMs and clusters, install Kueue (local, manager, worker)
    configure  Wire managers to workers (local, worker-kubeconfig, manager, worker)
    test       Submit a sample job and follow it across clusters (local, manager)
    cleanup    Tear everything down (local, manager, worker, remote)
    remote     Use an existing cluster as a worker (info, setup-worker, configure, test)
    manifests  Render generated manifests (list, render)
    check      Offline validation (run, list)

Examples:
    # Single-VM demo
    multikueue-lab setup local
    multikueue-lab configure local
    multikueue-lab test local
    multikueue-lab cleanup local --yes

    # Existing cluster as worker
    export REMOTE_KUBECONFIG=~/remote-kubeconfig.yaml
    multikueue-lab remote configure

For detailed usage information, run: multikueue-lab --help
"""

from __future__ import annotations

import logging
import sys

import typer

from multikueue_lab import __version__, console
from multikueue_lab.commands import (
    check_cmd,
    cleanup_cmd,
    configure_cmd,
    manifests_cmd,
    remote_cmd,
    setup_cmd,
    test_cmd,
)

app = typer.Typer(
    help="Unified CLI for MultiKueue demo environments on Colima, k3d and kind.",
    no_args_is_help=True,
)


def _version_callback(value: bool) -> None:
    if value:
        typer.echo(f"multikueue-lab {__version__}")
        raise typer.Exit()


@app.callback()
def _main_callback(
    ctx: typer.Context,
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Log every external command"),
    yes: bool = typer.Option(False, "--yes", "-y", help="Answer yes to every confirmation"),
    version: bool = typer.Option(
        False, "--version", callback=_version_callback, is_eager=True, help="Show the version and exit"),
) -> None:
    """Initialize logging and shared options for all subcommands."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s [%(levelname)s] %(message)s",
        datefmt="%H:%M:%S",
    )
    if not verbose:
        # sh logs each process at INFO
        logging.getLogger("sh").setLevel(logging.WARNING)
    ctx.obj = {"assume_yes": yes}


app.add_typer(setup_cmd.app, name="setup")
app.add_typer(configure_cmd.app, name="configure")
app.add_typer(test_cmd.app, name="test")
app.add_typer(cleanup_cmd.app, name="cleanup")
app.add_typer(remote_cmd.app, name="remote")
app.add_typer(manifests_cmd.app, name="manifests")
app.add_typer(check_cmd.app, name="check")


def main() -> None:
    """Console script entry point."""
    try:
        app()
    except Exception as e:
        console.print(f"[red]❌ {e}[/red]")
        sys.exit(1)


if __name__ == "__main__":
    main()
