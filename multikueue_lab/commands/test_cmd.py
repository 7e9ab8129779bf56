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

"""Test subcommands submitting sample jobs and inspecting managers."""

from __future__ import annotations

import typer

from multikueue_lab.commands import load_config
from multikueue_lab.dispatch import DispatchResult
from multikueue_lab.orchestrator import run_local_test, run_split_manager_test

app = typer.Typer(help="Verify that jobs are dispatched across clusters.")

_NAMESPACE = typer.Option(None, "--namespace", "-n", help="Demo namespace (overrides MK_DEMO_NAMESPACE)")


def exit_on_failure(result: DispatchResult, worker_known: bool = True) -> None:
    """Exit non-zero when a reachable worker never received the job."""
    if worker_known and not result.dispatched:
        raise typer.Exit(code=1)


@app.command()
def local(namespace: str | None = _NAMESPACE) -> None:
    """Submit the sample job locally and follow it onto the worker."""
    exit_on_failure(run_local_test(load_config(namespace=namespace)))


@app.command()
def manager() -> None:
    """Show the split manager's MultiKueue setup and worker connectivity."""
    report = run_split_manager_test(load_config())
    if not report.kueue_running:
        raise typer.Exit(code=1)
