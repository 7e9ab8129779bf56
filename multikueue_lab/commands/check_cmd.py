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

"""Offline checks of manifests, repository hygiene and tooling."""

from __future__ import annotations

from pathlib import Path

import typer

from multikueue_lab.checks import CHECKS, run_checks

app = typer.Typer(help="Validate manifests and the working tree without a cluster.")


@app.command("run")
def run(
    names: list[str] | None = typer.Argument(None, help=f"Checks to run: {', '.join(CHECKS)} (default: all)"),
    root: Path = typer.Option(Path("."), "--root", file_okay=False, help="Repository root"),
) -> None:
    """Run the named checks and exit non-zero if any fail."""
    try:
        results = run_checks(names, root=root)
    except ValueError as e:
        raise typer.BadParameter(str(e)) from e
    if not all(result.passed for result in results):
        raise typer.Exit(code=1)


@app.command("list")
def list_checks() -> None:
    """List the available checks."""
    for name, fn in CHECKS.items():
        typer.echo(f"{name}: {(fn.__doc__ or '').strip().splitlines()[0]}")
