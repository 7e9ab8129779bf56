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

"""Render generated manifests without touching a cluster."""

from __future__ import annotations

from pathlib import Path

import typer

from multikueue_lab import console
from multikueue_lab.commands import load_config
from multikueue_lab.config import LINKS, JobOptions, QueueQuota
from multikueue_lab.manifests import manifest_sets, render

app = typer.Typer(help="Render MultiKueue manifests.")


@app.command("list")
def list_sets() -> None:
    """List the available manifest sets."""
    cfg = load_config()
    for name in manifest_sets(QueueQuota.from_config(cfg.kueue), JobOptions.for_link(LINKS["local"], cfg.kueue)):
        typer.echo(name)


@app.command("render")
def render_cmd(
    names: list[str] | None = typer.Argument(None, help="Manifest sets to render (default: all)"),
    output_dir: Path | None = typer.Option(
        None, "--output-dir", "-o", file_okay=False, help="Write one <set>.yaml per set instead of stdout"),
    namespace: str | None = typer.Option(None, "--namespace", "-n", help="Demo namespace"),
) -> None:
    """Print manifest sets as YAML, or write them to a directory."""
    cfg = load_config(namespace=namespace)
    link = LINKS["local"].with_namespace(cfg.kueue.demo_namespace)
    sets = manifest_sets(QueueQuota.from_config(cfg.kueue), JobOptions.for_link(link, cfg.kueue),
                         demo_namespace=cfg.kueue.demo_namespace)
    selected = names or list(sets)
    unknown = [name for name in selected if name not in sets]
    if unknown:
        raise typer.BadParameter(f"unknown manifest sets: {', '.join(unknown)}. Available: {', '.join(sets)}")

    if output_dir is not None:
        output_dir.mkdir(parents=True, exist_ok=True)
    for name in selected:
        text = render(sets[name])
        if output_dir is None:
            typer.echo(f"# {name}\n---\n{text}", nl=False)
        else:
            path = output_dir / f"{name}.yaml"
            path.write_text(text)
            console.print(f"[green]✅ Wrote {path}[/green]")
