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

"""Setup subcommands (local, manager, worker)."""

from __future__ import annotations

import typer

from multikueue_lab.commands import load_config
from multikueue_lab.config import display_config
from multikueue_lab.orchestrator import run_local_setup, run_split_manager_setup, run_split_worker_setup

app = typer.Typer(help="Create Colima VMs and clusters and install Kueue.")

_INSTALL_MISSING = typer.Option(False, "--install-missing", help="brew install missing tools")
_SKIP_COLIMA = typer.Option(False, "--skip-colima", help="Reuse the Docker runtime that is already running")
_KUEUE_VERSION = typer.Option(None, "--kueue-version", help="Kueue release tag (overrides MK_KUEUE_VERSION)")


@app.command()
def local(
    install_missing: bool = _INSTALL_MISSING,
    skip_colima: bool = _SKIP_COLIMA,
    kueue_version: str | None = _KUEUE_VERSION,
    manager_provider: str | None = typer.Option(None, "--manager-provider", help="k3d or kind"),
    worker_provider: str | None = typer.Option(None, "--worker-provider", help="k3d or kind"),
) -> None:
    """Manager and worker clusters in one Colima VM on a shared Docker network."""
    cfg = load_config(kueue_version=kueue_version, manager_provider=manager_provider,
                      worker_provider=worker_provider)
    display_config(cfg)
    run_local_setup(cfg, install_missing=install_missing, skip_colima=skip_colima)


@app.command()
def manager(
    install_missing: bool = _INSTALL_MISSING,
    skip_colima: bool = _SKIP_COLIMA,
    kueue_version: str | None = _KUEUE_VERSION,
) -> None:
    """Manager cluster in its own Colima VM (split topology)."""
    run_split_manager_setup(load_config(kueue_version=kueue_version),
                            install_missing=install_missing, skip_colima=skip_colima)


@app.command()
def worker(
    install_missing: bool = _INSTALL_MISSING,
    skip_colima: bool = _SKIP_COLIMA,
    kueue_version: str | None = _KUEUE_VERSION,
) -> None:
    """Worker cluster in its own Colima VM (split topology)."""
    run_split_worker_setup(load_config(kueue_version=kueue_version),
                           install_missing=install_missing, skip_colima=skip_colima)
