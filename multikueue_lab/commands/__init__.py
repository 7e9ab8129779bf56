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

"""Typer sub-applications and the option plumbing they share."""

from __future__ import annotations

import typer

from multikueue_lab.config import ClusterConfig, ColimaConfig, KueueConfig, RemoteConfig, ResolvedConfig


def load_config(
    kueue_version: str | None = None,
    namespace: str | None = None,
    manager_provider: str | None = None,
    worker_provider: str | None = None,
    remote: bool = False,
) -> ResolvedConfig:
    """Build the configuration from MK_* variables, then apply CLI overrides.

    Args:
        kueue_version: Kueue release tag overriding ``MK_KUEUE_VERSION``.
        namespace: Demo namespace overriding ``MK_DEMO_NAMESPACE``.
        manager_provider: Manager cluster tool overriding ``MK_MANAGER_PROVIDER``.
        worker_provider: Worker cluster tool overriding ``MK_WORKER_PROVIDER``.
        remote: Read REMOTE_KUBECONFIG and WORKER_IP. Otherwise the remote
            settings are left unset and unvalidated.
    """
    kueue_cfg = KueueConfig()
    if kueue_version is not None:
        kueue_cfg = kueue_cfg.model_copy(update={"kueue_version": kueue_version})
    if namespace is not None:
        kueue_cfg = kueue_cfg.model_copy(update={"demo_namespace": namespace})

    cluster_cfg = ClusterConfig()
    if manager_provider is not None:
        cluster_cfg = cluster_cfg.model_copy(update={"manager_provider": manager_provider})
    if worker_provider is not None:
        cluster_cfg = cluster_cfg.model_copy(update={"worker_provider": worker_provider})

    return ResolvedConfig(colima=ColimaConfig(), clusters=cluster_cfg, kueue=kueue_cfg,
                          remote=RemoteConfig() if remote else RemoteConfig.model_construct())


def assume_yes(ctx: typer.Context, yes: bool) -> bool:
    """Combine a command's ``--yes`` with the global one."""
    return yes or bool((ctx.obj or {}).get("assume_yes"))
