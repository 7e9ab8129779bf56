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

"""Offline validation of generated manifests, repository hygiene, and tooling."""

from __future__ import annotations

from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from pathlib import Path

import yaml
from rich.panel import Panel

from multikueue_lab import console
from multikueue_lab.config import LOCAL_LINK, JobOptions, KueueConfig, QueueQuota
from multikueue_lab.constants import ALL_TOOLS, DRY_RUN_TOLERATED_PATTERNS
from multikueue_lab.manifests import manifest_sets, render
from multikueue_lab.utils import command_available, run_kubectl

KUBECONFIG_IGNORE_PATTERN = "*.kubeconfig"
_KUEUE_KINDS = ("ResourceFlavor", "ClusterQueue", "LocalQueue", "MultiKueue", "AdmissionCheck")


@dataclass
class CheckResult:
    """Outcome of one named check."""

    name: str
    passed: bool = True
    messages: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    def fail(self, message: str) -> None:
        self.passed = False
        self.messages.append(message)


def _default_sets() -> dict[str, list[dict]]:
    kueue_cfg = KueueConfig()
    return manifest_sets(QueueQuota.from_config(kueue_cfg), JobOptions.for_link(LOCAL_LINK, kueue_cfg))


def check_manifests(root: Path) -> CheckResult:
    """Render every manifest set and parse it back."""
    result = CheckResult("manifests")
    for name, docs in _default_sets().items():
        try:
            parsed = [doc for doc in yaml.safe_load_all(render(docs)) if doc]
        except yaml.YAMLError as e:
            result.fail(f"{name}: invalid YAML: {e}")
            continue
        if len(parsed) != len(docs):
            result.fail(f"{name}: rendered {len(parsed)} documents, expected {len(docs)}")
        for doc in parsed:
            if not doc.get("apiVersion") or not doc.get("kind") or not doc.get("metadata", {}).get("name"):
                result.fail(f"{name}: document without apiVersion, kind or name: {doc}")
    return result


def is_tolerated_dry_run_error(output: str) -> bool:
    """Return True if a dry-run failure is caused by missing CRDs or no cluster."""
    if any(pattern in output for pattern in DRY_RUN_TOLERATED_PATTERNS):
        return True
    return any(kind in output for kind in _KUEUE_KINDS)


def check_dry_run(root: Path) -> CheckResult:
    """Client-side dry-run every manifest set through kubectl."""
    result = CheckResult("dry_run")
    if not command_available("kubectl"):
        result.warnings.append("kubectl not found, skipping dry-run validation")
        return result
    for name, docs in _default_sets().items():
        ok, _, stderr = run_kubectl(
            ["--dry-run=client", "--validate=false", "apply", "-f", "-"], stdin=render(docs))
        if ok:
            continue
        if is_tolerated_dry_run_error(stderr):
            result.warnings.append(f"{name}: contains CRDs or no cluster is reachable (expected offline)")
        else:
            result.fail(f"{name}: {stderr.strip()[:300]}")
    return result


def check_gitignore(root: Path) -> CheckResult:
    """Ensure generated kubeconfig files are ignored by git."""
    result = CheckResult("gitignore")
    gitignore = root / ".gitignore"
    if not gitignore.is_file():
        result.fail(".gitignore file not found")
    elif ".kubeconfig" not in gitignore.read_text():
        result.fail(f".gitignore missing {KUBECONFIG_IGNORE_PATTERN} pattern")
    return result


def check_tools(root: Path) -> CheckResult:
    """Report which external tools are installed; missing ones are warnings."""
    result = CheckResult("tools")
    for tool in ALL_TOOLS:
        if command_available(tool):
            result.messages.append(f"{tool} found")
        else:
            result.warnings.append(f"{tool} not found")
    return result


CHECKS: dict[str, Callable[[Path], CheckResult]] = {
    "manifests": check_manifests,
    "dry_run": check_dry_run,
    "gitignore": check_gitignore,
    "tools": check_tools,
}


def run_checks(names: Iterable[str] | None = None, root: Path | None = None) -> list[CheckResult]:
    """Run the named checks (all by default) and print a summary.

    Args:
        names: Check names from ``CHECKS``.
        root: Repository root used by file-based checks.

    Returns:
        One result per check, in the order run.

    Raises:
        ValueError: If an unknown check name is given.
    """
    root = root or Path.cwd()
    selected = list(names) if names else list(CHECKS)
    unknown = [name for name in selected if name not in CHECKS]
    if unknown:
        raise ValueError(f"Unknown checks: {', '.join(unknown)}. Available: {', '.join(CHECKS)}")

    console.print(Panel.fit("Running checks", style="bold blue"))
    results = []
    for name in selected:
        result = CHECKS[name](root)
        results.append(result)
        for warning in result.warnings:
            console.print(f"[yellow]⚠️  {name}: {warning}[/yellow]")
        if result.passed:
            console.print(f"[green]✅ {name} passed[/green]")
        else:
            for message in result.messages:
                console.print(f"[red]❌ {name}: {message}[/red]")
    failed = [r.name for r in results if not r.passed]
    if failed:
        console.print(f"[red]❌ Failed checks: {', '.join(failed)}[/red]")
    else:
        console.print("[green]✅ All checks passed[/green]")
    return results
