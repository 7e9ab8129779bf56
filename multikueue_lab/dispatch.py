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

"""Sample job submission and cross-cluster dispatch monitoring."""

from __future__ import annotations

from dataclasses import dataclass

import sh
from rich.panel import Panel
from tenacity import RetryError, retry, retry_if_result, stop_after_attempt, wait_fixed

from multikueue_lab import console, logger
from multikueue_lab.config import ClusterTarget, JobOptions
from multikueue_lab.constants import (
    DISPATCH_MAX_RETRIES,
    DISPATCH_POLL_INTERVAL_SECONDS,
    JOB_COMPLETE_TIMEOUT,
    LABEL_JOB_NAME,
    POD_FINISHED_PHASES,
    POD_START_MAX_RETRIES,
    POD_START_POLL_INTERVAL_SECONDS,
    POD_STARTED_PHASES,
    WORKLOAD_MAX_RETRIES,
    WORKLOAD_POLL_INTERVAL_SECONDS,
)
from multikueue_lab.manifests import render, sample_job
from multikueue_lab.utils import apply_manifest, run_kubectl, split_rows

_ADMISSION_COLUMNS = (
    "custom-columns=NAME:.metadata.name,QUEUE:.spec.queueName,"
    "ADMISSION-CHECKS:.status.admissionChecks[*].state"
)
_POD_LISTING = (
    'jsonpath={range .items[*]}{.metadata.creationTimestamp}{" "}{.metadata.name}'
    '{" "}{.spec.containers[0].image}{"\\n"}{end}'
)
_LOG_FOLLOW_GRACE_SECONDS = 10


@dataclass
class DispatchResult:
    """Outcome of a dispatch test.

    Attributes:
        dispatched: The job appeared on the worker cluster.
        pod: Name of the job's pod on the worker, if found.
        phase: Last observed pod phase.
        completed: The job reached the Complete condition.
    """

    dispatched: bool = False
    pod: str | None = None
    phase: str | None = None
    completed: bool = False


# ============================================================================
# Output parsing
# ============================================================================

def count_rows(output: str) -> int:
    """Count the rows of ``--no-headers`` kubectl output."""
    return len(split_rows(output))


def parse_admission_states(output: str) -> dict[str, list[str]]:
    """Parse workload admission-check states from custom-columns output.

    Args:
        output: ``NAME QUEUE ADMISSION-CHECKS`` table, header optional.

    Returns:
        Workload name mapped to its admission-check states (empty when none).
    """
    states: dict[str, list[str]] = {}
    for row in split_rows(output):
        fields = row.split()
        if fields[0] == "NAME":
            continue
        raw = fields[2] if len(fields) > 2 else "<none>"
        states[fields[0]] = [] if raw == "<none>" else [s for s in raw.split(",") if s]
    return states


def pick_pod(labelled: list[str], listing: str) -> str | None:
    """Choose the pod that most likely belongs to the sample job.

    Prefers a pod carrying the ``job-name`` label, then the newest busybox
    pod, then the newest pod of any kind.

    Args:
        labelled: Pod names selected by the ``job-name`` label.
        listing: ``<creationTimestamp> <name> <image>`` lines for every pod.

    Returns:
        Pod name, or None when the namespace has no pods.
    """
    if labelled:
        return labelled[0]
    pods = sorted(tuple(row.split()[:3]) for row in split_rows(listing) if len(row.split()) >= 2)
    if not pods:
        return None
    busybox = [pod for pod in pods if len(pod) > 2 and "busybox" in pod[2]]
    return (busybox or pods)[-1][1]


# ============================================================================
# Cluster probes
# ============================================================================

def _show(target: ClusterTarget, args: list[str], empty_message: str) -> str:
    console.print(f"[yellow]$ kubectl {' '.join(args)}[/yellow]")
    ok, stdout, _ = run_kubectl(args, target=target)
    if ok and stdout.strip():
        console.print(stdout.rstrip(), markup=False, highlight=False)
        return stdout
    console.print(f"[cyan]ℹ️  {empty_message}[/cyan]")
    return ""


def _pod_phase(target: ClusterTarget, pod: str, namespace: str) -> str:
    ok, stdout, _ = run_kubectl(
        ["get", "pod", pod, "-n", namespace, "-o", "jsonpath={.status.phase}"], target=target)
    return stdout.strip() if ok else ""


def _wait_for_workload(manager: ClusterTarget, namespace: str) -> bool:
    @retry(
        stop=stop_after_attempt(WORKLOAD_MAX_RETRIES),
        wait=wait_fixed(WORKLOAD_POLL_INTERVAL_SECONDS),
        retry=retry_if_result(lambda found: not found),
    )
    def _poll() -> bool:
        ok, stdout, _ = run_kubectl(["get", "workloads", "-n", namespace, "--no-headers"], target=manager)
        return ok and count_rows(stdout) > 0

    try:
        return _poll()
    except RetryError:
        return False


def _wait_for_dispatch(worker: ClusterTarget, namespace: str) -> bool:
    @retry(
        stop=stop_after_attempt(DISPATCH_MAX_RETRIES),
        wait=wait_fixed(DISPATCH_POLL_INTERVAL_SECONDS),
        retry=retry_if_result(lambda found: not found),
    )
    def _poll() -> bool:
        ok, stdout, _ = run_kubectl(["get", "jobs", "-n", namespace, "--no-headers"], target=worker)
        return ok and count_rows(stdout) > 0

    try:
        return _poll()
    except RetryError:
        return False


def _wait_for_pod_start(worker: ClusterTarget, pod: str, namespace: str) -> str:
    @retry(
        stop=stop_after_attempt(POD_START_MAX_RETRIES),
        wait=wait_fixed(POD_START_POLL_INTERVAL_SECONDS),
        retry=retry_if_result(lambda phase: phase not in POD_STARTED_PHASES),
    )
    def _poll() -> str:
        phase = _pod_phase(worker, pod, namespace)
        logger.debug("pod %s phase: %s", pod, phase or "<unknown>")
        return phase

    try:
        return _poll()
    except RetryError as err:
        return err.last_attempt.result()


def _find_pod(worker: ClusterTarget, job_name: str, namespace: str) -> str | None:
    ok, stdout, _ = run_kubectl(
        ["get", "pods", "-n", namespace, "-l", f"{LABEL_JOB_NAME}={job_name}", "--no-headers",
         "-o", "custom-columns=:metadata.name"],
        target=worker,
    )
    labelled = split_rows(stdout) if ok else []
    listing = ""
    if not labelled:
        console.print("[yellow]   Job-based pod lookup failed, searching recent pods...[/yellow]")
        ok, listing, _ = run_kubectl(
            ["get", "pods", "-n", namespace, "--sort-by=.metadata.creationTimestamp", "-o", _POD_LISTING],
            target=worker,
        )
        listing = listing if ok else ""
    return pick_pod([name.strip() for name in labelled], listing)


def _print_logs(worker: ClusterTarget, pod: str, namespace: str, phase: str, follow_seconds: int) -> None:
    """Print finished pod logs, or follow a running pod's logs for a bounded time."""
    console.print("========================================")
    if phase in POD_FINISHED_PHASES:
        console.print(f"Pod already completed with status: {phase}")
        _show(worker, ["logs", pod, "-n", namespace], "No logs available")
        console.print("========================================")
        return

    @retry(
        stop=stop_after_attempt(10),
        wait=wait_fixed(POD_START_POLL_INTERVAL_SECONDS),
        retry=retry_if_result(lambda ready: not ready),
    )
    def _logs_ready() -> bool:
        ok, _, _ = run_kubectl(["logs", pod, "-n", namespace, "--tail=1"], target=worker)
        return ok

    try:
        _logs_ready()
    except RetryError:
        console.print("[yellow]⚠️  Logs not available yet[/yellow]")

    console.print(f"[yellow]$ kubectl logs {pod} -n {namespace} -f[/yellow]")
    try:
        sh.kubectl(
            *worker.kubectl_flags(), "logs", pod, "-n", namespace, "-f",
            _out=lambda line: console.print(line.rstrip("\n"), markup=False, highlight=False),
            _timeout=follow_seconds,
        )
    except sh.TimeoutException:
        logger.debug("stopped following logs of %s after %ds", pod, follow_seconds)
    except sh.ErrorReturnCode as err:
        console.print(f"[yellow]⚠️  Logs not available: {err.stderr.decode(errors='replace').strip()}[/yellow]")
    console.print("========================================")


# ============================================================================
# Dispatch test
# ============================================================================

def run_dispatch_test(manager: ClusterTarget, worker: ClusterTarget | None, job: JobOptions) -> DispatchResult:
    """Submit the sample job to the manager and follow it onto the worker.

    Args:
        manager: Manager cluster the job is submitted to.
        worker: Worker cluster the job should be dispatched to, or None when
            it is not reachable from here (only the manager side is shown).
        job: Sample job options.

    Returns:
        What was observed on the worker.
    """
    result = DispatchResult()
    ns = job.namespace

    console.print(Panel.fit(f"Submitting '{job.name}' to '{manager.name}'", style="bold blue"))
    run_kubectl(["delete", "job", job.name, "-n", ns, "--ignore-not-found=true"], target=manager)
    apply_manifest(manager, render([sample_job(job)]))
    console.print(f"[green]✅ Job submitted to queue '{job.queue}' on the manager cluster[/green]")

    if not _wait_for_workload(manager, ns):
        console.print("[yellow]⚠️  No workload created on the manager yet[/yellow]")
    _show(manager, ["get", "workloads", "-n", ns], "No workloads found")
    states = parse_admission_states(
        _show(manager, ["get", "workloads", "-n", ns, "-o", _ADMISSION_COLUMNS], "No workloads found"))
    for workload, checks in states.items():
        console.print(f"  {workload}: admission checks {', '.join(checks) or 'pending'}")

    if worker is None:
        console.print("[cyan]ℹ️  Worker cluster not given; check it directly for the dispatched job[/cyan]")
        return result

    console.print(Panel.fit(f"Checking dispatch to '{worker.name}'", style="bold blue"))
    result.dispatched = _wait_for_dispatch(worker, ns)
    _show(worker, ["get", "workloads", "-n", ns, "-o", "wide"], "No workloads on worker cluster")
    _show(worker, ["get", "jobs", "-n", ns], "No jobs on worker cluster")
    _show(worker, ["get", "pods", "-n", ns], "No pods on worker cluster")
    if result.dispatched:
        console.print("[green]✅ Job successfully dispatched to worker cluster![/green]")
    else:
        console.print("[yellow]⚠️  Job not found on worker cluster[/yellow]")

    result.pod = _find_pod(worker, job.name, ns)
    if result.pod is None:
        console.print("[yellow]⚠️  Job pod not found on the worker cluster[/yellow]")
        _show(worker, ["get", "jobs,pods", "-n", ns], "No jobs or pods on worker cluster")
    else:
        console.print(f"[green]✅ Job pod found: {result.pod}[/green]")
        result.phase = _wait_for_pod_start(worker, result.pod, ns)
        console.print(f"Pod status: {result.phase or 'unknown'}")
        _print_logs(worker, result.pod, ns, result.phase, job.sleep_seconds + _LOG_FOLLOW_GRACE_SECONDS)

        console.print(f"[yellow]ℹ️  Waiting for job completion (timeout {JOB_COMPLETE_TIMEOUT})...[/yellow]")
        ok, _, _ = run_kubectl(
            ["wait", "--for=condition=complete", f"--timeout={JOB_COMPLETE_TIMEOUT}", f"job/{job.name}", "-n", ns],
            target=worker,
            timeout=180,
        )
        result.completed = ok
        if ok:
            console.print("[green]✅ Job completed[/green]")
        else:
            console.print("[yellow]⚠️  Job may still be running[/yellow]")

    console.print(Panel.fit("Final state", style="bold blue"))
    _show(worker, ["get", "jobs", "-n", ns], "No jobs on worker cluster")
    _show(worker, ["get", "pods", "-n", ns], "No pods on worker cluster")
    _show(manager, ["get", "jobs", "-n", ns], "No jobs on manager cluster")
    _show(manager, ["get", "workloads", "-n", ns, "-o", "wide"], "No workloads on manager cluster")
    _show(manager, ["get", "events", "-n", ns, "--sort-by=.lastTimestamp"], "No events on manager cluster")
    _show(worker, ["get", "events", "-n", ns, "--sort-by=.lastTimestamp"], "No events on worker cluster")
    return result
