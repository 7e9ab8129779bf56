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

"""Colima VM profile lifecycle."""

from __future__ import annotations

import ipaddress

import sh
from rich.panel import Panel
from tenacity import RetryError, retry, retry_if_result, stop_after_attempt, wait_fixed

from multikueue_lab import console, logger
from multikueue_lab.config import ColimaConfig
from multikueue_lab.constants import COLIMA_READY_MAX_RETRIES, COLIMA_READY_POLL_INTERVAL_SECONDS


def profile_running(profile: str) -> bool:
    """Return True if ``colima status`` succeeds for *profile*."""
    try:
        sh.colima("status", "--profile", profile)
    except (sh.ErrorReturnCode, sh.CommandNotFound):
        return False
    return True


def start_profile(cfg: ColimaConfig) -> None:
    """Recreate and start a Colima profile with the Docker runtime.

    Any existing profile with the same name is deleted first so the VM
    always starts with the configured resources.

    Args:
        cfg: Colima configuration.

    Raises:
        RuntimeError: If the profile does not report running in time.
    """
    profile = cfg.colima_profile
    console.print(Panel.fit(f"Starting Colima profile '{profile}'", style="bold blue"))
    try:
        sh.colima("delete", "--profile", profile, "--force")
        console.print("[yellow]   Removed existing profile[/yellow]")
    except sh.ErrorReturnCode:
        console.print("[yellow]   No existing profile found[/yellow]")

    console.print(f"[yellow]   {cfg.colima_cpu} CPUs, {cfg.colima_memory}GiB memory, "
                  f"{cfg.colima_disk}GiB disk[/yellow]")
    sh.colima(
        "start",
        "--profile", profile,
        "--cpu", str(cfg.colima_cpu),
        "--memory", str(cfg.colima_memory),
        "--disk", str(cfg.colima_disk),
        "--network-address",
        "--kubernetes=false",
        "--runtime", cfg.colima_runtime,
    )

    @retry(
        stop=stop_after_attempt(COLIMA_READY_MAX_RETRIES),
        wait=wait_fixed(COLIMA_READY_POLL_INTERVAL_SECONDS),
        retry=retry_if_result(lambda running: not running),
    )
    def _wait_running() -> bool:
        return profile_running(profile)

    try:
        _wait_running()
    except RetryError as err:
        raise RuntimeError(f"Timed out waiting for Colima profile '{profile}' to start") from err
    console.print(f"[green]✅ Colima profile '{profile}' is running[/green]")


def stop_profile(profile: str) -> None:
    """Stop a Colima profile, ignoring profiles that are not running."""
    console.print(f"[yellow]ℹ️  Stopping Colima profile '{profile}'...[/yellow]")
    try:
        sh.colima("stop", "--profile", profile)
        console.print(f"[green]✅ Colima profile '{profile}' stopped[/green]")
    except (sh.ErrorReturnCode, sh.CommandNotFound):
        console.print(f"[yellow]⚠️  Colima profile '{profile}' was not running[/yellow]")


def delete_profile(profile: str) -> None:
    """Delete a Colima profile and its VM disk."""
    console.print(f"[yellow]ℹ️  Deleting Colima profile '{profile}'...[/yellow]")
    try:
        sh.colima("delete", "--profile", profile, "--force")
        console.print(f"[green]✅ Colima profile '{profile}' deleted[/green]")
    except (sh.ErrorReturnCode, sh.CommandNotFound):
        console.print(f"[yellow]⚠️  Colima profile '{profile}' not found or already deleted[/yellow]")


def list_profiles() -> str:
    """Return the output of ``colima list``, or an empty string on failure."""
    try:
        return str(sh.colima("list"))
    except (sh.ErrorReturnCode, sh.CommandNotFound) as err:
        logger.debug("colima list failed: %s", err)
        return ""


def gateway_ip(profile: str) -> str | None:
    """Return the default-route gateway seen from inside the Colima VM.

    The gateway is the host's address on the VM network, which containers in
    another Colima VM can use to reach ports published on this host.

    Args:
        profile: Colima profile name.

    Returns:
        Gateway IPv4 address, or None when unavailable or loopback.
    """
    try:
        output = str(sh.colima("ssh", "--profile", profile, "--", "ip", "route", "show", "default"))
    except (sh.ErrorReturnCode, sh.CommandNotFound) as err:
        logger.debug("colima ssh failed: %s", err)
        return None
    return parse_default_gateway(output)


def parse_default_gateway(route_output: str) -> str | None:
    """Extract the gateway address from ``ip route show default`` output."""
    for line in route_output.splitlines():
        parts = line.split()
        if len(parts) >= 3 and parts[0] == "default" and parts[1] == "via":
            try:
                addr = ipaddress.ip_address(parts[2])
            except ValueError:
                continue
            if not addr.is_loopback:
                return str(addr)
    return None


def resume_profile(profile: str) -> bool:
    """Start an existing, stopped profile so its Docker runtime can be used.

    Returns:
        True if the profile is running afterwards.
    """
    if profile_running(profile):
        return True
    try:
        sh.colima("start", "--profile", profile)
    except (sh.ErrorReturnCode, sh.CommandNotFound) as err:
        logger.debug("colima start %s failed: %s", profile, err)
    return profile_running(profile)
