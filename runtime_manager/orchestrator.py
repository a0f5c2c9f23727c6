# /*
# Copyright 2026 The Grove Authors.
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

"""Top-level operations that compose pre-flight, steps, rollback and summary."""

from __future__ import annotations

import threading

from rich.panel import Panel

from runtime_manager import console, logger
from runtime_manager.config import (
    InstallationRequest,
    RuntimeSettings,
    UninstallRequest,
    UpgradeRequest,
)
from runtime_manager.interfaces import Collaborators, ControlPlaneClient
from runtime_manager.models import RuntimeInfo
from runtime_manager.preflight import run_preflight_checks
from runtime_manager.rollback import RollbackController
from runtime_manager.sequencer import Report, run_steps
from runtime_manager.steps import (
    INSTALL_STEPS,
    UNINSTALL_STEPS,
    UPGRADE_STEPS,
    InstallState,
    UninstallState,
    UpgradeState,
)
from runtime_manager.summary import SummaryReporter


# ============================================================================
# Uninstall
# ============================================================================

def run_uninstall_steps(
    request: UninstallRequest,
    clients: Collaborators,
    settings: RuntimeSettings,
    summary: SummaryReporter,
    cancel: threading.Event | None = None,
) -> Report:
    """Run the uninstall sequence without flushing the summary.

    Used directly by install rollback, which shares the install's summary.

    Raises:
        StepError: A fatal uninstall step failed.
        OperationCancelledError: The root signal fired.
    """
    state = UninstallState(
        request=request,
        settings=settings,
        clients=clients,
        summary=summary,
        cancel=cancel or threading.Event(),
        managed=request.managed,
    )
    return run_steps(UNINSTALL_STEPS, state, summary, force=request.force, cancel=cancel,
                     docs_link=settings.docs_link)


def uninstall_runtime(
    request: UninstallRequest,
    clients: Collaborators,
    settings: RuntimeSettings,
    *,
    summary: SummaryReporter | None = None,
    cancel: threading.Event | None = None,
) -> Report:
    """Remove a runtime from the git store, the cluster and the control plane.

    Args:
        request: Uninstall options.
        clients: External collaborators.
        settings: Process settings.
        summary: Summary to report into; flushed before returning.
        cancel: Root cancellation signal.

    Returns:
        The report of the uninstall sequence.
    """
    summary = summary or SummaryReporter()
    with summary.flush_on_exit():
        console.print(Panel.fit(f"Uninstalling runtime '{request.runtime_name}'", style="bold blue"))
        report = run_uninstall_steps(request, clients, settings, summary, cancel)
        summary.info(f'Done uninstalling runtime "{request.runtime_name}"')
        console.print(f"[green]✅ Done uninstalling runtime '{request.runtime_name}'[/green]")
    return report


# ============================================================================
# Install
# ============================================================================

def install_runtime(
    request: InstallationRequest,
    clients: Collaborators,
    settings: RuntimeSettings,
    *,
    summary: SummaryReporter | None = None,
    cancel: threading.Event | None = None,
) -> Report:
    """Install a runtime, rolling it back if a step fails before it synced.

    The summary is flushed exactly once, after any rollback has finished.

    Args:
        request: Installation request, resolved by the caller.
        clients: External collaborators.
        settings: Process settings.
        summary: Summary to report into; flushed before returning.
        cancel: Root cancellation signal.

    Returns:
        The report of the install sequence.

    Raises:
        ValidationError: A pre-flight check failed. Nothing was mutated.
        StepError: An install step failed; rollback already ran if allowed.
        OperationCancelledError: The root signal fired.
    """
    summary = summary or SummaryReporter()
    cancel = cancel or threading.Event()
    runtime_name = request.runtime_name

    with summary.flush_on_exit():
        console.print(Panel.fit(f"Installing runtime '{runtime_name}'", style="bold blue"))
        definition = run_preflight_checks(request, clients, settings, summary, cancel)
        logger.info("Installing runtime '%s' version %s", runtime_name, definition.version)

        state = InstallState(
            request=request,
            settings=settings,
            clients=clients,
            definition=definition,
            summary=summary,
            cancel=cancel,
        )
        controller = RollbackController(
            request,
            lambda uninstall_request: run_uninstall_steps(uninstall_request, clients, settings, summary, cancel),
            summary,
        )
        with controller.guard():
            report = run_steps(INSTALL_STEPS, state, summary, cancel=cancel, docs_link=settings.docs_link)

        if report.has_errors:
            message = f'Runtime "{runtime_name}" installed with some issues'
            console.print(f"[yellow]⚠️  {message}[/yellow]")
        else:
            message = f'Runtime "{runtime_name}" installed successfully'
            console.print(f"[green]✅ {message}[/green]")
        summary.info(message)
    return report


# ============================================================================
# Upgrade
# ============================================================================

def upgrade_runtime(
    request: UpgradeRequest,
    clients: Collaborators,
    settings: RuntimeSettings,
    *,
    summary: SummaryReporter | None = None,
    cancel: threading.Event | None = None,
) -> Report:
    """Upgrade a runtime to a newer definition.

    Every check runs before the first write, so a rejected upgrade leaves
    the git store untouched.

    Raises:
        ValidationError: The target version or client is not acceptable.
        StepError: Writing or pushing the upgraded definition failed. A new
            component that cannot be created is reported, not raised.
    """
    summary = summary or SummaryReporter()
    state = UpgradeState(
        request=request,
        settings=settings,
        clients=clients,
        summary=summary,
        cancel=cancel or threading.Event(),
    )
    with summary.flush_on_exit():
        console.print(Panel.fit(f"Upgrading runtime '{request.runtime_name}'", style="bold blue"))
        report = run_steps(UPGRADE_STEPS, state, summary, cancel=cancel, docs_link=settings.docs_link)
        message = f'Runtime "{request.runtime_name}" upgraded to version {state.upgraded.version}'
        if report.has_errors:
            message += " with some issues"
            console.print(f"[yellow]⚠️  {message}[/yellow]")
        else:
            console.print(f"[green]✅ {message}[/green]")
        summary.info(message)
    return report


# ============================================================================
# List
# ============================================================================

def list_runtimes(control_plane: ControlPlaneClient) -> list[RuntimeInfo]:
    """Return the runtimes registered on the control plane, sorted by name."""
    return sorted(control_plane.list_runtimes(), key=lambda runtime: runtime.name)
