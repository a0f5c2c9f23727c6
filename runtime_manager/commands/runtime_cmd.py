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

"""Runtime subcommands (install, uninstall, upgrade, list)."""

from __future__ import annotations

import signal
import threading

import typer
from rich.console import Console
from rich.table import Table

from runtime_manager import console, logger
from runtime_manager.adapters.control_plane import HttpControlPlaneClient
from runtime_manager.adapters.git import GitCliRepository
from runtime_manager.adapters.kubectl import KubectlClusterClient
from runtime_manager.adapters.manifests import GitManifestEmitter
from runtime_manager.adapters.registry import HttpDefinitionRegistry
from runtime_manager.config import (
    InstallationRequest,
    RuntimeSettings,
    UninstallRequest,
    UpgradeRequest,
    display_install_request,
    validate_install_flags,
)
from runtime_manager.constants import GIT_PROVIDER_GITHUB
from runtime_manager.errors import ValidationError
from runtime_manager.interfaces import Collaborators
from runtime_manager.models import RuntimeInfo
from runtime_manager.orchestrator import install_runtime, list_runtimes, uninstall_runtime, upgrade_runtime
from runtime_manager.preflight import parse_host_name, parse_version, resolve_ingress_class, validate_runtime_name
from runtime_manager.utils import parse_key_value_pairs, require_command

app = typer.Typer(help="Install, upgrade, uninstall and list runtimes.", no_args_is_help=True)


# ============================================================================
# Helpers
# ============================================================================

def root_cancel_signal() -> threading.Event:
    """Return an event that is set on SIGINT or SIGTERM."""
    cancel = threading.Event()

    def _handler(signum: int, _frame: object) -> None:
        logger.warning("Received signal %d, cancelling...", signum)
        cancel.set()

    signal.signal(signal.SIGINT, _handler)
    signal.signal(signal.SIGTERM, _handler)
    return cancel


def load_settings(platform_url: str | None = None, kubeconfig: str | None = None) -> RuntimeSettings:
    """Load settings from the environment and apply CLI overrides."""
    settings = RuntimeSettings()
    overrides: dict = {}
    if platform_url is not None:
        overrides["platform_url"] = platform_url
    if kubeconfig is not None:
        overrides["kubeconfig"] = kubeconfig
    if overrides:
        settings = settings.model_copy(update=overrides)
    return settings


def build_collaborators(settings: RuntimeSettings, repo: str, git_token: str, kube_context: str) -> Collaborators:
    cluster = KubectlClusterClient(context=kube_context, kubeconfig=settings.kubeconfig)
    git = GitCliRepository(repo, token=git_token)
    return Collaborators(
        control_plane=HttpControlPlaneClient(settings.platform_url, settings.api_key),
        cluster=cluster,
        git=git,
        registry=HttpDefinitionRegistry(settings.registry_url, settings.max_def_version),
        emitter=GitManifestEmitter(git, cluster),
    )


def render_runtimes(runtimes: list[RuntimeInfo]) -> Table:
    table = Table(show_lines=False)
    for column in ("NAME", "NAMESPACE", "CLUSTER", "VERSION", "SYNC_STATUS", "HEALTH_STATUS",
                   "HEALTH_MESSAGE", "INSTALLATION_STATUS", "INGRESS_HOST", "INGRESS_CLASS"):
        table.add_column(column)
    for runtime in runtimes:
        name = f"{runtime.name} (hosted)" if runtime.managed else runtime.name
        table.add_row(
            name,
            runtime.namespace or "N/A",
            runtime.cluster or "N/A",
            runtime.version or "N/A",
            runtime.sync_status,
            runtime.health_status,
            runtime.health_message or "N/A",
            runtime.installation_status.value,
            runtime.ingress_host or "N/A",
            runtime.ingress_class or "N/A",
        )
    return table


# ============================================================================
# Commands
# ============================================================================

@app.command()
def install(
    runtime_name: str = typer.Argument(..., help="Runtime name; also the namespace it is installed into"),
    repo: str = typer.Option(..., "--repo", help="Installation repository URL"),
    git_token: str = typer.Option("", "--git-token", envvar="GIT_TOKEN", help="Git token for the repository"),
    personal_git_token: str = typer.Option("", "--personal-git-token",
                                           help="Personal git token registered with the git integration"),
    version: str | None = typer.Option(None, "--version", help="Runtime version (default: latest)"),
    context: str = typer.Option("", "--context", help="Kubernetes context"),
    kubeconfig: str | None = typer.Option(None, "--kubeconfig", help="Path to the kubeconfig file"),
    platform_url: str | None = typer.Option(None, "--platform-url", help="Control-plane URL"),
    ingress_host: str = typer.Option("", "--ingress-host", help="External ingress URL"),
    ingress_class: str = typer.Option("", "--ingress-class", help="Ingress class name"),
    internal_ingress_host: str = typer.Option("", "--internal-ingress-host", help="Internal ingress URL"),
    git_provider: str = typer.Option(GIT_PROVIDER_GITHUB, "--provider", help="Git provider of the repository"),
    git_api_url: str = typer.Option("", "--provider-api-url", help="Git provider API URL"),
    namespace_labels: list[str] = typer.Option([], "--namespace-labels", help="key=value labels for the namespace"),
    internal_annotations: list[str] = typer.Option([], "--internal-ingress-annotation",
                                                   help="key=value annotations for the internal ingress"),
    external_annotations: list[str] = typer.Option([], "--external-ingress-annotation",
                                                   help="key=value annotations for the external ingress"),
    skip_cluster_checks: bool = typer.Option(False, "--skip-cluster-checks", help="Skip cluster requirement checks"),
    disable_rollback: bool = typer.Option(False, "--disable-rollback", help="Keep resources after a failed install"),
    from_repo: bool = typer.Option(False, "--from-repo", help="Recover the runtime from an existing repository"),
    demo_resources: bool = typer.Option(True, "--demo-resources/--no-demo-resources", help="Create demo resources"),
    skip_ingress: bool = typer.Option(False, "--skip-ingress", help="Do not create ingress resources"),
    silent: bool = typer.Option(False, "--silent", help="Never prompt"),
) -> None:
    """Install a runtime on the current cluster."""
    require_command("kubectl")
    require_command("git")
    validate_runtime_name(runtime_name)
    parse_version(version)

    settings = load_settings(platform_url, kubeconfig)
    clients = build_collaborators(settings, repo, git_token, context)

    if not skip_ingress and not ingress_host:
        raise ValidationError("ingress-host", "--ingress-host is required unless --skip-ingress is set")
    chosen = resolve_ingress_class(
        clients.cluster, ingress_class, skip_ingress=skip_ingress, silent=silent,
        choose=lambda names: typer.prompt(f"Select ingress class ({', '.join(names)})", default=names[0]),
    )

    request = InstallationRequest(
        runtime_name=runtime_name,
        repo=repo,
        version=version,
        kube_context=context,
        ingress_host=ingress_host,
        ingress_class=chosen.name if chosen else "",
        ingress_controller=chosen.controller if chosen else "",
        internal_ingress_host=internal_ingress_host,
        host_name=parse_host_name(ingress_host),
        internal_host_name=parse_host_name(internal_ingress_host),
        git_provider=git_provider,
        git_api_url=git_api_url,
        personal_git_token=personal_git_token or git_token,
        namespace_labels=parse_key_value_pairs(namespace_labels, "--namespace-labels"),
        internal_ingress_annotations=parse_key_value_pairs(internal_annotations, "--internal-ingress-annotation"),
        external_ingress_annotations=parse_key_value_pairs(external_annotations, "--external-ingress-annotation"),
        skip_cluster_checks=skip_cluster_checks,
        disable_rollback=disable_rollback,
        from_repo=from_repo,
        install_demo_resources=demo_resources and not from_repo,
        skip_ingress=skip_ingress,
        silent=silent,
    )
    validate_install_flags(request)
    display_install_request(request, settings.platform_url)
    if not silent:
        typer.confirm("Proceed with installation?", default=True, abort=True)

    install_runtime(request, clients, settings, cancel=root_cancel_signal())


@app.command()
def uninstall(
    runtime_name: str = typer.Argument(..., help="Name of the runtime to uninstall"),
    repo: str = typer.Option("", "--repo", help="Installation repository URL"),
    git_token: str = typer.Option("", "--git-token", envvar="GIT_TOKEN", help="Git token for the repository"),
    context: str = typer.Option("", "--context", help="Kubernetes context"),
    kubeconfig: str | None = typer.Option(None, "--kubeconfig", help="Path to the kubeconfig file"),
    platform_url: str | None = typer.Option(None, "--platform-url", help="Control-plane URL"),
    skip_checks: bool = typer.Option(False, "--skip-checks", help="Do not check that the runtime exists"),
    force: bool = typer.Option(False, "--force", help="Continue past failures where possible"),
    fast_exit: bool = typer.Option(False, "--fast-exit", help="Do not wait for cluster resources to be deleted"),
    managed: bool = typer.Option(False, "--managed", help="The runtime is hosted"),
    skip_repo_uninstall: bool = typer.Option(False, "--skip-repo-uninstall", hidden=True,
                                             help="Leave the repository and cluster untouched"),
    silent: bool = typer.Option(False, "--silent", help="Never prompt"),
) -> None:
    """Uninstall a runtime."""
    if not managed and not skip_repo_uninstall:
        require_command("kubectl")
        require_command("git")
        if not repo:
            raise ValidationError("repo", "--repo is required to uninstall a runtime from the cluster")

    settings = load_settings(platform_url, kubeconfig)
    clients = build_collaborators(settings, repo, git_token, context)
    request = UninstallRequest(
        runtime_name=runtime_name,
        repo=repo,
        kube_context=context,
        skip_checks=skip_checks,
        force=force,
        fast_exit=fast_exit,
        managed=managed,
        skip_repo_uninstall=skip_repo_uninstall,
    )
    if not silent:
        typer.confirm(f"Uninstall runtime '{runtime_name}'?", default=False, abort=True)

    uninstall_runtime(request, clients, settings, cancel=root_cancel_signal())


@app.command()
def upgrade(
    runtime_name: str = typer.Argument(..., help="Name of the runtime to upgrade"),
    repo: str = typer.Option(..., "--repo", help="Installation repository URL"),
    git_token: str = typer.Option("", "--git-token", envvar="GIT_TOKEN", help="Git token for the repository"),
    version: str | None = typer.Option(None, "--version", help="Target version (default: latest)"),
    platform_url: str | None = typer.Option(None, "--platform-url", help="Control-plane URL"),
    silent: bool = typer.Option(False, "--silent", help="Never prompt"),
) -> None:
    """Upgrade a runtime to a newer version."""
    require_command("git")
    parse_version(version)

    settings = load_settings(platform_url)
    clients = build_collaborators(settings, repo, git_token, "")
    request = UpgradeRequest(runtime_name=runtime_name, repo=repo, version=version)
    if not silent:
        typer.confirm(f"Upgrade runtime '{runtime_name}' to {version or 'the latest version'}?",
                      default=True, abort=True)

    upgrade_runtime(request, clients, settings, cancel=root_cancel_signal())


@app.command("list")
def list_cmd(
    platform_url: str | None = typer.Option(None, "--platform-url", help="Control-plane URL"),
) -> None:
    """List the runtimes registered on the control plane."""
    settings = load_settings(platform_url)
    control_plane = HttpControlPlaneClient(settings.platform_url, settings.api_key)
    runtimes = list_runtimes(control_plane)
    if not runtimes:
        console.print("[yellow]ℹ️  No runtimes were found[/yellow]")
        return
    Console().print(render_runtimes(runtimes))
