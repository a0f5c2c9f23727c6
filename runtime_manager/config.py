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

"""Settings, request objects, and request display."""

from __future__ import annotations

from dataclasses import dataclass, field

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict
from rich.panel import Panel

from runtime_manager import console, logger
from runtime_manager.constants import (
    COMPONENTS_REFRESH_INTERVAL_SECONDS,
    DEFAULT_DOCS_LINK,
    DEFAULT_DOWNLOAD_CLI_LINK,
    DEFAULT_MAX_DEF_VERSION,
    DEFAULT_REQUIREMENTS_LINK,
    DEFAULT_WAIT_TIMEOUT_SECONDS,
    GIT_INTEGRATION_MAX_ATTEMPTS,
    GIT_INTEGRATION_POLL_INTERVAL_SECONDS,
    GIT_PROVIDER_GITHUB,
    RUNTIME_SYNC_MAX_ATTEMPTS,
    RUNTIME_SYNC_POLL_INTERVAL_SECONDS,
)


# ============================================================================
# Settings
# ============================================================================

class RuntimeSettings(BaseSettings):
    """Process-wide settings, auto-loaded from RUNTIME_* env vars.

    Attributes:
        platform_url: Base URL of the control-plane service.
        api_key: Control-plane API key.
        registry_url: Base URL the runtime definitions are downloaded from.
        kubeconfig: Path to the kubeconfig file, or None for the default.
        max_def_version: Highest definition schema version this client supports.
        wait_timeout: Seconds to wait for the runtime repo to be uninstalled.
        sync_max_attempts: Ticks to wait for the runtime to report completion.
        sync_poll_interval: Seconds between runtime sync ticks.
        integration_max_attempts: Ticks to wait for the git integration.
        integration_poll_interval: Seconds between git integration ticks.
        components_refresh_interval: Seconds between component status refreshes.
        docs_link: Documentation pointer appended to step errors.
        requirements_link: Documentation pointer for cluster requirements.
        download_cli_link: Where to get a newer client.
    """

    model_config = SettingsConfigDict(env_prefix="RUNTIME_", extra="ignore")

    platform_url: str = ""
    api_key: str = ""
    registry_url: str = ""
    kubeconfig: str | None = None
    max_def_version: str = DEFAULT_MAX_DEF_VERSION
    wait_timeout: int = Field(default=DEFAULT_WAIT_TIMEOUT_SECONDS, ge=1)
    sync_max_attempts: int = Field(default=RUNTIME_SYNC_MAX_ATTEMPTS, ge=1)
    sync_poll_interval: float = Field(default=RUNTIME_SYNC_POLL_INTERVAL_SECONDS, ge=0)
    integration_max_attempts: int = Field(default=GIT_INTEGRATION_MAX_ATTEMPTS, ge=1)
    integration_poll_interval: float = Field(default=GIT_INTEGRATION_POLL_INTERVAL_SECONDS, ge=0)
    components_refresh_interval: float = Field(default=COMPONENTS_REFRESH_INTERVAL_SECONDS, gt=0)
    docs_link: str = DEFAULT_DOCS_LINK
    requirements_link: str = DEFAULT_REQUIREMENTS_LINK
    download_cli_link: str = DEFAULT_DOWNLOAD_CLI_LINK


# ============================================================================
# Requests
# ============================================================================

@dataclass(frozen=True)
class InstallationRequest:
    """Everything an install run needs, resolved once before it starts.

    Attributes:
        runtime_name: Name of the runtime; also its namespace.
        repo: Installation repository URL.
        version: Runtime version to install, or None for the latest.
        kube_context: Kubernetes context the runtime is installed into.
        ingress_host: External ingress URL.
        ingress_class: Ingress class name.
        ingress_controller: Controller serving the ingress class.
        internal_ingress_host: Internal ingress URL, or empty to reuse the external one.
        host_name: Bare host name of the external ingress.
        internal_host_name: Bare host name of the internal ingress.
        git_provider: Git provider type of the installation repo.
        git_api_url: Git provider API URL used for the git integration.
        personal_git_token: The user's personal git token for registration.
        namespace_labels: Labels set on the runtime namespace.
        internal_ingress_annotations: Extra annotations for the internal ingress.
        external_ingress_annotations: Extra annotations for the external ingress.
        skip_cluster_checks: Skip the minimum cluster requirement check.
        disable_rollback: Never uninstall after a failed install.
        from_repo: Recover the runtime from an existing installation repo.
        install_demo_resources: Create demo resources in the git source.
        skip_ingress: Do not create ingress resources.
        silent: Never prompt; fail where a choice would be needed.
    """

    runtime_name: str
    repo: str
    version: str | None = None
    kube_context: str = ""
    ingress_host: str = ""
    ingress_class: str = ""
    ingress_controller: str = ""
    internal_ingress_host: str = ""
    host_name: str = ""
    internal_host_name: str = ""
    git_provider: str = GIT_PROVIDER_GITHUB
    git_api_url: str = ""
    personal_git_token: str = ""
    namespace_labels: dict[str, str] = field(default_factory=dict)
    internal_ingress_annotations: dict[str, str] = field(default_factory=dict)
    external_ingress_annotations: dict[str, str] = field(default_factory=dict)
    skip_cluster_checks: bool = False
    disable_rollback: bool = False
    from_repo: bool = False
    install_demo_resources: bool = True
    skip_ingress: bool = False
    silent: bool = False


@dataclass(frozen=True)
class UninstallRequest:
    """Options for removing a runtime.

    Attributes:
        runtime_name: Name of the runtime to remove.
        repo: Installation repository URL.
        kube_context: Kubernetes context the runtime runs in.
        skip_checks: Do not check that the runtime exists first.
        force: Continue past failures of the force-continue steps.
        fast_exit: Do not wait for the cluster resources to be deleted.
        managed: The runtime is hosted; nothing is removed from the cluster.
        skip_repo_uninstall: Leave the installation repo and cluster untouched.
    """

    runtime_name: str
    repo: str = ""
    kube_context: str = ""
    skip_checks: bool = False
    force: bool = False
    fast_exit: bool = False
    managed: bool = False
    skip_repo_uninstall: bool = False


@dataclass(frozen=True)
class UpgradeRequest:
    """Options for upgrading a runtime to a newer definition."""

    runtime_name: str
    repo: str
    version: str | None = None


# ============================================================================
# Validation and display
# ============================================================================

def validate_install_flags(request: InstallationRequest) -> None:
    """Warn about flag combinations that are legal but probably unintended.

    Args:
        request: The resolved installation request.
    """
    if request.from_repo and request.disable_rollback:
        logger.warning("--disable-rollback is implied by --from-repo")
    if request.skip_ingress and (request.ingress_class or request.internal_ingress_host):
        logger.warning("--skip-ingress is set; ingress class and internal host will be ignored")


def display_install_request(request: InstallationRequest, platform_url: str) -> None:
    """Print the parameters the install will run with.

    Args:
        request: The resolved installation request.
        platform_url: Control-plane URL the runtime is registered with.
    """
    console.print(Panel.fit("Installation parameters", style="bold blue"))
    console.print(f"  Platform          : {platform_url or '(not set)'}")
    console.print(f"  Kube context      : {request.kube_context or '(current)'}")
    console.print(f"  Runtime name      : {request.runtime_name}")
    console.print(f"  Repository URL    : {request.repo}")
    console.print(f"  Ingress host      : {request.ingress_host or '(none)'}")
    console.print(f"  Ingress class     : {request.ingress_class or '(none)'}")
    if request.internal_ingress_host:
        console.print(f"  Internal ingress  : {request.internal_ingress_host}")
    console.print(f"  Demo resources    : {request.install_demo_resources}")
    if request.from_repo:
        console.print("[yellow]  Recovering runtime from the existing repository[/yellow]")
