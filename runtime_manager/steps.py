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

"""Step bodies and step catalogs for install, uninstall and upgrade."""

from __future__ import annotations

import secrets
import threading
from dataclasses import dataclass, field

from packaging.version import Version

from runtime_manager import logger
from runtime_manager.config import (
    InstallationRequest,
    RuntimeSettings,
    UninstallRequest,
    UpgradeRequest,
)
from runtime_manager.constants import (
    ADDITIONAL_COMPONENTS,
    APP_PROXY_INGRESS_PATH,
    BINARY_NAME,
    GIT_SOURCE_NAME,
    HINT_FORCE,
    HINT_SKIP_CHECKS,
    INGRESS_CONTROLLER_ALB,
    INGRESS_CONTROLLER_NGINX_ENTERPRISE,
    MARKETPLACE_EXCLUDE,
    MARKETPLACE_GIT_SOURCE_NAME,
    MARKETPLACE_INCLUDE,
    MARKETPLACE_PROVIDERS,
    MARKETPLACE_REPO,
    RECOVERY_BOOTSTRAP_PATH,
    ROLLOUT_REPORTER_NAME,
    ROLLOUT_REPORTER_SA,
    STORE_IV_LENGTH,
    WORKFLOW_REPORTER_NAME,
    WORKFLOW_REPORTER_SA,
)
from runtime_manager.errors import (
    AlreadyExistsError,
    InvalidDefinitionError,
    NotFoundError,
    UnsupportedDefinitionError,
    ValidationError,
    WaitTimeoutError,
)
from runtime_manager.interfaces import (
    Collaborators,
    GitSourceSpec,
    IngressParams,
    ReporterSpec,
    ResourceRef,
    RuntimeCreationArgs,
)
from runtime_manager.models import ComponentDescriptor, InstallationStatus, RuntimeDefinition
from runtime_manager.polling import wait_until
from runtime_manager.progress import watch_components
from runtime_manager.sequencer import Step
from runtime_manager.summary import SummaryReporter

WORKFLOW_REPORTER = ReporterSpec(
    name=WORKFLOW_REPORTER_NAME,
    resources=(ResourceRef("argoproj.io", "v1alpha1", "workflows"),),
    service_account=WORKFLOW_REPORTER_SA,
)

ROLLOUT_REPORTER = ReporterSpec(
    name=ROLLOUT_REPORTER_NAME,
    resources=(
        ResourceRef("argoproj.io", "v1alpha1", "rollouts"),
        ResourceRef("apps", "v1", "replicasets"),
        ResourceRef("argoproj.io", "v1alpha1", "analysisruns"),
    ),
    service_account=ROLLOUT_REPORTER_SA,
    cluster_scope=True,
)


# ============================================================================
# Shared state
# ============================================================================

@dataclass
class InstallState:
    """Mutable state threaded through the install steps.

    Attributes:
        definition: Downloaded definition; its bindings are filled by ``create-runtime``.
        server: API server address of the target cluster.
        token: Runtime access token issued by the control plane.
        store_iv: Random hex IV stored next to the token.
        integration_added: The default git integration exists already.
    """

    request: InstallationRequest
    settings: RuntimeSettings
    clients: Collaborators
    definition: RuntimeDefinition
    summary: SummaryReporter
    cancel: threading.Event = field(default_factory=threading.Event)
    server: str = ""
    token: str = ""
    store_iv: str = ""
    integration_added: bool = False


@dataclass
class UninstallState:
    request: UninstallRequest
    settings: RuntimeSettings
    clients: Collaborators
    summary: SummaryReporter
    cancel: threading.Event = field(default_factory=threading.Event)
    managed: bool = False


@dataclass
class UpgradeState:
    request: UpgradeRequest
    settings: RuntimeSettings
    clients: Collaborators
    summary: SummaryReporter
    cancel: threading.Event = field(default_factory=threading.Event)
    new_definition: RuntimeDefinition | None = None
    current: RuntimeDefinition | None = None
    upgraded: RuntimeDefinition | None = None
    new_components: list[ComponentDescriptor] = field(default_factory=list)


# ============================================================================
# Helpers
# ============================================================================

def external_ingress(request: InstallationRequest) -> IngressParams:
    return IngressParams(
        host=request.host_name,
        ingress_class=request.ingress_class,
        controller=request.ingress_controller,
        annotations=dict(request.external_ingress_annotations),
    )


def internal_ingress(request: InstallationRequest) -> IngressParams:
    return IngressParams(
        host=request.internal_host_name or request.host_name,
        ingress_class=request.ingress_class,
        controller=request.ingress_controller,
        annotations=dict(request.internal_ingress_annotations),
    )


def git_source_repo(repo: str, runtime_name: str) -> str:
    """Derive the git source repo from the installation repo URL.

    ``https://github.com/org/runtime.git`` for runtime ``prod`` becomes
    ``https://github.com/org/runtime_git-source.git/resources_prod``.
    """
    base = repo.split("?", 1)[0].rstrip("/")
    suffix = ""
    if base.endswith(".git"):
        base, suffix = base[: -len(".git")], ".git"
    return f"{base}_git-source{suffix}/resources_{runtime_name}"


def git_integration_commands(request: InstallationRequest) -> str:
    api_url = f" --api-url {request.git_api_url}" if request.git_api_url else ""
    return (
        f"{BINARY_NAME} integration git add default --runtime {request.runtime_name}{api_url} "
        f"--provider {request.git_provider}\n"
        f"{BINARY_NAME} integration git register default --runtime {request.runtime_name} "
        "--token <AUTHENTICATION_TOKEN>"
    )


# ============================================================================
# Install steps
# ============================================================================

def create_runtime(state: InstallState) -> None:
    request, definition = state.request, state.definition
    state.server = state.clients.cluster.server_address()
    component_names = definition.component_names(request.runtime_name) + [
        f"{request.runtime_name}-{name}" for name in ADDITIONAL_COMPONENTS
    ]
    state.token = state.clients.control_plane.create_runtime(RuntimeCreationArgs(
        runtime_name=request.runtime_name,
        cluster=state.server,
        runtime_version=definition.version,
        component_names=tuple(component_names),
        repo=request.repo,
        ingress_host=request.ingress_host,
        internal_ingress_host=request.internal_ingress_host,
        ingress_class=request.ingress_class,
        ingress_controller=request.ingress_controller,
        recover=request.from_repo,
    ))
    state.store_iv = secrets.token_hex(STORE_IV_LENGTH)
    state.definition = definition.model_copy(update={
        "cluster": state.server,
        "ingress_host": request.ingress_host,
        "internal_ingress_host": request.internal_ingress_host,
        "ingress_class": request.ingress_class,
        "ingress_controller": request.ingress_controller,
        "repo": request.repo,
    })
    logger.info("Created runtime '%s' on the control plane", request.runtime_name)


def bootstrap_repo(state: InstallState) -> None:
    request = state.request
    if request.from_repo:
        specifier = f"{request.repo.rstrip('/')}/{RECOVERY_BOOTSTRAP_PATH}"
    else:
        specifier = state.definition.full_specifier()
    state.clients.emitter.bootstrap_repository(
        request.runtime_name, specifier, recover=request.from_repo,
        namespace_labels=dict(request.namespace_labels),
    )


def prepare_cluster(state: InstallState) -> None:
    state.clients.cluster.prepare_environment(state.request.runtime_name)


def create_project(state: InstallState) -> None:
    state.clients.emitter.create_project(state.request.runtime_name)


def persist_runtime_config(state: InstallState) -> None:
    emitter = state.clients.emitter
    if not state.request.from_repo:
        emitter.persist_runtime(state.definition, f"Persisted runtime {state.request.runtime_name}")
        return

    current = emitter.load_runtime(state.request.runtime_name)
    updated = current.model_copy(update={
        "cluster": state.definition.cluster,
        "ingress_host": state.definition.ingress_host,
        "internal_ingress_host": state.definition.internal_ingress_host,
        "ingress_class": state.definition.ingress_class,
        "ingress_controller": state.definition.ingress_controller,
        "repo": state.definition.repo,
    })
    emitter.persist_runtime(updated, "Updated runtime config")
    state.definition = updated


def apply_secrets(state: InstallState) -> None:
    runtime_name = state.request.runtime_name
    cluster = state.clients.cluster
    argocd_token = cluster.generate_argocd_token(runtime_name)
    manifests = state.clients.emitter.render_secrets(runtime_name, state.token, state.store_iv, argocd_token)
    cluster.apply(manifests)


def create_components(state: InstallState) -> None:
    runtime_name = state.request.runtime_name
    for component in state.definition.components:
        logger.info("Creating component '%s'", component.name)
        internal = component.model_copy(update={"is_internal": True})
        try:
            state.clients.emitter.create_component_app(runtime_name, internal)
        except Exception as err:
            raise RuntimeError(f"failed to create '{component.name}' application: {err}") from err


def create_master_ingress(state: InstallState) -> None:
    state.clients.emitter.create_master_ingress(state.request.runtime_name, external_ingress(state.request))


def create_reporters(state: InstallState) -> None:
    request, emitter = state.request, state.clients.emitter
    platform_url = state.settings.platform_url
    if not request.skip_ingress and state.definition.ingress_controller != INGRESS_CONTROLLER_ALB:
        emitter.create_workflows_ingress(request.runtime_name, external_ingress(request))
    emitter.configure_app_proxy(request.runtime_name, platform_url,
                                None if request.skip_ingress else internal_ingress(request))
    emitter.create_events_reporter(request.runtime_name, platform_url)
    emitter.create_reporter(request.runtime_name, platform_url, WORKFLOW_REPORTER)
    emitter.create_reporter(request.runtime_name, platform_url, ROLLOUT_REPORTER)


def create_git_sources(state: InstallState) -> None:
    request, emitter = state.request, state.clients.emitter
    emitter.create_git_source(GitSourceSpec(
        name=GIT_SOURCE_NAME,
        runtime_name=request.runtime_name,
        repo=git_source_repo(request.repo, request.runtime_name),
        create_demo_resources=request.install_demo_resources,
        ingress=None if request.skip_ingress else external_ingress(request),
    ))

    if request.git_provider not in MARKETPLACE_PROVIDERS:
        state.summary.info(f"Skipping {MARKETPLACE_GIT_SOURCE_NAME} with git provider {request.git_provider}")
        return
    emitter.create_git_source(GitSourceSpec(
        name=MARKETPLACE_GIT_SOURCE_NAME,
        runtime_name=request.runtime_name,
        repo=MARKETPLACE_REPO,
        include=MARKETPLACE_INCLUDE,
        exclude=MARKETPLACE_EXCLUDE,
    ))


def wait_for_runtime_sync(state: InstallState) -> None:
    runtime_name = state.request.runtime_name
    control_plane, settings = state.clients.control_plane, state.settings

    def _completed() -> bool:
        runtime = control_plane.get_runtime(runtime_name)
        return runtime.installation_status == InstallationStatus.COMPLETED

    with watch_components(lambda: control_plane.list_components(runtime_name), state.cancel,
                          settings.components_refresh_interval):
        wait_until(
            _completed,
            interval=settings.sync_poll_interval,
            max_attempts=settings.sync_max_attempts,
            cancel=state.cancel,
            description=f"runtime '{runtime_name}' installation to complete",
        )


def _add_and_register_git_integration(state: InstallState) -> bool:
    request, control_plane = state.request, state.clients.control_plane
    if not state.integration_added:
        try:
            control_plane.add_git_integration(request.runtime_name, request.git_provider, request.git_api_url)
        except AlreadyExistsError:
            logger.debug("Default git integration already exists")
        state.integration_added = True
        logger.info("Added default git integration")
    control_plane.register_git_integration(request.runtime_name, request.personal_git_token)
    return True


def create_git_integration(state: InstallState) -> None:
    settings = state.settings
    try:
        wait_until(
            lambda: _add_and_register_git_integration(state),
            interval=settings.integration_poll_interval,
            max_attempts=settings.integration_max_attempts,
            cancel=state.cancel,
            description="the default git integration to be created",
        )
    except WaitTimeoutError as err:
        raise WaitTimeoutError(
            f"timed out while waiting for git integration to be created\n"
            f"you can try to create it manually by running:\n\n{git_integration_commands(state.request)}"
        ) from err


def report_git_integration_commands(state: InstallState) -> None:
    runtime_name = state.request.runtime_name
    state.summary.info(
        "To complete the installation:\n"
        f"1. Configure your cluster's routing service with the paths '{APP_PROXY_INGRESS_PATH}' "
        f"and '/webhooks/{runtime_name}'\n"
        "2. Create and register the git integration using the commands:\n\n"
        f"{git_integration_commands(state.request)}"
    )


def _not_recovering(state: InstallState) -> bool:
    return not state.request.from_repo


INSTALL_STEPS = (
    Step("create-runtime", "Creating runtime on the platform", create_runtime),
    Step("bootstrap-repo", "Bootstrapping repository", bootstrap_repo),
    Step("prepare-cluster", "Preparing cluster environment", prepare_cluster, in_summary=False),
    Step("create-project", "Creating project", create_project, when=_not_recovering),
    Step("persist-runtime-config", "Creating/updating runtime config", persist_runtime_config),
    Step("apply-secrets", "Applying secrets to cluster", apply_secrets),
    Step("create-components", "Creating components", create_components, when=_not_recovering),
    Step("create-master-ingress", "Creating master ingress", create_master_ingress,
         when=lambda s: (not s.request.from_repo and not s.request.skip_ingress
                         and s.request.ingress_controller == INGRESS_CONTROLLER_NGINX_ENTERPRISE)),
    Step("create-reporters", "Installing components", create_reporters, when=_not_recovering),
    Step("create-git-sources", "Creating git sources", create_git_sources, when=_not_recovering),
    Step("wait-for-runtime-sync", "Wait for runtime sync", wait_for_runtime_sync,
         soft_errors=(WaitTimeoutError,)),
    Step("create-git-integration", "Creating default git integration", create_git_integration,
         when=lambda s: not s.request.skip_ingress),
    Step("report-git-integration-commands", "Git integration instructions", report_git_integration_commands,
         when=lambda s: s.request.skip_ingress, in_summary=False),
)


# ============================================================================
# Uninstall steps
# ============================================================================

def check_runtime_exists(state: UninstallState) -> None:
    runtime = state.clients.control_plane.get_runtime(state.request.runtime_name)
    state.managed = state.managed or runtime.managed


def remove_git_integrations(state: UninstallState) -> None:
    state.clients.control_plane.remove_git_integrations(state.request.runtime_name)


def remove_runtime_shared_config(state: UninstallState) -> None:
    state.clients.control_plane.remove_runtime_shared_config(state.request.runtime_name)


def uninstall_repo(state: UninstallState) -> None:
    runtime_name = state.request.runtime_name
    cluster, settings = state.clients.cluster, state.settings

    with watch_components(lambda: cluster.list_applications(runtime_name), state.cancel,
                          settings.components_refresh_interval):
        state.clients.emitter.uninstall_repository(runtime_name)
        if not state.request.fast_exit:
            interval = settings.sync_poll_interval
            wait_until(
                lambda: not cluster.list_applications(runtime_name),
                interval=interval,
                max_attempts=max(1, int(settings.wait_timeout // interval)) if interval else 1,
                cancel=state.cancel,
                description=f"runtime '{runtime_name}' applications to be deleted",
            )
    cluster.delete_namespace(runtime_name, wait=not state.request.fast_exit)


def delete_runtime(state: UninstallState) -> None:
    control_plane = state.clients.control_plane
    if state.managed:
        control_plane.delete_managed_runtime(state.request.runtime_name)
    else:
        control_plane.delete_runtime(state.request.runtime_name)


UNINSTALL_STEPS = (
    Step("check-runtime-exists", "Checking runtime exists", check_runtime_exists,
         when=lambda s: not s.request.skip_checks, hint=HINT_SKIP_CHECKS),
    Step("remove-git-integrations", "Removing git integrations", remove_git_integrations,
         force_continue=True, hint=HINT_FORCE),
    Step("remove-runtime-shared-config", "Removing runtime shared config", remove_runtime_shared_config,
         force_continue=True, hint=HINT_FORCE),
    Step("uninstall-repo", "Uninstalling repo", uninstall_repo,
         when=lambda s: not s.managed and not s.request.skip_repo_uninstall,
         force_continue=True, hint=HINT_FORCE),
    Step("delete-runtime", "Deleting runtime from platform", delete_runtime),
)


# ============================================================================
# Upgrade steps
# ============================================================================

def download_definition(state: UpgradeState) -> None:
    request = state.request
    try:
        state.new_definition = state.clients.registry.download(request.runtime_name, request.version)
    except UnsupportedDefinitionError as err:
        raise ValidationError("definition", f"please upgrade your cli version before upgrading: {err}") from err
    except NotFoundError as err:
        raise ValidationError("definition", f"runtime version '{request.version}' was not found") from err
    except InvalidDefinitionError as err:
        raise ValidationError("definition", f"invalid runtime definition: {err}") from err


def check_client_version(state: UpgradeState) -> None:
    new = state.new_definition
    if new.schema_version > Version(state.settings.max_def_version):
        raise ValidationError(
            "client-version", f"please upgrade your cli version before upgrading to {new.version}")


def load_current_definition(state: UpgradeState) -> None:
    state.current = state.clients.emitter.load_runtime(state.request.runtime_name)


def compare_versions(state: UpgradeState) -> None:
    current, new = state.current, state.new_definition
    if new.semver <= current.semver:
        raise ValidationError(
            "version",
            f"current runtime version ({current.version}) is greater than or equal to "
            f"the specified version ({new.version})",
        )


def upgrade_runtime(state: UpgradeState) -> None:
    state.upgraded, state.new_components = state.current.upgrade(state.new_definition)
    state.clients.emitter.write_runtime(state.upgraded)


def push_definition(state: UpgradeState) -> None:
    state.clients.git.commit_and_push(f"Upgraded to {state.upgraded.version}")


def install_new_components(state: UpgradeState) -> None:
    for component in state.new_components:
        logger.info("Creating new component '%s'", component.name)
        internal = component.model_copy(update={"is_internal": True})
        try:
            state.clients.emitter.create_component_app(state.request.runtime_name, internal)
        except Exception as err:
            raise RuntimeError(f"failed to create '{component.name}' application: {err}") from err


UPGRADE_STEPS = (
    Step("download-definition", "Downloading runtime definition", download_definition),
    Step("check-client-version", "Checking client version", check_client_version),
    Step("load-current-definition", "Loading current runtime definition", load_current_definition),
    Step("compare-versions", "Comparing runtime versions", compare_versions),
    Step("upgrade-runtime", "Upgrading runtime definition", upgrade_runtime),
    Step("push-definition", "Pushing upgraded definition", push_definition),
    Step("install-new-components", "Installing new components", install_new_components,
         soft_errors=(Exception,)),
)
