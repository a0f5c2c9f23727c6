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

"""Capability interfaces of the external collaborators the orchestrator drives.

The orchestrator never builds resource bodies or talks to a remote system
directly; it calls into these protocols. Concrete implementations live in
``runtime_manager.adapters``; tests use in-memory fakes.

Every implementation must raise :class:`~runtime_manager.errors.NotFoundError`
for missing objects, so pre-flight checks can tell "absent" from "broken".
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Protocol

from runtime_manager.models import (
    ComponentDescriptor,
    ComponentStatus,
    IngressClassInfo,
    RuntimeDefinition,
    RuntimeInfo,
)


# ============================================================================
# Declarative parameters
# ============================================================================

@dataclass(frozen=True)
class RuntimeCreationArgs:
    """Arguments for registering a runtime with the control plane."""

    runtime_name: str
    cluster: str
    runtime_version: str
    component_names: tuple[str, ...]
    repo: str
    ingress_host: str = ""
    internal_ingress_host: str = ""
    ingress_class: str = ""
    ingress_controller: str = ""
    recover: bool = False


@dataclass(frozen=True)
class IngressParams:
    """Where and how an ingress routes traffic into the runtime."""

    host: str
    ingress_class: str
    controller: str
    annotations: dict[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class ResourceRef:
    """A group/version/resource watched by a reporter."""

    group: str
    version: str
    resource: str


@dataclass(frozen=True)
class ReporterSpec:
    """An auxiliary reporter forwarding cluster events to the control plane."""

    name: str
    resources: tuple[ResourceRef, ...]
    service_account: str
    cluster_scope: bool = False


@dataclass(frozen=True)
class GitSourceSpec:
    """A git source application created inside the runtime."""

    name: str
    runtime_name: str
    repo: str
    create_demo_resources: bool = False
    include: str = ""
    exclude: str = ""
    ingress: IngressParams | None = None


# ============================================================================
# Protocols
# ============================================================================

class ControlPlaneClient(Protocol):
    """Remote service of record for runtimes, components and git integrations."""

    def create_runtime(self, args: RuntimeCreationArgs) -> str:
        """Register a runtime and return its new access token."""

    def get_runtime(self, name: str) -> RuntimeInfo:
        """Return the runtime, or raise NotFoundError."""

    def list_runtimes(self) -> list[RuntimeInfo]: ...

    def delete_runtime(self, name: str) -> None: ...

    def delete_managed_runtime(self, name: str) -> None: ...

    def list_components(self, runtime_name: str) -> list[ComponentStatus]: ...

    def get_shared_config_repo(self) -> str:
        """Return the account's shared configuration repo URL, or an empty string."""

    def remove_runtime_shared_config(self, runtime_name: str) -> None: ...

    def add_git_integration(self, runtime_name: str, provider: str, api_url: str) -> None: ...

    def register_git_integration(self, runtime_name: str, token: str) -> None: ...

    def remove_git_integrations(self, runtime_name: str) -> None: ...


class ClusterClient(Protocol):
    """Kubernetes API access scoped to the target cluster."""

    def server_address(self) -> str: ...

    def apply(self, manifests: list[dict]) -> None: ...

    def list_ingress_classes(self) -> list[IngressClassInfo]: ...

    def get_cluster_role_binding(self, name: str) -> dict:
        """Return the cluster-role-binding object, or raise NotFoundError."""

    def get_deployment(self, namespace: str, name: str) -> dict:
        """Return the deployment object, or raise NotFoundError."""

    def ensure_requirements(self, runtime_name: str) -> None:
        """Raise if the cluster does not meet the minimum runtime requirements."""

    def prepare_environment(self, runtime_name: str) -> None:
        """Apply distribution-specific preparation (security constraints etc.)."""

    def generate_argocd_token(self, namespace: str) -> str: ...

    def list_applications(self, namespace: str) -> list[ComponentStatus]: ...

    def delete_namespace(self, namespace: str, wait: bool = True) -> None: ...


class GitRepository(Protocol):
    """The desired-state store. Reads are idempotent and may be repeated."""

    @property
    def url(self) -> str: ...

    @property
    def host(self) -> str: ...

    def clone(self, create_if_missing: bool = True) -> None: ...

    def exists(self, path: str) -> bool: ...

    def list_dir(self, path: str) -> list[str]:
        """Names of the entries under *path*, sorted; empty if it does not exist."""

    def read_yaml(self, path: str) -> list[dict]: ...

    def write_yaml(self, path: str, documents: list[dict]) -> None: ...

    def remove(self, path: str) -> None: ...

    def commit_and_push(self, message: str) -> None:
        """Commit all changes and push; raise GitAuthError or GitMergeError on rejection."""


class DefinitionRegistry(Protocol):
    """Where versioned runtime definitions are published."""

    def download(self, runtime_name: str, version: str | None = None) -> RuntimeDefinition:
        """Download a definition; raise UnsupportedDefinitionError for unknown schemas."""


class ManifestEmitter(Protocol):
    """Produces resource descriptions and persists them into the git store."""

    def bootstrap_repository(self, runtime_name: str, app_specifier: str, recover: bool,
                             namespace_labels: dict[str, str]) -> None: ...

    def create_project(self, runtime_name: str) -> None: ...

    def write_runtime(self, definition: RuntimeDefinition) -> None:
        """Write the runtime definition into the working tree without pushing."""

    def persist_runtime(self, definition: RuntimeDefinition, message: str) -> None:
        """Write the runtime definition and push it with *message*."""

    def load_runtime(self, runtime_name: str) -> RuntimeDefinition: ...

    def render_secrets(self, runtime_name: str, token: str, store_iv: str,
                       argocd_token: str) -> list[dict]: ...

    def create_component_app(self, runtime_name: str, component: ComponentDescriptor) -> None: ...

    def create_master_ingress(self, runtime_name: str, ingress: IngressParams) -> None: ...

    def create_workflows_ingress(self, runtime_name: str, ingress: IngressParams) -> None: ...

    def configure_app_proxy(self, runtime_name: str, platform_url: str,
                            ingress: IngressParams | None) -> None: ...

    def create_events_reporter(self, runtime_name: str, platform_url: str) -> None: ...

    def create_reporter(self, runtime_name: str, platform_url: str, spec: ReporterSpec) -> None: ...

    def create_git_source(self, spec: GitSourceSpec) -> None: ...

    def uninstall_repository(self, runtime_name: str) -> None: ...


@dataclass
class Collaborators:
    """The external systems one operation talks to."""

    control_plane: ControlPlaneClient
    cluster: ClusterClient
    git: GitRepository
    registry: DefinitionRegistry
    emitter: ManifestEmitter
