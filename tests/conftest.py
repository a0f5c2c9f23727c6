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

# --- test import path bootstrap (flat layout) ---
import sys as _sys
from pathlib import Path as _Path

_ROOT = _Path(__file__).resolve().parents[1]
if str(_ROOT) not in _sys.path:
    _sys.path.insert(0, str(_ROOT))
# --- end bootstrap ---

import io
from dataclasses import dataclass

import pytest
from rich.console import Console

from runtime_manager.config import InstallationRequest, RuntimeSettings, UninstallRequest
from runtime_manager.constants import INGRESS_CONTROLLER_NGINX
from runtime_manager.errors import NotFoundError
from runtime_manager.interfaces import Collaborators
from runtime_manager.models import (
    ComponentDescriptor,
    ComponentStatus,
    InstallationStatus,
    RuntimeDefinition,
    RuntimeInfo,
)
from runtime_manager.summary import SummaryReporter

RUNTIME = "prod"
REPO = "https://github.com/acme/runtime.git"
STATUS_POLLS = frozenset({"list_components", "list_applications"})


# ============================================================================
# Fake collaborators
# ============================================================================

class Recorder:
    """Appends every call to a shared log and raises injected failures.

    A failure is either an exception (raised on every call) or a list of
    exceptions (one is raised per call until the list is empty).
    """

    def __init__(self, log: list, failures: dict) -> None:
        self.log = log
        self.failures = failures

    def _call(self, name: str, *args):
        self.log.append((name, *args))
        failure = self.failures.get(name)
        if isinstance(failure, list):
            if failure:
                raise failure.pop(0)
        elif failure is not None:
            raise failure


class FakeControlPlane(Recorder):
    def __init__(self, log, failures):
        super().__init__(log, failures)
        self.runtimes: dict[str, RuntimeInfo] = {}
        self.install_status = InstallationStatus.COMPLETED
        self.shared_config_repo = ""
        self.created_args = None

    def create_runtime(self, args):
        self._call("create_runtime", args.runtime_name)
        self.created_args = args
        self.runtimes[args.runtime_name] = RuntimeInfo(name=args.runtime_name)
        return "runtime-token"

    def get_runtime(self, name):
        self._call("get_runtime", name)
        if name not in self.runtimes:
            raise NotFoundError(f"runtime '{name}' does not exist")
        runtime = self.runtimes[name]
        return RuntimeInfo(name=name, installation_status=self.install_status, managed=runtime.managed)

    def list_runtimes(self):
        self._call("list_runtimes")
        return list(self.runtimes.values())

    def delete_runtime(self, name):
        self._call("delete_runtime", name)
        self.runtimes.pop(name, None)

    def delete_managed_runtime(self, name):
        self._call("delete_managed_runtime", name)
        self.runtimes.pop(name, None)

    def list_components(self, runtime_name):
        self._call("list_components", runtime_name)
        return [ComponentStatus(name=f"{runtime_name}-events", health_status="Healthy", sync_status="Synced")]

    def get_shared_config_repo(self):
        self._call("get_shared_config_repo")
        return self.shared_config_repo

    def remove_runtime_shared_config(self, runtime_name):
        self._call("remove_runtime_shared_config", runtime_name)

    def add_git_integration(self, runtime_name, provider, api_url):
        self._call("add_git_integration", runtime_name, provider)

    def register_git_integration(self, runtime_name, token):
        self._call("register_git_integration", runtime_name)

    def remove_git_integrations(self, runtime_name):
        self._call("remove_git_integrations", runtime_name)


class FakeCluster(Recorder):
    def __init__(self, log, failures):
        super().__init__(log, failures)
        self.cluster_role_binding: dict | None = None
        self.deployments: set[tuple[str, str]] = set()
        self.ingress_classes = []
        self.applied: list[dict] = []

    def server_address(self):
        self._call("server_address")
        return "https://cluster.local"

    def apply(self, manifests):
        self._call("apply", len(manifests))
        self.applied.extend(manifests)

    def list_ingress_classes(self):
        self._call("list_ingress_classes")
        return list(self.ingress_classes)

    def get_cluster_role_binding(self, name):
        self._call("get_cluster_role_binding", name)
        if self.cluster_role_binding is None:
            raise NotFoundError(name)
        return self.cluster_role_binding

    def get_deployment(self, namespace, name):
        self._call("get_deployment", namespace, name)
        if (namespace, name) not in self.deployments:
            raise NotFoundError(name)
        return {"metadata": {"name": name, "namespace": namespace}}

    def ensure_requirements(self, runtime_name):
        self._call("ensure_requirements", runtime_name)

    def prepare_environment(self, runtime_name):
        self._call("prepare_environment", runtime_name)

    def generate_argocd_token(self, namespace):
        self._call("generate_argocd_token", namespace)
        return "argocd-token"

    def list_applications(self, namespace):
        self._call("list_applications", namespace)
        return []

    def delete_namespace(self, namespace, wait=True):
        self._call("delete_namespace", namespace, wait)


class FakeGit(Recorder):
    def __init__(self, log, failures, url=REPO):
        super().__init__(log, failures)
        self._url = url
        self.files: dict[str, list[dict]] = {}
        self.pushes: list[str] = []

    @property
    def url(self):
        return self._url

    @property
    def host(self):
        return "github.com"

    def clone(self, create_if_missing=True):
        self._call("clone", create_if_missing)

    def exists(self, path):
        return path in self.files or any(name.startswith(f"{path}/") for name in self.files)

    def list_dir(self, path):
        prefix = f"{path}/"
        return sorted({name[len(prefix):].split("/", 1)[0] for name in self.files if name.startswith(prefix)})

    def read_yaml(self, path):
        if path not in self.files:
            raise NotFoundError(path)
        return list(self.files[path])

    def write_yaml(self, path, documents):
        self.files[path] = list(documents)

    def remove(self, path):
        for name in [name for name in self.files if name == path or name.startswith(f"{path}/")]:
            del self.files[name]

    def commit_and_push(self, message):
        self._call("commit_and_push", message)
        self.pushes.append(message)


class FakeRegistry(Recorder):
    def __init__(self, log, failures):
        super().__init__(log, failures)
        self.definitions: dict[str, RuntimeDefinition] = {}
        self.latest = ""

    def download(self, runtime_name, version=None):
        self._call("download", version)
        key = version or self.latest
        if key not in self.definitions:
            raise NotFoundError(f"version {key} does not exist")
        return self.definitions[key].model_copy(update={"name": runtime_name})


class FakeEmitter(Recorder):
    def __init__(self, log, failures):
        super().__init__(log, failures)
        self.current: RuntimeDefinition | None = None
        self.components: list[ComponentDescriptor] = []
        self.git_sources = []

    def bootstrap_repository(self, runtime_name, app_specifier, recover, namespace_labels):
        self._call("bootstrap_repository", runtime_name, app_specifier, recover)

    def create_project(self, runtime_name):
        self._call("create_project", runtime_name)

    def write_runtime(self, definition):
        self._call("write_runtime", definition.version)
        self.current = definition

    def persist_runtime(self, definition, message):
        self._call("persist_runtime", message)
        self.current = definition

    def load_runtime(self, runtime_name):
        self._call("load_runtime", runtime_name)
        if self.current is None:
            raise NotFoundError(f"bootstrap/{runtime_name}.yaml")
        return self.current

    def render_secrets(self, runtime_name, token, store_iv, argocd_token):
        self._call("render_secrets", runtime_name)
        return [{"kind": "Secret", "token": token, "iv": store_iv}, {"kind": "Secret", "token": argocd_token}]

    def create_component_app(self, runtime_name, component):
        self._call("create_component_app", component.name)
        self.components.append(component)

    def create_master_ingress(self, runtime_name, ingress):
        self._call("create_master_ingress", runtime_name)

    def create_workflows_ingress(self, runtime_name, ingress):
        self._call("create_workflows_ingress", runtime_name)

    def configure_app_proxy(self, runtime_name, platform_url, ingress):
        self._call("configure_app_proxy", runtime_name, ingress is not None)

    def create_events_reporter(self, runtime_name, platform_url):
        self._call("create_events_reporter", runtime_name)

    def create_reporter(self, runtime_name, platform_url, spec):
        self._call("create_reporter", spec.name)

    def create_git_source(self, spec):
        self._call("create_git_source", spec.name)
        self.git_sources.append(spec)

    def uninstall_repository(self, runtime_name):
        self._call("uninstall_repository", runtime_name)


@dataclass
class Harness:
    clients: Collaborators
    log: list
    failures: dict
    control_plane: FakeControlPlane
    cluster: FakeCluster
    git: FakeGit
    registry: FakeRegistry
    emitter: FakeEmitter

    def names(self) -> list[str]:
        """Recorded call names, without the status polls made by background threads."""
        return [entry[0] for entry in self.log if entry[0] not in STATUS_POLLS]


# ============================================================================
# Fixtures
# ============================================================================

@pytest.fixture
def definition() -> RuntimeDefinition:
    return RuntimeDefinition(
        name="runtime",
        def_version="1.0.0",
        version="1.2.0",
        bootstrap_specifier="github.com/acme/runtime-definitions/manifests",
        components=[
            ComponentDescriptor(name="events", url="github.com/acme/runtime-definitions/events"),
            ComponentDescriptor(name="workflows", url="github.com/acme/runtime-definitions/workflows"),
        ],
    )


@pytest.fixture
def harness(definition) -> Harness:
    log: list = []
    failures: dict = {}
    control_plane = FakeControlPlane(log, failures)
    cluster = FakeCluster(log, failures)
    git = FakeGit(log, failures)
    registry = FakeRegistry(log, failures)
    emitter = FakeEmitter(log, failures)
    registry.definitions[definition.version] = definition
    registry.latest = definition.version
    clients = Collaborators(
        control_plane=control_plane, cluster=cluster, git=git, registry=registry, emitter=emitter)
    return Harness(clients, log, failures, control_plane, cluster, git, registry, emitter)


@pytest.fixture
def settings() -> RuntimeSettings:
    return RuntimeSettings(
        platform_url="https://platform.test",
        registry_url="https://registry.test",
        max_def_version="2.0.0",
        wait_timeout=1,
        sync_max_attempts=3,
        sync_poll_interval=0,
        integration_max_attempts=2,
        integration_poll_interval=0,
        components_refresh_interval=0.01,
        docs_link="https://docs.test/runtime",
    )


@pytest.fixture
def output() -> io.StringIO:
    return io.StringIO()


@pytest.fixture
def summary(output) -> SummaryReporter:
    return SummaryReporter(console=Console(file=output, width=200))


@pytest.fixture
def make_request():
    def _make(**overrides) -> InstallationRequest:
        values = dict(
            runtime_name=RUNTIME,
            repo=REPO,
            ingress_host="https://prod.example.com",
            host_name="prod.example.com",
            ingress_class="nginx",
            ingress_controller=INGRESS_CONTROLLER_NGINX,
            personal_git_token="personal-token",
            silent=True,
        )
        values.update(overrides)
        return InstallationRequest(**values)
    return _make


@pytest.fixture
def make_uninstall_request():
    def _make(**overrides) -> UninstallRequest:
        values = dict(runtime_name=RUNTIME, repo=REPO)
        values.update(overrides)
        return UninstallRequest(**values)
    return _make
