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

"""Pre-flight validation run before any install mutation."""

from __future__ import annotations

import ipaddress
import re
import threading
from collections.abc import Callable
from dataclasses import dataclass
from urllib.parse import urlparse

from packaging.version import InvalidVersion, Version

from runtime_manager import logger
from runtime_manager.config import InstallationRequest, RuntimeSettings
from runtime_manager.constants import (
    ARGOCD_SERVER_NAME,
    BINARY_NAME,
    INGRESS_CONTROLLER_NGINX_ENTERPRISE,
    RUNTIME_NAME_MAX_LENGTH,
    RUNTIME_NAME_PATTERN,
    SUPPORTED_INGRESS_CONTROLLERS,
)
from runtime_manager.errors import (
    InvalidDefinitionError,
    NotFoundError,
    StepError,
    UnsupportedDefinitionError,
    ValidationError,
    decorate_with_docs_link,
)
from runtime_manager.interfaces import ClusterClient, Collaborators
from runtime_manager.models import IngressClassInfo, RuntimeDefinition
from runtime_manager.sequencer import Step, run_steps
from runtime_manager.summary import SummaryReporter


# ============================================================================
# Request validation
# ============================================================================

def validate_runtime_name(name: str) -> str:
    """Check that *name* can be used as a runtime (and namespace) name.

    Raises:
        ValidationError: If the name is not a DNS-1123 label.
    """
    if not name:
        raise ValidationError("runtime-name", "runtime name must not be empty")
    if len(name) > RUNTIME_NAME_MAX_LENGTH:
        raise ValidationError(
            "runtime-name", f"runtime name must be at most {RUNTIME_NAME_MAX_LENGTH} characters long")
    if not re.match(RUNTIME_NAME_PATTERN, name):
        raise ValidationError(
            "runtime-name",
            f"runtime name '{name}' must consist of lower case alphanumeric characters or '-', "
            "and must start and end with an alphanumeric character",
        )
    return name


def parse_version(value: str | None) -> Version | None:
    """Parse an optional version string; a leading 'v' is accepted."""
    if not value:
        return None
    try:
        return Version(value.lstrip("v"))
    except InvalidVersion as err:
        raise ValidationError("version", f"invalid version '{value}'") from err


def parse_host_name(ingress_host: str) -> str:
    """Return the bare host name of an ingress URL, or "" for IP addresses."""
    if not ingress_host:
        return ""
    parsed = urlparse(ingress_host if "://" in ingress_host else f"https://{ingress_host}")
    host = parsed.hostname or ""
    try:
        ipaddress.ip_address(host)
    except ValueError:
        return host
    return ""


def resolve_ingress_class(
    cluster: ClusterClient,
    ingress_class: str = "",
    *,
    skip_ingress: bool = False,
    silent: bool = False,
    choose: Callable[[list[str]], str] | None = None,
) -> IngressClassInfo | None:
    """Pick the ingress class the runtime is exposed through.

    Args:
        cluster: Cluster client used to list the ingress classes.
        ingress_class: Class requested by the operator, or "" to auto-detect.
        skip_ingress: No ingress is created; nothing is resolved.
        silent: Never prompt; several candidates is an error.
        choose: Prompt callback used to pick among several candidates.

    Returns:
        The chosen class, or None when ingress is skipped.

    Raises:
        ValidationError: If no usable class can be determined.
    """
    if skip_ingress:
        return None

    supported = [info for info in cluster.list_ingress_classes()
                 if info.controller in SUPPORTED_INGRESS_CONTROLLERS]
    by_name = {info.name: info for info in supported}

    if ingress_class:
        chosen = by_name.get(ingress_class)
        if chosen is None:
            raise ValidationError(
                "ingress-class",
                f"ingress class '{ingress_class}' is not supported; supported controllers: "
                + ", ".join(SUPPORTED_INGRESS_CONTROLLERS),
            )
    elif not supported:
        raise ValidationError("ingress-class", "no ingress classes of a supported type were found on the cluster")
    elif len(supported) == 1:
        chosen = supported[0]
    elif silent or choose is None:
        raise ValidationError(
            "ingress-class", "there are multiple ingress classes on the cluster; set one with --ingress-class")
    else:
        name = choose(sorted(by_name))
        if name not in by_name:
            raise ValidationError("ingress-class", f"ingress class '{name}' is not supported")
        chosen = by_name[name]

    if chosen.controller == INGRESS_CONTROLLER_NGINX_ENTERPRISE:
        logger.warning(
            "You are using the NGINX enterprise edition (%s) as your ingress controller; "
            "make sure it is configured to serve the runtime ingress", INGRESS_CONTROLLER_NGINX_ENTERPRISE)
    return chosen


# ============================================================================
# Pre-flight checks
# ============================================================================

@dataclass
class PreflightState:
    request: InstallationRequest
    clients: Collaborators
    settings: RuntimeSettings
    definition: RuntimeDefinition | None = None


def _host_of(url: str) -> str:
    parsed = urlparse(url if "://" in url else f"https://{url}")
    return (parsed.hostname or "").lower()


def check_git_provider(state: PreflightState) -> None:
    shared_repo = state.clients.control_plane.get_shared_config_repo()
    if not shared_repo:
        return
    shared_host = _host_of(shared_repo)
    repo_host = _host_of(state.request.repo)
    if shared_host != repo_host:
        raise ValidationError(
            "git-provider",
            f"your account is using '{shared_host}' as its git provider, "
            f"but the installation repo is on '{repo_host}'",
        )


def check_definition(state: PreflightState) -> None:
    request, settings = state.request, state.settings
    try:
        definition = state.clients.registry.download(request.runtime_name, request.version)
    except UnsupportedDefinitionError as err:
        raise ValidationError("definition", decorate_with_docs_link(
            f"your cli version is out of date: {err}", settings.download_cli_link)) from err
    except NotFoundError as err:
        raise ValidationError("definition", f"runtime version '{request.version}' was not found") from err
    except InvalidDefinitionError as err:
        raise ValidationError("definition", f"invalid runtime definition: {err}") from err

    if definition.schema_version > Version(settings.max_def_version):
        raise ValidationError("definition", decorate_with_docs_link(
            "your cli version is out of date. please download a newer version",
            settings.download_cli_link))
    state.definition = definition


def check_runtime_collision(state: PreflightState) -> None:
    runtime_name = state.request.runtime_name
    cluster = state.clients.cluster
    try:
        binding = cluster.get_cluster_role_binding(ARGOCD_SERVER_NAME)
    except NotFoundError:
        return

    subjects = binding.get("subjects") or []
    if not subjects:
        return
    namespace = subjects[0].get("namespace", "")
    if namespace == runtime_name:
        return

    try:
        cluster.get_deployment(namespace, ARGOCD_SERVER_NAME)
    except NotFoundError:
        logger.debug("Stale cluster-role-binding points at namespace %s", namespace)
        return

    raise ValidationError(
        "runtime-collision",
        f"runtime collision: a runtime is already installed in namespace '{namespace}'. "
        f"uninstall it first with: {BINARY_NAME} runtime uninstall {namespace} --skip-checks --force",
    )


def check_existing_runtime(state: PreflightState) -> None:
    runtime_name = state.request.runtime_name
    try:
        state.clients.control_plane.get_runtime(runtime_name)
    except NotFoundError:
        return
    except Exception as err:
        raise ValidationError("existing-runtime", f"failed to get runtime: {err}") from err
    raise ValidationError("existing-runtime", f"runtime '{runtime_name}' already exists")


def check_cluster_requirements(state: PreflightState) -> None:
    try:
        state.clients.cluster.ensure_requirements(state.request.runtime_name)
    except ValidationError:
        raise
    except Exception as err:
        raise ValidationError("cluster-requirements", decorate_with_docs_link(
            f"cluster does not meet the minimum requirements: {err}",
            state.settings.requirements_link)) from err


PREFLIGHT_STEPS = (
    Step("git-provider", "Checking git provider", check_git_provider),
    Step("definition", "Downloading runtime definition", check_definition),
    Step("runtime-collision", "Checking for runtime collisions", check_runtime_collision),
    Step("existing-runtime", "Checking for an existing runtime", check_existing_runtime,
         when=lambda s: not s.request.from_repo),
    Step("cluster-requirements", "Checking cluster requirements", check_cluster_requirements,
         when=lambda s: not s.request.skip_cluster_checks),
)


def run_preflight_checks(
    request: InstallationRequest,
    clients: Collaborators,
    settings: RuntimeSettings,
    summary: SummaryReporter,
    cancel: threading.Event | None = None,
) -> RuntimeDefinition:
    """Run the pre-flight checks in order, stopping at the first failure.

    Args:
        request: The install request.
        clients: External collaborators.
        settings: Process settings (definition version limit, docs links).
        summary: Receives one entry per check.
        cancel: Root cancellation signal.

    Returns:
        The runtime definition downloaded by the definition check.

    Raises:
        ValidationError: The first check that failed.
    """
    state = PreflightState(request=request, clients=clients, settings=settings)
    try:
        run_steps(PREFLIGHT_STEPS, state, summary, cancel=cancel)
    except StepError as err:
        raise ValidationError(err.step, str(err)) from err.cause
    if state.definition is None:
        raise ValidationError("definition", "no runtime definition was downloaded")
    return state.definition
