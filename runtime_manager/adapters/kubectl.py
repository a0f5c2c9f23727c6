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

"""Cluster client backed by the kubectl binary."""

from __future__ import annotations

import json
import tempfile
from pathlib import Path

import yaml
from packaging.version import InvalidVersion, Version
from tenacity import RetryError, retry, retry_if_result, stop_after_attempt, wait_exponential

from runtime_manager import logger
from runtime_manager.constants import (
    ARGOCD_SERVER_NAME,
    ARGOCD_TOKEN_DURATION,
    KUBECTL_TIMEOUT_SECONDS,
    MIN_KUBERNETES_VERSION,
    NOT_FOUND_MARKERS,
    OPENSHIFT_SCC_RESOURCE,
)
from runtime_manager.errors import NotFoundError, RuntimeManagerError
from runtime_manager.models import ComponentStatus, IngressClassInfo
from runtime_manager.utils import run_kubectl


@retry(
    stop=stop_after_attempt(3),
    wait=wait_exponential(multiplier=1, min=1, max=8),
    retry=retry_if_result(lambda result: not result[0]),
)
def _kubectl_apply(args: list[str]) -> tuple[bool, str]:
    """Apply a manifest file via kubectl with retry logic.

    Returns:
        Tuple of (success, stderr). "AlreadyExists" counts as success.
    """
    ok, _, stderr = run_kubectl(args)
    return ok or "AlreadyExists" in stderr, stderr


def _is_not_found(stderr: str) -> bool:
    return any(marker in stderr for marker in NOT_FOUND_MARKERS)


class KubectlClusterClient:
    """ClusterClient implementation that shells out to kubectl.

    Args:
        context: Kubernetes context name, or "" for the current context.
        kubeconfig: Path to a kubeconfig file, or None for the default.
        timeout: Per-command timeout in seconds.
    """

    def __init__(self, context: str = "", kubeconfig: str | None = None,
                 timeout: int = KUBECTL_TIMEOUT_SECONDS) -> None:
        self.context = context
        self.kubeconfig = kubeconfig
        self.timeout = timeout

    def _args(self, *args: str) -> list[str]:
        prefix: list[str] = []
        if self.kubeconfig:
            prefix += ["--kubeconfig", self.kubeconfig]
        if self.context:
            prefix += ["--context", self.context]
        return [*prefix, *args]

    def _run(self, *args: str, timeout: int | None = None) -> str:
        ok, stdout, stderr = run_kubectl(self._args(*args), timeout=timeout or self.timeout)
        if not ok:
            if _is_not_found(stderr):
                raise NotFoundError(stderr.strip())
            raise RuntimeManagerError(f"kubectl {' '.join(args)} failed: {stderr.strip()}")
        return stdout

    def _get_json(self, *args: str) -> dict:
        return json.loads(self._run("get", *args, "-o", "json") or "{}")

    # -- reads --

    def server_address(self) -> str:
        return self._run("config", "view", "--minify", "-o", "jsonpath={.clusters[0].cluster.server}").strip()

    def list_ingress_classes(self) -> list[IngressClassInfo]:
        items = self._get_json("ingressclasses").get("items", [])
        return [
            IngressClassInfo(name=item["metadata"]["name"], controller=item.get("spec", {}).get("controller", ""))
            for item in items
        ]

    def get_cluster_role_binding(self, name: str) -> dict:
        return self._get_json("clusterrolebinding", name)

    def get_deployment(self, namespace: str, name: str) -> dict:
        if not namespace:
            raise NotFoundError(f"deployment '{name}' has no namespace")
        return self._get_json("deployment", name, "-n", namespace)

    def list_applications(self, namespace: str) -> list[ComponentStatus]:
        try:
            items = self._get_json("applications.argoproj.io", "-n", namespace).get("items", [])
        except NotFoundError:
            return []
        statuses = []
        for item in items:
            status = item.get("status", {})
            conditions = status.get("conditions") or []
            statuses.append(ComponentStatus(
                name=item["metadata"]["name"],
                health_status=status.get("health", {}).get("status", "Unknown"),
                sync_status=status.get("sync", {}).get("status", "Unknown"),
                version=item.get("spec", {}).get("source", {}).get("targetRevision", ""),
                errors=tuple(c.get("message", "") for c in conditions if "Error" in c.get("type", "")),
            ))
        return statuses

    # -- writes --

    def apply(self, manifests: list[dict]) -> None:
        """Apply manifests with ``kubectl apply``, retrying transient failures.

        Raises:
            RuntimeManagerError: If the apply still fails after retries.
        """
        if not manifests:
            return
        tmp = tempfile.NamedTemporaryFile(delete=False, suffix=".yaml")
        try:
            tmp.write(yaml.safe_dump_all(manifests, sort_keys=False).encode())
            tmp.flush()
            tmp.close()
            try:
                ok, stderr = _kubectl_apply(self._args("apply", "-f", tmp.name))
            except RetryError as err:
                ok, stderr = err.last_attempt.result()
            if not ok:
                raise RuntimeManagerError(f"kubectl apply failed: {stderr.strip()}")
        finally:
            Path(tmp.name).unlink(missing_ok=True)

    def ensure_requirements(self, runtime_name: str) -> None:
        """Check the server version, node readiness and cluster-admin permissions.

        Raises:
            RuntimeManagerError: Describing every requirement that is not met.
        """
        problems: list[str] = []

        version_info = json.loads(self._run("version", "-o", "json") or "{}").get("serverVersion", {})
        git_version = version_info.get("gitVersion", "").lstrip("v").split("-")[0].split("+")[0]
        try:
            if Version(git_version) < Version(MIN_KUBERNETES_VERSION):
                problems.append(f"kubernetes version {git_version} is older than {MIN_KUBERNETES_VERSION}")
        except InvalidVersion:
            problems.append(f"could not determine the kubernetes server version ('{git_version}')")

        nodes = self._get_json("nodes").get("items", [])
        ready = [
            node for node in nodes
            if any(c.get("type") == "Ready" and c.get("status") == "True"
                   for c in node.get("status", {}).get("conditions", []))
        ]
        if not ready:
            problems.append("no ready nodes found")

        ok, stdout, _ = run_kubectl(self._args("auth", "can-i", "*", "*", "--all-namespaces"),
                                    timeout=self.timeout)
        if not ok or stdout.strip() != "yes":
            problems.append("the current user is not a cluster admin")

        if problems:
            raise RuntimeManagerError(
                f"cluster is not ready for runtime '{runtime_name}': " + "; ".join(problems))
        logger.debug("Cluster meets the requirements for runtime %s", runtime_name)

    def prepare_environment(self, runtime_name: str) -> None:
        """Grant the runtime's service accounts the anyuid SCC on OpenShift."""
        resources = self._run("api-resources", "-o", "name").split()
        if OPENSHIFT_SCC_RESOURCE not in resources:
            logger.debug("Not an OpenShift cluster, nothing to prepare")
            return
        logger.info("Preparing OpenShift security constraints for %s", runtime_name)
        self.apply([{
            "apiVersion": "rbac.authorization.k8s.io/v1",
            "kind": "RoleBinding",
            "metadata": {"name": f"{runtime_name}-anyuid", "namespace": runtime_name},
            "roleRef": {
                "apiGroup": "rbac.authorization.k8s.io",
                "kind": "ClusterRole",
                "name": "system:openshift:scc:anyuid",
            },
            "subjects": [{
                "apiGroup": "rbac.authorization.k8s.io",
                "kind": "Group",
                "name": f"system:serviceaccounts:{runtime_name}",
            }],
        }])

    def generate_argocd_token(self, namespace: str) -> str:
        token = self._run("create", "token", ARGOCD_SERVER_NAME, "-n", namespace,
                          f"--duration={ARGOCD_TOKEN_DURATION}").strip()
        if not token:
            raise RuntimeManagerError(f"empty token returned for {ARGOCD_SERVER_NAME} in {namespace}")
        return token

    def delete_namespace(self, namespace: str, wait: bool = True) -> None:
        self._run("delete", "namespace", namespace, "--ignore-not-found", f"--wait={str(wait).lower()}",
                  timeout=None if not wait else max(self.timeout, 300))
