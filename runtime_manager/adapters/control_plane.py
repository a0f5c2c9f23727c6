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

"""Control-plane client over the platform's REST API."""

from __future__ import annotations

from typing import Any

import requests
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_fixed

from runtime_manager import logger
from runtime_manager.constants import HTTP_TIMEOUT_SECONDS
from runtime_manager.errors import AlreadyExistsError, NotFoundError, RuntimeManagerError
from runtime_manager.interfaces import RuntimeCreationArgs
from runtime_manager.models import ComponentStatus, InstallationStatus, RuntimeInfo


def runtime_from_json(data: dict[str, Any]) -> RuntimeInfo:
    """Build a RuntimeInfo from the platform's runtime document."""
    metadata = data.get("metadata", {})
    try:
        status = InstallationStatus(data.get("installationStatus", InstallationStatus.PENDING.value))
    except ValueError:
        status = InstallationStatus.PENDING
    return RuntimeInfo(
        name=metadata.get("name", data.get("name", "")),
        installation_status=status,
        namespace=metadata.get("namespace"),
        cluster=data.get("cluster"),
        version=data.get("runtimeVersion"),
        sync_status=data.get("syncStatus") or "N/A",
        health_status=data.get("healthStatus") or "N/A",
        health_message=data.get("healthMessage"),
        ingress_host=data.get("ingressHost"),
        internal_ingress_host=data.get("internalIngressHost"),
        ingress_class=data.get("ingressClass"),
        managed=bool(data.get("managed", False)),
    )


def component_from_json(data: dict[str, Any]) -> ComponentStatus:
    self_status = data.get("self", {})
    return ComponentStatus(
        name=data.get("metadata", {}).get("name", ""),
        health_status=data.get("healthStatus") or "Unknown",
        sync_status=data.get("syncStatus") or "Unknown",
        version=self_status.get("version", ""),
        errors=tuple(error.get("message", "") for error in data.get("errors") or []),
    )


class HttpControlPlaneClient:
    """ControlPlaneClient implementation using ``requests``.

    Args:
        base_url: Platform URL, e.g. ``https://platform.example.com``.
        api_key: API key sent in the Authorization header.
        timeout: Per-request timeout in seconds.
    """

    def __init__(self, base_url: str, api_key: str, timeout: int = HTTP_TIMEOUT_SECONDS) -> None:
        if not base_url:
            raise RuntimeManagerError("control-plane URL is not set (RUNTIME_PLATFORM_URL)")
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.session = requests.Session()
        self.session.headers.update({"Authorization": api_key, "Content-Type": "application/json"})

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_fixed(2),
        retry=retry_if_exception_type((requests.ConnectionError, requests.Timeout)),
        reraise=True,
    )
    def _send(self, method: str, path: str, **kwargs: Any) -> requests.Response:
        return self.session.request(method, f"{self.base_url}{path}", timeout=self.timeout, **kwargs)

    def _request(self, method: str, path: str, **kwargs: Any) -> Any:
        resp = self._send(method, path, **kwargs)
        if resp.status_code == 404:
            raise NotFoundError(f"{path} does not exist")
        if resp.status_code == 409:
            raise AlreadyExistsError(resp.text or f"{path} already exists")
        if resp.status_code >= 400:
            raise RuntimeManagerError(f"{method} {path} failed with {resp.status_code}: {resp.text}")
        if not resp.content:
            return None
        return resp.json()

    # -- runtimes --

    def create_runtime(self, args: RuntimeCreationArgs) -> str:
        body = {
            "runtimeName": args.runtime_name,
            "cluster": args.cluster,
            "runtimeVersion": args.runtime_version,
            "componentNames": list(args.component_names),
            "repo": args.repo,
            "ingressHost": args.ingress_host or None,
            "internalIngressHost": args.internal_ingress_host or None,
            "ingressClass": args.ingress_class or None,
            "ingressController": args.ingress_controller or None,
            "recover": args.recover,
        }
        data = self._request("POST", "/api/runtimes", json=body) or {}
        token = data.get("newAccessToken")
        if not token:
            raise RuntimeManagerError(f"control plane returned no access token for runtime '{args.runtime_name}'")
        logger.debug("Created runtime %s on %s", args.runtime_name, self.base_url)
        return token

    def get_runtime(self, name: str) -> RuntimeInfo:
        try:
            return runtime_from_json(self._request("GET", f"/api/runtimes/{name}"))
        except NotFoundError as err:
            raise NotFoundError(f"runtime '{name}' does not exist") from err

    def list_runtimes(self) -> list[RuntimeInfo]:
        return [runtime_from_json(item) for item in self._request("GET", "/api/runtimes") or []]

    def delete_runtime(self, name: str) -> None:
        self._request("DELETE", f"/api/runtimes/{name}")

    def delete_managed_runtime(self, name: str) -> None:
        self._request("DELETE", f"/api/runtimes/managed/{name}")

    def list_components(self, runtime_name: str) -> list[ComponentStatus]:
        items = self._request("GET", f"/api/runtimes/{runtime_name}/components") or []
        return [component_from_json(item) for item in items]

    # -- shared configuration --

    def get_shared_config_repo(self) -> str:
        data = self._request("GET", "/api/accounts/current/shared-config-repo") or {}
        return data.get("repo") or ""

    def remove_runtime_shared_config(self, runtime_name: str) -> None:
        self._request("DELETE", f"/api/runtimes/{runtime_name}/shared-config")

    # -- git integrations --

    def add_git_integration(self, runtime_name: str, provider: str, api_url: str) -> None:
        body = {"name": "default", "provider": provider, "apiUrl": api_url or None}
        self._request("POST", f"/api/runtimes/{runtime_name}/git-integrations", json=body)

    def register_git_integration(self, runtime_name: str, token: str) -> None:
        self._request("POST", f"/api/runtimes/{runtime_name}/git-integrations/default/register",
                      json={"token": token})

    def remove_git_integrations(self, runtime_name: str) -> None:
        self._request("DELETE", f"/api/runtimes/{runtime_name}/git-integrations")
